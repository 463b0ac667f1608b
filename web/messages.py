"""
Websocket message models.

Clients send {"cmd": <name>, "arg": {...}}; the server answers with either a
short status message ({"type": "error" | "okay", "message": ...}) or a full
board update. Field names are the JSON keys the browser client reads.
"""

from typing import Any, Literal

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Client -> server
# ---------------------------------------------------------------------------


class ClientMessage(BaseModel):
    """Envelope of every client command."""

    cmd: str
    arg: dict[str, Any] = Field(default_factory=dict)


class MakeMoveArgs(BaseModel):
    """Argument of "makemove": a move in long algebraic notation (e.g. "e2e4")."""

    move: str


class StartArgs(BaseModel):
    """Argument of "start": the colour the player wants."""

    colour: Literal["white", "black", "random"]


# ---------------------------------------------------------------------------
# Server -> client
# ---------------------------------------------------------------------------


class BaseResponse(BaseModel):
    type: Literal["error", "okay"]
    message: str


class BoardUpdate(BaseModel):
    """
    Full game state sent after every change.

    Fields:
        player_colour: "white" or "black".
        position:      FEN of the current position.
        player_turn:   True when the client may move.
        gameover:      True between games.
        moves:         Legal moves for the player (empty when not their turn).
        last_move:     Last move played in UCI notation, "" if none.
        wins/losses/draws: Running score for this connection.
    """

    type: Literal["update"] = "update"
    message: str
    player_colour: str
    position: str
    player_turn: bool
    gameover: bool
    moves: list[str]
    last_move: str
    wins: int
    losses: int
    draws: int
