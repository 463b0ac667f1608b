"""
Game session: one game (and a running score) per websocket connection.

The session turns client commands into board changes and engine requests,
and reports every change back as a BoardUpdate. It never talks to the engine
process directly; it only calls EngineHandle.request_move() and restart().

Threading model:
    Command handlers run on the event loop. The bot's move is computed in a
    background task that hands the blocking engine call to the thread pool,
    on a copy of the board, so the live board is only ever touched from the
    event loop. Starting, resigning or undoing bumps a generation counter;
    a bot move that comes back for an older generation is dropped.

Bot failures:
    A failed request is retried, after a restart when the engine reports a
    TransportError (including EngineStalledError). If every attempt fails
    the player is told "Bot failed to move." and the game is aborted
    without changing the score, so a new game can be started.
"""

import asyncio
import logging
import random
from typing import Any, Awaitable, Callable

import chess
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

from interface.errors import EngineError, TransportError
from interface.protocol import SearchBudget
from interface.uci import EngineHandle
from web.messages import BaseResponse, BoardUpdate, ClientMessage, MakeMoveArgs, StartArgs

_log = logging.getLogger(__name__)

Send = Callable[[dict[str, Any]], Awaitable[None]]

# Engine requests per bot move before the game is aborted.
BOT_MOVE_ATTEMPTS = 3


class Session:
    """
    State of one connected player.

    Attributes:
        engine:      Shared engine handle used for bot moves.
        budget:      Search budget for each bot move.
        player:      chess.WHITE or chess.BLACK.
        board:       The live game position.
        player_turn: True when the player is to move in an active game.
        game_over:   True before the first game and after each game ends.
        legal_moves: Moves offered to the player (empty when not their turn).
        last_move:   Last move played by either side.
        undos:       Number of take-backs in the current game.
        wins, losses, draws: Score across games on this connection.
        generation:  Incremented whenever a pending bot move becomes invalid.
    """

    def __init__(self, engine: EngineHandle, send: Send, *, budget: SearchBudget | None = None) -> None:
        self.engine = engine
        self.budget = budget
        self._send = send

        self.player: chess.Color = chess.WHITE
        self.board = chess.Board()
        self.player_turn = False
        self.game_over = True
        self.legal_moves: list[chess.Move] = []
        self.last_move: chess.Move | None = None
        self.undos = 0

        self.wins = 0
        self.losses = 0
        self.draws = 0

        self.generation = 0
        self._tasks: set[asyncio.Task] = set()

    # -----------------------------------------------------------------------
    # Dispatch
    # -----------------------------------------------------------------------

    async def handle(self, raw: str) -> None:
        """Parse one client message and run the matching command."""
        try:
            message = ClientMessage.model_validate_json(raw)
        except ValidationError:
            await self.send_error("Invalid JSON.")
            return

        handler = self._handlers.get(message.cmd)
        if handler is None:
            _log.warning("unknown command %r", message.cmd)
            await self.send_error("Invalid Command.")
            return
        await handler(self, message.arg)

    async def close(self) -> None:
        """Cancel pending bot moves; called when the connection ends."""
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    # -----------------------------------------------------------------------
    # Commands
    # -----------------------------------------------------------------------

    async def start(self, arg: dict[str, Any]) -> None:
        if not self.game_over:
            await self.send_error("Cannot Reset While Game Active.")
            return
        try:
            colour = StartArgs.model_validate(arg).colour
        except ValidationError:
            await self.send_error("Invalid Colour.")
            return

        if colour == "random":
            colour = random.choice(("white", "black"))
        self.new_game(chess.WHITE if colour == "white" else chess.BLACK)
        await self.send_state("Started Game.")

        if not self.player_turn:
            self._schedule_bot_move()

    async def make_move(self, arg: dict[str, Any]) -> None:
        if self.game_over:
            await self.send_error("Game Is Over.")
            return
        if self.board.turn != self.player:
            await self.send_error("Not your turn.")
            return

        try:
            text = MakeMoveArgs.model_validate(arg).move
            move = self.board.parse_uci(text)
        except chess.IllegalMoveError:
            await self.send_error("Illegal Move.")
            return
        except (ValidationError, chess.InvalidMoveError):
            await self.send_error("Invalid Move.")
            return

        self.apply_move(move)
        await self.send_state("Played Move.")

        # No reply is needed once the player's move has ended the game.
        if not self.game_over:
            self._schedule_bot_move()

    async def resign(self, arg: dict[str, Any]) -> None:
        if self.game_over:
            await self.send_error("Cannot Resign While Game Inactive.")
            return
        self.generation += 1
        self.losses += 1
        self.game_over = True
        self.player_turn = False
        self.legal_moves = []
        await self.send_state("Resigned.")

    async def undo(self, arg: dict[str, Any]) -> None:
        if self.game_over:
            await self.send_error("Game Is Over.")
            return
        if self.board.turn != self.player:
            await self.send_error("Not your turn.")
            return
        if len(self.board.move_stack) < 2:
            await self.send_error("Cannot Undo.")
            return

        self.generation += 1
        self.board.pop()
        self.board.pop()
        self.last_move = self.board.peek() if self.board.move_stack else None
        self.undos += 1
        self._refresh()
        await self.send_state("Undo.")

    _handlers: dict[str, Callable[["Session", dict[str, Any]], Awaitable[None]]] = {
        "start": start,
        "makemove": make_move,
        "resign": resign,
        "undo": undo,
    }

    # -----------------------------------------------------------------------
    # Game state
    # -----------------------------------------------------------------------

    def new_game(self, player: chess.Color) -> None:
        """Reset the board for a new game with the player on the given side."""
        self.generation += 1
        self.player = player
        self.board = chess.Board()
        self.game_over = False
        self.last_move = None
        self.undos = 0
        self._refresh()

    def apply_move(self, move: chess.Move) -> None:
        """Play a move for whichever side is to move and score a finished game."""
        self.board.push(move)
        self.last_move = move

        outcome = self.board.outcome(claim_draw=True)
        if outcome is not None:
            self.game_over = True
            if outcome.winner is None:
                self.draws += 1
            elif outcome.winner == self.player:
                self.wins += 1
            else:
                self.losses += 1

        self._refresh()

    def _refresh(self) -> None:
        self.player_turn = self.board.turn == self.player and not self.game_over
        self.legal_moves = list(self.board.legal_moves) if self.player_turn else []

    # -----------------------------------------------------------------------
    # Bot
    # -----------------------------------------------------------------------

    def _schedule_bot_move(self) -> None:
        task = asyncio.create_task(self._bot_move())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _bot_move(self) -> None:
        generation = self.generation
        board = self.board.copy()

        move = None
        for attempt in range(1, BOT_MOVE_ATTEMPTS + 1):
            try:
                move = await run_in_threadpool(self.engine.request_move, board, self.budget)
                break
            except TransportError as exc:
                _log.warning("Bot Error (attempt %d): %s", attempt, exc)
                await run_in_threadpool(self._restart_engine)
            except EngineError as exc:
                _log.warning("Bot Error (attempt %d): %s", attempt, exc)
            if generation != self.generation:
                return

        if move is None:
            # The game cannot continue without a reply; end it unscored.
            self.generation += 1
            self.game_over = True
            self._refresh()
            await self.send_error("Bot failed to move.")
            await self.send_state("Game Aborted.")
            return

        if generation != self.generation:
            _log.info("dropping bot move %s for an abandoned game", move.uci())
            return

        self.apply_move(move)
        await self.send_state("Bot Move.")

    def _restart_engine(self) -> None:
        try:
            self.engine.restart()
        except EngineError:
            _log.exception("engine restart failed")

    # -----------------------------------------------------------------------
    # Replies
    # -----------------------------------------------------------------------

    async def send_error(self, message: str) -> None:
        await self._send(BaseResponse(type="error", message=message).model_dump())

    async def send_state(self, message: str) -> None:
        update = BoardUpdate(
            message=message,
            player_colour="white" if self.player == chess.WHITE else "black",
            position=self.board.fen(),
            player_turn=self.player_turn,
            gameover=self.game_over,
            moves=[move.uci() for move in self.legal_moves],
            last_move=self.last_move.uci() if self.last_move else "",
            wins=self.wins,
            losses=self.losses,
            draws=self.draws,
        )
        await self._send(update.model_dump())
