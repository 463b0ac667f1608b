"""
Line codec for the UCI (Universal Chess Interface) protocol, client side.

The engine reads newline-terminated commands on stdin and answers with
newline-terminated lines on stdout. This module turns commands into lines
and lines back into tokens; it has no knowledge of processes or timing.

Commands built here:
    uci                                   handshake request
    position fen <FEN> [moves <m1> ...]   set the position to search
    go [ponder] [searchmoves ...] [wtime/btime/winc/binc] [limits]
    stop                                  end the current search early
    quit                                  ask the process to exit

Responses are returned as whitespace-separated tokens. An empty token list
is a valid decode result: blank lines are ignored by callers, not treated
as errors here.
"""

from dataclasses import dataclass
from typing import Iterable, Sequence

import chess


@dataclass(frozen=True)
class SearchBudget:
    """
    Stopping conditions for one search request.

    Any combination may be set; every limit that is set must be positive.
    A budget with no limits at all asks the engine to search until it
    receives "stop" ("go infinite").

    Attributes:
        nodes:       Node-count limit.
        movetime_ms: Wall-clock limit in milliseconds.
        depth:       Depth limit in plies.
        mate:        Search for a mate in this many moves.
    """

    nodes: int | None = None
    movetime_ms: int | None = None
    depth: int | None = None
    mate: int | None = None

    def __post_init__(self) -> None:
        for name in ("nodes", "movetime_ms", "depth", "mate"):
            value = getattr(self, name)
            if value is not None and value <= 0:
                raise ValueError(f"{name} must be positive, got {value}")

    def is_unbounded(self) -> bool:
        """True when no stopping condition is set."""
        return all(limit is None for limit in (self.nodes, self.movetime_ms, self.depth, self.mate))


@dataclass(frozen=True)
class ClockState:
    """Remaining time and increment for both sides, in milliseconds.

    Passed through to the engine unmodified.
    """

    wtime: int
    btime: int
    winc: int = 0
    binc: int = 0


def encode(command: str, *args: str) -> str:
    """
    Join a command and its arguments into one protocol line.

    Args:
        command: The command word (e.g. "position", "go").
        *args:   Arguments, already converted to text.

    Returns:
        The line, with single spaces between tokens and a trailing newline.
    """
    return " ".join((command, *args)) + "\n"


def decode(line: str) -> list[str]:
    """Split a response line into whitespace-separated tokens."""
    return line.split()


def position_command(fen: str, moves: Sequence[str] = ()) -> list[str]:
    """
    Build the tokens of a "position fen ... [moves ...]" command.

    The FEN is split into its fields so the command encodes with single
    spaces regardless of how the FEN string was formatted.
    """
    tokens = ["position", "fen", *fen.split()]
    if moves:
        tokens.append("moves")
        tokens.extend(moves)
    return tokens


def go_command(
    budget: SearchBudget | None,
    clock: ClockState | None = None,
    *,
    ponder: bool = False,
    searchmoves: Iterable[chess.Move | str] | None = None,
    default_movetime_ms: int = 100,
) -> list[str]:
    """
    Build the tokens of a "go" command.

    Token order follows the UCI specification: ponder, searchmoves, clock
    information, then the stopping conditions.

    Args:
        budget:              Stopping conditions. None means "use the default
                             movetime"; an unbounded budget means "infinite".
        clock:               Clock information to pass through, if any.
        ponder:              Start the search in ponder mode.
        searchmoves:         Restrict the search to these moves.
        default_movetime_ms: Movetime used when budget is None.

    Returns:
        Command tokens, starting with "go".
    """
    tokens = ["go"]
    if ponder:
        tokens.append("ponder")

    if searchmoves is not None:
        tokens.append("searchmoves")
        tokens.extend(m.uci() if isinstance(m, chess.Move) else m for m in searchmoves)

    if clock is not None:
        tokens += ["wtime", str(clock.wtime), "btime", str(clock.btime)]
        tokens += ["winc", str(clock.winc), "binc", str(clock.binc)]

    if budget is None:
        tokens += ["movetime", str(default_movetime_ms)]
    elif budget.is_unbounded():
        tokens.append("infinite")
    else:
        if budget.depth is not None:
            tokens += ["depth", str(budget.depth)]
        if budget.nodes is not None:
            tokens += ["nodes", str(budget.nodes)]
        if budget.movetime_ms is not None:
            tokens += ["movetime", str(budget.movetime_ms)]
        if budget.mate is not None:
            tokens += ["mate", str(budget.mate)]

    return tokens
