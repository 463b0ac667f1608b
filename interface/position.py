"""
Position synchronizer: describe a live board as "base FEN + reversible tail".

An engine only needs the moves played since the last irreversible move
(capture or pawn move) to apply the fifty-move and repetition rules; nothing
before that point can ever repeat. Sending just that tail keeps the
"position" command short no matter how long the game is, which matters for
engines that read commands into a 1024-byte buffer.

The description is produced by undoing moves on the caller's board and then
replaying them, so the board is back in its original state when describe()
returns, including when it raises.
"""

from dataclasses import dataclass, field

import chess


@dataclass(frozen=True)
class PositionDescriptor:
    """
    A base position plus the moves that lead from it to the current one.

    Attributes:
        fen:   FEN of the base position.
        moves: Moves in long algebraic (UCI) notation, in the order played.
    """

    fen: str
    moves: tuple[str, ...] = field(default_factory=tuple)


def describe(board: chess.Board) -> PositionDescriptor:
    """
    Build the shortest descriptor that still carries draw-rule history.

    Walks back halfmove_clock plies (or to the start of the recorded move
    stack, whichever comes first), records the FEN there, then re-applies the
    undone moves in their original order.

    Args:
        board: The live position. Temporarily modified via pop/push and
               restored before returning.

    Returns:
        PositionDescriptor whose moves, replayed onto its FEN, reproduce
        the board exactly.
    """
    # A board set up from a FEN may report a clock larger than the history
    # it actually holds; the walk stops at the first recorded position.
    tail_length = min(board.halfmove_clock, len(board.move_stack))

    undone: list[chess.Move] = []
    try:
        while len(undone) < tail_length:
            undone.append(board.pop())
        base_fen = board.fen()
    finally:
        for move in reversed(undone):
            board.push(move)

    return PositionDescriptor(
        fen=base_fen,
        moves=tuple(move.uci() for move in reversed(undone)),
    )
