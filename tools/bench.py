#!/usr/bin/env python3
"""
Benchmark: time one search per position through the engine client.

Runs a fixed set of positions against an external UCI engine using
EngineHandle, exactly as the web session does, and reports the move and the
wall-clock time of each request. Useful for checking that an engine answers
within the deadline before putting it behind the web app.

Usage: python3 tools/bench.py <engine path> [movetime ms]
"""
import os
import sys
import time

REPO = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if REPO not in sys.path:
    sys.path.insert(0, REPO)

import chess

from interface.errors import EngineError
from interface.protocol import SearchBudget
from interface.uci import EngineHandle

# 10 standard positions spanning opening, middlegame, and endgame.
POSITIONS = [
    ("Start",        "startpos"),
    ("After 1.e4",   "startpos moves e2e4"),
    ("Sicilian",     "startpos moves e2e4 c7c5"),
    ("Italian",      "startpos moves e2e4 e7e5 g1f3 b8c6 f1c4"),
    ("London",       "startpos moves d2d4 d7d5 g1f3 g8f6 c1f4"),
    ("Mid-open",     "fen r1bqkb1r/pppp1ppp/2n2n2/4p3/2B1P3/5N2/PPPP1PPP/RNBQK2R w KQkq - 4 4"),
    ("Complex mid",  "fen r2q1rk1/ppp2ppp/2np1n2/2b1p1B1/2B1P1b1/2NP1N2/PPP2PPP/R2Q1RK1 w - - 0 8"),
    ("Queen ending", "fen 6k1/ppp2ppp/8/3p4/3P4/8/PPP2PPP/6K1 w - - 0 1"),
    ("Rook ending",  "fen 8/5pk1/6p1/7p/7P/6P1/5PK1/8 w - - 0 1"),
    ("Pawn race",    "fen 8/1p4k1/p7/P1K5/8/8/8/8 w - - 0 1"),
]


def board_from_spec(pos_spec: str) -> chess.Board:
    """Build a board from "startpos [moves ...]" or "fen <FEN>"."""
    tokens = pos_spec.split()
    if tokens[0] == "fen":
        return chess.Board(" ".join(tokens[1:]))
    board = chess.Board()
    if "moves" in tokens:
        for uci_move in tokens[tokens.index("moves") + 1:]:
            board.push_uci(uci_move)
    return board


def run_position(engine: EngineHandle, label: str, pos_spec: str, movetime_ms: int) -> dict:
    """
    Request one move and measure how long the request took.

    Returns:
        Dict with keys: label, move, time_ms, error.
    """
    board = board_from_spec(pos_spec)
    start = time.monotonic()
    try:
        move = engine.request_move(board, SearchBudget(movetime_ms=movetime_ms)).uci()
        error = ""
    except EngineError as exc:
        move = "(none)"
        error = type(exc).__name__
    elapsed_ms = int((time.monotonic() - start) * 1000)

    return {"label": label, "move": move, "time_ms": elapsed_ms, "error": error}


def main() -> None:
    """Run all benchmark positions and print a summary table."""
    if len(sys.argv) < 2:
        print(f"Usage: {sys.argv[0]} <engine path> [movetime ms]")
        sys.exit(2)
    path = sys.argv[1]
    movetime_ms = int(sys.argv[2]) if len(sys.argv) > 2 else 100

    with EngineHandle.start(path, quiet=True) as engine:
        print(f"Engine: {engine.name} by {engine.author or 'unknown'} ({path})")
        print()
        print(f"{'Position':<14} {'Move':<7} {'Time(ms)':>9}  Error")
        print("-" * 48)

        results = []
        for label, pos in POSITIONS:
            r = run_position(engine, label, pos, movetime_ms)
            results.append(r)
            print(f"{r['label']:<14} {r['move']:<7} {r['time_ms']:>9,}  {r['error']}")
            if r["error"] == "TransportError":
                engine.restart()

    answered = [r for r in results if not r["error"]]
    if answered:
        avg_time = sum(r["time_ms"] for r in answered) // len(answered)
        print("-" * 48)
        print(f"{'AVERAGE':<14} {'':<7} {avg_time:>9,}")
    print(f"{len(answered)}/{len(results)} positions answered within the deadline.")


if __name__ == "__main__":
    main()
