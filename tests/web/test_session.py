"""Tests for the game session, driven directly on an event loop."""

from __future__ import annotations

import asyncio
import json
import threading
from typing import Any

import chess

from interface.errors import EngineStalledError, EngineTimeoutError, TransportError
from interface.uci import EngineHandle
from web.session import BOT_MOVE_ATTEMPTS, Session

from engine_doubles import Spawner, StubEngine


def _run(engine: StubEngine | EngineHandle, *commands: dict[str, Any]) -> tuple[Session, list[dict[str, Any]]]:
    """Send commands to a fresh session and wait for any bot moves."""
    sent: list[dict[str, Any]] = []

    async def send(message: dict[str, Any]) -> None:
        sent.append(message)

    async def main() -> Session:
        session = Session(engine, send)
        for command in commands:
            await session.handle(json.dumps(command))
            while session._tasks:
                await asyncio.gather(*session._tasks)
        return session

    return asyncio.run(main()), sent


class TestCommands:
    def test_invalid_json(self) -> None:
        sent: list[dict[str, Any]] = []

        async def send(message: dict[str, Any]) -> None:
            sent.append(message)

        asyncio.run(Session(StubEngine(), send).handle("{not json"))

        assert sent == [{"type": "error", "message": "Invalid JSON."}]

    def test_unknown_command(self) -> None:
        _, sent = _run(StubEngine(), {"cmd": "castle", "arg": {}})

        assert sent == [{"type": "error", "message": "Invalid Command."}]

    def test_start_as_white(self) -> None:
        session, sent = _run(StubEngine(), {"cmd": "start", "arg": {"colour": "white"}})

        update = sent[-1]
        assert update["type"] == "update"
        assert update["message"] == "Started Game."
        assert update["player_colour"] == "white"
        assert update["player_turn"] is True
        assert update["gameover"] is False
        assert update["position"] == chess.STARTING_FEN
        assert len(update["moves"]) == 20
        assert update["last_move"] == ""
        assert not session.engine.requests

    def test_start_as_black_lets_the_bot_open(self) -> None:
        engine = StubEngine(["d2d4"])
        _, sent = _run(engine, {"cmd": "start", "arg": {"colour": "black"}})

        assert [message["message"] for message in sent] == ["Started Game.", "Bot Move."]
        assert sent[0]["player_turn"] is False
        assert sent[0]["moves"] == []
        assert sent[1]["last_move"] == "d2d4"
        assert sent[1]["player_turn"] is True
        assert sent[1]["player_colour"] == "black"

    def test_random_colour(self) -> None:
        session, sent = _run(StubEngine(), {"cmd": "start", "arg": {"colour": "random"}})

        assert sent[0]["player_colour"] in ("white", "black")
        assert not session.game_over

    def test_invalid_colour(self) -> None:
        session, sent = _run(StubEngine(), {"cmd": "start", "arg": {"colour": "green"}})

        assert sent == [{"type": "error", "message": "Invalid Colour."}]
        assert session.game_over

    def test_cannot_restart_active_game(self) -> None:
        _, sent = _run(
            StubEngine(),
            {"cmd": "start", "arg": {"colour": "white"}},
            {"cmd": "start", "arg": {"colour": "white"}},
        )

        assert sent[-1] == {"type": "error", "message": "Cannot Reset While Game Active."}

    def test_move_before_start(self) -> None:
        _, sent = _run(StubEngine(), {"cmd": "makemove", "arg": {"move": "e2e4"}})

        assert sent == [{"type": "error", "message": "Game Is Over."}]

    def test_player_move_then_bot_reply(self) -> None:
        engine = StubEngine(["e7e5"])
        session, sent = _run(
            engine,
            {"cmd": "start", "arg": {"colour": "white"}},
            {"cmd": "makemove", "arg": {"move": "e2e4"}},
        )

        assert [message["message"] for message in sent] == ["Started Game.", "Played Move.", "Bot Move."]
        assert sent[1]["last_move"] == "e2e4"
        assert sent[1]["player_turn"] is False
        assert sent[2]["last_move"] == "e7e5"
        assert [move.uci() for move in session.board.move_stack] == ["e2e4", "e7e5"]
        # The engine searched the position after the player's move.
        assert engine.requests == [chess.Board("rnbqkbnr/pppppppp/8/8/4P3/8/PPPP1PPP/RNBQKBNR b KQkq - 0 1").fen()]

    def test_illegal_and_invalid_moves(self) -> None:
        _, sent = _run(
            StubEngine(),
            {"cmd": "start", "arg": {"colour": "white"}},
            {"cmd": "makemove", "arg": {"move": "e2e5"}},
            {"cmd": "makemove", "arg": {"move": "nonsense"}},
            {"cmd": "makemove", "arg": {}},
        )

        assert [message["message"] for message in sent[1:]] == [
            "Illegal Move.",
            "Invalid Move.",
            "Invalid Move.",
        ]

    def test_resign(self) -> None:
        session, sent = _run(
            StubEngine(),
            {"cmd": "start", "arg": {"colour": "white"}},
            {"cmd": "resign", "arg": {}},
            {"cmd": "resign", "arg": {}},
        )

        assert sent[1]["message"] == "Resigned."
        assert sent[1]["gameover"] is True
        assert sent[1]["losses"] == 1
        assert sent[2] == {"type": "error", "message": "Cannot Resign While Game Inactive."}
        assert session.losses == 1

    def test_undo_takes_back_both_plies(self) -> None:
        session, sent = _run(
            StubEngine(["e7e5"]),
            {"cmd": "start", "arg": {"colour": "white"}},
            {"cmd": "makemove", "arg": {"move": "e2e4"}},
            {"cmd": "undo", "arg": {}},
        )

        assert sent[-1]["message"] == "Undo."
        assert sent[-1]["position"] == chess.STARTING_FEN
        assert sent[-1]["last_move"] == ""
        assert sent[-1]["player_turn"] is True
        assert session.undos == 1

    def test_undo_needs_two_plies(self) -> None:
        _, sent = _run(
            StubEngine(),
            {"cmd": "start", "arg": {"colour": "white"}},
            {"cmd": "undo", "arg": {}},
        )

        assert sent[-1] == {"type": "error", "message": "Cannot Undo."}


class TestGameEnd:
    def test_bot_checkmate_counts_as_loss(self) -> None:
        # Fool's mate: 1.f3 e5 2.g4 Qh4#
        session, sent = _run(
            StubEngine(["e7e5", "d8h4"]),
            {"cmd": "start", "arg": {"colour": "white"}},
            {"cmd": "makemove", "arg": {"move": "f2f3"}},
            {"cmd": "makemove", "arg": {"move": "g2g4"}},
        )

        final = sent[-1]
        assert final["message"] == "Bot Move."
        assert final["gameover"] is True
        assert final["player_turn"] is False
        assert final["moves"] == []
        assert (final["wins"], final["losses"], final["draws"]) == (0, 1, 0)
        assert session.game_over

    def test_player_checkmate_needs_no_bot_move(self) -> None:
        # 1.e4 f6 2.d4 g5 3.Qh5#
        engine = StubEngine(["f7f6", "g7g5"])
        session, sent = _run(
            engine,
            {"cmd": "start", "arg": {"colour": "white"}},
            {"cmd": "makemove", "arg": {"move": "e2e4"}},
            {"cmd": "makemove", "arg": {"move": "d2d4"}},
            {"cmd": "makemove", "arg": {"move": "d1h5"}},
        )

        assert sent[-1]["message"] == "Played Move."
        assert sent[-1]["wins"] == 1
        assert len(engine.requests) == 2

    def test_new_game_after_game_over_keeps_score(self) -> None:
        session, sent = _run(
            StubEngine(),
            {"cmd": "start", "arg": {"colour": "white"}},
            {"cmd": "resign", "arg": {}},
            {"cmd": "start", "arg": {"colour": "white"}},
        )

        assert sent[-1]["message"] == "Started Game."
        assert sent[-1]["losses"] == 1
        assert not session.game_over


class TestBotFailures:
    def test_timeout_is_retried(self) -> None:
        engine = StubEngine(["e7e5"])
        engine.failures = [EngineTimeoutError("too slow")]

        session, sent = _run(
            engine,
            {"cmd": "start", "arg": {"colour": "white"}},
            {"cmd": "makemove", "arg": {"move": "e2e4"}},
        )

        assert sent[-1]["message"] == "Bot Move."
        assert sent[-1]["last_move"] == "e7e5"
        assert engine.restarts == 0
        assert len(engine.requests) == 2

    def test_stalled_engine_is_restarted_then_moves(self) -> None:
        engine = StubEngine(["e7e5"])
        engine.failures = [EngineStalledError("never acknowledged stop")]

        session, sent = _run(
            engine,
            {"cmd": "start", "arg": {"colour": "white"}},
            {"cmd": "makemove", "arg": {"move": "e2e4"}},
        )

        assert [message["message"] for message in sent] == ["Started Game.", "Played Move.", "Bot Move."]
        assert engine.restarts == 1
        assert [move.uci() for move in session.board.move_stack] == ["e2e4", "e7e5"]

    def test_persistent_failure_aborts_the_game(self) -> None:
        engine = StubEngine()
        engine.error = EngineTimeoutError("too slow")

        session, sent = _run(
            engine,
            {"cmd": "start", "arg": {"colour": "white"}},
            {"cmd": "makemove", "arg": {"move": "e2e4"}},
            {"cmd": "start", "arg": {"colour": "white"}},
        )

        assert sent[2] == {"type": "error", "message": "Bot failed to move."}
        assert sent[3]["message"] == "Game Aborted."
        assert sent[3]["gameover"] is True
        assert sent[3]["player_turn"] is False
        assert (sent[3]["wins"], sent[3]["losses"], sent[3]["draws"]) == (0, 0, 0)
        # A new game can be started straight away.
        assert sent[4]["message"] == "Started Game."
        assert engine.restarts == 0
        assert len(engine.requests) == BOT_MOVE_ATTEMPTS
        assert not session.game_over

    def test_transport_error_restarts_engine(self) -> None:
        engine = StubEngine()
        engine.error = TransportError("pipe closed")

        _, sent = _run(
            engine,
            {"cmd": "start", "arg": {"colour": "black"}},
        )

        assert sent[-2] == {"type": "error", "message": "Bot failed to move."}
        assert sent[-1]["message"] == "Game Aborted."
        assert engine.restarts == BOT_MOVE_ATTEMPTS

    def test_engine_that_ignores_stop_recovers_within_one_move(self, spawner: Spawner) -> None:
        searches = 0

        def respond(tokens: list[str]) -> list[str]:
            nonlocal searches
            if tokens == ["uci"]:
                return ["id name Scripted", "uciok"]
            if tokens[:1] == ["go"]:
                searches += 1
                # Only the very first search hangs, and "stop" is never answered.
                return [] if searches == 1 else ["bestmove e7e5"]
            return []

        spawner.respond = respond
        engine = EngineHandle.start("scripted-engine", spawn=spawner, init_timeout_ms=200, quiet=True)
        try:
            session, sent = _run(
                engine,
                {"cmd": "start", "arg": {"colour": "white"}},
                {"cmd": "makemove", "arg": {"move": "e2e4"}},
            )
        finally:
            engine.shutdown()

        assert [message["message"] for message in sent] == ["Started Game.", "Played Move.", "Bot Move."]
        assert sent[-1]["last_move"] == "e7e5"
        assert len(spawner.spawned) == 2
        assert not spawner.spawned[0].alive

    def test_bot_move_for_abandoned_game_is_dropped(self) -> None:
        engine = StubEngine(["e2e4"])
        engine.release = threading.Event()
        sent: list[dict[str, Any]] = []

        async def send(message: dict[str, Any]) -> None:
            sent.append(message)

        async def main() -> Session:
            session = Session(engine, send)
            await session.handle(json.dumps({"cmd": "start", "arg": {"colour": "black"}}))
            # Let the bot task reach the engine before resigning.
            while not engine.requests:
                await asyncio.sleep(0.01)
            await session.handle(json.dumps({"cmd": "resign", "arg": {}}))
            engine.release.set()
            await asyncio.gather(*session._tasks)
            return session

        session = asyncio.run(main())

        assert [message["message"] for message in sent] == ["Started Game.", "Resigned."]
        assert session.board.move_stack == []
