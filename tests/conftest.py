"""Shared pytest fixtures used across the test suite."""

from __future__ import annotations

import sys
from collections.abc import Callable, Iterator
from pathlib import Path

import pytest

from interface.uci import EngineHandle

from engine_doubles import Spawner

FAKE_ENGINE = Path(__file__).parent / "fake_engine.py"


@pytest.fixture
def spawner() -> Spawner:
    return Spawner()


@pytest.fixture
def handle(spawner: Spawner) -> Iterator[EngineHandle]:
    """A started handle talking to a ScriptedTransport."""
    engine = EngineHandle.start("scripted-engine", spawn=spawner, init_timeout_ms=200)
    yield engine
    engine.shutdown()


@pytest.fixture
def fake_engine_command() -> Callable[..., list[str]]:
    """Build the argv that runs tests/fake_engine.py in a given mode."""

    def build(mode: str = "normal", bestmove: str | None = None, log: Path | None = None) -> list[str]:
        argv = [sys.executable, str(FAKE_ENGINE), "--mode", mode]
        if bestmove is not None:
            argv += ["--bestmove", bestmove]
        if log is not None:
            argv += ["--log", str(log)]
        return argv

    return build
