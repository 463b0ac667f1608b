"""
UCI client: drives an external chess engine on behalf of a game session.

The engine is a separate program that speaks UCI over stdin/stdout. This
module starts it, performs the handshake, asks it for moves under a
deadline, and shuts it down. It is the only code that talks to the engine;
the session layer sees a handle with four operations:

    EngineHandle.start(command)      spawn + handshake
    handle.request_move(board, ...)  one bounded search, returns a chess.Move
    handle.restart()                 kill and spawn again, in place
    handle.shutdown()                "quit", then kill after a grace period

Threading model:
    Several callers may share one handle (a bot move still settling while a
    new one is requested). request_move() holds the handle exclusively for
    the whole exchange: callers wait on a threading.Condition until the busy
    flag clears, and the flag is cleared and waiters notified on every exit
    path. At most one search is ever in flight against the process.

Deadlines:
    Every read goes through EngineProcess.read_line(), which waits on a queue
    with a timeout, so a silent or hung engine can delay a caller by at most
    the configured deadline.

Stale responses:
    A search that times out is sent "stop" and abandoned; its "bestmove" may
    still arrive later. The handle counts abandoned searches, and the next
    request first consumes one "bestmove" per abandoned search before sending
    anything, so a late answer is never mistaken for the new one. If the
    engine never settles them, requests fail with EngineStalledError until
    the handle is restarted.
"""

import logging
import threading
import time
from contextlib import contextmanager
from typing import Callable, Iterable, Iterator, Sequence

import chess

from interface.constants import (
    DEADLINE_SLACK_MS,
    DEFAULT_MOVETIME_MS,
    INIT_TIMEOUT_MS,
    MAX_COMMAND_BYTES,
    QUIT_GRACE_MS,
    UNBOUNDED_SEARCH_TIMEOUT_MS,
)
from interface.errors import (
    EngineError,
    EngineStalledError,
    EngineTimeoutError,
    InitTimeoutError,
    ProtocolError,
    TransportError,
)
from interface.position import describe
from interface.protocol import (
    ClockState,
    SearchBudget,
    decode,
    encode,
    go_command,
    position_command,
)
from interface.transport import EngineProcess

_log = logging.getLogger(__name__)

_DEFAULT_NAME = "BOT"


class EngineHandle:
    """
    One external engine process and the state of the conversation with it.

    Attributes:
        command:  Executable path or argv used to (re)start the engine.
        name:     Engine name from "id name", or "BOT" until the handshake.
        author:   Engine author from "id author".
        options:  Names of the options the engine declared during handshake.
        quiet:    When False, every line sent and received is logged.
    """

    def __init__(
        self,
        command: str | Sequence[str],
        *,
        quiet: bool = False,
        init_timeout_ms: int = INIT_TIMEOUT_MS,
        quit_grace_ms: int = QUIT_GRACE_MS,
        default_movetime_ms: int = DEFAULT_MOVETIME_MS,
        deadline_slack_ms: int = DEADLINE_SLACK_MS,
        unbounded_timeout_ms: int = UNBOUNDED_SEARCH_TIMEOUT_MS,
        spawn: Callable[[str | Sequence[str]], EngineProcess] = EngineProcess.spawn,
    ) -> None:
        self.command = command
        self.quiet = quiet
        self.init_timeout_ms = init_timeout_ms
        self.quit_grace_ms = quit_grace_ms
        self.default_movetime_ms = default_movetime_ms
        self.deadline_slack_ms = deadline_slack_ms
        self.unbounded_timeout_ms = unbounded_timeout_ms
        self._spawn = spawn

        self.name: str = _DEFAULT_NAME
        self.author: str = ""
        self.options: list[str] = []

        self._transport: EngineProcess | None = None
        self._cond = threading.Condition()
        self._lifecycle = threading.Lock()
        self._busy = False
        self._abandoned = 0

    @classmethod
    def start(cls, command: str | Sequence[str], **kwargs) -> "EngineHandle":
        """
        Spawn the engine and complete the handshake.

        Args:
            command:  Executable path or argv sequence.
            **kwargs: Keyword options accepted by EngineHandle().

        Returns:
            A handle ready for request_move().

        Raises:
            SpawnFailedError: The process could not be created.
            InitTimeoutError: No "uciok" within the init deadline.
            TransportError:   The engine exited during the handshake.
        """
        handle = cls(command, **kwargs)
        handle._launch()
        return handle

    def __enter__(self) -> "EngineHandle":
        return self

    def __exit__(self, *exc_info) -> None:
        self.shutdown()

    # -----------------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------------

    @property
    def running(self) -> bool:
        """True when the handshake has completed and the process is alive."""
        return self._transport is not None and self._transport.alive

    @property
    def busy(self) -> bool:
        """True while a request holds the handle."""
        with self._cond:
            return self._busy

    def restart(self) -> None:
        """
        Terminate the current process (if any) and start a fresh one.

        Identification and stale-search bookkeeping from the old process are
        discarded. A request still in flight on the old process fails with
        TransportError once its pipe closes and then releases the handle.

        Restarts and shutdowns are serialized. Callers that saw the same
        process fail and restart together get one new process: whoever
        arrives second finds it already running and returns.

        Raises:
            Same as start().
        """
        seen = self._transport
        with self._lifecycle:
            if self._transport is not seen and self.running:
                _log.info("engine %s was already restarted", self.name)
                return
            _log.info("restarting engine %s", self.name)
            self._close()
            self._launch()

    def shutdown(self) -> None:
        """
        Ask the engine to quit and make sure the process is gone.

        Waits at most quit_grace_ms for a voluntary exit before killing it.
        Safe to call more than once.
        """
        with self._lifecycle:
            self._close()

    def stop(self) -> None:
        """Ask the engine to end its current search early."""
        self._send(self._require_transport(), "stop")

    def _launch(self) -> None:
        self.name = _DEFAULT_NAME
        self.author = ""
        self.options = []
        self._abandoned = 0

        transport = self._spawn(self.command)
        try:
            self._handshake(transport)
        except EngineError:
            # No half-initialized handle survives a failed handshake.
            transport.terminate(0)
            raise
        self._transport = transport
        _log.info("engine ready: %s by %s", self.name, self.author or "unknown")

    def _handshake(self, transport: EngineProcess) -> None:
        """
        Send "uci" and read until "uciok", recording id and option lines.

        Raises:
            InitTimeoutError: The deadline passed before "uciok".
            TransportError:   The engine's output ended first.
        """
        self._send(transport, "uci")
        deadline = time.monotonic() + self.init_timeout_ms / 1000

        while True:
            tokens = self._receive(transport, deadline)
            if tokens is None:
                _log.warning("engine failed to initialize in %d ms", self.init_timeout_ms)
                raise InitTimeoutError(
                    f"engine did not send uciok within {self.init_timeout_ms} ms"
                )
            if not tokens:
                continue

            if tokens[0] == "uciok":
                return
            if tokens[0] == "id" and len(tokens) >= 2:
                if tokens[1] == "name":
                    self.name = " ".join(tokens[2:])
                elif tokens[1] == "author":
                    self.author = " ".join(tokens[2:])
            elif tokens[0] == "option" and len(tokens) >= 3 and tokens[1] == "name":
                # Option names may contain spaces; they end at "type".
                end = tokens.index("type") if "type" in tokens else len(tokens)
                self.options.append(" ".join(tokens[2:end]))

    def _close(self) -> None:
        transport, self._transport = self._transport, None
        if transport is None:
            return
        if transport.alive:
            try:
                self._send(transport, "quit")
            except TransportError as exc:
                _log.warning("could not send quit to engine: %s", exc)
        transport.terminate(self.quit_grace_ms / 1000)

    # -----------------------------------------------------------------------
    # Search
    # -----------------------------------------------------------------------

    def request_move(
        self,
        board: chess.Board,
        budget: SearchBudget | None = None,
        clock: ClockState | None = None,
        *,
        ponder: bool = False,
        searchmoves: Iterable[chess.Move | str] | None = None,
        timeout_ms: int | None = None,
    ) -> chess.Move:
        """
        Ask the engine for its best move in the given position.

        Blocks until the handle is free, sends "position" and "go", then
        reads until "bestmove" or the deadline. Progress lines ("info") and
        anything unrecognised are skipped.

        Args:
            board:       Position to search. Temporarily modified while the
                         position command is built, always restored.
            budget:      Stopping conditions; None means the default movetime.
            clock:       Clock information to pass through unchanged.
            ponder:      Start the search in ponder mode.
            searchmoves: Restrict the search to these moves.
            timeout_ms:  Override the deadline derived from the budget.

        Returns:
            The engine's move, parsed against board.

        Raises:
            EngineTimeoutError: No "bestmove" before the deadline ("stop" has
                                been sent).
            EngineStalledError: An earlier abandoned search was never
                                settled; no search was sent.
            ProtocolError:      "bestmove" was malformed or not legal here.
            TransportError:     The engine is not running or its pipe broke.
        """
        with self._exclusive():
            transport = self._require_transport()
            self._settle_abandoned(transport)

            descriptor = describe(board)
            self._send(transport, *position_command(descriptor.fen, descriptor.moves))
            self._send(
                transport,
                *go_command(
                    budget,
                    clock,
                    ponder=ponder,
                    searchmoves=searchmoves,
                    default_movetime_ms=self.default_movetime_ms,
                ),
            )

            limit_ms = self._search_timeout_ms(budget, timeout_ms)
            deadline = time.monotonic() + limit_ms / 1000

            while True:
                tokens = self._receive(transport, deadline)
                if tokens is None:
                    self._abandoned += 1
                    self._send(transport, "stop")
                    raise EngineTimeoutError(f"engine gave no bestmove within {limit_ms} ms")
                if tokens and tokens[0] == "bestmove":
                    return self._parse_bestmove(board, tokens)

    def _search_timeout_ms(self, budget: SearchBudget | None, timeout_ms: int | None) -> int:
        if timeout_ms is not None:
            return timeout_ms
        if budget is None:
            return self.default_movetime_ms + self.deadline_slack_ms
        if budget.movetime_ms is not None:
            return budget.movetime_ms + self.deadline_slack_ms
        return self.unbounded_timeout_ms

    def _parse_bestmove(self, board: chess.Board, tokens: list[str]) -> chess.Move:
        if len(tokens) < 2:
            raise ProtocolError("bestmove line carries no move")
        try:
            return board.parse_uci(tokens[1])
        except ValueError as exc:
            raise ProtocolError(f"engine played unusable move {tokens[1]!r}: {exc}") from exc

    def _settle_abandoned(self, transport: EngineProcess) -> None:
        """
        Discard leftovers from earlier requests before a new one starts.

        Lines already queued are dropped; each "bestmove" among them answers
        one abandoned search. Answers still owed are waited for, bounded by
        the init deadline; EngineStalledError if they never come.
        """
        for line in transport.drain():
            self._mirror_received(line)
            if decode(line)[:1] == ["bestmove"] and self._abandoned:
                self._abandoned -= 1

        if not self._abandoned:
            return

        deadline = time.monotonic() + self.init_timeout_ms / 1000
        while self._abandoned:
            tokens = self._receive(transport, deadline)
            if tokens is None:
                _log.warning("engine %s never acknowledged stop; it needs a restart", self.name)
                raise EngineStalledError("engine never acknowledged stop of an earlier search")
            if tokens and tokens[0] == "bestmove":
                self._abandoned -= 1

    # -----------------------------------------------------------------------
    # Internal helpers
    # -----------------------------------------------------------------------

    @contextmanager
    def _exclusive(self) -> Iterator[None]:
        with self._cond:
            while self._busy:
                self._cond.wait()
            self._busy = True
        try:
            yield
        finally:
            with self._cond:
                self._busy = False
                self._cond.notify_all()

    def _require_transport(self) -> EngineProcess:
        transport = self._transport
        if transport is None:
            raise TransportError("engine is not running")
        return transport

    def _send(self, transport: EngineProcess, *tokens: str) -> None:
        line = encode(*tokens)
        if len(line.encode()) > MAX_COMMAND_BYTES:
            _log.warning("command of %d bytes exceeds %d", len(line.encode()), MAX_COMMAND_BYTES)
        if not self.quiet:
            _log.info("[GUI] %r", line)
        transport.write_line(line)

    def _receive(self, transport: EngineProcess, deadline: float) -> list[str] | None:
        """Next line as tokens, or None once the deadline has passed."""
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            return None
        line = transport.read_line(remaining)
        if line is None:
            return None
        self._mirror_received(line)
        return decode(line)

    def _mirror_received(self, line: str) -> None:
        if not self.quiet:
            _log.info("[%s] %r", self.name, line)
