"""
Transport: the engine child process and its stdin/stdout pipes.

EngineProcess is the only object that touches the process and its streams.
Everything above it talks in whole lines through write_line()/read_line().

Threading model:
    A daemon reader thread copies every stdout line into a queue.Queue and
    pushes an end-of-stream sentinel when the pipe closes. Callers never
    block on the pipe itself, only on the queue, with a timeout. When a
    deadline passes the read is abandoned and any line that arrives later
    stays in the queue for the next reader (who may drain() it). A blocking
    readline() raced against a timer would keep the caller stuck on a
    stalled engine, which is exactly what this layout rules out.
"""

import logging
import queue
import subprocess
import threading
from typing import Sequence

from interface.errors import SpawnFailedError, TransportError

_log = logging.getLogger(__name__)

# Queued by the reader thread when stdout reaches end of file.
_EOF = object()


class EngineProcess:
    """
    A running engine process with line-oriented, deadline-bounded I/O.

    Attributes:
        proc:  The subprocess.Popen object. Owned exclusively by this object.
        lines: Queue of raw output lines filled by the reader thread.
    """

    def __init__(self, proc: subprocess.Popen) -> None:
        self.proc = proc
        self.lines: queue.Queue = queue.Queue()
        self._closed = False
        self._reader = threading.Thread(target=self._read_stdout, daemon=True)
        self._reader.start()

    @classmethod
    def spawn(cls, command: str | Sequence[str]) -> "EngineProcess":
        """
        Launch the engine executable with piped stdin and stdout.

        Args:
            command: Path of the executable, or a full argv sequence
                     (e.g. [sys.executable, "engine.py"]).

        Returns:
            A started EngineProcess.

        Raises:
            SpawnFailedError: The process could not be created.
        """
        argv = [command] if isinstance(command, str) else list(command)
        try:
            proc = subprocess.Popen(
                argv,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.DEVNULL,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
            )
        except OSError as exc:
            raise SpawnFailedError(f"could not start engine {argv[0]!r}: {exc}") from exc
        return cls(proc)

    # -----------------------------------------------------------------------
    # I/O
    # -----------------------------------------------------------------------

    def write_line(self, line: str) -> None:
        """
        Write one newline-terminated line to the engine and flush it.

        Raises:
            TransportError: The pipe is closed (the process has exited).
        """
        if self.proc.stdin is None:
            raise TransportError("engine stdin is not available")
        try:
            self.proc.stdin.write(line)
            self.proc.stdin.flush()
        except (OSError, ValueError) as exc:
            raise TransportError(f"failed to write to engine: {exc}") from exc

    def read_line(self, timeout: float | None) -> str | None:
        """
        Wait up to timeout seconds for the next output line.

        Args:
            timeout: Seconds to wait; None waits indefinitely. Zero or
                     negative values only return an already-queued line.

        Returns:
            The line without its terminator, or None if the timeout passed.

        Raises:
            TransportError: The engine's output has ended.
        """
        try:
            if timeout is not None and timeout <= 0:
                item = self.lines.get_nowait()
            else:
                item = self.lines.get(timeout=timeout)
        except queue.Empty:
            return None

        if item is _EOF:
            # Leave the marker for any later reader.
            self.lines.put(_EOF)
            raise TransportError("engine closed its output stream")
        return item.rstrip("\r\n")

    def drain(self) -> list[str]:
        """Remove and return every line already queued, without waiting."""
        drained = []
        while True:
            try:
                item = self.lines.get_nowait()
            except queue.Empty:
                return drained
            if item is _EOF:
                self.lines.put(_EOF)
                return drained
            drained.append(item.rstrip("\r\n"))

    # -----------------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------------

    @property
    def alive(self) -> bool:
        """True while the process has not exited."""
        return self.proc.poll() is None

    def terminate(self, grace: float) -> None:
        """
        Wait up to grace seconds for the process to exit, then kill it.

        The caller is expected to have sent "quit" first. Never blocks for
        longer than grace plus the time the OS takes to reap a killed child.
        """
        if self._closed:
            return
        self._closed = True
        try:
            self.proc.wait(timeout=grace)
        except subprocess.TimeoutExpired:
            _log.warning("engine pid %d did not exit in %.3fs, killing", self.proc.pid, grace)
            self.proc.kill()
            self.proc.wait()
        finally:
            if self.proc.stdin is not None:
                try:
                    self.proc.stdin.close()
                except OSError:
                    pass

    def _read_stdout(self) -> None:
        """Reader thread body: copy stdout lines into the queue until EOF."""
        stdout = self.proc.stdout
        try:
            if stdout is not None:
                for line in stdout:
                    self.lines.put(line)
        except (OSError, ValueError) as exc:
            _log.debug("engine output reader stopped: %s", exc)
        finally:
            self.lines.put(_EOF)
