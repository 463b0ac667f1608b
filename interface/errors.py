"""
Exception hierarchy for the engine client.

Every failure the client reports derives from EngineError, so callers that
only care about "the bot could not produce a move" can catch one type while
callers that want to recover (restart on TransportError, which includes
EngineStalledError; retry on InitTimeoutError) can be specific.

None of these trigger an automatic restart. Restarting the engine is always
an explicit call made by whoever owns the handle.
"""


class EngineError(Exception):
    """Base class for all engine-client failures."""


class SpawnFailedError(EngineError):
    """The engine process could not be created (missing or not executable)."""


class InitTimeoutError(EngineError):
    """The engine did not answer the handshake with "uciok" in time."""


class EngineTimeoutError(EngineError):
    """A search did not produce "bestmove" before its deadline."""


class ProtocolError(EngineError):
    """The engine sent a response that could not be interpreted."""


class TransportError(EngineError):
    """Reading from or writing to the engine process failed.

    Usually means the process has exited. The handle must be restarted
    before it can serve another request.
    """


class EngineStalledError(TransportError):
    """The engine stopped answering: an abandoned search was never settled.

    Raised before a new search is sent, so nothing else is left pending on
    the process. Like any TransportError it means the handle must be
    restarted.
    """
