"""
FastAPI web application: browser chess against an external UCI engine.

Exposes a websocket endpoint (/socket/) that carries one game session per
connection, and serves the browser client from static files.

Architecture notes:
- One engine per app: the EngineHandle is created in the lifespan (or passed
  in by the caller) and stored on app.state, so every session shares the
  same process and its requests are serialized by the handle.
- Blocking engine work (start, shutdown, searches) runs in the thread pool;
  the event loop only ever waits on it.
- Static files mounted LAST: route registration is first-match, so the
  websocket and root routes must be registered before the StaticFiles mount.
"""

import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Sequence

from fastapi import FastAPI, WebSocket
from fastapi.responses import FileResponse
from fastapi.staticfiles import StaticFiles
from starlette.concurrency import run_in_threadpool

from interface.constants import DEFAULT_MOVETIME_MS
from interface.protocol import SearchBudget
from interface.uci import EngineHandle
from web.session import Session

# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------

logging.basicConfig(level=logging.INFO)
_log = logging.getLogger(__name__)

# Absolute path resolved at import time — immune to working-directory changes.
_STATIC_DIR = Path(__file__).parent / "static"

# Environment variable naming the engine executable when no command is given.
BOT_ENV_VAR = "CHESS_BOT"


def create_app(
    engine: EngineHandle | None = None,
    *,
    bot_command: str | Sequence[str] | None = None,
    movetime_ms: int = DEFAULT_MOVETIME_MS,
    quiet: bool = False,
    engine_options: dict[str, Any] | None = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        engine:      An already-started handle to use. The app does not shut
                     down a handle it did not start.
        bot_command: Engine executable (or argv) to start at startup when no
                     engine is given. Falls back to $CHESS_BOT.
        movetime_ms: Thinking time for each bot move.
        quiet:       Disable logging of the engine conversation.
        engine_options: Extra EngineHandle keyword options (deadlines).

    Returns:
        The FastAPI app.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owned: EngineHandle | None = None
        if app.state.engine is None:
            command = bot_command or os.environ.get(BOT_ENV_VAR)
            if not command:
                raise RuntimeError(f"no engine configured: pass a bot path or set ${BOT_ENV_VAR}")
            owned = await run_in_threadpool(EngineHandle.start, command, quiet=quiet, **(engine_options or {}))
            app.state.engine = owned
        try:
            yield
        finally:
            if owned is not None:
                await run_in_threadpool(owned.shutdown)
                app.state.engine = None

    app = FastAPI(title="Chess GUI", version="1.0.0", lifespan=lifespan)
    app.state.engine = engine
    app.state.budget = SearchBudget(movetime_ms=movetime_ms)

    # -----------------------------------------------------------------------
    # Routes (registered BEFORE StaticFiles mount)
    # -----------------------------------------------------------------------

    @app.websocket("/socket/")
    async def socket(websocket: WebSocket) -> None:
        """Run one game session for the lifetime of the connection."""
        await websocket.accept()
        _log.info("connected!")

        session = Session(websocket.app.state.engine, websocket.send_json, budget=websocket.app.state.budget)
        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    _log.info("disconnected (code %s)", message.get("code"))
                    break
                # Binary frames carry nothing the session understands.
                text = message.get("text")
                if text is not None:
                    await session.handle(text)
        finally:
            await session.close()

    @app.get("/", include_in_schema=False)
    def serve_root() -> FileResponse:
        """Serve the chessboard UI."""
        return FileResponse(_STATIC_DIR / "index.html")

    # -----------------------------------------------------------------------
    # Static file mount — MUST be last (catch-all for /static/* assets)
    # -----------------------------------------------------------------------

    app.mount("/static", StaticFiles(directory=_STATIC_DIR), name="static")
    return app


app = create_app()
