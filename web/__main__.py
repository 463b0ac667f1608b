"""
Command-line entry point: start the engine and serve the web app.

Usage: python -m web <engine path> [--host HOST] [--port PORT]
                                   [--movetime MS] [--quiet]
"""

import argparse

import uvicorn

from interface.constants import DEFAULT_MOVETIME_MS
from web.app import create_app


def main() -> None:
    parser = argparse.ArgumentParser(prog="python -m web", description=__doc__.splitlines()[1])
    parser.add_argument("bot", help="path of the UCI engine executable")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8080)
    parser.add_argument(
        "--movetime",
        type=int,
        default=DEFAULT_MOVETIME_MS,
        help="engine thinking time per move in milliseconds",
    )
    parser.add_argument("--quiet", action="store_true", help="do not log the engine conversation")
    args = parser.parse_args()

    app = create_app(bot_command=args.bot, movetime_ms=args.movetime, quiet=args.quiet)
    uvicorn.run(app, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
