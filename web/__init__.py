"""
Web application package: play against a UCI engine in the browser.

Provides a FastAPI app with one websocket game session per connection and a
static chessboard frontend. Run with `python -m web <engine path>`.
"""
