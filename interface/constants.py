"""
Engine-client constants: deadlines, default search budget, and size limits.

Every timing value used when talking to an external engine lives here so the
lifecycle and search code never hard-code a magic number. All durations are
in milliseconds, matching the units of the UCI protocol itself; code that
needs seconds (queue timeouts, process waits) converts at the call site.
"""

# ---------------------------------------------------------------------------
# Process lifecycle
# ---------------------------------------------------------------------------
# The handshake ("uci" -> "uciok") must complete within INIT_TIMEOUT_MS or the
# engine is considered broken. QUIT_GRACE_MS is how long a "quit" command is
# given to end the process before it is killed.

INIT_TIMEOUT_MS: int = 500
QUIT_GRACE_MS: int = 500

# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------
# A request without a budget searches for DEFAULT_MOVETIME_MS. The caller
# waits DEADLINE_SLACK_MS beyond the requested movetime for the "bestmove"
# line before sending "stop" (100 + 10 = 110 ms by default).
#
# Budgets with no wall-clock limit (depth, nodes, mate or "infinite") still
# need a deadline; UNBOUNDED_SEARCH_TIMEOUT_MS is used unless the caller
# passes one explicitly.

DEFAULT_MOVETIME_MS: int = 100
DEADLINE_SLACK_MS: int = 10
UNBOUNDED_SEARCH_TIMEOUT_MS: int = 5_000

# ---------------------------------------------------------------------------
# Wire format
# ---------------------------------------------------------------------------
# Some engines read commands into a fixed 1024-byte buffer. The position
# synchronizer keeps "position" commands short; anything longer is still
# sent but logged as a warning.

MAX_COMMAND_BYTES: int = 1024
