"""
Interface package: the client side of the UCI protocol.

Drives an external chess engine over its stdin/stdout on behalf of a game
session.

Modules:
    constants — Deadlines, default search budget and wire-size limit
    errors    — EngineError and its subclasses
    protocol  — Line codec, SearchBudget/ClockState, command builders
    position  — Board -> "base FEN + reversible tail" descriptor
    transport — EngineProcess: the child process and bounded line reads
    uci       — EngineHandle: handshake, search requests, restart, shutdown
"""
