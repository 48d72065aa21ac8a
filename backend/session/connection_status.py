"""
Connection lifecycle state for the single chat session.

connection_state: IDLE | CONNECTING | OPEN | CLOSED | TERMINATED

This is pure data. Only ConnectionManager performs transitions.
"""
from enum import Enum


class ConnectionState(str, Enum):
    """
    Lifecycle state of the one logical session owned by ConnectionManager.

    CONNECTING doubles as the reentrancy guard: a connect request seen in
    this state collapses into the attempt already in flight.
    """
    IDLE = "IDLE"                # Process started, nothing attempted yet
    CONNECTING = "CONNECTING"    # Transport built, waiting for open/close
    OPEN = "OPEN"                # Transport reported connection == open
    CLOSED = "CLOSED"            # Transport closed, reconnect may be pending
    TERMINATED = "TERMINATED"    # Final; process exit has been requested


# Allowed transitions, keyed by source state
TRANSITIONS: dict[ConnectionState, frozenset[ConnectionState]] = {
    ConnectionState.IDLE: frozenset({ConnectionState.CONNECTING}),
    ConnectionState.CONNECTING: frozenset({
        ConnectionState.OPEN,
        ConnectionState.CLOSED,
    }),
    ConnectionState.OPEN: frozenset({ConnectionState.CLOSED}),
    ConnectionState.CLOSED: frozenset({
        ConnectionState.CONNECTING,
        ConnectionState.TERMINATED,
    }),
    ConnectionState.TERMINATED: frozenset(),
}


class InvalidTransition(RuntimeError):
    """Raised when a transition is not allowed by TRANSITIONS."""

    def __init__(self, current: ConnectionState, target: ConnectionState) -> None:
        super().__init__(f"invalid transition {current.value} -> {target.value}")
        self.current = current
        self.target = target


def can_transition(current: ConnectionState, target: ConnectionState) -> bool:
    """Return True if `current -> target` is a legal transition."""
    return target in TRANSITIONS[current]
