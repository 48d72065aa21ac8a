"""
Reconnect retry policy.

Purpose:
- Centralize the bounded-retry rule shared by the initial connect and
  the reconnect paths
- Let ConnectionManager make deterministic retry decisions

This module contains NO timers, NO async, NO side effects.
"""
from __future__ import annotations

from dataclasses import dataclass

from constants import MAX_CONNECT_ATTEMPTS, RECONNECT_DELAY_MS


@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounded linear retry policy.

    Semantics:
    - attempt is the number of failed connection attempts so far.
    - A retry is allowed while attempt < max_attempts.
    - The delay is fixed: no backoff, no jitter.
    - Exhaustion is terminal; the caller must exit rather than loop.
    """

    max_attempts: int = MAX_CONNECT_ATTEMPTS
    fixed_delay_ms: int = RECONNECT_DELAY_MS

    def __post_init__(self) -> None:
        if self.max_attempts < 0:
            raise ValueError("max_attempts must be >= 0")
        if self.fixed_delay_ms < 0:
            raise ValueError("fixed_delay_ms must be >= 0")

    def should_retry(self, attempt: int) -> bool:
        """Returns True if another attempt is allowed after `attempt` failures."""
        return attempt < self.max_attempts

    def delay_ms(self) -> int:
        """Delay before the next attempt, independent of the attempt count."""
        return self.fixed_delay_ms

    def delay_s(self) -> float:
        """delay_ms() in seconds, for loop.call_later."""
        return self.fixed_delay_ms / 1000.0
