"""Reconnection backoff policy."""

from __future__ import annotations

import dataclasses

from pyvtrack._constants import (
    MAX_RECONNECT_DELAY,
    MAX_RECONNECT_RETRIES,
    MIN_RECONNECT_DELAY,
    MIN_UPTIME,
    RECONNECT_GROW_FACTOR,
)


@dataclasses.dataclass(frozen=True)
class ReconnectPolicy:
    """Exponential backoff used between WebSocket connection attempts.

    Parameters
    ----------
    min_delay : float
        Delay in seconds before the first retry.
    grow_factor : float
        Multiplier applied to the delay for every further retry.
    max_delay : float
        Upper bound for a single delay, in seconds.
    max_retries : int
        Retries allowed after the initial attempt before giving up.
    min_uptime : float
        Seconds a connection must stay open before the retry counter
        resets. Shorter-lived connections count against *max_retries*.
    """

    min_delay: float = MIN_RECONNECT_DELAY
    grow_factor: float = RECONNECT_GROW_FACTOR
    max_delay: float = MAX_RECONNECT_DELAY
    max_retries: int = MAX_RECONNECT_RETRIES
    min_uptime: float = MIN_UPTIME

    def delay_for(self, retry: int) -> float:
        """Seconds to wait before the *retry*-th retry (1-based).

        ``retry <= 0`` is the initial attempt and is not delayed.
        With the defaults the sequence is 1.0, 1.3, 1.69 seconds.
        """
        if retry <= 0:
            return 0.0
        delay = self.min_delay * (self.grow_factor ** (retry - 1))
        return min(delay, self.max_delay)

    def exhausted(self, retry: int) -> bool:
        """Whether *retry* retries already used up the budget."""
        return retry >= self.max_retries
