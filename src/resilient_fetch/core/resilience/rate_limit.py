"""Fixed-window rate limiter policy.

One ``RateLimiterState`` is shared by every call through a built client. The
check-and-decrement has no suspension point, so concurrent callers race for the
last unit of quota; losers get a ``RateLimitError`` carrying the time left in
the window, which the companion retry policy sleeps out.
"""

from __future__ import annotations

import time
from typing import Any, Optional

from resilient_fetch.core.errors import RateLimitError
from resilient_fetch.core.resilience.models import (
    CallNext,
    Clock,
    Policy,
    RateLimiterState,
    RateLimitOptions,
)


def new_rate_limiter_state(options: RateLimitOptions, clock: Optional[Clock] = None) -> RateLimiterState:
    """Create a full-quota state whose window starts now."""
    now = (clock or time.monotonic)()
    return RateLimiterState(remaining=options.limit_for_period, period_start=now)


class RateLimitPolicy(Policy):
    """Admit at most ``limit_for_period`` calls per ``limit_period`` seconds.

    Args:
        options: Limiter configuration.
        state: Shared window state, mutated in place.
        clock: Injectable monotonic clock.
    """

    def __init__(
        self,
        options: RateLimitOptions,
        state: RateLimiterState,
        *,
        clock: Optional[Clock] = None,
    ):
        self.options = options
        self.name = options.name
        self.state = state
        self._clock = clock or time.monotonic

    def remaining_time(self, now: Optional[float] = None) -> float:
        """Seconds until the current window ends."""
        if now is None:
            now = self._clock()
        return max(0.0, self.state.period_start + self.options.limit_period - now)

    def acquire(self) -> None:
        """Take one unit of quota or raise ``RateLimitError``."""
        now = self._clock()
        state = self.state
        if now - state.period_start >= self.options.limit_period:
            state.period_start = now
            state.remaining = self.options.limit_for_period

        if state.remaining > 0:
            state.remaining -= 1
            return

        remaining_time = self.remaining_time(now)
        raise RateLimitError(
            f"Rate limit '{self.name}' exceeded: {self.options.limit_for_period} calls "
            f"per {self.options.limit_period:g}s",
            remaining_time=remaining_time,
            limit_for_period=self.options.limit_for_period,
            limit_period=self.options.limit_period,
            limiter_name=self.name,
        )

    async def execute(self, descriptor, call_next: CallNext) -> Any:
        self.acquire()
        return await call_next(descriptor)
