"""Retry policy with constant, exponential or jittered backoff.

The policy asks its rejection predicate what to do after every failed attempt:
give up (``False``), back off by the computed interval (``True``), or wait an
explicit number of seconds.
"""

from __future__ import annotations

import asyncio
import math
import random
import time
from typing import Any, Optional, Union

from resilient_fetch.core.errors import HTTPResponseError, RetryError
from resilient_fetch.core.resilience.config import default_retry_rejection
from resilient_fetch.core.resilience.models import (
    Attempt,
    CallNext,
    Clock,
    Policy,
    RetryMode,
    RetryOptions,
    SleepFunc,
)


def compute_backoff(
    options: RetryOptions,
    attempt: int,
    rng: Optional[random.Random] = None,
) -> float:
    """Backoff before retrying after ``attempt`` (1-based) failed.

    Args:
        options: Retry configuration.
        attempt: Index of the attempt that just failed.
        rng: Random source used by JITTER mode.

    Returns:
        Delay in seconds, never negative.
    """
    if options.mode is RetryMode.CONSTANT:
        return options.initial_interval

    delay = min(
        options.max_interval,
        options.initial_interval * (options.factor ** (attempt - 1)),
    )
    if options.mode is RetryMode.JITTER and options.jitter_adjustment > 0:
        _rng = rng or random.Random()
        spread = delay * options.jitter_adjustment
        delay = _rng.uniform(delay - spread, delay + spread)
    return max(0.0, delay)


def resolve_delay(
    decision: Union[bool, float, None],
    options: RetryOptions,
    attempt: int,
    rng: Optional[random.Random] = None,
) -> Optional[float]:
    """Turn a predicate decision into a delay, or None to give up.

    ``bool`` is checked before numbers since ``True``/``False`` are ints. A
    non-finite number falls back to the computed backoff.
    """
    if decision is None or decision is False:
        return None
    if decision is True:
        return compute_backoff(options, attempt, rng)
    if isinstance(decision, (int, float)):
        if not math.isfinite(decision):
            return compute_backoff(options, attempt, rng)
        return max(0.0, float(decision))
    raise TypeError(
        f"Retry predicate for '{options.name}' returned {type(decision).__name__}; "
        "expected bool or a number of seconds"
    )


class RetryPolicy(Policy):
    """Re-run the inner chain while the rejection predicate allows it.

    Args:
        options: Retry configuration.
        wrap_exhausted: Convert an exhausted ``HTTPResponseError`` into
            ``RetryError``. Only the outermost per-call retry sets this.
        rng: Injectable Random instance for deterministic jitter.
        sleep_func: Injectable sleep function for time control in tests.
        clock: Injectable monotonic clock used to time attempts.
    """

    def __init__(
        self,
        options: RetryOptions,
        *,
        wrap_exhausted: bool = False,
        rng: Optional[random.Random] = None,
        sleep_func: Optional[SleepFunc] = None,
        clock: Optional[Clock] = None,
    ):
        self.options = options
        self.name = options.name
        self.wrap_exhausted = wrap_exhausted
        self._rng = rng or random.Random()
        self._sleep = sleep_func or asyncio.sleep
        self._clock = clock or time.monotonic

    async def execute(self, descriptor, call_next: CallNext) -> Any:
        predicate = self.options.on_rejection or default_retry_rejection
        history: list[Attempt] = []

        for index in range(1, self.options.attempts + 1):
            started_at = self._clock()
            try:
                return await call_next(descriptor)
            except Exception as exc:
                history.append(
                    Attempt(
                        index=index,
                        started_at=started_at,
                        duration=self._clock() - started_at,
                        error=exc,
                    )
                )
                delay = resolve_delay(predicate(exc, index), self.options, index, self._rng)
                if delay is None:
                    raise
                if index >= self.options.attempts:
                    if self.wrap_exhausted and isinstance(exc, HTTPResponseError):
                        raise RetryError(exc.response, history) from exc
                    raise

            await self._sleep(delay)

        raise RuntimeError(f"{self.name}: unexpected retry state")
