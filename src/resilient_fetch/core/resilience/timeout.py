"""Timeout policy.

Races the inner chain against a deadline. When the deadline wins the inner
awaitable is cancelled and any late result is discarded.
"""

from __future__ import annotations

import asyncio
from typing import Any

from resilient_fetch.core.errors import TimeoutException
from resilient_fetch.core.resilience.models import CallNext, Policy, TimeoutOptions


class TimeoutPolicy(Policy):
    """Raise ``TimeoutException`` when the inner chain outlives ``options.timeout``."""

    def __init__(self, options: TimeoutOptions):
        self.options = options
        self.name = options.name

    async def execute(self, descriptor, call_next: CallNext) -> Any:
        timeout = self.options.timeout
        try:
            return await asyncio.wait_for(call_next(descriptor), timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise TimeoutException(
                f"{self.name}: operation timed out after {timeout:g}s",
                timeout_seconds=timeout,
                operation=self.name,
            ) from exc
