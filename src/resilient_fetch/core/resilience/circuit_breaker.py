"""Sliding-count circuit breaker policy.

Tracks the outcomes of the last ``sliding_window_size`` calls and opens the
circuit when the failure or slow-call percentage reaches its threshold once at
least ``minimum_number_of_calls`` outcomes are recorded.

Phases:
    CLOSED: every call is admitted and its outcome recorded.
    OPEN: calls are rejected with ``CircuitBreakerError`` until
        ``open_state_delay`` has elapsed; the move to HALF_OPEN is evaluated
        lazily at admission time.
    HALF_OPEN: at most ``permitted_number_of_calls_in_half_open_state`` probes
        are admitted. Any probe failure reopens the circuit; once that many
        probes succeed the circuit closes with an empty window.

Every transition bumps ``CircuitBreakerState.generation``. A call admitted under
an older generation has its outcome discarded.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Optional

from resilient_fetch.core.errors import CircuitBreakerError
from resilient_fetch.core.resilience.models import (
    CallNext,
    CallOutcome,
    CircuitBreakerOptions,
    CircuitBreakerState,
    CircuitState,
    Clock,
    Policy,
)


def new_circuit_breaker_state(
    options: CircuitBreakerOptions,
    clock: Optional[Clock] = None,
) -> CircuitBreakerState:
    """Create breaker state in the configured initial phase."""
    now = (clock or time.monotonic)()
    return CircuitBreakerState(
        window_size=options.sliding_window_size,
        phase=options.state,
        last_transition_at=now,
    )


class CircuitBreakerPolicy(Policy):
    """Reject calls while the shared breaker state is open.

    Args:
        options: Breaker configuration.
        state: Shared breaker state, mutated in place.
        clock: Injectable monotonic clock.
        logger: Logger for phase transitions (module logger when None).
    """

    def __init__(
        self,
        options: CircuitBreakerOptions,
        state: CircuitBreakerState,
        *,
        clock: Optional[Clock] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.options = options
        self.name = options.name
        self.state = state
        self._clock = clock or time.monotonic
        self._logger = logger or logging.getLogger(__name__)

    @property
    def phase(self) -> CircuitState:
        """Current phase, after applying any elapsed delay."""
        self._refresh_phase(self._clock())
        return self.state.phase

    def _refresh_phase(self, now: float) -> None:
        state = self.state
        elapsed = now - state.last_transition_at
        if state.phase is CircuitState.OPEN and elapsed >= self.options.open_state_delay:
            self._transition(CircuitState.HALF_OPEN, now)
        elif (
            state.phase is CircuitState.HALF_OPEN
            and self.options.half_open_state_max_delay > 0
            and elapsed >= self.options.half_open_state_max_delay
        ):
            self._transition(CircuitState.OPEN, now, reason="half-open delay elapsed")

    def _transition(self, to: CircuitState, now: float, reason: str = "") -> None:
        state = self.state
        previous = state.phase
        state.phase = to
        state.generation += 1
        state.last_transition_at = now
        state.half_open_calls = 0
        state.half_open_successes = 0
        if to is CircuitState.CLOSED:
            state.window.clear()

        suffix = f" ({reason})" if reason else ""
        if to is CircuitState.OPEN:
            self._logger.warning(
                "Circuit breaker '%s' opened: %s -> %s%s",
                self.name,
                previous.value,
                to.value,
                suffix,
            )
        else:
            self._logger.info(
                "Circuit breaker '%s' transitioned: %s -> %s%s",
                self.name,
                previous.value,
                to.value,
                suffix,
            )

    def admit(self) -> tuple[int, bool]:
        """Admit one call or raise ``CircuitBreakerError``.

        Returns:
            The generation the call was admitted under, and whether the call
            holds a half-open probe slot.
        """
        now = self._clock()
        self._refresh_phase(now)
        state = self.state

        if state.phase is CircuitState.OPEN:
            retry_after = max(0.0, state.last_transition_at + self.options.open_state_delay - now)
            raise CircuitBreakerError(
                f"Circuit breaker '{self.name}' is open",
                breaker_name=self.name,
                state=state.phase,
                retry_after=retry_after,
            )

        if state.phase is CircuitState.HALF_OPEN:
            if state.half_open_calls >= self.options.permitted_number_of_calls_in_half_open_state:
                raise CircuitBreakerError(
                    f"Circuit breaker '{self.name}' is half open and all probe calls are in use",
                    breaker_name=self.name,
                    state=state.phase,
                )
            state.half_open_calls += 1
            return state.generation, True

        return state.generation, False

    def release(self, generation: int, probe: bool) -> None:
        """Give back a probe slot claimed by a call that never settled."""
        state = self.state
        if probe and generation == state.generation and state.phase is CircuitState.HALF_OPEN:
            state.half_open_calls = max(0, state.half_open_calls - 1)

    def classify(self, duration: float, error: Optional[Exception] = None) -> CallOutcome:
        """Map a settled call onto a window outcome."""
        if error is not None:
            counts = self.options.on_error(error) if self.options.on_error else True
            if counts:
                return CallOutcome.FAILURE
        if duration >= self.options.slow_call_duration_threshold:
            return CallOutcome.SLOW
        return CallOutcome.SUCCESS

    def record(self, generation: int, outcome: CallOutcome) -> None:
        """Record the outcome of a call admitted under ``generation``."""
        now = self._clock()
        self._refresh_phase(now)
        state = self.state
        if generation != state.generation:
            return

        if state.phase is CircuitState.HALF_OPEN:
            if outcome is CallOutcome.FAILURE:
                self._transition(CircuitState.OPEN, now, reason="probe failed")
                return
            state.half_open_successes += 1
            if state.half_open_successes >= self.options.permitted_number_of_calls_in_half_open_state:
                self._transition(CircuitState.CLOSED, now, reason="probes succeeded")
            return

        if state.phase is not CircuitState.CLOSED:
            return

        state.window.append(outcome)
        total = len(state.window)
        if total < self.options.minimum_number_of_calls:
            return

        failure_rate = state.failure_count * 100.0 / total
        slow_rate = state.slow_count * 100.0 / total
        if failure_rate >= self.options.failure_rate_threshold:
            self._transition(
                CircuitState.OPEN, now, reason=f"failure rate {failure_rate:.0f}% of {total} calls"
            )
        elif slow_rate >= self.options.slow_call_rate_threshold:
            self._transition(
                CircuitState.OPEN, now, reason=f"slow call rate {slow_rate:.0f}% of {total} calls"
            )

    async def execute(self, descriptor, call_next: CallNext) -> Any:
        generation, probe = self.admit()
        started_at = self._clock()
        try:
            result = await call_next(descriptor)
        except asyncio.CancelledError:
            self.release(generation, probe)
            raise
        except Exception as exc:
            self.record(generation, self.classify(self._clock() - started_at, exc))
            raise
        self.record(generation, self.classify(self._clock() - started_at))
        return result
