"""Tests for the sliding-count circuit breaker policy."""

import asyncio
import logging

import pytest

from resilient_fetch.core.errors import CircuitBreakerError, TimeoutException
from resilient_fetch.core.resilience.circuit_breaker import (
    CircuitBreakerPolicy,
    new_circuit_breaker_state,
)
from resilient_fetch.core.resilience.models import (
    CallOutcome,
    CircuitBreakerOptions,
    CircuitState,
    ContainerOptions,
)


async def succeed(descriptor):
    return "ok"


async def fail(descriptor):
    raise TimeoutException("late")


def make_breaker(clock, **fields):
    fields.setdefault("sliding_window_size", 4)
    fields.setdefault("minimum_number_of_calls", 4)
    fields.setdefault("open_state_delay", 10.0)
    options = CircuitBreakerOptions(name="api-breaker", **fields)
    return CircuitBreakerPolicy(options, new_circuit_breaker_state(options, clock), clock=clock)


async def run_failures(breaker, descriptor, count):
    for _ in range(count):
        with pytest.raises(TimeoutException):
            await breaker.execute(descriptor, fail)


class TestClosedState:
    """Outcome recording and tripping."""

    @pytest.mark.asyncio
    async def test_stays_closed_below_minimum_calls(self, descriptor, clock):
        breaker = make_breaker(clock)
        await run_failures(breaker, descriptor, 3)
        assert breaker.state.phase is CircuitState.CLOSED
        assert breaker.state.failure_count == 3

    @pytest.mark.asyncio
    async def test_trips_at_minimum_calls(self, descriptor, clock):
        breaker = make_breaker(clock)
        await run_failures(breaker, descriptor, 4)
        assert breaker.state.phase is CircuitState.OPEN

    @pytest.mark.asyncio
    async def test_stays_closed_below_failure_rate(self, descriptor, clock):
        breaker = make_breaker(clock)
        await run_failures(breaker, descriptor, 1)
        for _ in range(3):
            await breaker.execute(descriptor, succeed)
        assert breaker.state.phase is CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_trips_at_failure_rate_threshold(self, descriptor, clock):
        breaker = make_breaker(clock, failure_rate_threshold=50)
        await breaker.execute(descriptor, succeed)
        await breaker.execute(descriptor, succeed)
        await run_failures(breaker, descriptor, 2)
        assert breaker.state.phase is CircuitState.OPEN

    @pytest.mark.asyncio
    async def test_window_keeps_last_outcomes(self, descriptor, clock):
        breaker = make_breaker(clock, sliding_window_size=3, minimum_number_of_calls=3)
        await breaker.execute(descriptor, succeed)
        await breaker.execute(descriptor, succeed)
        await breaker.execute(descriptor, succeed)
        await run_failures(breaker, descriptor, 1)
        assert list(breaker.state.window) == [
            CallOutcome.SUCCESS,
            CallOutcome.SUCCESS,
            CallOutcome.FAILURE,
        ]
        assert breaker.state.phase is CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_slow_calls_trip(self, descriptor, clock):
        breaker = make_breaker(
            clock,
            slow_call_duration_threshold=1.0,
            slow_call_rate_threshold=50,
        )

        async def slow(d):
            clock.advance(2.0)
            return "ok"

        for _ in range(2):
            await breaker.execute(descriptor, succeed)
        for _ in range(2):
            assert await breaker.execute(descriptor, slow) == "ok"

        assert breaker.state.phase is CircuitState.OPEN

    @pytest.mark.asyncio
    async def test_call_at_threshold_is_slow(self, descriptor, clock):
        breaker = make_breaker(clock, slow_call_duration_threshold=1.0)

        async def at_threshold(d):
            clock.advance(1.0)
            return "ok"

        await breaker.execute(descriptor, at_threshold)

        assert list(breaker.state.window) == [CallOutcome.SLOW]
        assert breaker.classify(1.0) is CallOutcome.SLOW
        assert breaker.classify(0.999) is CallOutcome.SUCCESS

    @pytest.mark.asyncio
    async def test_on_error_excludes_errors(self, descriptor, clock):
        breaker = make_breaker(clock, on_error=lambda error: not isinstance(error, TimeoutException))
        await run_failures(breaker, descriptor, 4)
        assert breaker.state.phase is CircuitState.CLOSED
        assert breaker.state.failure_count == 0
        assert list(breaker.state.window) == [CallOutcome.SUCCESS] * 4

    def test_minimum_calls_cannot_exceed_window(self):
        with pytest.raises(ValueError, match="minimum_number_of_calls"):
            ContainerOptions(
                circuit_breaker=CircuitBreakerOptions(
                    sliding_window_size=5, minimum_number_of_calls=6
                )
            )


class TestOpenState:
    """Rejection while open and the move to half open."""

    @pytest.mark.asyncio
    async def test_rejects_without_calling_inner(self, descriptor, clock):
        breaker = make_breaker(clock)
        await run_failures(breaker, descriptor, 4)
        clock.advance(4.0)
        calls = []

        async def inner(d):
            calls.append(d)
            return "ok"

        with pytest.raises(CircuitBreakerError) as exc_info:
            await breaker.execute(descriptor, inner)

        error = exc_info.value
        assert calls == []
        assert error.state is CircuitState.OPEN
        assert error.breaker_name == "api-breaker"
        assert error.retry_after == pytest.approx(6.0)

    @pytest.mark.asyncio
    async def test_half_open_after_delay(self, descriptor, clock):
        breaker = make_breaker(clock)
        await run_failures(breaker, descriptor, 4)
        clock.advance(10.0)
        assert breaker.phase is CircuitState.HALF_OPEN

    @pytest.mark.asyncio
    async def test_initial_open_state(self, descriptor, clock):
        breaker = make_breaker(clock, state=CircuitState.OPEN)
        with pytest.raises(CircuitBreakerError):
            await breaker.execute(descriptor, succeed)

    @pytest.mark.asyncio
    async def test_transitions_logged(self, descriptor, clock, caplog):
        breaker = make_breaker(clock)
        with caplog.at_level(logging.INFO, logger="resilient_fetch"):
            await run_failures(breaker, descriptor, 4)
            clock.advance(10.0)
            _ = breaker.phase

        warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
        infos = [r for r in caplog.records if r.levelno == logging.INFO]
        assert len(warnings) == 1
        assert "opened" in warnings[0].getMessage()
        assert any("half_open" in r.getMessage() for r in infos)


class TestHalfOpenState:
    """Probe admission and the outcome of probes."""

    async def _half_open(self, clock, descriptor, **fields):
        breaker = make_breaker(clock, **fields)
        await run_failures(breaker, descriptor, 4)
        clock.advance(10.0)
        return breaker

    @pytest.mark.asyncio
    async def test_admits_exactly_permitted_probes(self, descriptor, clock):
        breaker = await self._half_open(
            clock, descriptor, permitted_number_of_calls_in_half_open_state=2
        )
        gate = asyncio.Event()
        calls = []

        async def probe(d):
            calls.append(d)
            await gate.wait()
            return "ok"

        first = asyncio.ensure_future(breaker.execute(descriptor, probe))
        second = asyncio.ensure_future(breaker.execute(descriptor, probe))
        await asyncio.sleep(0)

        with pytest.raises(CircuitBreakerError) as exc_info:
            await breaker.execute(descriptor, probe)
        assert exc_info.value.state is CircuitState.HALF_OPEN

        gate.set()
        assert await first == "ok"
        assert await second == "ok"
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_successful_probes_close(self, descriptor, clock):
        breaker = await self._half_open(clock, descriptor)
        await breaker.execute(descriptor, succeed)
        assert breaker.state.phase is CircuitState.HALF_OPEN
        await breaker.execute(descriptor, succeed)
        assert breaker.state.phase is CircuitState.CLOSED
        assert len(breaker.state.window) == 0

    @pytest.mark.asyncio
    async def test_probe_failure_reopens(self, descriptor, clock):
        breaker = await self._half_open(clock, descriptor)
        await breaker.execute(descriptor, succeed)
        await run_failures(breaker, descriptor, 1)
        assert breaker.state.phase is CircuitState.OPEN

    @pytest.mark.asyncio
    async def test_max_delay_reopens(self, descriptor, clock):
        breaker = await self._half_open(clock, descriptor, half_open_state_max_delay=5.0)
        assert breaker.phase is CircuitState.HALF_OPEN
        clock.advance(5.0)
        assert breaker.phase is CircuitState.OPEN

    @pytest.mark.asyncio
    async def test_cancelled_probe_releases_slot(self, descriptor, clock):
        breaker = await self._half_open(
            clock, descriptor, permitted_number_of_calls_in_half_open_state=1
        )
        gate = asyncio.Event()

        async def blocked(d):
            await gate.wait()
            return "ok"

        task = asyncio.ensure_future(breaker.execute(descriptor, blocked))
        await asyncio.sleep(0)
        assert breaker.state.half_open_calls == 1

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert breaker.state.half_open_calls == 0
        assert await breaker.execute(descriptor, succeed) == "ok"
        assert breaker.state.phase is CircuitState.CLOSED


class TestGenerations:
    """Outcomes of calls admitted under an earlier phase are ignored."""

    def test_stale_outcome_ignored(self, clock):
        breaker = make_breaker(clock)
        generation, probe = breaker.admit()
        assert probe is False

        breaker._transition(CircuitState.OPEN, clock())
        breaker.record(generation, CallOutcome.FAILURE)

        assert breaker.state.generation == generation + 1
        assert len(breaker.state.window) == 0

    @pytest.mark.asyncio
    async def test_in_flight_call_does_not_count_after_trip(self, descriptor, clock):
        breaker = make_breaker(clock)
        gate = asyncio.Event()

        async def slow_fail(d):
            await gate.wait()
            raise TimeoutException("late")

        in_flight = asyncio.ensure_future(breaker.execute(descriptor, slow_fail))
        await asyncio.sleep(0)
        await run_failures(breaker, descriptor, 4)
        clock.advance(10.0)
        assert breaker.phase is CircuitState.HALF_OPEN

        gate.set()
        with pytest.raises(TimeoutException):
            await in_flight
        assert breaker.state.phase is CircuitState.HALF_OPEN
