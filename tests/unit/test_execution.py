"""Tests for policy chain composition and the innermost raw step."""

import logging

import httpx
import pytest

from resilient_fetch.core.errors import HTTPResponseError, TransportError
from resilient_fetch.core.resilience.circuit_breaker import (
    CircuitBreakerPolicy,
    new_circuit_breaker_state,
)
from resilient_fetch.core.resilience.execution import (
    PolicyChain,
    build_container_policies,
    build_request_policies,
    make_raw_step,
)
from resilient_fetch.core.resilience.models import (
    CircuitBreakerOptions,
    ContainerOptions,
    Policy,
    RateLimitOptions,
    RequestOptions,
    RetryOptions,
    TimeoutOptions,
)
from resilient_fetch.core.resilience.rate_limit import RateLimitPolicy, new_rate_limiter_state
from resilient_fetch.core.resilience.retry import RetryPolicy
from resilient_fetch.core.resilience.timeout import TimeoutPolicy


class RecordingPolicy(Policy):
    """Records entry and exit order around call_next."""

    def __init__(self, name, events):
        self.name = name
        self.events = events

    async def execute(self, descriptor, call_next):
        self.events.append(f"enter {self.name}")
        result = await call_next(descriptor)
        self.events.append(f"exit {self.name}")
        return result


class RewritingPolicy(Policy):
    async def execute(self, descriptor, call_next):
        return await call_next(descriptor.replace(url=descriptor.url + "?rewritten=1"))


class TestPolicyChain:
    """Composition order and descriptor rewriting."""

    @pytest.mark.asyncio
    async def test_outer_to_inner(self, descriptor):
        events = []

        async def func(d):
            events.append("call")
            return "result"

        chain = PolicyChain(
            [RecordingPolicy("outer", events), RecordingPolicy("inner", events)]
        )
        assert await chain.execute(descriptor, func) == "result"
        assert events == ["enter outer", "enter inner", "call", "exit inner", "exit outer"]

    @pytest.mark.asyncio
    async def test_empty_chain_calls_function(self, descriptor):
        async def func(d):
            return d.url

        assert await PolicyChain().execute(descriptor, func) == descriptor.url

    @pytest.mark.asyncio
    async def test_policy_may_rewrite_descriptor(self, descriptor):
        async def func(d):
            return d.url

        result = await PolicyChain([RewritingPolicy()]).execute(descriptor, func)
        assert result.endswith("?rewritten=1")


class TestBuildRequestPolicies:
    """Per-call chain assembly."""

    def test_retry_then_timeout(self):
        options = RequestOptions(retry=RetryOptions(), timeout=TimeoutOptions(timeout=1.0))
        policies = build_request_policies(options)
        assert [type(p) for p in policies] == [RetryPolicy, TimeoutPolicy]
        assert policies[0].wrap_exhausted is True

    def test_timeout_retry_is_innermost(self):
        options = RequestOptions(
            retry=RetryOptions(name="outer"),
            timeout=TimeoutOptions(timeout=1.0, retry=RetryOptions(name="inner")),
        )
        policies = build_request_policies(options)
        assert [p.name for p in policies] == ["outer", "fetch-timeout", "inner"]
        assert policies[2].wrap_exhausted is False

    def test_disabled_policies_omitted(self):
        assert build_request_policies(RequestOptions()) == []


class TestBuildContainerPolicies:
    """Per-client chain assembly."""

    def test_order(self, clock):
        rate = RateLimitOptions(limit_for_period=5, limit_period=1.0)
        breaker = CircuitBreakerOptions()
        policies = build_container_policies(
            ContainerOptions(rate_limit=rate, circuit_breaker=breaker),
            rate_limiter_state=new_rate_limiter_state(rate, clock),
            circuit_breaker_state=new_circuit_breaker_state(breaker, clock),
        )
        assert [type(p) for p in policies] == [RetryPolicy, RateLimitPolicy, CircuitBreakerPolicy]

    def test_shared_state_passed_by_reference(self, clock):
        breaker = CircuitBreakerOptions()
        state = new_circuit_breaker_state(breaker, clock)
        (policy,) = build_container_policies(
            ContainerOptions(circuit_breaker=breaker), circuit_breaker_state=state
        )
        assert policy.state is state

    def test_breaker_requires_state(self):
        with pytest.raises(ValueError, match="circuit_breaker_state"):
            build_container_policies(ContainerOptions(circuit_breaker=CircuitBreakerOptions()))


class TestRawStep:
    """Sending, error wrapping and materialization."""

    @pytest.mark.asyncio
    async def test_returns_envelope(self, descriptor, recorder_factory, response_factory):
        raw = recorder_factory(response_factory(200, json_body={"id": 1}))
        envelope = await make_raw_step(raw)(descriptor)
        assert envelope.data == {"id": 1}
        assert raw.calls == [descriptor]

    @pytest.mark.asyncio
    async def test_http_error_raised(self, descriptor, recorder_factory, response_factory):
        raw = recorder_factory(response_factory(500, text="boom"))
        with pytest.raises(HTTPResponseError) as exc_info:
            await make_raw_step(raw)(descriptor)
        assert exc_info.value.status == 500

    @pytest.mark.asyncio
    async def test_transport_error_wrapped(self, descriptor, recorder_factory):
        cause = httpx.ConnectError("connection refused")
        raw = recorder_factory(cause)
        with pytest.raises(TransportError) as exc_info:
            await make_raw_step(raw)(descriptor)
        assert exc_info.value.original_error is cause
        assert exc_info.value.url == descriptor.url
        assert exc_info.value.__cause__ is cause

    @pytest.mark.asyncio
    async def test_os_error_wrapped(self, descriptor, recorder_factory):
        raw = recorder_factory(ConnectionResetError("reset by peer"))
        with pytest.raises(TransportError, match="ConnectionResetError"):
            await make_raw_step(raw)(descriptor)

    @pytest.mark.asyncio
    async def test_other_errors_propagate(self, descriptor, recorder_factory):
        raw = recorder_factory(KeyError("bug"))
        with pytest.raises(KeyError):
            await make_raw_step(raw)(descriptor)

    @pytest.mark.asyncio
    async def test_attempt_logged_at_debug(self, descriptor, recorder_factory, caplog):
        raw = recorder_factory()
        with caplog.at_level(logging.DEBUG, logger="resilient_fetch"):
            await make_raw_step(raw)(descriptor)
        messages = [r.getMessage() for r in caplog.records]
        assert f'Sending HTTP request "GET {descriptor.url}"' in messages
