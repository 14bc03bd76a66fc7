"""Policy chain composition.

A logical request runs through two chains:

1. The container chain, built once per client and sharing its breaker and
   limiter state across calls: rate-limit retry -> rate limiter -> circuit
   breaker.
2. The per-call chain, built for every call from the resolved options:
   retry -> timeout -> timeout retry.

The innermost step sends the raw request and materializes the response.
"""

from __future__ import annotations

import logging
import random
from typing import Any, Awaitable, Callable, Optional, Sequence

import httpx

from resilient_fetch.core.errors import TransportError
from resilient_fetch.core.observability import log_attempt
from resilient_fetch.core.resilience.circuit_breaker import CircuitBreakerPolicy
from resilient_fetch.core.resilience.config import DEFAULT_RATE_LIMIT_RETRY_OPTIONS
from resilient_fetch.core.resilience.models import (
    CallNext,
    CircuitBreakerState,
    Clock,
    ContainerOptions,
    Policy,
    RateLimiterState,
    RequestOptions,
    SleepFunc,
)
from resilient_fetch.core.resilience.rate_limit import RateLimitPolicy
from resilient_fetch.core.resilience.retry import RetryPolicy
from resilient_fetch.core.resilience.timeout import TimeoutPolicy
from resilient_fetch.core.response import ResponseEnvelope, materialize_response
from resilient_fetch.core.schema import Validator


def _bind(policy: Policy, call_next: CallNext) -> CallNext:
    async def call(descriptor):
        return await policy.execute(descriptor, call_next)

    return call


class PolicyChain:
    """Compose policies outer to inner around a function."""

    def __init__(self, policies: Sequence[Policy] = ()):
        self.policies = tuple(policies)

    def __len__(self) -> int:
        return len(self.policies)

    def wrap(self, func: CallNext) -> CallNext:
        """Return ``func`` wrapped by every policy, first policy outermost."""
        call = func
        for policy in reversed(self.policies):
            call = _bind(policy, call)
        return call

    async def execute(self, descriptor, func: CallNext) -> Any:
        return await self.wrap(func)(descriptor)


def build_request_policies(
    options: RequestOptions,
    *,
    rng: Optional[random.Random] = None,
    sleep_func: Optional[SleepFunc] = None,
    clock: Optional[Clock] = None,
) -> list[Policy]:
    """Per-call policies, outer to inner: retry, timeout, timeout retry."""
    policies: list[Policy] = []
    if options.retry is not None:
        policies.append(
            RetryPolicy(
                options.retry,
                wrap_exhausted=True,
                rng=rng,
                sleep_func=sleep_func,
                clock=clock,
            )
        )
    if options.timeout is not None:
        policies.append(TimeoutPolicy(options.timeout))
        if options.timeout.retry is not None:
            policies.append(
                RetryPolicy(
                    options.timeout.retry,
                    rng=rng,
                    sleep_func=sleep_func,
                    clock=clock,
                )
            )
    return policies


def build_container_policies(
    container: ContainerOptions,
    *,
    rate_limiter_state: Optional[RateLimiterState] = None,
    circuit_breaker_state: Optional[CircuitBreakerState] = None,
    logger: Optional[logging.Logger] = None,
    rng: Optional[random.Random] = None,
    sleep_func: Optional[SleepFunc] = None,
    clock: Optional[Clock] = None,
) -> list[Policy]:
    """Per-client policies, outer to inner: rate-limit retry, limiter, breaker.

    Raises:
        ValueError: When a policy is configured without its shared state.
    """
    policies: list[Policy] = []
    if container.rate_limit is not None:
        if rate_limiter_state is None:
            raise ValueError("rate_limiter_state is required when rate_limit is configured")
        policies.append(
            RetryPolicy(
                container.rate_limit.retry or DEFAULT_RATE_LIMIT_RETRY_OPTIONS,
                rng=rng,
                sleep_func=sleep_func,
                clock=clock,
            )
        )
        policies.append(RateLimitPolicy(container.rate_limit, rate_limiter_state, clock=clock))
    if container.circuit_breaker is not None:
        if circuit_breaker_state is None:
            raise ValueError("circuit_breaker_state is required when circuit_breaker is configured")
        policies.append(
            CircuitBreakerPolicy(
                container.circuit_breaker,
                circuit_breaker_state,
                clock=clock,
                logger=logger,
            )
        )
    return policies


def make_raw_step(
    raw_request: Callable[..., Awaitable[httpx.Response]],
    *,
    schema: Any = None,
    validator: Optional[Validator] = None,
    logger: Optional[logging.Logger] = None,
) -> Callable[..., Awaitable[ResponseEnvelope]]:
    """Innermost step: send the request and materialize the response.

    Transport exceptions are wrapped in ``TransportError``; non-2xx responses
    raise ``HTTPResponseError`` and schema failures ``SchemaValidationError``.
    """
    _logger = logger or logging.getLogger(__name__)

    async def step(descriptor) -> ResponseEnvelope:
        log_attempt(_logger, descriptor)
        try:
            raw = await raw_request(descriptor)
        except (httpx.HTTPError, OSError) as exc:
            raise TransportError(
                f"Transport error for {descriptor.method} {descriptor.url}: "
                f"{type(exc).__name__}: {exc}",
                url=descriptor.url,
                original_error=exc,
            ) from exc
        return await materialize_response(
            raw,
            schema=schema,
            validator=validator,
            url=descriptor.url,
        )

    return step
