"""Client, builder and module-level ``fetch``.

``FetchBuilder`` collects request defaults, per-call options and per-client
policies; ``build()`` returns a ``FetchClient`` that owns the shared circuit
breaker and rate limiter state for every call made through it.

Example:
    >>> client = (
    ...     FetchBuilder()
    ...     .with_timeout(5.0)
    ...     .with_retry(attempts=4, initial_interval=0.25)
    ...     .with_rate_limit(20, 1.0)
    ...     .with_circuit_breaker(failure_rate_threshold=60)
    ...     .build()
    ... )
    >>> response = await client("https://api.example.com/items")
    >>> response.data
"""

from __future__ import annotations

import logging
import random
import threading
import time
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Mapping, Optional, Union

import httpx

from resilient_fetch.core.hooks import HookRunner, LifecycleHooks
from resilient_fetch.core.observability.http_log import failure_response, log_failure
from resilient_fetch.core.request import (
    RequestDescriptor,
    RequestInit,
    merge_init,
    prepare_default_init,
)
from resilient_fetch.core.resilience.circuit_breaker import new_circuit_breaker_state
from resilient_fetch.core.resilience.config import (
    DEFAULT_REQUEST_OPTIONS,
    coerce_request_options,
    merge_options,
)
from resilient_fetch.core.resilience.execution import (
    PolicyChain,
    build_container_policies,
    build_request_policies,
    make_raw_step,
)
from resilient_fetch.core.resilience.models import (
    CircuitBreakerOptions,
    CircuitState,
    ClientStatus,
    Clock,
    ContainerOptions,
    RateLimitOptions,
    RequestOptions,
    RetryOptions,
    SleepFunc,
    TimeoutOptions,
)
from resilient_fetch.core.resilience.rate_limit import new_rate_limiter_state
from resilient_fetch.core.response import ResponseEnvelope
from resilient_fetch.core.schema import Validator, validate_schema
from resilient_fetch.core.transport import HttpxTransport, RawRequest

if TYPE_CHECKING:
    from resilient_fetch.config import FetchSettings

logger = logging.getLogger(__name__)

InitLike = Union[RequestInit, Mapping[str, Any], None]


def coerce_init(init: InitLike) -> Optional[RequestInit]:
    """Accept a RequestInit, a mapping of its fields, or None."""
    if init is None or isinstance(init, RequestInit):
        return init
    return RequestInit(**init)


class FetchClient:
    """Executes logical requests through the configured policy chains.

    Args:
        init: Request defaults merged under every call's init.
        options: Builder-level options, layered over library defaults.
        container: Per-client rate limiter and circuit breaker options.
        transport: Raw request callable (``HttpxTransport`` when None).
        validator: Schema validation function.
        rng: Random source for retry jitter.
        sleep_func: Sleep used for backoff.
        clock: Monotonic clock used by the breaker, limiter and retries.
    """

    def __init__(
        self,
        *,
        init: Optional[RequestInit] = None,
        options: Optional[RequestOptions] = None,
        container: Optional[ContainerOptions] = None,
        transport: Optional[RawRequest] = None,
        validator: Optional[Validator] = None,
        rng: Optional[random.Random] = None,
        sleep_func: Optional[SleepFunc] = None,
        clock: Optional[Clock] = None,
    ):
        self.init = init or RequestInit()
        self.options = merge_options(DEFAULT_REQUEST_OPTIONS, coerce_request_options(options))
        self.container = container or ContainerOptions()
        self.transport = transport or HttpxTransport()
        self.validator = validator or validate_schema
        self._rng = rng or random.Random()
        self._sleep = sleep_func
        self._clock = clock or time.monotonic

        self.rate_limiter_state = (
            new_rate_limiter_state(self.container.rate_limit, self._clock)
            if self.container.rate_limit is not None
            else None
        )
        self.circuit_breaker_state = (
            new_circuit_breaker_state(self.container.circuit_breaker, self._clock)
            if self.container.circuit_breaker is not None
            else None
        )
        self._container_chain = PolicyChain(
            build_container_policies(
                self.container,
                rate_limiter_state=self.rate_limiter_state,
                circuit_breaker_state=self.circuit_breaker_state,
                logger=self.options.logger,
                rng=self._rng,
                sleep_func=self._sleep,
                clock=self._clock,
            )
        )

    def resolve_options(self, init: Optional[RequestInit]) -> RequestOptions:
        """Layer a call's options over the client's resolved options."""
        call_options = coerce_request_options(init.options) if init is not None else None
        return merge_options(self.options, call_options)

    async def __call__(self, url: str, init: InitLike = None) -> ResponseEnvelope:
        """Execute one logical request.

        Args:
            url: Target URL.
            init: Per-call request fields and options.

        Returns:
            The materialized response (possibly replaced by the success hook).

        Raises:
            FetchError: A classified failure, or the post-response-error hook's
                replacement.
        """
        call_init = merge_init(self.init, coerce_init(init))
        options = self.resolve_options(call_init)
        prepared = prepare_default_init(call_init.replace(options=options))

        hooks = HookRunner(options.hooks)
        url, prepared = await hooks.run_pre_request(url, prepared)
        options = coerce_request_options(prepared.options) or options
        log = options.logger or logger

        descriptor = RequestDescriptor.from_init(url, prepared)
        snapshot = prepared.replace(
            headers=MappingProxyType(dict(descriptor.headers)),
            extensions=MappingProxyType(dict(descriptor.extensions)),
        )

        request_chain = PolicyChain(
            build_request_policies(
                options,
                rng=self._rng,
                sleep_func=self._sleep,
                clock=self._clock,
            )
        )
        raw_step = make_raw_step(
            self.transport,
            schema=options.response_schema,
            validator=self.validator,
            logger=log,
        )

        async def run_request_chain(d: RequestDescriptor) -> ResponseEnvelope:
            return await request_chain.execute(d, raw_step)

        try:
            response = await self._container_chain.execute(descriptor, run_request_chain)
        except Exception as exc:
            log_failure(log, descriptor, exc)
            replacement = await hooks.run_post_response_error(
                url, snapshot, exc, failure_response(exc)
            )
            if replacement is exc:
                raise
            raise replacement from exc

        return await hooks.run_post_response_success(url, snapshot, response)

    def status(self) -> ClientStatus:
        """Snapshot of the shared breaker and limiter state."""
        breaker = self.circuit_breaker_state
        limiter = self.rate_limiter_state
        now = self._clock()

        circuit_state = None
        if breaker is not None and self.container.circuit_breaker is not None:
            phase = breaker.phase
            # An elapsed open delay is reported as half open without transitioning
            delay = self.container.circuit_breaker.open_state_delay
            if phase is CircuitState.OPEN and now - breaker.last_transition_at >= delay:
                phase = CircuitState.HALF_OPEN
            circuit_state = phase.value

        reset_in = None
        remaining = None
        if limiter is not None and self.container.rate_limit is not None:
            window_end = limiter.period_start + self.container.rate_limit.limit_period
            if now >= window_end:
                remaining = self.container.rate_limit.limit_for_period
                reset_in = 0.0
            else:
                remaining = limiter.remaining
                reset_in = window_end - now

        return ClientStatus(
            circuit_state=circuit_state,
            circuit_failure_count=breaker.failure_count if breaker else 0,
            circuit_window_size=len(breaker.window) if breaker else 0,
            rate_limit_remaining=remaining,
            rate_limit_reset_in=reset_in,
        )


@dataclass(frozen=True)
class FetchBuilder:
    """Immutable builder; every ``with_*`` call returns a new builder."""

    init: Optional[RequestInit] = None
    options: RequestOptions = field(default_factory=RequestOptions)
    container: ContainerOptions = field(default_factory=ContainerOptions)
    transport: Optional[RawRequest] = None
    validator: Optional[Validator] = None
    rng: Optional[random.Random] = None
    sleep_func: Optional[SleepFunc] = None
    clock: Optional[Clock] = None

    def _with_options(self, **fields: Any) -> "FetchBuilder":
        return replace(self, options=merge_options(self.options, RequestOptions(**fields)))

    def _with_container(self, **fields: Any) -> "FetchBuilder":
        return replace(
            self,
            container=merge_options(self.container, ContainerOptions(**fields)),
        )

    def with_init(self, init: InitLike = None, **fields: Any) -> "FetchBuilder":
        """Merge request defaults (method, headers, body, extensions, options)."""
        merged = merge_init(self.init, coerce_init(init))
        if fields:
            merged = merge_init(merged, RequestInit(**fields))
        return replace(self, init=merged)

    def with_timeout(self, timeout: Union[float, TimeoutOptions, None]) -> "FetchBuilder":
        """Set the per-call deadline in seconds; ``None`` disables the timeout."""
        if timeout is not None and not isinstance(timeout, TimeoutOptions):
            timeout = TimeoutOptions(timeout=timeout)
        return self._with_options(timeout=timeout)

    def with_retry(self, retry: Optional[RetryOptions] = None, **fields: Any) -> "FetchBuilder":
        """Configure the outer retry. Fields override the defaults one by one.

        ``with_retry(None)`` disables retrying.
        """
        if fields:
            retry = merge_options(retry, RetryOptions(**fields)) if retry else RetryOptions(**fields)
        return self._with_options(retry=retry)

    def with_rate_limit(
        self,
        limit: Union[int, RateLimitOptions, None],
        limit_period: Optional[float] = None,
        **fields: Any,
    ) -> "FetchBuilder":
        """Limit calls through the built client to ``limit`` per ``limit_period`` seconds.

        Pass a ``RateLimitOptions`` instead of a count for full control, or
        ``None`` to remove the limiter.
        """
        if limit is None or isinstance(limit, RateLimitOptions):
            options = limit
        else:
            if limit_period is None:
                raise ValueError("limit_period is required when limit is a count")
            options = RateLimitOptions(limit_for_period=limit, limit_period=limit_period, **fields)
        return self._with_container(rate_limit=options)

    def with_circuit_breaker(
        self,
        options: Optional[CircuitBreakerOptions] = None,
        **fields: Any,
    ) -> "FetchBuilder":
        """Enable the circuit breaker; fields override the defaults one by one."""
        if fields:
            override = CircuitBreakerOptions(**fields)
            options = merge_options(options, override) if options else override
        elif options is None:
            options = CircuitBreakerOptions()
        return self._with_container(circuit_breaker=options)

    def without_circuit_breaker(self) -> "FetchBuilder":
        return self._with_container(circuit_breaker=None)

    def with_logger(self, logger: Optional[logging.Logger]) -> "FetchBuilder":
        return self._with_options(logger=logger)

    def with_schema(self, schema: Any) -> "FetchBuilder":
        """Validate successful JSON bodies against ``schema``."""
        return self._with_options(response_schema=schema)

    def with_hooks(self, hooks: Optional[LifecycleHooks] = None, **callbacks: Any) -> "FetchBuilder":
        """Install lifecycle hooks, either as a model or as keyword callbacks."""
        if callbacks:
            hooks = hooks.model_copy(update=callbacks) if hooks else LifecycleHooks(**callbacks)
        return self._with_options(hooks=hooks)

    def with_transport(self, transport: Union[RawRequest, httpx.AsyncClient, None]) -> "FetchBuilder":
        """Use a custom raw request callable, or a caller-owned ``httpx.AsyncClient``."""
        if isinstance(transport, httpx.AsyncClient):
            transport = HttpxTransport(transport)
        return replace(self, transport=transport)

    def with_settings(self, settings: Optional["FetchSettings"] = None) -> "FetchBuilder":
        """Apply settings from ``FetchSettings`` (environment/TOML when None)."""
        if settings is None:
            from resilient_fetch.config import FetchSettings

            settings = FetchSettings.from_env()
        return replace(
            self,
            options=merge_options(self.options, settings.to_request_options()),
            container=merge_options(self.container, settings.to_container_options()),
        )

    def with_validator(self, validator: Optional[Validator]) -> "FetchBuilder":
        """Replace the schema validation function ``(schema, value) -> value``."""
        return replace(self, validator=validator)

    def with_timing(
        self,
        *,
        sleep_func: Optional[SleepFunc] = None,
        clock: Optional[Clock] = None,
        rng: Optional[random.Random] = None,
    ) -> "FetchBuilder":
        """Inject sleep, clock and random source, mainly for deterministic tests."""
        return replace(
            self,
            sleep_func=sleep_func or self.sleep_func,
            clock=clock or self.clock,
            rng=rng or self.rng,
        )

    def build(self) -> FetchClient:
        """Create a client with fresh breaker and limiter state."""
        container = ContainerOptions(
            rate_limit=self.container.rate_limit,
            circuit_breaker=self.container.circuit_breaker,
        )
        return FetchClient(
            init=self.init,
            options=self.options,
            container=container,
            transport=self.transport,
            validator=self.validator,
            rng=self.rng,
            sleep_func=self.sleep_func,
            clock=self.clock,
        )


# Global default client
_default_client: Optional[FetchClient] = None
_default_client_lock = threading.Lock()


def get_default_client() -> FetchClient:
    """Get the lazily created default client (no rate limiter or breaker).

    Thread-safe via double-checked locking.
    """
    global _default_client
    if _default_client is None:
        with _default_client_lock:
            if _default_client is None:
                _default_client = FetchBuilder().build()
    return _default_client


def reset_default_client_for_testing() -> None:
    """Drop the default client so the next ``fetch`` builds a fresh one."""
    global _default_client
    with _default_client_lock:
        _default_client = None


async def fetch(url: str, init: InitLike = None) -> ResponseEnvelope:
    """Execute one logical request with the default client."""
    return await get_default_client()(url, init)
