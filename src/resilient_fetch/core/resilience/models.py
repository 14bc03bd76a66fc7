"""Resilience data models, enums, and protocols.

Defines the core types used across the resilience sub-package:
- CircuitState, CallOutcome and RetryMode enums
- Option models for retry, timeout, rate limiting and circuit breaking
- RequestOptions / ContainerOptions, the two configuration scopes
- CircuitBreakerState and RateLimiterState, shared per built client
- Attempt records and ClientStatus snapshots
- SleepFunc / Clock protocols for injectable timing
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional, Protocol, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from resilient_fetch.core.hooks import LifecycleHooks

if TYPE_CHECKING:
    from resilient_fetch.core.request import RequestDescriptor

T = TypeVar("T")

RejectionPredicate = Callable[[Exception, int], Union[bool, float, None]]
ErrorPredicate = Callable[[Exception], bool]
CallNext = Callable[["RequestDescriptor"], Awaitable[T]]


class CircuitState(str, Enum):
    """Phase of a circuit breaker."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CallOutcome(str, Enum):
    """Outcome of one call recorded in a breaker's sliding window."""

    SUCCESS = "success"
    FAILURE = "failure"
    SLOW = "slow"


class RetryMode(str, Enum):
    """Backoff shape used when a rejection predicate returns True."""

    CONSTANT = "constant"
    EXPONENTIAL = "exponential"
    JITTER = "jitter"


class SleepFunc(Protocol):
    """Protocol for injectable sleep function."""

    async def __call__(self, seconds: float) -> None: ...


class Clock(Protocol):
    """Protocol for injectable monotonic clock."""

    def __call__(self) -> float: ...


class Policy(ABC):
    """A reliability policy wrapping the rest of the chain.

    A policy may pass the descriptor through, delay, reject without calling
    ``call_next``, call ``call_next`` repeatedly, or call it with a rewritten
    descriptor.
    """

    name: str = "policy"

    @abstractmethod
    async def execute(self, descriptor: RequestDescriptor, call_next: CallNext) -> Any:
        """Run ``call_next`` under this policy."""


class _OptionsModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        arbitrary_types_allowed=True,
        populate_by_name=True,
    )


class RetryOptions(_OptionsModel):
    """Retry policy configuration.

    ``attempts`` counts total tries, so ``attempts=3`` means one initial call
    plus up to two retries.
    """

    name: str = Field(default="fetch-retry", description="Policy name used in logs")
    attempts: int = Field(default=3, ge=1, description="Total tries including the first")
    initial_interval: float = Field(default=0.5, ge=0, description="Base backoff in seconds")
    mode: RetryMode = Field(default=RetryMode.JITTER, description="Backoff shape")
    factor: float = Field(default=2.0, gt=0, description="Exponential growth per attempt")
    max_interval: float = Field(default=60.0, ge=0, description="Backoff cap in seconds")
    jitter_adjustment: float = Field(
        default=0.5, ge=0, le=1, description="Jitter range as a fraction of the delay"
    )
    on_rejection: Optional[RejectionPredicate] = Field(
        default=None, description="(error, attempt) -> False | True | delay seconds"
    )


class TimeoutOptions(_OptionsModel):
    """Timeout policy configuration."""

    name: str = Field(default="fetch-timeout", description="Policy name used in logs")
    timeout: float = Field(default=10.0, gt=0, description="Deadline in seconds")
    retry: Optional[RetryOptions] = Field(
        default=None, description="Retry applied inside the timeout race"
    )


class RateLimitOptions(_OptionsModel):
    """Fixed-window rate limiter configuration."""

    name: str = Field(default="fetch-rate-limit", description="Limiter name used in logs")
    limit_for_period: int = Field(gt=0, description="Admissions per window")
    limit_period: float = Field(gt=0, description="Window length in seconds")
    retry: Optional[RetryOptions] = Field(
        default=None, description="Admission retry; defaults to sleeping out the window"
    )


class CircuitBreakerOptions(_OptionsModel):
    """Sliding-count circuit breaker configuration."""

    name: str = Field(default="fetch-circuit-breaker", description="Breaker name used in logs")
    state: CircuitState = Field(default=CircuitState.CLOSED, description="Initial phase")
    failure_rate_threshold: float = Field(
        default=50.0, ge=0, le=100, description="Failure percentage that opens the circuit"
    )
    slow_call_rate_threshold: float = Field(
        default=100.0, ge=0, le=100, description="Slow-call percentage that opens the circuit"
    )
    slow_call_duration_threshold: float = Field(
        default=60.0, gt=0, description="Seconds above which a call counts as slow"
    )
    permitted_number_of_calls_in_half_open_state: int = Field(
        default=2, ge=1, description="Probe calls admitted while half open"
    )
    half_open_state_max_delay: float = Field(
        default=0.0, ge=0, description="Seconds half open before reopening; 0 disables"
    )
    sliding_window_size: int = Field(default=10, ge=1, description="Outcomes kept in the window")
    minimum_number_of_calls: int = Field(
        default=10, ge=1, description="Outcomes required before rates are evaluated"
    )
    open_state_delay: float = Field(
        default=60.0, ge=0, description="Seconds open before admitting probes"
    )
    on_error: Optional[ErrorPredicate] = Field(
        default=None, description="error -> whether it counts as a failure"
    )


class RequestOptions(_OptionsModel):
    """Per-call option scope.

    Resolved by merging defaults, builder-level options and per-call options,
    in that order; only explicitly set fields override.
    """

    logger: Optional[logging.Logger] = Field(default=None, description="Logger for pipeline events")
    timeout: Optional[TimeoutOptions] = Field(default=None, description="Timeout policy")
    retry: Optional[RetryOptions] = Field(default=None, description="Outer retry policy")
    response_schema: Any = Field(
        default=None, alias="schema", description="Schema for successful JSON bodies"
    )
    hooks: Optional[LifecycleHooks] = Field(default=None, description="Lifecycle hooks")


class ContainerOptions(_OptionsModel):
    """Per-client option scope shared by every call through a built client."""

    rate_limit: Optional[RateLimitOptions] = Field(default=None, description="Rate limiter")
    circuit_breaker: Optional[CircuitBreakerOptions] = Field(
        default=None, description="Circuit breaker"
    )

    @model_validator(mode="after")
    def validate_breaker_window(self) -> "ContainerOptions":
        """A breaker must be able to reach its minimum call count."""
        breaker = self.circuit_breaker
        if breaker is not None and breaker.minimum_number_of_calls > breaker.sliding_window_size:
            raise ValueError(
                f"minimum_number_of_calls ({breaker.minimum_number_of_calls}) must not exceed "
                f"sliding_window_size ({breaker.sliding_window_size})"
            )
        return self


@dataclass(frozen=True)
class Attempt:
    """One pass through the inner call of a retry policy."""

    index: int
    started_at: float
    duration: float
    error: Optional[Exception] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


@dataclass
class CircuitBreakerState:
    """Mutable breaker state shared by all calls through one client.

    ``generation`` increases on every phase transition; outcomes of calls
    admitted under an older generation are not recorded.
    """

    window_size: int
    phase: CircuitState = CircuitState.CLOSED
    window: deque = field(init=False)
    half_open_calls: int = 0
    half_open_successes: int = 0
    last_transition_at: float = 0.0
    generation: int = 0

    def __post_init__(self) -> None:
        self.window = deque(maxlen=self.window_size)

    @property
    def failure_count(self) -> int:
        return sum(1 for outcome in self.window if outcome is CallOutcome.FAILURE)

    @property
    def slow_count(self) -> int:
        return sum(1 for outcome in self.window if outcome is CallOutcome.SLOW)


@dataclass
class RateLimiterState:
    """Mutable fixed-window quota shared by all calls through one client."""

    remaining: int
    period_start: float


@dataclass
class ClientStatus:
    """Status of a built client's shared resilience state."""

    circuit_state: Optional[str]
    circuit_failure_count: int
    circuit_window_size: int
    rate_limit_remaining: Optional[int]
    rate_limit_reset_in: Optional[float]
