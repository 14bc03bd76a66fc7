"""Resilience policies for HTTP requests.

- Option models and shared state for retry, timeout, rate limiting and
  circuit breaking
- Default options and rejection predicates
- Policy implementations and the chain that composes them
"""

from resilient_fetch.core.resilience.circuit_breaker import (
    CircuitBreakerPolicy,
    new_circuit_breaker_state,
)
from resilient_fetch.core.resilience.config import (
    DEFAULT_CIRCUIT_BREAKER_OPTIONS,
    DEFAULT_RATE_LIMIT_RETRY_OPTIONS,
    DEFAULT_REQUEST_OPTIONS,
    DEFAULT_RETRY_OPTIONS,
    DEFAULT_TIMEOUT_OPTIONS,
    default_retry_rejection,
    is_retryable,
    merge_options,
    parse_retry_after,
    rate_limit_retry_rejection,
)
from resilient_fetch.core.resilience.execution import (
    PolicyChain,
    build_container_policies,
    build_request_policies,
    make_raw_step,
)
from resilient_fetch.core.resilience.models import (
    Attempt,
    CallOutcome,
    CircuitBreakerOptions,
    CircuitBreakerState,
    CircuitState,
    ClientStatus,
    ContainerOptions,
    Policy,
    RateLimiterState,
    RateLimitOptions,
    RequestOptions,
    RetryMode,
    RetryOptions,
    SleepFunc,
    TimeoutOptions,
)
from resilient_fetch.core.resilience.rate_limit import RateLimitPolicy, new_rate_limiter_state
from resilient_fetch.core.resilience.retry import RetryPolicy, compute_backoff
from resilient_fetch.core.resilience.timeout import TimeoutPolicy

__all__ = [
    # Models & enums
    "Attempt",
    "CallOutcome",
    "CircuitBreakerOptions",
    "CircuitBreakerState",
    "CircuitState",
    "ClientStatus",
    "ContainerOptions",
    "Policy",
    "RateLimiterState",
    "RateLimitOptions",
    "RequestOptions",
    "RetryMode",
    "RetryOptions",
    "SleepFunc",
    "TimeoutOptions",
    # Config
    "DEFAULT_CIRCUIT_BREAKER_OPTIONS",
    "DEFAULT_RATE_LIMIT_RETRY_OPTIONS",
    "DEFAULT_REQUEST_OPTIONS",
    "DEFAULT_RETRY_OPTIONS",
    "DEFAULT_TIMEOUT_OPTIONS",
    "default_retry_rejection",
    "is_retryable",
    "merge_options",
    "parse_retry_after",
    "rate_limit_retry_rejection",
    # Policies
    "CircuitBreakerPolicy",
    "RateLimitPolicy",
    "RetryPolicy",
    "TimeoutPolicy",
    "compute_backoff",
    "new_circuit_breaker_state",
    "new_rate_limiter_state",
    # Execution
    "PolicyChain",
    "build_container_policies",
    "build_request_policies",
    "make_raw_step",
]
