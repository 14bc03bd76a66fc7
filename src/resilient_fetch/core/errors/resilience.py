"""Resilience error classes.

Raised by the timeout, rate limiter and circuit breaker policies, and by the
innermost pipeline step when the transport fails before producing a response.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from resilient_fetch.core.errors.base import ErrorKind, FetchError

if TYPE_CHECKING:
    from resilient_fetch.core.resilience.models import CircuitState


class TimeoutException(FetchError):
    """Deadline elapsed before the inner call settled.

    Attributes:
        timeout_seconds: The timeout duration that was exceeded.
        operation: Name of the timeout policy that fired.
    """

    kind = ErrorKind.TIMEOUT

    def __init__(
        self,
        message: str,
        timeout_seconds: Optional[float] = None,
        operation: Optional[str] = None,
    ):
        super().__init__(message)
        self.timeout_seconds = timeout_seconds
        self.operation = operation


class RateLimitError(FetchError):
    """Rate limiter denied admission for the current window.

    Attributes:
        remaining_time: Seconds until the current window resets.
        limit_for_period: Admissions allowed per window.
        limit_period: Window length in seconds.
        limiter_name: Name of the rate limiter.
    """

    kind = ErrorKind.RATE_LIMIT

    def __init__(
        self,
        message: str,
        remaining_time: float = 0.0,
        limit_for_period: Optional[int] = None,
        limit_period: Optional[float] = None,
        limiter_name: Optional[str] = None,
    ):
        super().__init__(message)
        self.remaining_time = remaining_time
        self.limit_for_period = limit_for_period
        self.limit_period = limit_period
        self.limiter_name = limiter_name


class CircuitBreakerError(FetchError):
    """Circuit breaker is open and rejecting requests.

    Attributes:
        breaker_name: Name of the circuit breaker.
        state: Phase of the breaker at rejection time.
        retry_after: Seconds until the breaker may admit a probe, if known.
    """

    kind = ErrorKind.CIRCUIT_OPEN

    def __init__(
        self,
        message: str,
        breaker_name: Optional[str] = None,
        state: Optional[CircuitState] = None,
        retry_after: Optional[float] = None,
    ):
        super().__init__(message)
        self.breaker_name = breaker_name
        self.state = state
        self.retry_after = retry_after


class TransportError(FetchError):
    """The transport raised before any response was received.

    Attributes:
        url: Target URL of the failed attempt.
        original_error: The exception raised by the transport.
    """

    kind = ErrorKind.TRANSPORT

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        original_error: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.url = url
        self.original_error = original_error
