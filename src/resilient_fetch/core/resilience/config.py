"""Default resilience options, rejection predicates and option merging.

Holds the option values every built client starts from, the default retry
predicates, and ``merge_options`` which layers a partial option object over a
base one.
"""

from __future__ import annotations

import math
from typing import Optional, TypeVar, Union

from pydantic import BaseModel

from resilient_fetch.core.errors import (
    ErrorKind,
    HTTPResponseError,
    RateLimitError,
    error_kind,
)
from resilient_fetch.core.resilience.models import (
    CircuitBreakerOptions,
    RequestOptions,
    RetryMode,
    RetryOptions,
    TimeoutOptions,
)

M = TypeVar("M", bound=BaseModel)

# Extra margin added to a limiter's remaining window before re-attempting admission
RATE_LIMIT_RETRY_MARGIN = 0.05


def is_retryable(status: int) -> bool:
    """Whether an HTTP status is worth retrying (429 or any 5xx)."""
    return status == 429 or status >= 500


def parse_retry_after(headers) -> Optional[float]:
    """Parse a numeric ``Retry-After`` header.

    RFC 7231 date values are not supported and yield ``None``.

    Args:
        headers: Response headers (``httpx.Headers`` or any mapping).

    Returns:
        Seconds to wait, or ``None`` if the header is missing, unparseable
        or not a finite number.
    """
    retry_after = headers.get("Retry-After")
    if retry_after:
        try:
            seconds = float(retry_after)
        except ValueError:
            return None
        if math.isfinite(seconds):
            return max(0.0, seconds)
    return None


def default_retry_rejection(error: Exception, attempt: int) -> Union[bool, float]:
    """Default decision for the per-call retry policy.

    Args:
        error: The failure raised by the inner call.
        attempt: 1-based index of the attempt that failed.

    Returns:
        ``False`` to give up, ``True`` to back off, or a delay in seconds.
    """
    kind = error_kind(error)
    if kind in (ErrorKind.HTTP_RESPONSE, ErrorKind.RETRY):
        assert isinstance(error, HTTPResponseError)
        response = error.response
        if is_retryable(response.status):
            retry_after = parse_retry_after(response.headers)
            if retry_after is not None:
                return retry_after
            return True
        return False
    if kind is ErrorKind.RATE_LIMIT:
        assert isinstance(error, RateLimitError)
        return error.remaining_time
    if kind in (ErrorKind.TIMEOUT, ErrorKind.TRANSPORT):
        return True
    if kind in (ErrorKind.SCHEMA_VALIDATION, ErrorKind.CIRCUIT_OPEN):
        return False
    return True


def rate_limit_retry_rejection(error: Exception, attempt: int) -> Union[bool, float]:
    """Sleep out the limiter window for rate-limit denials; give up on anything else."""
    if isinstance(error, RateLimitError):
        return error.remaining_time + RATE_LIMIT_RETRY_MARGIN
    return False


DEFAULT_RETRY_OPTIONS = RetryOptions(
    name="fetch-retry",
    attempts=3,
    initial_interval=0.5,
    mode=RetryMode.JITTER,
    factor=2.0,
    jitter_adjustment=0.5,
    on_rejection=default_retry_rejection,
)

DEFAULT_RATE_LIMIT_RETRY_OPTIONS = RetryOptions(
    name="fetch-rate-limit-retry",
    attempts=2,
    initial_interval=0.5,
    mode=RetryMode.JITTER,
    factor=2.0,
    jitter_adjustment=0.5,
    on_rejection=rate_limit_retry_rejection,
)

DEFAULT_TIMEOUT_OPTIONS = TimeoutOptions(name="fetch-timeout", timeout=10.0)

DEFAULT_CIRCUIT_BREAKER_OPTIONS = CircuitBreakerOptions()

DEFAULT_REQUEST_OPTIONS = RequestOptions(
    timeout=DEFAULT_TIMEOUT_OPTIONS,
    retry=DEFAULT_RETRY_OPTIONS,
)


def merge_options(base: Optional[M], override: Optional[M]) -> Optional[M]:
    """Layer ``override`` over ``base``.

    Only fields explicitly set on ``override`` take effect, so a partially
    specified option object never resets the base's other fields. Nested option
    models of the same type are merged recursively; an explicit ``None``
    replaces the base value and disables that policy.

    Args:
        base: Lower-precedence options, or None.
        override: Higher-precedence options, or None.

    Returns:
        The merged options, or whichever side is present.
    """
    if override is None:
        return base
    if base is None:
        return override

    updates = {}
    for name in override.model_fields_set:
        value = getattr(override, name)
        current = getattr(base, name)
        if (
            isinstance(value, BaseModel)
            and isinstance(current, BaseModel)
            and type(value) is type(current)
        ):
            value = merge_options(current, value)
        updates[name] = value

    if not updates:
        return base
    return base.model_copy(update=updates)


def coerce_request_options(options) -> Optional[RequestOptions]:
    """Accept a RequestOptions instance, a plain mapping, or None."""
    if options is None or isinstance(options, RequestOptions):
        return options
    return RequestOptions.model_validate(options)
