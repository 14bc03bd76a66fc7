"""Unified error taxonomy for resilient-fetch.

All exception classes are defined in domain-specific modules within this
package. This __init__.py re-exports everything for convenient access.

Usage:
    from resilient_fetch.core.errors import HTTPResponseError, RetryError

    try:
        response = await client("https://api.example.com/items")
    except RetryError as e:
        print(e.response.status)
"""

# --- Base ---
from resilient_fetch.core.errors.base import ErrorKind, FetchError, error_kind

# --- HTTP errors ---
from resilient_fetch.core.errors.http import (
    HTTPResponseError,
    RetryError,
    SchemaIssue,
    SchemaValidationError,
    build_error_message,
)

# --- Resilience errors ---
from resilient_fetch.core.errors.resilience import (
    CircuitBreakerError,
    RateLimitError,
    TimeoutException,
    TransportError,
)

__all__ = [
    # Base
    "ErrorKind",
    "FetchError",
    "error_kind",
    # HTTP errors
    "HTTPResponseError",
    "RetryError",
    "SchemaIssue",
    "SchemaValidationError",
    "build_error_message",
    # Resilience errors
    "CircuitBreakerError",
    "RateLimitError",
    "TimeoutException",
    "TransportError",
]
