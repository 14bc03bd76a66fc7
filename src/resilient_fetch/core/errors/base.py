"""Error discriminant and common base class.

Every error surfaced by the request pipeline derives from ``FetchError`` and
carries a ``kind`` discriminant. Retry predicates, breaker filters and hooks
dispatch on ``kind`` instead of walking ``isinstance`` chains.

Usage:
    from resilient_fetch.core.errors import ErrorKind, error_kind

    if error_kind(exc) is ErrorKind.TIMEOUT:
        ...
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Classification of pipeline failures."""

    HTTP_RESPONSE = "http_response"
    RETRY = "retry"
    TIMEOUT = "timeout"
    RATE_LIMIT = "rate_limit"
    CIRCUIT_OPEN = "circuit_open"
    SCHEMA_VALIDATION = "schema_validation"
    TRANSPORT = "transport"


class FetchError(Exception):
    """Base class for all classified request failures.

    Attributes:
        kind: Discriminant identifying the failure class.
    """

    kind: ErrorKind


def error_kind(error: BaseException) -> Optional[ErrorKind]:
    """Return the discriminant of a classified error, or None for foreign errors."""
    if isinstance(error, FetchError):
        return error.kind
    return None
