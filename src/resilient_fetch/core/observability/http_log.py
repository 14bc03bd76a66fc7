"""Structured log records for HTTP attempts and failed requests.

Context is attached under ``extra={"http": {...}}`` so formatters can emit it
as structured fields. Headers and bodies are redacted before logging.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Optional

from resilient_fetch.core.errors import ErrorKind, error_kind
from resilient_fetch.core.observability.redaction import redact_body, redact_headers

if TYPE_CHECKING:
    from resilient_fetch.core.request import RequestDescriptor
    from resilient_fetch.core.response import ResponseEnvelope

_FAILURE_MESSAGES: dict[Optional[ErrorKind], str] = {
    ErrorKind.TIMEOUT: "HTTP request timed out",
    ErrorKind.RETRY: "HTTP request failed after exhausting retries",
    ErrorKind.RATE_LIMIT: "HTTP request rejected by rate limiter",
    ErrorKind.CIRCUIT_OPEN: "HTTP request rejected by open circuit breaker",
    ErrorKind.SCHEMA_VALIDATION: "HTTP response failed schema validation",
    ErrorKind.TRANSPORT: "HTTP request failed before a response was received",
    ErrorKind.HTTP_RESPONSE: "HTTP request failed",
}


def request_log_context(descriptor: RequestDescriptor) -> dict[str, Any]:
    """Redacted request fields for a log record."""
    return {
        "method": descriptor.method,
        "url": descriptor.url,
        "host": descriptor.host,
        "path": descriptor.path,
        "query": descriptor.query,
        "headers": redact_headers(descriptor.headers),
        "body": redact_body(descriptor.body),
    }


def response_log_context(response: ResponseEnvelope) -> dict[str, Any]:
    """Redacted response fields for a log record."""
    return {
        "status": response.status,
        "status_text": response.status_text,
        "headers": redact_headers(dict(response.headers)),
        "body": redact_body(response.data_string),
    }


def failure_response(error: BaseException) -> Optional[ResponseEnvelope]:
    """The response envelope carried by an error, if any."""
    return getattr(error, "response", None)


def log_attempt(logger: logging.Logger, descriptor: RequestDescriptor) -> None:
    """Debug line emitted each time a request is sent."""
    if not logger.isEnabledFor(logging.DEBUG):
        return
    logger.debug(
        'Sending HTTP request "%s %s"',
        descriptor.method,
        descriptor.url,
        extra={"http": {"request": request_log_context(descriptor)}},
    )


def log_failure(
    logger: logging.Logger,
    descriptor: RequestDescriptor,
    error: BaseException,
) -> None:
    """Error line emitted once per failed logical request."""
    kind = error_kind(error)
    context: dict[str, Any] = {
        "request": request_log_context(descriptor),
        "error": {
            "kind": kind.value if kind else type(error).__name__,
            "message": str(error),
        },
    }
    response = failure_response(error)
    if response is not None:
        context["response"] = response_log_context(response)

    summary = _FAILURE_MESSAGES.get(kind, "HTTP request failed")
    if response is not None:
        logger.error(
            '%s: "%s %s" -> %d %s',
            summary,
            descriptor.method,
            descriptor.url,
            response.status,
            response.status_text,
            extra={"http": context},
        )
    else:
        logger.error(
            '%s: "%s %s": %s',
            summary,
            descriptor.method,
            descriptor.url,
            error,
            extra={"http": context},
        )
