"""Observability helpers: structured HTTP log records and redaction."""

from resilient_fetch.core.observability.http_log import (
    log_attempt,
    log_failure,
    request_log_context,
    response_log_context,
)
from resilient_fetch.core.observability.redaction import (
    REDACTED,
    SENSITIVE_HEADERS,
    redact_body,
    redact_data,
    redact_headers,
    redact_string,
)

__all__ = [
    "log_attempt",
    "log_failure",
    "request_log_context",
    "response_log_context",
    "REDACTED",
    "SENSITIVE_HEADERS",
    "redact_body",
    "redact_data",
    "redact_headers",
    "redact_string",
]
