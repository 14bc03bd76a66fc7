"""HTTP-level error classes.

``HTTPResponseError`` is raised for any non-2xx response that was not
redirected; its message is assembled from whatever structured error fields the
body carries. ``RetryError`` marks an HTTP failure that survived every retry
attempt. ``SchemaValidationError`` is raised when a JSON body does not satisfy
the configured schema.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional, Sequence

from resilient_fetch.core.errors.base import ErrorKind, FetchError

if TYPE_CHECKING:
    from resilient_fetch.core.resilience.models import Attempt
    from resilient_fetch.core.response import ResponseEnvelope


def build_error_message(response: ResponseEnvelope, msg: Optional[str] = None) -> str:
    """Best-effort extraction of an error message from a failed response.

    Preference order:
        1. ``{"error": {"type", "code", "message"}}`` as ``(type): (code): message``
        2. ``{"error": "..."}``
        3. ``{"errorMessages": [...]}`` joined with ``"; "``
        4. the raw body text

    Args:
        response: Materialized envelope of the failed response.
        msg: Optional prefix, separated from the body part by ``"; "``.

    Returns:
        Message always ending with ``HTTP Error Response: <status> <status_text>``.
    """
    error_str = ""
    error_is_set = False
    data: Any = response.data if response.is_json else None

    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict):
            if error.get("type"):
                error_str += f"({error['type']}): "
                error_is_set = True
            if error.get("code"):
                error_str += f"({error['code']}): "
                error_is_set = True
            if error.get("message"):
                error_str += f"{error['message']}"
                error_is_set = True
        elif isinstance(error, str) and error:
            error_str += error
            error_is_set = True

        error_messages = data.get("errorMessages")
        if isinstance(error_messages, list):
            error_str += "; ".join(str(item) for item in error_messages)
            error_is_set = True

    if not error_is_set:
        error_str = response.data_string

    prefix = f"{msg}; " if msg else ""
    return f"{prefix}{error_str}; HTTP Error Response: {response.status} {response.status_text}"


class HTTPResponseError(FetchError):
    """Transport returned a non-2xx, non-redirected response.

    Attributes:
        response: Envelope with the fully read body of the failed response.
    """

    kind = ErrorKind.HTTP_RESPONSE

    def __init__(self, response: ResponseEnvelope, msg: Optional[str] = None):
        super().__init__(build_error_message(response, msg))
        self.response = response

    @property
    def status(self) -> int:
        return self.response.status


class RetryError(HTTPResponseError):
    """Retry attempts ran out on an HTTP-level failure.

    Attributes:
        response: Envelope of the *last* failed attempt.
        attempts: History of every attempt made for the logical request.
    """

    kind = ErrorKind.RETRY

    def __init__(
        self,
        response: ResponseEnvelope,
        attempts: Sequence[Attempt] = (),
    ):
        super().__init__(response, "Retry Error: Ran out of retry attempts.")
        self.attempts = tuple(attempts)


@dataclass(frozen=True)
class SchemaIssue:
    """A single schema validation failure."""

    message: str
    path: tuple[Any, ...] = ()

    def __str__(self) -> str:
        if not self.path:
            return self.message
        location = ".".join(str(part) for part in self.path)
        return f'{self.message} at "{location}"'


class SchemaValidationError(FetchError):
    """JSON body parsed but failed schema validation.

    Attributes:
        issues: Every validation failure reported by the validator.
        response: Envelope of the offending response, when available.
    """

    kind = ErrorKind.SCHEMA_VALIDATION

    def __init__(
        self,
        issues: Sequence[SchemaIssue],
        response: Optional[ResponseEnvelope] = None,
    ):
        self.issues = tuple(issues)
        self.response = response
        lines = [f"{index}. {issue}" for index, issue in enumerate(self.issues, start=1)]
        super().__init__("Schema validation failed:\n" + "\n".join(lines))
