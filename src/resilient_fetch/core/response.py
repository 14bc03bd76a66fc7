"""Response materialization.

Turns a raw ``httpx.Response`` into a ``ResponseEnvelope``: the body is read
once, JSON bodies are parsed and optionally validated, and non-2xx responses
that were not redirected raise ``HTTPResponseError``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, replace
from typing import Any, Optional

import httpx

from resilient_fetch.core.errors import HTTPResponseError, SchemaIssue, SchemaValidationError
from resilient_fetch.core.schema import Validator, validate_schema

JSON_CONTENT_TYPE = "application/json"


@dataclass(frozen=True)
class ResponseEnvelope:
    """Normalized view of a fully read response.

    ``is_json`` implies ``data_string`` parses as JSON. ``data`` is only set
    for JSON bodies, and holds the validated value when a schema was applied.
    """

    ok: bool
    status: int
    status_text: str
    headers: httpx.Headers
    data: Any
    is_json: bool
    data_string: str
    url: str
    redirected: bool
    raw_response: Optional[httpx.Response] = None

    @property
    def content_type(self) -> str:
        return self.headers.get("Content-Type", "")


def _response_url(raw: httpx.Response) -> str:
    try:
        return str(raw.url)
    except RuntimeError:
        # Response built without an attached request
        return ""


def is_json_content_type(content_type: Optional[str]) -> bool:
    return bool(content_type) and JSON_CONTENT_TYPE in content_type.lower()


async def read_envelope(raw: httpx.Response, url: Optional[str] = None) -> ResponseEnvelope:
    """Read the body of ``raw`` and build an envelope without validation.

    ``httpx`` caches the body after the first read, so calling this more than
    once on the same response yields equal envelopes.
    """
    await raw.aread()
    data_string = raw.text

    data: Any = None
    is_json = False
    if is_json_content_type(raw.headers.get("Content-Type")):
        try:
            data = json.loads(data_string)
            is_json = True
        except ValueError:
            data = None

    return ResponseEnvelope(
        ok=raw.is_success,
        status=raw.status_code,
        status_text=raw.reason_phrase,
        headers=raw.headers,
        data=data,
        is_json=is_json,
        data_string=data_string,
        url=_response_url(raw) or url or "",
        redirected=bool(raw.history),
        raw_response=raw,
    )


async def materialize_response(
    raw: httpx.Response,
    schema: Any = None,
    validator: Optional[Validator] = None,
    url: Optional[str] = None,
) -> ResponseEnvelope:
    """Materialize ``raw`` into an envelope, validating or raising as needed.

    Args:
        raw: Response returned by the transport.
        schema: Optional schema applied to successful JSON bodies.
        validator: Validation function ``(schema, value) -> value``.
        url: Request URL, used when the response carries none.

    Returns:
        The envelope of a successful (or redirected) response.

    Raises:
        HTTPResponseError: Non-2xx response that was not redirected.
        SchemaValidationError: JSON body did not satisfy ``schema``, or the
            validator raised any other exception.
    """
    envelope = await read_envelope(raw, url=url)

    if not envelope.ok and not envelope.redirected:
        raise HTTPResponseError(envelope)

    if schema is None or not envelope.is_json:
        return envelope

    validate = validator or validate_schema
    try:
        validated = validate(schema, envelope.data)
    except SchemaValidationError as exc:
        failed = replace(envelope, data=None)
        raise SchemaValidationError(exc.issues, response=failed) from exc
    except Exception as exc:
        failed = replace(envelope, data=None)
        issue = SchemaIssue(str(exc) or type(exc).__name__)
        raise SchemaValidationError([issue], response=failed) from exc
    return replace(envelope, data=validated)


