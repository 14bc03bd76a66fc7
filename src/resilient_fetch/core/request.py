"""Request description and preparation.

``RequestInit`` is the caller-facing description of a request, with every field
optional so that layers can be merged. ``RequestDescriptor`` is the immutable,
fully prepared form the policy chain and transport operate on.
"""

from __future__ import annotations

import dataclasses
import json
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Union

import httpx

from resilient_fetch.core.context import generate_correlation_id, get_correlation_id, get_user_agent
from resilient_fetch.core.resilience.config import coerce_request_options, merge_options
from resilient_fetch.core.resilience.models import RequestOptions

CORRELATION_ID_HEADER = "X-Correlation-Id"
USER_AGENT_HEADER = "User-Agent"
CONTENT_TYPE_HEADER = "Content-Type"
DEFAULT_METHOD = "GET"


@dataclass(frozen=True)
class RequestInit:
    """Caller-supplied request description.

    Fields left as ``None`` never override a lower-precedence layer; headers
    merge key by key.
    """

    method: Optional[str] = None
    headers: Optional[Mapping[str, str]] = None
    body: Any = None
    extensions: Optional[Mapping[str, Any]] = None
    options: Optional[Union[RequestOptions, Mapping[str, Any]]] = None

    def replace(self, **changes: Any) -> "RequestInit":
        return dataclasses.replace(self, **changes)


@dataclass(frozen=True)
class RequestDescriptor:
    """Immutable request as seen by policies and the transport."""

    url: str
    method: str = DEFAULT_METHOD
    headers: Mapping[str, str] = field(default_factory=dict)
    body: Any = None
    extensions: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_init(cls, url: str, init: RequestInit) -> "RequestDescriptor":
        return cls(
            url=url,
            method=(init.method or DEFAULT_METHOD).upper(),
            headers=dict(init.headers or {}),
            body=init.body,
            extensions=dict(init.extensions or {}),
        )

    def replace(self, **changes: Any) -> "RequestDescriptor":
        return dataclasses.replace(self, **changes)

    def header(self, name: str) -> Optional[str]:
        """Case-insensitive header lookup."""
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None

    @property
    def host(self) -> str:
        return httpx.URL(self.url).host

    @property
    def path(self) -> str:
        return httpx.URL(self.url).path

    @property
    def query(self) -> str:
        return httpx.URL(self.url).query.decode("ascii", errors="replace")


def merge_headers(*layers: Optional[Mapping[str, str]]) -> dict[str, str]:
    """Merge header mappings left to right.

    Later layers win; keys are compared case-insensitively and the later
    spelling is kept.
    """
    merged: dict[str, str] = {}
    for layer in layers:
        if not layer:
            continue
        for key, value in layer.items():
            for existing in [k for k in merged if k.lower() == key.lower()]:
                del merged[existing]
            merged[key] = value
    return merged


def merge_init(base: Optional[RequestInit], override: Optional[RequestInit]) -> RequestInit:
    """Layer ``override`` over ``base``.

    Headers and extensions merge key by key, set scalar fields override, and
    options merge field by field.
    """
    if base is None:
        return override or RequestInit()
    if override is None:
        return base

    headers = merge_headers(base.headers, override.headers)
    extensions = {**(base.extensions or {}), **(override.extensions or {})}
    return RequestInit(
        method=override.method if override.method is not None else base.method,
        headers=headers or None,
        body=override.body if override.body is not None else base.body,
        extensions=extensions or None,
        options=merge_options(
            coerce_request_options(base.options),
            coerce_request_options(override.options),
        ),
    )


def _is_json_content_type(headers: Mapping[str, str]) -> bool:
    for key, value in headers.items():
        if key.lower() == CONTENT_TYPE_HEADER.lower():
            return "application/json" in value.lower()
    return False


def prepare_default_init(init: Optional[RequestInit] = None) -> RequestInit:
    """Fill in defaults for a logical request.

    - method defaults to ``GET``
    - ``X-Correlation-Id`` comes from the current correlation context, or a
      fresh id per logical request; ``User-Agent`` from the context when set.
      Caller headers win over both.
    - mapping and list bodies are serialized to JSON text when the
      ``Content-Type`` is ``application/json``.
    """
    init = init or RequestInit()

    context_headers = {CORRELATION_ID_HEADER: get_correlation_id() or generate_correlation_id()}
    user_agent = get_user_agent()
    if user_agent:
        context_headers[USER_AGENT_HEADER] = user_agent
    headers = merge_headers(context_headers, init.headers)

    body = init.body
    if isinstance(body, (Mapping, list)) and _is_json_content_type(headers):
        body = json.dumps(body)

    return init.replace(
        method=(init.method or DEFAULT_METHOD).upper(),
        headers=headers,
        body=body,
    )
