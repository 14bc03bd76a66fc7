"""Raw transport call.

The pipeline only depends on the ``RawRequest`` protocol: an async callable
taking a ``RequestDescriptor`` and returning an ``httpx.Response``.
``HttpxTransport`` is the default implementation.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional, Protocol

import httpx

from resilient_fetch.core.request import RequestDescriptor


class RawRequest(Protocol):
    """Protocol for the raw transport call."""

    async def __call__(self, descriptor: RequestDescriptor) -> httpx.Response: ...


class HttpxTransport:
    """Send requests with ``httpx.AsyncClient``, following redirects.

    Args:
        client: Caller-owned client reused for every request. When omitted a
            short-lived client is opened per request.
        transport: ``httpx`` transport for the short-lived clients, e.g.
            ``httpx.MockTransport`` in tests.
        **client_kwargs: Extra ``httpx.AsyncClient`` arguments for the
            short-lived clients.

    Deadlines are enforced by the timeout policy, so short-lived clients are
    created with ``timeout=None`` unless one is given.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        **client_kwargs: Any,
    ):
        self._client = client
        self._transport = transport
        self._client_kwargs = client_kwargs
        self._client_kwargs.setdefault("timeout", None)

    async def __call__(self, descriptor: RequestDescriptor) -> httpx.Response:
        if self._client is not None:
            return await self._send(self._client, descriptor)
        async with httpx.AsyncClient(
            transport=self._transport,
            follow_redirects=True,
            **self._client_kwargs,
        ) as client:
            return await self._send(client, descriptor)

    async def _send(self, client: httpx.AsyncClient, descriptor: RequestDescriptor) -> httpx.Response:
        kwargs: dict[str, Any] = {"headers": dict(descriptor.headers)}
        if descriptor.extensions:
            kwargs["extensions"] = dict(descriptor.extensions)

        body = descriptor.body
        if isinstance(body, (bytes, str)):
            kwargs["content"] = body
        elif isinstance(body, bytearray):
            kwargs["content"] = bytes(body)
        elif isinstance(body, Mapping):
            kwargs["data"] = dict(body)
        elif body is not None:
            kwargs["content"] = body

        return await client.request(
            descriptor.method,
            descriptor.url,
            follow_redirects=True,
            **kwargs,
        )
