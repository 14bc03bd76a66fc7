"""Request context propagation.

Correlation id and user agent travel through ``contextvars`` so that every
request issued inside a ``correlation_context`` block carries the same
``X-Correlation-Id`` header, including requests made from tasks spawned
inside the block.

Usage:
    from resilient_fetch.core.context import correlation_context

    with correlation_context(correlation_id="abc-123", user_agent="billing/2.1"):
        await client("https://api.example.com/invoices")
"""

from __future__ import annotations

import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional

_correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")
_user_agent: ContextVar[str] = ContextVar("user_agent", default="")


def generate_correlation_id() -> str:
    """Return a fresh correlation id."""
    return str(uuid.uuid4())


def get_correlation_id() -> str:
    """Current correlation id, or empty string when none is set."""
    return _correlation_id.get()


def get_user_agent() -> str:
    """Current user agent, or empty string when none is set."""
    return _user_agent.get()


@contextmanager
def correlation_context(
    correlation_id: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> Iterator[str]:
    """Bind a correlation id (and optionally a user agent) for the block.

    Args:
        correlation_id: Id to bind; a fresh one is generated when omitted.
        user_agent: User agent to bind; the outer value is kept when omitted.

    Yields:
        The bound correlation id.
    """
    cid = correlation_id or generate_correlation_id()
    cid_token = _correlation_id.set(cid)
    ua_token = _user_agent.set(user_agent) if user_agent is not None else None
    try:
        yield cid
    finally:
        if ua_token is not None:
            _user_agent.reset(ua_token)
        _correlation_id.reset(cid_token)
