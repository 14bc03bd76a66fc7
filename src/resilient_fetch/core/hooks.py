"""Lifecycle hooks around a logical request.

Three optional hooks run at fixed stages:

- ``pre_request(url, init)`` before the policy chain; may return a replacement
  ``(url, init)`` pair.
- ``post_response_success(url, init, response)`` after a successful response;
  may return a replacement envelope.
- ``post_response_error(url, init, error, response)`` after the failure has
  been logged; may return a replacement exception. A failure can never be
  turned into a success.

Hooks may be plain functions or coroutine functions. Returning ``None`` leaves
the value unchanged.
"""

from __future__ import annotations

import inspect
from typing import TYPE_CHECKING, Any, Callable, Optional

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from resilient_fetch.core.request import RequestInit
    from resilient_fetch.core.response import ResponseEnvelope


class LifecycleHooks(BaseModel):
    """Optional callbacks invoked around a logical request."""

    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    pre_request: Optional[Callable[..., Any]] = Field(
        default=None, description="(url, init) -> (url, init) | None"
    )
    post_response_success: Optional[Callable[..., Any]] = Field(
        default=None, description="(url, init, response) -> ResponseEnvelope | None"
    )
    post_response_error: Optional[Callable[..., Any]] = Field(
        default=None, description="(url, init, error, response) -> Exception | None"
    )


async def _invoke(hook: Callable[..., Any], *args: Any) -> Any:
    result = hook(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


class HookRunner:
    """Invoke the configured lifecycle hooks at their stages."""

    def __init__(self, hooks: Optional[LifecycleHooks] = None):
        self.hooks = hooks or LifecycleHooks()

    async def run_pre_request(self, url: str, init: RequestInit) -> tuple[str, RequestInit]:
        """Return the (possibly rewritten) url and init for the request."""
        if self.hooks.pre_request is None:
            return url, init
        result = await _invoke(self.hooks.pre_request, url, init)
        if result is None:
            return url, init
        try:
            new_url, new_init = result
        except (TypeError, ValueError) as exc:
            raise TypeError(
                "pre_request hook must return None or a (url, init) pair, "
                f"got {type(result).__name__}"
            ) from exc
        return new_url, new_init

    async def run_post_response_success(
        self,
        url: str,
        init: RequestInit,
        response: ResponseEnvelope,
    ) -> ResponseEnvelope:
        """Return the (possibly replaced) envelope for a successful response."""
        if self.hooks.post_response_success is None:
            return response
        result = await _invoke(self.hooks.post_response_success, url, init, response)
        return response if result is None else result

    async def run_post_response_error(
        self,
        url: str,
        init: RequestInit,
        error: Exception,
        response: Optional[ResponseEnvelope] = None,
    ) -> Exception:
        """Return the exception to raise for a failed request."""
        if self.hooks.post_response_error is None:
            return error
        result = await _invoke(self.hooks.post_response_error, url, init, error, response)
        if result is None:
            return error
        if not isinstance(result, Exception):
            raise TypeError(
                "post_response_error hook must return None or an exception, "
                f"got {type(result).__name__}"
            )
        return result
