"""Shared fixtures for integration tests: an in-process HTTP server via httpx.MockTransport."""

from typing import Callable, Dict, List

import httpx
import pytest

from resilient_fetch import FetchBuilder, HttpxTransport

Handler = Callable[[httpx.Request], httpx.Response]


class MockServer:
    """Routes requests by path to scripted handlers and records every request."""

    def __init__(self) -> None:
        self.routes: Dict[str, List[Handler]] = {}
        self.requests: List[httpx.Request] = []

    def route(self, path: str, *handlers: Handler) -> None:
        """Register handlers for ``path``; the last one repeats."""
        self.routes[path] = list(handlers)

    def hits(self, path: str) -> int:
        return sum(1 for request in self.requests if request.url.path == path)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handlers = self.routes.get(request.url.path)
        if not handlers:
            return httpx.Response(404, json={"error": f"no route for {request.url.path}"})
        handler = handlers.pop(0) if len(handlers) > 1 else handlers[0]
        return handler(request)


async def _no_sleep(seconds: float) -> None:
    return None


@pytest.fixture
def server():
    return MockServer()


@pytest.fixture
def builder(server):
    """Builder sending through the mock server with backoff sleeps skipped."""
    transport = HttpxTransport(transport=httpx.MockTransport(server))
    return FetchBuilder().with_transport(transport).with_timing(sleep_func=_no_sleep)
