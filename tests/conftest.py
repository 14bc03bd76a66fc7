"""Shared fixtures: response factories, fake raw calls and deterministic timing."""

import json
import os
from typing import Any, Optional

import httpx
import pytest

from resilient_fetch.client import reset_default_client_for_testing
from resilient_fetch.core.request import RequestDescriptor
from resilient_fetch.core.response import ResponseEnvelope

TEST_URL = "https://api.example.com/test"


def make_response(
    status: int = 200,
    json_body: Any = None,
    text: Optional[str] = None,
    headers: Optional[dict] = None,
    url: str = TEST_URL,
    method: str = "GET",
    history: Optional[list] = None,
) -> httpx.Response:
    """Build a real httpx.Response attached to a request."""
    request = httpx.Request(method, url)
    if json_body is not None:
        return httpx.Response(
            status, json=json_body, headers=headers, request=request, history=history
        )
    return httpx.Response(
        status, text=text or "", headers=headers, request=request, history=history
    )


def make_envelope(
    status: int = 200,
    data: Any = None,
    data_string: Optional[str] = None,
    is_json: Optional[bool] = None,
    status_text: str = "",
    headers: Optional[dict] = None,
) -> ResponseEnvelope:
    """Build an envelope directly, bypassing materialization."""
    if is_json is None:
        is_json = data is not None
    if data_string is None:
        data_string = json.dumps(data) if is_json else ""
    return ResponseEnvelope(
        ok=200 <= status < 300,
        status=status,
        status_text=status_text or httpx.codes.get_reason_phrase(status),
        headers=httpx.Headers(headers or {}),
        data=data if is_json else None,
        is_json=is_json,
        data_string=data_string,
        url=TEST_URL,
        redirected=False,
    )


class RawCallRecorder:
    """Fake raw request returning scripted outcomes in order.

    Each outcome is an ``httpx.Response``, an exception to raise, or an async
    callable taking the descriptor. The last outcome repeats once the script
    runs out.
    """

    def __init__(self, *outcomes: Any):
        self.outcomes = list(outcomes) or [make_response()]
        self.calls: list[RequestDescriptor] = []

    @property
    def call_count(self) -> int:
        return len(self.calls)

    async def __call__(self, descriptor: RequestDescriptor) -> httpx.Response:
        self.calls.append(descriptor)
        outcome = self.outcomes[min(len(self.calls), len(self.outcomes)) - 1]
        if isinstance(outcome, BaseException):
            raise outcome
        if callable(outcome):
            return await outcome(descriptor)
        return outcome


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSleeper:
    """Records requested delays and advances the paired clock instead of sleeping."""

    def __init__(self, clock: Optional[FakeClock] = None):
        self.clock = clock
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        if self.clock is not None:
            self.clock.advance(seconds)


@pytest.fixture
def response_factory():
    return make_response


@pytest.fixture
def envelope_factory():
    return make_envelope


@pytest.fixture
def recorder_factory():
    return RawCallRecorder


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleeper(clock):
    return FakeSleeper(clock)


@pytest.fixture
def descriptor():
    return RequestDescriptor(url=TEST_URL)


@pytest.fixture(autouse=True)
def reset_default_client():
    """Fresh default client per test."""
    reset_default_client_for_testing()
    yield
    reset_default_client_for_testing()


@pytest.fixture(autouse=True)
def clean_fetch_env(monkeypatch):
    """Isolate tests from RESILIENT_FETCH_* variables in the outer environment."""
    for name in list(os.environ):
        if name.startswith("RESILIENT_FETCH_"):
            monkeypatch.delenv(name, raising=False)
