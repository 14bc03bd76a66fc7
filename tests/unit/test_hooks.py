"""Tests for lifecycle hook invocation."""

import pytest

from resilient_fetch.core.hooks import HookRunner, LifecycleHooks
from resilient_fetch.core.request import RequestInit

URL = "https://api.example.com/items"


class TestPreRequest:
    """pre_request may rewrite url and init."""

    @pytest.mark.asyncio
    async def test_no_hook_passes_through(self):
        init = RequestInit(method="GET")
        assert await HookRunner().run_pre_request(URL, init) == (URL, init)

    @pytest.mark.asyncio
    async def test_sync_hook_rewrites(self):
        def rewrite(url, init):
            return url + "?page=2", init.replace(method="HEAD")

        runner = HookRunner(LifecycleHooks(pre_request=rewrite))
        url, init = await runner.run_pre_request(URL, RequestInit())
        assert url == URL + "?page=2"
        assert init.method == "HEAD"

    @pytest.mark.asyncio
    async def test_async_hook_rewrites(self):
        async def rewrite(url, init):
            return url.replace("items", "things"), init

        runner = HookRunner(LifecycleHooks(pre_request=rewrite))
        url, _ = await runner.run_pre_request(URL, RequestInit())
        assert url == "https://api.example.com/things"

    @pytest.mark.asyncio
    async def test_none_result_keeps_values(self):
        seen = []
        runner = HookRunner(LifecycleHooks(pre_request=lambda url, init: seen.append(url)))
        init = RequestInit()
        assert await runner.run_pre_request(URL, init) == (URL, init)
        assert seen == [URL]

    @pytest.mark.asyncio
    async def test_bad_result_rejected(self):
        runner = HookRunner(LifecycleHooks(pre_request=lambda url, init: 42))
        with pytest.raises(TypeError, match="pre_request hook"):
            await runner.run_pre_request(URL, RequestInit())


class TestPostResponse:
    """Success and error hooks."""

    @pytest.mark.asyncio
    async def test_success_hook_replaces_envelope(self, envelope_factory):
        original = envelope_factory(200, data={"a": 1})
        replacement = envelope_factory(200, data={"a": 2})
        runner = HookRunner(LifecycleHooks(post_response_success=lambda u, i, r: replacement))
        assert await runner.run_post_response_success(URL, RequestInit(), original) is replacement

    @pytest.mark.asyncio
    async def test_success_hook_none_keeps_envelope(self, envelope_factory):
        original = envelope_factory(200, data={"a": 1})
        runner = HookRunner(LifecycleHooks(post_response_success=lambda u, i, r: None))
        assert await runner.run_post_response_success(URL, RequestInit(), original) is original

    @pytest.mark.asyncio
    async def test_error_hook_receives_response(self, envelope_factory):
        envelope = envelope_factory(500, data={"error": "x"})
        seen = []

        async def on_error(url, init, error, response):
            seen.append((error, response))

        runner = HookRunner(LifecycleHooks(post_response_error=on_error))
        error = RuntimeError("boom")
        assert await runner.run_post_response_error(URL, RequestInit(), error, envelope) is error
        assert seen == [(error, envelope)]

    @pytest.mark.asyncio
    async def test_error_hook_replaces_error(self):
        replacement = LookupError("mapped")
        runner = HookRunner(LifecycleHooks(post_response_error=lambda u, i, e, r: replacement))
        result = await runner.run_post_response_error(URL, RequestInit(), RuntimeError("x"))
        assert result is replacement

    @pytest.mark.asyncio
    async def test_error_hook_cannot_return_success(self, envelope_factory):
        envelope = envelope_factory(200, data={})
        runner = HookRunner(LifecycleHooks(post_response_error=lambda u, i, e, r: envelope))
        with pytest.raises(TypeError, match="post_response_error hook"):
            await runner.run_post_response_error(URL, RequestInit(), RuntimeError("x"))

    def test_unknown_hook_rejected(self):
        with pytest.raises(ValueError):
            LifecycleHooks(on_retry=lambda: None)
