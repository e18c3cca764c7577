"""Unit tests for PageFetcher."""

import asyncio
from urllib.parse import parse_qs

import httpx
import pytest

from harvest.exceptions import FetchFailed
from harvest.infrastructure.fetcher import FetchedPage, PageFetcher, RequestOptions


class RecordingSleep:
    """Stands in for asyncio.sleep and records requested pauses."""

    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


def make_fetcher(handler, **kwargs):
    sleep = RecordingSleep()
    fetcher = PageFetcher(transport=httpx.MockTransport(handler), sleep=sleep, **kwargs)
    return fetcher, sleep


class TestFetch:
    """Tests for successful fetches."""

    @pytest.mark.asyncio
    async def test_returns_page(self):
        def handler(request):
            return httpx.Response(200, text="<html><body>ok</body></html>")

        fetcher, sleep = make_fetcher(handler)
        page = await fetcher.fetch("https://shop.example.com/products")

        assert isinstance(page, FetchedPage)
        assert page.status_code == 200
        assert page.ok
        assert "ok" in page.body
        assert page.final_url == "https://shop.example.com/products"
        assert sleep.calls == []

    @pytest.mark.asyncio
    async def test_error_status_is_returned(self):
        """HTTP error statuses are not retried or raised."""
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(503, text="Just a moment...")

        fetcher, _ = make_fetcher(handler)
        page = await fetcher.fetch("https://shop.example.com/")

        assert page.status_code == 503
        assert not page.ok
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_sends_headers_and_cookies(self):
        seen = {}

        def handler(request):
            seen["ua"] = request.headers.get("user-agent")
            seen["cookie"] = request.headers.get("cookie")
            return httpx.Response(200, text="")

        fetcher, _ = make_fetcher(handler)
        options = RequestOptions(headers={"User-Agent": "TestAgent/1.0"}, cookies={"cf_clearance": "abc"})
        await fetcher.fetch("https://shop.example.com/", options)

        assert seen["ua"] == "TestAgent/1.0"
        assert "cf_clearance=abc" in seen["cookie"]

    @pytest.mark.asyncio
    async def test_collects_response_cookies(self):
        def handler(request):
            return httpx.Response(200, text="", headers={"set-cookie": "session=xyz; Path=/"})

        fetcher, _ = make_fetcher(handler)
        page = await fetcher.fetch("https://shop.example.com/")

        assert page.cookies == {"session": "xyz"}

    @pytest.mark.asyncio
    async def test_form_post(self):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["form"] = parse_qs(request.content.decode())
            return httpx.Response(200, text="thanks")

        fetcher, _ = make_fetcher(handler)
        await fetcher.fetch("https://shop.example.com/", form_data={"g-recaptcha-response": "token"})

        assert seen["method"] == "POST"
        assert seen["form"] == {"g-recaptcha-response": ["token"]}

    @pytest.mark.asyncio
    async def test_follows_redirects(self):
        def handler(request):
            if request.url.path == "/old":
                return httpx.Response(302, headers={"location": "https://shop.example.com/new"})
            return httpx.Response(200, text="moved")

        fetcher, _ = make_fetcher(handler)
        page = await fetcher.fetch("https://shop.example.com/old")

        assert page.status_code == 200
        assert page.final_url == "https://shop.example.com/new"

    @pytest.mark.asyncio
    async def test_redirect_loop_fails_without_retry(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(302, headers={"location": "https://shop.example.com/loop"})

        fetcher, sleep = make_fetcher(handler, max_redirects=2)

        with pytest.raises(FetchFailed) as exc_info:
            await fetcher.fetch("https://shop.example.com/loop")

        assert exc_info.value.attempts == 1
        assert len(calls) == 3
        assert sleep.calls == []


class TestRetry:
    """Tests for bounded retry of transport failures."""

    @pytest.mark.asyncio
    async def test_recovers_after_transient_errors(self):
        attempts = []

        def handler(request):
            attempts.append(request)
            if len(attempts) < 3:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(200, text="finally")

        fetcher, sleep = make_fetcher(handler, retry_delay=2.0)
        page = await fetcher.fetch("https://shop.example.com/")

        assert page.body == "finally"
        assert len(attempts) == 3
        assert sleep.calls == [2.0, 2.0]

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self):
        attempts = []

        def handler(request):
            attempts.append(request)
            raise httpx.ConnectError("connection refused", request=request)

        fetcher, sleep = make_fetcher(handler, max_attempts=3, retry_delay=0.5)

        with pytest.raises(FetchFailed, match="after 3 attempts") as exc_info:
            await fetcher.fetch("https://shop.example.com/")

        assert len(attempts) == 3
        # No pause after the final attempt
        assert sleep.calls == [0.5, 0.5]
        assert exc_info.value.url == "https://shop.example.com/"
        assert isinstance(exc_info.value.last_error, httpx.ConnectError)

    @pytest.mark.asyncio
    async def test_timeout_is_retried(self):
        async def handler(request):
            await asyncio.sleep(1)
            return httpx.Response(200, text="too late")

        fetcher, sleep = make_fetcher(handler, timeout=0.01, max_attempts=2)

        with pytest.raises(FetchFailed):
            await fetcher.fetch("https://shop.example.com/slow")

        assert len(sleep.calls) == 1


class TestRequestOptions:
    """Tests for RequestOptions."""

    def test_copy_is_independent(self):
        original = RequestOptions(headers={"A": "1"}, cookies={"c": "1"})
        clone = original.copy(follow_redirects=False)

        clone.headers["B"] = "2"
        clone.cookies["d"] = "2"

        assert original.headers == {"A": "1"}
        assert original.cookies == {"c": "1"}
        assert original.follow_redirects is True
        assert clone.follow_redirects is False
