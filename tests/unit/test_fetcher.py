"""Unit tests for the httpx-based media fetcher."""

import asyncio

import httpx
import pytest

from event_media_pipeline.adapters.fetcher import RemoteMediaFetcher
from event_media_pipeline.core.exceptions import FetchError, OversizeError
from event_media_pipeline.core.models import DEFAULT_USER_AGENT


def fetch(handler, url, **kwargs):
    async def scenario():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await RemoteMediaFetcher(client, **kwargs).fetch(url)

    return asyncio.run(scenario())


class TestRemoteMediaFetcher:
    """Tests for RemoteMediaFetcher."""

    def test_fetch_success_uses_header_mime(self):
        """Test bytes and Content-Type are returned."""
        seen = {}

        def handler(request):
            seen["user_agent"] = request.headers["user-agent"]
            return httpx.Response(200, content=b"png-bytes", headers={"content-type": "image/png"})

        media = fetch(handler, "https://cdn.test/photo")

        assert media.data == b"png-bytes"
        assert media.mime_type == "image/png"
        assert media.size == 9
        assert seen["user_agent"] == DEFAULT_USER_AGENT

    def test_fetch_falls_back_to_url_mime(self):
        """Test a non-media Content-Type falls back to the URL heuristic."""
        def handler(request):
            return httpx.Response(200, content=b"data", headers={"content-type": "application/octet-stream"})

        assert fetch(handler, "https://cdn.test/a.webp").mime_type == "image/webp"

    def test_fetch_follows_redirects(self):
        """Test redirects are followed to the final media."""
        def handler(request):
            if request.url.path == "/short":
                return httpx.Response(302, headers={"location": "https://cdn.test/final.jpg"})
            return httpx.Response(200, content=b"jpeg")

        media = fetch(handler, "https://cdn.test/short")
        assert media.data == b"jpeg"
        assert media.mime_type == "image/jpeg"

    def test_fetch_http_error(self):
        """Test non-2xx responses raise FetchError with the status."""
        def handler(request):
            return httpx.Response(404)

        with pytest.raises(FetchError, match="HTTP 404") as exc_info:
            fetch(handler, "https://cdn.test/missing.jpg")
        assert exc_info.value.status_code == 404
        assert not isinstance(exc_info.value, OversizeError)

    def test_fetch_declared_oversize(self):
        """Test a declared Content-Length over the ceiling is refused."""
        def handler(request):
            return httpx.Response(200, content=b"x" * 50)

        with pytest.raises(OversizeError) as exc_info:
            fetch(handler, "https://cdn.test/big.jpg", max_bytes=10)
        assert exc_info.value.size == 50
        assert exc_info.value.limit == 10

    def test_fetch_streamed_oversize(self):
        """Test bodies without a length are cut off at the ceiling."""
        async def chunks():
            for _ in range(5):
                yield b"x" * 8

        def handler(request):
            return httpx.Response(200, content=chunks())

        with pytest.raises(OversizeError) as exc_info:
            fetch(handler, "https://cdn.test/stream.jpg", max_bytes=20)
        assert exc_info.value.size is None

    def test_fetch_empty_body(self):
        """Test an empty body is a fetch failure."""
        def handler(request):
            return httpx.Response(200, content=b"")

        with pytest.raises(FetchError, match="Empty response body"):
            fetch(handler, "https://cdn.test/empty.jpg")

    def test_fetch_transport_error(self):
        """Test connection errors become FetchError."""
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(FetchError, match="Request failed"):
            fetch(handler, "https://cdn.test/down.jpg")

    def test_fetch_malformed_url(self):
        """Test a URL httpx cannot parse becomes FetchError."""
        def handler(request):
            raise AssertionError("no request expected")

        with pytest.raises(FetchError, match="Request failed"):
            fetch(handler, "https://cdn.test:notaport/a.jpg")
