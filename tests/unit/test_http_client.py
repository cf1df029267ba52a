import httpx
import pytest

from strmthumb.domain.errors import SourceUnavailableError, UnsafeSourceError
from strmthumb.infrastructure.http_client import HttpProbe
from strmthumb.infrastructure.url_guard import UrlGuard

pytestmark = pytest.mark.asyncio

URL = "http://93.184.216.34/video.mp4"


def _probe(handler):
    return HttpProbe(UrlGuard(), transport=httpx.MockTransport(handler))


async def test_head_ok_is_reachable():
    seen = []

    def handler(request):
        seen.append(request.method)
        return httpx.Response(200)

    probe = _probe(handler)
    try:
        assert await probe.is_reachable(URL, timeout=5) is True
    finally:
        await probe.aclose()
    assert seen == ["HEAD"]


async def test_head_404_is_unreachable():
    probe = _probe(lambda request: httpx.Response(404))
    try:
        assert await probe.is_reachable(URL, timeout=5) is False
    finally:
        await probe.aclose()


async def test_head_not_allowed_falls_back_to_ranged_get():
    seen = []

    def handler(request):
        seen.append((request.method, request.headers.get("range")))
        if request.method == "HEAD":
            return httpx.Response(405)
        return httpx.Response(206, content=b"x")

    probe = _probe(handler)
    try:
        assert await probe.is_reachable(URL, timeout=5) is True
    finally:
        await probe.aclose()
    assert seen == [("HEAD", None), ("GET", "bytes=0-0")]


async def test_connection_error_is_unreachable():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    probe = _probe(handler)
    try:
        assert await probe.is_reachable(URL, timeout=5) is False
    finally:
        await probe.aclose()


async def test_redirect_to_internal_address_is_blocked():
    def handler(request):
        if request.url.host == "93.184.216.34":
            return httpx.Response(302, headers={"Location": "http://169.254.169.254/latest/meta-data"})
        return httpx.Response(200)

    probe = _probe(handler)
    try:
        with pytest.raises(UnsafeSourceError):
            await probe.is_reachable(URL, timeout=5)
    finally:
        await probe.aclose()


async def test_download_sample_streams_limited_range(tmp_path):
    seen = {}

    def handler(request):
        seen["range"] = request.headers.get("range")
        return httpx.Response(206, content=b"a" * 5000)

    probe = _probe(handler)
    dest = tmp_path / "samples" / "x_sample.mp4"
    try:
        written = await probe.download_sample(URL, dest, max_bytes=1024, timeout=5)
    finally:
        await probe.aclose()

    assert seen["range"] == "bytes=0-1023"
    assert written == 1024
    assert dest.stat().st_size == 1024


async def test_download_sample_http_error(tmp_path):
    probe = _probe(lambda request: httpx.Response(403))
    try:
        with pytest.raises(SourceUnavailableError, match="HTTP 403"):
            await probe.download_sample(URL, tmp_path / "s.mp4", max_bytes=100, timeout=5)
    finally:
        await probe.aclose()


async def test_download_sample_empty_body(tmp_path):
    probe = _probe(lambda request: httpx.Response(200, content=b""))
    try:
        with pytest.raises(SourceUnavailableError, match="no data"):
            await probe.download_sample(URL, tmp_path / "s.mp4", max_bytes=100, timeout=5)
    finally:
        await probe.aclose()


async def test_resolve_returns_final_url_after_redirect():
    def handler(request):
        if request.url.path == "/video.mp4":
            return httpx.Response(302, headers={"Location": "http://93.184.216.40/cdn/video.mp4"})
        return httpx.Response(200)

    probe = _probe(handler)
    try:
        assert await probe.resolve(URL, timeout=5) == "http://93.184.216.40/cdn/video.mp4"
    finally:
        await probe.aclose()


async def test_resolve_unreachable_is_none():
    probe = _probe(lambda request: httpx.Response(404))
    try:
        assert await probe.resolve(URL, timeout=5) is None
    finally:
        await probe.aclose()


async def test_resolve_without_redirect_keeps_url():
    probe = _probe(lambda request: httpx.Response(200))
    try:
        assert await probe.resolve(URL, timeout=5) == URL
    finally:
        await probe.aclose()
