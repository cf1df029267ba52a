import asyncio
import logging
from pathlib import Path
from typing import Optional

import httpx

from strmthumb.domain.errors import SourceUnavailableError, UnsafeSourceError
from strmthumb.infrastructure.url_guard import UrlGuard

logger = logging.getLogger(__name__)

_HEAD_UNSUPPORTED = (405, 501)


class HttpProbe:
    """Reachability checks and ranged sample downloads over httpx.

    Redirects are followed, but every hop is re-validated by the UrlGuard.
    """

    def __init__(
        self,
        guard: UrlGuard,
        client: Optional[httpx.AsyncClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.guard = guard
        self._client = client
        self._transport = transport
        self._owns_client = client is None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                follow_redirects=True,
                transport=self._transport,
                event_hooks={"request": [self._check_request]},
                headers={"User-Agent": "strmthumb"},
            )
        return self._client

    async def _check_request(self, request: httpx.Request) -> None:
        await self.guard.validate(str(request.url))

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def is_reachable(self, url: str, timeout: float) -> bool:
        return await self.resolve(url, timeout) is not None

    async def resolve(self, url: str, timeout: float) -> Optional[str]:
        """Returns the URL the resource finally lives at, or None when unreachable.

        The result has passed the UrlGuard on every redirect hop, so ffprobe
        and ffmpeg can be pointed at it instead of the original URL.
        """
        try:
            response = await self.client.head(url, timeout=timeout)
            if response.status_code in _HEAD_UNSUPPORTED:
                response = await self._ranged_get(url, timeout, last_byte=0)
        except UnsafeSourceError:
            raise
        except httpx.HTTPError as e:
            logger.warning(f"Video URL unreachable: {url} ({e.__class__.__name__}: {e})")
            return None
        if response.status_code >= 400:
            logger.warning(f"Video URL unreachable: {url} (HTTP {response.status_code})")
            return None
        final_url = str(response.url)
        if final_url != url:
            logger.debug(f"Video URL redirected: {url} -> {final_url}")
        return final_url

    async def _ranged_get(self, url: str, timeout: float, last_byte: int) -> httpx.Response:
        headers = {"Range": f"bytes=0-{last_byte}"}
        async with self.client.stream("GET", url, headers=headers, timeout=timeout) as response:
            return response

    async def download_sample(self, url: str, dest: Path, max_bytes: int, timeout: float) -> int:
        """Downloads at most ``max_bytes`` from the start of ``url`` into ``dest``."""
        try:
            return await asyncio.wait_for(self._download(url, dest, max_bytes, timeout), timeout=timeout)
        except asyncio.TimeoutError:
            raise SourceUnavailableError(f"Sample download timed out after {timeout:g}s")
        except httpx.HTTPError as e:
            raise SourceUnavailableError(f"Sample download failed: {e}")

    async def _download(self, url: str, dest: Path, max_bytes: int, timeout: float) -> int:
        dest.parent.mkdir(parents=True, exist_ok=True)
        written = 0
        headers = {"Range": f"bytes=0-{max_bytes - 1}"}
        async with self.client.stream("GET", url, headers=headers, timeout=timeout) as response:
            if response.status_code >= 400:
                raise SourceUnavailableError(f"Sample download failed: HTTP {response.status_code}")
            with open(dest, "wb") as f:
                async for chunk in response.aiter_bytes():
                    remaining = max_bytes - written
                    if remaining <= 0:
                        break
                    chunk = chunk[:remaining]
                    f.write(chunk)
                    written += len(chunk)
        if written == 0:
            raise SourceUnavailableError("Sample download returned no data")
        return written
