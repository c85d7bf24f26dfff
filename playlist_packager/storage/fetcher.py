"""
HTTP fetcher for media that is reachable through a public URL.

Used as a second source while serializing a package: when the store read for
a video fails, or when a video only carries a thumbnail URL, the bytes are
fetched over HTTP instead. Requests are rate limited so a large export does
not hammer the CDN.
"""

import asyncio
from typing import Optional

import aiohttp
from asyncio_throttle import Throttler

from ..core.exceptions import NotFoundError, TransportError
from ..utils.logger import get_logger


class MediaFetcher:
    """
    Rate limited aiohttp client

    Use as an async context manager so the session is always closed:

        async with MediaFetcher(timeout=30, rate_limit=5) as fetcher:
            data = await fetcher.fetch(url)
    """

    def __init__(self, timeout: int = 30, rate_limit: int = 5, user_agent: str = "Playlist-Packager/0.3"):
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.throttler = Throttler(rate_limit=max(int(rate_limit), 1), period=1.0)
        self.user_agent = user_agent
        self._session: Optional[aiohttp.ClientSession] = None
        self.logger = get_logger(__name__)

    async def __aenter__(self) -> "MediaFetcher":
        self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=self.timeout,
                headers={'User-Agent': self.user_agent},
            )
        return self._session

    async def fetch(self, url: str) -> bytes:
        """
        Download ``url`` and return the body

        Raises:
            NotFoundError: The server answered 404
            TransportError: Any other HTTP error status, timeout or connection failure
        """
        session = self._ensure_session()
        async with self.throttler:
            try:
                async with session.get(url) as response:
                    if response.status == 404:
                        raise NotFoundError(f"Media not found at {url}", details={'url': url})
                    if response.status >= 400:
                        raise TransportError(
                            f"HTTP {response.status} fetching {url}",
                            details={'url': url, 'status': response.status},
                        )
                    data = await response.read()
            except aiohttp.ClientError as e:
                raise TransportError(f"Failed to fetch {url}: {e}", details={'url': url}) from e
            except asyncio.TimeoutError as e:
                raise TransportError(f"Timed out fetching {url}", details={'url': url}) from e

        self.logger.debug(f"Fetched {len(data)} bytes from {url}")
        return data

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
