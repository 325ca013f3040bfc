"""CoverArtArchive HTTP client.

Hey future me - CoverArtArchive (CAA) hosts the artwork for MusicBrainz releases. We only
use it as the artwork fallback when a file has no embedded picture but we know its
release id. Not every release has artwork, so 404 is a normal answer, not an error.
"""

import asyncio
import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)


class CoverArtArchiveClient:
    """HTTP client fetching front cover images from CoverArtArchive."""

    API_BASE_URL = "https://coverartarchive.org"
    # CAA has no strict limit like MusicBrainz, but be nice.
    RATE_LIMIT_DELAY = 0.2

    def __init__(self, user_agent: str = "TuneSync/1.0") -> None:
        self._user_agent = user_agent
        self._client: httpx.AsyncClient | None = None
        self._last_request_time: float = 0.0
        self._rate_limit_lock = asyncio.Lock()

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client.

        CAA answers with 307 redirects to archive.org, so redirects must be followed.
        """
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.API_BASE_URL,
                headers={"User-Agent": self._user_agent},
                timeout=30.0,
                follow_redirects=True,
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "CoverArtArchiveClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def _rate_limited_request(
        self, method: str, url: str, **kwargs: Any
    ) -> httpx.Response:
        async with self._rate_limit_lock:
            loop = asyncio.get_running_loop()
            time_since_last = loop.time() - self._last_request_time
            if time_since_last < self.RATE_LIMIT_DELAY:
                await asyncio.sleep(self.RATE_LIMIT_DELAY - time_since_last)

            client = await self._get_client()
            response = await client.request(method, url, **kwargs)
            self._last_request_time = loop.time()
            return response

    async def get_front_cover(self, release_id: str, size: int = 500) -> bytes | None:
        """Download the front cover thumbnail of a release.

        Args:
            release_id: MusicBrainz release id
            size: Thumbnail size (250, 500 or 1200)

        Returns:
            Image bytes, or None if the release has no front cover

        Raises:
            httpx.HTTPError: On transport errors or non-404 error statuses
        """
        response = await self._rate_limited_request(
            "GET", f"/release/{release_id}/front-{size}"
        )
        if response.status_code == 404:
            logger.debug("No front cover on CoverArtArchive for release %s", release_id)
            return None
        response.raise_for_status()
        return response.content
