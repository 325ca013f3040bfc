"""MusicBrainz HTTP client with rate limiting, used to backfill catalog identifiers."""

import asyncio
import logging
from typing import Any, cast

import httpx

from tunesync.config.settings import MusicBrainzSettings
from tunesync.domain.entities import CatalogIdentifiers

logger = logging.getLogger(__name__)


class MusicBrainzClient:
    """HTTP client for MusicBrainz recording searches."""

    API_BASE_URL = "https://musicbrainz.org/ws/2"
    RATE_LIMIT_DELAY = 1.0  # 1 request per second as per MusicBrainz guidelines

    # Hey future me, MusicBrainz is STRICT about rate limiting - 1 req/sec or they
    # IP-ban you. Prefetch workers can all end up here at once (identifier backfill),
    # so the lock serialises every request through _rate_limited_request.
    def __init__(self, settings: MusicBrainzSettings) -> None:
        """Initialize MusicBrainz client.

        Args:
            settings: MusicBrainz configuration settings
        """
        self.settings = settings
        self._client: httpx.AsyncClient | None = None
        self._last_request_time: float = 0.0
        self._rate_limit_lock = asyncio.Lock()

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client.

        MusicBrainz rejects requests without "AppName/Version ( contact )" User-Agent.
        """
        if self._client is None:
            user_agent = (
                f"{self.settings.app_name}/{self.settings.app_version} "
                f"( {self.settings.contact} )"
            )
            self._client = httpx.AsyncClient(
                base_url=self.API_BASE_URL,
                headers={"User-Agent": user_agent, "Accept": "application/json"},
                timeout=30.0,
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "MusicBrainzClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def _rate_limited_request(
        self, method: str, url: str, **kwargs: Any
    ) -> httpx.Response:
        """Make a rate-limited request to the MusicBrainz API.

        _last_request_time is updated AFTER the response arrives so slow responses
        don't eat into the next request's delay.

        Raises:
            httpx.HTTPError: If the request fails
        """
        async with self._rate_limit_lock:
            loop = asyncio.get_running_loop()
            time_since_last = loop.time() - self._last_request_time
            if time_since_last < self.RATE_LIMIT_DELAY:
                await asyncio.sleep(self.RATE_LIMIT_DELAY - time_since_last)

            client = await self._get_client()
            response = await client.request(method, url, **kwargs)
            self._last_request_time = loop.time()
            return response

    async def search_recording(
        self,
        artist: str,
        title: str,
        album: str | None = None,
        limit: int = 5,
    ) -> list[dict[str, Any]]:
        """Search recordings by artist, title and optionally release title.

        Quotes around each value make Lucene treat them as phrases, without them
        "The Beatles" becomes "the OR beatles".

        Returns:
            Recording dicts, best match first

        Raises:
            httpx.HTTPError: If the request fails
        """
        query_parts = []
        if artist:
            query_parts.append(f'artist:"{_escape(artist)}"')
        if title:
            query_parts.append(f'recording:"{_escape(title)}"')
        if album:
            query_parts.append(f'release:"{_escape(album)}"')
        if not query_parts:
            return []

        response = await self._rate_limited_request(
            "GET",
            "/recording",
            params={"query": " AND ".join(query_parts), "fmt": "json", "limit": limit},
        )
        response.raise_for_status()
        data = response.json()
        return cast(list[dict[str, Any]], data.get("recordings", []))

    async def lookup_identifiers(
        self, artist: str, album: str, track: str
    ) -> CatalogIdentifiers:
        """Best-guess recording and release ids for a track.

        Prefers a release whose title equals the album (case-insensitive), else the
        first release of the top recording.

        Returns:
            CatalogIdentifiers, empty when nothing was found

        Raises:
            httpx.HTTPError: If the request fails
        """
        recordings = await self.search_recording(artist, track, album)
        if not recordings:
            return CatalogIdentifiers()

        wanted = album.strip().lower() if album else ""
        for recording in recordings:
            for release in recording.get("releases", []) or []:
                if wanted and str(release.get("title", "")).strip().lower() == wanted:
                    return CatalogIdentifiers(
                        track_id=recording.get("id"), release_id=release.get("id")
                    )

        top = recordings[0]
        releases = top.get("releases", []) or []
        return CatalogIdentifiers(
            track_id=top.get("id"),
            release_id=releases[0].get("id") if releases else None,
        )


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')
