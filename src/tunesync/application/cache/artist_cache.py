"""Time-bounded cache of artists known to exist in the remote library."""

import asyncio
import logging
import time
from collections.abc import Callable

from tunesync.domain.ports import IProgressSink, IRemoteCatalogClient

logger = logging.getLogger(__name__)

DEFAULT_ARTIST_CACHE_TTL_SECONDS = 2 * 60 * 60


# Hey future me - unlike InMemoryCache this is ONE value (the whole artist set) with
# ONE timestamp. A refresh pages through the user's entire upload library, which takes
# a while for big libraries, so it must never run twice at once. The lock is
# double-checked: callers that queued behind a refresh find the set fresh and return
# without fetching again.
class ArtistCache:
    """Set of uploaded artist names, refreshed when older than the TTL."""

    def __init__(
        self,
        client: IRemoteCatalogClient,
        sink: IProgressSink,
        session: str,
        ttl_seconds: float = DEFAULT_ARTIST_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize artist cache.

        Args:
            client: Remote catalog client used for the full artist fetch
            sink: Progress sink receiving the busy signal while refreshing
            session: Auth session (cookie) passed to the client
            ttl_seconds: Freshness window, 2 hours by default
            clock: Monotonic time source (injectable for tests)
        """
        self._client = client
        self._sink = sink
        self._session = session
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._artists: set[str] = set()
        self._last_refresh: float | None = None
        self._lock = asyncio.Lock()
        self._refreshing = False
        self.fetch_count = 0

    @property
    def is_refreshing(self) -> bool:
        """True while a refresh is running (the busy state)."""
        return self._refreshing

    @property
    def size(self) -> int:
        return len(self._artists)

    def is_stale(self) -> bool:
        """Never refreshed, or older than the freshness window.

        An empty set from a successful fetch counts as fresh.
        """
        if self._last_refresh is None:
            return True
        return self._clock() - self._last_refresh > self._ttl_seconds

    def _needs_refresh(self, refresh_if_empty: bool) -> bool:
        return self.is_stale() or (refresh_if_empty and not self._artists)

    async def ensure_fresh(self, refresh_if_empty: bool = False) -> bool:
        """Refresh the artist set if stale.

        Concurrent callers wait on the running refresh instead of starting their own.

        Args:
            refresh_if_empty: Also refetch a fresh but empty set (run start only)

        Returns:
            True if this call performed a remote fetch
        """
        if not self._needs_refresh(refresh_if_empty):
            return False

        async with self._lock:
            if not self._needs_refresh(refresh_if_empty):
                return False

            self._refreshing = True
            self._sink.set_busy(True)
            self._sink.set_status(
                "Gathering uploaded artists...", "Gathering uploaded artists"
            )
            try:
                artists = await self._client.list_uploaded_artists(self._session)
                self.fetch_count += 1
                self._artists = {name.strip().lower() for name in artists if name}
                self._last_refresh = self._clock()
                logger.info("Artist cache refreshed (%d artists)", len(self._artists))
            finally:
                self._refreshing = False
                self._sink.set_busy(False)
            return True

    def contains(self, artist: str | None) -> bool:
        """Case-insensitive exact lookup."""
        if not artist:
            return False
        return artist.strip().lower() in self._artists

    def invalidate(self) -> None:
        """Force the next ensure_fresh() to fetch again."""
        self._last_refresh = None
