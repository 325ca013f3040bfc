"""Per-file cache of remote presence checks."""

import logging
from dataclasses import dataclass, field
from typing import Any

from tunesync.application.cache.base_cache import InMemoryCache
from tunesync.domain.entities import CatalogIdentifiers, PresenceResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadCheckCacheEntry:
    """Outcome of a presence check for one file path."""

    present: bool
    entity_id: str | None = None
    # Own copy, never shared with a LibraryEntry (frozen dataclass, copied by value).
    catalog_ids: CatalogIdentifiers = field(default_factory=CatalogIdentifiers)

    @classmethod
    def from_result(cls, result: PresenceResult) -> "UploadCheckCacheEntry":
        return cls(
            present=result.is_present,
            entity_id=result.entity_id,
            catalog_ids=result.catalog_ids,
        )

    def to_result(self) -> PresenceResult:
        if self.present:
            return PresenceResult.found(self.entity_id, self.catalog_ids)
        return PresenceResult.not_found(self.catalog_ids)


# Hey future me - this cache is shared by the reconciliation worker and ALL prefetch
# workers. Entries live for the process lifetime; there's no TTL because a file's
# presence only changes when WE upload it (and then we invalidate/refresh the path).
# The purge flag is process-wide: abort/shutdown calls request_cleanup(), and the next
# cleanup() drops everything so a new run doesn't trust half-finished prefetch results.
class UploadCheckCache(InMemoryCache[str, UploadCheckCacheEntry]):
    """Lock-guarded map of file path to presence-check outcome."""

    def __init__(self) -> None:
        super().__init__()
        self._cleanup_requested = False
        self._hits = 0
        self._misses = 0

    async def get(self, key: str) -> UploadCheckCacheEntry | None:
        entry = await super().get(key)
        if entry is None:
            self._misses += 1
        else:
            self._hits += 1
        return entry

    async def put(self, path: str, result: PresenceResult) -> UploadCheckCacheEntry:
        """Store the outcome of a presence check for a path.

        Args:
            path: File path the check was made for
            result: FOUND or NOT_FOUND result (FAILED results must not be stored)

        Returns:
            The stored cache entry
        """
        entry = UploadCheckCacheEntry.from_result(result)
        await self.set(path, entry)
        return entry

    async def contains(self, path: str) -> bool:
        async with self._lock:
            return path in self._cache

    async def invalidate(self, *paths: str) -> None:
        """Drop the entries for the given paths (missing paths are ignored)."""
        async with self._lock:
            for path in paths:
                self._cache.pop(path, None)

    @property
    def cleanup_requested(self) -> bool:
        return self._cleanup_requested

    def request_cleanup(self) -> None:
        """Flag the cache for purging on the next cleanup() pass."""
        self._cleanup_requested = True

    async def cleanup(self) -> int:
        """Purge every entry if a cleanup was requested.

        Returns:
            Number of entries removed (0 when no cleanup was requested)
        """
        async with self._lock:
            if not self._cleanup_requested:
                return 0
            removed = len(self._cache)
            self._cache.clear()
            self._cleanup_requested = False
        logger.debug("Upload check cache purged (%d entries)", removed)
        return removed

    async def stats(self) -> dict[str, Any]:
        stats = await self.get_stats()
        stats.update(
            {
                "hits": self._hits,
                "misses": self._misses,
                "cleanup_requested": self._cleanup_requested,
            }
        )
        return stats
