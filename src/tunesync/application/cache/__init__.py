"""Caching layer - shared caches that make repeated presence checks cheap."""

from tunesync.application.cache.artist_cache import ArtistCache
from tunesync.application.cache.base_cache import BaseCache, InMemoryCache
from tunesync.application.cache.upload_check_cache import (
    UploadCheckCache,
    UploadCheckCacheEntry,
)

__all__ = [
    "ArtistCache",
    "BaseCache",
    "InMemoryCache",
    "UploadCheckCache",
    "UploadCheckCacheEntry",
]
