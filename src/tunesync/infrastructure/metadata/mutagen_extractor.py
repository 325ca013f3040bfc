"""Tag, catalog identifier and artwork extraction backed by mutagen."""

import asyncio
import logging
from typing import Any

import httpx
from mutagen import File as MutagenFile
from mutagen import MutagenError

from tunesync.domain.entities import CatalogIdentifiers, TrackMetadata
from tunesync.domain.ports import IMetadataExtractor
from tunesync.infrastructure.integrations.coverartarchive_client import (
    CoverArtArchiveClient,
)
from tunesync.infrastructure.integrations.musicbrainz_client import MusicBrainzClient

logger = logging.getLogger(__name__)


def _first(tags: Any, *keys: str) -> str | None:
    """First non-empty value of the first key present in an easy-mode tag dict."""
    if not tags:
        return None
    for key in keys:
        try:
            values = tags.get(key)
        except (KeyError, ValueError):
            continue
        if values:
            value = str(values[0]).strip()
            if value:
                return value
    return None


def read_tags(path: str) -> dict[str, str | None] | None:
    """Read the tags we care about in mutagen easy mode (blocking).

    Returns:
        Dict with artist/album/title/mbid keys, or None if mutagen can't open the file
    """
    try:
        audio = MutagenFile(path, easy=True)
    except (MutagenError, OSError) as e:
        logger.debug("mutagen could not open %s: %s", path, e)
        return None
    if audio is None:
        return None

    tags = audio.tags
    return {
        "artist": _first(tags, "artist", "albumartist"),
        "album": _first(tags, "album"),
        "title": _first(tags, "title"),
        "track_id": _first(tags, "musicbrainz_trackid"),
        "release_id": _first(tags, "musicbrainz_albumid"),
    }


def read_embedded_artwork(path: str) -> bytes | None:
    """First embedded picture of a file (ID3 APIC, FLAC picture block or MP4 covr)."""
    try:
        audio = MutagenFile(path)
    except (MutagenError, OSError) as e:
        logger.debug("mutagen could not open %s: %s", path, e)
        return None
    if audio is None:
        return None

    pictures = getattr(audio, "pictures", None)
    if pictures:
        return bytes(pictures[0].data)

    tags = audio.tags
    if tags is None:
        return None
    if hasattr(tags, "getall"):
        frames = tags.getall("APIC")
        if frames:
            return bytes(frames[0].data)
    covers = tags.get("covr") if hasattr(tags, "get") else None
    if covers:
        return bytes(covers[0])
    return None


# Hey future me - identifier lookups are EXPENSIVE (MusicBrainz is 1 req/sec) and the
# same path gets asked several times per run: presence check, already-present backfill,
# post-upload backfill. So results are cached per path. force_refresh=True skips the
# cache, which the upload executor uses right after an upload.
class MutagenMetadataExtractor(IMetadataExtractor):
    """IMetadataExtractor reading local tags, with MusicBrainz/CAA fallbacks."""

    def __init__(
        self,
        musicbrainz: MusicBrainzClient | None = None,
        cover_art: CoverArtArchiveClient | None = None,
    ) -> None:
        self._musicbrainz = musicbrainz
        self._cover_art = cover_art
        self._identifiers: dict[str, CatalogIdentifiers] = {}
        self._artwork: dict[str, bytes | None] = {}
        self._lock = asyncio.Lock()

    async def get_metadata(self, path: str) -> TrackMetadata | None:
        tags = await asyncio.to_thread(read_tags, path)
        if not tags or not tags["artist"] or not tags["title"]:
            return None
        return TrackMetadata(
            artist=tags["artist"],
            album=tags["album"] or "",
            track=tags["title"],
        )

    async def get_catalog_identifiers(
        self, path: str, force_refresh: bool = False
    ) -> CatalogIdentifiers:
        """Recording and release ids from tags, falling back to a MusicBrainz search.

        Args:
            path: Local audio file
            force_refresh: Ignore the per-path cache

        Returns:
            CatalogIdentifiers (possibly empty, never None)
        """
        if not force_refresh:
            async with self._lock:
                cached = self._identifiers.get(path)
            if cached is not None:
                return cached

        tags = await asyncio.to_thread(read_tags, path)
        if not tags:
            return CatalogIdentifiers()

        identifiers = CatalogIdentifiers(
            track_id=tags["track_id"], release_id=tags["release_id"]
        )
        if (
            not identifiers.is_complete
            and self._musicbrainz is not None
            and tags["artist"]
            and tags["title"]
        ):
            try:
                looked_up = await self._musicbrainz.lookup_identifiers(
                    tags["artist"], tags["album"] or "", tags["title"]
                )
                identifiers = identifiers.merged_with(looked_up)
            except httpx.HTTPError as e:
                logger.warning("MusicBrainz lookup failed for %s: %s", path, e)

        async with self._lock:
            self._identifiers[path] = identifiers
        return identifiers

    async def get_artwork(self, path: str, use_cache: bool = True) -> bytes | None:
        """Embedded artwork, else the Cover Art Archive front cover of the release."""
        if use_cache:
            async with self._lock:
                if path in self._artwork:
                    return self._artwork[path]

        image = await asyncio.to_thread(read_embedded_artwork, path)
        if image is None and self._cover_art is not None:
            identifiers = await self.get_catalog_identifiers(path)
            if identifiers.release_id:
                try:
                    image = await self._cover_art.get_front_cover(identifiers.release_id)
                except httpx.HTTPError as e:
                    logger.debug("Cover Art Archive lookup failed for %s: %s", path, e)

        async with self._lock:
            self._artwork[path] = image
        return image
