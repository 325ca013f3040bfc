"""Remote presence resolution - "is this local file already in the remote library?"."""

import logging
from collections.abc import Iterator
from dataclasses import dataclass, replace
from typing import Any

from tunesync.application.cache.upload_check_cache import UploadCheckCache
from tunesync.application.services.fuzzy_matcher import (
    normalize_album_variants,
    similarity,
)
from tunesync.domain.entities import (
    CatalogIdentifiers,
    PresenceResult,
    PresenceStatus,
    TrackMetadata,
)
from tunesync.domain.ports import IMetadataExtractor, IRemoteCatalogClient

logger = logging.getLogger(__name__)

NO_RESULTS_SENTINEL = "no results found"
DEFAULT_SIMILARITY_FLOOR = 0.75
DEFAULT_MATCH_THRESHOLD = 0.8

_ENTITY_ID_KEYS = ("entityId", "videoId")


@dataclass(frozen=True)
class RunGroup:
    """Text runs of one "runs" array plus the id of the result item it belongs to."""

    texts: list[str]
    item_id: str | None = None


@dataclass
class MatchScores:
    """Running maxima of one search payload scan."""

    artist: float = 0.0
    album: float = 0.0
    track: float = 0.0
    entity_id: str | None = None
    no_results: bool = False

    def is_match(self, threshold: float) -> bool:
        """All three fields must beat the threshold."""
        return (
            not self.no_results
            and self.artist > threshold
            and self.album > threshold
            and self.track > threshold
        )


def _find_entity_id(node: Any) -> str | None:
    """Depth-first search for the first entity/video id inside a result item."""
    if isinstance(node, dict):
        for key in _ENTITY_ID_KEYS:
            value = node.get(key)
            if isinstance(value, str) and value:
                return value
        for value in node.values():
            found = _find_entity_id(value)
            if found:
                return found
    elif isinstance(node, list):
        for value in node:
            found = _find_entity_id(value)
            if found:
                return found
    return None


def iter_run_groups(payload: Any, item_id: str | None = None) -> Iterator[RunGroup]:
    """Flatten a search payload into its "runs" text groups, in document order.

    Hey future me - the search response is a deeply nested renderer tree and its
    shape changes whenever the remote feels like it. We don't model it. We only care
    about every "runs": [{"text": ...}, ...] array anywhere in the tree. Result items
    are the "*ItemRenderer" dicts; runs found inside one inherit that item's id so a
    match can report which remote entity it hit.

    Args:
        payload: Parsed JSON search response
        item_id: Id of the enclosing result item (internal, used while recursing)

    Yields:
        RunGroup per non-empty runs array
    """
    if isinstance(payload, dict):
        for key, value in payload.items():
            if key == "runs" and isinstance(value, list):
                texts = [
                    run["text"]
                    for run in value
                    if isinstance(run, dict) and isinstance(run.get("text"), str)
                ]
                if texts:
                    yield RunGroup(texts=texts, item_id=item_id)
            elif key.endswith("ItemRenderer") and isinstance(value, dict):
                yield from iter_run_groups(value, _find_entity_id(value) or item_id)
            else:
                yield from iter_run_groups(value, item_id)
    elif isinstance(payload, list):
        for value in payload:
            yield from iter_run_groups(value, item_id)


def score_payload(
    payload: Any,
    metadata: TrackMetadata,
    similarity_floor: float = DEFAULT_SIMILARITY_FLOOR,
) -> MatchScores:
    """Scan every text run and keep the best similarity per field.

    A score only updates its running maximum when it is strictly above the floor.
    A group whose first run contains the "no results found" sentinel ends the scan.

    Args:
        payload: Parsed JSON search response
        metadata: Local artist/album/track to compare against
        similarity_floor: Scores at or below this are ignored

    Returns:
        Best per-field scores (no_results set if the sentinel was hit)
    """
    scores = MatchScores()
    first_item_id: str | None = None

    for group in iter_run_groups(payload):
        if NO_RESULTS_SENTINEL in group.texts[0].lower():
            return MatchScores(no_results=True)

        if first_item_id is None and group.item_id:
            first_item_id = group.item_id

        for text in group.texts:
            artist_sim = similarity(text, metadata.artist)
            if artist_sim > similarity_floor and artist_sim > scores.artist:
                scores.artist = artist_sim

            album_sim = similarity(text, metadata.album)
            if album_sim > similarity_floor and album_sim > scores.album:
                scores.album = album_sim

            track_sim = similarity(text, metadata.track)
            if track_sim > similarity_floor and track_sim > scores.track:
                scores.track = track_sim
                if group.item_id:
                    scores.entity_id = group.item_id

    if scores.entity_id is None:
        scores.entity_id = first_item_id
    return scores


class RemotePresenceResolver:
    """Answers "is this track already uploaded?" using fuzzy search matching.

    Backed by the UploadCheckCache, which the prefetch workers share.
    """

    def __init__(
        self,
        client: IRemoteCatalogClient,
        extractor: IMetadataExtractor,
        upload_check_cache: UploadCheckCache,
        session: str,
        similarity_floor: float = DEFAULT_SIMILARITY_FLOOR,
        match_threshold: float = DEFAULT_MATCH_THRESHOLD,
    ) -> None:
        self._client = client
        self._extractor = extractor
        self._cache = upload_check_cache
        self._session = session
        self._similarity_floor = similarity_floor
        self._match_threshold = match_threshold

    @property
    def cache(self) -> UploadCheckCache:
        return self._cache

    async def resolve(self, artist: str, album: str, track: str) -> PresenceResult:
        """Search the remote once and decide with the fuzzy match rule.

        Never raises: transport and parse failures come back as FAILED, which
        callers treat as "not present" (so the file gets uploaded, not skipped).
        """
        metadata = TrackMetadata(artist=artist, album=album, track=track)
        try:
            payload = await self._client.search(metadata.search_query, self._session)
            scores = score_payload(payload, metadata, self._similarity_floor)
        except Exception as e:
            logger.warning(
                "Presence search failed for '%s': %s", metadata.search_query, e
            )
            return PresenceResult.failed()

        if scores.no_results:
            logger.debug("No remote results for '%s'", metadata.search_query)
            return PresenceResult.not_found()

        if scores.is_match(self._match_threshold):
            return PresenceResult.found(scores.entity_id)

        logger.debug(
            "No confident match for '%s' (artist=%.2f album=%.2f track=%.2f)",
            metadata.search_query,
            scores.artist,
            scores.album,
            scores.track,
        )
        return PresenceResult.not_found()

    async def resolve_with_variants(
        self, artist: str, album: str, track: str
    ) -> PresenceResult:
        """Resolve with the tagged album name, then with normalized album variants.

        Returns:
            The first FOUND result. Otherwise FAILED if any attempt failed (so the
            outcome is not cached), else NOT_FOUND.
        """
        any_failed = False
        for candidate in [album, *normalize_album_variants(album)]:
            result = await self.resolve(artist, candidate, track)
            if result.is_present:
                return result
            any_failed = any_failed or result.status == PresenceStatus.FAILED
        return PresenceResult.failed() if any_failed else PresenceResult.not_found()

    async def is_already_uploaded(
        self, path: str, use_cache: bool = True
    ) -> PresenceResult:
        """Presence check for a local file.

        Args:
            path: Local file path
            use_cache: Consult the upload check cache first. With False the remote is
                always asked and the cached entry is refreshed with the new outcome.

        Returns:
            FOUND with the remote entity id, NOT_FOUND, or FAILED
        """
        try:
            metadata = await self._extractor.get_metadata(path)
        except Exception as e:
            logger.warning("Could not read tags of %s: %s", path, e)
            metadata = None
        if metadata is None:
            return PresenceResult.not_found()

        if use_cache:
            cached = await self._cache.get(path)
            if cached is not None:
                return cached.to_result()

        result = await self.resolve_with_variants(
            metadata.artist, metadata.album, metadata.track
        )

        if result.status == PresenceStatus.FAILED:
            return result

        result = replace(result, catalog_ids=await self._lookup_identifiers(path))
        await self._cache.put(path, result)
        return result

    async def _lookup_identifiers(self, path: str) -> CatalogIdentifiers:
        try:
            return await self._extractor.get_catalog_identifiers(path)
        except Exception as e:
            logger.warning("Catalog identifier lookup failed for %s: %s", path, e)
            return CatalogIdentifiers()
