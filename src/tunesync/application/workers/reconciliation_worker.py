"""Reconciliation worker - walks the library and brings every file in step with the remote."""

import asyncio
import logging
from pathlib import Path

from tunesync.application.cache.artist_cache import ArtistCache
from tunesync.application.services.artwork_presenter import ArtworkPresenter
from tunesync.application.services.content_hasher import ContentHasher
from tunesync.application.services.presence_resolver import RemotePresenceResolver
from tunesync.application.services.upload_executor import UploadExecutor
from tunesync.application.workers.prefetch_worker import PrefetchScheduler
from tunesync.application.workers.run_control import ManagingState, RunControl
from tunesync.domain.entities import (
    LibraryEntry,
    PresenceResult,
    ReconcileReport,
    ReconcileState,
    RunCounters,
)
from tunesync.domain.exceptions import RunAborted
from tunesync.domain.ports import (
    ILibraryRepository,
    IMetadataExtractor,
    IProgressSink,
    IRemoteCatalogClient,
)
from tunesync.infrastructure.observability.logging import set_correlation_id

logger = logging.getLogger(__name__)


class _RunEnded(Exception):
    """Internal signal: the managing operation closed with changes, stop the run."""


# Hey future me - this is THE state machine. Per file:
#
#   DISCOVERED -> HASHED -> MOVED                        (same content known elsewhere)
#                        -> CHECKING -> ALREADY_PRESENT  -> PERSISTED
#                                    -> NEEDS_UPLOAD     -> PERSISTED | ERRORED
#   DISCOVERED -> REMOVED                                (file gone from disk)
#
# An entry is only written back once its transition is complete. RunAborted can come
# out of ANY await in here (waits, backoff sleeps); it propagates straight up to
# process(), which means the half-processed entry is simply never saved.
class ReconciliationWorker:
    """Sequential driver of one reconciliation run over the library snapshot."""

    def __init__(
        self,
        repository: ILibraryRepository,
        hasher: ContentHasher,
        resolver: RemotePresenceResolver,
        executor: UploadExecutor,
        extractor: IMetadataExtractor,
        client: IRemoteCatalogClient,
        artist_cache: ArtistCache,
        control: RunControl,
        sink: IProgressSink,
        artwork: ArtworkPresenter,
        prefetch: PrefetchScheduler | None = None,
        unexpected_retry_attempts: int = 5,
        unexpected_retry_delay_seconds: float = 1.0,
        hard_delete_missing: bool = False,
    ) -> None:
        """Initialize the worker.

        Args:
            repository: Library entry persistence
            hasher: Content fingerprinting
            resolver: Remote presence resolver (owns the upload check cache)
            executor: Upload executor
            extractor: Metadata extractor for identifier backfills
            client: Remote client (network availability check)
            artist_cache: Uploaded-artist cache, kept fresh during the run
            control: Abort signal, waits and managing state
            sink: Progress/UI sink
            artwork: Single-slot artwork presenter
            prefetch: Optional prefetch scheduler warming the cache ahead of us
            unexpected_retry_attempts: Retries of check-or-upload after an unexpected error
            unexpected_retry_delay_seconds: Pause between those retries
            hard_delete_missing: Drop rows of missing files instead of flagging them removed
        """
        self._repository = repository
        self._hasher = hasher
        self._resolver = resolver
        self._executor = executor
        self._extractor = extractor
        self._client = client
        self._artist_cache = artist_cache
        self._control = control
        self._sink = sink
        self._artwork = artwork
        self._prefetch = prefetch
        self._unexpected_retry_attempts = unexpected_retry_attempts
        self._unexpected_retry_delay = unexpected_retry_delay_seconds
        self._hard_delete_missing = hard_delete_missing
        self._counters = RunCounters()
        self._report = ReconcileReport()
        self._migrated_ids: set[int] = set()
        self.stopped = True

    @property
    def counters(self) -> RunCounters:
        return self._counters

    async def process(self) -> ReconcileReport:
        """Run one full reconciliation pass.

        Returns:
            ReconcileReport of the run (aborted=True if the abort signal ended it)
        """
        run_id = set_correlation_id()
        self.stopped = False
        self._report = ReconcileReport()
        self._migrated_ids = set()
        self._counters = RunCounters(
            discovered=await self._repository.count_all(),
            uploaded=await self._repository.count_uploaded(),
            issues=await self._repository.count_issues(),
        )
        self._push_counters()

        snapshot = await self._repository.load_all(
            include_uploaded=True, include_errored=True
        )
        entries = [entry for entry in snapshot if not entry.is_uploaded]
        uploaded = [entry for entry in snapshot if entry.is_uploaded]
        logger.info(
            "Reconciliation run %s started: %d files to check, %d uploaded",
            run_id,
            len(entries),
            len(uploaded),
        )

        try:
            await self._ensure_artist_cache(refresh_if_empty=True)
            if self._prefetch is not None:
                await self._prefetch.start(entries)

            for index, entry in enumerate(entries):
                self._control.raise_if_aborted()
                if self._prefetch is not None:
                    self._prefetch.mark_reached(index)
                await self._reconcile(entry)

            # Uploaded entries only need the on-disk check. Runs after the main loop
            # so a renamed file is migrated before its old path is swept.
            for entry in uploaded:
                self._control.raise_if_aborted()
                if await asyncio.to_thread(Path(entry.path).exists):
                    continue
                await self._reconcile(entry)
        except RunAborted:
            self._report.aborted = True
            self._resolver.cache.request_cleanup()
            logger.info("Reconciliation run aborted")
        except _RunEnded:
            self._control.managing_state = ManagingState.IDLE
            self._artist_cache.invalidate()
            logger.info("Remote library changed while managing, ending run")
        finally:
            if self._prefetch is not None:
                await self._prefetch.stop()
            self._set_idle()
            self.stopped = True

        logger.info("Reconciliation run finished: %s", self._report.to_dict())
        return self._report

    async def _reconcile(self, entry: LibraryEntry) -> None:
        # The snapshot copy of an entry that already absorbed a move is stale
        if entry.id is not None and entry.id in self._migrated_ids:
            return
        try:
            state = await self._process_entry(entry)
        except (RunAborted, _RunEnded):
            raise
        except Exception as e:
            # The entry is retried on the next run
            logger.error("Failed to reconcile %s: %s", entry.path, e, exc_info=True)
            self._report.errored += 1
            state = ReconcileState.ERRORED
        self._report.processed += 1
        logger.debug("%s -> %s", entry.path, state.value)

    async def _process_entry(self, entry: LibraryEntry) -> ReconcileState:
        if not await asyncio.to_thread(Path(entry.path).exists):
            return await self._handle_missing(entry)

        await self._ensure_artist_cache()
        self._sink.set_current_file(entry.path, entry.path)
        self._artwork.show(entry.path)

        try:
            entry.hash = await self._hasher.hash(entry.path)
        except OSError as e:
            logger.warning("Cannot read %s: %s", entry.path, e)
            self._record_error(entry, f"Could not read file: {e}")
            self._report.errored += 1
            self._control.raise_if_aborted()
            await self._repository.save(entry)
            return ReconcileState.ERRORED

        existing = await self._find_duplicate(entry)
        if existing is not None:
            self._control.raise_if_aborted()
            await self._handle_moved(entry, existing)
            return ReconcileState.MOVED

        await self._wait_until_ready()

        was_error = entry.error
        state = await self._check_or_upload_with_retry(entry)

        self._control.raise_if_aborted()
        await self._repository.save(entry)
        if state == ReconcileState.ERRORED:
            self._report.errored += 1
            return state
        if was_error and not entry.error:
            self._counters.issues = max(0, self._counters.issues - 1)
            self._push_counters()
        return ReconcileState.PERSISTED

    async def _find_duplicate(self, entry: LibraryEntry) -> LibraryEntry | None:
        """Same-content entry at another path, or None if the lookup fails."""
        try:
            return await self._repository.get_duplicate(entry.hash, entry.path)
        except Exception as e:
            logger.warning("Duplicate lookup failed for %s: %s", entry.path, e)
            return None

    async def _handle_missing(self, entry: LibraryEntry) -> ReconcileState:
        self._control.raise_if_aborted()
        self._counters.discovered -= 1
        self._push_counters()
        await self._repository.delete(entry, hard_delete=self._hard_delete_missing)
        await self._resolver.cache.invalidate(entry.path)
        self._report.removed += 1
        logger.info("File no longer on disk, removed from library: %s", entry.path)
        return ReconcileState.REMOVED

    # Listen up - this is the rename/move compensation and it is NOT sound for libraries
    # that contain the same file in two folders: every run sees the "other" copy as new,
    # finds the hash, and moves the surviving entry over to it. Each run flips the path.
    # The duplicate-content test pins this behaviour.
    async def _handle_moved(self, entry: LibraryEntry, existing: LibraryEntry) -> None:
        logger.info(
            "File rename or move detected. From: %s to: %s", existing.path, entry.path
        )
        self._sink.set_current_file(f"Already Present: {entry.path}", entry.path)
        self._sink.set_status(
            "Comparing file system against database for existing uploads",
            "Comparing file system against the DB",
        )

        old_path = existing.path
        existing.migrate_to(entry.path)
        identifiers = entry.catalog_ids
        if not existing.catalog_ids.is_complete and not identifiers.is_complete:
            try:
                identifiers = identifiers.merged_with(
                    await self._extractor.get_catalog_identifiers(entry.path)
                )
            except Exception as e:
                logger.warning("Catalog identifier lookup failed for %s: %s", entry.path, e)
        existing.backfill_identifiers(identifiers)

        self._counters.uploaded += 1
        self._push_counters()

        self._control.raise_if_aborted()
        await self._repository.delete(entry, hard_delete=True)
        await self._repository.save(existing)
        if existing.id is not None:
            self._migrated_ids.add(existing.id)
        await self._resolver.cache.invalidate(old_path, entry.path)
        self._report.moved += 1

    async def _wait_until_ready(self) -> None:
        """Block while offline or while the remote library is being managed.

        Raises:
            RunAborted: If aborted while waiting
            _RunEnded: If managing closed with changes
        """
        if not await self._control.wait_while(
            self._network_down,
            on_wait=lambda: self._sink.set_status(
                "Waiting for internet connection...", "Waiting for connection"
            ),
        ):
            raise RunAborted()

        paused = False

        def _on_managing() -> None:
            nonlocal paused
            paused = True
            self._sink.set_paused(True)

        ready = await self._control.wait_while(
            lambda: self._control.is_managing, on_wait=_on_managing
        )
        if paused:
            self._sink.set_paused(False)
        if not ready:
            raise RunAborted()
        if self._control.managing_state == ManagingState.CLOSE_CHANGES:
            raise _RunEnded()

    async def _network_down(self) -> bool:
        return not await self._client.is_network_available()

    async def _check_or_upload_with_retry(self, entry: LibraryEntry) -> ReconcileState:
        """Check-or-upload wrapped in the unexpected-error retry shell.

        Unexpected errors are assumed transient: retry the whole check a few times,
        then fall back to a forced upload.
        """
        try:
            return await self._check_or_upload(entry)
        except RunAborted:
            raise
        except Exception as e:
            logger.warning("Unexpected error while checking %s: %s", entry.path, e)

        for attempt in range(1, self._unexpected_retry_attempts + 1):
            if not await self._control.sleep(self._unexpected_retry_delay):
                raise RunAborted()
            try:
                return await self._check_or_upload(entry)
            except RunAborted:
                raise
            except Exception as e:
                logger.debug(
                    "Retry %d/%d for %s failed: %s",
                    attempt,
                    self._unexpected_retry_attempts,
                    entry.path,
                    e,
                )

        logger.warning("Check kept failing for %s, forcing upload", entry.path)
        try:
            return await self._handle_needs_upload(entry)
        except RunAborted:
            raise
        except Exception as e:
            logger.exception("Forced upload of %s failed", entry.path)
            self._record_error(entry, f"Unexpected error: {e}")
            return ReconcileState.ERRORED

    async def _check_or_upload(self, entry: LibraryEntry) -> ReconcileState:
        result = await self._resolver.is_already_uploaded(entry.path)
        self._control.raise_if_aborted()
        if result.is_present:
            await self._handle_already_present(entry, result)
            return ReconcileState.ALREADY_PRESENT
        return await self._handle_needs_upload(entry)

    async def _handle_already_present(
        self, entry: LibraryEntry, result: PresenceResult
    ) -> None:
        self._sink.set_current_file(f"Already Present: {entry.path}", entry.path)
        self._sink.set_status(
            "Comparing and updating database with existing uploads",
            "Comparing files with remote",
        )
        entry.mark_uploaded(result.entity_id)
        entry.backfill_identifiers(result.catalog_ids)
        if not entry.catalog_ids.is_complete:
            try:
                entry.backfill_identifiers(
                    await self._extractor.get_catalog_identifiers(entry.path)
                )
            except Exception as e:
                logger.warning("Catalog identifier lookup failed for %s: %s", entry.path, e)

        self._counters.uploaded += 1
        self._push_counters()
        self._report.already_present += 1

    async def _handle_needs_upload(self, entry: LibraryEntry) -> ReconcileState:
        self._sink.set_current_file(f"Uploading: {entry.path}", entry.path)
        self._artwork.show(entry.path, use_cache=False)
        was_error = entry.error
        result = await self._executor.upload(entry)
        if result.success:
            self._counters.uploaded += 1
            self._push_counters()
            self._report.uploaded += 1
            return ReconcileState.NEEDS_UPLOAD
        if not was_error:
            self._counters.issues += 1
            self._push_counters()
        return ReconcileState.ERRORED

    def _record_error(self, entry: LibraryEntry, reason: str) -> None:
        if not entry.error:
            self._counters.issues += 1
            self._push_counters()
        entry.mark_error(reason)

    async def _ensure_artist_cache(self, refresh_if_empty: bool = False) -> None:
        try:
            await self._artist_cache.ensure_fresh(refresh_if_empty=refresh_if_empty)
        except Exception as e:
            logger.warning("Could not refresh uploaded artists: %s", e)

    def _push_counters(self) -> None:
        self._sink.set_counters(self._counters)

    def _set_idle(self) -> None:
        self._artwork.clear()
        self._sink.set_paused(False)
        self._sink.set_current_file("Idle", None)
        self._sink.set_status("Idle")
