"""Upload of a single library entry with size limit, retry and post-upload reconciliation."""

import logging
from pathlib import Path

from tunesync.application.services.presence_resolver import RemotePresenceResolver
from tunesync.application.workers.run_control import RunControl
from tunesync.domain.entities import LibraryEntry, UploadErrorCode, UploadResult
from tunesync.domain.exceptions import FileTooLargeError, RunAborted
from tunesync.domain.ports import IMetadataExtractor, IProgressSink, IRemoteCatalogClient

logger = logging.getLogger(__name__)

# 295 MiB, the remote's per-track ceiling ("300 MB").
MAX_UPLOAD_BYTES = 309_329_920
SIZE_LIMIT_REASON = "File size exceeds the remote limit of 300 MB per track."


class UploadExecutor:
    """Drives the upload call for one entry and records the outcome on it."""

    def __init__(
        self,
        client: IRemoteCatalogClient,
        extractor: IMetadataExtractor,
        resolver: RemotePresenceResolver,
        control: RunControl,
        sink: IProgressSink,
        session: str,
        max_upload_bytes: int = MAX_UPLOAD_BYTES,
        retry_attempts: int = 5,
        retry_delay_seconds: float = 10.0,
        throttle_bytes_per_second: int = 0,
    ) -> None:
        """Initialize executor.

        Args:
            client: Remote catalog client performing the upload
            extractor: Metadata extractor used to backfill catalog identifiers
            resolver: Presence resolver used to find the new remote entity id
            control: Run control providing the abortable backoff sleep
            sink: Progress sink for retry status messages
            session: Auth session (cookie) passed to the client
            max_upload_bytes: Files larger than this are rejected without a network call
            retry_attempts: Retries after the first failed attempt
            retry_delay_seconds: Pause between attempts
            throttle_bytes_per_second: Upload bandwidth cap, 0 for unthrottled
        """
        self._client = client
        self._extractor = extractor
        self._resolver = resolver
        self._control = control
        self._sink = sink
        self._session = session
        self._max_upload_bytes = max_upload_bytes
        self._retry_attempts = retry_attempts
        self._retry_delay_seconds = retry_delay_seconds
        self._throttle = throttle_bytes_per_second

    def check_size(self, path: str) -> None:
        """Enforce the upload size ceiling.

        Raises:
            FileTooLargeError: If the file is larger than the ceiling
            OSError: If the file can't be stat'ed
        """
        size = Path(path).stat().st_size
        if size > self._max_upload_bytes:
            raise FileTooLargeError(path, size, self._max_upload_bytes)

    async def upload(self, entry: LibraryEntry) -> UploadResult:
        """Upload the entry's file, retrying remote failures with a fixed backoff.

        On success the entry is marked uploaded and identifiers are backfilled on a
        best-effort basis. On failure the entry carries the error flag and reason.

        Args:
            entry: Entry to upload (mutated in place, not persisted here)

        Returns:
            UploadResult describing the outcome

        Raises:
            RunAborted: If the abort signal fires during a retry backoff
        """
        try:
            self.check_size(entry.path)
        except FileTooLargeError as e:
            logger.warning("Skipping upload of %s: %s", entry.path, e.message)
            entry.mark_error(SIZE_LIMIT_REASON)
            return UploadResult.failure(UploadErrorCode.SIZE_LIMIT, SIZE_LIMIT_REASON)

        logger.info("Begin file upload: %s", entry.path)
        attempt = 0
        while True:
            error = await self._client.upload_file(
                entry.path, self._session, self._throttle
            )
            if not error:
                break

            if attempt >= self._retry_attempts:
                logger.error(
                    "File upload FAIL after %d attempts: %s (%s)",
                    attempt + 1,
                    entry.path,
                    error,
                )
                entry.mark_error(error)
                return UploadResult.failure(UploadErrorCode.TRANSIENT_SERVER, error)

            attempt += 1
            logger.warning(
                "Upload error for %s, retrying in %.0fs (%d/%d): %s",
                entry.path,
                self._retry_delay_seconds,
                attempt,
                self._retry_attempts,
                error,
            )
            self._sink.set_status(
                f"Error from remote. Waiting {self._retry_delay_seconds:.0f} seconds "
                f"then trying again ({attempt}/{self._retry_attempts})",
                f"Retrying on remote error ({attempt}/{self._retry_attempts})",
            )
            if not await self._control.sleep(self._retry_delay_seconds):
                raise RunAborted()

        entry.mark_uploaded()
        await self._reconcile_after_upload(entry)
        logger.info("File upload SUCCESS: %s", entry.path)
        return UploadResult.ok()

    # Listen up - everything in here is best effort. The file IS uploaded at this
    # point, so a MusicBrainz hiccup or a search that can't see the new track yet
    # must never flip the entry back to failed. Warnings only.
    async def _reconcile_after_upload(self, entry: LibraryEntry) -> None:
        if not entry.catalog_ids.is_complete:
            try:
                cached = await self._resolver.cache.get(entry.path)
                if cached is not None and not cached.catalog_ids.is_empty:
                    entry.backfill_identifiers(cached.catalog_ids)
                if not entry.catalog_ids.is_complete:
                    entry.backfill_identifiers(
                        await self._extractor.get_catalog_identifiers(
                            entry.path, force_refresh=True
                        )
                    )
            except Exception as e:
                logger.warning(
                    "Couldn't retrieve catalog identifiers for %s: %s", entry.path, e
                )

        try:
            result = await self._resolver.is_already_uploaded(entry.path, use_cache=False)
            if result.is_present and result.entity_id:
                entry.entity_id = result.entity_id
        except Exception as e:
            logger.warning("Couldn't retrieve remote entity id for %s: %s", entry.path, e)
