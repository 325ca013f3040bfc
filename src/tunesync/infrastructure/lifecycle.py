"""Application lifecycle: builds every component on startup and tears it down on exit."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path

from sqlalchemy.engine import make_url

from tunesync.application.cache.artist_cache import ArtistCache
from tunesync.application.cache.upload_check_cache import UploadCheckCache
from tunesync.application.services.artwork_presenter import ArtworkPresenter
from tunesync.application.services.content_hasher import ContentHasher
from tunesync.application.services.library_scanner import LibraryScanner
from tunesync.application.services.presence_resolver import RemotePresenceResolver
from tunesync.application.services.upload_executor import UploadExecutor
from tunesync.application.workers.prefetch_worker import PrefetchScheduler
from tunesync.application.workers.reconciliation_worker import ReconciliationWorker
from tunesync.application.workers.run_control import RunControl
from tunesync.config import Settings
from tunesync.domain.exceptions import ConfigurationError
from tunesync.domain.ports import IProgressSink
from tunesync.infrastructure.integrations.coverartarchive_client import (
    CoverArtArchiveClient,
)
from tunesync.infrastructure.integrations.musicbrainz_client import MusicBrainzClient
from tunesync.infrastructure.integrations.remote_catalog_client import (
    RemoteCatalogClient,
)
from tunesync.infrastructure.metadata.mutagen_extractor import MutagenMetadataExtractor
from tunesync.infrastructure.observability.progress import LoggingProgressSink
from tunesync.infrastructure.persistence.database import Database
from tunesync.infrastructure.persistence.repositories import LibraryEntryRepository

logger = logging.getLogger(__name__)


@dataclass
class TuneSyncApp:
    """Every long-lived component of a running process."""

    settings: Settings
    database: Database
    repository: LibraryEntryRepository
    remote: RemoteCatalogClient
    musicbrainz: MusicBrainzClient
    cover_art: CoverArtArchiveClient
    extractor: MutagenMetadataExtractor
    sink: IProgressSink
    control: RunControl
    upload_check_cache: UploadCheckCache
    artist_cache: ArtistCache
    resolver: RemotePresenceResolver
    executor: UploadExecutor
    artwork: ArtworkPresenter
    prefetch: PrefetchScheduler | None
    scanner: LibraryScanner
    worker: ReconciliationWorker


# Hey future me, SQLite needs the parent directory to exist AND be writable (it creates
# -wal/-shm files next to the .db). Fail at startup with a clear message instead of a
# cryptic OperationalError on the first query.
def _validate_sqlite_path(settings: Settings) -> None:
    url = make_url(settings.database.url)
    if not url.drivername.startswith("sqlite") or not url.database:
        return
    if url.database == ":memory:":
        return

    parent = Path(url.database).expanduser().resolve().parent
    try:
        parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ConfigurationError(
            f"Unable to create SQLite database directory '{parent}': {exc}. "
            "Update TUNESYNC_DATABASE__URL or adjust directory permissions."
        ) from exc


def build_app(settings: Settings, database: Database, sink: IProgressSink) -> TuneSyncApp:
    """Wire all components together (no I/O)."""
    uploader = settings.uploader
    session = settings.remote.auth_cookie

    repository = LibraryEntryRepository(database)
    remote = RemoteCatalogClient(settings.remote)
    musicbrainz = MusicBrainzClient(settings.musicbrainz)
    cover_art = CoverArtArchiveClient(
        user_agent=f"{settings.musicbrainz.app_name}/{settings.musicbrainz.app_version}"
    )
    extractor = MutagenMetadataExtractor(musicbrainz=musicbrainz, cover_art=cover_art)
    control = RunControl(poll_interval_seconds=uploader.poll_interval_seconds)
    upload_check_cache = UploadCheckCache()
    artist_cache = ArtistCache(
        remote, sink, session, ttl_seconds=uploader.artist_cache_ttl_seconds
    )
    resolver = RemotePresenceResolver(
        remote,
        extractor,
        upload_check_cache,
        session,
        similarity_floor=uploader.similarity_floor,
        match_threshold=uploader.match_threshold,
    )
    executor = UploadExecutor(
        remote,
        extractor,
        resolver,
        control,
        sink,
        session,
        max_upload_bytes=uploader.max_upload_bytes,
        retry_attempts=uploader.upload_retry_attempts,
        retry_delay_seconds=uploader.upload_retry_delay_seconds,
        throttle_bytes_per_second=settings.remote.throttle_bytes_per_second,
    )
    artwork = ArtworkPresenter(extractor, sink)
    prefetch = (
        PrefetchScheduler(resolver, workers=uploader.prefetch_workers, control=control)
        if uploader.prefetch_enabled
        else None
    )
    worker = ReconciliationWorker(
        repository=repository,
        hasher=ContentHasher(),
        resolver=resolver,
        executor=executor,
        extractor=extractor,
        client=remote,
        artist_cache=artist_cache,
        control=control,
        sink=sink,
        artwork=artwork,
        prefetch=prefetch,
        unexpected_retry_attempts=uploader.unexpected_retry_attempts,
        unexpected_retry_delay_seconds=uploader.unexpected_retry_delay_seconds,
    )
    return TuneSyncApp(
        settings=settings,
        database=database,
        repository=repository,
        remote=remote,
        musicbrainz=musicbrainz,
        cover_art=cover_art,
        extractor=extractor,
        sink=sink,
        control=control,
        upload_check_cache=upload_check_cache,
        artist_cache=artist_cache,
        resolver=resolver,
        executor=executor,
        artwork=artwork,
        prefetch=prefetch,
        scanner=LibraryScanner(repository),
        worker=worker,
    )


@asynccontextmanager
async def lifespan(
    settings: Settings, sink: IProgressSink | None = None
) -> AsyncGenerator[TuneSyncApp, None]:
    """Start the application, yield the wired components, shut everything down.

    Args:
        settings: Application settings
        sink: Progress sink, defaults to LoggingProgressSink

    Yields:
        TuneSyncApp with every component ready to use
    """
    _validate_sqlite_path(settings)
    database = Database(settings)
    await database.create_tables()
    app = build_app(settings, database, sink or LoggingProgressSink())
    logger.info("TuneSync started (prefetch=%s)", settings.uploader.prefetch_enabled)

    try:
        yield app
    finally:
        logger.info("Shutting down TuneSync")
        app.control.abort()
        if app.prefetch is not None:
            await app.prefetch.stop()
        await app.artwork.close()
        app.upload_check_cache.request_cleanup()
        await app.upload_check_cache.cleanup()
        await app.remote.close()
        await app.musicbrainz.close()
        await app.cover_art.close()
        await database.close()
        logger.info("TuneSync shutdown complete")
