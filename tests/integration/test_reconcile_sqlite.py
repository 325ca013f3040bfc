"""End-to-end reconciliation against a real SQLite library database.

Scanner, repository and worker are the real ones. Only the remote service and tag
reading are faked, so these cover the SQL filters the worker relies on.
"""

import os
from collections.abc import AsyncGenerator
from pathlib import Path

import pytest

from tunesync.application.cache.artist_cache import ArtistCache
from tunesync.application.services.artwork_presenter import ArtworkPresenter
from tunesync.application.services.content_hasher import ContentHasher
from tunesync.application.services.library_scanner import LibraryScanner
from tunesync.application.services.presence_resolver import RemotePresenceResolver
from tunesync.application.services.upload_executor import UploadExecutor
from tunesync.application.workers.reconciliation_worker import ReconciliationWorker
from tunesync.application.workers.run_control import RunControl
from tunesync.config import DatabaseSettings, Settings
from tunesync.domain.entities import TrackMetadata
from tunesync.infrastructure.persistence.database import Database
from tunesync.infrastructure.persistence.repositories import LibraryEntryRepository
from tests.fakes import (
    FakeExtractor,
    FakeRemoteClient,
    RecordingSink,
    make_search_payload,
    write_track,
)


@pytest.fixture
async def sql_repository(tmp_path: Path) -> AsyncGenerator[LibraryEntryRepository, None]:
    database = Database(
        Settings(
            _env_file=None,
            database=DatabaseSettings(url=f"sqlite+aiosqlite:///{tmp_path / 'library.db'}"),
        )
    )
    await database.create_tables()
    yield LibraryEntryRepository(database)
    await database.close()


@pytest.fixture
def sql_worker(
    sql_repository: LibraryEntryRepository,
    resolver: RemotePresenceResolver,
    executor: UploadExecutor,
    extractor: FakeExtractor,
    remote: FakeRemoteClient,
    artist_cache: ArtistCache,
    control: RunControl,
    sink: RecordingSink,
    artwork: ArtworkPresenter,
) -> ReconciliationWorker:
    return ReconciliationWorker(
        repository=sql_repository,
        hasher=ContentHasher(),
        resolver=resolver,
        executor=executor,
        extractor=extractor,
        client=remote,
        artist_cache=artist_cache,
        control=control,
        sink=sink,
        artwork=artwork,
        unexpected_retry_delay_seconds=0.01,
    )


class TestReconcileWithSqlite:
    """Scan, reconcile, move and rescan a real folder."""

    async def test_full_library_lifecycle(
        self,
        tmp_path: Path,
        sql_repository: LibraryEntryRepository,
        sql_worker: ReconciliationWorker,
        remote: FakeRemoteClient,
        extractor: FakeExtractor,
        sink: RecordingSink,
        resolver: RemotePresenceResolver,
    ) -> None:
        music = tmp_path / "music"
        music.mkdir()
        bliss = write_track(
            music, "bliss.mp3", b"bliss", extractor, TrackMetadata("Muse", "Origin", "Bliss")
        )
        plug_in = write_track(
            music, "plug_in.mp3", b"plug", extractor, TrackMetadata("Muse", "Origin", "Plug In Baby")
        )
        write_track(
            music, "airbag.flac", b"airbag", extractor, TrackMetadata("Radiohead", "OKC", "Airbag")
        )
        remote.search_payloads["Muse Origin Bliss"] = make_search_payload(
            ("remote-bliss", ["Bliss", "Muse", "Origin"])
        )
        scanner = LibraryScanner(sql_repository)

        summary = await scanner.scan([str(music)])
        report = await sql_worker.process()

        assert summary.added == 3
        assert report.processed == 3
        assert report.already_present == 1
        assert report.uploaded == 2
        assert sorted(remote.upload_calls) == sorted(
            [plug_in, str(music / "airbag.flac")]
        )
        assert await sql_repository.count_uploaded() == 3
        assert sink.last_counters.uploaded == 3
        stored = await sql_repository.get_by_path(bliss)
        assert stored is not None
        assert stored.entity_id == "remote-bliss"

        # Second run has nothing left to do
        again = await sql_worker.process()
        assert again.processed == 0

        # Rename on disk: the uploaded row follows the file, nothing is re-uploaded
        renamed = str(music / "01 - Plug In Baby.mp3")
        os.rename(plug_in, renamed)
        extractor.metadata[renamed] = extractor.metadata[plug_in]
        await resolver.cache.invalidate(plug_in)
        remote.upload_calls.clear()

        await scanner.scan([str(music)])
        moved = await sql_worker.process()

        assert moved.moved == 1
        assert remote.upload_calls == []
        assert await sql_repository.get_by_path(plug_in) is None
        follower = await sql_repository.get_by_path(renamed)
        assert follower is not None
        assert follower.is_uploaded
        assert await sql_repository.count_all() == 3

        # Deleting an uploaded file on disk drops it from the library
        os.remove(bliss)
        swept = await sql_worker.process()

        assert swept.removed == 1
        assert remote.upload_calls == []
        gone = await sql_repository.get_by_path(bliss)
        assert gone is not None
        assert gone.removed
        assert await sql_repository.count_all() == 2

    async def test_issue_listing_after_failed_upload(
        self,
        tmp_path: Path,
        sql_repository: LibraryEntryRepository,
        sql_worker: ReconciliationWorker,
        remote: FakeRemoteClient,
        extractor: FakeExtractor,
    ) -> None:
        path = write_track(
            tmp_path, "broken.mp3", b"broken", extractor, TrackMetadata("A", "B", "C")
        )
        remote.upload_errors = ["Upload failed with HTTP 500"] * 10
        await LibraryScanner(sql_repository).scan([str(tmp_path)])

        report = await sql_worker.process()

        assert report.errored == 1
        issues = await sql_repository.load_issues()
        assert [entry.path for entry in issues] == [path]
        assert issues[0].error_reason
        assert await sql_repository.count_issues() == 1
