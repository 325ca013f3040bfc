"""Tests for LibraryEntryRepository against a real SQLite file.

Hey future me - these run the actual SQL, so the filter semantics here are the ones the
FakeRepository in tests/fakes.py must mirror. If you change a WHERE clause, change both.
"""

from collections.abc import AsyncGenerator
from datetime import timedelta
from pathlib import Path

import pytest

from tunesync.config import DatabaseSettings, Settings
from tunesync.domain.entities import CatalogIdentifiers, LibraryEntry, utc_now
from tunesync.domain.exceptions import EntityNotFoundException
from tunesync.infrastructure.persistence.database import Database
from tunesync.infrastructure.persistence.repositories import LibraryEntryRepository


@pytest.fixture
async def database(tmp_path: Path) -> AsyncGenerator[Database, None]:
    settings = Settings(
        database=DatabaseSettings(url=f"sqlite+aiosqlite:///{tmp_path / 'library.db'}")
    )
    db = Database(settings)
    await db.create_tables()
    yield db
    await db.close()


@pytest.fixture
def repo(database: Database) -> LibraryEntryRepository:
    return LibraryEntryRepository(database)


async def _seed(repo: LibraryEntryRepository) -> dict[str, LibraryEntry]:
    now = utc_now()
    entries = {
        "new": LibraryEntry(path="/music/a_new.mp3", hash="h-new"),
        "uploaded": LibraryEntry(
            path="/music/b_uploaded.mp3", hash="h-up", last_upload=now, entity_id="e-1"
        ),
        "errored": LibraryEntry(
            path="/music/c_errored.mp3",
            hash="h-err",
            last_upload=now - timedelta(days=1),
            error=True,
            error_reason="Upload failed",
        ),
        "removed": LibraryEntry(path="/music/d_removed.mp3", hash="h-gone", removed=True),
    }
    for entry in entries.values():
        await repo.save(entry)
    return entries


class TestSave:
    """Test insert/update semantics."""

    async def test_insert_assigns_id(self, repo: LibraryEntryRepository) -> None:
        entry = await repo.save(LibraryEntry(path="/music/x.mp3", hash="abc"))

        assert entry.id is not None
        stored = await repo.get_by_path("/music/x.mp3")
        assert stored is not None
        assert stored.id == entry.id
        assert stored.hash == "abc"

    async def test_save_without_id_updates_row_for_known_path(
        self, repo: LibraryEntryRepository
    ) -> None:
        first = await repo.save(LibraryEntry(path="/music/x.mp3", hash="old"))

        second = await repo.save(LibraryEntry(path="/music/x.mp3", hash="new"))

        assert second.id == first.id
        assert await repo.count_all() == 1
        stored = await repo.get_by_path("/music/x.mp3")
        assert stored is not None
        assert stored.hash == "new"

    async def test_roundtrips_all_fields(self, repo: LibraryEntryRepository) -> None:
        uploaded_at = utc_now()
        await repo.save(
            LibraryEntry(
                path="/music/x.mp3",
                hash="abc",
                last_upload=uploaded_at,
                entity_id="remote-9",
                catalog_ids=CatalogIdentifiers("track-mbid", "release-mbid"),
            )
        )

        stored = await repo.get_by_path("/music/x.mp3")

        assert stored is not None
        assert stored.entity_id == "remote-9"
        assert stored.catalog_ids == CatalogIdentifiers("track-mbid", "release-mbid")
        # SQLite drops tzinfo; the model re-attaches UTC
        assert stored.last_upload is not None
        assert stored.last_upload.tzinfo is not None
        assert abs((stored.last_upload - uploaded_at).total_seconds()) < 1

    async def test_unknown_id_raises(self, repo: LibraryEntryRepository) -> None:
        with pytest.raises(EntityNotFoundException):
            await repo.save(LibraryEntry(path="/music/x.mp3", id=999))


class TestLoadAll:
    """Test snapshot filters."""

    async def test_default_excludes_uploaded_and_removed(
        self, repo: LibraryEntryRepository
    ) -> None:
        await _seed(repo)

        paths = [e.path for e in await repo.load_all()]

        assert paths == ["/music/a_new.mp3", "/music/c_errored.mp3"]

    async def test_include_uploaded(self, repo: LibraryEntryRepository) -> None:
        await _seed(repo)

        paths = [e.path for e in await repo.load_all(include_uploaded=True)]

        assert paths == ["/music/a_new.mp3", "/music/b_uploaded.mp3", "/music/c_errored.mp3"]

    async def test_exclude_errored(self, repo: LibraryEntryRepository) -> None:
        await _seed(repo)

        paths = [e.path for e in await repo.load_all(include_errored=False)]

        assert paths == ["/music/a_new.mp3"]

    async def test_include_removed(self, repo: LibraryEntryRepository) -> None:
        await _seed(repo)

        entries = await repo.load_all(include_uploaded=True, include_removed=True)

        assert len(entries) == 4
        assert [e.removed for e in entries] == [False, False, False, True]


class TestDuplicatesAndDelete:
    """Test duplicate lookup and deletion."""

    async def test_get_duplicate_finds_other_path(self, repo: LibraryEntryRepository) -> None:
        original = await repo.save(LibraryEntry(path="/music/old.mp3", hash="same"))

        duplicate = await repo.get_duplicate("same", "/music/new.mp3")

        assert duplicate is not None
        assert duplicate.id == original.id

    async def test_get_duplicate_ignores_own_path_and_removed(
        self, repo: LibraryEntryRepository
    ) -> None:
        await repo.save(LibraryEntry(path="/music/self.mp3", hash="same"))
        await repo.save(LibraryEntry(path="/music/gone.mp3", hash="same", removed=True))

        assert await repo.get_duplicate("same", "/music/self.mp3") is None
        assert await repo.get_duplicate("", "/music/other.mp3") is None

    async def test_get_duplicate_prefers_lowest_id(self, repo: LibraryEntryRepository) -> None:
        first = await repo.save(LibraryEntry(path="/music/z.mp3", hash="same"))
        await repo.save(LibraryEntry(path="/music/a.mp3", hash="same"))

        duplicate = await repo.get_duplicate("same", "/music/new.mp3")

        assert duplicate is not None
        assert duplicate.id == first.id

    async def test_soft_delete_keeps_row(self, repo: LibraryEntryRepository) -> None:
        entry = await repo.save(LibraryEntry(path="/music/x.mp3", entity_id="e-1"))

        await repo.delete(entry)

        assert entry.removed is True
        assert await repo.count_all() == 0
        stored = await repo.get_by_path("/music/x.mp3")
        assert stored is not None
        assert stored.removed is True
        assert stored.entity_id == "e-1"

    async def test_hard_delete_drops_row(self, repo: LibraryEntryRepository) -> None:
        entry = await repo.save(LibraryEntry(path="/music/x.mp3"))

        await repo.delete(entry, hard_delete=True)

        assert await repo.get_by_path("/music/x.mp3") is None

    async def test_delete_by_path_without_id(self, repo: LibraryEntryRepository) -> None:
        await repo.save(LibraryEntry(path="/music/x.mp3"))

        await repo.delete(LibraryEntry(path="/music/x.mp3"), hard_delete=True)

        assert await repo.get_by_path("/music/x.mp3") is None

    async def test_delete_unknown_is_ignored(self, repo: LibraryEntryRepository) -> None:
        await repo.delete(LibraryEntry(path="/music/never.mp3"))


class TestCountsAndListings:
    """Test counters and the issues/uploaded listings."""

    async def test_counts(self, repo: LibraryEntryRepository) -> None:
        await _seed(repo)

        assert await repo.count_all() == 3
        assert await repo.count_uploaded() == 1
        assert await repo.count_issues() == 1

    async def test_load_issues(self, repo: LibraryEntryRepository) -> None:
        await _seed(repo)

        issues = await repo.load_issues()

        assert [(e.path, e.error_reason) for e in issues] == [
            ("/music/c_errored.mp3", "Upload failed")
        ]

    async def test_load_uploaded_newest_first(self, repo: LibraryEntryRepository) -> None:
        now = utc_now()
        await repo.save(LibraryEntry(path="/music/old.mp3", last_upload=now - timedelta(hours=2)))
        await repo.save(LibraryEntry(path="/music/new.mp3", last_upload=now))
        await repo.save(
            LibraryEntry(path="/music/removed.mp3", last_upload=now, removed=True)
        )

        uploaded = await repo.load_uploaded()

        assert [e.path for e in uploaded] == ["/music/new.mp3", "/music/old.mp3"]
