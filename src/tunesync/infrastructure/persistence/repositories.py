"""Repository implementations for domain entities."""

from __future__ import annotations

import logging

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tunesync.domain.entities import LibraryEntry
from tunesync.domain.exceptions import EntityNotFoundException
from tunesync.domain.ports import ILibraryRepository
from tunesync.infrastructure.persistence.database import Database
from tunesync.infrastructure.persistence.models import LibraryEntryModel
from tunesync.infrastructure.persistence.retry import with_db_retry

logger = logging.getLogger(__name__)


# Hey future me - unlike the per-request repositories you'd write for a web app, this
# one outlives any single session. A reconciliation run takes minutes to hours, and
# holding one SQLite transaction open that long would starve every other writer.
# So every method opens its own short session_scope().
class LibraryEntryRepository(ILibraryRepository):
    """SQLAlchemy implementation of the LibraryEntry repository."""

    def __init__(self, database: Database) -> None:
        """Initialize repository with the database (one session per operation)."""
        self._database = database

    async def count_all(self) -> int:
        async with self._database.session_scope() as session:
            stmt = select(func.count(LibraryEntryModel.id)).where(
                LibraryEntryModel.removed.is_(False)
            )
            return int((await session.execute(stmt)).scalar_one())

    async def count_uploaded(self) -> int:
        async with self._database.session_scope() as session:
            stmt = select(func.count(LibraryEntryModel.id)).where(
                LibraryEntryModel.removed.is_(False),
                LibraryEntryModel.error.is_(False),
                LibraryEntryModel.last_upload.is_not(None),
            )
            return int((await session.execute(stmt)).scalar_one())

    async def count_issues(self) -> int:
        async with self._database.session_scope() as session:
            stmt = select(func.count(LibraryEntryModel.id)).where(
                LibraryEntryModel.removed.is_(False),
                LibraryEntryModel.error.is_(True),
            )
            return int((await session.execute(stmt)).scalar_one())

    async def load_all(
        self,
        include_uploaded: bool = False,
        include_errored: bool = True,
        include_removed: bool = False,
    ) -> list[LibraryEntry]:
        """Load the library snapshot to reconcile, ordered by path.

        Args:
            include_uploaded: Include entries that already have a last upload time
            include_errored: Include entries flagged with an error
            include_removed: Include soft-deleted entries

        Returns:
            Matching entries ordered by path
        """
        stmt = select(LibraryEntryModel)
        if not include_removed:
            stmt = stmt.where(LibraryEntryModel.removed.is_(False))
        if not include_errored:
            stmt = stmt.where(LibraryEntryModel.error.is_(False))
        if not include_uploaded:
            # Errored entries keep their old last_upload, so "not uploaded" means
            # never uploaded OR flagged (when errored entries are wanted).
            if include_errored:
                stmt = stmt.where(
                    LibraryEntryModel.last_upload.is_(None)
                    | LibraryEntryModel.error.is_(True)
                )
            else:
                stmt = stmt.where(LibraryEntryModel.last_upload.is_(None))
        stmt = stmt.order_by(LibraryEntryModel.path)

        async with self._database.session_scope() as session:
            result = await session.execute(stmt)
            return [model.to_entity() for model in result.scalars().all()]

    async def get_duplicate(
        self, content_hash: str, exclude_path: str
    ) -> LibraryEntry | None:
        """Find a non-removed entry with the same content hash at a different path.

        Args:
            content_hash: Content hash of the file being reconciled
            exclude_path: Path of the file being reconciled

        Returns:
            The first matching entry (lowest id) or None
        """
        if not content_hash:
            return None
        stmt = (
            select(LibraryEntryModel)
            .where(
                LibraryEntryModel.hash == content_hash,
                LibraryEntryModel.path != exclude_path,
                LibraryEntryModel.removed.is_(False),
            )
            .order_by(LibraryEntryModel.id)
            .limit(1)
        )
        async with self._database.session_scope() as session:
            model = (await session.execute(stmt)).scalar_one_or_none()
            return model.to_entity() if model else None

    async def get_by_path(self, path: str) -> LibraryEntry | None:
        async with self._database.session_scope() as session:
            model = await self._get_model_by_path(session, path)
            return model.to_entity() if model else None

    @with_db_retry(max_attempts=3)
    async def save(self, entry: LibraryEntry) -> LibraryEntry:
        """Insert or update an entry.

        Entries without an id are matched by path first, so saving a freshly
        scanned entry for a known path updates the existing row.

        Returns:
            The entry with its id set
        """
        async with self._database.session_scope() as session:
            model: LibraryEntryModel | None = None
            if entry.id is not None:
                model = await session.get(LibraryEntryModel, entry.id)
                if model is None:
                    raise EntityNotFoundException("LibraryEntry", entry.id)
            else:
                model = await self._get_model_by_path(session, entry.path)

            if model is None:
                model = LibraryEntryModel()
                model.update_from_entity(entry)
                session.add(model)
            else:
                model.update_from_entity(entry)
            await session.flush()
            entry.id = model.id
            return entry

    @with_db_retry(max_attempts=3)
    async def delete(self, entry: LibraryEntry, hard_delete: bool = False) -> None:
        """Delete an entry.

        Args:
            entry: Entry to delete (matched by id, else by path)
            hard_delete: Drop the row instead of setting the removed flag
        """
        async with self._database.session_scope() as session:
            if entry.id is not None:
                model = await session.get(LibraryEntryModel, entry.id)
            else:
                model = await self._get_model_by_path(session, entry.path)
            if model is None:
                logger.debug("Delete of unknown entry ignored: %s", entry.path)
                return

            if hard_delete:
                await session.execute(
                    delete(LibraryEntryModel).where(LibraryEntryModel.id == model.id)
                )
            else:
                model.removed = True
            entry.removed = True

    async def load_issues(self) -> list[LibraryEntry]:
        stmt = (
            select(LibraryEntryModel)
            .where(
                LibraryEntryModel.removed.is_(False),
                LibraryEntryModel.error.is_(True),
            )
            .order_by(LibraryEntryModel.path)
        )
        async with self._database.session_scope() as session:
            result = await session.execute(stmt)
            return [model.to_entity() for model in result.scalars().all()]

    async def load_uploaded(self) -> list[LibraryEntry]:
        stmt = (
            select(LibraryEntryModel)
            .where(
                LibraryEntryModel.removed.is_(False),
                LibraryEntryModel.error.is_(False),
                LibraryEntryModel.last_upload.is_not(None),
            )
            .order_by(LibraryEntryModel.last_upload.desc())
        )
        async with self._database.session_scope() as session:
            result = await session.execute(stmt)
            return [model.to_entity() for model in result.scalars().all()]

    @staticmethod
    async def _get_model_by_path(
        session: AsyncSession, path: str
    ) -> LibraryEntryModel | None:
        stmt = select(LibraryEntryModel).where(LibraryEntryModel.path == path)
        return (await session.execute(stmt)).scalar_one_or_none()
