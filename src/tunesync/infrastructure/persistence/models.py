"""SQLAlchemy ORM models for TuneSync."""

from datetime import UTC, datetime

from sqlalchemy import Boolean, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from tunesync.domain.entities import CatalogIdentifiers, LibraryEntry


# Hey future me - SQLite doesn't preserve timezone info! Datetimes come back "naive".
# Attach UTC when reading so comparisons against utc_now() never blow up.
def ensure_utc_aware(dt: datetime | None) -> datetime | None:
    """Ensure datetime is UTC-aware, assuming naive datetimes are UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# Yo, one row per tracked local file. path is UNIQUE - the scanner and the move
# detection both rely on "one entry per path". removed is a soft-delete flag so the
# history (entity id, catalog ids) survives a file temporarily disappearing.
class LibraryEntryModel(Base):
    """SQLAlchemy model for the LibraryEntry entity."""

    __tablename__ = "library_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    path: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    last_upload: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    error: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    error_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    entity_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    mbid_track: Mapped[str | None] = mapped_column(String(36), nullable=True)
    mbid_release: Mapped[str | None] = mapped_column(String(36), nullable=True)
    removed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        Index("ix_library_entries_hash", "hash"),
        Index("ix_library_entries_removed", "removed"),
    )

    def to_entity(self) -> LibraryEntry:
        """Convert the row to a domain entity."""
        return LibraryEntry(
            id=self.id,
            path=self.path,
            hash=self.hash,
            last_upload=ensure_utc_aware(self.last_upload),
            error=self.error,
            error_reason=self.error_reason,
            entity_id=self.entity_id,
            catalog_ids=CatalogIdentifiers(
                track_id=self.mbid_track, release_id=self.mbid_release
            ),
            removed=self.removed,
        )

    def update_from_entity(self, entry: LibraryEntry) -> None:
        """Copy every mutable field from a domain entity onto this row."""
        self.path = entry.path
        self.hash = entry.hash
        self.last_upload = entry.last_upload
        self.error = entry.error
        self.error_reason = entry.error_reason
        self.entity_id = entry.entity_id
        self.mbid_track = entry.catalog_ids.track_id
        self.mbid_release = entry.catalog_ids.release_id
        self.removed = entry.removed
