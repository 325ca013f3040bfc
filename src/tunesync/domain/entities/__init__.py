"""Domain entities."""

from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from tunesync.domain.entities.error_codes import UploadErrorCode


def utc_now() -> datetime:
    """Get current UTC time."""
    return datetime.now(UTC)


# Hey future me - CatalogIdentifiers is FROZEN on purpose! LibraryEntry and the
# UploadCheckCache each hold their own copy. Updating one never leaks into the other,
# they just converge over time as backfills happen. Use merged_with() to fill gaps,
# never mutate in place.
@dataclass(frozen=True)
class CatalogIdentifiers:
    """External catalog keys (MusicBrainz recording + release ids)."""

    track_id: str | None = None
    release_id: str | None = None

    @property
    def is_complete(self) -> bool:
        """True when both identifiers are known."""
        return bool(self.track_id) and bool(self.release_id)

    @property
    def is_empty(self) -> bool:
        """True when neither identifier is known."""
        return not self.track_id and not self.release_id

    def merged_with(self, other: "CatalogIdentifiers | None") -> "CatalogIdentifiers":
        """Return a copy with missing fields taken from ``other``.

        Fields already present on self always win.
        """
        if other is None:
            return self
        return CatalogIdentifiers(
            track_id=self.track_id or other.track_id,
            release_id=self.release_id or other.release_id,
        )


@dataclass(frozen=True)
class TrackMetadata:
    """Artist / album / track as read from a file's tags."""

    artist: str
    album: str
    track: str

    @property
    def search_query(self) -> str:
        """Search query sent to the remote catalog."""
        return f"{self.artist} {self.album} {self.track}"


class PresenceStatus(str, Enum):
    """Outcome of a remote presence resolution."""

    FOUND = "found"
    NOT_FOUND = "not_found"
    # Transport/parse failure. Behaves like NOT_FOUND but is never cached.
    FAILED = "failed"


@dataclass(frozen=True)
class PresenceResult:
    """Result of asking "is this track already on the remote?"."""

    status: PresenceStatus
    entity_id: str | None = None
    catalog_ids: CatalogIdentifiers = field(default_factory=CatalogIdentifiers)

    @property
    def is_present(self) -> bool:
        """Only a FOUND result counts as present."""
        return self.status == PresenceStatus.FOUND

    @classmethod
    def found(
        cls, entity_id: str | None, catalog_ids: CatalogIdentifiers | None = None
    ) -> "PresenceResult":
        return cls(
            PresenceStatus.FOUND,
            entity_id=entity_id,
            catalog_ids=catalog_ids or CatalogIdentifiers(),
        )

    @classmethod
    def not_found(cls, catalog_ids: CatalogIdentifiers | None = None) -> "PresenceResult":
        return cls(PresenceStatus.NOT_FOUND, catalog_ids=catalog_ids or CatalogIdentifiers())

    @classmethod
    def failed(cls) -> "PresenceResult":
        return cls(PresenceStatus.FAILED)


# Hey future me, LibraryEntry is THE persisted record - one per tracked local file.
# "Uploaded" is not a separate flag: an entry with last_upload set and no error is done.
# Use the domain methods (mark_uploaded, mark_error, migrate_to) instead of poking
# fields directly so timestamps and error state stay consistent.
@dataclass
class LibraryEntry:
    """A tracked local file and its reconciliation state."""

    path: str
    id: int | None = None
    hash: str | None = None
    last_upload: datetime | None = None
    error: bool = False
    error_reason: str | None = None
    entity_id: str | None = None
    catalog_ids: CatalogIdentifiers = field(default_factory=CatalogIdentifiers)
    removed: bool = False

    @property
    def is_uploaded(self) -> bool:
        """True once the entry is known to exist remotely."""
        return self.last_upload is not None and not self.error

    def mark_uploaded(self, entity_id: str | None = None) -> None:
        """Record a successful upload or a confirmed remote presence."""
        self.last_upload = utc_now()
        self.error = False
        self.error_reason = None
        if entity_id:
            self.entity_id = entity_id

    def mark_error(self, reason: str) -> None:
        """Record a per-file failure."""
        self.error = True
        self.error_reason = reason

    def backfill_identifiers(self, catalog_ids: CatalogIdentifiers | None) -> None:
        """Fill missing catalog identifiers, keeping the ones we already have."""
        self.catalog_ids = self.catalog_ids.merged_with(catalog_ids)

    def migrate_to(self, new_path: str) -> None:
        """Move this entry to a new path (file renamed or moved on disk)."""
        self.path = new_path
        self.last_upload = utc_now()
        self.removed = False


@dataclass(frozen=True)
class UploadResult:
    """Outcome of an upload attempt."""

    success: bool
    error_code: UploadErrorCode | None = None
    reason: str | None = None

    @classmethod
    def ok(cls) -> "UploadResult":
        return cls(success=True)

    @classmethod
    def failure(cls, error_code: UploadErrorCode, reason: str) -> "UploadResult":
        return cls(success=False, error_code=error_code, reason=reason)


class ReconcileState(str, Enum):
    """Per-file states of the reconciliation state machine."""

    DISCOVERED = "discovered"
    HASHED = "hashed"
    MOVED = "moved"
    CHECKING = "checking"
    ALREADY_PRESENT = "already_present"
    NEEDS_UPLOAD = "needs_upload"
    PERSISTED = "persisted"
    ERRORED = "errored"
    REMOVED = "removed"


@dataclass
class RunCounters:
    """Library-wide counters shown while a run is in progress."""

    discovered: int = 0
    uploaded: int = 0
    issues: int = 0


@dataclass
class ReconcileReport:
    """Summary of one reconciliation run."""

    processed: int = 0
    moved: int = 0
    already_present: int = 0
    uploaded: int = 0
    errored: int = 0
    removed: int = 0
    aborted: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


__all__ = [
    "CatalogIdentifiers",
    "LibraryEntry",
    "PresenceResult",
    "PresenceStatus",
    "ReconcileReport",
    "ReconcileState",
    "RunCounters",
    "TrackMetadata",
    "UploadErrorCode",
    "UploadResult",
    "utc_now",
]
