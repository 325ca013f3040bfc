"""Domain ports (interfaces) for dependency inversion."""

from abc import ABC, abstractmethod
from typing import Any

from tunesync.domain.entities import (
    CatalogIdentifiers,
    LibraryEntry,
    RunCounters,
    TrackMetadata,
)


class ILibraryRepository(ABC):
    """Port for LibraryEntry persistence."""

    @abstractmethod
    async def count_all(self) -> int:
        """Count non-removed entries."""
        pass

    @abstractmethod
    async def count_uploaded(self) -> int:
        """Count non-removed entries that are uploaded."""
        pass

    @abstractmethod
    async def count_issues(self) -> int:
        """Count non-removed entries flagged with an error."""
        pass

    @abstractmethod
    async def load_all(
        self,
        include_uploaded: bool = False,
        include_errored: bool = True,
        include_removed: bool = False,
    ) -> list[LibraryEntry]:
        """Load the library snapshot to reconcile, ordered by path."""
        pass

    @abstractmethod
    async def get_duplicate(
        self, content_hash: str, exclude_path: str
    ) -> LibraryEntry | None:
        """Find a non-removed entry with the same hash at a different path."""
        pass

    @abstractmethod
    async def get_by_path(self, path: str) -> LibraryEntry | None:
        """Get an entry by its path (removed entries included)."""
        pass

    @abstractmethod
    async def save(self, entry: LibraryEntry) -> LibraryEntry:
        """Insert or update an entry. Returns the entry with its id set."""
        pass

    @abstractmethod
    async def delete(self, entry: LibraryEntry, hard_delete: bool = False) -> None:
        """Delete an entry. Soft delete sets the removed flag, hard delete drops the row."""
        pass

    @abstractmethod
    async def load_issues(self) -> list[LibraryEntry]:
        """Load non-removed entries flagged with an error."""
        pass

    @abstractmethod
    async def load_uploaded(self) -> list[LibraryEntry]:
        """Load non-removed uploaded entries, most recent first."""
        pass


class IMetadataExtractor(ABC):
    """Port for reading tags, catalog identifiers and artwork from audio files."""

    @abstractmethod
    async def get_metadata(self, path: str) -> TrackMetadata | None:
        """Artist/album/track of a file, or None if the tags are unusable."""
        pass

    @abstractmethod
    async def get_catalog_identifiers(
        self, path: str, force_refresh: bool = False
    ) -> CatalogIdentifiers:
        """Track- and release-level catalog ids (may be empty, never None)."""
        pass

    @abstractmethod
    async def get_artwork(self, path: str, use_cache: bool = True) -> bytes | None:
        """Album artwork image bytes, or None."""
        pass


class IRemoteCatalogClient(ABC):
    """Port for the remote catalog service."""

    @abstractmethod
    async def check_authenticated(self, session: str) -> bool:
        """True if the session cookie is accepted by the remote."""
        pass

    @abstractmethod
    async def search(self, query: str, session: str) -> dict[str, Any]:
        """Search the user's uploads. Returns the raw result payload.

        Raises:
            httpx.HTTPError: on transport failure
        """
        pass

    @abstractmethod
    async def upload_file(self, path: str, session: str, throttle: int = 0) -> str | None:
        """Upload a file. Returns None on success or a non-empty error string."""
        pass

    @abstractmethod
    async def list_uploaded_artists(self, session: str) -> list[str]:
        """All artist names present in the user's uploads."""
        pass

    @abstractmethod
    async def is_network_available(self) -> bool:
        """True if the internet connection is up."""
        pass


# Hey future me - the sink is WRITE-ONLY from the core's point of view. Nothing in the
# reconciliation flow ever waits on it, so implementations must return quickly (no
# blocking I/O, no user prompts). The only thing the core waits on is the "managing"
# state in RunControl, which is a separate mechanism.
class IProgressSink(ABC):
    """Port for UI/progress signals emitted by the core."""

    @abstractmethod
    def set_status(self, message: str, short_message: str | None = None) -> None:
        pass

    @abstractmethod
    def set_current_file(self, message: str, path: str | None) -> None:
        pass

    @abstractmethod
    def set_artwork(self, image: bytes | None) -> None:
        pass

    @abstractmethod
    def set_counters(self, counters: RunCounters) -> None:
        pass

    @abstractmethod
    def set_busy(self, busy: bool) -> None:
        pass

    @abstractmethod
    def set_paused(self, paused: bool) -> None:
        pass


__all__ = [
    "ILibraryRepository",
    "IMetadataExtractor",
    "IProgressSink",
    "IRemoteCatalogClient",
]
