"""HTTP integrations with external services."""

from tunesync.infrastructure.integrations.coverartarchive_client import (
    CoverArtArchiveClient,
)
from tunesync.infrastructure.integrations.musicbrainz_client import MusicBrainzClient
from tunesync.infrastructure.integrations.remote_catalog_client import (
    RemoteCatalogClient,
)

__all__ = ["CoverArtArchiveClient", "MusicBrainzClient", "RemoteCatalogClient"]
