"""Audio file metadata extraction."""

from tunesync.infrastructure.metadata.mutagen_extractor import MutagenMetadataExtractor

__all__ = ["MutagenMetadataExtractor"]
