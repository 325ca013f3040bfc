"""Discovers audio files in the watch folders and registers them as library entries."""

import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path

from tunesync.domain.entities import LibraryEntry
from tunesync.domain.ports import ILibraryRepository

logger = logging.getLogger(__name__)

# Formats the remote library accepts for upload.
AUDIO_EXTENSIONS = frozenset({".flac", ".m4a", ".mp3", ".ogg", ".wma"})


@dataclass
class ScanSummary:
    """Counts of one scan pass."""

    files_found: int = 0
    added: int = 0
    revived: int = 0


class LibraryScanner:
    """Keeps the repository in step with what's on disk.

    New files get a fresh LibraryEntry. Soft-deleted entries whose file shows up again
    are revived so their upload history is kept. Files that disappeared are NOT
    handled here: the reconciliation worker removes them when it reaches them.
    """

    def __init__(self, repository: ILibraryRepository) -> None:
        self._repository = repository

    async def scan(self, watch_folders: list[str]) -> ScanSummary:
        """Scan every watch folder and register new audio files.

        Args:
            watch_folders: Root directories to walk recursively

        Returns:
            ScanSummary with found/added/revived counts
        """
        summary = ScanSummary()
        known = {
            entry.path: entry
            for entry in await self._repository.load_all(
                include_uploaded=True, include_errored=True, include_removed=True
            )
        }

        for folder in watch_folders:
            if not Path(folder).is_dir():
                logger.warning("Watch folder does not exist, skipping: %s", folder)
                continue

            files = await asyncio.to_thread(discover_audio_files, Path(folder))
            summary.files_found += len(files)
            for file_path in files:
                path = str(file_path)
                existing = known.get(path)
                if existing is None:
                    known[path] = await self._repository.save(LibraryEntry(path=path))
                    summary.added += 1
                elif existing.removed:
                    existing.removed = False
                    await self._repository.save(existing)
                    summary.revived += 1

        logger.info(
            "Library scan complete: %d files found, %d new, %d revived",
            summary.files_found,
            summary.added,
            summary.revived,
        )
        return summary


def discover_audio_files(directory: Path) -> list[Path]:
    """Recursively collect audio files below ``directory``, sorted by path.

    Unreadable subdirectories are logged and skipped.
    """
    audio_files: list[Path] = []

    def _on_error(error: OSError) -> None:
        logger.warning("Cannot scan directory %s: %s", error.filename, error.strerror)

    for root, _dirs, files in os.walk(directory, onerror=_on_error, followlinks=True):
        for filename in files:
            if Path(filename).suffix.lower() in AUDIO_EXTENSIONS:
                audio_files.append(Path(root) / filename)

    audio_files.sort()
    return audio_files
