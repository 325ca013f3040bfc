"""Content fingerprinting for duplicate and move detection."""

import asyncio
import hashlib
from pathlib import Path


class ContentHasher:
    """SHA-256 over file bytes, used as the library-wide duplicate key."""

    def __init__(self, chunk_size: int = 1024 * 1024) -> None:
        self._chunk_size = chunk_size

    async def hash(self, path: str | Path) -> str:
        """Compute the content fingerprint of a file.

        Reading a whole album's worth of FLAC blocks the loop for seconds, so the
        read happens in a worker thread.

        Args:
            path: File to fingerprint

        Returns:
            Hex-encoded SHA-256 digest

        Raises:
            OSError: If the file is missing or unreadable
        """
        return await asyncio.to_thread(self.hash_sync, path)

    def hash_sync(self, path: str | Path) -> str:
        """Synchronous variant of hash()."""
        sha256 = hashlib.sha256()
        with open(path, "rb") as f:
            for chunk in iter(lambda: f.read(self._chunk_size), b""):
                sha256.update(chunk)
        return sha256.hexdigest()
