"""Background warm-up of the upload check cache ahead of the reconciliation worker."""

import asyncio
import contextlib
import logging
from pathlib import Path
from typing import Any

from tunesync.application.services.presence_resolver import RemotePresenceResolver
from tunesync.application.workers.run_control import RunControl
from tunesync.domain.entities import LibraryEntry

logger = logging.getLogger(__name__)


# Hey future me - prefetch workers are PURE PRODUCERS. They never touch the repository
# or the entries, they only call is_already_uploaded() which writes into the shared
# UploadCheckCache under its lock. When the reconciliation worker reaches a file, the
# answer is usually already cached and no search round-trip is needed.
class PrefetchScheduler:
    """Bounded pool of asyncio tasks running presence checks ahead of time."""

    def __init__(
        self,
        resolver: RemotePresenceResolver,
        workers: int = 4,
        control: RunControl | None = None,
    ) -> None:
        """Initialize prefetch scheduler.

        Args:
            resolver: Resolver whose cache gets populated
            workers: Number of concurrent worker tasks
            control: Run control; workers stop picking up files once aborted
        """
        self._resolver = resolver
        self._workers = max(1, workers)
        self._control = control
        self._queue: asyncio.Queue[tuple[int, LibraryEntry]] = asyncio.Queue()
        self._tasks: list[asyncio.Task[None]] = []
        self._reached_index = -1
        self._stats: dict[str, int] = {"checked": 0, "skipped": 0, "failed": 0}

    @property
    def is_running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    def mark_reached(self, index: int) -> None:
        """Tell the workers the reconciliation worker has reached ``index``."""
        if index > self._reached_index:
            self._reached_index = index

    async def start(self, entries: list[LibraryEntry]) -> None:
        """Queue the snapshot and spawn the worker tasks."""
        await self.stop()
        self._queue = asyncio.Queue()
        for index, entry in enumerate(entries):
            self._queue.put_nowait((index, entry))

        self._tasks = [
            asyncio.create_task(self._worker_loop(worker_id), name=f"prefetch-{worker_id}")
            for worker_id in range(self._workers)
        ]
        logger.info(
            "Prefetch started: %d files, %d workers", len(entries), self._workers
        )

    async def join(self) -> None:
        """Wait until every worker has drained the queue."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def stop(self) -> None:
        """Cancel all worker tasks and wait for them to finish."""
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        if self._tasks:
            logger.debug("Prefetch stopped. Stats: %s", self._stats)
        self._tasks.clear()

    def get_stats(self) -> dict[str, Any]:
        return {**self._stats, "workers": self._workers, "running": self.is_running}

    async def _worker_loop(self, worker_id: int) -> None:
        while True:
            if self._control is not None and self._control.is_aborted:
                return
            try:
                index, entry = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return

            if not await self._should_check(index, entry):
                self._stats["skipped"] += 1
                continue

            try:
                await self._resolver.is_already_uploaded(entry.path)
                self._stats["checked"] += 1
            except Exception as e:
                self._stats["failed"] += 1
                logger.warning("Prefetch worker %d failed on %s: %s", worker_id, entry.path, e)

    async def _should_check(self, index: int, entry: LibraryEntry) -> bool:
        if index <= self._reached_index:
            return False
        if await self._resolver.cache.contains(entry.path):
            return False
        return await asyncio.to_thread(Path(entry.path).exists)
