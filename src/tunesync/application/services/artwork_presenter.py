"""Single-slot, supersede-on-new artwork fetching for the progress sink."""

import asyncio
import logging

from tunesync.domain.ports import IMetadataExtractor, IProgressSink

logger = logging.getLogger(__name__)


# Hey future me - there's only ever ONE artwork fetch in flight. show() cancels the
# previous task and moves on without awaiting it (a slow Cover Art Archive call must
# never stall the reconciliation loop). The sink only gets touched after a fetch
# completes, so a cancelled fetch leaves whatever image was showing before.
class ArtworkPresenter:
    """Owns the current artwork-fetch task handle."""

    def __init__(self, extractor: IMetadataExtractor, sink: IProgressSink) -> None:
        self._extractor = extractor
        self._sink = sink
        self._task: asyncio.Task[None] | None = None

    @property
    def current_task(self) -> asyncio.Task[None] | None:
        return self._task

    def show(self, path: str, use_cache: bool = True) -> asyncio.Task[None]:
        """Start fetching artwork for ``path``, superseding any in-flight fetch.

        Args:
            path: Local audio file to take the artwork from
            use_cache: Allow the extractor to serve a cached image

        Returns:
            The new fetch task
        """
        self._cancel_current()
        self._task = asyncio.create_task(
            self._fetch(path, use_cache), name=f"artwork:{path}"
        )
        return self._task

    def clear(self) -> None:
        """Cancel any fetch and reset the sink to the default (no) artwork."""
        self._cancel_current()
        self._task = None
        self._sink.set_artwork(None)

    async def close(self) -> None:
        """Cancel and await the in-flight fetch (shutdown only)."""
        task = self._task
        self._cancel_current()
        self._task = None
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass

    def _cancel_current(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def _fetch(self, path: str, use_cache: bool) -> None:
        try:
            image = await self._extractor.get_artwork(path, use_cache=use_cache)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.debug("Artwork fetch failed for %s: %s", path, e)
            return
        self._sink.set_artwork(image)
