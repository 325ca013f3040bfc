"""Progress sink that writes UI signals to the log.

Used when TuneSync runs headless (CLI). A GUI shell would provide its own IProgressSink.
"""

import logging

from tunesync.domain.entities import RunCounters
from tunesync.domain.ports import IProgressSink

logger = logging.getLogger(__name__)


class LoggingProgressSink(IProgressSink):
    """IProgressSink implementation backed by logging.

    Repeated identical status messages are collapsed so a long run of "Already Present"
    files doesn't flood the log with the same status line.
    """

    def __init__(self) -> None:
        self._last_status: str | None = None
        self.counters = RunCounters()
        self.busy = False
        self.paused = False
        self.artwork: bytes | None = None

    def set_status(self, message: str, short_message: str | None = None) -> None:
        if message == self._last_status:
            return
        self._last_status = message
        logger.info(message)

    def set_current_file(self, message: str, path: str | None) -> None:
        logger.debug("%s", message)

    def set_artwork(self, image: bytes | None) -> None:
        self.artwork = image
        logger.debug("Artwork updated (%d bytes)", len(image) if image else 0)

    def set_counters(self, counters: RunCounters) -> None:
        self.counters = RunCounters(
            discovered=counters.discovered,
            uploaded=counters.uploaded,
            issues=counters.issues,
        )
        logger.debug(
            "Counters: discovered=%d uploaded=%d issues=%d",
            counters.discovered,
            counters.uploaded,
            counters.issues,
        )

    def set_busy(self, busy: bool) -> None:
        self.busy = busy

    def set_paused(self, paused: bool) -> None:
        if paused != self.paused:
            logger.info("Paused" if paused else "Resumed")
        self.paused = paused
