"""Abort signal, cancellable waits and the "managing" state shared by a run."""

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from enum import Enum

from tunesync.domain.exceptions import RunAborted

logger = logging.getLogger(__name__)


class ManagingState(str, Enum):
    """State of the external exclusive "manage remote library" operation."""

    IDLE = "idle"
    # The user is managing the remote library; reconciliation must pause.
    SHOWING = "showing"
    # Managing finished and changed the remote; the current run is obsolete.
    CLOSE_CHANGES = "close_changes"


# Hey future me - this replaces every "sleep 1s then check a flag" loop. The abort
# signal is an asyncio.Event so waits wake up IMMEDIATELY on abort instead of
# finishing their sleep. Every blocking point in a run (network wait, managing wait,
# retry backoff) goes through sleep() or wait_while() so abort is honoured everywhere.
class RunControl:
    """Process-wide abort signal plus cancellable timed waits."""

    def __init__(self, poll_interval_seconds: float = 1.0) -> None:
        self._abort_event = asyncio.Event()
        self._poll_interval = poll_interval_seconds
        self.managing_state = ManagingState.IDLE

    @property
    def poll_interval(self) -> float:
        return self._poll_interval

    @property
    def is_aborted(self) -> bool:
        return self._abort_event.is_set()

    def abort(self) -> None:
        """Request termination of the running reconciliation."""
        if not self._abort_event.is_set():
            logger.info("Abort requested")
        self._abort_event.set()

    def reset(self) -> None:
        """Clear the abort signal before starting a new run."""
        self._abort_event.clear()

    def raise_if_aborted(self) -> None:
        if self._abort_event.is_set():
            raise RunAborted()

    async def sleep(self, seconds: float) -> bool:
        """Sleep unless aborted.

        Returns:
            True if the full delay elapsed, False if the abort signal fired
        """
        if self._abort_event.is_set():
            return False
        try:
            await asyncio.wait_for(self._abort_event.wait(), timeout=seconds)
        except TimeoutError:
            return True
        return False

    async def wait_while(
        self,
        predicate: Callable[[], Awaitable[bool]] | Callable[[], bool],
        on_wait: Callable[[], None] | None = None,
    ) -> bool:
        """Poll until ``predicate`` turns false.

        Args:
            predicate: Sync or async callable, polled once per poll interval
            on_wait: Called once per iteration while still waiting

        Returns:
            True once the condition cleared, False if aborted while waiting
        """
        while True:
            if self._abort_event.is_set():
                return False
            outcome = predicate()
            if inspect.isawaitable(outcome):
                outcome = await outcome
            if not outcome:
                return True
            if on_wait is not None:
                on_wait()
            if not await self.sleep(self._poll_interval):
                return False

    def begin_managing(self) -> None:
        self.managing_state = ManagingState.SHOWING

    def end_managing(self, close_changes: bool = False) -> None:
        self.managing_state = (
            ManagingState.CLOSE_CHANGES if close_changes else ManagingState.IDLE
        )

    @property
    def is_managing(self) -> bool:
        return self.managing_state == ManagingState.SHOWING
