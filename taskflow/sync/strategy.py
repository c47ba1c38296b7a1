"""Pull strategies for the sync session.

A strategy decides when a session pulls remote state. Polling is the only
strategy shipped; a push-based transport can replace it by implementing the
same two methods.
"""

import asyncio
import contextlib
import logging
from typing import Optional

from taskflow.models.constants import DEFAULT_SYNC_INTERVAL_SEC

logger = logging.getLogger(__name__)


class SyncStrategy:
    """Base class for pull triggers."""

    def start(self, session) -> None:
        """Begin triggering ``session.maybe_pull()``. Requires a running event loop."""
        raise NotImplementedError

    async def stop(self) -> None:
        raise NotImplementedError


class PollingStrategy(SyncStrategy):
    """Calls ``session.maybe_pull()`` every ``interval_sec`` seconds."""

    def __init__(self, interval_sec: float = DEFAULT_SYNC_INTERVAL_SEC):
        self.interval_sec = interval_sec
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, session) -> None:
        if self.is_running:
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.get_running_loop().create_task(self._run(session, self._stop_event))
        logger.debug(f"Polling every {self.interval_sec}s")

    async def _run(self, session, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.interval_sec)
                break
            except asyncio.TimeoutError:
                pass
            try:
                await session.maybe_pull()
            except Exception as e:
                logger.error(f"Periodic pull failed: {type(e).__name__}: {str(e)}")

    async def stop(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
