"""Queue of local mutations awaiting confirmation by the remote service."""

import logging
from collections import deque
from typing import Any, Callable, Deque, Dict, List, Optional, Set

from taskflow.models.entity import EntityType
from taskflow.models.sync import ChangeAction, PendingChange
from taskflow.models.constants import MAX_DROPPED_CHANGES, MAX_PUSH_RETRIES
from taskflow.models.entity_factory import now_ms
from taskflow.sync.ports import RemotePersistenceService

logger = logging.getLogger(__name__)


class FlushResult:
    """Outcome of one flush."""

    def __init__(self, skipped: bool = False):
        self.skipped = skipped
        self.sent: List[PendingChange] = []
        self.failed: List[PendingChange] = []
        self.dropped: List[PendingChange] = []

    def __repr__(self) -> str:
        return (
            f"FlushResult(skipped={self.skipped}, sent={len(self.sent)}, "
            f"failed={len(self.failed)}, dropped={len(self.dropped)})"
        )


class PendingChangeQueue:
    """FIFO queue of pending changes with a bounded retry budget.

    Flushing is single-flight: a flush started while another one is running
    returns immediately without sending anything.
    """

    def __init__(
        self,
        max_retries: int = MAX_PUSH_RETRIES,
        clock: Callable[[], int] = now_ms,
        max_dropped: int = MAX_DROPPED_CHANGES,
    ):
        self.max_retries = max_retries
        self._clock = clock
        self._changes: List[PendingChange] = []
        self._flushing = False
        self.dropped: Deque[PendingChange] = deque(maxlen=max_dropped)

    def __len__(self) -> int:
        return len(self._changes)

    @property
    def is_flushing(self) -> bool:
        return self._flushing

    def changes(self) -> List[PendingChange]:
        return list(self._changes)

    def enqueue(
        self,
        entity_type,
        action: ChangeAction,
        entity_id: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> PendingChange:
        change = PendingChange(
            type=entity_type,
            action=action,
            id=entity_id,
            data=data,
            timestamp=self._clock(),
            retry_count=0,
        )
        self._changes.append(change)
        logger.debug(f"Queued {change.action} {change.type} {change.id} ({len(self._changes)} pending)")
        return change

    def has_pending_for(self, entity_type, entity_id: str) -> bool:
        entity_type = EntityType(entity_type)
        return any(EntityType(c.type) == entity_type and c.id == entity_id for c in self._changes)

    def pending_delete_ids(self, entity_type) -> Set[str]:
        entity_type = EntityType(entity_type)
        return {
            c.id for c in self._changes
            if EntityType(c.type) == entity_type and c.action == ChangeAction.DELETE
        }

    def rekey(self, entity_type, old_id: str, new_id: str) -> int:
        """Point queued changes for ``old_id`` at ``new_id``.

        Returns:
            Number of changes rewritten
        """
        entity_type = EntityType(entity_type)
        count = 0
        for change in self._changes:
            if EntityType(change.type) == entity_type and change.id == old_id:
                change.id = new_id
                if change.data and change.data.get("id") == old_id:
                    change.data = {**change.data, "id": new_id}
                count += 1
        return count

    def clear(self) -> None:
        self._changes = []
        self.dropped.clear()

    def _contains(self, change: PendingChange) -> bool:
        return any(c is change for c in self._changes)

    def _remove(self, change: PendingChange) -> None:
        self._changes = [c for c in self._changes if c is not change]

    async def _send(self, remote: RemotePersistenceService, change: PendingChange, timeout: Optional[float]):
        action = ChangeAction(change.action)
        if action == ChangeAction.CREATE:
            return await remote.create(change.type, change.data or {}, timeout=timeout)
        if action == ChangeAction.UPDATE:
            await remote.update(change.type, change.id, change.data or {}, timeout=timeout)
            return None
        await remote.delete(change.type, change.id, timeout=timeout)
        return None

    async def flush(
        self,
        remote: RemotePersistenceService,
        on_success: Optional[Callable[[PendingChange, Any], None]] = None,
        timeout: Optional[float] = None,
    ) -> FlushResult:
        """Send every change queued at the start of the flush, in FIFO order.

        Args:
            remote: Remote persistence service
            on_success: Called synchronously with (change, response) after each
                confirmed change
            timeout: Per-call timeout in seconds, passed to the remote

        Returns:
            FlushResult (``skipped`` is True if another flush was running)
        """
        if self._flushing:
            logger.debug("Flush already in progress, skipping")
            return FlushResult(skipped=True)

        self._flushing = True
        result = FlushResult()
        try:
            for change in list(self._changes):
                if not self._contains(change):
                    continue
                try:
                    response = await self._send(remote, change, timeout)
                except Exception as e:
                    if not self._contains(change):
                        continue
                    change.retry_count += 1
                    if change.retry_count >= self.max_retries:
                        self._remove(change)
                        self.dropped.append(change)
                        result.dropped.append(change)
                        logger.warning(
                            f"Dropping {change.action} {change.type} {change.id} after "
                            f"{change.retry_count} failed attempts: {type(e).__name__}: {str(e)}"
                        )
                    else:
                        result.failed.append(change)
                        logger.error(
                            f"Failed to push {change.action} {change.type} {change.id} "
                            f"(attempt {change.retry_count}): {type(e).__name__}: {str(e)}"
                        )
                    continue

                self._remove(change)
                result.sent.append(change)
                if on_success is not None:
                    on_success(change, response)
        finally:
            self._flushing = False

        if result.sent or result.dropped:
            logger.info(f"Flush complete: {result!r}, {len(self._changes)} still pending")
        return result
