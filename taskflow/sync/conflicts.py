"""Registry of unresolved sync conflicts."""

import logging
from typing import Dict, List, Optional

from taskflow.models.sync import SyncConflict

logger = logging.getLogger(__name__)


class ConflictRegistry:
    """Holds at most one unresolved conflict per item id.

    Recording a conflict for an id that already has one replaces the older
    record. Resolution itself happens in the sync session, which owns the store
    and the pending-change queue.
    """

    def __init__(self):
        self._conflicts: Dict[str, SyncConflict] = {}

    def __len__(self) -> int:
        return len(self._conflicts)

    def record(self, conflict: SyncConflict) -> None:
        if conflict.item_id in self._conflicts:
            logger.debug(f"Replacing earlier conflict on {conflict.item_type} {conflict.item_id}")
        self._conflicts[conflict.item_id] = conflict

    def list(self) -> List[SyncConflict]:
        return list(self._conflicts.values())

    def get(self, item_id: str) -> Optional[SyncConflict]:
        return self._conflicts.get(item_id)

    def has(self, item_id: str) -> bool:
        return item_id in self._conflicts

    def remove(self, item_id: str) -> Optional[SyncConflict]:
        return self._conflicts.pop(item_id, None)

    def clear(self) -> None:
        self._conflicts = {}
