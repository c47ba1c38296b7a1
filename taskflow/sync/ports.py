"""Interfaces the sync session depends on.

Any object with these async methods can be plugged into a SyncSession; the HTTP
client in ``taskflow.integrations.remote_service`` and the test fakes both do.
"""

from typing import Any, Dict, List, Optional, Protocol

from taskflow.models.entity import EntityType
from taskflow.models.task import Task


class RemotePersistenceService(Protocol):
    """Remote store offering fetch-all/create/update/delete per entity type.

    All calls are idempotent by id: repeating a create with the same id must not
    duplicate the entity, and deleting a missing id is not an error.
    """

    async def list_all(
        self, entity_type: EntityType, user_id: str, *, timeout: Optional[float] = None
    ) -> List[Dict[str, Any]]:
        ...

    async def create(
        self, entity_type: EntityType, data: Dict[str, Any], *, timeout: Optional[float] = None
    ) -> Dict[str, Any]:
        """Create an entity. The returned dict may carry a server-assigned id."""
        ...

    async def update(
        self, entity_type: EntityType, entity_id: str, fields: Dict[str, Any], *, timeout: Optional[float] = None
    ) -> None:
        ...

    async def delete(self, entity_type: EntityType, entity_id: str, *, timeout: Optional[float] = None) -> None:
        ...


class CalendarSink(Protocol):
    """Best-effort external calendar mirror for tasks with a due date."""

    async def sync_task(self, task: Task) -> Optional[str]:
        """Create or update the event linked to a task; return its event id."""
        ...

    async def remove_task(self, task: Task) -> None:
        ...

    async def fetch_events(self) -> List[Dict[str, Any]]:
        ...
