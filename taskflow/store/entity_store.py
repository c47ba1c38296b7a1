"""In-memory entity store for one user session.

The store is the single owner of the Task, Project and Tag collections. All
mutation goes through add/update/delete so every accepted change bumps the
entity's version and stamps last_modified. The store knows nothing about the
network; the sync session wraps it and queues the matching pending changes.
"""

import logging
from datetime import date, datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from taskflow.models.entity import EntityType, SyncStatus, SyncedEntity, IDENTITY_FIELDS
from taskflow.models.task import Task, TaskStatus
from taskflow.models.project import Project
from taskflow.models.tag import Tag
from taskflow.models.constants import PROJECT_COLORS, TAG_COLORS
from taskflow.models.entity_factory import (
    now_ms,
    create_task_base,
    create_project_base,
    create_tag_base,
    create_subtask,
)
from taskflow.engine import filters
from taskflow.engine.versioning import enum_value

logger = logging.getLogger(__name__)


class EntityStore:
    """Holds the three entity collections for one user."""

    def __init__(self, user_id: str, clock: Callable[[], int] = now_ms):
        self.user_id = user_id
        self._clock = clock
        self._collections: Dict[EntityType, List[SyncedEntity]] = {t: [] for t in EntityType}

    # Snapshots

    @property
    def tasks(self) -> List[Task]:
        return list(self._collections[EntityType.TASK])

    @property
    def projects(self) -> List[Project]:
        return list(self._collections[EntityType.PROJECT])

    @property
    def tags(self) -> List[Tag]:
        return list(self._collections[EntityType.TAG])

    def all(self, entity_type) -> List[SyncedEntity]:
        return list(self._collections[EntityType(entity_type)])

    def get(self, entity_type, entity_id: str) -> Optional[SyncedEntity]:
        for entity in self._collections[EntityType(entity_type)]:
            if entity.id == entity_id:
                return entity
        return None

    def _index(self, entity_type: EntityType, entity_id: str) -> Optional[int]:
        for i, entity in enumerate(self._collections[entity_type]):
            if entity.id == entity_id:
                return i
        return None

    # Mutations

    def add(self, entity_type, **fields: Any) -> SyncedEntity:
        """Create a new entity with fresh sync metadata and append it.

        Args:
            entity_type: Collection to add to
            **fields: Entity fields (tasks require ``title``, projects and tags ``name``)

        Returns:
            The created entity (version 1, sync status pending)
        """
        entity_type = EntityType(entity_type)
        collection = self._collections[entity_type]
        last_modified = self._clock()

        if entity_type == EntityType.TASK:
            order = fields.pop("order", None)
            if order is None:
                order = len(collection)
            title = fields.pop("title")
            entity = create_task_base(self.user_id, title, order, last_modified=last_modified, **fields)
        elif entity_type == EntityType.PROJECT:
            color = fields.get("color") or PROJECT_COLORS[len(collection) % len(PROJECT_COLORS)]
            entity = create_project_base(
                self.user_id, fields["name"], color, icon=fields.get("icon"), last_modified=last_modified,
            )
        else:
            color = fields.get("color") or TAG_COLORS[len(collection) % len(TAG_COLORS)]
            entity = create_tag_base(self.user_id, fields["name"], color, last_modified=last_modified)

        collection.append(entity)
        logger.debug(f"Added {enum_value(entity_type)} {entity.id}")
        return entity

    def add_task(self, title: str, **fields: Any) -> Task:
        return self.add(EntityType.TASK, title=title, **fields)

    def add_project(self, name: str, color: Optional[str] = None, icon: Optional[str] = None) -> Project:
        return self.add(EntityType.PROJECT, name=name, color=color, icon=icon)

    def add_tag(self, name: str, color: Optional[str] = None) -> Tag:
        return self.add(EntityType.TAG, name=name, color=color)

    def update(self, entity_type, entity_id: str, fields: Dict[str, Any]) -> Optional[SyncedEntity]:
        """Apply a partial update to one entity.

        Identity fields in ``fields`` are ignored. Every accepted update bumps the
        version, stamps last_modified and marks the entity pending.

        Args:
            entity_type: Collection holding the entity
            entity_id: Entity id
            fields: Partial field values

        Returns:
            The updated entity, or None if the id is unknown

        Raises:
            pydantic.ValidationError: If a field value is invalid (store untouched)
        """
        entity_type = EntityType(entity_type)
        idx = self._index(entity_type, entity_id)
        if idx is None:
            logger.debug(f"Update skipped: {enum_value(entity_type)} {entity_id} not found")
            return None

        current = self._collections[entity_type][idx]
        data = current.model_dump()
        data.update({k: v for k, v in fields.items() if k not in IDENTITY_FIELDS})
        data["version"] = current.version + 1
        data["last_modified"] = self._clock()
        data["sync_status"] = SyncStatus.PENDING
        if entity_type == EntityType.TASK:
            data["updated_at"] = datetime.utcnow()

        updated = type(current).model_validate(data)
        self._collections[entity_type][idx] = updated
        logger.debug(f"Updated {enum_value(entity_type)} {entity_id} to version {updated.version}")
        return updated

    def delete(self, entity_type, entity_id: str) -> List[str]:
        """Remove an entity; projects and tags cascade to referencing tasks.

        Returns:
            Ids of tasks whose references were cleared
        """
        entity_type = EntityType(entity_type)
        idx = self._index(entity_type, entity_id)
        if idx is None:
            return []
        del self._collections[entity_type][idx]

        cascaded: List[str] = []
        if entity_type == EntityType.PROJECT:
            for task in self.tasks:
                if task.project_id == entity_id:
                    self.update(EntityType.TASK, task.id, {"project_id": None})
                    cascaded.append(task.id)
        elif entity_type == EntityType.TAG:
            for task in self.tasks:
                if entity_id in task.tags:
                    self.update(EntityType.TASK, task.id, {"tags": [t for t in task.tags if t != entity_id]})
                    cascaded.append(task.id)

        logger.debug(f"Deleted {enum_value(entity_type)} {entity_id} ({len(cascaded)} tasks updated)")
        return cascaded

    def reorder_tasks(self, ordered_ids: Iterable[str]) -> List[str]:
        """Assign display ranks following ``ordered_ids``.

        Only tasks whose rank actually changes are updated.

        Returns:
            Ids of updated tasks
        """
        changed: List[str] = []
        for order, task_id in enumerate(ordered_ids):
            task = self.get(EntityType.TASK, task_id)
            if task is not None and task.order != order:
                self.update(EntityType.TASK, task_id, {"order": order})
                changed.append(task_id)
        return changed

    # Subtasks are owned by their task: every change is a task update

    def add_subtask(self, task_id: str, title: str, reminder: Optional[datetime] = None) -> Optional[Task]:
        task = self.get(EntityType.TASK, task_id)
        if task is None:
            return None
        return self.update(EntityType.TASK, task_id, {"subtasks": task.subtasks + [create_subtask(title, reminder)]})

    def update_subtask(self, task_id: str, subtask_id: str, fields: Dict[str, Any]) -> Optional[Task]:
        task = self.get(EntityType.TASK, task_id)
        if task is None or not any(s.id == subtask_id for s in task.subtasks):
            return None
        fields = {k: v for k, v in fields.items() if k != "id"}
        subtasks = [s.model_copy(update=fields) if s.id == subtask_id else s for s in task.subtasks]
        return self.update(EntityType.TASK, task_id, {"subtasks": [s.model_dump() for s in subtasks]})

    def delete_subtask(self, task_id: str, subtask_id: str) -> Optional[Task]:
        task = self.get(EntityType.TASK, task_id)
        if task is None or not any(s.id == subtask_id for s in task.subtasks):
            return None
        return self.update(EntityType.TASK, task_id, {"subtasks": [s for s in task.subtasks if s.id != subtask_id]})

    def toggle_subtask_complete(self, task_id: str, subtask_id: str) -> Optional[Task]:
        task = self.get(EntityType.TASK, task_id)
        if task is None:
            return None
        for subtask in task.subtasks:
            if subtask.id == subtask_id:
                return self.update_subtask(task_id, subtask_id, {"completed": not subtask.completed})
        return None

    # Sync support (used by the session only)

    def set_sync_status(self, entity_type, entity_id: str, status: SyncStatus) -> bool:
        """Change the advisory sync status without bumping the version."""
        entity_type = EntityType(entity_type)
        idx = self._index(entity_type, entity_id)
        if idx is None:
            return False
        collection = self._collections[entity_type]
        collection[idx] = collection[idx].model_copy(update={"sync_status": status})
        return True

    def replace_collection(self, entity_type, entities: Iterable[SyncedEntity]) -> None:
        self._collections[EntityType(entity_type)] = list(entities)

    def replace_id(self, entity_type, old_id: str, new_id: str) -> List[str]:
        """Rename an entity after the server reassigned its id.

        Task references to a renamed project or tag are rewritten as ordinary
        task updates.

        Returns:
            Ids of tasks whose references were rewritten
        """
        entity_type = EntityType(entity_type)
        idx = self._index(entity_type, old_id)
        if idx is None or old_id == new_id:
            return []
        collection = self._collections[entity_type]
        collection[idx] = collection[idx].model_copy(update={"id": new_id})
        logger.info(f"Server reassigned {enum_value(entity_type)} id {old_id} -> {new_id}")

        rewritten: List[str] = []
        if entity_type == EntityType.PROJECT:
            for task in self.tasks:
                if task.project_id == old_id:
                    self.update(EntityType.TASK, task.id, {"project_id": new_id})
                    rewritten.append(task.id)
        elif entity_type == EntityType.TAG:
            for task in self.tasks:
                if old_id in task.tags:
                    self.update(EntityType.TASK, task.id, {"tags": [new_id if t == old_id else t for t in task.tags]})
                    rewritten.append(task.id)
        return rewritten

    def clear_dangling_references(self) -> List[str]:
        """Drop task references to projects and tags that no longer exist.

        Returns:
            Ids of tasks that were updated
        """
        project_ids = {p.id for p in self._collections[EntityType.PROJECT]}
        tag_ids = {t.id for t in self._collections[EntityType.TAG]}
        cleaned: List[str] = []
        for task in self.tasks:
            fields: Dict[str, Any] = {}
            if task.project_id is not None and task.project_id not in project_ids:
                fields["project_id"] = None
            kept_tags = [t for t in task.tags if t in tag_ids]
            if len(kept_tags) != len(task.tags):
                fields["tags"] = kept_tags
            if fields:
                self.update(EntityType.TASK, task.id, fields)
                cleaned.append(task.id)
        if cleaned:
            logger.info(f"Cleared dangling references on {len(cleaned)} tasks")
        return cleaned

    def clear(self) -> None:
        for entity_type in EntityType:
            self._collections[entity_type] = []

    # Queries

    def tasks_by_date(self, day: date) -> List[Task]:
        return filters.tasks_by_date(self.tasks, day)

    def tasks_by_project(self, project_id: str) -> List[Task]:
        return filters.tasks_by_project(self.tasks, project_id)

    def tasks_by_status(self, status: TaskStatus) -> List[Task]:
        return filters.tasks_by_status(self.tasks, status)

    def important_tasks(self) -> List[Task]:
        return filters.important_tasks(self.tasks)

    def overdue_tasks(self, today: Optional[date] = None) -> List[Task]:
        return filters.overdue_tasks(self.tasks, today)

    def filtered_tasks(self, filter_state: filters.FilterState, today: Optional[date] = None) -> List[Task]:
        return filters.filter_tasks(self.tasks, filter_state, today)
