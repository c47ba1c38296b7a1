"""Repository layer for database operations."""

import logging
from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session

from taskflow.models.entity import SyncedEntity
from taskflow.models.task import Task
from taskflow.models.project import Project
from taskflow.models.tag import Tag
from taskflow.models.entity_factory import now_ms
from taskflow.database.models import TaskDB, ProjectDB, TagDB

logger = logging.getLogger(__name__)

# Fields a partial update can never change
_IMMUTABLE_FIELDS = frozenset({"id", "user_id"})


class EntityRepository:
    """Repository for one synced entity table.

    Every operation is idempotent by id: ``upsert`` never duplicates an id and
    ``delete`` of a missing id is not an error.
    """

    db_model = None
    label = "entity"

    def __init__(self, db: Session):
        self.db = db

    def _query(self, user_id: str):
        return self.db.query(self.db_model).filter(self.db_model.user_id == user_id)

    def _get_row(self, user_id: str, entity_id: str):
        return self._query(user_id).filter(self.db_model.id == entity_id).first()

    def _order_by(self):
        return []

    def get(self, user_id: str, entity_id: str) -> Optional[SyncedEntity]:
        """Get entity by ID for a specific user."""
        row = self._get_row(user_id, entity_id)
        return row.to_pydantic() if row else None

    def get_all(self, user_id: str) -> List[SyncedEntity]:
        """Get all entities for a user."""
        rows = self._query(user_id).order_by(*self._order_by()).all()
        return [row.to_pydantic() for row in rows]

    def upsert(self, entity: SyncedEntity) -> SyncedEntity:
        """Create an entity, or overwrite the stored copy with the same id.

        Raises:
            ValueError: If the id is already used by another user
        """
        try:
            row = self.db.query(self.db_model).filter(self.db_model.id == entity.id).first()
            if row is not None and row.user_id != entity.user_id:
                raise ValueError(f"{self.label} {entity.id} belongs to another user")
            if row is None:
                row = self.db_model.from_pydantic(entity)
                self.db.add(row)
                logger.debug(f"Created {self.label} {entity.id}")
            else:
                row.apply_pydantic(entity)
                logger.debug(f"Upserted existing {self.label} {entity.id} (version {entity.version})")
            self.db.commit()
            self.db.refresh(row)
            return row.to_pydantic()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to upsert {self.label} {entity.id}: {type(e).__name__}: {str(e)}")
            raise

    def update_fields(self, user_id: str, entity_id: str, fields: Dict[str, Any]) -> SyncedEntity:
        """Apply a partial update.

        Args:
            user_id: Owner of the entity
            entity_id: Entity ID
            fields: Partial field values (``id`` and ``user_id`` are ignored)

        Returns:
            Updated entity

        Raises:
            ValueError: If entity not found
            pydantic.ValidationError: If a field value is invalid
        """
        row = self._get_row(user_id, entity_id)
        if row is None:
            raise ValueError(f"{self.label} {entity_id} not found")

        current = row.to_pydantic()
        data = current.model_dump()
        data.update({k: v for k, v in fields.items() if k not in _IMMUTABLE_FIELDS})
        updated = type(current).model_validate(data)
        try:
            row.apply_pydantic(updated)
            self.db.commit()
            self.db.refresh(row)
            logger.debug(f"Updated {self.label} {entity_id} to version {updated.version}")
            return row.to_pydantic()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to update {self.label} {entity_id}: {type(e).__name__}: {str(e)}")
            raise

    def _on_delete(self, user_id: str, entity_id: str) -> int:
        return 0

    def delete(self, user_id: str, entity_id: str) -> bool:
        """Delete an entity.

        Returns:
            True if a row was deleted, False if the id did not exist
        """
        row = self._get_row(user_id, entity_id)
        if row is None:
            return False
        try:
            self.db.delete(row)
            cleared = self._on_delete(user_id, entity_id)
            self.db.commit()
            logger.debug(f"Deleted {self.label} {entity_id} ({cleared} task references cleared)")
            return True
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to delete {self.label} {entity_id}: {type(e).__name__}: {str(e)}")
            raise


class TaskRepository(EntityRepository):
    """Repository for Task database operations."""

    db_model = TaskDB
    label = "task"

    def _order_by(self):
        return [TaskDB.order, TaskDB.created_at]

    def get(self, user_id: str, entity_id: str) -> Optional[Task]:
        return super().get(user_id, entity_id)

    def get_by_project(self, user_id: str, project_id: str) -> List[Task]:
        rows = self._query(user_id).filter(TaskDB.project_id == project_id).all()
        return [row.to_pydantic() for row in rows]


class ProjectRepository(EntityRepository):
    """Repository for Project database operations.

    Deleting a project clears it from the owner's tasks. Those tasks get a fresh
    ``last_modified`` (version unchanged) so clients adopt the cleared reference.
    """

    db_model = ProjectDB
    label = "project"

    def _order_by(self):
        return [ProjectDB.created_at]

    def get(self, user_id: str, entity_id: str) -> Optional[Project]:
        return super().get(user_id, entity_id)

    def _on_delete(self, user_id: str, entity_id: str) -> int:
        rows = self.db.query(TaskDB).filter(TaskDB.user_id == user_id, TaskDB.project_id == entity_id).all()
        stamp = now_ms()
        for row in rows:
            row.project_id = None
            row.last_modified = stamp
        return len(rows)


class TagRepository(EntityRepository):
    """Repository for Tag database operations.

    Deleting a tag removes it from the owner's tasks, stamped like project deletion.
    """

    db_model = TagDB
    label = "tag"

    def _order_by(self):
        return [TagDB.name]

    def get(self, user_id: str, entity_id: str) -> Optional[Tag]:
        return super().get(user_id, entity_id)

    def _on_delete(self, user_id: str, entity_id: str) -> int:
        stamp = now_ms()
        cleared = 0
        for row in self.db.query(TaskDB).filter(TaskDB.user_id == user_id).all():
            if entity_id in (row.tags or []):
                row.tags = [t for t in row.tags if t != entity_id]
                row.last_modified = stamp
                cleared += 1
        return cleared
