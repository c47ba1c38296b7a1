"""Data models for taskflow."""

from taskflow.models.entity import EntityType, SyncStatus, SyncedEntity
from taskflow.models.task import Task, TaskStatus, Subtask
from taskflow.models.project import Project
from taskflow.models.tag import Tag
from taskflow.models.sync import ChangeAction, ConflictChoice, PendingChange, SyncConflict

ENTITY_MODELS = {
    EntityType.TASK: Task,
    EntityType.PROJECT: Project,
    EntityType.TAG: Tag,
}


def model_for(entity_type) -> type:
    """Return the pydantic model class for an entity type (enum or raw value)."""
    return ENTITY_MODELS[EntityType(entity_type)]


__all__ = [
    "EntityType",
    "SyncStatus",
    "SyncedEntity",
    "Task",
    "TaskStatus",
    "Subtask",
    "Project",
    "Tag",
    "ChangeAction",
    "ConflictChoice",
    "PendingChange",
    "SyncConflict",
    "ENTITY_MODELS",
    "model_for",
]
