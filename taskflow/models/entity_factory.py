"""Entity creation factory for taskflow.

This module centralizes entity creation logic so every new Task, Project and Tag
starts with the same sync metadata (fresh id, version 1, current timestamp).
"""

import time
import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from taskflow.models.entity import SyncStatus
from taskflow.models.task import Task, Subtask
from taskflow.models.project import Project
from taskflow.models.tag import Tag
from taskflow.models.constants import DEFAULT_TASK_STATUS

_GENERATED_TASK_FIELDS = frozenset({
    "id", "user_id", "title", "order", "version", "last_modified", "sync_status", "created_at", "updated_at",
})


def now_ms() -> int:
    """Current time as integer epoch milliseconds."""
    return int(time.time() * 1000)


def new_id() -> str:
    """Fresh client-side identifier (UUID v4)."""
    return str(uuid.uuid4())


def create_task_defaults() -> Dict[str, Any]:
    """Get default task values as a dictionary.

    Returns:
        Dictionary with default task field values using constants
    """
    return {
        "description": None,
        "completed": False,
        "important": False,
        "due_date": None,
        "due_time": None,
        "reminder": None,
        "project_id": None,
        "tags": [],
        "subtasks": [],
        "status": DEFAULT_TASK_STATUS,
        "calendar_event_id": None,
    }


def create_task_base(
    user_id: str,
    title: str,
    order: int,
    last_modified: Optional[int] = None,
    **overrides: Any,
) -> Task:
    """Create a task with defaults, allowing overrides.

    Sync metadata (id, version, timestamps) is always generated here; identity
    fields in ``overrides`` are ignored so callers cannot forge a version.

    Args:
        user_id: User ID who owns this task (required)
        title: Task title (required)
        order: Display rank (the store passes the current collection length)
        last_modified: Epoch milliseconds to stamp (defaults to now)
        **overrides: Any other Task field

    Returns:
        Task object with defaults applied
    """
    now = datetime.utcnow()
    fields = create_task_defaults()
    fields.update({k: v for k, v in overrides.items() if k not in _GENERATED_TASK_FIELDS})
    fields["subtasks"] = [
        s if isinstance(s, Subtask) else Subtask(**{"id": new_id(), **s})
        for s in fields.get("subtasks") or []
    ]
    return Task(
        **fields,
        id=new_id(),
        user_id=user_id,
        title=title,
        order=order,
        version=1,
        last_modified=last_modified if last_modified is not None else now_ms(),
        sync_status=SyncStatus.PENDING,
        created_at=now,
        updated_at=now,
    )


def create_project_base(
    user_id: str,
    name: str,
    color: str,
    icon: Optional[str] = None,
    last_modified: Optional[int] = None,
) -> Project:
    """Create a project with fresh sync metadata."""
    return Project(
        id=new_id(),
        user_id=user_id,
        name=name,
        color=color,
        icon=icon,
        version=1,
        last_modified=last_modified if last_modified is not None else now_ms(),
        sync_status=SyncStatus.PENDING,
        created_at=datetime.utcnow(),
    )


def create_tag_base(
    user_id: str,
    name: str,
    color: str,
    last_modified: Optional[int] = None,
) -> Tag:
    """Create a tag with fresh sync metadata."""
    return Tag(
        id=new_id(),
        user_id=user_id,
        name=name,
        color=color,
        version=1,
        last_modified=last_modified if last_modified is not None else now_ms(),
        sync_status=SyncStatus.PENDING,
    )


def create_subtask(title: str, reminder: Optional[datetime] = None) -> Subtask:
    """Create a subtask with a fresh id."""
    return Subtask(id=new_id(), title=title, completed=False, reminder=reminder)
