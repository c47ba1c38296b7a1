"""Task data model for taskflow."""

from datetime import date, datetime, timezone
from typing import List, Optional
from enum import Enum
from pydantic import BaseModel, Field, field_validator

from taskflow.models.entity import SyncedEntity


class TaskStatus(str, Enum):
    """Workflow status enumeration (kanban columns)."""
    BACKLOG = "backlog"
    TODO = "todo"
    IN_PROGRESS = "in-progress"
    DONE = "done"


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize a reminder to an aware UTC datetime; naive values are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Subtask(BaseModel):
    """Subtask embedded in a Task. Never synced on its own."""

    id: str = Field(..., description="Unique subtask identifier")
    title: str = Field(..., description="Subtask title")
    completed: bool = Field(False, description="Whether the subtask is completed")
    reminder: Optional[datetime] = Field(None, description="Independent reminder timestamp (UTC)")

    @field_validator("reminder")
    @classmethod
    def _validate_reminder(cls, v):
        return as_utc(v)


class Task(SyncedEntity):
    """Canonical Task model."""

    title: str = Field(..., description="Task title")
    description: Optional[str] = Field(None, description="Task description")
    completed: bool = Field(False, description="Whether the task is completed")
    important: bool = Field(False, description="Important tasks stay visible until completed")
    due_date: Optional[date] = Field(None, description="Due date")
    due_time: Optional[str] = Field(None, pattern=r"^\d{2}:\d{2}$", description="Due time (HH:MM)")
    reminder: Optional[datetime] = Field(None, description="Reminder timestamp")
    project_id: Optional[str] = Field(None, description="Weak reference to a Project")
    tags: List[str] = Field(default_factory=list, description="Ordered weak references to Tags")
    subtasks: List[Subtask] = Field(default_factory=list, description="Ordered embedded subtasks")
    status: TaskStatus = Field(TaskStatus.TODO, description="Workflow status")
    calendar_event_id: Optional[str] = Field(None, description="Linked external calendar event (opaque)")
    order: int = Field(0, description="Display rank")
    created_at: datetime = Field(..., description="Task creation timestamp")
    updated_at: datetime = Field(..., description="Task last update timestamp")

    @field_validator("reminder")
    @classmethod
    def _validate_reminder(cls, v):
        # Reminders are always aware UTC, whatever the source
        return as_utc(v)
