"""SQLAlchemy database models for the taskflow reference service.

References between tables (task -> project, task -> tag) are weak: there are no
foreign keys, since clients may push a task before the project it points to.
"""

from datetime import datetime
from typing import Union, TypeVar, Type
from sqlalchemy import Column, String, Integer, BigInteger, Boolean, Date, DateTime, JSON

from taskflow.database.database import Base
from taskflow.models.entity import SyncStatus
from taskflow.models.task import TaskStatus

T = TypeVar('T')


def enum_to_value(enum_obj: Union[str, T]) -> str:
    """Convert enum to string value (handles both enum and string).

    Args:
        enum_obj: Enum instance or string value

    Returns:
        String value of the enum, or the string itself if already a string
    """
    if hasattr(enum_obj, 'value'):
        return enum_obj.value
    return str(enum_obj)


def value_to_enum(value: str, enum_class: Type[T], default: T) -> T:
    """Convert string to enum with fallback to default.

    Args:
        value: String value to convert
        enum_class: Enum class to convert to
        default: Default enum value if conversion fails

    Returns:
        Enum instance, or default if conversion fails
    """
    if not value:
        return default
    try:
        return enum_class(value.lower())
    except (ValueError, AttributeError):
        return default


class TaskDB(Base):
    """Database model for Task."""

    __tablename__ = "tasks"

    # Primary key
    id = Column(String, primary_key=True)

    # User association
    user_id = Column(String, nullable=False, index=True)

    # Sync metadata
    version = Column(Integer, nullable=False, default=1)
    last_modified = Column(BigInteger, nullable=False)

    # Basic fields
    title = Column(String, nullable=False)
    description = Column(String, nullable=True)
    completed = Column(Boolean, nullable=False, default=False)
    important = Column(Boolean, nullable=False, default=False)
    status = Column(String, nullable=False, default=TaskStatus.TODO.value)
    order = Column("sort_order", Integer, nullable=False, default=0)

    # Scheduling fields
    due_date = Column(Date, nullable=True, index=True)
    due_time = Column(String, nullable=True)
    reminder = Column(DateTime(timezone=True), nullable=True)

    # Weak references (project id, ordered tag ids)
    project_id = Column(String, nullable=True, index=True)
    tags = Column(JSON, nullable=False, default=list)

    # Embedded subtasks (stored as JSON array)
    subtasks = Column(JSON, nullable=False, default=list)

    # Linked external calendar event
    calendar_event_id = Column(String, nullable=True)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    def to_pydantic(self):
        """Convert database model to Pydantic model."""
        from taskflow.models.task import Task

        return Task(
            id=self.id,
            user_id=self.user_id,
            version=self.version,
            last_modified=self.last_modified,
            sync_status=SyncStatus.SYNCED,
            title=self.title,
            description=self.description,
            completed=self.completed,
            important=self.important,
            status=value_to_enum(self.status, TaskStatus, TaskStatus.TODO),
            order=self.order,
            due_date=self.due_date,
            due_time=self.due_time,
            reminder=self.reminder,
            project_id=self.project_id,
            tags=list(self.tags or []),
            subtasks=list(self.subtasks or []),
            calendar_event_id=self.calendar_event_id,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    @classmethod
    def from_pydantic(cls, task):
        """Create database model from Pydantic model."""
        db_task = cls(id=task.id)
        db_task.apply_pydantic(task)
        return db_task

    def apply_pydantic(self, task) -> None:
        """Overwrite every column from a Pydantic model (id excluded)."""
        self.user_id = task.user_id
        self.version = task.version
        self.last_modified = task.last_modified
        self.title = task.title
        self.description = task.description
        self.completed = task.completed
        self.important = task.important
        # Handle enum values (Pydantic with use_enum_values=True returns strings)
        self.status = enum_to_value(task.status)
        self.order = task.order
        self.due_date = task.due_date
        self.due_time = task.due_time
        self.reminder = task.reminder
        self.project_id = task.project_id
        self.tags = list(task.tags)
        self.subtasks = [s.model_dump(mode="json") for s in task.subtasks]
        self.calendar_event_id = task.calendar_event_id
        self.created_at = task.created_at
        self.updated_at = task.updated_at


class ProjectDB(Base):
    """Database model for Project."""

    __tablename__ = "projects"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)

    version = Column(Integer, nullable=False, default=1)
    last_modified = Column(BigInteger, nullable=False)

    name = Column(String, nullable=False)
    color = Column(String, nullable=False)
    icon = Column(String, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    def to_pydantic(self):
        """Convert database model to Pydantic model."""
        from taskflow.models.project import Project

        return Project(
            id=self.id,
            user_id=self.user_id,
            version=self.version,
            last_modified=self.last_modified,
            sync_status=SyncStatus.SYNCED,
            name=self.name,
            color=self.color,
            icon=self.icon,
            created_at=self.created_at,
        )

    @classmethod
    def from_pydantic(cls, project):
        """Create database model from Pydantic model."""
        db_project = cls(id=project.id)
        db_project.apply_pydantic(project)
        return db_project

    def apply_pydantic(self, project) -> None:
        self.user_id = project.user_id
        self.version = project.version
        self.last_modified = project.last_modified
        self.name = project.name
        self.color = project.color
        self.icon = project.icon
        self.created_at = project.created_at


class TagDB(Base):
    """Database model for Tag."""

    __tablename__ = "tags"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)

    version = Column(Integer, nullable=False, default=1)
    last_modified = Column(BigInteger, nullable=False)

    name = Column(String, nullable=False)
    color = Column(String, nullable=False)

    def to_pydantic(self):
        """Convert database model to Pydantic model."""
        from taskflow.models.tag import Tag

        return Tag(
            id=self.id,
            user_id=self.user_id,
            version=self.version,
            last_modified=self.last_modified,
            sync_status=SyncStatus.SYNCED,
            name=self.name,
            color=self.color,
        )

    @classmethod
    def from_pydantic(cls, tag):
        """Create database model from Pydantic model."""
        db_tag = cls(id=tag.id)
        db_tag.apply_pydantic(tag)
        return db_tag

    def apply_pydantic(self, tag) -> None:
        self.user_id = tag.user_id
        self.version = tag.version
        self.last_modified = tag.last_modified
        self.name = tag.name
        self.color = tag.color
