"""Query and filter helpers for taskflow views.

Every function here is pure: it reads a snapshot of tasks and never mutates them.
The list, kanban and calendar views are all built from these predicates.
"""

from datetime import date, timedelta
from typing import Iterable, List, Optional
from pydantic import BaseModel, Field

from taskflow.models.task import Task, TaskStatus
from taskflow.models.constants import DUE_SOON_DAYS


class FilterState(BaseModel):
    """Filters selected in the list view."""

    project_id: Optional[str] = Field(None, description="Only tasks in this project")
    tags: List[str] = Field(default_factory=list, description="Tasks carrying any of these tags")
    status: Optional[TaskStatus] = Field(None, description="Only tasks in this workflow status")
    show_completed: bool = Field(True, description="Include completed tasks")
    show_important_only: bool = Field(False, description="Only important tasks")
    show_overdue_only: bool = Field(False, description="Only overdue tasks")
    search_query: str = Field("", description="Case-insensitive text search")

    class Config:
        """Pydantic configuration."""
        use_enum_values = True


def is_overdue(task: Task, today: Optional[date] = None) -> bool:
    """Overdue means due before today and not completed."""
    today = today or date.today()
    return task.due_date is not None and task.due_date < today and not task.completed


def is_due_today(task: Task, today: Optional[date] = None) -> bool:
    return task.due_date is not None and task.due_date == (today or date.today())


def is_due_soon(task: Task, days: int = DUE_SOON_DAYS, today: Optional[date] = None) -> bool:
    """Due strictly after today and strictly before today + days."""
    if task.due_date is None:
        return False
    today = today or date.today()
    return today < task.due_date < today + timedelta(days=days)


def matches_search(task: Task, query: str) -> bool:
    """Match query against title, description and subtask titles."""
    needle = (query or "").strip().lower()
    if not needle:
        return True
    haystacks = [task.title, task.description or ""] + [s.title for s in task.subtasks]
    return any(needle in h.lower() for h in haystacks)


def tasks_by_date(tasks: Iterable[Task], day: date) -> List[Task]:
    return [t for t in tasks if t.due_date == day]


def tasks_by_project(tasks: Iterable[Task], project_id: str) -> List[Task]:
    return [t for t in tasks if t.project_id == project_id]


def tasks_by_status(tasks: Iterable[Task], status: TaskStatus) -> List[Task]:
    return [t for t in tasks if t.status == status]


def important_tasks(tasks: Iterable[Task]) -> List[Task]:
    return [t for t in tasks if t.important and not t.completed]


def overdue_tasks(tasks: Iterable[Task], today: Optional[date] = None) -> List[Task]:
    today = today or date.today()
    return [t for t in tasks if is_overdue(t, today)]


def filter_tasks(tasks: Iterable[Task], filters: FilterState, today: Optional[date] = None) -> List[Task]:
    """Apply every active filter of a FilterState.

    Args:
        tasks: Tasks to filter
        filters: Selected filters
        today: Reference day for the overdue filter (defaults to today)

    Returns:
        Tasks passing all filters, in their original order
    """
    today = today or date.today()
    result: List[Task] = []
    for task in tasks:
        if filters.project_id and task.project_id != filters.project_id:
            continue
        if not filters.show_completed and task.completed:
            continue
        if filters.show_important_only and not task.important:
            continue
        if filters.show_overdue_only and not is_overdue(task, today):
            continue
        if filters.status and task.status != filters.status:
            continue
        if filters.tags and not any(tag_id in task.tags for tag_id in filters.tags):
            continue
        if not matches_search(task, filters.search_query):
            continue
        result.append(task)
    return result
