"""Merge and query engine for taskflow."""

from taskflow.engine.versioning import MergeDecision, MergeResult, decide, merge_collection
from taskflow.engine.filters import (
    FilterState,
    filter_tasks,
    is_overdue,
    is_due_today,
    is_due_soon,
    tasks_by_date,
    tasks_by_project,
    tasks_by_status,
    important_tasks,
    overdue_tasks,
)

__all__ = [
    "MergeDecision",
    "MergeResult",
    "decide",
    "merge_collection",
    "FilterState",
    "filter_tasks",
    "is_overdue",
    "is_due_today",
    "is_due_soon",
    "tasks_by_date",
    "tasks_by_project",
    "tasks_by_status",
    "important_tasks",
    "overdue_tasks",
]
