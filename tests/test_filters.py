"""Tests for task filter and date helpers."""

from datetime import date, timedelta

from taskflow.engine.filters import (
    FilterState,
    filter_tasks,
    is_overdue,
    is_due_today,
    is_due_soon,
    matches_search,
)
from taskflow.models.task import Task, TaskStatus, Subtask

TODAY = date(2026, 5, 20)


def _task(sample_task_base, **overrides) -> Task:
    return Task(**{**sample_task_base, **overrides})


class TestDateHelpers:
    """Test overdue / due-today / due-soon predicates."""

    def test_is_overdue_requires_past_due_and_open(self, sample_task_base):
        assert is_overdue(_task(sample_task_base, due_date=TODAY - timedelta(days=1)), TODAY) is True
        assert is_overdue(_task(sample_task_base, due_date=TODAY - timedelta(days=1), completed=True), TODAY) is False
        assert is_overdue(_task(sample_task_base, due_date=TODAY), TODAY) is False
        assert is_overdue(_task(sample_task_base), TODAY) is False

    def test_is_due_today(self, sample_task_base):
        assert is_due_today(_task(sample_task_base, due_date=TODAY), TODAY) is True
        assert is_due_today(_task(sample_task_base, due_date=TODAY + timedelta(days=1)), TODAY) is False

    def test_is_due_soon_window_is_exclusive(self, sample_task_base):
        """Due soon means strictly after today and strictly before today + days."""
        assert is_due_soon(_task(sample_task_base, due_date=TODAY), today=TODAY) is False
        assert is_due_soon(_task(sample_task_base, due_date=TODAY + timedelta(days=1)), today=TODAY) is True
        assert is_due_soon(_task(sample_task_base, due_date=TODAY + timedelta(days=2)), today=TODAY) is True
        assert is_due_soon(_task(sample_task_base, due_date=TODAY + timedelta(days=3)), today=TODAY) is False
        assert is_due_soon(_task(sample_task_base, due_date=TODAY + timedelta(days=4)), days=7, today=TODAY) is True


class TestSearch:
    def test_matches_title_description_and_subtasks(self, sample_task_base):
        task = _task(
            sample_task_base,
            title="Quarterly report",
            description="Send to finance",
            subtasks=[Subtask(id="s1", title="Collect invoices")],
        )

        assert matches_search(task, "REPORT")
        assert matches_search(task, "finance")
        assert matches_search(task, "invoices")
        assert matches_search(task, "  ")
        assert not matches_search(task, "holiday")


class TestFilterTasks:
    """Test FilterState application."""

    def test_default_filter_keeps_everything(self, sample_task_base):
        tasks = [_task(sample_task_base, id="a"), _task(sample_task_base, id="b", completed=True)]

        assert [t.id for t in filter_tasks(tasks, FilterState(), TODAY)] == ["a", "b"]

    def test_combined_filters(self, sample_task_base):
        tasks = [
            _task(sample_task_base, id="match", project_id="p1", tags=["t1"], important=True,
                  status=TaskStatus.IN_PROGRESS, due_date=TODAY - timedelta(days=1)),
            _task(sample_task_base, id="other-project", project_id="p2", tags=["t1"], important=True,
                  status=TaskStatus.IN_PROGRESS, due_date=TODAY - timedelta(days=1)),
            _task(sample_task_base, id="not-important", project_id="p1", tags=["t1"],
                  status=TaskStatus.IN_PROGRESS, due_date=TODAY - timedelta(days=1)),
            _task(sample_task_base, id="no-tag", project_id="p1", important=True,
                  status=TaskStatus.IN_PROGRESS, due_date=TODAY - timedelta(days=1)),
            _task(sample_task_base, id="not-overdue", project_id="p1", tags=["t1"], important=True,
                  status=TaskStatus.IN_PROGRESS, due_date=TODAY),
        ]
        filters = FilterState(
            project_id="p1",
            tags=["t1", "t9"],
            status=TaskStatus.IN_PROGRESS,
            show_important_only=True,
            show_overdue_only=True,
        )

        assert [t.id for t in filter_tasks(tasks, filters, TODAY)] == ["match"]

    def test_hide_completed_and_search(self, sample_task_base):
        tasks = [
            _task(sample_task_base, id="open", title="Buy milk"),
            _task(sample_task_base, id="done", title="Buy bread", completed=True),
            _task(sample_task_base, id="other", title="Call mom"),
        ]
        filters = FilterState(show_completed=False, search_query="buy")

        assert [t.id for t in filter_tasks(tasks, filters, TODAY)] == ["open"]
