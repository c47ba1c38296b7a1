"""Tests for the entity repositories of the reference service."""

import uuid
from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from taskflow.engine.versioning import MergeDecision, decide
from taskflow.models.entity import SyncStatus
from taskflow.models.project import Project
from taskflow.models.tag import Tag
from taskflow.models.task import Task, TaskStatus


def _project(user_id, **overrides):
    data = {
        "id": str(uuid.uuid4()),
        "user_id": user_id,
        "version": 1,
        "last_modified": 1_700_000_000_000,
        "name": "Work",
        "color": "#3b82f6",
    }
    data.update(overrides)
    return Project(**data)


def _tag(user_id, **overrides):
    data = {
        "id": str(uuid.uuid4()),
        "user_id": user_id,
        "version": 1,
        "last_modified": 1_700_000_000_000,
        "name": "urgent",
        "color": "#f87171",
    }
    data.update(overrides)
    return Tag(**data)


class TestTaskRepository:
    """Test TaskRepository operations."""

    def test_upsert_creates_task(self, task_repository, sample_task, test_user_id):
        """Test creating a task."""
        created = task_repository.upsert(sample_task)

        assert created.id == sample_task.id
        assert created.title == sample_task.title
        assert created.status == TaskStatus.TODO
        assert created.sync_status == SyncStatus.SYNCED
        assert task_repository.get(test_user_id, sample_task.id) == created

    def test_upsert_is_idempotent_by_id(self, task_repository, sample_task, test_user_id):
        """Retrying a create overwrites instead of duplicating."""
        task_repository.upsert(sample_task)
        task_repository.upsert(sample_task.model_copy(update={"title": "Retried", "version": 2}))

        all_tasks = task_repository.get_all(test_user_id)
        assert len(all_tasks) == 1
        assert all_tasks[0].title == "Retried"
        assert all_tasks[0].version == 2

    def test_upsert_round_trips_nested_fields(self, task_repository, sample_task_base, test_user_id):
        task = Task(**{
            **sample_task_base,
            "tags": ["a", "b"],
            "subtasks": [{"id": "s1", "title": "Step", "completed": True}],
            "due_time": "09:30",
            "status": TaskStatus.IN_PROGRESS,
        })

        stored = task_repository.upsert(task)

        assert stored.tags == ["a", "b"]
        assert stored.subtasks[0].title == "Step"
        assert stored.subtasks[0].completed is True
        assert stored.due_time == "09:30"
        assert stored.status == TaskStatus.IN_PROGRESS

    def test_upsert_rejects_id_of_other_user(self, task_repository, sample_task):
        task_repository.upsert(sample_task)

        with pytest.raises(ValueError):
            task_repository.upsert(sample_task.model_copy(update={"user_id": "someone-else"}))

    def test_get_all_is_user_scoped_and_ordered(self, task_repository, sample_task_base, test_user_id):
        """Tasks come back by display order and only for their owner."""
        second = Task(**{**sample_task_base, "id": str(uuid.uuid4()), "order": 2})
        first = Task(**{**sample_task_base, "id": str(uuid.uuid4()), "order": 1})
        foreign = Task(**{**sample_task_base, "id": str(uuid.uuid4()), "user_id": "other-user"})
        for task in (second, first, foreign):
            task_repository.upsert(task)

        assert [t.id for t in task_repository.get_all(test_user_id)] == [first.id, second.id]
        assert task_repository.get("other-user", first.id) is None

    def test_update_fields(self, task_repository, sample_task, test_user_id):
        """Partial updates change only the given fields."""
        task_repository.upsert(sample_task)

        updated = task_repository.update_fields(
            test_user_id, sample_task.id, {"title": "Renamed", "version": 2, "id": "ignored"}
        )

        assert updated.id == sample_task.id
        assert updated.title == "Renamed"
        assert updated.version == 2
        assert updated.description == sample_task.description

    def test_update_missing_task_raises(self, task_repository, test_user_id):
        with pytest.raises(ValueError):
            task_repository.update_fields(test_user_id, "nonexistent-id", {"title": "x"})

    def test_update_invalid_field_raises(self, task_repository, sample_task, test_user_id):
        task_repository.upsert(sample_task)

        with pytest.raises(ValidationError):
            task_repository.update_fields(test_user_id, sample_task.id, {"due_time": "noon"})

    def test_delete_task(self, task_repository, sample_task, test_user_id):
        task_repository.upsert(sample_task)

        assert task_repository.delete(test_user_id, sample_task.id) is True
        assert task_repository.get(test_user_id, sample_task.id) is None
        assert task_repository.delete(test_user_id, sample_task.id) is False

    def test_get_by_project(self, task_repository, sample_task_base, test_user_id):
        in_project = Task(**{**sample_task_base, "id": str(uuid.uuid4()), "project_id": "p1"})
        task_repository.upsert(in_project)
        task_repository.upsert(Task(**{**sample_task_base, "id": str(uuid.uuid4())}))

        assert [t.id for t in task_repository.get_by_project(test_user_id, "p1")] == [in_project.id]


class TestReferenceCleanup:
    """Deleting projects and tags clears task references server-side."""

    def test_delete_project_clears_task_references(
        self, project_repository, task_repository, sample_task_base, test_user_id
    ):
        project = project_repository.upsert(_project(test_user_id))
        task = task_repository.upsert(Task(**{**sample_task_base, "project_id": project.id}))

        assert project_repository.delete(test_user_id, project.id) is True

        current = task_repository.get(test_user_id, task.id)
        assert current.project_id is None
        assert current.version == task.version
        assert current.last_modified > task.last_modified

    def test_delete_tag_removes_it_from_tasks(self, tag_repository, task_repository, sample_task_base, test_user_id):
        urgent = tag_repository.upsert(_tag(test_user_id))
        home = tag_repository.upsert(_tag(test_user_id, name="home"))
        task = task_repository.upsert(Task(**{**sample_task_base, "tags": [urgent.id, home.id]}))

        tag_repository.delete(test_user_id, urgent.id)

        assert task_repository.get(test_user_id, task.id).tags == [home.id]
        assert [t.name for t in tag_repository.get_all(test_user_id)] == ["home"]

    def test_project_round_trip(self, project_repository, test_user_id):
        project = project_repository.upsert(_project(test_user_id, icon="briefcase"))

        assert project.icon == "briefcase"
        assert project.color == "#3b82f6"
        assert project_repository.get_all(test_user_id) == [project]


class TestReminderRoundTrip:
    """Reminders survive a push and pull through storage unchanged."""

    def test_pushed_reminder_merges_without_conflict(self, store, task_repository, test_user_id):
        local = store.add_task("Call", reminder="2026-10-20T09:00:00Z")
        local = store.add_subtask(local.id, "Dial", reminder="2026-10-20T08:45:00+02:00")

        task_repository.upsert(Task.model_validate(local.to_wire()))
        pulled = task_repository.get_all(test_user_id)[0]

        assert pulled.reminder == datetime(2026, 10, 20, 9, tzinfo=timezone.utc)
        assert pulled.subtasks[0].reminder == datetime(2026, 10, 20, 6, 45, tzinfo=timezone.utc)
        assert decide(local, pulled) == MergeDecision.KEEP_LOCAL

    def test_naive_reminder_is_taken_as_utc(self, sample_task_base):
        task = Task(**{**sample_task_base, "reminder": datetime(2026, 10, 20, 9)})

        assert task.reminder.tzinfo == timezone.utc
        assert task.reminder == datetime(2026, 10, 20, 9, tzinfo=timezone.utc)
