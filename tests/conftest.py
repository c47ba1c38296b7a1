"""Pytest fixtures and configuration for taskflow tests."""

import os

# Keep the module-level engine off the filesystem; tests use their own engine.
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import asyncio
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

from taskflow.database.database import Base, get_db
from taskflow.database.repository import TaskRepository, ProjectRepository, TagRepository
from taskflow.models.entity import EntityType, SyncStatus
from taskflow.models.task import Task, TaskStatus
from taskflow.integrations.remote_service import RemoteServiceError
from taskflow.store.entity_store import EntityStore
from taskflow.sync.session import SyncSession
from taskflow.sync.settings import SyncSettings
from taskflow.sync.strategy import SyncStrategy


# Use in-memory SQLite database for tests
TEST_DATABASE_URL = "sqlite:///:memory:"


class FakeClock:
    """Epoch-milliseconds clock that advances by ``step`` on every read."""

    def __init__(self, start: int = 1_700_000_000_000, step: int = 1):
        self.now = start
        self.step = step

    def __call__(self) -> int:
        self.now += self.step
        return self.now


class FakeRemoteService:
    """In-memory remote persistence service.

    Stores entities in wire form per type. ``failures_remaining`` makes the next
    N push calls raise; ``list_error`` and ``list_delay`` shape pulls (the
    snapshot is taken before the delay).
    """

    def __init__(self):
        self.data: Dict[EntityType, Dict[str, Dict[str, Any]]] = {t: {} for t in EntityType}
        self.calls: List[tuple] = []
        self.failures_remaining = 0
        self.list_error: Optional[Exception] = None
        self.list_delay = 0.0
        self.push_gate: Optional[asyncio.Event] = None
        self.server_ids: Dict[str, str] = {}

    def seed(self, entity) -> None:
        self.data[EntityType(self._type_of(entity))][entity.id] = entity.to_wire()

    @staticmethod
    def _type_of(entity) -> EntityType:
        from taskflow.models.project import Project
        from taskflow.models.tag import Tag
        if isinstance(entity, Project):
            return EntityType.PROJECT
        if isinstance(entity, Tag):
            return EntityType.TAG
        return EntityType.TASK

    def calls_of(self, method: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == method]

    async def _before_push(self) -> None:
        if self.push_gate is not None:
            await self.push_gate.wait()
        if self.failures_remaining > 0:
            self.failures_remaining -= 1
            raise RemoteServiceError("simulated network failure")

    async def list_all(self, entity_type, user_id, *, timeout=None):
        entity_type = EntityType(entity_type)
        self.calls.append(("list_all", entity_type, None))
        snapshot = [dict(item) for item in self.data[entity_type].values()]
        if self.list_delay:
            await asyncio.sleep(self.list_delay)
        if self.list_error is not None:
            raise self.list_error
        return snapshot

    async def create(self, entity_type, data, *, timeout=None):
        entity_type = EntityType(entity_type)
        self.calls.append(("create", entity_type, data["id"]))
        await self._before_push()
        item = {**data, "id": self.server_ids.get(data["id"], data["id"])}
        self.data[entity_type][item["id"]] = item
        return dict(item)

    async def update(self, entity_type, entity_id, fields, *, timeout=None):
        entity_type = EntityType(entity_type)
        self.calls.append(("update", entity_type, entity_id))
        await self._before_push()
        if entity_id not in self.data[entity_type]:
            raise RemoteServiceError(f"{entity_type.value} {entity_id} not found")
        self.data[entity_type][entity_id].update(fields)

    async def delete(self, entity_type, entity_id, *, timeout=None):
        entity_type = EntityType(entity_type)
        self.calls.append(("delete", entity_type, entity_id))
        await self._before_push()
        self.data[entity_type].pop(entity_id, None)


class FakeCalendarSink:
    """In-memory calendar sink recording every call."""

    def __init__(self):
        self.synced: List[str] = []
        self.removed: List[str] = []
        self.events: List[dict] = []
        self.error: Optional[Exception] = None
        self._next_event = 0

    async def sync_task(self, task):
        if self.error is not None:
            raise self.error
        self.synced.append(task.id)
        if task.calendar_event_id:
            return task.calendar_event_id
        self._next_event += 1
        return f"evt-{self._next_event}"

    async def remove_task(self, task):
        if self.error is not None:
            raise self.error
        self.removed.append(task.id)

    async def fetch_events(self):
        if self.error is not None:
            raise self.error
        return list(self.events)


class ManualStrategy(SyncStrategy):
    """Strategy that never pulls on its own; tests call maybe_pull directly."""

    def __init__(self):
        self.session = None
        self.started = False
        self.stopped = False

    def start(self, session) -> None:
        self.session = session
        self.started = True

    async def stop(self) -> None:
        self.stopped = True


async def _wait_until(predicate, timeout: float = 2.0, interval: float = 0.005) -> None:
    """Await until ``predicate()`` is true or fail after ``timeout`` seconds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(interval)


@pytest.fixture
def wait_until():
    """Async helper polling a predicate until it holds."""
    return _wait_until


@pytest.fixture
def test_user_id():
    """Test user ID for multi-user testing."""
    return "test-user-123"


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def remote():
    return FakeRemoteService()


@pytest.fixture
def calendar_sink():
    return FakeCalendarSink()


@pytest.fixture
def store(test_user_id, clock):
    """Empty EntityStore with a deterministic clock."""
    return EntityStore(test_user_id, clock=clock)


@pytest.fixture
def make_session(test_user_id, remote, clock):
    """Factory for SyncSessions with fast timers and a manual pull strategy."""
    def _make(calendar=None, strategy=None, **overrides) -> SyncSession:
        settings = SyncSettings(**{
            "debounce_sec": 0.01,
            "min_sync_spacing_sec": 0.0,
            "initial_load_timeout_sec": 1.0,
            "pull_timeout_sec": 1.0,
            "push_timeout_sec": 1.0,
            **overrides,
        })
        session = SyncSession(
            test_user_id,
            remote,
            settings=settings,
            strategy=strategy or ManualStrategy(),
            calendar=calendar,
            clock=clock,
        )
        return session

    return _make


@pytest.fixture
def session(make_session):
    """SyncSession that has not been started."""
    return make_session()


@pytest.fixture
def sample_task_base(test_user_id):
    """Base task data for creating test tasks.

    Returns a dict with default task attributes that can be overridden.
    """
    now = datetime.utcnow()
    return {
        "id": str(uuid.uuid4()),
        "user_id": test_user_id,
        "version": 1,
        "last_modified": 1_700_000_000_000,
        "sync_status": SyncStatus.SYNCED,
        "title": "Test Task",
        "description": "Test description",
        "completed": False,
        "important": False,
        "due_date": None,
        "due_time": None,
        "reminder": None,
        "project_id": None,
        "tags": [],
        "subtasks": [],
        "status": TaskStatus.TODO,
        "calendar_event_id": None,
        "order": 0,
        "created_at": now,
        "updated_at": now,
    }


@pytest.fixture
def sample_task(sample_task_base):
    """Create a sample Task object for testing."""
    return Task(**sample_task_base)


@pytest.fixture(scope="function")
def db_session():
    """Create a database session for testing.

    Uses an in-memory SQLite database that is created fresh for each test.
    """
    # Create engine with StaticPool for in-memory database
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )

    # Create all tables
    from taskflow.database import models  # noqa: F401
    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def task_repository(db_session: Session):
    """Create a TaskRepository instance for testing."""
    return TaskRepository(db_session)


@pytest.fixture
def project_repository(db_session: Session):
    return ProjectRepository(db_session)


@pytest.fixture
def tag_repository(db_session: Session):
    return TagRepository(db_session)


@pytest.fixture
def test_client(db_session: Session):
    """Create a FastAPI test client with overridden database dependency."""
    from taskflow.api.app import app

    # Override the get_db dependency to use our test database session
    def override_get_db():
        try:
            yield db_session
        finally:
            pass  # Don't close the session here, let the fixture handle it

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as client:
        yield client

    # Clean up dependency overrides
    app.dependency_overrides.clear()
