"""Sync session: the reconciliation loop for one signed-in user.

A session owns an EntityStore, a PendingChangeQueue and a ConflictRegistry.
Mutations apply to the store synchronously and queue a pending change; the
network leg runs later:

- debounced push: every queued change (re)arms a short timer, and when it fires
  the queue is flushed;
- periodic pull: a SyncStrategy calls ``maybe_pull()``, which fetches and merges
  the remote snapshot unless local changes are still pending.

Remote failures never escape the loop. Pull failures set ``error``; push failures
are retried through the queue's retry budget.
"""

import asyncio
import logging
import time
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Set
from pydantic import ValidationError

from taskflow.models import model_for
from taskflow.models.entity import EntityType, SyncStatus, SyncedEntity, IDENTITY_FIELDS
from taskflow.models.task import Task, TaskStatus
from taskflow.models.project import Project
from taskflow.models.tag import Tag
from taskflow.models.sync import ChangeAction, ConflictChoice, PendingChange, SyncConflict
from taskflow.models.constants import COMPLETED_TASK_STATUS, REOPENED_TASK_STATUS
from taskflow.models.entity_factory import now_ms
from taskflow.engine.versioning import merge_collection, enum_value
from taskflow.store.entity_store import EntityStore
from taskflow.sync.conflicts import ConflictRegistry
from taskflow.sync.pending_queue import FlushResult, PendingChangeQueue
from taskflow.sync.ports import CalendarSink, RemotePersistenceService
from taskflow.sync.settings import SyncSettings
from taskflow.sync.strategy import PollingStrategy, SyncStrategy
from taskflow.integrations.remote_service import RemoteServiceError
from taskflow.integrations.google_calendar import calendar_updates_for_tasks

logger = logging.getLogger(__name__)

LOAD_FAILED_MESSAGE = "Failed to load data from server"

# Task fields mirrored to the external calendar
CALENDAR_FIELDS = frozenset({"title", "description", "due_date", "due_time", "reminder"})

# Fields rewritten when task references to projects or tags change
REFERENCE_FIELDS = ("project_id", "tags")


class SyncPhase(str, Enum):
    """Lifecycle phase of a sync session."""
    IDLE = "idle"
    INITIAL_LOAD = "initial_load"
    STEADY = "steady"
    STOPPED = "stopped"


class SyncSession:
    """Optimistic local state for one user, reconciled with a remote service."""

    def __init__(
        self,
        user_id: str,
        remote: RemotePersistenceService,
        settings: Optional[SyncSettings] = None,
        strategy: Optional[SyncStrategy] = None,
        calendar: Optional[CalendarSink] = None,
        clock=now_ms,
    ):
        """Create a session. Nothing touches the network until ``start()``.

        Args:
            user_id: Signed-in user
            remote: Remote persistence service
            settings: Timing and retry settings (defaults from constants)
            strategy: Pull trigger (defaults to polling every ``sync_interval_sec``)
            calendar: Optional external calendar mirror
            clock: Epoch-milliseconds clock for entity timestamps
        """
        self.user_id = user_id
        self.remote = remote
        self.settings = settings or SyncSettings()
        self.strategy = strategy or PollingStrategy(self.settings.sync_interval_sec)
        self.calendar = calendar
        self._clock = clock

        self.store = EntityStore(user_id, clock=clock)
        self.queue = PendingChangeQueue(max_retries=self.settings.max_push_retries, clock=clock)
        self.conflict_registry = ConflictRegistry()

        self.phase = SyncPhase.IDLE
        self._error: Optional[str] = None
        self._initial_load_complete = False
        self._pulling = False
        self._deletes_during_pull: Dict[EntityType, Set[str]] = {t: set() for t in EntityType}
        self._last_pull_monotonic: Optional[float] = None
        self._last_sync_at: Optional[int] = None
        self._debounce_handle: Optional[asyncio.TimerHandle] = None
        self._background: Set[asyncio.Task] = set()

    # Observability

    @property
    def pending_count(self) -> int:
        return len(self.queue)

    @property
    def dropped_changes(self) -> List[PendingChange]:
        return list(self.queue.dropped)

    @property
    def conflicts(self) -> List[SyncConflict]:
        return self.conflict_registry.list()

    @property
    def is_syncing(self) -> bool:
        return self._pulling or self.queue.is_flushing

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def initial_load_complete(self) -> bool:
        return self._initial_load_complete

    @property
    def last_sync_at(self) -> Optional[int]:
        return self._last_sync_at

    @property
    def tasks(self) -> List[Task]:
        return self.store.tasks

    @property
    def projects(self) -> List[Project]:
        return self.store.projects

    @property
    def tags(self) -> List[Tag]:
        return self.store.tags

    # Lifecycle

    async def start(self) -> bool:
        """Run the initial load, then enter the steady phase.

        The session reaches the steady phase even if the initial load fails;
        ``error`` then carries the failure and local data stays usable.

        Returns:
            True if the initial load succeeded
        """
        if self.phase != SyncPhase.IDLE:
            logger.warning(f"Session for {self.user_id} already started (phase {self.phase.value})")
            return self._error is None

        self.phase = SyncPhase.INITIAL_LOAD
        loaded = await self.load_from_remote(is_initial=True)
        if self.phase == SyncPhase.STOPPED:
            return loaded

        self.phase = SyncPhase.STEADY
        self.strategy.start(self)
        if len(self.queue):
            self._schedule_push()
        logger.info(f"Sync session for {self.user_id} started ({len(self.queue)} changes pending)")
        return loaded

    async def stop(self) -> None:
        """End the session: cancel timers, stop the strategy and clear all state.

        Remote calls already in flight are left to finish; their results are
        discarded.
        """
        if self.phase == SyncPhase.STOPPED:
            return
        self.phase = SyncPhase.STOPPED
        if self._debounce_handle is not None:
            self._debounce_handle.cancel()
            self._debounce_handle = None
        await self.strategy.stop()

        self.store.clear()
        self.queue.clear()
        self.conflict_registry.clear()
        self._error = None
        self._initial_load_complete = False
        self._last_sync_at = None
        logger.info(f"Sync session for {self.user_id} stopped")

    # Pull

    async def _fetch_all(self, timeout: float) -> Dict[EntityType, List[Dict[str, Any]]]:
        entity_types = list(EntityType)
        snapshots = await asyncio.gather(
            *(self.remote.list_all(t, self.user_id, timeout=timeout) for t in entity_types)
        )
        return dict(zip(entity_types, snapshots))

    async def load_from_remote(self, is_initial: bool = False) -> bool:
        """Fetch all three collections and merge them into the store.

        Args:
            is_initial: Use the initial-load timeout and mark the initial load
                        complete afterwards, whatever the outcome

        Returns:
            True if the remote snapshot was merged
        """
        if self._pulling:
            logger.debug("Pull already in progress, skipping")
            return False

        self._pulling = True
        timeout = self.settings.initial_load_timeout_sec if is_initial else self.settings.pull_timeout_sec
        try:
            try:
                raw = await asyncio.wait_for(self._fetch_all(timeout), timeout=timeout)
                snapshots = {
                    entity_type: [model_for(entity_type).model_validate(item) for item in items]
                    for entity_type, items in raw.items()
                }
            except (RemoteServiceError, asyncio.TimeoutError, ValidationError) as e:
                if self.phase == SyncPhase.STOPPED:
                    return False
                self._error = LOAD_FAILED_MESSAGE
                logger.error(f"Failed to load data from server: {type(e).__name__}: {str(e)}")
                return False

            if self.phase == SyncPhase.STOPPED:
                logger.debug("Session stopped during pull, discarding snapshot")
                return False

            self._apply_snapshots(snapshots)
            self._error = None
            self._last_sync_at = self._clock()
            return True
        finally:
            self._pulling = False
            for confirmed in self._deletes_during_pull.values():
                confirmed.clear()
            self._last_pull_monotonic = time.monotonic()
            if is_initial and self.phase != SyncPhase.STOPPED:
                self._initial_load_complete = True

    def _apply_snapshots(self, snapshots: Dict[EntityType, List[SyncedEntity]]) -> None:
        for entity_type, remote_entities in snapshots.items():
            result = merge_collection(
                entity_type,
                self.store.all(entity_type),
                remote_entities,
                skip_ids=self.queue.pending_delete_ids(entity_type) | self._deletes_during_pull[entity_type],
                clock=self._clock,
            )
            self.store.replace_collection(entity_type, result.entities)
            for conflict in result.conflicts:
                self.conflict_registry.record(conflict)
            # A later pull must not silently clear an unresolved conflict
            for entity_id in result.adopted_ids:
                if self.conflict_registry.has(entity_id):
                    self.store.set_sync_status(entity_type, entity_id, SyncStatus.CONFLICT)
            logger.debug(
                f"Merged {enum_value(entity_type)}s: {len(result.adopted_ids)} adopted, "
                f"{len(result.kept_ids)} kept, {len(result.conflicts)} conflicts"
            )

        for task_id in self.store.clear_dangling_references():
            self._enqueue_task_references(task_id)

    async def maybe_pull(self) -> bool:
        """Pull unless changes are pending, a pull is running, or the last pull was too recent."""
        if self.phase != SyncPhase.STEADY:
            return False
        if len(self.queue):
            logger.debug(f"Skipping pull: {len(self.queue)} changes pending")
            return False
        if self._pulling:
            return False
        if (
            self._last_pull_monotonic is not None
            and time.monotonic() - self._last_pull_monotonic < self.settings.min_sync_spacing_sec
        ):
            return False
        return await self.load_from_remote(is_initial=False)

    # Push

    async def flush(self) -> FlushResult:
        """Push queued changes now. Re-arms the debounce timer if changes remain."""
        if self._debounce_handle is not None:
            self._debounce_handle.cancel()
            self._debounce_handle = None

        result = await self.queue.flush(
            self.remote,
            on_success=self._on_push_success,
            timeout=self.settings.push_timeout_sec,
        )
        if result.skipped or self.phase == SyncPhase.STOPPED:
            return result
        if result.sent and not result.failed:
            self._last_sync_at = self._clock()
        if len(self.queue):
            self._schedule_push()
        return result

    async def sync_now(self) -> bool:
        """Flush pending changes, then pull."""
        await self.flush()
        return await self.load_from_remote(is_initial=False)

    def _on_push_success(self, change: PendingChange, response: Any) -> None:
        if self.phase == SyncPhase.STOPPED:
            return
        entity_type = EntityType(change.type)
        entity_id = change.id
        if change.action == ChangeAction.DELETE and self._pulling:
            # The snapshot in flight may predate this delete
            self._deletes_during_pull[entity_type].add(change.id)

        if change.action == ChangeAction.CREATE and isinstance(response, dict):
            server_id = response.get("id")
            if server_id and server_id != change.id:
                rewritten = self.store.replace_id(entity_type, change.id, server_id)
                self.queue.rekey(entity_type, change.id, server_id)
                self.conflict_registry.remove(change.id)
                for task_id in rewritten:
                    self._enqueue_task_references(task_id)
                entity_id = server_id

        if change.action != ChangeAction.DELETE and not self.queue.has_pending_for(entity_type, entity_id):
            entity = self.store.get(entity_type, entity_id)
            if entity is not None and entity.sync_status != SyncStatus.CONFLICT:
                self.store.set_sync_status(entity_type, entity_id, SyncStatus.SYNCED)

    def _schedule_push(self) -> None:
        """(Re)arm the debounce timer."""
        if self.phase != SyncPhase.STEADY:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        if self._debounce_handle is not None:
            self._debounce_handle.cancel()
        self._debounce_handle = loop.call_later(self.settings.debounce_sec, self._on_debounce_elapsed)

    def _on_debounce_elapsed(self) -> None:
        self._debounce_handle = None
        self._spawn(self.flush())

    def _spawn(self, coro) -> Optional[asyncio.Task]:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            return None
        task = loop.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    # Queueing

    def _enqueue(self, entity_type, action: ChangeAction, entity_id: str, data: Optional[Dict[str, Any]] = None):
        self.queue.enqueue(entity_type, action, entity_id, data)
        self._schedule_push()

    @staticmethod
    def _update_payload(entity: SyncedEntity, field_names: Iterable[str]) -> Dict[str, Any]:
        """Changed fields plus the version metadata, in wire form."""
        names = (set(field_names) - IDENTITY_FIELDS) | {"version", "last_modified"}
        if isinstance(entity, Task):
            names.add("updated_at")
        return {k: v for k, v in entity.to_wire().items() if k in names}

    def _enqueue_task_references(self, task_id: str) -> None:
        task = self.store.get(EntityType.TASK, task_id)
        if task is not None:
            self._enqueue(EntityType.TASK, ChangeAction.UPDATE, task_id, self._update_payload(task, REFERENCE_FIELDS))

    # Generic mutations

    def _add(self, entity_type: EntityType, **fields: Any) -> SyncedEntity:
        entity = self.store.add(entity_type, **fields)
        self._enqueue(entity_type, ChangeAction.CREATE, entity.id, entity.to_wire())
        return entity

    def _update(self, entity_type: EntityType, entity_id: str, fields: Dict[str, Any]) -> Optional[SyncedEntity]:
        entity = self.store.update(entity_type, entity_id, fields)
        if entity is None:
            return None
        self._enqueue(entity_type, ChangeAction.UPDATE, entity_id, self._update_payload(entity, fields.keys()))
        return entity

    def _delete(self, entity_type: EntityType, entity_id: str) -> bool:
        if self.store.get(entity_type, entity_id) is None:
            return False
        cascaded = self.store.delete(entity_type, entity_id)
        self.conflict_registry.remove(entity_id)
        self._enqueue(entity_type, ChangeAction.DELETE, entity_id)
        for task_id in cascaded:
            self._enqueue_task_references(task_id)
        return True

    # Tasks

    def add_task(self, title: str, **fields: Any) -> Task:
        task = self._add(EntityType.TASK, title=title, **fields)
        if task.due_date is not None:
            self._spawn_calendar_sync(task.id)
        return task

    def update_task(self, task_id: str, fields: Dict[str, Any]) -> Optional[Task]:
        before = self.store.get(EntityType.TASK, task_id)
        task = self._update(EntityType.TASK, task_id, fields)
        if task is None:
            return None
        if CALENDAR_FIELDS.intersection(fields):
            if task.due_date is not None:
                self._spawn_calendar_sync(task_id)
            elif before is not None and before.calendar_event_id:
                self._spawn_calendar_removal(task_id, before)
        return task

    def delete_task(self, task_id: str) -> bool:
        task = self.store.get(EntityType.TASK, task_id)
        if not self._delete(EntityType.TASK, task_id):
            return False
        if task.calendar_event_id:
            self._spawn_calendar_removal(None, task)
        return True

    def move_task(self, task_id: str, status: TaskStatus) -> Optional[Task]:
        return self.update_task(task_id, {"status": status})

    def toggle_important(self, task_id: str) -> Optional[Task]:
        task = self.store.get(EntityType.TASK, task_id)
        if task is None:
            return None
        return self.update_task(task_id, {"important": not task.important})

    def toggle_complete(self, task_id: str) -> Optional[Task]:
        """Flip completion; completing moves to done, reopening a done task moves it back in progress."""
        task = self.store.get(EntityType.TASK, task_id)
        if task is None:
            return None
        completed = not task.completed
        if completed:
            status = COMPLETED_TASK_STATUS
        elif task.status == COMPLETED_TASK_STATUS:
            status = REOPENED_TASK_STATUS
        else:
            status = task.status
        return self.update_task(task_id, {"completed": completed, "status": status})

    def reorder_tasks(self, ordered_ids: Iterable[str]) -> List[str]:
        changed = self.store.reorder_tasks(ordered_ids)
        for task_id in changed:
            task = self.store.get(EntityType.TASK, task_id)
            self._enqueue(EntityType.TASK, ChangeAction.UPDATE, task_id, self._update_payload(task, ["order"]))
        return changed

    def _enqueue_subtasks(self, task: Optional[Task]) -> Optional[Task]:
        if task is not None:
            self._enqueue(EntityType.TASK, ChangeAction.UPDATE, task.id, self._update_payload(task, ["subtasks"]))
        return task

    def add_subtask(self, task_id: str, title: str, reminder=None) -> Optional[Task]:
        return self._enqueue_subtasks(self.store.add_subtask(task_id, title, reminder))

    def update_subtask(self, task_id: str, subtask_id: str, fields: Dict[str, Any]) -> Optional[Task]:
        return self._enqueue_subtasks(self.store.update_subtask(task_id, subtask_id, fields))

    def delete_subtask(self, task_id: str, subtask_id: str) -> Optional[Task]:
        return self._enqueue_subtasks(self.store.delete_subtask(task_id, subtask_id))

    def toggle_subtask_complete(self, task_id: str, subtask_id: str) -> Optional[Task]:
        return self._enqueue_subtasks(self.store.toggle_subtask_complete(task_id, subtask_id))

    # Projects and tags

    def add_project(self, name: str, color: Optional[str] = None, icon: Optional[str] = None) -> Project:
        return self._add(EntityType.PROJECT, name=name, color=color, icon=icon)

    def update_project(self, project_id: str, fields: Dict[str, Any]) -> Optional[Project]:
        return self._update(EntityType.PROJECT, project_id, fields)

    def delete_project(self, project_id: str) -> bool:
        return self._delete(EntityType.PROJECT, project_id)

    def add_tag(self, name: str, color: Optional[str] = None) -> Tag:
        return self._add(EntityType.TAG, name=name, color=color)

    def update_tag(self, tag_id: str, fields: Dict[str, Any]) -> Optional[Tag]:
        return self._update(EntityType.TAG, tag_id, fields)

    def delete_tag(self, tag_id: str) -> bool:
        return self._delete(EntityType.TAG, tag_id)

    # Conflicts

    def resolve_conflict(self, item_id: str, choice: ConflictChoice) -> SyncedEntity:
        """Keep one side of a conflict.

        The chosen snapshot is written back as an ordinary update, so its version
        ends up above both sides, and the update is queued for the remote.

        Raises:
            ValueError: If no conflict is recorded for ``item_id``
        """
        conflict = self.conflict_registry.get(item_id)
        if conflict is None:
            raise ValueError(f"No conflict recorded for {item_id}")

        choice = ConflictChoice(choice)
        entity_type = EntityType(conflict.item_type)
        snapshot = conflict.local_version if choice == ConflictChoice.LOCAL else conflict.remote_version
        fields = {k: v for k, v in snapshot.items() if k not in IDENTITY_FIELDS}

        if self.store.get(entity_type, item_id) is None:
            # Entity vanished locally since the conflict was recorded: recreate it
            restored = model_for(entity_type).model_validate(snapshot)
            self.store.replace_collection(entity_type, self.store.all(entity_type) + [restored])
            entity = self.store.update(entity_type, item_id, {})
            self._enqueue(entity_type, ChangeAction.CREATE, item_id, entity.to_wire())
        else:
            entity = self._update(entity_type, item_id, fields)
        self.conflict_registry.remove(item_id)
        logger.info(f"Resolved conflict on {enum_value(entity_type)} {item_id} keeping {choice.value} (version {entity.version})")
        return entity

    # Calendar side channel

    def _spawn_calendar_sync(self, task_id: str) -> None:
        if self.calendar is not None:
            self._spawn(self._sync_calendar_event(task_id))

    def _spawn_calendar_removal(self, task_id: Optional[str], task: Task) -> None:
        if self.calendar is not None:
            self._spawn(self._remove_calendar_event(task_id, task))

    async def _sync_calendar_event(self, task_id: str) -> None:
        task = self.store.get(EntityType.TASK, task_id)
        if task is None:
            return
        try:
            event_id = await self.calendar.sync_task(task)
        except Exception as e:
            logger.error(f"Calendar sync failed for task {task_id}: {type(e).__name__}: {str(e)}")
            return
        if self.phase == SyncPhase.STOPPED or not event_id:
            return
        current = self.store.get(EntityType.TASK, task_id)
        if current is not None and current.calendar_event_id != event_id:
            self.update_task(task_id, {"calendar_event_id": event_id})

    async def _remove_calendar_event(self, task_id: Optional[str], task: Task) -> None:
        try:
            await self.calendar.remove_task(task)
        except Exception as e:
            logger.error(f"Calendar removal failed for task {task.id}: {type(e).__name__}: {str(e)}")
            return
        if task_id is not None and self.phase != SyncPhase.STOPPED:
            current = self.store.get(EntityType.TASK, task_id)
            if current is not None and current.calendar_event_id:
                self.update_task(task_id, {"calendar_event_id": None})

    async def pull_calendar_changes(self) -> List[str]:
        """Apply title and due-date edits made in the external calendar.

        Returns:
            Ids of tasks that were updated
        """
        if self.calendar is None:
            return []
        try:
            events = await self.calendar.fetch_events()
        except Exception as e:
            logger.error(f"Failed to fetch calendar events: {type(e).__name__}: {str(e)}")
            return []
        if self.phase == SyncPhase.STOPPED:
            return []

        updated: List[str] = []
        for task_id, fields in calendar_updates_for_tasks(events, self.store.tasks).items():
            if self.update_task(task_id, fields) is not None:
                updated.append(task_id)
        if updated:
            logger.info(f"Applied calendar edits to {len(updated)} tasks")
        return updated
