"""Version-based merge algorithm for taskflow.

Decides which copy of an entity survives when the same id exists locally and in
a remote snapshot. This module is deterministic - the same two copies always
produce the same decision:

1. An entity unknown locally is adopted from remote (created on another device).
2. The higher ``version`` wins (more edits happened on that side).
3. On equal versions the later ``last_modified`` wins.
4. On equal version and timestamp, identical content is kept as-is; divergent
   content is a conflict. The remote copy is adopted provisionally so the system
   stays live, and the conflict is surfaced for manual resolution.

Absence from the remote snapshot never deletes a local entity.
"""

import logging
from enum import Enum
from typing import AbstractSet, Callable, Dict, List, Optional, Sequence

from taskflow.models.entity import EntityType, SyncStatus, SyncedEntity
from taskflow.models.sync import SyncConflict
from taskflow.models.entity_factory import now_ms

logger = logging.getLogger(__name__)


class MergeDecision(str, Enum):
    """Outcome of merging one local and one remote copy."""
    KEEP_LOCAL = "keep_local"
    ADOPT_REMOTE = "adopt_remote"
    CONFLICT = "conflict"


class MergeResult:
    """Result of merging one collection."""

    def __init__(self):
        self.entities: List[SyncedEntity] = []
        self.conflicts: List[SyncConflict] = []
        self.adopted_ids: List[str] = []
        self.kept_ids: List[str] = []


def decide(local: Optional[SyncedEntity], remote: SyncedEntity) -> MergeDecision:
    """Decide which copy of one entity survives.

    Args:
        local: Local copy, or None if the id is unknown locally
        remote: Remote copy of the same id

    Returns:
        MergeDecision
    """
    if local is None:
        return MergeDecision.ADOPT_REMOTE

    if local.version > remote.version:
        return MergeDecision.KEEP_LOCAL
    if local.version < remote.version:
        return MergeDecision.ADOPT_REMOTE

    if local.last_modified > remote.last_modified:
        return MergeDecision.KEEP_LOCAL
    if local.last_modified < remote.last_modified:
        return MergeDecision.ADOPT_REMOTE

    if local.content() == remote.content():
        return MergeDecision.KEEP_LOCAL
    return MergeDecision.CONFLICT


def merge_collection(
    entity_type: EntityType,
    local: Sequence[SyncedEntity],
    remote: Sequence[SyncedEntity],
    skip_ids: AbstractSet[str] = frozenset(),
    clock: Callable[[], int] = now_ms,
) -> MergeResult:
    """Merge a remote snapshot of one collection into the local collection.

    Args:
        entity_type: Type of the collection (recorded on conflicts)
        local: Current local collection
        remote: Remote snapshot of the same collection
        skip_ids: Remote ids that must not be adopted (pending local deletes)
        clock: Epoch-milliseconds clock used to stamp conflicts

    Returns:
        MergeResult with the surviving entities (local order first, then newly
        adopted remote entities in remote order) and any conflicts
    """
    result = MergeResult()

    remote_by_id: Dict[str, SyncedEntity] = {}
    for entity in remote:
        if entity.id in remote_by_id:
            logger.warning(f"Duplicate {enum_value(entity_type)} id {entity.id} in remote snapshot; keeping last")
        remote_by_id[entity.id] = entity

    local_ids = set()
    for local_entity in local:
        local_ids.add(local_entity.id)
        remote_entity = remote_by_id.get(local_entity.id)
        if remote_entity is None:
            result.entities.append(local_entity)
            result.kept_ids.append(local_entity.id)
            continue

        decision = decide(local_entity, remote_entity)
        if decision == MergeDecision.KEEP_LOCAL:
            result.entities.append(local_entity)
            result.kept_ids.append(local_entity.id)
        elif decision == MergeDecision.ADOPT_REMOTE:
            result.entities.append(remote_entity.model_copy(update={"sync_status": SyncStatus.SYNCED}))
            result.adopted_ids.append(local_entity.id)
        else:
            result.entities.append(remote_entity.model_copy(update={"sync_status": SyncStatus.CONFLICT}))
            result.conflicts.append(SyncConflict(
                item_type=entity_type,
                item_id=local_entity.id,
                local_version=local_entity.to_wire(),
                remote_version=remote_entity.to_wire(),
                timestamp=clock(),
            ))
            logger.warning(
                f"Sync conflict on {enum_value(entity_type)} {local_entity.id} "
                f"(version {local_entity.version}, last_modified {local_entity.last_modified})"
            )

    for remote_id, remote_entity in remote_by_id.items():
        if remote_id in local_ids:
            continue
        if remote_id in skip_ids:
            logger.debug(f"Not adopting {enum_value(entity_type)} {remote_id}: local delete pending")
            continue
        result.entities.append(remote_entity.model_copy(update={"sync_status": SyncStatus.SYNCED}))
        result.adopted_ids.append(remote_id)

    return result


def enum_value(value) -> str:
    """Return the string value of an enum (handles both enum and string)."""
    if hasattr(value, "value"):
        return value.value
    return str(value)
