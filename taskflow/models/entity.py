"""Shared sync metadata for taskflow entities."""

from enum import Enum
from typing import Any, Dict
from pydantic import BaseModel, Field


class EntityType(str, Enum):
    """Entity type enumeration."""
    TASK = "task"
    PROJECT = "project"
    TAG = "tag"


class SyncStatus(str, Enum):
    """Advisory sync status shown by the UI (never used for merge decisions)."""
    SYNCED = "synced"
    PENDING = "pending"
    CONFLICT = "conflict"


# Fields a caller may never overwrite through a partial update.
IDENTITY_FIELDS = frozenset({"id", "user_id", "version", "last_modified", "sync_status"})

# Fields kept local to a device and never sent over the wire.
LOCAL_ONLY_FIELDS = frozenset({"sync_status"})


class SyncedEntity(BaseModel):
    """Base model for every entity that takes part in multi-device sync."""

    id: str = Field(..., description="Opaque identifier, stable across merges")
    user_id: str = Field(..., description="User ID who owns this entity")
    version: int = Field(1, ge=1, description="Incremented on every accepted local mutation")
    last_modified: int = Field(..., description="Epoch milliseconds of the last mutation")
    sync_status: SyncStatus = Field(SyncStatus.PENDING, description="Advisory sync status")

    class Config:
        """Pydantic configuration."""
        use_enum_values = True

    def content(self) -> Dict[str, Any]:
        """Return the comparable content of the entity (sync status excluded)."""
        return self.model_dump(exclude=set(LOCAL_ONLY_FIELDS))

    def to_wire(self) -> Dict[str, Any]:
        """Serialize for the remote persistence service."""
        return self.model_dump(mode="json", exclude=set(LOCAL_ONLY_FIELDS))
