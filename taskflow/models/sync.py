"""Sync bookkeeping models: pending changes and conflicts."""

from enum import Enum
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field

from taskflow.models.entity import EntityType


class ChangeAction(str, Enum):
    """Remote operation a pending change maps to."""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class ConflictChoice(str, Enum):
    """Which side of a conflict the user keeps."""
    LOCAL = "local"
    REMOTE = "remote"


class PendingChange(BaseModel):
    """A local mutation not yet confirmed by the remote service."""

    type: EntityType = Field(..., description="Entity type the change targets")
    action: ChangeAction = Field(..., description="Remote operation to issue")
    id: str = Field(..., description="Target entity id")
    data: Optional[Dict[str, Any]] = Field(None, description="Wire payload (full entity or partial fields)")
    timestamp: int = Field(..., description="Epoch milliseconds when the change was queued")
    retry_count: int = Field(0, ge=0, description="Failed flush attempts so far")

    class Config:
        """Pydantic configuration."""
        use_enum_values = True


class SyncConflict(BaseModel):
    """Two copies of one entity that the merge algorithm could not order."""

    item_type: EntityType = Field(..., description="Entity type")
    item_id: str = Field(..., description="Entity id")
    local_version: Dict[str, Any] = Field(..., description="Local entity snapshot")
    remote_version: Dict[str, Any] = Field(..., description="Remote entity snapshot")
    timestamp: int = Field(..., description="Epoch milliseconds when the conflict was detected")

    class Config:
        """Pydantic configuration."""
        use_enum_values = True
