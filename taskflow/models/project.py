"""Project data model for taskflow."""

from datetime import datetime
from typing import Optional
from pydantic import Field

from taskflow.models.entity import SyncedEntity

HEX_COLOR_PATTERN = r"^#[0-9a-fA-F]{6}$"


class Project(SyncedEntity):
    """Project groups tasks; tasks hold a weak reference by id."""

    name: str = Field(..., description="Project name")
    color: str = Field(..., pattern=HEX_COLOR_PATTERN, description="Hex color")
    icon: Optional[str] = Field(None, description="Optional icon name")
    created_at: datetime = Field(default_factory=datetime.utcnow, description="Project creation timestamp")
