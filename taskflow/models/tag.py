"""Tag data model for taskflow."""

from pydantic import Field

from taskflow.models.entity import SyncedEntity
from taskflow.models.project import HEX_COLOR_PATTERN


class Tag(SyncedEntity):
    """Tag labels tasks; tasks hold weak references by id."""

    name: str = Field(..., description="Tag name")
    color: str = Field(..., pattern=HEX_COLOR_PATTERN, description="Hex color")
