"""Runtime settings for the sync session."""

import os
from pydantic import BaseModel, Field
from dotenv import load_dotenv

from taskflow.models.constants import (
    DEFAULT_API_URL,
    DEFAULT_SYNC_INTERVAL_SEC,
    DEFAULT_DEBOUNCE_SEC,
    DEFAULT_MIN_SYNC_SPACING_SEC,
    DEFAULT_INITIAL_LOAD_TIMEOUT_SEC,
    DEFAULT_PULL_TIMEOUT_SEC,
    DEFAULT_PUSH_TIMEOUT_SEC,
    MAX_PUSH_RETRIES,
)

load_dotenv()


class SyncSettings(BaseModel):
    """Timing and retry knobs for one sync session."""

    api_url: str = Field(DEFAULT_API_URL, description="Base URL of the remote persistence service")
    sync_interval_sec: float = Field(DEFAULT_SYNC_INTERVAL_SEC, gt=0, description="Periodic pull interval")
    debounce_sec: float = Field(DEFAULT_DEBOUNCE_SEC, ge=0, description="Quiet period before a push")
    min_sync_spacing_sec: float = Field(DEFAULT_MIN_SYNC_SPACING_SEC, ge=0, description="Minimum time between pulls")
    initial_load_timeout_sec: float = Field(DEFAULT_INITIAL_LOAD_TIMEOUT_SEC, gt=0)
    pull_timeout_sec: float = Field(DEFAULT_PULL_TIMEOUT_SEC, gt=0)
    push_timeout_sec: float = Field(DEFAULT_PUSH_TIMEOUT_SEC, gt=0)
    max_push_retries: int = Field(MAX_PUSH_RETRIES, ge=1, description="Failed pushes before a change is dropped")

    @classmethod
    def from_env(cls) -> "SyncSettings":
        """Build settings from TASKFLOW_* environment variables."""
        return cls(
            api_url=os.getenv("TASKFLOW_API_URL", DEFAULT_API_URL),
            sync_interval_sec=float(os.getenv("TASKFLOW_SYNC_INTERVAL_SEC", str(DEFAULT_SYNC_INTERVAL_SEC))),
            debounce_sec=float(os.getenv("TASKFLOW_DEBOUNCE_SEC", str(DEFAULT_DEBOUNCE_SEC))),
            min_sync_spacing_sec=float(
                os.getenv("TASKFLOW_MIN_SYNC_SPACING_SEC", str(DEFAULT_MIN_SYNC_SPACING_SEC))
            ),
            initial_load_timeout_sec=float(
                os.getenv("TASKFLOW_INITIAL_LOAD_TIMEOUT_SEC", str(DEFAULT_INITIAL_LOAD_TIMEOUT_SEC))
            ),
            pull_timeout_sec=float(os.getenv("TASKFLOW_PULL_TIMEOUT_SEC", str(DEFAULT_PULL_TIMEOUT_SEC))),
            push_timeout_sec=float(os.getenv("TASKFLOW_PUSH_TIMEOUT_SEC", str(DEFAULT_PUSH_TIMEOUT_SEC))),
            max_push_retries=int(os.getenv("TASKFLOW_MAX_PUSH_RETRIES", str(MAX_PUSH_RETRIES))),
        )
