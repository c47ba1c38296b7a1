"""Constants for taskflow.

This module centralizes all magic numbers and default values used throughout the application.
"""

from taskflow.models.task import TaskStatus


# Task defaults
DEFAULT_TASK_STATUS = TaskStatus.TODO
COMPLETED_TASK_STATUS = TaskStatus.DONE
REOPENED_TASK_STATUS = TaskStatus.IN_PROGRESS

# Remote persistence service
DEFAULT_API_URL = "http://localhost:8000"

# Reconciliation loop timing (seconds)
DEFAULT_SYNC_INTERVAL_SEC = 30.0
DEFAULT_DEBOUNCE_SEC = 2.0
DEFAULT_MIN_SYNC_SPACING_SEC = 10.0

# Remote call timeouts (seconds)
DEFAULT_INITIAL_LOAD_TIMEOUT_SEC = 15.0
DEFAULT_PULL_TIMEOUT_SEC = 30.0
DEFAULT_PUSH_TIMEOUT_SEC = 10.0

# Pending changes are dropped after this many failed pushes
MAX_PUSH_RETRIES = 3

# Only the most recent dropped changes are kept for inspection
MAX_DROPPED_CHANGES = 100

# Due-soon window for list views
DUE_SOON_DAYS = 3

# Calendar events: default block length and all-day fallback hours
CALENDAR_EVENT_DURATION_MIN = 30
CALENDAR_ALL_DAY_START_HOUR = 9
CALENDAR_ALL_DAY_END_HOUR = 10

# Default palettes
PROJECT_COLORS = [
    "#3b82f6",  # blue
    "#8b5cf6",  # violet
    "#ec4899",  # pink
    "#f97316",  # orange
    "#22c55e",  # green
    "#06b6d4",  # cyan
    "#f43f5e",  # rose
    "#a855f7",  # purple
    "#14b8a6",  # teal
    "#eab308",  # yellow
]

TAG_COLORS = [
    "#60a5fa",  # light blue
    "#a78bfa",  # light violet
    "#f472b6",  # light pink
    "#fb923c",  # light orange
    "#4ade80",  # light green
    "#22d3ee",  # light cyan
    "#fbbf24",  # amber
    "#e879f9",  # fuchsia
    "#2dd4bf",  # teal
    "#f87171",  # red
]
