"""Google Calendar integration for taskflow.

Tasks with a due date are mirrored as calendar events. The link is kept in two
places: the task's ``calendar_event_id`` and a private extended property on the
event carrying the task id. Calendar sync is best effort and never blocks a
task mutation.
"""

import asyncio
import logging
import os
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, Iterable, List, Optional
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from dotenv import load_dotenv

from taskflow.models.task import Task
from taskflow.models.constants import (
    CALENDAR_EVENT_DURATION_MIN,
    CALENDAR_ALL_DAY_START_HOUR,
    CALENDAR_ALL_DAY_END_HOUR,
)

load_dotenv()

logger = logging.getLogger(__name__)

# Google Calendar API scopes
SCOPES = ['https://www.googleapis.com/auth/calendar']

# Private extended property linking an event back to its task
TASK_ID_PROPERTY = "taskflow_task_id"

# Window scanned when pulling calendar-side edits
FETCH_PAST_DAYS = 30
FETCH_FUTURE_DAYS = 60

# Popup reminder lead time for tasks with a reminder
REMINDER_POPUP_MINUTES = 15


class GoogleCalendarError(Exception):
    """A Google Calendar API call failed."""


def _http_status(error: HttpError) -> Optional[int]:
    resp = getattr(error, "resp", None)
    status = getattr(resp, "status", None)
    try:
        return int(status) if status is not None else None
    except (TypeError, ValueError):
        return None


def _parse_event_start(event: Dict[str, Any]):
    """Return (date, "HH:MM" or None) for an event start, or (None, None)."""
    start = event.get("start") or {}
    if start.get("dateTime"):
        value = start["dateTime"]
        if value.endswith("Z"):
            value = value.replace("Z", "+00:00")
        parsed = datetime.fromisoformat(value)
        return parsed.date(), parsed.strftime("%H:%M")
    if start.get("date"):
        return date.fromisoformat(start["date"]), None
    return None, None


class GoogleCalendarClient:
    """Client for Google Calendar API integration."""

    def __init__(
        self,
        credentials: Optional[Credentials] = None,
        calendar_id: Optional[str] = None,
        credentials_path: Optional[str] = None,
        token_path: str = "token.json",
        time_zone: Optional[str] = None,
    ):
        """Initialize Google Calendar client.

        Args:
            credentials: Ready-to-use OAuth2 credentials. If None, the installed-app
                         flow runs against ``credentials_path``.
            calendar_id: Google Calendar ID to use.
                        If None, reads from GOOGLE_CALENDAR_ID env var (defaults to 'primary').
            credentials_path: Path to OAuth2 client secrets JSON file.
                             If None, reads from GOOGLE_CALENDAR_CREDENTIALS_PATH env var.
            token_path: Path to store OAuth2 token (defaults to 'token.json').
            time_zone: IANA time zone for event times.
                       If None, reads from GOOGLE_CALENDAR_TIMEZONE env var (defaults to 'UTC').
        """
        self.calendar_id = calendar_id or os.getenv("GOOGLE_CALENDAR_ID", "primary")
        self.credentials_path = credentials_path or os.getenv("GOOGLE_CALENDAR_CREDENTIALS_PATH", "credentials.json")
        self.token_path = token_path
        self.time_zone = time_zone or os.getenv("GOOGLE_CALENDAR_TIMEZONE", "UTC")
        self.creds = credentials or self._load_credentials()
        self.service = build('calendar', 'v3', credentials=self.creds)

    def _load_credentials(self) -> Credentials:
        """Load a stored token, refreshing it or running the OAuth2 flow as needed."""
        creds = None
        if os.path.exists(self.token_path):
            creds = Credentials.from_authorized_user_file(self.token_path, SCOPES)

        if not creds or not creds.valid:
            if creds and creds.expired and creds.refresh_token:
                creds.refresh(Request())
            else:
                if not os.path.exists(self.credentials_path):
                    raise FileNotFoundError(
                        f"Google Calendar credentials not found at {self.credentials_path}. "
                        "Please download OAuth2 credentials from Google Cloud Console."
                    )
                flow = InstalledAppFlow.from_client_secrets_file(self.credentials_path, SCOPES)
                creds = flow.run_local_server(port=0)

            with open(self.token_path, 'w') as token:
                token.write(creds.to_json())
        return creds

    def task_to_event_body(self, task: Task) -> dict:
        """Build the event body for a task.

        Timed tasks become a short block starting at the due time; tasks with
        only a due date fall back to a fixed morning slot.

        Raises:
            ValueError: If the task has no due date
        """
        if task.due_date is None:
            raise ValueError(f"Task {task.id} has no due date")

        if task.due_time:
            start = datetime.combine(task.due_date, time.fromisoformat(task.due_time))
            end = start + timedelta(minutes=CALENDAR_EVENT_DURATION_MIN)
        else:
            start = datetime.combine(task.due_date, time(hour=CALENDAR_ALL_DAY_START_HOUR))
            end = datetime.combine(task.due_date, time(hour=CALENDAR_ALL_DAY_END_HOUR))

        overrides = [{'method': 'popup', 'minutes': REMINDER_POPUP_MINUTES}] if task.reminder else []
        return {
            'summary': task.title,
            'description': task.description or '',
            'start': {
                'dateTime': start.isoformat(),
                'timeZone': self.time_zone,
            },
            'end': {
                'dateTime': end.isoformat(),
                'timeZone': self.time_zone,
            },
            'reminders': {
                'useDefault': False,
                'overrides': overrides,
            },
            'extendedProperties': {
                'private': {
                    TASK_ID_PROPERTY: task.id,
                }
            },
        }

    def create_event_for_task(self, task: Task) -> dict:
        """Create a Google Calendar event for a task.

        Returns:
            Created event dictionary from Google Calendar API

        Raises:
            GoogleCalendarError: If API call fails
        """
        try:
            return self.service.events().insert(
                calendarId=self.calendar_id,
                body=self.task_to_event_body(task),
            ).execute()
        except HttpError as error:
            raise GoogleCalendarError(f"Failed to create calendar event: {error}") from error

    def update_event_for_task(self, event_id: str, task: Task) -> Optional[dict]:
        """Replace the event linked to a task.

        Returns:
            Updated event dictionary, or None if the event no longer exists

        Raises:
            GoogleCalendarError: If API call fails for any other reason
        """
        try:
            return self.service.events().update(
                calendarId=self.calendar_id,
                eventId=event_id,
                body=self.task_to_event_body(task),
            ).execute()
        except HttpError as error:
            if _http_status(error) in (404, 410):
                return None
            raise GoogleCalendarError(f"Failed to update calendar event {event_id}: {error}") from error

    def sync_task_event(self, task: Task) -> Optional[str]:
        """Create or update the event for a task and return its id.

        Tasks without a due date are not mirrored (returns None). An event that
        was deleted on the calendar side is recreated.
        """
        if task.due_date is None:
            return None
        if task.calendar_event_id:
            event = self.update_event_for_task(task.calendar_event_id, task)
            if event is not None:
                return event.get('id', task.calendar_event_id)
            logger.info(f"Calendar event {task.calendar_event_id} for task {task.id} is gone, creating a new one")
        event = self.create_event_for_task(task)
        return event.get('id')

    def delete_event(self, event_id: str) -> None:
        """Delete an event. Missing events are not an error."""
        try:
            self.service.events().delete(calendarId=self.calendar_id, eventId=event_id).execute()
        except HttpError as error:
            if _http_status(error) in (404, 410):
                logger.debug(f"Calendar event {event_id} already deleted")
                return
            raise GoogleCalendarError(f"Failed to delete calendar event {event_id}: {error}") from error

    def list_events_in_range(
        self,
        time_min_rfc3339: str,
        time_max_rfc3339: str,
        fields: Optional[str] = None,
    ) -> List[dict]:
        """List events in a time range, following pagination.

        Args:
            time_min_rfc3339: Lower bound (RFC3339)
            time_max_rfc3339: Upper bound (RFC3339)
            fields: Optional partial-response field mask

        Returns:
            List of event dictionaries
        """
        events: List[dict] = []
        page_token = None
        while True:
            params = {
                'calendarId': self.calendar_id,
                'timeMin': time_min_rfc3339,
                'timeMax': time_max_rfc3339,
                'singleEvents': True,
            }
            if fields:
                params['fields'] = fields
            if page_token:
                params['pageToken'] = page_token
            try:
                response = self.service.events().list(**params).execute()
            except HttpError as error:
                raise GoogleCalendarError(f"Failed to list calendar events: {error}") from error
            events.extend(response.get('items', []))
            page_token = response.get('nextPageToken')
            if not page_token:
                return events

    def list_task_events(self, now: Optional[datetime] = None) -> List[dict]:
        """List events linked to a task within the pull window around ``now``."""
        now = now or datetime.utcnow()
        time_min = (now - timedelta(days=FETCH_PAST_DAYS)).strftime("%Y-%m-%dT%H:%M:%SZ")
        time_max = (now + timedelta(days=FETCH_FUTURE_DAYS)).strftime("%Y-%m-%dT%H:%M:%SZ")
        events = self.list_events_in_range(time_min, time_max)
        return [
            e for e in events
            if ((e.get('extendedProperties') or {}).get('private') or {}).get(TASK_ID_PROPERTY)
        ]


class GoogleCalendarSink:
    """Async adapter exposing GoogleCalendarClient to the sync session."""

    def __init__(self, client: GoogleCalendarClient):
        self.client = client

    async def sync_task(self, task: Task) -> Optional[str]:
        return await asyncio.to_thread(self.client.sync_task_event, task)

    async def remove_task(self, task: Task) -> None:
        if task.calendar_event_id:
            await asyncio.to_thread(self.client.delete_event, task.calendar_event_id)

    async def fetch_events(self) -> List[dict]:
        return await asyncio.to_thread(self.client.list_task_events)


def calendar_updates_for_tasks(events: Iterable[dict], tasks: Iterable[Task]) -> Dict[str, Dict[str, Any]]:
    """Compute task edits made on the calendar side.

    Only the title, the due date and (for timed tasks) the due time are pulled
    back. Cancelled events and events without a task link are ignored.

    Args:
        events: Event dictionaries from Google Calendar
        tasks: Current tasks

    Returns:
        Mapping of task id -> partial fields to apply
    """
    tasks_by_id = {t.id: t for t in tasks}
    updates: Dict[str, Dict[str, Any]] = {}
    for event in events:
        if event.get('status') == 'cancelled':
            continue
        task_id = ((event.get('extendedProperties') or {}).get('private') or {}).get(TASK_ID_PROPERTY)
        task = tasks_by_id.get(task_id) if task_id else None
        if task is None:
            continue

        fields: Dict[str, Any] = {}
        event_date, event_time = _parse_event_start(event)
        if task.due_date is not None and event_date is not None and event_date != task.due_date:
            fields["due_date"] = event_date
        if task.due_time and event_time and event_time != task.due_time:
            fields["due_time"] = event_time
        summary = event.get('summary')
        if summary and summary != task.title:
            fields["title"] = summary
        if fields:
            updates[task.id] = fields
    return updates
