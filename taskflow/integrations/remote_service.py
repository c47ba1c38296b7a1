"""HTTP client for the taskflow remote persistence service."""

import asyncio
import logging
import os
from typing import Any, Dict, List, Optional
import requests
from dotenv import load_dotenv

from taskflow.models.entity import EntityType
from taskflow.models.constants import DEFAULT_API_URL, DEFAULT_PUSH_TIMEOUT_SEC

load_dotenv()

logger = logging.getLogger(__name__)

RESOURCE_NAMES = {
    EntityType.TASK: ("tasks", "task"),
    EntityType.PROJECT: ("projects", "project"),
    EntityType.TAG: ("tags", "tag"),
}


class RemoteServiceError(Exception):
    """A remote call failed (transport error or non-2xx response)."""


class MalformedResponseError(RemoteServiceError):
    """The remote answered with a body that is not JSON or has the wrong shape."""


class HttpRemoteService:
    """Remote persistence service over the taskflow REST API.

    requests is blocking, so every call runs in a worker thread via
    ``asyncio.to_thread``.
    """

    def __init__(
        self,
        user_id: str,
        base_url: Optional[str] = None,
        default_timeout: float = DEFAULT_PUSH_TIMEOUT_SEC,
        session: Optional[requests.Session] = None,
    ):
        """Initialize the client.

        Args:
            user_id: User sent in the X-User-Id header
            base_url: Service root. If None, reads TASKFLOW_API_URL (defaults to localhost:8000)
            default_timeout: Timeout in seconds for calls that pass none
            session: requests session to reuse (a new one is created if None)
        """
        self.user_id = user_id
        self.base_url = (base_url or os.getenv("TASKFLOW_API_URL", DEFAULT_API_URL)).rstrip("/")
        self.default_timeout = default_timeout
        self.session = session or requests.Session()
        self.headers = {
            "X-User-Id": user_id,
            "Content-Type": "application/json",
        }

    def _url(self, entity_type: EntityType, entity_id: Optional[str] = None) -> str:
        plural, _ = RESOURCE_NAMES[entity_type]
        url = f"{self.base_url}/api/{plural}"
        return f"{url}/{entity_id}" if entity_id else url

    def _request(
        self,
        method: str,
        url: str,
        *,
        json: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
        headers: Optional[Dict[str, str]] = None,
        allow_not_found: bool = False,
    ) -> Any:
        try:
            response = self.session.request(
                method,
                url,
                json=json,
                headers=headers or self.headers,
                timeout=timeout or self.default_timeout,
            )
        except requests.RequestException as e:
            raise RemoteServiceError(f"{method} {url} failed: {e}") from e

        if allow_not_found and response.status_code == 404:
            logger.debug(f"{method} {url}: not found, treating as done")
            return None
        try:
            response.raise_for_status()
        except requests.HTTPError as e:
            raise RemoteServiceError(f"{method} {url} returned HTTP {response.status_code}") from e

        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise MalformedResponseError(f"{method} {url} returned a non-JSON body") from e

    async def list_all(
        self, entity_type, user_id: str, *, timeout: Optional[float] = None
    ) -> List[Dict[str, Any]]:
        entity_type = EntityType(entity_type)
        plural, _ = RESOURCE_NAMES[entity_type]
        url = self._url(entity_type)
        body = await asyncio.to_thread(
            self._request, "GET", url, timeout=timeout, headers={**self.headers, "X-User-Id": user_id},
        )
        if not isinstance(body, dict) or not isinstance(body.get(plural), list):
            raise MalformedResponseError(f"GET {url}: expected an object with a '{plural}' list")
        return body[plural]

    async def create(
        self, entity_type, data: Dict[str, Any], *, timeout: Optional[float] = None
    ) -> Dict[str, Any]:
        entity_type = EntityType(entity_type)
        _, singular = RESOURCE_NAMES[entity_type]
        url = self._url(entity_type)
        body = await asyncio.to_thread(self._request, "POST", url, json=data, timeout=timeout)
        if not isinstance(body, dict) or not isinstance(body.get(singular), dict):
            raise MalformedResponseError(f"POST {url}: expected an object with a '{singular}' entry")
        return body[singular]

    async def update(
        self, entity_type, entity_id: str, fields: Dict[str, Any], *, timeout: Optional[float] = None
    ) -> None:
        entity_type = EntityType(entity_type)
        await asyncio.to_thread(self._request, "PUT", self._url(entity_type, entity_id), json=fields, timeout=timeout)

    async def delete(self, entity_type, entity_id: str, *, timeout: Optional[float] = None) -> None:
        entity_type = EntityType(entity_type)
        await asyncio.to_thread(
            self._request, "DELETE", self._url(entity_type, entity_id), timeout=timeout, allow_not_found=True,
        )
