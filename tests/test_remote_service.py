"""Tests for the HTTP remote persistence service client."""

from unittest.mock import MagicMock

import pytest
import requests

from taskflow.integrations.remote_service import (
    HttpRemoteService,
    MalformedResponseError,
    RemoteServiceError,
)
from taskflow.models.entity import EntityType


def _response(status_code=200, body=None, content=b"{}", json_error=None):
    response = MagicMock()
    response.status_code = status_code
    response.content = content
    if json_error is not None:
        response.json.side_effect = json_error
    else:
        response.json.return_value = body
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f"HTTP {status_code}")
    return response


@pytest.fixture
def http_session():
    return MagicMock()


@pytest.fixture
def service(http_session, test_user_id):
    return HttpRemoteService(test_user_id, base_url="http://api.test/", session=http_session)


class TestHttpRemoteService:
    """Test request shaping and error mapping."""

    @pytest.mark.asyncio
    async def test_list_all_returns_plural_list(self, service, http_session, test_user_id):
        http_session.request.return_value = _response(body={"tasks": [{"id": "t1"}]})

        items = await service.list_all(EntityType.TASK, test_user_id, timeout=3)

        assert items == [{"id": "t1"}]
        args, kwargs = http_session.request.call_args
        assert args == ("GET", "http://api.test/api/tasks")
        assert kwargs["headers"]["X-User-Id"] == test_user_id
        assert kwargs["timeout"] == 3

    @pytest.mark.asyncio
    async def test_list_all_wrong_shape_is_malformed(self, service, http_session, test_user_id):
        http_session.request.return_value = _response(body={"items": []})

        with pytest.raises(MalformedResponseError):
            await service.list_all(EntityType.PROJECT, test_user_id)

    @pytest.mark.asyncio
    async def test_non_json_body_is_malformed(self, service, http_session, test_user_id):
        http_session.request.return_value = _response(content=b"<html>", json_error=ValueError("no json"))

        with pytest.raises(MalformedResponseError):
            await service.list_all(EntityType.TAG, test_user_id)

    @pytest.mark.asyncio
    async def test_create_returns_singular_entity(self, service, http_session):
        http_session.request.return_value = _response(status_code=201, body={"project": {"id": "srv-1"}})

        created = await service.create(EntityType.PROJECT, {"id": "local", "name": "Work"})

        assert created == {"id": "srv-1"}
        args, kwargs = http_session.request.call_args
        assert args == ("POST", "http://api.test/api/projects")
        assert kwargs["json"] == {"id": "local", "name": "Work"}
        assert kwargs["timeout"] == service.default_timeout

    @pytest.mark.asyncio
    async def test_update_puts_fields(self, service, http_session):
        http_session.request.return_value = _response(body={"task": {"id": "t1"}})

        await service.update(EntityType.TASK, "t1", {"title": "x", "version": 2})

        args, kwargs = http_session.request.call_args
        assert args == ("PUT", "http://api.test/api/tasks/t1")
        assert kwargs["json"] == {"title": "x", "version": 2}

    @pytest.mark.asyncio
    async def test_http_error_raises_remote_service_error(self, service, http_session):
        http_session.request.return_value = _response(status_code=500)

        with pytest.raises(RemoteServiceError):
            await service.update(EntityType.TASK, "t1", {"title": "x"})

    @pytest.mark.asyncio
    async def test_transport_error_raises_remote_service_error(self, service, http_session):
        http_session.request.side_effect = requests.ConnectionError("refused")

        with pytest.raises(RemoteServiceError):
            await service.delete(EntityType.TASK, "t1")

    @pytest.mark.asyncio
    async def test_delete_tolerates_not_found(self, service, http_session):
        http_session.request.return_value = _response(status_code=404)

        assert await service.delete(EntityType.TAG, "gone") is None
        args, _ = http_session.request.call_args
        assert args == ("DELETE", "http://api.test/api/tags/gone")

    @pytest.mark.asyncio
    async def test_no_content_response(self, service, http_session):
        http_session.request.return_value = _response(status_code=204, content=b"")

        assert await service.delete(EntityType.TASK, "t1") is None
