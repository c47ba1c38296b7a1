"""FastAPI reference persistence service for taskflow.

Exposes fetch-all/create/update/delete for tasks, projects and tags. Create is an
upsert by id, so a client retrying a create never duplicates an entity, and
deleting a missing id succeeds.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Type
from fastapi import APIRouter, Body, Depends, FastAPI, Header, HTTPException, Response
from pydantic import ValidationError
from sqlalchemy.orm import Session

from taskflow.models.entity import SyncedEntity
from taskflow.models.task import Task
from taskflow.models.project import Project
from taskflow.models.tag import Tag
from taskflow.database.database import get_db, init_db
from taskflow.database.repository import EntityRepository, TaskRepository, ProjectRepository, TagRepository

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


# Initialize FastAPI app
app = FastAPI(
    title="taskflow API",
    description="Reference persistence service for taskflow multi-device sync",
    version="0.1.0",
    lifespan=lifespan,
)


def get_current_user_id(x_user_id: str = Header(default="", alias="X-User-Id")) -> str:
    """Identify the caller from the X-User-Id header."""
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return user_id


def build_entity_router(
    plural: str,
    singular: str,
    model: Type[SyncedEntity],
    repository_cls: Type[EntityRepository],
) -> APIRouter:
    """Build the CRUD routes for one entity collection under /api/{plural}."""
    router = APIRouter(prefix=f"/api/{plural}", tags=[plural])

    @router.get("")
    async def list_entities(
        user_id: str = Depends(get_current_user_id),
        db: Session = Depends(get_db),
    ) -> Dict[str, Any]:
        entities = repository_cls(db).get_all(user_id)
        return {plural: [e.to_wire() for e in entities]}

    @router.post("", status_code=201)
    async def create_entity(
        payload: Dict[str, Any] = Body(...),
        user_id: str = Depends(get_current_user_id),
        db: Session = Depends(get_db),
    ) -> Dict[str, Any]:
        try:
            entity = model.model_validate({**payload, "user_id": user_id})
        except ValidationError as e:
            raise HTTPException(status_code=422, detail=f"Invalid {singular}: {e.error_count()} validation errors")
        try:
            saved = repository_cls(db).upsert(entity)
        except ValueError as e:
            raise HTTPException(status_code=409, detail=str(e))
        return {singular: saved.to_wire()}

    @router.put("/{entity_id}")
    async def update_entity(
        entity_id: str,
        fields: Dict[str, Any] = Body(...),
        user_id: str = Depends(get_current_user_id),
        db: Session = Depends(get_db),
    ) -> Dict[str, Any]:
        try:
            updated = repository_cls(db).update_fields(user_id, entity_id, fields)
        except ValidationError as e:
            raise HTTPException(status_code=422, detail=f"Invalid {singular}: {e.error_count()} validation errors")
        except ValueError:
            raise HTTPException(status_code=404, detail=f"{singular.capitalize()} not found")
        return {singular: updated.to_wire()}

    @router.delete("/{entity_id}", status_code=204)
    async def delete_entity(
        entity_id: str,
        user_id: str = Depends(get_current_user_id),
        db: Session = Depends(get_db),
    ) -> Response:
        if not repository_cls(db).delete(user_id, entity_id):
            logger.debug(f"Delete of missing {singular} {entity_id} for {user_id}")
        return Response(status_code=204)

    return router


app.include_router(build_entity_router("tasks", "task", Task, TaskRepository))
app.include_router(build_entity_router("projects", "project", Project, ProjectRepository))
app.include_router(build_entity_router("tags", "tag", Tag, TagRepository))


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy", "version": "0.1.0"}
