"""Project routes: create, list by owner, get, update, delete."""

import logging
from typing import Annotated, List

from fastapi import APIRouter, Query, Request, status

from gitstack.dependencies import BlobStoreDep, SessionDep
from gitstack.limiter import limiter
from gitstack.projects.models import ProjectCreate, ProjectResponse, ProjectUpdate
from gitstack.projects.service import (
    create_project as do_create_project,
    delete_project as do_delete_project,
    get_project as do_get_project,
    list_projects as do_list_projects,
    update_project as do_update_project,
)

router = APIRouter(prefix="/api/projects", tags=["projects"])
log = logging.getLogger(__name__)


@router.post("", response_model=ProjectResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
async def create_project(
    request: Request,
    body: ProjectCreate,
    session: SessionDep,
) -> ProjectResponse:
    project = await do_create_project(session, body)
    return ProjectResponse.model_validate(project)


@router.get("", response_model=List[ProjectResponse])
@limiter.limit("120/minute")
async def list_projects(
    request: Request,
    owner_id: Annotated[str, Query(alias="ownerId", min_length=1)],
    session: SessionDep,
) -> List[ProjectResponse]:
    """Projects owned by ownerId, newest first."""
    return [ProjectResponse.model_validate(p) for p in await do_list_projects(session, owner_id)]


@router.get("/{project_id}", response_model=ProjectResponse)
@limiter.limit("120/minute")
async def get_project(
    request: Request,
    project_id: str,
    session: SessionDep,
) -> ProjectResponse:
    return ProjectResponse.model_validate(await do_get_project(session, project_id))


@router.put("/{project_id}", response_model=ProjectResponse)
@limiter.limit("30/minute")
async def update_project(
    request: Request,
    project_id: str,
    body: ProjectUpdate,
    session: SessionDep,
) -> ProjectResponse:
    project = await do_update_project(session, project_id, body)
    log.info("update_project id=%s", project_id)
    return ProjectResponse.model_validate(project)


@router.delete("/{project_id}")
@limiter.limit("30/minute")
async def delete_project(
    request: Request,
    project_id: str,
    session: SessionDep,
    blobs: BlobStoreDep,
) -> dict:
    """Delete a project and everything it owns."""
    await do_delete_project(session, blobs, project_id)
    return {"id": project_id, "deleted": True}
