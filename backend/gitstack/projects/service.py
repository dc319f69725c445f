"""Project service: CRUD and cascading delete."""

import logging
from typing import List

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from gitstack.blobs.keys import blob_key
from gitstack.blobs.store import BlobStore
from gitstack.code.models import Branch, ProjectReadme, Tag
from gitstack.db.session import now_ms
from gitstack.errors import NotFoundError, StorageTransactionError, ValidationError
from gitstack.projects.models import Project, ProjectCreate, ProjectUpdate
from gitstack.snapshots.models import Snapshot, SnapshotFile
from gitstack.users.models import User

log = logging.getLogger(__name__)

_REQUIRED_FIELDS = ("name", "visibility")


async def create_project(session: AsyncSession, payload: ProjectCreate) -> Project:
    if await session.get(User, payload.owner_id) is None:
        raise NotFoundError(f"Owner not found: {payload.owner_id}")
    now = now_ms()
    project = Project(
        name=payload.name,
        description=payload.description,
        visibility=payload.visibility,
        owner_id=payload.owner_id,
        created_at=now,
        updated_at=now,
    )
    session.add(project)
    await session.commit()
    log.info("create_project id=%s owner=%s", project.id, project.owner_id)
    return project


async def list_projects(session: AsyncSession, owner_id: str) -> List[Project]:
    """Projects of one owner, newest first."""
    result = await session.execute(
        select(Project).where(Project.owner_id == owner_id).order_by(Project.created_at.desc())
    )
    return list(result.scalars().all())


async def get_project(session: AsyncSession, project_id: str) -> Project:
    project = await session.get(Project, project_id)
    if project is None:
        raise NotFoundError(f"Project not found: {project_id}")
    return project


async def update_project(session: AsyncSession, project_id: str, payload: ProjectUpdate) -> Project:
    project = await get_project(session, project_id)
    for field, value in payload.model_dump(exclude_unset=True).items():
        if value is None and field in _REQUIRED_FIELDS:
            raise ValidationError(f"{field} cannot be null")
        setattr(project, field, value)
    project.updated_at = now_ms()
    await session.commit()
    return project


async def delete_project(session: AsyncSession, blobs: BlobStore, project_id: str) -> None:
    """Delete the project with its snapshots, files, branches, tags and readmes, then its blobs."""
    await get_project(session, project_id)
    snapshot_ids = select(Snapshot.id).where(Snapshot.project_id == project_id)
    result = await session.execute(
        select(SnapshotFile.hash).where(SnapshotFile.snapshot_id.in_(snapshot_ids)).distinct()
    )
    hashes = [h for h in result.scalars().all() if h]
    try:
        await session.execute(delete(Branch).where(Branch.project_id == project_id))
        await session.execute(delete(Tag).where(Tag.project_id == project_id))
        await session.execute(delete(ProjectReadme).where(ProjectReadme.project_id == project_id))
        await session.execute(
            delete(SnapshotFile)
            .where(SnapshotFile.snapshot_id.in_(snapshot_ids))
            .execution_options(synchronize_session=False)
        )
        await session.execute(delete(Snapshot).where(Snapshot.project_id == project_id))
        await session.execute(delete(Project).where(Project.id == project_id))
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        log.exception("delete_project failed id=%s", project_id)
        raise StorageTransactionError("Could not delete project") from e
    failed = await blobs.remove(blob_key(project_id, h) for h in hashes)
    if failed:
        log.warning("delete_project id=%s left %d blobs behind", project_id, len(failed))
    log.info("delete_project id=%s blobs=%d", project_id, len(hashes))
