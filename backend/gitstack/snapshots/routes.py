"""Snapshot routes used by the CLI: bulk create, list, get, delete."""

import logging
from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, Query, Request, status

from gitstack.dependencies import get_snapshot_store
from gitstack.limiter import limiter
from gitstack.snapshots.models import (
    SnapshotCreate,
    SnapshotDeleted,
    SnapshotDetail,
    SnapshotFileResponse,
    SnapshotResponse,
)
from gitstack.snapshots.store import SnapshotStore

router = APIRouter(prefix="/api/snapshots", tags=["snapshots"])
log = logging.getLogger(__name__)

StoreDep = Annotated[SnapshotStore, Depends(get_snapshot_store)]


@router.post("", response_model=SnapshotResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("120/minute")
async def create_snapshot(
    request: Request,
    body: SnapshotCreate,
    store: StoreDep,
) -> SnapshotResponse:
    """Create a snapshot from a full file list (inline content optional)."""
    snapshot = await store.create(body)
    return SnapshotResponse.model_validate(snapshot)


@router.get("", response_model=List[SnapshotResponse])
@limiter.limit("120/minute")
async def list_snapshots(
    request: Request,
    store: StoreDep,
    project_id: Annotated[Optional[str], Query(alias="projectId")] = None,
    user_id: Annotated[Optional[str], Query(alias="userId")] = None,
) -> List[SnapshotResponse]:
    """Snapshots newest first, filtered by projectId and/or userId."""
    rows = await store.list(project_id=project_id, user_id=user_id)
    return [SnapshotResponse.model_validate(s) for s in rows]


@router.get("/{snapshot_id}", response_model=SnapshotDetail)
@limiter.limit("120/minute")
async def get_snapshot(
    request: Request,
    snapshot_id: str,
    store: StoreDep,
) -> SnapshotDetail:
    snapshot, files = await store.get(snapshot_id)
    detail = SnapshotDetail.model_validate(snapshot)
    detail.files = [SnapshotFileResponse.model_validate(f) for f in files]
    return detail


@router.delete("/{snapshot_id}", response_model=SnapshotDeleted)
@limiter.limit("60/minute")
async def delete_snapshot(
    request: Request,
    snapshot_id: str,
    store: StoreDep,
) -> SnapshotDeleted:
    """Delete a snapshot; heads pointing at it become null, unshared blobs are cleaned up."""
    await store.delete(snapshot_id)
    return SnapshotDeleted(id=snapshot_id)
