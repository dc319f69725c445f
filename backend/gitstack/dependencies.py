"""FastAPI dependencies: build engine components from the request's session and app state."""

from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from gitstack.blobs.store import BlobStore
from gitstack.code.branches import BranchHeadAdvancer
from gitstack.code.mutator import SnapshotMutator
from gitstack.code.tree import TreeResolver
from gitstack.config import Settings
from gitstack.db.session import get_db
from gitstack.snapshots.store import SnapshotStore


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_blob_store(request: Request) -> BlobStore:
    return request.app.state.blob_store


SessionDep = Annotated[AsyncSession, Depends(get_db)]
SettingsDep = Annotated[Settings, Depends(get_app_settings)]
BlobStoreDep = Annotated[BlobStore, Depends(get_blob_store)]


def get_tree_resolver(session: SessionDep, blobs: BlobStoreDep) -> TreeResolver:
    return TreeResolver(session, blobs)


def get_branch_advancer(session: SessionDep, settings: SettingsDep) -> BranchHeadAdvancer:
    return BranchHeadAdvancer(session, default_branch=settings.default_branch)


def get_mutator(session: SessionDep, blobs: BlobStoreDep, settings: SettingsDep) -> SnapshotMutator:
    return SnapshotMutator(
        session, blobs, file_mode=settings.file_mode, default_branch=settings.default_branch
    )


def get_snapshot_store(session: SessionDep, blobs: BlobStoreDep, settings: SettingsDep) -> SnapshotStore:
    return SnapshotStore(session, blobs, default_file_mode=settings.file_mode)
