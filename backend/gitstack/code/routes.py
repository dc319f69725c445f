"""Code routes of a project: branches, tags, tree, blob, file/folder changes, readme, contributors."""

import base64
import binascii
import logging
from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, Request, status

from gitstack.code.branches import BranchHeadAdvancer
from gitstack.code.models import (
    BlobResponse,
    BranchCreate,
    BranchResponse,
    Contributor,
    FileCreated,
    FileWrite,
    FolderCreated,
    NewFile,
    NewFolder,
    PathChange,
    PathDeleted,
    ReadmeResponse,
    ReadmeUpdate,
    TagResponse,
    TreeEntry,
)
from gitstack.code.mutator import SnapshotMutator
from gitstack.code.service import get_readme, list_contributors, update_readme
from gitstack.code.tree import TreeResolver
from gitstack.dependencies import SessionDep, get_branch_advancer, get_mutator, get_tree_resolver
from gitstack.errors import ValidationError
from gitstack.limiter import limiter
from gitstack.projects.service import get_project

router = APIRouter(prefix="/api/projects", tags=["code"])
log = logging.getLogger(__name__)

ResolverDep = Annotated[TreeResolver, Depends(get_tree_resolver)]
MutatorDep = Annotated[SnapshotMutator, Depends(get_mutator)]
BranchesDep = Annotated[BranchHeadAdvancer, Depends(get_branch_advancer)]


def _decode_content(content: str) -> bytes:
    """Decode base64 body content; anything else is a client error."""
    try:
        return base64.b64decode(content, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError("content must be base64") from e


@router.get("/{project_id}/branches", response_model=List[BranchResponse])
@limiter.limit("120/minute")
async def list_branches(
    request: Request,
    project_id: str,
    session: SessionDep,
    branches: BranchesDep,
) -> List[BranchResponse]:
    """List branches; creates 'main' at the latest snapshot when the project has none."""
    await get_project(session, project_id)
    rows = await branches.ensure_branch(project_id)
    await session.commit()
    return [BranchResponse.model_validate(b) for b in rows]


@router.post("/{project_id}/branches", response_model=BranchResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("60/minute")
async def create_branch(
    request: Request,
    project_id: str,
    body: BranchCreate,
    session: SessionDep,
    branches: BranchesDep,
) -> BranchResponse:
    """Create a branch at the head of from_branch (latest snapshot when omitted)."""
    await get_project(session, project_id)
    branch = await branches.create_branch(project_id, body.name, body.from_branch)
    await session.commit()
    return BranchResponse.model_validate(branch)


@router.get("/{project_id}/tags", response_model=List[TagResponse])
@limiter.limit("120/minute")
async def list_tags(
    request: Request,
    project_id: str,
    branches: BranchesDep,
) -> List[TagResponse]:
    return [TagResponse.model_validate(t) for t in await branches.list_tags(project_id)]


@router.get("/{project_id}/tree", response_model=List[TreeEntry], response_model_exclude_none=True)
@limiter.limit("300/minute")
async def get_tree(
    request: Request,
    project_id: str,
    resolver: ResolverDep,
    branch: Optional[str] = None,
    path: str = "",
) -> List[TreeEntry]:
    """Direct children of path in the branch's head snapshot. Empty list when there is no history."""
    return await resolver.list_tree(project_id, branch, path)


@router.get("/{project_id}/blob", response_model=BlobResponse)
@limiter.limit("300/minute")
async def get_blob(
    request: Request,
    project_id: str,
    path: str,
    resolver: ResolverDep,
    branch: Optional[str] = None,
) -> BlobResponse:
    """File metadata and base64 content. content is null with a message if storage failed."""
    return await resolver.get_blob(project_id, branch, path)


@router.post("/{project_id}/files", response_model=FileCreated, status_code=status.HTTP_201_CREATED)
@limiter.limit("600/minute")
async def create_file(
    request: Request,
    project_id: str,
    body: FileWrite,
    mutator: MutatorDep,
) -> FileCreated:
    """Create or overwrite a file; answers with the new snapshot id and the file record."""
    content = _decode_content(body.content)
    result = await mutator.create_or_update_file(
        project_id, body.branch, body.path, content, body.user_id, expected_head=body.expected_head
    )
    record = result.record
    return FileCreated(
        snapshot_id=result.snapshot.id,
        new_file=NewFile(path=record.path, hash=record.hash, size=record.size, mode=record.mode),
    )


@router.delete("/{project_id}/files", response_model=PathDeleted)
@limiter.limit("600/minute")
async def delete_file(
    request: Request,
    project_id: str,
    body: PathChange,
    mutator: MutatorDep,
) -> PathDeleted:
    result = await mutator.delete_file(
        project_id, body.branch, body.path, body.user_id, expected_head=body.expected_head
    )
    return PathDeleted(snapshot_id=result.snapshot.id, deleted_path=result.path)


@router.post("/{project_id}/folders", response_model=FolderCreated, status_code=status.HTTP_201_CREATED)
@limiter.limit("600/minute")
async def create_folder(
    request: Request,
    project_id: str,
    body: PathChange,
    mutator: MutatorDep,
) -> FolderCreated:
    result = await mutator.create_folder(
        project_id, body.branch, body.path, body.user_id, expected_head=body.expected_head
    )
    return FolderCreated(snapshot_id=result.snapshot.id, new_folder=NewFolder(path=result.path))


@router.delete("/{project_id}/folders", response_model=PathDeleted)
@limiter.limit("600/minute")
async def delete_folder(
    request: Request,
    project_id: str,
    body: PathChange,
    mutator: MutatorDep,
) -> PathDeleted:
    """Delete everything under path/."""
    result = await mutator.delete_folder(
        project_id, body.branch, body.path, body.user_id, expected_head=body.expected_head
    )
    return PathDeleted(snapshot_id=result.snapshot.id, deleted_path=result.path)


@router.get("/{project_id}/readme", response_model=ReadmeResponse)
@limiter.limit("120/minute")
async def read_readme(
    request: Request,
    project_id: str,
    session: SessionDep,
    branch: str = "main",
) -> ReadmeResponse:
    return await get_readme(session, project_id, branch)


@router.put("/{project_id}/readme", response_model=ReadmeResponse)
@limiter.limit("60/minute")
async def write_readme(
    request: Request,
    project_id: str,
    body: ReadmeUpdate,
    session: SessionDep,
) -> ReadmeResponse:
    await get_project(session, project_id)
    readme = await update_readme(session, project_id, body)
    log.info("update_readme project=%s branch=%s by=%s", project_id, body.branch, body.user_id)
    return readme


@router.get("/{project_id}/contributors", response_model=List[Contributor])
@limiter.limit("120/minute")
async def contributors(
    request: Request,
    project_id: str,
    session: SessionDep,
) -> List[Contributor]:
    return await list_contributors(session, project_id)
