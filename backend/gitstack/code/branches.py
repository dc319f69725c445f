"""Branch head advancer: lazy main branch, explicit branches, head repointing."""

import logging
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from gitstack.code.models import Branch, Tag
from gitstack.code.tree import TreeResolver
from gitstack.db.session import now_ms
from gitstack.errors import ConflictError, NotFoundError

log = logging.getLogger(__name__)

DEFAULT_BRANCH = "main"


class BranchHeadAdvancer:
    """Owns every write to the branches table. Never commits; callers own the transaction."""

    def __init__(self, session: AsyncSession, default_branch: str = DEFAULT_BRANCH) -> None:
        self._session = session
        self._default_branch = default_branch

    async def get_branch(self, project_id: str, name: str) -> Optional[Branch]:
        result = await self._session.execute(
            select(Branch).where(Branch.project_id == project_id, Branch.name == name)
        )
        return result.scalar_one_or_none()

    async def list_branches(self, project_id: str) -> List[Branch]:
        result = await self._session.execute(
            select(Branch).where(Branch.project_id == project_id).order_by(Branch.name)
        )
        return list(result.scalars().all())

    async def ensure_branch(self, project_id: str) -> List[Branch]:
        """Return the project's branches, creating the default one at the latest snapshot if none exist."""
        branches = await self.list_branches(project_id)
        if branches:
            return branches
        latest = await TreeResolver(self._session).latest_snapshot(project_id)
        now = now_ms()
        branch = Branch(
            project_id=project_id,
            name=self._default_branch,
            head_snapshot_id=latest.id if latest else None,
            created_at=now,
            updated_at=now,
        )
        self._session.add(branch)
        await self._session.flush()
        log.info("ensure_branch project=%s created %s head=%s", project_id, branch.name, branch.head_snapshot_id)
        return [branch]

    async def create_branch(self, project_id: str, name: str, from_branch: Optional[str] = None) -> Branch:
        """Create a branch at the resolved head of from_branch (latest snapshot when omitted)."""
        if await self.get_branch(project_id, name) is not None:
            raise ConflictError(f"Branch already exists: {name}")
        if from_branch and await self.get_branch(project_id, from_branch) is None:
            raise NotFoundError(f"Branch not found: {from_branch}")
        head = await TreeResolver(self._session).resolve_snapshot_id(project_id, from_branch)
        now = now_ms()
        branch = Branch(project_id=project_id, name=name, head_snapshot_id=head, created_at=now, updated_at=now)
        self._session.add(branch)
        await self._session.flush()
        log.info("create_branch project=%s name=%s head=%s", project_id, name, head)
        return branch

    async def advance_head(
        self,
        project_id: str,
        branch: str,
        snapshot_id: str,
        expected_head: Optional[str] = None,
    ) -> None:
        """
        Point branch at snapshot_id. Without expected_head the last writer wins.
        With expected_head the update only applies if the head is still that snapshot,
        otherwise ConflictError. A branch that does not exist yet is created.
        """
        now = now_ms()
        stmt = (
            update(Branch)
            .where(Branch.project_id == project_id, Branch.name == branch)
            .values(head_snapshot_id=snapshot_id, updated_at=now)
        )
        if expected_head is not None:
            stmt = stmt.where(Branch.head_snapshot_id == expected_head)
        result = await self._session.execute(stmt)
        if result.rowcount:
            log.debug("advance_head project=%s branch=%s head=%s", project_id, branch, snapshot_id)
            return
        if expected_head is not None:
            raise ConflictError(f"Branch {branch} has moved; expected head {expected_head}")
        self._session.add(
            Branch(project_id=project_id, name=branch, head_snapshot_id=snapshot_id, created_at=now, updated_at=now)
        )
        await self._session.flush()
        log.info("advance_head project=%s created branch %s at %s", project_id, branch, snapshot_id)

    async def list_tags(self, project_id: str) -> List[Tag]:
        result = await self._session.execute(
            select(Tag).where(Tag.project_id == project_id).order_by(Tag.created_at.desc())
        )
        return list(result.scalars().all())
