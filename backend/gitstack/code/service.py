"""README and contributor queries for the code view of a project."""

from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from gitstack.code.models import Contributor, ProjectReadme, ReadmeResponse, ReadmeUpdate
from gitstack.db.session import now_ms
from gitstack.snapshots.models import Snapshot
from gitstack.users.models import User


async def get_readme(session: AsyncSession, project_id: str, branch: str) -> ReadmeResponse:
    """Stored README for the branch; empty content when none was ever saved."""
    readme = await session.get(ProjectReadme, (project_id, branch))
    if readme is None:
        return ReadmeResponse()
    return ReadmeResponse.model_validate(readme)


async def update_readme(session: AsyncSession, project_id: str, payload: ReadmeUpdate) -> ReadmeResponse:
    """Insert or overwrite the README of (project, branch)."""
    readme: Optional[ProjectReadme] = await session.get(ProjectReadme, (project_id, payload.branch))
    if readme is None:
        readme = ProjectReadme(project_id=project_id, branch=payload.branch)
        session.add(readme)
    readme.content = payload.content
    readme.updated_at = now_ms()
    readme.updated_by = payload.user_id
    await session.commit()
    return ReadmeResponse.model_validate(readme)


async def list_contributors(session: AsyncSession, project_id: str) -> List[Contributor]:
    """Users who created snapshots in the project with their snapshot counts, most first."""
    commits = func.count(Snapshot.id).label("commits")
    result = await session.execute(
        select(User.id, User.name, User.email, commits)
        .join(Snapshot, Snapshot.user_id == User.id)
        .where(Snapshot.project_id == project_id)
        .group_by(User.id, User.name, User.email)
        .order_by(commits.desc(), User.email)
    )
    return [Contributor(id=r.id, name=r.name, email=r.email, commits=r.commits) for r in result.all()]
