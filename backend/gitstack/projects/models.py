"""Project SQLAlchemy model and Pydantic schemas."""

from typing import Literal, Optional

from sqlalchemy import BigInteger, CheckConstraint, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from gitstack.db.session import Base, new_id, now_ms
from gitstack.schemas import CamelModel

Visibility = Literal["public", "private"]


class Project(Base):
    """A project owns its snapshots, branches, tags and readmes."""

    __tablename__ = "projects"
    __table_args__ = (
        CheckConstraint("visibility IN ('public', 'private')", name="ck_projects_visibility"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    visibility: Mapped[str] = mapped_column(String(16), nullable=False)
    created_at: Mapped[int] = mapped_column(BigInteger, default=now_ms, nullable=False)
    updated_at: Mapped[int] = mapped_column(BigInteger, default=now_ms, nullable=False)
    owner_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False
    )
    # Denormalized stats
    stats_snapshots: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    stats_deployments: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    stats_last_deployed: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)


class ProjectCreate(CamelModel):
    name: str
    owner_id: str
    visibility: Visibility
    description: Optional[str] = None


class ProjectUpdate(CamelModel):
    """Partial update; omitted fields are left unchanged. description may be cleared with null."""

    name: Optional[str] = None
    description: Optional[str] = None
    visibility: Optional[Visibility] = None


class ProjectResponse(CamelModel):
    id: str
    name: str
    description: Optional[str] = None
    visibility: str
    created_at: int
    updated_at: int
    owner_id: str
    stats_snapshots: int
    stats_deployments: int
    stats_last_deployed: Optional[int] = None
