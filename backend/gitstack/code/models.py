"""Branch, Tag and ProjectReadme models plus the schemas of the code endpoints."""

from typing import Literal, Optional

from pydantic import Field
from sqlalchemy import BigInteger, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from gitstack.db.session import Base, new_id, now_ms
from gitstack.schemas import CamelModel


class Branch(Base):
    """Named pointer to a project's head snapshot. head_snapshot_id is the only mutable field."""

    __tablename__ = "branches"
    __table_args__ = (UniqueConstraint("project_id", "name", name="uq_branches_project_name"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    project_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("projects.id", ondelete="CASCADE"), index=True, nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    # Weak reference: deleting the snapshot nulls the head
    head_snapshot_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("snapshots.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[int] = mapped_column(BigInteger, default=now_ms, nullable=False)
    updated_at: Mapped[int] = mapped_column(BigInteger, default=now_ms, nullable=False)


class Tag(Base):
    """Immutable (project, name) -> snapshot pointer."""

    __tablename__ = "tags"
    __table_args__ = (UniqueConstraint("project_id", "name", name="uq_tags_project_name"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    project_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("projects.id", ondelete="CASCADE"), index=True, nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    snapshot_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("snapshots.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[int] = mapped_column(BigInteger, default=now_ms, nullable=False)


class ProjectReadme(Base):
    """Free-form README text per project and branch, edited from the dashboard."""

    __tablename__ = "project_readmes"

    project_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("projects.id", ondelete="CASCADE"), primary_key=True
    )
    branch: Mapped[str] = mapped_column(String(255), primary_key=True)
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    updated_at: Mapped[int] = mapped_column(BigInteger, default=now_ms, nullable=False)
    updated_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)


# Pydantic schemas for API
class TreeEntry(CamelModel):
    name: str
    type: Literal["file", "dir"]
    size: Optional[int] = None


class BlobResponse(CamelModel):
    path: str
    hash: Optional[str] = None
    size: Optional[int] = None
    mode: Optional[int] = None
    content: Optional[str] = None  # base64, None when the blob could not be fetched
    mime: str
    message: Optional[str] = None


class FileWrite(CamelModel):
    """Create or update a file. content is base64."""

    branch: str = Field(min_length=1)
    path: str = Field(min_length=1)
    content: str
    user_id: str = Field(min_length=1)
    expected_head: Optional[str] = None


class PathChange(CamelModel):
    """Create a folder, or delete a file or folder."""

    branch: str = Field(min_length=1)
    path: str = Field(min_length=1)
    user_id: str = Field(min_length=1)
    expected_head: Optional[str] = None


class NewFile(CamelModel):
    path: str
    hash: str
    size: int
    mode: int


class NewFolder(CamelModel):
    path: str
    type: Literal["dir"] = "dir"


class FileCreated(CamelModel):
    snapshot_id: str
    new_file: NewFile


class FolderCreated(CamelModel):
    snapshot_id: str
    new_folder: NewFolder


class PathDeleted(CamelModel):
    snapshot_id: str
    deleted_path: str


class BranchResponse(CamelModel):
    id: str
    name: str
    head_snapshot_id: Optional[str] = None


class BranchCreate(CamelModel):
    name: str = Field(min_length=1, max_length=255)
    from_branch: Optional[str] = None


class TagResponse(CamelModel):
    id: str
    name: str
    snapshot_id: str


class ReadmeResponse(CamelModel):
    content: str = ""
    updated_at: Optional[int] = None
    updated_by: Optional[str] = None


class ReadmeUpdate(CamelModel):
    content: str
    branch: str = "main"
    user_id: Optional[str] = None


class Contributor(CamelModel):
    id: str
    name: Optional[str] = None
    email: str
    commits: int
