"""Snapshot and SnapshotFile models, the in-memory FileRecord, and API schemas."""

from dataclasses import dataclass
from typing import List, Optional

from pydantic import Field
from sqlalchemy import BigInteger, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from gitstack.db.session import Base, new_id
from gitstack.schemas import CamelModel


class Snapshot(Base):
    """Immutable set of file records. Never updated; every change makes a new row."""

    __tablename__ = "snapshots"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    project_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("projects.id", ondelete="CASCADE"), index=True, nullable=False
    )
    user_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="SET NULL"), index=True, nullable=True
    )
    title: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    timestamp: Mapped[int] = mapped_column(BigInteger, index=True, nullable=False)  # ms since epoch
    file_count: Mapped[int] = mapped_column(Integer, nullable=False)
    external_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)


class SnapshotFile(Base):
    """One (path, hash, size, mode) record of a snapshot. Path is unique per snapshot."""

    __tablename__ = "snapshot_files"
    __table_args__ = (UniqueConstraint("snapshot_id", "path", name="uq_snapshot_files_path"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    snapshot_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("snapshots.id", ondelete="CASCADE"), index=True, nullable=False
    )
    path: Mapped[str] = mapped_column(String(1024), nullable=False)
    hash: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)  # SHA-256 hex
    size: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    mode: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)


@dataclass(frozen=True)
class FileRecord:
    """A file row detached from any snapshot; the unit the mutator works with."""

    path: str
    hash: Optional[str]
    size: Optional[int]
    mode: Optional[int]

    @classmethod
    def from_row(cls, row: SnapshotFile) -> "FileRecord":
        return cls(path=row.path, hash=row.hash, size=row.size, mode=row.mode)


# Pydantic schemas for API
class FileEntry(CamelModel):
    """A file in a bulk snapshot payload. content is optional inline base64."""

    path: str = Field(min_length=1)
    hash: str = Field(min_length=1)
    size: Optional[int] = None
    mode: Optional[int] = None
    content: Optional[str] = None


class SnapshotCreate(CamelModel):
    """Bulk snapshot payload as sent by the CLI."""

    project_id: str
    user_id: str
    timestamp: int
    files: List[FileEntry]
    title: Optional[str] = None
    description: Optional[str] = None
    external_id: Optional[str] = None
    branch: Optional[str] = None


class SnapshotFileResponse(CamelModel):
    path: str
    hash: Optional[str] = None
    size: Optional[int] = None
    mode: Optional[int] = None


class SnapshotResponse(CamelModel):
    id: str
    project_id: str
    user_id: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    timestamp: int
    file_count: int
    external_id: Optional[str] = None


class SnapshotDetail(SnapshotResponse):
    files: List[SnapshotFileResponse] = []


class SnapshotDeleted(CamelModel):
    id: str
    message: str = "Snapshot deleted successfully."
