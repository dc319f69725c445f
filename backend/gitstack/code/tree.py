"""Tree resolver: branch -> snapshot, and a directory view over a snapshot's flat paths."""

import base64
import logging
import mimetypes
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gitstack.blobs.keys import blob_key
from gitstack.blobs.store import BlobStore
from gitstack.code.models import BlobResponse, Branch, TreeEntry
from gitstack.code.paths import normalize_base_path
from gitstack.errors import BlobStoreError, NotFoundError
from gitstack.snapshots.models import FileRecord, Snapshot, SnapshotFile

log = logging.getLogger(__name__)


def guess_mime(path: str) -> str:
    """MIME type from the file name, octet-stream when unknown."""
    return mimetypes.guess_type(path)[0] or "application/octet-stream"


def tree_level(rows: Iterable[Tuple[str, Optional[int]]], base_path: str) -> List[TreeEntry]:
    """
    Direct children of base_path among (path, size) rows. Files directly under the
    prefix become file entries; deeper paths contribute their first segment as a dir.
    Each name appears once; the result is sorted by name.
    """
    prefix = f"{base_path}/" if base_path else ""
    seen = {}
    for path, size in rows:
        if not path.startswith(prefix):
            continue
        rel = path[len(prefix):]
        if not rel:
            continue
        name, sep, _ = rel.partition("/")
        if name in seen:
            continue
        if sep:
            seen[name] = TreeEntry(name=name, type="dir")
        else:
            seen[name] = TreeEntry(name=name, type="file", size=size)
    return [seen[name] for name in sorted(seen)]


class TreeResolver:
    """Read side of the engine. Holds a session and (for content reads) a blob store."""

    def __init__(self, session: AsyncSession, blobs: Optional[BlobStore] = None) -> None:
        self._session = session
        self._blobs = blobs

    async def latest_snapshot(self, project_id: str) -> Optional[Snapshot]:
        """Most recent snapshot of the project by timestamp, or None."""
        result = await self._session.execute(
            select(Snapshot)
            .where(Snapshot.project_id == project_id)
            .order_by(Snapshot.timestamp.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def resolve_snapshot(self, project_id: str, branch: Optional[str] = None) -> Optional[Snapshot]:
        """Branch head when the branch exists and points somewhere, else the latest snapshot."""
        if branch:
            result = await self._session.execute(
                select(Snapshot)
                .join(Branch, Branch.head_snapshot_id == Snapshot.id)
                .where(Branch.project_id == project_id, Branch.name == branch)
                .limit(1)
            )
            head = result.scalar_one_or_none()
            if head is not None:
                return head
        return await self.latest_snapshot(project_id)

    async def resolve_snapshot_id(self, project_id: str, branch: Optional[str] = None) -> Optional[str]:
        snapshot = await self.resolve_snapshot(project_id, branch)
        return snapshot.id if snapshot else None

    async def list_files(self, snapshot_id: str) -> List[FileRecord]:
        """All file records of a snapshot, ordered by path."""
        result = await self._session.execute(
            select(SnapshotFile).where(SnapshotFile.snapshot_id == snapshot_id).order_by(SnapshotFile.path)
        )
        return [FileRecord.from_row(row) for row in result.scalars().all()]

    async def list_tree(
        self, project_id: str, branch: Optional[str] = None, base_path: str = ""
    ) -> List[TreeEntry]:
        """Directory listing at base_path. A project without snapshots has an empty tree."""
        snapshot_id = await self.resolve_snapshot_id(project_id, branch)
        if not snapshot_id:
            return []
        base = normalize_base_path(base_path)
        stmt = select(SnapshotFile.path, SnapshotFile.size).where(SnapshotFile.snapshot_id == snapshot_id)
        if base:
            stmt = stmt.where(SnapshotFile.path.startswith(base + "/", autoescape=True))
        result = await self._session.execute(stmt.order_by(SnapshotFile.path))
        entries = tree_level(result.all(), base)
        log.debug("list_tree project=%s branch=%s path=%r entries=%d", project_id, branch, base, len(entries))
        return entries

    async def get_file(self, snapshot_id: str, path: str) -> Optional[FileRecord]:
        result = await self._session.execute(
            select(SnapshotFile)
            .where(SnapshotFile.snapshot_id == snapshot_id, SnapshotFile.path == path)
            .limit(1)
        )
        row = result.scalar_one_or_none()
        return FileRecord.from_row(row) if row else None

    async def get_blob(self, project_id: str, branch: Optional[str], path: str) -> BlobResponse:
        """
        File metadata plus base64 content. Missing snapshot or path raises NotFoundError;
        a blob store failure only blanks the content and sets message.
        """
        snapshot_id = await self.resolve_snapshot_id(project_id, branch)
        if not snapshot_id:
            raise NotFoundError("No snapshot for this branch/project")
        path = normalize_base_path(path)
        record = await self.get_file(snapshot_id, path)
        if record is None:
            raise NotFoundError(f"File not found: {path}")

        content: Optional[str] = None
        message: Optional[str] = None
        if self._blobs is None or not record.hash:
            message = "File content not found in storage."
        else:
            try:
                data = await self._blobs.download(blob_key(project_id, record.hash))
                content = base64.b64encode(data).decode("ascii")
            except BlobStoreError as e:
                log.warning("get_blob download failed project=%s path=%s: %s", project_id, path, e)
                message = f"Could not download file content: {e.reason}"
        return BlobResponse(
            path=record.path,
            hash=record.hash,
            size=record.size,
            mode=record.mode,
            content=content,
            mime=guess_mime(record.path),
            message=message,
        )
