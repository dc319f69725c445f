"""Snapshot store: create, list, fetch and delete snapshots with their file manifests."""

import base64
import binascii
import logging
from typing import Iterable, List, Optional, Sequence, Set, Tuple

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from gitstack.blobs.keys import blob_key, compute_hash
from gitstack.blobs.store import BlobStore
from gitstack.code.branches import BranchHeadAdvancer
from gitstack.code.models import Branch, Tag
from gitstack.code.paths import normalize_path, parent_paths
from gitstack.code.tree import guess_mime
from gitstack.db.session import now_ms
from gitstack.errors import NotFoundError, StorageTransactionError, ValidationError
from gitstack.projects.models import Project
from gitstack.snapshots.models import FileRecord, Snapshot, SnapshotCreate, SnapshotFile
from gitstack.users.models import User

log = logging.getLogger(__name__)


def _decode_inline_content(path: str, content: str) -> bytes:
    try:
        return base64.b64decode(content, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError(f"Content for {path} is not valid base64") from e


class SnapshotStore:
    """Persistence for snapshots. insert() is shared with the mutator and never commits."""

    def __init__(self, session: AsyncSession, blobs: BlobStore, default_file_mode: int = 644) -> None:
        self._session = session
        self._blobs = blobs
        self._default_file_mode = default_file_mode

    async def insert(
        self,
        project_id: str,
        user_id: Optional[str],
        files: Sequence[FileRecord],
        title: Optional[str] = None,
        description: Optional[str] = None,
        timestamp: Optional[int] = None,
        external_id: Optional[str] = None,
    ) -> Snapshot:
        """Insert a snapshot row, its file rows and bump the project's stats. Caller commits."""
        snapshot = Snapshot(
            project_id=project_id,
            user_id=user_id,
            title=title,
            description=description,
            timestamp=timestamp if timestamp is not None else now_ms(),
            file_count=len(files),
            external_id=external_id,
        )
        self._session.add(snapshot)
        await self._session.flush()
        self._session.add_all(
            SnapshotFile(snapshot_id=snapshot.id, path=f.path, hash=f.hash, size=f.size, mode=f.mode)
            for f in files
        )
        await self._session.execute(
            update(Project)
            .where(Project.id == project_id)
            .values(stats_snapshots=Project.stats_snapshots + 1, updated_at=now_ms())
        )
        await self._session.flush()
        return snapshot

    async def create(self, payload: SnapshotCreate) -> Snapshot:
        """
        Bulk create from a full file list. Inline content is checked against its declared
        hash and uploaded before any row is written; rows go in one transaction.
        """
        seen: Set[str] = set()
        records: List[FileRecord] = []
        uploads: List[Tuple[str, bytes, str]] = []
        for entry in payload.files:
            path = normalize_path(entry.path)
            if path in seen:
                raise ValidationError(f"Duplicate path in snapshot: {path}")
            seen.add(path)
            size = entry.size
            if entry.content is not None:
                data = _decode_inline_content(path, entry.content)
                if compute_hash(data) != entry.hash:
                    raise ValidationError(f"Content of {path} does not match hash {entry.hash}")
                if size is None:
                    size = len(data)
                uploads.append((blob_key(payload.project_id, entry.hash), data, guess_mime(path)))
            mode = entry.mode if entry.mode is not None else self._default_file_mode
            records.append(FileRecord(path=path, hash=entry.hash, size=size, mode=mode))

        for record in records:
            clash = next((p for p in parent_paths(record.path) if p in seen), None)
            if clash is not None:
                raise ValidationError(f"Path {record.path} is under {clash}, which is a file")

        if await self._session.get(Project, payload.project_id) is None:
            raise NotFoundError(f"Project not found: {payload.project_id}")
        if await self._session.get(User, payload.user_id) is None:
            raise NotFoundError(f"User not found: {payload.user_id}")

        for key, data, content_type in uploads:
            await self._blobs.upload(key, data, content_type=content_type, upsert=True)

        try:
            snapshot = await self.insert(
                payload.project_id,
                payload.user_id,
                records,
                title=payload.title,
                description=payload.description,
                timestamp=payload.timestamp,
                external_id=payload.external_id,
            )
            if payload.branch:
                await BranchHeadAdvancer(self._session).advance_head(
                    payload.project_id, payload.branch, snapshot.id
                )
            await self._session.commit()
        except SQLAlchemyError as e:
            await self._session.rollback()
            log.exception("create_snapshot failed project=%s", payload.project_id)
            raise StorageTransactionError("Could not create snapshot") from e
        log.info(
            "create_snapshot project=%s snapshot=%s files=%d uploads=%d",
            payload.project_id, snapshot.id, len(records), len(uploads),
        )
        return snapshot

    async def list(self, project_id: Optional[str] = None, user_id: Optional[str] = None) -> List[Snapshot]:
        """Snapshots newest first, optionally filtered by project and/or user."""
        stmt = select(Snapshot)
        if project_id:
            stmt = stmt.where(Snapshot.project_id == project_id)
        if user_id:
            stmt = stmt.where(Snapshot.user_id == user_id)
        result = await self._session.execute(stmt.order_by(Snapshot.timestamp.desc()))
        return list(result.scalars().all())

    async def get(self, snapshot_id: str) -> Tuple[Snapshot, List[SnapshotFile]]:
        """Snapshot and its file rows, or NotFoundError."""
        snapshot = await self._session.get(Snapshot, snapshot_id)
        if snapshot is None:
            raise NotFoundError(f"Snapshot not found: {snapshot_id}")
        result = await self._session.execute(
            select(SnapshotFile).where(SnapshotFile.snapshot_id == snapshot_id).order_by(SnapshotFile.path)
        )
        return snapshot, list(result.scalars().all())

    async def delete(self, snapshot_id: str) -> None:
        """
        Delete a snapshot and its files. Branch heads pointing at it become null.
        Afterwards, blobs no other snapshot of the project references are removed best-effort.
        """
        snapshot, files = await self.get(snapshot_id)
        project_id = snapshot.project_id
        hashes = {f.hash for f in files if f.hash}
        try:
            await self._session.execute(
                update(Branch).where(Branch.head_snapshot_id == snapshot_id).values(head_snapshot_id=None)
            )
            await self._session.execute(delete(Tag).where(Tag.snapshot_id == snapshot_id))
            await self._session.execute(delete(SnapshotFile).where(SnapshotFile.snapshot_id == snapshot_id))
            await self._session.execute(delete(Snapshot).where(Snapshot.id == snapshot_id))
            await self._session.commit()
        except SQLAlchemyError as e:
            await self._session.rollback()
            log.exception("delete_snapshot failed snapshot=%s", snapshot_id)
            raise StorageTransactionError("Could not delete snapshot") from e
        log.info("delete_snapshot snapshot=%s project=%s files=%d", snapshot_id, project_id, len(files))
        await self.remove_unreferenced_blobs(project_id, hashes)

    async def remove_unreferenced_blobs(self, project_id: str, hashes: Iterable[str]) -> List[str]:
        """Remove {project}/{hash} for hashes no remaining snapshot uses. Failures are logged only."""
        candidates = set(hashes)
        if not candidates:
            return []
        result = await self._session.execute(
            select(SnapshotFile.hash)
            .join(Snapshot, Snapshot.id == SnapshotFile.snapshot_id)
            .where(Snapshot.project_id == project_id, SnapshotFile.hash.in_(candidates))
            .distinct()
        )
        still_used = set(result.scalars().all())
        keys = [blob_key(project_id, h) for h in sorted(candidates - still_used)]
        if not keys:
            return []
        failed = await self._blobs.remove(keys)
        if failed:
            log.warning("blob cleanup left %d of %d blobs for project=%s", len(failed), len(keys), project_id)
        return keys
