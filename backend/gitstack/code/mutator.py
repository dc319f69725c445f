"""Snapshot mutator: one change applied to the current file set becomes a new snapshot.

Every operation follows the same order: resolve the branch's current snapshot,
compute the next file set, upload new content, insert the snapshot and its files,
advance the branch head, commit. Content upload happens before any relational
write; the relational writes are one transaction.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from gitstack.blobs.keys import EMPTY_HASH, blob_key, compute_hash
from gitstack.blobs.store import BlobStore
from gitstack.code.branches import BranchHeadAdvancer
from gitstack.code.paths import folder_prefix, normalize_path, parent_paths, placeholder_path
from gitstack.code.tree import TreeResolver, guess_mime
from gitstack.db.session import now_ms
from gitstack.errors import BlobStoreError, NotFoundError, StorageTransactionError, ValidationError
from gitstack.projects.models import Project
from gitstack.snapshots.models import FileRecord, Snapshot
from gitstack.snapshots.store import SnapshotStore
from gitstack.users.models import User

log = logging.getLogger(__name__)

DEFAULT_FILE_MODE = 644


def replace_path(files: Sequence[FileRecord], record: FileRecord) -> List[FileRecord]:
    """Next file set with record written at its path (any previous row at that path dropped)."""
    return [f for f in files if f.path != record.path] + [record]


def remove_path(files: Sequence[FileRecord], path: str) -> List[FileRecord]:
    """Next file set without the file at exactly path."""
    return [f for f in files if f.path != path]


def remove_prefix(files: Sequence[FileRecord], prefix: str) -> List[FileRecord]:
    """Next file set without every file under prefix. prefix must end with '/'."""
    return [f for f in files if not f.path.startswith(prefix)]


def find_kind_clash(files: Sequence[FileRecord], path: str) -> Optional[str]:
    """Existing path that would make path both a file and a folder, or None."""
    existing = {f.path for f in files}
    for parent in parent_paths(path):
        if parent in existing:
            return parent
    prefix = folder_prefix(path)
    return next((p for p in sorted(existing) if p.startswith(prefix)), None)


@dataclass(frozen=True)
class MutationResult:
    snapshot: Snapshot
    path: str
    record: Optional[FileRecord] = None


class SnapshotMutator:
    """Write side of the engine, built from an explicit session and blob store."""

    def __init__(
        self,
        session: AsyncSession,
        blobs: BlobStore,
        file_mode: int = DEFAULT_FILE_MODE,
        default_branch: str = "main",
    ) -> None:
        self._session = session
        self._blobs = blobs
        self._file_mode = file_mode
        self._resolver = TreeResolver(session, blobs)
        self._store = SnapshotStore(session, blobs, default_file_mode=file_mode)
        self._branches = BranchHeadAdvancer(session, default_branch=default_branch)

    async def create_or_update_file(
        self,
        project_id: str,
        branch: str,
        path: str,
        content: bytes,
        user_id: str,
        expected_head: Optional[str] = None,
    ) -> MutationResult:
        """Write content at path. Upload failure aborts before anything is written to the database."""
        path = normalize_path(path)
        parent, files = await self._current(project_id, branch, user_id)
        clash = find_kind_clash(files, path)
        if clash is not None:
            raise ValidationError(f"Cannot write file {path}: {clash} already exists")
        record = FileRecord(path=path, hash=compute_hash(content), size=len(content), mode=self._file_mode)
        existed = any(f.path == path for f in files)
        next_files = replace_path(files, record)

        await self._upload(project_id, record, content, best_effort=False)

        verb = "Update" if existed else "Create"
        snapshot = await self._persist(
            project_id, branch, user_id, parent, next_files, f"{verb} file: {path}", expected_head
        )
        log.info(
            "create_file project=%s branch=%s path=%s hash=%s size=%d snapshot=%s",
            project_id, branch, path, record.hash, record.size, snapshot.id,
        )
        return MutationResult(snapshot=snapshot, path=path, record=record)

    async def create_folder(
        self,
        project_id: str,
        branch: str,
        path: str,
        user_id: str,
        expected_head: Optional[str] = None,
    ) -> MutationResult:
        """Make folder visible through an empty .gitkeep. Placeholder upload is best-effort."""
        folder = normalize_path(path)
        parent, files = await self._current(project_id, branch, user_id)
        record = FileRecord(path=placeholder_path(folder), hash=EMPTY_HASH, size=0, mode=self._file_mode)
        clash = find_kind_clash(files, record.path)
        if clash is not None:
            raise ValidationError(f"Cannot create folder {folder}: {clash} already exists")
        next_files = replace_path(files, record)

        await self._upload(project_id, record, b"", best_effort=True)

        snapshot = await self._persist(
            project_id, branch, user_id, parent, next_files, f"Create folder: {folder}", expected_head
        )
        log.info("create_folder project=%s branch=%s path=%s snapshot=%s", project_id, branch, folder, snapshot.id)
        return MutationResult(snapshot=snapshot, path=folder, record=record)

    async def delete_file(
        self,
        project_id: str,
        branch: str,
        path: str,
        user_id: str,
        expected_head: Optional[str] = None,
    ) -> MutationResult:
        """Remove the file at exactly path. NotFoundError (and no new snapshot) if it is absent."""
        path = normalize_path(path)
        parent, files = await self._current(project_id, branch, user_id, require_snapshot=True)
        next_files = remove_path(files, path)
        if len(next_files) == len(files):
            raise NotFoundError(f"File not found at path: {path}")
        snapshot = await self._persist(
            project_id, branch, user_id, parent, next_files, f"Delete file: {path}", expected_head
        )
        log.info("delete_file project=%s branch=%s path=%s snapshot=%s", project_id, branch, path, snapshot.id)
        return MutationResult(snapshot=snapshot, path=path)

    async def delete_folder(
        self,
        project_id: str,
        branch: str,
        path: str,
        user_id: str,
        expected_head: Optional[str] = None,
    ) -> MutationResult:
        """Remove every file under path/ (placeholders included). NotFoundError if nothing matched."""
        folder = normalize_path(path)
        parent, files = await self._current(project_id, branch, user_id, require_snapshot=True)
        next_files = remove_prefix(files, folder_prefix(folder))
        if len(next_files) == len(files):
            raise NotFoundError(f"Folder not found or already empty at path: {folder}")
        snapshot = await self._persist(
            project_id, branch, user_id, parent, next_files, f"Delete folder: {folder}", expected_head
        )
        log.info(
            "delete_folder project=%s branch=%s path=%s removed=%d snapshot=%s",
            project_id, branch, folder, len(files) - len(next_files), snapshot.id,
        )
        return MutationResult(snapshot=snapshot, path=folder)

    async def _current(
        self, project_id: str, branch: str, user_id: str, require_snapshot: bool = False
    ) -> Tuple[Optional[Snapshot], List[FileRecord]]:
        if await self._session.get(Project, project_id) is None:
            raise NotFoundError(f"Project not found: {project_id}")
        if await self._session.get(User, user_id) is None:
            raise NotFoundError(f"User not found: {user_id}")
        parent = await self._resolver.resolve_snapshot(project_id, branch)
        if parent is None:
            if require_snapshot:
                raise NotFoundError("Branch or project has no snapshots.")
            return None, []
        files = await self._resolver.list_files(parent.id)
        log.debug("current project=%s branch=%s snapshot=%s files=%d", project_id, branch, parent.id, len(files))
        return parent, files

    async def _upload(self, project_id: str, record: FileRecord, content: bytes, best_effort: bool) -> None:
        key = blob_key(project_id, record.hash)
        try:
            await self._blobs.upload(key, content, content_type=guess_mime(record.path), upsert=True)
        except BlobStoreError as e:
            if not best_effort:
                log.error("upload failed project=%s path=%s: %s", project_id, record.path, e)
                raise
            log.warning("upload failed project=%s path=%s, continuing without content: %s", project_id, record.path, e)

    async def _persist(
        self,
        project_id: str,
        branch: str,
        user_id: str,
        parent: Optional[Snapshot],
        files: Sequence[FileRecord],
        title: str,
        expected_head: Optional[str],
    ) -> Snapshot:
        """Insert the snapshot, advance the head and commit, or roll back all of it."""
        timestamp = now_ms()
        if parent is not None and timestamp <= parent.timestamp:
            timestamp = parent.timestamp + 1
        try:
            snapshot = await self._store.insert(project_id, user_id, files, title=title, timestamp=timestamp)
            await self._branches.advance_head(project_id, branch, snapshot.id, expected_head=expected_head)
            await self._session.commit()
        except SQLAlchemyError as e:
            await self._session.rollback()
            log.exception("persist failed project=%s branch=%s title=%r", project_id, branch, title)
            raise StorageTransactionError("Could not save snapshot") from e
        except Exception:
            await self._session.rollback()
            raise
        return snapshot
