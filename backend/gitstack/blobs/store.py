"""Blob store: upload, download and remove content by opaque key."""

import logging
import os
import re
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable, List

from gitstack.errors import BlobStoreError

log = logging.getLogger(__name__)

# Key segments are project ids and hex digests; nothing else is ever written.
_SAFE_KEY_SEGMENT = re.compile(r"^[a-zA-Z0-9_.\-]+$")


class BlobStore(ABC):
    """Content-addressed object storage. Keys are derived by the caller."""

    @abstractmethod
    async def upload(
        self,
        key: str,
        data: bytes,
        content_type: str = "application/octet-stream",
        upsert: bool = True,
    ) -> None:
        """Store data at key. Raises BlobStoreError on failure."""

    @abstractmethod
    async def download(self, key: str) -> bytes:
        """Return the bytes at key. Raises BlobStoreError if missing or unreadable."""

    @abstractmethod
    async def remove(self, keys: Iterable[str]) -> List[str]:
        """Remove keys; missing keys are ignored. Returns the keys that could not be removed."""


class LocalBlobStore(BlobStore):
    """Blob store on a local (or mounted) filesystem: base / bucket / project / hash."""

    def __init__(self, base_path: Path, bucket: str = "gitstack-files") -> None:
        if not _SAFE_KEY_SEGMENT.match(bucket) or bucket in (".", ".."):
            raise ValueError(f"Invalid bucket name: {bucket!r}")
        self.root = Path(base_path) / bucket

    def resolve_key(self, key: str) -> Path:
        """Map a key to a file under root. Rejects traversal and unsafe segments."""
        parts = key.strip("/").split("/")
        if not parts or parts == [""]:
            raise BlobStoreError(key, "empty key")
        resolved = self.root
        for part in parts:
            if part in ("", ".", "..") or not _SAFE_KEY_SEGMENT.match(part):
                raise BlobStoreError(key, f"unsafe key segment {part!r}")
            resolved = resolved / part
        return resolved

    async def upload(
        self,
        key: str,
        data: bytes,
        content_type: str = "application/octet-stream",
        upsert: bool = True,
    ) -> None:
        target = self.resolve_key(key)
        if target.exists() and not upsert:
            raise BlobStoreError(key, "already exists")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            # Write to a temp file and rename so readers never see a partial blob
            fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=".upload-")
            try:
                with os.fdopen(fd, "wb") as fh:
                    fh.write(data)
                os.replace(tmp_name, target)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise BlobStoreError(key, str(e)) from e
        log.debug("upload key=%s size=%d content_type=%s", key, len(data), content_type)

    async def download(self, key: str) -> bytes:
        target = self.resolve_key(key)
        try:
            return target.read_bytes()
        except FileNotFoundError as e:
            raise BlobStoreError(key, "object not found") from e
        except OSError as e:
            raise BlobStoreError(key, str(e)) from e

    async def remove(self, keys: Iterable[str]) -> List[str]:
        failed: List[str] = []
        for key in keys:
            try:
                self.resolve_key(key).unlink(missing_ok=True)
            except (BlobStoreError, OSError) as e:
                log.warning("remove failed key=%s: %s", key, e)
                failed.append(key)
        return failed
