"""Content hashing and blob key derivation. One key scheme everywhere: {project_id}/{hash}."""

import hashlib

EMPTY_HASH = hashlib.sha256(b"").hexdigest()


def compute_hash(body: bytes) -> str:
    """SHA-256 hex digest of file body."""
    return hashlib.sha256(body).hexdigest()


def blob_key(project_id: str, content_hash: str) -> str:
    """Storage key for a blob. Identical content in one project shares a key."""
    return f"{project_id}/{content_hash}"
