"""Error types raised by the snapshot engine and mapped to HTTP statuses in main."""


class GitstackError(Exception):
    """Base exception for all gitstack errors."""

    status_code = 500


class ValidationError(GitstackError):
    """A required field is missing or malformed. No storage was touched."""

    status_code = 400


class NotFoundError(GitstackError):
    """Project, branch, snapshot or file does not exist."""

    status_code = 404


class ConflictError(GitstackError):
    """Duplicate unique key or a branch head that moved under an optimistic check."""

    status_code = 409


class StorageTransactionError(GitstackError):
    """A relational write failed; the transaction was rolled back."""

    status_code = 500


class BlobStoreError(GitstackError):
    """Upload, download or removal against the blob store failed."""

    status_code = 500

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Blob store error for {key}: {reason}")
