"""Custom exceptions for blobtree.

Every backend raises the same typed exceptions so callers can swap backends
without changing their error handling.
"""

from typing import Optional


class BlobTreeError(RuntimeError):
    """Base class for all blobtree errors."""
    pass


# Storage contract errors
class StorageError(BlobTreeError):
    """Base class for errors raised by storage operations."""
    pass


class NotFoundError(StorageError):
    """No blob is stored at the key."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Blob not found: {key}")


class EmptyOrAbsentError(StorageError):
    """Listing found no children under the key.

    Empty and absent directories are deliberately not distinguished.
    """

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Nothing to list under {key} (empty or absent)")


class KeyConflictError(StorageError):
    """Write would make a key both a blob and a directory."""

    def __init__(self, key: str, conflict: str):
        self.key = key
        self.conflict = conflict
        super().__init__(
            f"Cannot write blob at {key}: {conflict} "
            f"(a key is either a blob or a directory, never both)"
        )


class MediumError(StorageError):
    """The backing medium failed (disk, network, service)."""

    def __init__(self, operation: str, key: str, cause: Optional[BaseException] = None):
        self.operation = operation
        self.key = key
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"{operation} failed for {key}{detail}")


# Input errors
class InvalidKeyError(BlobTreeError, ValueError):
    """Key cannot be normalized into a valid storage path."""

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Invalid key {key!r}: {reason}")


# Configuration errors
class ConfigError(BlobTreeError):
    """Storage configuration could not be loaded or is invalid."""
    pass
