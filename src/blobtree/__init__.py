"""Hierarchical, path-addressed blob storage with interchangeable backends."""

from .constants import BLOBTREE_VERSION
from .errors import (
    BlobTreeError,
    ConfigError,
    EmptyOrAbsentError,
    InvalidKeyError,
    KeyConflictError,
    MediumError,
    NotFoundError,
    StorageError,
)
from .keys import normalize_key
from .storage import (
    AfterWrite,
    BlobHandle,
    FilesystemStorage,
    MemoryStorage,
    Storage,
    make_storage,
    open_storage,
)

__version__ = BLOBTREE_VERSION

__all__ = [
    "Storage",
    "BlobHandle",
    "AfterWrite",
    "FilesystemStorage",
    "MemoryStorage",
    "make_storage",
    "open_storage",
    "normalize_key",
    "BlobTreeError",
    "StorageError",
    "NotFoundError",
    "EmptyOrAbsentError",
    "KeyConflictError",
    "MediumError",
    "InvalidKeyError",
    "ConfigError",
    "__version__",
]
