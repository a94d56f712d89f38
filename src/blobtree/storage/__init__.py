"""Storage package: the contract and its backends."""

from .base import AfterWrite, BlobHandle, Storage
from .factory import make_storage, open_storage
from .fs import FilesystemStorage
from .memory import MemoryStorage

__all__ = [
    "AfterWrite",
    "BlobHandle",
    "Storage",
    "FilesystemStorage",
    "MemoryStorage",
    "make_storage",
    "open_storage",
]
