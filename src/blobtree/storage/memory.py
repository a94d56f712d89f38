"""In-memory blob storage implementation.

Useful for tests and ephemeral caches. Directory existence is tracked
incrementally: every directory key carries a count of the blobs below it, and
a directory disappears the moment its count drops to zero.
"""

import io
import logging
import threading
from typing import BinaryIO, Dict, Optional, Set

from ..constants import ROOT_KEY
from ..errors import EmptyOrAbsentError, InvalidKeyError, KeyConflictError, NotFoundError
from ..keys import ancestors, is_root, is_under, normalize_key, parent_key
from .base import AfterWrite, BlobHandle

logger = logging.getLogger(__name__)


class MemoryStorage:
    """
    Dict-backed store.

    State:
        _blobs: key -> content
        _counts: directory key -> number of descendant blobs
        _children: directory key -> immediate child keys (blobs and directories)
    """

    def __init__(self):
        self._blobs: Dict[str, bytes] = {}
        self._counts: Dict[str, int] = {}
        self._children: Dict[str, Set[str]] = {}
        self._lock = threading.RLock()

    def __repr__(self) -> str:
        return f"MemoryStorage(blobs={len(self._blobs)})"

    def init(self) -> None:
        """Nothing to set up; a new instance is already an empty tree."""
        logger.info("Memory storage ready")

    # ---- bookkeeping --------------------------------------------------------

    def _add(self, key: str, data: bytes) -> None:
        if key in self._blobs:
            self._blobs[key] = data
            return

        self._blobs[key] = data
        child = key
        for directory in ancestors(key) + [ROOT_KEY]:
            self._counts[directory] = self._counts.get(directory, 0) + 1
            self._children.setdefault(directory, set()).add(child)
            child = directory

    def _discard(self, key: str) -> None:
        del self._blobs[key]
        self._children[parent_key(key)].discard(key)
        for directory in ancestors(key) + [ROOT_KEY]:
            self._counts[directory] -= 1
            if self._counts[directory] == 0:
                del self._counts[directory]
                del self._children[directory]
                if not is_root(directory):
                    self._children[parent_key(directory)].discard(directory)
                    logger.debug("Directory %s vanished", directory)

    def _check_conflicts(self, key: str) -> None:
        for ancestor in ancestors(key):
            if ancestor in self._blobs:
                raise KeyConflictError(key, f"ancestor {ancestor} is a blob")
        if key in self._counts:
            raise KeyConflictError(key, "it is a directory")

    def _write(self, key: str, data: bytes, after_write: Optional[AfterWrite]) -> None:
        key = normalize_key(key)
        if is_root(key):
            raise InvalidKeyError(key, "cannot store a blob at the root")

        with self._lock:
            self._check_conflicts(key)
            previous = self._blobs.get(key)
            self._add(key, data)
            if after_write is None:
                return
            try:
                after_write(BlobHandle(self, key))
            except Exception:
                if previous is not None:
                    self._blobs[key] = previous
                elif key in self._blobs:
                    self._discard(key)
                raise

    # ---- contract -----------------------------------------------------------

    def exists(self, key: str) -> bool:
        """Check if a blob is stored at a key."""
        return normalize_key(key) in self._blobs

    def get(self, key: str) -> bytes:
        """Return the stored bytes."""
        key = normalize_key(key)
        try:
            return self._blobs[key]
        except KeyError:
            raise NotFoundError(key)

    def get_reader(self, key: str) -> BinaryIO:
        """Return an in-memory stream over the blob."""
        return io.BytesIO(self.get(key))

    def size(self, key: str) -> int:
        """Return the blob length."""
        return len(self.get(key))

    def put(self, key: str, data: bytes) -> None:
        """Store bytes at a key."""
        self._write(key, bytes(data), None)

    def put_reader(self, key: str, stream: BinaryIO, after_write: Optional[AfterWrite] = None) -> None:
        """
        Drain a stream and store it at a key.

        Args:
            key: Blob key
            stream: Binary stream, read to EOF
            after_write: Called with the blob handle under the store lock;
                if it raises, the previous state of the key is restored
        """
        self._write(key, stream.read(), after_write)

    def remove(self, key: str) -> None:
        """Delete one blob; directories it leaves empty vanish with it."""
        key = normalize_key(key)
        with self._lock:
            if key not in self._blobs:
                raise NotFoundError(key)
            self._discard(key)

    def remove_all(self, prefix: str) -> None:
        """Delete the blob at ``prefix`` and everything below it."""
        prefix = normalize_key(prefix)
        with self._lock:
            doomed = [k for k in self._blobs if is_under(prefix, k)]
            for key in doomed:
                self._discard(key)
        logger.debug("Removed %d blobs under %s", len(doomed), prefix)

    def list(self, key: str) -> Set[str]:
        """
        List the immediate children of a directory.

        Raises:
            EmptyOrAbsentError: If the directory has no children
        """
        key = normalize_key(key)
        with self._lock:
            children = self._children.get(key)
            if not children:
                raise EmptyOrAbsentError(key)
            return set(children)
