"""Filesystem blob storage implementation.

This is the reference backend: keys map one-to-one onto files below a root
directory and directories on disk mirror the implicit directory tree.

Key Features:
- Atomic writes: content is staged in a temp file, fsynced, then promoted
  with ``os.replace`` so readers never see partial blobs
- Implicit directories: ancestors are created on write and pruned bottom-up
  on delete, so an empty directory never survives on disk
- Cross-process tree lock via portalocker around mkdir/promote/prune
- ``after_write`` hooks run inside the critical section and roll the write
  back if they raise

Layout:
    <root>/.blobtree.lock        tree lock (hidden from listings)
    <root>/.blobtree-staging/    temp files awaiting promotion (hidden)
    <root>/<key path>            blobs
"""

from __future__ import annotations
import contextlib
import errno
import io
import logging
import os
import shutil
import tempfile
import threading
import time
import uuid
from pathlib import Path
from typing import BinaryIO, Iterator, Optional, Set, Union

try:
    import portalocker
except ImportError:
    raise ImportError("portalocker is required for FilesystemStorage. Install with: pip install portalocker")

from ..constants import (
    DEFAULT_LOCK_TIMEOUT,
    LOCK_FILE,
    RESERVED_PREFIX,
    STAGING_DIR,
    STALE_STAGING_HOURS,
)
from ..errors import (
    EmptyOrAbsentError,
    InvalidKeyError,
    KeyConflictError,
    MediumError,
    NotFoundError,
)
from ..keys import ancestors, is_root, join_key, key_parts, normalize_key
from .base import AfterWrite, BlobHandle, iter_chunks

logger = logging.getLogger(__name__)

# A path that cannot exist on this filesystem addresses nothing
_ABSENT_ERRNOS = (errno.ENOENT, errno.ENOTDIR, errno.EISDIR, errno.ENAMETOOLONG)

BACKUP_PREFIX = f"{RESERVED_PREFIX}-backup-"


def _is_absent(error: OSError) -> bool:
    return error.errno in _ABSENT_ERRNOS


def _fsync_dir(path: Path) -> None:
    """Fsync a directory so entry updates (rename, unlink) are durable.

    Best effort: Windows and some filesystems don't support directory fsync.
    """
    try:
        flags = os.O_RDONLY
        if hasattr(os, "O_DIRECTORY"):
            flags |= os.O_DIRECTORY
        fd = os.open(str(path), flags)
        try:
            os.fsync(fd)
        finally:
            os.close(fd)
    except OSError:
        logger.debug("Directory fsync not supported for %s", path)


class FileBlobHandle(BlobHandle):
    """Blob handle that also exposes the file backing the blob."""

    def __init__(self, storage: "FilesystemStorage", key: str, path: Path):
        super().__init__(storage, key)
        self.path = path

    def size(self) -> int:
        return self.path.stat().st_size


class FilesystemStorage:
    """
    Filesystem store rooted at a directory.

    Thread Safety:
        Mutations that touch the directory tree (create ancestors, promote,
        prune) run under a process-local lock plus a portalocker file lock,
        so concurrent writers and deleters in sibling directories cannot
        prune a directory out from under each other.
    """

    def __init__(
        self,
        root: Union[str, Path],
        lock_timeout: float = DEFAULT_LOCK_TIMEOUT,
        fsync: bool = True,
    ):
        """
        Initialize filesystem store. Call :meth:`init` before use.

        Args:
            root: Root directory of the tree
            lock_timeout: Seconds to wait for the tree lock
            fsync: Fsync files and directories on write (disable for scratch use)
        """
        self.root = Path(root)
        self.staging_dir = self.root / STAGING_DIR
        self.lock_path = self.root / LOCK_FILE
        self.lock_timeout = lock_timeout
        self.fsync = fsync
        self._mutex = threading.RLock()
        self._depth = 0

    def __repr__(self) -> str:
        return f"FilesystemStorage(root={str(self.root)!r})"

    def init(self) -> None:
        """Create the root, staging directory and lock file, and clear crash leftovers."""
        try:
            self.staging_dir.mkdir(parents=True, exist_ok=True)
            self.lock_path.touch(exist_ok=True)
        except OSError as e:
            raise MediumError("init", str(self.root), e) from e
        self.clear_stale_staging()
        logger.info("Filesystem storage ready at %s", self.root)

    def clear_stale_staging(self, keep_recent_hours: float = STALE_STAGING_HOURS) -> int:
        """Remove staging entries left behind by crashed writers.

        Args:
            keep_recent_hours: Keep staged temp files modified within this many hours

        Returns:
            Number of entries removed

        Note:
            Best effort. Rollback backups only exist while the tree lock is
            held, so any backup seen here is removed regardless of age. Staged
            temp files are written outside the lock and may belong to a live
            writer in another process, so only old ones are removed.
        """
        cutoff = time.time() - (keep_recent_hours * 3600)
        removed = 0

        with self._tree_lock():
            try:
                entries = list(os.scandir(self.staging_dir))
            except OSError as e:
                logger.warning("Could not scan staging area %s: %s", self.staging_dir, e)
                return 0

            for entry in entries:
                try:
                    if not entry.name.startswith(BACKUP_PREFIX) and entry.stat().st_mtime >= cutoff:
                        continue
                    os.unlink(entry.path)
                    removed += 1
                    logger.debug("Removed stale staging entry %s", entry.path)
                except OSError as e:
                    logger.warning("Could not remove stale staging entry %s: %s", entry.path, e)

        return removed

    # ---- helpers ------------------------------------------------------------

    def _path_for(self, key: str) -> Path:
        return self.root.joinpath(*key_parts(key))

    @contextlib.contextmanager
    def _tree_lock(self) -> Iterator[None]:
        """Hold the tree lock. Re-entrant within a thread (hooks may write)."""
        with self._mutex:
            if self._depth:
                self._depth += 1
                try:
                    yield
                finally:
                    self._depth -= 1
                return

            try:
                lock = portalocker.Lock(str(self.lock_path), "a", timeout=self.lock_timeout)
                lock.acquire()
            except (portalocker.LockException, OSError) as e:
                raise MediumError("lock", str(self.lock_path), e) from e

            self._depth = 1
            try:
                yield
            finally:
                self._depth = 0
                lock.release()

    def _prune(self, directory: Path) -> None:
        """Remove empty directories from ``directory`` upward, stopping at root."""
        current = directory
        while current != self.root and self.root in current.parents:
            try:
                current.rmdir()
                logger.debug("Pruned empty directory %s", current)
            except FileNotFoundError:
                pass
            except OSError as e:
                if e.errno in (errno.ENOTEMPTY, errno.EEXIST, errno.ENOTDIR):
                    break
                raise
            current = current.parent

    def _check_conflicts(self, key: str, dest: Path) -> None:
        for ancestor in reversed(ancestors(key)):
            path = self._path_for(ancestor)
            if path.exists() and not path.is_dir():
                raise KeyConflictError(key, f"ancestor {ancestor} is a blob")
        if dest.is_dir():
            raise KeyConflictError(key, "it is a directory")

    def _stage(self, key: str, stream: BinaryIO) -> Path:
        """Drain ``stream`` into a durable temp file inside the staging area."""
        self.staging_dir.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            prefix=f"{RESERVED_PREFIX}-",
            dir=str(self.staging_dir),
            delete=False,
        ) as tmp:
            tmppath = Path(tmp.name)
            try:
                for chunk in iter_chunks(stream):
                    tmp.write(chunk)
                tmp.flush()
                if self.fsync:
                    os.fsync(tmp.fileno())
            except Exception:
                tmp.close()
                with contextlib.suppress(OSError):
                    tmppath.unlink()
                raise
        logger.debug("Staged %s at %s", key, tmppath)
        return tmppath

    def _backup(self, dest: Path) -> Optional[Path]:
        """Keep the current content of ``dest`` reachable for rollback."""
        if not dest.is_file():
            return None
        backup = self.staging_dir / f"{BACKUP_PREFIX}{uuid.uuid4().hex}"
        try:
            os.link(dest, backup)
        except OSError:
            shutil.copy2(dest, backup)
        return backup

    def _rollback(self, key: str, dest: Path, backup: Optional[Path]) -> None:
        try:
            if backup is not None:
                os.replace(str(backup), str(dest))
                logger.debug("Restored previous content of %s", key)
            else:
                dest.unlink()
                self._prune(dest.parent)
                logger.debug("Rolled back new blob %s", key)
        except OSError as e:
            logger.error("Rollback of %s failed: %s", key, e)

    def _write(self, operation: str, key: str, stream: BinaryIO, after_write: Optional[AfterWrite]) -> None:
        key = normalize_key(key)
        if is_root(key):
            raise InvalidKeyError(key, "cannot store a blob at the root")
        dest = self._path_for(key)

        try:
            tmppath = self._stage(key, stream)
        except OSError as e:
            raise MediumError(operation, key, e) from e

        try:
            with self._tree_lock():
                backup = None
                try:
                    try:
                        self._check_conflicts(key, dest)
                        dest.parent.mkdir(parents=True, exist_ok=True)
                        if after_write is not None:
                            backup = self._backup(dest)
                        os.replace(str(tmppath), str(dest))
                        if self.fsync:
                            _fsync_dir(dest.parent)
                    except OSError as e:
                        with contextlib.suppress(OSError):
                            self._prune(dest.parent)
                        raise MediumError(operation, key, e) from e
                    logger.debug("Promoted %s", dest)

                    if after_write is None:
                        return
                    try:
                        after_write(FileBlobHandle(self, key, dest))
                    except Exception:
                        self._rollback(key, dest, backup)
                        backup = None
                        raise
                finally:
                    # Rollback consumes the backup; every other exit drops it
                    if backup is not None:
                        with contextlib.suppress(OSError):
                            backup.unlink()
        finally:
            with contextlib.suppress(OSError):
                tmppath.unlink()

    # ---- contract -----------------------------------------------------------

    def exists(self, key: str) -> bool:
        """
        Check if a blob is stored at a key.

        Args:
            key: Key to check

        Returns:
            True only for blobs; directories and absent keys are False
        """
        key = normalize_key(key)
        if is_root(key):
            return False
        try:
            return self._path_for(key).is_file()
        except OSError as e:
            if _is_absent(e):
                return False
            raise MediumError("exists", key, e) from e

    def get(self, key: str) -> bytes:
        """Read a whole blob into memory."""
        with self.get_reader(key) as f:
            try:
                return f.read()
            except OSError as e:
                raise MediumError("get", normalize_key(key), e) from e

    def get_reader(self, key: str) -> BinaryIO:
        """
        Open a blob for streaming reads.

        Args:
            key: Blob key

        Returns:
            Binary file object; the caller closes it
        """
        key = normalize_key(key)
        if is_root(key):
            raise NotFoundError(key)
        try:
            return open(self._path_for(key), "rb")
        except OSError as e:
            if _is_absent(e):
                raise NotFoundError(key)
            raise MediumError("get", key, e) from e

    def size(self, key: str) -> int:
        """Return the blob's length in bytes."""
        key = normalize_key(key)
        if is_root(key):
            raise NotFoundError(key)
        path = self._path_for(key)
        try:
            if not path.is_file():
                raise NotFoundError(key)
            return path.stat().st_size
        except OSError as e:
            if _is_absent(e):
                raise NotFoundError(key)
            raise MediumError("size", key, e) from e

    def put(self, key: str, data: bytes) -> None:
        """Store bytes at a key, creating ancestors and replacing any previous blob."""
        self._write("put", key, io.BytesIO(data), None)

    def put_reader(self, key: str, stream: BinaryIO, after_write: Optional[AfterWrite] = None) -> None:
        """
        Store a stream at a key.

        Args:
            key: Blob key
            stream: Binary stream, drained to EOF before the blob becomes visible
            after_write: Called with the stored blob's handle inside the
                critical section; if it raises, the write is rolled back
        """
        self._write("put_reader", key, stream, after_write)

    def remove(self, key: str) -> None:
        """Delete one blob and prune ancestors it leaves empty."""
        key = normalize_key(key)
        if is_root(key):
            raise NotFoundError(key)
        path = self._path_for(key)

        with self._tree_lock():
            try:
                if not path.is_file():
                    raise NotFoundError(key)
                path.unlink()
                self._prune(path.parent)
                if self.fsync:
                    _fsync_dir(path.parent if path.parent.exists() else self.root)
            except OSError as e:
                if _is_absent(e):
                    raise NotFoundError(key)
                raise MediumError("remove", key, e) from e
        logger.debug("Removed %s", key)

    def remove_all(self, prefix: str) -> None:
        """Delete the blob at ``prefix`` and everything below it. Absence is not an error."""
        prefix = normalize_key(prefix)

        with self._tree_lock():
            try:
                if is_root(prefix):
                    for entry in os.scandir(self.root):
                        if entry.name.startswith(RESERVED_PREFIX):
                            continue
                        self._delete_tree(Path(entry.path))
                    return

                path = self._path_for(prefix)
                if not (path.exists() or path.is_symlink()):
                    return
                self._delete_tree(path)
                self._prune(path.parent)
            except OSError as e:
                if _is_absent(e):
                    return
                raise MediumError("remove_all", prefix, e) from e
        logger.debug("Removed everything under %s", prefix)

    @staticmethod
    def _delete_tree(path: Path) -> None:
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        else:
            path.unlink()

    def list(self, key: str) -> Set[str]:
        """
        List the immediate children of a directory.

        Args:
            key: Directory key

        Returns:
            Full keys of child blobs and live directories

        Raises:
            EmptyOrAbsentError: If the directory has no children
        """
        key = normalize_key(key)
        path = self._path_for(key)
        try:
            with os.scandir(path) as entries:
                names = [e.name for e in entries]
        except OSError as e:
            if _is_absent(e):
                raise EmptyOrAbsentError(key)
            raise MediumError("list", key, e) from e

        if is_root(key):
            names = [n for n in names if not n.startswith(RESERVED_PREFIX)]
        if not names:
            raise EmptyOrAbsentError(key)
        return {join_key(key, name) for name in names}
