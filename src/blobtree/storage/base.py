"""Base protocol for path-addressed blob storage implementations."""

from typing import BinaryIO, Callable, Iterator, Optional, Protocol, Set, runtime_checkable

from ..constants import CHUNK_SIZE


class BlobHandle:
    """
    Handle to a finalized stored blob.

    Passed to ``after_write`` hooks once a streamed write is persisted.
    ``size()`` and ``open()`` go back to the medium, so they observe what was
    actually stored rather than what the caller sent.
    """

    def __init__(self, storage: "Storage", key: str):
        self.storage = storage
        self.key = key

    def size(self) -> int:
        """Persisted size in bytes."""
        return self.storage.size(self.key)

    def open(self) -> BinaryIO:
        """Open a readable stream over the persisted content."""
        return self.storage.get_reader(self.key)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(key={self.key!r})"


AfterWrite = Callable[[BlobHandle], None]


@runtime_checkable
class Storage(Protocol):
    """
    Protocol for path-addressed blob storage.

    Keys are absolute slash-delimited paths and are normalized by every
    implementation. Directories are never stored: a directory exists exactly
    when at least one blob lives below it. Listing an empty or absent
    directory is an error, never an empty result.

    All implementations must behave identically; ``blobtree.testing`` holds
    the conformance suite they are checked against.
    """

    def init(self) -> None:
        """
        One-time initialization after construction.

        Prepares the medium (root directory, container). Idempotent.
        """
        ...

    def exists(self, key: str) -> bool:
        """
        Check whether a blob is stored at key.

        Never raises for absence; directories are not blobs.
        """
        ...

    def get(self, key: str) -> bytes:
        """
        Read the full content of a blob.

        Raises:
            NotFoundError: If no blob is stored at key
        """
        ...

    def get_reader(self, key: str) -> BinaryIO:
        """
        Open a readable stream over a blob. The caller closes it.

        Raises:
            NotFoundError: If no blob is stored at key
        """
        ...

    def size(self, key: str) -> int:
        """
        Return the exact byte length of a blob.

        Raises:
            NotFoundError: If no blob is stored at key
        """
        ...

    def put(self, key: str, data: bytes) -> None:
        """
        Create or overwrite a blob. Ancestor directories come into existence.

        Returns only after the content is durably stored.
        """
        ...

    def put_reader(
        self,
        key: str,
        stream: BinaryIO,
        after_write: Optional[AfterWrite] = None,
    ) -> None:
        """
        Stream content into a blob, then run ``after_write``.

        The hook receives a :class:`BlobHandle` on the persisted blob and runs
        before this method returns. If the hook raises, the write is rolled
        back and the hook's exception propagates.
        """
        ...

    def remove(self, key: str) -> None:
        """
        Delete a blob and prune ancestors left without descendants.

        Raises:
            NotFoundError: If no blob is stored at key
        """
        ...

    def remove_all(self, prefix: str) -> None:
        """
        Delete every blob at or below prefix. Never fails for absence.
        """
        ...

    def list(self, key: str) -> Set[str]:
        """
        Return the immediate children of key (blobs and live directories).

        Raises:
            EmptyOrAbsentError: If key has no children, whether it was
                emptied, never created, or is a blob
        """
        ...


def iter_chunks(stream: BinaryIO, chunk_size: int = CHUNK_SIZE) -> Iterator[bytes]:
    """Drain a binary stream in chunks."""
    for chunk in iter(lambda: stream.read(chunk_size), b""):
        yield chunk
