"""Azure blob storage implementation.

Azure has no directories, only flat blob names. Directory existence is
therefore computed on demand: a directory exists while some blob name starts
with ``<dir>/``, and it vanishes by itself when the last such blob is deleted,
so there is nothing to prune.
"""

import contextlib
import io
import logging
import tempfile
from typing import Any, BinaryIO, Iterator, Optional, Set

try:
    from azure.core.exceptions import AzureError, ResourceExistsError, ResourceNotFoundError
    from azure.storage.blob import BlobServiceClient
except ImportError:
    raise ImportError(
        "azure-storage-blob required for Azure blob storage. "
        "Install with: pip install azure-storage-blob"
    )

from ..constants import SPOOL_MAX_SIZE
from ..errors import EmptyOrAbsentError, InvalidKeyError, KeyConflictError, MediumError, NotFoundError
from ..keys import ancestors, is_root, join_key, normalize_key
from .base import AfterWrite, BlobHandle, iter_chunks

logger = logging.getLogger(__name__)


class AzureBlobStorage:
    """
    Azure Blob Storage implementation.

    Key ``/a/b`` is stored as blob ``<prefix>/a/b`` in the container.
    """

    def __init__(
        self,
        connection_string: Optional[str],
        container: str,
        prefix: str = "",
        client: Optional[Any] = None,
    ):
        """
        Initialize Azure blob store. Call :meth:`init` before use.

        Args:
            connection_string: Azure Storage connection string
            container: Container name
            prefix: Optional blob name prefix all keys live under
            client: Pre-built BlobServiceClient (connection_string is then ignored)
        """
        if client is None:
            if not connection_string:
                raise ValueError("connection_string required when no client is given")
            client = BlobServiceClient.from_connection_string(connection_string)

        self.client = client
        self.container = container
        self.prefix = prefix.strip("/") if prefix else ""
        self.container_client = client.get_container_client(container)

    def __repr__(self) -> str:
        return f"AzureBlobStorage(container={self.container!r}, prefix={self.prefix!r})"

    def init(self) -> None:
        """Ensure the container exists."""
        with self._medium("init", self.container):
            if not self.container_client.exists():
                with contextlib.suppress(ResourceExistsError):
                    self.container_client.create_container()
        logger.info("Azure storage ready: container=%s prefix=%s", self.container, self.prefix or "(none)")

    # ---- helpers ------------------------------------------------------------

    def _blob_name(self, key: str) -> str:
        name = key.lstrip("/")
        return f"{self.prefix}/{name}" if self.prefix else name

    def _dir_prefix(self, key: str) -> str:
        """Blob name prefix shared by everything below ``key``."""
        if is_root(key):
            return f"{self.prefix}/" if self.prefix else ""
        return self._blob_name(key) + "/"

    @contextlib.contextmanager
    def _medium(self, operation: str, key: str) -> Iterator[None]:
        """Translate SDK errors: missing blob -> NotFoundError, anything else -> MediumError."""
        try:
            yield
        except ResourceNotFoundError:
            raise NotFoundError(key)
        except AzureError as e:
            raise MediumError(operation, key, e) from e

    def _blob_exists(self, name: str) -> bool:
        return self.container_client.get_blob_client(name).exists()

    def _has_descendants(self, key: str) -> bool:
        blobs = self.container_client.list_blobs(
            name_starts_with=self._dir_prefix(key),
            results_per_page=1,
        )
        return next(iter(blobs), None) is not None

    def _check_conflicts(self, key: str) -> None:
        for ancestor in reversed(ancestors(key)):
            if self._blob_exists(self._blob_name(ancestor)):
                raise KeyConflictError(key, f"ancestor {ancestor} is a blob")
        if self._has_descendants(key):
            raise KeyConflictError(key, "it is a directory")

    def _spool(self, stream: BinaryIO) -> BinaryIO:
        spool = tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_SIZE)
        for chunk in iter_chunks(stream):
            spool.write(chunk)
        spool.seek(0)
        return spool

    def _snapshot(self, name: str) -> Optional[BinaryIO]:
        """Capture the current content of a blob so a failed hook can restore it."""
        try:
            downloader = self.container_client.download_blob(name)
        except ResourceNotFoundError:
            return None
        spool = tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_SIZE)
        downloader.readinto(spool)
        spool.seek(0)
        return spool

    def _rollback(self, key: str, name: str, previous: Optional[BinaryIO]) -> None:
        blob_client = self.container_client.get_blob_client(name)
        try:
            if previous is not None:
                blob_client.upload_blob(previous, overwrite=True)
                logger.debug("Restored previous content of %s", key)
            else:
                blob_client.delete_blob()
                logger.debug("Rolled back new blob %s", key)
        except AzureError as e:
            logger.error("Rollback of %s failed: %s", key, e)

    def _delete_quietly(self, name: str) -> None:
        with contextlib.suppress(ResourceNotFoundError):
            self.container_client.delete_blob(name)

    # ---- contract -----------------------------------------------------------

    def exists(self, key: str) -> bool:
        """Check if a blob exists at a key. Directory prefixes are not blobs."""
        key = normalize_key(key)
        if is_root(key):
            return False
        with self._medium("exists", key):
            return self._blob_exists(self._blob_name(key))

    def get(self, key: str) -> bytes:
        """Download a whole blob."""
        key = normalize_key(key)
        if is_root(key):
            raise NotFoundError(key)
        with self._medium("get", key):
            return self.container_client.download_blob(self._blob_name(key)).readall()

    def get_reader(self, key: str) -> BinaryIO:
        """
        Download a blob into a spooled temp file for streaming reads.

        Args:
            key: Blob key

        Returns:
            Readable stream positioned at the start; the caller closes it
        """
        key = normalize_key(key)
        if is_root(key):
            raise NotFoundError(key)
        spool = tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_SIZE)
        try:
            with self._medium("get", key):
                self.container_client.download_blob(self._blob_name(key)).readinto(spool)
        except Exception:
            spool.close()
            raise
        spool.seek(0)
        return spool

    def size(self, key: str) -> int:
        """Return the blob size from its properties, without downloading it."""
        key = normalize_key(key)
        if is_root(key):
            raise NotFoundError(key)
        with self._medium("size", key):
            props = self.container_client.get_blob_client(self._blob_name(key)).get_blob_properties()
        return props.size

    def put(self, key: str, data: bytes) -> None:
        """Upload bytes to a key, overwriting any previous blob."""
        self.put_reader(key, io.BytesIO(data))

    def put_reader(self, key: str, stream: BinaryIO, after_write: Optional[AfterWrite] = None) -> None:
        """
        Upload a stream to a key.

        Args:
            key: Blob key
            stream: Binary stream, spooled locally before upload
            after_write: Called with the uploaded blob's handle; if it raises,
                the previous content is restored or the new blob deleted
        """
        key = normalize_key(key)
        if is_root(key):
            raise InvalidKeyError(key, "cannot store a blob at the root")
        name = self._blob_name(key)

        with self._spool(stream) as spool:
            with self._medium("put", key):
                self._check_conflicts(key)
                previous = self._snapshot(name) if after_write is not None else None
                self.container_client.get_blob_client(name).upload_blob(spool, overwrite=True)
            logger.debug("Uploaded %s as %s", key, name)

            if after_write is None:
                return
            try:
                after_write(BlobHandle(self, key))
            except Exception:
                self._rollback(key, name, previous)
                raise
            finally:
                if previous is not None:
                    previous.close()

    def remove(self, key: str) -> None:
        """Delete one blob."""
        key = normalize_key(key)
        if is_root(key):
            raise NotFoundError(key)
        with self._medium("remove", key):
            self.container_client.delete_blob(self._blob_name(key))
        logger.debug("Removed %s", key)

    def remove_all(self, prefix: str) -> None:
        """Delete the blob at ``prefix`` and every blob named below it."""
        prefix = normalize_key(prefix)
        try:
            if not is_root(prefix):
                self._delete_quietly(self._blob_name(prefix))
            names = [b.name for b in self.container_client.list_blobs(name_starts_with=self._dir_prefix(prefix))]
            for name in names:
                self._delete_quietly(name)
        except ResourceNotFoundError:
            return
        except AzureError as e:
            raise MediumError("remove_all", prefix, e) from e
        logger.debug("Removed everything under %s", prefix)

    def list(self, key: str) -> Set[str]:
        """List immediate children, folding deeper blob names into directory keys."""
        key = normalize_key(key)
        dir_prefix = self._dir_prefix(key)
        children = set()
        try:
            for item in self.container_client.walk_blobs(name_starts_with=dir_prefix, delimiter="/"):
                # BlobPrefix names carry a trailing slash
                name = item.name[len(dir_prefix):].rstrip("/")
                if name:
                    children.add(join_key(key, name))
        except ResourceNotFoundError:
            raise EmptyOrAbsentError(key)
        except AzureError as e:
            raise MediumError("list", key, e) from e

        if not children:
            raise EmptyOrAbsentError(key)
        return children
