"""Conformance suite every storage backend must pass.

Subclass :class:`StorageConformance` in a test module and override the
``storage`` fixture to return an initialized, empty backend::

    class TestMyBackend(StorageConformance):
        @pytest.fixture
        def storage(self, tmp_path):
            storage = MyBackend(tmp_path)
            storage.init()
            return storage

Listing results carry no order, so every listing is compared as a set.
"""

import io

import pytest

from .errors import EmptyOrAbsentError, InvalidKeyError, KeyConflictError, NotFoundError
from .storage.base import BlobHandle, Storage


def assert_not_listable(storage: Storage, key: str) -> None:
    """Listing an empty or absent directory is an error, never an empty set."""
    with pytest.raises(EmptyOrAbsentError):
        storage.list(key)


class StorageConformance:
    """Black-box contract tests, parameterized by the ``storage`` fixture."""

    @pytest.fixture
    def storage(self) -> Storage:
        raise NotImplementedError("Override the storage fixture")

    # ---- lifecycle -----------------------------------------------------------

    def test_satisfies_protocol(self, storage):
        """Test that the backend structurally satisfies the Storage protocol."""
        assert isinstance(storage, Storage)

    def test_fresh_root_not_listable(self, storage):
        """Test that listing the root of an empty store fails."""
        assert_not_listable(storage, "/")

    def test_remove_all_root_resets(self, storage):
        """Test that remove_all on the root empties the store."""
        storage.put("/a/b", b"x")
        storage.put("/c", b"y")
        storage.remove_all("/")
        assert_not_listable(storage, "/")
        assert not storage.exists("/a/b")
        assert not storage.exists("/c")

    # ---- absent keys --------------------------------------------------------

    @pytest.mark.parametrize("key", ["/1", "/dir/1", "/never/written/here"])
    def test_unwritten_key(self, storage, key):
        """Test that every read-side operation reports an unwritten key as missing."""
        assert storage.exists(key) is False
        with pytest.raises(NotFoundError):
            storage.get(key)
        with pytest.raises(NotFoundError):
            storage.get_reader(key)
        with pytest.raises(NotFoundError):
            storage.size(key)
        with pytest.raises(NotFoundError):
            storage.remove(key)

    @pytest.mark.parametrize("key", ["/" + "a" * 300, "/dir/" + "b" * 300])
    def test_overlong_segment_is_absent(self, storage, key):
        """Test that a never-written key with a very long segment is simply absent."""
        storage.put("/dir/short", b"x")

        assert storage.exists(key) is False
        with pytest.raises(NotFoundError):
            storage.get(key)
        with pytest.raises(NotFoundError):
            storage.get_reader(key)
        with pytest.raises(NotFoundError):
            storage.size(key)
        with pytest.raises(NotFoundError):
            storage.remove(key)
        assert_not_listable(storage, key)
        storage.remove_all(key)
        assert storage.get("/dir/short") == b"x"

    def test_directory_is_not_a_blob(self, storage):
        """Test that a live directory is not readable as a blob."""
        storage.put("/dir/1", b"content")
        assert storage.exists("/dir") is False
        with pytest.raises(NotFoundError):
            storage.get("/dir")
        with pytest.raises(NotFoundError):
            storage.size("/dir")
        with pytest.raises(NotFoundError):
            storage.remove("/dir")
        assert storage.list("/dir") == {"/dir/1"}

    # ---- put / get ----------------------------------------------------------

    def test_get_put_exists_size_remove(self, storage):
        """Test the basic blob lifecycle at the top level."""
        storage.put("/1", b"lolwtf")

        assert storage.exists("/1") is True
        assert storage.size("/1") == 6
        assert storage.get("/1") == b"lolwtf"

        storage.remove("/1")
        assert storage.exists("/1") is False
        assert_not_listable(storage, "/")

    def test_put_overwrites(self, storage):
        """Test that a second put replaces content and size."""
        storage.put("/k", b"first version")
        storage.put("/k", b"second")
        assert storage.get("/k") == b"second"
        assert storage.size("/k") == 6
        assert storage.list("/") == {"/k"}

    def test_empty_blob(self, storage):
        """Test that a zero-length blob exists and has size 0."""
        storage.put("/empty", b"")
        assert storage.exists("/empty")
        assert storage.size("/empty") == 0
        assert storage.get("/empty") == b""

    def test_binary_round_trip(self, storage):
        """Test that arbitrary bytes survive unchanged."""
        data = bytes(range(256)) * 64
        storage.put("/bin/blob", data)
        assert storage.get("/bin/blob") == data
        assert storage.size("/bin/blob") == len(data)

    def test_key_normalization(self, storage):
        """Test that equivalent spellings address the same blob."""
        storage.put("dir//sub/./file/", b"data")
        assert storage.exists("/dir/sub/file")
        assert storage.get("//dir/sub/file") == b"data"
        assert storage.list("/dir/") == {"/dir/sub"}

    def test_invalid_keys_rejected(self, storage):
        """Test that traversal and root writes are rejected."""
        with pytest.raises(InvalidKeyError):
            storage.put("/a/../b", b"x")
        with pytest.raises(InvalidKeyError):
            storage.put("/", b"x")
        assert_not_listable(storage, "/")

    # ---- streaming ------------------------------------------------------------

    def test_get_put_readers(self, storage):
        """Test streaming write with after_write hook, then streaming read."""
        observed = {}

        def after_write(handle: BlobHandle) -> None:
            observed["key"] = handle.key
            observed["size"] = handle.size()

        storage.put_reader("/dir/1", io.BytesIO(b"lolwtfdir"), after_write)

        assert observed == {"key": "/dir/1", "size": 9}
        assert storage.size("/dir/1") == 9
        assert storage.exists("/dir/1")
        with storage.get_reader("/dir/1") as reader:
            assert reader.read() == b"lolwtfdir"

        storage.remove("/dir/1")
        assert_not_listable(storage, "/dir")
        assert_not_listable(storage, "/")

    def test_put_reader_without_hook(self, storage):
        """Test that the hook is optional."""
        storage.put_reader("/s", io.BytesIO(b"streamed"))
        assert storage.get("/s") == b"streamed"

    def test_put_reader_large_stream(self, storage):
        """Test a stream spanning many read chunks."""
        data = b"0123456789abcdef" * 20000
        sizes = []
        storage.put_reader("/big", io.BytesIO(data), lambda h: sizes.append(h.size()))
        assert sizes == [len(data)]
        assert storage.get("/big") == data

    def test_hook_sees_persisted_content(self, storage):
        """Test that the hook runs after the blob is readable."""
        seen = {}

        def after_write(handle):
            seen["exists"] = storage.exists("/h/blob")
            with handle.open() as f:
                seen["content"] = f.read()

        storage.put_reader("/h/blob", io.BytesIO(b"payload"), after_write)
        assert seen == {"exists": True, "content": b"payload"}

    def test_hook_failure_rolls_back_new_blob(self, storage):
        """Test that a failing hook fails the write and leaves nothing behind."""

        def after_write(handle):
            raise RuntimeError("hook rejected blob")

        with pytest.raises(RuntimeError, match="hook rejected blob"):
            storage.put_reader("/r/new", io.BytesIO(b"data"), after_write)

        assert not storage.exists("/r/new")
        assert_not_listable(storage, "/r")
        assert_not_listable(storage, "/")

    def test_hook_failure_restores_previous_content(self, storage):
        """Test that a failing hook on overwrite restores the old blob."""
        storage.put("/r/old", b"original")

        def after_write(handle):
            raise ValueError("nope")

        with pytest.raises(ValueError):
            storage.put_reader("/r/old", io.BytesIO(b"replacement"), after_write)

        assert storage.get("/r/old") == b"original"
        assert storage.list("/r") == {"/r/old"}

    # ---- listing and deletion -----------------------------------------------

    def test_list_remove_all(self, storage):
        """Test listing at several levels and recursive deletion."""
        storage.put("/dir/1", b"lolwtfdir1")
        storage.put("/dir/2", b"lolwtfdir2")
        storage.put("/dir/3", b"lolwtfdir3")
        storage.put("/anotherdir/1", b"lolwtfanotherdir1")

        assert storage.list("/") == {"/dir", "/anotherdir"}
        assert storage.list("/dir") == {"/dir/1", "/dir/2", "/dir/3"}
        assert storage.list("/anotherdir/") == {"/anotherdir/1"}

        storage.remove_all("/dir")
        assert storage.list("/") == {"/anotherdir"}
        assert_not_listable(storage, "/dir")
        assert storage.list("/anotherdir") == {"/anotherdir/1"}

        storage.remove_all("/anotherdir")
        assert_not_listable(storage, "/")
        assert_not_listable(storage, "/dir")
        assert_not_listable(storage, "/anotherdir")

    def test_list_mixes_blobs_and_directories(self, storage):
        """Test that a listing returns blobs and live directories alike."""
        storage.put("/mix/file", b"1")
        storage.put("/mix/sub/deep/file", b"2")
        assert storage.list("/mix") == {"/mix/file", "/mix/sub"}
        assert storage.list("/mix/sub") == {"/mix/sub/deep"}

    def test_list_blob_key_fails(self, storage):
        """Test that a blob has no children to list."""
        storage.put("/leaf", b"x")
        assert_not_listable(storage, "/leaf")

    def test_remove_prunes_all_empty_ancestors(self, storage):
        """Test that removing the last deep blob removes every empty ancestor."""
        storage.put("/a/b/c/d", b"x")
        storage.put("/a/keep", b"y")

        storage.remove("/a/b/c/d")

        assert storage.list("/a") == {"/a/keep"}
        assert_not_listable(storage, "/a/b")
        assert_not_listable(storage, "/a/b/c")

    def test_remove_keeps_siblings(self, storage):
        """Test that a directory survives while any blob remains in it."""
        storage.put("/d/1", b"1")
        storage.put("/d/2", b"2")
        storage.remove("/d/1")
        assert storage.list("/d") == {"/d/2"}
        assert storage.list("/") == {"/d"}

    def test_remove_all_idempotent(self, storage):
        """Test that remove_all succeeds repeatedly and on absent prefixes."""
        storage.put("/x/1", b"1")
        storage.remove_all("/x")
        storage.remove_all("/x")
        storage.remove_all("/never/existed")
        assert_not_listable(storage, "/x")
        assert_not_listable(storage, "/")

    def test_remove_all_on_blob(self, storage):
        """Test that remove_all on a blob key removes that blob."""
        storage.put("/p/blob", b"1")
        storage.put("/p/other", b"2")
        storage.remove_all("/p/blob")
        assert not storage.exists("/p/blob")
        assert storage.list("/p") == {"/p/other"}

    def test_remove_all_prunes_ancestors(self, storage):
        """Test that remove_all prunes ancestors left empty."""
        storage.put("/deep/er/est/1", b"1")
        storage.remove_all("/deep/er")
        assert_not_listable(storage, "/deep")
        assert_not_listable(storage, "/")

    def test_remove_all_does_not_match_name_prefix(self, storage):
        """Test that remove_all works on path segments, not string prefixes."""
        storage.put("/dir/1", b"1")
        storage.put("/dir2/1", b"2")
        storage.remove_all("/dir")
        assert storage.list("/") == {"/dir2"}
        assert storage.get("/dir2/1") == b"2"

    # ---- blob/directory exclusivity ------------------------------------------

    def test_cannot_write_below_blob(self, storage):
        """Test that a blob cannot gain descendants."""
        storage.put("/file", b"x")
        with pytest.raises(KeyConflictError):
            storage.put("/file/child", b"y")
        assert storage.get("/file") == b"x"
        assert storage.list("/") == {"/file"}

    def test_cannot_write_over_directory(self, storage):
        """Test that a live directory cannot become a blob."""
        storage.put("/folder/child", b"x")
        with pytest.raises(KeyConflictError):
            storage.put("/folder", b"y")
        assert storage.list("/folder") == {"/folder/child"}
