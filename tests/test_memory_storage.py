"""Test in-memory storage bookkeeping."""

import io
import threading

import pytest

from blobtree.errors import EmptyOrAbsentError
from blobtree.storage.memory import MemoryStorage


class TestDescendantCounts:
    """Test the per-directory counters behind directory existence."""

    def test_counts_follow_writes(self, memory_storage):
        memory_storage.put("/a/b/1", b"x")
        memory_storage.put("/a/b/2", b"x")
        memory_storage.put("/a/3", b"x")

        assert memory_storage._counts == {"/": 3, "/a": 3, "/a/b": 2}

    def test_overwrite_does_not_double_count(self, memory_storage):
        memory_storage.put("/a/1", b"x")
        memory_storage.put("/a/1", b"yy")
        assert memory_storage._counts == {"/": 1, "/a": 1}
        assert memory_storage.size("/a/1") == 2

    def test_counts_drain_to_nothing(self, memory_storage):
        """Test that removing every blob leaves no bookkeeping behind."""
        memory_storage.put("/a/b/1", b"x")
        memory_storage.put("/c", b"x")
        memory_storage.remove("/a/b/1")
        memory_storage.remove_all("/")

        assert memory_storage._counts == {}
        assert memory_storage._children == {}
        assert memory_storage._blobs == {}

    def test_children_track_live_directories(self, memory_storage):
        memory_storage.put("/a/b/1", b"x")
        memory_storage.put("/a/2", b"x")
        memory_storage.remove("/a/b/1")

        assert memory_storage.list("/a") == {"/a/2"}
        assert "/a/b" not in memory_storage._children

    def test_list_returns_copy(self, memory_storage):
        """Test that callers cannot mutate internal state through a listing."""
        memory_storage.put("/a", b"x")
        listing = memory_storage.list("/")
        listing.add("/bogus")
        assert memory_storage.list("/") == {"/a"}


class TestMemoryStorage:
    """Test behavior specific to the in-memory backend."""

    def test_instances_are_independent(self):
        first = MemoryStorage()
        second = MemoryStorage()
        first.put("/a", b"x")
        assert not second.exists("/a")
        with pytest.raises(EmptyOrAbsentError):
            second.list("/")

    def test_put_copies_bytearray(self, memory_storage):
        """Test that later mutation of the caller's buffer is not observed."""
        buf = bytearray(b"abc")
        memory_storage.put("/buf", buf)
        buf[0] = ord("z")
        assert memory_storage.get("/buf") == b"abc"

    def test_hook_failure_discards_bookkeeping(self, memory_storage):
        def after_write(handle):
            raise RuntimeError("no")

        with pytest.raises(RuntimeError):
            memory_storage.put_reader("/x/y", io.BytesIO(b"1"), after_write)
        assert memory_storage._counts == {}

    def test_concurrent_writers(self, memory_storage):
        """Test that counters stay consistent under threads."""

        def worker(tid):
            for i in range(50):
                memory_storage.put(f"/t/{tid}/{i}", b"x")
            for i in range(50):
                memory_storage.remove(f"/t/{tid}/{i}")

        threads = [threading.Thread(target=worker, args=(t,)) for t in range(6)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert memory_storage._counts == {}
        with pytest.raises(EmptyOrAbsentError):
            memory_storage.list("/")
