"""Test key normalization and path helpers."""

import pytest

from blobtree.errors import InvalidKeyError
from blobtree.keys import (
    ancestors,
    is_root,
    is_under,
    join_key,
    key_parts,
    normalize_key,
    parent_key,
)


class TestNormalizeKey:
    """Test canonical key form."""

    @pytest.mark.parametrize("raw,expected", [
        ("/", "/"),
        ("", "/"),
        ("//", "/"),
        ("/a", "/a"),
        ("a", "/a"),
        ("/a/", "/a"),
        ("/anotherdir/", "/anotherdir"),
        ("//a//b///c", "/a/b/c"),
        ("/a/./b", "/a/b"),
        ("./a", "/a"),
        ("/a b/c.txt", "/a b/c.txt"),
    ])
    def test_canonical_forms(self, raw, expected):
        """Test that equivalent spellings collapse to one key."""
        assert normalize_key(raw) == expected

    def test_idempotent(self):
        """Test that normalizing twice changes nothing."""
        key = normalize_key("x//y/")
        assert normalize_key(key) == key

    @pytest.mark.parametrize("raw", ["/a/../b", "..", "/..", "a/b/.."])
    def test_reject_parent_traversal(self, raw):
        """Test that parent traversal is rejected."""
        with pytest.raises(InvalidKeyError, match="parent traversal"):
            normalize_key(raw)

    def test_reject_backslash(self):
        """Test that Windows-style separators are rejected."""
        with pytest.raises(InvalidKeyError, match="backslashes"):
            normalize_key("dir\\file")

    def test_reject_nul(self):
        """Test that NUL bytes are rejected."""
        with pytest.raises(InvalidKeyError):
            normalize_key("/a\x00b")

    @pytest.mark.parametrize("raw", ["/.blobtree.lock", "/.blobtree-staging/x", "/a/.blobtree"])
    def test_reject_reserved_segments(self, raw):
        """Test that bookkeeping names cannot be addressed."""
        with pytest.raises(InvalidKeyError, match="reserved"):
            normalize_key(raw)

    def test_dotfiles_allowed(self):
        """Test that ordinary hidden names are fine."""
        assert normalize_key("/.hidden/.blob") == "/.hidden/.blob"

    def test_reject_non_string(self):
        """Test that non-string keys are rejected."""
        with pytest.raises(InvalidKeyError, match="must be a string"):
            normalize_key(b"/bytes")

    def test_invalid_key_is_value_error(self):
        """Test that InvalidKeyError can be caught as ValueError."""
        with pytest.raises(ValueError):
            normalize_key("/../x")


class TestKeyHelpers:
    """Test helpers operating on normalized keys."""

    def test_is_root(self):
        assert is_root("/")
        assert not is_root("/a")

    def test_key_parts(self):
        assert key_parts("/") == []
        assert key_parts("/a/b") == ["a", "b"]

    def test_join_key(self):
        assert join_key("/", "a") == "/a"
        assert join_key("/a", "b") == "/a/b"

    def test_parent_key(self):
        assert parent_key("/") == "/"
        assert parent_key("/a") == "/"
        assert parent_key("/a/b/c") == "/a/b"

    def test_ancestors_nearest_first(self):
        """Test ancestors exclude the key itself and the root."""
        assert ancestors("/a/b/c") == ["/a/b", "/a"]
        assert ancestors("/a") == []
        assert ancestors("/") == []

    def test_is_under(self):
        """Test segment-wise prefix matching."""
        assert is_under("/", "/anything")
        assert is_under("/dir", "/dir")
        assert is_under("/dir", "/dir/1")
        assert not is_under("/dir", "/dir2/1")
        assert not is_under("/dir/1", "/dir")

