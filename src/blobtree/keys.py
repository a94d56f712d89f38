"""Key normalization for path-addressed storage.

Keys are absolute, forward-slash-delimited paths. Every backend normalizes
caller input through :func:`normalize_key` before touching its medium, so
``"/anotherdir/"``, ``"anotherdir"`` and ``"//anotherdir"`` all address the
same key.
"""

from typing import List

from .constants import RESERVED_PREFIX, ROOT_KEY, SEPARATOR
from .errors import InvalidKeyError


def normalize_key(key: str) -> str:
    """
    Normalize a key into its canonical form.

    - Repeated separators collapse (``"/a//b"`` -> ``"/a/b"``)
    - Leading slash is added, trailing slashes are stripped
    - ``"."`` segments are dropped, ``".."`` segments are rejected
    - The empty string is the root

    Args:
        key: Caller-supplied key

    Returns:
        Canonical key

    Raises:
        InvalidKeyError: If the key cannot be used as a storage path
    """
    if not isinstance(key, str):
        raise InvalidKeyError(repr(key), "key must be a string")
    if "\\" in key:
        raise InvalidKeyError(key, "backslashes are not allowed")
    if "\x00" in key:
        raise InvalidKeyError(key, "NUL bytes are not allowed")

    parts = []
    for segment in key.split(SEPARATOR):
        if segment in ("", "."):
            continue
        if segment == "..":
            raise InvalidKeyError(key, "parent traversal (..) is not allowed")
        if segment.startswith(RESERVED_PREFIX):
            raise InvalidKeyError(key, f"segments starting with {RESERVED_PREFIX!r} are reserved")
        parts.append(segment)

    return SEPARATOR + SEPARATOR.join(parts)


def is_root(key: str) -> bool:
    """Check whether a normalized key is the root."""
    return key == ROOT_KEY


def key_parts(key: str) -> List[str]:
    """Split a normalized key into its segments (root has none)."""
    return [p for p in key.split(SEPARATOR) if p]


def join_key(parent: str, name: str) -> str:
    """Join a normalized parent key and a single child segment."""
    if is_root(parent):
        return SEPARATOR + name
    return parent + SEPARATOR + name


def parent_key(key: str) -> str:
    """Return the parent of a normalized key (root is its own parent)."""
    if is_root(key):
        return ROOT_KEY
    head = key.rsplit(SEPARATOR, 1)[0]
    return head or ROOT_KEY


def ancestors(key: str) -> List[str]:
    """
    List the ancestors of a normalized key, nearest first, excluding root.

    Examples:
        "/a/b/c" -> ["/a/b", "/a"]
        "/a" -> []
    """
    result = []
    current = parent_key(key)
    while not is_root(current):
        result.append(current)
        current = parent_key(current)
    return result


def is_under(prefix: str, key: str) -> bool:
    """Check whether ``key`` equals ``prefix`` or is nested below it."""
    if is_root(prefix):
        return True
    return key == prefix or key.startswith(prefix + SEPARATOR)

