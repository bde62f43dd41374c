"""Trie-backed cache keyed by hierarchical identifiers.

Values are stored per key; lookups can fall back to the nearest ancestor
that carries a value, and finally to a cache-wide default. The trie grows
lazily: a node starts as a leaf and only turns into a branch when a deeper
key is inserted below it, at which point its own value becomes the
branch's default.

Limitations
-----------
``set`` does not invalidate descendants that were memoized earlier by
:meth:`HierarchicalCache.get_or_initialize_with_parent`. Catalog builds
perform every ``set`` before the first memoizing query, so this cannot
produce stale values there; other callers must follow the same order.

The trie is not safe for concurrent insertion. Readers may share a cache
only while memoizing writers are serialized by the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Generic, Iterator, List, Optional, Protocol, Sequence, Tuple, TypeVar, Union

from .errors import CacheDefaultRequiredError

LOG = logging.getLogger(__name__)

__all__ = ["CacheKey", "CacheLookup", "HierarchicalCache"]


class CacheKey(Protocol):
    """Anything with an ordered segment tuple and a ``parent()``."""

    segments: Tuple[str, ...]

    def parent(self) -> Optional["CacheKey"]:
        ...


K = TypeVar("K", bound=CacheKey)
V = TypeVar("V")

_ABSENT: Any = object()


@dataclass
class _Leaf:
    value: Any = _ABSENT


@dataclass
class _Branch:
    children: Dict[str, "_Entry"] = field(default_factory=dict)
    default: Any = _ABSENT


_Entry = Union[_Leaf, _Branch]


def _node_value(entry: _Entry) -> Any:
    return entry.value if isinstance(entry, _Leaf) else entry.default


@dataclass(frozen=True)
class CacheLookup(Generic[V]):
    """Outcome of :meth:`HierarchicalCache.get_or_initialize_with_parent`.

    ``was_present`` is True when the exact key already held a value (the
    ``Ok`` case) and False when the value was inherited and has just been
    memoized at the key (the ``Err`` case).
    """

    value: Optional[V]
    was_present: bool

    @property
    def ok(self) -> bool:
        return self.was_present


class HierarchicalCache(Generic[K, V]):
    """Map hierarchical keys to values with ancestor fallback."""

    def __init__(self, default: Any = _ABSENT) -> None:
        self._root: _Entry = _Leaf()
        self._default: Any = default
        self._count = 0

    @classmethod
    def with_default(cls, default: V) -> "HierarchicalCache[K, V]":
        return cls(default=default)

    # ------------------------------------------------------------------
    # Queries

    def get(self, key: K) -> Optional[V]:
        """Exact-key lookup; no fallback and no mutation."""
        entry = self._find(key.segments)
        if entry is None:
            return None
        value = _node_value(entry)
        return None if value is _ABSENT else value

    def contains(self, key: K) -> bool:
        entry = self._find(key.segments)
        return entry is not None and _node_value(entry) is not _ABSENT

    __contains__ = contains

    def get_recursive(self, key: K) -> Optional[V]:
        """Return the value at ``key`` or its nearest present ancestor.

        Falls back to the cache-wide default when neither the key nor any
        ancestor (the root included) carries a value.
        """
        found = self._deepest_present(key.segments)
        if found is not _ABSENT:
            return found
        return self.default

    def get_or_initialize_with_parent(self, key: K) -> CacheLookup[V]:
        """Return the exact value, or memoize the inherited one at ``key``."""
        if not self.has_default:
            raise CacheDefaultRequiredError("Cache requires a default if it's initializing lazily")
        entry = self._find(key.segments)
        if entry is not None and _node_value(entry) is not _ABSENT:
            return CacheLookup(_node_value(entry), True)
        inherited = self.get_recursive(key)
        self._insert(key.segments, inherited)
        LOG.debug("Memoized inherited value for %s", ":".join(key.segments))
        return CacheLookup(inherited, False)

    # ------------------------------------------------------------------
    # Mutation

    def set(self, key: K, value: V) -> Optional[V]:
        """Insert or overwrite ``key``; returns the previous exact value."""
        previous = self.get(key)
        self._insert(key.segments, value)
        return previous

    def set_default(self, value: V) -> Optional[V]:
        previous = self.default
        self._default = value
        return previous

    @property
    def has_default(self) -> bool:
        return self._default is not _ABSENT

    @property
    def default(self) -> Optional[V]:
        return None if self._default is _ABSENT else self._default

    def __len__(self) -> int:
        return self._count

    # ------------------------------------------------------------------
    # Introspection

    def items(self) -> Iterator[Tuple[Tuple[str, ...], V]]:
        """Yield ``(segments, value)`` for every exact entry in key order."""
        stack: List[Tuple[Tuple[str, ...], _Entry]] = [((), self._root)]
        while stack:
            prefix, entry = stack.pop()
            value = _node_value(entry)
            if value is not _ABSENT:
                yield prefix, value
            if isinstance(entry, _Branch):
                for name in sorted(entry.children, reverse=True):
                    stack.append((prefix + (name,), entry.children[name]))

    def dump(self) -> List[str]:
        """Render the trie as indented ``SEGMENT: value`` lines."""
        lines = [f"<default>: {self.default!r}" if self.has_default else "<default>: -"]

        def _walk(entry: _Entry, name: str, depth: int) -> None:
            value = _node_value(entry)
            shown = "-" if value is _ABSENT else repr(value)
            lines.append(f"{'    ' * depth}{name}: {shown}")
            if isinstance(entry, _Branch):
                for child in sorted(entry.children):
                    _walk(entry.children[child], child, depth + 1)

        _walk(self._root, "<root>", 0)
        return lines

    # ------------------------------------------------------------------
    # Trie internals

    def _find(self, segments: Sequence[str]) -> Optional[_Entry]:
        entry = self._root
        for segment in segments:
            if not isinstance(entry, _Branch):
                return None
            child = entry.children.get(segment)
            if child is None:
                return None
            entry = child
        return entry

    def _deepest_present(self, segments: Sequence[str]) -> Any:
        # Walking down and keeping the last present value visits the same
        # nodes as walking key.parent() upwards, in reverse.
        entry: Optional[_Entry] = self._root
        found = _node_value(self._root)
        for segment in segments:
            if not isinstance(entry, _Branch):
                break
            entry = entry.children.get(segment)
            if entry is None:
                break
            value = _node_value(entry)
            if value is not _ABSENT:
                found = value
        return found

    def _insert(self, segments: Sequence[str], value: Any) -> None:
        self._root = self._insert_into(self._root, tuple(segments), value)

    def _insert_into(self, entry: _Entry, segments: Tuple[str, ...], value: Any) -> _Entry:
        if not segments:
            if _node_value(entry) is _ABSENT:
                self._count += 1
            if isinstance(entry, _Leaf):
                entry.value = value
            else:
                entry.default = value
            return entry
        if isinstance(entry, _Leaf):
            # Growing past a leaf demotes its value to the branch default.
            entry = _Branch(children={}, default=entry.value)
        head, rest = segments[0], segments[1:]
        child = entry.children.get(head)
        if child is None:
            child = _Branch() if len(rest) >= 1 else _Leaf()
        entry.children[head] = self._insert_into(child, rest, value)
        return entry
