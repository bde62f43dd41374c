"""Colon-delimited material identifiers used as cache and catalog keys."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Iterator, Optional, Tuple

IGNORABLE_SEGMENT = "STRUCTURAL"
SEPARATOR = ":"

__all__ = ["IdentifierPath", "IGNORABLE_SEGMENT", "SEPARATOR", "is_ignorable", "normalize_segment"]


def normalize_segment(value: str) -> str:
    return str(value).strip().upper()


def is_ignorable(segment: Optional[str]) -> bool:
    return segment is not None and normalize_segment(segment) == IGNORABLE_SEGMENT


@dataclass(frozen=True, order=True)
class IdentifierPath:
    """Immutable ordered sequence of uppercase namespace segments.

    Equality is segment-wise; ordering is lexicographic by segment with a
    shorter prefix sorting before any longer path that extends it. The
    empty path is the root.
    """

    segments: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        normalized = tuple(normalize_segment(s) for s in self.segments)
        object.__setattr__(self, "segments", tuple(s for s in normalized if s))

    @classmethod
    def parse(cls, text: str) -> "IdentifierPath":
        """Build a path from a runtime identifier such as ``inorganic:granite``."""
        if not text:
            return cls()
        return cls(tuple(text.split(SEPARATOR)))

    @classmethod
    def from_segments(cls, segments: Iterable[str]) -> "IdentifierPath":
        return cls(tuple(segments))

    @classmethod
    def root(cls) -> "IdentifierPath":
        return cls()

    def parent(self) -> Optional["IdentifierPath"]:
        if not self.segments:
            return None
        return IdentifierPath(self.segments[:-1])

    def is_child_of(self, other: "IdentifierPath") -> bool:
        return self.parent() == other

    def child(self, segment: str) -> "IdentifierPath":
        return IdentifierPath(self.segments + (segment,))

    def last(self) -> Optional[str]:
        return self.segments[-1] if self.segments else None

    def is_empty(self) -> bool:
        return not self.segments

    @property
    def trailing_is_ignorable(self) -> bool:
        return is_ignorable(self.last())

    def ancestors(self) -> Iterator["IdentifierPath"]:
        """Yield ``parent()``, ``parent().parent()``, ... down to the root."""
        current = self.parent()
        while current is not None:
            yield current
            current = current.parent()

    def __len__(self) -> int:
        return len(self.segments)

    def __iter__(self) -> Iterator[str]:
        return iter(self.segments)

    def __str__(self) -> str:
        return SEPARATOR.join(self.segments)

    def __repr__(self) -> str:
        return f"IdentifierPath({str(self)!r})"
