"""Variable tables, indirection chains and the load-wide texture table."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence, Tuple, Union

from .errors import CyclicIndirectionError, UnresolvedVariableError

INDIRECTION_PREFIX = "#"

PathLike = Union[str, Path]

__all__ = ["INDIRECTION_PREFIX", "VariableTable", "TextureTable", "is_indirection"]


def is_indirection(expr: str) -> bool:
    return expr.startswith(INDIRECTION_PREFIX)


class VariableTable:
    """Ordered ``(name, expression)`` pairs of one definition file.

    Positions matter: baked primitives refer to their texture variable by
    index. Declarations follow a first-occurrence-wins rule: once a name is
    bound, later bindings for it (own or merged from a parent) are dropped.
    """

    def __init__(self, entries: Sequence[Tuple[str, str]] = ()) -> None:
        self._entries: List[Tuple[str, str]] = []
        self._positions: Dict[str, int] = {}
        for name, expr in entries:
            self.declare(name, expr)

    def declare(self, name: str, expr: str) -> bool:
        """Bind ``name`` unless already bound; returns whether it was added."""
        if name in self._positions:
            return False
        self._positions[name] = len(self._entries)
        self._entries.append((name, expr))
        return True

    def merge(self, other: "VariableTable") -> int:
        """Append every binding of ``other`` whose name is still free."""
        added = 0
        for name, expr in other:
            if self.declare(name, expr):
                added += 1
        return added

    def index_of(self, name: str) -> Optional[int]:
        return self._positions.get(name)

    def name_at(self, index: int) -> str:
        return self._entries[index][0]

    def expr_at(self, index: int) -> str:
        return self._entries[index][1]

    def lookup(self, name: str) -> Optional[str]:
        position = self._positions.get(name)
        return None if position is None else self._entries[position][1]

    def reindex(self, index: int, parent: "VariableTable") -> int:
        """Map a position in ``parent`` to the same name's position here."""
        name = parent.name_at(index)
        position = self._positions.get(name)
        if position is None:
            raise UnresolvedVariableError(name)
        return position

    def resolve(self, index: int, *, source: Optional[PathLike] = None) -> str:
        """Follow ``#name`` indirections from ``index`` to a literal expression."""
        name = self.name_at(index)
        chain = [name]
        visited = {name}
        expr = self.expr_at(index)
        while is_indirection(expr):
            target = expr[len(INDIRECTION_PREFIX):].strip()
            if target in visited:
                raise CyclicIndirectionError(chain + [target], source=source)
            next_expr = self.lookup(target)
            if next_expr is None:
                raise UnresolvedVariableError(target, source=source)
            chain.append(target)
            visited.add(target)
            expr = next_expr
        return expr

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[Tuple[str, str]]:
        return iter(list(self._entries))

    def __contains__(self, name: object) -> bool:
        return name in self._positions

    def __repr__(self) -> str:
        return f"VariableTable({self._entries!r})"


class TextureTable:
    """Insertion-ordered, de-duplicated list of texture paths for a whole load."""

    def __init__(self) -> None:
        self._paths: List[str] = []
        self._slots: Dict[str, int] = {}

    @staticmethod
    def normalize(path: str) -> str:
        return path.strip().replace("\\", "/")

    def intern(self, path: str) -> int:
        key = self.normalize(path)
        slot = self._slots.get(key)
        if slot is None:
            slot = len(self._paths)
            self._slots[key] = slot
            self._paths.append(key)
        return slot

    def slot_of(self, path: str) -> Optional[int]:
        return self._slots.get(self.normalize(path))

    @property
    def paths(self) -> Tuple[str, ...]:
        return tuple(self._paths)

    def __getitem__(self, slot: int) -> str:
        return self._paths[slot]

    def __len__(self) -> int:
        return len(self._paths)

    def __iter__(self) -> Iterator[str]:
        return iter(self._paths)
