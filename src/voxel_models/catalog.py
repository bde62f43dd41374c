"""Per shape-class model catalogs and the registry that groups them."""

from __future__ import annotations

import enum
import logging
from typing import Dict, Iterator, List, Optional, Tuple, Union

from .baking import CompiledModel
from .cache import HierarchicalCache
from .identifier import IdentifierPath, normalize_segment

LOG = logging.getLogger(__name__)

# Index 0 means "no concrete model"; authored models start at 1.
NO_MODEL = 0

__all__ = ["MatchKind", "ModelCatalog", "ModelRegistry", "NO_MODEL"]


class MatchKind(enum.Enum):
    """How a query was answered."""

    EXACT = "exact"
    FALLBACK = "fallback"
    MISSING = "missing"

    @property
    def is_exact_or_fallback(self) -> bool:
        return self is not MatchKind.MISSING


def _classify(path: IdentifierPath, was_present: bool) -> MatchKind:
    if was_present:
        return MatchKind.EXACT
    if path.trailing_is_ignorable:
        return MatchKind.FALLBACK
    return MatchKind.MISSING


class ModelCatalog:
    """Binds identifier paths of one shape-class to compiled models."""

    def __init__(self, shape_class: str, *, logger: Optional[logging.Logger] = None) -> None:
        self.shape_class = normalize_segment(shape_class)
        self.log = logger or LOG
        self._models: List[CompiledModel] = []
        self._paths: List[IdentifierPath] = []
        self._cache: HierarchicalCache[IdentifierPath, int] = HierarchicalCache.with_default(NO_MODEL)

    # ---------------- load phase ----------------

    def add_model(self, path: Union[IdentifierPath, str], model: CompiledModel) -> int:
        """Append ``model`` and bind ``path`` to it; returns the 1-based index.

        The empty path binds the catalog-wide default instead of a key.
        """
        key = path if isinstance(path, IdentifierPath) else IdentifierPath.parse(path)
        self._models.append(model)
        self._paths.append(key)
        index = len(self._models)
        if key.is_empty():
            self._cache.set_default(index)
        else:
            previous = self._cache.set(key, index)
            if previous is not None:
                self.log.debug("%s: %s rebound from model %d to %d", self.shape_class, key, previous, index)
        return index

    # ---------------- queries ----------------

    def _is_authored(self, path: IdentifierPath) -> bool:
        # The empty path is bound through the cache default, not a key.
        if path.is_empty():
            return self._cache.default != NO_MODEL
        return self._cache.contains(path)

    def model(self, index: int) -> Optional[CompiledModel]:
        if index <= NO_MODEL or index > len(self._models):
            return None
        return self._models[index - 1]

    def get_model_id(self, path: IdentifierPath) -> Tuple[int, MatchKind]:
        """Nearest bound model id for ``path``; never mutates the catalog."""
        index = self._cache.get_recursive(path)
        return (index if index is not None else NO_MODEL), _classify(path, self._is_authored(path))

    def get_model(self, path: IdentifierPath) -> Tuple[Optional[CompiledModel], MatchKind]:
        index, kind = self.get_model_id(path)
        return self.model(index), kind

    def get_model_and_cache(self, path: IdentifierPath) -> Tuple[Optional[CompiledModel], MatchKind]:
        """Like :meth:`get_model` but memoizes the inherited answer at ``path``.

        A missing model is logged once per key: the second query for the
        same key finds the memoized entry and reports an exact match.
        """
        if path.is_empty():
            return self.get_model(path)
        lookup = self._cache.get_or_initialize_with_parent(path)
        kind = _classify(path, lookup.was_present)
        if kind is MatchKind.MISSING:
            self.log.warning("missing model %s:%s", self.shape_class, path)
        return self.model(lookup.value), kind

    # ---------------- introspection ----------------

    @property
    def models(self) -> Tuple[CompiledModel, ...]:
        return tuple(self._models)

    def paths(self) -> Tuple[IdentifierPath, ...]:
        return tuple(self._paths)

    def describe(self) -> List[str]:
        lines = [f"{self.shape_class} ({len(self._models)} model(s))"]
        lines.extend("    " + line for line in self._cache.dump())
        return lines

    def __len__(self) -> int:
        return len(self._models)

    def __repr__(self) -> str:
        return f"ModelCatalog({self.shape_class!r}, models={len(self._models)})"


class ModelRegistry:
    """One :class:`ModelCatalog` per shape-class, keyed case-insensitively."""

    def __init__(self, *, logger: Optional[logging.Logger] = None) -> None:
        self.log = logger or LOG
        self._catalogs: Dict[str, ModelCatalog] = {}

    def catalog(self, shape_class: str) -> ModelCatalog:
        """Return the catalog for ``shape_class``, creating it on first use."""
        key = normalize_segment(shape_class)
        catalog = self._catalogs.get(key)
        if catalog is None:
            catalog = ModelCatalog(key, logger=self.log)
            self._catalogs[key] = catalog
        return catalog

    def get(self, shape_class: str) -> Optional[ModelCatalog]:
        return self._catalogs.get(normalize_segment(shape_class))

    def resolve(
        self, shape_class: str, path: Union[IdentifierPath, str]
    ) -> Tuple[Optional[CompiledModel], MatchKind]:
        """Resolve ``path`` in ``shape_class``, memoizing the answer."""
        key = path if isinstance(path, IdentifierPath) else IdentifierPath.parse(path)
        catalog = self.get(shape_class)
        if catalog is None:
            self.log.debug("No catalog for shape-class %s", shape_class)
            return None, MatchKind.MISSING
        return catalog.get_model_and_cache(key)

    @property
    def shape_classes(self) -> Tuple[str, ...]:
        return tuple(self._catalogs)

    def describe(self) -> List[str]:
        lines: List[str] = []
        for catalog in self._catalogs.values():
            lines.extend(catalog.describe())
        return lines

    def __iter__(self) -> Iterator[ModelCatalog]:
        return iter(self._catalogs.values())

    def __len__(self) -> int:
        return len(self._catalogs)

    def __contains__(self, shape_class: object) -> bool:
        return isinstance(shape_class, str) and normalize_segment(shape_class) in self._catalogs
