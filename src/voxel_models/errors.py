"""Exception taxonomy for the model loading pipeline.

Every error raised while loading, baking or finalising a catalog derives
from :class:`ModelLoadingError`; any of them aborts the whole build.
Query-time outcomes (exact / fallback / missing) are *not* errors and are
reported through :class:`voxel_models.catalog.MatchKind` instead.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Sequence, Union

PathLike = Union[str, Path]

__all__ = [
    "ModelLoadingError",
    "LoadError",
    "DefinitionFormatError",
    "UnresolvedVariableError",
    "CyclicIndirectionError",
    "CyclicInheritanceError",
    "MissingInheritedFileError",
    "MeshImportError",
    "CacheDefaultRequiredError",
]


class ModelLoadingError(Exception):
    """Base class for fatal catalog build failures."""


class LoadError(ModelLoadingError):
    """A definition file could not be read or parsed."""

    def __init__(self, path: PathLike, message: str) -> None:
        self.path = Path(path)
        super().__init__(f"Failed to load {self.path}: {message}")


class DefinitionFormatError(LoadError):
    """A directive inside a definition file is malformed."""


class UnresolvedVariableError(ModelLoadingError):
    """A directive references a binding that no ``params`` declares."""

    def __init__(self, binding: str, *, source: Optional[PathLike] = None) -> None:
        self.binding = binding
        self.source = Path(source) if source is not None else None
        where = f" in {self.source}" if self.source is not None else ""
        super().__init__(f"Unresolved variable '{binding}'{where}")


class CyclicIndirectionError(ModelLoadingError):
    """A ``#name`` indirection chain revisits a variable."""

    def __init__(self, chain: Sequence[str], *, source: Optional[PathLike] = None) -> None:
        self.chain = tuple(chain)
        self.source = Path(source) if source is not None else None
        where = f" in {self.source}" if self.source is not None else ""
        super().__init__(f"Cyclic variable indirection{where}: {' -> '.join(self.chain)}")


class CyclicInheritanceError(ModelLoadingError):
    """A definition inherits (directly or transitively) from itself."""

    def __init__(self, chain: Sequence[PathLike]) -> None:
        self.chain = tuple(Path(p) for p in chain)
        super().__init__("Cyclic inheritance: " + " -> ".join(p.as_posix() for p in self.chain))


class MissingInheritedFileError(ModelLoadingError):
    """An ``inherit`` directive points at a definition that does not exist."""

    def __init__(self, target: str, *, source: Optional[PathLike] = None) -> None:
        self.target = target
        self.source = Path(source) if source is not None else None
        where = f" (referenced from {self.source})" if self.source is not None else ""
        super().__init__(f"Inherited definition '{target}' not found{where}")


class MeshImportError(ModelLoadingError):
    """An external mesh file is malformed or unsupported."""

    def __init__(self, path: PathLike, message: str, *, line: Optional[int] = None) -> None:
        self.path = Path(path)
        self.line = line
        location = f"{self.path}:{line}" if line is not None else str(self.path)
        super().__init__(f"Error while loading mesh at ({location}): {message}")


class CacheDefaultRequiredError(RuntimeError):
    """Lazy initialisation was requested on a cache without a global default."""
