"""Discover and parse definition files laid out as a namespace tree.

Directory names become uppercased identifier segments. A file whose stem is
the reserved default name (``mod``) binds to its directory's identifier;
any other file appends its stem as a trailing segment::

    models/wall/mod.yaml            -> wall catalog, root (catalog default)
    models/wall/granite.yaml        -> wall catalog, GRANITE
    models/wall/wood/structural.yml -> wall catalog, WOOD:STRUCTURAL
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Any, List, Optional, Sequence, Tuple, Union

import yaml

from .definitions import RawDefinition, parse_definition
from .errors import LoadError
from .identifier import IdentifierPath

LOG = logging.getLogger(__name__)

PathLike = Union[str, Path]

DEFAULT_DEFINITION_NAME = "mod"
DEFINITION_SUFFIXES = (".yaml", ".yml", ".json")

__all__ = [
    "DEFAULT_DEFINITION_NAME",
    "DEFINITION_SUFFIXES",
    "DefinitionLoader",
    "ShapeClassDefinitions",
    "load_structured_text",
]


def load_structured_text(text: str, *, suffix: str, source: PathLike) -> Any:
    """Decode YAML or JSON text according to ``suffix``."""
    ext = (suffix or "").lower()
    try:
        if ext in {".yaml", ".yml"}:
            return yaml.safe_load(text)
        if ext == ".json":
            return json.loads(text)
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        raise LoadError(source, f"invalid {ext.lstrip('.')} document: {exc}") from exc
    raise LoadError(source, f"unsupported definition type: {suffix}")


@dataclass
class ShapeClassDefinitions:
    """Every definition found beneath one shape-class directory, in load order."""

    shape_class: str
    root: Path
    definitions: List[RawDefinition] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.definitions)


class DefinitionLoader:
    """Walk a models root and produce one :class:`RawDefinition` per file."""

    def __init__(
        self,
        models_root: PathLike,
        *,
        default_name: str = DEFAULT_DEFINITION_NAME,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.models_root = Path(models_root).resolve()
        self.default_name = default_name.lower()
        self.log = logger or LOG

    # ---------------- discovery ----------------

    def shape_classes(self) -> List[str]:
        """Names of the top-level shape-class directories, sorted."""
        if not self.models_root.is_dir():
            raise LoadError(self.models_root, "models root is not a directory")
        return sorted(
            entry.name
            for entry in self.models_root.iterdir()
            if entry.is_dir() and not entry.name.startswith(".")
        )

    def load_all(self, shape_classes: Optional[Sequence[str]] = None) -> List[ShapeClassDefinitions]:
        names = list(shape_classes) if shape_classes else self.shape_classes()
        return [self.load_shape_class(name) for name in names]

    def load_shape_class(self, shape_class: str) -> ShapeClassDefinitions:
        root = self.models_root / shape_class
        if not root.is_dir():
            raise LoadError(root, f"shape class directory '{shape_class}' does not exist")
        self.log.info("Loading %s definitions from %s", shape_class, root)
        definitions = self._scan_dir(root, ())
        self.log.info("Loaded %d definition(s) for %s", len(definitions), shape_class)
        return ShapeClassDefinitions(shape_class=shape_class.upper(), root=root, definitions=definitions)

    def _scan_dir(self, directory: Path, segments: Tuple[str, ...]) -> List[RawDefinition]:
        # Each level returns its own results; nothing is shared across calls.
        try:
            entries = sorted(directory.iterdir(), key=lambda p: p.name)
        except OSError as exc:
            raise LoadError(directory, str(exc)) from exc
        found: List[RawDefinition] = []
        subdirs: List[Path] = []
        for entry in entries:
            if entry.name.startswith("."):
                continue
            if entry.is_dir():
                subdirs.append(entry)
            elif entry.suffix.lower() in DEFINITION_SUFFIXES:
                identifier = IdentifierPath(segments + self._file_segments(entry))
                found.append(self.read_definition(entry, identifier))
            else:
                self.log.debug("Skipping non-definition file %s", entry)
        for subdir in subdirs:
            found.extend(self._scan_dir(subdir, segments + (subdir.name,)))
        return found

    def _file_segments(self, path: Path) -> Tuple[str, ...]:
        if path.stem.lower() == self.default_name:
            return ()
        return (path.stem,)

    # ---------------- single files ----------------

    def identifier_for(self, path: PathLike) -> Tuple[str, IdentifierPath]:
        """Return ``(shape_class, identifier)`` for a file under the models root."""
        file_path = Path(path).resolve()
        try:
            relative = file_path.relative_to(self.models_root)
        except ValueError:
            raise LoadError(file_path, f"not located under {self.models_root}") from None
        parts = relative.parts
        if len(parts) < 2:
            raise LoadError(file_path, "definitions must live inside a shape class directory")
        shape_class, dirs = parts[0], parts[1:-1]
        return shape_class.upper(), IdentifierPath(tuple(dirs) + self._file_segments(file_path))

    def read_definition(self, path: PathLike, identifier: Optional[IdentifierPath] = None) -> RawDefinition:
        file_path = Path(path)
        if identifier is None:
            _, identifier = self.identifier_for(file_path)
        self.log.debug("loading %s as %s", file_path, identifier or "<default>")
        try:
            text = file_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise LoadError(file_path, str(exc)) from exc
        data = load_structured_text(text, suffix=file_path.suffix, source=file_path)
        return parse_definition(data, identifier=identifier, source=file_path.resolve())

    def locate(self, reference: str) -> Optional[Path]:
        """Find the definition file an ``inherit`` reference points to.

        References are relative to the models root and normally omit the
        extension (``wall/mod``); an explicit extension is honoured.
        """
        rel = PurePosixPath(reference.strip().replace("\\", "/").lstrip("/"))
        base = self.models_root.joinpath(*rel.parts)
        if base.suffix.lower() in DEFINITION_SUFFIXES and base.is_file():
            return base.resolve()
        for suffix in DEFINITION_SUFFIXES:
            candidate = base.with_name(base.name + suffix)
            if candidate.is_file():
                return candidate.resolve()
        return None

    def resolve_asset(self, reference: str) -> Path:
        """Resolve a mesh or other asset path relative to the models root."""
        rel = PurePosixPath(reference.strip().replace("\\", "/").lstrip("/"))
        return self.models_root.joinpath(*rel.parts)
