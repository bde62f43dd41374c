from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

from ..atlas import DEFAULT_PADDING, DEFAULT_PAGE_SIZE
from ..loader import DEFAULT_DEFINITION_NAME

LOG = logging.getLogger(__name__)

_KNOWN_KEYS = frozenset(
    {"models_root", "textures_root", "default_name", "shape_classes", "atlas", "materials"}
)


@dataclass(frozen=True)
class AtlasConfig:
    page_size: int = DEFAULT_PAGE_SIZE
    padding: int = DEFAULT_PADDING

    @classmethod
    def from_mapping(cls, data: Optional[Dict[str, Any]]) -> "AtlasConfig":
        if not data:
            return cls()
        if not isinstance(data, dict):
            raise ValueError("'atlas' must be a mapping")
        page_size = int(data.get("page_size", DEFAULT_PAGE_SIZE))
        padding = int(data.get("padding", DEFAULT_PADDING))
        if page_size <= 0:
            raise ValueError("atlas.page_size must be positive")
        if padding < 0:
            raise ValueError("atlas.padding must not be negative")
        return cls(page_size=page_size, padding=padding)


@dataclass(frozen=True)
class BuildManifest:
    """Paths and knobs for one model build, relative paths already resolved."""

    models_root: Path
    textures_root: Path
    default_name: str = DEFAULT_DEFINITION_NAME
    shape_classes: Optional[Tuple[str, ...]] = None
    atlas: AtlasConfig = field(default_factory=AtlasConfig)
    materials: Optional[Path] = None
    source: Optional[Path] = None

    @classmethod
    def from_mapping(cls, data: Dict[str, Any], *, base_dir: Optional[Path] = None) -> "BuildManifest":
        base = Path(base_dir) if base_dir is not None else Path.cwd()

        def _path(value: Any) -> Path:
            candidate = Path(str(value)).expanduser()
            return candidate if candidate.is_absolute() else (base / candidate)

        for key in sorted(set(data) - _KNOWN_KEYS):
            LOG.warning("Ignoring unknown manifest key '%s'", key)

        raw_models = data.get("models_root")
        if not raw_models:
            raise ValueError("Manifest must define 'models_root'")
        models_root = _path(raw_models)
        raw_textures = data.get("textures_root")
        textures_root = _path(raw_textures) if raw_textures else models_root

        default_name = str(data.get("default_name") or DEFAULT_DEFINITION_NAME)

        shape_classes: Optional[Tuple[str, ...]] = None
        raw_shapes = data.get("shape_classes")
        if raw_shapes is not None:
            if isinstance(raw_shapes, str):
                raw_shapes = [raw_shapes]
            if not isinstance(raw_shapes, (list, tuple)):
                raise ValueError("'shape_classes' must be a list of names")
            shape_classes = tuple(str(name) for name in raw_shapes)

        raw_materials = data.get("materials")
        return cls(
            models_root=models_root,
            textures_root=textures_root,
            default_name=default_name,
            shape_classes=shape_classes,
            atlas=AtlasConfig.from_mapping(data.get("atlas")),
            materials=_path(raw_materials) if raw_materials else None,
        )

    @classmethod
    def from_file(cls, path: Path) -> "BuildManifest":
        path = Path(path)
        text = path.read_text(encoding="utf-8")
        data = cls._load_data_from_text(text, suffix=path.suffix)
        manifest = cls.from_mapping(data, base_dir=path.resolve().parent)
        return replace(manifest, source=path)

    @classmethod
    def from_text(cls, text: str, *, suffix: str, base_dir: Optional[Path] = None) -> "BuildManifest":
        data = cls._load_data_from_text(text, suffix=suffix)
        return cls.from_mapping(data, base_dir=base_dir)

    @staticmethod
    def _load_data_from_text(text: str, *, suffix: str) -> Dict[str, Any]:
        ext = (suffix or "").lower()
        if ext in {".yaml", ".yml"}:
            loaded = yaml.safe_load(text)
            if not isinstance(loaded, dict):
                raise ValueError("YAML manifest must define a mapping at the top level")
            return loaded
        if ext == ".json":
            loaded = json.loads(text)
            if not isinstance(loaded, dict):
                raise ValueError("JSON manifest must define a mapping at the top level")
            return loaded
        raise ValueError(f"Unsupported manifest type: {suffix}")


__all__ = ["AtlasConfig", "BuildManifest"]
