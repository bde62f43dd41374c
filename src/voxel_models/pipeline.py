"""Two-phase model build: loading, texture barrier, finalization.

Loading discovers, parses and bakes every definition with placeholder
texture references and interns the texture paths they resolve to. The
texture store then decodes every interned texture; :meth:`wait_until_ready`
is the only point where the build waits. Finalization packs the atlas,
rewrites UVs and publishes one catalog per shape-class. A failure anywhere
aborts the whole build.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union

from PIL import Image

from .atlas import (
    DEFAULT_PADDING,
    DEFAULT_PAGE_SIZE,
    AtlasPlacement,
    FileTextureStore,
    TextureAtlasAllocator,
    TextureStore,
    compose_pages,
)
from .baking import ModelBaker
from .catalog import ModelRegistry
from .config.manifest import BuildManifest
from .loader import DEFAULT_DEFINITION_NAME, DefinitionLoader
from .materials import MaterialRegistry

LOG = logging.getLogger(__name__)

PathLike = Union[str, Path]

__all__ = [
    "BUILD_DEFAULTS",
    "BuildDefaults",
    "BuildResult",
    "BuildSettings",
    "build_registry",
]


@dataclass(frozen=True)
class BuildDefaults:
    default_name: str = DEFAULT_DEFINITION_NAME
    page_size: int = DEFAULT_PAGE_SIZE
    padding: int = DEFAULT_PADDING
    texture_workers: int = 4


BUILD_DEFAULTS = BuildDefaults()


@dataclass(slots=True)
class BuildSettings:
    """Inputs that drive a build via :func:`build_registry`.

    Explicit values win over the manifest, which wins over
    :data:`BUILD_DEFAULTS`.
    """

    models_root: Optional[PathLike] = None
    textures_root: Optional[PathLike] = None
    manifest: Optional[BuildManifest] = None
    manifest_path: Optional[PathLike] = None
    shape_classes: Optional[Sequence[str]] = None
    default_name: Optional[str] = None
    page_size: Optional[int] = None
    padding: Optional[int] = None
    materials_path: Optional[PathLike] = None
    texture_workers: int = BUILD_DEFAULTS.texture_workers
    logger: Optional[logging.Logger] = None


@dataclass(frozen=True)
class _ResolvedInputs:
    models_root: Path
    textures_root: Path
    default_name: str
    shape_classes: Optional[Tuple[str, ...]]
    page_size: int
    padding: int
    materials_path: Optional[Path]


@dataclass
class BuildResult:
    registry: ModelRegistry
    textures: Tuple[str, ...]
    placements: List[AtlasPlacement]
    pages: List[Image.Image] = field(default_factory=list)
    materials: Optional[MaterialRegistry] = None
    page_size: int = DEFAULT_PAGE_SIZE

    @property
    def model_count(self) -> int:
        return sum(len(catalog) for catalog in self.registry)

    def save_pages(self, directory: PathLike) -> List[Path]:
        """Write atlas pages as ``atlas_<n>.png``; returns the written paths."""
        out_dir = Path(directory)
        out_dir.mkdir(parents=True, exist_ok=True)
        written: List[Path] = []
        for number, page in enumerate(self.pages):
            target = out_dir / f"atlas_{number}.png"
            page.save(target)
            written.append(target)
        return written


def _resolve_manifest(settings: BuildSettings) -> Optional[BuildManifest]:
    if settings.manifest is not None:
        return settings.manifest
    if settings.manifest_path is None:
        return None
    return BuildManifest.from_file(Path(settings.manifest_path).resolve())


def _resolve_inputs(settings: BuildSettings) -> _ResolvedInputs:
    manifest = _resolve_manifest(settings)

    if settings.models_root is not None:
        models_root = Path(settings.models_root)
    elif manifest is not None:
        models_root = manifest.models_root
    else:
        raise ValueError("BuildSettings requires either 'models_root' or a manifest")

    if settings.textures_root is not None:
        textures_root = Path(settings.textures_root)
    elif manifest is not None and settings.models_root is None:
        textures_root = manifest.textures_root
    else:
        textures_root = models_root

    def _pick(explicit, from_manifest, default):
        if explicit is not None:
            return explicit
        if manifest is not None and from_manifest is not None:
            return from_manifest
        return default

    shapes = _pick(settings.shape_classes, manifest.shape_classes if manifest else None, None)
    materials = _pick(settings.materials_path, manifest.materials if manifest else None, None)
    return _ResolvedInputs(
        models_root=models_root,
        textures_root=textures_root,
        default_name=_pick(settings.default_name, manifest.default_name if manifest else None, BUILD_DEFAULTS.default_name),
        shape_classes=tuple(shapes) if shapes is not None else None,
        page_size=_pick(settings.page_size, manifest.atlas.page_size if manifest else None, BUILD_DEFAULTS.page_size),
        padding=_pick(settings.padding, manifest.atlas.padding if manifest else None, BUILD_DEFAULTS.padding),
        materials_path=Path(materials) if materials is not None else None,
    )


def build_registry(settings: BuildSettings, *, texture_store: Optional[TextureStore] = None) -> BuildResult:
    """Load, bake, pack and publish every model described by ``settings``.

    ``texture_store`` replaces the default :class:`FileTextureStore` rooted at
    the textures root; a store passed in is not closed here.
    """
    log = settings.logger or LOG
    inputs = _resolve_inputs(settings)

    # ---------------- loading ----------------
    loader = DefinitionLoader(inputs.models_root, default_name=inputs.default_name, logger=log)
    shape_sets = loader.load_all(inputs.shape_classes)
    baker = ModelBaker(loader, logger=log)
    for shape_set in shape_sets:
        for definition in shape_set.definitions:
            baker.bake(definition)
    textures = baker.resolve_textures()

    owned_store = texture_store is None
    store: TextureStore = FileTextureStore(inputs.textures_root, max_workers=settings.texture_workers) if owned_store else texture_store
    try:
        for path in textures:
            store.request(path)
        infos = store.wait_until_ready()

        # ---------------- finalization ----------------
        allocator = TextureAtlasAllocator(inputs.page_size, inputs.padding)
        placements = allocator.allocate([infos[path] for path in textures])
        baker.finalize(placements)
        pages = compose_pages(textures.paths, placements, store)
    finally:
        if owned_store:
            store.close()

    registry = ModelRegistry(logger=log)
    for shape_set in shape_sets:
        catalog = registry.catalog(shape_set.shape_class)
        for definition in shape_set.definitions:
            catalog.add_model(definition.identifier, baker.compiled(definition.source))
        log.info("Catalog %s: %d model(s)", catalog.shape_class, len(catalog))
        if log.isEnabledFor(logging.DEBUG):
            for line in catalog.describe():
                log.debug("%s", line)

    materials = None
    if inputs.materials_path is not None:
        materials = MaterialRegistry.from_file(inputs.materials_path, logger=log)

    return BuildResult(
        registry=registry,
        textures=textures.paths,
        placements=placements,
        pages=pages,
        materials=materials,
        page_size=inputs.page_size,
    )
