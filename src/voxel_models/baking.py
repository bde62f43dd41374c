"""Bake parsed definitions into atlas-ready render primitives.

Baking runs in three steps over a whole load:

1. :meth:`ModelBaker.bake` turns each definition into primitives whose
   texture is still a *variable reference* (an index into the file's
   :class:`~voxel_models.variables.VariableTable`). Inherited definitions
   are baked first, memoized by file path, and their primitives are
   re-emitted with references re-pointed by variable name.
2. :meth:`ModelBaker.resolve_textures` follows every ``#name`` chain to a
   literal texture path and interns it into the load-wide texture table.
3. :meth:`ModelBaker.finalize` receives one atlas placement per texture
   slot and rewrites local UVs into atlas space.

Only after step 3 may :meth:`ModelBaker.compiled` publish models.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Tuple, Union

import numpy as np

from .atlas import AtlasPlacement, UvRemap
from .definitions import (
    CullRule,
    Direction,
    Face,
    GeometryDirective,
    Inherit,
    Mesh,
    MeshImport,
    Params,
    RawDefinition,
    TextureBinding,
)
from .errors import (
    CyclicInheritanceError,
    DefinitionFormatError,
    LoadError,
    MissingInheritedFileError,
    UnresolvedVariableError,
)
from .identifier import IdentifierPath
from .loader import DefinitionLoader
from .mesh_import import ImportedMesh, load_mesh_file
from .variables import TextureTable, VariableTable

LOG = logging.getLogger(__name__)

ClipRect = Tuple[int, int, int, int]
Vec3 = Tuple[float, float, float]

__all__ = [
    "BakedDefinition",
    "BakedPrimitive",
    "CompiledModel",
    "MeshPrimitive",
    "ModelBaker",
    "QUAD_TRIANGLES",
    "QUAD_UVS",
    "QuadPrimitive",
    "ResolvedTexture",
    "TextureSlot",
    "VariableRef",
    "face_basis",
    "build_face_quad",
]


# ---------------- Texture references ----------------


@dataclass(frozen=True)
class VariableRef:
    """Texture still named by its position in the owning file's variables."""

    index: int
    clip: Optional[ClipRect] = None


@dataclass(frozen=True)
class TextureSlot:
    """Texture interned into the load-wide texture table."""

    slot: int
    clip: Optional[ClipRect] = None


@dataclass(frozen=True)
class ResolvedTexture:
    """Final placement: atlas page plus the UV remap already applied."""

    page: int
    slot: int
    remap: UvRemap
    clip: Optional[ClipRect] = None


TextureRef = Union[VariableRef, TextureSlot, ResolvedTexture]


# ---------------- Primitives ----------------


@dataclass(frozen=True, eq=False)
class QuadPrimitive:
    verts: np.ndarray  # (4, 3)
    uvs: np.ndarray  # (4, 2)
    normal: Vec3
    cull: CullRule
    texture: TextureRef
    rotation: float = 0.0


@dataclass(frozen=True, eq=False)
class MeshPrimitive:
    verts: np.ndarray  # (N, 3)
    uvs: np.ndarray  # (N, 2)
    normals: np.ndarray  # (N, 3)
    indices: np.ndarray  # (M,) uint16
    cull: CullRule
    texture: TextureRef


BakedPrimitive = Union[QuadPrimitive, MeshPrimitive]


@dataclass(frozen=True)
class CompiledModel:
    transparent: bool
    primitives: Tuple[BakedPrimitive, ...]

    @property
    def quad_count(self) -> int:
        return sum(1 for p in self.primitives if isinstance(p, QuadPrimitive))

    def __str__(self) -> str:
        return f"quads: {self.quad_count}, meshes: {len(self.primitives) - self.quad_count}"


@dataclass
class BakedDefinition:
    source: Path
    identifier: IdentifierPath
    variables: Optional[VariableTable]
    primitives: List[BakedPrimitive] = field(default_factory=list)
    transparent: bool = False
    published: bool = False


# ---------------- Face geometry ----------------

# (width axis, height axis, normal); height x width == normal keeps the
# triangles below counter-clockwise when seen from the normal side.
_FACE_BASES: Dict[Direction, Tuple[Vec3, Vec3, Vec3]] = {
    Direction.UP: ((1.0, 0.0, 0.0), (0.0, 0.0, 1.0), (0.0, 1.0, 0.0)),
    Direction.DOWN: ((1.0, 0.0, 0.0), (0.0, 0.0, -1.0), (0.0, -1.0, 0.0)),
    Direction.RIGHT: ((0.0, 0.0, 1.0), (0.0, 1.0, 0.0), (1.0, 0.0, 0.0)),
    Direction.LEFT: ((0.0, 0.0, -1.0), (0.0, 1.0, 0.0), (-1.0, 0.0, 0.0)),
    Direction.FORWARD: ((-1.0, 0.0, 0.0), (0.0, 1.0, 0.0), (0.0, 0.0, 1.0)),
    Direction.BACKWARDS: ((1.0, 0.0, 0.0), (0.0, 1.0, 0.0), (0.0, 0.0, -1.0)),
}

_QUAD_CORNERS = ((-1.0, -1.0), (1.0, -1.0), (-1.0, 1.0), (1.0, 1.0))
QUAD_UVS = np.asarray([(0.0, 0.0), (1.0, 0.0), (0.0, 1.0), (1.0, 1.0)], dtype=np.float32)
QUAD_TRIANGLES = (0, 2, 1, 2, 3, 1)


def face_basis(direction: Direction) -> Tuple[Vec3, Vec3, Vec3]:
    return _FACE_BASES[direction]


def build_face_quad(face: Face) -> Tuple[np.ndarray, np.ndarray, Vec3]:
    """Return ``(verts, uvs, normal)`` for a face directive.

    ``face.rotation`` is not applied.
    """
    width_axis, height_axis, normal = face_basis(face.direction)
    w = np.asarray(width_axis, dtype=np.float32) * (face.size[0] / 2.0)
    h = np.asarray(height_axis, dtype=np.float32) * (face.size[1] / 2.0)
    offset = np.asarray(face.offset, dtype=np.float32)
    verts = np.stack([sx * w + sy * h + offset for sx, sy in _QUAD_CORNERS]).astype(np.float32)
    return verts, QUAD_UVS.copy(), normal


# ---------------- Baker ----------------

MeshReader = Callable[[Path], ImportedMesh]


class ModelBaker:
    """Depth-first, memoized baker for one build."""

    def __init__(
        self,
        loader: DefinitionLoader,
        *,
        mesh_reader: MeshReader = load_mesh_file,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.loader = loader
        self.mesh_reader = mesh_reader
        self.log = logger or LOG
        self.textures = TextureTable()
        self._baked: Dict[Path, BakedDefinition] = {}
        self._in_progress: List[Path] = []
        self._meshes: Dict[Path, ImportedMesh] = {}
        self._textures_resolved = False
        self._finalized = False

    def __len__(self) -> int:
        return len(self._baked)

    def baked(self, source: Path) -> BakedDefinition:
        return self._baked[Path(source).resolve()]

    # ---------------- step 1: bake ----------------

    def bake(self, definition: RawDefinition) -> BakedDefinition:
        """Bake a loaded definition and mark it for publication.

        Definitions reached only through ``inherit`` are baked too, but stay
        unpublished: their own bindings may leave indirections for children
        to fill, so they skip texture resolution.
        """
        baked = self._bake(definition)
        baked.published = True
        return baked

    def bake_file(self, path: Path) -> BakedDefinition:
        baked = self._bake_file(path)
        baked.published = True
        return baked

    def _bake_file(self, path: Path) -> BakedDefinition:
        source = Path(path).resolve()
        existing = self._baked.get(source)
        if existing is not None:
            return existing
        self._guard_cycle(source)
        try:
            _, identifier = self.loader.identifier_for(source)
        except LoadError:
            # Shared templates may sit directly under the models root.
            identifier = IdentifierPath.root()
        return self._bake(self.loader.read_definition(source, identifier))

    def _bake(self, definition: RawDefinition) -> BakedDefinition:
        if self._textures_resolved:
            raise RuntimeError("Cannot bake new definitions after textures were resolved")
        source = Path(definition.source).resolve()
        existing = self._baked.get(source)
        if existing is not None:
            return existing
        self._guard_cycle(source)

        self._in_progress.append(source)
        try:
            variables = VariableTable()
            # Own params first, so they win over anything merged from parents
            # wherever the inherit directives sit in the file.
            for directive in definition.directives:
                if isinstance(directive, Params):
                    for name, expr in directive.bindings:
                        if not variables.declare(name, expr):
                            self.log.debug("Ignoring duplicate binding '%s' in %s", name, source)

            parents: List[BakedDefinition] = []
            for directive in definition.directives:
                if isinstance(directive, Inherit):
                    target = self.loader.locate(directive.target)
                    if target is None:
                        raise MissingInheritedFileError(directive.target, source=source)
                    parent = self._bake_file(target)
                    variables.merge(parent.variables)
                    parents.append(parent)

            primitives: List[BakedPrimitive] = []
            remaining_parents = iter(parents)
            for directive in definition.directives:
                if isinstance(directive, Inherit):
                    parent = next(remaining_parents)
                    primitives.extend(self._reemit(parent, variables))
                elif isinstance(directive, (Face, Mesh, MeshImport)):
                    primitives.append(self._bake_geometry(directive, variables, source))
        finally:
            self._in_progress.pop()

        if definition.transparent is not None:
            transparent = definition.transparent
        else:
            transparent = parents[-1].transparent if parents else False

        baked = BakedDefinition(
            source=source,
            identifier=definition.identifier,
            variables=variables,
            primitives=primitives,
            transparent=transparent,
        )
        self._baked[source] = baked
        self.log.debug("Baked %s: %d primitive(s), %d variable(s)", source, len(primitives), len(variables))
        return baked

    def _guard_cycle(self, source: Path) -> None:
        if source in self._in_progress:
            start = self._in_progress.index(source)
            raise CyclicInheritanceError(self._in_progress[start:] + [source])

    @staticmethod
    def _reemit(parent: BakedDefinition, variables: VariableTable) -> List[BakedPrimitive]:
        out: List[BakedPrimitive] = []
        for primitive in parent.primitives:
            ref = primitive.texture
            if not isinstance(ref, VariableRef):
                raise RuntimeError(f"inherited primitive from {parent.source} is already resolved: {ref!r}")
            index = variables.reindex(ref.index, parent.variables)
            out.append(replace(primitive, texture=VariableRef(index, ref.clip)))
        return out

    @staticmethod
    def _bind(binding: TextureBinding, variables: VariableTable, source: Path) -> VariableRef:
        index = variables.index_of(binding.name)
        if index is None:
            raise UnresolvedVariableError(binding.name, source=source)
        return VariableRef(index, binding.clip)

    def _bake_geometry(self, directive: GeometryDirective, variables: VariableTable, source: Path) -> BakedPrimitive:
        texture = self._bind(directive.texture, variables, source)
        if isinstance(directive, Face):
            verts, uvs, normal = build_face_quad(directive)
            return QuadPrimitive(
                verts=verts,
                uvs=uvs,
                normal=normal,
                cull=directive.cull,
                texture=texture,
                rotation=directive.rotation,
            )
        if isinstance(directive, Mesh):
            return MeshPrimitive(
                verts=directive.verts,
                uvs=directive.uvs,
                normals=directive.normals,
                indices=directive.indices.reshape(-1).astype(np.uint16),
                cull=directive.cull,
                texture=texture,
            )
        mesh = self._import_mesh(directive.path)
        return MeshPrimitive(
            verts=mesh.vertices,
            uvs=mesh.uvs,
            normals=mesh.normals,
            indices=mesh.indices,
            cull=directive.cull,
            texture=texture,
        )

    def _import_mesh(self, reference: str) -> ImportedMesh:
        path = self.loader.resolve_asset(reference).resolve()
        mesh = self._meshes.get(path)
        if mesh is None:
            mesh = self.mesh_reader(path)
            self._meshes[path] = mesh
            self.log.debug("Imported %s: %d vertices, %d triangle(s)", path, len(mesh.vertices), mesh.triangle_count)
        return mesh

    # ---------------- step 2: indirection pass ----------------

    def _published(self) -> Iterator[BakedDefinition]:
        return (baked for baked in self._baked.values() if baked.published)

    def resolve_textures(self) -> TextureTable:
        """Resolve every variable chain and intern the literal texture paths."""
        for baked in self._published():
            resolved: List[BakedPrimitive] = []
            for primitive in baked.primitives:
                ref = primitive.texture
                if isinstance(ref, VariableRef):
                    literal = baked.variables.resolve(ref.index, source=baked.source)
                    ref = TextureSlot(self.textures.intern(literal), ref.clip)
                    primitive = replace(primitive, texture=ref)
                resolved.append(primitive)
            baked.primitives = resolved
        self._textures_resolved = True
        self.log.info("Interned %d texture(s) across %d definition(s)", len(self.textures), sum(1 for _ in self._published()))
        return self.textures

    # ---------------- step 3: finalisation ----------------

    def finalize(self, placements: Sequence[AtlasPlacement]) -> None:
        """Apply atlas placements (one per texture slot) to every primitive."""
        if not self._textures_resolved:
            self.resolve_textures()
        if len(placements) != len(self.textures):
            raise ValueError(f"expected {len(self.textures)} placement(s), got {len(placements)}")
        for baked in self._published():
            finished: List[BakedPrimitive] = []
            for primitive in baked.primitives:
                ref = primitive.texture
                if isinstance(ref, TextureSlot):
                    placement = placements[ref.slot]
                    try:
                        remap = placement.remap(ref.clip)
                    except ValueError as exc:
                        raise DefinitionFormatError(baked.source, f"texture '{self.textures[ref.slot]}': {exc}") from exc
                    primitive = replace(
                        primitive,
                        uvs=remap.apply(primitive.uvs),
                        texture=ResolvedTexture(page=placement.page, slot=ref.slot, remap=remap, clip=ref.clip),
                    )
                finished.append(primitive)
            baked.primitives = finished
            baked.variables = None
        self._finalized = True

    def compiled(self, source: Path) -> CompiledModel:
        if not self._finalized:
            raise RuntimeError("Models can only be published after finalize()")
        baked = self.baked(source)
        if not baked.published:
            raise RuntimeError(f"{baked.source} was only baked as an inherited template")
        return CompiledModel(transparent=baked.transparent, primitives=tuple(baked.primitives))
