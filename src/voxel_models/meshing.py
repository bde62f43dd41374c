"""Assemble render buffers for a chunk of tiles from compiled models."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional, Tuple

import numpy as np

from .baking import QUAD_TRIANGLES, BakedPrimitive, CompiledModel, MeshPrimitive, ResolvedTexture
from .catalog import ModelRegistry
from .definitions import Direction
from .materials import MaterialPair, MaterialRegistry

LOG = logging.getLogger(__name__)

SolidFn = Callable[[int, int, int], bool]

__all__ = ["ChunkMesh", "MeshBuffers", "TileInstance", "build_chunk_mesh", "flatten_model", "occupancy_mask"]


def occupancy_mask(is_solid: SolidFn, x: int, y: int, z: int) -> int:
    """6-bit mask of occupied neighbours around ``(x, y, z)``."""
    mask = 0
    for direction in Direction:
        dx, dy, dz = direction.vector
        if is_solid(x + dx, y + dy, z + dz):
            mask |= direction.bit
    return mask


@dataclass(frozen=True)
class TileInstance:
    position: Tuple[int, int, int]
    tile_id: int
    material: MaterialPair
    hidden: bool = False


@dataclass
class ChunkMesh:
    positions: np.ndarray  # (N, 3) float32
    uvs: np.ndarray  # (N, 2) float32
    normals: np.ndarray  # (N, 3) float32
    pages: np.ndarray  # (N,) int32 atlas page per vertex
    indices: np.ndarray  # (M,) uint32

    @property
    def vertex_count(self) -> int:
        return len(self.positions)

    @property
    def triangle_count(self) -> int:
        return len(self.indices) // 3

    def is_empty(self) -> bool:
        return self.vertex_count == 0


@dataclass
class MeshBuffers:
    """Growable vertex/index lists flattened into a :class:`ChunkMesh`."""

    positions: List[np.ndarray] = field(default_factory=list)
    uvs: List[np.ndarray] = field(default_factory=list)
    normals: List[np.ndarray] = field(default_factory=list)
    pages: List[np.ndarray] = field(default_factory=list)
    indices: List[np.ndarray] = field(default_factory=list)
    vertex_count: int = 0

    def append(self, primitive: BakedPrimitive, offset: Tuple[float, float, float] = (0.0, 0.0, 0.0)) -> None:
        verts = np.asarray(primitive.verts, dtype=np.float32) + np.asarray(offset, dtype=np.float32)
        count = len(verts)
        if isinstance(primitive, MeshPrimitive):
            normals = np.asarray(primitive.normals, dtype=np.float32)
            local = np.asarray(primitive.indices, dtype=np.uint32)
        else:
            normals = np.tile(np.asarray(primitive.normal, dtype=np.float32), (count, 1))
            local = np.asarray(QUAD_TRIANGLES, dtype=np.uint32)
        texture = primitive.texture
        page = texture.page if isinstance(texture, ResolvedTexture) else 0

        self.positions.append(verts)
        self.uvs.append(np.asarray(primitive.uvs, dtype=np.float32))
        self.normals.append(normals)
        self.pages.append(np.full(count, page, dtype=np.int32))
        self.indices.append(local + np.uint32(self.vertex_count))
        self.vertex_count += count

    def build(self) -> ChunkMesh:
        if not self.positions:
            return ChunkMesh(
                positions=np.zeros((0, 3), dtype=np.float32),
                uvs=np.zeros((0, 2), dtype=np.float32),
                normals=np.zeros((0, 3), dtype=np.float32),
                pages=np.zeros(0, dtype=np.int32),
                indices=np.zeros(0, dtype=np.uint32),
            )
        return ChunkMesh(
            positions=np.concatenate(self.positions),
            uvs=np.concatenate(self.uvs),
            normals=np.concatenate(self.normals),
            pages=np.concatenate(self.pages),
            indices=np.concatenate(self.indices),
        )


def flatten_model(model: CompiledModel) -> ChunkMesh:
    """All primitives of ``model`` as one mesh, ignoring cull rules."""
    buffers = MeshBuffers()
    for primitive in model.primitives:
        buffers.append(primitive)
    return buffers.build()


def build_chunk_mesh(
    tiles: Iterable[TileInstance],
    materials: MaterialRegistry,
    models: ModelRegistry,
    is_solid: SolidFn,
    *,
    logger: Optional[logging.Logger] = None,
) -> ChunkMesh:
    """Mesh every visible tile whose material and shape resolve to a model.

    Tiles with an unknown tiletype, a material without an identifier, or no
    resolvable model are skipped. Primitives are kept only when their cull
    rule is visible under the tile's neighbour mask.
    """
    log = logger or LOG
    buffers = MeshBuffers()
    skipped = 0
    for tile in tiles:
        if tile.hidden:
            continue
        shape = materials.shape_for_tiletype(tile.tile_id)
        identifier = materials.identifier_for(tile.material)
        if shape is None or identifier is None:
            skipped += 1
            continue
        model, _kind = models.resolve(shape, identifier)
        if model is None:
            skipped += 1
            continue
        x, y, z = tile.position
        mask = occupancy_mask(is_solid, x, y, z)
        for primitive in model.primitives:
            if primitive.cull.is_visible(mask):
                buffers.append(primitive, (float(x), float(y), float(z)))
    mesh = buffers.build()
    log.debug("Chunk mesh: %d vertices, %d triangle(s), %d tile(s) skipped", mesh.vertex_count, mesh.triangle_count, skipped)
    return mesh
