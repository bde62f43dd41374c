"""Wavefront OBJ reader producing de-duplicated vertex/index buffers.

Supported records: ``v x y z [w]`` (divided by ``w`` when present),
``vt u [v]``, ``vn x y z`` and ``f`` with ``v/vt/vn`` index triples
(1-based, negative values count back from the end). Faces with four or
more corners are fanned into triangles, so a quad ``a b c d`` becomes
``a b c`` + ``a c d`` sharing the ``a-c`` diagonal. Comments and blank
lines are ignored; any other record type is logged and skipped.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Sequence, Tuple, Union

import numpy as np

from .errors import MeshImportError

LOG = logging.getLogger(__name__)

PathLike = Union[str, Path]
MAX_VERTICES = 0x10000

__all__ = ["ImportedMesh", "load_mesh_file", "parse_wavefront"]


@dataclass(frozen=True, eq=False)
class ImportedMesh:
    vertices: np.ndarray  # (N, 3) float32
    uvs: np.ndarray  # (N, 2) float32
    normals: np.ndarray  # (N, 3) float32
    indices: np.ndarray  # (M,) uint16, three per triangle

    @property
    def triangle_count(self) -> int:
        return int(self.indices.size // 3)


def load_mesh_file(path: PathLike) -> ImportedMesh:
    """Load an external mesh; only ``.obj`` files are understood."""
    file_path = Path(path)
    extension = file_path.suffix.lower()
    if not extension:
        raise MeshImportError(file_path, "No extension found on path")
    if extension != ".obj":
        raise MeshImportError(file_path, f"Invalid extension: {extension.lstrip('.')}")
    try:
        with file_path.open("r", encoding="utf-8") as handle:
            lines = handle.readlines()
    except (OSError, UnicodeDecodeError) as exc:
        raise MeshImportError(file_path, str(exc)) from exc
    return parse_wavefront(lines, source=file_path)


def _floats(tokens: Sequence[str], count: int, *, source: Path, line: int, minimum: int) -> List[float]:
    if len(tokens) < minimum:
        raise MeshImportError(source, f"expected at least {minimum} values, got {len(tokens)}", line=line)
    try:
        return [float(t) for t in tokens[:count]]
    except ValueError as exc:
        raise MeshImportError(source, f"invalid number: {exc}", line=line) from exc


def _resolve_index(raw: str, size: int, *, kind: str, source: Path, line: int) -> int:
    try:
        value = int(raw)
    except ValueError as exc:
        raise MeshImportError(source, f"invalid {kind} index '{raw}'", line=line) from exc
    index = value - 1 if value > 0 else size + value
    if value == 0 or not 0 <= index < size:
        raise MeshImportError(source, f"{kind} index {value} out of range (have {size})", line=line)
    return index


def parse_wavefront(lines: Sequence[str], *, source: PathLike = "<memory>") -> ImportedMesh:
    source_path = Path(source)
    raw_verts: List[Tuple[float, float, float]] = []
    raw_uvs: List[Tuple[float, float]] = []
    raw_normals: List[Tuple[float, float, float]] = []

    verts: List[Tuple[float, float, float]] = []
    uvs: List[Tuple[float, float]] = []
    normals: List[Tuple[float, float, float]] = []
    seen: Dict[Tuple[Tuple[float, ...], ...], int] = {}
    indices: List[int] = []
    unhandled: Counter = Counter()

    def corner(token: str, line: int) -> int:
        parts = token.split("/")
        vi = _resolve_index(parts[0], len(raw_verts), kind="vertex", source=source_path, line=line)
        uv = (0.0, 0.0)
        normal = (0.0, 0.0, 0.0)
        if len(parts) > 1 and parts[1]:
            uv = raw_uvs[_resolve_index(parts[1], len(raw_uvs), kind="uv", source=source_path, line=line)]
        if len(parts) > 2 and parts[2]:
            normal = raw_normals[_resolve_index(parts[2], len(raw_normals), kind="normal", source=source_path, line=line)]
        key = (raw_verts[vi], uv, normal)
        existing = seen.get(key)
        if existing is not None:
            return existing
        if len(verts) >= MAX_VERTICES:
            raise MeshImportError(source_path, "mesh exceeds 65536 unique vertices", line=line)
        seen[key] = len(verts)
        verts.append(raw_verts[vi])
        uvs.append(uv)
        normals.append(normal)
        return seen[key]

    for line_no, raw_line in enumerate(lines, start=1):
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        tokens = line.split()
        kind, args = tokens[0], tokens[1:]
        if kind == "v":
            x, y, z, *rest = _floats(args, 4, source=source_path, line=line_no, minimum=3)
            if rest:
                w = rest[0]
                if w == 0.0:
                    raise MeshImportError(source_path, "vertex weight must be non-zero", line=line_no)
                x, y, z = x / w, y / w, z / w
            raw_verts.append((x, y, z))
        elif kind == "vt":
            values = _floats(args, 2, source=source_path, line=line_no, minimum=1)
            raw_uvs.append((values[0], values[1] if len(values) > 1 else 0.0))
        elif kind == "vn":
            nx, ny, nz = _floats(args, 3, source=source_path, line=line_no, minimum=3)
            raw_normals.append((nx, ny, nz))
        elif kind == "f":
            if len(args) < 3:
                raise MeshImportError(source_path, "face needs at least three corners", line=line_no)
            corners = [corner(token, line_no) for token in args]
            for i in range(1, len(corners) - 1):
                indices.extend((corners[0], corners[i], corners[i + 1]))
        else:
            unhandled[kind] += 1

    for kind, count in sorted(unhandled.items()):
        LOG.warning("unhandled obj type %s (%d record(s)) in %s", kind, count, source_path)

    return ImportedMesh(
        vertices=np.asarray(verts, dtype=np.float32).reshape(-1, 3),
        uvs=np.asarray(uvs, dtype=np.float32).reshape(-1, 2),
        normals=np.asarray(normals, dtype=np.float32).reshape(-1, 3),
        indices=np.asarray(indices, dtype=np.uint16),
    )
