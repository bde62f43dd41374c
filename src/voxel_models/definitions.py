"""Definition file grammar: directives, texture bindings and cull rules.

A definition file is YAML or JSON. Its top level is either a list of
directives or a mapping ``{transparent: bool, directives: [...]}``; each
directive is a single-key mapping::

    - params: {main: textures/stone.png, side: "#main"}
    - inherit: wall/mod
    - face:
        direction: up
        size: [1, 1]
        offset: [0, 0.5, 0]
        texture: {binding: main, clip: [0, 0, 16, 16]}
        cull: {visible: up}
    - mesh_import: {path: meshes/boulder.obj, texture: main}
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from .errors import DefinitionFormatError
from .identifier import IdentifierPath

Vec2 = Tuple[float, float]
Vec3 = Tuple[float, float, float]
ClipRect = Tuple[int, int, int, int]

__all__ = [
    "Direction",
    "CullKind",
    "CullRule",
    "TextureBinding",
    "Params",
    "Inherit",
    "Face",
    "Mesh",
    "MeshImport",
    "Directive",
    "GeometryDirective",
    "RawDefinition",
    "parse_definition",
    "parse_directive",
]


class Direction(enum.Enum):
    """Voxel neighbour directions; each owns one bit of the occupancy mask."""

    UP = "up"
    DOWN = "down"
    LEFT = "left"
    RIGHT = "right"
    FORWARD = "forward"
    BACKWARDS = "backwards"

    @property
    def bit(self) -> int:
        return _DIRECTION_BITS[self]

    @property
    def vector(self) -> Tuple[int, int, int]:
        return _DIRECTION_VECTORS[self]

    @classmethod
    def parse(cls, value: Any) -> "Direction":
        if isinstance(value, Direction):
            return value
        key = str(value or "").strip().lower()
        key = _DIRECTION_ALIASES.get(key, key)
        try:
            return cls(key)
        except ValueError:
            raise ValueError(f"Unknown direction '{value}'") from None


_DIRECTION_BITS = {
    Direction.UP: 1 << 0,
    Direction.DOWN: 1 << 1,
    Direction.LEFT: 1 << 2,
    Direction.RIGHT: 1 << 3,
    Direction.FORWARD: 1 << 4,
    Direction.BACKWARDS: 1 << 5,
}

# Y up, X right, Z forward.
_DIRECTION_VECTORS = {
    Direction.UP: (0, 1, 0),
    Direction.DOWN: (0, -1, 0),
    Direction.LEFT: (-1, 0, 0),
    Direction.RIGHT: (1, 0, 0),
    Direction.FORWARD: (0, 0, 1),
    Direction.BACKWARDS: (0, 0, -1),
}

_DIRECTION_ALIASES = {
    "backward": "backwards",
    "back": "backwards",
    "front": "forward",
    "top": "up",
    "bottom": "down",
}


class CullKind(enum.Enum):
    NEVER = "never"
    WHEN_VISIBLE = "visible"
    WHEN_HIDDEN = "hidden"


@dataclass(frozen=True)
class CullRule:
    """When a primitive is drawn, given the 6-bit neighbour occupancy mask.

    A set mask bit means the neighbour in that direction is occupied.
    ``WHEN_VISIBLE`` draws only while that neighbour is free; ``WHEN_HIDDEN``
    only while it is occupied; ``NEVER`` is never culled.
    """

    kind: CullKind = CullKind.NEVER
    direction: Optional[Direction] = None

    @classmethod
    def never(cls) -> "CullRule":
        return cls()

    @classmethod
    def when_visible(cls, direction: Direction) -> "CullRule":
        return cls(CullKind.WHEN_VISIBLE, direction)

    @classmethod
    def when_hidden(cls, direction: Direction) -> "CullRule":
        return cls(CullKind.WHEN_HIDDEN, direction)

    def is_visible(self, mask: int) -> bool:
        if self.kind is CullKind.NEVER or self.direction is None:
            return True
        occupied = bool(mask & self.direction.bit)
        if self.kind is CullKind.WHEN_VISIBLE:
            return not occupied
        return occupied

    @classmethod
    def parse(cls, value: Any) -> "CullRule":
        if value is None:
            return cls()
        if isinstance(value, CullRule):
            return value
        if isinstance(value, str):
            if value.strip().lower() == CullKind.NEVER.value:
                return cls()
            raise ValueError(f"Unknown cull rule '{value}'")
        if isinstance(value, Mapping) and len(value) == 1:
            (raw_kind, raw_direction), = value.items()
            kind_key = str(raw_kind).strip().lower()
            if kind_key in ("visible", "when_visible"):
                return cls.when_visible(Direction.parse(raw_direction))
            if kind_key in ("hidden", "when_hidden"):
                return cls.when_hidden(Direction.parse(raw_direction))
        raise ValueError(f"Invalid cull rule: {value!r}")


@dataclass(frozen=True)
class TextureBinding:
    """Name of the variable holding the texture, plus an optional texel clip."""

    name: str
    clip: Optional[ClipRect] = None

    @classmethod
    def parse(cls, value: Any) -> "TextureBinding":
        if isinstance(value, str):
            name, clip = value, None
        elif isinstance(value, Mapping):
            name = value.get("binding") or value.get("name")
            clip = value.get("clip")
        else:
            raise ValueError(f"Invalid texture binding: {value!r}")
        if not isinstance(name, str) or not name.strip():
            raise ValueError(f"Texture binding requires a name: {value!r}")
        clip_rect: Optional[ClipRect] = None
        if clip is not None:
            values = _int_tuple(clip, 4, "clip")
            if any(v < 0 for v in values):
                raise ValueError(f"clip values must be non-negative: {clip!r}")
            clip_rect = values  # type: ignore[assignment]
        return cls(name=name.strip(), clip=clip_rect)


# ---------------- Directives ----------------


@dataclass(frozen=True)
class Params:
    """Ordered ``name -> expression`` bindings."""

    bindings: Tuple[Tuple[str, str], ...]


@dataclass(frozen=True)
class Inherit:
    target: str


@dataclass(frozen=True)
class Face:
    direction: Direction
    texture: TextureBinding
    size: Vec2 = (1.0, 1.0)
    offset: Vec3 = (0.0, 0.0, 0.0)
    # Accepted and carried through baking; quad construction does not use it.
    rotation: float = 0.0
    cull: CullRule = field(default_factory=CullRule)


@dataclass(frozen=True, eq=False)
class Mesh:
    """Inline triangle mesh; ``indices`` is an (N, 3) array of vertex ids."""

    verts: np.ndarray
    uvs: np.ndarray
    normals: np.ndarray
    indices: np.ndarray
    texture: TextureBinding
    cull: CullRule = field(default_factory=CullRule)


@dataclass(frozen=True)
class MeshImport:
    path: str
    texture: TextureBinding
    cull: CullRule = field(default_factory=CullRule)


GeometryDirective = Union[Face, Mesh, MeshImport]
Directive = Union[Params, Inherit, Face, Mesh, MeshImport]


@dataclass(frozen=True)
class RawDefinition:
    """One parsed definition file tagged with the identifier it binds."""

    identifier: IdentifierPath
    source: Path
    directives: Tuple[Directive, ...]
    transparent: Optional[bool] = None

    def params(self) -> List[Params]:
        return [d for d in self.directives if isinstance(d, Params)]

    def inherits(self) -> List[Inherit]:
        return [d for d in self.directives if isinstance(d, Inherit)]


# ---------------- Parsing ----------------


def _float_tuple(value: Any, size: int, label: str) -> Tuple[float, ...]:
    if not isinstance(value, Sequence) or isinstance(value, str) or len(value) != size:
        raise ValueError(f"{label} must be a list of {size} numbers, got {value!r}")
    try:
        return tuple(float(v) for v in value)
    except (TypeError, ValueError):
        raise ValueError(f"{label} must contain numbers, got {value!r}") from None


def _int_tuple(value: Any, size: int, label: str) -> Tuple[int, ...]:
    floats = _float_tuple(value, size, label)
    if any(not float(v).is_integer() for v in floats):
        raise ValueError(f"{label} must contain integers, got {value!r}")
    return tuple(int(v) for v in floats)


def _parse_params(body: Any) -> Params:
    if not isinstance(body, Mapping):
        raise ValueError("params must be a mapping of name -> expression")
    bindings = []
    for name, expr in body.items():
        if expr is None:
            raise ValueError(f"params entry '{name}' has no value")
        bindings.append((str(name).strip(), str(expr).strip()))
    return Params(bindings=tuple(bindings))


def _parse_inherit(body: Any) -> Inherit:
    if not isinstance(body, str) or not body.strip():
        raise ValueError("inherit must name another definition")
    return Inherit(target=body.strip())


def _parse_face(body: Any) -> Face:
    if not isinstance(body, Mapping):
        raise ValueError("face must be a mapping")
    if "direction" not in body:
        raise ValueError("face requires a direction")
    if "texture" not in body:
        raise ValueError("face requires a texture binding")
    size = _float_tuple(body["size"], 2, "size") if body.get("size") is not None else (1.0, 1.0)
    offset = _float_tuple(body["offset"], 3, "offset") if body.get("offset") is not None else (0.0, 0.0, 0.0)
    raw_rotation = body.get("rotation") or 0.0
    if isinstance(raw_rotation, bool) or not isinstance(raw_rotation, (int, float, str)):
        raise ValueError(f"rotation must be a number, got {raw_rotation!r}")
    rotation = float(raw_rotation)
    return Face(
        direction=Direction.parse(body["direction"]),
        texture=TextureBinding.parse(body["texture"]),
        size=size,  # type: ignore[arg-type]
        offset=offset,  # type: ignore[arg-type]
        rotation=rotation,
        cull=CullRule.parse(body.get("cull")),
    )


def _parse_mesh(body: Any) -> Mesh:
    if not isinstance(body, Mapping):
        raise ValueError("mesh must be a mapping")
    for key in ("verts", "uvs", "indices", "texture"):
        if key not in body:
            raise ValueError(f"mesh requires '{key}'")
    for key in ("verts", "uvs", "normals", "indices"):
        value = body.get(key)
        if value is not None and (not isinstance(value, Sequence) or isinstance(value, str)):
            raise ValueError(f"mesh '{key}' must be a list, got {value!r}")
    verts = np.asarray([_float_tuple(v, 3, "verts") for v in body["verts"]], dtype=np.float32).reshape(-1, 3)
    uvs = np.asarray([_float_tuple(v, 2, "uvs") for v in body["uvs"]], dtype=np.float32).reshape(-1, 2)
    if len(uvs) != len(verts):
        raise ValueError(f"mesh has {len(verts)} verts but {len(uvs)} uvs")
    if body.get("normals") is not None:
        normals = np.asarray([_float_tuple(v, 3, "normals") for v in body["normals"]], dtype=np.float32).reshape(-1, 3)
        if len(normals) != len(verts):
            raise ValueError(f"mesh has {len(verts)} verts but {len(normals)} normals")
    else:
        normals = np.zeros_like(verts)
    indices = np.asarray([_int_tuple(t, 3, "indices") for t in body["indices"]], dtype=np.int64).reshape(-1, 3)
    if indices.size and (indices.min() < 0 or indices.max() >= len(verts)):
        raise ValueError(f"mesh indices must be within 0..{len(verts) - 1}")
    if indices.size and indices.max() > 0xFFFF:
        raise ValueError("mesh indices must fit in 16 bits")
    return Mesh(
        verts=verts,
        uvs=uvs,
        normals=normals,
        indices=indices.astype(np.uint16),
        texture=TextureBinding.parse(body["texture"]),
        cull=CullRule.parse(body.get("cull")),
    )


def _parse_mesh_import(body: Any) -> MeshImport:
    if not isinstance(body, Mapping):
        raise ValueError("mesh_import must be a mapping")
    path = body.get("path")
    if not isinstance(path, str) or not path.strip():
        raise ValueError("mesh_import requires a path")
    if "texture" not in body:
        raise ValueError("mesh_import requires a texture binding")
    return MeshImport(
        path=path.strip(),
        texture=TextureBinding.parse(body["texture"]),
        cull=CullRule.parse(body.get("cull")),
    )


_DIRECTIVE_PARSERS = {
    "params": _parse_params,
    "inherit": _parse_inherit,
    "face": _parse_face,
    "mesh": _parse_mesh,
    "mesh_import": _parse_mesh_import,
}


def parse_directive(entry: Any) -> Directive:
    """Parse one ``{kind: body}`` mapping into a directive."""
    if not isinstance(entry, Mapping) or len(entry) != 1:
        raise ValueError(f"Directive must be a single-key mapping, got {entry!r}")
    (raw_kind, body), = entry.items()
    kind = str(raw_kind).strip().lower()
    parser = _DIRECTIVE_PARSERS.get(kind)
    if parser is None:
        raise ValueError(f"Unknown directive '{raw_kind}'")
    return parser(body)


def parse_definition(data: Any, *, identifier: IdentifierPath, source: Path) -> RawDefinition:
    """Turn decoded YAML/JSON into a :class:`RawDefinition`."""
    transparent: Optional[bool] = None
    if isinstance(data, Mapping):
        if "transparent" in data and data["transparent"] is not None:
            transparent = bool(data["transparent"])
        entries = data.get("directives") or []
    elif data is None:
        entries = []
    else:
        entries = data
    if not isinstance(entries, list):
        raise DefinitionFormatError(source, "definition must be a list of directives")
    directives: List[Directive] = []
    for position, entry in enumerate(entries, start=1):
        try:
            directives.append(parse_directive(entry))
        except (TypeError, ValueError) as exc:
            raise DefinitionFormatError(source, f"directive {position}: {exc}") from exc
    return RawDefinition(
        identifier=identifier,
        source=source,
        directives=tuple(directives),
        transparent=transparent,
    )
