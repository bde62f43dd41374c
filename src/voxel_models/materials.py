"""Material-pair and tiletype tables fetched from the simulation.

The registry is always built from an explicit source: a
:class:`SimulationClient` handle passed in by the caller, or a YAML/JSON
dump of the same records. There is no process-wide connection.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional, Protocol, Tuple, Union

from .errors import LoadError
from .identifier import IdentifierPath, normalize_segment
from .loader import load_structured_text

LOG = logging.getLogger(__name__)

PathLike = Union[str, Path]

__all__ = [
    "MaterialDefinition",
    "MaterialPair",
    "MaterialRegistry",
    "SimulationClient",
    "Tiletype",
]


@dataclass(frozen=True, order=True)
class MaterialPair:
    mat_type: int
    mat_index: int

    @classmethod
    def parse(cls, value: Any) -> "MaterialPair":
        if isinstance(value, MaterialPair):
            return value
        if isinstance(value, Mapping):
            return cls(int(value["mat_type"]), int(value["mat_index"]))
        if isinstance(value, (list, tuple)) and len(value) == 2:
            return cls(int(value[0]), int(value[1]))
        raise ValueError(f"invalid material pair: {value!r}")


@dataclass(frozen=True)
class MaterialDefinition:
    pair: MaterialPair
    identifier: IdentifierPath


@dataclass(frozen=True)
class Tiletype:
    id: int
    shape: str
    name: Optional[str] = None
    material: Optional[str] = None
    variant: Optional[str] = None
    special: Optional[str] = None
    direction: Optional[str] = None

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Tiletype":
        def _opt(key: str) -> Optional[str]:
            value = record.get(key)
            return None if value is None else str(value)

        return cls(
            id=int(record["id"]),
            shape=normalize_segment(str(record.get("shape") or "")),
            name=_opt("name"),
            material=_opt("material"),
            variant=_opt("variant"),
            special=_opt("special"),
            direction=_opt("direction"),
        )


class SimulationClient(Protocol):
    """Connection to the running simulation."""

    def get_material_list(self) -> Iterable[Mapping[str, Any]]:
        """Records shaped like ``{"id": "INORGANIC:GRANITE", "mat_pair": {...}}``."""
        ...

    def get_tiletype_list(self) -> Iterable[Mapping[str, Any]]:
        """Records shaped like ``{"id": 5, "name": "StoneWall", "shape": "WALL"}``."""
        ...


class MaterialRegistry:
    """Maps material pairs to identifier paths and tiletypes to shape-classes."""

    def __init__(
        self,
        materials: Mapping[MaterialPair, MaterialDefinition],
        tiletypes: Mapping[int, Tiletype],
    ) -> None:
        self._materials: Dict[MaterialPair, MaterialDefinition] = dict(materials)
        self._tiletypes: Dict[int, Tiletype] = dict(tiletypes)

    # ---------------- construction ----------------

    @classmethod
    def from_records(
        cls,
        materials: Iterable[Mapping[str, Any]],
        tiletypes: Iterable[Mapping[str, Any]],
        *,
        logger: Optional[logging.Logger] = None,
    ) -> "MaterialRegistry":
        log = logger or LOG
        material_map: Dict[MaterialPair, MaterialDefinition] = {}
        skipped = 0
        for record in materials:
            raw_id = record.get("id")
            if isinstance(raw_id, bytes):
                raw_id = raw_id.decode("utf-8")
            if not raw_id:
                skipped += 1
                continue
            pair = MaterialPair.parse(record["mat_pair"])
            material_map[pair] = MaterialDefinition(pair, IdentifierPath.parse(str(raw_id)))
        tiletype_map = {tiletype.id: tiletype for tiletype in (Tiletype.from_record(r) for r in tiletypes)}
        if skipped:
            log.debug("Skipped %d material record(s) without an id", skipped)
        log.info("Material registry: %d material(s), %d tiletype(s)", len(material_map), len(tiletype_map))
        return cls(material_map, tiletype_map)

    @classmethod
    def from_client(cls, client: SimulationClient, *, logger: Optional[logging.Logger] = None) -> "MaterialRegistry":
        return cls.from_records(client.get_material_list(), client.get_tiletype_list(), logger=logger)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], *, logger: Optional[logging.Logger] = None) -> "MaterialRegistry":
        return cls.from_records(data.get("materials") or [], data.get("tiletypes") or [], logger=logger)

    @classmethod
    def from_file(cls, path: PathLike, *, logger: Optional[logging.Logger] = None) -> "MaterialRegistry":
        file_path = Path(path)
        try:
            text = file_path.read_text(encoding="utf-8")
        except OSError as exc:
            raise LoadError(file_path, str(exc)) from exc
        data = load_structured_text(text, suffix=file_path.suffix, source=file_path)
        if not isinstance(data, Mapping):
            raise LoadError(file_path, "material dump must be a mapping with 'materials' and 'tiletypes'")
        try:
            return cls.from_mapping(data, logger=logger)
        except (KeyError, TypeError, ValueError) as exc:
            raise LoadError(file_path, f"invalid material record: {exc}") from exc

    # ---------------- queries ----------------

    def identifier_for(self, pair: MaterialPair) -> Optional[IdentifierPath]:
        definition = self._materials.get(pair)
        return definition.identifier if definition is not None else None

    def tiletype(self, tile_id: int) -> Optional[Tiletype]:
        return self._tiletypes.get(tile_id)

    def shape_for_tiletype(self, tile_id: int) -> Optional[str]:
        tiletype = self._tiletypes.get(tile_id)
        if tiletype is None or not tiletype.shape:
            return None
        return tiletype.shape

    @property
    def materials(self) -> Tuple[MaterialDefinition, ...]:
        return tuple(self._materials[pair] for pair in sorted(self._materials))

    def __len__(self) -> int:
        return len(self._materials)
