"""Author a USD stage that previews every compiled model.

Needs the ``usd`` extra (``usd-core``); ``pxr`` is imported on first use so
the rest of the package works without it.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Optional, Union

from .catalog import ModelRegistry
from .meshing import flatten_model

LOG = logging.getLogger(__name__)

PathLike = Union[str, Path]

__all__ = ["author_preview_stage", "create_preview_stage", "sanitize_name"]


def sanitize_name(raw_name, fallback=None):
    """Make a USD-legal prim name."""
    base = str(raw_name or fallback or "Unnamed")
    base = base.encode("ascii", "ignore").decode("ascii")
    name = re.sub(r"[^A-Za-z0-9_]", "_", base)
    name = re.sub(r"_+", "_", name).strip("_")
    if not name:
        name = "Unnamed"
    if name[0].isdigit():
        name = "_" + name
    return name[:63]


def create_preview_stage(usd_path: PathLike, meters_per_unit: float = 1.0):
    """Create a new Y-up USD stage with a ``/World`` default prim."""
    from pxr import Sdf, Usd, UsdGeom

    identifier = Path(usd_path).resolve().as_posix()
    existing_layer = Sdf.Layer.Find(identifier)
    if existing_layer is not None:
        existing_layer.Clear()
        stage = Usd.Stage.Open(existing_layer)
    else:
        stage = Usd.Stage.CreateNew(identifier)
    UsdGeom.SetStageUpAxis(stage, UsdGeom.Tokens.y)
    stage.SetMetadata("metersPerUnit", float(meters_per_unit))
    world = UsdGeom.Xform.Define(stage, "/World")
    stage.SetDefaultPrim(world.GetPrim())
    return stage


def author_preview_stage(
    registry: ModelRegistry,
    usd_path: PathLike,
    *,
    logger: Optional[logging.Logger] = None,
):
    """Write one ``UsdGeom.Mesh`` per compiled model under ``/World/<SHAPE>``.

    Prim names come from the model's bound identifier path (``default`` for
    the catalog-wide fallback). Atlas-space UVs are authored as
    vertex-interpolated ``primvars:st``. Returns the saved stage.
    """
    from pxr import Gf, Sdf, UsdGeom, Vt

    log = logger or LOG
    stage = create_preview_stage(usd_path)
    authored = 0
    for catalog in registry:
        shape_path = Sdf.Path("/World").AppendChild(sanitize_name(catalog.shape_class))
        UsdGeom.Scope.Define(stage, shape_path)
        used = set()
        for index, (path, model) in enumerate(zip(catalog.paths(), catalog.models), start=1):
            base = sanitize_name(str(path).replace(":", "_"), fallback="default")
            name = base
            if name in used:
                name = f"{base}_{index}"
            used.add(name)

            flat = flatten_model(model)
            mesh = UsdGeom.Mesh.Define(stage, shape_path.AppendChild(name))
            mesh.CreatePointsAttr(Vt.Vec3fArray([Gf.Vec3f(*map(float, p)) for p in flat.positions]))
            mesh.CreateFaceVertexIndicesAttr(Vt.IntArray([int(i) for i in flat.indices]))
            mesh.CreateFaceVertexCountsAttr(Vt.IntArray([3] * flat.triangle_count))
            mesh.CreateNormalsAttr(Vt.Vec3fArray([Gf.Vec3f(*map(float, n)) for n in flat.normals]))
            mesh.SetNormalsInterpolation(UsdGeom.Tokens.vertex)
            mesh.CreateSubdivisionSchemeAttr(UsdGeom.Tokens.none)
            primvars_api = UsdGeom.PrimvarsAPI(mesh)
            st_primvar = primvars_api.CreatePrimvar("st", Sdf.ValueTypeNames.TexCoord2fArray, UsdGeom.Tokens.vertex)
            st_primvar.Set(Vt.Vec2fArray([Gf.Vec2f(float(u), float(v)) for u, v in flat.uvs]))
            prim = mesh.GetPrim()
            prim.CreateAttribute("voxel:identifier", Sdf.ValueTypeNames.String).Set(str(path))
            prim.CreateAttribute("voxel:transparent", Sdf.ValueTypeNames.Bool).Set(bool(model.transparent))
            authored += 1
    stage.GetRootLayer().Save()
    log.info("Authored %d preview mesh(es) to %s", authored, usd_path)
    return stage
