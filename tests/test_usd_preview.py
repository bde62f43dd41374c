import pytest

pxr = pytest.importorskip("pxr")

from voxel_models.pipeline import BuildSettings, build_registry  # noqa: E402
from voxel_models.usd_preview import author_preview_stage, sanitize_name  # noqa: E402


def test_sanitize_name():
    assert sanitize_name("INORGANIC_GRANITE") == "INORGANIC_GRANITE"
    assert sanitize_name("3rd wall") == "_3rd_wall"
    assert sanitize_name("", fallback="default") == "default"


def test_preview_stage_has_one_mesh_per_model(tmp_path, models_root, textures_root, write_definition, write_png):
    from pxr import Usd, UsdGeom

    write_definition("wall/mod", [{"params": {"t": "stone.png"}}, {"face": {"direction": "up", "texture": "t"}}])
    write_definition("wall/granite", [{"inherit": "wall/mod"}])
    write_png("stone.png")
    result = build_registry(BuildSettings(models_root=models_root, textures_root=textures_root, page_size=16))

    out = tmp_path / "preview.usda"
    author_preview_stage(result.registry, out)

    stage = Usd.Stage.Open(str(out))
    default_mesh = UsdGeom.Mesh(stage.GetPrimAtPath("/World/WALL/default"))
    granite_mesh = UsdGeom.Mesh(stage.GetPrimAtPath("/World/WALL/GRANITE"))
    assert default_mesh and granite_mesh
    assert list(default_mesh.GetFaceVertexCountsAttr().Get()) == [3, 3]
    st = UsdGeom.PrimvarsAPI(granite_mesh).GetPrimvar("st")
    assert len(st.Get()) == 4
