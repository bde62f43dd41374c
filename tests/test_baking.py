from pathlib import Path

import numpy as np
import pytest

from voxel_models.atlas import AtlasPlacement
from voxel_models.baking import (
    QUAD_TRIANGLES,
    BakedDefinition,
    MeshPrimitive,
    ModelBaker,
    QuadPrimitive,
    ResolvedTexture,
    TextureSlot,
    VariableRef,
    build_face_quad,
)
from voxel_models.definitions import CullRule, Direction, Face, TextureBinding
from voxel_models.errors import (
    CyclicIndirectionError,
    CyclicInheritanceError,
    DefinitionFormatError,
    MeshImportError,
    MissingInheritedFileError,
    UnresolvedVariableError,
)
from voxel_models.identifier import IdentifierPath
from voxel_models.loader import DefinitionLoader
from voxel_models.variables import VariableTable


def _bake_shape(models_root, shape="wall"):
    loader = DefinitionLoader(models_root)
    baker = ModelBaker(loader)
    loaded = loader.load_shape_class(shape)
    for definition in loaded.definitions:
        baker.bake(definition)
    return baker, loaded


def _texture_of(baker, path, index=0):
    slot = baker.baked(path).primitives[index].texture.slot
    return baker.textures[slot]


def test_face_up_geometry():
    face = Face(direction=Direction.UP, texture=TextureBinding("tex"), size=(2.0, 1.0))

    verts, uvs, normal = build_face_quad(face)

    np.testing.assert_allclose(
        verts,
        [[-1.0, 0.0, -0.5], [1.0, 0.0, -0.5], [-1.0, 0.0, 0.5], [1.0, 0.0, 0.5]],
    )
    np.testing.assert_allclose(uvs, [[0, 0], [1, 0], [0, 1], [1, 1]])
    assert normal == (0.0, 1.0, 0.0)


def test_face_offset_is_added():
    face = Face(direction=Direction.FORWARD, texture=TextureBinding("tex"), offset=(0.0, 0.0, 0.5))

    verts, _, _ = build_face_quad(face)

    assert np.allclose(verts[:, 2], 0.5)


@pytest.mark.parametrize("direction", list(Direction))
def test_quad_triangles_face_the_normal(direction):
    verts, _, normal = build_face_quad(Face(direction=direction, texture=TextureBinding("tex")))

    for a, b, c in (QUAD_TRIANGLES[:3], QUAD_TRIANGLES[3:]):
        winding = np.cross(verts[b] - verts[a], verts[c] - verts[a])
        assert np.dot(winding, normal) > 0


@pytest.mark.parametrize("params_first", [True, False])
def test_own_params_win_over_inherited_in_either_order(write_definition, models_root, params_first):
    write_definition("wall/mod", [{"params": {"tex": "base.png"}}, {"face": {"direction": "up", "texture": "tex"}}])
    own = {"params": {"tex": "granite.png"}}
    inherit = {"inherit": "wall/mod"}
    granite = write_definition("wall/granite", [own, inherit] if params_first else [inherit, own])

    baker, _ = _bake_shape(models_root)
    baker.resolve_textures()

    assert _texture_of(baker, granite) == "granite.png"
    assert _texture_of(baker, models_root / "wall" / "mod.yaml") == "base.png"


def test_inherited_primitives_are_repointed_by_name(write_definition, models_root):
    write_definition(
        "wall/mod",
        [{"params": {"a": "a.png", "b": "b.png"}}, {"face": {"direction": "up", "texture": "b"}}],
    )
    child = write_definition("wall/child", [{"params": {"b": "child_b.png"}}, {"inherit": "wall/mod"}])

    baker, _ = _bake_shape(models_root)
    baked = baker.baked(child)

    assert baked.primitives[0].texture == VariableRef(0)
    assert list(baked.variables) == [("b", "child_b.png"), ("a", "a.png")]


def test_parent_and_child_share_an_atlas_slot(write_definition, models_root):
    mod = write_definition("wall/mod", [{"params": {"tex": "stone.png"}}, {"face": {"direction": "up", "texture": "tex"}}])
    granite = write_definition("wall/granite", [{"inherit": "wall/mod"}])

    baker, _ = _bake_shape(models_root)
    textures = baker.resolve_textures()

    assert textures.paths == ("stone.png",)
    assert baker.baked(mod).primitives[0].texture == TextureSlot(0)
    assert baker.baked(granite).primitives[0].texture == TextureSlot(0)


def test_template_indirections_are_filled_by_children(write_definition, models_root):
    write_definition("common/stone_face", [{"params": {"tex": "#stone"}}, {"face": {"direction": "up", "texture": "tex"}}])
    granite = write_definition("wall/granite", [{"params": {"stone": "granite.png"}}, {"inherit": "common/stone_face"}])

    baker, _ = _bake_shape(models_root)
    baker.resolve_textures()

    assert _texture_of(baker, granite) == "granite.png"


def test_cyclic_indirection_fails_the_build(write_definition, models_root):
    write_definition(
        "wall/mod",
        [{"params": {"a": "#b", "b": "#a"}}, {"face": {"direction": "up", "texture": "a"}}],
    )

    baker, _ = _bake_shape(models_root)
    with pytest.raises(CyclicIndirectionError) as info:
        baker.resolve_textures()

    assert info.value.chain == ("a", "b", "a")


def test_unresolved_binding(write_definition, models_root):
    write_definition("wall/mod", [{"face": {"direction": "up", "texture": "nothing"}}])

    with pytest.raises(UnresolvedVariableError) as info:
        _bake_shape(models_root)

    assert info.value.binding == "nothing"


def test_missing_inherited_file(write_definition, models_root):
    write_definition("wall/mod", [{"inherit": "wall/ghost"}])

    with pytest.raises(MissingInheritedFileError) as info:
        _bake_shape(models_root)

    assert info.value.target == "wall/ghost"


def test_inheritance_cycle_is_detected(write_definition, models_root):
    write_definition("wall/a", [{"inherit": "wall/b"}])
    write_definition("wall/b", [{"inherit": "wall/a"}])

    with pytest.raises(CyclicInheritanceError) as info:
        _bake_shape(models_root)

    assert [p.stem for p in info.value.chain] == ["a", "b", "a"]


def test_transparency_comes_from_last_parent_unless_set(write_definition, models_root):
    write_definition("common/glass", {"transparent": True, "directives": []})
    write_definition("common/solid", {"transparent": False, "directives": []})
    inherited = write_definition("wall/inherited", [{"inherit": "common/solid"}, {"inherit": "common/glass"}])
    explicit = write_definition("wall/explicit", {"transparent": False, "directives": [{"inherit": "common/glass"}]})
    plain = write_definition("wall/plain", [])

    baker, _ = _bake_shape(models_root)

    assert baker.baked(inherited).transparent is True
    assert baker.baked(explicit).transparent is False
    assert baker.baked(plain).transparent is False


def test_mesh_import(write_definition, models_root):
    meshes = models_root / "meshes"
    meshes.mkdir()
    (meshes / "quad.obj").write_text(
        "v 0 0 0\nv 1 0 0\nv 1 1 0\nv 0 1 0\nvt 0 0\nvt 1 0\nvt 1 1\nvt 0 1\nf 1/1 2/2 3/3 4/4\n",
        encoding="utf-8",
    )
    mod = write_definition(
        "wall/mod",
        [{"params": {"tex": "t.png"}}, {"mesh_import": {"path": "meshes/quad.obj", "texture": "tex", "cull": {"visible": "up"}}}],
    )

    baker, _ = _bake_shape(models_root)
    primitive = baker.baked(mod).primitives[0]

    assert isinstance(primitive, MeshPrimitive)
    assert len(primitive.verts) == 4
    assert primitive.indices.tolist() == [0, 1, 2, 0, 2, 3]
    assert not primitive.cull.is_visible(Direction.UP.bit)


def test_mesh_import_rejects_other_formats(write_definition, models_root):
    write_definition("wall/mod", [{"params": {"tex": "t.png"}}, {"mesh_import": {"path": "meshes/quad.fbx", "texture": "tex"}}])

    with pytest.raises(MeshImportError):
        _bake_shape(models_root)


def test_finalize_rewrites_uvs_into_atlas_space(write_definition, models_root):
    mod = write_definition(
        "wall/mod",
        [
            {"params": {"tex": "t.png"}},
            {"face": {"direction": "up", "texture": "tex"}},
            {"face": {"direction": "down", "texture": {"binding": "tex", "clip": [0, 0, 2, 2]}}},
        ],
    )
    baker, _ = _bake_shape(models_root)
    baker.resolve_textures()

    baker.finalize([AtlasPlacement(page=0, x=1, y=1, width=4, height=4, page_size=8)])
    model = baker.compiled(mod)

    full, clipped = model.primitives
    assert isinstance(full, QuadPrimitive)
    assert isinstance(full.texture, ResolvedTexture)
    np.testing.assert_allclose(full.uvs, [[0.125, 0.125], [0.625, 0.125], [0.125, 0.625], [0.625, 0.625]])
    np.testing.assert_allclose(clipped.uvs[3], [0.375, 0.375])
    assert baker.baked(mod).variables is None


def test_clip_outside_texture_is_rejected(write_definition, models_root):
    write_definition(
        "wall/mod",
        [{"params": {"tex": "t.png"}}, {"face": {"direction": "up", "texture": {"binding": "tex", "clip": [2, 0, 4, 4]}}}],
    )
    baker, _ = _bake_shape(models_root)
    baker.resolve_textures()

    with pytest.raises(DefinitionFormatError):
        baker.finalize([AtlasPlacement(page=0, x=0, y=0, width=4, height=4, page_size=8)])


def test_models_are_not_published_before_finalize(write_definition, models_root):
    mod = write_definition("wall/mod", [])
    baker, _ = _bake_shape(models_root)

    with pytest.raises(RuntimeError):
        baker.compiled(mod)


def test_reemit_rejects_primitives_past_variable_binding():
    quad = QuadPrimitive(
        verts=np.zeros((4, 3)),
        uvs=np.zeros((4, 2)),
        normal=(0.0, 1.0, 0.0),
        cull=CullRule(),
        texture=TextureSlot(0),
    )
    parent = BakedDefinition(
        source=Path("parent.yaml"),
        identifier=IdentifierPath.root(),
        variables=VariableTable([("all", "stone")]),
        primitives=[quad],
    )

    with pytest.raises(RuntimeError, match="already resolved"):
        ModelBaker._reemit(parent, VariableTable([("all", "stone")]))
