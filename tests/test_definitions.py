from pathlib import Path

import numpy as np
import pytest

from voxel_models.definitions import (
    CullKind,
    CullRule,
    Direction,
    Face,
    Inherit,
    Mesh,
    Params,
    TextureBinding,
    parse_definition,
    parse_directive,
)
from voxel_models.errors import DefinitionFormatError
from voxel_models.identifier import IdentifierPath


def test_face_defaults():
    face = parse_directive({"face": {"direction": "up", "texture": "tex"}})

    assert isinstance(face, Face)
    assert face.direction is Direction.UP
    assert face.size == (1.0, 1.0)
    assert face.offset == (0.0, 0.0, 0.0)
    assert face.rotation == 0.0
    assert face.cull == CullRule.never()


def test_texture_binding_with_clip():
    binding = TextureBinding.parse({"binding": "tex", "clip": [0, 0, 8, 4]})

    assert binding == TextureBinding("tex", (0, 0, 8, 4))


def test_direction_aliases():
    assert Direction.parse("Backward") is Direction.BACKWARDS
    assert Direction.parse("BACK") is Direction.BACKWARDS
    with pytest.raises(ValueError):
        Direction.parse("sideways")


def test_cull_rule_visibility():
    visible = CullRule.parse({"visible": "up"})
    hidden = CullRule.parse({"hidden": "up"})

    assert visible.kind is CullKind.WHEN_VISIBLE
    assert visible.is_visible(0)
    assert not visible.is_visible(Direction.UP.bit)
    assert hidden.is_visible(Direction.UP.bit | Direction.DOWN.bit)
    assert not hidden.is_visible(Direction.DOWN.bit)
    assert CullRule.parse("never").is_visible(0b111111)


def test_inline_mesh_without_normals_gets_zero_normals():
    mesh = parse_directive(
        {
            "mesh": {
                "verts": [[0, 0, 0], [1, 0, 0], [0, 1, 0]],
                "uvs": [[0, 0], [1, 0], [0, 1]],
                "indices": [[0, 1, 2]],
                "texture": "tex",
            }
        }
    )

    assert isinstance(mesh, Mesh)
    assert mesh.normals.shape == (3, 3)
    assert not mesh.normals.any()
    assert mesh.indices.dtype == np.uint16


def test_inline_mesh_rejects_out_of_range_index():
    with pytest.raises(ValueError):
        parse_directive(
            {
                "mesh": {
                    "verts": [[0, 0, 0]],
                    "uvs": [[0, 0]],
                    "indices": [[0, 0, 1]],
                    "texture": "tex",
                }
            }
        )


def test_parse_definition_mapping_form():
    definition = parse_definition(
        {
            "transparent": True,
            "directives": [
                {"params": {"tex": "stone.png"}},
                {"inherit": "wall/mod"},
            ],
        },
        identifier=IdentifierPath.parse("GRANITE"),
        source=Path("granite.yaml"),
    )

    assert definition.transparent is True
    assert definition.params() == [Params((("tex", "stone.png"),))]
    assert definition.inherits() == [Inherit("wall/mod")]


def test_bad_directive_reports_position():
    with pytest.raises(DefinitionFormatError) as info:
        parse_definition(
            [{"params": {"tex": "a.png"}}, {"sphere": {}}],
            identifier=IdentifierPath.root(),
            source=Path("bad.yaml"),
        )

    assert "directive 2" in str(info.value)


@pytest.mark.parametrize(
    "directive, message",
    [
        ({"face": {"direction": "up", "texture": "#all", "rotation": [1]}}, "rotation"),
        ({"mesh": {"verts": 5, "uvs": [], "indices": [], "texture": "#all"}}, "verts"),
        ({"mesh": {"verts": [], "uvs": [], "indices": 7, "texture": "#all"}}, "indices"),
    ],
)
def test_malformed_field_shapes_are_format_errors(directive, message):
    with pytest.raises(DefinitionFormatError) as info:
        parse_definition([directive], identifier=IdentifierPath.root(), source=Path("bad.yaml"))

    assert "directive 1" in str(info.value)
    assert message in str(info.value)
