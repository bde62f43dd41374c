import pytest

from voxel_models.errors import CyclicIndirectionError, UnresolvedVariableError
from voxel_models.variables import TextureTable, VariableTable


def test_first_declaration_wins():
    table = VariableTable([("tex", "a.png")])

    assert table.declare("tex", "b.png") is False
    assert table.lookup("tex") == "a.png"
    assert len(table) == 1


def test_merge_only_adds_missing_names():
    child = VariableTable([("tex", "child.png")])
    parent = VariableTable([("side", "side.png"), ("tex", "parent.png")])

    assert child.merge(parent) == 1
    assert list(child) == [("tex", "child.png"), ("side", "side.png")]


def test_reindex_follows_name_not_position():
    parent = VariableTable([("side", "s.png"), ("top", "t.png")])
    child = VariableTable([("top", "mine.png")])
    child.merge(parent)

    assert child.reindex(parent.index_of("top"), parent) == 0
    assert child.reindex(parent.index_of("side"), parent) == 1


def test_resolve_follows_indirection_chain():
    table = VariableTable([("a", "#b"), ("b", "#c"), ("c", "stone.png")])

    assert table.resolve(table.index_of("a")) == "stone.png"


def test_resolve_detects_cycles_with_full_chain():
    table = VariableTable([("a", "#b"), ("b", "#a")])

    with pytest.raises(CyclicIndirectionError) as info:
        table.resolve(0)

    assert info.value.chain == ("a", "b", "a")


def test_self_reference_is_a_cycle():
    table = VariableTable([("a", "#a")])

    with pytest.raises(CyclicIndirectionError) as info:
        table.resolve(0)

    assert info.value.chain == ("a", "a")


def test_resolve_reports_missing_target():
    table = VariableTable([("a", "#missing")])

    with pytest.raises(UnresolvedVariableError) as info:
        table.resolve(0)

    assert info.value.binding == "missing"


def test_texture_table_interns_in_insertion_order():
    textures = TextureTable()

    assert textures.intern("stone.png") == 0
    assert textures.intern("dirt.png") == 1
    assert textures.intern("stone.png") == 0
    assert textures.intern("sub\\grass.png") == 2
    assert textures.paths == ("stone.png", "dirt.png", "sub/grass.png")
