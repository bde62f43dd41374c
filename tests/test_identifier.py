from voxel_models.identifier import IdentifierPath, is_ignorable


def test_parse_uppercases_and_drops_empty_segments():
    path = IdentifierPath.parse("inorganic::granite:")

    assert path.segments == ("INORGANIC", "GRANITE")
    assert str(path) == "INORGANIC:GRANITE"


def test_doubled_and_trailing_separators_name_the_same_key():
    assert IdentifierPath.parse("A::B") == IdentifierPath.parse("A:B")
    assert IdentifierPath.parse("a:b:") == IdentifierPath.parse("A:B")
    assert IdentifierPath.parse(":") == IdentifierPath.root()


def test_parent_chain_ends_at_root():
    path = IdentifierPath.parse("A:B:C")

    assert path.parent() == IdentifierPath.parse("A:B")
    assert path.parent().parent().parent() == IdentifierPath.root()
    assert IdentifierPath.root().parent() is None
    assert list(path.ancestors())[-1].is_empty()


def test_child_and_is_child_of():
    base = IdentifierPath.parse("WALL")
    child = base.child("granite")

    assert child.segments == ("WALL", "GRANITE")
    assert child.is_child_of(base)
    assert not base.is_child_of(child)


def test_ignorable_trailing_segment():
    assert IdentifierPath.parse("INORGANIC:STRUCTURAL").trailing_is_ignorable
    assert not IdentifierPath.parse("STRUCTURAL:GRANITE").trailing_is_ignorable
    assert not IdentifierPath.root().trailing_is_ignorable
    assert is_ignorable("structural")


def test_ordering_is_segmentwise():
    paths = sorted(IdentifierPath.parse(p) for p in ["B", "A:Z", "A"])

    assert [str(p) for p in paths] == ["A", "A:Z", "B"]
