import numpy as np
import pytest

from voxel_models.atlas import (
    AtlasPlacement,
    FileTextureStore,
    TextureAtlasAllocator,
    TextureInfo,
    UvRemap,
    compose_pages,
)
from voxel_models.errors import LoadError


def _overlaps(a, b):
    return (
        a.page == b.page
        and a.x < b.x + b.width
        and b.x < a.x + a.width
        and a.y < b.y + b.height
        and b.y < a.y + a.height
    )


def test_allocate_keeps_input_order_and_never_overlaps():
    textures = [TextureInfo(f"t{i}.png", 16 + i, 8 + 2 * i) for i in range(10)]

    placements = TextureAtlasAllocator(page_size=64, padding=1).allocate(textures)

    assert len(placements) == len(textures)
    for info, placement in zip(textures, placements):
        assert (placement.width, placement.height) == (info.width, info.height)
        assert placement.x + placement.width <= 64
        assert placement.y + placement.height <= 64
    for i, a in enumerate(placements):
        for b in placements[i + 1:]:
            assert not _overlaps(a, b)


def test_allocate_spills_onto_new_pages():
    textures = [TextureInfo(f"t{i}.png", 30, 30) for i in range(5)]

    placements = TextureAtlasAllocator(page_size=64, padding=1).allocate(textures)

    assert max(p.page for p in placements) == 1


def test_oversized_texture_is_a_load_error():
    with pytest.raises(LoadError):
        TextureAtlasAllocator(page_size=16, padding=1).allocate([TextureInfo("big.png", 16, 16)])


def test_remap_with_clip():
    placement = AtlasPlacement(page=0, x=8, y=0, width=8, height=8, page_size=16)

    remap = placement.remap((4, 4, 4, 4))

    assert remap == UvRemap(offset=(0.75, 0.25), scale=(0.25, 0.25))
    np.testing.assert_allclose(remap.apply(np.array([[0.0, 0.0], [1.0, 1.0]])), [[0.75, 0.25], [1.0, 0.5]])


def test_store_decodes_and_pages_are_composed(textures_root, write_png):
    write_png("red.png", size=(4, 4), color=(255, 0, 0, 255))
    write_png("sub/blue.png", size=(2, 2), color=(0, 0, 255, 255))

    with FileTextureStore(textures_root, max_workers=2) as store:
        store.request("red.png")
        store.request("sub/blue.png")
        infos = store.wait_until_ready()
        paths = ["red.png", "sub/blue.png"]
        placements = TextureAtlasAllocator(page_size=16, padding=1).allocate([infos[p] for p in paths])
        pages = compose_pages(paths, placements, store)

    assert infos["sub/blue.png"].width == 2
    assert len(pages) == 1
    blue = placements[1]
    assert pages[0].getpixel((blue.x, blue.y)) == (0, 0, 255, 255)


def test_missing_texture_fails_at_the_barrier(textures_root):
    with FileTextureStore(textures_root) as store:
        store.request("missing.png")
        with pytest.raises(LoadError):
            store.wait_until_ready()
