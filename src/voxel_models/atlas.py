"""Texture fetching and atlas packing.

The fetch side is the only asynchronous boundary of a build: textures are
requested while definitions are baked and decoded on a small worker pool;
:meth:`FileTextureStore.wait_until_ready` is the barrier that finalisation
waits on. Packing uses fixed-size square pages filled shelf by shelf.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Dict, List, Optional, Protocol, Sequence, Tuple, Union

import numpy as np
from PIL import Image

from .errors import LoadError

LOG = logging.getLogger(__name__)

PathLike = Union[str, Path]

DEFAULT_PAGE_SIZE = 1024
DEFAULT_PADDING = 1

__all__ = [
    "AtlasPlacement",
    "FileTextureStore",
    "TextureAtlasAllocator",
    "TextureInfo",
    "TextureStore",
    "UvRemap",
    "compose_pages",
]


@dataclass(frozen=True)
class TextureInfo:
    path: str
    width: int
    height: int


class TextureStore(Protocol):
    """Fetch/decode collaborator consumed by the build pipeline."""

    def request(self, path: str) -> None:
        ...

    def wait_until_ready(self) -> Dict[str, TextureInfo]:
        ...

    def image(self, path: str) -> Image.Image:
        ...


class FileTextureStore:
    """Decode textures from a directory with Pillow on a worker pool."""

    def __init__(self, textures_root: PathLike, *, max_workers: int = 4) -> None:
        self.textures_root = Path(textures_root).resolve()
        self._executor = ThreadPoolExecutor(max_workers=max(1, int(max_workers)), thread_name_prefix="texture")
        self._pending: Dict[str, Future] = {}
        self._images: Dict[str, Image.Image] = {}

    def _resolve(self, path: str) -> Path:
        rel = PurePosixPath(path.strip().replace("\\", "/").lstrip("/"))
        return self.textures_root.joinpath(*rel.parts)

    @staticmethod
    def _decode(file_path: Path) -> Image.Image:
        with Image.open(file_path) as img:
            return img.convert("RGBA")

    def request(self, path: str) -> None:
        if path in self._pending or path in self._images:
            return
        self._pending[path] = self._executor.submit(self._decode, self._resolve(path))

    def wait_until_ready(self) -> Dict[str, TextureInfo]:
        """Block until every requested texture is decoded."""
        for path, future in list(self._pending.items()):
            try:
                self._images[path] = future.result()
            except (OSError, ValueError) as exc:
                raise LoadError(self._resolve(path), f"texture could not be decoded: {exc}") from exc
            finally:
                self._pending.pop(path, None)
        LOG.info("%d texture(s) ready", len(self._images))
        return {path: TextureInfo(path, img.width, img.height) for path, img in self._images.items()}

    def image(self, path: str) -> Image.Image:
        return self._images[path]

    def close(self) -> None:
        self._executor.shutdown(wait=True)

    def __enter__(self) -> "FileTextureStore":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


@dataclass(frozen=True)
class UvRemap:
    """``uv' = offset + uv * scale`` in normalised page coordinates."""

    offset: Tuple[float, float] = (0.0, 0.0)
    scale: Tuple[float, float] = (1.0, 1.0)

    def apply(self, uvs: np.ndarray) -> np.ndarray:
        coords = np.asarray(uvs, dtype=np.float32).reshape(-1, 2)
        return (coords * np.asarray(self.scale, dtype=np.float32) + np.asarray(self.offset, dtype=np.float32)).astype(np.float32)

    def then(self, outer: "UvRemap") -> "UvRemap":
        """Compose: apply ``self`` first, then ``outer``."""
        return UvRemap(
            offset=(
                outer.offset[0] + self.offset[0] * outer.scale[0],
                outer.offset[1] + self.offset[1] * outer.scale[1],
            ),
            scale=(self.scale[0] * outer.scale[0], self.scale[1] * outer.scale[1]),
        )


@dataclass(frozen=True)
class AtlasPlacement:
    """Where a texture landed: page index plus its pixel rectangle."""

    page: int
    x: int
    y: int
    width: int
    height: int
    page_size: int

    @property
    def offset(self) -> Tuple[float, float]:
        return (self.x / self.page_size, self.y / self.page_size)

    @property
    def scale(self) -> Tuple[float, float]:
        return (self.width / self.page_size, self.height / self.page_size)

    def remap(self, clip: Optional[Tuple[int, int, int, int]] = None) -> UvRemap:
        """UV transform for this slot, optionally restricted to a texel ``clip``."""
        page = UvRemap(offset=self.offset, scale=self.scale)
        if clip is None:
            return page
        cx, cy, cw, ch = clip
        if cx + cw > self.width or cy + ch > self.height:
            raise ValueError(
                f"clip {clip} exceeds texture bounds {self.width}x{self.height}"
            )
        local = UvRemap(
            offset=(cx / self.width, cy / self.height),
            scale=(cw / self.width, ch / self.height),
        )
        return local.then(page)


class TextureAtlasAllocator:
    """Shelf packer over square pages of ``page_size`` pixels."""

    def __init__(self, page_size: int = DEFAULT_PAGE_SIZE, padding: int = DEFAULT_PADDING) -> None:
        if page_size <= 0:
            raise ValueError("page_size must be positive")
        if padding < 0:
            raise ValueError("padding must be >= 0")
        self.page_size = int(page_size)
        self.padding = int(padding)

    def allocate(self, textures: Sequence[TextureInfo]) -> List[AtlasPlacement]:
        """Place every texture; the result is in the same order as ``textures``."""
        placements: List[Optional[AtlasPlacement]] = [None] * len(textures)
        order = sorted(range(len(textures)), key=lambda i: (-textures[i].height, -textures[i].width, i))

        page = 0
        cursor_x = cursor_y = shelf_height = 0
        pad = self.padding
        for i in order:
            info = textures[i]
            w, h = info.width + 2 * pad, info.height + 2 * pad
            if w > self.page_size or h > self.page_size:
                raise LoadError(info.path, f"texture {info.width}x{info.height} does not fit a {self.page_size}px atlas page")
            if cursor_x + w > self.page_size:
                cursor_x, cursor_y = 0, cursor_y + shelf_height
                shelf_height = 0
            if cursor_y + h > self.page_size:
                page += 1
                cursor_x = cursor_y = shelf_height = 0
            placements[i] = AtlasPlacement(
                page=page,
                x=cursor_x + pad,
                y=cursor_y + pad,
                width=info.width,
                height=info.height,
                page_size=self.page_size,
            )
            cursor_x += w
            shelf_height = max(shelf_height, h)

        page_count = page + 1 if textures else 0
        LOG.info("Packed %d texture(s) into %d atlas page(s)", len(textures), page_count)
        return [p for p in placements if p is not None]


def compose_pages(
    textures: Sequence[str],
    placements: Sequence[AtlasPlacement],
    store: TextureStore,
) -> List[Image.Image]:
    """Paste every decoded texture into RGBA page images."""
    if not placements:
        return []
    page_size = placements[0].page_size
    pages = [Image.new("RGBA", (page_size, page_size), (0, 0, 0, 0)) for _ in range(max(p.page for p in placements) + 1)]
    for path, placement in zip(textures, placements):
        pages[placement.page].paste(store.image(path), (placement.x, placement.y))
    return pages
