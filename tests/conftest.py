from pathlib import Path

import pytest
import yaml
from PIL import Image


@pytest.fixture()
def models_root(tmp_path):
    root = tmp_path / "models"
    root.mkdir()
    return root


@pytest.fixture()
def textures_root(tmp_path):
    root = tmp_path / "textures"
    root.mkdir()
    return root


@pytest.fixture()
def write_definition(models_root):
    """Write ``data`` as YAML at ``models_root/<rel>.yaml`` and return the path."""

    def _write(rel: str, data) -> Path:
        path = models_root / f"{rel}.yaml"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")
        return path

    return _write


@pytest.fixture()
def write_png(textures_root):
    def _write(rel: str, size=(4, 4), color=(255, 0, 0, 255)) -> Path:
        path = textures_root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        Image.new("RGBA", size, color).save(path)
        return path

    return _write
