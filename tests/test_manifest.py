import logging

import pytest

from voxel_models.config.manifest import AtlasConfig, BuildManifest


def test_manifest_paths_are_relative_to_the_file(tmp_path):
    manifest_path = tmp_path / "build.yaml"
    manifest_path.write_text(
        "models_root: assets/models\n"
        "textures_root: assets\n"
        "shape_classes: [wall, floor]\n"
        "atlas: {page_size: 256, padding: 2}\n"
        "materials: materials.json\n",
        encoding="utf-8",
    )

    manifest = BuildManifest.from_file(manifest_path)

    assert manifest.models_root == tmp_path.resolve() / "assets" / "models"
    assert manifest.textures_root == tmp_path.resolve() / "assets"
    assert manifest.shape_classes == ("wall", "floor")
    assert manifest.atlas == AtlasConfig(page_size=256, padding=2)
    assert manifest.materials == tmp_path.resolve() / "materials.json"
    assert manifest.default_name == "mod"
    assert manifest.source == manifest_path


def test_textures_root_defaults_to_models_root(tmp_path):
    manifest = BuildManifest.from_text('{"models_root": "models"}', suffix=".json", base_dir=tmp_path)

    assert manifest.textures_root == manifest.models_root == tmp_path / "models"
    assert manifest.atlas == AtlasConfig()


def test_unknown_keys_are_warned_about(tmp_path, caplog):
    with caplog.at_level(logging.WARNING, logger="voxel_models.config.manifest"):
        BuildManifest.from_text("models_root: m\ncolour: red\n", suffix=".yml", base_dir=tmp_path)

    assert "colour" in caplog.text


@pytest.mark.parametrize(
    "text",
    [
        "- not a mapping\n",
        "textures_root: t\n",
        "models_root: m\natlas: {page_size: 0}\n",
        "models_root: m\nshape_classes: 3\n",
    ],
)
def test_invalid_manifests(text, tmp_path):
    with pytest.raises(ValueError):
        BuildManifest.from_text(text, suffix=".yaml", base_dir=tmp_path)


def test_unsupported_manifest_type(tmp_path):
    with pytest.raises(ValueError):
        BuildManifest.from_text("models_root = 'm'", suffix=".toml", base_dir=tmp_path)
