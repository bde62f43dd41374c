from .manifest import AtlasConfig, BuildManifest

__all__ = ["AtlasConfig", "BuildManifest"]
