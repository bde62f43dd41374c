from . import pipeline
from .baking import CompiledModel, MeshPrimitive, ModelBaker, QuadPrimitive, ResolvedTexture
from .cache import CacheLookup, HierarchicalCache
from .catalog import MatchKind, ModelCatalog, ModelRegistry
from .config.manifest import AtlasConfig, BuildManifest
from .definitions import CullRule, Direction, RawDefinition, TextureBinding
from .errors import (
    CacheDefaultRequiredError,
    CyclicIndirectionError,
    CyclicInheritanceError,
    DefinitionFormatError,
    LoadError,
    MeshImportError,
    MissingInheritedFileError,
    ModelLoadingError,
    UnresolvedVariableError,
)
from .identifier import IdentifierPath
from .loader import DefinitionLoader
from .materials import MaterialPair, MaterialRegistry, SimulationClient
from .meshing import ChunkMesh, TileInstance, build_chunk_mesh
from .pipeline import BUILD_DEFAULTS, BuildDefaults, BuildResult, BuildSettings, build_registry

__all__ = [
    "pipeline",
    "build_registry",
    "BuildDefaults",
    "BuildSettings",
    "BuildResult",
    "BUILD_DEFAULTS",
    "BuildManifest",
    "AtlasConfig",
    "IdentifierPath",
    "HierarchicalCache",
    "CacheLookup",
    "MatchKind",
    "ModelCatalog",
    "ModelRegistry",
    "DefinitionLoader",
    "RawDefinition",
    "Direction",
    "CullRule",
    "TextureBinding",
    "ModelBaker",
    "CompiledModel",
    "QuadPrimitive",
    "MeshPrimitive",
    "ResolvedTexture",
    "MaterialPair",
    "MaterialRegistry",
    "SimulationClient",
    "ChunkMesh",
    "TileInstance",
    "build_chunk_mesh",
    "ModelLoadingError",
    "LoadError",
    "DefinitionFormatError",
    "UnresolvedVariableError",
    "CyclicIndirectionError",
    "CyclicInheritanceError",
    "MissingInheritedFileError",
    "MeshImportError",
    "CacheDefaultRequiredError",
]
