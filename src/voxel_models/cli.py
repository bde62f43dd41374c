from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from .errors import ModelLoadingError
from .pipeline import BuildResult, BuildSettings, build_registry

LOG = logging.getLogger(__name__)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse the ``voxel-models`` command line."""

    parser = argparse.ArgumentParser(prog="voxel-models", description="Build voxel model catalogs")
    subparsers = parser.add_subparsers(dest="command", required=True)

    build = subparsers.add_parser("build", help="Load, bake and pack every model described by a manifest")
    build.add_argument("manifest_path", help="Path to a build manifest (YAML or JSON)")
    build.add_argument(
        "--shape-class",
        dest="shape_classes",
        action="append",
        default=None,
        help="Only build this shape-class (repeatable; default: manifest or every directory)",
    )
    build.add_argument(
        "--dump-tree",
        dest="dump_tree",
        action="store_true",
        help="Print every catalog's identifier tree after the build",
    )
    build.add_argument(
        "--usd-preview",
        dest="usd_preview",
        default=None,
        help="Write a USD preview stage of all compiled models to this path (needs usd-core)",
    )
    build.add_argument(
        "--atlas-dir",
        dest="atlas_dir",
        default=None,
        help="Write the packed atlas pages as PNG files into this directory",
    )
    build.add_argument(
        "--verbose",
        "-v",
        dest="verbose",
        action="store_true",
        help="Enable debug logging",
    )
    return parser.parse_args(argv)


def _run_build(args: argparse.Namespace) -> BuildResult:
    settings = BuildSettings(
        manifest_path=Path(args.manifest_path),
        shape_classes=args.shape_classes,
    )
    result = build_registry(settings)
    LOG.info(
        "Built %d model(s) in %d catalog(s) using %d texture(s) on %d atlas page(s)",
        result.model_count,
        len(result.registry),
        len(result.textures),
        len(result.pages),
    )
    if args.dump_tree:
        for line in result.registry.describe():
            print(line)
    if args.atlas_dir:
        written = result.save_pages(args.atlas_dir)
        LOG.info("Wrote %d atlas page(s) to %s", len(written), args.atlas_dir)
    if args.usd_preview:
        from .usd_preview import author_preview_stage

        author_preview_stage(result.registry, args.usd_preview)
    return result


def main(argv: Sequence[str] | None = None) -> Optional[BuildResult]:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if getattr(args, "verbose", False) else logging.INFO,
        format="%(levelname)s: %(message)s",
    )
    try:
        return _run_build(args)
    except (ModelLoadingError, ValueError, OSError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        raise SystemExit(2) from exc
    except ImportError as exc:
        print(f"Error: USD preview requires usd-core: {exc}", file=sys.stderr)
        raise SystemExit(2) from exc


if __name__ == "__main__":
    main()
