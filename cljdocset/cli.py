"""Command-line entry point for the docset builder."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Iterable, Sequence

from .config import (
    DEFAULT_IMAGE_WORKERS,
    DEFAULT_MAX_RETRIES,
    DEFAULT_REQUEST_TIMEOUT,
    BuildConfig,
    FetchConfig,
)
from .download import parse_library_name
from .models import LibraryInfo
from .pipeline import build_docset

logger = logging.getLogger("cljdocset.cli")

__version__ = "0.1.0"


def _ensure_command_prefix(argv: Sequence[str], commands: Iterable[str]) -> Sequence[str]:
    if not argv:
        return argv
    first = argv[0]
    if first in commands or first.startswith("-"):
        return argv
    return ("build", *argv)


def _add_build_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("library", help="Library to package, as group-id/artifact-id")
    parser.add_argument(
        "version",
        nargs="?",
        default="latest",
        help="Release to package (default: latest)",
    )
    parser.add_argument(
        "-o",
        "--output",
        default=".",
        type=Path,
        help="Directory where the .docset and .tgz should be written",
    )
    parser.add_argument(
        "-b",
        "--build-dir",
        default=None,
        type=Path,
        help="Build directory for extraction (default: temp dir, deleted afterwards)",
    )
    parser.add_argument(
        "-i",
        "--icon",
        default=None,
        type=Path,
        help="Path to an image to use as the docset icon",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Download the bundle again even if the zip is already in the build directory",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=DEFAULT_IMAGE_WORKERS,
        help="Concurrent image downloads per page",
    )
    parser.add_argument(
        "--parse-workers",
        type=int,
        default=1,
        help="Pages parsed in parallel while building the index",
    )
    parser.add_argument(
        "--max-retries",
        type=int,
        default=DEFAULT_MAX_RETRIES,
        help="Attempts per image before giving up",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=DEFAULT_REQUEST_TIMEOUT,
        help="Per-request timeout in seconds for image downloads",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="cljdocset",
        description="Convert cljdoc bundles to Dash/Zeal docsets.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", required=True)

    build_parser = subparsers.add_parser(
        "build", help="Generate a docset from a cljdoc bundle"
    )
    _add_build_arguments(build_parser)

    argv = list(sys.argv[1:] if argv is None else argv)
    argv = list(_ensure_command_prefix(argv, subparsers.choices.keys()))
    return parser.parse_args(argv)


def _run_build(args: argparse.Namespace) -> int:
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )

    try:
        group_id, artifact_id = parse_library_name(args.library)
    except ValueError as exc:
        logger.error("%s", exc)
        return 1

    lib = LibraryInfo(group_id=group_id, artifact_id=artifact_id, version=args.version)
    config = BuildConfig(
        output_dir=Path(args.output).resolve(),
        build_dir=args.build_dir,
        icon_path=args.icon,
        force=args.force,
        parse_workers=args.parse_workers,
        fetch=FetchConfig(
            max_retries=args.max_retries,
            timeout=args.timeout,
            max_workers=args.workers,
        ),
    )

    logger.info("Building docset for %s version %s", args.library, args.version)
    logger.debug("Output directory: %s", config.output_dir)
    try:
        result = build_docset(lib, config)
    except Exception:  # pylint: disable=broad-except
        logger.exception("Docset build failed for %s", args.library)
        return 1

    images = result.images
    logger.info(
        "Finished in %.2fs: %d entries (%d indexed), images %d total / %d successful / %d failed",
        result.total_seconds,
        result.entry_count,
        result.indexed_count,
        images.total,
        images.successful,
        images.failed,
    )
    for page in images.details:
        if page.error:
            logger.warning("Page %s skipped: %s", page.file, page.error)
        for asset in page.images:
            if not asset.success:
                logger.debug("Image %s in %s failed: %s", asset.source_url, page.file, asset.error)
    logger.info("Docset: %s", result.paths.docset_dir)
    logger.info("Archive: %s", result.paths.archive_file)
    return 0


def main(argv: Sequence[str] | None = None) -> None:
    args = parse_args(argv)
    if args.command == "build":
        sys.exit(_run_build(args))


if __name__ == "__main__":
    main()
