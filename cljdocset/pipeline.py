"""High-level orchestration: from a cljdoc bundle to a packaged docset."""

from __future__ import annotations

import logging
import shutil
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

import requests

from .config import BuildConfig, FetchConfig
from .db import store_entries
from .docset import (
    DocsetPaths,
    add_icon,
    archive_docset,
    copy_bundle,
    create_docset_structure,
    publish,
    resolve_docset_paths,
    write_info_plist,
)
from .download import prepare_build_environment
from .images import create_session, localize_all_images
from .models import DocEntry, ImageReport, LibraryInfo
from .parse import parse_all_entries

logger = logging.getLogger("cljdocset")


@dataclass
class CoreResult:
    """Entries and image statistics for one processed bundle."""

    entries: List[DocEntry] = field(default_factory=list)
    images: ImageReport = field(default_factory=ImageReport)


@dataclass
class BuildResult:
    """Outcome and timing of a complete docset build."""

    lib: LibraryInfo
    paths: DocsetPaths
    entry_count: int
    indexed_count: int
    images: ImageReport
    total_seconds: float


def process_bundle(
    bundle_dir: Path,
    documents_dir: Path,
    fetch_config: Optional[FetchConfig] = None,
    session: Optional[requests.Session] = None,
    parse_workers: int = 1,
) -> CoreResult:
    """Extract all index entries, then localize all remote images in place.

    *bundle_dir* and *documents_dir* may be the same directory; both must
    exist before any work starts.
    """
    bundle_dir = Path(bundle_dir)
    documents_dir = Path(documents_dir)
    if not bundle_dir.is_dir():
        raise FileNotFoundError(f"Bundle directory does not exist: {bundle_dir}")
    if not documents_dir.is_dir():
        raise FileNotFoundError(f"Documents directory does not exist: {documents_dir}")

    entries = parse_all_entries(bundle_dir, workers=parse_workers)
    images = localize_all_images(documents_dir, session=session, config=fetch_config)
    return CoreResult(entries=entries, images=images)


def build_docset(
    lib: LibraryInfo,
    config: BuildConfig,
    session: Optional[requests.Session] = None,
) -> BuildResult:
    """Download a bundle and turn it into an archived, indexed docset."""
    overall_start = time.perf_counter()
    owns_session = session is None
    session = session or create_session()
    env = None
    try:
        env = prepare_build_environment(lib, config, session)
        lib = env.lib
        logger.info("Building docset for %s/%s %s", lib.group_id, lib.artifact_id, lib.version)

        paths = resolve_docset_paths(env.build_dir, lib.docset_name, config.icon_path)
        create_docset_structure(paths)
        copy_bundle(env.bundle_dir, paths)

        core = process_bundle(
            paths.documents_dir,
            paths.documents_dir,
            fetch_config=config.fetch,
            session=session,
            parse_workers=config.parse_workers,
        )
        indexed = store_entries(paths.db_file, core.entries)

        write_info_plist(paths, lib)
        add_icon(paths)
        archive_docset(paths)
        published = publish(paths, Path(config.output_dir).resolve())
    finally:
        if owns_session:
            session.close()
        if env is not None and env.is_temporary:
            shutil.rmtree(env.build_dir, ignore_errors=True)

    return BuildResult(
        lib=lib,
        paths=published,
        entry_count=len(core.entries),
        indexed_count=indexed,
        images=core.images,
        total_seconds=time.perf_counter() - overall_start,
    )
