"""Docset layout, Info.plist, icon and archive creation."""

from __future__ import annotations

import logging
import plistlib
import shutil
import tarfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from PIL import Image

from .config import CLJDOC_BASE_URL, DOCSET_KEYWORD, DOCSET_PLATFORM_FAMILY
from .models import LibraryInfo

logger = logging.getLogger("cljdocset")

ICON_SIZES = {"icon.png": 16, "icon@2x.png": 32}
ARCHIVE_EXCLUDES = {".DS_Store"}


@dataclass
class DocsetPaths:
    """Every path inside a docset under construction."""

    output_dir: Path
    docset_dir: Path
    contents_dir: Path
    resources_dir: Path
    documents_dir: Path
    db_file: Path
    plist_file: Path
    archive_file: Path
    input_icon_path: Optional[Path] = None


def docset_layout(
    output_dir: Path,
    docset_name: str,
    icon_path: Optional[Path] = None,
) -> DocsetPaths:
    docset_dir = output_dir / f"{docset_name}.docset"
    contents_dir = docset_dir / "Contents"
    resources_dir = contents_dir / "Resources"
    return DocsetPaths(
        output_dir=output_dir,
        docset_dir=docset_dir,
        contents_dir=contents_dir,
        resources_dir=resources_dir,
        documents_dir=resources_dir / "Documents",
        db_file=resources_dir / "docSet.dsidx",
        plist_file=contents_dir / "Info.plist",
        archive_file=output_dir / f"{docset_name}.tgz",
        input_icon_path=Path(icon_path) if icon_path else None,
    )


def resolve_docset_paths(
    build_dir: Path,
    docset_name: str,
    icon_path: Optional[Path] = None,
) -> DocsetPaths:
    return docset_layout(build_dir / "out", docset_name, icon_path)


def create_docset_structure(paths: DocsetPaths) -> None:
    if paths.docset_dir.exists():
        shutil.rmtree(paths.docset_dir)
    paths.documents_dir.mkdir(parents=True, exist_ok=True)


def copy_bundle(bundle_dir: Path, paths: DocsetPaths) -> None:
    """Copy the unpacked bundle's pages and assets into ``Documents/``."""
    if not bundle_dir.is_dir():
        raise FileNotFoundError(f"Bundle directory does not exist: {bundle_dir}")
    logger.info("Copying documentation into %s", paths.documents_dir)
    shutil.copytree(bundle_dir, paths.documents_dir, dirs_exist_ok=True)


def info_plist(lib: LibraryInfo) -> dict:
    return {
        "CFBundleIdentifier": lib.bundle_id,
        "CFBundleName": f"{lib.artifact_id} {lib.version}",
        "isDashDocset": True,
        "DocSetPlatformFamily": DOCSET_PLATFORM_FAMILY,
        "dashIndexFilePath": "index.html",
        "isJavaScriptEnabled": True,
        "DashDocSetFamily": "dashtoc",
        "DashDocSetKeyword": DOCSET_KEYWORD,
        "DashDocSetFallbackURL": (
            f"{CLJDOC_BASE_URL}/d/{lib.group_id}/{lib.artifact_id}/{lib.version}/"
        ),
    }


def write_info_plist(paths: DocsetPaths, lib: LibraryInfo) -> None:
    paths.contents_dir.mkdir(parents=True, exist_ok=True)
    with open(paths.plist_file, "wb") as fh:
        plistlib.dump(info_plist(lib), fh)
    logger.debug("Wrote %s", paths.plist_file)


def add_icon(paths: DocsetPaths) -> None:
    """Write the user icon as 16x16 ``icon.png`` and 32x32 ``icon@2x.png``."""
    source = paths.input_icon_path
    if source is None:
        return
    if not source.is_file():
        raise FileNotFoundError(f"Icon file does not exist: {source}")
    with Image.open(source) as raw_icon:
        icon = raw_icon.convert("RGBA")
        for filename, side in ICON_SIZES.items():
            resized = icon.resize((side, side), Image.Resampling.LANCZOS)
            resized.save(paths.docset_dir / filename, format="PNG")
    logger.info("Added icon from %s", source)


def _exclude_junk(info: tarfile.TarInfo) -> Optional[tarfile.TarInfo]:
    if Path(info.name).name in ARCHIVE_EXCLUDES:
        return None
    return info


def archive_docset(paths: DocsetPaths) -> Path:
    """Create ``<name>.tgz`` with the ``.docset`` directory as its root."""
    logger.info("Creating archive: %s", paths.archive_file)
    with tarfile.open(paths.archive_file, "w:gz") as tar:
        tar.add(paths.docset_dir, arcname=paths.docset_dir.name, filter=_exclude_junk)
    size_mb = paths.archive_file.stat().st_size / 1_000_000
    logger.info("Archive created: %s (%.1f MB)", paths.archive_file, size_mb)
    return paths.archive_file


def publish(paths: DocsetPaths, output_dir: Path) -> DocsetPaths:
    """Copy the archive and docset into *output_dir*; returns the published paths."""
    output_dir.mkdir(parents=True, exist_ok=True)
    if output_dir.resolve() == paths.output_dir.resolve():
        return paths
    target_docset = output_dir / paths.docset_dir.name
    if target_docset.exists():
        shutil.rmtree(target_docset)
    shutil.copytree(paths.docset_dir, target_docset)
    shutil.copy2(paths.archive_file, output_dir / paths.archive_file.name)
    logger.info("Docset written to %s", target_docset)
    return docset_layout(output_dir, paths.docset_dir.stem, paths.input_icon_path)
