"""Bundle acquisition: version lookup, download and extraction of cljdoc zips."""

from __future__ import annotations

import logging
import re
import tempfile
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple
from urllib.parse import urlparse

import requests

from .config import CLJDOC_BASE_URL, BuildConfig
from .models import LibraryInfo

logger = logging.getLogger("cljdocset")

_VERSION_IN_URL = re.compile(r"/d/[^/]+/[^/]+/([^/?#]+)")
_CHUNK_SIZE = 64 * 1024


@dataclass
class BuildEnvironment:
    """Resolved library plus the directories a build works in."""

    lib: LibraryInfo
    build_dir: Path
    zip_path: Path
    bundle_dir: Path
    is_temporary: bool


def parse_library_name(name: str) -> Tuple[str, str]:
    """Split ``group-id/artifact-id``."""
    parts = name.split("/")
    if len(parts) != 2 or not all(part.strip() for part in parts):
        raise ValueError(
            f"Invalid library name format {name!r}. Expected: group-id/artifact-id"
        )
    return parts[0].strip(), parts[1].strip()


def library_page_url(lib: LibraryInfo) -> str:
    return f"{CLJDOC_BASE_URL}/d/{lib.group_id}/{lib.artifact_id}"


def build_download_url(lib: LibraryInfo) -> str:
    return f"{CLJDOC_BASE_URL}/download/{lib.group_id}/{lib.artifact_id}/{lib.version}"


def zip_filename(lib: LibraryInfo) -> str:
    return f"{lib.artifact_id}-{lib.version}.zip"


def get_latest_version(
    lib: LibraryInfo,
    session: requests.Session,
    timeout: float = 30.0,
) -> Optional[str]:
    """Follow cljdoc's redirect from the library page to its latest release."""
    response = session.get(library_page_url(lib), timeout=timeout, allow_redirects=True)
    match = _VERSION_IN_URL.search(urlparse(response.url).path)
    return match.group(1) if match else None


def resolve_version(lib: LibraryInfo, session: requests.Session) -> LibraryInfo:
    if lib.version != "latest":
        return lib
    logger.info("Resolving latest version for %s", lib.artifact_id)
    try:
        latest = get_latest_version(lib, session)
    except requests.RequestException as exc:
        raise RuntimeError(f"Failed to resolve latest version: {exc}") from exc
    if not latest:
        raise RuntimeError(
            f"Failed to resolve latest version for {lib.group_id}/{lib.artifact_id}"
        )
    return LibraryInfo(lib.group_id, lib.artifact_id, latest)


def download_bundle(
    lib: LibraryInfo,
    zip_path: Path,
    session: requests.Session,
    force: bool = False,
    timeout: float = 60.0,
) -> Path:
    """Stream the bundle zip to *zip_path* unless it is already present."""
    if zip_path.exists() and not force:
        logger.info("Bundle already exists at %s", zip_path)
        return zip_path

    url = build_download_url(lib)
    logger.info("Downloading from %s", url)
    try:
        with session.get(url, stream=True, timeout=timeout) as response:
            if response.status_code != 200:
                raise RuntimeError(
                    f"Download failed with status {response.status_code}: {url}"
                )
            zip_path.parent.mkdir(parents=True, exist_ok=True)
            with open(zip_path, "wb") as fh:
                for chunk in response.iter_content(chunk_size=_CHUNK_SIZE):
                    fh.write(chunk)
    except requests.RequestException as exc:
        raise RuntimeError(f"Failed to download bundle from {url}: {exc}") from exc
    logger.debug("Download complete: %s", zip_path)
    return zip_path


def extract_bundle(zip_path: Path, build_dir: Path) -> Path:
    """Unzip into *build_dir* and return the extracted bundle directory."""
    logger.info("Extracting bundle %s", zip_path)
    with zipfile.ZipFile(zip_path) as archive:
        top_level = sorted(
            {Path(name).parts[0] for name in archive.namelist() if "/" in name}
        )
        archive.extractall(build_dir)

    candidates = [build_dir / name for name in top_level if (build_dir / name).is_dir()]
    if not candidates:
        raise RuntimeError(f"No directory found after extracting {zip_path}")
    bundle_dir = candidates[0]
    if not (bundle_dir / "index.html").exists():
        raise RuntimeError(f"Invalid bundle: missing index.html in {bundle_dir}")
    logger.debug("Bundle extracted to: %s", bundle_dir)
    return bundle_dir


def create_build_directory(build_dir: Optional[Path]) -> Tuple[Path, bool]:
    """Use *build_dir* (created if needed) or a fresh temporary directory."""
    if build_dir is None or not str(build_dir).strip():
        path = Path(tempfile.mkdtemp(prefix="cljdocset-"))
        logger.debug("Using temporary build directory: %s", path)
        return path, True
    path = Path(build_dir).expanduser().resolve()
    path.mkdir(parents=True, exist_ok=True)
    logger.debug("Using build directory: %s", path)
    return path, False


def prepare_build_environment(
    lib: LibraryInfo,
    config: BuildConfig,
    session: requests.Session,
) -> BuildEnvironment:
    """Create the build dir, resolve the version, download and unpack the bundle."""
    logger.info("Preparing build environment...")
    build_dir, is_temporary = create_build_directory(config.build_dir)
    lib = resolve_version(lib, session)
    zip_path = build_dir / zip_filename(lib)
    download_bundle(lib, zip_path, session, force=config.force)
    bundle_dir = extract_bundle(zip_path, build_dir)
    return BuildEnvironment(
        lib=lib,
        build_dir=build_dir,
        zip_path=zip_path,
        bundle_dir=bundle_dir,
        is_temporary=is_temporary,
    )
