"""Remote image downloading and HTML rewriting for offline docsets."""

from __future__ import annotations

import html as html_lib
import logging
import re
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Callable, Dict, Iterable, List, Optional, Union
from urllib.parse import urlparse

import requests
from bs4 import BeautifulSoup
from filetype import guess

from .config import USER_AGENT, FetchConfig
from .models import ImageKind, ImageReference, ImageReport, LocalizedAsset, PageImages
from .utils import content_hash, iter_html_files, relative_prefix

logger = logging.getLogger("cljdocset")

IMAGES_DIR_NAME = "images"
ROOT_PAGE = "index.html"

MIME_EXTENSIONS = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/gif": ".gif",
    "image/svg+xml": ".svg",
    "image/webp": ".webp",
    "image/x-icon": ".ico",
    "image/vnd.microsoft.icon": ".ico",
}

SUFFIX_EXTENSIONS = {
    ".png": ".png",
    ".jpg": ".jpg",
    ".jpeg": ".jpg",
    ".gif": ".gif",
    ".svg": ".svg",
    ".webp": ".webp",
    ".ico": ".ico",
}

_REMOTE_URL = re.compile(r"https?://")
_HASH_HREF_QUOTED = re.compile(r"""(?<![\w:-])(?i:href)\s*=\s*(["'])#\1""")
_HASH_HREF_BARE = re.compile(r"(?<![\w:-])(?i:href)\s*=\s*#(?=[\s>])")

Sleeper = Callable[[float], None]
PathLike = Union[str, Path]


@dataclass
class FetchResult:
    """Outcome of downloading one URL, after retries."""

    url: str
    success: bool
    content: bytes = b""
    content_type: Optional[str] = None
    error: Optional[str] = None
    attempts: int = 0


@dataclass
class LocalizedPage:
    """Rewritten HTML plus the per-image results for one page."""

    content: str
    images: List[LocalizedAsset] = field(default_factory=list)


def create_session() -> requests.Session:
    session = requests.Session()
    session.headers.update({"User-Agent": USER_AGENT})
    return session


def find_image_references(page: BeautifulSoup) -> List[str]:
    """Return the ``src`` of every ``<img>`` in document order."""
    return [img["src"] for img in page.find_all("img") if img.get("src") is not None]


def classify_image_url(url: str) -> ImageReference:
    if _REMOTE_URL.match(url):
        return ImageReference(url=url, kind=ImageKind.REMOTE)
    if url.startswith("data:"):
        return ImageReference(url=url, kind=ImageKind.DATA_URI)
    return ImageReference(url=url, kind=ImageKind.LOCAL)


def normalize_content_type(content_type: Optional[str]) -> Optional[str]:
    """Strip parameters: ``image/svg+xml;charset=utf-8`` -> ``image/svg+xml``."""
    if content_type is None:
        return None
    return content_type.split(";")[0].strip()


def extension_from_content_type(content_type: Optional[str]) -> Optional[str]:
    normalized = normalize_content_type(content_type)
    if not normalized:
        return None
    return MIME_EXTENSIONS.get(normalized.lower())


def extension_from_url(url: str) -> Optional[str]:
    path = urlparse(url).path or url
    suffix = PurePosixPath(path).suffix.lower()
    return SUFFIX_EXTENSIONS.get(suffix)


def detect_image_extension(data: bytes) -> Optional[str]:
    """Sniff the file signature with filetype; only known image types count."""
    kind = guess(data)
    if kind is None:
        return None
    return MIME_EXTENSIONS.get(kind.mime)


def determine_image_extension(
    content_type: Optional[str],
    url: str,
    data: Optional[bytes] = None,
) -> Optional[str]:
    """Pick an extension from the content type, then the URL, then the bytes."""
    extension = extension_from_content_type(content_type) or extension_from_url(url)
    if extension is None and data:
        extension = detect_image_extension(data)
    return extension


def extract_filename_from_url(url: str) -> Optional[str]:
    """Return the URL's file name without extension, or ``None``."""
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        return None
    name = PurePosixPath(parsed.path).name
    if "." not in name:
        return None
    base = name.rsplit(".", 1)[0]
    return base or None


def relative_images_path(page_path: PathLike, documents_root: PathLike) -> str:
    """Relative link from a page to the shared images directory."""
    return f"{relative_prefix(page_path, documents_root)}{IMAGES_DIR_NAME}/"


def fetch_image(
    url: str,
    session: requests.Session,
    config: Optional[FetchConfig] = None,
    sleep: Sleeper = time.sleep,
) -> FetchResult:
    """GET *url*, retrying server errors and transport failures with linear backoff.

    A 2xx response succeeds immediately and a 4xx response fails immediately.
    Anything else is retried until ``config.max_retries`` attempts have been
    made, sleeping ``attempt * config.retry_delay`` seconds between attempts.
    """
    config = config or FetchConfig()
    last_error = "no attempts made"
    for attempt in range(1, config.max_retries + 1):
        try:
            response = session.get(url, timeout=config.timeout)
        except requests.RequestException as exc:
            last_error = f"{type(exc).__name__}: {exc}"
        else:
            status = response.status_code
            if 200 <= status < 300:
                return FetchResult(
                    url=url,
                    success=True,
                    content=response.content,
                    content_type=response.headers.get("Content-Type"),
                    attempts=attempt,
                )
            if 400 <= status < 500:
                return FetchResult(
                    url=url,
                    success=False,
                    error=f"Client error {status} for URL: {url}",
                    attempts=attempt,
                )
            last_error = f"status {status}"

        if attempt < config.max_retries:
            delay = attempt * config.retry_delay
            logger.debug(
                "Attempt %d/%d for %s failed (%s); retrying in %.1fs",
                attempt,
                config.max_retries,
                url,
                last_error,
                delay,
            )
            sleep(delay)

    return FetchResult(
        url=url,
        success=False,
        error=f"Failed after {config.max_retries} attempts ({last_error}) for URL: {url}",
        attempts=config.max_retries,
    )


def save_image(data: bytes, extension: str, images_dir: PathLike) -> str:
    """Store *data* under its content hash and return the file name."""
    directory = Path(images_dir)
    directory.mkdir(parents=True, exist_ok=True)
    filename = f"{content_hash(data)}{extension}"
    destination = directory / filename
    if not destination.exists():
        destination.write_bytes(data)
    return filename


def localize_remote_image(
    url: str,
    session: requests.Session,
    images_dir: PathLike,
    images_prefix: str,
    config: Optional[FetchConfig] = None,
    sleep: Sleeper = time.sleep,
) -> LocalizedAsset:
    """Download, store and map one remote image; failures are returned, not raised."""
    result = fetch_image(url, session, config, sleep)
    if not result.success:
        logger.warning("Failed to fetch image %s: %s", url, result.error)
        return LocalizedAsset(source_url=url, success=False, error=result.error)

    extension = determine_image_extension(result.content_type, url, result.content)
    if extension is None:
        error = f"Cannot determine image extension (Content-Type={result.content_type})"
        logger.warning("Skipping %s: %s", url, error)
        return LocalizedAsset(source_url=url, success=False, error=error)

    try:
        filename = save_image(result.content, extension, images_dir)
    except OSError as exc:
        logger.warning("Failed to write image %s: %s", url, exc)
        return LocalizedAsset(source_url=url, success=False, error=f"Write failed: {exc}")

    logger.debug(
        "Saved %s (%s) as %s",
        url,
        extract_filename_from_url(url) or "unnamed",
        filename,
    )
    return LocalizedAsset(
        source_url=url,
        success=True,
        local_path=f"{images_prefix}{filename}",
    )


def build_image_mapping(assets: Iterable[LocalizedAsset]) -> Dict[str, str]:
    return {
        asset.source_url: asset.local_path
        for asset in assets
        if asset.success and asset.local_path
    }


def _src_pattern(url: str) -> "re.Pattern[str]":
    variants = sorted({url, html_lib.escape(url, quote=False)}, key=len, reverse=True)
    alternatives = "|".join(re.escape(variant) for variant in variants)
    # Attribute name is case-insensitive, URLs are not.
    return re.compile(
        r"(?P<attr>(?<![\w:-])(?i:src)\s*=\s*)"
        r"(?:(?P<quote>[\"'])(?:" + alternatives + r")(?P=quote)"
        r"|(?:" + alternatives + r")(?=[\s>]|$))"
    )


def rewrite_image_urls(html: str, mapping: Dict[str, str]) -> str:
    """Point ``src`` attributes at local copies, leaving other text untouched.

    Matching is textual: a ``src="URL"`` on any element, or written out
    literally in unescaped page text, is rewritten too.
    """
    updated = html
    for original_url, local_path in mapping.items():
        def _replace(match: "re.Match[str]", local_path: str = local_path) -> str:
            quote = match.group("quote") or '"'
            return f"{match.group('attr')}{quote}{local_path}{quote}"

        updated = _src_pattern(original_url).sub(_replace, updated)
    return updated


def rewrite_navigation_links(html: str, root_page: str = ROOT_PAGE) -> str:
    """Replace ``href="#"`` links with a link to the bundle's root page."""
    replacement = f'href="{root_page}"'
    updated = _HASH_HREF_QUOTED.sub(replacement, html)
    return _HASH_HREF_BARE.sub(replacement, updated)


def _remote_urls(image_urls: Iterable[str]) -> List[str]:
    remote = (
        reference.url
        for reference in map(classify_image_url, image_urls)
        if reference.kind is ImageKind.REMOTE
    )
    return list(dict.fromkeys(remote))


def localize_images(
    page_content: str,
    page_path: PathLike,
    images_dir: PathLike,
    documents_root: PathLike,
    session: Optional[requests.Session] = None,
    config: Optional[FetchConfig] = None,
    sleep: Sleeper = time.sleep,
) -> LocalizedPage:
    """Download a page's remote images and return the rewritten HTML.

    Distinct remote URLs are fetched on a bounded thread pool; results keep
    the order in which the URLs first appear in the page.
    """
    config = config or FetchConfig()
    prefix = relative_prefix(page_path, documents_root)
    images_prefix = f"{prefix}{IMAGES_DIR_NAME}/"

    remote_urls = _remote_urls(find_image_references(BeautifulSoup(page_content, "html.parser")))

    assets: List[LocalizedAsset] = []
    if remote_urls:
        owns_session = session is None
        active_session = session or create_session()
        try:
            def localize(url: str) -> LocalizedAsset:
                return localize_remote_image(
                    url, active_session, images_dir, images_prefix, config, sleep
                )

            workers = min(config.max_workers, len(remote_urls))
            if workers > 1:
                with ThreadPoolExecutor(max_workers=workers) as executor:
                    assets = list(executor.map(localize, remote_urls))
            else:
                assets = [localize(url) for url in remote_urls]
        finally:
            if owns_session:
                active_session.close()

    updated = page_content
    mapping = build_image_mapping(assets)
    if mapping:
        updated = rewrite_image_urls(updated, mapping)
    updated = rewrite_navigation_links(updated, f"{prefix}{ROOT_PAGE}")
    return LocalizedPage(content=updated, images=assets)


def localize_all_images(
    documents_root: PathLike,
    session: Optional[requests.Session] = None,
    config: Optional[FetchConfig] = None,
    sleep: Sleeper = time.sleep,
) -> ImageReport:
    """Localize remote images in every HTML file below *documents_root*."""
    root = Path(documents_root)
    if not root.is_dir():
        raise FileNotFoundError(f"Documents directory does not exist: {root}")

    logger.info("Processing remote images...")
    images_dir = root / IMAGES_DIR_NAME
    report = ImageReport()
    owns_session = session is None
    active_session = session or create_session()
    try:
        for html_file in iter_html_files(root):
            relative = html_file.relative_to(root).as_posix()
            logger.info("Processing images in: %s", relative)
            try:
                original = html_file.read_bytes().decode("utf-8")
                page = localize_images(
                    original,
                    html_file,
                    images_dir,
                    root,
                    active_session,
                    config,
                    sleep,
                )
                if page.content != original:
                    html_file.write_bytes(page.content.encode("utf-8"))
            except (OSError, UnicodeDecodeError) as exc:
                logger.error("Skipping %s: %s", relative, exc)
                report.details.append(PageImages(file=relative, error=str(exc)))
                continue

            details = PageImages(file=relative, images=page.images)
            report.details.append(details)
            report.total += len(details.images)
            report.successful += details.successful
            report.failed += details.failed
    finally:
        if owns_session:
            active_session.close()

    logger.info(
        "Processed %d images: %d successful, %d failed",
        report.total,
        report.successful,
        report.failed,
    )
    return report
