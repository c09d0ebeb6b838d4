"""Utility helpers for path handling and content hashing."""

from __future__ import annotations

import hashlib
from pathlib import Path
from typing import List, Union

PathLike = Union[str, Path]


def list_html_files(root: PathLike, subdir: str) -> List[str]:
    """Return sorted ``subdir/<name>.html`` paths relative to *root*."""
    base = Path(root)
    directory = base / subdir
    if not directory.is_dir():
        return []
    return sorted(
        path.relative_to(base).as_posix()
        for path in directory.glob("*.html")
        if path.is_file()
    )


def iter_html_files(root: PathLike) -> List[Path]:
    """Return every HTML file below *root*, recursively, in sorted order."""
    return sorted(path for path in Path(root).rglob("*.html") if path.is_file())


def page_depth(page_path: PathLike, documents_root: PathLike) -> int:
    """Count directory segments between *documents_root* and *page_path*.

    *page_path* may be a path below *documents_root* or a path already
    relative to it (``api/foo.html``).
    """
    page = Path(page_path)
    root = Path(documents_root)
    try:
        relative = page.relative_to(root)
    except ValueError:
        if page.is_absolute():
            relative = page.resolve().relative_to(root.resolve())
        else:
            relative = page
    return max(len(relative.parts) - 1, 0)


def relative_prefix(page_path: PathLike, documents_root: PathLike) -> str:
    """Return the ``../`` prefix leading from a page back to the documents root."""
    return "../" * page_depth(page_path, documents_root)


def content_hash(data: bytes) -> str:
    """SHA-256 of *data* as lowercase hex."""
    return hashlib.sha256(data).hexdigest()
