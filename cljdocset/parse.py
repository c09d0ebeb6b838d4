"""Index entry extraction from cljdoc-generated HTML pages."""

from __future__ import annotations

import logging
import re
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from bs4 import BeautifulSoup, Comment, NavigableString, Tag

from .models import DocEntry, EntryType
from .utils import list_html_files

logger = logging.getLogger("cljdocset")

DEF_BLOCK_CLASS = "def-block"
DEF_BLOCK_TITLE_CLASS = "def-block-title"

API_DIR = "api"
GUIDE_DIR = "doc"

# Ordered by precedence: a title carrying several markers takes the first match.
KIND_MARKERS: Tuple[Tuple[str, EntryType], ...] = (
    ("protocol", EntryType.PROTOCOL),
    ("multimethod", EntryType.METHOD),
    ("macro", EntryType.MACRO),
)
VAR_MARKER = "var"
DEFAULT_SYMBOL_TYPE = EntryType.FUNCTION

_PLATFORM_SUFFIX = re.compile(r"(?:\s+(?:clj/s|cljs|clj))?\s*$")

Heading = Tuple[str, Optional[str], str]


def parse_html(html: Union[str, bytes]) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


def parse_html_file(path: Union[str, Path]) -> BeautifulSoup:
    """Read and parse an HTML file; I/O errors propagate to the caller."""
    return parse_html(Path(path).read_bytes())


def find_def_blocks(page: BeautifulSoup) -> List[Tag]:
    return page.find_all(class_=DEF_BLOCK_CLASS)


def _title_of(block: Tag) -> Optional[Tag]:
    return block.find(class_=DEF_BLOCK_TITLE_CLASS)


def strip_platform_suffix(text: str) -> str:
    """Drop a trailing ``clj``/``cljs``/``clj/s`` qualifier and trim."""
    return _PLATFORM_SUFFIX.sub("", text.strip()).strip()


def extract_symbol_name(block: Tag) -> Optional[str]:
    """Return the symbol name from the first text run of the block title."""
    title = _title_of(block)
    if title is None or not title.contents:
        return None
    first = title.contents[0]
    text = first.get_text() if isinstance(first, Tag) else str(first)
    name = strip_platform_suffix(text)
    return name or None


def classify_markers(markers: Iterable[str]) -> EntryType:
    """Map the inline marker texts of a def-block title to an entry type."""
    markers = [marker.strip() for marker in markers]
    for keyword, entry_type in KIND_MARKERS:
        if any(keyword in marker for marker in markers):
            return entry_type
    if any(marker == VAR_MARKER for marker in markers):
        return EntryType.VARIABLE
    return DEFAULT_SYMBOL_TYPE


def extract_symbol_type(block: Tag) -> EntryType:
    title = _title_of(block)
    if title is None:
        return DEFAULT_SYMBOL_TYPE
    markers = [span.get_text() for span in title.find_all("span", recursive=False)]
    return classify_markers(markers)


def extract_symbol_anchor(block: Tag) -> Optional[str]:
    title = _title_of(block)
    if title is None:
        return None
    return title.get("id") or None


def symbol_to_entry(block: Tag, relative_path: str) -> Optional[DocEntry]:
    """Convert a def-block into an entry, or ``None`` when name or anchor is missing."""
    name = extract_symbol_name(block)
    if not name:
        return None
    anchor = extract_symbol_anchor(block)
    if not anchor:
        return None
    return DocEntry(
        name=name,
        type=extract_symbol_type(block),
        path=f"{relative_path}#{anchor}",
    )


def extract_symbols(page: BeautifulSoup, relative_path: str) -> List[DocEntry]:
    entries: List[DocEntry] = []
    for block in find_def_blocks(page):
        entry = symbol_to_entry(block, relative_path)
        if entry is not None:
            entries.append(entry)
    return entries


def _direct_text(heading: Tag, include_links: bool = False) -> str:
    parts: List[str] = []
    for child in heading.children:
        if isinstance(child, Comment):
            continue
        if isinstance(child, NavigableString):
            parts.append(str(child))
        elif include_links and isinstance(child, Tag) and child.name == "a":
            parts.append(
                "".join(
                    str(text)
                    for text in child.children
                    if isinstance(text, NavigableString) and not isinstance(text, Comment)
                )
            )
    return "".join(parts).strip()


def extract_namespace_name(page: BeautifulSoup) -> Optional[str]:
    """Namespace name from the first ``<h1>``, ignoring nested markers."""
    h1 = page.find("h1")
    if h1 is None:
        return None
    return _direct_text(h1) or None


def extract_guide_title(page: BeautifulSoup) -> Optional[str]:
    """Guide title from the first ``<h1>``, including text wrapped in links."""
    h1 = page.find("h1")
    if h1 is None:
        return None
    return _direct_text(h1, include_links=True) or None


def extract_namespace_entry(page: BeautifulSoup, relative_path: str) -> Optional[DocEntry]:
    name = extract_namespace_name(page)
    if name is None:
        return None
    return DocEntry(name=name, type=EntryType.NAMESPACE, path=relative_path)


def extract_guide_entry(page: BeautifulSoup, relative_path: str) -> Optional[DocEntry]:
    name = extract_guide_title(page)
    if name is None:
        return None
    return DocEntry(name=name, type=EntryType.GUIDE, path=relative_path)


def extract_header_text(heading: Tag) -> str:
    """Concatenate every text run below *heading*, at any nesting depth."""
    return heading.get_text().strip()


def collect_headings(page: BeautifulSoup) -> List[Heading]:
    """Return ``(tag, id, text)`` for every h2/h3 in document order."""
    return [
        (heading.name, heading.get("id") or None, extract_header_text(heading))
        for heading in page.find_all(["h2", "h3"])
    ]


def headings_to_section_entries(
    headings: Sequence[Heading],
    relative_path: str,
) -> List[DocEntry]:
    """Fold h2/h3 headings into section entries, naming h3s after their h2."""
    entries: List[DocEntry] = []
    context = ""
    for tag, anchor, text in headings:
        if tag == "h2":
            context = text
            name = text
        elif context.strip():
            name = f"{text} - {context}"
        else:
            name = text
        if not anchor or not text:
            continue
        entries.append(
            DocEntry(name=name, type=EntryType.SECTION, path=f"{relative_path}#{anchor}")
        )
    return entries


def extract_sections(page: BeautifulSoup, relative_path: str) -> List[DocEntry]:
    return headings_to_section_entries(collect_headings(page), relative_path)


def list_api_pages(bundle_dir: Union[str, Path]) -> List[str]:
    return list_html_files(bundle_dir, API_DIR)


def list_guide_pages(bundle_dir: Union[str, Path]) -> List[str]:
    return list_html_files(bundle_dir, GUIDE_DIR)


def parse_api_page(bundle_dir: Path, relative_path: str) -> List[DocEntry]:
    """Symbols, then the namespace entry, then sections of one API page."""
    page = parse_html_file(bundle_dir / relative_path)
    entries = extract_symbols(page, relative_path)
    namespace = extract_namespace_entry(page, relative_path)
    if namespace is not None:
        entries.append(namespace)
    entries.extend(extract_sections(page, relative_path))
    return entries


def parse_guide_page(bundle_dir: Path, relative_path: str) -> List[DocEntry]:
    page = parse_html_file(bundle_dir / relative_path)
    entries: List[DocEntry] = []
    guide = extract_guide_entry(page, relative_path)
    if guide is not None:
        entries.append(guide)
    entries.extend(extract_sections(page, relative_path))
    return entries


def parse_all_entries(bundle_dir: Union[str, Path], workers: int = 1) -> List[DocEntry]:
    """Extract every entry of a bundle, API pages first, then guides.

    Pages are independent, so *workers* > 1 parses them on a thread pool;
    ``Executor.map`` keeps results in page order either way.
    """
    root = Path(bundle_dir)
    if not root.is_dir():
        raise FileNotFoundError(f"Bundle directory does not exist: {root}")

    logger.info("Parsing documentation in %s", root)
    jobs = [(parse_api_page, path) for path in list_api_pages(root)]
    jobs += [(parse_guide_page, path) for path in list_guide_pages(root)]

    def run(job) -> List[DocEntry]:
        func, relative_path = job
        try:
            return func(root, relative_path)
        except OSError as exc:
            logger.error("Skipping %s: %s", relative_path, exc)
            return []

    if workers > 1 and len(jobs) > 1:
        with ThreadPoolExecutor(max_workers=workers) as executor:
            per_page = list(executor.map(run, jobs))
    else:
        per_page = [run(job) for job in jobs]

    entries = [entry for page_entries in per_page for entry in page_entries]
    counts = {entry_type: 0 for entry_type in EntryType}
    for entry in entries:
        counts[entry.type] += 1
    logger.debug(
        "Parsed %d entries: %d symbols, %d namespaces, %d guides, %d sections",
        len(entries),
        sum(count for entry_type, count in counts.items() if entry_type.is_symbol),
        counts[EntryType.NAMESPACE],
        counts[EntryType.GUIDE],
        counts[EntryType.SECTION],
    )
    return entries
