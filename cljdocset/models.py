"""Data models used throughout the docset pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional


class EntryType(str, Enum):
    """Dash entry types emitted into the search index."""

    NAMESPACE = "Namespace"
    GUIDE = "Guide"
    SECTION = "Section"
    VARIABLE = "Variable"
    MACRO = "Macro"
    PROTOCOL = "Protocol"
    METHOD = "Method"
    FUNCTION = "Function"

    @property
    def is_symbol(self) -> bool:
        return self not in (EntryType.NAMESPACE, EntryType.GUIDE, EntryType.SECTION)


@dataclass(frozen=True)
class DocEntry:
    """One navigable unit of documentation."""

    name: str
    type: EntryType
    path: str

    def as_row(self) -> tuple:
        return (self.name, self.type.value, self.path)


class ImageKind(str, Enum):
    REMOTE = "remote"
    LOCAL = "local"
    DATA_URI = "data-uri"


@dataclass(frozen=True)
class ImageReference:
    """Raw image reference discovered in a page's src attributes."""

    url: str
    kind: ImageKind


@dataclass
class LocalizedAsset:
    """Outcome of localizing a single remote image."""

    source_url: str
    success: bool
    local_path: Optional[str] = None
    error: Optional[str] = None


@dataclass
class PageImages:
    """Localization results for one HTML page."""

    file: str
    images: List[LocalizedAsset] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def successful(self) -> int:
        return sum(1 for asset in self.images if asset.success)

    @property
    def failed(self) -> int:
        return sum(1 for asset in self.images if not asset.success)


@dataclass
class ImageReport:
    """Bundle-level image statistics folded from per-page results."""

    total: int = 0
    successful: int = 0
    failed: int = 0
    details: List[PageImages] = field(default_factory=list)

    @property
    def failed_pages(self) -> List[PageImages]:
        return [page for page in self.details if page.error is not None]

    def summary(self) -> Dict[str, int]:
        return {
            "total": self.total,
            "successful": self.successful,
            "failed": self.failed,
        }


@dataclass
class LibraryInfo:
    """Identifies one cljdoc-hosted library release."""

    group_id: str
    artifact_id: str
    version: str = "latest"

    @property
    def docset_name(self) -> str:
        return self.artifact_id

    @property
    def bundle_id(self) -> str:
        return f"cljdoc.{self.group_id}.{self.artifact_id}"
