"""Configuration objects and constants for the docset builder."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

CLJDOC_BASE_URL = "https://cljdoc.org"
USER_AGENT = "cljdocset/0.1.0 (+https://cljdoc.org)"

DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY = 0.5
DEFAULT_REQUEST_TIMEOUT = 15.0
DEFAULT_IMAGE_WORKERS = 4

DOCSET_PLATFORM_FAMILY = "cljlib"
DOCSET_KEYWORD = "cljdoc"


@dataclass
class FetchConfig:
    """Retry, timeout and pool settings for remote image downloads."""

    max_retries: int = DEFAULT_MAX_RETRIES
    retry_delay: float = DEFAULT_RETRY_DELAY
    timeout: float = DEFAULT_REQUEST_TIMEOUT
    max_workers: int = DEFAULT_IMAGE_WORKERS

    def __post_init__(self) -> None:
        self.max_retries = max(1, int(self.max_retries))
        self.max_workers = max(1, int(self.max_workers))


@dataclass
class BuildConfig:
    """Top-level settings that control a docset build."""

    output_dir: Path
    build_dir: Optional[Path] = None
    icon_path: Optional[Path] = None
    force: bool = False
    parse_workers: int = 1
    fetch: FetchConfig = field(default_factory=FetchConfig)
