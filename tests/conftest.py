"""Shared fixtures: a tiny cljdoc-style bundle and a scripted HTTP session."""

from __future__ import annotations

import io
import threading
import zipfile
from pathlib import Path
from typing import Dict, List, Optional, Union

import pytest
import requests

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64
SVG_BYTES = b'<svg xmlns="http://www.w3.org/2000/svg" width="1" height="1"></svg>'

CORE_API_HTML = """<!DOCTYPE html>
<html><head><title>demo.core</title></head>
<body>
<a href="#">demo</a>
<h1>demo.core<span class="platform">clj/s</span></h1>
<div class="def-block">
  <h4 class="def-block-title" id="Router">Router <span class="tag">protocol</span></h4>
</div>
<div class="def-block">
  <h4 class="def-block-title" id="format-error">format-error clj <span class="tag">multimethod</span></h4>
</div>
<div class="def-block">
  <h4 class="def-block-title" id="defroutes">defroutes clj/s <span class="tag">macro</span></h4>
</div>
<div class="def-block">
  <h4 class="def-block-title" id="*config*">*config* <span class="tag">var</span></h4>
</div>
<div class="def-block">
  <h4 class="def-block-title" id="router">router cljs</h4>
</div>
<div class="def-block">
  <h4 class="def-block-title">no-anchor</h4>
</div>
<div class="def-block">
  <h4 class="def-block-title" id="blank"></h4>
</div>
<h2 id="usage">Usage</h2>
<h3 id="basic">Basic</h3>
</body></html>
"""

UTIL_API_HTML = """<html><body>
<h1>demo.util</h1>
<div class="def-block"><h4 class="def-block-title" id="helper">helper</h4></div>
</body></html>
"""

INTRO_GUIDE_HTML = """<html><body>
<nav><a href="#">Home</a> <a href=# class="brand">demo</a></nav>
<h1><a href="#introduction">Introduction</a></h1>
<p>The logo lives at https://img.example.com/logo.png if you want it.</p>
<img src="https://img.example.com/logo.png" alt="logo">
<img src="../images/local.png">
<img src="data:image/png;base64,iVBORw0KGgo=">
<h2 id="install">Install</h2>
<h3 id="deps"><code>deps.edn</code> setup</h3>
<h3>Unanchored</h3>
</body></html>
"""

EMPTY_GUIDE_HTML = "<html><body><p>Nothing to index here.</p></body></html>"

INDEX_HTML = """<html><body>
<img src='https://img.example.com/badge.svg'>
<p>Welcome</p>
</body></html>
"""

# Golden counts for the fixture bundle.
FIXTURE_SYMBOLS = 6
FIXTURE_NAMESPACES = 2
FIXTURE_GUIDES = 1
FIXTURE_SECTIONS = 4


class FakeResponse:
    """Minimal stand-in for :class:`requests.Response`."""

    def __init__(
        self,
        status_code: int = 200,
        content: bytes = b"",
        headers: Optional[Dict[str, str]] = None,
        url: str = "",
    ) -> None:
        self.status_code = status_code
        self.content = content
        self.headers = headers or {}
        self.url = url

    def iter_content(self, chunk_size: int = 1024):
        for start in range(0, len(self.content), chunk_size):
            yield self.content[start : start + chunk_size]

    def __enter__(self) -> "FakeResponse":
        return self

    def __exit__(self, *exc_info) -> None:
        return None


Scripted = Union[FakeResponse, Exception]


class FakeSession:
    """Serves scripted responses per URL and records every request.

    Each URL maps to a list of responses or exceptions consumed in order;
    the last item repeats once the script is exhausted. Unknown URLs get 404.
    """

    def __init__(self, routes: Optional[Dict[str, List[Scripted]]] = None) -> None:
        self.routes: Dict[str, List[Scripted]] = {
            url: list(items) for url, items in (routes or {}).items()
        }
        self.calls: List[str] = []
        self.timeouts: List[Optional[float]] = []
        self.closed = False
        self._lock = threading.Lock()

    def add(self, url: str, *items: Scripted) -> None:
        self.routes[url] = list(items)

    def get(self, url: str, timeout: Optional[float] = None, **kwargs) -> FakeResponse:
        with self._lock:
            self.calls.append(url)
            self.timeouts.append(timeout)
            script = self.routes.get(url)
            if not script:
                item: Scripted = FakeResponse(404, url=url)
            elif len(script) > 1:
                item = script.pop(0)
            else:
                item = script[0]
        if isinstance(item, Exception):
            raise item
        if not item.url:
            item.url = url
        return item

    def count(self, url: str) -> int:
        return self.calls.count(url)

    def close(self) -> None:
        self.closed = True


def png_response(content: bytes = PNG_BYTES) -> FakeResponse:
    return FakeResponse(200, content, {"Content-Type": "image/png"})


def svg_response() -> FakeResponse:
    return FakeResponse(200, SVG_BYTES, {"Content-Type": "image/svg+xml; charset=utf-8"})


def write_bundle(root: Path) -> Path:
    """Write the fixture bundle below *root* and return it."""
    files = {
        "index.html": INDEX_HTML,
        "api/demo.core.html": CORE_API_HTML,
        "api/demo.util.html": UTIL_API_HTML,
        "doc/intro.html": INTRO_GUIDE_HTML,
        "doc/empty.html": EMPTY_GUIDE_HTML,
    }
    for relative, content in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    return root


def bundle_zip_bytes(top_level: str = "demo-1.0.0") -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr(f"{top_level}/index.html", INDEX_HTML)
        archive.writestr(f"{top_level}/api/demo.core.html", CORE_API_HTML)
        archive.writestr(f"{top_level}/api/demo.util.html", UTIL_API_HTML)
        archive.writestr(f"{top_level}/doc/intro.html", INTRO_GUIDE_HTML)
        archive.writestr(f"{top_level}/doc/empty.html", EMPTY_GUIDE_HTML)
    return buffer.getvalue()


@pytest.fixture
def bundle_dir(tmp_path: Path) -> Path:
    return write_bundle(tmp_path / "bundle")


@pytest.fixture
def image_session() -> FakeSession:
    return FakeSession(
        {
            "https://img.example.com/logo.png": [png_response()],
            "https://img.example.com/badge.svg": [svg_response()],
        }
    )


@pytest.fixture
def no_sleep():
    """Records requested delays instead of sleeping."""
    delays: List[float] = []

    def sleep(seconds: float) -> None:
        delays.append(seconds)

    sleep.delays = delays  # type: ignore[attr-defined]
    return sleep


@pytest.fixture
def connection_error() -> requests.ConnectionError:
    return requests.ConnectionError("connection refused")
