from __future__ import annotations

from pathlib import Path

import pytest

import cljdocset.parse as parse
from cljdocset.models import DocEntry, EntryType
from cljdocset.parse import (
    classify_markers,
    extract_guide_title,
    extract_namespace_name,
    extract_sections,
    extract_symbols,
    find_def_blocks,
    headings_to_section_entries,
    list_api_pages,
    list_guide_pages,
    parse_all_entries,
    parse_html,
    strip_platform_suffix,
)

from conftest import (
    CORE_API_HTML,
    FIXTURE_GUIDES,
    FIXTURE_NAMESPACES,
    FIXTURE_SECTIONS,
    FIXTURE_SYMBOLS,
)


GOLDEN_ORDER = [
    ("Router", "api/demo.core.html#Router"),
    ("format-error", "api/demo.core.html#format-error"),
    ("defroutes", "api/demo.core.html#defroutes"),
    ("*config*", "api/demo.core.html#*config*"),
    ("router", "api/demo.core.html#router"),
    ("demo.core", "api/demo.core.html"),
    ("Usage", "api/demo.core.html#usage"),
    ("Basic - Usage", "api/demo.core.html#basic"),
    ("helper", "api/demo.util.html#helper"),
    ("demo.util", "api/demo.util.html"),
    ("Introduction", "doc/intro.html"),
    ("Install", "doc/intro.html#install"),
    ("deps.edn setup - Install", "doc/intro.html#deps"),
]


def _block(title_html: str) -> str:
    return f'<div class="def-block">{title_html}</div>'


class TestSymbolNames:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("assoc-in", "assoc-in"),
            ("assoc-in clj", "assoc-in"),
            ("assoc-in cljs", "assoc-in"),
            ("assoc-in clj/s", "assoc-in"),
            ("  assoc-in clj/s  ", "assoc-in"),
            ("to-clj", "to-clj"),
            ("->cljs", "->cljs"),
        ],
    )
    def test_strip_platform_suffix(self, raw: str, expected: str) -> None:
        assert strip_platform_suffix(raw) == expected

    def test_symbol_entries_from_api_page(self) -> None:
        entries = extract_symbols(parse_html(CORE_API_HTML), "api/demo.core.html")

        assert entries == [
            DocEntry("Router", EntryType.PROTOCOL, "api/demo.core.html#Router"),
            DocEntry("format-error", EntryType.METHOD, "api/demo.core.html#format-error"),
            DocEntry("defroutes", EntryType.MACRO, "api/demo.core.html#defroutes"),
            DocEntry("*config*", EntryType.VARIABLE, "api/demo.core.html#*config*"),
            DocEntry("router", EntryType.FUNCTION, "api/demo.core.html#router"),
        ]

    def test_blocks_without_anchor_or_name_are_skipped(self) -> None:
        page = parse_html(
            _block('<h4 class="def-block-title">no-anchor</h4>')
            + _block('<h4 class="def-block-title" id="empty"></h4>')
            + _block('<h4 class="def-block-title" id="ws">   </h4>')
        )

        assert len(find_def_blocks(page)) == 3
        assert extract_symbols(page, "api/x.html") == []

    def test_name_from_nested_first_node(self) -> None:
        page = parse_html(
            _block('<h4 class="def-block-title" id="thing"><code>thing</code> clj</h4>')
        )

        assert extract_symbols(page, "api/x.html")[0].name == "thing"


class TestSymbolTypes:
    @pytest.mark.parametrize(
        "markers, expected",
        [
            ([], EntryType.FUNCTION),
            (["protocol"], EntryType.PROTOCOL),
            (["multimethod"], EntryType.METHOD),
            (["macro"], EntryType.MACRO),
            (["var"], EntryType.VARIABLE),
            (["macro", "protocol"], EntryType.PROTOCOL),
            (["macro", "multimethod"], EntryType.METHOD),
            (["var", "macro"], EntryType.MACRO),
            (["deprecated"], EntryType.FUNCTION),
            (["variadic"], EntryType.FUNCTION),
        ],
    )
    def test_classify_markers(self, markers, expected: EntryType) -> None:
        assert classify_markers(markers) is expected

    def test_only_direct_spans_count(self) -> None:
        page = parse_html(
            _block(
                '<h4 class="def-block-title" id="f">f '
                "<em><span>macro</span></em></h4>"
            )
        )

        assert extract_symbols(page, "api/x.html")[0].type is EntryType.FUNCTION


class TestTitles:
    def test_namespace_name_ignores_nested_markers(self) -> None:
        page = parse_html("<h1>demo.core<span>clj/s</span></h1><h1>other</h1>")

        assert extract_namespace_name(page) == "demo.core"

    def test_namespace_name_missing(self) -> None:
        assert extract_namespace_name(parse_html("<p>none</p>")) is None
        assert extract_namespace_name(parse_html("<h1><span>x</span></h1>")) is None

    def test_guide_title_includes_link_text(self) -> None:
        page = parse_html('<h1><a href="#rationale">Rationale</a></h1>')

        assert extract_guide_title(page) == "Rationale"

    def test_guide_title_combines_text_and_links(self) -> None:
        page = parse_html('<h1>Using <a href="#x">Routes</a><span>beta</span></h1>')

        assert extract_guide_title(page) == "Using Routes"


class TestSections:
    def test_h3_is_named_after_preceding_h2(self) -> None:
        headings = [("h2", "intro", "Intro"), ("h3", "setup", "Setup")]

        assert headings_to_section_entries(headings, "doc/guide.html") == [
            DocEntry("Intro", EntryType.SECTION, "doc/guide.html#intro"),
            DocEntry("Setup - Intro", EntryType.SECTION, "doc/guide.html#setup"),
        ]

    def test_h3_before_any_h2_keeps_plain_name(self) -> None:
        headings = [("h3", "early", "Early"), ("h2", "a", "A"), ("h3", "b", "B")]

        names = [entry.name for entry in headings_to_section_entries(headings, "p.html")]

        assert names == ["Early", "A", "B - A"]

    def test_h2_without_anchor_still_sets_context(self) -> None:
        headings = [("h2", None, "Hidden"), ("h3", "child", "Child")]

        entries = headings_to_section_entries(headings, "p.html")

        assert entries == [DocEntry("Child - Hidden", EntryType.SECTION, "p.html#child")]

    def test_blank_h2_clears_context(self) -> None:
        headings = [("h2", "a", "A"), ("h2", None, ""), ("h3", "c", "C")]

        names = [entry.name for entry in headings_to_section_entries(headings, "p.html")]

        assert names == ["A", "C"]

    def test_nested_inline_text_is_concatenated(self) -> None:
        page = parse_html(
            '<h2 id="api">The <code>api</code> <em>layer</em></h2>'
            '<h3 id="x"><a href="#x">Deep <b>link</b></a></h3>'
        )

        names = [entry.name for entry in extract_sections(page, "p.html")]

        assert names == ["The api layer", "Deep link - The api layer"]


class TestBundleParsing:
    def test_page_listings_are_sorted_and_relative(self, bundle_dir: Path) -> None:
        (bundle_dir / "api" / "notes.txt").write_text("ignored")

        assert list_api_pages(bundle_dir) == ["api/demo.core.html", "api/demo.util.html"]
        assert list_guide_pages(bundle_dir) == ["doc/empty.html", "doc/intro.html"]

    def test_missing_subdirectories_yield_no_pages(self, tmp_path: Path) -> None:
        assert list_api_pages(tmp_path) == []
        assert list_guide_pages(tmp_path) == []

    def test_golden_entry_counts(self, bundle_dir: Path) -> None:
        entries = parse_all_entries(bundle_dir)

        symbols = [entry for entry in entries if entry.type.is_symbol]
        by_type = lambda kind: [entry for entry in entries if entry.type is kind]  # noqa: E731
        assert len(symbols) == FIXTURE_SYMBOLS
        assert len(by_type(EntryType.NAMESPACE)) == FIXTURE_NAMESPACES
        assert len(by_type(EntryType.GUIDE)) == FIXTURE_GUIDES
        assert len(by_type(EntryType.SECTION)) == FIXTURE_SECTIONS

    def test_entry_order_api_then_guides(self, bundle_dir: Path) -> None:
        entries = parse_all_entries(bundle_dir)

        assert [(entry.name, entry.path) for entry in entries] == GOLDEN_ORDER

    def test_parallel_parsing_keeps_order(self, bundle_dir: Path) -> None:
        assert parse_all_entries(bundle_dir, workers=4) == parse_all_entries(bundle_dir)

    @pytest.mark.parametrize("workers", [1, 4])
    def test_unreadable_page_is_skipped(self, bundle_dir: Path, monkeypatch, workers: int) -> None:
        real_parse_html_file = parse.parse_html_file

        def parse_or_fail(path):
            if Path(path).name == "demo.util.html":
                raise PermissionError(f"Permission denied: {path}")
            return real_parse_html_file(path)

        monkeypatch.setattr(parse, "parse_html_file", parse_or_fail)

        entries = parse_all_entries(bundle_dir, workers=workers)

        assert [(entry.name, entry.path) for entry in entries] == [
            row for row in GOLDEN_ORDER if not row[1].startswith("api/demo.util.html")
        ]

    def test_missing_bundle_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            parse_all_entries(tmp_path / "missing")
