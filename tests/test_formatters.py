"""Tests for export formatters."""

import csv
import io
import json

import pytest

from component_radar.errors import SkipReason
from component_radar.formatters import EXTENSIONS, FORMATTERS, MIME_TYPES, export
from component_radar.formatters.report import group_by_file_and_page
from component_radar.formatters.tabular import HEADERS
from component_radar.identity import MatchStrategy, TargetComponent
from component_radar.models import OccurrenceKind, OccurrenceRecord, ScanScope, ScanSession, SessionStatus


def _record(file_key, page, node_id, kind=OccurrenceKind.DIRECT, name="Button", path=("Button",),
            variant=None) -> OccurrenceRecord:
    return OccurrenceRecord(
        file_name=f"File {file_key}",
        file_key=file_key,
        page_name=page,
        page_id=f"{page}-id",
        node_name=name,
        node_id=node_id,
        kind=kind,
        breadcrumb_path=(page,) + tuple(path),
        variant_signature=variant,
        discovered_at=1_700_000_000_000,
        matched_by=MatchStrategy.CONTENT_KEY,
    )


def _make_session() -> ScanSession:
    """A finished files scan with a skipped file and awkward names."""
    session = ScanSession(
        session_id="scan-1700000000000-abcdef",
        target=TargetComponent("1:1", "K", "Button <Primary>", variant_properties={"Size": "Large"}),
        scope=ScanScope.FILES,
        started_at=1_700_000_000_000,
        file_keys=["a", "b", "c"],
    )
    session.extend([
        _record("a", "Home", "2:1"),
        _record("a", "Home", "2:2", OccurrenceKind.NESTED, path=("Hero", "Button"), variant="Size=Large"),
        _record("a", "Checkout", "3:1", name='Pay "now", please'),
        _record("b", "Home", "4:1", OccurrenceKind.REMOTE),
    ])
    session.skip("c", SkipReason.NOT_FOUND, "HTTP 404")
    session.finish(SessionStatus.COMPLETE, 1_700_000_002_500)
    return session


def test_registries_agree():
    assert set(FORMATTERS) == set(EXTENSIONS) == set(MIME_TYPES) == {"json", "csv", "html", "markdown"}
    assert EXTENSIONS["markdown"] == "md"


def test_unknown_format():
    with pytest.raises(ValueError):
        export(_make_session(), "pdf")


def test_structured_round_trip():
    session = _make_session()
    data = json.loads(export(session, "json"))
    assert data["session_id"] == session.session_id
    assert data["total_instances"] == 4
    assert len(data["records"]) == 4
    assert data["records"][1]["path"] == ["Home", "Hero", "Button"]

    restored = ScanSession.from_dict(data)
    assert restored.session_id == session.session_id
    assert restored.total_instances == session.total_instances
    assert restored.records == session.records
    assert restored.skipped == session.skipped
    assert restored.target == session.target


def test_tabular_rows():
    rows = list(csv.reader(io.StringIO(export(_make_session(), "csv"))))
    assert rows[0] == HEADERS
    assert len(rows) == 5
    assert rows[2] == ["File a", "a", "Home", "Button", "2:2", "nested", "Size=Large", "Home > Hero > Button"]
    assert rows[3][3] == 'Pay "now", please'
    assert rows[4][5] == "remote"


def test_tabular_quotes_everything():
    text = export(_make_session(), "csv")
    first = text.splitlines()[0]
    assert first.startswith('"File Name","File Key"')
    assert '"Pay ""now"", please"' in text


def test_tabular_is_deterministic():
    session = _make_session()
    assert export(session, "csv").encode() == export(session, "csv").encode()


def test_tabular_empty_session():
    session = ScanSession("s", TargetComponent("1:1", "K", "Button"), ScanScope.LOCAL, 0)
    session.finish(SessionStatus.COMPLETE, 10)
    assert export(session, "csv").splitlines() == [",".join(f'"{h}"' for h in HEADERS)]


def test_group_by_file_and_page():
    grouped = group_by_file_and_page(_make_session().records)
    assert list(grouped) == ["File a", "File b"]
    assert list(grouped["File a"]) == ["Home", "Checkout"]
    assert [r.node_id for r in grouped["File a"]["Home"]] == ["2:1", "2:2"]


def test_report_html():
    html = export(_make_session(), "html")
    assert html.startswith("<!DOCTYPE html>")
    assert "Button &lt;Primary&gt;" in html
    assert "Button <Primary>" not in html
    assert "2023-11-14 22:13:20 UTC" in html
    assert "2.50s" in html
    assert 'badge-nested' in html
    assert "File a" in html and "File b" in html
    assert "1 files skipped" in html


def test_report_is_deterministic():
    session = _make_session()
    assert export(session, "html") == export(session, "html")


def test_markdown():
    md = export(_make_session(), "markdown")
    assert md.startswith("# Component Usage: Button <Primary>")
    assert "**Total instances**: 4" in md
    assert "| nested | 1 |" in md
    assert "## File a (3)" in md
    assert "### Checkout (1)" in md
    assert "[Size=Large]" in md
    assert "## Skipped files (1)" in md
    assert "- `c`: not_found" in md
