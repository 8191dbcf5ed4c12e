"""Tests for the scorecard image."""

from PIL import Image

from component_radar.badge import render_scorecard
from component_radar.identity import MatchStrategy, TargetComponent
from component_radar.models import OccurrenceKind, OccurrenceRecord, ScanScope, ScanSession, SessionStatus


def _session(records: int = 3) -> ScanSession:
    session = ScanSession("s1", TargetComponent("1:1", "K", "A rather long component name " * 3),
                          ScanScope.LOCAL, 1000)
    for i in range(records):
        session.append(OccurrenceRecord(
            file_name="File", file_key="f", page_name="Page", page_id="0:1",
            node_name="Button", node_id=f"2:{i}",
            kind=OccurrenceKind.NESTED if i % 2 else OccurrenceKind.DIRECT,
            breadcrumb_path=("Page", "Button"), variant_signature=None,
            discovered_at=1000, matched_by=MatchStrategy.STABLE_ID,
        ))
    session.finish(SessionStatus.COMPLETE, 2000)
    return session


def test_render_scorecard(tmp_path):
    out = render_scorecard(_session(), tmp_path / "badges" / "scorecard.png")
    assert out.exists()
    with Image.open(out) as img:
        assert img.format == "PNG"
        assert img.size[0] == 880


def test_render_scorecard_empty_session(tmp_path):
    out = render_scorecard(_session(records=0), str(tmp_path / "empty.png"))
    assert out.exists()
