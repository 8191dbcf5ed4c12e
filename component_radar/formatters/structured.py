"""JSON export: the full session, readable back with ScanSession.from_dict."""

from __future__ import annotations

import json

from ..models import ScanSession


def to_structured(session: ScanSession) -> str:
    return json.dumps(session.to_dict(), indent=2, ensure_ascii=False)
