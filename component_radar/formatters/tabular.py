"""CSV export: one quoted row per occurrence."""

from __future__ import annotations

import csv
import io

from ..models import ScanSession

HEADERS = [
    "File Name",
    "File Key",
    "Page Name",
    "Node Name",
    "Node ID",
    "Instance Type",
    "Variant",
    "Path",
]

PATH_SEPARATOR = " > "


def to_tabular(session: ScanSession) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(HEADERS)
    for r in session.records:
        writer.writerow([
            r.file_name,
            r.file_key,
            r.page_name,
            r.node_name,
            r.node_id,
            r.kind.value,
            r.variant_signature or "",
            PATH_SEPARATOR.join(r.breadcrumb_path),
        ])
    return buf.getvalue()
