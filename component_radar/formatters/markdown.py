"""Markdown formatter: human-readable usage inventory."""

from __future__ import annotations

from ..models import ScanSession
from .report import format_timestamp, group_by_file_and_page
from .tabular import PATH_SEPARATOR


def to_markdown(session: ScanSession) -> str:
    """Generate a markdown usage inventory from a session."""
    target = session.target
    counts = session.counts_by_kind()

    lines = [
        f"# Component Usage: {target.display_name}",
        "",
        f"**Key**: `{target.content_key or '-'}`",
        f"**Scanned**: {format_timestamp(session.started_at)} ({session.scope.value}, {session.status.value})",
        f"**Total instances**: {session.total_instances}",
        "",
        "## Summary",
        "",
        "| Type | Count |",
        "|------|-------|",
    ]
    for kind, count in counts.items():
        lines.append(f"| {kind} | {count} |")
    lines.append("")

    grouped = group_by_file_and_page(session.records)
    for file_name, pages in grouped.items():
        file_total = sum(len(rs) for rs in pages.values())
        lines.append(f"## {file_name} ({file_total})")
        lines.append("")
        for page_name, records in pages.items():
            lines.append(f"### {page_name} ({len(records)})")
            lines.append("")
            for r in records:
                variant = f" [{r.variant_signature}]" if r.variant_signature else ""
                lines.append(f"- **{r.node_name}**{variant} `{r.node_id}` ({r.kind.value}) "
                             f"- {PATH_SEPARATOR.join(r.breadcrumb_path)}")
            lines.append("")

    if session.skipped:
        lines.append(f"## Skipped files ({session.skipped_count})")
        lines.append("")
        for s in session.skipped:
            lines.append(f"- `{s.file_key}`: {s.reason.value}")
        lines.append("")

    return "\n".join(lines)
