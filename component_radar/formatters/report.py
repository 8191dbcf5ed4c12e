"""HTML export: a standalone usage report grouped by file, then page."""

from __future__ import annotations

from datetime import datetime, timezone
from html import escape

from ..models import OccurrenceRecord, ScanSession
from .tabular import PATH_SEPARATOR

STYLE = """
    * { margin: 0; padding: 0; box-sizing: border-box; }
    body { font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
           background: #f5f5f5; color: #333; padding: 40px 20px; }
    .container { max-width: 1200px; margin: 0 auto; background: white; border-radius: 8px;
                 box-shadow: 0 2px 8px rgba(0,0,0,0.1); padding: 40px; }
    .header { border-bottom: 2px solid #0d99ff; padding-bottom: 20px; margin-bottom: 30px; }
    h1 { font-size: 32px; color: #18a0fb; margin-bottom: 10px; }
    h2 { font-size: 20px; margin: 30px 0 10px; }
    h3 { font-size: 15px; color: #555; margin: 16px 0 8px; }
    .meta { display: flex; gap: 30px; flex-wrap: wrap; color: #666; font-size: 14px; }
    .meta-label { font-weight: 600; }
    .summary { background: #f9fafb; padding: 20px; border-radius: 6px; margin-bottom: 30px;
               display: grid; grid-template-columns: repeat(auto-fit, minmax(160px, 1fr)); gap: 20px; }
    .stat { text-align: center; }
    .stat-value { font-size: 36px; font-weight: 700; color: #18a0fb; display: block; }
    .stat-label { color: #666; font-size: 14px; }
    .count { background: #18a0fb; color: white; padding: 2px 10px; border-radius: 12px;
             font-size: 12px; font-weight: 600; }
    table { width: 100%; border-collapse: collapse; margin-bottom: 10px; }
    th { background: #f9fafb; padding: 10px; text-align: left; font-size: 13px; color: #666;
         border-bottom: 2px solid #e5e7eb; }
    td { padding: 10px; border-bottom: 1px solid #e5e7eb; font-size: 14px; }
    code { background: #f3f4f6; padding: 2px 6px; border-radius: 3px; font-size: 12px; color: #6366f1; }
    .badge { display: inline-block; padding: 3px 8px; border-radius: 4px; font-size: 11px;
             font-weight: 600; text-transform: uppercase; }
    .badge-direct { background: #d1fae5; color: #065f46; }
    .badge-nested { background: #dbeafe; color: #1e40af; }
    .badge-remote { background: #fef3c7; color: #92400e; }
    small { color: #999; font-size: 12px; }
    .skipped { margin-top: 30px; color: #92400e; font-size: 14px; }
"""


def format_timestamp(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


def group_by_file_and_page(records: list[OccurrenceRecord]) -> dict[str, dict[str, list[OccurrenceRecord]]]:
    """Group records by file name, then page name, in first-seen order."""
    grouped: dict[str, dict[str, list[OccurrenceRecord]]] = {}
    for r in records:
        grouped.setdefault(r.file_name, {}).setdefault(r.page_name, []).append(r)
    return grouped


def _stat(value, label: str) -> str:
    return f'<div class="stat"><span class="stat-value">{value}</span><span class="stat-label">{label}</span></div>'


def to_report(session: ScanSession) -> str:
    target = session.target
    grouped = group_by_file_and_page(session.records)
    name = escape(target.display_name)

    lines = [
        "<!DOCTYPE html>",
        '<html lang="en">',
        "<head>",
        '  <meta charset="UTF-8">',
        '  <meta name="viewport" content="width=device-width, initial-scale=1.0">',
        f"  <title>Component Usage Report - {name}</title>",
        f"  <style>{STYLE}  </style>",
        "</head>",
        "<body>",
        '<div class="container">',
        '  <div class="header">',
        "    <h1>Component Usage Report</h1>",
        '    <div class="meta">',
        f'      <div><span class="meta-label">Component:</span> {name}</div>',
        f'      <div><span class="meta-label">Key:</span> <code>{escape(target.content_key or "-")}</code></div>',
        f'      <div><span class="meta-label">Scan Date:</span> {format_timestamp(session.started_at)}</div>',
        f'      <div><span class="meta-label">Duration:</span> {session.duration_ms / 1000:.2f}s</div>',
        f'      <div><span class="meta-label">Scope:</span> {session.scope.value}</div>',
        f'      <div><span class="meta-label">Status:</span> {session.status.value}</div>',
        "    </div>",
        "  </div>",
        '  <div class="summary">',
        "    " + _stat(session.total_instances, "Total Instances"),
        "    " + _stat(len(grouped), "Files"),
        "    " + _stat(session.page_count(), "Pages"),
        "    " + _stat(session.skipped_count, "Files Skipped"),
        "  </div>",
    ]

    for file_name, pages in grouped.items():
        file_total = sum(len(rs) for rs in pages.values())
        lines.append('  <div class="file-section">')
        lines.append(f'    <h2>{escape(file_name)} <span class="count">{file_total} instances</span></h2>')
        for page_name, records in pages.items():
            lines.append(f'    <h3>{escape(page_name)} <span class="count">{len(records)}</span></h3>')
            lines.append("    <table>")
            lines.append("      <thead><tr><th>Node Name</th><th>Node ID</th><th>Type</th>"
                         "<th>Variant</th><th>Path</th></tr></thead>")
            lines.append("      <tbody>")
            for r in records:
                lines.append(
                    f"        <tr><td>{escape(r.node_name)}</td>"
                    f"<td><code>{escape(r.node_id)}</code></td>"
                    f'<td><span class="badge badge-{r.kind.value}">{r.kind.value}</span></td>'
                    f"<td>{escape(r.variant_signature or '-')}</td>"
                    f"<td><small>{escape(PATH_SEPARATOR.join(r.breadcrumb_path))}</small></td></tr>"
                )
            lines.append("      </tbody>")
            lines.append("    </table>")
        lines.append("  </div>")

    if session.skipped:
        lines.append(f'  <div class="skipped"><strong>{session.skipped_count} files skipped</strong><ul>')
        for s in session.skipped:
            lines.append(f"    <li><code>{escape(s.file_key)}</code>: {escape(s.reason.value)}</li>")
        lines.append("  </ul></div>")

    lines.extend(["</div>", "</body>", "</html>", ""])
    return "\n".join(lines)
