"""Shared utilities: colors, output formatting."""

import io
import os
import re
import sys

# Force UTF-8 output on Windows to handle box/progress chars
if sys.platform == "win32" and hasattr(sys.stdout, "buffer"):
    sys.stdout = io.TextIOWrapper(sys.stdout.buffer, encoding="utf-8", errors="replace")
    sys.stderr = io.TextIOWrapper(sys.stderr.buffer, encoding="utf-8", errors="replace")

COLORS = {
    "reset": "\033[0m",
    "bold": "\033[1m",
    "dim": "\033[2m",
    "red": "\033[31m",
    "green": "\033[32m",
    "yellow": "\033[33m",
    "blue": "\033[34m",
    "cyan": "\033[36m",
}

KIND_COLORS = {"direct": "green", "nested": "blue", "remote": "yellow"}
STATUS_COLORS = {"complete": "green", "aborted": "yellow", "failed": "red", "running": "cyan"}

_ANSI = re.compile(r"\x1b\[[0-9;]*m")


def _no_color() -> bool:
    return os.environ.get("NO_COLOR") is not None


def c(text: str, color: str) -> str:
    if _no_color() or not sys.stdout.isatty():
        return str(text)
    return f"{COLORS.get(color, '')}{text}{COLORS['reset']}"


def log(msg: str):
    print(c(msg, "dim"), file=sys.stderr)


def format_duration(ms: int) -> str:
    """1234 -> '1.2s', 83000 -> '1m 23s'."""
    seconds = ms / 1000
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes}m {secs:02d}s"


def format_progress(progress: dict) -> str:
    """One status line for a progress event payload."""
    parts = [progress.get("message", "")]
    if progress.get("total_files"):
        parts.append(f"file {progress.get('current_file_index', 0)}/{progress['total_files']}")
    if progress.get("total_pages"):
        parts.append(f"page {progress.get('current_page_index', 0)}/{progress['total_pages']}")
    parts.append(f"{progress.get('instances_found', 0)} found")
    eta = progress.get("eta_seconds")
    if eta is not None:
        parts.append(f"~{eta:.0f}s left")
    return "  ".join(p for p in parts if p)


def visible_len(text) -> int:
    """Length of text as printed, ignoring color escapes."""
    return len(_ANSI.sub("", str(text)))


def _pad(text, width: int) -> str:
    return str(text) + " " * max(0, width - visible_len(text))


def print_table(headers: list[str], rows: list[list[str]], widths: list[int] | None = None):
    """Print rows under bold headers; colored cells keep their columns aligned."""
    if not rows:
        return
    if not widths:
        widths = [max(visible_len(h), *(visible_len(r[i]) for r in rows)) for i, h in enumerate(headers)]
    rule_len = sum(widths) + 2 * (len(widths) - 1)
    print(c("  ".join(_pad(h, w) for h, w in zip(headers, widths)), "bold"))
    try:
        print(c("─" * rule_len, "dim"))
    except UnicodeEncodeError:
        print(c("-" * rule_len, "dim"))
    for row in rows:
        print("  ".join(_pad(v, w) for v, w in zip(row, widths)).rstrip())


def print_box(lines: list[str], width: int = 45):
    """Print a box around lines of text."""
    try:
        print("┌" + "─" * width + "┐")
        for line in lines:
            padded = line.ljust(width - 2)[:width - 2]
            print(f"│ {padded} │")
        print("└" + "─" * width + "┘")
    except UnicodeEncodeError:
        print("+" + "-" * width + "+")
        for line in lines:
            padded = line.ljust(width - 2)[:width - 2]
            print(f"| {padded} |")
        print("+" + "-" * width + "+")
