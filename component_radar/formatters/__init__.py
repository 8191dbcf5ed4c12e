"""Report formatters for finished scan sessions."""

from .structured import to_structured
from .tabular import to_tabular
from .report import to_report
from .markdown import to_markdown

FORMATTERS = {
    "json": to_structured,
    "csv": to_tabular,
    "html": to_report,
    "markdown": to_markdown,
}

EXTENSIONS = {"json": "json", "csv": "csv", "html": "html", "markdown": "md"}

MIME_TYPES = {
    "json": "application/json",
    "csv": "text/csv",
    "html": "text/html",
    "markdown": "text/markdown",
}


def export(session, fmt: str) -> str:
    """Serialize a session in the given format."""
    try:
        formatter = FORMATTERS[fmt]
    except KeyError:
        raise ValueError(f"Unsupported export format: {fmt}") from None
    return formatter(session)
