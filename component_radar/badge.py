"""Scorecard image generator: a PNG summary of one scan session."""

from __future__ import annotations

from pathlib import Path

from .models import OccurrenceKind, ScanSession, SessionStatus

# Render at 2x for high-DPI crispness
_SCALE = 2

_KIND_COLORS = {
    OccurrenceKind.DIRECT.value: (110, 153, 112),   # sage green
    OccurrenceKind.NESTED.value: (96, 128, 170),    # slate blue
    OccurrenceKind.REMOTE.value: (196, 164, 90),    # mustard
}


def _status_color(session: ScanSession) -> tuple[int, int, int]:
    if session.status is SessionStatus.COMPLETE and not session.skipped:
        return (110, 153, 112)
    if session.status is SessionStatus.COMPLETE:
        return (196, 164, 90)
    return (185, 110, 110)


def _load_font(size: int, *, serif: bool = False, bold: bool = False, mono: bool = False):
    """Load a font with cross-platform fallback."""
    from PIL import ImageFont

    size = size * _SCALE
    if mono:
        candidates = [
            "/System/Library/Fonts/SFNSMono.ttf",
            "/usr/share/fonts/truetype/dejavu/DejaVuSansMono.ttf",
            "/usr/share/fonts/truetype/liberation/LiberationMono-Regular.ttf",
        ]
    elif serif and bold:
        candidates = [
            "/System/Library/Fonts/Supplemental/Georgia Bold.ttf",
            "/usr/share/fonts/truetype/dejavu/DejaVuSerif-Bold.ttf",
            "/usr/share/fonts/truetype/liberation/LiberationSerif-Bold.ttf",
        ]
    elif serif:
        candidates = [
            "/System/Library/Fonts/Supplemental/Georgia.ttf",
            "/usr/share/fonts/truetype/dejavu/DejaVuSerif.ttf",
            "/usr/share/fonts/truetype/liberation/LiberationSerif-Regular.ttf",
        ]
    else:
        candidates = [
            "/System/Library/Fonts/HelveticaNeue.ttc",
            "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
        ]
    for path in candidates:
        try:
            return ImageFont.truetype(path, size)
        except OSError:
            continue
    return ImageFont.load_default()


def _s(v: int | float) -> int:
    """Scale a layout value."""
    return int(v * _SCALE)


def _fit(draw, text: str, font, max_width: float) -> str:
    if draw.textlength(text, font=font) <= max_width:
        return text
    while text and draw.textlength(text + "...", font=font) > max_width:
        text = text[:-1]
    return text + "..."


def render_scorecard(session: ScanSession, output_path: str | Path) -> Path:
    """Render a scorecard PNG for a session. Returns the output path."""
    from PIL import Image, ImageDraw

    output_path = Path(output_path)
    counts = session.counts_by_kind()
    total = session.total_instances

    font_title = _load_font(17, serif=True, bold=True)
    font_big = _load_font(52, serif=True, bold=True)
    font_sub = _load_font(14, serif=True)
    font_header = _load_font(11, mono=True)
    font_row = _load_font(12, mono=True)
    font_tiny = _load_font(9, serif=True)

    BG = (248, 241, 229)           # warm cream
    BG_TABLE = (241, 233, 219)
    TEXT = (62, 52, 42)            # warm dark brown
    DIM = (148, 132, 112)
    BORDER = (198, 182, 158)
    ACCENT = (156, 120, 96)
    FRAME = (178, 158, 132)

    W = _s(440)
    pad = _s(24)
    table_top = _s(150)
    row_h = _s(24)
    table_h = _s(26) + len(counts) * row_h + _s(12)
    H = table_top + table_h + _s(36)

    img = Image.new("RGB", (W, H), BG)
    draw = ImageDraw.Draw(img)

    draw.rectangle((0, 0, W - 1, H - 1), outline=FRAME, width=_s(2))
    inset = _s(6)
    draw.rectangle((inset, inset, W - 1 - inset, H - 1 - inset), outline=BORDER, width=1)

    rule_y = _s(44)
    rule_margin = _s(60)
    draw.rectangle((rule_margin, rule_y, W - rule_margin, rule_y), fill=BORDER)
    diamond_cx = W // 2
    diamond_s = _s(3)
    draw.polygon([
        (diamond_cx, rule_y - diamond_s),
        (diamond_cx + diamond_s, rule_y),
        (diamond_cx, rule_y + diamond_s),
        (diamond_cx - diamond_s, rule_y),
    ], fill=ACCENT)

    title = _fit(draw, session.target.display_name or "Component", font_title, W - 2 * pad)
    tw = draw.textlength(title, font=font_title)
    draw.text(((W - tw) / 2, _s(18)), title, fill=TEXT, font=font_title)

    # Instance total with file/page breakdown beside it
    total_str = str(total)
    tw = draw.textlength(total_str, font=font_big)
    files = len(session.counts_by_file())
    sub_str = f"in {files} file{'s' if files != 1 else ''}, {session.page_count()} page{'s' if session.page_count() != 1 else ''}"
    sub_w = draw.textlength(sub_str, font=font_sub)
    gap = _s(12)
    x_start = (W - (tw + gap + sub_w)) / 2
    total_y = _s(54)
    draw.text((x_start, total_y), total_str, fill=_status_color(session), font=font_big)
    draw.text((x_start + tw + gap, total_y + _s(24)), sub_str, fill=DIM, font=font_sub)

    rule2_y = table_top - _s(14)
    draw.rectangle((rule_margin, rule2_y, W - rule_margin, rule2_y), fill=BORDER)

    table_x1 = pad + _s(4)
    table_x2 = W - pad - _s(4)
    draw.rounded_rectangle(
        (table_x1, table_top - _s(2), table_x2, table_top + table_h),
        radius=_s(4), fill=BG_TABLE, outline=BORDER, width=1)

    col_name = table_x1 + _s(14)
    col_count = _s(280)
    col_share = _s(366)
    header_y = table_top + _s(4)
    draw.text((col_name, header_y), "Kind", fill=DIM, font=font_header)
    draw.text((col_count, header_y), "Count", fill=DIM, font=font_header)
    draw.text((col_share, header_y), "Share", fill=DIM, font=font_header)

    line_y = header_y + _s(16)
    draw.rectangle((col_name, line_y, table_x2 - _s(14), line_y), fill=BORDER)

    y = line_y + _s(6)
    for kind, count in counts.items():
        share = 100.0 * count / total if total else 0.0
        color = _KIND_COLORS.get(kind, TEXT)
        draw.text((col_name, y), kind, fill=TEXT, font=font_row)
        draw.text((col_count, y), str(count), fill=color, font=font_row)
        draw.text((col_share, y), f"{share:.1f}%", fill=color, font=font_row)
        y += row_h

    footer = f"{session.scope.value} scan, {session.status.value}"
    if session.skipped:
        footer += f", {session.skipped_count} skipped"
    fw = draw.textlength(footer, font=font_tiny)
    draw.text(((W - fw) / 2, H - _s(22)), footer, fill=DIM, font=font_tiny)

    output_path.parent.mkdir(parents=True, exist_ok=True)
    img.save(str(output_path), "PNG", optimize=True)
    return output_path
