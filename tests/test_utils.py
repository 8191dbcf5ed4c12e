"""Tests for terminal output helpers."""

from component_radar.utils import format_duration, print_table, visible_len


def test_visible_len_ignores_color_codes():
    assert visible_len("\033[32mdirect\033[0m") == 6
    assert visible_len(42) == 2


def test_print_table_aligns_colored_cells(capsys):
    print_table(["Kind", "Node"], [["\033[32mdirect\033[0m", "Button"], ["nested", "Card"]])
    lines = capsys.readouterr().out.splitlines()
    assert lines[2].index("Button") == lines[3].index("Card") + len("\033[32m\033[0m")


def test_print_table_skips_empty_rows(capsys):
    print_table(["Kind"], [])
    assert capsys.readouterr().out == ""


def test_format_duration():
    assert format_duration(1234) == "1.2s"
    assert format_duration(83000) == "1m 23s"
