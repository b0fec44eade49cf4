"""Unit tests for Theme defaults, validation and mode switching."""

from __future__ import annotations

import pytest

from plotbuild.theme import Theme, ThemeMode, get_theme_colors, theme_dark, theme_minimal


def test_light_defaults() -> None:
    """The light theme has a white plot and a grey panel."""
    theme = Theme()
    assert theme.mode is ThemeMode.LIGHT
    assert theme.plot_background == "#ffffff"
    assert theme.panel_background == "#ebebeb"
    assert theme.panel_border is None


def test_dark_defaults() -> None:
    """The dark theme inverts the background and text colours."""
    theme = theme_dark()
    assert theme.plot_background == "#000000"
    assert theme.text_color == "#ffffff"
    assert theme.panel_background == "#1e1e1e"
    assert get_theme_colors(ThemeMode.DARK) == ("#000000", "#ffffff")


def test_mode_accepts_strings() -> None:
    """A mode name is converted to ThemeMode."""
    assert Theme(mode="dark").mode is ThemeMode.DARK


def test_explicit_colours_win_over_mode() -> None:
    """Colours given by the caller are not replaced by mode defaults."""
    assert Theme(mode="dark", panel_background="#abcdef").panel_background == "#abcdef"


def test_legend_position_validation() -> None:
    """Only edge names, none, inside or an (x, y) pair are accepted."""
    with pytest.raises(ValueError) as exc_info:
        Theme(legend_position="middle")
    assert "middle" in str(exc_info.value)
    assert Theme(legend_position=(0.9, 0.1)).resolved_legend_position() == "inside"
    assert Theme(legend_position=[0.9, 0.1]).legend_position == (0.9, 0.1)
    assert Theme(legend_position="bottom").resolved_legend_position() == "bottom"


def test_plot_margin_needs_four_values() -> None:
    """plot_margin is (top, right, bottom, left)."""
    with pytest.raises(ValueError):
        Theme(plot_margin=(1, 2))
    assert Theme(plot_margin=(1, 2, 3, 4)).plot_margin == (1.0, 2.0, 3.0, 4.0)


def test_derived_text_sizes() -> None:
    """Text sizes scale with base_size."""
    theme = Theme(base_size=10.0)
    assert theme.axis_text_size == pytest.approx(8.0)
    assert theme.title_size == pytest.approx(12.0)
    assert theme.legend_title_size == 10.0


def test_with_mode_rederives_mode_colours() -> None:
    """Switching mode replaces mode-derived colours and keeps explicit ones."""
    light = Theme(strip_background="#123456")
    dark = light.with_mode(ThemeMode.DARK)
    assert dark.mode is ThemeMode.DARK
    assert dark.panel_background == "#1e1e1e"
    assert dark.strip_background == "#123456"
    assert light.panel_background == "#ebebeb"


def test_to_dict_is_json_friendly() -> None:
    """Enums become strings and tuples become lists."""
    out = Theme(legend_position=(0.5, 0.5)).to_dict()
    assert out["mode"] == "light"
    assert out["legend_position"] == [0.5, 0.5]
    assert out["plot_margin"] == [5.5, 5.5, 5.5, 5.5]
    assert "_defaults_from_mode" not in out


def test_theme_minimal() -> None:
    """The minimal theme draws panels on white."""
    theme = theme_minimal(base_size=9.0)
    assert theme.panel_background == "#ffffff"
    assert theme.panel_grid == "#ebebeb"
    assert theme.base_size == 9.0
