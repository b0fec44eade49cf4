"""Theme settings consumed by the assembly pipeline.

A Theme is a flat dataclass; there is no element inheritance. Colours left
as None are filled from the theme mode (light/dark).
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Optional, Union

LEGEND_POSITIONS = ("right", "left", "top", "bottom", "none", "inside")


class ThemeMode(str, Enum):
    """Light or dark colour set."""

    DARK = "dark"
    LIGHT = "light"


def get_theme_colors(mode: ThemeMode) -> tuple[str, str]:
    """Get background and foreground colors for a theme mode."""
    if mode is ThemeMode.DARK:
        return "#000000", "#ffffff"
    return "#ffffff", "#000000"


def _mode_palette(mode: ThemeMode) -> dict[str, Optional[str]]:
    background, foreground = get_theme_colors(mode)
    if mode is ThemeMode.DARK:
        return {
            "plot_background": background,
            "text_color": foreground,
            "panel_background": "#1e1e1e",
            "panel_grid": "#3a3a3a",
            "panel_border": None,
            "strip_background": "#333333",
            "axis_color": "#bbbbbb",
        }
    return {
        "plot_background": background,
        "text_color": foreground,
        "panel_background": "#ebebeb",
        "panel_grid": "#ffffff",
        "panel_border": None,
        "strip_background": "#d9d9d9",
        "axis_color": "#333333",
    }


@dataclass
class Theme:
    """Visual settings for one plot.

    Sizes are in points. ``legend_position`` is one of "right", "left",
    "top", "bottom", "none", or an ``(x, y)`` pair in npc of the panel area
    to draw the legend inside the panels.
    """

    mode: ThemeMode = ThemeMode.LIGHT
    base_size: float = 11.0
    legend_position: Union[str, tuple[float, float]] = "right"
    legend_key_size: float = 17.28
    legend_spacing: float = 11.0
    panel_spacing: float = 5.5
    plot_margin: tuple[float, float, float, float] = (5.5, 5.5, 5.5, 5.5)
    axis_ticks_length: float = 2.75
    strip_padding: float = 4.4
    grid_linewidth: float = 0.5
    title_hjust: float = 0.0

    plot_background: Optional[str] = None
    text_color: Optional[str] = None
    panel_background: Optional[str] = None
    panel_grid: Optional[str] = None
    panel_border: Optional[str] = None
    strip_background: Optional[str] = None
    axis_color: Optional[str] = None

    _defaults_from_mode: tuple = field(default=(), init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        self.mode = ThemeMode(self.mode)
        if isinstance(self.legend_position, list):
            self.legend_position = tuple(self.legend_position)
        if isinstance(self.legend_position, str) and self.legend_position not in LEGEND_POSITIONS:
            raise ValueError(
                f"legend_position must be one of {LEGEND_POSITIONS} or an (x, y) pair, "
                f"got {self.legend_position!r}"
            )
        if len(self.plot_margin) != 4:
            raise ValueError("plot_margin must be (top, right, bottom, left)")
        self.plot_margin = tuple(float(m) for m in self.plot_margin)
        filled = []
        for key, value in _mode_palette(self.mode).items():
            if getattr(self, key) is None and value is not None:
                setattr(self, key, value)
                filled.append(key)
        self._defaults_from_mode = tuple(filled)

    # -- derived sizes --

    @property
    def axis_text_size(self) -> float:
        return self.base_size * 0.8

    @property
    def axis_title_size(self) -> float:
        return self.base_size

    @property
    def strip_text_size(self) -> float:
        return self.base_size * 0.8

    @property
    def title_size(self) -> float:
        return self.base_size * 1.2

    @property
    def subtitle_size(self) -> float:
        return self.base_size

    @property
    def caption_size(self) -> float:
        return self.base_size * 0.8

    @property
    def tag_size(self) -> float:
        return self.base_size * 1.2

    @property
    def legend_text_size(self) -> float:
        return self.base_size * 0.8

    @property
    def legend_title_size(self) -> float:
        return self.base_size

    def resolved_legend_position(self) -> str:
        """Edge name, with "inside" for an ``(x, y)`` position."""
        if isinstance(self.legend_position, tuple):
            return "inside"
        return self.legend_position

    def with_mode(self, mode: ThemeMode) -> "Theme":
        """Copy with another mode; colours that came from the old mode are re-derived."""
        reset = {key: None for key in self._defaults_from_mode}
        return replace(self, mode=ThemeMode(mode), **reset)

    def to_dict(self) -> dict:
        out = {}
        for f in fields(self):
            if not f.init:
                continue
            value = getattr(self, f.name)
            if isinstance(value, ThemeMode):
                value = value.value
            elif isinstance(value, tuple):
                value = list(value)
            out[f.name] = value
        return out


def theme_gray(**overrides) -> Theme:
    return Theme(**overrides)


def theme_dark(**overrides) -> Theme:
    return Theme(mode=ThemeMode.DARK, **overrides)


def theme_minimal(**overrides) -> Theme:
    """No panel background, light grid, no strip fill."""
    overrides.setdefault("panel_background", "#ffffff")
    overrides.setdefault("panel_grid", "#ebebeb")
    overrides.setdefault("strip_background", "#ffffff")
    return Theme(**overrides)
