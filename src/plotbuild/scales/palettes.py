"""Palettes: functions from rescaled data (or a level count) to visual values.

Colour palettes come from ``plotly.colors`` so that the colours a rendering
backend receives are the same ones Plotly itself would choose.
"""

from __future__ import annotations

from typing import Sequence, Union

import numpy as np
import plotly.colors as pc

from plotbuild.utils.logging import get_logger

logger = get_logger(__name__)

# Marker symbols used for discrete shape scales (Plotly symbol names).
PLOTLY_SYMBOLS = [
    "circle", "square", "diamond", "triangle-up", "triangle-down",
    "triangle-left", "triangle-right", "pentagon", "hexagon", "hexagon2",
    "octagon", "star", "hexagram", "star-triangle-up", "star-triangle-down",
    "star-square", "star-diamond", "diamond-tall", "diamond-wide", "hourglass",
    "bowtie", "circle-cross", "circle-x", "square-cross", "square-x",
    "diamond-cross", "diamond-x", "cross", "x", "triangle-ne",
]

LINETYPES = ["solid", "dash", "dot", "dashdot", "longdash", "longdashdot"]

DEFAULT_GRADIENT = ("#132B43", "#56B1F7")
NA_COLOR = "#7F7F7F"


def _resolve_colors(colors: Union[str, Sequence[str]]) -> list[str]:
    """A Plotly palette name (e.g. "Viridis", "Plotly", "Set2") or an explicit list."""
    if not isinstance(colors, str):
        return list(colors)
    for module in (pc.sequential, pc.qualitative, pc.diverging):
        found = getattr(module, colors, None)
        if isinstance(found, list):
            return list(found)
    raise ValueError(f"Unknown Plotly palette {colors!r}")


class GradientPalette:
    """Continuous colour palette: [0, 1] -> colour string."""

    def __init__(self, colors: Union[str, Sequence[str]] = DEFAULT_GRADIENT) -> None:
        self.colors = _resolve_colors(colors)
        if len(self.colors) < 2:
            raise ValueError("A gradient needs at least two colours")
        self._colorscale = pc.make_colorscale(self.colors)

    def __call__(self, x, na_value: str = NA_COLOR) -> np.ndarray:
        arr = np.asarray(x, dtype=float)
        out = np.full(arr.shape, na_value, dtype=object)
        ok = np.isfinite(arr)
        if ok.any():
            points = np.clip(arr[ok], 0.0, 1.0).tolist()
            out[ok] = pc.sample_colorscale(self._colorscale, points, colortype="rgb")
        return out


class HuePalette:
    """Discrete colour palette: n -> list of n colours."""

    def __init__(self, colors: Union[str, Sequence[str]] = "Plotly") -> None:
        self.colors = _resolve_colors(colors)

    def __call__(self, n: int) -> list[str]:
        if n > len(self.colors):
            logger.warning(
                f"Palette has {len(self.colors)} colours for {n} levels; colours will repeat"
            )
        return [self.colors[i % len(self.colors)] for i in range(n)]


class ListPalette:
    """Discrete palette over a fixed list (shapes, linetypes, manual values)."""

    def __init__(self, values: Sequence, name: str = "values") -> None:
        self.values = list(values)
        self.name = name

    def __call__(self, n: int) -> list:
        if n > len(self.values):
            logger.warning(f"Only {len(self.values)} {self.name} available for {n} levels; values will repeat")
        return [self.values[i % len(self.values)] for i in range(n)]


class RangePalette:
    """Continuous numeric palette: [0, 1] -> [lo, hi], optionally area-proportional."""

    def __init__(self, range_: tuple[float, float], area: bool = False) -> None:
        self.range = (float(range_[0]), float(range_[1]))
        self.area = area

    def __call__(self, x, na_value: float = np.nan) -> np.ndarray:
        arr = np.asarray(x, dtype=float)
        if self.area:
            arr = np.sqrt(np.clip(arr, 0.0, None))
        lo, hi = self.range
        out = lo + arr * (hi - lo)
        return np.where(np.isfinite(out), out, na_value)

    def inverse(self, y) -> np.ndarray:
        lo, hi = self.range
        arr = (np.asarray(y, dtype=float) - lo) / (hi - lo)
        if self.area:
            arr = np.square(arr)
        return arr


class SequencePalette:
    """Discrete numeric palette: n -> n evenly spaced values across a range."""

    def __init__(self, range_: tuple[float, float]) -> None:
        self.range = (float(range_[0]), float(range_[1]))

    def __call__(self, n: int) -> list[float]:
        if n == 1:
            return [self.range[1]]
        return list(np.linspace(self.range[0], self.range[1], n))


def manual_values(values, levels: Sequence) -> dict:
    """Map levels to manual values given as a list (by order) or dict (by level)."""
    if isinstance(values, dict):
        return {lvl: values.get(lvl, values.get(str(lvl))) for lvl in levels}
    values = list(values)
    if len(values) < len(levels):
        raise ValueError(f"Manual scale has {len(values)} values for {len(levels)} levels")
    return dict(zip(levels, values))


def shape_palette() -> ListPalette:
    return ListPalette(PLOTLY_SYMBOLS, name="shapes")


def linetype_palette() -> ListPalette:
    return ListPalette(LINETYPES, name="linetypes")
