"""Cartesian coordinate system.

Per panel the coord turns trained x/y scales into ``PanelParams`` (the
visible range plus break positions and labels) and later maps layer rows
from scale space into npc for drawing.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

import numpy as np
import pandas as pd

from plotbuild.aes import X_AESTHETICS, Y_AESTHETICS
from plotbuild.grid import GTree, NullGrob, RectGrob, SegmentsGrob
from plotbuild.scales.bounds import expand_range, rescale
from plotbuild.scales.scale import Scale


@dataclass
class AxisView:
    """One axis of one panel: visible range and breaks in scale space."""
    range: tuple[float, float]
    breaks: np.ndarray = field(default_factory=lambda: np.empty(0))
    labels: list = field(default_factory=list)
    values: list = field(default_factory=list)
    scale: Optional[Scale] = None

    def to_npc(self, values) -> np.ndarray:
        return rescale(values, from_=self.range)


@dataclass
class PanelParams:
    x: AxisView
    y: AxisView


def _axis_view(scale: Optional[Scale], limits: Optional[tuple], expand: bool) -> AxisView:
    if scale is None:
        return AxisView(range=(0.0, 1.0))
    if limits is not None:
        lo, hi = limits
        if not scale.is_discrete:
            lo, hi = scale.trans.apply([lo, hi])
        rng = (min(lo, hi), max(lo, hi))
        if expand:
            mult, add = scale.expand or ((0.0, 0.6) if scale.is_discrete else (0.05, 0.0))
            rng = expand_range(rng, mult, add)
    else:
        rng = scale.dimension() if expand else scale.dimension((0.0, 0.0))
    if scale.is_discrete:
        levels = scale.get_breaks()
        positions = scale.break_positions(levels)
        inside = (positions >= rng[0]) & (positions <= rng[1])
        labels = scale.get_labels(levels)
        return AxisView(
            range=rng,
            breaks=positions[inside],
            labels=[lbl for lbl, ok in zip(labels, inside) if ok],
            values=[lvl for lvl, ok in zip(levels, inside) if ok],
            scale=scale,
        )
    breaks = scale.get_breaks(rng)
    return AxisView(
        range=rng,
        breaks=breaks,
        labels=scale.get_labels(breaks),
        values=list(scale.inverse(breaks)),
        scale=scale,
    )


class Coord:
    """Base class for coordinate systems."""

    def setup_panel_params(self, scale_x: Optional[Scale], scale_y: Optional[Scale]) -> PanelParams:
        raise NotImplementedError

    def transform(self, data: pd.DataFrame, panel_params: PanelParams) -> pd.DataFrame:
        raise NotImplementedError

    def render_bg(self, panel_params: PanelParams, theme) -> Any:
        raise NotImplementedError

    def render_fg(self, panel_params: PanelParams, theme) -> Any:
        return NullGrob(name="panel-fg")


class CoordCartesian(Coord):
    """Cartesian coordinates. ``xlim``/``ylim`` zoom without dropping data."""

    def __init__(self, xlim: Optional[tuple] = None, ylim: Optional[tuple] = None, expand: bool = True) -> None:
        self.xlim = xlim
        self.ylim = ylim
        self.expand = expand

    def __repr__(self) -> str:
        return f"CoordCartesian(xlim={self.xlim}, ylim={self.ylim}, expand={self.expand})"

    def setup_panel_params(self, scale_x, scale_y):
        return PanelParams(
            x=_axis_view(scale_x, self.xlim, self.expand),
            y=_axis_view(scale_y, self.ylim, self.expand),
        )

    def transform(self, data, panel_params):
        updates = {}
        for col in data.columns:
            if col in X_AESTHETICS:
                view = panel_params.x
            elif col in Y_AESTHETICS:
                view = panel_params.y
            else:
                continue
            values = data[col].to_numpy(dtype=float)
            npc = view.to_npc(values)
            # Infinite values reach the panel edge.
            npc = np.where(np.isposinf(values), 1.0, np.where(np.isneginf(values), 0.0, npc))
            updates[col] = npc
        if not updates:
            return data
        return data.assign(**updates)

    def render_bg(self, panel_params, theme):
        children = [RectGrob(name="panel-background", gp={"fill": theme.panel_background, "color": None})]
        if theme.panel_grid:
            xb = panel_params.x.to_npc(panel_params.x.breaks)
            yb = panel_params.y.to_npc(panel_params.y.breaks)
            gp = {"color": theme.panel_grid, "linewidth": theme.grid_linewidth}
            children.append(SegmentsGrob(
                name="panel-grid-major-x",
                x0=xb, y0=np.zeros(len(xb)), x1=xb, y1=np.ones(len(xb)), gp=dict(gp),
            ))
            children.append(SegmentsGrob(
                name="panel-grid-major-y",
                x0=np.zeros(len(yb)), y0=yb, x1=np.ones(len(yb)), y1=yb, gp=dict(gp),
            ))
        return GTree(name="panel-bg", children=children)

    def render_fg(self, panel_params, theme):
        if not theme.panel_border:
            return NullGrob(name="panel-fg")
        return RectGrob(name="panel-border", gp={"fill": None, "color": theme.panel_border})
