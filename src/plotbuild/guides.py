"""Guides: axes and legends trained from scales.

Every guide is trained into a ``key`` DataFrame with one column per
aesthetic it represents (values in the scale's range: npc-ready positions
for axes, colours/sizes for legends), a ``.value`` column with the
original domain value and a ``.label`` column with the display text.

Legends whose title and labels agree are merged into one legend carrying
several aesthetics. Drawn legends are GridTables, so the guide box is a
table of tables.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional, Sequence

import numpy as np
import pandas as pd

from plotbuild.grid import (
    GridTable,
    GTree,
    Grob,
    RectGrob,
    SegmentsGrob,
    TextGrob,
    Unit,
    pt,
    text_height,
    text_width,
)
from plotbuild.scales.scale import Scale
from plotbuild.utils.logging import get_logger

logger = get_logger(__name__)

LEGEND_PADDING = 5.5
LABEL_GAP = 5.5
COLORBAR_NBIN = 20


class Guide:
    """Base class for guides."""

    kind = "guide"

    def __init__(self, title: Optional[str] = None) -> None:
        self.title = title
        self.key: pd.DataFrame = pd.DataFrame({".value": [], ".label": []})

    def __repr__(self) -> str:
        return f"{type(self).__name__}(title={self.title!r}, n={len(self.key)})"

    @property
    def aesthetics(self) -> list[str]:
        return [c for c in self.key.columns if not c.startswith(".")]

    def hash_key(self) -> tuple:
        """Guides with equal hashes are drawn as one."""
        return (self.kind, self.title, tuple(self.key[".label"]))

    def merge(self, other: "Guide") -> "Guide":
        """Fold ``other``'s aesthetic columns into this key."""
        for col in other.aesthetics:
            if col not in self.key.columns:
                self.key[col] = other.key[col].to_numpy()
        return self

    def draw(self, theme) -> Grob:
        raise NotImplementedError


# -----------------------------------------------------------------------------
# Axes
# -----------------------------------------------------------------------------


class GuideAxis(Guide):
    """Axis along one panel edge ("bottom" or "left").

    Axis keys hold break positions in scale space; ``draw`` places them in
    npc using the panel range.
    """

    kind = "axis"

    def __init__(self, position: str = "bottom", title: Optional[str] = None) -> None:
        if position not in ("bottom", "left", "top", "right"):
            raise ValueError(f"Unknown axis position {position!r}")
        super().__init__(title)
        self.position = position
        self.range: tuple[float, float] = (0.0, 1.0)

    @property
    def aesthetic(self) -> str:
        return "x" if self.position in ("bottom", "top") else "y"

    def train(self, view) -> "GuideAxis":
        """Train from one panel's AxisView (range, breaks, labels, values)."""
        self.range = tuple(view.range)
        self.key = pd.DataFrame({
            self.aesthetic: np.asarray(view.breaks, dtype=float),
            ".value": list(view.values),
            ".label": list(view.labels),
        })
        return self

    def draw(self, theme) -> GTree:
        lo, hi = self.range
        span = hi - lo if hi != lo else 1.0
        npc = (self.key[self.aesthetic].to_numpy(dtype=float) - lo) / span
        labels = [str(lbl) for lbl in self.key[".label"]]
        size = theme.axis_text_size
        tick = theme.axis_ticks_length
        gap = tick
        gp_tick = {"color": theme.axis_color, "linewidth": theme.grid_linewidth}
        gp_text = {"color": theme.axis_color, "fontsize": size}
        n = len(npc)

        if self.aesthetic == "x":
            label_h = max((text_height(lbl, size) for lbl in labels), default=0.0)
            height = tick + gap + label_h if n else 0.0
            frac_tick = tick / height if height else 0.0
            frac_text = (tick + gap) / height if height else 0.0
            y_tick0, y_tick1 = (1.0, 1.0 - frac_tick) if self.position == "bottom" else (0.0, frac_tick)
            y_text = 1.0 - frac_text if self.position == "bottom" else frac_text
            children = [
                SegmentsGrob(name="axis-ticks", x0=npc, y0=np.full(n, y_tick0), x1=npc, y1=np.full(n, y_tick1), gp=gp_tick),
                TextGrob(name="axis-labels", label=labels, x=npc, y=np.full(n, y_text),
                         hjust=0.5, vjust=1.0 if self.position == "bottom" else 0.0, gp=gp_text),
            ]
            return GTree(name=f"axis-{self.position[0]}", children=children, width=Unit(1.0, "null"), height=pt(height))

        label_w = max((text_width(lbl, size) for lbl in labels), default=0.0)
        width = tick + gap + label_w if n else 0.0
        frac_tick = tick / width if width else 0.0
        frac_text = (tick + gap) / width if width else 0.0
        x_tick0, x_tick1 = (1.0, 1.0 - frac_tick) if self.position == "left" else (0.0, frac_tick)
        x_text = 1.0 - frac_text if self.position == "left" else frac_text
        children = [
            SegmentsGrob(name="axis-ticks", x0=np.full(n, x_tick0), y0=npc, x1=np.full(n, x_tick1), y1=npc, gp=gp_tick),
            TextGrob(name="axis-labels", label=labels, x=np.full(n, x_text), y=npc,
                     hjust=1.0 if self.position == "left" else 0.0, vjust=0.5, gp=gp_text),
        ]
        return GTree(name=f"axis-{self.position[0]}", children=children, width=pt(width), height=Unit(1.0, "null"))


# -----------------------------------------------------------------------------
# Legends
# -----------------------------------------------------------------------------


class GuideLegend(Guide):
    """Discrete keys: one glyph per break, drawn by every contributing layer."""

    kind = "legend"

    def __init__(self, title: Optional[str] = None) -> None:
        super().__init__(title)
        self.glyphs: list[list[Grob]] = []

    def train(self, scale: Scale, title: Optional[str] = None) -> Optional["GuideLegend"]:
        """Fill the key from ``scale``; returns None when there is nothing to show."""
        breaks = scale.get_breaks()
        if breaks is None or len(breaks) == 0:
            return None
        if self.title is None:
            self.title = scale.title(title)
        if scale.is_discrete:
            values = list(breaks)
            mapped = list(scale.map(pd.Series(values, dtype=object)))
        else:
            breaks = np.asarray(breaks, dtype=float)
            values = list(scale.trans.invert(breaks))
            mapped = list(scale.map(breaks))
        self.key = pd.DataFrame({
            scale.aesthetic: mapped,
            ".value": values,
            ".label": scale.get_labels(breaks),
        })
        return self

    def process_layers(self, layers: Sequence, mapped_aes: Sequence[set]) -> Optional["GuideLegend"]:
        """Draw key glyphs for every layer that maps one of the legend's aesthetics.

        Returns None when no layer contributes.
        """
        rows = self.key.to_dict("records")
        self.glyphs = [[] for _ in rows]
        contributed = False
        for layer, aes_names in zip(layers, mapped_aes):
            if not layer.show_legend:
                continue
            if not set(self.aesthetics) & set(aes_names):
                continue
            contributed = True
            for i, row in enumerate(rows):
                glyph = {**layer.geom.default_aes, **layer.params}
                glyph.update({k: v for k, v in row.items() if not k.startswith(".")})
                self.glyphs[i].append(layer.geom.draw_key(glyph))
        return self if contributed else None

    def draw(self, theme, direction: str = "vertical") -> GridTable:
        labels = [str(lbl) for lbl in self.key[".label"]]
        text_size = theme.legend_text_size
        title_size = theme.legend_title_size
        key = theme.legend_key_size
        label_w = [text_width(lbl, text_size) for lbl in labels]
        title_w = text_width(self.title or "", title_size)
        title_h = text_height(self.title or "", title_size)
        text_gp = {"color": theme.text_color, "fontsize": text_size}

        if direction == "vertical":
            widths = [pt(LEGEND_PADDING), pt(key), pt(LABEL_GAP), pt(max(label_w, default=0.0)), pt(LEGEND_PADDING)]
            # The title may be wider than keys plus labels.
            extra = title_w - sum(w.to_pt() for w in widths[1:4])
            if extra > 0:
                widths[3] = pt(widths[3].to_pt() + extra)
            heights = [pt(LEGEND_PADDING), pt(title_h), pt(LABEL_GAP if title_h else 0.0)]
            heights += [pt(key)] * len(labels) + [pt(LEGEND_PADDING)]
            table = GridTable(widths, heights, name="legend")
            nrow, ncol = table.dim
            table.add_grob(RectGrob(name="legend.background", gp={"fill": theme.plot_background, "color": None}),
                           1, 1, nrow, ncol, z=-1)
            if self.title:
                table.add_grob(TextGrob(name="title", label=[self.title], x=np.array([0.0]), hjust=0.0,
                                        gp={"color": theme.text_color, "fontsize": title_size}), 2, 2, 2, 4)
            for i, label in enumerate(labels):
                row = 4 + i
                self._add_key(table, theme, i, row, 2)
                table.add_grob(TextGrob(name=f"label-{i + 1}", label=[label], x=np.array([0.0]), hjust=0.0, gp=dict(text_gp)),
                               row, 4)
            return table

        widths = [pt(LEGEND_PADDING), pt(title_w), pt(LABEL_GAP if title_w else 0.0)]
        for w in label_w:
            widths += [pt(key), pt(LABEL_GAP / 2), pt(w), pt(LABEL_GAP)]
        widths[-1] = pt(LEGEND_PADDING)
        heights = [pt(LEGEND_PADDING), pt(max(key, title_h)), pt(LEGEND_PADDING)]
        table = GridTable(widths, heights, name="legend")
        nrow, ncol = table.dim
        table.add_grob(RectGrob(name="legend.background", gp={"fill": theme.plot_background, "color": None}),
                       1, 1, nrow, ncol, z=-1)
        if self.title:
            table.add_grob(TextGrob(name="title", label=[self.title], x=np.array([0.0]), hjust=0.0,
                                    gp={"color": theme.text_color, "fontsize": title_size}), 2, 2)
        for i, label in enumerate(labels):
            col = 4 + 4 * i
            self._add_key(table, theme, i, 2, col)
            table.add_grob(TextGrob(name=f"label-{i + 1}", label=[label], x=np.array([0.0]), hjust=0.0, gp=dict(text_gp)),
                           2, col + 2)
        return table

    def _add_key(self, table: GridTable, theme, i: int, row: int, col: int) -> None:
        table.add_grob(RectGrob(name=f"key-{i + 1}-bg", gp={"fill": theme.panel_background, "color": None}), row, col)
        glyphs = self.glyphs[i] if i < len(self.glyphs) else []
        for j, glyph in enumerate(glyphs):
            table.add_grob(glyph, row, col, name=f"key-{i + 1}-{j + 1}")


class GuideColorbar(Guide):
    """Continuous colour/fill legend: a gradient bar with labelled ticks."""

    kind = "colorbar"

    def __init__(self, title: Optional[str] = None, nbin: int = COLORBAR_NBIN) -> None:
        super().__init__(title)
        self.nbin = nbin
        self.bar: pd.DataFrame = pd.DataFrame()
        self.limits: tuple[float, float] = (0.0, 1.0)

    def train(self, scale: Scale, title: Optional[str] = None) -> Optional["GuideColorbar"]:
        breaks = np.asarray(scale.get_breaks(), dtype=float)
        if len(breaks) == 0:
            return None
        if self.title is None:
            self.title = scale.title(title)
        self.limits = tuple(scale.get_limits())
        self.key = pd.DataFrame({
            scale.aesthetic: list(scale.map(breaks)),
            ".value": list(scale.trans.invert(breaks)),
            ".label": scale.get_labels(breaks),
            ".position": breaks,
        })
        bar_values = np.linspace(self.limits[0], self.limits[1], self.nbin)
        self.bar = pd.DataFrame({"colour": list(scale.map(bar_values)), "value": bar_values})
        return self

    def process_layers(self, layers: Sequence, mapped_aes: Sequence[set]) -> Optional["GuideColorbar"]:
        for layer, aes_names in zip(layers, mapped_aes):
            if layer.show_legend and set(self.aesthetics) & set(aes_names):
                return self
        return None

    def draw(self, theme, direction: str = "vertical") -> GridTable:
        key = theme.legend_key_size
        text_size = theme.legend_text_size
        title_size = theme.legend_title_size
        labels = [str(lbl) for lbl in self.key[".label"]]
        lo, hi = self.limits
        span = hi - lo if hi != lo else 1.0
        pos = (self.key[".position"].to_numpy(dtype=float) - lo) / span
        edges = np.linspace(0.0, 1.0, self.nbin + 1)
        colours = list(self.bar["colour"])
        title_w = text_width(self.title or "", title_size)
        title_h = text_height(self.title or "", title_size)
        n = len(pos)

        if direction == "vertical":
            bar = RectGrob(name="bar", xmin=np.zeros(self.nbin), xmax=np.ones(self.nbin),
                           ymin=edges[:-1], ymax=edges[1:], gp={"fill": colours, "color": None})
            ticks = SegmentsGrob(name="ticks", x0=np.zeros(n), y0=pos, x1=np.full(n, 0.2), y1=pos,
                                 gp={"color": "#ffffff"})
            label_w = max((text_width(lbl, text_size) for lbl in labels), default=0.0)
            widths = [pt(LEGEND_PADDING), pt(key), pt(LABEL_GAP), pt(max(label_w, title_w - key - LABEL_GAP)), pt(LEGEND_PADDING)]
            heights = [pt(LEGEND_PADDING), pt(title_h), pt(LABEL_GAP if title_h else 0.0), pt(5 * key), pt(LEGEND_PADDING)]
            table = GridTable(widths, heights, name="colorbar")
            if self.title:
                table.add_grob(TextGrob(name="title", label=[self.title], x=np.array([0.0]), hjust=0.0,
                                        gp={"color": theme.text_color, "fontsize": title_size}), 2, 2, 2, 4)
            table.add_grob(GTree(name="bar", children=[bar, ticks]), 4, 2)
            table.add_grob(TextGrob(name="labels", label=labels, x=np.zeros(n), y=pos, hjust=0.0,
                                    gp={"color": theme.text_color, "fontsize": text_size}), 4, 4)
            return table

        bar = RectGrob(name="bar", xmin=edges[:-1], xmax=edges[1:], ymin=np.zeros(self.nbin), ymax=np.ones(self.nbin),
                       gp={"fill": colours, "color": None})
        ticks = SegmentsGrob(name="ticks", x0=pos, y0=np.zeros(n), x1=pos, y1=np.full(n, 0.2), gp={"color": "#ffffff"})
        label_h = max((text_height(lbl, text_size) for lbl in labels), default=0.0)
        widths = [pt(LEGEND_PADDING), pt(title_w), pt(LABEL_GAP if title_w else 0.0), pt(5 * key), pt(LEGEND_PADDING)]
        heights = [pt(LEGEND_PADDING), pt(key), pt(label_h), pt(LEGEND_PADDING)]
        table = GridTable(widths, heights, name="colorbar")
        if self.title:
            table.add_grob(TextGrob(name="title", label=[self.title], x=np.array([0.0]), hjust=0.0,
                                    gp={"color": theme.text_color, "fontsize": title_size}), 2, 2)
        table.add_grob(GTree(name="bar", children=[bar, ticks]), 2, 4)
        table.add_grob(TextGrob(name="labels", label=labels, x=pos, y=np.ones(n), vjust=1.0,
                                gp={"color": theme.text_color, "fontsize": text_size}), 3, 4)
        return table


# -----------------------------------------------------------------------------
# Training and the guide box
# -----------------------------------------------------------------------------


def _guide_for(scale: Scale) -> Optional[Guide]:
    kind = scale.guide_type
    if kind == "legend":
        return GuideLegend()
    if kind == "colorbar":
        return GuideColorbar()
    if kind != "none":
        logger.warning(f"Unknown guide {kind!r} for scale {scale.aesthetic!r}; no guide drawn")
    return None


def build_guides(
    scales: Sequence[Scale],
    layers: Sequence,
    mapped_aes: Sequence[set],
    labels: Mapping[str, Any],
) -> list[Guide]:
    """Train, merge and attach layer glyphs to the legends of non-position scales.

    Args:
        scales: Trained scales; position scales are skipped.
        layers: Layers in draw order.
        mapped_aes: For each layer, the aesthetics it maps (from its mapping
            and its stat's computed defaults).
        labels: Default titles per aesthetic.

    Returns:
        Guides in scale order, after merging.
    """
    trained: list[Guide] = []
    for scale in scales:
        if scale.is_position:
            continue
        guide = _guide_for(scale)
        if guide is None:
            continue
        guide = guide.train(scale, title=labels.get(scale.aesthetic, scale.aesthetic))
        if guide is not None:
            trained.append(guide)

    merged: dict[tuple, Guide] = {}
    for guide in trained:
        h = guide.hash_key()
        if h in merged:
            logger.debug(f"Merging legend for {guide.aesthetics} into {merged[h].aesthetics}")
            merged[h].merge(guide)
        else:
            merged[h] = guide

    out = []
    for guide in merged.values():
        processed = guide.process_layers(layers, mapped_aes)
        if processed is not None:
            out.append(processed)
    return out


def guide_box(guides: Sequence[Guide], theme, direction: str = "vertical") -> Optional[GridTable]:
    """Stack drawn guides into one table; None when there are no guides."""
    if not guides:
        return None
    tables = [g.draw(theme, direction=direction) for g in guides]
    sizes = [t.absolute_size() for t in tables]
    spacing = theme.legend_spacing
    if direction == "vertical":
        width = max(w for w, _ in sizes)
        heights: list[Unit] = []
        for i, (_, h) in enumerate(sizes):
            if i:
                heights.append(pt(spacing))
            heights.append(pt(h))
        box = GridTable([pt(width)], heights, name="guide-box")
        for i, table in enumerate(tables):
            box.add_grob(table, 2 * i + 1, 1, name=f"guides-{i + 1}")
        return box
    height = max(h for _, h in sizes)
    widths: list[Unit] = []
    for i, (w, _) in enumerate(sizes):
        if i:
            widths.append(pt(spacing))
        widths.append(pt(w))
    box = GridTable(widths, [pt(height)], name="guide-box")
    for i, table in enumerate(tables):
        box.add_grob(table, 1, 2 * i + 1, name=f"guides-{i + 1}")
    return box
