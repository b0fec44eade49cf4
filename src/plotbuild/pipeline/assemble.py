"""Assembly pipeline: drawing-ready layer data -> one composed GridTable.

The plot table is built once per call and mutated only inside this
module. After the facet step it is framed by named, zero-size border
tracks; guide placement and adornment only resize those tracks and add
grobs to them, so no cell placed earlier moves.

    rows:  margin-t, tag, title, subtitle, guide-box-t, <body>,
           guide-box-b, caption, margin-b
    cols:  margin-l, guide-box-l, <body>, guide-box-r, margin-r
"""

from __future__ import annotations

from typing import Optional, Sequence, Union

import numpy as np
import pandas as pd

from plotbuild.grid import (
    ZERO,
    GridTable,
    GTree,
    Grob,
    NullGrob,
    RectGrob,
    TextGrob,
    pt,
    text_height,
)
from plotbuild.guides import Guide, build_guides, guide_box
from plotbuild.layout import Layout
from plotbuild.pipeline.build import BuildResult, mapped_aesthetics, resolve_labels, stage_context
from plotbuild.pipeline.trace import PipelineTrace
from plotbuild.spec import Labels
from plotbuild.theme import Theme
from plotbuild.utils.logging import get_logger

logger = get_logger(__name__)

STEPS = (
    "layer_grobs",
    "panels",
    "facet_table",
    "guides",
    "guide_placement",
    "adornment",
)

TOP_ROWS = ("margin-t", "tag", "title", "subtitle", "guide-box-t")
BOTTOM_ROWS = ("guide-box-b", "caption", "margin-b")
LEFT_COLS = ("margin-l", "guide-box-l")
RIGHT_COLS = ("guide-box-r", "margin-r")


# -----------------------------------------------------------------------------
# Table helpers
# -----------------------------------------------------------------------------


def frame_plot_table(table: GridTable) -> GridTable:
    """Surround the facet body with the zero-size border tracks."""
    table.add_rows([ZERO] * len(TOP_ROWS), pos=0, names=list(TOP_ROWS))
    table.add_rows([ZERO] * len(BOTTOM_ROWS), names=list(BOTTOM_ROWS))
    table.add_cols([ZERO] * len(LEFT_COLS), pos=0, names=list(LEFT_COLS))
    table.add_cols([ZERO] * len(RIGHT_COLS), names=list(RIGHT_COLS))
    return table


def panel_span(table: GridTable) -> tuple[int, int, int, int]:
    """(t, l, b, r) of the area covered by panel tracks."""
    rows = [i + 1 for i, n in enumerate(table.row_names) if n and n.startswith("panel-")]
    cols = [i + 1 for i, n in enumerate(table.col_names) if n and n.startswith("panel-")]
    return min(rows), min(cols), max(rows), max(cols)


# -----------------------------------------------------------------------------
# Steps
# -----------------------------------------------------------------------------


def draw_layer_grobs(layers: Sequence, layer_data: Sequence[pd.DataFrame], layout: Layout) -> list[list[list[Grob]]]:
    """Step 1: grobs per layer per panel, indexed ``[layer][PANEL - 1]``."""
    if not layout.panel_params:
        layout.setup_panel_params()
    panels = [int(p) for p in layout.layout["PANEL"]]
    out = []
    for i, (layer, df) in enumerate(zip(layers, layer_data)):
        per_panel = []
        for panel in panels:
            rows = df[df["PANEL"] == panel] if "PANEL" in df.columns else df.iloc[0:0]
            if rows.empty:
                per_panel.append([NullGrob(name=f"geom_{layer.geom.name}")])
                continue
            with stage_context("layer_grobs", i):
                grobs = layer.geom.draw_panel(rows, layout.panel_params[panel - 1], layout.coord)
            per_panel.append(list(grobs))
        out.append(per_panel)
    return out


def compose_panels(layer_grobs: Sequence[Sequence[Sequence[Grob]]], layout: Layout, theme: Theme) -> list[GTree]:
    """Step 2: background, every layer in order, foreground."""
    panels = []
    for panel in layout.layout["PANEL"]:
        idx = int(panel) - 1
        params = layout.panel_params[idx]
        children: list[Grob] = [layout.coord.render_bg(params, theme)]
        for per_layer in layer_grobs:
            children.extend(per_layer[idx])
        children.append(layout.coord.render_fg(params, theme))
        panels.append(GTree(name=f"panel-{int(panel)}", children=children))
    return panels


def place_guides(table: GridTable, guides: Sequence[Guide], theme: Theme) -> Optional[GridTable]:
    """Step 5: draw the guide box and put it on the themed edge.

    Returns the guide box, or None when nothing was placed.
    """
    position = theme.resolved_legend_position()
    if position == "none" or not guides:
        return None
    direction = "horizontal" if position in ("top", "bottom") else "vertical"
    box = guide_box(guides, theme, direction=direction)
    if box is None:
        return None
    width, height = box.absolute_size()
    spacing = theme.legend_spacing
    t, l, b, r = panel_span(table)

    if position == "inside":
        x, y = theme.legend_position
        box.gp = {**box.gp, "x": float(x), "y": float(y)}
        table.add_grob(box, t, l, b, r, name="guide-box-inside", clip="off")
    elif position in ("left", "right"):
        col = table.col_index(f"guide-box-{position[0]}")
        table.add_grob(box, t, col, b, col, name=f"guide-box-{position}", clip="off")
        table.set_width(col, pt(width + spacing))
    else:
        row = table.row_index(f"guide-box-{position[0]}")
        table.add_grob(box, row, l, row, r, name=f"guide-box-{position}", clip="off")
        table.set_height(row, pt(height + spacing))
    logger.debug(f"Placed {len(guides)} guide(s) at {position}")
    return box


def _text_track(table: GridTable, track: str, text: Optional[str], size: float, theme: Theme, *, hjust: float, span: tuple[int, int]) -> None:
    if not text:
        return
    row = table.row_index(track)
    grob = TextGrob(
        name=track,
        label=[text],
        x=np.array([hjust]),
        hjust=hjust,
        vjust=1.0,
        gp={"color": theme.text_color, "fontsize": size},
    )
    table.add_grob(grob, row, span[0], row, span[1], clip="off")
    table.set_height(row, pt(text_height(text, size) + size * 0.5))


def adorn(table: GridTable, labels: Labels, theme: Theme) -> GridTable:
    """Step 6: titles, caption, tag, margins and the plot background."""
    _, l, _, r = panel_span(table)
    _text_track(table, "title", labels.title, theme.title_size, theme, hjust=theme.title_hjust, span=(l, r))
    _text_track(table, "subtitle", labels.subtitle, theme.subtitle_size, theme, hjust=theme.title_hjust, span=(l, r))
    _text_track(table, "caption", labels.caption, theme.caption_size, theme, hjust=1.0, span=(l, r))
    # The tag sits in the top-left corner, outside the panel area.
    _text_track(
        table, "tag", labels.tag, theme.tag_size, theme, hjust=0.0,
        span=(table.col_index("guide-box-l"), table.col_index("guide-box-l")),
    )

    top, right, bottom, left = theme.plot_margin
    table.set_height(table.row_index("margin-t"), pt(top))
    table.set_width(table.col_index("margin-r"), pt(right))
    table.set_height(table.row_index("margin-b"), pt(bottom))
    table.set_width(table.col_index("margin-l"), pt(left))

    nrow, ncol = table.dim
    background = RectGrob(name="background", gp={"fill": theme.plot_background, "color": None})
    table.add_grob(background, 1, 1, nrow, ncol, z=0, clip="on")
    return table


# -----------------------------------------------------------------------------
# Driver
# -----------------------------------------------------------------------------


def _resolve_theme(theme: Optional[Theme], build: BuildResult) -> Theme:
    if theme is not None:
        return theme
    if build.plot is not None and build.plot.theme is not None:
        return build.plot.theme
    return Theme()


def _as_build_result(layer_data: Sequence[pd.DataFrame], layout: Layout) -> BuildResult:
    spec = layout.plot
    if spec is None:
        return BuildResult(layer_data=list(layer_data), layout=layout)
    return BuildResult(
        layer_data=list(layer_data),
        layout=layout,
        plot=spec,
        labels=resolve_labels(spec),
        mapped_aes=[mapped_aesthetics(spec, layer) for layer in spec.layers],
    )


def assemble_plot(
    build: Union[BuildResult, Sequence[pd.DataFrame]],
    layout_or_theme: Union[Layout, Theme, None] = None,
    theme: Optional[Theme] = None,
    *,
    trace: Optional[PipelineTrace] = None,
) -> GridTable:
    """Compose built layers into one GridTable.

    Accepts either ``assemble_plot(build_result, theme)`` or
    ``assemble_plot(layer_data, layout, theme)``. In the second form the
    layers, labels and legends come from the plot the layout was built for.

    Args:
        build: BuildResult, or the list of drawing-ready DataFrames.
        layout_or_theme: Theme (first form) or the Layout (second form).
        theme: Theme (second form). Falls back to the plot's theme, then
            ``Theme()``.
        trace: Optional recorder receiving a snapshot after every step.

    Returns:
        The plot table.

    Raises:
        PlotBuildError: with ``stage`` set to the failing step name.
    """
    if isinstance(build, BuildResult):
        result = build
        if isinstance(layout_or_theme, Theme):
            theme = layout_or_theme
    elif isinstance(layout_or_theme, Layout):
        result = _as_build_result(build, layout_or_theme)
    else:
        raise TypeError("assemble_plot(layer_data, layout, theme) needs a Layout as second argument")
    theme = _resolve_theme(theme, result)
    layout = result.layout
    spec = result.plot
    layers = spec.layers if spec is not None else ()
    labels = spec.labels if spec is not None else Labels()

    def _record(index: int, table: Optional[GridTable] = None, **extra) -> None:
        logger.debug(f"Assembly step {index}/{len(STEPS)}: {STEPS[index - 1]} done")
        if trace is not None:
            trace.record(index, STEPS[index - 1], "assemble", layout=layout, plot_table=table, extra=extra)

    if result.layer_data and not layers:
        logger.warning("assemble_plot got layer data without layers; panels are drawn empty")
    layer_grobs = draw_layer_grobs(layers, result.layer_data, layout)
    _record(1, grob_counts=[[len(g) for g in per_layer] for per_layer in layer_grobs])

    with stage_context("panels"):
        panels = compose_panels(layer_grobs, layout, theme)
    _record(2, panels=len(panels))

    with stage_context("facet_table"):
        table = layout.render(
            panels, theme,
            xlab=layout.xlabel(result.labels.get("x")),
            ylab=layout.ylabel(result.labels.get("y")),
        )
        frame_plot_table(table)
    _record(3, table)

    with stage_context("guides"):
        guides = build_guides(layout.scales, layers, result.mapped_aes, result.labels)
    _record(4, table, guides=[type(g).__name__ for g in guides])

    with stage_context("guide_placement"):
        box = place_guides(table, guides, theme)
    _record(5, table, position=theme.resolved_legend_position() if box is not None else "none")

    with stage_context("adornment"):
        adorn(table, labels, theme)
    _record(6, table)
    return table
