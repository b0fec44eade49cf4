"""Facets: split layer data into panels and lay the panels out in a grid.

A facet does three things:

- ``compute_layout`` builds the panel table from every layer's resolved data:
  one row per panel with PANEL, ROW, COL, the facet variables and
  SCALE_X / SCALE_Y (which position scale the panel uses),
- ``map_data`` assigns each row of one layer to its PANEL,
- ``draw_panels`` places the composed panels, axes and strips into a
  GridTable with named tracks.
"""

from __future__ import annotations

import math
from typing import Optional, Sequence, Union

import numpy as np
import pandas as pd

from plotbuild.errors import SpecificationError, UnknownFacetKeyError
from plotbuild.grid import (
    ZERO,
    GridTable,
    GTree,
    Grob,
    RectGrob,
    TextGrob,
    null,
    pt,
    text_height,
)
from plotbuild.guides import GuideAxis
from plotbuild.utils.logging import get_logger

logger = get_logger(__name__)

SCALES_OPTIONS = ("fixed", "free", "free_x", "free_y")
LAYOUT_COLUMNS = ("PANEL", "ROW", "COL", "SCALE_X", "SCALE_Y")


def _as_vars(facets: Union[str, Sequence[str], None]) -> list[str]:
    if facets is None:
        return []
    if isinstance(facets, str):
        return [facets]
    return list(facets)


def unique_combinations(data_list: Sequence[pd.DataFrame], vars_: Sequence[str]) -> pd.DataFrame:
    """Distinct combinations of ``vars_`` over all layers, sorted by value.

    Raises:
        UnknownFacetKeyError: a layer's data lacks one of the variables.
    """
    pieces = []
    for i, df in enumerate(data_list):
        missing = [v for v in vars_ if v not in df.columns]
        if missing:
            raise UnknownFacetKeyError(
                f"Faceting variables must be present in every layer; layer data is missing {missing}",
                layer_index=i,
            )
        pieces.append(df[list(vars_)])
    combined = pd.concat(pieces, ignore_index=True).drop_duplicates() if pieces else pd.DataFrame()
    if combined.empty:
        raise SpecificationError(f"Faceting variables {list(vars_)} have no values")
    return combined.sort_values(list(vars_), na_position="last", kind="mergesort").reset_index(drop=True)


def _layout_frames(data_list: Sequence[pd.DataFrame], plot_data: Optional[pd.DataFrame]) -> list[pd.DataFrame]:
    # Without layers the plot data alone decides the panels.
    if len(data_list) == 0 and plot_data is not None:
        return [plot_data]
    return list(data_list)


def wrap_dims(n: int, nrow: Optional[int] = None, ncol: Optional[int] = None) -> tuple[int, int]:
    """(nrow, ncol) for ``n`` panels wrapped into a grid."""
    if nrow is None and ncol is None:
        if n <= 3:
            return 1, n
        ncol = math.ceil(math.sqrt(n))
        return math.ceil(n / ncol), ncol
    if ncol is None:
        return nrow, math.ceil(n / nrow)
    if nrow is None:
        return math.ceil(n / ncol), ncol
    if nrow * ncol < n:
        raise SpecificationError(f"nrow * ncol ({nrow} * {ncol}) is smaller than the number of panels ({n})")
    return nrow, ncol


class Facet:
    """Base class. The null facet: one panel holding everything."""

    def __init__(self, scales: str = "fixed") -> None:
        if scales not in SCALES_OPTIONS:
            raise ValueError(f"scales must be one of {SCALES_OPTIONS}, got {scales!r}")
        self.scales = scales

    def __repr__(self) -> str:
        return f"{type(self).__name__}(vars={self.vars}, scales={self.scales!r})"

    @property
    def vars(self) -> list[str]:
        return []

    @property
    def free_x(self) -> bool:
        return self.scales in ("free", "free_x")

    @property
    def free_y(self) -> bool:
        return self.scales in ("free", "free_y")

    def compute_layout(self, data_list: Sequence[pd.DataFrame], plot_data: Optional[pd.DataFrame] = None) -> pd.DataFrame:
        raise NotImplementedError

    def map_data(self, data: pd.DataFrame, layout: pd.DataFrame, layer_index: Optional[int] = None) -> np.ndarray:
        """PANEL id for every row of ``data`` (same order)."""
        vars_ = self.vars
        if not vars_:
            return np.ones(len(data), dtype=int)
        missing = [v for v in vars_ if v not in data.columns]
        if missing:
            raise UnknownFacetKeyError(
                f"Layer data is missing faceting variables {missing}", layer_index=layer_index
            )
        keys = data[vars_].reset_index(drop=True)
        merged = keys.merge(layout[vars_ + ["PANEL"]], how="left", on=vars_)
        panels = merged["PANEL"]
        if panels.isna().any():
            raise UnknownFacetKeyError(
                f"{int(panels.isna().sum())} rows have facet values not in the panel layout",
                layer_index=layer_index,
            )
        return panels.to_numpy(dtype=int)

    # -- drawing --

    def strip_labels(self, layout_row: pd.Series, layout: Optional[pd.DataFrame] = None) -> dict[str, str]:
        """Strip texts for one panel, keyed by strip side ("t" or "r").

        ``layout`` is the full panel table, used to find the outermost
        panel of a row or column when the grid has holes.
        """
        return {}

    def draw_panels(
        self,
        panels: Sequence[Grob],
        layout,
        theme,
        xlab: Optional[str] = None,
        ylab: Optional[str] = None,
    ) -> GridTable:
        """Lay out composed panels with their axes, strips and axis titles.

        Every panel occupies a block of tracks: ``strip-t-{r}``,
        ``panel-{r}``, ``axis-b-{r}`` rows and ``axis-l-{c}``, ``panel-{c}``
        columns, with ``spacing`` tracks between blocks, an optional
        ``strip-r`` column, then ``xlab-b`` / ``ylab-l`` tracks.

        Args:
            panels: Composed panel grobs, indexed by PANEL - 1.
            layout: The trained Layout (panel table and panel params).
            theme: Theme for sizes and colours.
            xlab, ylab: Axis titles; empty or None leaves a zero-size track.
        """
        lt = layout.layout
        nrow = int(lt["ROW"].max())
        ncol = int(lt["COL"].max())
        has_strip_r = self._has_strip_r()

        table = GridTable(name="layout")
        # Rows
        for r in range(1, nrow + 1):
            if r > 1:
                table.add_rows([pt(theme.panel_spacing)], names=["spacing"])
            table.add_rows([ZERO, null(1.0), ZERO], names=[f"strip-t-{r}", f"panel-{r}", f"axis-b-{r}"])
        # Columns
        for c in range(1, ncol + 1):
            if c > 1:
                table.add_cols([pt(theme.panel_spacing)], names=["spacing"])
            table.add_cols([ZERO, null(1.0)], names=[f"axis-l-{c}", f"panel-{c}"])
        if has_strip_r:
            table.add_cols([ZERO], names=["strip-r"])

        for _, row in lt.iterrows():
            panel = int(row["PANEL"])
            r, c = int(row["ROW"]), int(row["COL"])
            t = table.row_index(f"panel-{r}")
            l = table.col_index(f"panel-{c}")
            table.add_grob(panels[panel - 1], t, l, name=f"panel-{r}-{c}", z=1)

            params = layout.panel_params[panel - 1]
            if self._draw_axis_b(row, lt):
                axis = GuideAxis("bottom").train(params.x).draw(theme)
                t_ax = table.row_index(f"axis-b-{r}")
                table.add_grob(axis, t_ax, l, name=f"axis-b-{r}-{c}", z=3, clip="off")
                _grow_height(table, t_ax, axis.height.to_pt())
            if self._draw_axis_l(row, lt):
                axis = GuideAxis("left").train(params.y).draw(theme)
                l_ax = table.col_index(f"axis-l-{c}")
                table.add_grob(axis, t, l_ax, name=f"axis-l-{r}-{c}", z=3, clip="off")
                _grow_width(table, l_ax, axis.width.to_pt())

            for side, text in self.strip_labels(row, lt).items():
                strip = _strip(text, theme, vertical=(side == "r"))
                if side == "t":
                    t_st = table.row_index(f"strip-t-{r}")
                    table.add_grob(strip, t_st, l, name=f"strip-t-{r}-{c}", z=2)
                    _grow_height(table, t_st, strip.height.to_pt())
                elif c == int(lt.loc[lt["ROW"] == r, "COL"].max()):
                    l_st = table.col_index("strip-r")
                    table.add_grob(strip, t, l_st, name=f"strip-r-{r}", z=2)
                    _grow_width(table, l_st, strip.width.to_pt())

        _add_axis_titles(table, theme, xlab, ylab)
        return table

    def _has_strip_r(self) -> bool:
        return False

    def _draw_axis_b(self, row: pd.Series, lt: pd.DataFrame) -> bool:
        if self.free_x:
            return True
        # Bottom axis only where no panel sits directly below.
        below = lt[(lt["COL"] == row["COL"]) & (lt["ROW"] > row["ROW"])]
        return below.empty

    def _draw_axis_l(self, row: pd.Series, lt: pd.DataFrame) -> bool:
        if self.free_y:
            return True
        left = lt[(lt["ROW"] == row["ROW"]) & (lt["COL"] < row["COL"])]
        return left.empty


class FacetNull(Facet):
    """No faceting."""

    def compute_layout(self, data_list, plot_data=None):
        return pd.DataFrame({"PANEL": [1], "ROW": [1], "COL": [1], "SCALE_X": [1], "SCALE_Y": [1]})


class FacetWrap(Facet):
    """One panel per combination of ``facets``, wrapped into rows.

    Args:
        facets: Variable name or names.
        nrow, ncol: Grid shape; derived from the panel count when omitted.
        scales: "fixed", "free", "free_x" or "free_y".
    """

    def __init__(
        self,
        facets: Union[str, Sequence[str]],
        nrow: Optional[int] = None,
        ncol: Optional[int] = None,
        scales: str = "fixed",
    ) -> None:
        super().__init__(scales)
        self.facets = _as_vars(facets)
        if not self.facets:
            raise ValueError("FacetWrap needs at least one variable")
        self.nrow = nrow
        self.ncol = ncol

    @property
    def vars(self) -> list[str]:
        return list(self.facets)

    def compute_layout(self, data_list, plot_data=None):
        combos = unique_combinations(_layout_frames(data_list, plot_data), self.facets)
        n = len(combos)
        nrow, ncol = wrap_dims(n, self.nrow, self.ncol)
        idx = np.arange(n)
        layout = combos.assign(
            PANEL=idx + 1,
            ROW=idx // ncol + 1,
            COL=idx % ncol + 1,
        )
        layout["SCALE_X"] = layout["PANEL"] if self.free_x else 1
        layout["SCALE_Y"] = layout["PANEL"] if self.free_y else 1
        logger.debug(f"facet_wrap: {n} panels in a {nrow}x{ncol} grid")
        return layout[list(LAYOUT_COLUMNS[:3]) + self.facets + list(LAYOUT_COLUMNS[3:])]

    def strip_labels(self, layout_row, layout=None):
        return {"t": ", ".join(str(layout_row[v]) for v in self.facets)}


class FacetGrid(Facet):
    """Panels in a matrix: ``rows`` variables down, ``cols`` variables across.

    Only combinations of row and column values that occur in some layer get
    a panel. ROW and COL are the rank of a panel's row and column values, so
    an unobserved combination leaves a hole in the grid.
    """

    def __init__(
        self,
        rows: Union[str, Sequence[str], None] = None,
        cols: Union[str, Sequence[str], None] = None,
        scales: str = "fixed",
    ) -> None:
        super().__init__(scales)
        self.rows = _as_vars(rows)
        self.cols = _as_vars(cols)
        if not self.rows and not self.cols:
            raise ValueError("FacetGrid needs row or column variables")

    @property
    def vars(self) -> list[str]:
        return self.rows + self.cols

    def compute_layout(self, data_list, plot_data=None):
        frames = _layout_frames(data_list, plot_data)
        layout = unique_combinations(frames, self.vars)
        layout["ROW"] = _rank(layout, self.rows)
        layout["COL"] = _rank(layout, self.cols)
        layout = layout.sort_values(["ROW", "COL"], kind="mergesort").reset_index(drop=True)
        layout["PANEL"] = np.arange(len(layout)) + 1
        layout["SCALE_X"] = layout["COL"] if self.free_x else 1
        layout["SCALE_Y"] = layout["ROW"] if self.free_y else 1
        logger.debug(
            f"facet_grid: {len(layout)} panels in a {layout['ROW'].max()}x{layout['COL'].max()} grid"
        )
        return layout[list(LAYOUT_COLUMNS[:3]) + self.vars + list(LAYOUT_COLUMNS[3:])]

    def strip_labels(self, layout_row, layout=None):
        out = {}
        if self.cols:
            if layout is None:
                top = int(layout_row["ROW"]) == 1
            else:
                top = int(layout_row["ROW"]) == int(layout.loc[layout["COL"] == layout_row["COL"], "ROW"].min())
            if top:
                out["t"] = ", ".join(str(layout_row[v]) for v in self.cols)
        if self.rows:
            out["r"] = ", ".join(str(layout_row[v]) for v in self.rows)
        return out

    def _has_strip_r(self) -> bool:
        return bool(self.rows)


def _rank(layout: pd.DataFrame, vars_: list[str]) -> np.ndarray:
    # Dense 1-based rank of each row's ``vars_`` values; layout is sorted by them.
    if not vars_:
        return np.ones(len(layout), dtype=int)
    levels = layout[vars_].drop_duplicates()
    levels = levels.sort_values(vars_, na_position="last", kind="mergesort").reset_index(drop=True)
    levels["_rank"] = np.arange(len(levels)) + 1
    return layout[vars_].merge(levels, how="left", on=vars_)["_rank"].to_numpy(dtype=int)


def _strip(text: str, theme, vertical: bool = False) -> GTree:
    size = theme.strip_text_size
    pad = theme.strip_padding
    extent = text_height(text, size) + 2 * pad
    label = TextGrob(
        name="strip-text",
        label=[text],
        angle=-90.0 if vertical else 0.0,
        gp={"color": theme.text_color, "fontsize": size},
    )
    children = [RectGrob(name="strip-background", gp={"fill": theme.strip_background, "color": None}), label]
    if vertical:
        return GTree(name="strip", children=children, width=pt(extent), height=null(1.0))
    return GTree(name="strip", children=children, width=null(1.0), height=pt(extent))


def _grow_height(table: GridTable, row: int, size: float) -> None:
    if size > table.heights[row - 1].to_pt():
        table.set_height(row, pt(size))


def _grow_width(table: GridTable, col: int, size: float) -> None:
    if size > table.widths[col - 1].to_pt():
        table.set_width(col, pt(size))


def _add_axis_titles(table: GridTable, theme, xlab: Optional[str], ylab: Optional[str]) -> None:
    size = theme.axis_title_size
    first_panel_col = table.col_index("panel-1")
    last_panel_col = max(i + 1 for i, n in enumerate(table.col_names) if n and n.startswith("panel-"))
    first_panel_row = table.row_index("panel-1")
    last_panel_row = max(i + 1 for i, n in enumerate(table.row_names) if n and n.startswith("panel-"))

    table.add_rows([ZERO], names=["xlab-b"])
    table.add_cols([ZERO], pos=0, names=["ylab-l"])
    if xlab:
        grob = TextGrob(name="xlab-b", label=[xlab], vjust=1.0, y=np.array([1.0]),
                        gp={"color": theme.text_color, "fontsize": size})
        t = table.row_index("xlab-b")
        table.add_grob(grob, t, first_panel_col + 1, t, last_panel_col + 1, clip="off")
        table.set_height(t, pt(text_height(xlab, size) + theme.axis_ticks_length))
    if ylab:
        grob = TextGrob(name="ylab-l", label=[ylab], angle=90.0, hjust=0.5, x=np.array([0.0]),
                        gp={"color": theme.text_color, "fontsize": size})
        l = table.col_index("ylab-l")
        table.add_grob(grob, first_panel_row, l, last_panel_row, l, clip="off")
        table.set_width(l, pt(text_height(ylab, size) + theme.axis_ticks_length))
