"""Layout: the panel structure of one build and its position scales.

The Layout is created fresh by every build. It owns the panel table from the
facet, one x and one y scale per SCALE_X / SCALE_Y id (clones of the plot's
position scales), the coord, and after training the per-panel params the
assembly pipeline draws with.
"""

from __future__ import annotations

from typing import Optional, Sequence

import pandas as pd

from plotbuild.coords import Coord, CoordCartesian, PanelParams
from plotbuild.facets import Facet, FacetNull
from plotbuild.grid import GridTable, Grob
from plotbuild.scales.scale import Scale
from plotbuild.scales.scales_list import ScalesList
from plotbuild.utils.logging import get_logger

logger = get_logger(__name__)


class Layout:
    """Panels, position scales and coord for one build.

    Attributes:
        facet: The facet that produced the panel table.
        coord: Coordinate system.
        scales: Every scale of the build (position and non-position).
        layout: Panel table (PANEL, ROW, COL, facet vars, SCALE_X, SCALE_Y).
        panel_scales_x: x scale per SCALE_X id (index id - 1).
        panel_scales_y: y scale per SCALE_Y id.
        panel_params: PanelParams per PANEL (index PANEL - 1), set by
            ``setup_panel_params``.
        plot: The PlotSpec being built, set by ``build_plot``.
    """

    def __init__(self, facet: Optional[Facet] = None, coord: Optional[Coord] = None, scales: Optional[ScalesList] = None) -> None:
        self.facet = facet or FacetNull()
        self.coord = coord or CoordCartesian()
        self.scales = scales if scales is not None else ScalesList()
        self.layout: pd.DataFrame = pd.DataFrame()
        self.panel_scales_x: list[Scale] = []
        self.panel_scales_y: list[Scale] = []
        self.panel_params: list[PanelParams] = []
        self.plot = None

    def __repr__(self) -> str:
        return f"Layout(panels={self.n_panels}, facet={self.facet!r}, coord={self.coord!r})"

    @property
    def n_panels(self) -> int:
        return len(self.layout)

    # -- panels --

    def setup(self, data_list: Sequence[pd.DataFrame], plot_data: Optional[pd.DataFrame] = None) -> list[pd.Series]:
        """Compute the panel table and the PANEL id of every row of every layer."""
        self.layout = self.facet.compute_layout(data_list, plot_data)
        return [
            pd.Series(self.facet.map_data(df, self.layout, layer_index=i), index=df.index, name="PANEL")
            for i, df in enumerate(data_list)
        ]

    def _scale_id(self, panel: int, column: str) -> int:
        return int(self.layout.loc[self.layout["PANEL"] == panel, column].iloc[0])

    def panel_scales(self, panel: int) -> dict[str, Optional[Scale]]:
        """{"x": scale, "y": scale} for one PANEL."""
        out: dict[str, Optional[Scale]] = {"x": None, "y": None}
        if self.panel_scales_x:
            out["x"] = self.panel_scales_x[self._scale_id(panel, "SCALE_X") - 1]
        if self.panel_scales_y:
            out["y"] = self.panel_scales_y[self._scale_id(panel, "SCALE_Y") - 1]
        return out

    def panel_scales_map(self) -> dict[int, dict[str, Optional[Scale]]]:
        return {int(p): self.panel_scales(int(p)) for p in self.layout["PANEL"]}

    # -- position scales --

    def init_position_scales(self) -> None:
        """Clone the plot's x/y scales once per SCALE_X / SCALE_Y id.

        Only missing panel scales are created, so a y scale added after the
        stat (e.g. for counts) joins an existing x.
        """
        x, y = self.scales.x, self.scales.y
        if x is not None and not self.panel_scales_x:
            self.panel_scales_x = [x.clone() for _ in range(int(self.layout["SCALE_X"].max()))]
        if y is not None and not self.panel_scales_y:
            self.panel_scales_y = [y.clone() for _ in range(int(self.layout["SCALE_Y"].max()))]

    def train_position(self, data_list: Sequence[pd.DataFrame], *, transformed: bool = False) -> None:
        """Train every panel scale on the rows of the panels that use it."""
        self.init_position_scales()
        for df in data_list:
            if df.empty or "PANEL" not in df:
                continue
            for column, scales in (("SCALE_X", self.panel_scales_x), ("SCALE_Y", self.panel_scales_y)):
                if not scales:
                    continue
                ids = df["PANEL"].map(dict(zip(self.layout["PANEL"], self.layout[column])))
                for scale_id, rows in df.groupby(ids.to_numpy(), sort=True):
                    scales[int(scale_id) - 1].train_df(rows, transformed=transformed)

    def map_position(self, data_list: Sequence[pd.DataFrame]) -> list[pd.DataFrame]:
        """Move position columns into scale space using each panel's own scale.

        Continuous panel scales share their transform, so only discrete
        panel scales give panel-specific results (levels -> 1..n).
        """
        out = []
        for df in data_list:
            if df.empty or "PANEL" not in df:
                out.append(df)
                continue
            pieces = []
            for panel, rows in df.groupby("PANEL", sort=False):
                scales = self.panel_scales(int(panel))
                for scale in (scales["x"], scales["y"]):
                    if scale is not None:
                        rows = scale.transform_df(rows)
                pieces.append(rows)
            out.append(pd.concat(pieces).loc[df.index])
        return out

    def reset_scales(self) -> None:
        """Forget pre-stat training so position scales can learn post-stat extents."""
        for scale in (*self.panel_scales_x, *self.panel_scales_y):
            scale.reset_for_retrain()
        for scale in self.scales.position():
            scale.reset_for_retrain()

    def setup_panel_params(self) -> list[PanelParams]:
        self.panel_params = []
        for panel in self.layout["PANEL"]:
            scales = self.panel_scales(int(panel))
            self.panel_params.append(self.coord.setup_panel_params(scales["x"], scales["y"]))
        return self.panel_params

    def xlabel(self, default: Optional[str] = None) -> Optional[str]:
        scale = self.panel_scales_x[0] if self.panel_scales_x else None
        return scale.title(default) if scale is not None else default

    def ylabel(self, default: Optional[str] = None) -> Optional[str]:
        scale = self.panel_scales_y[0] if self.panel_scales_y else None
        return scale.title(default) if scale is not None else default

    # -- drawing --

    def render(self, panels: Sequence[Grob], theme, xlab: Optional[str] = None, ylab: Optional[str] = None) -> GridTable:
        """Facet the composed panels into the plot table."""
        if not self.panel_params:
            self.setup_panel_params()
        return self.facet.draw_panels(panels, self, theme, xlab=xlab, ylab=ylab)
