"""Position adjustments: resolve overplotting by moving position aesthetics.

Adjustments run per PANEL on the stat output, after the geom has filled in
its extents (``xmin``/``xmax``/``ymin``/``ymax``), and only ever touch
position columns.
"""

from __future__ import annotations

from typing import Any, Mapping

import numpy as np
import pandas as pd

from plotbuild.aes import X_AESTHETICS, Y_AESTHETICS
from plotbuild.stats import resolution
from plotbuild.utils.logging import get_logger

logger = get_logger(__name__)


class Position:
    """Base class; the identity adjustment."""

    default_params: Mapping[str, Any] = {}

    def __init__(self, **params: Any) -> None:
        unknown = set(params) - set(self.default_params)
        if unknown:
            raise TypeError(f"{type(self).__name__} got unknown parameters {sorted(unknown)}")
        self.params = {**self.default_params, **params}

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.params})"

    def setup_params(self, data: pd.DataFrame) -> dict:
        return dict(self.params)

    def compute_layer(self, data: pd.DataFrame, panel_scales: Mapping[int, Mapping[str, Any]]) -> pd.DataFrame:
        if data.empty:
            return data.copy()
        params = self.setup_params(data)
        pieces = [
            self.compute_panel(panel_df, panel_scales.get(int(panel), {}), params)
            for panel, panel_df in data.groupby("PANEL", sort=True)
        ]
        return pd.concat(pieces).loc[data.index]

    def compute_panel(self, data: pd.DataFrame, scales: Mapping[str, Any], params: dict) -> pd.DataFrame:
        return data.copy()


class PositionIdentity(Position):
    """Don't adjust."""

    def compute_layer(self, data, panel_scales):
        return data.copy()


def _shift(data: pd.DataFrame, columns: frozenset, amount: np.ndarray) -> dict:
    return {c: data[c].to_numpy(dtype=float) + amount for c in data.columns if c in columns}


class PositionJitter(Position):
    """Random uniform noise on x and y. Pass ``seed`` for reproducible output.

    The default jitter is 40% of the data resolution in each direction, so
    points stay inside their discrete category.
    """

    default_params = {"width": None, "height": None, "seed": None}

    def setup_params(self, data: pd.DataFrame) -> dict:
        params = dict(self.params)
        if params["width"] is None:
            params["width"] = 0.4 * resolution(data["x"].to_numpy(dtype=float), zero=False) if "x" in data else 0.0
        if params["height"] is None:
            params["height"] = 0.4 * resolution(data["y"].to_numpy(dtype=float), zero=False) if "y" in data else 0.0
        # One generator per layer call: panels draw from it in PANEL order.
        params["rng"] = np.random.default_rng(params.pop("seed"))
        return params

    def compute_panel(self, data, scales, params):
        rng: np.random.Generator = params["rng"]
        n = len(data)
        jitter_x = rng.uniform(-params["width"], params["width"], size=n)
        jitter_y = rng.uniform(-params["height"], params["height"], size=n)
        updates = {}
        if params["width"] > 0:
            updates.update(_shift(data, X_AESTHETICS, jitter_x))
        if params["height"] > 0:
            updates.update(_shift(data, Y_AESTHETICS, jitter_y))
        return data.assign(**updates)


class PositionDodge(Position):
    """Place groups that share an x position side by side.

    Every x position is split into as many slots as the most crowded position
    in the panel has groups, so bars keep equal widths.
    """

    default_params = {"width": None}

    def compute_panel(self, data, scales, params):
        if "x" not in data:
            logger.warning("position_dodge requires an x aesthetic; leaving data unchanged")
            return data.copy()
        x = data["x"].to_numpy(dtype=float)
        if "xmin" in data and "xmax" in data:
            xmin = data["xmin"].to_numpy(dtype=float)
            xmax = data["xmax"].to_numpy(dtype=float)
        else:
            width = params["width"] if params["width"] is not None else 0.9 * resolution(x, zero=False)
            xmin, xmax = x - width / 2, x + width / 2
        if params["width"] is not None:
            d_width = float(params["width"])
        else:
            d_width = float(np.nanmax(xmax - xmin)) if len(x) else 0.0

        slot = np.zeros(len(data))
        n = 1
        for _, idx in data.groupby(x, sort=False).indices.items():
            groups = sorted(data["group"].iloc[idx].unique())
            n = max(n, len(groups))
            rank = {g: i for i, g in enumerate(groups)}
            slot[idx] = [rank[g] for g in data["group"].iloc[idx]]

        new_width = d_width / n
        new_xmin = x - d_width / 2 + slot * new_width
        updates = {"x": new_xmin + new_width / 2}
        if "xmin" in data:
            updates["xmin"] = new_xmin
        if "xmax" in data:
            updates["xmax"] = new_xmin + new_width
        return data.assign(**updates)


class PositionStack(Position):
    """Stack overlapping intervals on top of each other along y.

    Positive and negative values stack separately, away from zero. With
    ``fill=True`` each stack is normalised to a height of 1.
    """

    default_params = {"vjust": 1.0, "reverse": False, "fill": False}

    def compute_panel(self, data, scales, params):
        if "ymax" in data:
            height = data["ymax"].to_numpy(dtype=float) - data.get("ymin", 0)
            height = np.asarray(height, dtype=float)
        elif "y" in data:
            height = data["y"].to_numpy(dtype=float)
        else:
            logger.warning("position_stack requires y or ymax; leaving data unchanged")
            return data.copy()

        key = data["xmin"].to_numpy(dtype=float) if "xmin" in data else data["x"].to_numpy(dtype=float)
        ymin = np.zeros(len(data))
        ymax = np.zeros(len(data))
        for _, idx in data.groupby(key, sort=False).indices.items():
            order = sorted(idx, key=lambda i: data["group"].iloc[i], reverse=not params["reverse"])
            pos_total = neg_total = 0.0
            for i in order:
                h = height[i]
                if not np.isfinite(h):
                    ymin[i] = ymax[i] = np.nan
                    continue
                if h >= 0:
                    ymin[i], ymax[i] = pos_total, pos_total + h
                    pos_total += h
                else:
                    ymin[i], ymax[i] = neg_total + h, neg_total
                    neg_total += h
            if params["fill"]:
                total = pos_total if pos_total > 0 else 1.0
                ymin[idx] = ymin[idx] / total
                ymax[idx] = ymax[idx] / total
        y = ymin + params["vjust"] * (ymax - ymin)
        return data.assign(ymin=ymin, ymax=ymax, y=y)


class PositionFill(PositionStack):
    """Stack and normalise each stack to [0, 1]."""

    default_params = {"vjust": 1.0, "reverse": False, "fill": True}

