"""Geometries: finalise drawing-ready rows and turn them into grobs.

A Geom takes part in three pipeline steps:

1. ``setup_data``   (before position adjustment) derive extents such as
                    xmin/xmax/ymin/ymax that positions work on,
2. ``use_defaults`` (geometry finalisation) fill unmapped aesthetics with
                    the geom defaults and layer constants, check required
                    aesthetics, drop unusable rows, restructure,
3. ``draw_panel``   (assembly) rows of one panel -> list of grobs, using the
                    coord to place them in npc.

``draw_key`` draws the glyph used for this geom in legends.
"""

from __future__ import annotations

from typing import Any, Mapping, Sequence

import numpy as np
import pandas as pd

from plotbuild.errors import MissingAestheticError
from plotbuild.grid import (
    Grob,
    NullGrob,
    PointsGrob,
    PolygonGrob,
    PolylineGrob,
    RectGrob,
    SegmentsGrob,
    TextGrob,
)
from plotbuild.positions import Position, PositionIdentity, PositionStack
from plotbuild.stats import Stat, StatBin, StatCount, StatIdentity, StatSmooth, resolution
from plotbuild.utils.logging import get_logger

logger = get_logger(__name__)

# Point size unit: 1 size unit = this many points of diameter.
SIZE_PT = 2.845276


class Geom:
    """Base class. Subclasses set the class attributes and ``draw_panel``."""

    required_aes: tuple[str, ...] = ()
    # Aesthetics whose missing values make a row undrawable (besides required ones).
    non_missing_aes: tuple[str, ...] = ()
    default_aes: Mapping[str, Any] = {}
    default_params: Mapping[str, Any] = {}
    default_stat: type[Stat] = StatIdentity
    default_position: type[Position] = PositionIdentity

    def __init__(self, **params: Any) -> None:
        unknown = set(params) - set(self.default_params)
        if unknown:
            raise TypeError(f"{type(self).__name__} got unknown parameters {sorted(unknown)}")
        self.params = {**self.default_params, **params}

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.params})"

    @property
    def name(self) -> str:
        return type(self).__name__.removeprefix("Geom").lower() or "geom"

    @property
    def aesthetics(self) -> set[str]:
        return set(self.required_aes) | set(self.default_aes) | {"group"}

    # -- build --

    def setup_data(self, data: pd.DataFrame) -> pd.DataFrame:
        return data

    def use_defaults(self, data: pd.DataFrame, constants: Mapping[str, Any]) -> pd.DataFrame:
        """Fill missing aesthetics from the defaults, then apply layer constants."""
        fills = {aes: value for aes, value in self.default_aes.items() if aes not in data.columns}
        fills.update(constants)
        if fills:
            data = data.assign(**{k: _broadcast(v, len(data)) for k, v in fills.items()})
        self._check_required(data, self.required_aes)
        return data

    def _check_required(self, data: pd.DataFrame, aesthetics: Sequence[str]) -> None:
        missing = [a for a in aesthetics if a not in data.columns]
        if missing:
            raise MissingAestheticError(
                f"geom_{self.name} requires the following missing aesthetics: {', '.join(missing)}"
            )

    def handle_na(self, data: pd.DataFrame) -> pd.DataFrame:
        """Drop rows missing any required or non-missing aesthetic."""
        cols = [c for c in (*self.required_aes, *self.non_missing_aes) if c in data.columns]
        if not cols or data.empty:
            return data
        keep = data[cols].notna().all(axis=1)
        dropped = int((~keep).sum())
        if dropped:
            logger.warning(f"geom_{self.name}: removed {dropped} rows containing missing values")
        return data[keep].reset_index(drop=True)

    def finalize(self, data: pd.DataFrame) -> pd.DataFrame:
        """Geom-specific restructuring after defaults are filled."""
        return data

    # -- assembly --

    def draw_panel(self, data: pd.DataFrame, panel_params: dict, coord) -> list[Grob]:
        raise NotImplementedError

    def draw_key(self, key: Mapping[str, Any]) -> Grob:
        return draw_key_point(key)


def _broadcast(value: Any, n: int) -> Any:
    if np.ndim(value) == 0:
        return [value] * n
    return value


def _gp(data: pd.DataFrame, *names: str) -> dict:
    return {n: data[n].to_numpy() for n in names if n in data.columns}


def _first(data: pd.DataFrame, name: str, default: Any = None) -> Any:
    return data[name].iloc[0] if name in data.columns and len(data) else default


def _with_empty_extents(data: pd.DataFrame) -> pd.DataFrame:
    # No rows left (e.g. all censored): keep the frame well-formed for finalization.
    missing = [c for c in ("x", "y", "xmin", "xmax", "ymin", "ymax") if c not in data.columns]
    out = data.assign(**{c: pd.Series(dtype=float) for c in missing})
    return out.drop(columns=["width"], errors="ignore")


# -----------------------------------------------------------------------------
# Legend keys (npc of the key cell)
# -----------------------------------------------------------------------------


def draw_key_point(key: Mapping[str, Any]) -> Grob:
    return PointsGrob(
        name="key-point",
        x=np.array([0.5]),
        y=np.array([0.5]),
        gp={
            "color": key.get("color", "black"),
            "fill": key.get("fill"),
            "size": key.get("size", 1.5),
            "shape": key.get("shape", "circle"),
            "alpha": key.get("alpha", 1.0),
        },
    )


def draw_key_path(key: Mapping[str, Any]) -> Grob:
    return SegmentsGrob(
        name="key-path",
        x0=np.array([0.1]), y0=np.array([0.5]), x1=np.array([0.9]), y1=np.array([0.5]),
        gp={
            "color": key.get("color", "black"),
            "linewidth": key.get("linewidth", 0.5),
            "linetype": key.get("linetype", "solid"),
            "alpha": key.get("alpha", 1.0),
        },
    )


def draw_key_rect(key: Mapping[str, Any]) -> Grob:
    return RectGrob(
        name="key-rect",
        gp={
            "fill": key.get("fill", key.get("color", "grey35")),
            "color": key.get("color"),
            "alpha": key.get("alpha", 1.0),
        },
    )


def draw_key_text(key: Mapping[str, Any]) -> Grob:
    return TextGrob(
        name="key-text",
        label=["a"],
        gp={"color": key.get("color", "black"), "fontsize": 11.0, "alpha": key.get("alpha", 1.0)},
    )


# -----------------------------------------------------------------------------
# Geoms
# -----------------------------------------------------------------------------


class GeomPoint(Geom):
    required_aes = ("x", "y")
    non_missing_aes = ("size", "shape", "color")
    default_aes = {"shape": "circle", "color": "black", "size": 1.5, "fill": None, "alpha": 1.0, "stroke": 0.5}

    def draw_panel(self, data, panel_params, coord):
        coords = coord.transform(data, panel_params)
        gp = _gp(coords, "color", "fill", "size", "shape", "alpha", "stroke")
        gp["size_pt"] = coords["size"].to_numpy(dtype=float) * SIZE_PT
        return [PointsGrob(
            name="geom_point",
            x=coords["x"].to_numpy(dtype=float),
            y=coords["y"].to_numpy(dtype=float),
            gp=gp,
        )]


class GeomPath(Geom):
    """Observations connected in data order, one path per group."""

    required_aes = ("x", "y")
    non_missing_aes = ("linewidth", "color", "linetype")
    default_aes = {"color": "black", "linewidth": 0.5, "linetype": "solid", "alpha": 1.0}

    def finalize(self, data):
        # A path needs two points: drop groups that have fewer.
        sizes = data.groupby(["PANEL", "group"])["x"].transform("size")
        short = sizes < 2
        if short.any():
            logger.warning(f"geom_{self.name}: each group consists of only one observation; dropped {int(short.sum())} rows")
        return data[~short].reset_index(drop=True)

    def draw_panel(self, data, panel_params, coord):
        if data.empty:
            return [NullGrob(name=f"geom_{self.name}")]
        coords = coord.transform(data, panel_params)
        styled = ["color", "linewidth", "linetype", "alpha"]
        constant = all(
            coords.groupby("group")[c].nunique(dropna=False).max() <= 1
            for c in styled if c in coords
        )
        if constant:
            first = coords.groupby("group", sort=True).head(1)
            return [PolylineGrob(
                name=f"geom_{self.name}",
                x=coords["x"].to_numpy(dtype=float),
                y=coords["y"].to_numpy(dtype=float),
                id=coords["group"].to_numpy(),
                gp=_gp(first, *styled),
            )]
        # Aesthetics vary along the path: draw it as consecutive segments.
        pieces = []
        for _, g in coords.groupby("group", sort=True):
            if len(g) < 2:
                continue
            head = g.iloc[:-1]
            pieces.append(SegmentsGrob(
                name=f"geom_{self.name}",
                x0=head["x"].to_numpy(dtype=float),
                y0=head["y"].to_numpy(dtype=float),
                x1=g["x"].to_numpy(dtype=float)[1:],
                y1=g["y"].to_numpy(dtype=float)[1:],
                gp=_gp(head, *styled),
            ))
        return pieces

    def draw_key(self, key):
        return draw_key_path(key)


class GeomLine(GeomPath):
    """Like GeomPath but connects observations in order of x."""

    def finalize(self, data):
        data = data.sort_values(["PANEL", "group", "x"], kind="mergesort").reset_index(drop=True)
        return super().finalize(data)


class GeomRect(Geom):
    required_aes = ("xmin", "xmax", "ymin", "ymax")
    default_aes = {"color": None, "fill": "#595959", "linewidth": 0.5, "linetype": "solid", "alpha": 1.0}

    def draw_panel(self, data, panel_params, coord):
        coords = coord.transform(data, panel_params)
        return [RectGrob(
            name=f"geom_{self.name}",
            xmin=coords["xmin"].to_numpy(dtype=float),
            xmax=coords["xmax"].to_numpy(dtype=float),
            ymin=coords["ymin"].to_numpy(dtype=float),
            ymax=coords["ymax"].to_numpy(dtype=float),
            gp=_gp(coords, "color", "fill", "linewidth", "linetype", "alpha"),
        )]

    def draw_key(self, key):
        return draw_key_rect(key)


class GeomBar(GeomRect):
    """Bars from y = 0 to y, centred on x. Counts rows by default."""

    required_aes = ("x", "y")
    default_params = {"width": None}
    default_stat = StatCount
    default_position = PositionStack

    def setup_data(self, data):
        if data.empty:
            return _with_empty_extents(data)
        self._check_required(data, ("x", "y"))
        if "width" in data.columns:
            width = data["width"].to_numpy(dtype=float)
        elif self.params["width"] is not None:
            width = np.full(len(data), float(self.params["width"]))
        else:
            width = np.full(len(data), 0.9 * resolution(data["x"].to_numpy(dtype=float), zero=False))
        x = data["x"].to_numpy(dtype=float)
        y = data["y"].to_numpy(dtype=float)
        return data.assign(
            ymin=np.minimum(y, 0.0),
            ymax=np.maximum(y, 0.0),
            xmin=x - width / 2,
            xmax=x + width / 2,
        ).drop(columns=["width"], errors="ignore")

    def use_defaults(self, data, constants):
        data = super().use_defaults(data, constants)
        missing = [a for a in ("xmin", "xmax", "ymin", "ymax") if a not in data.columns]
        if missing:
            raise MissingAestheticError(
                f"geom_{self.name} could not derive {', '.join(missing)} from x/y"
            )
        return data


class GeomCol(GeomBar):
    """Bars whose heights are the data values."""

    default_stat = StatIdentity


class GeomHistogram(GeomBar):
    """Bars over binned x."""

    default_stat = StatBin

    def setup_data(self, data):
        if data.empty:
            return _with_empty_extents(data)
        if {"xmin", "xmax"} <= set(data.columns):
            self._check_required(data, ("y",))
            y = data["y"].to_numpy(dtype=float)
            return data.assign(ymin=np.minimum(y, 0.0), ymax=np.maximum(y, 0.0)).drop(columns=["width"], errors="ignore")
        return super().setup_data(data)


class GeomRibbon(Geom):
    """Area between ymin and ymax along x, one polygon per group."""

    required_aes = ("x", "ymin", "ymax")
    default_aes = {"color": None, "fill": "#333333", "linewidth": 0.5, "linetype": "solid", "alpha": 0.4}

    def finalize(self, data):
        return data.sort_values(["PANEL", "group", "x"], kind="mergesort").reset_index(drop=True)

    def draw_panel(self, data, panel_params, coord):
        if data.empty:
            return [NullGrob(name=f"geom_{self.name}")]
        coords = coord.transform(data, panel_params)
        xs, ys, ids = [], [], []
        for group, g in coords.groupby("group", sort=True):
            x = g["x"].to_numpy(dtype=float)
            xs.append(np.concatenate([x, x[::-1]]))
            ys.append(np.concatenate([g["ymax"].to_numpy(dtype=float), g["ymin"].to_numpy(dtype=float)[::-1]]))
            ids.append(np.full(2 * len(g), group))
        first = coords.groupby("group", sort=True).head(1)
        return [PolygonGrob(
            name=f"geom_{self.name}",
            x=np.concatenate(xs),
            y=np.concatenate(ys),
            id=np.concatenate(ids),
            gp=_gp(first, "color", "fill", "linewidth", "linetype", "alpha"),
        )]

    def draw_key(self, key):
        return draw_key_rect(key)


class GeomSmooth(Geom):
    """Fitted line with an optional confidence ribbon."""

    required_aes = ("x", "y")
    default_aes = {"color": "#3366FF", "fill": "#999999", "linewidth": 1.0, "linetype": "solid", "alpha": 0.4}
    default_params = {"se": True}
    default_stat = StatSmooth

    def finalize(self, data):
        return data.sort_values(["PANEL", "group", "x"], kind="mergesort").reset_index(drop=True)

    def draw_panel(self, data, panel_params, coord):
        grobs: list[Grob] = []
        if self.params["se"] and {"ymin", "ymax"} <= set(data.columns):
            ribbon = data.assign(color=None)
            grobs.extend(GeomRibbon().draw_panel(ribbon, panel_params, coord))
        line = data.assign(alpha=1.0)
        grobs.extend(GeomLine().draw_panel(line, panel_params, coord))
        return grobs

    def draw_key(self, key):
        return draw_key_path(key)


class GeomText(Geom):
    required_aes = ("x", "y", "label")
    default_aes = {"color": "black", "size": 3.88, "angle": 0.0, "hjust": 0.5, "vjust": 0.5, "alpha": 1.0}

    def draw_panel(self, data, panel_params, coord):
        coords = coord.transform(data, panel_params)
        gp = _gp(coords, "color", "alpha")
        gp["fontsize"] = coords["size"].to_numpy(dtype=float) * SIZE_PT
        return [TextGrob(
            name="geom_text",
            label=[str(v) for v in coords["label"]],
            x=coords["x"].to_numpy(dtype=float),
            y=coords["y"].to_numpy(dtype=float),
            hjust=float(_first(coords, "hjust", 0.5)),
            vjust=float(_first(coords, "vjust", 0.5)),
            angle=float(_first(coords, "angle", 0.0)),
            gp=gp,
        )]

    def draw_key(self, key):
        return draw_key_text(key)


class GeomHline(Geom):
    """Horizontal reference lines spanning the panel."""

    required_aes = ("yintercept",)
    default_aes = {"color": "black", "linewidth": 0.5, "linetype": "solid", "alpha": 1.0}

    def draw_panel(self, data, panel_params, coord):
        coords = coord.transform(data, panel_params)
        y = coords["yintercept"].to_numpy(dtype=float)
        return [SegmentsGrob(
            name="geom_hline",
            x0=np.zeros(len(y)), y0=y, x1=np.ones(len(y)), y1=y,
            gp=_gp(coords, "color", "linewidth", "linetype", "alpha"),
        )]

    def draw_key(self, key):
        return draw_key_path(key)


class GeomVline(Geom):
    """Vertical reference lines spanning the panel."""

    required_aes = ("xintercept",)
    default_aes = {"color": "black", "linewidth": 0.5, "linetype": "solid", "alpha": 1.0}

    def draw_panel(self, data, panel_params, coord):
        coords = coord.transform(data, panel_params)
        x = coords["xintercept"].to_numpy(dtype=float)
        return [SegmentsGrob(
            name="geom_vline",
            x0=x, y0=np.zeros(len(x)), x1=x, y1=np.ones(len(x)),
            gp=_gp(coords, "color", "linewidth", "linetype", "alpha"),
        )]

    def draw_key(self, key):
        return draw_key_path(key)


class GeomErrorbar(Geom):
    """Vertical intervals from ymin to ymax with horizontal caps."""

    required_aes = ("x", "ymin", "ymax")
    default_aes = {"color": "black", "linewidth": 0.5, "linetype": "solid", "alpha": 1.0}
    default_params = {"width": 0.5}

    def setup_data(self, data):
        if data.empty or "x" not in data:
            return data
        width = data["width"].to_numpy(dtype=float) if "width" in data else float(self.params["width"]) * resolution(
            data["x"].to_numpy(dtype=float), zero=False
        )
        x = data["x"].to_numpy(dtype=float)
        return data.assign(xmin=x - width / 2, xmax=x + width / 2).drop(columns=["width"], errors="ignore")

    def draw_panel(self, data, panel_params, coord):
        coords = coord.transform(data, panel_params)
        x = coords["x"].to_numpy(dtype=float)
        xmin = coords["xmin"].to_numpy(dtype=float) if "xmin" in coords else x
        xmax = coords["xmax"].to_numpy(dtype=float) if "xmax" in coords else x
        ymin = coords["ymin"].to_numpy(dtype=float)
        ymax = coords["ymax"].to_numpy(dtype=float)
        gp = _gp(coords, "color", "linewidth", "linetype", "alpha")
        tiled = {k: np.tile(v, 3) for k, v in gp.items()}
        return [SegmentsGrob(
            name="geom_errorbar",
            x0=np.concatenate([x, xmin, xmin]),
            y0=np.concatenate([ymin, ymax, ymin]),
            x1=np.concatenate([x, xmax, xmax]),
            y1=np.concatenate([ymax, ymax, ymin]),
            gp=tiled,
        )]

    def draw_key(self, key):
        return draw_key_path(key)

