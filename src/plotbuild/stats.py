"""Statistics: per-layer data-to-data transformations.

A Stat runs per PANEL and, inside each panel, per ``group``. Columns that are
constant within a group (colour, PANEL, group...) are carried over to the
group's output rows. A group the stat cannot handle raises ``StatSkipGroup``
from ``compute_group``; that group's rows are dropped and a
``StatComputationWarning`` is returned instead of failing the build.

Stat objects are never mutated by a build; per-build values live in the
``params`` dict returned by ``setup_params``.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

import numpy as np
import pandas as pd

from plotbuild.aes import after_stat
from plotbuild.errors import MissingAestheticError, StatComputationWarning, StatSkipGroup
from plotbuild.utils.logging import get_logger

logger = get_logger(__name__)


class Stat:
    """Base class: identity behaviour plus the per-panel/per-group driver."""

    required_aes: tuple[str, ...] = ()
    default_aes: Mapping[str, Any] = {}
    default_params: Mapping[str, Any] = {}
    # Columns the stat consumes; they are not carried over to the output.
    dropped_aes: tuple[str, ...] = ()

    def __init__(self, **params: Any) -> None:
        unknown = set(params) - set(self.default_params)
        if unknown:
            raise TypeError(f"{type(self).__name__} got unknown parameters {sorted(unknown)}")
        self.params = {**self.default_params, **params}

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.params})"

    @property
    def name(self) -> str:
        return type(self).__name__.removeprefix("Stat").lower() or "stat"

    def setup_params(self, data: pd.DataFrame) -> dict:
        return dict(self.params)

    def check_required_aes(self, data: pd.DataFrame) -> None:
        missing = [a for a in self.required_aes if a not in data.columns]
        if missing:
            raise MissingAestheticError(
                f"stat_{self.name} requires the following missing aesthetics: {', '.join(missing)}"
            )

    def compute_layer(
        self,
        data: pd.DataFrame,
        panel_scales: Mapping[int, Mapping[str, Any]],
        *,
        layer_index: Optional[int] = None,
    ) -> tuple[pd.DataFrame, list[StatComputationWarning]]:
        """Run the stat over every panel of ``data``; returns (new data, warnings)."""
        self.check_required_aes(data)
        params = self.setup_params(data)
        warnings: list[StatComputationWarning] = []
        pieces = []
        for panel, panel_df in data.groupby("PANEL", sort=True):
            scales = panel_scales.get(int(panel), {})
            out = self.compute_panel(panel_df, scales, params, warnings, layer_index=layer_index)
            if len(out):
                pieces.append(out)
        if not pieces:
            return data.iloc[0:0].copy(), warnings
        return pd.concat(pieces, ignore_index=True), warnings

    def compute_panel(
        self,
        data: pd.DataFrame,
        scales: Mapping[str, Any],
        params: dict,
        warnings: list,
        *,
        layer_index: Optional[int] = None,
    ) -> pd.DataFrame:
        pieces = []
        for group, group_df in data.groupby("group", sort=True):
            try:
                result = self.compute_group(group_df, scales, **params)
            except StatSkipGroup as e:
                panel = int(group_df["PANEL"].iloc[0])
                msg = f"stat_{self.name}: dropped group {group} in panel {panel}: {e}"
                logger.warning(msg)
                warnings.append(
                    StatComputationWarning(msg, layer_index=layer_index, panel=panel, group=int(group))
                )
                continue
            pieces.append(_carry_constant_columns(result, group_df, self.dropped_aes))
        if not pieces:
            return data.iloc[0:0].copy()
        return pd.concat(pieces, ignore_index=True)

    def compute_group(self, data: pd.DataFrame, scales: Mapping[str, Any], **params: Any) -> pd.DataFrame:
        raise NotImplementedError


def _carry_constant_columns(result: pd.DataFrame, group_df: pd.DataFrame, dropped: tuple) -> pd.DataFrame:
    """Copy columns that do not vary within the group onto the stat output."""
    result = result.reset_index(drop=True)
    extra = {}
    for col in group_df.columns:
        if col in result.columns or col in dropped:
            continue
        values = group_df[col]
        if values.nunique(dropna=False) <= 1:
            extra[col] = values.iloc[0]
    if extra:
        result = result.assign(**extra)
    return result


class StatIdentity(Stat):
    """Leaves the data as is."""

    def compute_layer(self, data, panel_scales, *, layer_index=None):
        return data.copy(), []


def _scale_limits(scales: Mapping[str, Any], aesthetic: str, values: np.ndarray) -> tuple[float, float]:
    scale = scales.get(aesthetic)
    if scale is not None and not scale.is_discrete:
        return tuple(float(v) for v in scale.get_limits())
    finite = values[np.isfinite(values)]
    if len(finite) == 0:
        return (0.0, 1.0)
    return float(finite.min()), float(finite.max())


def bin_edges(
    limits: tuple[float, float],
    bins: int = 30,
    binwidth: Optional[float] = None,
    boundary: Optional[float] = None,
    center: Optional[float] = None,
) -> np.ndarray:
    """Bin edges covering ``limits``.

    With ``bins`` and no binwidth/boundary, the first and last bin are
    centred on the limits, which always yields exactly ``bins`` bins.
    """
    lo, hi = limits
    if binwidth is None:
        if bins < 1:
            raise ValueError("bins must be >= 1")
        if hi == lo:
            binwidth = 0.1 if lo == 0 else abs(lo) * 0.1
        elif bins == 1:
            binwidth = hi - lo
            boundary = lo if boundary is None and center is None else boundary
        else:
            binwidth = (hi - lo) / (bins - 1)
        if boundary is None and center is None:
            boundary = binwidth / 2
            start = lo - boundary if bins > 1 else lo
            return start + binwidth * np.arange(bins + 1)
    if binwidth <= 0:
        raise ValueError("binwidth must be positive")
    if center is not None:
        boundary = center - binwidth / 2
    if boundary is None:
        boundary = binwidth / 2
    shift = np.floor((lo - boundary) / binwidth)
    origin = boundary + shift * binwidth
    max_x = hi + (1 - 1e-8) * binwidth
    edges = np.arange(origin, max_x + binwidth * 1e-9, binwidth)
    if len(edges) < 2:
        edges = np.array([origin, origin + binwidth])
    return edges


class StatBin(Stat):
    """Histogram binning of ``x`` into count/density summary rows."""

    required_aes = ("x",)
    default_aes = {"y": after_stat("count"), "weight": 1}
    default_params = {"bins": 30, "binwidth": None, "boundary": None, "center": None, "closed": "right"}
    dropped_aes = ("weight", "y")

    def setup_params(self, data: pd.DataFrame) -> dict:
        params = dict(self.params)
        if params["closed"] not in ("left", "right"):
            raise ValueError("closed must be 'left' or 'right'")
        return params

    def compute_group(self, data, scales, *, bins, binwidth, boundary, center, closed):
        x = data["x"].to_numpy(dtype=float)
        weight = data["weight"].to_numpy(dtype=float) if "weight" in data else np.ones(len(x))
        edges = bin_edges(_scale_limits(scales, "x", x), bins, binwidth, boundary, center)
        side = "left" if closed == "right" else "right"
        idx = np.searchsorted(edges, x, side=side) - 1
        idx = np.clip(idx, 0, len(edges) - 2)
        ok = np.isfinite(x)
        count = np.bincount(idx[ok], weights=weight[ok], minlength=len(edges) - 1)
        widths = np.diff(edges)
        total = count.sum()
        density = count / widths / total if total > 0 else np.zeros_like(count)
        return pd.DataFrame({
            "x": (edges[:-1] + edges[1:]) / 2,
            "count": count,
            "density": density,
            "ncount": count / count.max() if count.max() > 0 else count,
            "ndensity": density / density.max() if density.max() > 0 else density,
            "width": widths,
            "xmin": edges[:-1],
            "xmax": edges[1:],
        })


def resolution(values: np.ndarray, zero: bool = True) -> float:
    """Smallest non-zero gap between distinct values (1 for a single value)."""
    arr = np.unique(np.asarray(values, dtype=float)[np.isfinite(values)])
    if zero:
        arr = np.unique(np.append(arr, 0.0))
    if len(arr) < 2:
        return 1.0
    return float(np.min(np.diff(arr)))


class StatCount(Stat):
    """Number of rows (or summed weight) at each distinct ``x``."""

    required_aes = ("x",)
    default_aes = {"y": after_stat("count"), "weight": 1}
    default_params = {"width": None}
    dropped_aes = ("weight", "y")

    def compute_group(self, data, scales, *, width):
        weight = data["weight"] if "weight" in data else pd.Series(1.0, index=data.index)
        counts = weight.groupby(data["x"], sort=True).sum()
        x = counts.index.to_numpy(dtype=float)
        bar_width = width if width is not None else 0.9 * resolution(x, zero=False)
        return pd.DataFrame({
            "x": x,
            "count": counts.to_numpy(dtype=float),
            "prop": counts.to_numpy(dtype=float) / counts.sum(),
            "width": bar_width,
        })


class StatSmooth(Stat):
    """Smoothed conditional means: least squares polynomial ("lm") or local regression ("loess")."""

    required_aes = ("x", "y")
    default_params = {"method": "lm", "se": True, "n": 80, "level": 0.95, "span": 0.75, "degree": 1, "fullrange": False}

    def setup_params(self, data: pd.DataFrame) -> dict:
        params = dict(self.params)
        if params["method"] not in ("lm", "loess"):
            raise ValueError(f"Unknown smoothing method {params['method']!r}")
        return params

    def compute_group(self, data, scales, *, method, se, n, level, span, degree, fullrange):
        x = data["x"].to_numpy(dtype=float)
        y = data["y"].to_numpy(dtype=float)
        ok = np.isfinite(x) & np.isfinite(y)
        x, y = x[ok], y[ok]
        if len(np.unique(x)) < 2:
            raise StatSkipGroup(f"needs at least 2 distinct x values, got {len(np.unique(x))}")
        if fullrange:
            lo, hi = _scale_limits(scales, "x", x)
        else:
            lo, hi = float(x.min()), float(x.max())
        xseq = np.linspace(lo, hi, n)
        if method == "lm":
            return _fit_lm(x, y, xseq, degree=degree, se=se, level=level)
        if len(x) < 4:
            raise StatSkipGroup(f"loess needs at least 4 points, got {len(x)}")
        return _fit_loess(x, y, xseq, span=span)


def _fit_lm(x, y, xseq, *, degree: int, se: bool, level: float) -> pd.DataFrame:
    from scipy import stats as scipy_stats

    degree = min(degree, len(np.unique(x)) - 1)
    design = np.vander(x, degree + 1)
    coef, _, _, _ = np.linalg.lstsq(design, y, rcond=None)
    design_new = np.vander(xseq, degree + 1)
    fit = design_new @ coef
    out = pd.DataFrame({"x": xseq, "y": fit})
    dof = len(x) - (degree + 1)
    if not se or dof <= 0:
        return out
    resid = y - design @ coef
    sigma2 = float(resid @ resid) / dof
    xtx_inv = np.linalg.pinv(design.T @ design)
    se_fit = np.sqrt(np.einsum("ij,jk,ik->i", design_new, xtx_inv, design_new) * sigma2)
    t = scipy_stats.t.ppf((1 + level) / 2, dof)
    return out.assign(ymin=fit - t * se_fit, ymax=fit + t * se_fit, se=se_fit)


def _fit_loess(x, y, xseq, *, span: float) -> pd.DataFrame:
    """Local linear regression with tricube weights over the nearest ``span`` fraction."""
    k = max(int(np.ceil(span * len(x))), 3)
    fitted = np.empty(len(xseq))
    for i, x0 in enumerate(xseq):
        dist = np.abs(x - x0)
        h = np.partition(dist, k - 1)[k - 1]
        h = h if h > 0 else 1.0
        w = np.clip(1 - (dist / h) ** 3, 0, None) ** 3
        sw = np.sqrt(w)
        design = np.column_stack([np.ones_like(x), x - x0])
        coef, _, _, _ = np.linalg.lstsq(design * sw[:, None], y * sw, rcond=None)
        fitted[i] = coef[0]
    return pd.DataFrame({"x": xseq, "y": fitted})


SUMMARY_FUNCTIONS = ("mean_se", "mean_sd", "median_iqr", "median_mad")


class StatSummary(Stat):
    """Central value plus spread of ``y`` at each distinct ``x``.

    ``fun_data`` picks the pair: mean +/- standard error or standard deviation,
    median +/- half the interquartile range or the median absolute deviation.
    """

    required_aes = ("x", "y")
    default_params = {"fun_data": "mean_se"}

    def setup_params(self, data: pd.DataFrame) -> dict:
        params = dict(self.params)
        if params["fun_data"] not in SUMMARY_FUNCTIONS:
            raise ValueError(f"fun_data must be one of {SUMMARY_FUNCTIONS}, got {params['fun_data']!r}")
        return params

    def compute_group(self, data, scales, *, fun_data):
        rows = []
        for x_value, sub in data.groupby("x", sort=True):
            y = sub["y"].to_numpy(dtype=float)
            y = y[np.isfinite(y)]
            if len(y) == 0:
                continue
            rows.append({"x": float(x_value), **summarise(y, fun_data), "n": len(y)})
        if not rows:
            raise StatSkipGroup("no finite y values")
        return pd.DataFrame(rows)


def summarise(values: np.ndarray, fun_data: str = "mean_se") -> dict[str, float]:
    """y / ymin / ymax for one set of values."""
    if fun_data.startswith("mean"):
        center = float(np.mean(values))
        std = float(np.std(values, ddof=1)) if len(values) > 1 else 0.0
        spread = std if fun_data == "mean_sd" else std / np.sqrt(len(values))
    else:
        center = float(np.median(values))
        if fun_data == "median_iqr":
            q75, q25 = np.percentile(values, [75, 25])
            spread = float(q75 - q25) / 2
        else:
            spread = float(np.median(np.abs(values - center)))
    return {"y": center, "ymin": center - spread, "ymax": center + spread}
