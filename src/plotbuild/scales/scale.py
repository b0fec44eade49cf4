"""Scale interface and its continuous, discrete and identity variants.

A scale owns one aesthetic family (``x`` covers x, xmin, xmax, xend...). Its
lifecycle inside one build is:

1. ``train``      observe values from every layer,
2. ``transform``  move values into scale space (log, sqrt, discrete -> 1..n),
3. ``apply_oob``  resolve values outside explicit limits,
4. ``map``        turn scale-space values into visual values (colour, size...),
5. guides read ``get_breaks`` / ``get_labels`` / ``inverse`` for their keys.

Continuous ranges are kept in transformed space; explicit limits are given in
data space and transformed on use.
"""

from __future__ import annotations

import copy
from typing import Any, Callable, Optional, Sequence, Union

import numpy as np
import pandas as pd

from plotbuild.aes import aes_to_scale, standardise_aes_name
from plotbuild.errors import ScaleConflictError
from plotbuild.scales.bounds import (
    expand_range,
    format_breaks,
    get_oob,
    is_numeric_series,
    rescale,
)
from plotbuild.scales.palettes import (
    NA_COLOR,
    GradientPalette,
    HuePalette,
    ListPalette,
    RangePalette,
    SequencePalette,
    linetype_palette,
    manual_values,
    shape_palette,
)
from plotbuild.scales.transforms import Transform, get_transform

COLOR_AESTHETICS = ("color", "fill")

# Default expansion (multiplicative, additive) for position scales.
CONTINUOUS_EXPAND = (0.05, 0.0)
DISCRETE_EXPAND = (0.0, 0.6)


class Scale:
    """Base class. Subclasses implement train/transform/map and breaks."""

    is_discrete = False

    def __init__(
        self,
        aesthetics: Union[str, Sequence[str]],
        *,
        name: Optional[str] = None,
        breaks: Any = None,
        labels: Any = None,
        limits: Any = None,
        guide: Optional[str] = None,
        expand: Optional[tuple[float, float]] = None,
        na_value: Any = None,
        palette: Optional[Callable] = None,
    ) -> None:
        if isinstance(aesthetics, str):
            aesthetics = (aesthetics,)
        self.aesthetics = tuple(standardise_aes_name(a) for a in aesthetics)
        self.name = name
        self.breaks = breaks
        self.labels = labels
        self.limits = limits
        self.guide = guide
        self.expand = expand
        self.na_value = na_value
        self.palette = palette
        self.reset()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(aesthetics={self.aesthetics})"

    @property
    def aesthetic(self) -> str:
        return self.aesthetics[0]

    @property
    def is_position(self) -> bool:
        return self.aesthetic in ("x", "y")

    @property
    def guide_type(self) -> str:
        """Resolved guide: "axis", "legend", "colorbar" or "none"."""
        if self.guide is not None:
            return self.guide
        if self.is_position:
            return "axis"
        return "legend"

    def covers(self, column: str) -> bool:
        return aes_to_scale(column) in self.aesthetics

    def columns_in(self, df: pd.DataFrame) -> list[str]:
        return [c for c in df.columns if self.covers(c)]

    def clone(self) -> "Scale":
        """Fresh, untrained copy sharing configuration."""
        new = copy.copy(self)
        new.reset()
        return new

    def title(self, default: Optional[str] = None) -> Optional[str]:
        return self.name if self.name is not None else default

    # -- lifecycle, per column --

    def reset(self) -> None:
        raise NotImplementedError

    def reset_for_retrain(self) -> None:
        """Forget what was learned from pre-stat data before retraining on post-stat data."""
        self.reset()

    def train(self, values, *, transformed: bool = False) -> None:
        raise NotImplementedError

    def transform(self, values) -> Any:
        return values

    def apply_oob(self, values) -> Any:
        return values

    def map(self, values) -> Any:
        return values

    def inverse(self, values) -> Any:
        return values

    def dimension(self, expand: Optional[tuple[float, float]] = None) -> tuple[float, float]:
        raise NotImplementedError

    def get_limits(self) -> Any:
        raise NotImplementedError

    def get_breaks(self, limits=None) -> Any:
        raise NotImplementedError

    def get_labels(self, breaks=None) -> list[str]:
        raise NotImplementedError

    # -- lifecycle, per table --

    def train_df(self, df: pd.DataFrame, *, transformed: bool = False) -> None:
        for col in self.columns_in(df):
            self.train(df[col], transformed=transformed)

    def _apply_df(self, df: pd.DataFrame, fn: Callable) -> pd.DataFrame:
        cols = self.columns_in(df)
        if not cols:
            return df
        return df.assign(**{col: _as_series(fn(df[col]), df.index) for col in cols})

    def transform_df(self, df: pd.DataFrame) -> pd.DataFrame:
        return self._apply_df(df, self.transform)

    def oob_df(self, df: pd.DataFrame) -> pd.DataFrame:
        return self._apply_df(df, self.apply_oob)

    def map_df(self, df: pd.DataFrame) -> pd.DataFrame:
        return self._apply_df(df, self.map)


def _as_series(values, index) -> pd.Series:
    if isinstance(values, pd.Series):
        return values.set_axis(index)
    return pd.Series(values, index=index)


class ContinuousScale(Scale):
    """Numeric data, optionally transformed, mapped through a continuous palette."""

    def __init__(
        self,
        aesthetics: Union[str, Sequence[str]],
        *,
        trans: Union[str, Transform, None] = "identity",
        oob: Union[str, Callable, None] = "censor",
        **kwargs: Any,
    ) -> None:
        self.trans = get_transform(trans)
        self.oob = get_oob(oob)
        self.oob_name = oob if isinstance(oob, str) else getattr(oob, "__name__", "custom")
        super().__init__(aesthetics, **kwargs)
        if self.limits is not None and len(self.limits) != 2:
            raise ValueError(f"Continuous limits must be a (low, high) pair, got {self.limits!r}")

    @property
    def guide_type(self) -> str:
        if self.guide is None and self.aesthetic in COLOR_AESTHETICS:
            return "colorbar"
        return super().guide_type

    def reset(self) -> None:
        self._range: Optional[tuple[float, float]] = None

    @property
    def trained(self) -> bool:
        return self._range is not None

    def _check_numeric(self, series: pd.Series) -> None:
        if not is_numeric_series(series):
            raise ScaleConflictError(
                f"Discrete value supplied to continuous scale for {self.aesthetic!r} "
                f"(dtype {series.dtype})"
            )

    def train(self, values, *, transformed: bool = False) -> None:
        series = values if isinstance(values, pd.Series) else pd.Series(values)
        if series.isna().all():
            return
        self._check_numeric(series)
        arr = series.to_numpy(dtype=float)
        if not transformed:
            arr = self.trans.apply(arr)
        arr = arr[np.isfinite(arr)]
        if len(arr) == 0:
            return
        lo, hi = float(arr.min()), float(arr.max())
        if self._range is None:
            self._range = (lo, hi)
        else:
            self._range = (min(self._range[0], lo), max(self._range[1], hi))

    def transform(self, values):
        series = values if isinstance(values, pd.Series) else pd.Series(values)
        if series.isna().all():
            return series.astype(float)
        self._check_numeric(series)
        return self.trans.apply(series.to_numpy(dtype=float))

    def get_limits(self) -> tuple[float, float]:
        trained = self._range if self._range is not None else (0.0, 1.0)
        if self.limits is None:
            return trained
        lo, hi = self.limits
        tlo = trained[0] if lo is None else float(self.trans.apply([lo])[0])
        thi = trained[1] if hi is None else float(self.trans.apply([hi])[0])
        return (min(tlo, thi), max(tlo, thi))

    def apply_oob(self, values):
        arr = np.asarray(values, dtype=float)
        if self.limits is None:
            return arr
        return self.oob(arr, self.get_limits())

    def map(self, values):
        arr = np.asarray(values, dtype=float)
        if self.is_position:
            return arr
        palette = self.palette or RangePalette((0.0, 1.0))
        scaled = rescale(arr, from_=self.get_limits())
        if self.na_value is None:
            return palette(scaled)
        return palette(scaled, na_value=self.na_value)

    def inverse(self, values):
        arr = np.asarray(values, dtype=float)
        if not self.is_position and hasattr(self.palette, "inverse"):
            lo, hi = self.get_limits()
            arr = lo + self.palette.inverse(arr) * (hi - lo)
        return self.trans.invert(arr)

    def dimension(self, expand: Optional[tuple[float, float]] = None) -> tuple[float, float]:
        mult, add = expand or self.expand or CONTINUOUS_EXPAND
        return expand_range(self.get_limits(), mult, add)

    def get_breaks(self, limits: Optional[tuple[float, float]] = None) -> np.ndarray:
        """Break positions in transformed space that fall within ``limits``."""
        limits = limits or self.get_limits()
        lo, hi = min(limits), max(limits)
        domain = tuple(sorted(self.trans.invert(np.array([lo, hi]))))
        if self.breaks is None:
            raw = self.trans.breaks(domain)
        elif callable(self.breaks):
            raw = self.breaks(domain)
        else:
            raw = self.breaks
        tb = self.trans.apply(np.asarray(raw, dtype=float))
        tol = (hi - lo) * 1e-9
        keep = np.isfinite(tb) & (tb >= lo - tol) & (tb <= hi + tol)
        return tb[keep]

    def get_labels(self, breaks=None) -> list[str]:
        if breaks is None:
            breaks = self.get_breaks()
        breaks = np.asarray(breaks, dtype=float)
        domain = self.trans.invert(breaks)
        if self.labels is None:
            return format_breaks(domain)
        if callable(self.labels):
            return [str(lbl) for lbl in self.labels(domain)]
        labels = list(self.labels)
        if self.breaks is not None and not callable(self.breaks) and len(labels) == len(self.breaks):
            # Explicit breaks with parallel labels: look each kept break up.
            lookup = self.trans.apply(np.asarray(self.breaks, dtype=float))
            out = []
            for b in breaks:
                hits = np.flatnonzero(np.isclose(lookup, b))
                out.append(str(labels[hits[0]]) if len(hits) else "")
            return out
        return [str(lbl) for lbl in labels[: len(breaks)]]


class DiscreteScale(Scale):
    """Categorical data mapped onto a discrete palette (or integer positions)."""

    is_discrete = True

    def __init__(self, aesthetics: Union[str, Sequence[str]], *, values: Any = None, **kwargs: Any) -> None:
        self.values = values
        super().__init__(aesthetics, **kwargs)

    def reset(self) -> None:
        self._range: list = []
        self._ordered = False
        self._range_c: Optional[tuple[float, float]] = None

    def reset_for_retrain(self) -> None:
        # Levels survive; only the continuous extent (e.g. bar edges) is relearned.
        self._range_c = None

    def train(self, values, *, transformed: bool = False) -> None:
        series = values if isinstance(values, pd.Series) else pd.Series(values)
        if series.isna().all():
            return
        if is_numeric_series(series):
            if transformed and self.is_position:
                arr = series.to_numpy(dtype=float)
                arr = arr[np.isfinite(arr)]
                if len(arr):
                    lo, hi = float(arr.min()), float(arr.max())
                    if self._range_c is None:
                        self._range_c = (lo, hi)
                    else:
                        self._range_c = (min(self._range_c[0], lo), max(self._range_c[1], hi))
                return
            raise ScaleConflictError(
                f"Continuous value supplied to discrete scale for {self.aesthetic!r} "
                f"(dtype {series.dtype})"
            )
        if isinstance(series.dtype, pd.CategoricalDtype):
            observed = set(series.dropna())
            levels = [c for c in series.cat.categories if c in observed]
            self._range = self._range + [lvl for lvl in levels if lvl not in self._range]
            self._ordered = True
            return
        levels = list(pd.unique(series.dropna()))
        combined = self._range + [lvl for lvl in levels if lvl not in self._range]
        self._range = combined if self._ordered else sorted(combined, key=_level_key)

    def get_limits(self) -> list:
        if self.limits is not None:
            return list(self.limits)
        return list(self._range)

    def _positions(self) -> dict:
        return {lvl: float(i + 1) for i, lvl in enumerate(self.get_limits())}

    def transform(self, values):
        if not self.is_position:
            return values
        series = values if isinstance(values, pd.Series) else pd.Series(values)
        if is_numeric_series(series):
            return series.astype(float)
        return series.map(self._positions()).astype(float)

    def apply_oob(self, values):
        if self.limits is None:
            return values
        series = values if isinstance(values, pd.Series) else pd.Series(values)
        if is_numeric_series(series):
            return series
        return series.where(series.isin(self.get_limits()))

    def _palette_lookup(self) -> dict:
        levels = self.get_limits()
        if self.values is not None:
            return manual_values(self.values, levels)
        palette = self.palette or HuePalette()
        return dict(zip(levels, palette(len(levels))))

    def map(self, values):
        series = values if isinstance(values, pd.Series) else pd.Series(values)
        if self.is_position:
            return series.astype(float)
        lookup = self._palette_lookup()
        mapped = series.map(lookup)
        na_value = self.na_value
        if na_value is None and self.aesthetic in COLOR_AESTHETICS:
            na_value = NA_COLOR
        if na_value is not None:
            mapped = mapped.where(mapped.notna(), na_value)
        return mapped

    def inverse(self, values):
        levels = self.get_limits()
        out = []
        for v in np.asarray(values, dtype=float):
            idx = int(round(v)) - 1
            out.append(levels[idx] if 0 <= idx < len(levels) else None)
        return out

    def dimension(self, expand: Optional[tuple[float, float]] = None) -> tuple[float, float]:
        n = len(self.get_limits())
        lows, highs = [], []
        if n:
            lows.append(1.0)
            highs.append(float(n))
        if self._range_c is not None:
            lows.append(self._range_c[0])
            highs.append(self._range_c[1])
        if not lows:
            return (0.0, 1.0)
        mult, add = expand or self.expand or DISCRETE_EXPAND
        return expand_range((min(lows), max(highs)), mult, add)

    def get_breaks(self, limits=None) -> list:
        if self.breaks is None:
            return self.get_limits()
        if callable(self.breaks):
            return list(self.breaks(self.get_limits()))
        return [b for b in self.breaks if b in self.get_limits()]

    def break_positions(self, breaks: Sequence) -> np.ndarray:
        positions = self._positions()
        return np.array([positions.get(b, np.nan) for b in breaks], dtype=float)

    def get_labels(self, breaks=None) -> list[str]:
        if breaks is None:
            breaks = self.get_breaks()
        if self.labels is None:
            return [str(b) for b in breaks]
        if callable(self.labels):
            return [str(lbl) for lbl in self.labels(list(breaks))]
        if isinstance(self.labels, dict):
            return [str(self.labels.get(b, b)) for b in breaks]
        labels = list(self.labels)
        levels = self.get_limits()
        return [str(labels[levels.index(b)]) if levels.index(b) < len(labels) else str(b) for b in breaks]


def _level_key(level: Any) -> tuple:
    return (type(level).__name__, level) if isinstance(level, (int, float, bool)) else ("~", str(level))


class IdentityScale(Scale):
    """Data values are already visual values; no training, no guide."""

    def reset(self) -> None:
        self._range: list = []

    @property
    def guide_type(self) -> str:
        return self.guide or "none"

    def train(self, values, *, transformed: bool = False) -> None:
        return None

    def get_limits(self) -> list:
        return list(self._range)

    def dimension(self, expand=None) -> tuple[float, float]:
        return (0.0, 1.0)

    def get_breaks(self, limits=None) -> list:
        return []

    def get_labels(self, breaks=None) -> list[str]:
        return []


# -----------------------------------------------------------------------------
# Constructors
# -----------------------------------------------------------------------------


def scale_x_continuous(**kwargs: Any) -> ContinuousScale:
    return ContinuousScale("x", **kwargs)


def scale_y_continuous(**kwargs: Any) -> ContinuousScale:
    return ContinuousScale("y", **kwargs)


def scale_x_log10(**kwargs: Any) -> ContinuousScale:
    return ContinuousScale("x", trans="log10", **kwargs)


def scale_y_log10(**kwargs: Any) -> ContinuousScale:
    return ContinuousScale("y", trans="log10", **kwargs)


def scale_x_sqrt(**kwargs: Any) -> ContinuousScale:
    return ContinuousScale("x", trans="sqrt", **kwargs)


def scale_y_sqrt(**kwargs: Any) -> ContinuousScale:
    return ContinuousScale("y", trans="sqrt", **kwargs)


def scale_x_reverse(**kwargs: Any) -> ContinuousScale:
    return ContinuousScale("x", trans="reverse", **kwargs)


def scale_y_reverse(**kwargs: Any) -> ContinuousScale:
    return ContinuousScale("y", trans="reverse", **kwargs)


def scale_x_discrete(**kwargs: Any) -> DiscreteScale:
    return DiscreteScale("x", **kwargs)


def scale_y_discrete(**kwargs: Any) -> DiscreteScale:
    return DiscreteScale("y", **kwargs)


def scale_color_gradient(low: str = "#132B43", high: str = "#56B1F7", aesthetic: str = "color", **kwargs: Any) -> ContinuousScale:
    kwargs.setdefault("na_value", NA_COLOR)
    return ContinuousScale(aesthetic, palette=GradientPalette((low, high)), **kwargs)


def scale_color_continuous(colorscale: Union[str, Sequence[str]] = ("#132B43", "#56B1F7"), aesthetic: str = "color", **kwargs: Any) -> ContinuousScale:
    """Continuous colour scale over a Plotly colorscale name (e.g. "Viridis") or colour list."""
    kwargs.setdefault("na_value", NA_COLOR)
    return ContinuousScale(aesthetic, palette=GradientPalette(colorscale), **kwargs)


def scale_fill_continuous(colorscale: Union[str, Sequence[str]] = ("#132B43", "#56B1F7"), **kwargs: Any) -> ContinuousScale:
    return scale_color_continuous(colorscale, aesthetic="fill", **kwargs)


def scale_color_discrete(palette: Union[str, Sequence[str]] = "Plotly", aesthetic: str = "color", **kwargs: Any) -> DiscreteScale:
    """Discrete colour scale over a Plotly qualitative palette name (e.g. "Set2") or colour list."""
    return DiscreteScale(aesthetic, palette=HuePalette(palette), **kwargs)


def scale_fill_discrete(palette: Union[str, Sequence[str]] = "Plotly", **kwargs: Any) -> DiscreteScale:
    return scale_color_discrete(palette, aesthetic="fill", **kwargs)


def scale_color_manual(values: Any, aesthetic: str = "color", **kwargs: Any) -> DiscreteScale:
    return DiscreteScale(aesthetic, values=values, **kwargs)


def scale_fill_manual(values: Any, **kwargs: Any) -> DiscreteScale:
    return scale_color_manual(values, aesthetic="fill", **kwargs)


def scale_color_identity(aesthetic: str = "color", **kwargs: Any) -> IdentityScale:
    return IdentityScale(aesthetic, **kwargs)


def scale_size_continuous(range: tuple[float, float] = (1.0, 6.0), **kwargs: Any) -> ContinuousScale:
    return ContinuousScale("size", palette=RangePalette(range, area=True), **kwargs)


def scale_size_discrete(range: tuple[float, float] = (2.0, 6.0), **kwargs: Any) -> DiscreteScale:
    return DiscreteScale("size", palette=SequencePalette(range), **kwargs)


def scale_alpha_continuous(range: tuple[float, float] = (0.1, 1.0), **kwargs: Any) -> ContinuousScale:
    return ContinuousScale("alpha", palette=RangePalette(range), **kwargs)


def scale_alpha_discrete(range: tuple[float, float] = (0.1, 1.0), **kwargs: Any) -> DiscreteScale:
    return DiscreteScale("alpha", palette=SequencePalette(range), **kwargs)


def scale_linewidth_continuous(range: tuple[float, float] = (1.0, 6.0), **kwargs: Any) -> ContinuousScale:
    return ContinuousScale("linewidth", palette=RangePalette(range), **kwargs)


def scale_shape(**kwargs: Any) -> DiscreteScale:
    return DiscreteScale("shape", palette=shape_palette(), **kwargs)


def scale_linetype(**kwargs: Any) -> DiscreteScale:
    return DiscreteScale("linetype", palette=linetype_palette(), **kwargs)


def scale_discrete_manual(aesthetic: str, values: Any, **kwargs: Any) -> DiscreteScale:
    return DiscreteScale(aesthetic, palette=ListPalette(values), **kwargs)
