"""Range arithmetic, out-of-bounds policies and break/label helpers."""

from __future__ import annotations

from typing import Callable, Optional, Sequence, Union

import numpy as np
import pandas as pd


def rescale(x, to: tuple[float, float] = (0.0, 1.0), from_: Optional[tuple[float, float]] = None) -> np.ndarray:
    """Linearly rescale ``x`` from ``from_`` (default: its own range) onto ``to``."""
    arr = np.asarray(x, dtype=float)
    if from_ is None:
        finite = arr[np.isfinite(arr)]
        if len(finite) == 0:
            return np.full(arr.shape, np.nan)
        from_ = (float(finite.min()), float(finite.max()))
    lo, hi = from_
    if hi == lo:
        return np.full(arr.shape, (to[0] + to[1]) / 2, dtype=float)
    return (arr - lo) / (hi - lo) * (to[1] - to[0]) + to[0]


def expand_range(limits: tuple[float, float], mult: float = 0.0, add: float = 0.0) -> tuple[float, float]:
    """Widen ``limits`` by a multiplicative and an additive amount on both sides."""
    lo, hi = limits
    if hi == lo:
        # Zero-width range: widen symmetrically so the point is centred.
        width = abs(lo) * 0.05 if lo != 0 else 0.5
        return lo - width, hi + width
    span = hi - lo
    return lo - span * mult - add, hi + span * mult + add


def censor(x, limits: tuple[float, float]) -> np.ndarray:
    """Out-of-bounds values become NaN. Infinite values are kept."""
    arr = np.asarray(x, dtype=float).copy()
    lo, hi = min(limits), max(limits)
    finite = np.isfinite(arr)
    arr[finite & ((arr < lo) | (arr > hi))] = np.nan
    return arr


def squish(x, limits: tuple[float, float]) -> np.ndarray:
    """Out-of-bounds values are clipped to the nearest limit."""
    arr = np.asarray(x, dtype=float).copy()
    lo, hi = min(limits), max(limits)
    finite = np.isfinite(arr)
    arr[finite] = np.clip(arr[finite], lo, hi)
    return arr


def keep(x, limits: tuple[float, float]) -> np.ndarray:
    return np.asarray(x, dtype=float)


OOB_POLICIES: dict[str, Callable] = {
    "censor": censor,
    "squish": squish,
    "keep": keep,
}


def get_oob(oob: Union[str, Callable, None]) -> Callable:
    if oob is None:
        return censor
    if callable(oob):
        return oob
    try:
        return OOB_POLICIES[oob]
    except KeyError:
        raise ValueError(f"Unknown oob policy {oob!r}; expected one of {sorted(OOB_POLICIES)}") from None


_NICE_STEPS = (1.0, 2.0, 2.5, 5.0, 10.0)


def pretty_breaks(lo: float, hi: float, n: int = 5) -> np.ndarray:
    """Round-number breaks covering [lo, hi], roughly ``n`` of them."""
    if not (np.isfinite(lo) and np.isfinite(hi)):
        return np.array([])
    if hi < lo:
        lo, hi = hi, lo
    if hi == lo:
        return np.array([lo])
    raw = (hi - lo) / max(n - 1, 1)
    magnitude = 10 ** np.floor(np.log10(raw))
    step = next(s * magnitude for s in _NICE_STEPS if s * magnitude >= raw)
    start = np.floor(lo / step) * step
    stop = np.ceil(hi / step) * step
    breaks = np.arange(start, stop + step * 0.5, step)
    # Clean up float noise such as 0.30000000000000004.
    decimals = max(0, int(-np.floor(np.log10(step))) + 2)
    return np.round(breaks, decimals)


def format_breaks(values: Sequence[float]) -> list[str]:
    """Shortest labels that still tell neighbouring breaks apart."""
    arr = np.asarray(values, dtype=float)
    out: list[str] = []
    for v in arr:
        if not np.isfinite(v):
            out.append("")
            continue
        if v == int(v) and abs(v) < 1e15:
            out.append(str(int(v)))
        else:
            out.append(f"{v:.6g}")
    return out


def is_numeric_series(values) -> bool:
    """True for int/unsigned/float data (bool counts as discrete)."""
    if isinstance(values, pd.Series):
        if isinstance(values.dtype, pd.CategoricalDtype):
            return False
        kind = getattr(values.dtype, "kind", None)
    else:
        kind = np.asarray(values).dtype.kind
    return kind in {"i", "u", "f"}
