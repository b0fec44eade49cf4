"""Continuous scale transformations.

A transform maps data values into the space the scale is trained, broken and
drawn in. The inverse recovers data values for axis labels and guide keys.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Union

import numpy as np

from plotbuild.scales.bounds import pretty_breaks


@dataclass(frozen=True)
class Transform:
    """Named pair of forward/inverse functions plus a breaks rule.

    ``breaks`` receives the limits in data space and returns break positions
    in data space.
    """
    name: str
    transform: Callable[[np.ndarray], np.ndarray]
    inverse: Callable[[np.ndarray], np.ndarray]
    breaks: Callable[[tuple[float, float]], np.ndarray]
    domain: tuple[float, float] = (-np.inf, np.inf)

    def __repr__(self) -> str:
        return f"Transform({self.name})"

    def apply(self, values) -> np.ndarray:
        """Forward transform; values outside the domain become NaN."""
        arr = np.asarray(values, dtype=float)
        lo, hi = self.domain
        with np.errstate(divide="ignore", invalid="ignore"):
            out = self.transform(arr)
        if np.isfinite(lo) or np.isfinite(hi):
            out = np.where((arr < lo) | (arr > hi), np.nan, out)
        return out

    def invert(self, values) -> np.ndarray:
        arr = np.asarray(values, dtype=float)
        with np.errstate(over="ignore", invalid="ignore"):
            return self.inverse(arr)


def _log_breaks(base: float) -> Callable[[tuple[float, float]], np.ndarray]:
    def breaks(limits: tuple[float, float]) -> np.ndarray:
        lo, hi = limits
        if not (np.isfinite(lo) and np.isfinite(hi)) or lo <= 0 or hi <= 0:
            return np.array([])
        lo_e = np.floor(np.log(lo) / np.log(base))
        hi_e = np.ceil(np.log(hi) / np.log(base))
        powers = base ** np.arange(lo_e, hi_e + 1)
        inside = powers[(powers >= lo * (1 - 1e-10)) & (powers <= hi * (1 + 1e-10))]
        if len(inside) >= 2:
            return powers
        # Less than a decade: fall back to pretty breaks in data space.
        return pretty_breaks(lo, hi)
    return breaks


def _identity_breaks(limits: tuple[float, float]) -> np.ndarray:
    return pretty_breaks(*limits)


def _sqrt_breaks(limits: tuple[float, float]) -> np.ndarray:
    lo, hi = limits
    return pretty_breaks(max(lo, 0.0), hi)


identity_trans = Transform("identity", lambda x: x, lambda x: x, _identity_breaks)
log10_trans = Transform("log-10", np.log10, lambda x: np.power(10.0, x), _log_breaks(10.0), (0.0, np.inf))
log2_trans = Transform("log-2", np.log2, lambda x: np.power(2.0, x), _log_breaks(2.0), (0.0, np.inf))
log_trans = Transform("log-e", np.log, np.exp, _log_breaks(np.e), (0.0, np.inf))
sqrt_trans = Transform("sqrt", np.sqrt, np.square, _sqrt_breaks, (0.0, np.inf))
reverse_trans = Transform("reverse", np.negative, np.negative, _identity_breaks)

TRANSFORMS = {
    "identity": identity_trans,
    "log10": log10_trans,
    "log2": log2_trans,
    "log": log_trans,
    "sqrt": sqrt_trans,
    "reverse": reverse_trans,
}


def get_transform(trans: Union[str, Transform, None]) -> Transform:
    if trans is None:
        return identity_trans
    if isinstance(trans, Transform):
        return trans
    try:
        return TRANSFORMS[trans]
    except KeyError:
        raise ValueError(f"Unknown transform {trans!r}; expected one of {sorted(TRANSFORMS)}") from None
