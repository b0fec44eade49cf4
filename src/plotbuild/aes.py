"""Aesthetic mappings and their evaluation against a DataFrame.

An aesthetic expression may be:

- a column name (``"displ"``),
- a pandas expression string evaluated with ``DataFrame.eval`` (``"hwy * 2"``),
- a callable taking the DataFrame and returning a Series/array,
- a scalar constant broadcast to every row,
- a list/array/Series with one value per row,
- ``after_stat(expr)``: evaluated against the stat output instead.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Iterator

import numpy as np
import pandas as pd

from plotbuild.errors import SpecificationError

# Aliases accepted for aesthetic names -> canonical name.
AES_ALIASES = {
    "colour": "color",
    "col": "color",
    "pch": "shape",
    "cex": "size",
    "lty": "linetype",
    "lwd": "linewidth",
    "bg": "fill",
    "fg": "color",
    "min": "ymin",
    "max": "ymax",
}

X_AESTHETICS = frozenset({"x", "xmin", "xmax", "xend", "xintercept", "xmin_final", "xmax_final"})
Y_AESTHETICS = frozenset({"y", "ymin", "ymax", "yend", "yintercept", "ymin_final", "ymax_final"})
POSITION_AESTHETICS = X_AESTHETICS | Y_AESTHETICS

# Columns the pipeline adds that are never aesthetics.
BOOKKEEPING_COLUMNS = frozenset({"PANEL", "group"})


def standardise_aes_name(name: str) -> str:
    return AES_ALIASES.get(name, name)


def is_position_aes(name: str) -> bool:
    return name in POSITION_AESTHETICS


def aes_to_scale(name: str) -> str:
    """Scale family an aesthetic is trained on: every x-like aesthetic shares the x scale."""
    if name in X_AESTHETICS:
        return "x"
    if name in Y_AESTHETICS:
        return "y"
    return name


class AfterStat:
    """Marks an aesthetic expression to be evaluated on the stat output."""

    def __init__(self, expr: Any) -> None:
        self.expr = expr

    def __repr__(self) -> str:
        return f"after_stat({self.expr!r})"

    def __eq__(self, other: object) -> bool:
        return isinstance(other, AfterStat) and other.expr == self.expr

    def __hash__(self) -> int:
        return hash(("after_stat", repr(self.expr)))


def after_stat(expr: Any) -> AfterStat:
    return AfterStat(expr)


class Aes(Mapping):
    """Immutable mapping from aesthetic name to expression."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        raw = dict(*args, **kwargs)
        self._mapping = {standardise_aes_name(str(k)): v for k, v in raw.items()}

    def __getitem__(self, key: str) -> Any:
        return self._mapping[standardise_aes_name(key)]

    def __iter__(self) -> Iterator[str]:
        return iter(self._mapping)

    def __len__(self) -> int:
        return len(self._mapping)

    def __repr__(self) -> str:
        inner = ", ".join(f"{k}={v!r}" for k, v in self._mapping.items())
        return f"Aes({inner})"

    def __hash__(self) -> int:
        return hash(tuple(sorted((k, repr(v)) for k, v in self._mapping.items())))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Mapping):
            return NotImplemented
        return dict(self._mapping) == {standardise_aes_name(k): v for k, v in other.items()}

    def merge(self, override: Mapping | None) -> "Aes":
        """Return a new Aes with ``override`` entries replacing ours."""
        merged = dict(self._mapping)
        if override:
            for k, v in override.items():
                merged[standardise_aes_name(k)] = v
        return Aes(merged)

    def before_stat(self) -> "Aes":
        return Aes({k: v for k, v in self._mapping.items() if not isinstance(v, AfterStat)})

    def stat_computed(self) -> "Aes":
        return Aes({k: v for k, v in self._mapping.items() if isinstance(v, AfterStat)})


def _is_scalar(value: Any) -> bool:
    return np.ndim(value) == 0 and not callable(value)


def evaluate_expression(expr: Any, data: pd.DataFrame, aesthetic: str = "?") -> Any:
    """Evaluate a single aesthetic expression against ``data``."""
    if isinstance(expr, AfterStat):
        expr = expr.expr
    if isinstance(expr, str):
        if expr in data.columns:
            return data[expr]
        try:
            return data.eval(expr, engine="python")
        except Exception as e:
            raise SpecificationError(
                f"Could not evaluate aesthetic {aesthetic}={expr!r}: {e}"
            ) from e
    if callable(expr):
        try:
            return expr(data)
        except Exception as e:
            raise SpecificationError(
                f"Aesthetic {aesthetic} callable raised {type(e).__name__}: {e}"
            ) from e
    return expr


def evaluate_mapping(mapping: Mapping, data: pd.DataFrame) -> pd.DataFrame:
    """Evaluate every (non after_stat) expression into a new aesthetic table.

    The result has the same index as ``data``. Scalars broadcast; anything
    else must have exactly one value per row.
    """
    n = len(data)
    columns: dict[str, Any] = {}
    for aesthetic, expr in mapping.items():
        if isinstance(expr, AfterStat):
            continue
        value = evaluate_expression(expr, data, aesthetic)
        if _is_scalar(value):
            columns[aesthetic] = pd.Series(value, index=data.index)
            continue
        if isinstance(value, pd.Series):
            if len(value) != n:
                raise SpecificationError(
                    f"Aesthetic {aesthetic} has {len(value)} values for {n} rows"
                )
            columns[aesthetic] = value.set_axis(data.index)
            continue
        arr = np.asarray(value)
        if arr.ndim != 1 or len(arr) != n:
            raise SpecificationError(
                f"Aesthetic {aesthetic} must be a scalar or have one value per row "
                f"(got shape {arr.shape} for {n} rows)"
            )
        columns[aesthetic] = pd.Series(arr, index=data.index)
    return pd.DataFrame(columns, index=data.index)
