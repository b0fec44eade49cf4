"""The set of scales of one build and the rules for inferring missing ones."""

from __future__ import annotations

from typing import Iterable, Iterator, Optional

import pandas as pd

from plotbuild.aes import aes_to_scale
from plotbuild.errors import ScaleConflictError
from plotbuild.scales.bounds import is_numeric_series
from plotbuild.scales.scale import (
    ContinuousScale,
    DiscreteScale,
    Scale,
    scale_alpha_continuous,
    scale_alpha_discrete,
    scale_color_continuous,
    scale_color_discrete,
    scale_linetype,
    scale_linewidth_continuous,
    scale_shape,
    scale_size_continuous,
    scale_size_discrete,
)
from plotbuild.utils.logging import get_logger

logger = get_logger(__name__)

# Aesthetic families that get a scale when mapped. Everything else
# (group, label, weight, width...) passes through unscaled.
SCALED_AESTHETICS = ("x", "y", "color", "fill", "size", "alpha", "shape", "linetype", "linewidth")


def default_scale(aesthetic: str, values: pd.Series) -> Optional[Scale]:
    """Scale inferred from the first data seen for ``aesthetic``."""
    family = aes_to_scale(aesthetic)
    if family not in SCALED_AESTHETICS:
        return None
    continuous = is_numeric_series(values)
    if family in ("x", "y"):
        return ContinuousScale(family) if continuous else DiscreteScale(family)
    if family in ("color", "fill"):
        if continuous:
            return scale_color_continuous(aesthetic=family)
        return scale_color_discrete(aesthetic=family)
    if family == "size":
        return scale_size_continuous() if continuous else scale_size_discrete()
    if family == "alpha":
        return scale_alpha_continuous() if continuous else scale_alpha_discrete()
    if family == "linewidth":
        if not continuous:
            raise ScaleConflictError("A discrete variable cannot be mapped to linewidth")
        return scale_linewidth_continuous()
    if family == "shape":
        if continuous:
            raise ScaleConflictError("A continuous variable cannot be mapped to shape")
        return scale_shape()
    if family == "linetype":
        if continuous:
            raise ScaleConflictError("A continuous variable cannot be mapped to linetype")
        return scale_linetype()
    return None


class ScalesList:
    """Ordered collection holding at most one scale per aesthetic family."""

    def __init__(self, scales: Iterable[Scale] = ()) -> None:
        self._scales: list[Scale] = []
        for scale in scales:
            self.add(scale)

    def __iter__(self) -> Iterator[Scale]:
        return iter(self._scales)

    def __len__(self) -> int:
        return len(self._scales)

    def __repr__(self) -> str:
        return f"ScalesList({self._scales!r})"

    def find(self, aesthetic: str) -> Optional[Scale]:
        family = aes_to_scale(aesthetic)
        for scale in self._scales:
            if family in scale.aesthetics:
                return scale
        return None

    def has(self, aesthetic: str) -> bool:
        return self.find(aesthetic) is not None

    def add(self, scale: Scale) -> None:
        existing = [s for s in self._scales if set(s.aesthetics) & set(scale.aesthetics)]
        if existing:
            logger.info(
                f"Scale for {scale.aesthetic!r} is already present; the new scale replaces it"
            )
            self._scales = [s for s in self._scales if s not in existing]
        self._scales.append(scale)

    @property
    def x(self) -> Optional[Scale]:
        return self.find("x")

    @property
    def y(self) -> Optional[Scale]:
        return self.find("y")

    def position(self) -> list[Scale]:
        return [s for s in self._scales if s.is_position]

    def non_position(self) -> list[Scale]:
        return [s for s in self._scales if not s.is_position]

    def clone(self) -> "ScalesList":
        return ScalesList(s.clone() for s in self._scales)

    def add_defaults(self, df: pd.DataFrame) -> list[Scale]:
        """Create scales for mapped aesthetics that have none; returns the new scales."""
        added = []
        for col in df.columns:
            if self.has(col):
                continue
            scale = default_scale(col, df[col])
            if scale is None:
                continue
            logger.debug(f"Inferred {type(scale).__name__} for aesthetic {col!r}")
            self._scales.append(scale)
            added.append(scale)
        return added

    def train_df(self, df: pd.DataFrame, *, transformed: bool = False, position: Optional[bool] = None) -> None:
        for scale in self._select(position):
            scale.train_df(df, transformed=transformed)

    def transform_df(self, df: pd.DataFrame, *, position: Optional[bool] = None) -> pd.DataFrame:
        for scale in self._select(position):
            df = scale.transform_df(df)
        return df

    def oob_df(self, df: pd.DataFrame, *, position: Optional[bool] = None) -> pd.DataFrame:
        for scale in self._select(position):
            df = scale.oob_df(df)
        return df

    def map_df(self, df: pd.DataFrame, *, position: Optional[bool] = None) -> pd.DataFrame:
        for scale in self._select(position):
            df = scale.map_df(df)
        return df

    def _select(self, position: Optional[bool]) -> list[Scale]:
        if position is None:
            return list(self._scales)
        return self.position() if position else self.non_position()
