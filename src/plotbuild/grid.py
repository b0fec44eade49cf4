"""Graphical object descriptors and the grid table they are composed into.

Nothing here draws. Grobs are plain descriptors in normalised parent
coordinates (npc, 0..1 within the cell they end up in) and GridTable is the
row/column structure a rendering backend walks to place them.

Sizes are ``Unit`` values: absolute units ("pt", "cm", "lines") are fixed,
"null" units share whatever space is left proportionally.
"""

from __future__ import annotations

import copy
import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional, Sequence

import numpy as np
import pandas as pd

PT_PER_CM = 72.27 / 2.54
PT_PER_LINE = 11 * 1.2

ABSOLUTE_UNITS = ("pt", "cm", "lines")
VALID_UNITS = ABSOLUTE_UNITS + ("null", "npc")


@dataclass(frozen=True)
class Unit:
    """A single size along one grid axis."""
    value: float
    units: str = "pt"

    def __post_init__(self) -> None:
        if self.units not in VALID_UNITS:
            raise ValueError(f"Unknown unit {self.units!r}; expected one of {VALID_UNITS}")

    @property
    def is_absolute(self) -> bool:
        return self.units in ABSOLUTE_UNITS

    def to_pt(self) -> float:
        """Absolute size in points. Relative units have no fixed size and give 0."""
        if self.units == "pt":
            return float(self.value)
        if self.units == "cm":
            return float(self.value) * PT_PER_CM
        if self.units == "lines":
            return float(self.value) * PT_PER_LINE
        return 0.0

    def __repr__(self) -> str:
        return f"{self.value:g}{self.units}"


def pt(value: float) -> Unit:
    return Unit(float(value), "pt")


def null(value: float = 1.0) -> Unit:
    return Unit(float(value), "null")


ZERO = Unit(0.0, "pt")


def text_width(label: str, size: float) -> float:
    """Rough width of a text label in points (average glyph ~0.55em)."""
    if not label:
        return 0.0
    longest = max(len(line) for line in str(label).split("\n"))
    return 0.55 * size * longest


def text_height(label: str, size: float, lineheight: float = 1.2) -> float:
    """Rough height of a text label in points."""
    if not label:
        return 0.0
    return size * lineheight * (str(label).count("\n") + 1)


# --- Grob descriptors ---

@dataclass(eq=False)
class Grob:
    """Base graphical object. ``gp`` holds styling (colour, fill, linewidth...)."""
    name: str = ""
    gp: dict = field(default_factory=dict)

    kind = "grob"

    def to_dict(self) -> dict:
        out: dict[str, Any] = {"kind": self.kind, "name": self.name}
        for key, value in self.__dict__.items():
            if key == "name":
                continue
            out[key] = _plain(value)
        return out

    def __eq__(self, other: object) -> bool:
        # Structural: same kind and same plain contents, arrays compared by value.
        if not isinstance(other, Grob):
            return NotImplemented
        return self.to_dict() == other.to_dict()


@dataclass(eq=False)
class NullGrob(Grob):
    kind = "null"


@dataclass(eq=False)
class PointsGrob(Grob):
    x: np.ndarray = field(default_factory=lambda: np.empty(0))
    y: np.ndarray = field(default_factory=lambda: np.empty(0))
    kind = "points"

    def __len__(self) -> int:
        return len(self.x)


@dataclass(eq=False)
class PolylineGrob(Grob):
    """One or more polylines; ``id`` separates them."""
    x: np.ndarray = field(default_factory=lambda: np.empty(0))
    y: np.ndarray = field(default_factory=lambda: np.empty(0))
    id: Optional[np.ndarray] = None
    kind = "polyline"


@dataclass(eq=False)
class PolygonGrob(Grob):
    x: np.ndarray = field(default_factory=lambda: np.empty(0))
    y: np.ndarray = field(default_factory=lambda: np.empty(0))
    id: Optional[np.ndarray] = None
    kind = "polygon"


@dataclass(eq=False)
class SegmentsGrob(Grob):
    x0: np.ndarray = field(default_factory=lambda: np.empty(0))
    y0: np.ndarray = field(default_factory=lambda: np.empty(0))
    x1: np.ndarray = field(default_factory=lambda: np.empty(0))
    y1: np.ndarray = field(default_factory=lambda: np.empty(0))
    kind = "segments"


@dataclass(eq=False)
class RectGrob(Grob):
    """Axis-aligned rectangles given by their extents in npc."""
    xmin: np.ndarray = field(default_factory=lambda: np.array([0.0]))
    xmax: np.ndarray = field(default_factory=lambda: np.array([1.0]))
    ymin: np.ndarray = field(default_factory=lambda: np.array([0.0]))
    ymax: np.ndarray = field(default_factory=lambda: np.array([1.0]))
    kind = "rect"


@dataclass(eq=False)
class TextGrob(Grob):
    label: Sequence[str] = ()
    x: np.ndarray = field(default_factory=lambda: np.array([0.5]))
    y: np.ndarray = field(default_factory=lambda: np.array([0.5]))
    hjust: float = 0.5
    vjust: float = 0.5
    angle: float = 0.0
    kind = "text"

    @property
    def size(self) -> float:
        return float(self.gp.get("fontsize", 11.0))

    def width_pt(self) -> float:
        widths = [text_width(lbl, self.size) for lbl in self.label]
        w = max(widths) if widths else 0.0
        if self.angle in (90, -90, 270):
            return max((text_height(lbl, self.size) for lbl in self.label), default=0.0)
        return w

    def height_pt(self) -> float:
        if self.angle in (90, -90, 270):
            return max((text_width(lbl, self.size) for lbl in self.label), default=0.0)
        return max((text_height(lbl, self.size) for lbl in self.label), default=0.0)


@dataclass(eq=False)
class GTree(Grob):
    """Ordered collection of child grobs drawn in list order."""
    children: list = field(default_factory=list)
    width: Optional[Unit] = None
    height: Optional[Unit] = None
    kind = "gtree"

    def to_dict(self) -> dict:
        out = {"kind": self.kind, "name": self.name, "gp": _plain(self.gp)}
        out["children"] = [child.to_dict() for child in self.children]
        if self.width is not None:
            out["width"] = repr(self.width)
        if self.height is not None:
            out["height"] = repr(self.height)
        return out


def _plain(value: Any) -> Any:
    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, Unit):
        return repr(value)
    if isinstance(value, Grob):
        return value.to_dict()
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    if isinstance(value, np.generic):
        return value.item()
    return value


# --- Grid table ---

@dataclass
class _Cell:
    name: str
    grob: Grob
    t: int
    l: int
    b: int
    r: int
    z: float
    clip: str


class GridTable(Grob):
    """A grid of rows and columns with grobs placed over cell ranges.

    Row and column indices are 1-based and inclusive (t..b, l..r). Each track
    may carry a name so that later steps can address a designated track
    without knowing its position.
    """

    kind = "gtable"

    def __init__(
        self,
        widths: Iterable[Unit] = (),
        heights: Iterable[Unit] = (),
        *,
        name: str = "layout",
        col_names: Optional[Iterable[Optional[str]]] = None,
        row_names: Optional[Iterable[Optional[str]]] = None,
    ) -> None:
        super().__init__(name=name)
        self.widths: list[Unit] = list(widths)
        self.heights: list[Unit] = list(heights)
        self.col_names: list[Optional[str]] = (
            list(col_names) if col_names is not None else [None] * len(self.widths)
        )
        self.row_names: list[Optional[str]] = (
            list(row_names) if row_names is not None else [None] * len(self.heights)
        )
        if len(self.col_names) != len(self.widths) or len(self.row_names) != len(self.heights):
            raise ValueError("Track names must match the number of widths/heights")
        self._cells: list[_Cell] = []

    def __repr__(self) -> str:
        nrow, ncol = self.dim
        return f"GridTable(name={self.name!r}, dim=({nrow}, {ncol}), grobs={len(self._cells)})"

    @property
    def dim(self) -> tuple[int, int]:
        return len(self.heights), len(self.widths)

    @property
    def grobs(self) -> list[Grob]:
        return [c.grob for c in self._cells]

    @property
    def layout(self) -> pd.DataFrame:
        """One row per placed grob: name, t, l, b, r, z, clip."""
        return pd.DataFrame(
            {
                "name": [c.name for c in self._cells],
                "t": [c.t for c in self._cells],
                "l": [c.l for c in self._cells],
                "b": [c.b for c in self._cells],
                "r": [c.r for c in self._cells],
                "z": [c.z for c in self._cells],
                "clip": [c.clip for c in self._cells],
            },
            columns=["name", "t", "l", "b", "r", "z", "clip"],
        )

    # -- tracks --

    def add_rows(self, heights: Sequence[Unit], pos: int = -1, names: Optional[Sequence[Optional[str]]] = None) -> "GridTable":
        """Insert rows after row ``pos`` (0 = top, -1 = bottom); cells below shift down."""
        heights = list(heights)
        names = list(names) if names is not None else [None] * len(heights)
        n = len(self.heights)
        if pos < 0:
            pos = n + pos + 1
        if not 0 <= pos <= n:
            raise IndexError(f"Row position {pos} outside 0..{n}")
        self.heights[pos:pos] = heights
        self.row_names[pos:pos] = names
        for c in self._cells:
            if c.t > pos:
                c.t += len(heights)
            if c.b > pos:
                c.b += len(heights)
        return self

    def add_cols(self, widths: Sequence[Unit], pos: int = -1, names: Optional[Sequence[Optional[str]]] = None) -> "GridTable":
        """Insert columns after column ``pos`` (0 = left, -1 = right)."""
        widths = list(widths)
        names = list(names) if names is not None else [None] * len(widths)
        n = len(self.widths)
        if pos < 0:
            pos = n + pos + 1
        if not 0 <= pos <= n:
            raise IndexError(f"Column position {pos} outside 0..{n}")
        self.widths[pos:pos] = widths
        self.col_names[pos:pos] = names
        for c in self._cells:
            if c.l > pos:
                c.l += len(widths)
            if c.r > pos:
                c.r += len(widths)
        return self

    def row_index(self, name: str) -> int:
        """1-based index of the row track called ``name``."""
        try:
            return self.row_names.index(name) + 1
        except ValueError:
            raise KeyError(f"No row named {name!r}") from None

    def col_index(self, name: str) -> int:
        try:
            return self.col_names.index(name) + 1
        except ValueError:
            raise KeyError(f"No column named {name!r}") from None

    def set_height(self, row: int, height: Unit) -> None:
        self.heights[row - 1] = height

    def set_width(self, col: int, width: Unit) -> None:
        self.widths[col - 1] = width

    # -- cells --

    def add_grob(
        self,
        grob: Grob,
        t: int,
        l: int,
        b: Optional[int] = None,
        r: Optional[int] = None,
        *,
        z: Optional[float] = None,
        name: Optional[str] = None,
        clip: str = "on",
    ) -> "GridTable":
        b = t if b is None else b
        r = l if r is None else r
        nrow, ncol = self.dim
        if not (1 <= t <= b <= nrow and 1 <= l <= r <= ncol):
            raise IndexError(f"Cell ({t}:{b}, {l}:{r}) outside a {nrow}x{ncol} table")
        if z is None:
            z = max((c.z for c in self._cells), default=0) + 1
        self._cells.append(_Cell(name or grob.name, grob, t, l, b, r, float(z), clip))
        return self

    def find(self, name: str) -> list[Grob]:
        return [c.grob for c in self._cells if c.name == name]

    def cells(self, pattern: str = ".*") -> pd.DataFrame:
        """Layout rows whose name matches the regular expression ``pattern``."""
        df = self.layout
        mask = df["name"].map(lambda n: re.search(pattern, n) is not None)
        return df[mask.astype(bool)].reset_index(drop=True)

    def copy(self) -> "GridTable":
        return copy.deepcopy(self)

    def absolute_size(self) -> tuple[float, float]:
        """(width, height) in points taken by absolute tracks only."""
        return (
            sum(w.to_pt() for w in self.widths),
            sum(h.to_pt() for h in self.heights),
        )

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "name": self.name,
            "widths": [repr(w) for w in self.widths],
            "heights": [repr(h) for h in self.heights],
            "col_names": list(self.col_names),
            "row_names": list(self.row_names),
            "cells": [
                {
                    "name": c.name, "t": c.t, "l": c.l, "b": c.b, "r": c.r,
                    "z": c.z, "clip": c.clip, "grob": c.grob.to_dict(),
                }
                for c in self._cells
            ],
        }
