"""PlotSpec and Layer: the immutable input of the build pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional, Union

import pandas as pd

from plotbuild.aes import AfterStat, Aes, standardise_aes_name
from plotbuild.coords import Coord, CoordCartesian
from plotbuild.errors import SpecificationError
from plotbuild.facets import Facet, FacetNull
from plotbuild.geoms import Geom
from plotbuild.positions import Position
from plotbuild.scales.scale import Scale
from plotbuild.stats import Stat
from plotbuild.theme import Theme

LayerData = Union[pd.DataFrame, Callable[[pd.DataFrame], pd.DataFrame], None]


def _as_aes(mapping: Optional[Mapping]) -> Aes:
    if mapping is None:
        return Aes()
    if isinstance(mapping, Aes):
        return mapping
    if not isinstance(mapping, Mapping):
        raise SpecificationError(f"mapping must be a Mapping, got {type(mapping).__name__}")
    return Aes(mapping)


@dataclass(frozen=True, eq=False)
class Layer:
    """One geom + stat + position over one dataset.

    ``stat`` and ``position`` default to the geom's defaults. ``params``
    holds aesthetic constants (``color="red"``, ``size=3``) applied to every
    row at geometry finalization.
    """

    geom: Geom
    stat: Optional[Stat] = None
    position: Optional[Position] = None
    data: LayerData = None
    mapping: Aes = field(default_factory=Aes)
    inherit_aes: bool = True
    params: Mapping[str, Any] = field(default_factory=dict)
    show_legend: bool = True

    def __post_init__(self) -> None:
        if isinstance(self.geom, Geom):
            if self.stat is None:
                object.__setattr__(self, "stat", self.geom.default_stat())
            if self.position is None:
                object.__setattr__(self, "position", self.geom.default_position())
        object.__setattr__(self, "mapping", _as_aes(self.mapping))
        object.__setattr__(self, "params", {standardise_aes_name(k): v for k, v in dict(self.params).items()})

    def __repr__(self) -> str:
        return (
            f"Layer(geom={type(self.geom).__name__}, stat={type(self.stat).__name__}, "
            f"position={type(self.position).__name__}, mapping={self.mapping!r})"
        )


@dataclass(frozen=True)
class Labels:
    """Plot titles and per-aesthetic guide titles."""

    title: Optional[str] = None
    subtitle: Optional[str] = None
    caption: Optional[str] = None
    tag: Optional[str] = None
    x: Optional[str] = None
    y: Optional[str] = None
    aesthetics: Mapping[str, str] = field(default_factory=dict)

    def get(self, aesthetic: str, default: Optional[str] = None) -> Optional[str]:
        aesthetic = standardise_aes_name(aesthetic)
        if aesthetic == "x" and self.x is not None:
            return self.x
        if aesthetic == "y" and self.y is not None:
            return self.y
        return self.aesthetics.get(aesthetic, default)


@dataclass(frozen=True, eq=False)
class PlotSpec:
    """Root description of a plot. Never mutated by the pipeline."""

    data: Optional[pd.DataFrame] = None
    mapping: Aes = field(default_factory=Aes)
    layers: tuple[Layer, ...] = ()
    scales: tuple[Scale, ...] = ()
    coord: Coord = field(default_factory=CoordCartesian)
    facet: Facet = field(default_factory=FacetNull)
    theme: Optional[Theme] = None
    labels: Labels = field(default_factory=Labels)

    def __post_init__(self) -> None:
        object.__setattr__(self, "mapping", _as_aes(self.mapping))
        object.__setattr__(self, "layers", tuple(self.layers))
        object.__setattr__(self, "scales", tuple(self.scales))
        if isinstance(self.labels, Mapping):
            object.__setattr__(self, "labels", Labels(**self.labels))


def validate_spec(spec: PlotSpec) -> None:
    """Check the shape of ``spec``.

    Raises:
        SpecificationError: on the first malformed part found.
    """
    if not isinstance(spec, PlotSpec):
        raise SpecificationError(f"Expected a PlotSpec, got {type(spec).__name__}")
    if spec.data is not None and not isinstance(spec.data, pd.DataFrame):
        raise SpecificationError(f"Plot data must be a DataFrame or None, got {type(spec.data).__name__}")
    for i, layer in enumerate(spec.layers):
        if not isinstance(layer, Layer):
            raise SpecificationError(f"Layer {i} is a {type(layer).__name__}, not a Layer", layer_index=i)
        if not isinstance(layer.geom, Geom):
            raise SpecificationError(f"Layer {i} geom must be a Geom instance", layer_index=i)
        if not isinstance(layer.stat, Stat):
            raise SpecificationError(f"Layer {i} stat must be a Stat instance", layer_index=i)
        if not isinstance(layer.position, Position):
            raise SpecificationError(f"Layer {i} position must be a Position instance", layer_index=i)
        data = layer.data
        if data is not None and not isinstance(data, pd.DataFrame) and not callable(data):
            raise SpecificationError(
                f"Layer {i} data must be a DataFrame, a callable or None, got {type(data).__name__}",
                layer_index=i,
            )
        if callable(data) and not isinstance(data, pd.DataFrame) and spec.data is None:
            raise SpecificationError(
                f"Layer {i} data is a function of the plot data, but the plot has no data", layer_index=i
            )
        mapping = layer_mapping(spec, layer)
        if data is None and spec.data is None and mapping.before_stat():
            raise SpecificationError(
                f"Layer {i} maps {sorted(mapping.before_stat())} but neither the layer nor the plot has data",
                layer_index=i,
            )
    for scale in spec.scales:
        if not isinstance(scale, Scale):
            raise SpecificationError(f"scales must hold Scale instances, got {type(scale).__name__}")
    if not isinstance(spec.coord, Coord):
        raise SpecificationError(f"coord must be a Coord, got {type(spec.coord).__name__}")
    if not isinstance(spec.facet, Facet):
        raise SpecificationError(f"facet must be a Facet, got {type(spec.facet).__name__}")
    if spec.theme is not None and not isinstance(spec.theme, Theme):
        raise SpecificationError(f"theme must be a Theme or None, got {type(spec.theme).__name__}")


def layer_mapping(spec: PlotSpec, layer: Layer) -> Aes:
    """Global mapping merged with the layer's (the layer wins)."""
    if not layer.inherit_aes:
        return layer.mapping
    return spec.mapping.merge(layer.mapping)


def _expression_label(aesthetic: str, expr: Any) -> str:
    if isinstance(expr, AfterStat):
        expr = expr.expr
    if isinstance(expr, str):
        return expr
    if callable(expr):
        name = getattr(expr, "__name__", "")
        if name and name != "<lambda>":
            return name
    return aesthetic


def default_labels(spec: PlotSpec) -> dict[str, str]:
    """Guide titles derived from the mappings: the first expression seen per aesthetic."""
    labels: dict[str, str] = {}
    for layer in spec.layers:
        mapping = layer_mapping(spec, layer)
        if isinstance(layer.stat, Stat):
            mapping = Aes({k: v for k, v in layer.stat.default_aes.items() if isinstance(v, AfterStat)}).merge(mapping)
        for aesthetic, expr in mapping.items():
            labels.setdefault(aesthetic, _expression_label(aesthetic, expr))
    for aesthetic, expr in spec.mapping.items():
        labels.setdefault(aesthetic, _expression_label(aesthetic, expr))
    return labels
