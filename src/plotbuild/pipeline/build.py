"""Build pipeline: PlotSpec -> drawing-ready layer data + trained Layout.

Ten stages run in a fixed order, each over every layer before the next
starts. Every stage returns new DataFrames; nothing a stage received is
modified, so snapshots taken between stages stay valid.

Errors raised inside a stage carry the stage name and, where one layer is
at fault, its index. Groups a stat cannot handle are dropped and reported
as StatComputationWarning on the result.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator, Optional

import pandas as pd

from plotbuild.aes import (
    AfterStat,
    Aes,
    POSITION_AESTHETICS,
    evaluate_expression,
    evaluate_mapping,
)
from plotbuild.errors import (
    LayerComputationError,
    PlotBuildError,
    SpecificationError,
    StatComputationWarning,
)
from plotbuild.layout import Layout
from plotbuild.pipeline.trace import PipelineTrace
from plotbuild.scales.bounds import is_numeric_series
from plotbuild.scales.scales_list import ScalesList
from plotbuild.spec import Layer, PlotSpec, default_labels, layer_mapping, validate_spec
from plotbuild.utils.logging import get_logger

logger = get_logger(__name__)

STAGES = (
    "resolve_data",
    "map_aesthetics",
    "assign_panels",
    "assign_groups",
    "train_scales",
    "transform_scales",
    "out_of_bounds",
    "compute_statistic",
    "adjust_position",
    "finalize_geometry",
)


@dataclass
class BuildResult:
    """Output of ``build_plot``.

    Attributes:
        layer_data: One drawing-ready DataFrame per layer, in layer order.
        layout: Trained Layout (panels, scales, panel params).
        warnings: Recoverable problems, e.g. groups dropped by a stat.
        plot: The PlotSpec that was built.
        labels: Resolved titles per aesthetic (x, y, color...).
        mapped_aes: Per layer, the aesthetics it maps (used for legends).

    Iterating yields ``(layer_data, layout)``.
    """

    layer_data: list[pd.DataFrame]
    layout: Layout
    warnings: list[StatComputationWarning] = field(default_factory=list)
    plot: Optional[PlotSpec] = None
    labels: dict[str, str] = field(default_factory=dict)
    mapped_aes: list[set] = field(default_factory=list)

    def __iter__(self) -> Iterator:
        yield self.layer_data
        yield self.layout

    def __len__(self) -> int:
        return len(self.layer_data)


@contextmanager
def stage_context(stage: str, layer_index: Optional[int] = None):
    """Attach stage/layer context to errors raised inside the block."""
    try:
        yield
    except PlotBuildError as e:
        raise e.with_context(layer_index=layer_index, stage=stage)
    except Exception as e:
        raise LayerComputationError(
            f"{type(e).__name__}: {e}", layer_index=layer_index, stage=stage
        ) from e


# -----------------------------------------------------------------------------
# Stages
# -----------------------------------------------------------------------------


def resolve_data(spec: PlotSpec) -> list[pd.DataFrame]:
    """Stage 1: the dataset of every layer."""
    out = []
    for i, layer in enumerate(spec.layers):
        with stage_context("resolve_data", i):
            if isinstance(layer.data, pd.DataFrame):
                df = layer.data
            elif callable(layer.data):
                df = layer.data(spec.data.copy())
                if not isinstance(df, pd.DataFrame):
                    raise SpecificationError(
                        f"Layer data function returned {type(df).__name__}, not a DataFrame"
                    )
            elif spec.data is not None:
                df = spec.data
            else:
                # Nothing mapped and no data: one row to carry constants.
                df = pd.DataFrame(index=pd.RangeIndex(1))
            out.append(df.reset_index(drop=True))
    return out


def map_aesthetics(spec: PlotSpec, resolved: list[pd.DataFrame]) -> list[pd.DataFrame]:
    """Stage 2: evaluate the merged (global + layer) mapping of each layer."""
    out = []
    for i, (layer, df) in enumerate(zip(spec.layers, resolved)):
        with stage_context("map_aesthetics", i):
            mapping = layer_mapping(spec, layer).before_stat()
            out.append(evaluate_mapping(mapping, df))
    return out


def assign_panels(layout: Layout, resolved: list[pd.DataFrame], data: list[pd.DataFrame], plot_data=None) -> list[pd.DataFrame]:
    """Stage 3: PANEL from the facet, computed on the resolved (unmapped) data."""
    with stage_context("assign_panels"):
        panels = layout.setup(resolved, plot_data)
    logger.debug(f"{layout.n_panels} panel(s)")
    return [df.assign(PANEL=p.to_numpy(dtype=int)) for df, p in zip(data, panels)]


def add_group(df: pd.DataFrame) -> pd.DataFrame:
    """Group ids (1-based) from an explicit ``group`` column or the discrete aesthetics."""
    if df.empty:
        return df.assign(group=pd.Series(dtype=int, index=df.index))
    if "group" in df.columns:
        cols = ["group"]
    else:
        cols = [
            c for c in df.columns
            if c not in ("label", "PANEL") and not is_numeric_series(df[c])
        ]
    if not cols:
        return df.assign(group=1)
    ids = df.groupby(cols, sort=True, dropna=False, observed=True).ngroup() + 1
    return df.assign(group=ids.to_numpy(dtype=int))


def assign_groups(data: list[pd.DataFrame]) -> list[pd.DataFrame]:
    """Stage 4."""
    out = []
    for i, df in enumerate(data):
        with stage_context("assign_groups", i):
            out.append(add_group(df))
    return out


def train_scales(layout: Layout, data: list[pd.DataFrame]) -> None:
    """Stage 5: infer missing scales, then train every scale on every layer."""
    scales = layout.scales
    for i, df in enumerate(data):
        with stage_context("train_scales", i):
            for scale in scales.add_defaults(df):
                logger.debug(f"Added default {type(scale).__name__} for {scale.aesthetic!r}")
            scales.train_df(df)
    with stage_context("train_scales"):
        layout.train_position(data)


def transform_scales(layout: Layout, data: list[pd.DataFrame]) -> list[pd.DataFrame]:
    """Stage 6: scale transforms; discrete positions become 1..n per panel scale."""
    out = []
    for i, df in enumerate(data):
        with stage_context("transform_scales", i):
            out.append(layout.scales.transform_df(df, position=False))
    with stage_context("transform_scales"):
        return layout.map_position(out)


def out_of_bounds(layout: Layout, data: list[pd.DataFrame]) -> list[pd.DataFrame]:
    """Stage 7: resolve values outside explicit limits (censor/squish/keep)."""
    out = []
    for i, df in enumerate(data):
        with stage_context("out_of_bounds", i):
            out.append(layout.scales.oob_df(df))
    return out


def _drop_missing_positions(df: pd.DataFrame, layer_index: int) -> pd.DataFrame:
    cols = [c for c in df.columns if c in POSITION_AESTHETICS]
    if not cols or df.empty:
        return df
    keep = df[cols].notna().all(axis=1)
    dropped = int((~keep).sum())
    if dropped:
        logger.warning(f"Layer {layer_index}: removed {dropped} rows with missing or out-of-bounds positions")
        return df[keep].reset_index(drop=True)
    return df


def stat_mapping(spec: PlotSpec, layer: Layer) -> Aes:
    """after_stat mappings: the stat's computed defaults, overridden by the layer mapping."""
    mapping = layer_mapping(spec, layer)
    defaults = {
        k: v for k, v in layer.stat.default_aes.items()
        if isinstance(v, AfterStat) and k not in mapping
    }
    return Aes(defaults).merge(mapping.stat_computed())


def compute_statistic(
    spec: PlotSpec, layout: Layout, data: list[pd.DataFrame], warnings: list
) -> list[pd.DataFrame]:
    """Stage 8: run each layer's stat per PANEL and group, then evaluate after_stat mappings."""
    out = []
    panel_scales = layout.panel_scales_map()
    for i, (layer, df) in enumerate(zip(spec.layers, data)):
        with stage_context("compute_statistic", i):
            df = _drop_missing_positions(df, i)
            result, stat_warnings = layer.stat.compute_layer(df, panel_scales, layer_index=i)
            warnings.extend(stat_warnings)
            computed = {}
            for aesthetic, expr in stat_mapping(spec, layer).items():
                if result.empty:
                    computed[aesthetic] = pd.Series(dtype=float, index=result.index)
                    continue
                value = evaluate_expression(expr, result, aesthetic)
                computed[aesthetic] = pd.Series(value, index=result.index) if not isinstance(value, pd.Series) else value
            if computed:
                result = result.assign(**computed)
            out.append(result)
    return out


def adjust_position(spec: PlotSpec, layout: Layout, data: list[pd.DataFrame]) -> list[pd.DataFrame]:
    """Stage 9: geom extents (setup_data) then the position adjustment."""
    out = []
    panel_scales = layout.panel_scales_map()
    for i, (layer, df) in enumerate(zip(spec.layers, data)):
        with stage_context("adjust_position", i):
            df = layer.geom.setup_data(df)
            if not df.empty:
                df = layer.position.compute_layer(df, panel_scales)
            out.append(df)
    return out


def layer_constants(layer: Layer, layer_index: int) -> dict:
    """Layer params the geom understands; anything else is ignored with a warning."""
    known = layer.geom.aesthetics
    unknown = sorted(set(layer.params) - known)
    if unknown:
        logger.warning(f"Layer {layer_index}: ignoring unknown aesthetics {unknown} for geom_{layer.geom.name}")
    return {k: v for k, v in layer.params.items() if k in known}


def finalize_geometry(spec: PlotSpec, layout: Layout, data: list[pd.DataFrame]) -> list[pd.DataFrame]:
    """Stage 10: retrain positions on final extents, map visual scales, fill geom defaults."""
    scales = layout.scales
    with stage_context("finalize_geometry"):
        layout.reset_scales()
    added = []
    for i, df in enumerate(data):
        with stage_context("finalize_geometry", i):
            added.extend(scales.add_defaults(df))
            scales.train_df(df, transformed=True, position=True)
    with stage_context("finalize_geometry"):
        layout.train_position(data, transformed=True)
    new_visual = [s for s in added if not s.is_position]

    for i, df in enumerate(data):
        with stage_context("finalize_geometry", i):
            for scale in new_visual:
                scale.train_df(df)

    out = []
    for i, (layer, df) in enumerate(zip(spec.layers, data)):
        with stage_context("finalize_geometry", i):
            df = scales.map_df(df, position=False)
            df = layer.geom.use_defaults(df, layer_constants(layer, i))
            df = layer.geom.handle_na(df)
            df = layer.geom.finalize(df)
            out.append(df)
    with stage_context("finalize_geometry"):
        layout.setup_panel_params()
    return out


# -----------------------------------------------------------------------------
# Driver
# -----------------------------------------------------------------------------


def mapped_aesthetics(spec: PlotSpec, layer: Layer) -> set:
    mapped = set(layer_mapping(spec, layer)) | set(stat_mapping(spec, layer))
    return mapped - set(layer.params)


def resolve_labels(spec: PlotSpec) -> dict[str, str]:
    labels = {}
    for aesthetic, default in default_labels(spec).items():
        labels[aesthetic] = spec.labels.get(aesthetic, default)
    labels.update(spec.labels.aesthetics)
    for aesthetic in ("x", "y"):
        value = spec.labels.get(aesthetic)
        if value is not None:
            labels[aesthetic] = value
    return labels


def build_plot(spec: PlotSpec, *, trace: Optional[PipelineTrace] = None) -> BuildResult:
    """Run the ten build stages over ``spec``.

    Args:
        spec: The plot to build. It is not modified; its scales are cloned.
        trace: Optional recorder receiving a snapshot after every stage.

    Returns:
        BuildResult with one DataFrame per layer (in layer order), the
        trained Layout and any StatComputationWarnings.

    Raises:
        SpecificationError: malformed spec (before any stage runs) or an
            aesthetic that cannot be evaluated.
        UnknownFacetKeyError: facet variables missing from a layer.
        ScaleConflictError: discrete/continuous mismatch on a scale.
        MissingAestheticError: a geom lacks a required aesthetic.
        LayerComputationError: any other failure inside a stage.
    """
    validate_spec(spec)
    layout = Layout(spec.facet, spec.coord, ScalesList(s.clone() for s in spec.scales))
    layout.plot = spec
    warnings: list[StatComputationWarning] = []
    n_stages = len(STAGES)

    def _record(index: int, data: list[pd.DataFrame]) -> None:
        logger.debug(f"Build stage {index}/{n_stages}: {STAGES[index - 1]} done")
        if trace is not None:
            trace.record(index, STAGES[index - 1], "build", layer_data=data, layout=layout)

    resolved = resolve_data(spec)
    _record(1, resolved)
    data = map_aesthetics(spec, resolved)
    _record(2, data)
    data = assign_panels(layout, resolved, data, spec.data)
    _record(3, data)
    data = assign_groups(data)
    _record(4, data)
    train_scales(layout, data)
    _record(5, data)
    data = transform_scales(layout, data)
    _record(6, data)
    data = out_of_bounds(layout, data)
    _record(7, data)
    data = compute_statistic(spec, layout, data, warnings)
    _record(8, data)
    data = adjust_position(spec, layout, data)
    _record(9, data)
    data = finalize_geometry(spec, layout, data)
    _record(10, data)

    if warnings:
        logger.info(f"Build finished with {len(warnings)} warning(s)")
    return BuildResult(
        layer_data=data,
        layout=layout,
        warnings=warnings,
        plot=spec,
        labels=resolve_labels(spec),
        mapped_aes=[mapped_aesthetics(spec, layer) for layer in spec.layers],
    )
