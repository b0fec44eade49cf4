"""Tests for build_plot: stage order, ids, scales, out-of-bounds and errors."""

from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from plotbuild import (
    Layer,
    LayerComputationError,
    MissingAestheticError,
    PipelineTrace,
    PlotBuildError,
    PlotSpec,
    ScaleConflictError,
    SpecificationError,
    StatComputationWarning,
    UnknownFacetKeyError,
    after_stat,
    build_plot,
)
from plotbuild.facets import FacetWrap
from plotbuild.geoms import GeomBar, GeomCol, GeomHistogram, GeomHline, GeomPoint, GeomSmooth
from plotbuild.positions import PositionJitter
from plotbuild.scales import scale_x_continuous, scale_x_log10
from plotbuild.stats import StatBin, StatSmooth


@pytest.fixture
def point_spec(cars: pd.DataFrame) -> PlotSpec:
    """Scatter of displ vs hwy coloured by drv."""
    return PlotSpec(
        data=cars,
        mapping={"x": "displ", "y": "hwy", "color": "drv"},
        layers=[Layer(GeomPoint())],
    )


def test_build_returns_one_frame_per_layer_in_order(cars: pd.DataFrame) -> None:
    """Layer data comes back in layer order, one frame per layer."""
    spec = PlotSpec(
        data=cars,
        mapping={"x": "displ"},
        layers=[
            Layer(GeomPoint(), mapping={"y": "hwy"}),
            Layer(GeomHistogram(), stat=StatBin(bins=5)),
        ],
    )
    result = build_plot(spec)

    assert len(result.layer_data) == 2
    points, bars = result.layer_data
    assert len(points) == 8
    assert len(bars) == 5
    assert {"xmin", "xmax", "ymin", "ymax"} <= set(bars.columns)
    assert (points["PANEL"] == 1).all()
    assert (bars["PANEL"] == 1).all()
    assert bars["y"].sum() == pytest.approx(8.0)


def test_build_result_unpacks_to_data_and_layout(point_spec: PlotSpec) -> None:
    """A BuildResult unpacks as (layer_data, layout)."""
    data, layout = build_plot(point_spec)
    assert isinstance(data, list)
    assert layout.n_panels == 1
    assert len(layout.panel_params) == 1


def test_panel_and_group_are_one_based_integers(point_spec: PlotSpec) -> None:
    """PANEL and group are integer ids starting at 1."""
    df = build_plot(point_spec).layer_data[0]
    assert df["PANEL"].dtype.kind == "i"
    assert df["group"].dtype.kind == "i"
    assert df["PANEL"].min() == 1
    assert df["group"].min() == 1


def test_groups_follow_sorted_discrete_values(point_spec: PlotSpec) -> None:
    """Group ids number the sorted distinct values of the discrete aesthetics."""
    df = build_plot(point_spec).layer_data[0]
    assert df["group"].tolist() == [2, 2, 2, 1, 1, 3, 2, 3]


def test_explicit_group_mapping_wins(cars: pd.DataFrame) -> None:
    """A mapped group column decides the groups instead of the discrete aesthetics."""
    spec = PlotSpec(
        data=cars,
        mapping={"x": "displ", "y": "hwy", "color": "drv", "group": "cyl"},
        layers=[Layer(GeomPoint())],
    )
    df = build_plot(spec).layer_data[0]
    assert df["group"].tolist() == [1, 1, 2, 2, 3, 3, 1, 2]


def test_visual_aesthetics_are_mapped_and_defaults_filled(point_spec: PlotSpec) -> None:
    """Colour becomes palette colours; unmapped aesthetics take geom defaults."""
    df = build_plot(point_spec).layer_data[0]
    assert df["color"].nunique() == 3
    assert df["color"].str.startswith("#").all()
    assert (df["size"] == 1.5).all()
    assert (df["shape"] == "circle").all()


def test_layer_params_override_geom_defaults(cars: pd.DataFrame) -> None:
    """Layer constants are applied to every row; unknown ones are ignored."""
    spec = PlotSpec(
        data=cars,
        mapping={"x": "displ", "y": "hwy"},
        layers=[Layer(GeomPoint(), params={"colour": "red", "size": 4, "bogus": 1})],
    )
    df = build_plot(spec).layer_data[0]
    assert (df["color"] == "red").all()
    assert (df["size"] == 4).all()
    assert "bogus" not in df.columns


def test_spec_is_not_modified(point_spec: PlotSpec, cars: pd.DataFrame) -> None:
    """The PlotSpec, its data and its scales are untouched by a build."""
    scale = scale_x_continuous(limits=(2, 5))
    spec = PlotSpec(data=cars, mapping=point_spec.mapping, layers=point_spec.layers, scales=[scale])
    before = cars.copy()
    build_plot(spec)
    build_plot(spec)
    pd.testing.assert_frame_equal(spec.data, before)
    assert not scale.trained


def test_builds_are_repeatable_with_seeded_jitter(cars: pd.DataFrame) -> None:
    """Two builds of the same spec with a seeded jitter give identical data."""
    spec = PlotSpec(
        data=cars,
        mapping={"x": "displ", "y": "hwy"},
        layers=[Layer(GeomPoint(), position=PositionJitter(seed=42))],
    )
    first = build_plot(spec).layer_data[0]
    second = build_plot(spec).layer_data[0]
    pd.testing.assert_frame_equal(first, second)
    assert not np.allclose(first["x"], cars["displ"])


def test_censor_drops_out_of_limit_rows_before_the_stat(cars: pd.DataFrame) -> None:
    """Censored positions are NaN after out_of_bounds and their rows are gone afterwards."""
    spec = PlotSpec(
        data=cars,
        mapping={"x": "displ", "y": "hwy"},
        layers=[Layer(GeomPoint())],
        scales=[scale_x_continuous(limits=(2, 5))],
    )
    trace = PipelineTrace()
    result = build_plot(spec, trace=trace)

    oob = trace["out_of_bounds"].layer_data[0]
    assert len(oob) == 8
    assert int(oob["x"].isna().sum()) == 2
    assert len(result.layer_data[0]) == 6
    assert result.layer_data[0]["x"].between(2, 5).all()


def test_squish_clips_to_limits(cars: pd.DataFrame) -> None:
    """Squished positions are clipped to the limits and every row survives."""
    spec = PlotSpec(
        data=cars,
        mapping={"x": "displ", "y": "hwy"},
        layers=[Layer(GeomPoint())],
        scales=[scale_x_continuous(limits=(2, 5), oob="squish")],
    )
    df = build_plot(spec).layer_data[0]
    assert len(df) == 8
    assert df["x"].min() == 2.0
    assert df["x"].max() == 5.0


def test_transformed_positions_stay_in_scale_space() -> None:
    """A log10 x scale leaves log10 values in the built data."""
    data = pd.DataFrame({"a": [1.0, 10.0, 100.0], "b": [1.0, 2.0, 3.0]})
    spec = PlotSpec(
        data=data,
        mapping={"x": "a", "y": "b"},
        layers=[Layer(GeomPoint())],
        scales=[scale_x_log10()],
    )
    result = build_plot(spec)
    np.testing.assert_allclose(result.layer_data[0]["x"], [0.0, 1.0, 2.0])
    view = result.layout.panel_params[0].x
    np.testing.assert_allclose(view.values, [1.0, 10.0, 100.0])


def test_discrete_x_maps_to_consecutive_integers(cars: pd.DataFrame) -> None:
    """Bars on a discrete x sit at 1..n with counts as heights."""
    spec = PlotSpec(data=cars, mapping={"x": "drv"}, layers=[Layer(GeomBar())])
    result = build_plot(spec)
    df = result.layer_data[0].sort_values("x").reset_index(drop=True)

    assert df["x"].tolist() == [1.0, 2.0, 3.0]
    assert df["y"].tolist() == [2.0, 4.0, 2.0]
    assert (df["ymin"] == 0).all()
    assert result.layout.panel_params[0].x.labels == ["4", "f", "r"]


def test_after_stat_mapping_uses_computed_variable(cars: pd.DataFrame) -> None:
    """after_stat("density") puts the density in y, integrating to one."""
    spec = PlotSpec(
        data=cars,
        mapping={"x": "displ"},
        layers=[Layer(GeomHistogram(), stat=StatBin(bins=5), mapping={"y": after_stat("density")})],
    )
    df = build_plot(spec).layer_data[0]
    widths = df["xmax"] - df["xmin"]
    assert float((df["y"] * widths).sum()) == pytest.approx(1.0)


def test_layer_without_any_data_gets_one_row() -> None:
    """A layer with neither its own nor plot data draws its constants once."""
    spec = PlotSpec(layers=[Layer(GeomHline(), params={"yintercept": 3})])
    df = build_plot(spec).layer_data[0]
    assert len(df) == 1
    assert df["yintercept"].iloc[0] == 3
    assert df["PANEL"].iloc[0] == 1


def test_layer_data_function_receives_plot_data(cars: pd.DataFrame) -> None:
    """A callable layer data is evaluated on the plot data."""
    spec = PlotSpec(
        data=cars,
        mapping={"x": "displ", "y": "hwy"},
        layers=[Layer(GeomPoint(), data=lambda df: df[df["drv"] == "f"])],
    )
    df = build_plot(spec).layer_data[0]
    assert len(df) == 4


def test_faceted_build_assigns_panels(cars: pd.DataFrame) -> None:
    """Facet wrap over drv gives panels 1..3 in sorted drv order."""
    spec = PlotSpec(
        data=cars,
        mapping={"x": "displ", "y": "hwy"},
        layers=[Layer(GeomPoint())],
        facet=FacetWrap("drv"),
    )
    result = build_plot(spec)
    df = result.layer_data[0]
    assert result.layout.n_panels == 3
    assert df.groupby("PANEL").size().tolist() == [2, 4, 2]


def test_stat_warning_is_collected_not_raised() -> None:
    """A group too small to smooth is dropped and reported as a warning."""
    data = pd.DataFrame({
        "x": [1.0, 2.0, 3.0, 1.0, 1.0],
        "y": [1.0, 2.0, 2.5, 1.0, 2.0],
        "g": ["a", "a", "a", "b", "b"],
    })
    spec = PlotSpec(
        data=data,
        mapping={"x": "x", "y": "y", "color": "g"},
        layers=[Layer(GeomSmooth(), stat=StatSmooth(n=10))],
    )
    result = build_plot(spec)

    assert len(result.warnings) == 1
    warning = result.warnings[0]
    assert isinstance(warning, StatComputationWarning)
    assert warning.layer_index == 0
    assert warning.group == 2
    assert len(result.layer_data[0]) == 10
    assert (result.layer_data[0]["group"] == 1).all()


def test_spec_without_data_for_mapping_is_rejected() -> None:
    """Mapping a column with no data anywhere fails before any stage runs."""
    spec = PlotSpec(layers=[Layer(GeomPoint(), mapping={"x": "a", "y": "b"})])
    with pytest.raises(SpecificationError) as exc_info:
        build_plot(spec)
    assert exc_info.value.layer_index == 0
    assert exc_info.value.stage is None


def test_unknown_column_fails_in_map_aesthetics(cars: pd.DataFrame) -> None:
    """An expression naming a missing column raises SpecificationError for that layer."""
    spec = PlotSpec(
        data=cars,
        mapping={"x": "displ", "y": "hwy"},
        layers=[Layer(GeomPoint()), Layer(GeomPoint(), mapping={"color": "no_such_column"})],
    )
    with pytest.raises(SpecificationError) as exc_info:
        build_plot(spec)
    assert exc_info.value.layer_index == 1
    assert exc_info.value.stage == "map_aesthetics"


def test_missing_facet_variable_raises(cars: pd.DataFrame) -> None:
    """Faceting on a variable a layer lacks raises UnknownFacetKeyError."""
    other = pd.DataFrame({"displ": [2.0], "hwy": [30]})
    spec = PlotSpec(
        data=cars,
        mapping={"x": "displ", "y": "hwy"},
        layers=[Layer(GeomPoint()), Layer(GeomPoint(), data=other)],
        facet=FacetWrap("drv"),
    )
    with pytest.raises(UnknownFacetKeyError) as exc_info:
        build_plot(spec)
    assert exc_info.value.layer_index == 1
    assert exc_info.value.stage == "assign_panels"
    assert isinstance(exc_info.value, SpecificationError)


def test_discrete_data_on_continuous_scale_conflicts(cars: pd.DataFrame) -> None:
    """Continuous x from one layer and discrete x from another conflict."""
    spec = PlotSpec(
        data=cars,
        layers=[
            Layer(GeomPoint(), mapping={"x": "displ", "y": "hwy"}),
            Layer(GeomPoint(), mapping={"x": "drv", "y": "hwy"}),
        ],
    )
    with pytest.raises(ScaleConflictError) as exc_info:
        build_plot(spec)
    assert exc_info.value.layer_index == 1
    assert exc_info.value.stage == "train_scales"


def test_missing_required_aesthetic_raises(cars: pd.DataFrame) -> None:
    """A point layer without y fails when geometry is finalized."""
    spec = PlotSpec(data=cars, mapping={"x": "displ"}, layers=[Layer(GeomPoint())])
    with pytest.raises(MissingAestheticError) as exc_info:
        build_plot(spec)
    assert exc_info.value.layer_index == 0
    assert exc_info.value.stage == "finalize_geometry"
    assert "y" in str(exc_info.value)


def test_column_layer_without_y_raises(cars: pd.DataFrame) -> None:
    """A column layer without y fails while its bar extents are set up."""
    spec = PlotSpec(data=cars, mapping={"x": "displ"}, layers=[Layer(GeomCol())])
    with pytest.raises(MissingAestheticError) as exc_info:
        build_plot(spec)
    assert exc_info.value.layer_index == 0
    assert exc_info.value.stage == "adjust_position"
    assert "y" in str(exc_info.value)


def test_stat_missing_required_aesthetic_raises(cars: pd.DataFrame) -> None:
    """A histogram without x fails in compute_statistic."""
    spec = PlotSpec(data=cars, mapping={"y": "hwy"}, layers=[Layer(GeomHistogram())])
    with pytest.raises(MissingAestheticError) as exc_info:
        build_plot(spec)
    assert exc_info.value.stage == "compute_statistic"


def test_unexpected_stat_failure_is_wrapped(cars: pd.DataFrame) -> None:
    """Non-pipeline exceptions surface as LayerComputationError with the cause chained."""
    spec = PlotSpec(
        data=cars,
        mapping={"x": "displ", "y": "hwy"},
        layers=[Layer(GeomSmooth(), stat=StatSmooth(method="spline"))],
    )
    with pytest.raises(LayerComputationError) as exc_info:
        build_plot(spec)
    assert exc_info.value.stage == "compute_statistic"
    assert exc_info.value.layer_index == 0
    assert isinstance(exc_info.value.__cause__, ValueError)
    assert isinstance(exc_info.value, PlotBuildError)
