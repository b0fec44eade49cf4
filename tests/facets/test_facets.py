"""Unit tests for facet layouts, panel assignment and the Layout's panel scales."""

from __future__ import annotations

import pandas as pd
import pytest

from plotbuild.errors import SpecificationError, UnknownFacetKeyError
from plotbuild.facets import FacetGrid, FacetNull, FacetWrap, unique_combinations, wrap_dims
from plotbuild.layout import Layout
from plotbuild.scales import ScalesList, scale_x_continuous, scale_y_continuous


@pytest.fixture
def mapped_cars(cars: pd.DataFrame) -> pd.DataFrame:
    """cars with x/y aesthetics next to the faceting columns."""
    return cars.assign(x=cars["displ"], y=cars["hwy"].astype(float))


def test_wrap_dims() -> None:
    """Few panels sit in one row; more are wrapped into a near-square grid."""
    assert wrap_dims(3) == (1, 3)
    assert wrap_dims(5) == (2, 3)
    assert wrap_dims(5, ncol=2) == (3, 2)
    assert wrap_dims(5, nrow=1) == (1, 5)


def test_wrap_dims_too_small() -> None:
    """nrow * ncol smaller than the panel count is rejected."""
    with pytest.raises(SpecificationError):
        wrap_dims(5, nrow=2, ncol=2)


def test_facet_arguments_are_checked() -> None:
    """Bad scales values and empty variable lists raise ValueError."""
    with pytest.raises(ValueError):
        FacetWrap("drv", scales="loose")
    with pytest.raises(ValueError):
        FacetWrap([])
    with pytest.raises(ValueError):
        FacetGrid()


def test_null_facet_has_one_panel(cars: pd.DataFrame) -> None:
    """Without faceting every row is in panel 1."""
    facet = FacetNull()
    layout = facet.compute_layout([cars])
    assert layout["PANEL"].tolist() == [1]
    assert facet.map_data(cars, layout).tolist() == [1] * len(cars)


def test_unique_combinations_sorted_across_layers(cars: pd.DataFrame) -> None:
    """Values from every layer are combined and sorted."""
    extra = pd.DataFrame({"drv": ["z"]})
    combos = unique_combinations([cars, extra], ["drv"])
    assert combos["drv"].tolist() == ["4", "f", "r", "z"]


def test_unique_combinations_missing_variable(cars: pd.DataFrame) -> None:
    """A layer without the faceting variable names its index."""
    with pytest.raises(UnknownFacetKeyError) as exc_info:
        unique_combinations([cars, pd.DataFrame({"x": [1]})], ["drv"])
    assert exc_info.value.layer_index == 1


def test_facet_wrap_layout_and_mapping(cars: pd.DataFrame) -> None:
    """Panels follow sorted facet values and rows map to their panel."""
    facet = FacetWrap("drv")
    layout = facet.compute_layout([cars])
    assert list(layout.columns) == ["PANEL", "ROW", "COL", "drv", "SCALE_X", "SCALE_Y"]
    assert layout["drv"].tolist() == ["4", "f", "r"]
    assert layout["COL"].tolist() == [1, 2, 3]
    assert layout["SCALE_X"].tolist() == [1, 1, 1]
    assert facet.map_data(cars, layout).tolist() == [2, 2, 2, 1, 1, 3, 2, 3]


def test_facet_wrap_ncol(cars: pd.DataFrame) -> None:
    """ncol=2 wraps the third panel onto a second row."""
    layout = FacetWrap("drv", ncol=2).compute_layout([cars])
    assert layout["ROW"].tolist() == [1, 1, 2]
    assert layout["COL"].tolist() == [1, 2, 1]


def test_facet_wrap_free_scales(cars: pd.DataFrame) -> None:
    """Free y gives every panel its own y scale id."""
    layout = FacetWrap("drv", scales="free_y").compute_layout([cars])
    assert layout["SCALE_Y"].tolist() == [1, 2, 3]
    assert layout["SCALE_X"].tolist() == [1, 1, 1]


def test_facet_wrap_uses_plot_data_without_layers(cars: pd.DataFrame) -> None:
    """With no layer data the plot data decides the panels."""
    layout = FacetWrap("cyl").compute_layout([], plot_data=cars)
    assert layout["cyl"].tolist() == [4, 6, 8]


def test_map_data_rejects_unknown_values(cars: pd.DataFrame) -> None:
    """Rows whose facet value has no panel raise UnknownFacetKeyError."""
    facet = FacetWrap("drv")
    layout = facet.compute_layout([cars])
    with pytest.raises(UnknownFacetKeyError) as exc_info:
        facet.map_data(pd.DataFrame({"drv": ["q"]}), layout, layer_index=2)
    assert exc_info.value.layer_index == 2


def test_facet_grid_has_one_panel_per_observed_combination(cars: pd.DataFrame) -> None:
    """Row/column pairs that never occur together get no panel."""
    facet = FacetGrid(rows="drv", cols="cyl")
    layout = facet.compute_layout([cars])
    assert len(layout) == len(cars[["drv", "cyl"]].drop_duplicates()) == 6
    assert layout["PANEL"].tolist() == [1, 2, 3, 4, 5, 6]
    assert list(zip(layout["ROW"], layout["COL"])) == [(1, 2), (1, 3), (2, 1), (2, 2), (3, 2), (3, 3)]
    assert layout["drv"].tolist() == ["4", "4", "f", "f", "r", "r"]
    panels = facet.map_data(cars, layout)
    # drv "4" with cyl 6 is the first observed pair.
    assert panels.tolist() == [3, 3, 4, 1, 2, 6, 3, 5]


def test_facet_grid_combinations_span_layers(cars: pd.DataFrame) -> None:
    """A pair seen only in a second layer still gets its panel."""
    extra = pd.DataFrame({"drv": ["4"], "cyl": [4]})
    layout = FacetGrid(rows="drv", cols="cyl").compute_layout([cars, extra])
    assert len(layout) == 7
    assert layout.iloc[0][["ROW", "COL"]].tolist() == [1, 1]


def test_facet_grid_strips(cars: pd.DataFrame) -> None:
    """Top strips sit on the topmost panel of each column; right strips name the row value."""
    facet = FacetGrid(rows="drv", cols="cyl")
    layout = facet.compute_layout([cars])
    assert facet.strip_labels(layout.iloc[0], layout) == {"t": "6", "r": "4"}
    # cyl 4 first appears in row 2.
    assert facet.strip_labels(layout.iloc[2], layout) == {"t": "4", "r": "f"}
    assert facet.strip_labels(layout.iloc[3], layout) == {"r": "f"}


def test_layout_trains_free_panel_scales(mapped_cars: pd.DataFrame) -> None:
    """Each free y scale only sees its own panel's rows."""
    layout = Layout(
        facet=FacetWrap("drv", scales="free_y"),
        scales=ScalesList([scale_x_continuous(), scale_y_continuous()]),
    )
    (panels,) = layout.setup([mapped_cars])
    data = mapped_cars.assign(PANEL=panels)
    layout.train_position([data])

    assert len(layout.panel_scales_x) == 1
    assert len(layout.panel_scales_y) == 3
    assert layout.panel_scales_x[0].get_limits() == (1.8, 5.3)
    assert layout.panel_scales(1)["y"].get_limits() == (20.0, 27.0)
    assert layout.panel_scales(3)["y"].get_limits() == (17.0, 24.0)
    assert not layout.scales.y.trained
