"""Unit tests for CoordCartesian panel parameters and npc mapping."""

from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from plotbuild.coords import AxisView, CoordCartesian, PanelParams
from plotbuild.grid import GTree, NullGrob, RectGrob
from plotbuild.guides import GuideAxis
from plotbuild.scales import scale_x_continuous, scale_x_discrete, scale_x_log10
from plotbuild.theme import Theme


@pytest.fixture
def trained_x():
    """Continuous x scale trained over 0..10."""
    scale = scale_x_continuous()
    scale.train(pd.Series([0.0, 10.0]))
    return scale


def test_panel_params_expand_by_default(trained_x) -> None:
    """The visible range is the trained range widened by 5% each side."""
    params = CoordCartesian().setup_panel_params(trained_x, None)
    assert params.x.range == pytest.approx((-0.5, 10.5))
    assert params.x.breaks.tolist() == [0.0, 5.0, 10.0]
    assert params.x.labels == ["0", "5", "10"]


def test_panel_params_without_expansion(trained_x) -> None:
    """expand=False shows exactly the trained range."""
    params = CoordCartesian(expand=False).setup_panel_params(trained_x, None)
    assert params.x.range == (0.0, 10.0)


def test_missing_scale_gives_unit_range(trained_x) -> None:
    """An axis without a scale spans 0..1 with no breaks."""
    params = CoordCartesian().setup_panel_params(trained_x, None)
    assert params.y.range == (0.0, 1.0)
    assert len(params.y.breaks) == 0


def test_coord_limits_zoom(trained_x) -> None:
    """xlim replaces the trained range before expansion."""
    params = CoordCartesian(xlim=(2, 8), expand=False).setup_panel_params(trained_x, None)
    assert params.x.range == (2.0, 8.0)
    assert params.x.breaks.tolist() == [2.0, 4.0, 6.0, 8.0]


def test_discrete_axis_view() -> None:
    """Discrete levels sit at 1..n with 0.6 of padding either side."""
    scale = scale_x_discrete()
    scale.train(pd.Series(["a", "b", "c"]))
    view = CoordCartesian().setup_panel_params(scale, None).x
    assert view.range == pytest.approx((0.4, 3.6))
    assert view.breaks.tolist() == [1.0, 2.0, 3.0]
    assert view.labels == ["a", "b", "c"]
    assert view.values == ["a", "b", "c"]


def test_log_axis_keys_report_data_values() -> None:
    """A log10 axis keeps breaks in log space and values in data space."""
    scale = scale_x_log10()
    scale.train(pd.Series([1.0, 1000.0]))
    view = CoordCartesian().setup_panel_params(scale, None).x
    axis = GuideAxis("bottom").train(view)
    np.testing.assert_allclose(axis.key["x"], [0.0, 1.0, 2.0, 3.0])
    np.testing.assert_allclose(axis.key[".value"], [1.0, 10.0, 100.0, 1000.0])
    assert axis.key[".label"].tolist() == ["1", "10", "100", "1000"]


def test_transform_maps_positions_to_npc() -> None:
    """Position columns are rescaled; other columns are left alone."""
    params = PanelParams(x=AxisView(range=(0.0, 10.0)), y=AxisView(range=(0.0, 4.0)))
    df = pd.DataFrame({"x": [0.0, 5.0], "ymax": [2.0, 4.0], "size": [3.0, 3.0]})
    out = CoordCartesian().transform(df, params)
    np.testing.assert_allclose(out["x"], [0.0, 0.5])
    np.testing.assert_allclose(out["ymax"], [0.5, 1.0])
    assert out["size"].tolist() == [3.0, 3.0]


def test_transform_sends_infinities_to_edges() -> None:
    """-inf lands on 0 and +inf on 1."""
    params = PanelParams(x=AxisView(range=(0.0, 10.0)), y=AxisView(range=(0.0, 1.0)))
    out = CoordCartesian().transform(pd.DataFrame({"xmin": [-np.inf], "xmax": [np.inf]}), params)
    assert (out["xmin"].iloc[0], out["xmax"].iloc[0]) == (0.0, 1.0)


def test_render_background_and_foreground(trained_x) -> None:
    """The background holds the panel fill and grid lines; no border draws nothing."""
    theme = Theme()
    params = CoordCartesian().setup_panel_params(trained_x, trained_x)
    bg = CoordCartesian().render_bg(params, theme)
    assert isinstance(bg, GTree)
    assert bg.name == "panel-bg"
    assert [c.name for c in bg.children] == ["panel-background", "panel-grid-major-x", "panel-grid-major-y"]
    assert bg.children[0].gp["fill"] == theme.panel_background
    assert isinstance(CoordCartesian().render_fg(params, theme), NullGrob)


def test_render_border_when_themed(trained_x) -> None:
    """A themed border is drawn over the panel."""
    params = CoordCartesian().setup_panel_params(trained_x, trained_x)
    fg = CoordCartesian().render_fg(params, Theme(panel_border="#333333"))
    assert isinstance(fg, RectGrob)
    assert fg.gp["color"] == "#333333"
