"""Unit tests for continuous, discrete and identity scales and ScalesList."""

from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from plotbuild.errors import ScaleConflictError
from plotbuild.scales import (
    ContinuousScale,
    DiscreteScale,
    ScalesList,
    default_scale,
    scale_color_identity,
    scale_color_manual,
    scale_size_continuous,
    scale_x_continuous,
    scale_x_discrete,
    scale_x_log10,
)


def test_continuous_scale_trains_range() -> None:
    """Training widens the range over every call."""
    scale = scale_x_continuous()
    scale.train(pd.Series([3.0, 1.0]))
    scale.train(pd.Series([2.0, 7.0, np.nan]))
    assert scale.get_limits() == (1.0, 7.0)


def test_continuous_range_is_kept_in_transformed_space() -> None:
    """A log10 scale stores log10 of the data extent."""
    scale = scale_x_log10()
    scale.train(pd.Series([1.0, 1000.0]))
    assert scale.get_limits() == pytest.approx((0.0, 3.0))
    scale.train(pd.Series([4.0]), transformed=True)
    assert scale.get_limits() == pytest.approx((0.0, 4.0))


def test_explicit_limits_override_training() -> None:
    """Limits given in data space win; None keeps the trained side."""
    scale = scale_x_continuous(limits=(2, None))
    scale.train(pd.Series([0.0, 10.0]))
    assert scale.get_limits() == (2.0, 10.0)


def test_continuous_limits_must_be_a_pair() -> None:
    """A limits value that is not (low, high) is rejected."""
    with pytest.raises(ValueError):
        ContinuousScale("x", limits=(1, 2, 3))


def test_continuous_scale_rejects_discrete_values() -> None:
    """Strings on a continuous scale raise ScaleConflictError."""
    scale = scale_x_continuous()
    with pytest.raises(ScaleConflictError) as exc_info:
        scale.train(pd.Series(["a", "b"]))
    assert "continuous" in str(exc_info.value)


def test_discrete_scale_rejects_untransformed_numbers() -> None:
    """Raw numbers on a discrete scale raise ScaleConflictError."""
    scale = DiscreteScale("color")
    with pytest.raises(ScaleConflictError):
        scale.train(pd.Series([1, 2]))


def test_discrete_levels_are_sorted_unless_categorical() -> None:
    """Plain values sort; categorical values keep their category order."""
    plain = DiscreteScale("color")
    plain.train(pd.Series(["r", "f", "4", "f"]))
    assert plain.get_limits() == ["4", "f", "r"]

    ordered = DiscreteScale("color")
    ordered.train(pd.Series(pd.Categorical(["low", "high"], categories=["low", "mid", "high"])))
    assert ordered.get_limits() == ["low", "high"]


def test_discrete_position_transform_maps_levels_to_integers() -> None:
    """Discrete x levels become 1..n in level order."""
    scale = scale_x_discrete()
    scale.train(pd.Series(["b", "a", "c"]))
    out = scale.transform(pd.Series(["c", "a", "b"]))
    assert out.tolist() == [3.0, 1.0, 2.0]


def test_discrete_retrain_keeps_levels() -> None:
    """reset_for_retrain forgets continuous extents but not levels."""
    scale = scale_x_discrete()
    scale.train(pd.Series(["a", "b"]))
    scale.train(pd.Series([0.55, 2.45]), transformed=True)
    assert scale.dimension((0.0, 0.0)) == (0.55, 2.45)

    scale.reset_for_retrain()
    assert scale.get_limits() == ["a", "b"]
    assert scale.dimension((0.0, 0.0)) == (1.0, 2.0)


def test_discrete_oob_drops_levels_outside_limits() -> None:
    """With explicit limits, other levels become missing."""
    scale = DiscreteScale("color", limits=["a", "b"])
    out = scale.apply_oob(pd.Series(["a", "z", "b"]))
    assert out.isna().tolist() == [False, True, False]


def test_manual_colors_map_by_level() -> None:
    """Manual values are assigned to levels in order; unknown values get the NA colour."""
    scale = scale_color_manual(["red", "blue"])
    scale.train(pd.Series(["x", "y"]))
    assert scale.map(pd.Series(["y", "x", "q"])).tolist() == ["blue", "red", "#7F7F7F"]


def test_manual_colors_need_enough_values() -> None:
    """Fewer manual values than levels is an error."""
    scale = scale_color_manual(["red"])
    scale.train(pd.Series(["x", "y"]))
    with pytest.raises(ValueError):
        scale.map(pd.Series(["x"]))


def test_continuous_size_maps_into_range() -> None:
    """A size scale maps its limits onto the ends of its range."""
    scale = scale_size_continuous(range=(1.0, 6.0))
    scale.train(pd.Series([0.0, 10.0]))
    np.testing.assert_allclose(scale.map([0.0, 10.0]), [1.0, 6.0])


def test_size_legend_values_round_trip() -> None:
    """Inverting mapped sizes recovers the break values."""
    scale = scale_size_continuous()
    scale.train(pd.Series([1.0, 5.0]))
    breaks = scale.get_breaks()
    np.testing.assert_allclose(scale.inverse(scale.map(breaks)), breaks)


def test_clone_is_untrained_and_independent() -> None:
    """clone() keeps configuration but not training."""
    scale = scale_x_continuous(limits=(0, 5), name="Displacement")
    scale.train(pd.Series([1.0, 9.0]))
    copy = scale.clone()
    assert not copy.trained
    assert copy.limits == (0, 5)
    assert copy.title() == "Displacement"
    assert scale.trained


def test_labels_follow_explicit_breaks() -> None:
    """Labels given alongside breaks are matched to the kept breaks."""
    scale = scale_x_continuous(breaks=[0, 5, 50], labels=["zero", "five", "fifty"])
    scale.train(pd.Series([0.0, 10.0]))
    breaks = scale.get_breaks()
    assert breaks.tolist() == [0.0, 5.0]
    assert scale.get_labels(breaks) == ["zero", "five"]


def test_identity_scale_has_no_guide() -> None:
    """Identity scales never train and draw no guide."""
    scale = scale_color_identity()
    scale.train(pd.Series(["red"]))
    assert scale.guide_type == "none"
    assert scale.get_breaks() == []


def test_guide_types() -> None:
    """Positions get axes, continuous colour a colorbar, the rest legends."""
    assert scale_x_continuous().guide_type == "axis"
    assert ContinuousScale("color").guide_type == "colorbar"
    assert DiscreteScale("color").guide_type == "legend"
    assert scale_size_continuous().guide_type == "legend"
    assert DiscreteScale("color", guide="none").guide_type == "none"


def test_default_scale_inference() -> None:
    """Numeric data gets continuous scales, other data discrete ones."""
    assert isinstance(default_scale("x", pd.Series([1.0])), ContinuousScale)
    assert isinstance(default_scale("xmin", pd.Series(["a"])), DiscreteScale)
    assert isinstance(default_scale("color", pd.Series([True])), DiscreteScale)
    assert default_scale("group", pd.Series([1])) is None
    assert default_scale("label", pd.Series(["a"])) is None


def test_default_scale_rejects_continuous_shape() -> None:
    """Continuous data cannot be mapped to shape."""
    with pytest.raises(ScaleConflictError):
        default_scale("shape", pd.Series([1.0, 2.0]))


def test_scales_list_add_defaults_only_fills_gaps() -> None:
    """add_defaults adds one scale per unscaled aesthetic family."""
    scales = ScalesList([scale_x_continuous()])
    df = pd.DataFrame({"x": [1.0], "xmin": [0.5], "color": ["a"], "group": [1], "PANEL": [1]})
    added = scales.add_defaults(df)

    assert [s.aesthetic for s in added] == ["color"]
    assert [s.aesthetic for s in scales] == ["x", "color"]
    assert scales.x is not None
    assert scales.y is None


def test_scales_list_replaces_scale_for_same_aesthetic() -> None:
    """Adding a second x scale replaces the first."""
    first, second = scale_x_continuous(), scale_x_log10()
    scales = ScalesList([first, second])
    assert len(scales) == 1
    assert scales.x is second


def test_scales_list_position_selection() -> None:
    """train_df with position=False leaves position scales untouched."""
    scales = ScalesList([scale_x_continuous(), scale_size_continuous()])
    scales.train_df(pd.DataFrame({"x": [1.0, 2.0], "size": [3.0, 4.0]}), position=False)
    assert not scales.x.trained
    assert scales.find("size").get_limits() == (3.0, 4.0)
