"""Unit tests for position adjustments."""

from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from plotbuild.positions import (
    Position,
    PositionDodge,
    PositionFill,
    PositionIdentity,
    PositionJitter,
    PositionStack,
)


@pytest.fixture
def bars() -> pd.DataFrame:
    """Two groups sharing x = 1 and one bar at x = 2."""
    return pd.DataFrame({
        "x": [1.0, 1.0, 2.0],
        "y": [2.0, 3.0, 4.0],
        "ymin": [0.0, 0.0, 0.0],
        "ymax": [2.0, 3.0, 4.0],
        "xmin": [0.55, 0.55, 1.55],
        "xmax": [1.45, 1.45, 2.45],
        "PANEL": [1, 1, 1],
        "group": [1, 2, 1],
    })


def test_position_rejects_unknown_params() -> None:
    """Unknown constructor parameters raise TypeError."""
    with pytest.raises(TypeError):
        PositionDodge(padding=0.1)


def test_identity_leaves_data_alone(bars: pd.DataFrame) -> None:
    """The identity adjustment returns an equal copy."""
    out = PositionIdentity().compute_layer(bars, {})
    pd.testing.assert_frame_equal(out, bars)


def test_stack_puts_groups_on_top_of_each_other(bars: pd.DataFrame) -> None:
    """Higher group ids sit lower in the stack by default."""
    out = PositionStack().compute_layer(bars, {})
    assert out["ymin"].tolist() == [3.0, 0.0, 0.0]
    assert out["ymax"].tolist() == [5.0, 3.0, 4.0]
    assert out["y"].tolist() == [5.0, 3.0, 4.0]


def test_stack_reverse(bars: pd.DataFrame) -> None:
    """reverse=True stacks group 1 at the bottom."""
    out = PositionStack(reverse=True).compute_layer(bars, {})
    assert out["ymin"].tolist() == [0.0, 2.0, 0.0]
    assert out["ymax"].tolist() == [2.0, 5.0, 4.0]


def test_stack_negative_values_go_down() -> None:
    """Negative heights stack below zero, separately from positive ones."""
    df = pd.DataFrame({"x": [1.0, 1.0, 1.0], "y": [2.0, -1.0, -3.0], "PANEL": 1, "group": [1, 2, 3]})
    out = PositionStack().compute_layer(df, {})
    assert out["ymax"].tolist() == [2.0, -3.0, 0.0]
    assert out["ymin"].tolist() == [0.0, -4.0, -3.0]


def test_fill_normalises_each_stack(bars: pd.DataFrame) -> None:
    """Every stack is scaled to a total height of one."""
    out = PositionFill().compute_layer(bars, {})
    np.testing.assert_allclose(out["ymax"], [1.0, 0.6, 1.0])
    np.testing.assert_allclose(out["ymin"], [0.6, 0.0, 0.0])


def test_dodge_splits_shared_positions(bars: pd.DataFrame) -> None:
    """Groups at the same x share its width side by side."""
    out = PositionDodge().compute_layer(bars, {})
    np.testing.assert_allclose(out["xmin"], [0.55, 1.0, 1.55])
    np.testing.assert_allclose(out["xmax"], [1.0, 1.45, 2.0])
    np.testing.assert_allclose(out["x"], [0.775, 1.225, 1.775])


def test_dodge_without_x_leaves_data_unchanged() -> None:
    """Dodging data with no x is a no-op."""
    df = pd.DataFrame({"y": [1.0], "PANEL": [1], "group": [1]})
    pd.testing.assert_frame_equal(PositionDodge().compute_layer(df, {}), df)


def test_jitter_is_reproducible_with_seed(panel_frame: pd.DataFrame) -> None:
    """The same seed gives the same noise; the input is not modified."""
    before = panel_frame.copy()
    first = PositionJitter(seed=1).compute_layer(panel_frame, {})
    second = PositionJitter(seed=1).compute_layer(panel_frame, {})
    pd.testing.assert_frame_equal(first, second)
    pd.testing.assert_frame_equal(panel_frame, before)


def test_jitter_stays_within_width_and_height(panel_frame: pd.DataFrame) -> None:
    """Noise is bounded by width/height; a zero width leaves x alone."""
    out = PositionJitter(width=0.0, height=0.1, seed=3).compute_layer(panel_frame, {})
    pd.testing.assert_series_equal(out["x"], panel_frame["x"])
    assert (out["y"] - panel_frame["y"]).abs().max() <= 0.1
    assert not np.allclose(out["y"], panel_frame["y"])


def test_adjustments_run_per_panel() -> None:
    """Stacks never reach across panels."""
    df = pd.DataFrame({"x": [1.0, 1.0], "y": [2.0, 3.0], "PANEL": [1, 2], "group": [1, 1]})
    out = PositionStack().compute_layer(df, {})
    assert out["ymin"].tolist() == [0.0, 0.0]


def test_empty_data_passes_through() -> None:
    """Adjusting an empty frame returns an empty frame."""
    df = pd.DataFrame({"x": [], "y": [], "PANEL": [], "group": []})
    assert Position().compute_layer(df, {}).empty
