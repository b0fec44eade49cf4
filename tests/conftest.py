# tests/conftest.py
"""Pytest configuration and shared fixtures for plotbuild tests."""
from __future__ import annotations

import sys
from pathlib import Path

import pandas as pd
import pytest


def pytest_configure() -> None:
    # Ensure plotbuild package is importable when running tests from repo root.
    repo_root = Path(__file__).resolve().parents[1]
    src_dir = repo_root / "src"
    if src_dir.exists() and str(src_dir) not in sys.path:
        sys.path.insert(0, str(src_dir))


@pytest.fixture
def cars() -> pd.DataFrame:
    """Small mpg-like table: two numeric columns and two discrete ones."""
    return pd.DataFrame({
        "displ": [1.8, 2.0, 2.8, 3.1, 4.2, 5.3, 2.5, 3.6],
        "hwy": [29, 31, 26, 27, 20, 17, 28, 24],
        "cyl": [4, 4, 6, 6, 8, 8, 4, 6],
        "drv": ["f", "f", "f", "4", "4", "r", "f", "r"],
        "kind": ["compact", "compact", "midsize", "midsize", "suv", "suv", "compact", "midsize"],
    })


@pytest.fixture
def panel_frame() -> pd.DataFrame:
    """Already mapped rows of one panel, as a stat or position receives them."""
    return pd.DataFrame({
        "x": [1.0, 1.0, 2.0, 2.0, 3.0],
        "y": [2.0, 3.0, 1.0, 4.0, 5.0],
        "PANEL": [1, 1, 1, 1, 1],
        "group": [1, 2, 1, 2, 1],
    })
