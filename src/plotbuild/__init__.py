"""
plotbuild: a two-stage plot compiler.

This package provides:
- build_plot: PlotSpec -> drawing-ready per-layer DataFrames + trained Layout
- assemble_plot: drawing-ready data -> one composed GridTable for a renderer
- PipelineTrace: read-only snapshots of every build/assembly stage
- Logging utilities for library and application use

Typical use:
    ```python
    from plotbuild import Layer, PlotSpec, build_plot, assemble_plot
    from plotbuild.geoms import GeomPoint

    spec = PlotSpec(data=df, mapping={"x": "displ", "y": "hwy"}, layers=[Layer(GeomPoint())])
    table = assemble_plot(build_plot(spec))
    ```

For logging configuration in scripts:
    ```python
    from plotbuild.utils.logging import configure_logging
    configure_logging(level="DEBUG")
    ```
"""

import logging

from plotbuild.utils.logging import configure_logging, get_logger

from plotbuild.aes import Aes, after_stat
from plotbuild.config import ThemeConfig
from plotbuild.errors import (
    LayerComputationError,
    MissingAestheticError,
    PlotBuildError,
    ScaleConflictError,
    SpecificationError,
    StatComputationWarning,
    UnknownFacetKeyError,
)
from plotbuild.grid import GridTable
from plotbuild.layout import Layout
from plotbuild.pipeline import BuildResult, PipelineTrace, assemble_plot, build_plot
from plotbuild.spec import Labels, Layer, PlotSpec
from plotbuild.theme import Theme, ThemeMode

# Ensure plotbuild logger has NullHandler so logs don't propagate to root
# when no application has configured logging.
_logger = logging.getLogger("plotbuild")
if not _logger.handlers:
    _logger.addHandler(logging.NullHandler())

__all__ = [
    "Aes",
    "BuildResult",
    "GridTable",
    "Labels",
    "Layer",
    "LayerComputationError",
    "Layout",
    "MissingAestheticError",
    "PipelineTrace",
    "PlotBuildError",
    "PlotSpec",
    "ScaleConflictError",
    "SpecificationError",
    "StatComputationWarning",
    "Theme",
    "ThemeConfig",
    "ThemeMode",
    "UnknownFacetKeyError",
    "after_stat",
    "assemble_plot",
    "build_plot",
    "configure_logging",
    "get_logger",
]

__version__ = "0.1.0"
