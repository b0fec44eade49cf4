"""Error and warning types raised by the build and assembly pipelines.

Every fatal error derives from PlotBuildError, which carries the index of the
offending layer and the name of the stage that failed once the pipeline has
attached that context. StatComputationWarning is the only recoverable
condition; it is collected on BuildResult.warnings instead of being raised.
"""

from __future__ import annotations

from typing import Optional


class PlotBuildError(Exception):
    """Base class for fatal plot build failures.

    Attributes:
        layer_index: Index of the layer being processed, or None for
            plot-level failures.
        stage: Pipeline stage name, or None if raised outside a stage.
    """

    def __init__(
        self,
        message: str,
        *,
        layer_index: Optional[int] = None,
        stage: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.layer_index = layer_index
        self.stage = stage

    def with_context(self, *, layer_index: Optional[int], stage: str) -> "PlotBuildError":
        """Fill in missing layer/stage context and return self."""
        if self.layer_index is None:
            self.layer_index = layer_index
        if self.stage is None:
            self.stage = stage
        return self

    def __str__(self) -> str:
        where = []
        if self.stage is not None:
            where.append(f"stage={self.stage}")
        if self.layer_index is not None:
            where.append(f"layer={self.layer_index}")
        if not where:
            return self.message
        return f"{self.message} [{', '.join(where)}]"


class SpecificationError(PlotBuildError):
    """Malformed PlotSpec: bad data reference, unusable mapping, wrong types."""


class UnknownFacetKeyError(SpecificationError):
    """Facet variables are absent from a layer's resolved dataset."""


class MissingAestheticError(PlotBuildError):
    """A geom requires an aesthetic that is still absent after default filling."""


class ScaleConflictError(PlotBuildError):
    """Two layers supply incompatible discrete/continuous data to one scale."""


class LayerComputationError(PlotBuildError):
    """Unexpected failure inside a stat, position or geom."""


class StatComputationWarning(UserWarning):
    """A group was too sparse for its stat and its rows were dropped."""

    def __init__(self, message: str, *, layer_index: Optional[int] = None, panel=None, group=None) -> None:
        super().__init__(message)
        self.message = message
        self.layer_index = layer_index
        self.panel = panel
        self.group = group

    def __str__(self) -> str:
        return self.message


class StatSkipGroup(Exception):
    """Raised by Stat.compute_group to drop that group with a warning."""
