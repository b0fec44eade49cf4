"""Build and assembly pipelines plus the per-stage trace recorder."""

from plotbuild.pipeline.assemble import STEPS, assemble_plot
from plotbuild.pipeline.build import STAGES, BuildResult, build_plot
from plotbuild.pipeline.trace import PipelineTrace, StageSnapshot

__all__ = [
    "STAGES",
    "STEPS",
    "BuildResult",
    "PipelineTrace",
    "StageSnapshot",
    "assemble_plot",
    "build_plot",
]
