"""Read-only per-stage snapshots of a build or assembly run.

Pass a ``PipelineTrace`` to ``build_plot`` / ``assemble_plot`` to record the
state after every stage. Snapshots are deep copies; changing one never
affects the pipeline or other snapshots.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Iterator, Mapping, Optional, Sequence, Union

import pandas as pd

from plotbuild.grid import GridTable
from plotbuild.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class StageSnapshot:
    """State after one stage.

    Attributes:
        index: Position of the stage in its pipeline (1-based).
        name: Stage name, e.g. "compute_statistic" or "guide_placement".
        pipeline: "build" or "assemble".
        layer_data: Copies of every layer's data after the stage (build only).
        layout: Summary of the Layout (panel table, scale ranges).
        plot_table: Copy of the plot table (assembly steps that have one).
        extra: Stage-specific values (e.g. grob counts per layer and panel).
    """

    index: int
    name: str
    pipeline: str
    layer_data: tuple[pd.DataFrame, ...] = ()
    layout: Mapping[str, Any] = field(default_factory=dict)
    plot_table: Optional[GridTable] = None
    extra: Mapping[str, Any] = field(default_factory=dict)


def summarize_layout(layout) -> dict[str, Any]:
    """Plain summary of a Layout for snapshots."""
    if layout is None:
        return {}
    summary: dict[str, Any] = {
        "panels": layout.layout.copy() if len(layout.layout) else pd.DataFrame(),
        "scales": {},
    }
    for scale in layout.scales:
        summary["scales"][scale.aesthetic] = {
            "type": type(scale).__name__,
            "limits": list(scale.get_limits()),
        }
    return summary


class PipelineTrace:
    """Ordered recorder of StageSnapshots, keyed by stage name and index.

    Examples:
        trace = PipelineTrace()
        build = build_plot(spec, trace=trace)
        trace["compute_statistic"].layer_data[0]
        trace[1].name  # "resolve_data"
    """

    def __init__(self) -> None:
        self._snapshots: list[StageSnapshot] = []

    def __repr__(self) -> str:
        return f"PipelineTrace(stages={self.names})"

    def __len__(self) -> int:
        return len(self._snapshots)

    def __iter__(self) -> Iterator[StageSnapshot]:
        return iter(self._snapshots)

    def __contains__(self, key: object) -> bool:
        return any(s.name == key for s in self._snapshots)

    def __getitem__(self, key: Union[str, int]) -> StageSnapshot:
        """Snapshot by stage name, or by 1-based stage index within the first pipeline recorded."""
        if isinstance(key, str):
            for snap in self._snapshots:
                if snap.name == key:
                    return snap
            raise KeyError(f"No stage named {key!r}; recorded: {self.names}")
        for snap in self._snapshots:
            if snap.index == key:
                return snap
        raise KeyError(f"No stage with index {key}")

    @property
    def names(self) -> list[str]:
        return [s.name for s in self._snapshots]

    def stages(self, pipeline: Optional[str] = None) -> list[StageSnapshot]:
        return [s for s in self._snapshots if pipeline is None or s.pipeline == pipeline]

    def as_mapping(self) -> Mapping[str, StageSnapshot]:
        return MappingProxyType({s.name: s for s in self._snapshots})

    def record(
        self,
        index: int,
        name: str,
        pipeline: str,
        *,
        layer_data: Sequence[pd.DataFrame] = (),
        layout=None,
        plot_table: Optional[GridTable] = None,
        extra: Optional[Mapping[str, Any]] = None,
    ) -> StageSnapshot:
        snap = StageSnapshot(
            index=index,
            name=name,
            pipeline=pipeline,
            layer_data=tuple(df.copy(deep=True) for df in layer_data),
            layout=MappingProxyType(summarize_layout(layout)),
            plot_table=plot_table.copy() if plot_table is not None else None,
            extra=MappingProxyType(dict(extra or {})),
        )
        self._snapshots.append(snap)
        logger.debug(f"Recorded {pipeline} stage {index} ({name})")
        return snap
