# src/pipeline/stage_plan.py — v1
"""Ordered stage plan: which stage runs at which index.

The plan is static for a deployment. Its length N is the index at which an
item is delivered, and the first stage that depends on the draft is where
revision forks resume.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterator

from scriptconveyor.pipeline.analyzer import ScriptAnalyzer
from scriptconveyor.pipeline.plugin_kit.base_stage import BaseStage
from scriptconveyor.pipeline.stages.analyst import AnalystStage
from scriptconveyor.pipeline.stages.architect import ArchitectStage
from scriptconveyor.pipeline.stages.gate import GateStage
from scriptconveyor.pipeline.stages.optimizer import OptimizerStage
from scriptconveyor.pipeline.stages.qc import QCStage
from scriptconveyor.pipeline.stages.scorer import ScorerStage
from scriptconveyor.pipeline.stages.scout import ScoutStage
from scriptconveyor.pipeline.stages.writer import WriterStage

if TYPE_CHECKING:
    from scriptconveyor.config.settings import Settings
    from scriptconveyor.sources.base_source_provider import BaseSourceProvider


class StagePlan:
    """Immutable ordered list of stages."""

    def __init__(self, stages: list[BaseStage]) -> None:
        if not stages:
            raise ValueError("A stage plan needs at least one stage")
        names = [s.name for s in stages]
        duplicates = {n for n in names if names.count(n) > 1}
        if duplicates:
            raise ValueError(f"Duplicate stage names: {sorted(duplicates)}")
        self._stages = list(stages)
        self._names = names

    def __len__(self) -> int:
        return len(self._stages)

    def __getitem__(self, index: int) -> BaseStage:
        return self._stages[index]

    def __iter__(self) -> Iterator[BaseStage]:
        return iter(self._stages)

    @property
    def names(self) -> list[str]:
        return list(self._names)

    def index_of(self, name: str) -> int:
        return self._names.index(name)

    @property
    def resume_stage(self) -> int:
        """Index of the first stage that depends on the draft."""
        for index, stage in enumerate(self._stages):
            if stage.depends_on_draft:
                return index
        raise ValueError("No stage in the plan depends on the draft")


def build_default_plan(
    settings: Settings,
    source_provider: BaseSourceProvider,
    analyzer: ScriptAnalyzer | None = None,
) -> StagePlan:
    """The standard eight-stage script plan.

    scout → scorer → analyst → architect → writer → qc → optimizer → gate
    """
    analyzer = analyzer or ScriptAnalyzer(settings)
    return StagePlan([
        ScoutStage(source_provider),
        ScorerStage(),
        AnalystStage(),
        ArchitectStage(),
        WriterStage(),
        QCStage(analyzer),
        OptimizerStage(analyzer),
        GateStage(),
    ])
