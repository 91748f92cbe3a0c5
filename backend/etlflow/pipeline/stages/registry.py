"""
StageRegistry — maps each transformation kind to the stage that applies it.

To add a new stage kind:
    1. Add the kind to TransformationKind
    2. Implement a TransformationStage subclass in stages/
    3. Register it in `default_stage_registry` below
"""

from __future__ import annotations

from etlflow.core.constants import TransformationKind
from etlflow.core.logging import get_logger
from etlflow.models.pipeline import Record, Transformation
from etlflow.pipeline.datasets import DatasetCatalog
from etlflow.pipeline.errors import ValidationError
from etlflow.pipeline.stages.aggregate import AggregateStage
from etlflow.pipeline.stages.base import StageResult, TransformationStage
from etlflow.pipeline.stages.custom import CustomStage, Plugin
from etlflow.pipeline.stages.filter import FilterStage
from etlflow.pipeline.stages.join import JoinStage
from etlflow.pipeline.stages.map import MapStage

logger = get_logger(__name__)


class StageRegistry:
    """Resolves a Transformation to its stage and applies it."""

    def __init__(self, stages: list[TransformationStage] | None = None) -> None:
        self._stages: dict[TransformationKind, TransformationStage] = {}
        for stage in stages or []:
            self.register(stage)

    def register(self, stage: TransformationStage) -> None:
        self._stages[stage.kind] = stage

    def get(self, kind: TransformationKind) -> TransformationStage:
        try:
            return self._stages[kind]
        except KeyError:
            raise ValidationError(
                f"No stage registered for transformation kind '{kind}'",
                details={"kind": str(kind)},
            ) from None

    async def apply(self, transformation: Transformation, batch: list[Record]) -> StageResult:
        stage = self.get(transformation.kind)
        return await stage.apply(transformation, batch)

    def list_kinds(self) -> list[str]:
        return [str(k) for k in self._stages]


def default_stage_registry(
    datasets: DatasetCatalog | None = None,
    plugins: dict[str, Plugin] | None = None,
) -> StageRegistry:
    """Registry with every built-in stage."""
    registry = StageRegistry([
        FilterStage(),
        MapStage(),
        AggregateStage(),
        JoinStage(datasets),
        CustomStage(plugins),
    ])
    logger.debug("Stage registry built", kinds=registry.list_kinds(), plugins=sorted(plugins or {}))
    return registry
