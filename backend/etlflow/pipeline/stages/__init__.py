"""Transformation stage library — one pure stage per transformation kind."""

from etlflow.pipeline.stages.base import StageResult, TransformationStage
from etlflow.pipeline.stages.registry import StageRegistry, default_stage_registry

__all__ = ["StageRegistry", "StageResult", "TransformationStage", "default_stage_registry"]
