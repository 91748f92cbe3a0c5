"""
Domain models — pydantic definitions for pipelines, executions and templates.

These are storage-agnostic: repositories serialise them to JSON documents
and the API layer returns them directly.
"""

from etlflow.models.execution import Execution, ExecutionError, ExecutionLog
from etlflow.models.pipeline import (
    DataSchema,
    DestinationDefinition,
    FilterCondition,
    Pipeline,
    PipelineDefinition,
    PipelineMetadata,
    Record,
    SourceDefinition,
    Transformation,
)
from etlflow.models.template import PipelineTemplate, TemplateParameter

__all__ = [
    "DataSchema",
    "DestinationDefinition",
    "Execution",
    "ExecutionError",
    "ExecutionLog",
    "FilterCondition",
    "Pipeline",
    "PipelineDefinition",
    "PipelineMetadata",
    "PipelineTemplate",
    "Record",
    "SourceDefinition",
    "TemplateParameter",
    "Transformation",
]
