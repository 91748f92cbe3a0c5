"""
Pipeline definition models.

A Pipeline is a named, versioned definition:
source → ordered transformations → destination.

Definitions are only ever mutated through PipelineRepository.update so
that version bumping cannot be bypassed.  Stored as JSON documents via
`to_document()` (aliases preserved, e.g. `schema`).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from etlflow.core.clock import new_id, utcnow
from etlflow.core.constants import (
    INITIAL_VERSION,
    DestinationType,
    Environment,
    PipelineStatus,
    SourceType,
    TransformationKind,
    WriteMode,
)
from etlflow.pipeline.errors import ValidationError

Record = dict[str, Any]


# ═══════════════════════════════════════════════════════════
#  Schema declarations
# ═══════════════════════════════════════════════════════════

class SchemaColumn(BaseModel):
    name: str
    type: str = "string"
    nullable: bool = True
    default_value: Any = None
    description: str | None = None


class SchemaConstraint(BaseModel):
    name: str
    type: Literal["primary_key", "foreign_key", "unique", "check"]
    columns: list[str] = Field(default_factory=list)
    expression: str | None = None


class DataSchema(BaseModel):
    """Declared shape of source or destination records."""

    columns: list[SchemaColumn] = Field(default_factory=list)
    primary_keys: list[str] = Field(default_factory=list)
    constraints: list[SchemaConstraint] = Field(default_factory=list)

    def required_columns(self) -> list[str]:
        return [c.name for c in self.columns if not c.nullable]


# ═══════════════════════════════════════════════════════════
#  Source / transformations / destination
# ═══════════════════════════════════════════════════════════

class FilterCondition(BaseModel):
    """
    One row-level condition.  `operator` is kept as a free string so an
    unknown operator survives the definition and fails the run that uses it.
    """

    column: str
    operator: str
    value: Any = None


class SourceDefinition(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: SourceType
    config: dict[str, Any] = Field(default_factory=dict)
    data_schema: DataSchema | None = Field(default=None, alias="schema")
    filters: list[FilterCondition] = Field(default_factory=list)


class Transformation(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str
    kind: TransformationKind
    config: dict[str, Any] = Field(default_factory=dict)
    order: int
    enabled: bool = True


class DestinationDefinition(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: DestinationType
    config: dict[str, Any] = Field(default_factory=dict)
    data_schema: DataSchema | None = Field(default=None, alias="schema")
    mode: WriteMode = WriteMode.APPEND


# ═══════════════════════════════════════════════════════════
#  Metadata / monitoring
# ═══════════════════════════════════════════════════════════

class Alert(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str
    type: Literal["error", "warning", "info"] = "error"
    condition: str
    enabled: bool = True
    recipients: list[str] = Field(default_factory=list)


class MetricDefinition(BaseModel):
    name: str
    type: Literal["counter", "gauge", "histogram"] = "counter"
    description: str = ""
    unit: str | None = None


class Threshold(BaseModel):
    metric: str
    operator: Literal["gt", "gte", "lt", "lte", "eq", "ne"]
    value: float
    severity: Literal["warning", "error"] = "warning"


class MonitoringConfig(BaseModel):
    enabled: bool = True
    alerts: list[Alert] = Field(default_factory=list)
    metrics: list[MetricDefinition] = Field(default_factory=list)
    thresholds: list[Threshold] = Field(default_factory=list)


class PipelineMetadata(BaseModel):
    version: str = INITIAL_VERSION
    author: str = ""
    tags: list[str] = Field(default_factory=list)
    documentation: str | None = None
    dependencies: list[str] = Field(default_factory=list)
    environment: Environment = Environment.DEVELOPMENT
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)


# ═══════════════════════════════════════════════════════════
#  Pipeline
# ═══════════════════════════════════════════════════════════

class PipelineDefinition(BaseModel):
    """Caller-supplied part of a pipeline (everything the repository doesn't own)."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1)
    description: str | None = None
    status: PipelineStatus = PipelineStatus.DRAFT
    schedule: str | None = None
    source: SourceDefinition
    transformations: list[Transformation] = Field(default_factory=list)
    destination: DestinationDefinition
    metadata: PipelineMetadata = Field(default_factory=PipelineMetadata)
    next_run: datetime | None = None

    def to_document(self) -> dict[str, Any]:
        """JSON-safe dict for storage and API responses."""
        return self.model_dump(mode="json", by_alias=True)


class Pipeline(PipelineDefinition):
    """A stored pipeline, including repository-owned fields."""

    id: str = Field(default_factory=new_id)
    version: str = INITIAL_VERSION
    version_history: list[str] = Field(default_factory=lambda: [INITIAL_VERSION])
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    last_run: datetime | None = None

    def ordered_transformations(self) -> list[Transformation]:
        """Enabled transformations in application order."""
        return sorted(
            (t for t in self.transformations if t.enabled),
            key=lambda t: t.order,
        )


# Fields the repository owns; a patch may never set them.
PROTECTED_FIELDS = frozenset({"id", "version", "version_history", "created_at", "updated_at"})

# Fields whose change produces a new version.
VERSIONED_FIELDS = frozenset({"source", "destination", "transformations"})


def check_transformation_order(transformations: list[Transformation]) -> None:
    """Reject duplicate `order` values; application order must be total."""
    seen: dict[int, str] = {}
    for t in transformations:
        if t.order in seen:
            raise ValidationError(
                f"Duplicate transformation order {t.order} "
                f"('{seen[t.order]}' and '{t.name}')",
                details={"order": t.order, "transformations": [seen[t.order], t.name]},
            )
        seen[t.order] = t.name
