"""
TransformationStage — abstract base class for every transformation kind.

A stage is a pure function of (transformation config, input batch):
it must not mutate input records and must not carry state between
calls.  The engine handles ordering, timing, logging and error capture;
stages only implement the record logic.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from etlflow.core.constants import TransformationKind
from etlflow.models.pipeline import Record, Transformation
from etlflow.pipeline.errors import ValidationError


@dataclass
class StageResult:
    """Output of one stage application."""

    records: list[Record]
    warnings: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)


class TransformationStage(ABC):
    """
    Base class for every stage.

    Subclasses MUST implement:
        - kind (TransformationKind)
        - apply(transformation, batch)

    Raise ValidationError for malformed config; any other exception is
    treated by the engine as a transformation failure.
    """

    kind: TransformationKind
    description: str = "No description"

    @abstractmethod
    async def apply(self, transformation: Transformation, batch: list[Record]) -> StageResult:
        """Return the transformed batch.  `batch` must be left untouched."""
        ...

    # ─── Helpers available to all stages ───────────────

    def _result(
        self,
        records: list[Record],
        *,
        warnings: list[str] | None = None,
        **metadata: Any,
    ) -> StageResult:
        return StageResult(records=records, warnings=warnings or [], metadata=metadata)

    def _config_error(self, transformation: Transformation, message: str, **details: Any) -> ValidationError:
        """Build a ValidationError tagged with the offending stage."""
        return ValidationError(
            f"{transformation.name}: {message}",
            details={"stage": transformation.name, "kind": str(self.kind), **details},
        )

    def _parse_items(self, transformation: Transformation, key: str, model: type) -> list:
        """Validate a list-valued config entry into pydantic models."""
        raw = transformation.config.get(key) or []
        if not isinstance(raw, list):
            raise self._config_error(transformation, f"'{key}' must be a list")
        try:
            return [model.model_validate(item) for item in raw]
        except PydanticValidationError as exc:
            raise self._config_error(transformation, f"invalid '{key}' entry: {exc}") from exc
