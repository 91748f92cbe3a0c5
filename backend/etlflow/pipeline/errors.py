"""
Domain-specific exception hierarchy for the ETL engine.

All exceptions inherit from EtlError so callers can catch broadly or
narrowly as needed.  Each exception carries structured context
(`details`) for logging/debugging and for the API error payload.

Errors raised before an execution exists (NotFoundError, ConflictError,
MissingParameterError) propagate to the caller.  Errors raised inside a
run are captured on the Execution and never reach the trigger's caller.
"""

from __future__ import annotations

from functools import partial
from typing import Any


class EtlError(Exception):
    """Base exception for all engine errors."""

    def __init__(
        self,
        message: str,
        *,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    # Celery pickles task exceptions; keep the subclass and its details
    def __reduce__(self):
        return partial(type(self), details=self.details), (self.message,)


class NotFoundError(EtlError):
    """A pipeline, execution or template does not exist."""

    def __init__(self, entity: str, entity_id: str) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(
            f"{entity} '{entity_id}' not found",
            details={"entity": entity, "id": entity_id},
        )

    def __reduce__(self):
        return type(self), (self.entity, self.entity_id)


class ConflictError(EtlError):
    """The pipeline already has an execution in the running state."""

    def __init__(self, pipeline_id: str, running_execution_id: str) -> None:
        self.pipeline_id = pipeline_id
        self.running_execution_id = running_execution_id
        super().__init__(
            f"Pipeline '{pipeline_id}' is already running (execution '{running_execution_id}')",
            details={"pipeline_id": pipeline_id, "execution_id": running_execution_id},
        )

    def __reduce__(self):
        return type(self), (self.pipeline_id, self.running_execution_id)


class MissingParameterError(EtlError):
    """A required template parameter was not supplied."""

    def __init__(self, template_id: str, parameter: str) -> None:
        self.template_id = template_id
        self.parameter = parameter
        super().__init__(
            f"Required parameter '{parameter}' not provided for template '{template_id}'",
            details={"template_id": template_id, "parameter": parameter},
        )

    def __reduce__(self):
        return type(self), (self.template_id, self.parameter)


class ValidationError(EtlError):
    """A definition or configuration is malformed (e.g. unknown filter operator)."""
    pass


class TransformationError(EtlError):
    """A transformation stage failed during a run."""

    def __init__(
        self,
        message: str,
        *,
        stage_name: str,
        record: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> None:
        self.stage_name = stage_name
        self.record = record
        super().__init__(message, **kwargs)

    def __reduce__(self):
        rebuild = partial(type(self), stage_name=self.stage_name, record=self.record, details=self.details)
        return rebuild, (self.message,)


class ExtractionError(EtlError):
    """The source adapter could not produce records."""
    pass


class DestinationError(EtlError):
    """The destination adapter rejected or failed to write records."""
    pass


class StorageError(EtlError):
    """The backing store is unavailable or rejected a write."""
    pass


class InvalidStateTransitionError(EtlError):
    """Attempt to mutate an execution that already reached a terminal state."""
    pass
