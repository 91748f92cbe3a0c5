"""
Execution models — one concrete run of a pipeline.

State machine:  running → completed | failed | cancelled
Terminal states are final; every mutator raises
InvalidStateTransitionError once the execution is terminal.

Log entries and errors are frozen when appended, so the audit trail is
append-only and never reordered.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from etlflow.core.clock import new_id, utcnow
from etlflow.core.constants import (
    TERMINAL_EXECUTION_STATUSES,
    ErrorKind,
    ExecutionStatus,
    LogLevel,
)
from etlflow.pipeline.errors import InvalidStateTransitionError


class ExecutionLog(BaseModel):
    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(default_factory=utcnow)
    level: LogLevel
    message: str
    context: dict[str, Any] | None = None


class ExecutionError(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    kind: ErrorKind
    message: str
    details: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utcnow)
    record: dict[str, Any] | None = None


class Execution(BaseModel):
    """Tracks a single pipeline run with its audit log."""

    id: str = Field(default_factory=new_id)
    pipeline_id: str
    pipeline_version: str | None = None
    dry_run: bool = False

    status: ExecutionStatus = ExecutionStatus.RUNNING
    start_time: datetime = Field(default_factory=utcnow)
    end_time: datetime | None = None
    duration_ms: int | None = None

    records_processed: int = 0
    records_failed: int = 0

    errors: list[ExecutionError] = Field(default_factory=list)
    logs: list[ExecutionLog] = Field(default_factory=list)
    metrics: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_EXECUTION_STATUSES

    def _ensure_running(self, action: str) -> None:
        if self.is_terminal:
            raise InvalidStateTransitionError(
                f"Cannot {action}: execution '{self.id}' is already {self.status}",
                details={"execution_id": self.id, "status": str(self.status)},
            )

    # ─── Mutators (engine only) ────────────────────────

    def log(self, level: LogLevel, message: str, **context: Any) -> ExecutionLog:
        """Append an audit log entry."""
        self._ensure_running("append log")
        entry = ExecutionLog(level=level, message=message, context=context or None)
        self.logs.append(entry)
        return entry

    def record_error(
        self,
        kind: ErrorKind,
        message: str,
        *,
        details: dict[str, Any] | None = None,
        record: dict[str, Any] | None = None,
    ) -> ExecutionError:
        """Append a structured error."""
        self._ensure_running("record error")
        error = ExecutionError(kind=kind, message=message, details=details or {}, record=record)
        self.errors.append(error)
        return error

    def add_failed(self, count: int = 1) -> None:
        self._ensure_running("count failed records")
        if count < 0:
            raise ValueError("records_failed never decreases")
        self.records_failed += count

    def set_metric(self, key: str, value: Any) -> None:
        self._ensure_running("set metric")
        self.metrics[key] = value

    def finish(
        self,
        status: ExecutionStatus,
        *,
        records_processed: int | None = None,
        at: datetime | None = None,
    ) -> None:
        """Move to a terminal status and stamp end time / duration."""
        self._ensure_running(f"transition to {status}")
        if status not in TERMINAL_EXECUTION_STATUSES:
            raise InvalidStateTransitionError(
                f"'{status}' is not a terminal status",
                details={"execution_id": self.id},
            )
        if records_processed is not None:
            self.records_processed = max(self.records_processed, records_processed)
        self.end_time = at or utcnow()
        self.duration_ms = int((self.end_time - self.start_time).total_seconds() * 1000)
        self.status = status

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json")
