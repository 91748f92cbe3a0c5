"""Execution request/response schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from etlflow.core.constants import ExecutionStatus


class ExecutionSummary(BaseModel):
    """List view of an execution (no logs, no error payloads)."""

    id: str
    pipeline_id: str
    pipeline_version: str | None
    dry_run: bool
    status: ExecutionStatus
    start_time: datetime
    end_time: datetime | None
    duration_ms: int | None
    records_processed: int
    records_failed: int
    error_count: int


class CancelResponse(BaseModel):
    execution_id: str
    cancelled: bool
