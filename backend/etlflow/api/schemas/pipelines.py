"""Pipeline request/response schemas."""

from __future__ import annotations

from pydantic import BaseModel, Field

from etlflow.core.constants import HealthStatus


class RollbackRequest(BaseModel):
    """Request payload for the rollback endpoint."""

    version: str = Field(..., pattern=r"^\d+\.\d+\.\d+$")


class VersionHistoryResponse(BaseModel):
    pipeline_id: str
    version: str
    history: list[str]


class ExecuteRequest(BaseModel):
    dry_run: bool = False


class ExecuteResponse(BaseModel):
    """Returned as soon as the run is scheduled."""

    execution_id: str
    pipeline_id: str
    dry_run: bool
    status: str = "running"


class HealthResponse(BaseModel):
    pipeline_id: str
    status: HealthStatus
    score: int = Field(..., ge=0, le=100)
    issues: list[str]
    total_executions: int
    failed_executions: int
