"""API schema package."""

from etlflow.api.schemas.executions import CancelResponse, ExecutionSummary
from etlflow.api.schemas.pipelines import (
    ExecuteRequest,
    ExecuteResponse,
    HealthResponse,
    RollbackRequest,
    VersionHistoryResponse,
)
from etlflow.api.schemas.templates import InstantiateRequest

__all__ = [
    "CancelResponse",
    "ExecuteRequest",
    "ExecuteResponse",
    "ExecutionSummary",
    "HealthResponse",
    "InstantiateRequest",
    "RollbackRequest",
    "VersionHistoryResponse",
]
