"""
Execution endpoints — detail view and cancellation.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from etlflow.api.deps import get_engine, get_executions
from etlflow.api.schemas.executions import CancelResponse
from etlflow.models.execution import Execution
from etlflow.pipeline.engine import ExecutionEngine
from etlflow.repositories.executions import ExecutionStore

router = APIRouter(prefix="/executions", tags=["Executions"])


@router.get("/{execution_id}", response_model=Execution)
async def get_execution(execution_id: str, executions: ExecutionStore = Depends(get_executions)):
    """Full execution record including its audit log and errors."""
    return await executions.get(execution_id)


@router.post("/{execution_id}/cancel", response_model=CancelResponse)
async def cancel_execution(
    execution_id: str,
    executions: ExecutionStore = Depends(get_executions),
    engine: ExecutionEngine = Depends(get_engine),
):
    """Request cancellation; takes effect at the next phase boundary."""
    await executions.get(execution_id)
    cancelled = await engine.cancel(execution_id)
    return CancelResponse(execution_id=execution_id, cancelled=cancelled)
