"""
Pipeline endpoints — CRUD, versioning, execution trigger and health.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Response, status

from etlflow.api.deps import get_engine, get_executions, get_health_monitor, get_pipelines
from etlflow.api.schemas.executions import ExecutionSummary
from etlflow.api.schemas.pipelines import (
    ExecuteRequest,
    ExecuteResponse,
    HealthResponse,
    RollbackRequest,
    VersionHistoryResponse,
)
from etlflow.models.pipeline import Pipeline, PipelineDefinition
from etlflow.monitoring.health import HealthMonitor
from etlflow.pipeline.engine import ExecutionEngine
from etlflow.repositories.executions import ExecutionStore
from etlflow.repositories.pipelines import PipelineRepository

router = APIRouter(prefix="/pipelines", tags=["Pipelines"])


# ─── CRUD ─────────────────────────────────────────────────
@router.get("", response_model=list[Pipeline])
async def list_pipelines(pipelines: PipelineRepository = Depends(get_pipelines)):
    return await pipelines.list()


@router.post("", response_model=Pipeline, status_code=status.HTTP_201_CREATED)
async def create_pipeline(
    definition: PipelineDefinition,
    pipelines: PipelineRepository = Depends(get_pipelines),
):
    """Create a pipeline at version 1.0.0."""
    return await pipelines.create(definition)


@router.get("/{pipeline_id}", response_model=Pipeline)
async def get_pipeline(pipeline_id: str, pipelines: PipelineRepository = Depends(get_pipelines)):
    return await pipelines.get(pipeline_id)


@router.patch("/{pipeline_id}", response_model=Pipeline)
async def update_pipeline(
    pipeline_id: str,
    patch: dict[str, Any] = Body(...),
    pipelines: PipelineRepository = Depends(get_pipelines),
):
    """
    Partial update.  Changing source, destination or transformations
    bumps the patch version.
    """
    return await pipelines.update(pipeline_id, patch)


@router.delete("/{pipeline_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_pipeline(pipeline_id: str, pipelines: PipelineRepository = Depends(get_pipelines)):
    """Delete a pipeline and all of its executions."""
    if not await pipelines.delete(pipeline_id):
        raise HTTPException(status_code=404, detail=f"Pipeline '{pipeline_id}' not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ─── Versioning ───────────────────────────────────────────
@router.get("/{pipeline_id}/versions", response_model=VersionHistoryResponse)
async def get_version_history(pipeline_id: str, pipelines: PipelineRepository = Depends(get_pipelines)):
    pipeline = await pipelines.get(pipeline_id)
    return VersionHistoryResponse(
        pipeline_id=pipeline.id,
        version=pipeline.version,
        history=pipeline.version_history,
    )


@router.post("/{pipeline_id}/rollback", response_model=Pipeline)
async def rollback_pipeline(
    pipeline_id: str,
    body: RollbackRequest,
    pipelines: PipelineRepository = Depends(get_pipelines),
):
    """Point the pipeline at an earlier version (field values are not restored)."""
    return await pipelines.rollback(pipeline_id, body.version)


# ─── Execution ────────────────────────────────────────────
@router.post("/{pipeline_id}/execute", response_model=ExecuteResponse, status_code=status.HTTP_202_ACCEPTED)
async def execute_pipeline(
    pipeline_id: str,
    body: ExecuteRequest | None = None,
    engine: ExecutionEngine = Depends(get_engine),
):
    """
    Trigger a run.  Returns at once with the execution id; poll
    GET /executions/{id} for progress.  409 if the pipeline is already running.
    """
    dry_run = body.dry_run if body else False
    execution_id = await engine.execute(pipeline_id, dry_run=dry_run)
    return ExecuteResponse(execution_id=execution_id, pipeline_id=pipeline_id, dry_run=dry_run)


@router.get("/{pipeline_id}/executions", response_model=list[ExecutionSummary])
async def list_pipeline_executions(
    pipeline_id: str,
    limit: int = 50,
    offset: int = 0,
    pipelines: PipelineRepository = Depends(get_pipelines),
    executions: ExecutionStore = Depends(get_executions),
):
    """Executions of a pipeline, oldest first."""
    await pipelines.get(pipeline_id)
    runs = await executions.list_by_pipeline(pipeline_id)
    return [
        ExecutionSummary(
            id=e.id,
            pipeline_id=e.pipeline_id,
            pipeline_version=e.pipeline_version,
            dry_run=e.dry_run,
            status=e.status,
            start_time=e.start_time,
            end_time=e.end_time,
            duration_ms=e.duration_ms,
            records_processed=e.records_processed,
            records_failed=e.records_failed,
            error_count=len(e.errors),
        )
        for e in runs[offset:offset + limit]
    ]


@router.get("/{pipeline_id}/health", response_model=HealthResponse)
async def get_pipeline_health(pipeline_id: str, monitor: HealthMonitor = Depends(get_health_monitor)):
    health = await monitor.get_health(pipeline_id)
    return HealthResponse(pipeline_id=pipeline_id, **health.to_dict())
