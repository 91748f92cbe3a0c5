"""
Celery tasks — scheduled pipeline runs.

The scheduler (beat or an external cron) calls `run_pipeline`; the task
triggers the engine and waits for the run to finish inside the worker.
A pipeline that is already running is retried later instead of queued.

Each invocation builds its own Services (fresh DB engine per event loop)
unless `use_services` has installed a shared instance.
"""

from __future__ import annotations

import asyncio
from datetime import timedelta

import structlog

from etlflow.core.clock import utcnow
from etlflow.pipeline.errors import ConflictError
from etlflow.services import Services, build_services
from etlflow.tasks import celery_app

logger = structlog.get_logger("tasks.execution")

# Seconds before a conflicting trigger is retried
CONFLICT_RETRY_DELAY = 30

_services: Services | None = None


def use_services(services: Services | None) -> None:
    """Install a shared Services instance (embedding / tests); None restores per-task wiring."""
    global _services
    _services = services


async def _with_services(work):
    services = _services or build_services()
    owned = _services is None
    if owned:
        await services.startup()
    try:
        return await work(services)
    finally:
        if owned:
            await services.shutdown()


async def _run_pipeline(services: Services, pipeline_id: str, dry_run: bool) -> dict:
    execution_id = await services.engine.execute(pipeline_id, dry_run=dry_run)
    execution = await services.engine.wait_for(execution_id)
    return {
        "execution_id": execution.id,
        "pipeline_id": pipeline_id,
        "status": str(execution.status),
        "records_processed": execution.records_processed,
        "records_failed": execution.records_failed,
        "duration_ms": execution.duration_ms,
        "errors": [e.message for e in execution.errors],
    }


@celery_app.task(bind=True, name="etlflow.tasks.execution_tasks.run_pipeline")
def run_pipeline(self, pipeline_id: str, dry_run: bool = False):
    """
    Run one pipeline to completion.

    Retries (up to task_max_retries) while another execution of the same
    pipeline is running.  NotFoundError propagates: retrying cannot help.
    """
    task_log = logger.bind(task_id=self.request.id, pipeline_id=pipeline_id, dry_run=dry_run)
    task_log.info("Run task started")

    try:
        result = asyncio.run(
            _with_services(lambda services: _run_pipeline(services, pipeline_id, dry_run))
        )
    except ConflictError as exc:
        task_log.warning(
            "Pipeline already running, retrying later",
            running_execution_id=exc.running_execution_id,
            retry_in=CONFLICT_RETRY_DELAY,
        )
        raise self.retry(exc=exc, countdown=CONFLICT_RETRY_DELAY)

    task_log.info(
        "Run task finished",
        execution_id=result["execution_id"],
        status=result["status"],
        records_processed=result["records_processed"],
        duration_ms=result["duration_ms"],
    )
    return result


@celery_app.task(name="etlflow.tasks.execution_tasks.purge_executions")
def purge_executions(older_than_hours: int = 24 * 7):
    """Delete finished executions that ended more than `older_than_hours` ago."""
    cutoff = utcnow() - timedelta(hours=older_than_hours)
    removed = asyncio.run(
        _with_services(lambda services: services.executions.purge(older_than=cutoff))
    )
    logger.info("Purge task finished", removed=removed, cutoff=cutoff.isoformat())
    return {"removed": removed}
