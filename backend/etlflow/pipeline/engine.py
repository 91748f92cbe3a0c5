"""
ExecutionEngine — runs a pipeline: extract → validate → filter →
transformations (by ascending order) → load.

Responsibilities:
    - Single-flight per pipeline (a second trigger while one is running
      is rejected with ConflictError, never queued)
    - Snapshot the definition at trigger time so later edits never leak
      into a running execution
    - Run executions as asyncio tasks bounded by MAX_CONCURRENT_RUNS
    - Capture every in-run failure as a structured error on the Execution
    - Cooperative cancellation between phases
    - Persist execution state with bounded retries; a store outage is
      logged and never crashes the worker

Error kinds recorded on a failed execution:
    extraction              → system
    source schema / filters → validation
    transformation stage    → transformation
    load                    → destination
    anything else           → system
"""

from __future__ import annotations

import asyncio
import threading

from etlflow.core.clock import utcnow
from etlflow.core.config import settings
from etlflow.core.constants import ErrorKind, ExecutionStatus, LogLevel
from etlflow.core.logging import get_logger
from etlflow.models.execution import Execution
from etlflow.models.pipeline import DataSchema, Record, Transformation
from etlflow.pipeline.adapters.registry import AdapterRegistry
from etlflow.pipeline.context import RunContext
from etlflow.pipeline.errors import ConflictError, EtlError, NotFoundError
from etlflow.pipeline.stages.filter import evaluate_conditions
from etlflow.pipeline.stages.registry import StageRegistry
from etlflow.repositories.executions import ExecutionStore
from etlflow.repositories.pipelines import PipelineRepository

logger = get_logger("pipeline.engine")


class _Cancelled(Exception):
    """Raised at a phase boundary when cancellation was requested."""


class _PhaseFailed(Exception):
    """Raised after a phase failure has been recorded on the execution."""


class ExecutionEngine:
    """
    Usage::

        engine = ExecutionEngine(pipelines, executions, stages, adapters)
        execution_id = await engine.execute(pipeline_id)
        execution = await engine.wait_for(execution_id)
    """

    def __init__(
        self,
        pipelines: PipelineRepository,
        executions: ExecutionStore,
        stages: StageRegistry,
        adapters: AdapterRegistry,
        *,
        max_concurrent_runs: int | None = None,
        status_write_retries: int | None = None,
        status_write_retry_delay: float | None = None,
    ) -> None:
        self.pipelines = pipelines
        self.executions = executions
        self.stages = stages
        self.adapters = adapters

        self.max_concurrent_runs = max_concurrent_runs or settings.MAX_CONCURRENT_RUNS
        self.status_write_retries = max(1, status_write_retries or settings.STATUS_WRITE_RETRIES)
        self.status_write_retry_delay = (
            settings.STATUS_WRITE_RETRY_DELAY if status_write_retry_delay is None else status_write_retry_delay
        )

        # pipeline_id → execution_id of its running execution
        self._running: dict[str, str] = {}
        self._running_lock = threading.Lock()

        self._contexts: dict[str, RunContext] = {}
        self._tasks: dict[str, asyncio.Task] = {}

        self._slots: asyncio.Semaphore | None = None
        self._slots_loop: asyncio.AbstractEventLoop | None = None

    # ═══════════════════════════════════════════════════════════
    #  Public API
    # ═══════════════════════════════════════════════════════════

    async def execute(self, pipeline_id: str, dry_run: bool = False) -> str:
        """
        Trigger a run and return its execution id immediately.

        Raises:
            NotFoundError: unknown pipeline (no execution is created)
            ConflictError: the pipeline already has a running execution
        """
        pipeline = await self.pipelines.get(pipeline_id)
        snapshot = pipeline.model_copy(deep=True)

        execution = Execution(
            pipeline_id=pipeline_id,
            pipeline_version=snapshot.version,
            dry_run=dry_run,
        )
        self._claim(pipeline_id, execution.id)

        log = logger.bind(execution_id=execution.id, pipeline_id=pipeline_id)
        ctx = RunContext(pipeline=snapshot, execution=execution, log=log)
        try:
            ctx.audit(
                LogLevel.INFO,
                "Execution started",
                pipeline=snapshot.name,
                version=snapshot.version,
                dry_run=dry_run,
            )
            await self._persist(ctx)
            await self._touch_last_run(ctx)

            self._contexts[execution.id] = ctx
            task = asyncio.create_task(self._run(ctx), name=f"etl-run-{execution.id}")
            self._tasks[execution.id] = task
            task.add_done_callback(lambda _t, eid=execution.id: self._forget(eid))
        except Exception:
            self._release(pipeline_id, execution.id)
            self._contexts.pop(execution.id, None)
            raise

        return execution.id

    async def cancel(self, execution_id: str) -> bool:
        """
        Request cancellation of a running execution.  Takes effect at the
        next phase boundary; False when the execution is not running here.
        """
        ctx = self._contexts.get(execution_id)
        if ctx is None or ctx.execution.is_terminal:
            return False
        ctx.cancel_requested = True
        ctx.log.info("Cancellation requested")
        return True

    async def wait_for(self, execution_id: str) -> Execution:
        """Await a run started by this engine and return the final execution."""
        ctx = self._contexts.get(execution_id)
        task = self._tasks.get(execution_id)
        if task is not None:
            await asyncio.shield(task)
        if ctx is not None:
            return ctx.execution
        return await self.executions.get(execution_id)

    def is_running(self, pipeline_id: str) -> bool:
        with self._running_lock:
            return pipeline_id in self._running

    def running_execution(self, pipeline_id: str) -> str | None:
        with self._running_lock:
            return self._running.get(pipeline_id)

    async def shutdown(self) -> None:
        """Wait for every in-flight run to finish."""
        tasks = list(self._tasks.values())
        if tasks:
            logger.info("Waiting for in-flight executions", count=len(tasks))
            await asyncio.gather(*tasks, return_exceptions=True)

    # ═══════════════════════════════════════════════════════════
    #  Single-flight guard
    # ═══════════════════════════════════════════════════════════

    def _claim(self, pipeline_id: str, execution_id: str) -> None:
        with self._running_lock:
            current = self._running.get(pipeline_id)
            if current is not None:
                raise ConflictError(pipeline_id, current)
            self._running[pipeline_id] = execution_id

    def _release(self, pipeline_id: str, execution_id: str) -> None:
        with self._running_lock:
            if self._running.get(pipeline_id) == execution_id:
                del self._running[pipeline_id]

    def _forget(self, execution_id: str) -> None:
        self._tasks.pop(execution_id, None)
        self._contexts.pop(execution_id, None)

    def _semaphore(self) -> asyncio.Semaphore:
        loop = asyncio.get_running_loop()
        if self._slots is None or self._slots_loop is not loop:
            self._slots = asyncio.Semaphore(self.max_concurrent_runs)
            self._slots_loop = loop
        return self._slots

    # ═══════════════════════════════════════════════════════════
    #  Run
    # ═══════════════════════════════════════════════════════════

    async def _run(self, ctx: RunContext) -> None:
        execution = ctx.execution
        try:
            async with self._semaphore():
                await self._run_phases(ctx)
            ctx.audit(
                LogLevel.INFO,
                "Execution completed",
                records_processed=len(ctx.batch),
                records_failed=execution.records_failed,
            )
            execution.finish(ExecutionStatus.COMPLETED, records_processed=len(ctx.batch))
        except _Cancelled:
            ctx.audit(LogLevel.WARN, "Execution cancelled")
            execution.finish(ExecutionStatus.CANCELLED)
        except _PhaseFailed:
            ctx.audit(LogLevel.ERROR, "Execution failed", errors=len(execution.errors))
            execution.finish(ExecutionStatus.FAILED)
        except Exception as exc:
            # Unexpected error outside any phase
            ctx.log.exception("Unexpected error in execution", error=str(exc))
            if not execution.is_terminal:
                execution.record_error(
                    ErrorKind.SYSTEM,
                    f"Unexpected: {exc}",
                    details={"phase": ctx.phase, "cause": type(exc).__name__},
                )
                ctx.audit(LogLevel.ERROR, "Execution failed", errors=len(execution.errors))
                execution.finish(ExecutionStatus.FAILED)
        finally:
            await self._persist(ctx)
            await self._drop_if_orphaned(ctx)
            self._release(ctx.pipeline_id, ctx.execution_id)

    async def _run_phases(self, ctx: RunContext) -> None:
        self._checkpoint(ctx)
        await self._extract(ctx)
        self._validate_schema(ctx)
        self._apply_source_filters(ctx)
        await self._persist(ctx)

        for transformation in ctx.pipeline.ordered_transformations():
            self._checkpoint(ctx)
            await self._apply_transformation(ctx, transformation)

        self._checkpoint(ctx)
        await self._load(ctx)

    def _checkpoint(self, ctx: RunContext) -> None:
        if ctx.cancel_requested:
            raise _Cancelled()

    def _fail(self, ctx: RunContext, kind: ErrorKind, exc: Exception, message: str, /, **details) -> _PhaseFailed:
        """Record `exc` on the execution and return the exception that stops the run."""
        if isinstance(exc, EtlError):
            details = {**exc.details, **details}
        record = getattr(exc, "record", None)
        ctx.execution.record_error(
            kind,
            message,
            details={"phase": ctx.phase, "cause": type(exc).__name__, **details},
            record=record if isinstance(record, dict) else None,
        )
        ctx.audit(LogLevel.ERROR, message)
        return _PhaseFailed(message)

    # ─── Extract ────────────────────────────────────────

    async def _extract(self, ctx: RunContext) -> None:
        ctx.phase = "extract"
        source = ctx.pipeline.source
        try:
            adapter = self.adapters.source(source.type)
            records = await adapter.extract(source.config)
        except Exception as exc:
            raise self._fail(ctx, ErrorKind.SYSTEM, exc, f"Extraction failed: {exc}", source_type=str(source.type)) from exc

        ctx.batch = records
        ctx.execution.set_metric("records_extracted", len(records))
        ctx.audit(LogLevel.INFO, f"Extracted {len(records)} records", source_type=str(source.type))

    def _validate_schema(self, ctx: RunContext) -> None:
        """Reject records that are not objects or miss a non-nullable column."""
        schema: DataSchema | None = ctx.pipeline.source.data_schema
        if schema is None:
            return
        ctx.phase = "validate"

        defaults = {c.name: c.default_value for c in schema.columns if not c.nullable}
        valid: list[Record] = []
        rejected = 0
        for record in ctx.batch:
            if not isinstance(record, dict):
                missing = list(defaults)
                bad_record = {"value": record}
            else:
                for column, default in defaults.items():
                    if record.get(column) is None and default is not None:
                        record[column] = default
                missing = [c for c in defaults if record.get(c) is None]
                bad_record = record

            if missing:
                rejected += 1
                ctx.execution.record_error(
                    ErrorKind.VALIDATION,
                    f"Record is missing required columns {missing}",
                    details={"phase": ctx.phase, "columns": missing},
                    record=bad_record,
                )
            else:
                valid.append(record)

        if rejected:
            ctx.execution.add_failed(rejected)
            ctx.audit(LogLevel.WARN, f"{rejected} records rejected by source schema", rejected=rejected)
        ctx.batch = valid

    def _apply_source_filters(self, ctx: RunContext) -> None:
        filters = ctx.pipeline.source.filters
        if not filters:
            return
        ctx.phase = "source_filter"
        before = len(ctx.batch)
        try:
            ctx.batch = evaluate_conditions(filters, ctx.batch)
        except Exception as exc:
            raise self._fail(ctx, ErrorKind.VALIDATION, exc, f"Invalid source filter: {exc}") from exc
        ctx.audit(LogLevel.INFO, "Source filters applied", before=before, after=len(ctx.batch))

    # ─── Transform ──────────────────────────────────────

    async def _apply_transformation(self, ctx: RunContext, transformation: Transformation) -> None:
        ctx.phase = f"transform:{transformation.name}"
        before = len(ctx.batch)
        ctx.audit(
            LogLevel.INFO,
            f"Applying transformation '{transformation.name}'",
            kind=str(transformation.kind),
            order=transformation.order,
            records_in=before,
        )
        try:
            result = await self.stages.apply(transformation, ctx.batch)
        except Exception as exc:
            raise self._fail(
                ctx,
                ErrorKind.TRANSFORMATION,
                exc,
                f"Transformation '{transformation.name}' failed: {exc}",
                stage=transformation.name,
                stage_id=transformation.id,
                stage_kind=str(transformation.kind),
            ) from exc

        for warning in result.warnings:
            ctx.audit(LogLevel.WARN, warning, stage=transformation.name)

        ctx.batch = result.records
        stage_counts = ctx.execution.metrics.get("stages", {})
        ctx.execution.set_metric("stages", {**stage_counts, transformation.name: len(ctx.batch)})
        ctx.audit(
            LogLevel.INFO,
            f"Transformation '{transformation.name}' completed",
            records_in=before,
            records_out=len(ctx.batch),
            **result.metadata,
        )

    # ─── Load ───────────────────────────────────────────

    async def _load(self, ctx: RunContext) -> None:
        ctx.phase = "load"
        destination = ctx.pipeline.destination
        if ctx.execution.dry_run:
            ctx.audit(LogLevel.INFO, "Skipping load: dry run", records=len(ctx.batch))
            return

        try:
            adapter = self.adapters.destination(destination.type)
            written = await adapter.load(destination.config, ctx.batch, destination.mode)
        except Exception as exc:
            raise self._fail(
                ctx,
                ErrorKind.DESTINATION,
                exc,
                f"Load failed: {exc}",
                destination_type=str(destination.type),
            ) from exc

        ctx.execution.set_metric("records_loaded", written)
        ctx.audit(
            LogLevel.INFO,
            f"Loaded {written} records",
            destination_type=str(destination.type),
            mode=str(destination.mode),
        )

    # ═══════════════════════════════════════════════════════════
    #  Persistence
    # ═══════════════════════════════════════════════════════════

    async def _persist(self, ctx: RunContext) -> bool:
        """Save the execution, retrying a bounded number of times."""
        for attempt in range(1, self.status_write_retries + 1):
            try:
                await self.executions.save(ctx.execution)
                return True
            except Exception as exc:
                if attempt < self.status_write_retries:
                    ctx.log.warning(
                        f"Execution write failed (attempt {attempt}/{self.status_write_retries}), retrying",
                        error=str(exc),
                    )
                    await asyncio.sleep(self.status_write_retry_delay)
                    continue
                ctx.log.error(
                    "Execution write failed, giving up",
                    status=str(ctx.execution.status),
                    attempts=attempt,
                    error=str(exc),
                )
        return False

    async def _touch_last_run(self, ctx: RunContext) -> None:
        try:
            await self.pipelines.touch_last_run(ctx.pipeline_id, utcnow())
        except Exception as exc:
            ctx.log.warning("Could not update last_run", error=str(exc))

    async def _drop_if_orphaned(self, ctx: RunContext) -> None:
        """
        The pipeline may be deleted while its run is in flight; the cascade
        then misses the saves that follow.  Remove them once the run ends.
        """
        try:
            await self.pipelines.get(ctx.pipeline_id)
        except NotFoundError:
            try:
                removed = await self.executions.delete_by_pipeline(ctx.pipeline_id)
            except Exception as exc:
                ctx.log.error("Could not remove executions of deleted pipeline", error=str(exc))
                return
            ctx.log.info("Pipeline deleted during run, executions removed", removed=removed)
        except Exception as exc:
            ctx.log.warning("Could not check pipeline after run", error=str(exc))
