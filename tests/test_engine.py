"""ExecutionEngine tests — run lifecycle, error capture, single-flight, cancellation."""

from __future__ import annotations

import pytest

from conftest import filter_step, map_step, pipeline_definition
from etlflow.core.constants import DestinationType, ErrorKind, ExecutionStatus, LogLevel, SourceType
from etlflow.pipeline.adapters.base import DestinationAdapter, SourceAdapter
from etlflow.pipeline.errors import ConflictError, NotFoundError, StorageError
from etlflow.repositories.storage import InMemoryDocumentStore
from etlflow.services import build_services


class SpyDestination(DestinationAdapter):
    def __init__(self) -> None:
        self.calls: list[tuple[dict, list, str]] = []

    async def load(self, config, records, mode):
        self.calls.append((config, records, str(mode)))
        return len(records)


class ExplodingSource(SourceAdapter):
    async def extract(self, config):
        raise RuntimeError("boom")


class BrokenDestination(DestinationAdapter):
    async def load(self, config, records, mode):
        raise ConnectionError("destination offline")


class FlakyStore(InMemoryDocumentStore):
    """Fails the first `failures` saves (or every save when failures is None)."""

    def __init__(self, failures: int | None) -> None:
        super().__init__()
        self.failures = failures
        self.attempts = 0

    async def save(self, doc_id, document):
        self.attempts += 1
        if self.failures is None or self.attempts <= self.failures:
            raise StorageError("store unavailable")
        await super().save(doc_id, document)


@pytest.fixture
def spy(services):
    spy = SpyDestination()
    services.adapters.register_destination(DestinationType.DATA_SOURCE, spy)
    return spy


async def run(services, definition, *, dry_run=False):
    pipeline = await services.pipelines.create(definition)
    execution_id = await services.engine.execute(pipeline.id, dry_run=dry_run)
    return await services.engine.wait_for(execution_id)


class TestHappyPath:
    @pytest.mark.asyncio
    async def test_filter_and_load(self, services):
        execution = await run(services, pipeline_definition(
            transformations=[filter_step("value", "gte", 150)],
        ))

        assert execution.status == ExecutionStatus.COMPLETED
        assert execution.records_processed == 2
        assert execution.records_failed == 0
        assert execution.errors == []
        assert execution.end_time is not None
        assert execution.duration_ms is not None and execution.duration_ms >= 0
        assert [r["value"] for r in services.datasets.get("out")] == [200, 300]

    @pytest.mark.asyncio
    async def test_execution_is_persisted(self, services):
        execution = await run(services, pipeline_definition())
        stored = await services.executions.get(execution.id)
        assert stored.status == ExecutionStatus.COMPLETED
        assert stored.records_processed == 3
        assert [log.message for log in stored.logs] == [log.message for log in execution.logs]

    @pytest.mark.asyncio
    async def test_trigger_records_last_run(self, services):
        pipeline = await services.pipelines.create(pipeline_definition())
        execution_id = await services.engine.execute(pipeline.id)
        assert (await services.pipelines.get(pipeline.id)).last_run is not None
        await services.engine.wait_for(execution_id)

    @pytest.mark.asyncio
    async def test_last_run_does_not_touch_version_or_updated_at(self, services):
        pipeline = await services.pipelines.create(pipeline_definition())
        await services.engine.wait_for(await services.engine.execute(pipeline.id))

        stored = await services.pipelines.get(pipeline.id)
        assert stored.last_run is not None
        assert stored.updated_at == pipeline.updated_at
        assert stored.version_history == ["1.0.0"]

    @pytest.mark.asyncio
    async def test_completed_run_ends_with_audit_entry(self, services):
        execution = await run(services, pipeline_definition())
        assert execution.logs[-1].message == "Execution completed"
        assert execution.logs[-1].context["records_processed"] == 3
        stored = await services.executions.get(execution.id)
        assert stored.logs[-1].message == "Execution completed"

    @pytest.mark.asyncio
    async def test_unknown_pipeline_creates_nothing(self, services):
        with pytest.raises(NotFoundError):
            await services.engine.execute("nope")
        assert await services.executions.list_by_pipeline("nope") == []

    @pytest.mark.asyncio
    async def test_definition_is_snapshotted_at_trigger(self, services):
        pipeline = await services.pipelines.create(pipeline_definition(
            transformations=[filter_step("value", "gte", 150)],
        ))
        execution_id = await services.engine.execute(pipeline.id)
        await services.pipelines.update(pipeline.id, {"transformations": [filter_step("value", "gte", 1000)]})

        execution = await services.engine.wait_for(execution_id)
        assert execution.pipeline_version == "1.0.0"
        assert execution.records_processed == 2


class TestDryRun:
    @pytest.mark.asyncio
    async def test_destination_is_never_called(self, services, spy):
        execution = await run(services, pipeline_definition(
            transformations=[filter_step("value", "gte", 150)],
        ), dry_run=True)

        assert execution.status == ExecutionStatus.COMPLETED
        assert execution.dry_run is True
        assert execution.records_processed == 2
        assert spy.calls == []
        assert any("dry run" in log.message.lower() for log in execution.logs)


class TestStageOrdering:
    @pytest.mark.asyncio
    async def test_filter_then_map_differs_from_map_then_filter(self, services, spy):
        filter_first = await run(services, pipeline_definition(
            name="filter-first",
            transformations=[
                filter_step("value", "gte", 150, order=1),
                map_step({"value": "amount"}, order=2),
            ],
        ))
        map_first = await run(services, pipeline_definition(
            name="map-first",
            transformations=[
                map_step({"value": "amount"}, order=1),
                filter_step("value", "gte", 150, order=2),
            ],
        ))

        assert filter_first.records_processed == 2
        assert spy.calls[0][1] == [{"id": 2, "amount": 200}, {"id": 3, "amount": 300}]
        assert map_first.records_processed == 0

    @pytest.mark.asyncio
    async def test_order_field_wins_over_list_position(self, services, spy):
        await run(services, pipeline_definition(transformations=[
            map_step({"value": "amount"}, order=2),
            filter_step("value", "gte", 150, order=1),
        ]))
        assert [r["amount"] for r in spy.calls[0][1]] == [200, 300]

    @pytest.mark.asyncio
    async def test_runs_are_deterministic(self, services, spy):
        definition = pipeline_definition(transformations=[
            filter_step("value", "gte", 150, order=1),
            map_step({"value": "amount"}, order=2),
        ])
        pipeline = await services.pipelines.create(definition)
        for _ in range(2):
            await services.engine.wait_for(await services.engine.execute(pipeline.id))
        assert spy.calls[0][1] == spy.calls[1][1]

    @pytest.mark.asyncio
    async def test_disabled_transformation_is_skipped(self, services):
        step = {**filter_step("value", "gte", 150), "enabled": False}
        execution = await run(services, pipeline_definition(transformations=[step]))
        assert execution.records_processed == 3


class TestFailures:
    @pytest.mark.asyncio
    async def test_unknown_operator_fails_transformation(self, services, spy):
        execution = await run(services, pipeline_definition(
            transformations=[filter_step("value", "between", [100, 200])],
        ))

        assert execution.status == ExecutionStatus.FAILED
        assert execution.errors[0].kind == ErrorKind.TRANSFORMATION
        assert execution.errors[0].details["stage"] == "filter"
        assert execution.errors[0].details["stage_kind"] == "filter"
        assert execution.errors[0].message.startswith("Transformation 'filter' failed")
        assert execution.logs[-1].level == LogLevel.ERROR
        assert execution.logs[-1].message == "Execution failed"
        assert spy.calls == []
        assert execution.end_time is not None

    @pytest.mark.asyncio
    async def test_later_stages_do_not_run_after_failure(self, services, spy):
        execution = await run(services, pipeline_definition(transformations=[
            filter_step("value", "between", [1, 2], order=1),
            map_step({"value": "amount"}, order=2),
        ]))
        messages = [log.message for log in execution.logs]
        assert not any("'map'" in m for m in messages)
        assert len(execution.errors) == 1

    @pytest.mark.asyncio
    async def test_missing_dataset_is_a_system_error(self, services):
        execution = await run(services, pipeline_definition(
            source={"type": "data_source", "config": {"dataSourceId": "unknown"}},
        ))
        assert execution.status == ExecutionStatus.FAILED
        assert execution.errors[0].kind == ErrorKind.SYSTEM

    @pytest.mark.asyncio
    async def test_unexpected_source_error_is_captured(self, services):
        services.adapters.register_source(SourceType.API, ExplodingSource())
        execution = await run(services, pipeline_definition(
            source={"type": "api", "config": {"apiUrl": "http://example.invalid"}},
        ))
        assert execution.status == ExecutionStatus.FAILED
        assert execution.errors[0].kind == ErrorKind.SYSTEM
        assert "boom" in execution.errors[0].message

    @pytest.mark.asyncio
    async def test_stream_source_has_no_adapter(self, services):
        execution = await run(services, pipeline_definition(source={"type": "stream", "config": {}}))
        assert execution.status == ExecutionStatus.FAILED
        assert execution.errors[0].kind == ErrorKind.SYSTEM

    @pytest.mark.asyncio
    async def test_load_failure_is_a_destination_error(self, services):
        services.adapters.register_destination(DestinationType.DATA_SOURCE, BrokenDestination())
        execution = await run(services, pipeline_definition())
        assert execution.status == ExecutionStatus.FAILED
        assert execution.errors[0].kind == ErrorKind.DESTINATION

    @pytest.mark.asyncio
    async def test_invalid_source_filter_is_a_validation_error(self, services, spy):
        execution = await run(services, pipeline_definition(source={
            "type": "data_source",
            "config": {"dataSourceId": "numbers"},
            "filters": [{"column": "value", "operator": "between", "value": [1, 2]}],
        }))
        assert execution.status == ExecutionStatus.FAILED
        assert execution.errors[0].kind == ErrorKind.VALIDATION
        assert spy.calls == []

    @pytest.mark.asyncio
    async def test_source_filters_apply_before_transformations(self, services):
        execution = await run(services, pipeline_definition(source={
            "type": "data_source",
            "config": {"dataSourceId": "numbers"},
            "filters": [{"column": "value", "operator": "lt", "value": 300}],
        }))
        assert execution.records_processed == 2

    @pytest.mark.asyncio
    async def test_schema_violations_are_counted(self, services):
        services.datasets.write("mixed", [{"id": 1, "value": 5}, {"id": 2}, {"id": 3, "value": None}])
        execution = await run(services, pipeline_definition(source={
            "type": "data_source",
            "config": {"dataSourceId": "mixed"},
            "schema": {"columns": [{"name": "value", "type": "number", "nullable": False}]},
        }))

        assert execution.status == ExecutionStatus.COMPLETED
        assert execution.records_processed == 1
        assert execution.records_failed == 2
        assert [e.kind for e in execution.errors] == [ErrorKind.VALIDATION, ErrorKind.VALIDATION]
        assert execution.errors[0].record == {"id": 2}


class TestSingleFlight:
    @pytest.mark.asyncio
    async def test_second_trigger_is_rejected(self, services):
        pipeline = await services.pipelines.create(pipeline_definition())
        first = await services.engine.execute(pipeline.id)

        with pytest.raises(ConflictError) as exc_info:
            await services.engine.execute(pipeline.id)
        assert exc_info.value.running_execution_id == first
        assert services.engine.is_running(pipeline.id)

        await services.engine.wait_for(first)
        assert not services.engine.is_running(pipeline.id)

        second = await services.engine.execute(pipeline.id)
        assert (await services.engine.wait_for(second)).status == ExecutionStatus.COMPLETED
        assert len(await services.executions.list_by_pipeline(pipeline.id)) == 2

    @pytest.mark.asyncio
    async def test_different_pipelines_run_concurrently(self, services):
        a = await services.pipelines.create(pipeline_definition(name="a"))
        b = await services.pipelines.create(pipeline_definition(name="b"))
        ids = [await services.engine.execute(a.id), await services.engine.execute(b.id)]
        for execution_id in ids:
            assert (await services.engine.wait_for(execution_id)).status == ExecutionStatus.COMPLETED


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_before_extract(self, services, spy):
        pipeline = await services.pipelines.create(pipeline_definition())
        execution_id = await services.engine.execute(pipeline.id)

        assert await services.engine.cancel(execution_id) is True
        execution = await services.engine.wait_for(execution_id)

        assert execution.status == ExecutionStatus.CANCELLED
        assert spy.calls == []
        assert execution.logs[-1].level == LogLevel.WARN
        assert not services.engine.is_running(pipeline.id)

    @pytest.mark.asyncio
    async def test_cancel_finished_execution(self, services):
        execution = await run(services, pipeline_definition())
        assert await services.engine.cancel(execution.id) is False


class TestStatusWrites:
    @pytest.mark.asyncio
    async def test_transient_store_failures_are_retried(self, test_settings, numbers):
        store = FlakyStore(failures=2)
        services = build_services(test_settings, datasets={"numbers": numbers}, execution_store=store)

        execution = await run(services, pipeline_definition())
        assert execution.status == ExecutionStatus.COMPLETED
        assert (await services.executions.get(execution.id)).status == ExecutionStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_store_outage_does_not_crash_the_run(self, test_settings, numbers):
        store = FlakyStore(failures=None)
        services = build_services(test_settings, datasets={"numbers": numbers}, execution_store=store)

        execution = await run(services, pipeline_definition())
        assert execution.status == ExecutionStatus.COMPLETED
        assert services.datasets.get("out") is not None
        assert not services.engine.is_running(execution.pipeline_id)
        # trigger save, post-extract checkpoint and final save, each retried
        assert store.attempts == 3 * test_settings.STATUS_WRITE_RETRIES


class TestDeleteDuringRun:
    @pytest.mark.asyncio
    async def test_deleting_a_running_pipeline_leaves_no_executions(self, services):
        pipeline = await services.pipelines.create(pipeline_definition())
        execution_id = await services.engine.execute(pipeline.id)

        assert await services.pipelines.delete(pipeline.id) is True
        execution = await services.engine.wait_for(execution_id)

        assert execution.is_terminal
        assert await services.executions.list_by_pipeline(pipeline.id) == []
        assert not services.engine.is_running(pipeline.id)

    @pytest.mark.asyncio
    async def test_other_pipelines_keep_their_executions(self, services):
        keep = await services.pipelines.create(pipeline_definition(name="keep"))
        doomed = await services.pipelines.create(pipeline_definition(name="doomed"))
        kept_id = await services.engine.execute(keep.id)
        doomed_id = await services.engine.execute(doomed.id)

        await services.pipelines.delete(doomed.id)
        await services.engine.wait_for(doomed_id)
        await services.engine.wait_for(kept_id)

        assert [e.id for e in await services.executions.list_by_pipeline(keep.id)] == [kept_id]
