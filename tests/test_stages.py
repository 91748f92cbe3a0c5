"""Transformation stage library tests."""

from __future__ import annotations

import pytest

from etlflow.core.constants import TransformationKind
from etlflow.models.pipeline import Transformation
from etlflow.pipeline.datasets import DatasetCatalog
from etlflow.pipeline.errors import ValidationError
from etlflow.pipeline.stages.filter import evaluate_conditions
from etlflow.pipeline.stages.registry import default_stage_registry


def make(kind: str, config: dict, name: str = "stage") -> Transformation:
    return Transformation(name=name, kind=kind, config=config, order=1)


@pytest.fixture
def registry():
    datasets = DatasetCatalog({"regions": [{"code": "EU", "label": "Europe"}, {"code": "US", "label": "America"}]})
    return default_stage_registry(datasets, plugins={"double": lambda rows, opts: [
        {**r, "value": r["value"] * opts.get("factor", 2)} for r in rows
    ]})


class TestFilterStage:
    @pytest.mark.asyncio
    async def test_conditions_are_conjunctive(self, registry):
        rows = [{"v": 1}, {"v": 5}, {"v": 10}]
        result = await registry.apply(make("filter", {"conditions": [
            {"column": "v", "operator": "gt", "value": 1},
            {"column": "v", "operator": "lt", "value": 10},
        ]}), rows)
        assert result.records == [{"v": 5}]
        assert result.metadata["dropped"] == 2

    @pytest.mark.asyncio
    async def test_contradictory_conditions_keep_nothing(self, registry):
        rows = [{"v": i} for i in range(10)]
        result = await registry.apply(make("filter", {"conditions": [
            {"column": "v", "operator": "gt", "value": 5},
            {"column": "v", "operator": "lt", "value": 3},
        ]}), rows)
        assert result.records == []

    @pytest.mark.asyncio
    async def test_unknown_operator_raises(self, registry):
        with pytest.raises(ValidationError, match="between"):
            await registry.apply(make("filter", {"conditions": [
                {"column": "v", "operator": "between", "value": [1, 2]},
            ]}), [{"v": 1}])

    def test_in_requires_a_list(self):
        with pytest.raises(ValidationError):
            evaluate_conditions([{"column": "v", "operator": "in", "value": 3}], [{"v": 3}])

    def test_like_and_membership(self):
        rows = [{"name": "alpha", "tier": "a"}, {"name": "beta", "tier": "b"}, {"name": None, "tier": "c"}]
        assert evaluate_conditions([{"column": "name", "operator": "like", "value": "ph"}], rows) == [rows[0]]
        assert evaluate_conditions([{"column": "tier", "operator": "not_in", "value": ["a", "b"]}], rows) == [rows[2]]

    def test_incomparable_values_do_not_match(self):
        rows = [{"v": None}, {"v": "x"}, {"v": 7}]
        assert evaluate_conditions([{"column": "v", "operator": "gte", "value": 5}], rows) == [{"v": 7}]

    @pytest.mark.asyncio
    async def test_input_batch_is_not_mutated(self, registry):
        rows = [{"v": 1}, {"v": 2}]
        await registry.apply(make("filter", {"conditions": [{"column": "v", "operator": "eq", "value": 1}]}), rows)
        assert rows == [{"v": 1}, {"v": 2}]


class TestMapStage:
    @pytest.mark.asyncio
    async def test_renames_fields(self, registry):
        rows = [{"value": 1, "id": 9}]
        result = await registry.apply(make("map", {"mappings": {"value": "amount"}}), rows)
        assert result.records == [{"amount": 1, "id": 9}]
        assert rows == [{"value": 1, "id": 9}]

    @pytest.mark.asyncio
    async def test_missing_source_field_is_ignored(self, registry):
        result = await registry.apply(make("map", {"mappings": {"absent": "x"}}), [{"a": 1}])
        assert result.records == [{"a": 1}]


class TestAggregateStage:
    @pytest.mark.asyncio
    async def test_grouped_sum_and_count(self, registry):
        rows = [
            {"region": "EU", "amount": 10},
            {"region": "EU", "amount": 5},
            {"region": "US", "amount": 7},
        ]
        result = await registry.apply(make("aggregate", {"aggregations": [
            {"column": "amount", "function": "sum", "alias": "total", "groupBy": ["region"]},
            {"column": "amount", "function": "count", "alias": "n"},
        ]}), rows)
        by_region = {r["region"]: r for r in result.records}
        assert by_region["EU"] == {"region": "EU", "total": 15, "n": 2}
        assert by_region["US"] == {"region": "US", "total": 7, "n": 1}

    @pytest.mark.asyncio
    async def test_only_first_group_by_column_is_used(self, registry):
        rows = [{"a": 1, "b": 1, "x": 1}, {"a": 1, "b": 2, "x": 2}]
        result = await registry.apply(make("aggregate", {"aggregations": [
            {"column": "x", "function": "max", "groupBy": ["a", "b"]},
        ]}), rows)
        assert result.records == [{"a": 1, "max_x": 2}]

    @pytest.mark.asyncio
    async def test_avg_skips_non_numeric(self, registry):
        rows = [{"x": 2}, {"x": "n/a"}, {"x": 4}, {"x": True}]
        result = await registry.apply(make("aggregate", {"aggregations": [
            {"column": "x", "function": "avg", "alias": "mean"},
        ]}), rows)
        assert result.records == [{"mean": 3}]

    @pytest.mark.asyncio
    async def test_unknown_function_raises(self, registry):
        with pytest.raises(ValidationError):
            await registry.apply(make("aggregate", {"aggregations": [
                {"column": "x", "function": "median"},
            ]}), [{"x": 1}])


class TestJoinStage:
    @pytest.mark.asyncio
    async def test_left_join_against_catalog(self, registry):
        rows = [{"id": 1, "region": "EU"}, {"id": 2, "region": "APAC"}]
        result = await registry.apply(make("join", {"joins": [
            {"type": "left", "table": "regions", "on": {"leftColumn": "region", "rightColumn": "code"}},
        ]}), rows)
        assert result.records == [
            {"id": 1, "region": "EU", "code": "EU", "label": "Europe"},
            {"id": 2, "region": "APAC"},
        ]

    @pytest.mark.asyncio
    async def test_inner_join_prefixes_colliding_columns(self, registry):
        rows = [{"id": 1, "label": "mine"}]
        result = await registry.apply(make("join", {"joins": [
            {"type": "inner", "table": "inline", "on": {"leftColumn": "id", "rightColumn": "id"},
             "records": [{"id": 1, "label": "theirs"}]},
        ]}), rows)
        assert result.records == [{"id": 1, "label": "mine", "inline.id": 1, "inline.label": "theirs"}]

    @pytest.mark.asyncio
    async def test_full_join_keeps_unmatched_right_rows(self, registry):
        rows = [{"region": "EU"}]
        result = await registry.apply(make("join", {"joins": [
            {"type": "full", "table": "regions", "on": {"leftColumn": "region", "rightColumn": "code"}},
        ]}), rows)
        assert {"code": "US", "label": "America"} in result.records
        assert len(result.records) == 2

    @pytest.mark.asyncio
    async def test_unknown_table_passes_through_with_warning(self, registry):
        rows = [{"id": 1}]
        result = await registry.apply(make("join", {"joins": [
            {"table": "missing", "on": {"leftColumn": "id", "rightColumn": "id"}},
        ]}), rows)
        assert result.records == rows
        assert result.warnings


class TestCustomStage:
    @pytest.mark.asyncio
    async def test_runs_registered_plugin(self, registry):
        rows = [{"value": 2}]
        result = await registry.apply(make("custom", {"plugin": "double", "options": {"factor": 3}}), rows)
        assert result.records == [{"value": 6}]
        assert rows == [{"value": 2}]

    @pytest.mark.asyncio
    async def test_script_without_runtime_passes_through(self, registry):
        result = await registry.apply(make("custom", {"script": "return rows"}), [{"a": 1}])
        assert result.records == [{"a": 1}]
        assert result.warnings

    @pytest.mark.asyncio
    async def test_plugin_must_return_a_list(self):
        registry = default_stage_registry(plugins={"bad": lambda rows, opts: None})
        with pytest.raises(TypeError):
            await registry.apply(make("custom", {"plugin": "bad"}), [{"a": 1}])

    @pytest.mark.asyncio
    async def test_async_plugin(self):
        async def tag(rows, opts):
            return [{**r, "tag": opts["tag"]} for r in rows]

        registry = default_stage_registry(plugins={"tag": tag})
        result = await registry.apply(make("custom", {"plugin": "tag", "options": {"tag": "x"}}), [{"a": 1}])
        assert result.records == [{"a": 1, "tag": "x"}]


def test_every_kind_is_registered(registry):
    assert set(registry.list_kinds()) == {str(k) for k in TransformationKind}
