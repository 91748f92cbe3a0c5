"""
AggregateStage — grouped aggregations.

Config::

    {"aggregations": [
        {"column": "amount", "function": "sum", "alias": "total", "groupBy": ["region"]},
        {"column": "id", "function": "count"},
    ]}

Grouping uses a single key: the first `groupBy` column of every
aggregation that declares one, joined with "|".  Additional groupBy
columns on the same aggregation (list entries or comma-separated
names) are ignored.
"""

from __future__ import annotations

from numbers import Number
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from etlflow.core.constants import AggregateFunction, TransformationKind
from etlflow.models.pipeline import Record, Transformation
from etlflow.pipeline.stages.base import StageResult, TransformationStage


class Aggregation(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    column: str
    function: str
    alias: str | None = None
    group_by: list[str] | str | None = Field(default=None, alias="groupBy")

    @property
    def group_column(self) -> str | None:
        if not self.group_by:
            return None
        if isinstance(self.group_by, str):
            return self.group_by.split(",")[0].strip()
        return self.group_by[0]

    @property
    def output_name(self) -> str:
        return self.alias or f"{self.function}_{self.column}"


def _is_numeric(value: Any) -> bool:
    return isinstance(value, Number) and not isinstance(value, bool)


def _hashable(value: Any) -> Any:
    try:
        hash(value)
        return value
    except TypeError:
        return repr(value)


def _compute(function: AggregateFunction, values: list[Any]) -> Any:
    if function is AggregateFunction.COUNT:
        return len(values)
    if function is AggregateFunction.DISTINCT:
        return len({_hashable(v) for v in values})

    numbers = [v for v in values if _is_numeric(v)]
    if function is AggregateFunction.SUM:
        return sum(numbers)
    if function is AggregateFunction.AVG:
        return sum(numbers) / len(numbers) if numbers else 0
    if function is AggregateFunction.MIN:
        return min(numbers) if numbers else None
    if function is AggregateFunction.MAX:
        return max(numbers) if numbers else None
    raise ValueError(f"unhandled aggregate function {function}")


class AggregateStage(TransformationStage):
    kind = TransformationKind.AGGREGATE
    description = "Group records and compute aggregates"

    async def apply(self, transformation: Transformation, batch: list[Record]) -> StageResult:
        aggregations: list[Aggregation] = self._parse_items(transformation, "aggregations", Aggregation)
        if not aggregations:
            return self._result(list(batch))

        functions: list[AggregateFunction] = []
        for agg in aggregations:
            try:
                functions.append(AggregateFunction(agg.function))
            except ValueError:
                raise self._config_error(
                    transformation,
                    f"unknown aggregate function '{agg.function}'",
                    column=agg.column,
                ) from None

        group_columns = [agg.group_column for agg in aggregations if agg.group_column]

        groups: dict[str, list[Record]] = {}
        for record in batch:
            key = "|".join(_text_key(record.get(col)) for col in group_columns)
            groups.setdefault(key, []).append(record)

        output: list[Record] = []
        for members in groups.values():
            row: Record = {col: members[0].get(col) for col in group_columns}
            for agg, function in zip(aggregations, functions):
                values = [r.get(agg.column) for r in members if r.get(agg.column) is not None]
                row[agg.output_name] = _compute(function, values)
            output.append(row)

        return self._result(output, groups=len(output), group_columns=group_columns)


def _text_key(value: Any) -> str:
    return "" if value is None else str(value)
