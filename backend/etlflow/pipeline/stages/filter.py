"""
FilterStage — keeps records that satisfy every condition (conjunctive).

Config::

    {"conditions": [{"column": "value", "operator": "gte", "value": 150}, ...]}

`evaluate_conditions` is also used by the engine for source-level
filters applied at extraction time.
"""

from __future__ import annotations

import operator
from typing import Any, Callable, Iterable

from pydantic import ValidationError as PydanticValidationError

from etlflow.core.constants import FilterOperator, TransformationKind
from etlflow.models.pipeline import FilterCondition, Record, Transformation
from etlflow.pipeline.errors import ValidationError
from etlflow.pipeline.stages.base import StageResult, TransformationStage


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def _ordered(compare: Callable[[Any, Any], bool]) -> Callable[[Any, Any], bool]:
    """Ordering comparisons between incomparable values (None vs int, str vs int) are false."""
    def wrapper(actual: Any, expected: Any) -> bool:
        try:
            return bool(compare(actual, expected))
        except TypeError:
            return False
    return wrapper


_OPERATORS: dict[FilterOperator, Callable[[Any, Any], bool]] = {
    FilterOperator.EQ: operator.eq,
    FilterOperator.NE: operator.ne,
    FilterOperator.GT: _ordered(operator.gt),
    FilterOperator.GTE: _ordered(operator.ge),
    FilterOperator.LT: _ordered(operator.lt),
    FilterOperator.LTE: _ordered(operator.le),
    FilterOperator.IN: lambda actual, expected: actual in expected,
    FilterOperator.NOT_IN: lambda actual, expected: actual not in expected,
    FilterOperator.LIKE: lambda actual, expected: _text(expected) in _text(actual),
    FilterOperator.NOT_LIKE: lambda actual, expected: _text(expected) not in _text(actual),
}

_MEMBERSHIP = {FilterOperator.IN, FilterOperator.NOT_IN}


def compile_conditions(
    conditions: Iterable[FilterCondition | dict[str, Any]],
) -> list[tuple[str, Callable[[Any, Any], bool], Any]]:
    """
    Validate conditions up front and return (column, predicate, value) triples.

    Raises:
        ValidationError: unknown operator, missing keys, or a non-list
            value for `in` / `not_in`.
    """
    compiled = []
    for raw in conditions:
        try:
            condition = raw if isinstance(raw, FilterCondition) else FilterCondition.model_validate(raw)
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid filter condition: {exc}", details={"condition": raw}) from exc

        try:
            op = FilterOperator(condition.operator)
        except ValueError:
            raise ValidationError(
                f"Unknown filter operator '{condition.operator}'",
                details={"column": condition.column, "operator": condition.operator},
            ) from None

        value = condition.value
        if op in _MEMBERSHIP:
            if not isinstance(value, (list, tuple, set, frozenset)):
                raise ValidationError(
                    f"Operator '{op}' requires a list value",
                    details={"column": condition.column, "operator": str(op)},
                )
            value = list(value)

        compiled.append((condition.column, _OPERATORS[op], value))
    return compiled


def evaluate_conditions(
    conditions: Iterable[FilterCondition | dict[str, Any]],
    records: list[Record],
) -> list[Record]:
    """Return the records for which every condition holds."""
    compiled = compile_conditions(conditions)
    if not compiled:
        return list(records)
    return [
        record
        for record in records
        if all(predicate(record.get(column), value) for column, predicate, value in compiled)
    ]


class FilterStage(TransformationStage):
    """Row filter with ANDed conditions."""

    kind = TransformationKind.FILTER
    description = "Keep records matching every condition"

    async def apply(self, transformation: Transformation, batch: list[Record]) -> StageResult:
        conditions = transformation.config.get("conditions") or []
        if not isinstance(conditions, list):
            raise self._config_error(transformation, "'conditions' must be a list")

        try:
            kept = evaluate_conditions(conditions, batch)
        except ValidationError as exc:
            raise self._config_error(transformation, exc.message, **exc.details) from exc

        return self._result(kept, dropped=len(batch) - len(kept))
