"""
JoinStage — equality joins against secondary datasets.

Config::

    {"joins": [
        {"type": "left", "table": "customers",
         "on": {"leftColumn": "customer_id", "rightColumn": "id"}},
    ]}

The right-hand dataset is looked up by `table` in the dataset catalog,
or taken from an inline `records` list on the join entry.  When neither
is available the batch passes through unchanged with a warning.
Right-side columns that collide with left-side ones are prefixed with
"{table}.".
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from etlflow.core.constants import JoinType, TransformationKind
from etlflow.models.pipeline import Record, Transformation
from etlflow.pipeline.datasets import DatasetCatalog
from etlflow.pipeline.stages.base import StageResult, TransformationStage


class JoinOn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    left_column: str = Field(alias="leftColumn")
    right_column: str = Field(alias="rightColumn")


class JoinSpec(BaseModel):
    type: JoinType = JoinType.INNER
    table: str
    on: JoinOn
    records: list[Record] | None = None


def _merge(left: Record | None, right: Record | None, table: str) -> Record:
    merged: Record = dict(left or {})
    for key, value in (right or {}).items():
        if left is not None and key in left:
            merged[f"{table}.{key}"] = value
        else:
            merged[key] = value
    return merged


def join_records(left_rows: list[Record], right_rows: list[Record], join_spec: JoinSpec) -> list[Record]:
    """Hash join on a single equality condition."""
    lc, rc = join_spec.on.left_column, join_spec.on.right_column

    index: dict[Any, list[int]] = {}
    for i, row in enumerate(right_rows):
        value = row.get(rc)
        if value is not None:
            index.setdefault(value, []).append(i)

    matched_right: set[int] = set()
    out: list[Record] = []
    for left in left_rows:
        value = left.get(lc)
        hits = index.get(value, []) if value is not None else []
        if hits:
            for i in hits:
                matched_right.add(i)
                out.append(_merge(left, right_rows[i], join_spec.table))
        elif join_spec.type in (JoinType.LEFT, JoinType.FULL):
            out.append(dict(left))

    if join_spec.type in (JoinType.RIGHT, JoinType.FULL):
        for i, right in enumerate(right_rows):
            if i not in matched_right:
                out.append(_merge(None, right, join_spec.table))
    return out


class JoinStage(TransformationStage):
    kind = TransformationKind.JOIN
    description = "Join records with a secondary dataset"

    def __init__(self, datasets: DatasetCatalog | None = None) -> None:
        self._datasets = datasets

    async def apply(self, transformation: Transformation, batch: list[Record]) -> StageResult:
        join_specs: list[JoinSpec] = self._parse_items(transformation, "joins", JoinSpec)
        if not join_specs:
            return self._result(list(batch))

        rows = list(batch)
        warnings: list[str] = []
        joined_tables: list[str] = []
        for join_spec in join_specs:
            right = self._resolve(join_spec)
            if right is None:
                warnings.append(f"No dataset wired for join table '{join_spec.table}', passing records through")
                continue
            rows = join_records(rows, right, join_spec)
            joined_tables.append(join_spec.table)

        return self._result(rows, warnings=warnings, joined_tables=joined_tables)

    def _resolve(self, join_spec: JoinSpec) -> list[Record] | None:
        if join_spec.records is not None:
            return join_spec.records
        if self._datasets is not None:
            return self._datasets.get(join_spec.table)
        return None
