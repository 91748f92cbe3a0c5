"""
MapStage — renames / copies fields.

Config::

    {"mappings": {"source_field": "target_field", ...}}

The value is copied to the target; when the names differ the source key
is dropped.  Records without the source field are left as they are.
"""

from __future__ import annotations

from etlflow.core.constants import TransformationKind
from etlflow.models.pipeline import Record, Transformation
from etlflow.pipeline.stages.base import StageResult, TransformationStage


class MapStage(TransformationStage):
    kind = TransformationKind.MAP
    description = "Rename or copy fields"

    async def apply(self, transformation: Transformation, batch: list[Record]) -> StageResult:
        mappings = transformation.config.get("mappings") or {}
        if not isinstance(mappings, dict):
            raise self._config_error(transformation, "'mappings' must be an object")
        if not mappings:
            return self._result(list(batch))

        mapped = [self._map_record(record, mappings) for record in batch]
        return self._result(mapped, mappings=len(mappings))

    @staticmethod
    def _map_record(record: Record, mappings: dict[str, str]) -> Record:
        out = dict(record)
        for source_field, target_field in mappings.items():
            if source_field not in record:
                continue
            out[target_field] = record[source_field]
            if source_field != target_field:
                out.pop(source_field, None)
        return out
