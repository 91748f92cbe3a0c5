"""
`data_source` adapters backed by the in-process DatasetCatalog.

Source config:      {"dataSourceId": "orders"}  or  {"records": [...]}
Destination config: {"dataSourceId": "orders_clean", "key": "id"}
"""

from __future__ import annotations

import copy
from typing import Any

from etlflow.core.constants import WriteMode
from etlflow.core.logging import get_logger
from etlflow.models.pipeline import Record
from etlflow.pipeline.adapters.base import DestinationAdapter, SourceAdapter, key_columns, require
from etlflow.pipeline.datasets import DatasetCatalog
from etlflow.pipeline.errors import DestinationError, ExtractionError

logger = get_logger(__name__)


class DatasetSourceAdapter(SourceAdapter):
    def __init__(self, catalog: DatasetCatalog) -> None:
        self.catalog = catalog

    async def extract(self, config: dict[str, Any]) -> list[Record]:
        if isinstance(config.get("records"), list):
            return copy.deepcopy(config["records"])

        name = require(config, "dataSourceId", "data_source_id", "dataset")
        if name is None:
            raise ExtractionError("data_source config needs 'dataSourceId' or inline 'records'")

        records = self.catalog.get(name)
        if records is None:
            raise ExtractionError(f"Dataset '{name}' is not registered", details={"dataset": name})

        logger.debug("Dataset extracted", dataset=name, records=len(records))
        return records


class DatasetDestinationAdapter(DestinationAdapter):
    def __init__(self, catalog: DatasetCatalog) -> None:
        self.catalog = catalog

    async def load(self, config: dict[str, Any], records: list[Record], mode: WriteMode) -> int:
        name = require(config, "dataSourceId", "data_source_id", "dataset")
        if name is None:
            raise DestinationError("data_source destination needs 'dataSourceId'")

        size = self.catalog.write(name, records, mode, key_columns(config))
        logger.debug("Dataset written", dataset=name, records=len(records), mode=str(mode), size=size)
        return len(records)
