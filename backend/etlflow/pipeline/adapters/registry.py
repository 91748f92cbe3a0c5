"""
AdapterRegistry — maps source and destination types to their adapters.

`stream` sources have no built-in adapter; register one to use them.
"""

from __future__ import annotations

import httpx

from etlflow.core.constants import DestinationType, SourceType
from etlflow.pipeline.adapters.base import DestinationAdapter, SourceAdapter
from etlflow.pipeline.adapters.database import DatabaseDestinationAdapter, DatabaseSourceAdapter
from etlflow.pipeline.adapters.file import FileDestinationAdapter, FileSourceAdapter
from etlflow.pipeline.adapters.http import HttpDestinationAdapter, HttpSourceAdapter
from etlflow.pipeline.adapters.memory import DatasetDestinationAdapter, DatasetSourceAdapter
from etlflow.pipeline.datasets import DatasetCatalog
from etlflow.pipeline.errors import DestinationError, ExtractionError


class AdapterRegistry:
    def __init__(self) -> None:
        self._sources: dict[SourceType, SourceAdapter] = {}
        self._destinations: dict[DestinationType, DestinationAdapter] = {}

    def register_source(self, source_type: SourceType, adapter: SourceAdapter) -> None:
        self._sources[SourceType(source_type)] = adapter

    def register_destination(self, destination_type: DestinationType, adapter: DestinationAdapter) -> None:
        self._destinations[DestinationType(destination_type)] = adapter

    def source(self, source_type: SourceType) -> SourceAdapter:
        try:
            return self._sources[source_type]
        except KeyError:
            raise ExtractionError(
                f"No adapter registered for source type '{source_type}'",
                details={"source_type": str(source_type)},
            ) from None

    def destination(self, destination_type: DestinationType) -> DestinationAdapter:
        try:
            return self._destinations[destination_type]
        except KeyError:
            raise DestinationError(
                f"No adapter registered for destination type '{destination_type}'",
                details={"destination_type": str(destination_type)},
            ) from None


def default_adapter_registry(
    catalog: DatasetCatalog,
    http_transport: httpx.AsyncBaseTransport | None = None,
) -> AdapterRegistry:
    """Registry with the built-in adapters wired to `catalog`."""
    registry = AdapterRegistry()

    registry.register_source(SourceType.DATA_SOURCE, DatasetSourceAdapter(catalog))
    registry.register_source(SourceType.FILE, FileSourceAdapter())
    registry.register_source(SourceType.API, HttpSourceAdapter(http_transport))
    registry.register_source(SourceType.DATABASE, DatabaseSourceAdapter())

    registry.register_destination(DestinationType.DATA_SOURCE, DatasetDestinationAdapter(catalog))
    registry.register_destination(DestinationType.FILE, FileDestinationAdapter())
    registry.register_destination(DestinationType.API, HttpDestinationAdapter(http_transport))
    registry.register_destination(DestinationType.DATABASE, DatabaseDestinationAdapter())

    return registry
