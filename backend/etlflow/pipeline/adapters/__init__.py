"""Source and destination adapters — the only code that talks to external systems."""

from etlflow.pipeline.adapters.base import DestinationAdapter, SourceAdapter
from etlflow.pipeline.adapters.registry import AdapterRegistry, default_adapter_registry

__all__ = ["AdapterRegistry", "DestinationAdapter", "SourceAdapter", "default_adapter_registry"]
