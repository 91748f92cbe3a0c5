"""
Abstract base classes for source and destination adapters.

Adapters are the only components that perform I/O against external
systems.  Config maps are adapter-specific; the engine never interprets
their keys.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from etlflow.core.constants import WriteMode
from etlflow.models.pipeline import Record


class SourceAdapter(ABC):
    """Base interface for record sources."""

    @abstractmethod
    async def extract(self, config: dict[str, Any]) -> list[Record]:
        """Return the records described by `config`.  Raise ExtractionError on failure."""
        ...


class DestinationAdapter(ABC):
    """Base interface for record destinations."""

    @abstractmethod
    async def load(self, config: dict[str, Any], records: list[Record], mode: WriteMode) -> int:
        """Write `records`; return the number written.  Raise DestinationError on failure."""
        ...


def require(config: dict[str, Any], *keys: str) -> Any:
    """Return the first present key's value, or None.  Accepts legacy camelCase aliases."""
    for key in keys:
        if config.get(key) not in (None, ""):
            return config[key]
    return None


def key_columns(config: dict[str, Any]) -> list[str]:
    """Upsert key columns from config (`key` may be a string or a list)."""
    key = config.get("key") or config.get("primary_keys") or []
    if isinstance(key, str):
        return [key]
    return list(key)
