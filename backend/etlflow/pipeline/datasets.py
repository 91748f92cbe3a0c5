"""
DatasetCatalog — in-process named datasets.

Backs the `data_source` source/destination adapters and provides the
secondary datasets the join stage reads.  Reads return deep copies so
callers can never mutate stored rows.
"""

from __future__ import annotations

import copy
import threading
from typing import Iterable

from etlflow.core.constants import WriteMode
from etlflow.models.pipeline import Record


class DatasetCatalog:
    def __init__(self, initial: dict[str, list[Record]] | None = None) -> None:
        self._datasets: dict[str, list[Record]] = {}
        self._lock = threading.Lock()
        for name, records in (initial or {}).items():
            self._datasets[name] = copy.deepcopy(list(records))

    def __contains__(self, name: str) -> bool:
        with self._lock:
            return name in self._datasets

    def names(self) -> list[str]:
        with self._lock:
            return list(self._datasets)

    def get(self, name: str) -> list[Record] | None:
        """Return a copy of the dataset, or None if it is not registered."""
        with self._lock:
            records = self._datasets.get(name)
            return copy.deepcopy(records) if records is not None else None

    def write(
        self,
        name: str,
        records: Iterable[Record],
        mode: WriteMode = WriteMode.APPEND,
        key_columns: list[str] | None = None,
    ) -> int:
        """
        Write records into a dataset.  Returns the dataset size afterwards.

        upsert replaces rows whose key columns match an incoming record and
        appends the rest; without key columns it behaves like append.
        """
        incoming = copy.deepcopy(list(records))
        with self._lock:
            existing = self._datasets.get(name, [])
            if mode == WriteMode.REPLACE:
                merged = incoming
            elif mode == WriteMode.UPSERT and key_columns:
                merged = upsert_rows(existing, incoming, key_columns)
            else:
                merged = existing + incoming
            self._datasets[name] = merged
            return len(merged)


def upsert_rows(existing: list[Record], incoming: list[Record], key_columns: list[str]) -> list[Record]:
    """Merge `incoming` into `existing` by key; later rows win."""
    def key_of(row: Record) -> tuple:
        return tuple(str(row.get(col)) for col in key_columns)

    index = {key_of(row): i for i, row in enumerate(existing)}
    merged = list(existing)
    for row in incoming:
        k = key_of(row)
        if k in index:
            merged[index[k]] = row
        else:
            index[k] = len(merged)
            merged.append(row)
    return merged
