"""
File adapters — CSV, JSON array and JSON-lines files on the local filesystem.

Config::

    {"filePath": "/data/orders.csv", "format": "csv", "key": "id"}

`format` defaults to the file extension (.csv, .json, .jsonl / .ndjson).
File I/O runs in a worker thread so the event loop is never blocked.
"""

from __future__ import annotations

import asyncio
import csv
import json
from pathlib import Path
from typing import Any

from etlflow.core.constants import WriteMode
from etlflow.core.logging import get_logger
from etlflow.models.pipeline import Record
from etlflow.pipeline.adapters.base import DestinationAdapter, SourceAdapter, key_columns, require
from etlflow.pipeline.datasets import upsert_rows
from etlflow.pipeline.errors import DestinationError, ExtractionError

logger = get_logger(__name__)

_EXTENSION_FORMATS = {
    ".csv": "csv",
    ".json": "json",
    ".jsonl": "jsonl",
    ".ndjson": "jsonl",
}


def _resolve(config: dict[str, Any]) -> tuple[Path, str]:
    raw_path = require(config, "filePath", "file_path", "path")
    if raw_path is None:
        raise ValueError("file config needs 'filePath'")
    path = Path(raw_path)
    fmt = config.get("format") or _EXTENSION_FORMATS.get(path.suffix.lower())
    if fmt not in ("csv", "json", "jsonl"):
        raise ValueError(f"Unsupported file format for '{path.name}'")
    return path, fmt


def read_records(path: Path, fmt: str) -> list[Record]:
    if fmt == "csv":
        with path.open("r", newline="", encoding="utf-8") as f:
            return [dict(row) for row in csv.DictReader(f)]
    if fmt == "json":
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, list):
            raise ValueError(f"'{path.name}' does not contain a JSON array")
        return data
    with path.open("r", encoding="utf-8") as f:
        return [json.loads(line) for line in f if line.strip()]


def write_records(path: Path, fmt: str, records: list[Record]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    if fmt == "csv":
        fieldnames: list[str] = []
        for record in records:
            for key in record:
                if key not in fieldnames:
                    fieldnames.append(key)
        with path.open("w", newline="", encoding="utf-8") as f:
            writer = csv.DictWriter(f, fieldnames=fieldnames)
            writer.writeheader()
            for record in records:
                writer.writerow(record)
    elif fmt == "json":
        with path.open("w", encoding="utf-8") as f:
            json.dump(records, f, default=str, indent=2)
    else:
        with path.open("w", encoding="utf-8") as f:
            for record in records:
                f.write(json.dumps(record, default=str) + "\n")


class FileSourceAdapter(SourceAdapter):
    async def extract(self, config: dict[str, Any]) -> list[Record]:
        try:
            path, fmt = _resolve(config)
            records = await asyncio.to_thread(read_records, path, fmt)
        except (OSError, ValueError) as exc:
            raise ExtractionError(f"File extraction failed: {exc}", details={"config": config}) from exc

        logger.debug("File extracted", path=str(path), format=fmt, records=len(records))
        return records


class FileDestinationAdapter(DestinationAdapter):
    async def load(self, config: dict[str, Any], records: list[Record], mode: WriteMode) -> int:
        try:
            path, fmt = _resolve(config)
            await asyncio.to_thread(self._write, path, fmt, records, mode, key_columns(config))
        except (OSError, ValueError) as exc:
            raise DestinationError(f"File load failed: {exc}", details={"config": config}) from exc

        logger.debug("File written", path=str(path), format=fmt, records=len(records), mode=str(mode))
        return len(records)

    @staticmethod
    def _write(path: Path, fmt: str, records: list[Record], mode: WriteMode, keys: list[str]) -> None:
        existing: list[Record] = []
        if mode != WriteMode.REPLACE and path.exists():
            existing = read_records(path, fmt)

        if mode == WriteMode.UPSERT and keys:
            merged = upsert_rows(existing, records, keys)
        elif mode == WriteMode.REPLACE:
            merged = list(records)
        else:
            merged = existing + list(records)
        write_records(path, fmt, merged)
