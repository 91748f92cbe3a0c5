"""
Database adapters (SQLAlchemy async) for `database` sources and destinations.

Source config::

    {"connectionString": "postgresql+asyncpg://...", "query": "SELECT * FROM orders WHERE total > :min",
     "params": {"min": 100}}

Destination config::

    {"connectionString": "postgresql+asyncpg://...", "table": "orders_clean", "key": ["id"]}

The destination table must already exist; its columns are reflected and
record keys that are not columns are dropped.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import MetaData, Table, and_, delete, insert, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from etlflow.core.constants import WriteMode
from etlflow.core.logging import get_logger
from etlflow.models.pipeline import Record
from etlflow.pipeline.adapters.base import DestinationAdapter, SourceAdapter, key_columns, require
from etlflow.pipeline.errors import DestinationError, ExtractionError

logger = get_logger(__name__)


class _DatabaseAdapter:
    """Caches one engine per connection string."""

    def __init__(self) -> None:
        self._engines: dict[str, AsyncEngine] = {}

    def _engine(self, url: str) -> AsyncEngine:
        if url not in self._engines:
            self._engines[url] = create_async_engine(url, pool_pre_ping=True)
        return self._engines[url]

    async def dispose(self) -> None:
        for engine in self._engines.values():
            await engine.dispose()
        self._engines.clear()


class DatabaseSourceAdapter(_DatabaseAdapter, SourceAdapter):
    async def extract(self, config: dict[str, Any]) -> list[Record]:
        url = require(config, "connectionString", "connection_string", "url")
        query = require(config, "query")
        if url is None or query is None:
            raise ExtractionError("database source config needs 'connectionString' and 'query'")

        try:
            async with self._engine(url).connect() as conn:
                result = await conn.execute(text(query), config.get("params") or {})
                records = [dict(row) for row in result.mappings()]
        except SQLAlchemyError as exc:
            raise ExtractionError(f"Query failed: {exc}", details={"query": query}) from exc

        logger.debug("Database extracted", records=len(records))
        return records


class DatabaseDestinationAdapter(_DatabaseAdapter, DestinationAdapter):
    async def load(self, config: dict[str, Any], records: list[Record], mode: WriteMode) -> int:
        url = require(config, "connectionString", "connection_string", "url")
        table_name = require(config, "table", "tableName")
        if url is None or table_name is None:
            raise DestinationError("database destination config needs 'connectionString' and 'table'")

        keys = key_columns(config)
        try:
            async with self._engine(url).begin() as conn:
                table = await _reflect(conn, table_name, config.get("schema"))
                rows = [
                    {k: v for k, v in record.items() if k in table.c}
                    for record in records
                ]

                if mode == WriteMode.REPLACE:
                    await conn.execute(delete(table))
                elif mode == WriteMode.UPSERT and keys:
                    for row in rows:
                        await conn.execute(
                            delete(table).where(and_(*(table.c[k] == row.get(k) for k in keys)))
                        )

                if rows:
                    await conn.execute(insert(table), rows)
        except SQLAlchemyError as exc:
            raise DestinationError(
                f"Write to '{table_name}' failed: {exc}",
                details={"table": table_name, "mode": str(mode)},
            ) from exc

        logger.debug("Database loaded", table=table_name, records=len(records), mode=str(mode))
        return len(records)


async def _reflect(conn: AsyncConnection, table_name: str, schema: str | None) -> Table:
    def _load(sync_conn) -> Table:
        return Table(table_name, MetaData(), schema=schema, autoload_with=sync_conn)

    return await conn.run_sync(_load)
