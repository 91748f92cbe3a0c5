"""
ExecutionStore — persisted executions, keyed by id and indexed by pipeline.
"""

from __future__ import annotations

from datetime import datetime

from etlflow.core.constants import ExecutionStatus
from etlflow.core.logging import get_logger
from etlflow.models.execution import Execution
from etlflow.pipeline.errors import NotFoundError
from etlflow.repositories.storage import DocumentStore

logger = get_logger(__name__)


class ExecutionStore:
    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def save(self, execution: Execution) -> None:
        """Insert or replace the whole execution record."""
        await self._store.save(execution.id, execution.to_document())

    async def get(self, execution_id: str) -> Execution:
        document = await self._store.get(execution_id)
        if document is None:
            raise NotFoundError("Execution", execution_id)
        return Execution.model_validate(document)

    async def list_by_pipeline(self, pipeline_id: str) -> list[Execution]:
        """All executions of a pipeline, oldest first."""
        executions = [
            Execution.model_validate(doc)
            for doc in await self._store.list(pipeline_id=pipeline_id)
        ]
        return sorted(executions, key=lambda e: e.start_time)

    async def list_running(self) -> list[Execution]:
        executions = [
            Execution.model_validate(doc)
            for doc in await self._store.list(status=str(ExecutionStatus.RUNNING))
        ]
        return sorted(executions, key=lambda e: e.start_time)

    async def delete_by_pipeline(self, pipeline_id: str) -> int:
        removed = await self._store.delete_where(pipeline_id=pipeline_id)
        logger.debug("Executions deleted", pipeline_id=pipeline_id, count=removed)
        return removed

    async def purge(self, older_than: datetime | None = None) -> int:
        """
        Delete finished executions (optionally only those that ended before
        `older_than`).  Running executions are never purged.
        """
        removed = 0
        for document in await self._store.list():
            execution = Execution.model_validate(document)
            if not execution.is_terminal:
                continue
            if older_than is not None and execution.end_time and execution.end_time >= older_than:
                continue
            if await self._store.delete(execution.id):
                removed += 1

        logger.info("Executions purged", count=removed, older_than=older_than.isoformat() if older_than else None)
        return removed
