"""
SqlDocumentStore — DocumentStore over one ORM table.

Each save replaces the row's `document` and refreshes the indexed
columns listed in the model's `__indexed_fields__`.  Every call opens
its own session and commits; SQLAlchemy errors surface as StorageError.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from etlflow.core.logging import get_logger
from etlflow.db.models import Base
from etlflow.pipeline.errors import StorageError
from etlflow.repositories.storage import Document, DocumentStore

logger = get_logger(__name__)


class SqlDocumentStore(DocumentStore):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], model: type[Base]) -> None:
        self._session_factory = session_factory
        self._model = model

    def _where(self, filters: dict[str, Any]) -> list:
        clauses = []
        for key, value in filters.items():
            if key == "id":
                column = self._model.id
            elif key in self._model.__indexed_fields__:
                column = getattr(self._model, key)
            else:
                raise StorageError(
                    f"'{key}' is not an indexed column of {self._model.__tablename__}",
                    details={"table": self._model.__tablename__, "field": key},
                )
            clauses.append(column == value)
        return clauses

    async def get(self, doc_id: str) -> Document | None:
        try:
            async with self._session_factory() as session:
                row = await session.get(self._model, doc_id)
                return dict(row.document) if row is not None else None
        except SQLAlchemyError as exc:
            raise StorageError(f"Read from {self._model.__tablename__} failed: {exc}") from exc

    async def list(self, **filters: Any) -> list[Document]:
        stmt = select(self._model).where(*self._where(filters))
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return [dict(row.document) for row in result.scalars()]
        except SQLAlchemyError as exc:
            raise StorageError(f"Query on {self._model.__tablename__} failed: {exc}") from exc

    async def save(self, doc_id: str, document: Document) -> None:
        columns = {field: document.get(field) for field in self._model.__indexed_fields__}
        try:
            async with self._session_factory() as session:
                row = await session.get(self._model, doc_id)
                if row is None:
                    session.add(self._model(id=doc_id, document=document, **columns))
                else:
                    row.document = document
                    for field, value in columns.items():
                        setattr(row, field, value)
                await session.commit()
        except SQLAlchemyError as exc:
            logger.warning("Document save failed", table=self._model.__tablename__, id=doc_id, error=str(exc))
            raise StorageError(
                f"Write to {self._model.__tablename__} failed: {exc}",
                details={"id": doc_id},
            ) from exc

    async def patch(self, doc_id: str, fields: Document) -> bool:
        # Row lock keeps a concurrent whole-document save from interleaving
        stmt = select(self._model).where(self._model.id == doc_id).with_for_update()
        try:
            async with self._session_factory() as session:
                row = (await session.execute(stmt)).scalar_one_or_none()
                if row is None:
                    return False
                row.document = {**row.document, **fields}
                for field in self._model.__indexed_fields__:
                    if field in fields:
                        setattr(row, field, fields[field])
                await session.commit()
                return True
        except SQLAlchemyError as exc:
            raise StorageError(
                f"Write to {self._model.__tablename__} failed: {exc}",
                details={"id": doc_id},
            ) from exc

    async def delete(self, doc_id: str) -> bool:
        try:
            async with self._session_factory() as session:
                result = await session.execute(delete(self._model).where(self._model.id == doc_id))
                await session.commit()
                return result.rowcount > 0
        except SQLAlchemyError as exc:
            raise StorageError(f"Delete from {self._model.__tablename__} failed: {exc}") from exc

    async def delete_where(self, **filters: Any) -> int:
        try:
            async with self._session_factory() as session:
                result = await session.execute(delete(self._model).where(*self._where(filters)))
                await session.commit()
                return result.rowcount
        except SQLAlchemyError as exc:
            raise StorageError(f"Delete from {self._model.__tablename__} failed: {exc}") from exc
