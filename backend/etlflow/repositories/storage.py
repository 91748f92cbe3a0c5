"""
DocumentStore — the narrow storage interface repositories are built on.

A store holds JSON documents keyed by id.  `list` / `delete_where`
filter on top-level document fields; the SQL implementation only
supports filtering on the columns its table indexes.
"""

from __future__ import annotations

import copy
import threading
from abc import ABC, abstractmethod
from typing import Any

Document = dict[str, Any]


class DocumentStore(ABC):
    """Async key → JSON document store."""

    @abstractmethod
    async def get(self, doc_id: str) -> Document | None:
        ...

    @abstractmethod
    async def list(self, **filters: Any) -> list[Document]:
        ...

    @abstractmethod
    async def save(self, doc_id: str, document: Document) -> None:
        """Insert or replace the whole document."""
        ...

    @abstractmethod
    async def patch(self, doc_id: str, fields: Document) -> bool:
        """Set top-level fields in place, leaving the rest untouched.  False if absent."""
        ...

    @abstractmethod
    async def delete(self, doc_id: str) -> bool:
        ...

    @abstractmethod
    async def delete_where(self, **filters: Any) -> int:
        ...


class InMemoryDocumentStore(DocumentStore):
    """Process-local store; documents are copied on the way in and out."""

    def __init__(self) -> None:
        self._docs: dict[str, Document] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _matches(document: Document, filters: dict[str, Any]) -> bool:
        return all(document.get(k) == v for k, v in filters.items())

    async def get(self, doc_id: str) -> Document | None:
        with self._lock:
            doc = self._docs.get(doc_id)
            return copy.deepcopy(doc) if doc is not None else None

    async def list(self, **filters: Any) -> list[Document]:
        with self._lock:
            return [
                copy.deepcopy(doc)
                for doc in self._docs.values()
                if self._matches(doc, filters)
            ]

    async def save(self, doc_id: str, document: Document) -> None:
        with self._lock:
            self._docs[doc_id] = copy.deepcopy(document)

    async def patch(self, doc_id: str, fields: Document) -> bool:
        with self._lock:
            doc = self._docs.get(doc_id)
            if doc is None:
                return False
            doc.update(copy.deepcopy(fields))
            return True

    async def delete(self, doc_id: str) -> bool:
        with self._lock:
            return self._docs.pop(doc_id, None) is not None

    async def delete_where(self, **filters: Any) -> int:
        with self._lock:
            doomed = [k for k, doc in self._docs.items() if self._matches(doc, filters)]
            for key in doomed:
                del self._docs[key]
            return len(doomed)
