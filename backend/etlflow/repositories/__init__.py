"""
Repositories package — data-access layer.

Each repository handles storage for one domain entity and works against
the narrow DocumentStore interface, so the in-memory and SQL backends
are interchangeable.  Repositories do NOT handle HTTP concerns or
execution logic.

Convention:
    - One file per aggregate root (pipelines.py, executions.py)
    - Documents are the models' `to_document()` output
"""

from etlflow.repositories.executions import ExecutionStore
from etlflow.repositories.pipelines import PipelineRepository
from etlflow.repositories.sql_store import SqlDocumentStore
from etlflow.repositories.storage import DocumentStore, InMemoryDocumentStore

__all__ = [
    "DocumentStore",
    "ExecutionStore",
    "InMemoryDocumentStore",
    "PipelineRepository",
    "SqlDocumentStore",
]
