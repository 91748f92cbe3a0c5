"""
ExecutionRecord — one row per pipeline run.

The execution (status, counters, errors and the full audit log) is
stored as a JSON document and replaced on every save.
"""

from __future__ import annotations

from sqlalchemy import Column, DateTime, String

from etlflow.core.clock import utcnow
from etlflow.db.models.base import Base, JsonDocument


class ExecutionRecord(Base):
    __tablename__ = "executions"
    __indexed_fields__ = ("pipeline_id", "status")

    id = Column(String(36), primary_key=True)
    pipeline_id = Column(String(36), nullable=False, index=True)
    status = Column(String(20), nullable=False, index=True)

    document = Column(JsonDocument, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<ExecutionRecord id={self.id} pipeline={self.pipeline_id} status={self.status}>"
