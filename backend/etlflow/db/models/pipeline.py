"""
PipelineRecord — one row per pipeline definition.

The whole versioned definition is stored as a JSON document; `name` and
`status` are indexed copies for listing.
"""

from __future__ import annotations

from sqlalchemy import Column, DateTime, String

from etlflow.core.clock import utcnow
from etlflow.db.models.base import Base, JsonDocument


class PipelineRecord(Base):
    __tablename__ = "pipelines"
    __indexed_fields__ = ("name", "status")

    id = Column(String(36), primary_key=True)
    name = Column(String(255), nullable=False, index=True)
    status = Column(String(20), nullable=False, index=True)

    document = Column(JsonDocument, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<PipelineRecord id={self.id} name={self.name!r} status={self.status}>"
