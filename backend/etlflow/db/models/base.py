"""
SQLAlchemy declarative base and shared column types for all models.

Convention:
    - Each table lives in its own file under `etlflow/db/models/`
    - Every model file imports `Base` from here
    - The `__init__.py` re-exports all models so `create_all` sees them
    - Rows hold the full domain document in `document`; the other columns
      are indexed copies of document fields used for filtering
"""

from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase


# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JsonDocument = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    # Document fields copied into columns of the same name on save
    __indexed_fields__ = ()
