"""
Async SQLAlchemy engine / session factory.
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from etlflow.core.config import settings
from etlflow.db.models import Base


def create_engine(url: str | None = None, *, echo: bool | None = None) -> AsyncEngine:
    """Engine for `url` (defaults to settings.DATABASE_URL)."""
    url = url or settings.DATABASE_URL
    options: dict = {
        "echo": settings.APP_ENV == "development" if echo is None else echo,
        "pool_pre_ping": True,
    }
    if url.startswith("postgresql"):
        options.update(pool_size=20, max_overflow=10)
    return create_async_engine(url, **options)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def create_tables(engine: AsyncEngine) -> None:
    """Create the pipelines / executions tables if they do not exist."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
