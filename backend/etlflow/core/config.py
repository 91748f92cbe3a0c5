"""
Pydantic Settings — centralized configuration loaded from environment variables.
"""

from pydantic_settings import BaseSettings

from etlflow.core.constants import StorageBackend


class Settings(BaseSettings):
    # ── Application ───────────────────────────
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    # ── Storage ───────────────────────────────
    # "memory" keeps pipelines/executions in-process (dev + tests),
    # "sql" persists them through SQLAlchemy.
    STORAGE_BACKEND: StorageBackend = StorageBackend.MEMORY

    # ── Database (individual vars) ────────────
    POSTGRES_USER: str = "etlflow_user"
    POSTGRES_PASSWORD: str = "etlflow_pass"
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "etlflow_db"

    # Full URL wins over the individual vars (e.g. sqlite+aiosqlite:///...)
    DATABASE_URL_OVERRIDE: str = ""

    @property
    def DATABASE_URL(self) -> str:
        """Async URL for app runtime (asyncpg)."""
        if self.DATABASE_URL_OVERRIDE:
            return self.DATABASE_URL_OVERRIDE
        return f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    # ── Execution engine ──────────────────────
    MAX_CONCURRENT_RUNS: int = 4
    STATUS_WRITE_RETRIES: int = 3
    STATUS_WRITE_RETRY_DELAY: float = 0.5

    # ── Health monitor ────────────────────────
    HEALTH_WINDOW_HOURS: int = 24

    # ── Redis / Celery ────────────────────────
    CELERY_BROKER_URL: str = "redis://localhost:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/1"

    model_config = {"env_file": ["../.env", ".env"], "extra": "ignore"}


settings = Settings()
