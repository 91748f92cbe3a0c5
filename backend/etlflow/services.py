"""
Composition root — builds and wires every component once.

    services = build_services()                      # memory backend
    services = build_services(Settings(STORAGE_BACKEND="sql",
                                       DATABASE_URL_OVERRIDE="sqlite+aiosqlite:///etl.db"))

The API (`create_app`) and the Celery worker each own one Services
instance; nothing else holds global state.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import httpx
from sqlalchemy.ext.asyncio import AsyncEngine

from etlflow.core.config import Settings, settings as default_settings
from etlflow.core.constants import StorageBackend
from etlflow.core.logging import get_logger
from etlflow.db.models import ExecutionRecord, PipelineRecord
from etlflow.db.session import create_engine, create_session_factory, create_tables
from etlflow.monitoring.health import HealthMonitor
from etlflow.models.pipeline import Record
from etlflow.pipeline.adapters.registry import AdapterRegistry, default_adapter_registry
from etlflow.pipeline.datasets import DatasetCatalog
from etlflow.pipeline.engine import ExecutionEngine
from etlflow.pipeline.stages.custom import Plugin
from etlflow.pipeline.stages.registry import StageRegistry, default_stage_registry
from etlflow.repositories.executions import ExecutionStore
from etlflow.repositories.pipelines import PipelineRepository
from etlflow.repositories.sql_store import SqlDocumentStore
from etlflow.repositories.storage import DocumentStore, InMemoryDocumentStore
from etlflow.templates.expander import TemplateExpander
from etlflow.templates.registry import TemplateRegistry

logger = get_logger(__name__)


@dataclass
class Services:
    settings: Settings
    datasets: DatasetCatalog
    pipelines: PipelineRepository
    executions: ExecutionStore
    stages: StageRegistry
    adapters: AdapterRegistry
    engine: ExecutionEngine
    health: HealthMonitor
    templates: TemplateRegistry
    expander: TemplateExpander
    db_engine: AsyncEngine | None = field(default=None, repr=False)

    async def startup(self) -> None:
        """Create SQL tables when the SQL backend is in use."""
        if self.db_engine is not None:
            await create_tables(self.db_engine)
            logger.info("Storage tables ready", backend=str(self.settings.STORAGE_BACKEND))

    async def shutdown(self) -> None:
        """Drain in-flight runs, then release the database pool."""
        await self.engine.shutdown()
        if self.db_engine is not None:
            await self.db_engine.dispose()


def _stores(config: Settings) -> tuple[DocumentStore, DocumentStore, AsyncEngine | None]:
    if config.STORAGE_BACKEND == StorageBackend.SQL:
        db_engine = create_engine(config.DATABASE_URL)
        session_factory = create_session_factory(db_engine)
        return (
            SqlDocumentStore(session_factory, PipelineRecord),
            SqlDocumentStore(session_factory, ExecutionRecord),
            db_engine,
        )
    return InMemoryDocumentStore(), InMemoryDocumentStore(), None


def build_services(
    config: Settings | None = None,
    *,
    datasets: dict[str, list[Record]] | DatasetCatalog | None = None,
    plugins: dict[str, Plugin] | None = None,
    adapters: AdapterRegistry | None = None,
    http_transport: httpx.AsyncBaseTransport | None = None,
    pipeline_store: DocumentStore | None = None,
    execution_store: DocumentStore | None = None,
) -> Services:
    """Wire repositories, registries, the engine and the monitors together."""
    config = config or default_settings

    catalog = datasets if isinstance(datasets, DatasetCatalog) else DatasetCatalog(datasets)

    db_engine = None
    if pipeline_store is None or execution_store is None:
        default_pipeline_store, default_execution_store, db_engine = _stores(config)
        pipeline_store = pipeline_store or default_pipeline_store
        execution_store = execution_store or default_execution_store

    executions = ExecutionStore(execution_store)
    pipelines = PipelineRepository(pipeline_store, executions)

    stages = default_stage_registry(catalog, plugins)
    adapters = adapters or default_adapter_registry(catalog, http_transport)

    engine = ExecutionEngine(
        pipelines,
        executions,
        stages,
        adapters,
        max_concurrent_runs=config.MAX_CONCURRENT_RUNS,
        status_write_retries=config.STATUS_WRITE_RETRIES,
        status_write_retry_delay=config.STATUS_WRITE_RETRY_DELAY,
    )
    templates = TemplateRegistry()

    logger.debug(
        "Services built",
        backend=str(config.STORAGE_BACKEND),
        datasets=catalog.names(),
        max_concurrent_runs=config.MAX_CONCURRENT_RUNS,
    )

    return Services(
        settings=config,
        datasets=catalog,
        pipelines=pipelines,
        executions=executions,
        stages=stages,
        adapters=adapters,
        engine=engine,
        health=HealthMonitor(pipelines, executions, window_hours=config.HEALTH_WINDOW_HOURS),
        templates=templates,
        expander=TemplateExpander(templates, pipelines),
        db_engine=db_engine,
    )
