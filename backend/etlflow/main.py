"""FastAPI application entry point."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from etlflow.api.v1 import executions, pipelines, templates
from etlflow.core.config import settings
from etlflow.core.logging import get_logger, setup_logging
from etlflow.pipeline.errors import (
    ConflictError,
    EtlError,
    InvalidStateTransitionError,
    MissingParameterError,
    NotFoundError,
    ValidationError,
)
from etlflow.services import Services, build_services

API_PREFIX = "/api/v1"

# Most specific first; the first matching class wins
_STATUS_CODES: list[tuple[type[EtlError], int]] = [
    (NotFoundError, 404),
    (ConflictError, 409),
    (InvalidStateTransitionError, 409),
    (MissingParameterError, 422),
    (ValidationError, 422),
]


async def etl_error_handler(request: Request, exc: EtlError) -> JSONResponse:
    status_code = next((code for cls, code in _STATUS_CODES if isinstance(exc, cls)), 500)
    if status_code == 500:
        get_logger("api").error("Unhandled engine error", path=request.url.path, error=exc.message)
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder({
            "error": type(exc).__name__,
            "detail": exc.message,
            "details": exc.details,
        }),
    )


def create_app(services: Services | None = None) -> FastAPI:
    """
    Build the API.  Pass `services` to share pre-wired components
    (tests); otherwise they are built from settings at startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown lifecycle hooks."""
        setup_logging(settings.LOG_LEVEL, json_output=settings.LOG_JSON)
        logger = get_logger("startup")

        app.state.services = services or build_services()
        await app.state.services.startup()
        logger.info("Application starting", env=settings.APP_ENV, backend=str(app.state.services.settings.STORAGE_BACKEND))
        yield
        logger.info("Application shutting down")
        await app.state.services.shutdown()

    app = FastAPI(
        title="ETL Pipeline API",
        description="Define, version, run and monitor ETL pipelines",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Restrict in production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(EtlError, etl_error_handler)

    app.include_router(pipelines.router, prefix=API_PREFIX)
    app.include_router(executions.router, prefix=API_PREFIX)
    app.include_router(templates.router, prefix=API_PREFIX)

    @app.get("/health", tags=["Health"])
    async def health_check() -> dict[str, str]:
        """Public health-check endpoint."""
        return {"status": "ok", "env": settings.APP_ENV}

    return app


app = create_app()
