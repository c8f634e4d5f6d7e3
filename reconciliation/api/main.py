"""
Identity Reconciliation - FastAPI Application

Provides:
- Contact identity consolidation (`POST /identify`)
- Health, readiness and liveness probes
- Prometheus metrics
"""

import logging
import structlog
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import make_asgi_app

from reconciliation import __version__
from reconciliation.api.middleware import (
    SecurityHeadersMiddleware,
    RequestIDMiddleware,
    get_cors_origins,
)
from reconciliation.api.routes import health, identify
from reconciliation.config import get_settings
from reconciliation.db.client import init_db, close_db, create_schema
from reconciliation.kernel.http.errors import register_exception_handlers

# Map log level string to logging constant
_LOG_LEVEL_MAP = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}


def _get_log_level() -> int:
    """Get numeric log level from settings."""
    level_str = get_settings().log_level.lower()
    return _LOG_LEVEL_MAP.get(level_str, logging.INFO)


# Configure structured logging
structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer()
        if get_settings().log_format == "json"
        else structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(_get_log_level()),
    context_class=dict,
    logger_factory=structlog.PrintLoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan - startup and shutdown."""
    settings = get_settings()
    uses_database = settings.contact_store_backend == "postgres"

    logger.info(
        "Starting Identity Reconciliation API",
        version=__version__,
        environment=settings.environment,
        contact_store_backend=settings.contact_store_backend,
    )

    if uses_database:
        await init_db()
        if settings.db_auto_create_schema:
            await create_schema()
        logger.info("PostgreSQL connection initialized")
    else:
        logger.info("Using in-memory contact store; records are not persisted")

    yield

    logger.info("Shutting down Identity Reconciliation API")
    if uses_database:
        await close_db()


# Create FastAPI application
app = FastAPI(
    title="Identity Reconciliation API",
    description="Consolidates contact submissions sharing an email or phone number under one primary contact",
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

register_exception_handlers(app)

# Middleware (order matters - first added = last executed)
app.add_middleware(RequestIDMiddleware)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)

# Prometheus metrics endpoint
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)

# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(identify.router, tags=["Identity"])


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "name": "Identity Reconciliation API",
        "version": __version__,
        "message": "Identity Reconciliation API is running",
        "docs": "/docs",
        "health": "/health",
        "metrics": "/metrics",
    }


def run() -> None:
    """Serve the API with uvicorn on the configured host and port."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "reconciliation.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )
