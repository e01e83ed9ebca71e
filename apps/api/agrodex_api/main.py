"""AgroDex API - Main FastAPI application."""

import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI
from prometheus_client import make_asgi_app

from agrodex_api import __version__
from agrodex_api.ledger.provider import create_ledger_session
from agrodex_api.middleware.correlation import CorrelationIDMiddleware, CorrelationIdFilter
from agrodex_api.middleware.cors import PreflightCORSMiddleware
from agrodex_api.middleware.errors import register_exception_handlers
from agrodex_api.narrative.generator import build_narrative_generator
from agrodex_api.routes import ai, batches, dashboard, verify
from agrodex_api.settings import get_settings

settings = get_settings()

# Configure logging
_log_handler = logging.StreamHandler(sys.stdout)
_log_handler.addFilter(CorrelationIdFilter())
logging.basicConfig(
    level=settings.log_level,
    format='{"time": "%(asctime)s", "level": "%(levelname)s", "message": "%(message)s", "module": "%(name)s", "correlation_id": "%(correlation_id)s"}'
    if settings.log_format == "json"
    else "%(asctime)s %(levelname)s [%(correlation_id)s] %(name)s: %(message)s",
    handlers=[_log_handler],
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info("Starting AgroDex API...")
    try:
        settings.validate_production_settings()
        ledger = app.state.ledger_session.get()
        logger.info(f"Ledger gateway ready for operator {ledger.operator_id}")
    except Exception as e:
        logger.error(f"Configuration validation failed: {e}")
        raise ValueError(f"Invalid configuration: {e}") from e

    yield

    logger.info("Shutting down AgroDex API...")
    app.state.ledger_session.close()
    app.state.narrative.close()


# Create FastAPI app
app = FastAPI(
    title="AgroDex API",
    description="Agricultural batch provenance on a public ledger",
    version=__version__,
    lifespan=lifespan,
)

# Process-wide collaborators, injected into routes through dependencies
app.state.ledger_session = create_ledger_session(settings)
app.state.narrative = build_narrative_generator(settings)

# CORS middleware
app.add_middleware(
    PreflightCORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)
app.add_middleware(CorrelationIDMiddleware)

register_exception_handlers(app)

# Prometheus metrics
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)

# Register routers
app.include_router(verify.router)
app.include_router(batches.router)
app.include_router(ai.router)
app.include_router(dashboard.router)


@app.get("/health")
async def health_check():
    """Health check endpoint (basic liveness)."""
    return {
        "status": "healthy",
        "service": "agrodex-api",
        "version": __version__,
    }


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": "AgroDex API",
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
    }
