"""
Storefront Commerce - Main Application Entry Point

This module initializes the FastAPI application that receives Stripe
webhooks for the storefront and exposes health and metrics endpoints.
"""

import structlog
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from api import webhooks
from core.dependencies import clear_settings, get_settings, init_settings
from core.logging import configure_logging
from core.metrics import init_metrics
from core.settings import Settings
from core.tracing import init_tracer
from db.session import init_db

log = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for FastAPI application startup and shutdown events."""
    init_settings()
    settings = get_settings()

    tracer_provider = init_tracer(settings.APP_NAME)

    # Schema is owned by alembic; create_all only fills gaps on local sqlite
    if settings.db.is_sqlite:
        init_db(settings)

    yield
    tracer_provider.shutdown()
    clear_settings()


app = FastAPI(
    title="Storefront Commerce",
    description="Stripe payment webhooks and maintenance endpoints for the storefront.",
    version="1.0.0",
    lifespan=lifespan,
)

FastAPIInstrumentor.instrument_app(app)

init_metrics(app)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    log.error("api.unhandled_error", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=500,
        content={"detail": str(exc)},
    )


@app.get("/health")
async def health(settings: Settings = Depends(get_settings)):
    """Health check endpoint alias."""
    return await health_check(settings)


@app.get("/healthz")
async def health_check(settings: Settings = Depends(get_settings)):
    db_type = "SQLite" if settings.db.is_sqlite else "PostgreSQL"
    return {
        "status": "ok",
        "app_name": settings.APP_NAME,
        "database": db_type,
        "environment": settings.ENVIRONMENT,
    }


API_PREFIX = "/api"

app.include_router(webhooks.router, prefix=API_PREFIX, tags=["webhooks"])


def main():
    import uvicorn

    configure_logging()
    uvicorn.run(app, host="0.0.0.0", port=8000)


if __name__ == "__main__":
    main()
