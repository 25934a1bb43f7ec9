"""FastAPI main application."""

from contextlib import asynccontextmanager
from collections.abc import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app

from login_metrics.core.config import Settings, settings as default_settings
from login_metrics.core.logging import configure_logging, get_logger
from login_metrics.api.middleware import MetricsMiddleware
from login_metrics.api.routes import analytics, health
from login_metrics.services.log_processor import LogProcessor
from login_metrics.services.metrics_engine import MetricsEngine

configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan handler."""
    logger.info(
        "Starting application",
        version=app.version,
        sketch_precision=app.state.engine.precision,
    )
    yield
    logger.info("Application shutdown complete")


def create_app(settings: Settings = default_settings) -> FastAPI:
    """Build an application with its own, empty aggregation engine."""
    app = FastAPI(
        title=settings.app_name,
        description="Login log ingestion with NRU, NRD and RR1 metrics",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.settings = settings
    engine = MetricsEngine(precision=settings.sketch_precision)
    app.state.engine = engine
    app.state.processor = LogProcessor(
        engine,
        batch_size=settings.batch_size,
        max_concurrent=settings.max_concurrent_batches,
        chunk_size=settings.read_chunk_size,
        progress_interval=settings.progress_log_interval,
    )

    app.add_middleware(MetricsMiddleware)

    app.include_router(health.router, tags=["health"])
    app.include_router(analytics.router)

    app.mount("/metrics", make_asgi_app())

    @app.get("/")
    async def root() -> dict[str, str]:
        """Root endpoint."""
        return {
            "service": settings.app_name,
            "version": "0.1.0",
            "status": "running",
            "docs": "/docs",
            "metrics": "/metrics",
        }

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Global exception handler."""
        logger.error(
            "Unhandled exception",
            error=str(exc),
            path=request.url.path,
            method=request.method,
        )
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "login_metrics.main:app",
        host="0.0.0.0",
        port=8000,
        reload=default_settings.debug,
        log_level=default_settings.log_level.lower(),
    )
