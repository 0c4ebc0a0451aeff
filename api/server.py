"""FastAPI server for the Stock Reconciliation Service.

Main entry point for the API server.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.routes import health, reports
from api.services.sources import build_engine
from core import __version__
from core.config import Settings, load_settings
from core.observability.logging import configure_logging, get_logger
from reconciliation.engine import ReconciliationEngine
from reconciliation.locations import LocationMapper


logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler.

    Builds settings, location mapper, adapters and engine unless they were
    injected through create_app, and closes the adapters it built.
    """
    # Startup
    settings = app.state.settings or load_settings()
    app.state.settings = settings
    configure_logging(settings.log_level_value, settings.log_json)

    owns_engine = app.state.engine is None
    if owns_engine:
        app.state.engine, app.state.mapper = build_engine(settings)
    elif app.state.mapper is None:
        app.state.mapper = app.state.engine.mapper

    logger.info(
        "Stock Reconciliation API starting up",
        extra_fields={
            "source_a": app.state.engine.source_a.describe(),
            "source_b": app.state.engine.source_b.describe(),
            "fetch_timeout_s": app.state.engine.fetch_timeout,
        },
    )

    yield

    # Shutdown
    if owns_engine:
        await app.state.engine.source_a.close()
        await app.state.engine.source_b.close()
    logger.info("Stock Reconciliation API shutting down")


def create_app(
    settings: Optional[Settings] = None,
    engine: Optional[ReconciliationEngine] = None,
    mapper: Optional[LocationMapper] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Settings to use instead of reading the environment
        engine: Pre-built engine (adapters are then owned by the caller)
        mapper: Location mapper; defaults to the engine's
    """
    app = FastAPI(
        title="Stock Reconciliation API",
        description="Combined replenishment report reconciling the legacy inventory system with the ERP",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    app.state.settings = settings
    app.state.engine = engine
    app.state.mapper = mapper

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure for production
        allow_credentials=True,
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(health.router, tags=["Health"])
    app.include_router(reports.router, prefix="/reports", tags=["Reports"])

    return app


# Default app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("api.server:app", host="0.0.0.0", port=8000, reload=True)
