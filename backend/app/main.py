"""
FastAPI application entry point.

Run with:
    uvicorn backend.app.main:app --reload --port 8000

Or from the project root:
    python -m uvicorn backend.app.main:app --reload
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# ── Core infrastructure ──
from backend.app.core.config import settings
from backend.app.core.logging_config import setup_logging, get_logger
from backend.app.core.errors import register_error_handlers
from backend.app.core.middleware import RequestLoggingMiddleware
from backend.app.core.health import HealthStatus, run_health_check
from backend.app.core.database import Database

# ── Domain services ──
from backend.app.alerts.geo_query import GeoQueryEngine
from backend.app.alerts.lifecycle import AlertLifecycleManager
from backend.app.alerts.store import AlertStore
from backend.app.realtime.bus import FanOutBus
from backend.app.records.reports import ReportService, ReportStore
from backend.app.records.resources import ResourceService, ResourceStore

# ── API routers ──
from backend.app.api.v1.alerts import router as alert_router
from backend.app.api.v1.resources import router as resource_router
from backend.app.api.v1.reports import router as report_router
from backend.app.api.v1.realtime import router as realtime_router
from backend.app.api.deps import get_bus, get_database

# ── Initialise logging ──
setup_logging()
logger = get_logger(__name__)


def create_app(database_url: Optional[str] = None) -> FastAPI:
    """Build the application; ``database_url`` overrides ``DATABASE_URL``."""

    # ── Application lifespan (startup / shutdown) ──

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Own the database engine and the fan-out bus for the app's lifetime."""
        logger.info(
            "Starting %s v%s [%s]",
            settings.APP_NAME, settings.APP_VERSION, settings.ENVIRONMENT,
        )
        database = Database(database_url)
        if settings.DATABASE_AUTO_CREATE:
            await database.create_all()

        bus = FanOutBus()
        await bus.start()

        alert_store = AlertStore(database)
        resource_store = ResourceStore(database)

        app.state.database = database
        app.state.bus = bus
        app.state.alert_manager = AlertLifecycleManager(alert_store, bus)
        app.state.resource_service = ResourceService(resource_store)
        app.state.resource_geo = GeoQueryEngine(resource_store)
        app.state.report_service = ReportService(ReportStore(database))
        logger.info("Store ready at %s", database.display_url)

        yield

        await bus.stop()
        await database.dispose()
        logger.info("Shutting down %s", settings.APP_NAME)

    # ── Create application ──

    app = FastAPI(
        title=settings.APP_NAME,
        description=(
            "Disaster alert service. "
            "Authorised alert lifecycle with optimistic concurrency, "
            "great-circle proximity search over alerts and relief resources, "
            "field reports, and a WebSocket feed that pushes every committed "
            "alert change to connected clients."
        ),
        version=settings.APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # ── Middleware stack (order matters — outermost first) ──

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS if not settings.CORS_ALLOW_ALL else ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    # ── Error handlers ──
    register_error_handlers(app)

    # ── Register routers ──
    app.include_router(alert_router)
    app.include_router(resource_router)
    app.include_router(report_router)
    app.include_router(realtime_router)

    # ── Root & health endpoints ──

    @app.get("/", tags=["root"])
    async def root():
        return {
            "service": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "environment": settings.ENVIRONMENT,
            "modules": [
                "alert-lifecycle",
                "geo-query",
                "resources",
                "reports",
                "realtime-fanout",
            ],
            "docs": "/docs",
        }

    @app.get("/health", tags=["health"])
    async def health_check(
        database: Database = Depends(get_database),
        bus: FanOutBus = Depends(get_bus),
    ):
        """Deep health probe — checks all subsystems."""
        report = await run_health_check(database, bus)
        return report.to_dict()

    @app.get("/health/live", tags=["health"])
    async def liveness():
        """Kubernetes liveness probe — is the process alive?"""
        return {"status": "alive"}

    @app.get("/health/ready", tags=["health"])
    async def readiness(
        database: Database = Depends(get_database),
        bus: FanOutBus = Depends(get_bus),
    ):
        """Kubernetes readiness probe — can we serve traffic?"""
        report = await run_health_check(database, bus)
        if report.status == HealthStatus.UNHEALTHY:
            return JSONResponse(status_code=503, content=report.to_dict())
        return report.to_dict()

    return app


app = create_app()
