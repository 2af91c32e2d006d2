"""
FastAPI application entry point.

Run with:
    uvicorn backend.app.main:app --reload --port 8000

Or from the project root:
    python -m uvicorn backend.app.main:app --reload

``create_app`` is the composition root: the lifespan builds the database,
repository, recipient directory, snapshot aggregator, realtime hub, email
transport, dispatcher and report engine, stores them on ``app.state`` and
tears them down in reverse order on shutdown.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# ── Core infrastructure ──
from backend.app.core.config import Settings, settings
from backend.app.core.database import Database
from backend.app.core.errors import register_error_handlers
from backend.app.core.health import HealthStatus, run_health_check
from backend.app.core.logging_config import get_logger, setup_logging
from backend.app.core.middleware import RequestLoggingMiddleware

# ── Alert engine ──
from backend.app.alerts.channels.email_alert import EmailTransport, build_email_transport
from backend.app.alerts.dispatcher import NotificationDispatcher
from backend.app.alerts.realtime import RealtimeHub
from backend.app.alerts.reports import ReportQueryEngine
from backend.app.alerts.repository import AlertRepository, RecipientDirectory
from backend.app.alerts.scope import ScopeResolver
from backend.app.alerts.service import AlertService
from backend.app.alerts.snapshot import SnapshotAggregator

# ── API routers ──
from backend.app.api.v1.alerts import router as alert_router
from backend.app.api.v1.reports import router as report_router

logger = get_logger(__name__)


def create_app(
    config: Optional[Settings] = None,
    *,
    email_transport: Optional[EmailTransport] = None,
) -> FastAPI:
    """
    Build the application.

    Parameters
    ----------
    config : Settings, optional
        Defaults to the environment-derived settings.
    email_transport : EmailTransport, optional
        Overrides the transport selected by ``EMAIL_PROVIDER``.
    """
    config = config or settings
    setup_logging(config)

    # ── Application lifespan (startup / shutdown) ──

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "Starting %s v%s [%s]",
            config.APP_NAME, config.APP_VERSION, config.ENVIRONMENT,
        )
        database = Database(config.DATABASE_URL, config)
        if config.DATABASE_CREATE_TABLES:
            await database.create_all()

        transport = email_transport or build_email_transport(config)
        repository = AlertRepository(database)
        directory = RecipientDirectory(database)
        aggregator = SnapshotAggregator(repository, directory)
        hub = RealtimeHub(
            aggregator,
            snapshot_limit=config.HUB_SNAPSHOT_LIMIT,
            max_subscribers=config.HUB_MAX_SUBSCRIBERS,
            queue_size=config.HUB_QUEUE_SIZE,
        )
        dispatcher = NotificationDispatcher(
            transport,
            max_concurrency=config.DISPATCH_MAX_CONCURRENCY,
            timeout_seconds=config.EMAIL_TIMEOUT_SECONDS,
        )

        app.state.database = database
        app.state.email_transport = transport
        app.state.repository = repository
        app.state.directory = directory
        app.state.aggregator = aggregator
        app.state.hub = hub
        app.state.alert_service = AlertService(
            repository, ScopeResolver(directory), dispatcher, hub,
        )
        app.state.report_engine = ReportQueryEngine(repository, config.REPORT_TIMEZONE)

        await hub.start()
        logger.info(
            "Alert engine ready (db=%s, email=%s)",
            database.display_url, transport.provider,
        )
        try:
            yield
        finally:
            logger.info("Shutting down %s", config.APP_NAME)
            await hub.stop()
            await transport.close()
            await database.dispose()

    # ── Create application ──

    app = FastAPI(
        title=config.APP_NAME,
        description=(
            "Alert broadcast and real-time notification engine. "
            "Creates, updates and deletes disaster alerts, notifies every "
            "opted-in recipient in scope by email, pushes live dashboard "
            "snapshots over Server-Sent Events (with a polling fallback), "
            "and produces filtered historical reports as JSON, HTML or PDF."
        ),
        version=config.APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.settings = config

    # ── Middleware stack (outermost first) ──

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS if not config.CORS_ALLOW_ALL else ["*"],
        allow_credentials=not config.CORS_ALLOW_ALL,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Poll-Interval"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    # ── Error handlers ──
    register_error_handlers(app)

    # ── Register routers (report paths before /{alert_id}) ──
    app.include_router(report_router)
    app.include_router(alert_router)

    # ── Root & health endpoints ──

    async def _health(request: Request):
        state = request.app.state
        return await run_health_check(
            getattr(state, "database", None),
            getattr(state, "hub", None),
            getattr(state, "email_transport", None),
        )

    @app.get("/", tags=["root"])
    async def root():
        return {
            "service": config.APP_NAME,
            "version": config.APP_VERSION,
            "environment": config.ENVIRONMENT,
            "modules": [
                "alert-management",
                "recipient-scoping",
                "email-notification",
                "realtime-dashboard",
                "alert-reports",
            ],
            "docs": "/docs",
        }

    @app.get("/health", tags=["health"])
    async def health_check(request: Request):
        """Deep health probe — database, realtime hub, email transport."""
        return (await _health(request)).to_dict()

    @app.get("/health/live", tags=["health"])
    async def liveness():
        """Kubernetes liveness probe — is the process alive?"""
        return {"status": "alive"}

    @app.get("/health/ready", tags=["health"])
    async def readiness(request: Request):
        """Kubernetes readiness probe — can we serve traffic?"""
        report = await _health(request)
        if report.status is HealthStatus.UNHEALTHY:
            return JSONResponse(status_code=503, content=report.to_dict())
        return report.to_dict()

    return app


app = create_app()
