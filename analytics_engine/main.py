import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from analytics_engine.config import settings
from analytics_engine.database import init_models
from analytics_engine.events import event_bus
from analytics_engine.exception_handlers import register_exception_handlers
from analytics_engine.middleware.logging import StructuredLoggingMiddleware, setup_structured_logging
from analytics_engine.routes import admin, analytics, monitoring, tracking
from analytics_engine.scheduler import scheduler
from analytics_engine.services.tracking_service import tracking_service
from analytics_engine.utils.cache import cache_manager
from analytics_engine.utils.metrics import PrometheusMiddleware, set_app_info
from analytics_engine.utils.scheduled_jobs import install_aggregation_job, install_retention_policy

setup_structured_logging(log_level=settings.log_level, json_format=settings.json_logs)
logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    """Create the FastAPI application."""
    app = FastAPI(
        title=settings.app_name,
        description="Engagement tracking and aggregation for trackable entities",
        debug=settings.debug,
        version=settings.app_version,
    )

    # Add middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(PrometheusMiddleware)
    app.add_middleware(StructuredLoggingMiddleware)

    register_exception_handlers(app)

    # Include routers
    app.include_router(tracking.router, prefix="/api/v1/analytics", tags=["Tracking"])
    app.include_router(analytics.router, prefix="/api/v1/analytics", tags=["Analytics"])
    app.include_router(admin.router, prefix="/api/v1/admin/analytics", tags=["Admin"])
    app.include_router(monitoring.router, tags=["Monitoring"])

    set_app_info(version=settings.app_version, environment=settings.environment)

    if settings.debug:
        logger.info(f"Running in {settings.environment} mode")
        logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO)  # Logs SQL statements
        logging.getLogger("sqlalchemy.pool").setLevel(logging.INFO)  # Logs connection pool checkouts

    @app.on_event("startup")
    async def startup_event():
        """Tasks to run at application startup."""
        logger.info("Starting up the analytics engine...")
        await init_models()
        logger.info("Database tables created (if not existing).")

        tracking_service.register_event_handlers(event_bus)

        if settings.aggregation_enabled:
            install_aggregation_job(scheduler, interval_minutes=settings.aggregation_interval_minutes)
        install_retention_policy(scheduler, interval_hours=settings.retention_interval_hours)
        scheduler.start()

    @app.on_event("shutdown")
    async def shutdown_event():
        logger.info("Shutting down the analytics engine...")
        if scheduler.running:
            scheduler.shutdown(wait=False)
        await cache_manager.disconnect()

    return app


app = create_app()
