"""
FastAPI Application Entry Point

This module initializes the FastAPI application and integrates:
- Scheduling facade (catalog, stores, notifier)
- Database connections
- Waitlist sweep scheduler
- API routes
- Lifecycle events
"""

import logging
import sys
from contextlib import asynccontextmanager

from aiogram import Bot
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from scheduling import __version__
from scheduling.api import register_error_handlers, router
from scheduling.bot.notifier import LoggingNotifier, TelegramNotifier, WaitlistNotifier
from scheduling.catalog import HttpCatalog
from scheduling.config import settings
from scheduling.db.memory import InMemoryAppointmentStore, InMemoryWaitlistStore
from scheduling.db.repository import AppointmentRepository, WaitlistRepository
from scheduling.db.session import (
    check_database_connection,
    close_database_connection,
    create_tables,
    get_session_factory,
)
from scheduling.jobs import create_scheduler
from scheduling.services.facade import SchedulingFacade

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[
        logging.StreamHandler(sys.stdout),
    ]
)
logger = logging.getLogger(__name__)

# Log startup information
logger.info("=" * 60)
logger.info("Salon Scheduling Engine")
logger.info("=" * 60)
logger.info(f"Python version: {sys.version}")
logger.info(f"Debug mode: {settings.debug}")
logger.info(f"Log level: {settings.log_level}")
logger.info(f"Storage backend: {settings.storage_backend}")
logger.info(f"Database URL: {settings.database_url_str.split('@')[0]}@***")
logger.info(f"Catalog API: {settings.catalog_api_url}")
logger.info(f"Booking horizon: {settings.booking_horizon_days} days")
logger.info(f"Bot token configured: {'Yes' if settings.telegram_bot_token else 'No'}")
logger.info("=" * 60)


def build_notifier() -> WaitlistNotifier:
    if settings.telegram_bot_token:
        return TelegramNotifier(Bot(token=settings.telegram_bot_token))
    return LoggingNotifier()


def build_facade(notifier: WaitlistNotifier) -> SchedulingFacade:
    """
    Wire the scheduling facade from configuration.

    Returns:
        SchedulingFacade backed by the HTTP catalog and the configured stores
    """
    catalog = HttpCatalog(
        settings.catalog_api_url,
        token=settings.catalog_api_token,
        timeout=settings.catalog_timeout_seconds,
    )

    if settings.storage_backend == "memory":
        appointments = InMemoryAppointmentStore(settings.slot_quantum_minutes)
        waitlist_requests = InMemoryWaitlistStore()
    else:
        session_factory = get_session_factory()
        appointments = AppointmentRepository(session_factory, settings.slot_quantum_minutes)
        waitlist_requests = WaitlistRepository(session_factory)

    return SchedulingFacade(
        catalog,
        appointments,
        waitlist_requests,
        notifier=notifier,
        horizon_days=settings.booking_horizon_days,
        quantum_minutes=settings.slot_quantum_minutes,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan context manager.

    Handles startup and shutdown events:
    - Builds the scheduling facade
    - Creates tables and verifies the database
    - Starts the waitlist sweep scheduler
    - Closes connections on shutdown
    """
    # Startup
    logger.info("🚀 Starting application...")

    notifier = build_notifier()
    app.state.notifier = notifier
    app.state.facade = build_facade(notifier)

    if settings.storage_backend == "database":
        try:
            logger.info("Checking database connection...")
            await create_tables()
            db_healthy = await check_database_connection()
            if db_healthy:
                logger.info("✅ Database connection verified")
            else:
                logger.error("❌ Database connection failed!")
        except Exception as e:
            logger.error(f"❌ Error during database setup: {e}", exc_info=True)
            logger.warning("Application will start but database operations will fail")

    scheduler = create_scheduler(app.state.facade, settings.waitlist_sweep_interval_seconds)
    scheduler.start()
    app.state.scheduler = scheduler

    logger.info("✅ Application startup complete")
    logger.info("=" * 60)

    yield

    # Shutdown
    logger.info("=" * 60)
    logger.info("🛑 Shutting down application...")

    scheduler.shutdown(wait=False)
    logger.info("✅ Waitlist scheduler stopped")

    try:
        if isinstance(notifier, TelegramNotifier):
            logger.info("Closing Telegram bot...")
            await notifier.close()
            logger.info("✅ Telegram bot closed")

        if settings.storage_backend == "database":
            logger.info("Closing database connections...")
            await close_database_connection()
            logger.info("✅ Database connections closed")

        logger.info("✅ Application shutdown complete")

    except Exception as e:
        logger.error(f"❌ Error during shutdown: {e}", exc_info=True)

    logger.info("=" * 60)


# Initialize FastAPI application
app = FastAPI(
    title="Salon Scheduling Engine",
    description=(
        "Appointment scheduling and availability engine for salon bookings. "
        "Lists bookable slots, books, cancels and reschedules appointments, "
        "and manages waitlists for fully booked days."
    ),
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.debug else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)


@app.get("/")
async def root():
    """
    Root endpoint.

    Returns basic API information.
    """
    return {
        "message": "Salon Scheduling Engine API",
        "version": __version__,
        "status": "running",
        "endpoints": {
            "health": "/health",
            "docs": "/docs" if settings.debug else "disabled in production",
            "slots": "/venues/{venue_id}/services/{service_id}/slots",
            "appointments": "/appointments",
            "waitlist": "/waitlist",
        }
    }


@app.get("/health")
async def health_check():
    """
    Application health check endpoint.

    Checks:
    - API responsiveness
    - Database connectivity (database backend only)

    Returns:
        JSONResponse with health status
    """
    if settings.storage_backend == "memory":
        return JSONResponse(
            status_code=200,
            content={
                "status": "healthy",
                "api": "operational",
                "database": "not used",
                "version": __version__,
            },
        )

    db_healthy = await check_database_connection()
    return JSONResponse(
        status_code=200 if db_healthy else 503,
        content={
            "status": "healthy" if db_healthy else "degraded",
            "api": "operational",
            "database": "connected" if db_healthy else "disconnected",
            "version": __version__,
        },
    )


# Include scheduling router
app.include_router(router)

logger.info("✅ FastAPI application initialized")

# If running with uvicorn directly (not through import)
if __name__ == "__main__":
    import uvicorn

    logger.info("=" * 60)
    logger.info("Starting uvicorn server...")
    logger.info(f"Host: {settings.app_host}")
    logger.info(f"Port: {settings.app_port}")
    logger.info("=" * 60)

    uvicorn.run(
        "scheduling.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
