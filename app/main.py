from fastapi import FastAPI, HTTPException
from contextlib import asynccontextmanager
from dotenv import load_dotenv
import logging

# Load environment variables as early as possible
load_dotenv()

from .bootstrap import build_appointments_service, build_status_change_handler, build_sweeper
from .core.config import settings
from .database import create_db_and_tables, engine
from .exceptions import LifecycleError, http_exception_handler, lifecycle_exception_handler
from .infrastructure.push.fcm_provider import build_push_provider
from .infrastructure.scheduler.lifecycle_scheduler import (
    LifecycleScheduler,
    get_lifecycle_scheduler,
    start_lifecycle_scheduler,
    stop_lifecycle_scheduler,
)
from .utils import utc_now
from .routers import appointments_router, doctors_router, scheduler_router

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format=settings.LOG_FORMAT
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info(f"Starting {settings.APP_NAME}...")
    app.state.db_init_ok = True
    app.state.db_init_error = None
    try:
        create_db_and_tables()
        logger.info("Database initialized successfully")
    except Exception as e:
        # Do not crash the app; report via health endpoint
        app.state.db_init_ok = False
        app.state.db_init_error = str(e)
        logger.exception("Database initialization failed")

    service = build_appointments_service(engine, settings, push=build_push_provider(settings))
    app.state.appointments_service = service
    app.state.availability_service = service.availability
    app.state.sweeper = build_sweeper(service, settings)
    app.state.status_change_handler = build_status_change_handler(service)

    if settings.SCHEDULER_ENABLED:
        start_lifecycle_scheduler(LifecycleScheduler(
            sweeper=app.state.sweeper,
            availability=service.availability,
            interval_minutes=settings.SWEEP_INTERVAL_MINUTES,
            cleanup_hour=settings.AVAILABILITY_CLEANUP_HOUR,
            timezone=settings.SCHEDULER_TIMEZONE,
        ))
    else:
        logger.info("Lifecycle scheduler disabled; sweeps run only via POST /scheduler/sweep")
    yield
    # Shutdown
    stop_lifecycle_scheduler()
    logger.info(f"Shutting down {settings.APP_NAME}...")

# Initialize FastAPI
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
    docs_url=("/docs" if settings.DOCS_ENABLED else None),
    redoc_url=("/redoc" if settings.DOCS_ENABLED else None),
    openapi_url=("/openapi.json" if settings.DOCS_ENABLED else None)
)

# Add custom exception handlers
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(LifecycleError, lifecycle_exception_handler)

app.include_router(appointments_router.router)
app.include_router(doctors_router.router)
app.include_router(scheduler_router.router)


# Health check endpoint
@app.get("/health")
def health_check():
    scheduler = get_lifecycle_scheduler()
    return {
        "status": "healthy" if getattr(app.state, "db_init_ok", True) else "degraded",
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "timestamp": utc_now().isoformat(),
        "database": {
            "ok": getattr(app.state, "db_init_ok", True),
            "error": getattr(app.state, "db_init_error", None)
        },
        "scheduler": {
            "enabled": settings.SCHEDULER_ENABLED,
            "running": bool(scheduler and scheduler.scheduler.running),
            "timezone": settings.SCHEDULER_TIMEZONE,
            "interval_minutes": settings.SWEEP_INTERVAL_MINUTES,
        }
    }
