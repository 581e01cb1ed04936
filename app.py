"""
DoseKeeper Backend
Main FastAPI application: dose scheduling and alarm delivery
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Configuration and database
from config import settings, scheduling_config
from database import init_db, DatabaseHealthCheck

from api import include_routers
from actions.reminder_engine import alarm_sessions
from exceptions import (
    DoseKeeperError,
    DoseAlreadyResolvedError,
    NotFoundError,
    PersistenceError,
    ScheduleValidationError,
)

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format=settings.LOG_FORMAT
)
logger = logging.getLogger(__name__)


# ==================== LIFESPAN ====================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup and shutdown"""
    # Startup
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    logger.info(f"Environment: {settings.ENV}")

    # Initialize database
    try:
        init_db()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        raise

    yield

    # Shutdown
    await alarm_sessions.shutdown()
    logger.info(f"Shutting down {settings.APP_NAME}")


# ==================== APP INITIALIZATION ====================

app = FastAPI(
    title=settings.APP_NAME,
    description="""
    ## DoseKeeper API

    Medication dose scheduling and alarm delivery.

    ### Features
    - **Scheduling**: Turns doses per day into fixed daily reminder times
    - **Dose Events**: Materializes every dose over the treatment range in one transaction
    - **Compliance**: Daily goal and historical adherence rates
    - **Alarms**: One active alarm at a time, with taken/missed decisions written back
    """,
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Attach modular API routers (prefix /api/v1)
include_routers(app, prefix=settings.API_PREFIX)


# ==================== EXCEPTION HANDLERS ====================

def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": True,
            "message": message,
            "status_code": status_code,
            "timestamp": datetime.now().isoformat()
        }
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc: HTTPException):
    return _error_response(exc.status_code, exc.detail)


@app.exception_handler(DoseKeeperError)
async def dosekeeper_exception_handler(request, exc: DoseKeeperError):
    if isinstance(exc, ScheduleValidationError):
        status_code = 400
    elif isinstance(exc, NotFoundError):
        status_code = 404
    elif isinstance(exc, DoseAlreadyResolvedError):
        status_code = 409
    elif isinstance(exc, PersistenceError):
        status_code = 503
    else:
        status_code = 500

    if status_code >= 500:
        logger.warning(f"{type(exc).__name__}: {exc}")
    return _error_response(status_code, str(exc))


@app.exception_handler(Exception)
async def general_exception_handler(request, exc: Exception):
    logger.error(f"Unexpected error: {exc}", exc_info=True)
    return _error_response(
        500,
        "An unexpected error occurred" if not settings.DEBUG else str(exc)
    )


# ==================== HEALTH ====================

@app.get("/", tags=["Health"])
async def root():
    """Root endpoint - basic health check"""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "healthy",
        "timestamp": datetime.now().isoformat()
    }


@app.get("/health", tags=["Health"])
async def health_check():
    """Detailed health check endpoint"""
    db_connected = DatabaseHealthCheck.is_connected()

    return {
        "status": "healthy" if db_connected else "degraded",
        "timestamp": datetime.now().isoformat(),
        "checks": {
            "database": {
                "status": "up" if db_connected else "down",
                "type": "sqlite" if "sqlite" in settings.DATABASE_URL else "postgresql"
            },
            "alarms": {
                "sessions": len(alarm_sessions.active_subjects),
                "poll_interval_seconds": settings.ALARM_POLL_INTERVAL_SECONDS,
                "due_window_minutes": settings.DUE_WINDOW_MINUTES
            }
        },
        "config": {
            "max_materialized_events": scheduling_config.MAX_MATERIALIZED_EVENTS,
            "default_horizon_years": scheduling_config.DEFAULT_HORIZON_YEARS
        },
        "version": settings.APP_VERSION,
        "environment": settings.ENV
    }


# ==================== MAIN ====================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
