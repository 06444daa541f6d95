"""Main FastAPI application."""

import logging
import re
import time
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.orm import Session

from . import __version__
from .api import edits_router, versions_router
from .core.config import settings, ConfigurationError, Environment
from .core.logging_config import setup_logging
from .database import DATABASE_URL, engine, get_db, init_db, is_postgresql
from .exceptions import PlanStudioException
from .middleware.exception_handler import planstudio_exception_handler
from .middleware.request_context import RequestContextMiddleware
from .repositories import VersionRepository

# Setup logging first
setup_logging(log_level=settings.log_level, log_format=settings.log_format)
logger = logging.getLogger(__name__)


def _mask_url(url: str) -> str:
    """Mask password in database URL for safe logging."""
    return re.sub(r'://([^:]+):([^@]+)@', r'://\1:***@', url)


def _validate_database_connection() -> None:
    """Test that the database is reachable. Exits with clear message on failure."""
    masked = _mask_url(DATABASE_URL)
    logger.info(f"Connecting to database: {masked}")

    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        logger.info("Database connection verified")
    except Exception as e:
        logger.critical(
            f"Database connection failed.\n"
            f"  DATABASE_URL: {masked}\n"
            f"  Error: {e}"
        )
        raise SystemExit(1) from e


_validate_database_connection()
init_db()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle for the planstudio API."""
    logger.info(f"Environment: {settings.environment.value}")
    try:
        settings.validate_production_config()
    except ConfigurationError as e:
        logger.critical(f"STARTUP BLOCKED: {e}")
        raise SystemExit(1) from e

    if settings.environment == Environment.DEVELOPMENT:
        missing = settings.missing_upstream_settings()
        if missing:
            logger.warning(
                "Upstream credentials are not set: %s. Uploads and edits will fail "
                "until they are configured.",
                ", ".join(missing),
            )

    yield


app = FastAPI(
    title="planstudio API",
    description=(
        "Versioned edit orchestration for architectural floor plans and room photos. "
        "Every upload and edit becomes an immutable version in a branching graph; "
        "edits replay a bounded per-session conversation to the image model."
    ),
    version=__version__,
    lifespan=lifespan,
)

# Middleware stack (outermost first: CORS wraps request context).
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)
app.add_middleware(RequestContextMiddleware)

app.add_exception_handler(PlanStudioException, planstudio_exception_handler)

db_type = "PostgreSQL" if is_postgresql() else "SQLite"
logger.info(
    "planstudio API started | env=%s | db=%s | model=%s | cors=%s",
    settings.environment.value,
    db_type,
    settings.gemini_model,
    ",".join(settings.get_cors_origins()),
)

app.include_router(edits_router)
app.include_router(versions_router)


@app.get("/")
def root():
    """Root endpoint."""
    return {
        "name": "planstudio API",
        "version": __version__,
        "status": "running"
    }


_startup_time = time.monotonic()


@app.get("/health")
def health_check(db: Session = Depends(get_db)):
    """Health check endpoint returning database status, uptime, and version count.

    Never raises; returns degraded status on DB failure so load balancers
    can still probe without receiving 5xx.
    """
    db_status = "ok"
    version_count = 0
    try:
        db.execute(text("SELECT 1"))
        version_count = VersionRepository(db).count()
    except Exception:
        logger.exception("Health check database probe failed")
        db_status = "error"

    return {
        "status": "healthy" if db_status == "ok" else "degraded",
        "db": db_status,
        "uptime_seconds": round(time.monotonic() - _startup_time),
        "version": __version__,
        "version_count": version_count,
    }
