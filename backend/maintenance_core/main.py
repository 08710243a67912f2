"""FastAPI application."""
import logging

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .config import settings
from .database import get_db
from .domain_errors import DomainError
from .problem_details import domain_error_handler
from .routers import auth, timer, work_orders
from .schemas import HealthCheckResponse

APP_VERSION = "1.0.0"

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


configure_logging()

# Create app
app = FastAPI(
    title=settings.APP_NAME,
    debug=settings.DEBUG,
    version=APP_VERSION,
    description="Work order lifecycle and technician time tracking API"
)

# Production safety checks.
if settings.ENV.lower() == "production" and settings.DEBUG:
    raise RuntimeError("DEBUG must be disabled in production.")
if settings.ENV.lower() == "production" and settings.JWT_SECRET_KEY == "dev-secret-change-me":
    raise RuntimeError("JWT_SECRET_KEY must be set in production.")
if settings.ENV.lower() == "production" and not settings.cors_origins:
    raise RuntimeError("ALLOWED_ORIGINS must be set in production (explicit frontend origin required).")
if settings.ENV.lower() == "production" and any(origin.strip() == "*" for origin in settings.cors_origins):
    raise RuntimeError("ALLOWED_ORIGINS must be explicit in production (no wildcard when using credentials).")

# CORS
cors_methods = ["GET", "POST", "PATCH", "DELETE", "OPTIONS"]
cors_headers = ["Authorization", "Content-Type"]
if settings.ENV.lower() != "production":
    cors_headers = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=cors_methods,
    allow_headers=cors_headers,
)

app.add_exception_handler(DomainError, domain_error_handler)

# Include routers
app.include_router(auth.router, prefix="/api/v1")
app.include_router(work_orders.router, prefix="/api/v1")
app.include_router(timer.router, prefix="/api/v1")


@app.get("/api/v1/system/health", response_model=HealthCheckResponse)
def health_check(db: Session = Depends(get_db)):
    """Health check endpoint."""
    database = "ok"
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.exception("health.database_unavailable")
        database = "unavailable"
    return HealthCheckResponse(
        status="ok" if database == "ok" else "degraded",
        version=APP_VERSION,
        database=database,
        timer_poll_interval_seconds=settings.TIMER_POLL_INTERVAL_SECONDS,
    )


@app.get("/")
def root():
    """Root endpoint."""
    return {
        "message": f"{settings.APP_NAME} API",
        "version": APP_VERSION,
        "docs": "/docs"
    }
