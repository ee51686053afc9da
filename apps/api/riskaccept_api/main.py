"""Risk acceptance API - Main FastAPI application."""

import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app

from riskaccept_api.middleware.correlation import CorrelationIDMiddleware
from riskaccept_api.routes import acceptances, internal
from riskaccept_api.settings import get_settings
from riskaccept_api.workflow.errors import AcceptanceError

# Configure logging
logging.basicConfig(
    level=get_settings().log_level,
    format='{"time": "%(asctime)s", "level": "%(levelname)s", "message": "%(message)s", "module": "%(name)s"}',
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info("Starting risk acceptance API...")
    try:
        settings.validate_production_settings()
    except Exception as e:
        logger.error(f"Configuration validation failed: {e}")
        raise ValueError(f"Invalid configuration: {e}") from e

    yield
    logger.info("Shutting down risk acceptance API...")


# Create FastAPI app
app = FastAPI(
    title="Risk Acceptance API",
    description="Governed risk-acceptance workflow",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)
app.add_middleware(CorrelationIDMiddleware)

# Prometheus metrics
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)

# Register routers
app.include_router(acceptances.router)
app.include_router(internal.router)


@app.exception_handler(AcceptanceError)
async def acceptance_error_handler(request: Request, exc: AcceptanceError):
    """Map workflow errors to JSON responses."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error": exc.error},
    )


@app.get("/health")
async def health_check():
    """Health check endpoint (basic liveness)."""
    return {
        "status": "healthy",
        "service": "riskaccept-api",
        "version": "0.1.0",
    }


@app.get("/ready")
async def readiness_check():
    """Readiness check endpoint (verifies dependencies)."""
    from riskaccept_api.db.session import SessionLocal
    from sqlalchemy import text
    import redis

    checks = {
        "database": False,
        "redis": None,  # None if not required
    }

    # Check database connectivity
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        checks["database"] = True
    except Exception as e:
        logger.error(f"Database check failed: {e}")
    finally:
        db.close()

    # Redis is only needed when notifications go through the worker
    if settings.notification_backend == "celery":
        try:
            redis_client = redis.from_url(settings.redis_url, decode_responses=True)
            redis_client.ping()
            checks["redis"] = True
        except Exception as e:
            logger.error(f"Redis check failed: {e}")
            checks["redis"] = False

    all_ready = all(value for value in checks.values() if value is not None)

    return JSONResponse(
        content={
            "status": "ready" if all_ready else "not_ready",
            "checks": checks,
        },
        status_code=200 if all_ready else 503,
    )


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": "Risk Acceptance API",
        "version": "0.1.0",
        "docs": "/docs",
        "health": "/health",
    }
