"""
Housing Subsidy Workflow - Main Application
"""
import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.utils import get_openapi
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from .api import applications, artifacts, workflow
from .core.config import settings
from .core.database import engine
from .core.correlation import CorrelationIdMiddleware
from .core.logging_config import setup_logging
from .tasks.sla_scan import SLAScanLoop

# Setup logging
setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

# Initialize Sentry if configured
if settings.SENTRY_DSN:
    try:
        import sentry_sdk
        sentry_sdk.init(
            dsn=settings.SENTRY_DSN,
            environment=settings.SENTRY_ENVIRONMENT,
            traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE,
        )
        logger.info("Sentry monitoring initialized", extra={"correlation_id": "startup"})
    except ImportError:
        logger.warning("Sentry SDK not installed, monitoring disabled", extra={"correlation_id": "startup"})

sla_scan_loop = SLAScanLoop(interval_seconds=settings.SLA_SCAN_INTERVAL_SECONDS)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan event handler for startup/shutdown"""
    logger.info("=" * 80, extra={"correlation_id": "startup"})
    logger.info("Housing Subsidy Workflow starting...", extra={"correlation_id": "startup"})
    logger.info(f"Environment: {settings.ENVIRONMENT}", extra={"correlation_id": "startup"})
    logger.info(f"Database: {settings.DATABASE_URL.split('@')[-1]}", extra={"correlation_id": "startup"})
    logger.info(f"Auth Required: {settings.AUTH_REQUIRED}", extra={"correlation_id": "startup"})
    if not settings.AUTH_REQUIRED and settings.ENVIRONMENT not in ("development", "test"):
        logger.warning(
            f"AUTH_REQUIRED is off in {settings.ENVIRONMENT}; unauthenticated requests act as "
            f"{settings.DEV_ACTOR_ID} ({settings.DEV_ACTOR_ROLE})",
            extra={"correlation_id": "startup"}
        )
    logger.info(f"SLA Monitor: {settings.SLA_MONITOR_ENABLED}", extra={"correlation_id": "startup"})
    logger.info("=" * 80, extra={"correlation_id": "startup"})

    # Verify database connection
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        logger.info("Database connection verified", extra={"correlation_id": "startup"})
    except SQLAlchemyError as e:
        logger.error(f"Database connection failed: {e}", extra={"correlation_id": "startup"})

    if settings.SLA_MONITOR_ENABLED:
        await sla_scan_loop.start()

    yield

    await sla_scan_loop.stop()
    logger.info("Housing Subsidy Workflow shutting down...", extra={"correlation_id": "shutdown"})


app = FastAPI(
    title=settings.API_TITLE,
    description=settings.API_DESCRIPTION,
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.ENABLE_DOCS else None,
    redoc_url="/redoc" if settings.ENABLE_REDOC else None,
)


def custom_openapi():
    """Custom OpenAPI schema with security definitions"""
    if app.openapi_schema:
        return app.openapi_schema

    openapi_schema = get_openapi(
        title=settings.API_TITLE,
        version="0.1.0",
        description=settings.API_DESCRIPTION,
        routes=app.routes,
    )

    openapi_schema.setdefault("components", {})["securitySchemes"] = {
        "BearerAuth": {
            "type": "http",
            "scheme": "bearer",
            "bearerFormat": "JWT",
            "description": "JWT with `sub` and `role` claims (optional in dev mode)",
        }
    }

    for path in openapi_schema["paths"].values():
        for operation in path.values():
            if isinstance(operation, dict) and "tags" in operation:
                operation["security"] = [{"BearerAuth": []}]

    app.openapi_schema = openapi_schema
    return app.openapi_schema


app.openapi = custom_openapi

# Middleware
app.add_middleware(CorrelationIdMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Correlation-Id"],
)

# Routers carry their own /api/v1 prefixes
app.include_router(workflow.router, tags=["Workflow"])
app.include_router(applications.router, tags=["Applications"])
app.include_router(artifacts.router, tags=["Artifacts"])


@app.get("/health", tags=["System"])
async def health_check():
    """
    Health check with DB verification

    Returns 200 if healthy, 503 if unhealthy
    """
    health = {
        "status": "healthy",
        "environment": settings.ENVIRONMENT,
        "version": "0.1.0",
        "database": "unknown",
        "sla_monitor": "running" if sla_scan_loop.running else "stopped",
    }

    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        health["database"] = "connected"
    except SQLAlchemyError as e:
        health["database"] = f"disconnected: {str(e)}"
        health["status"] = "unhealthy"
        logger.error(f"Health check: database unhealthy: {e}", extra={"correlation_id": "health"})

    status_code = 200 if health["status"] == "healthy" else 503
    return JSONResponse(content=health, status_code=status_code)


@app.get("/", tags=["System"])
async def root():
    """Root endpoint"""
    return {
        "service": settings.API_TITLE,
        "version": "0.1.0",
        "environment": settings.ENVIRONMENT,
        "docs": "/docs" if settings.ENABLE_DOCS else None,
        "health": "/health",
    }
