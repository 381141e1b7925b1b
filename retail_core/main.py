from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from retail_core.config import settings
from retail_core.api.v1.router import api_router
from retail_core.core.exceptions import (
    ConflictError,
    NotFoundError,
    RetailCoreError,
    StateError,
    ValidationError,
)
from retail_core.database import init_db, async_session_factory


logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
    - Create tables that do not exist yet
    """
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    await init_db()

    yield

    logger.info("Shutting down...")


# OpenAPI Tags with detailed descriptions
OPENAPI_TAGS = [
    {"name": "Sales", "description": "Sale creation with atomic stock reservation, cancellation"},
    {"name": "Returns", "description": "Partial returns with prorated discounts, processing and cancellation"},
    {"name": "Payments", "description": "Received-vs-calculated payment reconciliation and approval"},
    {"name": "Health", "description": "Liveness and database connectivity"},
]

# Domain error -> HTTP status
ERROR_STATUS_CODES = [
    (ValidationError, 400),
    (NotFoundError, 404),
    (ConflictError, 409),
    (StateError, 422),
]


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=OPENAPI_TAGS,
)

app.include_router(api_router)


@app.exception_handler(RetailCoreError)
async def retail_core_exception_handler(request: Request, exc: RetailCoreError):
    """Render domain errors with their context."""
    status_code = next(
        (code for error_type, code in ERROR_STATUS_CODES if isinstance(exc, error_type)),
        400,
    )
    content = exc.to_dict()
    content["path"] = str(request.url.path)
    content["method"] = request.method
    return JSONResponse(status_code=status_code, content=content)


# Health check endpoint
@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint with database validation."""
    health_status = {
        "status": "healthy",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": {
            "database": "unknown"
        }
    }

    # Check database connectivity
    try:
        async with async_session_factory() as session:
            await session.execute(text("SELECT 1"))
        health_status["checks"]["database"] = "healthy"
    except Exception as e:
        logger.error(f"Health check database error: {e}")
        health_status["status"] = "unhealthy"
        health_status["checks"]["database"] = f"unhealthy: {type(e).__name__}"
        return JSONResponse(status_code=503, content=health_status)

    return health_status
