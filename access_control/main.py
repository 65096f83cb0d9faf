"""
FastAPI Application Entry Point
Access control API with error mapping and lifecycle management
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from access_control.api.v1 import router as v1_router
from access_control.core.config import settings
from access_control.core.exceptions import AccessException, RateLimitExceededException
from access_control.core.logging import get_logger, setup_logging

# Setup logging
setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Application lifespan management"""
    logger.info(f"Starting {settings.APP_NAME}...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")

    from access_control.db.session import close_db, init_db

    try:
        await init_db()
        logger.info("Database initialized")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise

    yield

    logger.info("Shutting down...")
    await close_db()
    logger.info("Shutdown complete")


async def access_exception_handler(request: Request, exc: AccessException) -> JSONResponse:
    """Map access control errors to HTTP responses"""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")

    headers = None
    if isinstance(exc, RateLimitExceededException):
        headers = {"Retry-After": str(exc.retry_after_seconds)}

    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.to_dict()},
        headers=headers,
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle validation errors"""
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": {
                "code": "validation_error",
                "message": "Invalid request parameters",
                "details": {"errors": jsonable_encoder(exc.errors())},
                "timestamp": None,
            }
        },
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Install the error mapping on an application"""
    app.add_exception_handler(AccessException, access_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    description="Layered resource authorization with audit trail",
    version=settings.APP_VERSION,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    openapi_url="/openapi.json" if settings.DEBUG else None,
    lifespan=lifespan,
)

register_exception_handlers(app)

app.include_router(v1_router, prefix="/api/v1")


# Health check endpoint
@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
    }
