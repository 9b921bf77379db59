"""
Onboarding API - client onboarding, KYC, payments and renewals

Main FastAPI application entry point.
"""

import time
import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import ORJSONResponse
import structlog

from app.api import (
    admin_router,
    companies_router,
    compliance_router,
    documents_router,
    payments_router,
    router as system_router,
)
from app.core.config import get_settings
from app.core.errors import OnboardingError
from app.core.scheduler import start_scheduler, stop_scheduler

settings = get_settings()

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
)
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Application lifespan manager."""
    # Startup
    logger.info("Starting Onboarding API", version=settings.api_version)
    if settings.scheduler_enabled:
        start_scheduler()
    yield
    # Shutdown
    stop_scheduler()
    logger.info("Shutting down Onboarding API")


# Create FastAPI app
app = FastAPI(
    title=settings.api_title,
    version=settings.api_version,
    description=settings.api_description,
    default_response_class=ORJSONResponse,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

# Add middleware
app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins.split(","),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "OPTIONS"],
    allow_headers=["*"],
)


# Request logging middleware
@app.middleware("http")
async def logging_middleware(request: Request, call_next):
    """Log all requests with timing."""
    request_id = str(uuid.uuid4())[:8]
    start = time.perf_counter()

    response = await call_next(request)

    duration_ms = (time.perf_counter() - start) * 1000
    logger.info(
        "request",
        request_id=request_id,
        method=request.method,
        path=request.url.path,
        status=response.status_code,
        duration_ms=round(duration_ms, 2),
    )

    response.headers["X-Request-ID"] = request_id
    return response


app.include_router(system_router, prefix="/v1")
app.include_router(companies_router, prefix="/v1")
app.include_router(documents_router, prefix="/v1")
app.include_router(compliance_router, prefix="/v1")
app.include_router(payments_router, prefix="/v1")
app.include_router(admin_router, prefix="/v1")


@app.get("/", include_in_schema=False)
async def root():
    """Service index."""
    return {
        "name": settings.api_title,
        "description": settings.api_description,
        "version": settings.api_version,
        "docs": "/docs",
        "system": {
            "health": "/v1/health",
            "ping": "/v1/ping",
        },
    }


# Error handlers
@app.exception_handler(OnboardingError)
async def onboarding_error_handler(request: Request, exc: OnboardingError):
    """Domain errors carry their own status code and machine-readable code."""
    if exc.status_code >= 500:
        logger.error("request.domain_error", path=request.url.path, code=exc.code, error=exc.message)
    else:
        logger.info("request.domain_error", path=request.url.path, code=exc.code, error=exc.message)
    return ORJSONResponse(
        status_code=exc.status_code,
        content={"error": {"code": exc.code, "message": exc.message}},
    )


@app.exception_handler(404)
async def not_found_handler(request: Request, exc):
    """Custom 404 handler."""
    return ORJSONResponse(
        status_code=404,
        content={
            "error": {
                "code": "not_found",
                "message": f"Resource not found: {request.url.path}",
            }
        },
    )


@app.exception_handler(500)
async def internal_error_handler(request: Request, exc):
    """Custom 500 handler."""
    logger.error("Internal server error", path=request.url.path, error=str(exc))
    return ORJSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "internal_error",
                "message": "An internal error occurred. Please try again later.",
            }
        },
    )
