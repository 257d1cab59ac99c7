"""
Coursegate API - FastAPI Application

Main entry point for the FastAPI application.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import IntegrityError, OperationalError

from coursegate import __version__
from coursegate.config import get_settings
from coursegate.core.database import close_db, init_db
from coursegate.core.errors import CoursegateError, GatewayError
from coursegate.models.contracts.common import ErrorResponse
from coursegate.routers import (
    course_access_router,
    enrollments_router,
    health_router,
    passkeys_router,
    payments_router,
    students_router,
)
from coursegate.services.notifications import build_notification_sender
from coursegate.services.payment_gateway import RazorpayClient

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)


def _error_response(
    status_code: int, error: str, message: str, details: dict[str, Any] | None = None
) -> JSONResponse:
    body = ErrorResponse(error=error, message=message, details=details)
    return JSONResponse(status_code=status_code, content=body.model_dump())


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Opens the database and builds the outbound clients once; they are
    closed on shutdown.
    """
    logger.info("Starting Coursegate API...")
    settings = get_settings()

    logger.info("Initializing database connection...")
    await init_db()
    logger.info("Database connection established")

    app.state.notifier = build_notification_sender(settings)
    if settings.payment_gateway_configured:
        app.state.gateway = RazorpayClient.from_settings(settings)
    else:
        logger.warning("Payment gateway not configured, checkout is disabled")
        app.state.gateway = None

    logger.info(f"Coursegate API started in {settings.environment} mode")

    yield

    logger.info("Shutting down Coursegate API...")
    if app.state.gateway is not None:
        await app.state.gateway.close()
    await app.state.notifier.close()
    await close_db()
    logger.info("Coursegate API shutdown complete")


def create_app() -> FastAPI:
    """
    Create and configure FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    settings = get_settings()

    app = FastAPI(
        title="Coursegate API",
        description="Passkey lifecycle and course access gating",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ==========================================================================
    # CORS Middleware
    # ==========================================================================
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ==========================================================================
    # Global Exception Handlers
    # ==========================================================================

    @app.exception_handler(CoursegateError)
    async def domain_error_handler(request: Request, exc: CoursegateError) -> JSONResponse:
        """Domain errors -> their own status code."""
        if isinstance(exc, GatewayError):
            logger.error(
                f"Gateway error on {request.method} {request.url.path}: {exc.internal_detail}"
            )
        return _error_response(exc.status_code, exc.error, exc.message, exc.details)

    @app.exception_handler(PydanticValidationError)
    async def pydantic_validation_handler(
        request: Request, exc: PydanticValidationError
    ) -> JSONResponse:
        """Contract validation raised inside a handler -> 422."""
        fields = {".".join(str(part) for part in e["loc"]): e["msg"] for e in exc.errors()}
        return _error_response(422, "validation_error", "Validation failed", {"fields": fields})

    @app.exception_handler(IntegrityError)
    async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
        """A uniqueness race lost at the database -> 409."""
        logger.warning(f"IntegrityError on {request.url.path}: {exc.orig or exc}")
        return _error_response(409, "conflict", "Resource changed concurrently, retry the request")

    @app.exception_handler(OperationalError)
    async def operational_error_handler(request: Request, exc: OperationalError) -> JSONResponse:
        logger.error(f"Database operational error: {exc}", exc_info=True)
        return _error_response(503, "service_unavailable", "Service temporarily unavailable")

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            f"Unhandled exception on {request.method} {request.url.path}: {exc}",
            exc_info=True,
        )
        return _error_response(500, "internal_error", "An unexpected error occurred")

    # ==========================================================================
    # Register Routers
    # ==========================================================================
    app.include_router(health_router)
    app.include_router(passkeys_router)
    app.include_router(students_router)
    app.include_router(payments_router)
    app.include_router(enrollments_router)
    app.include_router(course_access_router)

    @app.get("/")
    async def root():
        return {
            "name": "Coursegate API",
            "version": __version__,
            "docs": "/docs",
        }

    return app


# Create app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "coursegate.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
    )
