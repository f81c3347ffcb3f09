"""Giftflare orders API main application module.

This module builds the FastAPI application and configures
core middleware, routers, exception handlers and startup/shutdown events.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from giftflare.api.buyers import router as buyers_router
from giftflare.api.health import router as health_router
from giftflare.api.middleware import setup_middleware
from giftflare.api.orders import router as orders_router
from giftflare.application.delivery_service import build_delivery_service
from giftflare.application.order_service import build_order_service
from giftflare.domain.exceptions import (
    BookingFailedError,
    ConflictError,
    DomainError,
    IllegalTransitionError,
    NotFoundError,
    ValidationError,
)
from giftflare.infrastructure.config import Settings, settings as default_settings
from giftflare.infrastructure.logging_config import configure_logging

logger = structlog.get_logger()


def _error_content(
    request: Request,
    error_code: str,
    message: str,
    details: list | dict | None = None,
) -> dict:
    return {
        "error_code": error_code,
        "message": message,
        "details": details if details is not None else [],
        "request_id": getattr(request.state, "request_id", None),
    }


def _status_for(exc: DomainError) -> int:
    """Map a domain error to an HTTP status code."""
    if isinstance(exc, ValidationError):
        return 422
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, (IllegalTransitionError, ConflictError)):
        return 409
    if isinstance(exc, BookingFailedError):
        return 502
    return 500


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the FastAPI application.

    Args:
        settings: Settings to wire the services from; defaults to the
            environment-loaded settings.

    Returns:
        Configured FastAPI application.
    """
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Handle application startup and shutdown events."""
        # Startup
        logger.info(
            "Starting Giftflare orders API",
            version=settings.api_version,
            debug=settings.debug,
            store_backend=settings.order_store_backend,
        )

        order_service = build_order_service(settings)
        if settings.create_tables_on_startup:
            await order_service.store.initialize()
        delivery_service = build_delivery_service(settings, order_service)

        app.state.order_service = order_service
        app.state.delivery_service = delivery_service

        yield

        # Shutdown
        logger.info("Shutting down Giftflare orders API")
        await delivery_service.close()
        await order_service.close()
        app.state.order_service = None
        app.state.delivery_service = None

    app = FastAPI(
        title="Giftflare Orders API",
        description="Order lifecycle and notification coordinator for the Giftflare storefront",
        version=settings.api_version,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # CORS middleware (must be added before custom middleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Setup custom middleware (request ID, API key auth, error handling)
    setup_middleware(app, api_key=settings.giftflare_api_key)

    # Include routers
    app.include_router(health_router, tags=["Health"])
    app.include_router(orders_router)
    app.include_router(buyers_router)

    # ========================================================================
    # Custom Exception Handlers
    # ========================================================================

    @app.exception_handler(DomainError)
    async def domain_exception_handler(request: Request, exc: DomainError):
        """Map domain errors onto the error envelope."""
        status_code = _status_for(exc)
        log = logger.warning if status_code < 500 else logger.error
        log(
            "Request failed",
            path=request.url.path,
            method=request.method,
            error_code=exc.error_code,
            error=exc.message,
        )
        return JSONResponse(
            status_code=status_code,
            content=_error_content(request, exc.error_code, exc.message, exc.details),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        """Report schema violations in the error envelope."""
        details = [
            {
                "field": ".".join(str(part) for part in error["loc"][1:]) or None,
                "message": error["msg"],
            }
            for error in exc.errors()
        ]
        return JSONResponse(
            status_code=422,
            content=_error_content(
                request, "VALIDATION_ERROR", "Request validation failed", details
            ),
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        """Handle HTTP exceptions with consistent format."""
        detail = exc.detail
        if isinstance(detail, dict):
            error_code = detail.get("error_code", "ERROR")
            message = detail.get("message", str(detail))
            details = detail.get("details", [])
        else:
            error_code = "ERROR"
            message = str(detail)
            details = []

        return JSONResponse(
            status_code=exc.status_code,
            content=_error_content(request, error_code, message, details),
        )

    return app


configure_logging(default_settings)
app = create_app()
