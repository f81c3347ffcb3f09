"""HTTP middleware for the Giftflare orders service.

Order of execution for a request (outermost first):
request id -> API key check -> unhandled-error guard -> routers.
"""

import hmac
import time
from typing import Callable
from uuid import uuid4

import structlog
from fastapi import FastAPI, Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

logger = structlog.get_logger()

REQUEST_ID_HEADER = "X-Request-ID"

# Reachable without an API key
PUBLIC_PATHS = frozenset({"/health", "/ready", "/metrics", "/docs", "/redoc", "/openapi.json"})


def _is_public(path: str) -> bool:
    return path in PUBLIC_PATHS or path.startswith(("/docs/", "/redoc/"))


def _error(
    status_code: int,
    error_code: str,
    message: str,
    request_id: str | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error_code": error_code,
            "message": message,
            "details": [],
            "request_id": request_id,
        },
        headers=headers,
    )


# ============================================================================
# Request ID
# ============================================================================


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Tags every request with a correlation id.

    The caller's ``X-Request-ID`` is reused when present. The id is put
    on ``request.state``, bound into the structlog context for the
    duration of the request and echoed on the response.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid4())
        request.state.request_id = request_id
        structlog.contextvars.bind_contextvars(request_id=request_id)
        started = time.perf_counter()
        status_code = 500

        try:
            response = await call_next(request)
            status_code = response.status_code
        finally:
            logger.info(
                "Request completed",
                method=request.method,
                path=request.url.path,
                status_code=status_code,
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
            )
            structlog.contextvars.unbind_contextvars("request_id")

        response.headers[REQUEST_ID_HEADER] = request_id
        return response


# ============================================================================
# API Key
# ============================================================================


class ApiKeyMiddleware(BaseHTTPMiddleware):
    """Requires ``Authorization: Bearer <api_key>`` outside the public paths."""

    def __init__(self, app: ASGIApp, api_key: str) -> None:
        super().__init__(app)
        self.api_key = api_key

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path.rstrip("/") or "/"
        if _is_public(path):
            return await call_next(request)

        request_id = getattr(request.state, "request_id", None)
        challenge = {"WWW-Authenticate": "Bearer"}
        scheme, _, token = (request.headers.get("Authorization") or "").partition(" ")

        if not scheme:
            logger.warning("Missing authorization header", path=path, method=request.method)
            return _error(
                status.HTTP_401_UNAUTHORIZED,
                "UNAUTHORIZED",
                "Missing Authorization header",
                request_id,
                challenge,
            )
        if scheme.lower() != "bearer" or not token:
            logger.warning("Malformed authorization header", path=path, method=request.method)
            return _error(
                status.HTTP_401_UNAUTHORIZED,
                "UNAUTHORIZED",
                "Invalid Authorization header format. Use 'Bearer <api_key>'",
                request_id,
                challenge,
            )
        if not hmac.compare_digest(token.encode(), self.api_key.encode()):
            logger.warning("Invalid API key", path=path, method=request.method)
            return _error(
                status.HTTP_401_UNAUTHORIZED,
                "INVALID_API_KEY",
                "Invalid API key",
                request_id,
                challenge,
            )

        request.state.authenticated = True
        return await call_next(request)


# ============================================================================
# Unhandled Errors
# ============================================================================


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Turns anything the exception handlers missed into a 500 envelope."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)
        except Exception as e:
            logger.exception(
                "Unhandled exception",
                path=request.url.path,
                method=request.method,
                error=str(e),
            )
            return _error(
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                "INTERNAL_ERROR",
                "An internal error occurred",
                getattr(request.state, "request_id", None),
            )


def setup_middleware(app: FastAPI, api_key: str) -> None:
    """Install the middleware stack.

    Starlette runs the last-added middleware first, so they are added
    innermost first.

    Args:
        app: FastAPI application instance.
        api_key: Key expected in the Bearer Authorization header.
    """
    app.add_middleware(ErrorHandlerMiddleware)
    app.add_middleware(ApiKeyMiddleware, api_key=api_key)
    app.add_middleware(RequestIdMiddleware)
