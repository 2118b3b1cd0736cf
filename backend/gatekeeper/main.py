"""FastAPI application entry point.

This module creates and configures the FastAPI application, including:
- Request guard (body size cap, null byte stripping), security headers, CORS
- Exception handlers mapping the error taxonomy to status codes
- API v1 router mounting
- Health check endpoint

Internal failures (500) are the only errors recorded to the audit sink.
Client errors such as bad credentials or expired tokens are expected
traffic and are not logged as faults.
"""

import logging

import structlog
import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp

from gatekeeper.api.v1.router import router as v1_router
from gatekeeper.core.audit import log_error
from gatekeeper.core.config import Settings, get_settings
from gatekeeper.core.errors import APIError, InternalError
from gatekeeper.core.request_guard import RequestGuardMiddleware
from gatekeeper.core.responses import ErrorDetail, ErrorResponse

logger = structlog.get_logger()

_GENERIC_ERROR_MESSAGE = "An unexpected error occurred"


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Middleware to add security headers to all responses.

    Headers added:
    - X-Frame-Options / frame-ancestors: Prevents clickjacking
    - X-Content-Type-Options: Prevents MIME sniffing
    - Referrer-Policy: Keeps token-bearing URLs out of Referer headers
    - Cache-Control: API responses carry credentials and must not be cached
    - Content-Security-Policy: API returns no HTML
    - Strict-Transport-Security: Forces HTTPS (production only)
    """

    def __init__(self, app: ASGIApp, environment: str) -> None:
        super().__init__(app)
        self.environment = environment

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        """Add security headers to response."""
        response = await call_next(request)

        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "no-referrer"

        if request.url.path.startswith("/api/"):
            response.headers["Cache-Control"] = "no-store, max-age=0"

        response.headers["Content-Security-Policy"] = (
            "default-src 'none'; frame-ancestors 'none'"
        )

        # HSTS only in production (assumes HTTPS via reverse proxy)
        if self.environment == "production":
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )

        return response


def _error_response(
    status_code: int, code: str, message: str, details: list[dict] | None = None
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(
            error=ErrorDetail(code=code, message=message, details=details)
        ).model_dump(),
    )


async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    """Handle custom API errors.

    5xx errors are recorded to the audit sink and answered with a generic
    message; everything else is returned as raised.

    Args:
        request: The incoming request.
        exc: The APIError that was raised.

    Returns:
        JSONResponse with error envelope and appropriate status code.
    """
    if exc.status_code >= 500:
        if isinstance(exc, InternalError):
            name, context, user_id = exc.operation, exc.context, exc.user_id
        else:
            name, context, user_id = exc.code.lower(), {}, 0
        await log_error(
            name,
            exc.message,
            exc,
            {**context, "method": request.method, "path": request.url.path},
            user_id,
        )
        return _error_response(
            exc.status_code, "INTERNAL_ERROR", _GENERIC_ERROR_MESSAGE
        )

    return _error_response(exc.status_code, exc.code, exc.message, exc.details)


def validation_error_handler(
    _request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle Pydantic validation errors from FastAPI.

    Malformed bodies (unparseable JSON, wrong types, unknown or missing
    fields) answer 400. Semantic checks on well-formed input answer 422
    from the services.

    Args:
        request: The incoming request.
        exc: The RequestValidationError from Pydantic.

    Returns:
        JSONResponse with VALIDATION_ERROR code and field-level details.
    """
    return _error_response(
        400,
        "VALIDATION_ERROR",
        "Request validation failed",
        [
            {"loc": list(e["loc"]), "msg": e["msg"], "type": e["type"]}
            for e in exc.errors()
        ],
    )


async def internal_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unhandled exceptions.

    Returns 500 INTERNAL_ERROR without exposing stack traces; the details
    go to the audit sink.

    Args:
        request: The incoming request.
        exc: The unhandled exception.

    Returns:
        JSONResponse with generic error message (500).
    """
    logger.exception("Unhandled exception", exc_info=exc, path=str(request.url.path))
    await log_error(
        "unhandled",
        "Unhandled exception in request handler",
        exc,
        {"method": request.method, "path": request.url.path},
    )
    return _error_response(500, "INTERNAL_ERROR", _GENERIC_ERROR_MESSAGE)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Settings to build middleware from. Defaults to
            ``get_settings()``. Request handlers always resolve settings
            through the ``get_settings`` dependency.

    Returns:
        Configured FastAPI application instance.
    """
    settings = settings or get_settings()
    logging.basicConfig(level=settings.log_level)

    app = FastAPI(
        title=f"{settings.app_name} API",
        version="1.0.0",
        description="Credential and token lifecycle service",
    )

    # Middleware order: Starlette uses LIFO, so the LAST added runs FIRST.
    # CORS must run first to handle preflight requests, so add it last.
    app.add_middleware(RequestGuardMiddleware, max_body_bytes=settings.max_body_bytes)
    app.add_middleware(SecurityHeadersMiddleware, environment=settings.environment)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Accept", "Authorization", "X-Request-ID"],
    )

    # Order matters: specific handlers first, then catch-all
    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, internal_error_handler)

    app.include_router(v1_router, prefix="/api/v1")

    # Health check endpoint (outside versioned API)
    @app.get("/health")
    def health_check() -> dict:
        """Health check endpoint for monitoring.

        Returns:
            {"status": "healthy"} if service is running.
        """
        return {"status": "healthy"}

    return app


# Create the application instance
# Used by uvicorn: uvicorn gatekeeper.main:app
app = create_app()


def run() -> None:
    """Serve the application on the configured host and port."""
    settings = get_settings()
    uvicorn.run(
        "gatekeeper.main:app",
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
