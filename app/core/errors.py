from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.services.errors import (
    AuthProviderError,
    AuthServiceError,
    OtpRejected,
    RateLimited,
    ServiceUnavailable,
    SmsDeliveryError,
    TokenConfigurationError,
    ValidationFailed,
)

_LOG = logging.getLogger("app.errors")

INVALID_CREDENTIALS = "Invalid OTP or mobile number"


def _error_response(status_code: int, message: str, headers: dict[str, str] | None = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"message": message, "detail": message}, headers=headers)


def classify_service_error(exc: AuthServiceError) -> tuple[int, str]:
    if isinstance(exc, ValidationFailed):
        return 400, str(exc) or "Invalid request"
    if isinstance(exc, OtpRejected):
        return 400, INVALID_CREDENTIALS
    if isinstance(exc, RateLimited):
        return 429, f"Too many OTP requests. Retry in {exc.retry_after_seconds} s."
    if isinstance(exc, ServiceUnavailable):
        return 503, "Service temporarily unavailable. Please try again later."
    if isinstance(exc, SmsDeliveryError):
        return 502, "Failed to deliver OTP"
    if isinstance(exc, AuthProviderError):
        return 502, "Authentication provider unavailable"
    if isinstance(exc, TokenConfigurationError):
        return 500, "Authentication is not configured"
    return 500, "Internal server error"


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(AuthServiceError)
    async def _auth_service_error_handler(request: Request, exc: AuthServiceError):
        status_code, message = classify_service_error(exc)
        if status_code >= 500:
            _LOG.error("%s %s failed: %s: %s", request.method, request.url.path, type(exc).__name__, exc)
        headers = None
        if isinstance(exc, RateLimited):
            headers = {"Retry-After": str(exc.retry_after_seconds)}
        return _error_response(status_code, message, headers)

    @app.exception_handler(RequestValidationError)
    async def _request_validation_error_handler(request: Request, exc: RequestValidationError):
        _LOG.info("%s %s rejected malformed body: %s", request.method, request.url.path, [e.get("type") for e in exc.errors()])
        return _error_response(400, "Invalid request")

    @app.exception_handler(StarletteHTTPException)
    async def _http_error_handler(request: Request, exc: StarletteHTTPException):
        message = exc.detail if isinstance(exc.detail, str) else "Request failed"
        return _error_response(exc.status_code, message, getattr(exc, "headers", None))

    @app.exception_handler(Exception)
    async def _unhandled_error_handler(request: Request, exc: Exception):
        _LOG.exception("%s %s crashed", request.method, request.url.path)
        return _error_response(500, "Internal server error")
