"""Middleware and exception handlers for the local auth bridge."""

from __future__ import annotations

import time
import uuid
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from dri.api.contracts import ApiErrorResponse
from dri.api.errors import ApiErrorCode, to_error_payload
from dri.core.config import AppConfig
from dri.core.logging import set_correlation_id

AUTH_OPERATIONS: dict[tuple[str, str], str] = {
    ("POST", "/api/auth/accounts"): "create_account",
    ("POST", "/api/auth/accounts/resend-code"): "resend_verification_code",
    ("POST", "/api/auth/accounts/verify"): "verify_and_activate",
    ("POST", "/api/auth/login"): "login",
    ("POST", "/api/auth/revalidate"): "revalidate_device",
    ("POST", "/api/auth/logout"): "logout",
    ("POST", "/api/auth/password-reset/request"): "request_password_reset",
    ("POST", "/api/auth/password-reset"): "reset_password",
    ("GET", "/api/auth/session"): "check_session",
    ("GET", "/api/auth/me"): "get_current_user",
}

_BODY_METHODS = {"POST", "PUT", "PATCH"}


def operation_for(request: Request) -> str:
    """Return the auth operation served by the request path, or ``""``."""
    return AUTH_OPERATIONS.get((request.method, request.url.path), "")


def _log_extra(request: Request, status_code: int) -> dict[str, Any]:
    return {
        "path": request.url.path,
        "method": request.method,
        "status_code": status_code,
        "operation": operation_for(request),
    }


def _error_response(
    status_code: int, error_code: ApiErrorCode | str, message: str, redirect: str | None = None
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ApiErrorResponse(
            error_code=str(error_code), message=message, redirect=redirect
        ).model_dump(exclude_none=True),
    )


def _invalid_fields(exc: RequestValidationError) -> list[str]:
    """Names of the offending body fields; submitted values are never echoed."""
    fields: list[str] = []
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part != "body"]
        name = ".".join(location) or "body"
        if name not in fields:
            fields.append(name)
    return fields


def register_http_middleware(app: FastAPI, *, config: AppConfig, logger: Any) -> None:
    """Attach the body size limit and the request log/security header middleware."""
    max_bytes = config.security.request_max_bytes

    @app.middleware("http")
    async def request_size_limit_middleware(request: Request, call_next):
        if request.method in _BODY_METHODS:
            try:
                declared = int(request.headers.get("content-length") or 0)
            except ValueError:
                declared = 0
            if declared > max_bytes:
                logger.warning(
                    "Rejected oversized auth request", extra=_log_extra(request, 413)
                )
                return _error_response(
                    413,
                    ApiErrorCode.REQUEST_TOO_LARGE,
                    f"Request size exceeds configured limit ({max_bytes} bytes).",
                )
        return await call_next(request)

    @app.middleware("http")
    async def request_logging_middleware(request: Request, call_next):
        correlation_id = (
            request.headers.get("x-request-id")
            or request.headers.get("x-correlation-id")
            or uuid.uuid4().hex
        )
        set_correlation_id(correlation_id)
        started = time.perf_counter()
        response = await call_next(request)
        response.headers["X-Request-ID"] = correlation_id
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"
        # Session snapshots and codes must never be served from a cache.
        response.headers["Cache-Control"] = "no-store"
        extra = _log_extra(request, response.status_code)
        extra["duration_ms"] = round((time.perf_counter() - started) * 1000, 2)
        logger.info("request_completed", extra=extra)
        return response


def register_exception_handlers(app: FastAPI, *, logger: Any) -> None:
    """Map exceptions onto ``ApiErrorResponse`` envelopes."""

    @app.exception_handler(HTTPException)
    async def handle_http_exception(request: Request, exc: HTTPException) -> JSONResponse:
        payload = to_error_payload(exc.detail, exc.status_code)
        if exc.status_code == 401:
            logger.info("Page guard rejected session", extra=_log_extra(request, 401))
        else:
            logger.warning("http_exception", extra=_log_extra(request, exc.status_code))
        return _error_response(
            exc.status_code,
            payload["error_code"] or f"HTTP_{exc.status_code}",
            payload["message"] or "HTTP error",
            payload["redirect"],
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_exception(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        fields = _invalid_fields(exc)
        logger.warning("validation_exception", extra=_log_extra(request, 422))
        return _error_response(
            422,
            ApiErrorCode.VALIDATION_ERROR,
            "Invalid request fields: " + ", ".join(fields) if fields else "Invalid request",
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_exception(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("unexpected_exception", extra=_log_extra(request, 500))
        return _error_response(
            500, ApiErrorCode.INTERNAL_SERVER_ERROR, "Internal server error"
        )
