"""
Centralised error handling — exception hierarchy + FastAPI handlers.

Provides:
    • Domain exception classes with an HTTP status and a stable error code
    • Consistent JSON error envelope
    • Request validation failures mapped onto the same 400 envelope
    • Generic 500 for anything unexpected (internal detail stays in the log)

Usage:
    from backend.app.core.errors import NotFoundError, ValidationError

    raise NotFoundError("Alert", alert_id="ALR-0F3A...")
    raise ValidationError("Topic is required.", field="topic")
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from backend.app.core.config import settings

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Exception Hierarchy
# ═══════════════════════════════════════════════════════════════════════════

class AlertEngineError(Exception):
    """Base exception for all application errors."""

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        *,
        status_code: int = 500,
        error_code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}


class NotFoundError(AlertEngineError):
    """Resource not found (404)."""

    def __init__(self, resource: str, **identifiers: Any):
        super().__init__(
            message=f"{resource} not found",
            status_code=404,
            error_code="NOT_FOUND",
            details={"resource": resource, **identifiers},
        )


class ValidationError(AlertEngineError):
    """Client input rejected before any side effect (400)."""

    def __init__(self, message: str, *, field: Optional[str] = None, **details: Any):
        d = {**details}
        if field:
            d["field"] = field
        super().__init__(
            message=message,
            status_code=400,
            error_code="VALIDATION_ERROR",
            details=d,
        )


class AuthenticationError(AlertEngineError):
    """Mutation attempted without valid operator credentials (401)."""

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(
            message=message,
            status_code=401,
            error_code="UNAUTHENTICATED",
        )


class PersistenceError(AlertEngineError):
    """Record store read/write failed (500). Message is always generic."""

    def __init__(self, operation: str, alert_id: Optional[str] = None):
        details: Dict[str, Any] = {"operation": operation}
        if alert_id:
            details["alert_id"] = alert_id
        super().__init__(
            message="A storage error occurred. Please try again later.",
            status_code=500,
            error_code="STORAGE_ERROR",
            details=details,
        )


class ServiceUnavailableError(AlertEngineError):
    """A subsystem cannot serve the request right now (503)."""

    def __init__(self, service: str, message: str = ""):
        super().__init__(
            message=f"{service} unavailable" + (f": {message}" if message else ""),
            status_code=503,
            error_code="SERVICE_UNAVAILABLE",
            details={"service": service},
        )


# ═══════════════════════════════════════════════════════════════════════════
# Error Response Builder
# ═══════════════════════════════════════════════════════════════════════════

def _build_error_response(
    status_code: int,
    error_code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    request: Optional[Request] = None,
) -> JSONResponse:
    """Build a consistent JSON error response."""
    body: Dict[str, Any] = {
        "error": {
            "code": error_code,
            "message": message,
            "status": status_code,
        }
    }

    if details:
        body["error"]["details"] = details

    # Include request path in non-production
    if request and not settings.is_production:
        body["error"]["path"] = str(request.url.path)
        body["error"]["method"] = request.method

    return JSONResponse(status_code=status_code, content=body)


def _describe_request_errors(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(parts) or "Invalid request"


# ═══════════════════════════════════════════════════════════════════════════
# FastAPI Exception Handlers
# ═══════════════════════════════════════════════════════════════════════════

def register_error_handlers(app: FastAPI) -> None:
    """Register all exception handlers on the FastAPI app."""

    @app.exception_handler(AlertEngineError)
    async def handle_engine_error(request: Request, exc: AlertEngineError):
        log_level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
        logger.log(
            log_level,
            "API Error [%s]: %s | details=%s",
            exc.error_code, exc.message, exc.details,
        )
        return _build_error_response(
            exc.status_code, exc.error_code, exc.message,
            exc.details, request,
        )

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        message = _describe_request_errors(exc)
        logger.warning("Request validation failed: %s", message)
        return _build_error_response(
            400, "VALIDATION_ERROR", message, request=request,
        )

    @app.exception_handler(Exception)
    async def handle_unhandled(request: Request, exc: Exception):
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return _build_error_response(
            500, "INTERNAL_ERROR", "Internal server error", request=request,
        )
