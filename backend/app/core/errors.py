"""
Centralised error handling — exception hierarchy + FastAPI handlers.

Provides:
    • Domain-specific exception classes
    • Consistent JSON error response format ``{"message", "error"}``
    • Automatic logging of unhandled errors
    • Request context in error responses (non-production)

Usage:
    from backend.app.core.errors import (
        DisasterAPIError,
        NotFoundError,
        ValidationError,
        ForbiddenError,
        register_error_handlers,
    )

    raise NotFoundError("Alert", id="ALR-3F2A9C1B7D40")
"""

from __future__ import annotations

import logging
import traceback
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from backend.app.core.config import settings

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Exception Hierarchy
# ═══════════════════════════════════════════════════════════════════════════

class DisasterAPIError(Exception):
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


class ValidationError(DisasterAPIError):
    """Malformed or missing input (400)."""

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


class UnauthenticatedError(DisasterAPIError):
    """Missing or invalid bearer credential (401)."""

    def __init__(self, message: str = "Not authorized, no valid token"):
        super().__init__(
            message=message,
            status_code=401,
            error_code="UNAUTHENTICATED",
        )


class ForbiddenError(DisasterAPIError):
    """Authenticated but not allowed to perform this mutation (403)."""

    def __init__(self, resource: str, action: str, **identifiers: Any):
        super().__init__(
            message=f"Not authorized to {action} this {resource.lower()}",
            status_code=403,
            error_code="FORBIDDEN",
            details={"resource": resource, "action": action, **identifiers},
        )


class NotFoundError(DisasterAPIError):
    """Resource not found (404)."""

    def __init__(self, resource: str, **identifiers: Any):
        details = {"resource": resource, **identifiers}
        super().__init__(
            message=f"{resource} not found",
            status_code=404,
            error_code="NOT_FOUND",
            details=details,
        )


class ConflictError(DisasterAPIError):
    """Optimistic-concurrency version mismatch (409)."""

    def __init__(self, resource: str, *, expected_version: Optional[int], **identifiers: Any):
        super().__init__(
            message=f"{resource} was modified by another writer",
            status_code=409,
            error_code="VERSION_CONFLICT",
            details={
                "resource": resource,
                "expected_version": expected_version,
                **identifiers,
            },
        )


class ServerError(DisasterAPIError):
    """Store or transport failure (500)."""

    def __init__(self, message: str = "Server Error", **details: Any):
        super().__init__(
            message=message,
            status_code=500,
            error_code="SERVER_ERROR",
            details=details,
        )


# ═══════════════════════════════════════════════════════════════════════════
# Error Response Builder
# ═══════════════════════════════════════════════════════════════════════════

def error_body(
    status_code: int,
    error_code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """The JSON error shape shared by HTTP responses and socket replies."""
    body: Dict[str, Any] = {
        "message": message,
        "error": {
            "code": error_code,
            "status": status_code,
        },
    }
    if details:
        body["error"]["details"] = details
    return body


def _build_error_response(
    status_code: int,
    error_code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    request: Optional[Request] = None,
) -> JSONResponse:
    """Build a consistent JSON error response."""
    body = error_body(status_code, error_code, message, details)

    # Include request path in non-production
    if request and not settings.is_production:
        body["error"]["path"] = str(request.url.path)
        body["error"]["method"] = request.method

    return JSONResponse(status_code=status_code, content=body)


# ═══════════════════════════════════════════════════════════════════════════
# FastAPI Exception Handlers
# ═══════════════════════════════════════════════════════════════════════════

def register_error_handlers(app: FastAPI) -> None:
    """Register all exception handlers on the FastAPI app."""

    @app.exception_handler(DisasterAPIError)
    async def handle_disaster_error(request: Request, exc: DisasterAPIError):
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
        problems = [
            {
                "field": ".".join(str(p) for p in err.get("loc", ())),
                "message": err.get("msg", "invalid value"),
            }
            for err in exc.errors()
        ]
        logger.warning("Request validation failed: %s", problems)
        return _build_error_response(
            400, "VALIDATION_ERROR", "Invalid request",
            {"errors": problems}, request,
        )

    @app.exception_handler(SQLAlchemyError)
    async def handle_store_error(request: Request, exc: SQLAlchemyError):
        logger.error("Store failure: %s", exc, exc_info=exc)
        message = f"Server Error: {exc}" if settings.DEBUG else "Server Error"
        return _build_error_response(
            500, "SERVER_ERROR", message, request=request,
        )

    @app.exception_handler(Exception)
    async def handle_unhandled(request: Request, exc: Exception):
        logger.critical(
            "Unhandled exception: %s\n%s",
            exc, traceback.format_exc(),
        )
        message = str(exc) if settings.DEBUG else "Internal server error"
        details = (
            {"traceback": traceback.format_exc().split("\n")}
            if settings.DEBUG else None
        )
        return _build_error_response(
            500, "INTERNAL_ERROR", message, details, request,
        )
