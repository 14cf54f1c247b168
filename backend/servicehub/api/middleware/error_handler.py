"""
Error handling for the booking API.

Services raise the typed AppException subclasses below. The handlers turn
them, request validation failures, database errors and anything unexpected
into one JSON shape:

    {"error": "...", "correlation_id": "...", "details": {...}}

`details` is omitted when empty.
"""
import logging
from typing import Any, Dict, Optional

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from servicehub.lib.logging import get_logger

logger = get_logger(__name__)


class AppException(Exception):
    """Base for errors the workflow reports to the caller."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code


class BadRequestException(AppException):
    """Request is well-formed but breaks a business rule (window, signature, amount)."""
    status_code = status.HTTP_400_BAD_REQUEST


class UnauthorizedException(AppException):
    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class ForbiddenException(AppException):
    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, message: str = "Forbidden"):
        super().__init__(message)


class NotFoundException(AppException):
    """Referenced booking, payment, service or account does not exist (or is not visible)."""
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, resource: str, resource_id: Optional[Any] = None, message: Optional[str] = None):
        if message is None:
            message = f"{resource} with id '{resource_id}' not found" if resource_id else f"{resource} not found"
        super().__init__(
            message,
            details={"resource": resource, "resource_id": str(resource_id) if resource_id else None},
        )


class ConflictException(AppException):
    """The record moved on before this write (already captured, already refunded, ...)."""
    status_code = status.HTTP_409_CONFLICT


class ValidationException(AppException):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    def __init__(self, message: str, errors: Optional[Dict[str, Any]] = None):
        super().__init__(message, details={"errors": errors or {}})


class InternalServerException(AppException):
    """A unit of work failed and was rolled back."""

    def __init__(self, message: str = "Internal server error", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details=details)


# ===== Response helpers =====

def _correlation_id(request: Request) -> str:
    return getattr(request.state, "correlation_id", "unknown")


def _error_response(
    request: Request,
    status_code: int,
    message: str,
    details: Optional[Dict[str, Any]] = None,
) -> JSONResponse:
    content: Dict[str, Any] = {"error": message, "correlation_id": _correlation_id(request)}
    if details:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content)


def _log(request: Request, level: int, message: str, exc_info: bool = False, **fields: Any) -> None:
    logger.log(
        level,
        message,
        extra={
            "correlation_id": _correlation_id(request),
            "path": request.url.path,
            "method": request.method,
            **fields,
        },
        exc_info=exc_info,
    )


# ===== Handlers =====

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    level = logging.WARNING if exc.status_code < 500 else logging.ERROR
    _log(request, level, f"Application error: {exc.message}", status_code=exc.status_code, details=exc.details)
    return _error_response(request, exc.status_code, exc.message, exc.details)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"loc": list(error["loc"]), "msg": error["msg"], "type": error["type"]}
        for error in exc.errors()
    ]
    _log(request, logging.WARNING, "Validation error", errors=errors)
    return _error_response(
        request,
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "Validation error",
        {"errors": errors},
    )


async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """
    Database errors that escaped a service.

    Constraint violations (duplicate email, a booking total that does not add
    up) become 409; anything else is a 500. Driver messages are logged, never
    returned.
    """
    if isinstance(exc, IntegrityError):
        _log(request, logging.WARNING, "Integrity error", error=str(exc.orig))
        return _error_response(request, status.HTTP_409_CONFLICT, "Request conflicts with existing data")

    _log(request, logging.ERROR, f"Database error: {exc.__class__.__name__}", exc_info=True)
    return _error_response(request, status.HTTP_500_INTERNAL_SERVER_ERROR, "Database error")


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Unknown routes and disallowed methods."""
    _log(request, logging.WARNING, f"HTTP exception: {exc.detail}", status_code=exc.status_code)
    return _error_response(request, exc.status_code, exc.detail)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    _log(request, logging.ERROR, f"Unhandled exception: {exc}", exc_info=True)
    return _error_response(request, status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")
