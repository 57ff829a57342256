"""Centralized error handling with categorized JSON responses.

Every error leaves the API as::

    {"error": {"category": ..., "code": ..., "detail": ..., "suggestions"?: [...], "metadata"?: {...}}}
"""

import logging
from typing import Any
from uuid import UUID

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from psycopg.errors import (
    CheckViolation as CheckViolationError,
    ForeignKeyViolation as ForeignKeyViolationError,
    NotNullViolation as NotNullViolationError,
    UniqueViolation as UniqueViolationError,
)
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import IntegrityError, OperationalError

from coursetrack.exceptions import (
    InvalidReferenceError,
    LessonLockedError,
    ResourceNotFoundError,
    TransientStoreError,
)


logger = logging.getLogger(__name__)


# === Error Categories ===


class ErrorCategory:
    """Error category constants."""

    VALIDATION = "VALIDATION_ERROR"
    AUTHENTICATION = "AUTHENTICATION_ERROR"
    DATABASE = "DATABASE_ERROR"
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    CONFLICT = "CONFLICT_ERROR"
    INTERNAL = "INTERNAL_ERROR"


class ErrorCode:
    """Specific error codes for better client handling."""

    # Validation errors
    INVALID_INPUT = "INVALID_INPUT"
    INVALID_REFERENCE = "INVALID_REFERENCE"

    # Authentication errors
    UNAUTHENTICATED = "UNAUTHENTICATED"

    # Database errors
    DB_CONNECTION_FAILED = "DB_CONNECTION_FAILED"
    DB_CONSTRAINT_VIOLATION = "DB_CONSTRAINT_VIOLATION"
    DB_UNIQUE_VIOLATION = "DB_UNIQUE_VIOLATION"
    DB_FOREIGN_KEY_VIOLATION = "DB_FOREIGN_KEY_VIOLATION"

    # Resource errors
    NOT_FOUND = "NOT_FOUND"
    LESSON_LOCKED = "LESSON_LOCKED"

    # Internal errors
    INTERNAL = "INTERNAL_ERROR"


# === Error Response Formatting ===


def format_error_response(
    category: str,
    code: str,
    detail: str,
    status_code: int,
    suggestions: list[str] | None = None,
    metadata: dict[str, Any] | None = None,
) -> JSONResponse:
    """Format a consistent error response."""
    content: dict[str, dict[str, Any]] = {
        "error": {
            "category": category,
            "code": code,
            "detail": detail,
        }
    }

    if suggestions:
        content["error"]["suggestions"] = suggestions

    if metadata:
        content["error"]["metadata"] = metadata

    return JSONResponse(status_code=status_code, content=content)


async def handle_validation_errors(request: Request, exc: Exception) -> JSONResponse:
    """Handle validation errors from Pydantic, FastAPI and the domain layer."""
    logger.info(f"Validation error on {request.method} {request.url.path}: {exc}")

    if isinstance(exc, (PydanticValidationError, RequestValidationError)):
        errors = []
        for error in exc.errors():
            field = " -> ".join(str(loc) for loc in error["loc"])
            errors.append({"field": field, "message": error["msg"], "type": error["type"]})

        return format_error_response(
            category=ErrorCategory.VALIDATION,
            code=ErrorCode.INVALID_INPUT,
            detail="Invalid input data",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            metadata={"errors": errors},
        )

    if isinstance(exc, InvalidReferenceError):
        return format_error_response(
            category=ErrorCategory.VALIDATION,
            code=ErrorCode.INVALID_REFERENCE,
            detail=str(exc),
            status_code=status.HTTP_400_BAD_REQUEST,
            suggestions=["Reference questions as '<exercise_id>:<question_id>'"],
            metadata={"lesson_id": exc.lesson_id, "reference": exc.reference},
        )

    # Custom validation error
    return format_error_response(
        category=ErrorCategory.VALIDATION,
        code=ErrorCode.INVALID_INPUT,
        detail=str(exc),
        status_code=status.HTTP_400_BAD_REQUEST,
    )


async def handle_not_found_errors(request: Request, exc: ResourceNotFoundError) -> JSONResponse:
    logger.info(f"Not found on {request.method} {request.url.path}: {exc}")
    return format_error_response(
        category=ErrorCategory.RESOURCE_NOT_FOUND,
        code=ErrorCode.NOT_FOUND,
        detail=str(exc),
        status_code=status.HTTP_404_NOT_FOUND,
        suggestions=["The requested resource does not exist"],
    )


async def handle_lesson_locked_errors(request: Request, exc: LessonLockedError) -> JSONResponse:
    logger.info(f"Locked lesson on {request.method} {request.url.path}: {exc}")
    return format_error_response(
        category=ErrorCategory.CONFLICT,
        code=ErrorCode.LESSON_LOCKED,
        detail=str(exc),
        status_code=status.HTTP_409_CONFLICT,
        suggestions=[f"Finish the lesson first: {exc.reason}"],
        metadata={"lesson_id": exc.lesson_id},
    )


async def handle_authentication_errors(request: Request, exc: HTTPException) -> JSONResponse:
    logger.warning(
        f"Authentication failed for {request.method} {request.url.path}: {exc.detail}",
        extra={"client_host": request.client.host if request.client else "unknown"},
    )
    return format_error_response(
        category=ErrorCategory.AUTHENTICATION,
        code=ErrorCode.UNAUTHENTICATED,
        detail=str(exc.detail),
        status_code=exc.status_code,
        suggestions=["Send the student id in the X-Student-Id header"],
    )


async def handle_database_errors(request: Request, exc: Exception) -> JSONResponse:
    """Handle database-related errors."""
    if isinstance(exc, TransientStoreError):
        logger.warning(f"Store unavailable on {request.method} {request.url.path}: {exc}")
        return format_error_response(
            category=ErrorCategory.DATABASE,
            code=ErrorCode.DB_CONNECTION_FAILED,
            detail="Database connection error",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            suggestions=["Please try again later"],
        )

    logger.exception(
        f"Database error on {request.method} {request.url.path}: {exc}",
        extra={"error_type": type(exc).__name__},
        exc_info=(type(exc), exc, exc.__traceback__),
    )

    # Map specific database errors to user-friendly messages
    cause = getattr(exc, "orig", None)
    if isinstance(cause, UniqueViolationError) or (isinstance(exc, IntegrityError) and "unique" in str(exc).lower()):
        return format_error_response(
            category=ErrorCategory.DATABASE,
            code=ErrorCode.DB_UNIQUE_VIOLATION,
            detail="This resource already exists",
            status_code=status.HTTP_409_CONFLICT,
            suggestions=["Try using a different identifier"],
        )

    if isinstance(cause, ForeignKeyViolationError):
        return format_error_response(
            category=ErrorCategory.DATABASE,
            code=ErrorCode.DB_FOREIGN_KEY_VIOLATION,
            detail="Referenced resource does not exist",
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    if isinstance(cause, (NotNullViolationError, CheckViolationError)):
        return format_error_response(
            category=ErrorCategory.DATABASE,
            code=ErrorCode.DB_CONSTRAINT_VIOLATION,
            detail="Required data is missing or invalid",
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    if isinstance(exc, OperationalError):
        return format_error_response(
            category=ErrorCategory.DATABASE,
            code=ErrorCode.DB_CONNECTION_FAILED,
            detail="Database connection error",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            suggestions=["Please try again later"],
        )

    # Generic database error
    return format_error_response(
        category=ErrorCategory.DATABASE,
        code=ErrorCode.INTERNAL,
        detail="A database error occurred",
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


# === Utility Functions ===


def log_error_context(request: Request, exc: Exception, error_id: UUID | None = None) -> None:
    """Log comprehensive error context for debugging."""
    context = {
        "error_id": str(error_id) if error_id else None,
        "method": request.method,
        "path": request.url.path,
        "query_params": dict(request.query_params),
        "client_host": request.client.host if request.client else "unknown",
        "error_type": type(exc).__name__,
        "error_message": str(exc),
    }

    # Request headers without credentials
    context["headers"] = {
        k: v for k, v in request.headers.items() if k.lower() not in ["authorization", "cookie", "x-api-key"]
    }

    logger.error("Request failed", extra=context, exc_info=exc)
