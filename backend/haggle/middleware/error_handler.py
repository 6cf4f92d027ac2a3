"""
Global error handling middleware.

WHAT: Translate exceptions to appropriate HTTP responses
WHY: Consistent error responses with proper status codes
HOW: FastAPI exception handlers for business exceptions
"""

from datetime import datetime

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ..utils.exceptions import (
    BusinessException,
    ParticipantNotFoundException,
    ParticipantNotInSessionException,
    RoomNotFoundException,
    SessionClosedException,
    SessionNotFoundException,
    UnauthorizedModeratorException,
)
from ..utils.logger import get_logger

logger = get_logger(__name__)


def status_code_for(exc: BusinessException) -> int:
    """HTTP status for a business exception (400 unless more specific)."""
    if isinstance(exc, (ParticipantNotFoundException, SessionNotFoundException, RoomNotFoundException)):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, UnauthorizedModeratorException):
        return status.HTTP_403_FORBIDDEN
    if isinstance(exc, SessionClosedException):
        return status.HTTP_409_CONFLICT
    if isinstance(exc, ParticipantNotInSessionException):
        return status.HTTP_409_CONFLICT
    return status.HTTP_400_BAD_REQUEST


async def validation_error_handler(request: Request, exc: RequestValidationError):
    """
    Handle FastAPI RequestValidationError.

    WHAT: Request validation failed
    WHY: Invalid request payload
    HOW: Return 400 with field errors
    """
    logger.warning(f"Validation error: {exc.errors()}")

    cleaned_errors = []
    for error in exc.errors():
        cleaned_error = {
            "type": error.get("type"),
            "loc": error.get("loc"),
            "msg": error.get("msg"),
        }
        # ctx may hold exception instances
        if "ctx" in error:
            cleaned_error["ctx"] = {
                k: str(v) if isinstance(v, Exception) else v
                for k, v in error["ctx"].items()
            }
        cleaned_errors.append(cleaned_error)

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": "VALIDATION_ERROR",
            "message": "Request validation failed",
            "details": cleaned_errors,
            "timestamp": datetime.now().isoformat()
        }
    )


async def business_exception_handler(request: Request, exc: BusinessException):
    """
    Handle BusinessException and subclasses.

    WHAT: Rejected participant or moderator action
    WHY: Validation errors are terminal; the caller gets the reason
    HOW: Map exception type to status code, include code and details
    """
    logger.warning(f"Business exception: {exc.code} - {exc.message}")
    return JSONResponse(
        status_code=status_code_for(exc),
        content={
            "error": exc.code,
            "message": exc.message,
            "details": exc.details,
            "timestamp": datetime.now().isoformat()
        }
    )


def register_exception_handlers(app):
    """
    Register all exception handlers with FastAPI app.

    Args:
        app: FastAPI application instance
    """
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(BusinessException, business_exception_handler)

    logger.info("Exception handlers registered")
