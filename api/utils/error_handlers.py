"""
Global Exception Handlers

Maps exceptions raised by the non-webhook routes onto the standard
ErrorResponse body. The webhook route acknowledges every outcome itself and
never relies on these handlers.

Design Considerations:
- Standardized error response format
- Domain errors mapped to explicit status codes
- Server errors logged with traceback, client errors at warning level
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.models.errors import ErrorResponse, FieldError, RequestValidationResponse
from src.scheduling.exceptions import SchedulingError, SessionUnavailableError

logger = logging.getLogger(__name__)


def _json(status_code: int, body: ErrorResponse) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body.model_dump()))


def add_exception_handlers(app: FastAPI) -> None:
    """
    Register all exception handlers with the FastAPI application.

    Args:
        app: FastAPI application instance
    """
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(SchedulingError, scheduling_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    logger.info("Exception handlers registered")


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    log_exception(request, exc, exc.status_code)
    return _json(
        exc.status_code,
        ErrorResponse(
            message=str(exc.detail),
            error_code=f"HTTP_{exc.status_code}",
            path=request.url.path,
        )
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Handle request validation errors with field-level detail.

    Args:
        request: Request that caused exception
        exc: Validation exception

    Returns:
        Validation error response with one item per failing field
    """
    log_exception(request, exc, status.HTTP_422_UNPROCESSABLE_ENTITY)

    errors = [
        FieldError(
            field=".".join(str(item) for item in error["loc"]),
            message=error["msg"],
            type=error["type"]
        )
        for error in exc.errors()
    ]

    return _json(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        RequestValidationResponse(
            message="Request validation error",
            error_code="VALIDATION_ERROR",
            path=request.url.path,
            errors=errors,
        )
    )


async def scheduling_exception_handler(request: Request, exc: SchedulingError) -> JSONResponse:
    retryable = isinstance(exc, SessionUnavailableError)
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE if retryable else status.HTTP_400_BAD_REQUEST
    log_exception(request, exc, status_code)
    return _json(
        status_code,
        ErrorResponse(
            message=str(exc),
            error_code=exc.__class__.__name__,
            path=request.url.path,
            retryable=retryable,
        )
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Handle all unhandled exceptions with a sanitized response.

    Args:
        request: Request that caused exception
        exc: Unhandled exception

    Returns:
        Generic 500 error response
    """
    log_exception(request, exc, status.HTTP_500_INTERNAL_SERVER_ERROR, include_traceback=True)
    return _json(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        ErrorResponse(
            message="An unexpected error occurred",
            error_code="INTERNAL_SERVER_ERROR",
            path=request.url.path,
            exception_type=exc.__class__.__name__,
        )
    )


def log_exception(
    request: Request,
    exc: Exception,
    status_code: int,
    include_traceback: bool = False
) -> None:
    """Log an exception with request context at a level matching its status code."""
    if status_code >= 500:
        log_level = logging.ERROR
    elif status_code >= 400:
        log_level = logging.WARNING
    else:
        log_level = logging.INFO

    logger.log(
        log_level,
        f"{exc.__class__.__name__} during {request.method} {request.url.path}: "
        f"status={status_code} error={str(exc)}",
        exc_info=exc if include_traceback else None
    )
