"""
API Error Handling for AuditWatch
Maps the AuditWatch exception hierarchy onto HTTP responses

Every error response body is exactly {"message": "..."}. Error codes,
context and tracebacks are logged server-side only.
"""

import logging
from typing import Dict, Type

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..services.engine.exceptions import (
    AgentNotFoundError,
    AgentUnavailableError,
    AuditWatchError,
    InvalidRequestError,
    ScanNotFoundError,
    ScheduleNotFoundError,
    UnknownFrameworkError,
)

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "An internal error occurred. Please try again later."


class ErrorType:
    """Standard error types for consistent handling"""

    VALIDATION_ERROR = "validation_error"
    NOT_FOUND_ERROR = "not_found_error"
    CONFLICT_ERROR = "conflict_error"
    INTERNAL_ERROR = "internal_error"


# Most specific classes first; lookup walks the exception's MRO
ERROR_STATUS: Dict[Type[AuditWatchError], int] = {
    InvalidRequestError: status.HTTP_400_BAD_REQUEST,
    UnknownFrameworkError: status.HTTP_400_BAD_REQUEST,
    AgentNotFoundError: status.HTTP_404_NOT_FOUND,
    ScanNotFoundError: status.HTTP_404_NOT_FOUND,
    ScheduleNotFoundError: status.HTTP_404_NOT_FOUND,
    AgentUnavailableError: status.HTTP_409_CONFLICT,
}

STATUS_ERROR_TYPES: Dict[int, str] = {
    400: ErrorType.VALIDATION_ERROR,
    404: ErrorType.NOT_FOUND_ERROR,
    409: ErrorType.CONFLICT_ERROR,
    422: ErrorType.VALIDATION_ERROR,
    500: ErrorType.INTERNAL_ERROR,
}


def status_for_exception(exc: AuditWatchError) -> int:
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS:
            return ERROR_STATUS[cls]
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"message": message})


async def auditwatch_error_handler(request: Request, exc: AuditWatchError) -> JSONResponse:
    status_code = status_for_exception(exc)
    error_type = STATUS_ERROR_TYPES.get(status_code, ErrorType.INTERNAL_ERROR)

    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}", exc_info=True)
        return error_response(status_code, GENERIC_ERROR_MESSAGE)

    logger.info(f"{request.method} {request.url.path} -> {status_code} {error_type}: {exc}")
    return error_response(status_code, exc.message)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{location}: {first.get('msg')}" if location else str(first.get("msg"))
    else:
        message = "Invalid request"
    logger.info(f"{request.method} {request.url.path} -> 422 validation_error: {message}")
    return error_response(status.HTTP_422_UNPROCESSABLE_ENTITY, message)


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return error_response(exc.status_code, message)


async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Generic 500; details never leave the server."""
    logger.error(f"Unhandled exception on {request.method} {request.url.path}: {exc}", exc_info=True)
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, GENERIC_ERROR_MESSAGE)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AuditWatchError, auditwatch_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)
