"""Global exception handlers for the FastAPI application."""

import logging
from http import HTTPStatus
from typing import Dict, Any, Optional
from fastapi import Request, HTTPException, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from sqlalchemy.exc import SQLAlchemyError

from .exceptions import (
    PortfolioAIException, AnalysisNotAllowedException,
    InvalidJobTransitionException, ExternalServiceException,
    ResourceNotFoundException, RateLimitException, ConfigurationException,
    ErrorSeverity
)

logger = logging.getLogger(__name__)

# First matching class wins, so subclasses come before their bases
EXCEPTION_STATUS = [
    (ResourceNotFoundException, status.HTTP_404_NOT_FOUND),
    (AnalysisNotAllowedException, status.HTTP_409_CONFLICT),
    (InvalidJobTransitionException, status.HTTP_409_CONFLICT),
    (RateLimitException, status.HTTP_429_TOO_MANY_REQUESTS),
    (ExternalServiceException, status.HTTP_502_BAD_GATEWAY),
    (ConfigurationException, status.HTTP_503_SERVICE_UNAVAILABLE),
]

SEVERITY_STATUS = {
    ErrorSeverity.LOW: status.HTTP_400_BAD_REQUEST,
    ErrorSeverity.MEDIUM: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorSeverity.HIGH: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorSeverity.CRITICAL: status.HTTP_503_SERVICE_UNAVAILABLE
}


class ErrorHandler:
    """Builds error envelopes and logs failed requests."""

    @staticmethod
    def create_error_response(
        status_code: int,
        error_code: str,
        message: str,
        user_message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        retry_after: Optional[int] = None
    ) -> JSONResponse:
        body = {
            "error": {
                "code": error_code,
                "message": message,
                "user_message": user_message or message,
                "details": details or {}
            }
        }
        headers = {"Retry-After": str(retry_after)} if retry_after else None
        return JSONResponse(status_code=status_code, content=body, headers=headers)

    @staticmethod
    def log_error(
        exception: Exception,
        request: Request,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM
    ) -> None:
        extra = {
            "exception_type": type(exception).__name__,
            "exception_message": str(exception),
            "method": request.method,
            "url": str(request.url),
            "client_ip": request.client.host if request.client else "unknown"
        }
        message = f"{request.method} {request.url.path} failed with {type(exception).__name__}"

        if severity == ErrorSeverity.CRITICAL:
            logger.critical(message, extra=extra, exc_info=exception)
        elif severity == ErrorSeverity.HIGH:
            logger.error(message, extra=extra)
        elif severity == ErrorSeverity.MEDIUM:
            logger.warning(message, extra=extra)
        else:
            logger.info(message, extra=extra)


def status_code_for(exc: PortfolioAIException) -> int:
    """HTTP status for an application exception, falling back to its severity."""
    for exc_type, status_code in EXCEPTION_STATUS:
        if isinstance(exc, exc_type):
            return status_code
    return SEVERITY_STATUS.get(exc.severity, status.HTTP_500_INTERNAL_SERVER_ERROR)


async def portfolio_ai_exception_handler(request: Request, exc: PortfolioAIException) -> JSONResponse:
    ErrorHandler.log_error(exc, request, exc.severity)

    return ErrorHandler.create_error_response(
        status_code=status_code_for(exc),
        error_code=exc.error_code,
        message=exc.message,
        user_message=exc.user_message,
        details=exc.details,
        retry_after=exc.retry_after
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle request validation errors."""
    ErrorHandler.log_error(exc, request, ErrorSeverity.LOW)

    errors = [
        {
            "field": " -> ".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"]
        }
        for error in exc.errors()
    ]

    return ErrorHandler.create_error_response(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        error_code="VALIDATION_ERROR",
        message="Request validation failed",
        user_message="Please check your input data and try again.",
        details={"validation_errors": errors}
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    ErrorHandler.log_error(exc, request, ErrorSeverity.LOW if exc.status_code < 500 else ErrorSeverity.HIGH)

    try:
        error_code = HTTPStatus(exc.status_code).name
    except ValueError:
        error_code = "HTTP_ERROR"

    return ErrorHandler.create_error_response(
        status_code=exc.status_code,
        error_code=error_code,
        message=str(exc.detail),
        user_message=str(exc.detail)
    )


async def database_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    ErrorHandler.log_error(exc, request, ErrorSeverity.HIGH)

    return ErrorHandler.create_error_response(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code="DATABASE_ERROR",
        message="Database operation failed",
        user_message="A database error occurred. Please try again later."
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    ErrorHandler.log_error(exc, request, ErrorSeverity.CRITICAL)

    return ErrorHandler.create_error_response(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code="UNEXPECTED_ERROR",
        message=f"Unexpected error: {type(exc).__name__}",
        user_message="An unexpected error occurred. Please try again later."
    )


def register_exception_handlers(app):
    """Register all exception handlers with the FastAPI app."""
    app.add_exception_handler(PortfolioAIException, portfolio_ai_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(SQLAlchemyError, database_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
