"""
Exception handlers that map domain exceptions to HTTP responses.
"""
import logging
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette import status

from shipyard.core.exceptions import (
    DomainException,
    NotFoundError,
    ValidationError,
    OperationError,
)

logger = logging.getLogger(__name__)


async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
    """
    Handle all domain exceptions and map to appropriate HTTP status codes.

    Services raise domain exceptions without knowing about HTTP.
    """
    if isinstance(exc, NotFoundError):
        status_code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, ValidationError):
        status_code = status.HTTP_400_BAD_REQUEST
    elif isinstance(exc, OperationError):
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
        logger.error(f"Operation error on {request.method} {request.url.path}: {exc.message}", extra={"details": exc.details})
    else:
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
        logger.error(f"Unhandled domain exception: {exc.message}", extra={"details": exc.details})

    return JSONResponse(
        status_code=status_code,
        content={
            "detail": exc.message,
            "error_type": exc.__class__.__name__,
            **exc.details,
        },
    )


def register_exception_handlers(app: FastAPI) -> None:
    """
    Register all exception handlers with the FastAPI app.

    Call this function in main.py after creating the app instance.
    """
    app.add_exception_handler(DomainException, domain_exception_handler)
