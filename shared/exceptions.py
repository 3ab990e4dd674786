"""
Domain error taxonomy shared by the services, and its mapping to HTTP.

Services raise these from their service layer; routers never build error
responses by hand. Anything else escaping a handler becomes a generic 500.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class BookstoreError(Exception):
    """Base class for domain errors."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFoundError(BookstoreError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class AlreadyExistsError(BookstoreError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Already exists"


class InvalidStateError(BookstoreError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid state"


class InsufficientStockError(BookstoreError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Not enough stock to decrease"


class ValidationFailureError(BookstoreError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Validation failed"


class UnauthorizedError(BookstoreError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Authentication required"


class ForbiddenError(BookstoreError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Forbidden"


class UpstreamUnavailableError(BookstoreError):
    """A peer service is unreachable or timed out."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "Upstream service unavailable"


async def _handle_domain_error(request: Request, exc: BookstoreError) -> JSONResponse:
    logger.info(
        "Request failed: %s",
        exc.message,
        extra={
            "request_id": getattr(request.state, "request_id", None),
            "error_type": type(exc).__name__,
            "path": request.url.path,
        },
    )
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, UnauthorizedError) else None
    return JSONResponse(
        status_code=exc.status_code, content={"error": exc.message}, headers=headers
    )


async def _handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        f"{'.'.join(str(p) for p in err['loc'] if p != 'body')}: {err['msg']}"
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "Validation failed", "details": details},
    )


async def _handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "Unhandled error",
        extra={
            "request_id": getattr(request.state, "request_id", None),
            "path": request.url.path,
        },
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error"},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BookstoreError, _handle_domain_error)
    app.add_exception_handler(RequestValidationError, _handle_validation_error)
    app.add_exception_handler(Exception, _handle_unexpected_error)
