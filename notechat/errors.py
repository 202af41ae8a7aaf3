"""Error taxonomy and the JSON error handlers installed on the app."""

import logging

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class NoteChatError(HTTPException):
    """Base class for errors that map onto an HTTP status."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Internal server error"

    def __init__(self, detail: str | None = None, headers: dict | None = None):
        super().__init__(
            status_code=self.status_code,
            detail=detail or self.default_detail,
            headers=headers,
        )


class BadRequestError(NoteChatError):
    """Malformed or semantically invalid input."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid request"


class DuplicateError(BadRequestError):
    """A unique attribute is already taken."""

    default_detail = "Record already exists"


class UnauthorizedError(NoteChatError):
    """Missing or invalid bearer credential."""

    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Invalid token"

    def __init__(self, detail: str | None = None):
        super().__init__(detail, headers={"WWW-Authenticate": "Bearer"})


class ForbiddenError(NoteChatError):
    """Authenticated, but not allowed to touch the resource."""

    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Not authorized"


class NotFoundError(NoteChatError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found"


class ServiceUnavailableError(NoteChatError):
    """A backing service is unreachable or not configured."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "Service unavailable"


class StoreError(NoteChatError):
    """The store rejected an operation. Driver details stay in the log."""

    default_detail = "Database error"


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    """Render every HTTP error as ``{"success": false, "error": detail}``."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Render request validation failures as 400 with the list of problems."""
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"success": False, "errors": jsonable_encoder(exc.errors())},
    )


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"success": False, "error": "Internal server error"},
    )


def install_error_handlers(app: FastAPI) -> None:
    """Register the JSON error handlers on ``app``."""
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
