"""
API error types and the handlers that render them.

Services raise AppException subclasses; every failure leaves the API as
{"error": ..., "correlation_id": ..., "details": ...} with "details" only
present when there is something to report.
"""
import logging
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from crm_platform.lib.logging import get_logger

logger = get_logger(__name__)


class AppException(Exception):
    """Error with an HTTP status, raised by services and rendered by the API."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class NotFoundException(AppException):
    """A customer, segment, campaign or order id that does not exist."""

    def __init__(self, resource: str, resource_id: Optional[Any] = None):
        if resource_id is None:
            message = f"{resource} not found"
        else:
            message = f"{resource} with id '{resource_id}' not found"
        super().__init__(
            message,
            status.HTTP_404_NOT_FOUND,
            {"resource": resource, "resource_id": None if resource_id is None else str(resource_id)},
        )


class ConflictException(AppException):
    """Duplicate customer, segment still in use, or a campaign that is not a draft."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status.HTTP_409_CONFLICT, details)


class ValidationException(AppException):
    """Business-rule validation failure; `errors` maps field names to problems."""

    def __init__(self, message: str, errors: Optional[Dict[str, Any]] = None):
        super().__init__(message, status.HTTP_422_UNPROCESSABLE_ENTITY, {"errors": errors or {}})


class ServiceUnavailableException(AppException):
    """A required external service is not configured or not reachable."""

    def __init__(self, message: str = "Service unavailable"):
        super().__init__(message, status.HTTP_503_SERVICE_UNAVAILABLE)


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


def _request_fields(request: Request) -> Dict[str, Any]:
    return {
        "correlation_id": _correlation_id(request),
        "method": request.method,
        "path": request.url.path,
    }


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Client errors log at WARNING, server-side ones at ERROR."""
    logger.log(
        logging.WARNING if exc.status_code < 500 else logging.ERROR,
        f"{exc.__class__.__name__}: {exc.message}",
        extra={**_request_fields(request), "status_code": exc.status_code, "details": exc.details},
    )
    return _error_response(request, exc.status_code, exc.message, exc.details)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors: List[Dict[str, Any]] = [
        {"loc": list(error["loc"]), "msg": error["msg"], "type": error["type"]}
        for error in exc.errors()
    ]
    logger.warning(
        f"Rejected request body: {len(errors)} error(s)",
        extra={**_request_fields(request), "errors": errors},
    )
    return _error_response(
        request,
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "Validation error",
        {"errors": errors},
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Unknown routes, wrong methods and HTTPExceptions raised by routes."""
    logger.warning(
        f"HTTP {exc.status_code}: {exc.detail}",
        extra={**_request_fields(request), "status_code": exc.status_code},
    )
    return _error_response(request, exc.status_code, exc.detail)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Logs the traceback; the client only sees a generic message."""
    logger.error(f"Unhandled {exc.__class__.__name__}: {exc}", extra=_request_fields(request), exc_info=exc)
    return _error_response(request, status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
