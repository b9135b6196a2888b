"""
API middleware module.
"""
from crm_platform.api.middleware.error_handler import (
    AppException,
    NotFoundException,
    ConflictException,
    ValidationException,
    ServiceUnavailableException,
    app_exception_handler,
    validation_exception_handler,
    http_exception_handler,
    unhandled_exception_handler,
)

__all__ = [
    "AppException",
    "NotFoundException",
    "ConflictException",
    "ValidationException",
    "ServiceUnavailableException",
    "app_exception_handler",
    "validation_exception_handler",
    "http_exception_handler",
    "unhandled_exception_handler",
]
