"""
Error handling module for the session manager.

This module provides structured error handling with:
- ErrorCode enum for standardized error codes
- AppException and its subclasses for the cache and session error taxonomy
- Error response models for consistent API responses
- Exception handlers for FastAPI integration
"""

from errors.codes import ErrorCode
from errors.exceptions import (
    AppException,
    BackendUnavailableError,
    CacheCommandError,
    InvalidArgumentError,
    NotInitializedError,
    SerializationError,
    SessionInvalidError,
    SessionStateError,
    UnsupportedOperationError,
)
from errors.handlers import (
    ErrorResponse,
    handle_app_exception,
    handle_unexpected_exception,
    register_exception_handlers,
)

__all__ = [
    "ErrorCode",
    "AppException",
    "BackendUnavailableError",
    "CacheCommandError",
    "InvalidArgumentError",
    "NotInitializedError",
    "SerializationError",
    "SessionInvalidError",
    "SessionStateError",
    "UnsupportedOperationError",
    "ErrorResponse",
    "handle_app_exception",
    "handle_unexpected_exception",
    "register_exception_handlers",
]
