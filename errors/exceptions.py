"""
Exception classes for the session manager.

This module provides the AppException base class and the concrete error
taxonomy raised by the cache engines, the serialization strategies and
the distributed session. Most subclasses also derive from the closest builtin
exception so callers may catch either.
"""

from typing import Any, Optional

from errors.codes import ErrorCode, get_default_status_code


class AppException(Exception):
    """
    Base exception class for all application-specific errors.

    This exception provides structured error information including:
    - error_code: A standardized error code from the ErrorCode enum
    - message: A human-readable error message
    - status_code: The HTTP status code to return
    - details: Optional additional context (e.g., the offending key)

    Example:
        raise AppException(
            error_code=ErrorCode.BACKEND_UNAVAILABLE,
            message="Redis connection refused",
            details={"host": "localhost", "port": 6379}
        )
    """

    # Default code used by subclasses that do not pass one explicitly
    default_error_code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(
        self,
        error_code: Optional[ErrorCode] = None,
        message: str = "",
        status_code: Optional[int] = None,
        details: Optional[dict[str, Any]] = None
    ):
        """
        Initialize an AppException.

        Args:
            error_code: The error code from the ErrorCode enum (defaults to
                the class-level default)
            message: A human-readable error message
            status_code: The HTTP status code (defaults to the error code's default)
            details: Optional dictionary with additional error context
        """
        self.error_code = error_code or self.default_error_code
        self.message = message
        self.status_code = status_code or get_default_status_code(self.error_code)
        self.details = details
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert the exception to a dictionary for JSON serialization.

        Returns:
            Dictionary containing error_code, message, and details
        """
        result = {
            "error_code": self.error_code.value,
            "message": self.message,
        }
        if self.details is not None:
            result["details"] = self.details
        return result

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(error_code={self.error_code.value!r}, "
            f"message={self.message!r}, status_code={self.status_code}, "
            f"details={self.details!r})"
        )


class _CodedException(AppException):
    """AppException whose error code is fixed by the subclass."""

    def __init__(
        self,
        message: str,
        details: Optional[dict[str, Any]] = None,
        status_code: Optional[int] = None
    ):
        super().__init__(
            error_code=self.default_error_code,
            message=message,
            status_code=status_code,
            details=details
        )


class NotInitializedError(_CodedException, RuntimeError):
    """A cache engine operation was invoked before init or after stop."""
    default_error_code = ErrorCode.NOT_INITIALIZED


class InvalidArgumentError(_CodedException, ValueError):
    """A cache key was None or empty, or an argument was out of range."""
    default_error_code = ErrorCode.INVALID_ARGUMENT


class UnsupportedOperationError(_CodedException, NotImplementedError):
    """
    The backend does not implement the requested capability.

    Each engine has a fixed capability set; callers discover it by trying.
    """
    default_error_code = ErrorCode.UNSUPPORTED_OPERATION


class SerializationError(_CodedException):
    """A value could not be encoded, or bytes could not be decoded."""
    default_error_code = ErrorCode.SERIALIZATION_ERROR


class BackendUnavailableError(_CodedException):
    """
    Connectivity or protocol failure talking to the remote store.

    The pooled connection involved in the failure has been discarded.
    """
    default_error_code = ErrorCode.BACKEND_UNAVAILABLE


class CacheCommandError(_CodedException):
    """The store rejected a command; the connection itself is healthy."""
    default_error_code = ErrorCode.CACHE_COMMAND_REJECTED


class SessionStateError(_CodedException, RuntimeError):
    """A session operation is not allowed in the session's current state."""
    default_error_code = ErrorCode.SESSION_STATE


class SessionInvalidError(SessionStateError):
    """A session was used after it expired or was invalidated."""
    default_error_code = ErrorCode.SESSION_INVALID
