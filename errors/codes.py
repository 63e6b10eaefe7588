"""
Error code catalog for the session manager.

This module defines all error codes used throughout the project, covering
cache engine lifecycle errors, invalid arguments, unsupported backend
capabilities, serialization failures, backend connectivity failures and
session state errors.
"""

from enum import Enum


class ErrorCode(str, Enum):
    """
    Enumeration of all error codes used in the project.

    Each error code maps to a default HTTP status code so that the
    boundary layer can turn any failure into a structured response:
    - Client errors (4xx): Invalid arguments, invalid session state
    - Backend errors (5xx): Cache engine and store failures
    """

    # Client errors (4xx)
    INVALID_ARGUMENT = "INVALID_ARGUMENT"
    """Null or empty cache key, or malformed configuration (HTTP 400)"""

    SESSION_INVALID = "SESSION_INVALID"
    """Operation on a session past expiry or invalidation (HTTP 409)"""

    SESSION_STATE = "SESSION_STATE"
    """Operation on a session that has not been initialized (HTTP 409)"""

    # Backend errors (5xx)
    NOT_INITIALIZED = "NOT_INITIALIZED"
    """Cache engine used outside its initialized window (HTTP 503)"""

    UNSUPPORTED_OPERATION = "UNSUPPORTED_OPERATION"
    """Capability not implemented by the chosen backend (HTTP 501)"""

    SERIALIZATION_ERROR = "SERIALIZATION_ERROR"
    """Value cannot be encoded or bytes cannot be decoded (HTTP 500)"""

    BACKEND_UNAVAILABLE = "BACKEND_UNAVAILABLE"
    """Connectivity or protocol failure talking to the store (HTTP 503)"""

    CACHE_COMMAND_REJECTED = "CACHE_COMMAND_REJECTED"
    """The store rejected a command, e.g. wrong value type (HTTP 500)"""

    # Internal errors (5xx)
    INTERNAL_ERROR = "INTERNAL_ERROR"
    """Unexpected server error (HTTP 500)"""


# Mapping of error codes to their default HTTP status codes
ERROR_CODE_STATUS_MAP: dict[ErrorCode, int] = {
    ErrorCode.INVALID_ARGUMENT: 400,
    ErrorCode.SESSION_INVALID: 409,
    ErrorCode.SESSION_STATE: 409,
    ErrorCode.NOT_INITIALIZED: 503,
    ErrorCode.UNSUPPORTED_OPERATION: 501,
    ErrorCode.SERIALIZATION_ERROR: 500,
    ErrorCode.BACKEND_UNAVAILABLE: 503,
    ErrorCode.CACHE_COMMAND_REJECTED: 500,
    ErrorCode.INTERNAL_ERROR: 500,
}


def get_default_status_code(error_code: ErrorCode) -> int:
    """
    Get the default HTTP status code for an error code.

    Args:
        error_code: The error code to look up

    Returns:
        The default HTTP status code for the error code
    """
    return ERROR_CODE_STATUS_MAP.get(error_code, 500)
