"""
Middleware components for the session manager.

This module contains the FastAPI middleware binding requests to
distributed sessions.
"""

from middleware.session import (
    DEFAULT_COOKIE_NAME,
    SessionMiddleware,
    get_session,
    get_session_handle,
)

__all__ = [
    "DEFAULT_COOKIE_NAME",
    "SessionMiddleware",
    "get_session",
    "get_session_handle",
]
