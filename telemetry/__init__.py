"""
Telemetry module for structured logging and tracing.

This module provides:
- JSONFormatter for structured JSON log output
- TelemetryService for logging setup, session events, metrics and spans
- external_service_span for tracing calls to the cache store
- Session id correlation via a context variable
"""

from telemetry.service import (
    JSONFormatter,
    TelemetryService,
    external_service_span,
    get_session_id,
    get_telemetry_service,
    initialize_telemetry,
    reset_session_id,
    session_id_var,
    set_session_id,
)

__all__ = [
    "JSONFormatter",
    "TelemetryService",
    "external_service_span",
    "get_session_id",
    "get_telemetry_service",
    "initialize_telemetry",
    "reset_session_id",
    "session_id_var",
    "set_session_id",
]
