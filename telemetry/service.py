"""
Telemetry service for structured logging and tracing.

This module provides structured JSON logging with session correlation:
every log record carries the id of the session bound to the current
request (if any), so the cache and session layers can be traced per
client without passing the id around explicitly. When an OpenTelemetry
collector is configured, calls to the remote cache store are also
recorded as client spans.
"""

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

# Session id of the request currently being served, set by the session
# middleware and read by the formatter and the error handlers.
session_id_var: ContextVar[str] = ContextVar("session_id", default="")


class JSONFormatter(logging.Formatter):
    """
    Log formatter that outputs one JSON object per record.

    Each log entry contains:
    - timestamp: ISO 8601 formatted UTC timestamp
    - level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    - message: The log message
    - logger: Name of the logger that produced the entry
    - session_id: Id of the session bound to the current request

    Additional fields can be included via the 'extra_data' attribute
    on the log record.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
            "session_id": session_id_var.get(""),
        }

        if record.module:
            log_data["module"] = record.module
        if record.funcName and record.funcName != "<module>":
            log_data["function"] = record.funcName
        if record.lineno:
            log_data["line"] = record.lineno

        if hasattr(record, "extra_data") and record.extra_data:
            log_data.update(record.extra_data)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if record.stack_info:
            log_data["stack_trace"] = record.stack_info

        return json.dumps(log_data, default=str)


class TelemetryService:
    """
    Centralized logging setup for the session manager.

    Installs the JSON formatter on the root logger at the level configured
    in settings, sets up OpenTelemetry tracing when a collector endpoint is
    configured, and offers helpers for session lifecycle events, metrics
    and spans.
    """

    def __init__(self, settings: Optional[Any] = None):
        """
        Initialize the telemetry service.

        Args:
            settings: Application settings carrying ``log_level``,
                ``otel_endpoint`` and ``otel_service_name``
        """
        self.settings = settings
        self.tracer = None
        self._logger: Optional[logging.Logger] = None
        self._setup_logging()
        self._setup_tracing()

    def _setup_logging(self) -> None:
        """
        Configure structured JSON logging on the root logger.

        Existing root handlers are removed to avoid duplicate output.
        """
        log_level_str = "INFO"
        if self.settings and hasattr(self.settings, "log_level"):
            log_level_str = self.settings.log_level

        log_level = getattr(logging, log_level_str.upper(), logging.INFO)

        root_logger = logging.getLogger()
        root_logger.setLevel(log_level)

        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)

        stdout_handler = logging.StreamHandler(sys.stdout)
        stdout_handler.setLevel(log_level)
        stdout_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(stdout_handler)

        self._logger = logging.getLogger("telemetry")
        self._logger.info("Telemetry service initialized", extra={
            "extra_data": {"log_level": log_level_str}
        })

    def _setup_tracing(self) -> None:
        """
        Configure OpenTelemetry tracing.

        Sets up the TracerProvider and OTLP span exporter if an OTEL
        endpoint is configured in settings. The OpenTelemetry packages are
        optional; without them spans become no-ops.
        """
        if not self.settings:
            return

        otel_endpoint = getattr(self.settings, "otel_endpoint", None)
        if not otel_endpoint:
            self._logger.debug("OpenTelemetry endpoint not configured, tracing disabled")
            return

        try:
            from opentelemetry import trace
            from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
            from opentelemetry.sdk.resources import SERVICE_NAME, Resource
            from opentelemetry.sdk.trace import TracerProvider
            from opentelemetry.sdk.trace.export import BatchSpanProcessor

            service_name = getattr(self.settings, "otel_service_name", "session-manager")

            provider = TracerProvider(resource=Resource(attributes={SERVICE_NAME: service_name}))
            provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=otel_endpoint)))
            trace.set_tracer_provider(provider)

            self.tracer = trace.get_tracer(service_name)

            self._logger.info("OpenTelemetry tracing configured", extra={
                "extra_data": {
                    "otel_endpoint": otel_endpoint,
                    "service_name": service_name
                }
            })
        except ImportError as e:
            self._logger.warning(
                "OpenTelemetry packages not installed, tracing disabled",
                extra={"extra_data": {"error": str(e)}}
            )
        except Exception as e:
            self._logger.error(
                "Failed to configure OpenTelemetry tracing",
                extra={"extra_data": {"error": str(e)}}
            )

    def log_session_event(
        self,
        event_type: str,
        session_id: str,
        details: Optional[Dict[str, Any]] = None
    ) -> None:
        """
        Log a session lifecycle event (created, destroyed, ...).

        Args:
            event_type: Kind of event, e.g. "session_created"
            session_id: Id of the session the event belongs to
            details: Additional details about the event
        """
        event_data: Dict[str, Any] = {
            "session_event": event_type,
            "event_session_id": session_id,
        }
        if details:
            event_data["details"] = details

        self._logger.info(
            f"Session event: {event_type}",
            extra={"extra_data": event_data}
        )

    def record_metric(
        self,
        name: str,
        value: float,
        tags: Optional[Dict[str, str]] = None
    ) -> None:
        """
        Record a custom metric as a debug log entry.

        Args:
            name: Name of the metric
            value: Metric value
            tags: Optional tags for metric dimensions
        """
        metric_data: Dict[str, Any] = {
            "metric_name": name,
            "metric_value": value,
        }
        if tags:
            metric_data["tags"] = tags

        self._logger.debug(
            f"Metric: {name}={value}",
            extra={"extra_data": metric_data}
        )

    def create_span(self, name: str, attributes: Optional[Dict[str, Any]] = None):
        """
        Create an OpenTelemetry span for distributed tracing.

        Args:
            name: Name of the span
            attributes: Optional attributes to add to the span

        Returns:
            Span context manager, or a no-op context manager if tracing is
            not configured
        """
        if self.tracer:
            span = self.tracer.start_as_current_span(name)
            if attributes:
                return _SpanContextManager(span, attributes)
            return span
        return _NoOpSpanContextManager()

    def create_external_service_span(
        self,
        service_name: str,
        operation: str,
        attributes: Optional[Dict[str, Any]] = None
    ):
        """
        Create a client span for a call to an external service.

        Args:
            service_name: Name of the external service (e.g. "redis")
            operation: The operation being performed (e.g. "get", "mget")
            attributes: Optional additional attributes for the span

        Returns:
            Span context manager
        """
        span_attributes: Dict[str, Any] = {
            "service.name": service_name,
            "operation.name": operation,
            "span.kind": "client",
        }
        if attributes:
            span_attributes.update(attributes)

        return self.create_span(f"{service_name}.{operation}", span_attributes)


class _SpanContextManager:
    """Context manager wrapper that adds attributes to a span after entering."""

    def __init__(self, span_context, attributes: Dict[str, Any]):
        self._span_context = span_context
        self._attributes = attributes
        self._span = None

    def __enter__(self):
        self._span = self._span_context.__enter__()
        if self._span is not None and hasattr(self._span, "set_attribute"):
            for key, value in self._attributes.items():
                self._span.set_attribute(key, value)
        return self._span

    def __exit__(self, exc_type, exc_val, exc_tb):
        return self._span_context.__exit__(exc_type, exc_val, exc_tb)


class _NoOpSpanContextManager:
    """
    No-op context manager for when tracing is not configured.

    Lets callers use spans without checking whether tracing is enabled.
    """

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        return False

    def set_attribute(self, key: str, value: Any) -> None:
        pass

    def add_event(self, name: str, attributes: Optional[Dict[str, Any]] = None) -> None:
        pass

    def record_exception(self, exception: BaseException) -> None:
        pass


# Global telemetry service instance
_telemetry_service: Optional[TelemetryService] = None


def get_telemetry_service() -> Optional[TelemetryService]:
    """
    Get the global telemetry service instance.

    Returns:
        The telemetry service instance, or None if not initialized
    """
    return _telemetry_service


def initialize_telemetry(settings: Optional[Any] = None) -> TelemetryService:
    """
    Initialize the global telemetry service.

    Args:
        settings: Application settings for configuration

    Returns:
        The initialized telemetry service
    """
    global _telemetry_service
    _telemetry_service = TelemetryService(settings)
    return _telemetry_service


def external_service_span(
    service_name: str,
    operation: str,
    attributes: Optional[Dict[str, Any]] = None
):
    """
    Span for an external call through the global telemetry service.

    Returns a no-op context manager when telemetry has not been
    initialized, so library code can trace unconditionally.
    """
    telemetry = get_telemetry_service()
    if telemetry is None:
        return _NoOpSpanContextManager()
    return telemetry.create_external_service_span(service_name, operation, attributes)


def set_session_id(session_id: str):
    """
    Bind a session id to the current context.

    Returns:
        The context variable token, for ``reset_session_id``
    """
    return session_id_var.set(session_id)


def reset_session_id(token) -> None:
    """Restore the session id context to its state before ``set_session_id``."""
    session_id_var.reset(token)


def get_session_id() -> str:
    """
    Get the session id bound to the current context.

    Returns:
        The current session id, or empty string if none is bound
    """
    return session_id_var.get("")
