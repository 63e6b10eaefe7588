"""
Session listeners and events.

Listeners are supplied by the application at startup, already
constructed or as zero-argument factories, and are notified in
registration order. Notification is best-effort: a failing listener is
logged and the remaining listeners still run.
"""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Iterable, Optional, Tuple, Union

from errors.exceptions import InvalidArgumentError
from telemetry.service import get_telemetry_service

if TYPE_CHECKING:
    from session.distributed import DistributedSession

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionEvent:
    session: "DistributedSession"


@dataclass(frozen=True)
class SessionBindingEvent(SessionEvent):
    name: str
    value: Any = None


class SessionLifecycleListener:
    """Receives session creation and destruction events."""

    def session_created(self, event: SessionEvent) -> None:
        pass

    def session_destroyed(self, event: SessionEvent) -> None:
        pass


class SessionAttributeListener:
    """
    Receives attribute changes.

    For ``attribute_replaced`` the event carries the previous value.
    """

    def attribute_added(self, event: SessionBindingEvent) -> None:
        pass

    def attribute_removed(self, event: SessionBindingEvent) -> None:
        pass

    def attribute_replaced(self, event: SessionBindingEvent) -> None:
        pass


class SessionBindingListener:
    """
    Mixin for attribute values that want to know when they are bound to
    or unbound from a session. Any value with ``value_bound`` or
    ``value_unbound`` methods is called the same way.
    """

    def value_bound(self, event: SessionBindingEvent) -> None:
        pass

    def value_unbound(self, event: SessionBindingEvent) -> None:
        pass


Listener = Union[SessionLifecycleListener, SessionAttributeListener]
ListenerSource = Union[Listener, Callable[[], Listener]]


class SessionListeners:
    """
    Ordered listener registry shared by every session of an application.

    Example:
        listeners = SessionListeners([LoggingSessionListener(), AuditListener])
        listeners.register(lambda: CartListener(pricing))
    """

    def __init__(self, listeners: Optional[Iterable[ListenerSource]] = None):
        self._lifecycle: list[SessionLifecycleListener] = []
        self._attribute: list[SessionAttributeListener] = []
        for listener in listeners or ():
            self.register(listener)

    def register(self, source: ListenerSource) -> Listener:
        """
        Add a listener, or build one from a factory and add it.

        A listener implementing both capabilities is registered for both.

        Returns:
            The registered listener instance

        Raises:
            InvalidArgumentError: If the object is neither a listener nor a
                factory producing one
        """
        listener = source
        if not self._is_listener(listener) and callable(listener):
            listener = listener()
        if not self._is_listener(listener):
            raise InvalidArgumentError(
                "Object is not a session listener",
                details={"type": type(listener).__name__},
            )

        if isinstance(listener, SessionLifecycleListener):
            self._lifecycle.append(listener)
        if isinstance(listener, SessionAttributeListener):
            self._attribute.append(listener)
        return listener

    @staticmethod
    def _is_listener(obj: Any) -> bool:
        return isinstance(obj, (SessionLifecycleListener, SessionAttributeListener))

    @property
    def lifecycle_listeners(self) -> Tuple[SessionLifecycleListener, ...]:
        return tuple(self._lifecycle)

    @property
    def attribute_listeners(self) -> Tuple[SessionAttributeListener, ...]:
        return tuple(self._attribute)

    def __len__(self) -> int:
        return len(set(map(id, self._lifecycle + self._attribute)))

    def session_created(self, session: "DistributedSession") -> None:
        event = SessionEvent(session)
        for listener in self._lifecycle:
            _notify(listener.session_created, event)

    def session_destroyed(self, session: "DistributedSession") -> None:
        event = SessionEvent(session)
        for listener in self._lifecycle:
            _notify(listener.session_destroyed, event)

    def attribute_added(self, session: "DistributedSession", name: str, value: Any) -> None:
        event = SessionBindingEvent(session, name, value)
        for listener in self._attribute:
            _notify(listener.attribute_added, event)

    def attribute_replaced(self, session: "DistributedSession", name: str, old_value: Any) -> None:
        event = SessionBindingEvent(session, name, old_value)
        for listener in self._attribute:
            _notify(listener.attribute_replaced, event)

    def attribute_removed(self, session: "DistributedSession", name: str, value: Any) -> None:
        event = SessionBindingEvent(session, name, value)
        for listener in self._attribute:
            _notify(listener.attribute_removed, event)


def notify_value_bound(session: "DistributedSession", name: str, value: Any) -> None:
    callback = getattr(value, "value_bound", None)
    if callable(callback):
        _notify(callback, SessionBindingEvent(session, name, value))


def notify_value_unbound(session: "DistributedSession", name: str, value: Any) -> None:
    callback = getattr(value, "value_unbound", None)
    if callable(callback):
        _notify(callback, SessionBindingEvent(session, name, value))


def _notify(callback: Callable[[Any], None], event: SessionEvent) -> None:
    try:
        callback(event)
    except Exception:
        logger.exception(
            "Session listener failed",
            extra={"extra_data": {
                "callback": getattr(callback, "__qualname__", repr(callback)),
                "session_id": event.session.id,
            }}
        )


class LoggingSessionListener(SessionLifecycleListener, SessionAttributeListener):
    """Writes session lifecycle and attribute events to the structured log."""

    def session_created(self, event: SessionEvent) -> None:
        self._log("session_created", event, {"is_new": event.session.is_new})

    def session_destroyed(self, event: SessionEvent) -> None:
        self._log("session_destroyed", event)

    def attribute_added(self, event: SessionBindingEvent) -> None:
        self._log("attribute_added", event, {"name": event.name})

    def attribute_removed(self, event: SessionBindingEvent) -> None:
        self._log("attribute_removed", event, {"name": event.name})

    def attribute_replaced(self, event: SessionBindingEvent) -> None:
        self._log("attribute_replaced", event, {"name": event.name})

    @staticmethod
    def _log(event_type: str, event: SessionEvent, details: Optional[dict] = None) -> None:
        telemetry = get_telemetry_service()
        if telemetry is not None:
            telemetry.log_session_event(event_type, event.session.id, details)
            telemetry.record_metric(f"session.{event_type}", 1)
        else:
            logger.info(
                f"Session event: {event_type}",
                extra={"extra_data": {"event_session_id": event.session.id, "details": details}}
            )
