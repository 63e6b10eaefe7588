"""
Distributed sessions.

Session state is kept in a shared cache engine rather than in process
memory, so any server instance can serve any request of a session.
"""

from session.binder import RequestContext, SessionBinder, SessionHandle, new_session_id
from session.distributed import (
    DEFAULT_KEY_PREFIX,
    DEFAULT_MAX_INACTIVE_INTERVAL,
    DistributedSession,
    SessionState,
)
from session.listeners import (
    LoggingSessionListener,
    SessionAttributeListener,
    SessionBindingEvent,
    SessionBindingListener,
    SessionEvent,
    SessionLifecycleListener,
    SessionListeners,
)
from session.models import SessionAttributes, SessionHeader

__all__ = [
    "DEFAULT_KEY_PREFIX",
    "DEFAULT_MAX_INACTIVE_INTERVAL",
    "DistributedSession",
    "LoggingSessionListener",
    "RequestContext",
    "SessionAttributeListener",
    "SessionAttributes",
    "SessionBinder",
    "SessionBindingEvent",
    "SessionBindingListener",
    "SessionEvent",
    "SessionHandle",
    "SessionHeader",
    "SessionLifecycleListener",
    "SessionListeners",
    "SessionState",
    "new_session_id",
]
