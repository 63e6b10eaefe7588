"""
Cache-backed session.

A DistributedSession is built per request for one session id. It loads
its header at ``init``, loads attributes on first touch, and writes back
to the cache only when ``synchronize`` is called:

    UNINITIALIZED --init()--> ACTIVE --invalidate()--> INVALID

Concurrent requests for the same id are not coordinated; the last
``synchronize`` wins.
"""

import logging
import time
from enum import Enum
from typing import Any, Callable, List, Optional

from cache.engine import CacheEngine
from errors.exceptions import InvalidArgumentError, SessionInvalidError, SessionStateError
from session.listeners import SessionListeners, notify_value_bound, notify_value_unbound
from session.models import SessionAttributes, SessionHeader, attributes_key, header_key

logger = logging.getLogger(__name__)

DEFAULT_KEY_PREFIX = "s."
DEFAULT_MAX_INACTIVE_INTERVAL = 8 * 60 * 60  # 8 hours


def current_millis() -> int:
    return int(time.time() * 1000)


class SessionState(str, Enum):
    UNINITIALIZED = "uninitialized"
    ACTIVE = "active"
    INVALID = "invalid"


class DistributedSession:
    """
    A session whose state lives in a shared cache engine.

    Args:
        session_id: Opaque session identifier
        cache: Initialized cache engine holding the session records
        key_prefix: Prefix of the header and attribute cache keys
        max_inactive_interval: Seconds of inactivity before the session
            expires; 0 or less means never
        listeners: Listener registry notified of lifecycle and attribute events
        clock: Returns the current time in epoch milliseconds
    """

    def __init__(
        self,
        session_id: str,
        cache: CacheEngine,
        *,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        max_inactive_interval: int = DEFAULT_MAX_INACTIVE_INTERVAL,
        listeners: Optional[SessionListeners] = None,
        clock: Callable[[], int] = current_millis
    ):
        if not isinstance(session_id, str) or not session_id:
            raise InvalidArgumentError("Session id must be a non-empty string")
        if cache is None:
            raise InvalidArgumentError("A cache engine is required")

        self._id = session_id
        self._cache = cache
        self._max_inactive_interval = int(max_inactive_interval)
        self._listeners = listeners if listeners is not None else SessionListeners()
        self._clock = clock

        self.header_key = header_key(key_prefix, session_id)
        self.attributes_key = attributes_key(key_prefix, session_id)

        self._header: Optional[SessionHeader] = None
        self._attributes: Optional[SessionAttributes] = None
        self._dirty = False
        self._state = SessionState.UNINITIALIZED

    @property
    def id(self) -> str:
        return self._id

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def dirty(self) -> bool:
        return self._dirty

    @property
    def invalid(self) -> bool:
        return self._state is SessionState.INVALID

    @property
    def max_inactive_interval(self) -> int:
        return self._max_inactive_interval

    @max_inactive_interval.setter
    def max_inactive_interval(self, seconds: int) -> None:
        self._max_inactive_interval = int(seconds)

    @property
    def header(self) -> SessionHeader:
        self._check_initialized()
        return self._header

    @property
    def creation_time(self) -> int:
        return self.header.create_time

    @property
    def last_accessed_time(self) -> int:
        return self.header.last_access_time

    @property
    def is_new(self) -> bool:
        self._check_active()
        return self._header.is_new

    # Lifecycle

    def init(self) -> "DistributedSession":
        """
        Load the session header, creating one when the cache has none.

        Session-created listeners are notified on both paths. Calling
        init on an initialized session does nothing.

        Returns:
            The session itself
        """
        if self._state is not SessionState.UNINITIALIZED:
            return self

        now = self._clock()
        if not self._cache.contains_key(self.header_key):
            self._header = SessionHeader.create(now, is_new=True)
            self._attributes = SessionAttributes()
            self._dirty = True
        else:
            header = SessionHeader.from_cache(self._cache.get(self.header_key))
            if header is None:
                # Expired between the two reads; attributes written before are lost
                logger.debug(f"Session header {self.header_key} vanished during load")
                self._header = SessionHeader.create(now, is_new=False)
                self._attributes = SessionAttributes()
                self._dirty = True
            else:
                header.is_new = False
                self._header = header

        self._state = SessionState.ACTIVE
        self._listeners.session_created(self)
        return self

    def access(self) -> None:
        """Record a use of the session."""
        self._check_active()
        self._header.last_access_time = self._clock()

    def is_expired(self) -> bool:
        """
        Check inactivity against ``max_inactive_interval``.

        Sessions with an interval of 0 or less never expire.
        """
        header = self.header
        if self._max_inactive_interval <= 0:
            return False
        return self._clock() - header.last_access_time > self._max_inactive_interval * 1000

    def invalidate(self) -> None:
        """Notify session-destroyed listeners and mark the session invalid."""
        self._check_initialized()
        if self._state is SessionState.INVALID:
            return
        self._listeners.session_destroyed(self)
        self._state = SessionState.INVALID

    def synchronize(self) -> bool:
        """
        Write the session back to the cache.

        An invalid session has both of its entries removed instead. The
        header is written on every call, the attributes only when they
        changed (otherwise their expiry is refreshed).

        Returns:
            True if the session is still valid, False if it was removed
        """
        self._check_initialized()

        if self._state is SessionState.INVALID:
            self._cache.remove(self.header_key)
            self._cache.remove(self.attributes_key)
            return False

        ttl = self._max_inactive_interval if self._max_inactive_interval > 0 else None
        self._cache.put(self.header_key, self._header.to_cache(), ttl=ttl)
        if self._dirty:
            self._cache.put(self.attributes_key, self._load_attributes().to_cache(), ttl=ttl)
            self._dirty = False
        elif ttl is not None:
            self._cache.expire(self.attributes_key, ttl)
        return True

    # Attributes

    def get_attribute(self, name: str) -> Any:
        self._check_active()
        return self._load_attributes().get(name)

    def attribute_names(self) -> List[str]:
        self._check_active()
        return list(self._load_attributes())

    def set_attribute(self, name: str, value: Any) -> None:
        """
        Bind a value to the session under ``name``.

        Fires the value's ``value_bound`` callback, then attribute-added,
        or attribute-replaced with the previous value if the name was
        already bound.
        """
        self._check_active()
        self._check_name(name)
        attributes = self._load_attributes()
        replaced = name in attributes
        old_value = attributes.get(name)

        attributes[name] = value
        self._dirty = True

        notify_value_bound(self, name, value)
        if replaced:
            self._listeners.attribute_replaced(self, name, old_value)
        else:
            self._listeners.attribute_added(self, name, value)

    def remove_attribute(self, name: str) -> None:
        self._check_active()
        self._check_name(name)
        value = self._load_attributes().pop(name, None)
        self._dirty = True

        notify_value_unbound(self, name, value)
        self._listeners.attribute_removed(self, name, value)

    def _load_attributes(self) -> SessionAttributes:
        if self._attributes is None:
            self._attributes = SessionAttributes.from_cache(self._cache.get(self.attributes_key))
        return self._attributes

    # Guards

    def _check_initialized(self) -> None:
        if self._state is SessionState.UNINITIALIZED:
            raise SessionStateError(
                "Session has not been initialized",
                details={"session_id": self._id},
            )

    def _check_active(self) -> None:
        self._check_initialized()
        if self._state is SessionState.INVALID:
            raise SessionInvalidError(
                "Session has been invalidated",
                details={"session_id": self._id},
            )

    @staticmethod
    def _check_name(name: Any) -> None:
        if not isinstance(name, str) or not name:
            raise InvalidArgumentError("Attribute name must be a non-empty string")

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DistributedSession):
            return NotImplemented
        return self._id == other._id

    def __hash__(self) -> int:
        return hash(self._id)

    def __repr__(self) -> str:
        return f"DistributedSession(id={self._id!r}, state={self._state.value})"
