"""
Per-request session binding.

The HTTP layer calls ``bind_session`` once when a request arrives and
``finalize`` once after the response is produced. In between, handlers
obtain the session lazily through the handle; nothing touches the cache
until a session is actually requested.
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, List, Optional, Union

from cache.engine import CacheEngine
from errors.exceptions import InvalidArgumentError, SessionStateError
from session.distributed import (
    DEFAULT_KEY_PREFIX,
    DEFAULT_MAX_INACTIVE_INTERVAL,
    DistributedSession,
    current_millis,
)
from session.listeners import ListenerSource, SessionListeners
from session.models import header_key

logger = logging.getLogger(__name__)


def new_session_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class RequestContext:
    """What the HTTP layer knows about the session of an incoming request."""
    session_id: Optional[str] = None


@dataclass
class SessionHandle:
    """
    Session state of one request.

    Attributes:
        requested_id: Session id presented by the client, if any
        session: The resolved session, once one has been requested
        issued_id: Id minted during this request, to be sent to the client
        cookie_value: After finalize, the id the client must store (None
            when the client's cookie needs no update)
        expire_cookie: After finalize, True when the client's session
            cookie must be cleared
    """
    binder: "SessionBinder" = field(repr=False)
    requested_id: Optional[str] = None
    session: Optional[DistributedSession] = None
    issued_id: Optional[str] = None
    cookie_value: Optional[str] = None
    expire_cookie: bool = False
    finalized: bool = False
    requested_id_rejected: bool = False
    retired: List[DistributedSession] = field(default_factory=list, repr=False)

    def get_session(self, create: bool = True) -> Optional[DistributedSession]:
        return self.binder.resolve(self, create)


class SessionBinder:
    """
    Resolves session ids to DistributedSession instances.

    Example:
        binder = SessionBinder(cache, max_inactive_interval=1800)
        handle = binder.bind_session(RequestContext(cookie_value))
        session = handle.get_session()
        session.set_attribute("user", user_id)
        binder.finalize(handle)
    """

    def __init__(
        self,
        cache: CacheEngine,
        *,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        max_inactive_interval: int = DEFAULT_MAX_INACTIVE_INTERVAL,
        listeners: Union[SessionListeners, Iterable[ListenerSource], None] = None,
        id_factory: Callable[[], str] = new_session_id,
        clock: Callable[[], int] = current_millis
    ):
        if cache is None:
            raise InvalidArgumentError("A cache engine is required")
        self.cache = cache
        self.key_prefix = key_prefix
        self.max_inactive_interval = int(max_inactive_interval)
        if not isinstance(listeners, SessionListeners):
            listeners = SessionListeners(listeners)
        self.listeners = listeners
        self.id_factory = id_factory
        self.clock = clock

    @classmethod
    def from_settings(
        cls,
        settings: Any,
        cache: CacheEngine,
        listeners: Union[SessionListeners, Iterable[ListenerSource], None] = None
    ) -> "SessionBinder":
        return cls(
            cache,
            key_prefix=settings.session_cache_key_prefix,
            max_inactive_interval=settings.session_max_inactive_interval,
            listeners=listeners,
        )

    def bind_session(self, context: RequestContext) -> SessionHandle:
        return SessionHandle(binder=self, requested_id=context.session_id or None)

    def resolve(self, handle: SessionHandle, create: bool = True) -> Optional[DistributedSession]:
        """
        Return the session of the request, building it on first use.

        An expired session is invalidated, removed from the cache and
        replaced by a new one (if ``create``) within the same call. Every
        session returned has been accessed.

        Args:
            handle: Handle returned by bind_session
            create: Whether to create a session when none exists

        Returns:
            The session, or None if there is none and create is False
        """
        if handle.finalized:
            raise SessionStateError("Session handle has already been finalized")

        session = handle.session
        if session is not None and not session.invalid:
            return session
        if session is not None:
            # Invalidated earlier in this request; removed from the cache at finalize
            handle.retired.append(session)
            handle.session = None
            self._reject_requested_id(handle, session.id)

        session = self._build(handle, create)
        if session is not None and session.is_expired():
            logger.info(
                "Session expired, replacing it",
                extra={"extra_data": {"expired_session_id": session.id}}
            )
            session.invalidate()
            session.synchronize()
            self._reject_requested_id(handle, session.id)
            session = self._build(handle, create)

        if session is not None:
            session.access()
        handle.session = session
        return session

    def finalize(self, handle: SessionHandle) -> bool:
        """
        Write the request's session back and decide what the client's
        cookie must become.

        Returns:
            False if the session ended during the request, True otherwise
        """
        if handle.finalized:
            raise SessionStateError("Session handle has already been finalized")
        handle.finalized = True

        for retired in handle.retired:
            retired.synchronize()

        valid = True
        session = handle.session
        if session is not None:
            valid = session.synchronize()

        if valid and session is not None and session.id == handle.issued_id:
            handle.cookie_value = session.id
        handle.expire_cookie = handle.cookie_value is None and (
            not valid or handle.requested_id_rejected
        )
        return valid

    def _build(self, handle: SessionHandle, create: bool) -> Optional[DistributedSession]:
        requested = handle.requested_id
        if requested and not handle.requested_id_rejected:
            if self.cache.contains_key(header_key(self.key_prefix, requested)):
                return self._open(requested)
            # Ids the cache does not know are never adopted
            logger.debug("Requested session id is unknown to the cache")
            handle.requested_id_rejected = True

        if not create:
            return None

        session_id = self.id_factory()
        handle.issued_id = session_id
        logger.debug("Issuing new session id")
        return self._open(session_id)

    def _open(self, session_id: str) -> DistributedSession:
        session = DistributedSession(
            session_id,
            self.cache,
            key_prefix=self.key_prefix,
            max_inactive_interval=self.max_inactive_interval,
            listeners=self.listeners,
            clock=self.clock,
        )
        return session.init()

    @staticmethod
    def _reject_requested_id(handle: SessionHandle, session_id: str) -> None:
        if session_id == handle.requested_id:
            handle.requested_id_rejected = True
