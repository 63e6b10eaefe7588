"""
Session middleware.

Binds every request to the distributed session named by its session
cookie. Handlers obtain the session with ``get_session(request)``; once
the response has been produced the session is written back to the cache
and the cookie is issued or cleared as needed.
"""

import logging
from typing import Callable, Optional

from fastapi import Request, Response
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from errors.exceptions import AppException, SessionStateError
from errors.handlers import handle_app_exception
from session.binder import RequestContext, SessionBinder, SessionHandle
from session.distributed import DistributedSession
from telemetry.service import reset_session_id, set_session_id

logger = logging.getLogger(__name__)

DEFAULT_COOKIE_NAME = "SESSIONID"
DEFAULT_COOKIE_PATH = "/"


class SessionMiddleware(BaseHTTPMiddleware):
    """
    Middleware that manages the session cookie around each request.

    The cookie is HttpOnly and has no expiry, so it lives as long as
    the browser session; server-side expiry is handled by the binder.
    """

    def __init__(
        self,
        app: ASGIApp,
        binder: SessionBinder,
        cookie_name: str = DEFAULT_COOKIE_NAME,
        cookie_path: str = DEFAULT_COOKIE_PATH,
        cookie_domain: Optional[str] = None,
        cookie_secure: bool = False
    ):
        """
        Initialize the middleware.

        Args:
            app: The ASGI application to wrap
            binder: Binder resolving cookie values to sessions
            cookie_name: Name of the session cookie
            cookie_path: Path attribute of the session cookie
            cookie_domain: Domain attribute of the session cookie
            cookie_secure: Whether the cookie is restricted to HTTPS
        """
        super().__init__(app)
        self.binder = binder
        self.cookie_name = cookie_name
        self.cookie_path = cookie_path
        self.cookie_domain = cookie_domain
        self.cookie_secure = cookie_secure

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Response]
    ) -> Response:
        requested_id = request.cookies.get(self.cookie_name) or None
        handle = self.binder.bind_session(RequestContext(session_id=requested_id))
        request.state.session_handle = handle

        # Context variable for log correlation
        token = set_session_id(requested_id or "")
        try:
            response = await call_next(request)

            try:
                # Cache calls block, keep them off the event loop
                await run_in_threadpool(self.binder.finalize, handle)
            except AppException as exc:
                logger.error(
                    "Failed to write session back to the cache",
                    extra={"extra_data": {"error_code": exc.error_code.value}}
                )
                return await handle_app_exception(request, exc)

            self._update_cookie(response, handle)
            return response
        finally:
            reset_session_id(token)

    def _update_cookie(self, response: Response, handle: SessionHandle) -> None:
        if handle.cookie_value is not None:
            response.set_cookie(
                self.cookie_name,
                handle.cookie_value,
                path=self.cookie_path,
                domain=self.cookie_domain,
                secure=self.cookie_secure,
                httponly=True,
                samesite="lax",
            )
        elif handle.expire_cookie:
            response.delete_cookie(
                self.cookie_name,
                path=self.cookie_path,
                domain=self.cookie_domain,
                secure=self.cookie_secure,
                httponly=True,
                samesite="lax",
            )


def get_session_handle(request: Request) -> SessionHandle:
    handle = getattr(request.state, "session_handle", None)
    if handle is None:
        raise SessionStateError("SessionMiddleware is not installed")
    return handle


def get_session(request: Request, create: bool = True) -> Optional[DistributedSession]:
    """
    Get the session of the current request.

    Performs blocking cache calls, so call it from sync route handlers
    (which FastAPI runs in its threadpool).

    Args:
        request: The current request
        create: Whether to create a session when the request has none

    Returns:
        The session, or None if there is none and create is False
    """
    return get_session_handle(request).get_session(create)
