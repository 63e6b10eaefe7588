"""
Session manager API.

Builds the FastAPI application: one cache engine per process,
initialized on startup and stopped on shutdown, a session binder shared
by every request, and a small API for inspecting and editing the
current session.
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import Any, Iterable, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from cache.engine import AbstractCacheEngine, CacheEngine
from cache.filter_engine import NamespacedCacheEngine
from cache.memory_engine import MemoryCacheEngine
from cache.redis_engine import RedisCacheEngine
from config.settings import CacheBackend, SerializerName, Settings, get_settings, validate_startup
from errors.handlers import register_exception_handlers
from middleware.session import SessionMiddleware, get_session
from serialize.compressed import CompressedSerializeStrategy
from serialize.json_strategy import JsonSerializeStrategy
from serialize.pickle_strategy import PickleSerializeStrategy
from serialize.strategy import SerializeStrategy
from session.binder import SessionBinder
from session.distributed import DistributedSession
from session.listeners import ListenerSource, LoggingSessionListener
from telemetry.service import initialize_telemetry

logger = logging.getLogger(__name__)

SERVICE_NAME = "Session Manager API"
SERVICE_VERSION = "1.0.0"


class AttributeValue(BaseModel):
    """Request body for setting a session attribute."""
    value: Any = None


def build_serializer(settings: Settings) -> SerializeStrategy:
    if settings.cache_serializer == SerializerName.PICKLE:
        serializer: SerializeStrategy = PickleSerializeStrategy()
    else:
        serializer = JsonSerializeStrategy()
    if settings.cache_compression:
        serializer = CompressedSerializeStrategy(serializer)
    return serializer


def build_cache_engine(settings: Settings) -> CacheEngine:
    """
    Construct (but do not initialize) the configured cache engine.

    Args:
        settings: Application settings

    Returns:
        The cache engine, wrapped in a namespace when one is configured
    """
    serializer = build_serializer(settings)
    if settings.cache_backend == CacheBackend.MEMORY:
        engine: CacheEngine = MemoryCacheEngine(serializer)
    else:
        engine = RedisCacheEngine(serializer)

    if settings.cache_namespace:
        engine = NamespacedCacheEngine(engine, settings.cache_namespace)
    return engine


def create_app(
    settings: Optional[Settings] = None,
    cache_engine: Optional[CacheEngine] = None,
    listeners: Optional[Iterable[ListenerSource]] = None
) -> FastAPI:
    """
    Application factory.

    Args:
        settings: Application settings (loaded from the environment if omitted)
        cache_engine: Engine to use instead of the configured one
        listeners: Session listeners or listener factories, in
            notification order

    Returns:
        The configured FastAPI application
    """
    settings = settings or get_settings()
    validate_startup(settings)
    initialize_telemetry(settings)

    engine = cache_engine or build_cache_engine(settings)
    session_listeners = list(listeners or [])
    if settings.session_log_events:
        session_listeners.append(LoggingSessionListener())
    binder = SessionBinder.from_settings(settings, engine, session_listeners)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifespan context manager for startup and shutdown events."""
        logger.info(
            "Starting session manager",
            extra={"extra_data": {
                "environment": settings.environment.value,
                "cache_engine": type(engine).__name__,
            }}
        )
        engine_config = settings.cache_engine_config() if settings.cache_backend == CacheBackend.REDIS else None
        engine.init(engine_config)
        engine.start()

        yield

        logger.info("Shutting down session manager")
        engine.stop()

    app = FastAPI(title=SERVICE_NAME, version=SERVICE_VERSION, lifespan=lifespan)
    app.state.settings = settings
    app.state.cache_engine = engine
    app.state.session_binder = binder

    register_exception_handlers(app)

    app.add_middleware(
        SessionMiddleware,
        binder=binder,
        cookie_name=settings.session_cookie_name,
        cookie_path=settings.session_cookie_path,
        cookie_domain=settings.session_cookie_domain,
        cookie_secure=settings.session_cookie_secure,
    )

    # Session routes are sync so FastAPI runs their blocking cache calls
    # in its threadpool

    @app.get("/api/session")
    def read_session(request: Request):
        """Describe the current session, creating one if needed."""
        return describe_session(get_session(request))

    @app.get("/api/session/attributes/{name}")
    def read_attribute(name: str, request: Request):
        session = get_session(request, create=False)
        if session is None or name not in session.attribute_names():
            raise HTTPException(status_code=404, detail=f"Attribute '{name}' not found")
        return {"name": name, "value": session.get_attribute(name)}

    @app.put("/api/session/attributes/{name}")
    def write_attribute(name: str, body: AttributeValue, request: Request):
        session = get_session(request)
        session.set_attribute(name, body.value)
        return {"name": name, "value": body.value}

    @app.delete("/api/session/attributes/{name}")
    def delete_attribute(name: str, request: Request):
        session = get_session(request, create=False)
        if session is not None:
            session.remove_attribute(name)
        return {"name": name, "removed": session is not None}

    @app.post("/api/session/invalidate")
    def invalidate_session(request: Request):
        session = get_session(request, create=False)
        if session is not None:
            session.invalidate()
        return {"invalidated": session is not None}

    @app.get("/api/health")
    def health_check():
        """
        Health check endpoint for load balancers.

        Returns 503 when the cache engine is not reachable.
        """
        started = time.perf_counter()
        if isinstance(engine, AbstractCacheEngine):
            healthy = engine.health_check()
        else:
            healthy = engine.is_initialized
        response_time_ms = (time.perf_counter() - started) * 1000

        response_data = {
            "status": "healthy" if healthy else "unhealthy",
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "dependencies": [{
                "name": "cache",
                "engine": type(engine).__name__,
                "healthy": healthy,
                "response_time_ms": round(response_time_ms, 2),
            }],
        }
        if not healthy:
            return JSONResponse(status_code=503, content=response_data)
        return response_data

    return app


def describe_session(session: DistributedSession) -> dict[str, Any]:
    return {
        "id": session.id,
        "is_new": session.is_new,
        "creation_time": session.creation_time,
        "last_accessed_time": session.last_accessed_time,
        "max_inactive_interval": session.max_inactive_interval,
        "attributes": session.attribute_names(),
    }


if __name__ == "__main__":
    import os

    import uvicorn

    port = int(os.environ.get("PORT", 8080))
    uvicorn.run(create_app(), host="0.0.0.0", port=port, log_level="info")
