"""
End-to-end session flows through the HTTP API.

Two application instances share one cache engine, standing in for two
servers behind a load balancer that share a Redis deployment. Time is
controlled with the fake clock so expiry can be observed.
"""

import os
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from cache.memory_engine import MemoryCacheEngine
from config.settings import Settings
from main import create_app
from session.listeners import SessionAttributeListener, SessionLifecycleListener

pytestmark = pytest.mark.integration


def make_settings(**overrides):
    values = {"cache_backend": "memory", "session_log_events": True}
    values.update(overrides)
    with patch.dict(os.environ, {}, clear=True):
        return Settings(**values)


class AuditListener(SessionLifecycleListener, SessionAttributeListener):
    def __init__(self):
        self.events = []

    def session_created(self, event):
        self.events.append("created")

    def session_destroyed(self, event):
        self.events.append("destroyed")

    def attribute_added(self, event):
        self.events.append(f"added:{event.name}")

    def attribute_replaced(self, event):
        self.events.append(f"replaced:{event.name}")


@pytest.fixture
def shared_cache(clock):
    return MemoryCacheEngine(clock=clock.seconds)


class TestSessionFlow:
    """Sessions observed across requests and servers."""

    def test_session_is_shared_between_servers(self, shared_cache):
        settings = make_settings()
        server_a = create_app(settings, cache_engine=shared_cache)
        server_b = create_app(settings, cache_engine=shared_cache)

        with TestClient(server_a) as client_a, TestClient(server_b) as client_b:
            created = client_a.put("/api/session/attributes/user", json={"value": "ana"})
            session_cookie = created.cookies["SESSIONID"]

            client_b.cookies.set("SESSIONID", session_cookie)
            on_b = client_b.get("/api/session")

            assert on_b.json()["id"] == session_cookie
            assert on_b.json()["is_new"] is False
            assert client_b.get("/api/session/attributes/user").json()["value"] == "ana"

    def test_inactive_session_expires_and_is_replaced(self, shared_cache, clock):
        app = create_app(make_settings(session_max_inactive_interval=2), cache_engine=shared_cache)

        with TestClient(app) as client:
            first = client.put("/api/session/attributes/user", json={"value": "ana"})
            first_id = first.cookies["SESSIONID"]

            clock.advance(1)
            kept = client.get("/api/session").json()
            assert kept["id"] == first_id
            assert kept["is_new"] is False

            clock.advance(3)
            replaced = client.get("/api/session")
            assert shared_cache.contains_key(f"s.{first_id}.attr") is False

        body = replaced.json()
        assert body["id"] != first_id
        assert body["is_new"] is True
        assert body["attributes"] == []
        assert replaced.cookies["SESSIONID"] == body["id"]

    def test_listeners_observe_the_flow(self, shared_cache):
        audit = AuditListener()
        app = create_app(make_settings(), cache_engine=shared_cache, listeners=[audit])

        with TestClient(app) as client:
            client.put("/api/session/attributes/cart", json={"value": [1]})
            client.put("/api/session/attributes/cart", json={"value": [1, 2]})
            client.post("/api/session/invalidate")

        assert audit.events == [
            "created",
            "added:cart",
            "created",
            "replaced:cart",
            "created",
            "destroyed",
        ]

    def test_configured_namespace_prefixes_session_keys(self):
        app = create_app(make_settings(cache_namespace="shop:"))
        engine = app.state.cache_engine

        with TestClient(app) as client:
            session_id = client.get("/api/session").json()["id"]

            assert engine.namespace == "shop:"
            assert engine.cache.contains_key(f"shop:s.{session_id}.hd") is True
            assert engine.cache.contains_key(f"s.{session_id}.hd") is False
