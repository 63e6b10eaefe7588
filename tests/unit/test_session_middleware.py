"""
Unit tests for the session middleware and the demo session API.

The application is built with create_app around an in-memory cache
engine; TestClient keeps the session cookie between requests like a
browser would.
"""

import os
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from starlette.requests import Request

from cache.filter_engine import FilterCacheEngine
from cache.memory_engine import MemoryCacheEngine
from config.settings import Settings
from errors.exceptions import BackendUnavailableError, SessionStateError
from main import create_app
from middleware.session import get_session_handle


def make_settings(**overrides):
    values = {"cache_backend": "memory", "session_max_inactive_interval": 60}
    values.update(overrides)
    with patch.dict(os.environ, {}, clear=True):
        return Settings(**values)


class FlakyEngine(FilterCacheEngine):
    """Memory engine whose writes can be switched off."""

    fail_writes = False

    def put(self, key, value, *, ttl=None, groups=None):
        if self.fail_writes:
            raise BackendUnavailableError("Redis connection failed: reset")
        super().put(key, value, ttl=ttl, groups=groups)


@pytest.fixture
def engine(clock):
    return MemoryCacheEngine(clock=clock.seconds)


@pytest.fixture
def client(engine):
    app = create_app(make_settings(), cache_engine=engine)
    with TestClient(app) as client:
        yield client


class TestSessionCookie:
    """Tests for issuing, keeping and clearing the session cookie."""

    def test_first_request_issues_cookie(self, client):
        response = client.get("/api/session")

        assert response.status_code == 200
        body = response.json()
        assert body["is_new"] is True
        assert body["attributes"] == []
        cookie = response.headers["set-cookie"]
        assert cookie.startswith(f"SESSIONID={body['id']}")
        assert "httponly" in cookie.lower()
        assert "path=/" in cookie.lower()
        assert "max-age" not in cookie.lower()

    def test_cookie_is_not_resent_for_known_session(self, client):
        first = client.get("/api/session").json()

        response = client.get("/api/session")

        assert response.json()["id"] == first["id"]
        assert response.json()["is_new"] is False
        assert "set-cookie" not in response.headers

    def test_unknown_cookie_is_replaced(self, client):
        client.cookies.set("SESSIONID", "forged-id")

        response = client.get("/api/session")

        assert response.json()["id"] != "forged-id"
        assert response.json()["is_new"] is True
        assert response.headers["set-cookie"].startswith(f"SESSIONID={response.json()['id']}")

    def test_invalidate_clears_cookie(self, client):
        first = client.get("/api/session").json()

        response = client.post("/api/session/invalidate")

        assert response.json() == {"invalidated": True}
        assert "max-age=0" in response.headers["set-cookie"].lower()
        assert client.get("/api/session").json()["id"] != first["id"]

    def test_invalidate_without_session(self, client):
        response = client.post("/api/session/invalidate")

        assert response.json() == {"invalidated": False}
        assert "set-cookie" not in response.headers

    def test_custom_cookie_name(self, engine):
        app = create_app(make_settings(session_cookie_name="JSESSIONID"), cache_engine=engine)
        with TestClient(app) as client:
            response = client.get("/api/session")

        assert response.headers["set-cookie"].startswith("JSESSIONID=")


class TestAttributeRoutes:
    """Tests for the attribute API."""

    def test_attribute_round_trip_across_requests(self, client):
        put = client.put("/api/session/attributes/cart", json={"value": {"items": [1, 2]}})
        assert put.json() == {"name": "cart", "value": {"items": [1, 2]}}

        response = client.get("/api/session/attributes/cart")

        assert response.status_code == 200
        assert response.json() == {"name": "cart", "value": {"items": [1, 2]}}
        assert client.get("/api/session").json()["attributes"] == ["cart"]

    def test_missing_attribute_is_404_and_creates_no_session(self, client):
        response = client.get("/api/session/attributes/missing")

        assert response.status_code == 404
        assert "set-cookie" not in response.headers

    def test_delete_attribute(self, client):
        client.put("/api/session/attributes/cart", json={"value": 1})

        response = client.delete("/api/session/attributes/cart")

        assert response.json() == {"name": "cart", "removed": True}
        assert client.get("/api/session/attributes/cart").status_code == 404


class TestFailures:
    """Tests for failure handling around the session."""

    def test_write_back_failure_returns_structured_error(self, clock):
        engine = FlakyEngine(MemoryCacheEngine(clock=clock.seconds))
        app = create_app(make_settings(), cache_engine=engine)
        with TestClient(app) as client:
            engine.fail_writes = True
            response = client.get("/api/session")

        assert response.status_code == 503
        assert response.json()["error_code"] == "BACKEND_UNAVAILABLE"
        assert "set-cookie" not in response.headers

    def test_health_reports_engine_state(self, client):
        response = client.get("/api/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["dependencies"][0]["engine"] == "MemoryCacheEngine"

        client.app.state.cache_engine.stop()

        response = client.get("/api/health")
        assert response.status_code == 503
        assert response.json()["status"] == "unhealthy"

    def test_handle_requires_middleware(self):
        request = Request({"type": "http", "headers": []})

        with pytest.raises(SessionStateError):
            get_session_handle(request)
