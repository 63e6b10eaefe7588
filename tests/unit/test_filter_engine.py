"""
Unit tests for the decorating cache engines.
"""

from unittest.mock import MagicMock

import pytest

from cache.engine import CacheEngine
from cache.filter_engine import FilterCacheEngine, NamespacedCacheEngine
from errors.exceptions import InvalidArgumentError, NotInitializedError


@pytest.fixture
def inner():
    return MagicMock(spec=CacheEngine)


class TestFilterCacheEngine:
    """Tests for plain delegation."""

    def test_lifecycle_is_delegated(self, inner):
        engine = FilterCacheEngine(inner)

        engine.init({"host": "h"})
        engine.start()
        engine.stop()

        inner.init.assert_called_once_with({"host": "h"})
        inner.start.assert_called_once_with()
        inner.stop.assert_called_once_with()

    def test_operations_are_delegated(self, inner):
        inner.get.return_value = "v"
        inner.increase.return_value = 3
        engine = FilterCacheEngine(inner)
        engine.init()

        assert engine.get("k") == "v"
        assert engine.increase("k", 3) == 3
        engine.put("k", 1, ttl=5)
        engine.remove("k")
        engine.flush_group("g")

        inner.put.assert_called_once_with("k", 1, ttl=5, groups=None)
        inner.remove.assert_called_once_with("k")
        inner.flush_group.assert_called_once_with("g")

    def test_operations_before_init_fail(self, inner):
        engine = FilterCacheEngine(inner)

        with pytest.raises(NotInitializedError):
            engine.get("k")
        inner.get.assert_not_called()

    def test_subclass_can_override_one_operation(self, memory_cache):
        class UpperCaseEngine(FilterCacheEngine):
            def get(self, key):
                value = super().get(key)
                return value.upper() if isinstance(value, str) else value

        engine = UpperCaseEngine(memory_cache)
        engine.init()
        engine.put("k", "value")

        assert engine.get("k") == "VALUE"
        assert memory_cache.get("k") == "value"

    def test_requires_wrapped_engine(self):
        with pytest.raises(InvalidArgumentError):
            FilterCacheEngine(None)


class TestNamespacedCacheEngine:
    """Tests for key prefixing."""

    @pytest.fixture
    def engine(self, memory_cache):
        engine = NamespacedCacheEngine(memory_cache, "app1:")
        engine.init()
        return engine

    def test_keys_are_prefixed(self, engine, memory_cache):
        engine.put("k", 1)

        assert memory_cache.get("app1:k") == 1
        assert memory_cache.get("k") is None
        assert engine.get("k") == 1
        assert engine.contains_key("k") is True

    def test_batch_results_use_caller_keys(self, engine, memory_cache):
        engine.put("a", 1)
        memory_cache.put("b", "outside the namespace")

        assert dict(engine.get_many(["a", "b"])) == {"a": 1}

    def test_counters_and_remove(self, engine, memory_cache):
        assert engine.increase("c", 2) == 2
        assert engine.decrease("c", 5) == 0
        engine.remove("c")

        assert memory_cache.contains_key("app1:c") is False

    def test_groups_are_namespaced(self, engine, memory_cache):
        engine.put("a", 1, groups=["g"])
        memory_cache.put("other", 2, groups=["g"])

        engine.flush_group("g")

        assert engine.get("a") is None
        assert memory_cache.get("other") == 2

    def test_expire_is_prefixed(self, engine, memory_cache, clock):
        engine.put("k", 1, ttl=5)
        clock.advance(4)

        assert engine.expire("k", 5) is True
        clock.advance(4)
        assert memory_cache.get("app1:k") == 1

    def test_empty_key_is_rejected(self, engine):
        with pytest.raises(InvalidArgumentError):
            engine.get("")

    def test_namespace_is_required(self, memory_cache):
        with pytest.raises(InvalidArgumentError):
            NamespacedCacheEngine(memory_cache, "")
