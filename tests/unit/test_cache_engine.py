"""
Unit tests for the cache engine lifecycle base class.

These tests verify:
- init/stop are idempotent and perform setup/teardown exactly once
- start is a no-op before init
- argument validation shared by all engines
"""

import threading

import pytest

from cache.engine import AbstractCacheEngine, CacheEngine
from errors.exceptions import BackendUnavailableError, InvalidArgumentError, NotInitializedError


class CountingEngine(AbstractCacheEngine):
    """Engine recording lifecycle hook calls; data operations are stubs."""

    def __init__(self):
        super().__init__()
        self.init_calls = []
        self.start_calls = 0
        self.stop_calls = 0
        self.fail_start = False

    def _do_init(self, config):
        self.init_calls.append(config)

    def _do_start(self):
        self.start_calls += 1
        if self.fail_start:
            raise BackendUnavailableError("down")

    def _do_stop(self):
        self.stop_calls += 1

    def contains_key(self, key):
        self._check_ready(key)
        return False

    def put(self, key, value, *, ttl=None, groups=None):
        self._check_ready(key)
        self._check_put_options(ttl, groups)

    def get(self, key):
        self._check_ready(key)

    def get_many(self, keys):
        return {key: None for key in self._check_keys(keys)}

    def increase(self, key, magnitude=1):
        self._check_ready(key)
        return self._normalize_magnitude(magnitude)

    def decrease(self, key, magnitude=1):
        self._check_ready(key)
        return 0

    def expire(self, key, ttl):
        self._check_ready(key)
        return False

    def remove(self, key):
        self._check_ready(key)

    def flush_group(self, group):
        self._check_init()


@pytest.fixture
def engine():
    return CountingEngine()


class TestLifecycle:
    """Tests for init/start/stop."""

    def test_engine_is_a_cache_engine(self, engine):
        assert isinstance(engine, CacheEngine)
        assert engine.is_initialized is False

    def test_init_twice_performs_setup_once(self, engine):
        engine.init({"host": "a"})
        engine.init({"host": "b"})

        assert engine.init_calls == [{"host": "a"}]
        assert engine.is_initialized is True

    def test_stop_twice_performs_teardown_once(self, engine):
        engine.init()
        engine.stop()
        engine.stop()

        assert engine.stop_calls == 1
        assert engine.is_initialized is False

    def test_stop_before_init_is_noop(self, engine):
        engine.stop()

        assert engine.stop_calls == 0

    def test_start_before_init_is_noop(self, engine):
        engine.start()

        assert engine.start_calls == 0

    def test_start_after_init_runs_hook(self, engine):
        engine.init()
        engine.start()

        assert engine.start_calls == 1

    def test_failed_init_leaves_engine_uninitialized(self):
        class FailingEngine(CountingEngine):
            def _do_init(self, config):
                raise BackendUnavailableError("cannot connect")

        engine = FailingEngine()
        with pytest.raises(BackendUnavailableError):
            engine.init()

        assert engine.is_initialized is False

    def test_engine_can_be_reinitialized_after_stop(self, engine):
        engine.init()
        engine.stop()
        engine.init()

        assert len(engine.init_calls) == 2
        assert engine.is_initialized is True

    def test_concurrent_init_performs_setup_once(self, engine):
        barrier = threading.Barrier(8)

        def worker():
            barrier.wait()
            engine.init()

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(engine.init_calls) == 1

    def test_operations_fail_after_stop(self, engine):
        engine.init()
        engine.stop()

        with pytest.raises(NotInitializedError):
            engine.get("k")


class TestHealthCheck:
    """Tests for health_check."""

    def test_uninitialized_engine_is_unhealthy(self, engine):
        assert engine.health_check() is False

    def test_initialized_engine_is_healthy(self, engine):
        engine.init()

        assert engine.health_check() is True

    def test_backend_failure_is_unhealthy(self, engine):
        engine.init()
        engine.fail_start = True

        assert engine.health_check() is False


class TestArgumentValidation:
    """Tests for the shared argument checks."""

    @pytest.mark.parametrize("operation", [
        lambda e: e.contains_key("k"),
        lambda e: e.get("k"),
        lambda e: e.put("k", 1),
        lambda e: e.increase("k"),
        lambda e: e.remove("k"),
        lambda e: e.get_many(["k"]),
        lambda e: e.flush_group("g"),
    ])
    def test_operations_before_init_fail(self, engine, operation):
        with pytest.raises(NotInitializedError):
            operation(engine)

    def test_not_initialized_is_checked_before_key(self, engine):
        with pytest.raises(NotInitializedError):
            engine.get("")

    @pytest.mark.parametrize("key", [None, "", 42])
    def test_invalid_keys_are_rejected(self, engine, key):
        engine.init()

        with pytest.raises(InvalidArgumentError):
            engine.get(key)

    def test_batch_keys_are_validated(self, engine):
        engine.init()

        with pytest.raises(InvalidArgumentError):
            engine.get_many(["ok", ""])
        with pytest.raises(InvalidArgumentError):
            engine.get_many(None)
        with pytest.raises(InvalidArgumentError):
            engine.get_many("not-a-list")

    def test_ttl_and_groups_are_mutually_exclusive(self, engine):
        engine.init()

        with pytest.raises(InvalidArgumentError):
            engine.put("k", 1, ttl=10, groups=["g"])

    @pytest.mark.parametrize("ttl", [0, -1, 1.5, True])
    def test_ttl_must_be_positive_int(self, engine, ttl):
        engine.init()

        with pytest.raises(InvalidArgumentError):
            engine.put("k", 1, ttl=ttl)

    def test_group_names_must_be_non_empty(self, engine):
        engine.init()

        with pytest.raises(InvalidArgumentError):
            engine.put("k", 1, groups=["ok", ""])

    def test_negative_magnitude_is_normalized(self, engine):
        engine.init()

        assert engine.increase("k", -5) == 5

    def test_non_integer_magnitude_is_rejected(self, engine):
        engine.init()

        with pytest.raises(InvalidArgumentError):
            engine.increase("k", 1.5)
