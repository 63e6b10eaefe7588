"""
Cache engine contract and lifecycle base class.

A cache engine is a key-value store with per-entry expiration, batch
reads, atomic counters and (optionally) group invalidation. Every
operation other than the lifecycle calls requires the engine to be
initialized first.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Iterable, Mapping, Optional

from errors.exceptions import AppException, InvalidArgumentError, NotInitializedError

logger = logging.getLogger(__name__)


class CacheEngine(ABC):
    """
    Abstract interface for cache engines.

    Engines that cannot provide an optional capability (batch reads,
    counters, groups) raise UnsupportedOperationError for it.
    """

    @abstractmethod
    def init(self, config: Any = None) -> None:
        """
        Initialize the engine. Calling it on an initialized engine does nothing.

        Args:
            config: Engine options, as a CacheEngineConfig or a mapping.
        """
        pass

    @abstractmethod
    def start(self) -> None:
        """Begin serving. Has no effect before init."""
        pass

    @abstractmethod
    def stop(self) -> None:
        """Release resources. Calling it on a stopped engine does nothing."""
        pass

    @property
    @abstractmethod
    def is_initialized(self) -> bool:
        pass

    @abstractmethod
    def contains_key(self, key: str) -> bool:
        pass

    @abstractmethod
    def put(
        self,
        key: str,
        value: Any,
        *,
        ttl: Optional[int] = None,
        groups: Optional[Iterable[str]] = None
    ) -> None:
        """
        Store a value, overwriting any existing entry.

        Args:
            key: Non-empty cache key
            value: Value to store
            ttl: Lifetime in seconds; None means the entry never expires
            groups: Group names to tag the entry with (mutually exclusive
                with ttl)
        """
        pass

    @abstractmethod
    def get(self, key: str) -> Any:
        """Return the stored value, or None if the key is absent or expired."""
        pass

    @abstractmethod
    def get_many(self, keys: Iterable[str]) -> Mapping[str, Any]:
        """
        Return a read-only mapping of the requested keys that are present.

        Missing keys are left out rather than mapped to None.
        """
        pass

    @abstractmethod
    def increase(self, key: str, magnitude: int = 1) -> int:
        """Atomically add ``abs(magnitude)``; a missing counter starts at 0."""
        pass

    @abstractmethod
    def decrease(self, key: str, magnitude: int = 1) -> int:
        """Atomically subtract ``abs(magnitude)``, never going below 0."""
        pass

    @abstractmethod
    def expire(self, key: str, ttl: int) -> bool:
        """
        Reset the lifetime of an existing entry to ttl seconds.

        Returns:
            True if the key existed, False otherwise
        """
        pass

    @abstractmethod
    def remove(self, key: str) -> None:
        pass

    @abstractmethod
    def flush_group(self, group: str) -> None:
        """Remove every entry tagged with the group."""
        pass


class AbstractCacheEngine(CacheEngine):
    """
    Lifecycle bookkeeping shared by concrete engines.

    ``init`` and ``stop`` are idempotent and serialized by a lock;
    subclasses implement the ``_do_init``/``_do_start``/``_do_stop`` hooks.
    """

    def __init__(self):
        self._initialized = False
        self._lifecycle_lock = threading.Lock()

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def init(self, config: Any = None) -> None:
        with self._lifecycle_lock:
            if self._initialized:
                return
            self._do_init(config)
            self._initialized = True

    def start(self) -> None:
        if not self._initialized:
            logger.debug(f"{type(self).__name__} start ignored, engine not initialized")
            return
        self._do_start()

    def stop(self) -> None:
        with self._lifecycle_lock:
            if not self._initialized:
                return
            try:
                self._do_stop()
            finally:
                self._initialized = False

    def health_check(self) -> bool:
        """
        Check that the engine is initialized and its backend responds.

        Returns:
            True if healthy, False otherwise
        """
        if not self._initialized:
            return False
        try:
            self._do_start()
            return True
        except AppException as e:
            logger.warning(f"{type(self).__name__} health check failed: {e.message}")
            return False

    @abstractmethod
    def _do_init(self, config: Any) -> None:
        pass

    def _do_start(self) -> None:
        pass

    @abstractmethod
    def _do_stop(self) -> None:
        pass

    def _check_init(self) -> None:
        if not self._initialized:
            raise NotInitializedError(
                "This cache engine has not been initialized",
                details={"engine": type(self).__name__},
            )

    @staticmethod
    def _check_key(key: Any) -> None:
        if not isinstance(key, str) or not key:
            raise InvalidArgumentError(
                "Cache key must be a non-empty string",
                details={"key": repr(key)},
            )

    def _check_ready(self, key: Any) -> None:
        self._check_init()
        self._check_key(key)

    def _check_keys(self, keys: Iterable[str]) -> list[str]:
        self._check_init()
        if keys is None or isinstance(keys, str):
            raise InvalidArgumentError("Keys must be an iterable of cache keys")
        keys = list(keys)
        for key in keys:
            self._check_key(key)
        return keys

    @staticmethod
    def _check_put_options(ttl: Optional[int], groups: Optional[Iterable[str]]) -> Optional[frozenset]:
        if ttl is not None and groups is not None:
            raise InvalidArgumentError("An entry cannot have both a ttl and groups")
        if ttl is not None and (isinstance(ttl, bool) or not isinstance(ttl, int) or ttl <= 0):
            raise InvalidArgumentError(
                "ttl must be a positive number of seconds",
                details={"ttl": repr(ttl)},
            )
        if groups is None:
            return None
        if isinstance(groups, str):
            groups = [groups]
        groups = frozenset(groups)
        for group in groups:
            if not isinstance(group, str) or not group:
                raise InvalidArgumentError("Group names must be non-empty strings")
        return groups

    @staticmethod
    def _normalize_magnitude(magnitude: int) -> int:
        if isinstance(magnitude, bool) or not isinstance(magnitude, int):
            raise InvalidArgumentError(
                "Counter magnitude must be an integer",
                details={"magnitude": repr(magnitude)},
            )
        return abs(magnitude)
