"""
Decorating cache engines.

FilterCacheEngine forwards everything to a wrapped engine and is the
base for engines that add behaviour around another one.
NamespacedCacheEngine prefixes keys so several applications can share a
backend without colliding.
"""

import logging
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Optional

from cache.engine import AbstractCacheEngine, CacheEngine
from errors.exceptions import InvalidArgumentError

logger = logging.getLogger(__name__)


class FilterCacheEngine(AbstractCacheEngine):
    """Engine that delegates every operation to ``self.cache``."""

    def __init__(self, cache: CacheEngine):
        super().__init__()
        if cache is None:
            raise InvalidArgumentError("A wrapped cache engine is required")
        self.cache = cache

    def _do_init(self, config: Any) -> None:
        self.cache.init(config)
        logger.info(f"{type(self).__name__} wrapping {type(self.cache).__name__} initialized")

    def _do_start(self) -> None:
        self.cache.start()

    def _do_stop(self) -> None:
        self.cache.stop()

    def contains_key(self, key: str) -> bool:
        self._check_init()
        return self.cache.contains_key(key)

    def put(
        self,
        key: str,
        value: Any,
        *,
        ttl: Optional[int] = None,
        groups: Optional[Iterable[str]] = None
    ) -> None:
        self._check_init()
        self.cache.put(key, value, ttl=ttl, groups=groups)

    def get(self, key: str) -> Any:
        self._check_init()
        return self.cache.get(key)

    def get_many(self, keys: Iterable[str]) -> Mapping[str, Any]:
        self._check_init()
        return self.cache.get_many(keys)

    def increase(self, key: str, magnitude: int = 1) -> int:
        self._check_init()
        return self.cache.increase(key, magnitude)

    def decrease(self, key: str, magnitude: int = 1) -> int:
        self._check_init()
        return self.cache.decrease(key, magnitude)

    def expire(self, key: str, ttl: int) -> bool:
        self._check_init()
        return self.cache.expire(key, ttl)

    def remove(self, key: str) -> None:
        self._check_init()
        self.cache.remove(key)

    def flush_group(self, group: str) -> None:
        self._check_init()
        self.cache.flush_group(group)


class NamespacedCacheEngine(FilterCacheEngine):
    """
    Prefixes every key and group name with a fixed namespace.

    Batch results are keyed by the caller's original (unprefixed) keys.
    """

    def __init__(self, cache: CacheEngine, namespace: str):
        super().__init__(cache)
        if not isinstance(namespace, str) or not namespace:
            raise InvalidArgumentError("Namespace must be a non-empty string")
        self.namespace = namespace

    def _key(self, key: str) -> str:
        self._check_key(key)
        return self.namespace + key

    def contains_key(self, key: str) -> bool:
        self._check_init()
        return self.cache.contains_key(self._key(key))

    def put(
        self,
        key: str,
        value: Any,
        *,
        ttl: Optional[int] = None,
        groups: Optional[Iterable[str]] = None
    ) -> None:
        self._check_init()
        if groups is not None:
            if isinstance(groups, str):
                groups = [groups]
            groups = [self.namespace + group for group in groups]
        self.cache.put(self._key(key), value, ttl=ttl, groups=groups)

    def get(self, key: str) -> Any:
        self._check_init()
        return self.cache.get(self._key(key))

    def get_many(self, keys: Iterable[str]) -> Mapping[str, Any]:
        keys = self._check_keys(keys)
        prefixed = self.cache.get_many([self.namespace + key for key in keys])
        offset = len(self.namespace)
        return MappingProxyType({key[offset:]: value for key, value in prefixed.items()})

    def increase(self, key: str, magnitude: int = 1) -> int:
        self._check_init()
        return self.cache.increase(self._key(key), magnitude)

    def decrease(self, key: str, magnitude: int = 1) -> int:
        self._check_init()
        return self.cache.decrease(self._key(key), magnitude)

    def expire(self, key: str, ttl: int) -> bool:
        self._check_init()
        return self.cache.expire(self._key(key), ttl)

    def remove(self, key: str) -> None:
        self._check_init()
        self.cache.remove(self._key(key))

    def flush_group(self, group: str) -> None:
        self._check_init()
        if not isinstance(group, str) or not group:
            raise InvalidArgumentError("Group name must be a non-empty string")
        self.cache.flush_group(self.namespace + group)
