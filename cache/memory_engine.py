"""
In-process cache engine.

Supports every capability including groups. Values are stored in
serialized form so callers never share mutable state with the cache;
expired entries are dropped lazily when they are next touched.
"""

import logging
import threading
import time
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Set

from cache.engine import AbstractCacheEngine
from errors.exceptions import CacheCommandError, InvalidArgumentError
from serialize.pickle_strategy import PickleSerializeStrategy
from serialize.strategy import SerializeStrategy

logger = logging.getLogger(__name__)


@dataclass
class _Entry:
    payload: bytes
    expires_at: Optional[float] = None
    groups: frozenset = frozenset()


class MemoryCacheEngine(AbstractCacheEngine):
    """
    Dictionary-backed engine for development and tests.

    Not shared between processes; use RedisCacheEngine when sessions must
    be visible to more than one server.
    """

    def __init__(
        self,
        serializer: Optional[SerializeStrategy] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        super().__init__()
        self.serializer = serializer or PickleSerializeStrategy()
        self._clock = clock
        self._entries: Dict[str, _Entry] = {}
        self._groups: Dict[str, Set[str]] = {}
        self._lock = threading.RLock()

    def _do_init(self, config: Any) -> None:
        with self._lock:
            self._entries.clear()
            self._groups.clear()
        logger.info("Memory cache engine initialized")

    def _do_stop(self) -> None:
        with self._lock:
            self._entries.clear()
            self._groups.clear()
        logger.info("Memory cache engine stopped")

    def contains_key(self, key: str) -> bool:
        self._check_ready(key)
        with self._lock:
            return self._live_entry(key) is not None

    def put(
        self,
        key: str,
        value: Any,
        *,
        ttl: Optional[int] = None,
        groups: Optional[Iterable[str]] = None
    ) -> None:
        self._check_ready(key)
        group_set = self._check_put_options(ttl, groups)
        payload = self.serializer.serialize(value)
        expires_at = self._clock() + ttl if ttl is not None else None

        with self._lock:
            self._store(key, _Entry(payload, expires_at, group_set or frozenset()))

    def get(self, key: str) -> Any:
        self._check_ready(key)
        with self._lock:
            entry = self._live_entry(key)
            if entry is None:
                return None
            payload = entry.payload
        return self.serializer.deserialize(payload)

    def get_many(self, keys: Iterable[str]) -> Mapping[str, Any]:
        keys = self._check_keys(keys)
        with self._lock:
            payloads = {}
            for key in keys:
                entry = self._live_entry(key)
                if entry is not None:
                    payloads[key] = entry.payload
        return MappingProxyType({
            key: self.serializer.deserialize(payload)
            for key, payload in payloads.items()
        })

    def increase(self, key: str, magnitude: int = 1) -> int:
        self._check_ready(key)
        return self._add(key, self._normalize_magnitude(magnitude))

    def decrease(self, key: str, magnitude: int = 1) -> int:
        self._check_ready(key)
        return self._add(key, -self._normalize_magnitude(magnitude))

    def expire(self, key: str, ttl: int) -> bool:
        self._check_ready(key)
        if ttl is None:
            raise InvalidArgumentError("ttl is required")
        self._check_put_options(ttl, None)
        with self._lock:
            entry = self._live_entry(key)
            if entry is None:
                return False
            entry.expires_at = self._clock() + ttl
            return True

    def remove(self, key: str) -> None:
        self._check_ready(key)
        with self._lock:
            self._discard(key)

    def flush_group(self, group: str) -> None:
        self._check_init()
        if not isinstance(group, str) or not group:
            raise InvalidArgumentError("Group name must be a non-empty string")
        with self._lock:
            for key in list(self._groups.get(group, ())):
                self._discard(key)
        logger.debug(f"Flushed cache group {group}")

    def _add(self, key: str, delta: int) -> int:
        with self._lock:
            entry = self._live_entry(key)
            current = 0
            if entry is not None:
                current = self.serializer.deserialize(entry.payload)
                if isinstance(current, bool) or not isinstance(current, int):
                    raise CacheCommandError(
                        "Value is not an integer",
                        details={"key": key},
                    )
            result = max(current + delta, 0) if delta < 0 else current + delta
            # Counter updates keep the entry's expiry and groups
            self._store(key, _Entry(
                self.serializer.serialize(result),
                entry.expires_at if entry else None,
                entry.groups if entry else frozenset(),
            ))
            return result

    def _live_entry(self, key: str) -> Optional[_Entry]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at is not None and entry.expires_at <= self._clock():
            self._discard(key)
            return None
        return entry

    def _store(self, key: str, entry: _Entry) -> None:
        self._discard(key)
        self._entries[key] = entry
        for group in entry.groups:
            self._groups.setdefault(group, set()).add(key)

    def _discard(self, key: str) -> None:
        entry = self._entries.pop(key, None)
        if entry is None:
            return
        for group in entry.groups:
            members = self._groups.get(group)
            if members is not None:
                members.discard(key)
                if not members:
                    del self._groups[group]
