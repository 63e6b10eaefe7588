"""
Redis-backed cache engine.

Commands go through a redis-py ``Redis`` client over a shared pool,
either a blocking pool pointed directly at ``host:port`` or a Sentinel
managed pool resolving the current master. The client returns every
connection to the pool after each command and disconnects it first when
the command failed at the transport level, so a broken connection is
never reused as-is.

With ``testOnBorrow`` or ``testOnReturn`` enabled each operation runs on
a connection pinned for its duration, which is PINGed before use and/or
after it and discarded when it does not answer.

Capabilities:
- get_many uses MGET
- increase uses INCRBY
- decrease runs a registered Lua script that floors the counter at 0
  and keeps its TTL
- groups are not supported

In sentinel mode ``maxWaitMillis`` does not apply: redis-py's sentinel
pool does not block, so a borrow from an exhausted pool fails at once.
"""

import logging
import time
from contextlib import contextmanager, nullcontext
from types import MappingProxyType
from typing import Any, Callable, Iterable, Iterator, Mapping, Optional

import redis
from redis.connection import Connection
from redis.exceptions import (
    ConnectionError as RedisConnectionError,
    InvalidResponse,
    ResponseError,
    TimeoutError as RedisTimeoutError,
)
from redis.sentinel import Sentinel

from cache.config import CacheEngineConfig
from cache.engine import AbstractCacheEngine
from errors.exceptions import (
    BackendUnavailableError,
    CacheCommandError,
    InvalidArgumentError,
    UnsupportedOperationError,
)
from resilience.retry import RetryConfig, RetryExhaustedException, retry_call
from serialize.json_strategy import JsonSerializeStrategy
from serialize.strategy import SerializeStrategy
from telemetry.service import external_service_span

logger = logging.getLogger(__name__)

# Errors after which a connection's state is unknown
TRANSPORT_ERRORS = (RedisConnectionError, RedisTimeoutError, InvalidResponse)

# Connections tried per operation when testOnBorrow is enabled
BORROW_VALIDATION_ATTEMPTS = 3

REMOVE_RETRY_INITIAL_DELAY = 0.01
REMOVE_RETRY_MAX_DELAY = 0.5

DECREASE_SCRIPT = """
local value = redis.call('DECRBY', KEYS[1], ARGV[1])
if value < 0 then
    redis.call('INCRBY', KEYS[1], string.format('%d', -value))
    return 0
end
return value
"""


class KeyStillPresentError(Exception):
    """A deleted key was still reported as existing."""


class RedisCacheEngine(AbstractCacheEngine):
    """
    Cache engine storing serialized values in Redis.

    Args:
        serializer: Value codec (defaults to JsonSerializeStrategy)
        connection_pool: Pre-built redis-py pool; when given, the
            connection options of the init config are ignored
        sleep: Wait function used between delete verification rounds
    """

    def __init__(
        self,
        serializer: Optional[SerializeStrategy] = None,
        connection_pool: Optional[redis.ConnectionPool] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        super().__init__()
        self.serializer = serializer or JsonSerializeStrategy()
        self._injected_pool = connection_pool
        self._sleep = sleep
        self._pool: Optional[redis.ConnectionPool] = None
        self._redis: Optional[redis.Redis] = None
        self._decrease_script = None
        self._config = CacheEngineConfig()
        self._remove_retry = self._remove_retry_config(self._config)

    @property
    def config(self) -> CacheEngineConfig:
        return self._config

    # Lifecycle

    def _do_init(self, config: Any) -> None:
        logger.info("Redis cache engine init start")
        cfg = CacheEngineConfig.load(config)
        logger.info(
            "Redis cache engine config loaded",
            extra={"extra_data": cfg.safe_dump()}
        )

        self._config = cfg
        self._remove_retry = self._remove_retry_config(cfg)
        self._redis = self._create_client(cfg)
        self._pool = self._redis.connection_pool
        self._decrease_script = self._redis.register_script(DECREASE_SCRIPT)

        try:
            self._warm_up(cfg)
        except BackendUnavailableError:
            logger.error(
                "Redis cache engine can not connect to the redis server",
                extra={"extra_data": {"host": cfg.host, "port": cfg.port, "sentinels": cfg.sentinels}}
            )
            self._release_pool()
            raise

        logger.info("Redis cache engine init end")

    def _do_start(self) -> None:
        with self._client("ping") as client:
            client.ping()

    def _do_stop(self) -> None:
        logger.info("Redis cache engine stop start")
        self._release_pool()
        logger.info("Redis cache engine stop end")

    def _create_client(self, cfg: CacheEngineConfig) -> redis.Redis:
        if self._injected_pool is not None:
            return redis.Redis(connection_pool=self._injected_pool)

        if cfg.sentinel_mode:
            sentinel = Sentinel(
                cfg.sentinel_addresses,
                socket_timeout=cfg.timeout_seconds,
            )
            return sentinel.master_for(
                cfg.master_name,
                redis_class=redis.Redis,
                db=cfg.database,
                password=cfg.password,
                socket_timeout=cfg.timeout_seconds,
                socket_connect_timeout=cfg.timeout_seconds,
                max_connections=cfg.max_total,
            )

        pool = redis.BlockingConnectionPool(
            host=cfg.host,
            port=cfg.port,
            db=cfg.database,
            password=cfg.password,
            socket_timeout=cfg.timeout_seconds,
            socket_connect_timeout=cfg.timeout_seconds,
            max_connections=cfg.max_total,
            timeout=cfg.max_wait_seconds,
        )
        return redis.Redis(connection_pool=pool)

    def _warm_up(self, cfg: CacheEngineConfig) -> None:
        """Probe the server, then open up to ``min_idle`` connections."""
        self._do_start()

        target = min(cfg.min_idle, cfg.max_idle, cfg.max_total)
        borrowed = []
        try:
            for _ in range(target):
                borrowed.append(self._borrow())
        finally:
            for conn in borrowed:
                self._pool.release(conn)

    def _release_pool(self) -> None:
        if self._pool is not None:
            self._pool.disconnect()
        self._pool = None
        self._redis = None
        self._decrease_script = None

    @staticmethod
    def _remove_retry_config(cfg: CacheEngineConfig) -> RetryConfig:
        return RetryConfig(
            max_attempts=cfg.remove_retry_attempts,
            initial_delay=REMOVE_RETRY_INITIAL_DELAY,
            max_delay=REMOVE_RETRY_MAX_DELAY,
            retryable_exceptions=(KeyStillPresentError,),
        )

    # Connection handling

    def _borrow(self) -> Connection:
        try:
            return self._pool.get_connection()
        except TRANSPORT_ERRORS as e:
            raise self._unavailable("Could not obtain a redis connection", e) from e

    @staticmethod
    def _unavailable(message: str, error: Exception) -> BackendUnavailableError:
        return BackendUnavailableError(
            f"{message}: {error}",
            details={"error_type": type(error).__name__},
        )

    @contextmanager
    def _client(self, operation: str, key: Optional[str] = None) -> Iterator[redis.Redis]:
        """
        Client to run one operation's commands on.

        Raises:
            BackendUnavailableError: If no connection can be obtained or
                the connection fails during the block.
            CacheCommandError: If Redis rejects a command.
        """
        attributes = {"db.system": "redis"}
        if key is not None:
            attributes["db.redis.key"] = key

        if self._config.test_on_borrow or self._config.test_on_return:
            client_context = self._pinned_client()
        else:
            client_context = nullcontext(self._redis)

        with external_service_span("redis", operation, attributes):
            with client_context as client:
                try:
                    yield client
                except TRANSPORT_ERRORS as e:
                    raise self._unavailable("Redis connection failed", e) from e
                except ResponseError as e:
                    raise CacheCommandError(
                        f"Redis rejected {operation}: {e}",
                        details={"command": operation.upper()},
                    ) from e

    @contextmanager
    def _pinned_client(self) -> Iterator[redis.Redis]:
        """Client holding one validated connection, always given back on exit."""
        client = self._borrow_validated()
        try:
            yield client
            if self._config.test_on_return and not self._is_alive(client):
                logger.warning("Discarding redis connection that failed validation on return")
                self._discard(client)
        finally:
            client.close()

    def _borrow_validated(self) -> redis.Redis:
        for _ in range(BORROW_VALIDATION_ATTEMPTS):
            try:
                client = redis.Redis(connection_pool=self._pool, single_connection_client=True)
            except TRANSPORT_ERRORS as e:
                raise self._unavailable("Could not obtain a redis connection", e) from e

            if not self._config.test_on_borrow:
                return client
            try:
                alive = self._is_alive(client)
            except BaseException:
                client.close()
                raise
            if alive:
                return client

            logger.warning("Discarding redis connection that failed validation on borrow")
            self._discard(client)

        raise BackendUnavailableError(
            "No redis connection passed validation on borrow",
            details={"attempts": BORROW_VALIDATION_ATTEMPTS},
        )

    @staticmethod
    def _is_alive(client: redis.Redis) -> bool:
        try:
            return bool(client.ping())
        except TRANSPORT_ERRORS + (ResponseError,):
            return False

    @staticmethod
    def _discard(client: redis.Redis) -> None:
        if client.connection is not None:
            client.connection.disconnect()
        client.close()

    # Operations

    def contains_key(self, key: str) -> bool:
        self._check_ready(key)
        with self._client("exists", key) as client:
            return bool(client.exists(key))

    def put(
        self,
        key: str,
        value: Any,
        *,
        ttl: Optional[int] = None,
        groups: Optional[Iterable[str]] = None
    ) -> None:
        self._check_ready(key)
        self._check_put_options(ttl, groups)
        if groups is not None:
            raise UnsupportedOperationError("Redis cache engine does not support groups")

        payload = self.serializer.serialize(value)
        with self._client("set", key) as client:
            client.set(key, payload, ex=ttl)

    def get(self, key: str) -> Any:
        self._check_ready(key)
        with self._client("get", key) as client:
            payload = client.get(key)
        if payload is None:
            return None
        return self.serializer.deserialize(payload)

    def get_many(self, keys: Iterable[str]) -> Mapping[str, Any]:
        keys = self._check_keys(keys)
        if not keys:
            return MappingProxyType({})

        with self._client("mget") as client:
            payloads = client.mget(keys)
        return MappingProxyType({
            key: self.serializer.deserialize(payload)
            for key, payload in zip(keys, payloads)
            if payload is not None
        })

    def increase(self, key: str, magnitude: int = 1) -> int:
        self._check_ready(key)
        magnitude = self._normalize_magnitude(magnitude)
        with self._client("incrby", key) as client:
            return int(client.incrby(key, magnitude))

    def decrease(self, key: str, magnitude: int = 1) -> int:
        self._check_ready(key)
        magnitude = self._normalize_magnitude(magnitude)
        with self._client("decrease", key) as client:
            return int(self._decrease_script(keys=[key], args=[magnitude], client=client))

    def expire(self, key: str, ttl: int) -> bool:
        self._check_ready(key)
        if ttl is None:
            raise InvalidArgumentError("ttl is required")
        self._check_put_options(ttl, None)
        with self._client("expire", key) as client:
            return bool(client.expire(key, ttl))

    def remove(self, key: str) -> None:
        """
        Delete a key and confirm it is gone.

        Deletion is re-issued while the key is still reported as present,
        up to ``removeRetryAttempts`` rounds.

        Raises:
            BackendUnavailableError: If the key survives every round.
        """
        self._check_ready(key)
        with self._client("delete", key) as client:
            try:
                retry_call(
                    self._delete_confirmed,
                    client,
                    key,
                    config=self._remove_retry,
                    operation_name="redis_remove",
                    sleep=self._sleep,
                )
            except RetryExhaustedException as e:
                raise BackendUnavailableError(
                    "Key is still present after repeated deletes",
                    details={"key": key, "attempts": e.attempts},
                ) from e

    @staticmethod
    def _delete_confirmed(client: redis.Redis, key: str) -> None:
        client.delete(key)
        if client.exists(key):
            raise KeyStillPresentError(key)

    def flush_group(self, group: str) -> None:
        self._check_init()
        raise UnsupportedOperationError("Redis cache engine does not support groups")
