"""
Cache engine configuration.

Engines receive their configuration at ``init`` either as a
``CacheEngineConfig`` or as a plain string-keyed mapping (for example one
read from a properties file or the environment), using the camelCase
option names ``host``, ``port``, ``database``, ``password``, ``timeout``,
``maxTotal``, ``maxIdle``, ``minIdle``, ``maxWaitMillis``,
``testOnBorrow``, ``testOnReturn``, ``masterName`` and ``sentinels``.
Snake_case names are accepted as well, and string values are coerced.
"""

import logging
from typing import Any, List, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

from errors.exceptions import InvalidArgumentError

logger = logging.getLogger(__name__)

DEFAULT_HOST = "localhost"
DEFAULT_PORT = 6379
DEFAULT_TIMEOUT_MILLIS = 2000
DEFAULT_MAX_TOTAL = 200
DEFAULT_MAX_IDLE = 100
DEFAULT_MIN_IDLE = 5
DEFAULT_MAX_WAIT_MILLIS = 10000
DEFAULT_REMOVE_RETRY_ATTEMPTS = 5

SENTINEL_SEPARATOR = ";"


class CacheEngineConfig(BaseModel):
    """
    Validated connection and pool options for a cache engine.

    Sentinel mode is selected by configuring at least one sentinel
    address; ``master_name`` is then required. Without sentinels the
    engine connects directly to ``host:port``.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )

    host: str = DEFAULT_HOST
    port: int = Field(default=DEFAULT_PORT, ge=1, le=65535)
    database: int = Field(default=0, ge=0)
    password: Optional[str] = None
    timeout: int = Field(
        default=DEFAULT_TIMEOUT_MILLIS,
        ge=0,
        description="Socket connect/read timeout in milliseconds (0 = no timeout)"
    )

    # Pool sizing
    max_total: int = Field(default=DEFAULT_MAX_TOTAL, ge=1)
    max_idle: int = Field(
        default=DEFAULT_MAX_IDLE,
        ge=0,
        description="Caps how many connections are opened ahead of time at init"
    )
    min_idle: int = Field(default=DEFAULT_MIN_IDLE, ge=0)
    max_wait_millis: int = Field(
        default=DEFAULT_MAX_WAIT_MILLIS,
        ge=0,
        description=(
            "How long a borrow may block on an exhausted pool. Direct mode only: "
            "the sentinel pool fails at once when all maxTotal connections are in use"
        )
    )
    test_on_borrow: bool = False
    test_on_return: bool = False

    # High availability
    master_name: Optional[str] = None
    sentinels: List[str] = Field(default_factory=list)

    remove_retry_attempts: int = Field(
        default=DEFAULT_REMOVE_RETRY_ATTEMPTS,
        ge=1,
        description="Upper bound on delete-then-verify rounds in remove()"
    )

    @field_validator("password", "master_name", mode="before")
    @classmethod
    def blank_to_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("sentinels", mode="before")
    @classmethod
    def split_sentinels(cls, v: Any) -> Any:
        """Accept the ``;``-delimited form, tolerating a trailing separator."""
        if v is None:
            return []
        if isinstance(v, str):
            v = v.split(SENTINEL_SEPARATOR)
        return [item.strip() for item in v if item and item.strip()]

    @field_validator("sentinels")
    @classmethod
    def validate_sentinel_addresses(cls, v: List[str]) -> List[str]:
        for address in v:
            _parse_address(address)
        return v

    @model_validator(mode="after")
    def validate_sentinel_mode(self) -> "CacheEngineConfig":
        if self.sentinels and not self.master_name:
            raise ValueError("masterName is required when sentinels are configured")
        return self

    @property
    def sentinel_mode(self) -> bool:
        return bool(self.sentinels)

    @property
    def sentinel_addresses(self) -> List[Tuple[str, int]]:
        return [_parse_address(address) for address in self.sentinels]

    @property
    def timeout_seconds(self) -> Optional[float]:
        return self.timeout / 1000.0 if self.timeout else None

    @property
    def max_wait_seconds(self) -> float:
        return self.max_wait_millis / 1000.0

    def safe_dump(self) -> dict[str, Any]:
        """Options suitable for logging (the password is masked)."""
        data = self.model_dump(by_alias=True)
        if data.get("password"):
            data["password"] = "******"
        return data

    @classmethod
    def load(
        cls,
        config: Union["CacheEngineConfig", Mapping[str, Any], None]
    ) -> "CacheEngineConfig":
        """
        Normalize any accepted configuration form into a config model.

        Args:
            config: A config model, a string-keyed mapping, or None for
                all defaults.

        Returns:
            The validated configuration.

        Raises:
            InvalidArgumentError: If an option is missing its counterpart
                or has an invalid value.
        """
        if config is None:
            return cls()
        if isinstance(config, cls):
            return config
        try:
            return cls.model_validate(dict(config))
        except ValidationError as e:
            invalid_fields = {
                ".".join(str(loc) for loc in error.get("loc", [])) or "config": error.get("msg", "")
                for error in e.errors()
            }
            raise InvalidArgumentError(
                "Invalid cache engine configuration",
                details={"invalid_fields": invalid_fields},
            ) from e


def _parse_address(address: str) -> Tuple[str, int]:
    host, separator, port = address.rpartition(":")
    if not separator or not host or not port.isdigit():
        raise ValueError(f"Sentinel address must be 'host:port', got {address!r}")
    return host, int(port)
