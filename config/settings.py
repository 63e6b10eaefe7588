"""
Configuration management for the session manager.

This module provides centralized configuration loading and validation using Pydantic settings.
Secrets such as the Redis password are loaded from environment variables or .env files.
"""

import os
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from cache.config import CacheEngineConfig
from errors.exceptions import InvalidArgumentError


class Environment(str, Enum):
    """Supported deployment environments."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class CacheBackend(str, Enum):
    """Cache engines the application can be configured with."""
    REDIS = "redis"
    MEMORY = "memory"


class SerializerName(str, Enum):
    JSON = "json"
    PICKLE = "pickle"


def _detect_environment() -> Environment:
    """
    Detect the current environment from the ENVIRONMENT variable.

    Returns:
        Environment: The detected environment, defaults to DEVELOPMENT if not set.
    """
    env_value = os.environ.get("ENVIRONMENT", "development").lower().strip()
    try:
        return Environment(env_value)
    except ValueError:
        return Environment.DEVELOPMENT


def _get_env_files(environment: Environment) -> Tuple[str, ...]:
    """
    Get the list of .env files to load for the given environment.

    The base .env file is loaded first, then the environment-specific file
    overrides it.
    """
    return (".env", f".env.{environment.value}")


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Environment-specific configuration is supported through
    ``.env.development``, ``.env.staging`` and ``.env.production``; the
    ENVIRONMENT variable determines which file to load.
    """

    # Environment
    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Deployment environment (development, staging, production)"
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    otel_endpoint: Optional[str] = Field(
        default=None,
        description="OpenTelemetry collector endpoint URL"
    )
    otel_service_name: str = Field(
        default="session-manager",
        description="Service name for OpenTelemetry traces"
    )

    # Cache engine
    cache_backend: CacheBackend = Field(
        default=CacheBackend.REDIS,
        description="Cache engine holding session state: 'redis' or 'memory'"
    )
    cache_serializer: SerializerName = Field(
        default=SerializerName.JSON,
        description="Value codec used by the cache engine: 'json' or 'pickle'"
    )
    cache_compression: bool = Field(
        default=False,
        description="LZ4-compress serialized values of 1 KiB and more"
    )
    cache_namespace: Optional[str] = Field(
        default=None,
        description="Prefix applied to every cache key, for shared backends"
    )

    # Redis connection and pool
    redis_host: str = Field(default="localhost")
    redis_port: int = Field(default=6379, ge=1, le=65535)
    redis_database: int = Field(default=0, ge=0)
    redis_password: Optional[str] = Field(default=None)
    redis_timeout: int = Field(
        default=2000,
        ge=0,
        description="Socket timeout in milliseconds"
    )
    redis_max_total: int = Field(default=200, ge=1)
    redis_max_idle: int = Field(default=100, ge=0)
    redis_min_idle: int = Field(default=5, ge=0)
    redis_max_wait_millis: int = Field(default=10000, ge=0)
    redis_test_on_borrow: bool = Field(default=False)
    redis_test_on_return: bool = Field(default=False)
    redis_master_name: Optional[str] = Field(
        default=None,
        description="Sentinel master name (required with redis_sentinels)"
    )
    redis_sentinels: Optional[str] = Field(
        default=None,
        description="Semicolon-delimited sentinel addresses, e.g. 'h1:26379;h2:26379'"
    )
    redis_remove_retry_attempts: int = Field(default=5, ge=1)

    # Session
    session_cookie_name: str = Field(default="SESSIONID")
    session_cookie_domain: Optional[str] = Field(default=None)
    session_cookie_path: str = Field(default="/")
    session_cookie_secure: bool = Field(
        default=False,
        description="Only send the session cookie over HTTPS"
    )
    session_cache_key_prefix: str = Field(
        default="s.",
        description="Prefix of the session header and attribute cache keys"
    )
    session_max_inactive_interval: int = Field(
        default=8 * 60 * 60,
        description="Seconds of inactivity before a session expires (0 = never)"
    )
    session_log_events: bool = Field(
        default=True,
        description="Log session lifecycle and attribute events"
    )

    # Note: model_config is set dynamically via create_settings_for_environment()
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate that log_level is a valid logging level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v = v.strip().upper()
        if v not in valid_levels:
            raise ValueError(f"log_level must be one of: {', '.join(sorted(valid_levels))}")
        return v

    @field_validator("session_cookie_name")
    @classmethod
    def validate_session_cookie_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("session_cookie_name cannot be empty")
        if any(ch in v for ch in " ;,="):
            raise ValueError("session_cookie_name contains characters not allowed in a cookie name")
        return v

    @field_validator("session_cookie_path")
    @classmethod
    def validate_session_cookie_path(cls, v: str) -> str:
        v = v.strip()
        if not v.startswith("/"):
            raise ValueError("session_cookie_path must start with '/'")
        return v

    @field_validator("session_cache_key_prefix")
    @classmethod
    def validate_session_cache_key_prefix(cls, v: str) -> str:
        if not v:
            raise ValueError("session_cache_key_prefix cannot be empty")
        return v

    @field_validator("redis_password", "redis_master_name", "redis_sentinels", "cache_namespace", "otel_endpoint",
                     "session_cookie_domain")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            return None
        return v

    @model_validator(mode="after")
    def validate_cache_backend_config(self) -> "Settings":
        """Validate the cache backend choice against the environment."""
        if self.cache_backend == CacheBackend.MEMORY and self.environment == Environment.PRODUCTION:
            raise ValueError(
                "cache_backend 'memory' cannot share sessions between instances; "
                "use 'redis' in production"
            )
        if self.redis_sentinels and not self.redis_master_name:
            raise ValueError("redis_master_name is required when redis_sentinels is set")
        return self

    def cache_engine_config(self) -> CacheEngineConfig:
        """
        Render the Redis options as a cache engine configuration.

        Returns:
            CacheEngineConfig for ``CacheEngine.init``
        """
        options: Dict[str, Any] = {
            "host": self.redis_host,
            "port": self.redis_port,
            "database": self.redis_database,
            "password": self.redis_password,
            "timeout": self.redis_timeout,
            "maxTotal": self.redis_max_total,
            "maxIdle": self.redis_max_idle,
            "minIdle": self.redis_min_idle,
            "maxWaitMillis": self.redis_max_wait_millis,
            "testOnBorrow": self.redis_test_on_borrow,
            "testOnReturn": self.redis_test_on_return,
            "masterName": self.redis_master_name,
            "sentinels": self.redis_sentinels,
            "removeRetryAttempts": self.redis_remove_retry_attempts,
        }
        return CacheEngineConfig.load(options)


class ConfigurationError(Exception):
    """Exception raised when configuration validation fails."""

    def __init__(self, message: str, missing_fields: Optional[List[str]] = None,
                 invalid_fields: Optional[dict] = None):
        self.message = message
        self.missing_fields = missing_fields or []
        self.invalid_fields = invalid_fields or {}
        super().__init__(self.format_error_message())

    def format_error_message(self) -> str:
        """Format a descriptive error message listing all issues."""
        parts = [self.message]

        if self.missing_fields:
            parts.append(f"\nMissing required fields: {', '.join(self.missing_fields)}")

        if self.invalid_fields:
            invalid_parts = [f"  - {field}: {error}" for field, error in self.invalid_fields.items()]
            parts.append("\nInvalid field values:\n" + "\n".join(invalid_parts))

        return "".join(parts)


def create_settings_for_environment(environment: Optional[Environment] = None) -> Settings:
    """
    Factory function to create Settings for a specific environment.

    Args:
        environment: Optional environment override. If not provided, detected from
                    ENVIRONMENT variable.

    Returns:
        Settings: Validated settings for the specified environment.

    Raises:
        ConfigurationError: If required settings are missing or invalid.
    """
    if environment is None:
        environment = _detect_environment()

    env_files = _get_env_files(environment)
    existing_env_files = [env_file for env_file in env_files if Path(env_file).exists()]

    try:
        # Dynamic subclass so each call picks up its own env files
        class EnvironmentSettings(Settings):
            model_config = SettingsConfigDict(
                env_file=tuple(existing_env_files) or None,
                env_file_encoding="utf-8",
                case_sensitive=False,
                extra="ignore"
            )

        return EnvironmentSettings(environment=environment)
    except Exception as e:
        missing_fields = []
        invalid_fields = {}

        # Extract field-level errors from Pydantic ValidationError
        if hasattr(e, "errors"):
            for error in e.errors():
                field_name = ".".join(str(loc) for loc in error.get("loc", []))
                error_type = error.get("type", "")
                error_msg = error.get("msg", str(error))

                if error_type == "missing":
                    missing_fields.append(field_name)
                else:
                    invalid_fields[field_name or "settings"] = error_msg

        raise ConfigurationError(
            f"Failed to load configuration for environment '{environment.value}'",
            missing_fields=missing_fields,
            invalid_fields=invalid_fields
        ) from e


# Global settings cache
_settings_cache: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get the application settings singleton.

    Settings are loaded once and cached for subsequent calls.

    Raises:
        ConfigurationError: If required settings are missing or invalid.
    """
    global _settings_cache

    if _settings_cache is None:
        _settings_cache = create_settings_for_environment()

    return _settings_cache


def clear_settings_cache() -> None:
    """
    Clear the settings cache.

    This is primarily useful for testing to allow reloading settings
    with different environment variables.
    """
    global _settings_cache
    _settings_cache = None


def validate_startup(settings: Optional[Settings] = None) -> None:
    """
    Validate settings at application startup, before accepting requests.

    Raises:
        ConfigurationError: If any settings are invalid.
    """
    settings = settings or get_settings()
    validation_errors = {}

    if settings.cache_backend == CacheBackend.REDIS:
        try:
            settings.cache_engine_config()
        except InvalidArgumentError as e:
            for field, error in (e.details or {}).get("invalid_fields", {}).items():
                validation_errors[f"redis.{field}"] = error

    if settings.environment == Environment.PRODUCTION:
        if not settings.session_cookie_secure:
            validation_errors["session_cookie_secure"] = (
                "Production environment requires secure session cookies"
            )
        if settings.cache_serializer == SerializerName.PICKLE:
            validation_errors["cache_serializer"] = (
                "Pickle must not be used in production; cached bytes would be executable"
            )

    if validation_errors:
        raise ConfigurationError(
            "Configuration validation failed during startup",
            invalid_fields=validation_errors
        )
