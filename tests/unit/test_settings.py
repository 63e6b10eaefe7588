"""
Unit tests for the configuration settings module.

Tests cover:
- Defaults and environment variable loading
- Invalid field format validation
- Environment-specific validation
- Rendering of the cache engine configuration
"""

import os
from unittest.mock import patch

import pytest

from cache.config import CacheEngineConfig
from config.settings import (
    CacheBackend,
    ConfigurationError,
    Environment,
    SerializerName,
    Settings,
    clear_settings_cache,
    create_settings_for_environment,
    get_settings,
    validate_startup,
)


@pytest.fixture(autouse=True)
def reset_settings_cache():
    clear_settings_cache()
    yield
    clear_settings_cache()


class TestSettings:
    """Tests for the Settings class."""

    def test_default_values_are_applied(self):
        with patch.dict(os.environ, {}, clear=True):
            settings = Settings()

        assert settings.environment == Environment.DEVELOPMENT
        assert settings.log_level == "INFO"
        assert settings.otel_endpoint is None
        assert settings.otel_service_name == "session-manager"
        assert settings.cache_backend == CacheBackend.REDIS
        assert settings.cache_serializer == SerializerName.JSON
        assert settings.cache_compression is False
        assert settings.redis_host == "localhost"
        assert settings.redis_port == 6379
        assert settings.session_cookie_name == "SESSIONID"
        assert settings.session_cookie_path == "/"
        assert settings.session_cache_key_prefix == "s."
        assert settings.session_max_inactive_interval == 8 * 60 * 60

    def test_environment_variables_are_loaded(self):
        env_vars = {
            "CACHE_BACKEND": "memory",
            "REDIS_PORT": "6380",
            "REDIS_TEST_ON_BORROW": "true",
            "SESSION_COOKIE_NAME": "JSESSIONID",
            "SESSION_MAX_INACTIVE_INTERVAL": "0",
        }
        with patch.dict(os.environ, env_vars, clear=True):
            settings = Settings()

        assert settings.cache_backend == CacheBackend.MEMORY
        assert settings.redis_port == 6380
        assert settings.redis_test_on_borrow is True
        assert settings.session_cookie_name == "JSESSIONID"
        assert settings.session_max_inactive_interval == 0

    def test_invalid_log_level_raises_error(self):
        with patch.dict(os.environ, {"LOG_LEVEL": "INVALID_LEVEL"}, clear=True):
            with pytest.raises(Exception) as exc_info:
                Settings()

        assert "log_level" in str(exc_info.value).lower()

    def test_log_level_is_normalized(self):
        with patch.dict(os.environ, {"LOG_LEVEL": " debug "}, clear=True):
            assert Settings().log_level == "DEBUG"

    def test_invalid_cache_backend_raises_error(self):
        with patch.dict(os.environ, {"CACHE_BACKEND": "memcached"}, clear=True):
            with pytest.raises(Exception) as exc_info:
                Settings()

        assert "cache_backend" in str(exc_info.value).lower()

    @pytest.mark.parametrize("name", ["", "  ", "SESSION ID", "a;b", "a=b"])
    def test_invalid_cookie_name_raises_error(self, name):
        with patch.dict(os.environ, {"SESSION_COOKIE_NAME": name}, clear=True):
            with pytest.raises(Exception):
                Settings()

    def test_cookie_path_must_be_absolute(self):
        with patch.dict(os.environ, {"SESSION_COOKIE_PATH": "app"}, clear=True):
            with pytest.raises(Exception) as exc_info:
                Settings()

        assert "session_cookie_path" in str(exc_info.value).lower()

    def test_memory_backend_rejected_in_production(self):
        env_vars = {"ENVIRONMENT": "production", "CACHE_BACKEND": "memory"}
        with patch.dict(os.environ, env_vars, clear=True):
            with pytest.raises(Exception) as exc_info:
                Settings()

        assert "memory" in str(exc_info.value).lower()

    def test_sentinels_require_master_name(self):
        with patch.dict(os.environ, {"REDIS_SENTINELS": "h1:26379;h2:26379"}, clear=True):
            with pytest.raises(Exception) as exc_info:
                Settings()

        assert "redis_master_name" in str(exc_info.value).lower()

    def test_blank_optional_strings_become_none(self):
        env_vars = {"REDIS_PASSWORD": "", "CACHE_NAMESPACE": "  ", "OTEL_ENDPOINT": " "}
        with patch.dict(os.environ, env_vars, clear=True):
            settings = Settings()

        assert settings.redis_password is None
        assert settings.cache_namespace is None
        assert settings.otel_endpoint is None


class TestCacheEngineConfig:
    """Tests for Settings.cache_engine_config."""

    def test_renders_redis_options(self):
        env_vars = {
            "REDIS_HOST": "cache.internal",
            "REDIS_PORT": "6380",
            "REDIS_DATABASE": "2",
            "REDIS_PASSWORD": "secret",
            "REDIS_MAX_TOTAL": "50",
            "REDIS_REMOVE_RETRY_ATTEMPTS": "3",
        }
        with patch.dict(os.environ, env_vars, clear=True):
            config = Settings().cache_engine_config()

        assert isinstance(config, CacheEngineConfig)
        assert config.host == "cache.internal"
        assert config.port == 6380
        assert config.database == 2
        assert config.password == "secret"
        assert config.max_total == 50
        assert config.remove_retry_attempts == 3
        assert config.sentinel_mode is False

    def test_renders_sentinel_options(self):
        env_vars = {
            "REDIS_SENTINELS": "h1:26379;h2:26380;",
            "REDIS_MASTER_NAME": "mymaster",
        }
        with patch.dict(os.environ, env_vars, clear=True):
            config = Settings().cache_engine_config()

        assert config.sentinel_mode is True
        assert config.master_name == "mymaster"
        assert config.sentinel_addresses == [("h1", 26379), ("h2", 26380)]


class TestConfigurationError:
    """Tests for ConfigurationError formatting."""

    def test_error_message_lists_missing_and_invalid_fields(self):
        error = ConfigurationError(
            "Configuration failed",
            missing_fields=["redis_host"],
            invalid_fields={"redis_port": "out of range"},
        )

        message = str(error)
        assert "Configuration failed" in message
        assert "redis_host" in message
        assert "redis_port: out of range" in message


class TestCreateSettingsForEnvironment:
    """Tests for the environment-aware factory."""

    def test_explicit_environment_is_used(self):
        with patch.dict(os.environ, {}, clear=True):
            settings = create_settings_for_environment(Environment.STAGING)

        assert settings.environment == Environment.STAGING

    def test_invalid_values_raise_configuration_error(self):
        with patch.dict(os.environ, {"REDIS_PORT": "not-a-port"}, clear=True):
            with pytest.raises(ConfigurationError) as exc_info:
                create_settings_for_environment(Environment.DEVELOPMENT)

        assert "redis_port" in exc_info.value.invalid_fields

    def test_get_settings_is_cached(self):
        with patch.dict(os.environ, {}, clear=True):
            first = get_settings()
            second = get_settings()

        assert first is second


class TestValidateStartup:
    """Tests for the startup validation."""

    def test_development_defaults_pass(self):
        with patch.dict(os.environ, {}, clear=True):
            validate_startup(Settings())

    def test_production_requires_secure_cookies(self):
        env_vars = {"ENVIRONMENT": "production"}
        with patch.dict(os.environ, env_vars, clear=True):
            settings = Settings()

        with pytest.raises(ConfigurationError) as exc_info:
            validate_startup(settings)

        assert "session_cookie_secure" in exc_info.value.invalid_fields

    def test_production_rejects_pickle(self):
        env_vars = {
            "ENVIRONMENT": "production",
            "SESSION_COOKIE_SECURE": "true",
            "CACHE_SERIALIZER": "pickle",
        }
        with patch.dict(os.environ, env_vars, clear=True):
            settings = Settings()

        with pytest.raises(ConfigurationError) as exc_info:
            validate_startup(settings)

        assert "cache_serializer" in exc_info.value.invalid_fields

    def test_production_with_secure_cookies_passes(self):
        env_vars = {"ENVIRONMENT": "production", "SESSION_COOKIE_SECURE": "true"}
        with patch.dict(os.environ, env_vars, clear=True):
            validate_startup(Settings())

    def test_invalid_sentinel_address_is_reported(self):
        env_vars = {"REDIS_SENTINELS": "no-port-here", "REDIS_MASTER_NAME": "mymaster"}
        with patch.dict(os.environ, env_vars, clear=True):
            settings = Settings()

        with pytest.raises(ConfigurationError) as exc_info:
            validate_startup(settings)

        assert any(key.startswith("redis.") for key in exc_info.value.invalid_fields)
