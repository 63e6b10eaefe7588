# Configuration module for the session manager
from .settings import (
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

__all__ = [
    "CacheBackend",
    "ConfigurationError",
    "Environment",
    "SerializerName",
    "Settings",
    "clear_settings_cache",
    "create_settings_for_environment",
    "get_settings",
    "validate_startup",
]
