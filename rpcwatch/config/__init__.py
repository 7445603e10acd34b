"""Configuration loading for rpcwatch.

Usage:
    from rpcwatch.config import get_settings

    settings = get_settings()
    backend = settings.observability.metrics.backend
"""

from functools import lru_cache

from rpcwatch.config.settings import Settings


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the singleton settings instance.

    The result is cached for the lifetime of the process.
    Call `get_settings.cache_clear()` to reload configuration.
    """
    return Settings()


def reload_settings() -> Settings:
    """Clear the settings cache and reload configuration."""
    get_settings.cache_clear()
    return get_settings()


__all__ = ["get_settings", "reload_settings", "Settings"]
