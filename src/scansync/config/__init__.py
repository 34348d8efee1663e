"""scansync configuration module.

Provides centralized configuration management using pydantic-settings.

Usage:
    from scansync.config import get_settings

    settings = get_settings()
    print(settings.server_url)
    print(settings.load_symbology_aliases())
"""

from functools import lru_cache

from scansync.config.settings import Settings

__all__ = ["Settings", "get_settings"]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance.

    To reload settings, call get_settings.cache_clear() first.

    Returns:
        Settings instance loaded from environment variables.
    """
    return Settings()
