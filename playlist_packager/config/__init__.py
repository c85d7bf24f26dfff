"""
Configuration package for Playlist-Packager

Exposes the settings loader. Settings are read from YAML, overridden by
environment variables and shared through ``get_settings()``:

    from playlist_packager.config import get_settings

    settings = get_settings()
    print(settings.storage.bucket_name)
"""

from .settings import get_settings, reload_settings, Settings

__all__ = [
    'get_settings',      # Shared settings instance, loaded on first use
    'reload_settings',   # Re-read settings from files and environment
    'Settings',          # Settings class for direct instantiation (tests, tooling)
]
