"""
Configuration management for Playlist-Packager

This module handles loading, validation, and management of application settings
from YAML files and environment variables. Settings are grouped into logical
sections using dataclasses:
- Object store location and key prefixes
- Catalog state persistence and delete retry policy
- Playlist persistence
- Package archive layout and import behaviour
- Thumbnail generation
- Network and logging options

Credentials-like values (bucket names, store roots) can be supplied through
environment variables so that the YAML file can be shared between machines.
"""

import os
import yaml
from pathlib import Path
from typing import Dict, Any, List, Optional
from dataclasses import dataclass, asdict
from dotenv import load_dotenv

# Load environment variables from .env file if present
load_dotenv()


VALID_BACKENDS = ("filesystem", "memory")
VALID_ARCHIVE_EXTENSIONS = ("zip",)


@dataclass
class StorageConfig:
    """
    Object store settings

    Describes where the canonical video set lives and how keys are laid out.
    The ``filesystem`` backend keeps a bucket directory under
    ``root_directory``; ``memory`` keeps everything in-process and is meant
    for dry runs.
    """
    backend: str = "filesystem"
    root_directory: str = ""
    bucket_name: str = ""
    public_base_url: str = ""
    video_prefix: str = "videos/"
    thumbnail_prefix: str = "thumbnails/"
    package_prefix: str = "playlists/"
    list_max_keys: int = 1000


@dataclass
class CatalogConfig:
    """
    Catalog reconciliation settings

    The state file holds the local edit overlay and the orphan list. Delete
    retries back off exponentially starting at ``delete_retry_base_delay``.
    """
    state_file: str = "~/.playlist-packager/catalog-state.json"
    delete_retry_attempts: int = 3
    delete_retry_base_delay: float = 2.0


@dataclass
class PlaylistsConfig:
    """Local playlist persistence"""
    state_file: str = "~/.playlist-packager/playlists.json"


@dataclass
class PackagesConfig:
    """
    Content package build and import settings

    Controls the archive format, whether the catch-all default playlist is
    written into every package, and how imported playlists are named.
    """
    archive_extension: str = "zip"
    compression_level: int = 6
    include_default_playlist: bool = True
    import_name_suffix: str = " (imported)"
    search_threshold: int = 70


@dataclass
class MediaConfig:
    """
    Thumbnail generation settings used during ingestion
    """
    thumbnail_width: int = 150
    thumbnail_time_offset: float = 1.0  # seconds into the clip
    thumbnail_quality: int = 80


@dataclass
class NetworkConfig:
    """
    HTTP settings for fetching media through public URLs
    """
    user_agent: str = "Playlist-Packager/0.3"
    request_timeout: int = 30
    rate_limit: int = 5  # requests per second


@dataclass
class LoggingConfig:
    """
    Logging configuration and output settings

    Controls log level, optional rotating log file and console formatting.
    """
    level: str = "INFO"
    file: str = ""
    max_size: str = "10MB"
    backup_count: int = 3
    console_output: bool = True
    colored_output: bool = True


class Settings:
    """
    Main settings class that manages all configuration

    Loads the first configuration file found, overrides it with environment
    variables and makes sure the directories holding local state exist.
    """

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize settings from config file or environment variables

        Args:
            config_path: Path to custom config file, if None uses default locations
        """
        self.config_path = config_path
        self.config_dir = Path.home() / ".playlist-packager"
        self.loaded_from: Optional[Path] = None

        self.storage = StorageConfig()
        self.catalog = CatalogConfig()
        self.playlists = PlaylistsConfig()
        self.packages = PackagesConfig()
        self.media = MediaConfig()
        self.network = NetworkConfig()
        self.logging = LoggingConfig()

        self._load_config()
        self._load_environment_variables()
        self._create_directories()

    def _sections(self) -> Dict[str, Any]:
        return {
            'storage': self.storage,
            'catalog': self.catalog,
            'playlists': self.playlists,
            'packages': self.packages,
            'media': self.media,
            'network': self.network,
            'logging': self.logging,
        }

    def _load_config(self) -> None:
        """
        Load configuration from YAML file

        Searches for configuration files in order of precedence; the first
        existing file wins.
        """
        config_paths = [
            self.config_path,
            self.config_dir / "config.yaml",
            Path("config/config.yaml"),
            Path("config.yaml")
        ]

        config_data = {}
        for path in config_paths:
            if path and Path(path).exists():
                try:
                    with open(path, 'r', encoding='utf-8') as f:
                        config_data = yaml.safe_load(f) or {}
                    self.loaded_from = Path(path)
                    break
                except (OSError, yaml.YAMLError) as e:
                    print(f"Warning: Failed to load config from {path}: {e}")

        self._apply_config(config_data)

    def _apply_config(self, config_data: Dict[str, Any]) -> None:
        """
        Apply configuration data to dataclass instances

        Only keys that exist on the matching dataclass are applied; unknown
        sections and keys are ignored.

        Args:
            config_data: Dictionary containing configuration sections
        """
        config_mapping = self._sections()

        for section_name, section_data in config_data.items():
            if section_name in config_mapping and isinstance(section_data, dict):
                config_obj = config_mapping[section_name]
                for key, value in section_data.items():
                    if hasattr(config_obj, key):
                        setattr(config_obj, key, value)

    def _load_environment_variables(self) -> None:
        """
        Override file-based configuration from environment variables
        """
        env_mappings = {
            'PACKAGER_STORAGE_BACKEND': lambda v: setattr(self.storage, 'backend', v),
            'PACKAGER_STORAGE_ROOT': lambda v: setattr(self.storage, 'root_directory', v),
            'PACKAGER_BUCKET_NAME': lambda v: setattr(self.storage, 'bucket_name', v),
            'PACKAGER_PUBLIC_BASE_URL': lambda v: setattr(self.storage, 'public_base_url', v),
            'PACKAGER_LOG_LEVEL': lambda v: setattr(self.logging, 'level', v.upper()),
        }

        for env_var, setter in env_mappings.items():
            value = os.getenv(env_var)
            if value:
                setter(value)

    def _create_directories(self) -> None:
        """
        Create the directories that hold local state files

        Permission problems are reported but do not abort start-up; the
        stores will surface the error again when they try to write.
        """
        directories = [
            self.get_catalog_state_path().parent,
            self.get_playlists_state_path().parent,
        ]

        for directory in directories:
            try:
                directory.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                print(f"Warning: Failed to create directory {directory}: {e}")

    def get_catalog_state_path(self) -> Path:
        """Expanded path of the catalog overlay/orphan state file"""
        return Path(self.catalog.state_file).expanduser()

    def get_playlists_state_path(self) -> Path:
        """Expanded path of the playlist state file"""
        return Path(self.playlists.state_file).expanduser()

    def get_storage_root(self) -> Path:
        """Expanded root directory of the filesystem store"""
        return Path(self.storage.root_directory).expanduser()

    def save_config(self, path: Optional[str] = None) -> Path:
        """
        Save current configuration to a YAML file

        Args:
            path: Custom path to save config, defaults to the user config directory

        Returns:
            Path the configuration was written to

        Raises:
            OSError: If the configuration cannot be written
        """
        target = Path(path) if path else self.config_dir / "config.yaml"

        config_data = {
            name: asdict(section) for name, section in self._sections().items()
        }

        target.parent.mkdir(parents=True, exist_ok=True)
        with open(target, 'w', encoding='utf-8') as f:
            yaml.safe_dump(config_data, f, default_flow_style=False, indent=2)
        return target

    def to_dict(self) -> Dict[str, Dict[str, Any]]:
        """Plain dictionary view of every section, used by ``config show``"""
        return {name: asdict(section) for name, section in self._sections().items()}

    def validate(self) -> List[str]:
        """
        Validate current configuration

        Returns:
            List of human readable problems, empty when the configuration is usable
        """
        errors = []

        if self.storage.backend not in VALID_BACKENDS:
            errors.append(f"Invalid storage backend: {self.storage.backend}")

        if self.storage.backend == "filesystem":
            if not self.storage.root_directory:
                errors.append("storage.root_directory is required for the filesystem backend")
            if not self.storage.bucket_name:
                errors.append("storage.bucket_name is required for the filesystem backend")

        for name in ('video_prefix', 'thumbnail_prefix', 'package_prefix'):
            prefix = getattr(self.storage, name)
            if not prefix or not prefix.endswith('/'):
                errors.append(f"storage.{name} must be a non-empty prefix ending in '/': {prefix!r}")

        if self.packages.archive_extension not in VALID_ARCHIVE_EXTENSIONS:
            errors.append(f"Unsupported archive extension: {self.packages.archive_extension}")

        if not 0 <= int(self.packages.compression_level) <= 9:
            errors.append(f"Compression level must be 0-9: {self.packages.compression_level}")

        if self.catalog.delete_retry_attempts < 1:
            errors.append("catalog.delete_retry_attempts must be at least 1")

        if not 1 <= int(self.media.thumbnail_quality) <= 95:
            errors.append(f"Thumbnail quality must be 1-95: {self.media.thumbnail_quality}")

        return errors

    def __str__(self) -> str:
        sections = [
            f"Store: {self.storage.backend}:{self.storage.bucket_name or '-'}",
            f"Packages: {self.storage.package_prefix}*.{self.packages.archive_extension}",
            f"Log level: {self.logging.level}",
        ]
        return f"Settings({', '.join(sections)})"


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get the shared settings instance, loading it on first use

    Returns:
        The shared Settings instance
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings(config_path: Optional[str] = None) -> Settings:
    """
    Reload settings from configuration files

    Args:
        config_path: Optional path to specific config file

    Returns:
        New Settings instance with reloaded configuration
    """
    global _settings
    _settings = Settings(config_path)
    return _settings
