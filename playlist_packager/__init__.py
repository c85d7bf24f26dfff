"""
playlist-packager: video catalog, playlists and device content packages.

A remote object store is the single source of truth for video assets. This
package keeps a locally editable view of that catalog consistent with the
store, maintains playlists over it, and builds self-contained archives that
playback devices load.

Architecture:
    storage/    - Object store capability (filesystem and in-memory
                  backends) plus a rate limited HTTP fetcher
    catalog/    - Reconciles store listings with local edits, tracks
                  orphaned assets, ingests new videos
    playlists/  - Ordered playlists with referential integrity against
                  the catalog
    packages/   - Package builder and loader, archive layout, sidecar
                  metadata cache, mood/category policy
    media/      - Duration probing and thumbnail generation
    core/       - Exceptions and the event bus
    config/     - Settings from YAML and environment variables
    utils/      - Logging and small helpers
    services.py - Wires all of the above from settings
    main.py     - Command-line interface

Usage:
    Command Line:
        playlist-packager videos list
        playlist-packager playlists create "Friday Show"
        playlist-packager packages publish "Friday Show" --playlist <id>
        playlist-packager packages list

    Python API:
        from playlist_packager import create_services

        services = create_services()
        await services.catalog.refresh()
        result = await services.builder.publish(
            "Friday Show", services.catalog.videos, services.playlists.list()
        )

Dependencies:
    - aiohttp, asyncio-throttle: Fetching media by public URL
    - mutagen, ffmpeg-python, Pillow: Probing and thumbnails
    - rapidfuzz: Package search
    - click: CLI framework
    - colorama, tqdm: Console output and progress bars
    - pyyaml, python-dotenv: Configuration
"""

__version__ = "0.3.0"
__author__ = "playlist-packager"
__license__ = "MIT"

from .core.exceptions import (
    PackagerError,
    ConfigurationError,
    StoreError,
    NotFoundError,
    TransportError,
    IntegrityError,
    ArchiveError,
)
from .services import Services, create_services

__all__ = [
    "__version__",
    "Services",
    "create_services",
    "PackagerError",
    "ConfigurationError",
    "StoreError",
    "NotFoundError",
    "TransportError",
    "IntegrityError",
    "ArchiveError",
]
