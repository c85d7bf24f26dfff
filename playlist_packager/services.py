"""
Component wiring

There is no global catalog: ``create_services`` builds one reconciler around
one store and hands the same instance to every component that needs it.
"""

import functools
from dataclasses import dataclass
from typing import Optional

from .catalog import CatalogReconciler, CatalogState, VideoIngestor
from .config.settings import Settings, get_settings
from .core.events import EventBus
from .packages import PackageBuilder, PackageLoader, PackageMetadataCache
from .playlists import PlaylistStore
from .storage import MediaFetcher, ObjectStore, create_store
from .utils.logger import get_logger


@dataclass
class Services:
    settings: Settings
    store: ObjectStore
    bus: EventBus
    catalog: CatalogReconciler
    playlists: PlaylistStore
    sidecar: PackageMetadataCache
    builder: PackageBuilder
    loader: PackageLoader
    ingestor: VideoIngestor

    async def close(self) -> None:
        self.playlists.close()
        await self.store.close()


def create_services(settings: Optional[Settings] = None, store: Optional[ObjectStore] = None) -> Services:
    """
    Build every component from ``settings``

    Args:
        settings: Loaded settings, the shared instance when omitted
        store: Store to use instead of the configured one

    Raises:
        ConfigurationError: The configured store cannot be created
    """
    settings = settings or get_settings()
    logger = get_logger(__name__)

    store = store or create_store(settings)
    bus = EventBus()
    storage = settings.storage

    catalog = CatalogReconciler(
        store,
        state=CatalogState(settings.get_catalog_state_path()),
        bus=bus,
        video_prefix=storage.video_prefix,
        thumbnail_prefix=storage.thumbnail_prefix,
        list_max_keys=storage.list_max_keys,
        retry_attempts=settings.catalog.delete_retry_attempts,
        retry_base_delay=settings.catalog.delete_retry_base_delay,
    )
    playlists = PlaylistStore(catalog, path=settings.get_playlists_state_path())

    sidecar = PackageMetadataCache(store, archive_extension=settings.packages.archive_extension)
    builder = PackageBuilder(
        store,
        sidecar,
        package_prefix=storage.package_prefix,
        archive_extension=settings.packages.archive_extension,
        compression_level=settings.packages.compression_level,
        include_default_playlist=settings.packages.include_default_playlist,
        fetcher_factory=functools.partial(
            MediaFetcher,
            timeout=settings.network.request_timeout,
            rate_limit=settings.network.rate_limit,
            user_agent=settings.network.user_agent,
        ),
        thumbnail_width=settings.media.thumbnail_width,
        thumbnail_quality=settings.media.thumbnail_quality,
    )
    loader = PackageLoader(
        store,
        sidecar,
        package_prefix=storage.package_prefix,
        archive_extension=settings.packages.archive_extension,
        import_name_suffix=settings.packages.import_name_suffix,
        search_threshold=settings.packages.search_threshold,
        list_max_keys=storage.list_max_keys,
    )
    ingestor = VideoIngestor(
        catalog,
        thumbnail_width=settings.media.thumbnail_width,
        thumbnail_time_offset=settings.media.thumbnail_time_offset,
        thumbnail_quality=settings.media.thumbnail_quality,
    )

    logger.debug(f"Services ready on {store!r}")
    return Services(
        settings=settings,
        store=store,
        bus=bus,
        catalog=catalog,
        playlists=playlists,
        sidecar=sidecar,
        builder=builder,
        loader=loader,
        ingestor=ingestor,
    )
