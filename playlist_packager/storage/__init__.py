"""
Object store backends and the factory that picks one from settings.
"""

from ..core.exceptions import ConfigurationError
from .base import ObjectInfo, ObjectStore
from .fetcher import MediaFetcher
from .filesystem import FilesystemObjectStore
from .memory import MemoryObjectStore


def create_store(settings) -> ObjectStore:
    """
    Build the object store described by ``settings.storage``

    Raises:
        ConfigurationError: Unknown backend, or a filesystem backend without
            a root directory or bucket name. Never retried.
    """
    storage = settings.storage

    if storage.backend == "memory":
        return MemoryObjectStore(bucket=storage.bucket_name or "memory", public_base_url=storage.public_base_url)

    if storage.backend == "filesystem":
        missing = [
            f"storage.{name}" for name in ('root_directory', 'bucket_name')
            if not getattr(storage, name)
        ]
        if missing:
            raise ConfigurationError("Object store is not configured", details={'missing': missing})
        return FilesystemObjectStore(
            root=settings.get_storage_root(),
            bucket=storage.bucket_name,
            public_base_url=storage.public_base_url,
        )

    raise ConfigurationError(
        f"Unknown storage backend: {storage.backend}",
        details={'backend': storage.backend, 'supported': ['filesystem', 'memory']},
    )


__all__ = [
    'ObjectInfo',
    'ObjectStore',
    'MemoryObjectStore',
    'FilesystemObjectStore',
    'MediaFetcher',
    'create_store',
]
