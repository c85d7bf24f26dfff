from .exceptions import (
    PackagerError,
    ConfigurationError,
    StoreError,
    NotFoundError,
    TransportError,
    IntegrityError,
    ArchiveError,
)
from .events import (
    EventBus,
    Subscription,
    CATALOG_REFRESHED,
    CATALOG_CHANGED,
    VIDEO_REMOVED,
)

__all__ = [
    'PackagerError',
    'ConfigurationError',
    'StoreError',
    'NotFoundError',
    'TransportError',
    'IntegrityError',
    'ArchiveError',
    'EventBus',
    'Subscription',
    'CATALOG_REFRESHED',
    'CATALOG_CHANGED',
    'VIDEO_REMOVED',
]
