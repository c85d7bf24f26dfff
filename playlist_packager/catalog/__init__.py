"""
Video catalog: store-derived records, the local edit overlay, orphan
tracking and ingestion of new files.
"""

from .models import (
    Video,
    StorageRef,
    OrphanRecord,
    DeleteResult,
    RetryResult,
    OVERRIDE_FIELDS,
    video_id_for_key,
    thumbnail_key_for,
)
from .state import CatalogState
from .reconciler import CatalogReconciler
from .ingest import VideoIngestor, IngestResult

__all__ = [
    'Video',
    'StorageRef',
    'OrphanRecord',
    'DeleteResult',
    'RetryResult',
    'OVERRIDE_FIELDS',
    'video_id_for_key',
    'thumbnail_key_for',
    'CatalogState',
    'CatalogReconciler',
    'VideoIngestor',
    'IngestResult',
]
