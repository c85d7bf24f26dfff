"""
Content packages: export models, archive layout, the sidecar metadata
cache, and the builder and loader.
"""

from .models import (
    Mood,
    Category,
    IntegrityReport,
    ManifestEntry,
    VideoLibraryExport,
    PlaylistEntry,
    PlaylistExport,
    ContentPackage,
    PackageMetadata,
    PackageSummary,
    PackageStructure,
    BuildProgress,
    PublishResult,
    PackageDeleteResult,
    ImportResult,
    BackfillReport,
)
from .policy import MoodPolicy, KeywordMoodPolicy
from .archive import archive_key, package_name_from_key, playlist_filename
from .sidecar import PackageMetadataCache, sidecar_key_for
from .builder import PackageBuilder, validate_integrity, estimate_package_size
from .loader import PackageLoader

__all__ = [
    'Mood',
    'Category',
    'IntegrityReport',
    'ManifestEntry',
    'VideoLibraryExport',
    'PlaylistEntry',
    'PlaylistExport',
    'ContentPackage',
    'PackageMetadata',
    'PackageSummary',
    'PackageStructure',
    'BuildProgress',
    'PublishResult',
    'PackageDeleteResult',
    'ImportResult',
    'BackfillReport',
    'MoodPolicy',
    'KeywordMoodPolicy',
    'archive_key',
    'package_name_from_key',
    'playlist_filename',
    'PackageMetadataCache',
    'sidecar_key_for',
    'PackageBuilder',
    'validate_integrity',
    'estimate_package_size',
    'PackageLoader',
]
