"""
Content package models

Two groups of types live here:

Wire format (what playback devices read inside the archive):
    VideoLibraryExport  -> content/packages/metadata.json
    PlaylistExport      -> content/playlists/<slug>.json

Both serialize to the device's snake_case JSON and are parsed back with
explicit validation, so nothing downstream touches raw dictionaries.

Bookkeeping (what the tools report): the sidecar PackageMetadata, package
summaries and structures, and the result objects of publish, delete, import
and backfill.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from ..core.exceptions import ArchiveError
from ..playlists.models import Playlist


class Mood(str, Enum):
    AMBIENT = "ambient"
    HIGH_ENERGY = "high-energy"
    PSYCHEDELIC = "psychedelic"


class Category(str, Enum):
    BACKGROUND_VISUALS = "background_visuals"
    PERFORMANCE_VISUALS = "performance_visuals"
    AMBIENT_VISUALS = "ambient_visuals"


VALID_MOODS = frozenset(m.value for m in Mood)
VALID_CATEGORIES = frozenset(c.value for c in Category)

DEFAULT_RESOLUTION = "1920x1080"


def _require(data: Dict[str, Any], key: str, kind, where: str):
    value = data.get(key)
    if not isinstance(value, kind):
        raise ArchiveError(
            f"{where}: field '{key}' is missing or has the wrong type",
            details={'field': key, 'where': where},
        )
    return value


def _int(data: Dict[str, Any], key: str, where: str, default: int = 0) -> int:
    """Whole-number field; null or empty counts as zero"""
    value = data.get(key, default)
    if value is None or value == "":
        return 0
    try:
        if isinstance(value, bool):
            raise TypeError(value)
        return int(value)
    except (TypeError, ValueError, OverflowError) as e:
        raise ArchiveError(
            f"{where}: field '{key}' is not a number",
            details={'field': key, 'where': where},
        ) from e


# ==============================================================================
# Integrity
# ==============================================================================

@dataclass(frozen=True)
class IntegrityReport:
    """Partition of a playlist's order into resolvable and dangling ids"""
    valid_ids: List[str]
    missing_ids: List[str]

    @property
    def valid(self) -> bool:
        return not self.missing_ids


# ==============================================================================
# Wire format
# ==============================================================================

@dataclass(frozen=True)
class ManifestEntry:
    title: str
    filename: str
    duration_seconds: int
    duration_formatted: str
    thumbnail: str
    mood: str
    resolution: str
    category: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'title': self.title,
            'filename': self.filename,
            'duration_seconds': self.duration_seconds,
            'duration_formatted': self.duration_formatted,
            'thumbnail': self.thumbnail,
            'mood': self.mood,
            'resolution': self.resolution,
            'category': self.category,
        }

    @classmethod
    def from_dict(cls, filename: str, data: Dict[str, Any]) -> "ManifestEntry":
        where = f"manifest entry {filename}"
        return cls(
            title=str(data.get('title', filename)),
            filename=str(data.get('filename', filename)),
            duration_seconds=_int(data, 'duration_seconds', where),
            duration_formatted=str(data.get('duration_formatted', '00:00:00')),
            thumbnail=str(data.get('thumbnail', '')),
            mood=_require(data, 'mood', str, where),
            resolution=str(data.get('resolution', DEFAULT_RESOLUTION)),
            category=_require(data, 'category', str, where),
        )


@dataclass(frozen=True)
class VideoLibraryExport:
    """The package manifest"""
    last_updated: str
    total_videos: int
    total_duration_seconds: int
    videos: Dict[str, ManifestEntry]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'video_library': {
                'last_updated': self.last_updated,
                'total_videos': self.total_videos,
                'total_duration_seconds': self.total_duration_seconds,
                'videos': {name: entry.to_dict() for name, entry in self.videos.items()},
            }
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VideoLibraryExport":
        library = _require(data, 'video_library', dict, "metadata.json")
        videos = _require(library, 'videos', dict, "metadata.json")
        entries = {}
        for name, entry in videos.items():
            if not isinstance(entry, dict):
                raise ArchiveError(f"metadata.json: entry for {name} is not an object", details={'filename': name})
            entries[name] = ManifestEntry.from_dict(name, entry)
        return cls(
            last_updated=str(library.get('last_updated', '')),
            total_videos=_int(library, 'total_videos', "metadata.json", default=len(entries)),
            total_duration_seconds=_int(library, 'total_duration_seconds', "metadata.json"),
            videos=entries,
        )


@dataclass(frozen=True)
class PlaylistEntry:
    filename: str
    title: str
    duration_seconds: int
    duration_formatted: str
    thumbnail: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'filename': self.filename,
            'title': self.title,
            'duration_seconds': self.duration_seconds,
            'duration_formatted': self.duration_formatted,
            'thumbnail': self.thumbnail,
        }


@dataclass(frozen=True)
class PlaylistExport:
    """One playlist file inside the archive"""
    name: str
    description: str
    mood: str
    loop: bool
    videos: List[PlaylistEntry]

    @property
    def filenames(self) -> List[str]:
        return [entry.filename for entry in self.videos]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'description': self.description,
            'mood': self.mood,
            'loop': self.loop,
            'videos': [entry.to_dict() for entry in self.videos],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], where: str = "playlist") -> "PlaylistExport":
        name = _require(data, 'name', str, where)
        raw_videos = _require(data, 'videos', list, where)
        entries = []
        for raw in raw_videos:
            if not isinstance(raw, dict) or not isinstance(raw.get('filename'), str):
                raise ArchiveError(f"{where}: video entry without a filename", details={'playlist': name})
            entries.append(PlaylistEntry(
                filename=raw['filename'],
                title=str(raw.get('title', raw['filename'])),
                duration_seconds=_int(raw, 'duration_seconds', where),
                duration_formatted=str(raw.get('duration_formatted', '00:00:00')),
                thumbnail=str(raw.get('thumbnail', '')),
            ))
        return cls(
            name=name,
            description=str(data.get('description', '')),
            mood=str(data.get('mood', Mood.AMBIENT.value)),
            loop=bool(data.get('loop', True)),
            videos=entries,
        )


@dataclass(frozen=True)
class ContentPackage:
    """
    An immutable package ready to be validated and serialized

    Attributes:
        name: Package display name
        created_at: Build time, also used for archive entry timestamps
        manifest: Manifest covering every packaged video
        playlist_files: Playlist files keyed by their file name
        dropped_ids: Dangling video ids removed per source playlist name
    """
    name: str
    created_at: datetime
    manifest: VideoLibraryExport
    playlist_files: Dict[str, PlaylistExport]
    dropped_ids: Dict[str, List[str]] = field(default_factory=dict)

    def referenced_filenames(self) -> List[str]:
        """Distinct filenames referenced by playlist files, first-seen order"""
        seen: Dict[str, None] = {}
        for playlist in self.playlist_files.values():
            for filename in playlist.filenames:
                seen.setdefault(filename, None)
        return list(seen)


# ==============================================================================
# Sidecar and listing
# ==============================================================================

SIDECAR_FORMAT_VERSION = "2.0"


@dataclass(frozen=True)
class PackageMetadata:
    """Summary stored next to each archive (``<archive>.meta.json``)"""
    package_name: str
    filename: str
    playlist_count: int
    video_count: int
    playlist_names: List[str]
    total_size_bytes: int
    created_at: str
    format_version: str = SIDECAR_FORMAT_VERSION

    def to_dict(self) -> Dict[str, Any]:
        return {
            'packageName': self.package_name,
            'filename': self.filename,
            'playlistCount': self.playlist_count,
            'videoCount': self.video_count,
            'playlistNames': list(self.playlist_names),
            'totalSizeBytes': self.total_size_bytes,
            'createdAt': self.created_at,
            'formatVersion': self.format_version,
        }


@dataclass
class PackageSummary:
    """
    One archive as shown by ``list_packages``

    ``sidecar`` is ``cached`` when the sidecar was read, ``generated`` when it
    had to be rebuilt from the archive and ``unavailable`` when neither worked.
    """
    archive_key: str
    filename: str
    package_name: str
    size: int
    last_modified: datetime
    metadata: Optional[PackageMetadata] = None
    sidecar: str = "cached"


@dataclass
class PackageStructure:
    """Parsed contents of an archive, before anything is imported"""
    archive_key: str
    package_name: str
    manifest: Optional[VideoLibraryExport]
    playlists: List[PlaylistExport]
    required_filenames: List[str]


@dataclass
class BuildProgress:
    completed: int
    total: int
    current_file: str


# ==============================================================================
# Results
# ==============================================================================

@dataclass
class PublishResult:
    """Outcome of ``publish``; the archive write either happened or raised"""
    archive_key: str
    sidecar_saved: bool
    public_url: Optional[str]
    metadata: PackageMetadata
    size_bytes: int
    sidecar_error: Optional[str] = None


@dataclass
class PackageDeleteResult:
    archive_key: str
    archive_deleted: bool
    sidecar_deleted: bool
    error: Optional[str] = None


@dataclass
class ImportResult:
    """
    Playlists rebuilt from a package against the current catalog

    ``playlists`` carry fresh ids and are not yet stored anywhere.
    """
    playlists: List[Playlist] = field(default_factory=list)
    missing_videos: List[str] = field(default_factory=list)
    skipped_playlists: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return bool(self.playlists)


@dataclass
class BackfillReport:
    generated: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)
