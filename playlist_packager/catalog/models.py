"""
Catalog data models

A Video is derived from an object under the video prefix of the store and
then overlaid with the user's local edits. Records are immutable; every
change produces a new instance through ``dataclasses.replace``.
"""

import hashlib
import posixpath
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Dict, FrozenSet, Optional

from ..storage.base import ObjectInfo
from ..utils.helpers import parse_timestamp, utc_now


# Fields a local override may set
OVERRIDE_FIELDS = frozenset({
    'title',
    'tags',
    'duration_seconds',
    'resolution',
    'codec',
    'bitrate',
})

# Object metadata written at upload time
META_ORIGINAL_FILENAME = 'original-filename'
META_UPLOAD_DATE = 'upload-date'
META_DURATION = 'duration-seconds'


def video_id_for_key(key: str) -> str:
    """
    Stable video id for a store key

    The same key always yields the same id, across refreshes and processes.
    """
    return hashlib.sha1(key.encode('utf-8')).hexdigest()[:16]


def title_from_filename(filename: str) -> str:
    """``my_clip_01.mp4`` -> ``my clip 01``"""
    stem, _ = posixpath.splitext(posixpath.basename(filename))
    return stem.replace('_', ' ').strip() or filename


def thumbnail_key_for(video_key: str, video_prefix: str = "videos/", thumbnail_prefix: str = "thumbnails/") -> str:
    """
    Derive the thumbnail key stored next to a video

    ``videos/2024-01-05/ab12cd_clip.mp4`` -> ``thumbnails/2024-01-05/ab12cd_clip_thumb.jpg``
    """
    relative = video_key[len(video_prefix):] if video_key.startswith(video_prefix) else video_key
    stem, _ = posixpath.splitext(relative)
    return f"{thumbnail_prefix}{stem}_thumb.jpg"


@dataclass(frozen=True)
class StorageRef:
    """Where a video lives in the store"""
    key: str
    bucket: str
    etag: str
    upload_date: datetime
    thumbnail_key: Optional[str] = None
    thumbnail_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'key': self.key,
            'bucket': self.bucket,
            'etag': self.etag,
            'upload_date': self.upload_date.isoformat(),
            'thumbnail_key': self.thumbnail_key,
            'thumbnail_url': self.thumbnail_url,
        }


@dataclass(frozen=True)
class Video:
    """
    A video asset in the catalog

    ``id`` is derived from ``storage_ref.key``; ``filename`` is the key's
    basename and is what packages reference.
    """
    id: str
    title: str
    filename: str
    duration_seconds: float
    file_size_bytes: int
    tags: FrozenSet[str]
    date_added: datetime
    last_modified: datetime
    storage_ref: StorageRef
    resolution: Optional[str] = None
    codec: Optional[str] = None
    bitrate: Optional[int] = None
    public_url: Optional[str] = None

    @classmethod
    def from_object(cls, info: ObjectInfo, bucket: str, public_url: Optional[str] = None) -> "Video":
        """Build the store-derived record for one listed object"""
        filename = posixpath.basename(info.key)
        original = info.metadata.get(META_ORIGINAL_FILENAME)
        uploaded = parse_timestamp(info.metadata.get(META_UPLOAD_DATE)) or info.last_modified

        try:
            duration = float(info.metadata.get(META_DURATION, 0) or 0)
        except ValueError:
            duration = 0.0

        return cls(
            id=video_id_for_key(info.key),
            title=title_from_filename(original or filename),
            filename=filename,
            duration_seconds=duration,
            file_size_bytes=info.size,
            tags=frozenset(),
            date_added=uploaded,
            last_modified=info.last_modified,
            storage_ref=StorageRef(
                key=info.key,
                bucket=bucket,
                etag=info.etag,
                upload_date=uploaded,
            ),
            public_url=public_url,
        )

    def with_thumbnail(self, key: str, url: Optional[str]) -> "Video":
        return replace(self, storage_ref=replace(self.storage_ref, thumbnail_key=key, thumbnail_url=url))

    def with_override(self, override: Dict[str, Any]) -> "Video":
        """Return a copy with the override's fields applied on top"""
        changes = {k: v for k, v in override.items() if k in OVERRIDE_FIELDS}
        if 'tags' in changes:
            changes['tags'] = frozenset(changes['tags'] or ())
        return replace(self, **changes) if changes else self

    @property
    def stem(self) -> str:
        return posixpath.splitext(self.filename)[0]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'title': self.title,
            'filename': self.filename,
            'duration_seconds': self.duration_seconds,
            'file_size_bytes': self.file_size_bytes,
            'tags': sorted(self.tags),
            'date_added': self.date_added.isoformat(),
            'last_modified': self.last_modified.isoformat(),
            'resolution': self.resolution,
            'codec': self.codec,
            'bitrate': self.bitrate,
            'public_url': self.public_url,
            'storage_ref': self.storage_ref.to_dict(),
        }


def normalize_override(fields: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate a partial override and convert values to storable JSON types

    Raises:
        ValueError: Unknown field names or values of the wrong type
    """
    unknown = set(fields) - OVERRIDE_FIELDS
    if unknown:
        raise ValueError(f"Fields cannot be overridden: {', '.join(sorted(unknown))}")

    normalized: Dict[str, Any] = {}
    for name, value in fields.items():
        if name == 'tags':
            if isinstance(value, str):
                raise ValueError("tags must be a collection of strings, not a string")
            normalized[name] = sorted({str(tag).strip() for tag in (value or ()) if str(tag).strip()})
        elif name == 'title':
            title = str(value).strip()
            if not title:
                raise ValueError("title cannot be empty")
            normalized[name] = title
        elif name == 'duration_seconds':
            duration = float(value)
            if duration < 0:
                raise ValueError("duration_seconds cannot be negative")
            normalized[name] = duration
        elif name == 'bitrate':
            normalized[name] = int(value) if value is not None else None
        else:
            normalized[name] = str(value) if value is not None else None
    return normalized


@dataclass(frozen=True)
class OrphanRecord:
    """A video removed locally while its remote object could not be deleted"""
    video_id: str
    key: str
    filename: str
    thumbnail_key: Optional[str]
    orphaned_at: datetime
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'video_id': self.video_id,
            'key': self.key,
            'filename': self.filename,
            'thumbnail_key': self.thumbnail_key,
            'orphaned_at': self.orphaned_at.isoformat(),
            'reason': self.reason,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OrphanRecord":
        return cls(
            video_id=data['video_id'],
            key=data['key'],
            filename=data.get('filename') or posixpath.basename(data['key']),
            thumbnail_key=data.get('thumbnail_key'),
            orphaned_at=parse_timestamp(data.get('orphaned_at')) or utc_now(),
            reason=data.get('reason', ''),
        )


@dataclass
class DeleteResult:
    """
    Outcome of ``CatalogReconciler.delete``

    ``remote_deleted`` and ``local_removed`` are reported independently; a
    forced delete whose remote half failed has ``local_removed`` set,
    ``remote_deleted`` unset and ``orphaned`` set.
    """
    video_id: str
    remote_deleted: bool
    local_removed: bool
    orphaned: bool = False
    thumbnail_deleted: Optional[bool] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.remote_deleted and self.local_removed


@dataclass
class RetryResult:
    """Outcome of ``CatalogReconciler.retry_delete``"""
    video_id: str
    success: bool
    attempts: int
    local_removed: bool = False
    error: Optional[str] = None
