"""
Playlist data models

``video_order`` is the only ordering authority; ``video_ids`` is derived
from it. ``metadata`` is always computed by ``compute_metadata`` from the
order and the live video set, never edited by hand.
"""

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, FrozenSet, List, Mapping

from ..catalog.models import Video
from ..utils.helpers import parse_timestamp, utc_now


def new_playlist_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class PlaylistMetadata:
    """Aggregates derived from a playlist's order and the current videos"""
    total_duration_seconds: float = 0.0
    video_count: int = 0
    total_size_bytes: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total_duration_seconds': self.total_duration_seconds,
            'video_count': self.video_count,
            'total_size_bytes': self.total_size_bytes,
        }


def compute_metadata(video_order: List[str], videos: Mapping[str, Video]) -> PlaylistMetadata:
    """
    Aggregate a playlist

    ``video_count`` counts every entry in the order; duration and size only
    include entries that resolve in ``videos``.
    """
    resolved = [videos[vid] for vid in video_order if vid in videos]
    return PlaylistMetadata(
        total_duration_seconds=sum(v.duration_seconds for v in resolved),
        video_count=len(video_order),
        total_size_bytes=sum(v.file_size_bytes for v in resolved),
    )


@dataclass
class Playlist:
    """An ordered collection of video references"""
    id: str
    name: str
    description: str = ""
    video_order: List[str] = field(default_factory=list)
    date_created: datetime = field(default_factory=utc_now)
    last_modified: datetime = field(default_factory=utc_now)
    metadata: PlaylistMetadata = field(default_factory=PlaylistMetadata)

    @property
    def video_ids(self) -> FrozenSet[str]:
        return frozenset(self.video_order)

    def copy(self) -> "Playlist":
        return replace(self, video_order=list(self.video_order))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'video_order': list(self.video_order),
            'date_created': self.date_created.isoformat(),
            'last_modified': self.last_modified.isoformat(),
            'metadata': self.metadata.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Playlist":
        """Load a stored playlist; aggregates are recomputed by the store"""
        order: List[str] = []
        for vid in data.get('video_order', []):
            if vid not in order:
                order.append(vid)
        created = parse_timestamp(data.get('date_created')) or utc_now()
        return cls(
            id=data.get('id') or new_playlist_id(),
            name=data.get('name', 'Untitled'),
            description=data.get('description', ''),
            video_order=order,
            date_created=created,
            last_modified=parse_timestamp(data.get('last_modified')) or created,
        )
