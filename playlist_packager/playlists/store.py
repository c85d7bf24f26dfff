"""
Playlist store with referential integrity against the catalog

Playlists may only reference videos that exist in the catalog at the moment
of the edit. Every mutation recomputes the playlist's aggregates in the same
call, and readers only ever receive copies, so nobody can observe an order
change without the matching aggregate.

The store listens to the catalog's event bus:
    video.removed       the id is stripped from every playlist
    catalog.refreshed   all aggregates are recomputed against the new snapshot
"""

from pathlib import Path
from typing import Callable, Dict, List, Optional

from ..catalog.models import Video
from ..catalog.reconciler import CatalogReconciler
from ..core.events import CATALOG_REFRESHED, VIDEO_REMOVED
from ..core.exceptions import ConfigurationError
from ..utils.helpers import read_json, utc_now, write_json_atomic
from ..utils.logger import get_logger
from .models import Playlist, compute_metadata, new_playlist_id


STATE_VERSION = 1


class PlaylistStore:
    """
    Ordered playlists over the catalog's videos

    Args:
        catalog: Reconciler whose snapshot playlists are validated against
        path: JSON file playlists are persisted to (in-memory when omitted)
        clock: Source of ``last_modified`` timestamps
    """

    def __init__(self, catalog: CatalogReconciler, path: Optional[Path] = None, clock: Callable = utc_now):
        self.catalog = catalog
        self.path = Path(path).expanduser() if path else None
        self._clock = clock
        self.logger = get_logger(__name__)
        self._playlists: Dict[str, Playlist] = {}

        self._load()
        self._subscriptions = [
            catalog.bus.subscribe(VIDEO_REMOVED, self._on_video_removed),
            catalog.bus.subscribe(CATALOG_REFRESHED, self._on_catalog_refreshed),
        ]

    # ==========================================================================
    # Persistence
    # ==========================================================================

    def _load(self) -> None:
        if self.path is None:
            return
        try:
            data = read_json(self.path, default={}) or {}
        except ValueError as e:
            raise ConfigurationError(
                f"Playlist state file is corrupted: {self.path}",
                details={'path': str(self.path), 'original_error': str(e)},
            ) from e

        for entry in data.get('playlists', []):
            playlist = Playlist.from_dict(entry)
            self._playlists[playlist.id] = playlist
        self.recompute_all()
        self.logger.debug(f"Loaded {len(self._playlists)} playlists from {self.path}")

    def save(self) -> None:
        if self.path is None:
            return
        write_json_atomic(self.path, {
            'version': STATE_VERSION,
            'playlists': [p.to_dict() for p in self._playlists.values()],
        })

    def close(self) -> None:
        """Stop listening to catalog events"""
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions = []

    # ==========================================================================
    # Reads
    # ==========================================================================

    def get(self, playlist_id: str) -> Optional[Playlist]:
        playlist = self._playlists.get(playlist_id)
        return playlist.copy() if playlist else None

    def list(self) -> List[Playlist]:
        return [p.copy() for p in self._playlists.values()]

    def unassigned_videos(self) -> List[Video]:
        """Catalog videos no playlist references"""
        assigned = set()
        for playlist in self._playlists.values():
            assigned.update(playlist.video_order)
        return [v for v in self.catalog.videos if v.id not in assigned]

    # ==========================================================================
    # Mutations
    # ==========================================================================

    def _touch(self, playlist: Playlist) -> None:
        """Recompute aggregates and stamp the change"""
        playlist.metadata = compute_metadata(playlist.video_order, self.catalog.snapshot())
        playlist.last_modified = self._clock()

    def create(self, name: str, description: str = "") -> Playlist:
        name = (name or "").strip()
        if not name:
            raise ValueError("Playlist name cannot be empty")
        now = self._clock()
        playlist = Playlist(
            id=new_playlist_id(),
            name=name,
            description=description or "",
            date_created=now,
            last_modified=now,
        )
        self._playlists[playlist.id] = playlist
        self.save()
        self.logger.info(f"Created playlist '{name}' ({playlist.id})")
        return playlist.copy()

    def rename(self, playlist_id: str, name: str, description: Optional[str] = None) -> bool:
        playlist = self._playlists.get(playlist_id)
        name = (name or "").strip()
        if playlist is None or not name:
            return False
        playlist.name = name
        if description is not None:
            playlist.description = description
        playlist.last_modified = self._clock()
        self.save()
        return True

    def delete(self, playlist_id: str) -> bool:
        playlist = self._playlists.pop(playlist_id, None)
        if playlist is None:
            return False
        self.save()
        self.logger.info(f"Deleted playlist '{playlist.name}' ({playlist_id})")
        return True

    def add_video(self, playlist_id: str, video_id: str, at_index: Optional[int] = None) -> bool:
        """
        Insert ``video_id`` at ``at_index`` (appended when omitted)

        Returns False without changing anything when the playlist is unknown,
        the video does not resolve in the catalog, or the playlist already
        contains it.
        """
        playlist = self._playlists.get(playlist_id)
        if playlist is None:
            return False
        if self.catalog.get(video_id) is None:
            self.logger.debug(f"Refusing to add unknown video {video_id} to {playlist_id}")
            return False
        if video_id in playlist.video_order:
            return False

        index = len(playlist.video_order) if at_index is None else max(0, min(at_index, len(playlist.video_order)))
        playlist.video_order.insert(index, video_id)
        self._touch(playlist)
        self.save()
        return True

    def remove_video(self, playlist_id: str, video_id: str) -> bool:
        playlist = self._playlists.get(playlist_id)
        if playlist is None or video_id not in playlist.video_order:
            return False
        playlist.video_order.remove(video_id)
        self._touch(playlist)
        self.save()
        return True

    def move_video(
        self,
        from_playlist_id: Optional[str],
        to_playlist_id: str,
        video_id: str,
        at_index: Optional[int] = None,
    ) -> bool:
        """
        Move a video between playlists

        With no source this is ``add_video`` on the target. Moving within one
        playlist is a reorder. Otherwise the move is checked up front, and if
        the add still fails after the removal, the video is put back at its
        original position in the source.
        """
        if from_playlist_id is None:
            return self.add_video(to_playlist_id, video_id, at_index)

        if from_playlist_id == to_playlist_id:
            playlist = self._playlists.get(to_playlist_id)
            if playlist is None:
                return False
            target_index = len(playlist.video_order) - 1 if at_index is None else at_index
            return self.reorder(to_playlist_id, video_id, target_index)

        source = self._playlists.get(from_playlist_id)
        target = self._playlists.get(to_playlist_id)
        if source is None or target is None:
            return False
        if video_id not in source.video_order or video_id in target.video_order:
            return False
        if self.catalog.get(video_id) is None:
            return False

        original_index = source.video_order.index(video_id)
        self.remove_video(from_playlist_id, video_id)
        if self.add_video(to_playlist_id, video_id, at_index):
            return True

        source.video_order.insert(original_index, video_id)
        self._touch(source)
        self.save()
        self.logger.warning(f"Move of {video_id} to {to_playlist_id} failed, restored in {from_playlist_id}")
        return False

    def reorder(self, playlist_id: str, video_id: str, new_index: int) -> bool:
        """
        Move ``video_id`` to ``new_index`` within its playlist

        The index is clamped to the valid range; moving a video to its
        current index leaves the order unchanged.
        """
        playlist = self._playlists.get(playlist_id)
        if playlist is None or video_id not in playlist.video_order:
            return False

        remaining = [vid for vid in playlist.video_order if vid != video_id]
        index = max(0, min(new_index, len(remaining)))
        remaining.insert(index, video_id)
        playlist.video_order = remaining
        self._touch(playlist)
        self.save()
        return True

    def adopt(self, playlist: Playlist) -> Playlist:
        """
        Add an externally built playlist (e.g. an import) under a fresh id

        Entries that do not resolve in the catalog are dropped.
        """
        snapshot = self.catalog.snapshot()
        order: List[str] = []
        for vid in playlist.video_order:
            if vid in snapshot and vid not in order:
                order.append(vid)
        dropped = len(playlist.video_order) - len(order)
        if dropped:
            self.logger.warning(f"Dropped {dropped} unresolvable entries while adopting '{playlist.name}'")

        now = self._clock()
        adopted = Playlist(
            id=new_playlist_id(),
            name=playlist.name,
            description=playlist.description,
            video_order=order,
            date_created=now,
            last_modified=now,
        )
        adopted.metadata = compute_metadata(order, snapshot)
        self._playlists[adopted.id] = adopted
        self.save()
        return adopted.copy()

    def recompute_all(self) -> None:
        snapshot = self.catalog.snapshot()
        for playlist in self._playlists.values():
            playlist.metadata = compute_metadata(playlist.video_order, snapshot)

    # ==========================================================================
    # Catalog events
    # ==========================================================================

    def _on_video_removed(self, video_id: str) -> None:
        changed = []
        for playlist in self._playlists.values():
            if video_id in playlist.video_order:
                playlist.video_order.remove(video_id)
                self._touch(playlist)
                changed.append(playlist.name)
        if changed:
            self.save()
            self.logger.info(f"Removed video {video_id} from playlists: {', '.join(changed)}")

    def _on_catalog_refreshed(self, videos) -> None:
        self.recompute_all()
