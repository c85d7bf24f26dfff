"""
Catalog reconciler

Keeps the in-memory video catalog consistent with the object store, which is
the single source of truth. Local edits live in an overlay (CatalogState)
that is merged on top of the store-derived records on every refresh.

Concurrency:
    Refreshes are coalesced. While a refresh is in flight, further callers
    wait for that same task instead of listing the store again. The snapshot
    and the overlay are only mutated here; everything else reads them via
    ``get``/``videos``/``refresh``.

Deletion:
    Remote first. A failed remote delete leaves the catalog untouched unless
    the caller forces it, in which case the video is removed locally and
    recorded as an orphan for manual cleanup or ``retry_delete``.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

from ..core.events import CATALOG_CHANGED, CATALOG_REFRESHED, VIDEO_REMOVED, EventBus
from ..core.exceptions import NotFoundError, StoreError
from ..storage.base import ObjectStore
from ..utils.helpers import utc_now
from ..utils.logger import get_logger
from .models import (
    DeleteResult,
    OrphanRecord,
    RetryResult,
    Video,
    normalize_override,
    thumbnail_key_for,
)
from .state import CatalogState


class CatalogReconciler:
    """
    Authoritative view of the video set

    Args:
        store: Object store holding videos and thumbnails
        state: Persisted overlay and orphan list (in-memory when omitted)
        bus: Event bus that receives catalog notifications
        video_prefix: Key prefix videos live under
        thumbnail_prefix: Key prefix thumbnails live under
        list_max_keys: Bound passed to store listings, None for no bound
        retry_attempts: Attempts made by ``retry_delete``
        retry_base_delay: Seconds before the second attempt; doubles afterwards
        sleep: Coroutine used to wait between retries
    """

    def __init__(
        self,
        store: ObjectStore,
        state: Optional[CatalogState] = None,
        bus: Optional[EventBus] = None,
        video_prefix: str = "videos/",
        thumbnail_prefix: str = "thumbnails/",
        list_max_keys: Optional[int] = None,
        retry_attempts: int = 3,
        retry_base_delay: float = 2.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.store = store
        self.state = state or CatalogState()
        self.bus = bus or EventBus()
        self.video_prefix = video_prefix
        self.thumbnail_prefix = thumbnail_prefix
        self.list_max_keys = list_max_keys
        self.retry_attempts = max(int(retry_attempts), 1)
        self.retry_base_delay = retry_base_delay
        self._sleep = sleep
        self.logger = get_logger(__name__)

        self._videos: Dict[str, Video] = {}
        self._inflight: Optional[asyncio.Task] = None
        self.loaded = False

    # ==========================================================================
    # Reads
    # ==========================================================================

    @property
    def videos(self) -> List[Video]:
        """Current snapshot, in store key order"""
        return list(self._videos.values())

    def get(self, video_id: str) -> Optional[Video]:
        return self._videos.get(video_id)

    def snapshot(self) -> Dict[str, Video]:
        """Copy of the snapshot keyed by video id"""
        return dict(self._videos)

    def search(self, query: str = "", tags: Optional[Iterable[str]] = None) -> List[Video]:
        """
        Filter the snapshot

        Args:
            query: Case-insensitive text matched against title, filename and tags
            tags: Tags a video must all carry

        Returns:
            Matching videos in snapshot order
        """
        needle = (query or "").strip().lower()
        required = {tag.lower() for tag in (tags or ())}

        results = []
        for video in self._videos.values():
            video_tags = {tag.lower() for tag in video.tags}
            if required and not required.issubset(video_tags):
                continue
            if needle and not (
                needle in video.title.lower()
                or needle in video.filename.lower()
                or any(needle in tag for tag in video_tags)
            ):
                continue
            results.append(video)
        return results

    # ==========================================================================
    # Refresh
    # ==========================================================================

    async def refresh(self) -> List[Video]:
        """
        Re-list the store and rebuild the snapshot

        A call made while another refresh is running joins it and returns
        the same result.

        Raises:
            TransportError: The store could not be listed. The previous
                snapshot is kept.
        """
        if self._inflight is None:
            task = asyncio.ensure_future(self._do_refresh())
            task.add_done_callback(self._refresh_done)
            self._inflight = task
        else:
            self.logger.debug("Refresh already in flight, joining it")
        return await asyncio.shield(self._inflight)

    def _refresh_done(self, task: asyncio.Task) -> None:
        if self._inflight is task:
            self._inflight = None
        # Retrieve the outcome so an unawaited failure is not reported twice
        if not task.cancelled():
            task.exception()

    async def _do_refresh(self) -> List[Video]:
        objects = await self.store.list_objects(self.video_prefix, self.list_max_keys)
        thumbnails = await self.store.list_objects(self.thumbnail_prefix, self.list_max_keys)
        thumbnail_keys = {info.key for info in thumbnails}

        videos: Dict[str, Video] = {}
        skipped_orphans = 0
        for info in objects:
            if info.key.endswith('/'):
                continue
            if self.state.is_orphaned_key(info.key):
                skipped_orphans += 1
                continue

            video = Video.from_object(info, self.store.bucket, self.store.public_url(info.key))

            thumb_key = thumbnail_key_for(info.key, self.video_prefix, self.thumbnail_prefix)
            if thumb_key in thumbnail_keys:
                video = video.with_thumbnail(thumb_key, self.store.public_url(thumb_key))

            override = self.state.override_for(video.id)
            if override:
                video = video.with_override(override)

            videos[video.id] = video

        self._videos = videos
        self.loaded = True

        if skipped_orphans:
            self.logger.info(f"Excluded {skipped_orphans} orphaned object(s) from the catalog")
        self.logger.info(f"Catalog refreshed: {len(videos)} videos")

        snapshot = list(videos.values())
        self.bus.publish(CATALOG_REFRESHED, snapshot)
        return snapshot

    # ==========================================================================
    # Local edits
    # ==========================================================================

    def apply_override(self, video_id: str, fields: Dict[str, Any]) -> Video:
        """
        Merge user edits into the overlay and the live record

        The merged override is persisted and re-applied on every later refresh.

        Raises:
            NotFoundError: ``video_id`` is not in the catalog
            ValueError: Unknown field or invalid value
        """
        video = self._videos.get(video_id)
        if video is None:
            raise NotFoundError(f"Video not found: {video_id}", details={'video_id': video_id})

        normalized = normalize_override(fields)
        merged = self.state.merge_override(video_id, normalized)
        self.state.save()

        updated = video.with_override(merged)
        self._videos[video_id] = updated
        self.logger.debug(f"Applied override to {video_id}: {sorted(normalized)}")
        self.bus.publish(CATALOG_CHANGED, {'reason': 'override', 'video_id': video_id})
        return updated

    # ==========================================================================
    # Deletion
    # ==========================================================================

    async def delete(self, video_id: str, force: bool = False) -> DeleteResult:
        """
        Delete a video from the store and then from the local catalog

        Args:
            video_id: Video to delete
            force: Remove locally even when the remote delete fails

        Returns:
            DeleteResult with independent remote/local flags

        Raises:
            NotFoundError: ``video_id`` is not in the catalog
        """
        video = self._videos.get(video_id)
        if video is None:
            raise NotFoundError(f"Video not found: {video_id}", details={'video_id': video_id})

        key = video.storage_ref.key
        error = None
        try:
            await self.store.delete(key)
            remote_deleted = True
        except NotFoundError:
            self.logger.info(f"{key} has no remote object, removing locally")
            remote_deleted = True
        except StoreError as e:
            remote_deleted = False
            error = str(e)

        if not remote_deleted and not force:
            self.logger.warning(f"Remote delete of {key} failed, video kept: {error}")
            return DeleteResult(video_id, remote_deleted=False, local_removed=False, error=error)

        thumbnail_deleted = None
        if remote_deleted:
            thumbnail_deleted = await self._delete_thumbnail(video.storage_ref.thumbnail_key)
        else:
            self.state.add_orphan(OrphanRecord(
                video_id=video_id,
                key=key,
                filename=video.filename,
                thumbnail_key=video.storage_ref.thumbnail_key,
                orphaned_at=utc_now(),
                reason=error or "remote delete failed",
            ))
            self.logger.warning(f"Force-removed {video.filename}; remote object {key} is now orphaned")

        self._remove_locally(video_id)
        return DeleteResult(
            video_id,
            remote_deleted=remote_deleted,
            local_removed=True,
            orphaned=not remote_deleted,
            thumbnail_deleted=thumbnail_deleted,
            error=error,
        )

    async def retry_delete(self, video_id: str) -> RetryResult:
        """
        Re-attempt the remote delete of an orphaned (or still live) video

        Attempts are spaced by ``retry_base_delay`` doubling each time. On
        success the video is removed locally and its orphan marker cleared;
        on failure the marker stays.

        Raises:
            NotFoundError: ``video_id`` is neither orphaned nor in the catalog
        """
        orphan = self.state.orphan(video_id)
        video = self._videos.get(video_id)
        if orphan is None and video is None:
            raise NotFoundError(f"No video or orphan with id {video_id}", details={'video_id': video_id})

        key = orphan.key if orphan else video.storage_ref.key
        thumbnail_key = orphan.thumbnail_key if orphan else video.storage_ref.thumbnail_key

        last_error = None
        attempts = 0
        for attempt in range(1, self.retry_attempts + 1):
            attempts = attempt
            try:
                await self.store.delete(key)
                last_error = None
                break
            except NotFoundError:
                last_error = None
                break
            except StoreError as e:
                last_error = str(e)
                self.logger.warning(f"Delete attempt {attempt}/{self.retry_attempts} for {key} failed: {e}")
                if attempt < self.retry_attempts:
                    await self._sleep(self.retry_base_delay * (2 ** (attempt - 1)))

        if last_error is not None:
            return RetryResult(
                video_id,
                success=False,
                attempts=attempts,
                error=f"Failed after {attempts} attempts: {last_error}",
            )

        await self._delete_thumbnail(thumbnail_key)
        if orphan is not None:
            self.state.remove_orphan(video_id)
        local_removed = video is not None
        if local_removed:
            self._remove_locally(video_id)
        else:
            self.state.save()

        self.logger.info(f"Deleted {key} after {attempts} attempt(s)")
        return RetryResult(video_id, success=True, attempts=attempts, local_removed=local_removed)

    async def _delete_thumbnail(self, thumbnail_key: Optional[str]) -> Optional[bool]:
        if not thumbnail_key:
            return None
        try:
            await self.store.delete(thumbnail_key)
            return True
        except NotFoundError:
            return True
        except StoreError as e:
            self.logger.warning(f"Could not delete thumbnail {thumbnail_key}: {e}")
            return False

    def _remove_locally(self, video_id: str) -> None:
        # Playlists strip the id on VIDEO_REMOVED before anyone sees the change
        self._videos.pop(video_id, None)
        self.state.drop_override(video_id)
        self.state.save()
        self.bus.publish(VIDEO_REMOVED, video_id)
        self.bus.publish(CATALOG_CHANGED, {'reason': 'delete', 'video_id': video_id})

    # ==========================================================================
    # Orphans
    # ==========================================================================

    def list_orphans(self) -> List[OrphanRecord]:
        return self.state.orphans()

    def discard_orphan(self, video_id: str) -> bool:
        """Forget an orphan after it has been cleaned up by hand"""
        record = self.state.remove_orphan(video_id)
        if record is None:
            return False
        self.state.save()
        self.logger.info(f"Discarded orphan record for {record.key}")
        return True
