"""
Sequential upload of local video files into the store

Files are processed one at a time to bound the number of concurrent
connections to the store. For each file:

1. Probe duration, resolution, codec and bitrate
2. Generate a JPEG thumbnail (failure is logged, never fatal)
3. Upload the video under ``videos/<YYYY-MM-DD>/<token>_<name>``
4. Upload the thumbnail under the matching ``thumbnails/`` key

After the batch the catalog is refreshed once and the probed metadata is
recorded as overrides on the new records.
"""

import asyncio
import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, List, Optional

from ..core.exceptions import NotFoundError, StoreError
from ..media.thumbnails import MediaInfo, generate_thumbnail, probe_video
from ..utils.helpers import random_token, sanitize_filename, utc_now
from ..utils.logger import get_logger
from .models import (
    META_DURATION,
    META_ORIGINAL_FILENAME,
    META_UPLOAD_DATE,
    thumbnail_key_for,
    video_id_for_key,
)
from .reconciler import CatalogReconciler


VIDEO_EXTENSIONS = frozenset({'.mp4', '.m4v', '.mov', '.webm', '.mkv', '.avi'})

ProgressCallback = Callable[[int, int, str], None]


@dataclass
class IngestResult:
    """Outcome for one local file"""
    path: Path
    key: Optional[str] = None
    video_id: Optional[str] = None
    uploaded: bool = False
    thumbnail_uploaded: bool = False
    media: Optional[MediaInfo] = None
    error: Optional[str] = None


class VideoIngestor:
    """Uploads local files and registers them in the catalog"""

    def __init__(
        self,
        catalog: CatalogReconciler,
        thumbnail_width: int = 150,
        thumbnail_time_offset: float = 1.0,
        thumbnail_quality: int = 80,
        probe: Callable[[Path], MediaInfo] = probe_video,
        thumbnailer: Callable[..., bytes] = generate_thumbnail,
    ):
        self.catalog = catalog
        self.store = catalog.store
        self.thumbnail_width = thumbnail_width
        self.thumbnail_time_offset = thumbnail_time_offset
        self.thumbnail_quality = thumbnail_quality
        self._probe = probe
        self._thumbnailer = thumbnailer
        self.logger = get_logger(__name__)

    def build_key(self, filename: str) -> str:
        day = utc_now().strftime('%Y-%m-%d')
        return f"{self.catalog.video_prefix}{day}/{random_token()}_{sanitize_filename(filename)}"

    async def ingest(self, paths: Iterable[Path], progress: Optional[ProgressCallback] = None) -> List[IngestResult]:
        """
        Upload ``paths`` one after another

        Returns:
            One IngestResult per path, in input order
        """
        paths = [Path(p).expanduser() for p in paths]
        results: List[IngestResult] = []

        for index, path in enumerate(paths, start=1):
            result = await self._ingest_one(path)
            results.append(result)
            if progress:
                progress(index, len(paths), path.name)

        uploaded = [r for r in results if r.uploaded]
        if uploaded:
            await self.catalog.refresh()
            for result in uploaded:
                self._record_media(result)

        self.logger.info(f"Ingested {len(uploaded)}/{len(paths)} file(s)")
        return results

    async def _ingest_one(self, path: Path) -> IngestResult:
        result = IngestResult(path=path)

        if not path.is_file():
            result.error = "not a file"
            self.logger.warning(f"Skipping {path}: not a file")
            return result
        if path.suffix.lower() not in VIDEO_EXTENSIONS:
            result.error = f"unsupported extension {path.suffix or '(none)'}"
            self.logger.warning(f"Skipping {path.name}: {result.error}")
            return result

        result.media = await asyncio.to_thread(self._probe, path)
        thumbnail = await self._make_thumbnail(path)

        key = self.build_key(path.name)
        content_type = mimetypes.guess_type(path.name)[0] or 'video/mp4'
        metadata = {
            META_ORIGINAL_FILENAME: path.name,
            META_UPLOAD_DATE: utc_now().isoformat(),
            META_DURATION: f"{result.media.duration_seconds:.3f}",
            'size': str(path.stat().st_size),
        }

        try:
            data = await asyncio.to_thread(path.read_bytes)
            await self.store.put(key, data, content_type, metadata)
        except OSError as e:
            result.error = f"could not read file: {e}"
            self.logger.error(f"Upload of {path.name} failed: {result.error}")
            return result
        except StoreError as e:
            result.error = str(e)
            self.logger.error(f"Upload of {path.name} failed: {e}")
            return result

        result.key = key
        result.video_id = video_id_for_key(key)
        result.uploaded = True
        self.logger.console_info(f"Uploaded {path.name} -> {key}")

        if thumbnail is not None:
            thumb_key = thumbnail_key_for(key, self.catalog.video_prefix, self.catalog.thumbnail_prefix)
            try:
                await self.store.put(thumb_key, thumbnail, 'image/jpeg', {'video-key': key})
                result.thumbnail_uploaded = True
            except StoreError as e:
                self.logger.warning(f"Thumbnail upload for {path.name} failed: {e}")

        return result

    async def _make_thumbnail(self, path: Path) -> Optional[bytes]:
        try:
            return await asyncio.to_thread(
                self._thumbnailer,
                path,
                time_offset=self.thumbnail_time_offset,
                width=self.thumbnail_width,
                quality=self.thumbnail_quality,
            )
        except (RuntimeError, OSError, ValueError) as e:
            self.logger.warning(f"No thumbnail for {path.name}: {e}")
            return None

    def _record_media(self, result: IngestResult) -> None:
        if not result.media:
            return
        try:
            self.catalog.apply_override(result.video_id, result.media.as_override())
        except NotFoundError:
            # Listings are eventually consistent; the next refresh will show it
            self.logger.warning(f"{result.key} not listed yet, technical metadata not recorded")
