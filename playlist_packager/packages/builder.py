"""
Content package builder

Turns a set of videos and playlists into a device package:

    build_package       clean playlists, derive manifest and playlist files
    validate_package    cross-reference check, hard errors only
    serialize_to_archive
                        lay out the ZIP, embedding video and thumbnail bytes
    publish             all of the above, then upload archive and sidecar

A single video that cannot be fetched is replaced by a placeholder entry so
one bad asset never sinks an export. Nothing is uploaded until the archive
bytes are complete.
"""

import math
import posixpath
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from ..catalog.models import Video
from ..core.exceptions import IntegrityError, StoreError
from ..media.thumbnails import placeholder_thumbnail
from ..playlists.models import Playlist, compute_metadata
from ..storage.base import ObjectStore
from ..storage.fetcher import MediaFetcher
from ..utils.helpers import format_duration_hms, utc_now
from ..utils.logger import get_logger, log_performance
from .archive import (
    DEFAULT_PLAYLIST_FILE,
    DEFAULT_PLAYLIST_NAME,
    MANIFEST_PATH,
    PLAYLISTS_DIR,
    THUMBNAILS_DIR,
    ArchiveWriter,
    archive_key,
    playlist_entry,
    playlist_filename,
    thumbnail_entry,
    thumbnail_relpath,
    video_entry,
)
from .models import (
    DEFAULT_RESOLUTION,
    VALID_CATEGORIES,
    VALID_MOODS,
    BuildProgress,
    ContentPackage,
    IntegrityReport,
    ManifestEntry,
    Mood,
    PackageMetadata,
    PlaylistEntry,
    PlaylistExport,
    PublishResult,
    VideoLibraryExport,
)
from .policy import KeywordMoodPolicy, MoodPolicy
from .sidecar import PackageMetadataCache


ARCHIVE_CONTENT_TYPE = "application/zip"

# Per-video allowance for thumbnails, JSON and ZIP headers
PACKAGE_OVERHEAD_PER_VIDEO = 50 * 1024

ProgressCallback = Callable[[BuildProgress], None]


def validate_integrity(playlist: Playlist, videos: Iterable[Video]) -> IntegrityReport:
    """
    Partition a playlist's order into ids that resolve in ``videos`` and
    ids that do not, both in playlist order
    """
    known = {v.id for v in videos}
    valid: List[str] = []
    missing: List[str] = []
    for video_id in playlist.video_order:
        (valid if video_id in known else missing).append(video_id)
    return IntegrityReport(valid_ids=valid, missing_ids=missing)


def estimate_package_size(videos: Iterable[Video]) -> int:
    """Rough archive size: video bytes plus a fixed overhead per video"""
    total = 0
    for video in videos:
        total += video.file_size_bytes + PACKAGE_OVERHEAD_PER_VIDEO
    return total


def video_placeholder(filename: str, error: str) -> bytes:
    return f"# Placeholder for {filename}\n# Error: {error}\n".encode('utf-8')


class PackageBuilder:
    """
    Build, validate, serialize and publish content packages

    Args:
        store: Object store videos are read from and archives written to
        sidecar: Metadata cache receiving the sidecar after each publish
        policy: Mood and category derivation (keyword heuristic by default)
        package_prefix: Key prefix for archives
        archive_extension: Archive file extension
        compression_level: Deflate level for JSON entries
        include_default_playlist: Add ``default.json`` with every video
        fetcher_factory: Creates the HTTP fetcher used for public URLs
        thumbnail_width: Width of generated placeholder thumbnails
        thumbnail_quality: JPEG quality of placeholder thumbnails
        clock: Source of the package creation time
    """

    def __init__(
        self,
        store: ObjectStore,
        sidecar: PackageMetadataCache,
        policy: Optional[MoodPolicy] = None,
        package_prefix: str = "playlists/",
        archive_extension: str = "zip",
        compression_level: int = 6,
        include_default_playlist: bool = True,
        fetcher_factory: Callable[[], MediaFetcher] = MediaFetcher,
        thumbnail_width: int = 150,
        thumbnail_quality: int = 80,
        clock: Callable = utc_now,
    ):
        self.store = store
        self.sidecar = sidecar
        self.policy = policy or KeywordMoodPolicy()
        self.package_prefix = package_prefix
        self.archive_extension = archive_extension
        self.compression_level = compression_level
        self.include_default_playlist = include_default_playlist
        self._fetcher_factory = fetcher_factory
        self.thumbnail_width = thumbnail_width
        self.thumbnail_quality = thumbnail_quality
        self._clock = clock
        self.logger = get_logger(__name__)

    # ==========================================================================
    # Building
    # ==========================================================================

    validate_integrity = staticmethod(validate_integrity)
    estimate_package_size = staticmethod(estimate_package_size)

    def clean_playlist(self, playlist: Playlist, videos: Mapping[str, Video]) -> Playlist:
        """Copy of ``playlist`` without dangling ids, aggregates recomputed"""
        report = validate_integrity(playlist, videos.values())
        cleaned = playlist.copy()
        cleaned.video_order = list(report.valid_ids)
        cleaned.metadata = compute_metadata(cleaned.video_order, videos)
        return cleaned

    def _entry_fields(self, video: Video) -> dict:
        seconds = int(math.floor(video.duration_seconds or 0))
        return {
            'title': video.title,
            'filename': video.filename,
            'duration_seconds': seconds,
            'duration_formatted': format_duration_hms(seconds),
            'thumbnail': thumbnail_relpath(video.filename),
        }

    def _playlist_export(self, name: str, description: str, mood: Mood, ordered: Sequence[Video]) -> PlaylistExport:
        return PlaylistExport(
            name=name,
            description=description,
            mood=mood.value,
            loop=True,
            videos=[PlaylistEntry(**self._entry_fields(v)) for v in ordered],
        )

    def build_package(self, name: str, videos: Sequence[Video], playlists: Sequence[Playlist]) -> ContentPackage:
        """
        Derive the package structure

        Every playlist is cleaned against ``videos`` first; dropped ids are
        logged and recorded on the package. The manifest covers every supplied
        video, keyed by filename. When two videos share a filename the first
        one wins.
        """
        videos_map: Dict[str, Video] = {v.id: v for v in videos}

        cleaned: List[Playlist] = []
        dropped: Dict[str, List[str]] = {}
        for playlist in playlists:
            report = validate_integrity(playlist, videos_map.values())
            if not report.valid:
                preview = ', '.join(report.missing_ids[:3]) + ('...' if len(report.missing_ids) > 3 else '')
                self.logger.warning(
                    f"Playlist '{playlist.name}' references {len(report.missing_ids)} missing videos "
                    f"({preview}); dropping them from the package"
                )
                dropped[playlist.name] = list(report.missing_ids)
            cleaned.append(self.clean_playlist(playlist, videos_map))

        packaged: Dict[str, Video] = {}
        for video in videos:
            if video.filename in packaged:
                if packaged[video.filename].id != video.id:
                    self.logger.warning(
                        f"Filename {video.filename} is shared by videos "
                        f"{packaged[video.filename].id} and {video.id}; keeping the first"
                    )
                continue
            packaged[video.filename] = video

        entries: Dict[str, ManifestEntry] = {}
        total_duration = 0.0
        for filename, video in packaged.items():
            mood, category = self.policy.for_video(video.id, cleaned)
            entries[filename] = ManifestEntry(
                mood=mood.value,
                category=category.value,
                resolution=video.resolution or DEFAULT_RESOLUTION,
                **self._entry_fields(video),
            )
            total_duration += video.duration_seconds or 0

        created_at = self._clock()
        manifest = VideoLibraryExport(
            last_updated=created_at.isoformat(),
            total_videos=len(entries),
            total_duration_seconds=int(math.floor(total_duration)),
            videos=entries,
        )

        playlist_files: Dict[str, PlaylistExport] = {}
        for playlist in cleaned:
            filename = playlist_filename(playlist.name, set(playlist_files))
            ordered = [videos_map[vid] for vid in playlist.video_order]
            playlist_files[filename] = self._playlist_export(
                playlist.name,
                playlist.name,
                self.policy.mood_for(playlist.name),
                ordered,
            )

        if self.include_default_playlist and DEFAULT_PLAYLIST_FILE not in playlist_files:
            playlist_files[DEFAULT_PLAYLIST_FILE] = self._playlist_export(
                DEFAULT_PLAYLIST_NAME,
                DEFAULT_PLAYLIST_NAME,
                self.policy.default_mood,
                list(packaged.values()),
            )

        self.logger.debug(
            f"Built package '{name}': {len(entries)} videos, {len(playlist_files)} playlist files"
        )
        return ContentPackage(
            name=name,
            created_at=created_at,
            manifest=manifest,
            playlist_files=playlist_files,
            dropped_ids=dropped,
        )

    def validate_package(self, package: ContentPackage) -> List[str]:
        """Return every validation error; an empty list means publishable"""
        errors: List[str] = []
        videos = package.manifest.videos

        if self.include_default_playlist and DEFAULT_PLAYLIST_FILE not in package.playlist_files:
            errors.append(f"Missing required {DEFAULT_PLAYLIST_FILE} playlist")

        if not videos:
            errors.append("No videos in metadata library")

        for filename, entry in videos.items():
            if entry.mood not in VALID_MOODS:
                errors.append(f"Invalid mood for {filename}: {entry.mood}")
            if entry.category not in VALID_CATEGORIES:
                errors.append(f"Invalid category for {filename}: {entry.category}")

        for playlist_file, playlist in package.playlist_files.items():
            for filename in playlist.filenames:
                if filename not in videos:
                    errors.append(f"Playlist {playlist_file} references unknown video: {filename}")

        return errors

    # ==========================================================================
    # Serialization
    # ==========================================================================

    @log_performance
    async def serialize_to_archive(
        self,
        package: ContentPackage,
        videos: Sequence[Video],
        progress: Optional[ProgressCallback] = None,
    ) -> bytes:
        """
        Write the package into ZIP bytes

        Progress is reported after each file: the manifest, each playlist
        file, then every video followed by its thumbnail.
        """
        by_filename: Dict[str, Video] = {}
        for video in videos:
            by_filename.setdefault(video.filename, video)

        filenames = list(package.manifest.videos)
        total = len(filenames) * 2 + len(package.playlist_files) + 1
        completed = 0

        def advance(current: str) -> None:
            nonlocal completed
            completed += 1
            if progress is not None:
                progress(BuildProgress(completed=completed, total=total, current_file=current))

        writer = ArchiveWriter(package.created_at, self.compression_level)
        writer.add_directory(THUMBNAILS_DIR)
        writer.add_directory(PLAYLISTS_DIR)

        writer.write_json(MANIFEST_PATH, package.manifest.to_dict())
        advance(posixpath.basename(MANIFEST_PATH))

        for playlist_file, playlist in package.playlist_files.items():
            writer.write_json(playlist_entry(playlist_file), playlist.to_dict())
            advance(playlist_file)

        fetcher: Optional[MediaFetcher] = None
        placeholders = 0
        try:
            for filename in filenames:
                video = by_filename.get(filename)
                data: Optional[bytes] = None
                error = "video not supplied"
                if video is not None:
                    if fetcher is None:
                        fetcher = self._fetcher_factory()
                    data, error = await self._video_bytes(video, fetcher)
                if data is None:
                    placeholders += 1
                    self.logger.warning(f"Using placeholder for {filename}: {error}")
                    data = video_placeholder(filename, error)
                writer.write_bytes(video_entry(filename), data)
                advance(filename)

                thumbnail = await self._thumbnail_bytes(filename, video, fetcher)
                writer.write_bytes(thumbnail_entry(filename), thumbnail)
                advance(posixpath.basename(thumbnail_entry(filename)))
        finally:
            if fetcher is not None:
                await fetcher.close()

        archive = writer.finish()
        if placeholders:
            self.logger.warning(f"Package '{package.name}' contains {placeholders} placeholder videos")
        return archive

    async def _video_bytes(self, video: Video, fetcher: MediaFetcher):
        """``(bytes, None)`` from the store or public URL, else ``(None, error)``"""
        try:
            return await self.store.get(video.storage_ref.key), None
        except StoreError as e:
            error = str(e)
            self.logger.debug(f"Store read failed for {video.storage_ref.key}: {e}")

        if video.public_url:
            try:
                return await fetcher.fetch(video.public_url), None
            except StoreError as e:
                error = str(e)
        return None, error

    async def _thumbnail_bytes(self, filename: str, video: Optional[Video], fetcher: Optional[MediaFetcher]) -> bytes:
        if video is not None:
            ref = video.storage_ref
            if ref.thumbnail_key:
                try:
                    return await self.store.get(ref.thumbnail_key)
                except StoreError as e:
                    self.logger.debug(f"Thumbnail read failed for {ref.thumbnail_key}: {e}")
            if ref.thumbnail_url and fetcher is not None:
                try:
                    return await fetcher.fetch(ref.thumbnail_url)
                except StoreError as e:
                    self.logger.debug(f"Thumbnail fetch failed for {ref.thumbnail_url}: {e}")

        self.logger.info(f"No thumbnail for {filename}, using a placeholder")
        label = video.title if video is not None else filename
        return placeholder_thumbnail(label, width=self.thumbnail_width, quality=self.thumbnail_quality)

    # ==========================================================================
    # Publishing
    # ==========================================================================

    async def publish(
        self,
        name: str,
        videos: Sequence[Video],
        playlists: Sequence[Playlist],
        progress: Optional[ProgressCallback] = None,
    ) -> PublishResult:
        """
        Build, validate, serialize and upload a package with its sidecar

        Raises:
            IntegrityError: The package failed validation; nothing was uploaded
            StoreError: The archive upload failed
        """
        package = self.build_package(name, videos, playlists)
        errors = self.validate_package(package)
        if errors:
            raise IntegrityError(
                f"Package '{name}' failed validation with {len(errors)} errors",
                errors=errors,
                details={'package': name},
            )

        data = await self.serialize_to_archive(package, videos, progress)
        key = archive_key(name, package.created_at, self.package_prefix, self.archive_extension)
        metadata = PackageMetadata(
            package_name=name,
            filename=posixpath.basename(key),
            playlist_count=len(package.playlist_files),
            video_count=len(package.referenced_filenames()),
            playlist_names=[p.name for p in package.playlist_files.values()],
            total_size_bytes=len(data),
            created_at=package.manifest.last_updated,
        )

        await self.store.put(
            key,
            data,
            content_type=ARCHIVE_CONTENT_TYPE,
            metadata={
                'packageName': name,
                'createdAt': metadata.created_at,
                'videoCount': str(metadata.video_count),
                'playlistCount': str(metadata.playlist_count),
            },
        )
        self.logger.info(f"Uploaded package '{name}' to {key} ({len(data)} bytes)")

        sidecar_error: Optional[str] = None
        try:
            await self.sidecar.save(key, metadata)
        except StoreError as e:
            sidecar_error = str(e)
            self.logger.warning(f"Archive {key} uploaded but its sidecar was not: {e}")

        return PublishResult(
            archive_key=key,
            sidecar_saved=sidecar_error is None,
            public_url=self.store.public_url(key),
            metadata=metadata,
            size_bytes=len(data),
            sidecar_error=sidecar_error,
        )
