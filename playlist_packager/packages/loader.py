"""
Package loader

Discovers published archives and turns them back into playlists. Listing
goes through the sidecar cache; an archive without a sidecar is downloaded
once, summarized, and its sidecar written so the next listing is cheap.
"""

import asyncio
import posixpath
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

from rapidfuzz import fuzz

from ..catalog.models import Video
from ..core.exceptions import ArchiveError, NotFoundError, StoreError
from ..playlists.models import Playlist, compute_metadata, new_playlist_id
from ..storage.base import ObjectInfo, ObjectStore
from ..utils.helpers import ensure_directory, utc_now
from ..utils.logger import get_logger, log_performance
from .archive import ArchiveReader, package_name_from_key
from .models import (
    BackfillReport,
    ImportResult,
    PackageDeleteResult,
    PackageStructure,
    PackageSummary,
    PlaylistExport,
    VideoLibraryExport,
)
from .sidecar import SIDECAR_SUFFIX, PackageMetadataCache


SIDECAR_CACHED = "cached"
SIDECAR_GENERATED = "generated"
SIDECAR_UNAVAILABLE = "unavailable"


class PackageLoader:
    """
    Enumerate, inspect, import, download and delete packages

    Args:
        store: Object store holding the archives
        sidecar: Metadata cache for the archives
        package_prefix: Key prefix archives live under
        archive_extension: Extension identifying archive keys
        import_name_suffix: Appended to the names of imported playlists
        search_threshold: Minimum fuzzy score (0-100) for search hits
        list_max_keys: Upper bound handed to the store listing
    """

    def __init__(
        self,
        store: ObjectStore,
        sidecar: PackageMetadataCache,
        package_prefix: str = "playlists/",
        archive_extension: str = "zip",
        import_name_suffix: str = " (imported)",
        search_threshold: int = 70,
        list_max_keys: Optional[int] = None,
        clock: Callable = utc_now,
    ):
        self.store = store
        self.sidecar = sidecar
        self.package_prefix = package_prefix
        self.archive_extension = archive_extension
        self.import_name_suffix = import_name_suffix
        self.search_threshold = search_threshold
        self.list_max_keys = list_max_keys
        self._clock = clock
        self.logger = get_logger(__name__)

    def _is_archive(self, key: str) -> bool:
        return key.endswith(f".{self.archive_extension}") and not key.endswith(SIDECAR_SUFFIX)

    async def _archive_objects(self) -> List[ObjectInfo]:
        objects = await self.store.list_objects(self.package_prefix, self.list_max_keys)
        return [obj for obj in objects if self._is_archive(obj.key)]

    # ==========================================================================
    # Listing
    # ==========================================================================

    async def _summarize(self, obj: ObjectInfo) -> PackageSummary:
        summary = PackageSummary(
            archive_key=obj.key,
            filename=posixpath.basename(obj.key),
            package_name=package_name_from_key(obj.key),
            size=obj.size,
            last_modified=obj.last_modified,
        )

        try:
            metadata = await self.sidecar.fetch(obj.key)
        except StoreError as e:
            self.logger.warning(f"Could not read sidecar for {obj.key}: {e}")
            metadata = None

        if metadata is None:
            try:
                metadata = await self.sidecar.generate_from_archive(obj.key)
                summary.sidecar = SIDECAR_GENERATED
            except (StoreError, ArchiveError) as e:
                self.logger.warning(f"No metadata available for {obj.key}: {e}")
                summary.sidecar = SIDECAR_UNAVAILABLE
                return summary

        summary.metadata = metadata
        summary.package_name = metadata.package_name or summary.package_name
        return summary

    async def list_packages(self) -> List[PackageSummary]:
        """
        Every archive under the package prefix, newest first

        Sidecar problems never fail the listing; a failed store listing does.
        """
        summaries = []
        for obj in await self._archive_objects():
            summaries.append(await self._summarize(obj))

        summaries.sort(key=lambda s: s.last_modified, reverse=True)
        generated = sum(1 for s in summaries if s.sidecar == SIDECAR_GENERATED)
        self.logger.debug(f"Listed {len(summaries)} packages ({generated} sidecars generated)")
        return summaries

    async def search_packages(self, query: str) -> List[Tuple[PackageSummary, float]]:
        """
        Fuzzy-match ``query`` against package and playlist names

        Returns ``(summary, score)`` pairs at or above the threshold, best
        match first.
        """
        needle = (query or "").strip().lower()
        if not needle:
            return []

        hits = []
        for summary in await self.list_packages():
            names = [summary.package_name]
            if summary.metadata is not None:
                names.extend(summary.metadata.playlist_names)
            score = max((fuzz.partial_ratio(needle, name.lower()) for name in names if name), default=0)
            if score >= self.search_threshold:
                hits.append((summary, score))

        hits.sort(key=lambda hit: hit[1], reverse=True)
        return hits

    async def backfill_sidecars(self, progress: Optional[Callable[[int, int, str], None]] = None) -> BackfillReport:
        """Generate sidecars for every archive that lacks one"""
        report = BackfillReport()
        archives = await self._archive_objects()

        for index, obj in enumerate(archives, 1):
            if progress is not None:
                progress(index, len(archives), obj.key)
            try:
                if await self.sidecar.fetch(obj.key) is not None:
                    report.skipped.append(obj.key)
                    continue
                await self.sidecar.generate_from_archive(obj.key)
                report.generated.append(obj.key)
            except (StoreError, ArchiveError) as e:
                self.logger.error(f"Sidecar backfill failed for {obj.key}: {e}")
                report.failed[obj.key] = str(e)

        self.logger.info(
            f"Sidecar backfill: {len(report.generated)} generated, "
            f"{len(report.skipped)} already present, {len(report.failed)} failed"
        )
        return report

    # ==========================================================================
    # Structure and import
    # ==========================================================================

    @log_performance
    async def load_structure(self, archive_key: str) -> PackageStructure:
        """
        Parse an archive's manifest and playlist files without importing

        Raises:
            NotFoundError: No such archive
            TransportError: The download failed
            ArchiveError: The archive is not a readable package
        """
        data = await self.store.get(archive_key)
        with ArchiveReader(data, source=archive_key) as reader:
            raw_manifest = reader.manifest()
            playlists = [PlaylistExport.from_dict(raw, where=name) for name, raw in reader.playlist_files()]

        if not playlists:
            raise ArchiveError(f"{archive_key} contains no playlist files", details={'key': archive_key})

        required: Dict[str, None] = {}
        for playlist in playlists:
            for filename in playlist.filenames:
                required.setdefault(filename, None)

        return PackageStructure(
            archive_key=archive_key,
            package_name=package_name_from_key(archive_key),
            manifest=VideoLibraryExport.from_dict(raw_manifest) if raw_manifest is not None else None,
            playlists=playlists,
            required_filenames=list(required),
        )

    def import_as_playlists(self, structure: PackageStructure, current_videos: Sequence[Video]) -> ImportResult:
        """
        Rebuild the package's playlists against the current catalog

        Filenames not in ``current_videos`` are reported as missing and left
        out; a playlist left with no videos is skipped. Playlists get fresh
        ids and the import suffix on their names.
        """
        by_filename: Dict[str, Video] = {}
        for video in current_videos:
            by_filename.setdefault(video.filename, video)
        snapshot = {v.id: v for v in current_videos}

        result = ImportResult()
        result.missing_videos = [f for f in structure.required_filenames if f not in by_filename]
        if result.missing_videos:
            self.logger.warning(
                f"{len(result.missing_videos)} videos from {structure.archive_key} are not in the catalog"
            )

        for export in structure.playlists:
            order: List[str] = []
            for filename in export.filenames:
                video = by_filename.get(filename)
                if video is not None and video.id not in order:
                    order.append(video.id)

            if not order:
                self.logger.warning(f"Skipping playlist '{export.name}': no videos available")
                result.skipped_playlists.append(export.name)
                continue

            now = self._clock()
            result.playlists.append(Playlist(
                id=new_playlist_id(),
                name=f"{export.name}{self.import_name_suffix}",
                description=export.description,
                video_order=order,
                date_created=now,
                last_modified=now,
                metadata=compute_metadata(order, snapshot),
            ))

        if not result.playlists:
            result.errors.append("No playlists could be imported - all videos are missing")
        return result

    # ==========================================================================
    # Download and delete
    # ==========================================================================

    async def download(self, archive_key: str, destination: Union[str, Path]) -> Path:
        """
        Save an archive locally

        ``destination`` is a directory (the archive keeps its file name) or a
        full file path.
        """
        data = await self.store.get(archive_key)
        destination = Path(destination).expanduser()
        if destination.is_dir() or not destination.suffix:
            target = destination / posixpath.basename(archive_key)
        else:
            target = destination
        ensure_directory(target.parent)
        await asyncio.to_thread(target.write_bytes, data)
        self.logger.info(f"Downloaded {archive_key} to {target}")
        return target

    async def delete(self, archive_key: str) -> PackageDeleteResult:
        """
        Delete an archive, then its sidecar

        An archive that is already gone counts as deleted. If the archive
        delete fails the sidecar is left in place.
        """
        try:
            await self.store.delete(archive_key)
        except NotFoundError:
            self.logger.debug(f"Archive {archive_key} was already gone")
        except StoreError as e:
            self.logger.error(f"Failed to delete archive {archive_key}: {e}")
            return PackageDeleteResult(
                archive_key=archive_key,
                archive_deleted=False,
                sidecar_deleted=False,
                error=str(e),
            )

        sidecar_deleted = await self.sidecar.delete(archive_key)
        self.logger.info(f"Deleted package {archive_key}")
        return PackageDeleteResult(
            archive_key=archive_key,
            archive_deleted=True,
            sidecar_deleted=sidecar_deleted,
            error=None if sidecar_deleted else "sidecar could not be deleted",
        )
