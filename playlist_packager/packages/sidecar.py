"""
Package metadata cache

Every archive has a small JSON sidecar next to it so listings never need to
download archives. A missing sidecar is regenerated from the archive once
and saved, so each miss heals itself.
"""

import json
import posixpath
import re
from typing import Any, Callable, Dict, Optional

from ..core.exceptions import NotFoundError, StoreError
from ..storage.base import ObjectStore
from ..utils.helpers import get_current_timestamp, utc_now
from ..utils.logger import get_logger
from .archive import ArchiveReader, package_name_from_key
from .models import SIDECAR_FORMAT_VERSION, PackageMetadata, PlaylistExport, VideoLibraryExport


SIDECAR_SUFFIX = ".meta.json"
SIDECAR_CONTENT_TYPE = "application/json"


def sidecar_key_for(archive_key: str, extension: str = "zip") -> str:
    """``playlists/x-package.zip`` -> ``playlists/x-package.meta.json``"""
    pattern = re.compile(r'\.' + re.escape(extension) + r'$')
    if pattern.search(archive_key):
        return pattern.sub(SIDECAR_SUFFIX, archive_key)
    return archive_key + SIDECAR_SUFFIX


def _migrate_1_0(data: Dict[str, Any]) -> Dict[str, Any]:
    migrated = dict(data)
    migrated['totalSizeBytes'] = migrated.pop('totalSize', 0)
    migrated.pop('version', None)
    migrated['formatVersion'] = SIDECAR_FORMAT_VERSION
    return migrated


_MIGRATIONS: Dict[str, Callable[[Dict[str, Any]], Dict[str, Any]]] = {
    "1.0": _migrate_1_0,
}


def parse_sidecar(data: Any) -> PackageMetadata:
    """
    Validate raw sidecar JSON, migrating older formats

    Raises:
        ValueError: Not an object, unknown format version or bad field types
    """
    if not isinstance(data, dict):
        raise ValueError("sidecar is not a JSON object")

    version = data.get('formatVersion') or data.get('version')
    if version != SIDECAR_FORMAT_VERSION:
        migrate = _MIGRATIONS.get(str(version))
        if migrate is None:
            raise ValueError(f"unsupported sidecar format version: {version!r}")
        data = migrate(data)

    names = data.get('playlistNames', [])
    if not isinstance(names, list):
        raise ValueError("playlistNames must be a list")
    try:
        return PackageMetadata(
            package_name=str(data['packageName']),
            filename=str(data.get('filename', '')),
            playlist_count=int(data.get('playlistCount', len(names))),
            video_count=int(data.get('videoCount', 0)),
            playlist_names=[str(n) for n in names],
            total_size_bytes=int(data.get('totalSizeBytes', 0)),
            created_at=str(data.get('createdAt', '')),
            format_version=SIDECAR_FORMAT_VERSION,
        )
    except KeyError as e:
        raise ValueError(f"sidecar is missing field {e}") from e
    except (TypeError, ValueError) as e:
        raise ValueError(f"sidecar has an invalid field: {e}") from e


def metadata_from_archive(archive_key: str, data: bytes) -> PackageMetadata:
    """
    Summarize archive bytes

    ``video_count`` counts distinct filenames across all playlist files, so
    a video in three playlists counts once.

    Raises:
        ArchiveError: The bytes are not a readable package
    """
    with ArchiveReader(data, source=archive_key) as reader:
        raw_manifest = reader.manifest()
        playlists = [
            PlaylistExport.from_dict(raw, where=name)
            for name, raw in reader.playlist_files()
        ]

    filenames = set()
    for playlist in playlists:
        filenames.update(playlist.filenames)

    created_at = ""
    if raw_manifest is not None:
        created_at = VideoLibraryExport.from_dict(raw_manifest).last_updated

    return PackageMetadata(
        package_name=package_name_from_key(archive_key),
        filename=posixpath.basename(archive_key),
        playlist_count=len(playlists),
        video_count=len(filenames),
        playlist_names=[p.name for p in playlists],
        total_size_bytes=len(data),
        created_at=created_at or get_current_timestamp(),
    )


class PackageMetadataCache:
    """
    Sidecar reads and writes against the object store

    Args:
        store: Object store holding archives and sidecars
        archive_extension: Extension of archive keys (``zip``)
    """

    def __init__(self, store: ObjectStore, archive_extension: str = "zip"):
        self.store = store
        self.archive_extension = archive_extension
        self.logger = get_logger(__name__)

    def key_for(self, archive_key: str) -> str:
        return sidecar_key_for(archive_key, self.archive_extension)

    async def save(self, archive_key: str, metadata: PackageMetadata) -> None:
        """
        Write the sidecar for ``archive_key``

        Raises:
            StoreError: The write failed
        """
        payload = json.dumps(metadata.to_dict(), indent=2).encode('utf-8')
        await self.store.put(
            self.key_for(archive_key),
            payload,
            content_type=SIDECAR_CONTENT_TYPE,
            metadata={'archive-key': archive_key, 'format-version': metadata.format_version},
        )
        self.logger.debug(f"Saved sidecar for {archive_key}")

    async def fetch(self, archive_key: str) -> Optional[PackageMetadata]:
        """
        Read the sidecar, or None when it does not exist yet

        A corrupt or unsupported sidecar is treated like a missing one so the
        caller regenerates it. Transport failures propagate.
        """
        key = self.key_for(archive_key)
        try:
            raw = await self.store.get(key)
        except NotFoundError:
            self.logger.debug(f"No sidecar for {archive_key}")
            return None

        try:
            return parse_sidecar(json.loads(raw.decode('utf-8')))
        except (ValueError, UnicodeDecodeError) as e:
            self.logger.warning(f"Ignoring unreadable sidecar {key}: {e}")
            return None

    async def delete(self, archive_key: str) -> bool:
        """Remove the sidecar; failures are logged and reported, never raised"""
        key = self.key_for(archive_key)
        try:
            await self.store.delete(key)
            return True
        except NotFoundError:
            return True
        except StoreError as e:
            self.logger.warning(f"Could not delete sidecar {key}: {e}")
            return False

    async def generate_from_archive(self, archive_key: str) -> PackageMetadata:
        """
        Rebuild the sidecar from the archive itself and persist it

        Saving is best effort: a failed write is logged and the computed
        metadata is still returned.

        Raises:
            StoreError: The archive could not be downloaded
            ArchiveError: The archive is not a readable package
        """
        started = utc_now()
        data = await self.store.get(archive_key)
        metadata = metadata_from_archive(archive_key, data)

        try:
            await self.save(archive_key, metadata)
        except StoreError as e:
            self.logger.warning(f"Generated sidecar for {archive_key} but could not save it: {e}")
        else:
            elapsed = (utc_now() - started).total_seconds()
            self.logger.info(
                f"Generated sidecar for {archive_key} "
                f"({metadata.playlist_count} playlists, {metadata.video_count} videos, {elapsed:.2f}s)"
            )
        return metadata
