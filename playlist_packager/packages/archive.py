"""
Archive layout and ZIP serialization

Devices expect this exact tree:

    content/
      packages/
        <video-filename>
        metadata.json
        thumbnails/<video-stem>.jpg
      playlists/
        <playlist-slug>.json

Archives are written deterministically: entry order follows insertion and
every entry carries the package's creation time, so the same package always
serializes to the same bytes.
"""

import io
import json
import posixpath
import re
import zipfile
import zlib
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from ..core.exceptions import ArchiveError
from ..utils.helpers import compact_timestamp, slugify


CONTENT_ROOT = "content/"
PACKAGES_DIR = "content/packages/"
THUMBNAILS_DIR = "content/packages/thumbnails/"
PLAYLISTS_DIR = "content/playlists/"
MANIFEST_PATH = PACKAGES_DIR + "metadata.json"

DEFAULT_PLAYLIST_FILE = "default.json"
DEFAULT_PLAYLIST_NAME = "Default Playlist"

ARCHIVE_SUFFIX = "-package"

# <slug>-20240105T201500Z-package.zip
_CURRENT_KEY_PATTERN = re.compile(r'-\d{8}T\d{6}Z-package\.[A-Za-z0-9]+$')
# <name>-2024-01-05T20-15-00-dbtv-package.zip
_LEGACY_KEY_PATTERN = re.compile(r'(?:-\d{4}-\d{2}-\d{2}T\d{2}-\d{2}-\d{2})?-dbtv-package\.[A-Za-z0-9]+$')


# ==============================================================================
# Paths and keys
# ==============================================================================

def video_entry(filename: str) -> str:
    return PACKAGES_DIR + filename


def thumbnail_relpath(filename: str) -> str:
    """Thumbnail path as referenced from the manifest (relative to packages/)"""
    stem, _ = posixpath.splitext(filename)
    return f"thumbnails/{stem}.jpg"


def thumbnail_entry(filename: str) -> str:
    return PACKAGES_DIR + thumbnail_relpath(filename)


def playlist_entry(playlist_file: str) -> str:
    return PLAYLISTS_DIR + playlist_file


def playlist_filename(name: str, taken: Optional[set] = None) -> str:
    """
    File name for a playlist inside the archive

    ``"Chill Vibes"`` -> ``chill-vibes.json``. Names without usable
    characters fall back to ``playlist.json``; names already in ``taken``
    get ``-2``, ``-3`` appended.
    """
    base = slugify(name) or "playlist"
    candidate = f"{base}.json"
    counter = 2
    while taken and candidate in taken:
        candidate = f"{base}-{counter}.json"
        counter += 1
    return candidate


def archive_key(package_name: str, created_at: datetime, prefix: str = "playlists/", extension: str = "zip") -> str:
    """Store key of a new archive, ``playlists/<slug>-<timestamp>-package.zip``"""
    slug = slugify(package_name) or "package"
    return f"{prefix}{slug}-{compact_timestamp(created_at)}{ARCHIVE_SUFFIX}.{extension}"


def package_name_from_key(key: str) -> str:
    """
    Best-effort display name recovered from an archive key

    ``playlists/friday-show-20240105T201500Z-package.zip`` -> ``Friday Show``
    """
    name = posixpath.basename(key)
    stripped = _CURRENT_KEY_PATTERN.sub('', name)
    if stripped == name:
        stripped = _LEGACY_KEY_PATTERN.sub('', name)
    if stripped == name:
        stripped = posixpath.splitext(name)[0]
    stripped = re.sub(r'[_-]+', ' ', stripped).strip()
    return re.sub(r'\b\w', lambda m: m.group(0).upper(), stripped) or name


# ==============================================================================
# Writing
# ==============================================================================

class ArchiveWriter:
    """
    In-memory ZIP builder

    JSON entries are deflated; media entries are stored as-is since video
    and JPEG data does not compress further.
    """

    def __init__(self, created_at: datetime, compression_level: int = 6):
        stamp = created_at.astimezone(timezone.utc) if created_at.tzinfo else created_at
        # ZIP cannot represent dates before 1980
        self._date_time = tuple(max(stamp, datetime(1980, 1, 1, tzinfo=stamp.tzinfo)).timetuple()[:6])
        self._compression_level = compression_level
        self._buffer = io.BytesIO()
        self._zip = zipfile.ZipFile(self._buffer, 'w')
        self._directories: set = set()
        self.entries: List[str] = []

    def _info(self, name: str, compress: bool) -> zipfile.ZipInfo:
        info = zipfile.ZipInfo(name, date_time=self._date_time)
        info.compress_type = zipfile.ZIP_DEFLATED if compress else zipfile.ZIP_STORED
        info.external_attr = (0o40755 << 16) | 0x10 if name.endswith('/') else 0o644 << 16
        return info

    def _ensure_parents(self, name: str) -> None:
        parts = name.split('/')[:-1]
        for depth in range(1, len(parts) + 1):
            directory = '/'.join(parts[:depth]) + '/'
            if directory not in self._directories:
                self._directories.add(directory)
                self._zip.writestr(self._info(directory, compress=False), b'')

    def add_directory(self, name: str) -> None:
        self._ensure_parents(name.rstrip('/') + '/x')

    def write_bytes(self, name: str, data: bytes, compress: bool = False) -> None:
        self._ensure_parents(name)
        info = self._info(name, compress)
        if compress:
            self._zip.writestr(info, data, compresslevel=self._compression_level)
        else:
            self._zip.writestr(info, data)
        self.entries.append(name)

    def write_json(self, name: str, payload: Dict[str, Any]) -> None:
        data = json.dumps(payload, indent=2, ensure_ascii=False).encode('utf-8')
        self.write_bytes(name, data, compress=True)

    def finish(self) -> bytes:
        self._zip.close()
        return self._buffer.getvalue()


# ==============================================================================
# Reading
# ==============================================================================

class ArchiveReader:
    """Read-only view over archive bytes"""

    def __init__(self, data: bytes, source: str = "archive"):
        self.source = source
        try:
            self._zip = zipfile.ZipFile(io.BytesIO(data))
        except zipfile.BadZipFile as e:
            raise ArchiveError(f"{source} is not a valid ZIP archive", details={'key': source}) from e

    def names(self) -> List[str]:
        return self._zip.namelist()

    def _read_entry(self, name: str) -> bytes:
        try:
            return self._zip.read(name)
        except KeyError as e:
            raise ArchiveError(f"{self.source}: missing entry {name}", details={'key': self.source, 'entry': name}) from e
        except (zipfile.BadZipFile, zlib.error, EOFError) as e:
            raise ArchiveError(
                f"{self.source}: entry {name} is corrupt",
                details={'key': self.source, 'entry': name},
            ) from e

    def _load_json(self, name: str) -> Any:
        data = self._read_entry(name)
        try:
            return json.loads(data.decode('utf-8'))
        except (ValueError, UnicodeDecodeError) as e:
            raise ArchiveError(
                f"{self.source}: {name} is not valid JSON",
                details={'key': self.source, 'entry': name},
            ) from e

    def manifest(self) -> Optional[Dict[str, Any]]:
        """Raw manifest JSON, or None when the archive has none"""
        if MANIFEST_PATH not in self._zip.namelist():
            return None
        data = self._load_json(MANIFEST_PATH)
        if not isinstance(data, dict):
            raise ArchiveError(f"{self.source}: manifest is not an object", details={'key': self.source})
        return data

    def playlist_files(self) -> List[Tuple[str, Dict[str, Any]]]:
        """``(file name, raw JSON)`` for every playlist file, in archive order"""
        result = []
        for name in self._zip.namelist():
            if not name.startswith(PLAYLISTS_DIR) or not name.endswith('.json'):
                continue
            relative = name[len(PLAYLISTS_DIR):]
            if '/' in relative:
                continue
            data = self._load_json(name)
            if not isinstance(data, dict):
                raise ArchiveError(f"{self.source}: {name} is not an object", details={'key': self.source, 'entry': name})
            result.append((relative, data))
        return result

    def read(self, name: str) -> bytes:
        return self._read_entry(name)

    def close(self) -> None:
        self._zip.close()

    def __enter__(self) -> "ArchiveReader":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
