"""
Utility functions and helpers for Playlist-Packager
Common functions for key/filename handling, formatting and small persistence helpers
"""

import hashlib
import json
import os
import re
import secrets
import string
import unicodedata
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Union


# Path separators and characters object stores or filesystems reject
_UNSAFE_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f\x7f]')
_KEY_CHARS = re.compile(r'[^\w\-.()]')

SIZE_LABELS = ('B', 'KB', 'MB', 'GB', 'TB')


def _ascii(text: str) -> str:
    return unicodedata.normalize('NFKD', text).encode('ascii', 'ignore').decode('ascii')


def sanitize_filename(filename: str, max_length: int = 200, replace_spaces: bool = True) -> str:
    """
    Reduce an uploaded file's name to something safe inside a store key

    Accents are folded to ASCII, separators and reserved characters are
    dropped, and an over long name is cut before its extension so the
    extension survives. Empty results become ``"unknown"``.
    """
    cleaned = _UNSAFE_CHARS.sub('', _ascii((filename or '').strip()))
    cleaned = ' '.join(cleaned.split())
    if replace_spaces:
        cleaned = cleaned.replace(' ', '_')
    cleaned = _KEY_CHARS.sub('_', cleaned).strip(' ._')

    if len(cleaned) > max_length:
        stem, suffix = os.path.splitext(cleaned)
        room = max_length - len(suffix)
        cleaned = stem[:room] + suffix if suffix and room > 0 else cleaned[:max_length]

    return cleaned if cleaned not in ('', '.', '..') else "unknown"


def slugify(name: str) -> str:
    """
    Convert a display name into a lowercase, dash separated slug

    ``"High Energy Set!"`` becomes ``"high-energy-set"``. Returns an empty
    string when nothing usable is left; callers pick their own fallback.
    """
    slug = re.sub(r'\s+', '-', _ascii(name or '').strip().lower())
    slug = re.sub(r'[^a-z0-9-]', '', slug)
    return re.sub(r'-{2,}', '-', slug).strip('-')


def random_token(length: int = 6) -> str:
    """Short lowercase alphanumeric token used to keep upload keys unique"""
    alphabet = string.ascii_lowercase + string.digits
    return ''.join(secrets.choice(alphabet) for _ in range(length))


def format_duration(seconds: Union[int, float]) -> str:
    """Clip length for listings: ``M:SS``, or ``H:MM:SS`` past an hour"""
    minutes, secs = divmod(max(int(seconds or 0), 0), 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def format_duration_hms(seconds: Union[int, float]) -> str:
    """
    Format duration as zero padded ``HH:MM:SS`` (device manifest format)

    Fractions of a second are floored; negative values are treated as zero.
    """
    total = max(int(seconds or 0), 0)
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def format_file_size(size_bytes: int) -> str:
    """Human readable size: whole bytes below 1 KB, one decimal above"""
    size = float(max(size_bytes, 0))
    for label in SIZE_LABELS:
        if size < 1024 or label == SIZE_LABELS[-1]:
            break
        size /= 1024
    if label == 'B':
        return f"{int(size)} B"
    return f"{size:.1f} {label}"


def content_hash(data: bytes, algorithm: str = 'md5') -> str:
    """Hex digest of ``data``; used as the etag of stored objects"""
    return hashlib.new(algorithm, data).hexdigest()


def utc_now() -> datetime:
    """Timezone aware current time in UTC"""
    return datetime.now(timezone.utc)


def get_current_timestamp() -> str:
    """Get current UTC timestamp in ISO format"""
    return utc_now().isoformat()


def parse_timestamp(timestamp: Union[str, datetime, None]) -> Optional[datetime]:
    """
    Parse an ISO timestamp into an aware datetime

    Naive values are assumed to be UTC. Returns None for empty or
    unparseable input.
    """
    if timestamp is None or timestamp == "":
        return None
    if isinstance(timestamp, datetime):
        dt = timestamp
    else:
        try:
            dt = datetime.fromisoformat(str(timestamp).replace('Z', '+00:00'))
        except ValueError:
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def format_timestamp(timestamp: Union[str, datetime]) -> str:
    """Render a stored timestamp as ``YYYY-MM-DD HH:MM:SS``; unparseable input is echoed back"""
    dt = parse_timestamp(timestamp)
    return str(timestamp) if dt is None else dt.strftime('%Y-%m-%d %H:%M:%S')


def compact_timestamp(dt: datetime) -> str:
    """ISO 8601 basic format in UTC, e.g. ``20240105T201500Z``"""
    return dt.astimezone(timezone.utc).strftime('%Y%m%dT%H%M%SZ')


def ensure_directory(path: Union[str, Path]) -> Path:
    directory = Path(path)
    directory.mkdir(parents=True, exist_ok=True)
    return directory


def write_json_atomic(path: Union[str, Path], data: Any) -> None:
    """
    Write JSON to ``path`` through a temporary file and ``os.replace``

    Readers either see the previous file or the complete new one.
    """
    target = Path(path)
    ensure_directory(target.parent)
    temp_path = target.with_name(f".{target.name}.tmp")
    with open(temp_path, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
        f.flush()
        os.fsync(f.fileno())
    os.replace(temp_path, target)


def read_json(path: Union[str, Path], default: Any = None) -> Any:
    """
    Read a JSON file, returning ``default`` when the file does not exist

    Raises:
        ValueError: If the file exists but is not valid JSON
    """
    target = Path(path)
    if not target.exists():
        return default
    with open(target, 'r', encoding='utf-8') as f:
        return json.load(f)
