"""
Object store backed by a bucket directory on local disk.

Layout:
    <root>/<bucket>/<key>                      object bytes
    <root>/.objmeta/<bucket>/<key>.json        content type, user metadata, etag

Writes go through a temporary file and ``os.replace`` so a reader never sees
a half-written object. Blocking file I/O runs in a worker thread to keep the
event loop responsive.
"""

import asyncio
import json
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from ..core.exceptions import NotFoundError, TransportError
from ..utils.helpers import content_hash
from ..utils.logger import get_logger
from .base import ObjectInfo, ObjectStore


META_DIRECTORY = ".objmeta"


class FilesystemObjectStore(ObjectStore):
    """Bucket directory store; ETag is the MD5 of the object bytes"""

    def __init__(self, root: Path, bucket: str, public_base_url: str = ""):
        super().__init__(bucket, public_base_url)
        self.root = Path(root).expanduser().resolve()
        self.bucket_path = self.root / bucket
        self.meta_path = self.root / META_DIRECTORY / bucket
        self.logger = get_logger(__name__)

    def _object_path(self, key: str) -> Path:
        """Map a key to its file, refusing keys that escape the bucket"""
        if not key or key.endswith('/'):
            raise ValueError(f"Invalid object key: {key!r}")
        path = (self.bucket_path / key).resolve()
        try:
            path.relative_to(self.bucket_path)
        except ValueError as e:
            raise ValueError(f"Object key escapes bucket: {key!r}") from e
        return path

    def _meta_file(self, key: str) -> Path:
        return self.meta_path / f"{key}.json"

    # ==========================================================================
    # Blocking helpers (run in a worker thread)
    # ==========================================================================

    def _read_meta(self, key: str) -> Dict:
        meta_file = self._meta_file(key)
        if not meta_file.exists():
            return {}
        try:
            with open(meta_file, 'r', encoding='utf-8') as f:
                return json.load(f)
        except (OSError, ValueError):
            self.logger.warning(f"Unreadable object metadata for {key}, ignoring it")
            return {}

    def _info_for(self, key: str, path: Path) -> ObjectInfo:
        stat = path.stat()
        meta = self._read_meta(key)
        etag = meta.get('etag') or content_hash(path.read_bytes())
        return ObjectInfo(
            key=key,
            size=stat.st_size,
            last_modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
            etag=etag,
            content_type=meta.get('content_type', 'application/octet-stream'),
            metadata=meta.get('metadata', {}),
        )

    def _list_sync(self, prefix: str, max_keys: Optional[int]) -> List[ObjectInfo]:
        if not self.bucket_path.exists():
            return []
        infos = []
        for path in sorted(p for p in self.bucket_path.rglob('*') if p.is_file()):
            key = path.relative_to(self.bucket_path).as_posix()
            if path.name.startswith('.') or not key.startswith(prefix):
                continue
            infos.append(self._info_for(key, path))
            if max_keys is not None and len(infos) >= max_keys:
                break
        return infos

    def _get_sync(self, key: str) -> bytes:
        return self._object_path(key).read_bytes()

    def _atomic_write(self, path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, 'wb') as f:
                f.write(data)
            os.replace(tmp_name, path)
        except OSError:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def _put_sync(self, key: str, data: bytes, content_type: str, metadata: Dict[str, str]) -> ObjectInfo:
        path = self._object_path(key)
        etag = content_hash(data)
        self._atomic_write(path, data)
        meta = {'content_type': content_type, 'metadata': metadata, 'etag': etag}
        self._atomic_write(self._meta_file(key), json.dumps(meta).encode('utf-8'))
        return self._info_for(key, path)

    def _delete_sync(self, key: str) -> None:
        self._object_path(key).unlink()
        meta_file = self._meta_file(key)
        if meta_file.exists():
            meta_file.unlink()

    # ==========================================================================
    # ObjectStore interface
    # ==========================================================================

    async def _run(self, operation: str, key: str, func, *args):
        try:
            return await asyncio.to_thread(func, *args)
        except FileNotFoundError as e:
            raise NotFoundError(f"Object not found: {key}", key=key) from e
        except OSError as e:
            raise TransportError(
                f"Store {operation} failed for {key}: {e}",
                key=key,
                details={'operation': operation, 'original_error': str(e)},
            ) from e

    async def list_objects(self, prefix: str = "", max_keys: Optional[int] = None) -> List[ObjectInfo]:
        return await self._run("list", prefix, self._list_sync, prefix, max_keys)

    async def get(self, key: str) -> bytes:
        return await self._run("get", key, self._get_sync, key)

    async def put(
        self,
        key: str,
        data: bytes,
        content_type: str = "application/octet-stream",
        metadata: Optional[Dict[str, str]] = None,
    ) -> ObjectInfo:
        info = await self._run("put", key, self._put_sync, key, bytes(data), content_type, dict(metadata or {}))
        self.logger.debug(f"Stored {key} ({info.size} bytes)")
        return info

    async def delete(self, key: str) -> None:
        await self._run("delete", key, self._delete_sync, key)
        self.logger.debug(f"Deleted {key}")

    async def exists(self, key: str) -> bool:
        return await self._run("exists", key, lambda: self._object_path(key).is_file())
