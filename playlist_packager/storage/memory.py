"""In-process object store for dry runs and tests.

Operations complete immediately but keep the async interface. Every call is
recorded in ``calls`` as ``(operation, key_or_prefix)`` so callers can check
how much traffic an operation generated.
"""

from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from ..core.exceptions import NotFoundError
from ..utils.helpers import content_hash, utc_now
from .base import ObjectInfo, ObjectStore


class MemoryObjectStore(ObjectStore):
    """
    Dictionary backed object store

    Not thread-safe; use one instance per event loop.
    """

    def __init__(
        self,
        bucket: str = "memory",
        public_base_url: str = "",
        clock: Optional[Callable[[], datetime]] = None,
    ):
        super().__init__(bucket, public_base_url)
        self._clock = clock or utc_now
        self._objects: Dict[str, Tuple[bytes, ObjectInfo]] = {}
        self.calls: List[Tuple[str, str]] = []

    async def list_objects(self, prefix: str = "", max_keys: Optional[int] = None) -> List[ObjectInfo]:
        self.calls.append(("list", prefix))
        infos = [info for key, (_, info) in sorted(self._objects.items()) if key.startswith(prefix)]
        return infos[:max_keys] if max_keys is not None else infos

    async def get(self, key: str) -> bytes:
        self.calls.append(("get", key))
        if key not in self._objects:
            raise NotFoundError(f"Object not found: {key}", key=key)
        return self._objects[key][0]

    async def put(
        self,
        key: str,
        data: bytes,
        content_type: str = "application/octet-stream",
        metadata: Optional[Dict[str, str]] = None,
    ) -> ObjectInfo:
        self.calls.append(("put", key))
        info = ObjectInfo(
            key=key,
            size=len(data),
            last_modified=self._clock(),
            etag=content_hash(data),
            content_type=content_type,
            metadata=dict(metadata or {}),
        )
        self._objects[key] = (bytes(data), info)
        return info

    async def delete(self, key: str) -> None:
        self.calls.append(("delete", key))
        if key not in self._objects:
            raise NotFoundError(f"Object not found: {key}", key=key)
        del self._objects[key]

    async def exists(self, key: str) -> bool:
        self.calls.append(("exists", key))
        return key in self._objects

    def count_calls(self, operation: str, key: Optional[str] = None) -> int:
        """Number of recorded calls for ``operation``, optionally for one key"""
        return sum(1 for op, k in self.calls if op == operation and (key is None or k == key))

    def keys(self) -> List[str]:
        return sorted(self._objects)
