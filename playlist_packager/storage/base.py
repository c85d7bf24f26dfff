"""
Object store capability consumed by the catalog and package components.

The store is the single source of truth for videos, thumbnails and package
archives. Implementations are assumed strongly consistent for a single key
and only eventually consistent for listings.

Every operation except ``public_url`` is a coroutine. Failures are reported
as NotFoundError (key absent) or TransportError (anything else that went
wrong talking to the backend).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional


@dataclass(frozen=True)
class ObjectInfo:
    """Listing entry for one stored object"""
    key: str
    size: int
    last_modified: datetime
    etag: str
    content_type: str = "application/octet-stream"
    metadata: Dict[str, str] = field(default_factory=dict, compare=False)


class ObjectStore(ABC):
    """
    Abstract key/value blob store

    Attributes:
        bucket: Name of the bucket (or equivalent namespace) objects live in
        public_base_url: Base URL objects are publicly reachable under, if any
    """

    def __init__(self, bucket: str, public_base_url: str = ""):
        self.bucket = bucket
        self.public_base_url = public_base_url.rstrip('/')

    @abstractmethod
    async def list_objects(self, prefix: str = "", max_keys: Optional[int] = None) -> List[ObjectInfo]:
        """
        List objects whose key starts with ``prefix``, ordered by key

        Args:
            prefix: Key prefix to filter on
            max_keys: Upper bound on returned entries, None for all
        """

    @abstractmethod
    async def get(self, key: str) -> bytes:
        """Return the object's bytes; NotFoundError if it does not exist"""

    @abstractmethod
    async def put(
        self,
        key: str,
        data: bytes,
        content_type: str = "application/octet-stream",
        metadata: Optional[Dict[str, str]] = None,
    ) -> ObjectInfo:
        """Create or replace an object"""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Delete an object; NotFoundError if it does not exist"""

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """True when an object is stored under ``key``"""

    def public_url(self, key: str) -> Optional[str]:
        """Public URL of ``key``, or None when the store is not publicly exposed"""
        if not self.public_base_url:
            return None
        return f"{self.public_base_url}/{key.lstrip('/')}"

    async def close(self) -> None:
        """Release backend resources; the default store holds none"""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(bucket={self.bucket!r})"
