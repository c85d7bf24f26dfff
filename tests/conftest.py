"""Test configuration and fixtures"""

import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pytest
import pytest_asyncio

from playlist_packager.catalog import CatalogReconciler, CatalogState
from playlist_packager.core.events import EventBus
from playlist_packager.core.exceptions import TransportError
from playlist_packager.packages import PackageBuilder, PackageLoader, PackageMetadataCache
from playlist_packager.playlists import PlaylistStore
from playlist_packager.storage import MemoryObjectStore


class Clock:
    """Deterministic clock advancing one second per call"""

    def __init__(self, start: Optional[datetime] = None, step: timedelta = timedelta(seconds=1)):
        self.now = start or datetime(2024, 1, 5, 20, 15, 0, tzinfo=timezone.utc)
        self.step = step

    def __call__(self) -> datetime:
        value = self.now
        self.now += self.step
        return value


class FlakyStore(MemoryObjectStore):
    """
    Memory store whose operations can be told to fail

    ``fail('delete', key, times=1)`` makes the next delete of ``key`` raise a
    TransportError; ``times=None`` fails until ``heal`` is called.
    """

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self._failures: Dict[Tuple[str, Optional[str]], Optional[int]] = {}
        self.failed_calls: List[Tuple[str, str]] = []

    def fail(self, operation: str, key: Optional[str] = None, times: Optional[int] = None) -> None:
        self._failures[(operation, key)] = times

    def heal(self) -> None:
        self._failures.clear()

    def _check(self, operation: str, key: str) -> None:
        for target in ((operation, key), (operation, None)):
            if target not in self._failures:
                continue
            remaining = self._failures[target]
            if remaining is not None:
                if remaining <= 0:
                    continue
                self._failures[target] = remaining - 1
            self.failed_calls.append((operation, key))
            raise TransportError(f"simulated {operation} failure", key=key)

    async def list_objects(self, prefix: str = "", max_keys: Optional[int] = None):
        self._check("list", prefix)
        return await super().list_objects(prefix, max_keys)

    async def get(self, key: str) -> bytes:
        self._check("get", key)
        return await super().get(key)

    async def put(self, key, data, content_type="application/octet-stream", metadata=None):
        self._check("put", key)
        return await super().put(key, data, content_type, metadata)

    async def delete(self, key: str) -> None:
        self._check("delete", key)
        return await super().delete(key)


class RecordingSleep:
    """Stand-in for asyncio.sleep that records requested delays"""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


async def put_video(
    store: MemoryObjectStore,
    filename: str,
    duration: float = 10.0,
    data: Optional[bytes] = None,
    day: str = "2024-01-05",
    thumbnail: bool = False,
) -> str:
    """Upload a fake video the way the ingestor lays it out; returns its key"""
    key = f"videos/{day}/{filename}"
    await store.put(
        key,
        data if data is not None else f"video:{filename}".encode(),
        "video/mp4",
        {'original-filename': filename, 'duration-seconds': str(duration)},
    )
    if thumbnail:
        stem = filename.rsplit('.', 1)[0]
        await store.put(f"thumbnails/{day}/{stem}_thumb.jpg", f"thumb:{filename}".encode(), "image/jpeg")
    return key


def by_filename(catalog: CatalogReconciler, filename: str):
    for video in catalog.videos:
        if video.filename == filename:
            return video
    raise KeyError(filename)


@pytest.fixture
def temp_dir():
    """Create temporary directory for tests"""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def store(clock):
    return FlakyStore(bucket="test-bucket", clock=clock)


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def sleeper():
    return RecordingSleep()


@pytest.fixture
def catalog(store, bus, sleeper):
    return CatalogReconciler(store, state=CatalogState(), bus=bus, sleep=sleeper)


@pytest_asyncio.fixture
async def seeded_catalog(store, catalog):
    """Catalog holding a.mp4 (10s), b.mp4 (20s) and c.mp4 (30s); a has a thumbnail"""
    await put_video(store, "a.mp4", duration=10.0, thumbnail=True)
    await put_video(store, "b.mp4", duration=20.0)
    await put_video(store, "c.mp4", duration=30.0)
    await catalog.refresh()
    return catalog


@pytest.fixture
def playlist_store(catalog, clock):
    store = PlaylistStore(catalog, clock=clock)
    yield store
    store.close()


@pytest.fixture
def sidecar(store):
    return PackageMetadataCache(store)


@pytest.fixture
def builder(store, sidecar, clock):
    return PackageBuilder(store, sidecar, clock=clock)


@pytest.fixture
def loader(store, sidecar, clock):
    return PackageLoader(store, sidecar, clock=clock)
