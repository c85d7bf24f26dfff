"""Test object store backends"""

import pytest

from playlist_packager.core.exceptions import NotFoundError
from playlist_packager.storage import FilesystemObjectStore, MemoryObjectStore


@pytest.fixture
def fs_store(temp_dir):
    return FilesystemObjectStore(temp_dir, "bucket", public_base_url="https://cdn.example.com/")


class TestMemoryObjectStore:

    @pytest.mark.asyncio
    async def test_put_get_delete(self, clock):
        store = MemoryObjectStore(clock=clock)
        info = await store.put("videos/a.mp4", b"abc", "video/mp4", {'duration-seconds': '1.5'})

        assert info.size == 3
        assert info.etag == "900150983cd24fb0d6963f7d28e17f72"
        assert await store.get("videos/a.mp4") == b"abc"
        assert await store.exists("videos/a.mp4")

        await store.delete("videos/a.mp4")
        assert not await store.exists("videos/a.mp4")
        with pytest.raises(NotFoundError):
            await store.get("videos/a.mp4")
        with pytest.raises(NotFoundError):
            await store.delete("videos/a.mp4")

    @pytest.mark.asyncio
    async def test_list_by_prefix_and_limit(self):
        store = MemoryObjectStore()
        for key in ("videos/b.mp4", "videos/a.mp4", "thumbnails/a.jpg"):
            await store.put(key, b"x")

        listed = await store.list_objects("videos/")
        assert [info.key for info in listed] == ["videos/a.mp4", "videos/b.mp4"]
        assert len(await store.list_objects("videos/", max_keys=1)) == 1
        assert store.count_calls("list", "videos/") == 2

    def test_public_url(self):
        assert MemoryObjectStore().public_url("a.mp4") is None
        store = MemoryObjectStore(public_base_url="https://cdn.example.com/")
        assert store.public_url("/videos/a.mp4") == "https://cdn.example.com/videos/a.mp4"


class TestFilesystemObjectStore:

    @pytest.mark.asyncio
    async def test_round_trip_keeps_metadata(self, fs_store):
        await fs_store.put("videos/2024-01-05/a.mp4", b"data", "video/mp4", {'original-filename': 'a.mp4'})

        assert await fs_store.get("videos/2024-01-05/a.mp4") == b"data"
        [info] = await fs_store.list_objects("videos/")
        assert info.key == "videos/2024-01-05/a.mp4"
        assert info.content_type == "video/mp4"
        assert info.metadata == {'original-filename': 'a.mp4'}
        assert info.size == 4

    @pytest.mark.asyncio
    async def test_list_filters_prefix(self, fs_store):
        await fs_store.put("videos/a.mp4", b"1")
        await fs_store.put("playlists/p.zip", b"2")
        assert [i.key for i in await fs_store.list_objects("playlists/")] == ["playlists/p.zip"]
        assert len(await fs_store.list_objects()) == 2

    @pytest.mark.asyncio
    async def test_missing_objects(self, fs_store):
        assert await fs_store.list_objects("videos/") == []
        assert not await fs_store.exists("videos/nope.mp4")
        with pytest.raises(NotFoundError):
            await fs_store.get("videos/nope.mp4")
        with pytest.raises(NotFoundError):
            await fs_store.delete("videos/nope.mp4")

    @pytest.mark.asyncio
    async def test_delete_removes_object(self, fs_store):
        await fs_store.put("videos/a.mp4", b"1")
        await fs_store.delete("videos/a.mp4")
        assert not await fs_store.exists("videos/a.mp4")

    @pytest.mark.asyncio
    async def test_rejects_keys_outside_bucket(self, fs_store):
        with pytest.raises(ValueError):
            await fs_store.put("../escape.txt", b"x")
        with pytest.raises(ValueError):
            await fs_store.get("videos/")

    def test_public_url(self, fs_store):
        assert fs_store.public_url("videos/a.mp4") == "https://cdn.example.com/videos/a.mp4"
