"""Test the package metadata sidecar cache"""

import json

import pytest

from playlist_packager.core.exceptions import ArchiveError, NotFoundError
from playlist_packager.packages import PackageMetadata, sidecar_key_for
from playlist_packager.packages.sidecar import parse_sidecar
from playlist_packager.playlists import Playlist


ARCHIVE = "playlists/friday-show-20240105T201500Z-package.zip"


def sample_metadata(**overrides):
    fields = dict(
        package_name="Friday Show",
        filename="friday-show-20240105T201500Z-package.zip",
        playlist_count=1,
        video_count=2,
        playlist_names=["Mix"],
        total_size_bytes=2048,
        created_at="2024-01-05T20:15:00+00:00",
    )
    fields.update(overrides)
    return PackageMetadata(**fields)


class TestSidecarKeys:

    def test_key_replaces_extension(self):
        assert sidecar_key_for(ARCHIVE) == "playlists/friday-show-20240105T201500Z-package.meta.json"

    def test_key_for_other_extension(self):
        assert sidecar_key_for("playlists/x.bin") == "playlists/x.bin.meta.json"
        assert sidecar_key_for("playlists/x.pkg", extension="pkg") == "playlists/x.meta.json"


class TestParseSidecar:

    def test_current_format(self):
        metadata = sample_metadata()
        assert parse_sidecar(metadata.to_dict()) == metadata

    def test_legacy_format_is_migrated(self):
        legacy = {
            'version': '1.0',
            'packageName': 'Old Show',
            'playlistNames': ['A', 'B'],
            'videoCount': 4,
            'totalSize': 999,
            'createdAt': '2023-06-01T00:00:00Z',
        }
        metadata = parse_sidecar(legacy)
        assert metadata.total_size_bytes == 999
        assert metadata.playlist_count == 2
        assert metadata.format_version == "2.0"

    def test_rejects_unknown_version_and_garbage(self):
        with pytest.raises(ValueError):
            parse_sidecar({'formatVersion': '9.9', 'packageName': 'x'})
        with pytest.raises(ValueError):
            parse_sidecar(["not", "an", "object"])
        with pytest.raises(ValueError):
            parse_sidecar({'formatVersion': '2.0'})


class TestPackageMetadataCache:

    @pytest.mark.asyncio
    async def test_save_then_fetch(self, sidecar, store):
        metadata = sample_metadata()
        await sidecar.save(ARCHIVE, metadata)

        assert await sidecar.fetch(ARCHIVE) == metadata
        raw = json.loads(await store.get(sidecar.key_for(ARCHIVE)))
        assert raw['packageName'] == "Friday Show"
        assert raw['totalSizeBytes'] == 2048

    @pytest.mark.asyncio
    async def test_fetch_missing_returns_none(self, sidecar):
        assert await sidecar.fetch(ARCHIVE) is None

    @pytest.mark.asyncio
    async def test_corrupt_sidecar_is_treated_as_missing(self, sidecar, store):
        await store.put(sidecar.key_for(ARCHIVE), b"{broken")
        assert await sidecar.fetch(ARCHIVE) is None

    @pytest.mark.asyncio
    async def test_delete_is_non_fatal(self, sidecar, store):
        await sidecar.save(ARCHIVE, sample_metadata())
        assert await sidecar.delete(ARCHIVE)
        assert await sidecar.delete(ARCHIVE)

        await sidecar.save(ARCHIVE, sample_metadata())
        store.fail("delete", sidecar.key_for(ARCHIVE))
        assert not await sidecar.delete(ARCHIVE)


class TestGenerateFromArchive:

    @pytest.mark.asyncio
    async def test_counts_distinct_filenames(self, builder, sidecar, store, seeded_catalog):
        videos = seeded_catalog.videos
        a, b, c = videos
        playlists = [
            Playlist(id="1", name="One", video_order=[a.id, b.id]),
            Playlist(id="2", name="Two", video_order=[b.id]),
        ]
        result = await builder.publish("Show", [a, b, c], playlists)
        await store.delete(sidecar.key_for(result.archive_key))

        metadata = await sidecar.generate_from_archive(result.archive_key)

        assert metadata.video_count == 3
        assert metadata.playlist_names == ["One", "Two", "Default Playlist"]
        assert metadata.package_name == "Show"
        assert metadata.created_at == result.metadata.created_at
        assert await sidecar.fetch(result.archive_key) == metadata

    @pytest.mark.asyncio
    async def test_missing_archive(self, sidecar):
        with pytest.raises(NotFoundError):
            await sidecar.generate_from_archive(ARCHIVE)

    @pytest.mark.asyncio
    async def test_unreadable_archive(self, sidecar, store):
        await store.put(ARCHIVE, b"not a zip")
        with pytest.raises(ArchiveError):
            await sidecar.generate_from_archive(ARCHIVE)
