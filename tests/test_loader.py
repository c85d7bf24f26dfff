"""Test package listing, import, download and deletion"""

import json
from datetime import datetime, timezone

import pytest

from playlist_packager.core.exceptions import ArchiveError
from playlist_packager.packages.archive import ArchiveWriter
from playlist_packager.packages.loader import SIDECAR_CACHED, SIDECAR_GENERATED, SIDECAR_UNAVAILABLE
from playlist_packager.packages.models import VideoLibraryExport
from playlist_packager.playlists import Playlist

from conftest import by_filename


@pytest.fixture
def abc(seeded_catalog):
    return {v.filename[0]: v for v in seeded_catalog.videos}


async def publish(builder, name, videos, *playlists):
    return await builder.publish(name, videos, list(playlists))


def playlist(name, *videos):
    return Playlist(id=f"pl-{name}", name=name, video_order=[v.id for v in videos])


def playlist_json(payload):
    """Archive bytes holding a single uncompressed playlist file"""
    writer = ArchiveWriter(datetime(2024, 1, 5, tzinfo=timezone.utc))
    writer.write_bytes("content/playlists/mix.json", json.dumps(payload).encode("utf-8"))
    return writer.finish()


class TestListPackages:

    @pytest.mark.asyncio
    async def test_missing_sidecar_heals_itself(self, builder, loader, sidecar, store, abc):
        result = await publish(builder, "Friday Show", [abc['a'], abc['b']], playlist("Mix", abc['a']))
        await store.delete(sidecar.key_for(result.archive_key))

        [first] = await loader.list_packages()
        assert first.sidecar == SIDECAR_GENERATED
        assert first.metadata.playlist_names == ["Mix", "Default Playlist"]

        gets_before = store.count_calls("get", result.archive_key)
        [second] = await loader.list_packages()
        assert second.sidecar == SIDECAR_CACHED
        assert store.count_calls("get", result.archive_key) == gets_before

    @pytest.mark.asyncio
    async def test_newest_first(self, builder, loader, abc):
        older = await publish(builder, "Older", [abc['a']])
        newer = await publish(builder, "Newer", [abc['b']])

        keys = [s.archive_key for s in await loader.list_packages()]
        assert keys == [newer.archive_key, older.archive_key]

    @pytest.mark.asyncio
    async def test_unreadable_archive_is_listed_without_metadata(self, loader, store):
        await store.put("playlists/broken-package.zip", b"garbage")

        [summary] = await loader.list_packages()
        assert summary.sidecar == SIDECAR_UNAVAILABLE
        assert summary.metadata is None
        assert summary.package_name == "Broken Package"

    @pytest.mark.asyncio
    async def test_search(self, builder, loader, abc):
        await publish(builder, "Friday Show", [abc['a']])
        await publish(builder, "Ambient Morning", [abc['b']])

        hits = await loader.search_packages("friday")
        assert hits[0][0].package_name == "Friday Show"
        assert all(score >= loader.search_threshold for _, score in hits)
        assert await loader.search_packages("   ") == []

    @pytest.mark.asyncio
    async def test_backfill(self, builder, loader, sidecar, store, abc):
        kept = await publish(builder, "Kept", [abc['a']])
        lost = await publish(builder, "Lost", [abc['b']])
        await store.delete(sidecar.key_for(lost.archive_key))
        await store.put("playlists/broken-package.zip", b"garbage")
        seen = []

        report = await loader.backfill_sidecars(lambda index, total, key: seen.append((index, total)))

        assert report.generated == [lost.archive_key]
        assert report.skipped == [kept.archive_key]
        assert list(report.failed) == ["playlists/broken-package.zip"]
        assert seen == [(1, 3), (2, 3), (3, 3)]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("duration", ["1:30", [1], {"minutes": 1}])
    async def test_bad_number_in_one_archive_does_not_break_listing(self, builder, loader, store, abc, duration):
        good = await publish(builder, "Friday Show", [abc['a']])
        await store.put("playlists/bad-number-package.zip", playlist_json(
            {'name': "Mix", 'videos': [{'filename': "a.mp4", 'duration_seconds': duration}]}
        ))

        summaries = {s.archive_key: s for s in await loader.list_packages()}

        assert summaries["playlists/bad-number-package.zip"].sidecar == SIDECAR_UNAVAILABLE
        assert summaries["playlists/bad-number-package.zip"].metadata is None
        assert summaries[good.archive_key].metadata.package_name == "Friday Show"

        with pytest.raises(ArchiveError) as exc_info:
            await loader.load_structure("playlists/bad-number-package.zip")
        assert exc_info.value.details['field'] == 'duration_seconds'

    @pytest.mark.asyncio
    async def test_corrupt_entry_in_one_archive_does_not_break_listing(self, builder, loader, store, abc):
        good = await publish(builder, "Friday Show", [abc['a']])
        data = playlist_json({'name': "Mix Tape Content", 'videos': [{'filename': "a.mp4"}]})
        corrupt = data.replace(b"Mix Tape Content", b"Mix Tape C0ntent")
        assert corrupt != data
        await store.put("playlists/corrupt-package.zip", corrupt)

        summaries = {s.archive_key: s for s in await loader.list_packages()}

        assert summaries["playlists/corrupt-package.zip"].sidecar == SIDECAR_UNAVAILABLE
        assert summaries[good.archive_key].metadata is not None

        with pytest.raises(ArchiveError) as exc_info:
            await loader.load_structure("playlists/corrupt-package.zip")
        assert exc_info.value.details['entry'] == "content/playlists/mix.json"

        report = await loader.backfill_sidecars()
        assert list(report.failed) == ["playlists/corrupt-package.zip"]


class TestImport:

    @pytest.mark.asyncio
    async def test_round_trip_preserves_order(self, builder, loader, seeded_catalog, abc):
        result = await publish(
            builder, "Show", seeded_catalog.videos, playlist("Evening", abc['c'], abc['a'])
        )

        structure = await loader.load_structure(result.archive_key)
        assert structure.required_filenames == ["c.mp4", "a.mp4", "b.mp4"]

        imported = loader.import_as_playlists(structure, seeded_catalog.videos)
        assert imported.success
        assert imported.missing_videos == []
        evening, default = imported.playlists
        assert evening.name == "Evening (imported)"
        assert evening.video_order == [abc['c'].id, abc['a'].id]
        assert evening.id != "pl-Evening"
        assert evening.metadata.total_duration_seconds == 40.0
        assert default.video_order == [abc['a'].id, abc['b'].id, abc['c'].id]

    @pytest.mark.asyncio
    async def test_missing_videos_are_reported_and_empty_playlists_skipped(
        self, builder, loader, seeded_catalog, abc
    ):
        result = await publish(
            builder, "Show", [abc['a'], abc['c']],
            playlist("Only C", abc['c']), playlist("Both", abc['a'], abc['c']),
        )
        await seeded_catalog.delete(abc['c'].id)

        structure = await loader.load_structure(result.archive_key)
        imported = loader.import_as_playlists(structure, seeded_catalog.videos)

        assert imported.missing_videos == ["c.mp4"]
        assert imported.skipped_playlists == ["Only C"]
        assert [p.name for p in imported.playlists] == ["Both (imported)", "Default Playlist (imported)"]
        assert imported.playlists[0].video_order == [abc['a'].id]

    @pytest.mark.asyncio
    async def test_nothing_importable(self, builder, loader, seeded_catalog, abc):
        result = await publish(builder, "Show", [abc['c']], playlist("C", abc['c']))
        await seeded_catalog.delete(abc['c'].id)

        structure = await loader.load_structure(result.archive_key)
        imported = loader.import_as_playlists(structure, seeded_catalog.videos)

        assert not imported.success
        assert imported.errors == ["No playlists could be imported - all videos are missing"]

    @pytest.mark.asyncio
    async def test_imported_playlists_can_be_adopted(self, builder, loader, playlist_store, seeded_catalog, abc):
        result = await publish(builder, "Show", [abc['a'], abc['b']], playlist("Mix", abc['b']))
        structure = await loader.load_structure(result.archive_key)
        imported = loader.import_as_playlists(structure, seeded_catalog.videos)

        adopted = [playlist_store.adopt(p) for p in imported.playlists]
        assert [p.name for p in playlist_store.list()] == [p.name for p in adopted]
        assert playlist_store.get(adopted[0].id).video_order == [by_filename(seeded_catalog, "b.mp4").id]

    @pytest.mark.asyncio
    async def test_archive_without_playlists(self, loader, store):
        writer = ArchiveWriter(datetime(2024, 1, 5, tzinfo=timezone.utc))
        writer.write_json("content/packages/metadata.json", {'video_library': {'videos': {}}})
        await store.put("playlists/empty-package.zip", writer.finish())

        with pytest.raises(ArchiveError):
            await loader.load_structure("playlists/empty-package.zip")


class TestDownloadAndDelete:

    @pytest.mark.asyncio
    async def test_download_to_directory(self, builder, loader, store, abc, temp_dir):
        result = await publish(builder, "Show", [abc['a']])

        target = await loader.download(result.archive_key, temp_dir / "out")
        assert target.name == result.archive_key.split('/')[-1]
        assert target.read_bytes() == await store.get(result.archive_key)

        explicit = await loader.download(result.archive_key, temp_dir / "copy.zip")
        assert explicit == temp_dir / "copy.zip"
        assert explicit.exists()

    @pytest.mark.asyncio
    async def test_delete_removes_archive_and_sidecar(self, builder, loader, sidecar, store, abc):
        result = await publish(builder, "Show", [abc['a']])

        outcome = await loader.delete(result.archive_key)

        assert outcome.archive_deleted and outcome.sidecar_deleted
        assert outcome.error is None
        assert not await store.exists(result.archive_key)
        assert not await store.exists(sidecar.key_for(result.archive_key))
        assert await loader.list_packages() == []

    @pytest.mark.asyncio
    async def test_failed_archive_delete_keeps_sidecar(self, builder, loader, sidecar, store, abc):
        result = await publish(builder, "Show", [abc['a']])
        store.fail("delete", result.archive_key)

        outcome = await loader.delete(result.archive_key)

        assert not outcome.archive_deleted
        assert not outcome.sidecar_deleted
        assert await store.exists(sidecar.key_for(result.archive_key))

    @pytest.mark.asyncio
    async def test_failed_sidecar_delete_is_reported(self, builder, loader, sidecar, store, abc):
        result = await publish(builder, "Show", [abc['a']])
        store.fail("delete", sidecar.key_for(result.archive_key))

        outcome = await loader.delete(result.archive_key)

        assert outcome.archive_deleted
        assert not outcome.sidecar_deleted
        assert outcome.error == "sidecar could not be deleted"


class TestManifestNumbers:

    def test_non_numeric_manifest_fields_raise_archive_error(self):
        entry = {'mood': "ambient", 'category': "ambient_visuals", 'duration_seconds': "1:30"}
        with pytest.raises(ArchiveError) as exc_info:
            VideoLibraryExport.from_dict({'video_library': {'videos': {'a.mp4': entry}}})
        assert exc_info.value.details == {'field': 'duration_seconds', 'where': "manifest entry a.mp4"}

        with pytest.raises(ArchiveError):
            VideoLibraryExport.from_dict({'video_library': {'videos': {}, 'total_videos': [2]}})

    def test_missing_and_null_numbers_default_to_zero(self):
        entry = {'mood': "ambient", 'category': "ambient_visuals", 'duration_seconds': None}
        manifest = VideoLibraryExport.from_dict({'video_library': {'videos': {'a.mp4': entry}}})
        assert manifest.videos['a.mp4'].duration_seconds == 0
        assert manifest.total_videos == 1
        assert manifest.total_duration_seconds == 0
