"""Test package building, validation, serialization and publishing"""

import json
import re

import pytest

from playlist_packager.core.exceptions import IntegrityError, TransportError
from playlist_packager.packages import (
    Category,
    KeywordMoodPolicy,
    Mood,
    MoodPolicy,
    estimate_package_size,
    validate_integrity,
)
from playlist_packager.packages.archive import ArchiveReader, MANIFEST_PATH
from playlist_packager.playlists import Playlist

from conftest import by_filename


@pytest.fixture
def abc(seeded_catalog):
    return {v.filename[0]: v for v in seeded_catalog.videos}


def make_playlist(name, *videos):
    return Playlist(id=f"pl-{name}", name=name, video_order=[v.id for v in videos])


class TestIntegrity:

    @pytest.mark.asyncio
    async def test_partition_keeps_playlist_order(self, abc):
        playlist = Playlist(id="p", name="p", video_order=[abc['c'].id, "ghost", abc['a'].id, "gone"])
        report = validate_integrity(playlist, [abc['a'], abc['c']])

        assert report.valid_ids == [abc['c'].id, abc['a'].id]
        assert report.missing_ids == ["ghost", "gone"]
        assert not report.valid
        assert set(report.valid_ids) | set(report.missing_ids) == set(playlist.video_order)

    @pytest.mark.asyncio
    async def test_estimate_package_size(self, abc):
        videos = [abc['a'], abc['b']]
        expected = sum(v.file_size_bytes for v in videos) + 2 * 50 * 1024
        assert estimate_package_size(videos) == expected


class TestMoodPolicy:

    def test_keyword_policy(self):
        policy = KeywordMoodPolicy()
        assert policy.mood_for("High Energy Set") == Mood.HIGH_ENERGY
        assert policy.mood_for("Energy") == Mood.AMBIENT
        assert policy.mood_for("Psychedelic Dreams") == Mood.PSYCHEDELIC
        assert policy.category_for("Live Performance") == Category.PERFORMANCE_VISUALS
        assert policy.category_for("Chill") == Category.BACKGROUND_VISUALS

    @pytest.mark.asyncio
    async def test_custom_policy_is_used(self, builder, seeded_catalog):
        class Everything(MoodPolicy):
            def mood_for(self, playlist_name):
                return Mood.PSYCHEDELIC

            def category_for(self, playlist_name):
                return Category.AMBIENT_VISUALS

        builder.policy = Everything()
        a = by_filename(seeded_catalog, "a.mp4")
        package = builder.build_package("Pkg", [a], [make_playlist("Any", a)])

        entry = package.manifest.videos["a.mp4"]
        assert entry.mood == "psychedelic"
        assert entry.category == "ambient_visuals"


class TestBuildPackage:

    @pytest.mark.asyncio
    async def test_deleted_video_is_dropped_from_playlists(self, builder, abc):
        first = make_playlist("First", abc['a'], abc['b'])
        second = make_playlist("Second", abc['b'], abc['c'])

        package = builder.build_package("Show", [abc['a'], abc['b']], [first, second])

        assert builder.validate_package(package) == []
        assert set(package.manifest.videos) == {"a.mp4", "b.mp4"}
        assert package.dropped_ids == {"Second": [abc['c'].id]}
        assert package.playlist_files["second.json"].filenames == ["b.mp4"]
        assert package.playlist_files["first.json"].filenames == ["a.mp4", "b.mp4"]

    @pytest.mark.asyncio
    async def test_manifest_fields(self, builder, abc):
        package = builder.build_package("Show", [abc['a'], abc['b'], abc['c']], [])

        entry = package.manifest.videos["c.mp4"]
        assert entry.duration_seconds == 30
        assert entry.duration_formatted == "00:00:30"
        assert entry.thumbnail == "thumbnails/c.jpg"
        assert entry.resolution == "1920x1080"
        assert package.manifest.total_videos == 3
        assert package.manifest.total_duration_seconds == 60

    @pytest.mark.asyncio
    async def test_default_playlist_holds_every_video(self, builder, abc):
        package = builder.build_package("Show", [abc['a'], abc['b']], [make_playlist("Mix", abc['b'])])

        default = package.playlist_files["default.json"]
        assert default.name == "Default Playlist"
        assert default.mood == "ambient"
        assert default.loop is True
        assert default.filenames == ["a.mp4", "b.mp4"]

    @pytest.mark.asyncio
    async def test_mood_comes_from_first_containing_playlist(self, builder, abc):
        playlists = [
            make_playlist("High Energy Set", abc['a']),
            make_playlist("Psychedelic Night", abc['a'], abc['b']),
        ]
        package = builder.build_package("Show", [abc['a'], abc['b'], abc['c']], playlists)

        videos = package.manifest.videos
        assert (videos["a.mp4"].mood, videos["a.mp4"].category) == ("high-energy", "performance_visuals")
        assert (videos["b.mp4"].mood, videos["b.mp4"].category) == ("psychedelic", "performance_visuals")
        assert (videos["c.mp4"].mood, videos["c.mp4"].category) == ("ambient", "background_visuals")
        assert package.playlist_files["high-energy-set.json"].mood == "high-energy"

    @pytest.mark.asyncio
    async def test_colliding_playlist_names_get_distinct_files(self, builder, abc):
        playlists = [make_playlist("Mix", abc['a']), make_playlist("mix!", abc['b'])]
        package = builder.build_package("Show", [abc['a'], abc['b']], playlists)
        assert {"mix.json", "mix-2.json", "default.json"} == set(package.playlist_files)

    def test_validation_errors(self, builder):
        package = builder.build_package("Empty", [], [])
        assert "No videos in metadata library" in builder.validate_package(package)


class TestSerialize:

    @pytest.mark.asyncio
    async def test_archive_layout_and_progress(self, builder, abc):
        videos = [abc['a'], abc['b']]
        package = builder.build_package("Show", videos, [make_playlist("Mix", abc['b'], abc['a'])])
        updates = []

        data = await builder.serialize_to_archive(package, videos, updates.append)

        # manifest + mix.json + default.json + two videos with thumbnails
        assert [u.completed for u in updates] == list(range(1, 8))
        assert all(u.total == 7 for u in updates)
        assert updates[0].current_file == "metadata.json"

        with ArchiveReader(data) as reader:
            names = reader.names()
            assert MANIFEST_PATH in names
            assert "content/playlists/mix.json" in names
            assert "content/packages/thumbnails/" in names
            assert reader.read("content/packages/a.mp4") == b"video:a.mp4"
            assert reader.read("content/packages/thumbnails/a.jpg") == b"thumb:a.mp4"
            # b has no stored thumbnail, so a generated JPEG is embedded
            assert reader.read("content/packages/thumbnails/b.jpg")[:2] == b"\xff\xd8"

            manifest = json.loads(reader.read(MANIFEST_PATH))
            assert set(manifest["video_library"]["videos"]) == {"a.mp4", "b.mp4"}
            mix = dict(reader.playlist_files())["mix.json"]
            assert [v["filename"] for v in mix["videos"]] == ["b.mp4", "a.mp4"]

    @pytest.mark.asyncio
    async def test_unreadable_video_becomes_placeholder(self, builder, store, abc):
        store.fail("get", abc['a'].storage_ref.key)
        package = builder.build_package("Show", [abc['a']], [])

        data = await builder.serialize_to_archive(package, [abc['a']])

        with ArchiveReader(data) as reader:
            content = reader.read("content/packages/a.mp4").decode()
        assert content.startswith("# Placeholder for a.mp4\n# Error: simulated get failure")

    @pytest.mark.asyncio
    async def test_same_package_serializes_identically(self, builder, abc):
        package = builder.build_package("Show", [abc['a'], abc['b']], [])
        first = await builder.serialize_to_archive(package, [abc['a'], abc['b']])
        second = await builder.serialize_to_archive(package, [abc['a'], abc['b']])
        assert first == second


class TestPublish:

    @pytest.mark.asyncio
    async def test_publish_uploads_archive_and_sidecar(self, builder, store, sidecar, abc):
        playlists = [make_playlist("Friday Show", abc['a'], abc['b'])]
        result = await builder.publish("Friday Show", [abc['a'], abc['b'], abc['c']], playlists)

        assert re.fullmatch(r"playlists/friday-show-\d{8}T\d{6}Z-package\.zip", result.archive_key)
        assert result.sidecar_saved
        assert result.size_bytes == len(await store.get(result.archive_key))

        metadata = await sidecar.fetch(result.archive_key)
        assert metadata == result.metadata
        assert metadata.playlist_names == ["Friday Show", "Default Playlist"]
        assert metadata.playlist_count == 2
        assert metadata.video_count == 3

    @pytest.mark.asyncio
    async def test_sidecar_failure_is_reported_not_raised(self, builder, store, abc, monkeypatch):
        async def broken_save(archive_key, metadata):
            raise TransportError("sidecar write refused", key=archive_key)

        monkeypatch.setattr(builder.sidecar, 'save', broken_save)
        result = await builder.publish("Show", [abc['a']], [])

        assert not result.sidecar_saved
        assert result.sidecar_error == "sidecar write refused"
        assert await store.exists(result.archive_key)

    @pytest.mark.asyncio
    async def test_invalid_package_uploads_nothing(self, builder, store):
        puts_before = store.count_calls("put")
        with pytest.raises(IntegrityError) as exc_info:
            await builder.publish("Empty", [], [])

        assert "No videos in metadata library" in exc_info.value.errors
        assert store.count_calls("put") == puts_before
