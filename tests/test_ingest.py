"""Test local file ingestion"""

from io import BytesIO

import pytest
from PIL import Image

from playlist_packager.catalog.ingest import VideoIngestor
from playlist_packager.media.thumbnails import MediaInfo, placeholder_thumbnail


def fake_probe(path):
    return MediaInfo(duration_seconds=12.5, resolution="1280x720", codec="h264", bitrate=800000)


def fake_thumbnail(path, time_offset=1.0, width=150, quality=80):
    return b"jpeg:" + path.name.encode()


def failing_thumbnail(path, **kwargs):
    raise RuntimeError("ffmpeg is not installed")


@pytest.fixture
def clips(temp_dir):
    first = temp_dir / "Sun Rise.mp4"
    first.write_bytes(b"one")
    second = temp_dir / "tunnel.mov"
    second.write_bytes(b"two")
    notes = temp_dir / "notes.txt"
    notes.write_text("not a video")
    return first, second, notes


class TestVideoIngestor:

    @pytest.mark.asyncio
    async def test_uploads_and_records_media(self, catalog, store, clips):
        ingestor = VideoIngestor(catalog, probe=fake_probe, thumbnailer=fake_thumbnail)
        progress = []

        results = await ingestor.ingest(clips, progress=lambda i, total, name: progress.append((i, name)))

        assert [r.uploaded for r in results] == [True, True, False]
        assert results[2].error == "unsupported extension .txt"
        assert progress == [(1, "Sun Rise.mp4"), (2, "tunnel.mov"), (3, "notes.txt")]

        first = results[0]
        assert first.key.startswith("videos/")
        assert first.key.endswith("_Sun_Rise.mp4")
        assert first.thumbnail_uploaded

        video = catalog.get(first.video_id)
        assert video.duration_seconds == 12.5
        assert video.resolution == "1280x720"
        assert video.title == "Sun Rise"
        assert video.storage_ref.thumbnail_key is not None
        assert await store.get(video.storage_ref.thumbnail_key) == b"jpeg:Sun Rise.mp4"

    @pytest.mark.asyncio
    async def test_thumbnail_failure_is_not_fatal(self, catalog, clips):
        ingestor = VideoIngestor(catalog, probe=fake_probe, thumbnailer=failing_thumbnail)

        [result] = await ingestor.ingest([clips[1]])

        assert result.uploaded
        assert not result.thumbnail_uploaded
        assert catalog.get(result.video_id).storage_ref.thumbnail_key is None

    @pytest.mark.asyncio
    async def test_store_failure_is_reported(self, catalog, store, clips):
        store.fail("put")
        ingestor = VideoIngestor(catalog, probe=fake_probe, thumbnailer=fake_thumbnail)

        [result] = await ingestor.ingest([clips[0]])

        assert not result.uploaded
        assert "simulated put failure" in result.error
        assert catalog.videos == []

    @pytest.mark.asyncio
    async def test_missing_file(self, catalog, temp_dir):
        ingestor = VideoIngestor(catalog, probe=fake_probe, thumbnailer=fake_thumbnail)
        [result] = await ingestor.ingest([temp_dir / "gone.mp4"])
        assert result.error == "not a file"


class TestPlaceholderThumbnail:

    def test_is_jpeg_of_requested_width(self):
        data = placeholder_thumbnail("a very long label that will be cut", width=160)
        with Image.open(BytesIO(data)) as img:
            assert img.format == "JPEG"
            assert img.size == (160, 90)
