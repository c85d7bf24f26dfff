# tests/test_helpers.py
"""Test utilities and helpers"""

import json
from datetime import datetime, timezone

import pytest

from playlist_packager.utils.helpers import (
    compact_timestamp,
    content_hash,
    format_duration,
    format_duration_hms,
    format_file_size,
    parse_timestamp,
    random_token,
    read_json,
    sanitize_filename,
    slugify,
    write_json_atomic,
)
from playlist_packager.utils.logger import get_current_log_file, parse_size, setup_logging


class TestHelpers:
    """Test helper functions"""

    def test_sanitize_filename(self):
        assert sanitize_filename("My Clip: Final?.mp4") == "My_Clip_Final.mp4"
        assert sanitize_filename("a/b\\c.mov") == "abc.mov"
        assert sanitize_filename("") == "unknown"

    def test_sanitize_filename_keeps_extension_when_truncating(self):
        result = sanitize_filename("x" * 300 + ".mp4", max_length=50)
        assert len(result) == 50
        assert result.endswith(".mp4")

    def test_slugify(self):
        assert slugify("High Energy Set!") == "high-energy-set"
        assert slugify("  Chill   Vibes ") == "chill-vibes"
        assert slugify("Café Nights") == "cafe-nights"
        assert slugify("!!!") == ""

    def test_random_token(self):
        token = random_token()
        assert len(token) == 6
        assert token.isalnum() and token == token.lower()

    def test_format_duration(self):
        assert format_duration(90) == "1:30"
        assert format_duration(3661) == "1:01:01"
        assert format_duration(-10) == "0:00"

    def test_format_duration_hms(self):
        assert format_duration_hms(0) == "00:00:00"
        assert format_duration_hms(59.9) == "00:00:59"
        assert format_duration_hms(3725) == "01:02:05"
        assert format_duration_hms(-4) == "00:00:00"

    def test_format_file_size(self):
        assert format_file_size(512) == "512 B"
        assert format_file_size(1024) == "1.0 KB"
        assert format_file_size(1048576) == "1.0 MB"

    def test_content_hash(self):
        assert content_hash(b"abc") == "900150983cd24fb0d6963f7d28e17f72"


class TestTimestamps:
    """Test timestamp parsing and formatting"""

    def test_compact_timestamp(self):
        dt = datetime(2024, 1, 5, 20, 15, 0, tzinfo=timezone.utc)
        assert compact_timestamp(dt) == "20240105T201500Z"

    def test_parse_timestamp_variants(self):
        assert parse_timestamp("2024-01-05T20:15:00Z") == datetime(2024, 1, 5, 20, 15, tzinfo=timezone.utc)
        naive = parse_timestamp("2024-01-05T20:15:00")
        assert naive.tzinfo is not None
        assert parse_timestamp("not a date") is None
        assert parse_timestamp("") is None
        assert parse_timestamp(None) is None


class TestJsonFiles:
    """Test atomic JSON persistence"""

    def test_round_trip(self, temp_dir):
        path = temp_dir / "nested" / "state.json"
        write_json_atomic(path, {'a': [1, 2]})
        assert read_json(path) == {'a': [1, 2]}
        assert not (temp_dir / "nested" / ".state.json.tmp").exists()

    def test_missing_file_returns_default(self, temp_dir):
        assert read_json(temp_dir / "missing.json", default={}) == {}

    def test_corrupt_file_raises(self, temp_dir):
        path = temp_dir / "bad.json"
        path.write_text("{not json")
        with pytest.raises(json.JSONDecodeError):
            read_json(path)


class TestLoggerHelpers:

    def test_parse_size(self):
        assert parse_size("10MB") == 10 * 1024 * 1024
        assert parse_size("512KB") == 512 * 1024

    def test_current_log_file_follows_setup(self, temp_dir):
        log_path = temp_dir / "logs" / "packager.log"
        try:
            setup_logging(log_file=str(log_path), console_output=False)
            assert get_current_log_file() == log_path
            assert log_path.parent.is_dir()
        finally:
            setup_logging(console_output=False)
        assert get_current_log_file() is None
