"""Test the command line interface end to end on a filesystem store"""

import pytest
import yaml
from click.testing import CliRunner

from playlist_packager import __version__
from playlist_packager.main import cli
from playlist_packager.utils.logger import setup_logging


@pytest.fixture
def config_path(temp_dir):
    path = temp_dir / "config.yaml"
    path.write_text(yaml.safe_dump({
        'storage': {
            'backend': 'filesystem',
            'root_directory': str(temp_dir / "store"),
            'bucket_name': 'bucket',
        },
        'catalog': {'state_file': str(temp_dir / "catalog.json")},
        'playlists': {'state_file': str(temp_dir / "playlists.json")},
        'logging': {'level': 'WARNING', 'console_output': False},
    }))
    return path


@pytest.fixture
def run(config_path):
    runner = CliRunner()

    def invoke(*args, **kwargs):
        return runner.invoke(cli, ['--config', str(config_path), *args], **kwargs)
    return invoke


@pytest.fixture
def uploaded(temp_dir):
    """Two videos dropped straight into the bucket directory"""
    directory = temp_dir / "store" / "bucket" / "videos" / "2024-01-05"
    directory.mkdir(parents=True)
    (directory / "sunrise.mp4").write_bytes(b"sunrise")
    (directory / "tunnel.mp4").write_bytes(b"tunnel")


class TestCli:

    def test_version(self):
        result = CliRunner().invoke(cli, ['--version'])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_config_show_and_validate(self, run, config_path):
        result = run('config', 'show')
        assert result.exit_code == 0
        assert str(config_path) in result.output
        assert "bucket_name: bucket" in result.output

        result = run('config', 'validate')
        assert result.exit_code == 0
        assert "Configuration is valid" in result.output

    def test_config_show_reports_log_file(self, run, config_path, temp_dir):
        log_path = temp_dir / "logs" / "packager.log"
        data = yaml.safe_load(config_path.read_text())
        data['logging']['file'] = str(log_path)
        config_path.write_text(yaml.safe_dump(data))
        try:
            result = run('config', 'show')
        finally:
            setup_logging(console_output=False)

        assert result.exit_code == 0, result.output
        assert f"Log file: {log_path}" in result.output

    def test_config_show_without_log_file(self, run):
        assert "Log file: disabled" in run('config', 'show').output

    def test_empty_store(self, run):
        assert "No videos found" in run('videos', 'list').output
        assert "No playlists" in run('playlists', 'list').output
        assert "No packages found" in run('packages', 'list').output

    def test_playlist_workflow(self, run, uploaded):
        result = run('playlists', 'create', 'Morning Set')
        assert result.exit_code == 0, result.output

        result = run('playlists', 'add', 'Morning Set', 'sunrise.mp4', 'tunnel.mp4')
        assert result.exit_code == 0, result.output

        result = run('playlists', 'list', '--videos')
        assert "Morning Set" in result.output
        assert "2 videos" in result.output
        assert "sunrise" in result.output

    def test_publish_and_list_packages(self, run, uploaded):
        run('playlists', 'create', 'Morning Set')
        run('playlists', 'add', 'Morning Set', 'sunrise.mp4')

        result = run('packages', 'publish', 'Friday Show')
        assert result.exit_code == 0, result.output

        result = run('packages', 'list')
        assert result.exit_code == 0
        assert "Friday Show" in result.output
        assert "Morning Set, Default Playlist" in result.output

    def test_unknown_video_fails(self, run, uploaded):
        run('playlists', 'create', 'Morning Set')
        result = run('playlists', 'add', 'Morning Set', 'missing.mp4')
        assert result.exit_code == 1
