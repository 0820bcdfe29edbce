"""Tests for settings loading from .env, environment, and app.yaml."""

from pathlib import Path

import pytest

from larder.config import (
    MediaConfig,
    Settings,
    get_config_path,
    get_settings,
    interpolate_env_vars,
)


class TestInterpolateEnvVars:
    def test_replaces_nested_values(self, monkeypatch):
        monkeypatch.setenv("UPLOADS_ROOT", "/srv/media")
        config = {"media": {"uploads_dir": "$UPLOADS_ROOT/uploads"}, "list": ["$UPLOADS_ROOT"]}

        result = interpolate_env_vars(config)

        assert result == {"media": {"uploads_dir": "/srv/media/uploads"}, "list": ["/srv/media"]}

    def test_missing_variable_raises(self, monkeypatch):
        monkeypatch.delenv("LARDER_NOT_SET", raising=False)
        with pytest.raises(ValueError, match="LARDER_NOT_SET"):
            interpolate_env_vars("$LARDER_NOT_SET")

    def test_non_strings_untouched(self):
        assert interpolate_env_vars(5) == 5


class TestConfigPath:
    def test_env_override(self, monkeypatch, tmp_path):
        monkeypatch.setenv("LARDER_CONFIG", str(tmp_path / "custom.yaml"))
        assert get_config_path() == tmp_path / "custom.yaml"

    def test_default_is_cwd(self, monkeypatch, tmp_path):
        monkeypatch.delenv("LARDER_CONFIG", raising=False)
        monkeypatch.chdir(tmp_path)
        assert get_config_path() == tmp_path / "app.yaml"


class TestDefaults:
    def test_media_defaults(self):
        media = MediaConfig()
        assert media.max_avatar_file_size == 5 * 1024 * 1024
        assert media.max_image_file_size == 10 * 1024 * 1024
        assert media.max_video_file_size == 100 * 1024 * 1024
        assert media.fetch_timeout == 30.0
        assert media.uploads_path == Path("./uploads")

    def test_video_temp_dir_defaults_under_uploads(self):
        settings = Settings(media=MediaConfig(uploads_dir="/data/uploads"))
        assert settings.video_temp_dir == Path("/data/uploads/video-temp")


class TestGetSettings:
    def test_without_app_yaml(self, mock_config_path, tmp_path):
        _, patcher = mock_config_path({})
        (tmp_path / "app.yaml").unlink()
        try:
            settings = get_settings()
        finally:
            patcher.stop()

        assert settings.media.max_width == 1280

    def test_yaml_sections_override(self, mock_config_path):
        _, patcher = mock_config_path({
            "debug": True,
            "media": {"uploads_dir": "/srv/uploads", "max_width": 640},
            "video": {"crf": 30},
        })
        try:
            settings = get_settings()
        finally:
            patcher.stop()

        assert settings.debug is True
        assert settings.media.uploads_dir == "/srv/uploads"
        assert settings.media.max_width == 640
        assert settings.media.max_height == 720
        assert settings.video.crf == 30

    def test_nested_env_vars(self, monkeypatch, mock_config_path, tmp_path):
        monkeypatch.setenv("MEDIA__JPEG_QUALITY", "65")
        _, patcher = mock_config_path({})
        (tmp_path / "app.yaml").unlink()
        try:
            settings = get_settings()
        finally:
            patcher.stop()

        assert settings.media.jpeg_quality == 65
