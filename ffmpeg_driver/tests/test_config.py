"""
Tests for FFmpeg driver configuration.
"""

import pytest
from pydantic import ValidationError

from ffmpeg_driver.config import PROBE_ARGS, FFmpegConfig, get_config


class TestFFmpegConfig:
    """Test FFmpeg configuration."""

    def test_default_config(self):
        """Test default configuration values."""
        config = FFmpegConfig()

        assert config.ffmpeg_binary == "ffmpeg"
        assert config.ffprobe_binary == "ffprobe"
        assert config.cwd is None
        assert config.global_options == ["-stats"]
        assert config.input_options == []
        assert config.output_options == []
        assert config.overwrite_existing is False
        assert config.hide_banner is True
        assert config.tee is False
        assert config.timeout_ms is None
        assert config.stream_open_timeout == 5.0

    def test_custom_config(self):
        """Test custom configuration values."""
        config = FFmpegConfig(
            ffmpeg_binary="/usr/local/bin/ffmpeg",
            overwrite_existing=True,
            timeout_ms=1500,
        )

        assert config.ffmpeg_binary == "/usr/local/bin/ffmpeg"
        assert config.overwrite_existing is True
        assert config.timeout_ms == 1500

    def test_env_override(self, monkeypatch):
        """Test FFMPEG_* environment variables are read."""
        monkeypatch.setenv("FFMPEG_FFMPEG_BINARY", "/opt/ffmpeg/bin/ffmpeg")
        monkeypatch.setenv("FFMPEG_TEE", "true")
        monkeypatch.setenv("FFMPEG_GLOBAL_OPTIONS", '["-nostats"]')

        config = FFmpegConfig()

        assert config.ffmpeg_binary == "/opt/ffmpeg/bin/ffmpeg"
        assert config.tee is True
        assert config.global_options == ["-nostats"]

    def test_frozen(self):
        """Test the configuration cannot be mutated in place."""
        config = FFmpegConfig()

        with pytest.raises(ValidationError):
            config.tee = True

    def test_model_copy(self):
        """Test derived copies leave the original untouched."""
        config = FFmpegConfig()
        derived = config.model_copy(update={"cwd": "/tmp", "tee": True})

        assert derived.cwd == "/tmp"
        assert derived.tee is True
        assert config.cwd is None
        assert config.tee is False

    def test_negative_timeout_rejected(self):
        """Test timeout validation."""
        with pytest.raises(ValidationError):
            FFmpegConfig(timeout_ms=-1)

    def test_stream_open_timeout_bounds(self):
        """Test stream open timeout validation."""
        with pytest.raises(ValidationError):
            FFmpegConfig(stream_open_timeout=0)
        with pytest.raises(ValidationError):
            FFmpegConfig(stream_open_timeout=120)

    def test_default_lists_not_shared(self):
        """Test default option lists are independent per instance."""
        first = FFmpegConfig()
        second = FFmpegConfig()

        assert first.global_options is not second.global_options

    def test_get_config_returns_fresh_instance(self):
        """Test get_config never shares an instance."""
        assert get_config() is not get_config()

    def test_probe_args(self):
        """Test the fixed ffprobe arguments."""
        assert PROBE_ARGS == (
            "-hide_banner",
            "-show_format",
            "-show_streams",
            "-print_format",
            "json",
            "-loglevel",
            "quiet",
        )
