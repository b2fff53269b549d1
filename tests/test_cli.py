"""Tests for the CLI module."""

import pathlib
import tempfile
from unittest.mock import patch

import pytest
import yaml

from streamvision.cli import ChannelConfig, load_config, probe_stream
from streamvision.exceptions import ConfigError
from streamvision.types import ConnectionInfo, ContentType, QualityTier


def _write_yaml(data: object) -> pathlib.Path:
    with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
        yaml.dump(data, f)
        return pathlib.Path(f.name)


def test_load_config() -> None:
    """Test loading channels from a YAML file."""
    yaml_path = _write_yaml(
        {
            "channels": [
                "https://example.com/stream1.m3u8",
                {
                    "name": "News",
                    "url": "https://example.com/news.m3u8",
                    "variants": {
                        "high": "https://example.com/news_1080.m3u8",
                        "low": "https://example.com/news_sd.m3u8",
                    },
                },
                {
                    "name": "Movie",
                    "url": "https://example.com/movie.mp4",
                    "content_type": "movie",
                },
            ]
        }
    )

    try:
        config = load_config(yaml_path)

        assert len(config.channels) == 3
        assert config.channels[0] == ChannelConfig(
            name="channel-1", url="https://example.com/stream1.m3u8"
        )
        assert config.channels[1].variants == {
            QualityTier.HIGH: "https://example.com/news_1080.m3u8",
            QualityTier.LOW: "https://example.com/news_sd.m3u8",
        }
        assert config.channels[2].content_type is ContentType.MOVIE
        assert config.thresholds.tick_interval_seconds == 2.0
        assert config.preset is None
    finally:
        yaml_path.unlink()


def test_load_config_with_adaptation_settings() -> None:
    """Test overriding adaptation thresholds and choosing a preset."""
    yaml_path = _write_yaml(
        {
            "channels": ["https://example.com/stream1.m3u8"],
            "preset": "stable",
            "adaptation": {"tick_interval_seconds": 1.0, "event_window_seconds": 30},
        }
    )

    try:
        config = load_config(yaml_path)

        assert config.preset == "stable"
        assert config.thresholds.tick_interval_seconds == 1.0
        assert config.thresholds.event_window_seconds == 30
        assert config.thresholds.buffer_history_size == 30
    finally:
        yaml_path.unlink()


def test_load_config_missing_file() -> None:
    """Test error handling for missing YAML file."""
    with pytest.raises(FileNotFoundError):
        load_config(pathlib.Path("/nonexistent/file.yaml"))


def test_load_config_invalid_format() -> None:
    """Test error handling for invalid YAML format."""
    yaml_path = _write_yaml({"invalid_key": ["url1", "url2"]})

    try:
        with pytest.raises(ConfigError, match="must contain a 'channels' key"):
            load_config(yaml_path)
    finally:
        yaml_path.unlink()


def test_load_config_not_dict() -> None:
    """Test error handling when YAML is not a dictionary."""
    yaml_path = _write_yaml(["stream1", "stream2"])

    try:
        with pytest.raises(ValueError, match="must contain a 'channels' key"):
            load_config(yaml_path)
    finally:
        yaml_path.unlink()


def test_load_config_channels_not_list() -> None:
    yaml_path = _write_yaml({"channels": "https://example.com/stream1.m3u8"})

    try:
        with pytest.raises(ConfigError, match="'channels' must be a list"):
            load_config(yaml_path)
    finally:
        yaml_path.unlink()


def test_load_config_invalid_channel() -> None:
    """Test that channel entries without a URL are rejected."""
    yaml_path = _write_yaml({"channels": [{"name": "No URL"}]})

    try:
        with pytest.raises(ConfigError, match="Channel #1"):
            load_config(yaml_path)
    finally:
        yaml_path.unlink()


def test_load_config_unknown_content_type() -> None:
    yaml_path = _write_yaml(
        {"channels": [{"url": "https://example.com/a.m3u8", "content_type": "podcast"}]}
    )

    try:
        with pytest.raises(ConfigError, match="Channel #1"):
            load_config(yaml_path)
    finally:
        yaml_path.unlink()


def test_load_config_unknown_preset() -> None:
    yaml_path = _write_yaml({"channels": [], "preset": "turbo"})

    try:
        with pytest.raises(ConfigError, match="Unknown preset 'turbo'"):
            load_config(yaml_path)
    finally:
        yaml_path.unlink()


def test_load_config_unknown_adaptation_setting() -> None:
    yaml_path = _write_yaml({"channels": [], "adaptation": {"tick_rate": 5}})

    try:
        with pytest.raises(ConfigError, match="tick_rate"):
            load_config(yaml_path)
    finally:
        yaml_path.unlink()


def test_probe_stream() -> None:
    """Test that --probe-only resolves settings from a probe."""
    channel = ChannelConfig(name="News", url="https://example.com/news.m3u8")

    with patch(
        "streamvision.cli.ConnectionProbe.probe", return_value=ConnectionInfo.measured(50, 60.0)
    ) as mock_probe:
        settings = probe_stream(channel)

    mock_probe.assert_called_once_with("https://example.com/news.m3u8")
    assert settings.network_caching_ms == 2000
