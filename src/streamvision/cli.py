"""Command-line interface for streamvision."""

import argparse
import asyncio
import dataclasses
import logging
import pathlib
from dataclasses import dataclass, field

import yaml

from .events import AdaptationEvents
from .exceptions import ConfigError, PlayerError
from .player import MpvPlayer
from .probe import ConnectionProbe
from .resolver import SettingsResolver
from .session import PlaybackSession
from .settings import PRESETS, PlayerSettings
from .types import AdaptationThresholds, ContentType, HealthStatus, QualityTier, StreamURL

logger = logging.getLogger(__name__)


@dataclass
class ChannelConfig:
    """A playable channel from the configuration file."""

    name: str
    url: StreamURL
    content_type: ContentType = ContentType.LIVE
    variants: dict[QualityTier, StreamURL] = field(default_factory=dict)


@dataclass
class AppConfig:
    """Everything loaded from a streamvision YAML file."""

    channels: list[ChannelConfig] = field(default_factory=list)
    thresholds: AdaptationThresholds = field(default_factory=AdaptationThresholds)
    preset: str | None = None


def setup_logging(debug: bool = False) -> None:
    """
    Configure logging for the application.

    Args:
        debug: Enable debug level logging if True.
    """
    level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.FileHandler("streamvision.log"),
            logging.StreamHandler(),
        ],
    )


def _parse_channel(entry: object, index: int) -> ChannelConfig:
    if isinstance(entry, str):
        return ChannelConfig(name=f"channel-{index}", url=entry)

    if not isinstance(entry, dict) or "url" not in entry:
        msg = f"Channel #{index} must be a URL or a mapping with a 'url' key"
        raise ConfigError(msg)

    try:
        content_type = ContentType(str(entry.get("content_type", "live")).lower())
        variants = {
            QualityTier(str(tier).lower()): url
            for tier, url in (entry.get("variants") or {}).items()
        }
    except ValueError as e:
        msg = f"Channel #{index}: {e}"
        raise ConfigError(msg) from e

    return ChannelConfig(
        name=str(entry.get("name", f"channel-{index}")),
        url=entry["url"],
        content_type=content_type,
        variants=variants,
    )


def _parse_thresholds(data: object) -> AdaptationThresholds:
    if data is None:
        return AdaptationThresholds()
    if not isinstance(data, dict):
        msg = "'adaptation' must be a mapping of threshold names to values"
        raise ConfigError(msg)

    known = {f.name for f in dataclasses.fields(AdaptationThresholds)}
    unknown = set(data) - known
    if unknown:
        msg = f"Unknown adaptation settings: {', '.join(sorted(unknown))}"
        raise ConfigError(msg)
    return AdaptationThresholds(**data)


def load_config(yaml_path: pathlib.Path | None = None) -> AppConfig:
    """
    Load channels and adaptation settings from a YAML configuration file.

    Args:
        yaml_path: Path to the config file. If None, looks for streamvision.yaml
            in the current directory.

    Returns:
        The parsed AppConfig.

    Raises:
        FileNotFoundError: If the YAML file doesn't exist.
        ConfigError: If the YAML content is invalid.
    """
    if yaml_path is None:
        yaml_path = pathlib.Path.cwd() / "streamvision.yaml"

    if not yaml_path.exists():
        msg = f"Configuration not found at {yaml_path}"
        raise FileNotFoundError(msg)

    with yaml_path.open() as f:
        data = yaml.safe_load(f)

    if not isinstance(data, dict) or "channels" not in data:
        msg = "YAML file must contain a 'channels' key with a list of channels"
        raise ConfigError(msg)

    channels = data["channels"]
    if not isinstance(channels, list):
        msg = "'channels' must be a list"
        raise ConfigError(msg)

    preset = data.get("preset")
    if preset is not None and preset not in PRESETS:
        msg = f"Unknown preset '{preset}' (choose from {', '.join(PRESETS)})"
        raise ConfigError(msg)

    return AppConfig(
        channels=[_parse_channel(entry, i) for i, entry in enumerate(channels, 1)],
        thresholds=_parse_thresholds(data.get("adaptation")),
        preset=preset,
    )


def _build_events() -> AdaptationEvents:
    def on_health(status: HealthStatus) -> None:
        logger.info("Health: %s %s", status.icon, status.display_text)

    def on_settings(settings: PlayerSettings) -> None:
        logger.info(
            "Settings: network %dms, live %dms, quality %s",
            settings.network_caching_ms,
            settings.live_caching_ms,
            settings.preferred_quality.label,
        )

    return AdaptationEvents(
        on_status_changed=lambda text: logger.info("Status: %s", text),
        on_quality_analyzed=lambda info: logger.info("Analysis: %s", info.summary()),
        on_settings_changed=on_settings,
        on_reconnecting=lambda text: logger.warning("%s", text),
        on_health_status_changed=on_health,
    )


def probe_stream(channel: ChannelConfig) -> PlayerSettings:
    """Probe a channel and log the settings that would be used for it."""
    resolver = SettingsResolver(ConnectionProbe())
    info = resolver.probe.probe(channel.url)
    settings = resolver.resolve(info, channel.content_type)

    logger.info(
        "%s: latency %dms, %.1f Mbps (%s, %s)",
        channel.name,
        info.latency_ms,
        info.download_speed_mbps,
        info.speed_category.value,
        "stable" if info.is_stable else "unstable",
    )
    for name, value in dataclasses.asdict(settings).items():
        logger.info("  %s = %s", name, value)
    return settings


async def run_session(
    channel: ChannelConfig,
    config: AppConfig,
    player: MpvPlayer,
    probe: bool = True,
) -> None:
    """Play a channel until playback ends or the task is cancelled."""
    session = PlaybackSession(
        player,
        thresholds=config.thresholds,
        events=_build_events(),
        probe_on_start=probe,
    )
    initial = PlayerSettings.preset(config.preset) if config.preset else None

    try:
        controller = await session.play(
            channel.url,
            channel.content_type,
            variants=channel.variants,
            settings=initial,
        )
        while controller.is_monitoring:
            await asyncio.sleep(1)
        logger.info("Playback of %s ended", channel.name)
    finally:
        await session.stop()


def main() -> None:
    """Main entry point for the streamvision CLI."""
    parser = argparse.ArgumentParser(
        description="Streamvision - adaptive IPTV playback",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Play the first channel from streamvision.yaml
  streamvision

  # Play a specific live stream
  streamvision --url https://example.com/live.m3u8

  # Play a movie without the startup probe
  streamvision --url https://example.com/movie.mp4 --content-type movie --no-probe

  # Only measure the connection and show the resolved settings
  streamvision --url https://example.com/live.m3u8 --probe-only
        """,
    )
    parser.add_argument(
        "--debug",
        "-d",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--url",
        "-u",
        type=str,
        help="Specific stream URL to play",
    )
    parser.add_argument(
        "--channel",
        type=str,
        help="Name of the channel to play from the configuration file",
    )
    parser.add_argument(
        "--config",
        "-c",
        type=pathlib.Path,
        help="Path to streamvision.yaml configuration file",
    )
    parser.add_argument(
        "--content-type",
        choices=[t.value for t in ContentType],
        default=ContentType.LIVE.value,
        help="Content type for --url (default: live)",
    )
    parser.add_argument(
        "--preset",
        choices=list(PRESETS),
        help="Start from a named settings preset instead of the content-type preset",
    )
    parser.add_argument(
        "--probe-only",
        action="store_true",
        help="Probe the stream and print the resolved settings without playing",
    )
    parser.add_argument(
        "--no-probe",
        action="store_true",
        help="Skip the background connection probe after playback starts",
    )

    args = parser.parse_args()
    setup_logging(args.debug)

    if args.url:
        config = AppConfig()
        channel = ChannelConfig(
            name=args.url, url=args.url, content_type=ContentType(args.content_type)
        )
    else:
        try:
            config = load_config(args.config)
        except (FileNotFoundError, ValueError):
            logger.exception("Error loading configuration")
            logger.info("Please provide a --url or create a streamvision.yaml file")
            return

        if not config.channels:
            logger.error("No channels configured!")
            return

        matches = [c for c in config.channels if args.channel in (None, c.name)]
        if not matches:
            logger.error("Channel '%s' not found in configuration", args.channel)
            return
        channel = matches[0]

    if args.preset:
        config.preset = args.preset

    if args.probe_only:
        probe_stream(channel)
        return

    player = MpvPlayer()
    if not player.is_available():
        logger.error("libmpv not found! Install mpv and python-mpv to play streams")
        logger.info("On macOS: brew install mpv")
        logger.info("On Linux: sudo apt install libmpv2 (or yum/dnf)")
        logger.info("Then: pip install python-mpv")
        return

    try:
        asyncio.run(run_session(channel, config, player, probe=not args.no_probe))
    except KeyboardInterrupt:
        logger.info("Playback interrupted by user")
    except PlayerError:
        logger.exception("Player failed")
    finally:
        player.stop()


if __name__ == "__main__":
    main()
