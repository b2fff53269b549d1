"""Initial player settings from probe results or content-type presets."""

import logging
import math
from dataclasses import replace

from .probe import ConnectionProbe
from .settings import PlayerSettings
from .types import ConnectionInfo, ContentType, QualityTier, StreamQualityInfo, StreamURL

logger = logging.getLogger(__name__)

# Latency above which buffers and timeouts are stretched
HIGH_LATENCY_MS = 300
LATENCY_CACHING_FACTOR = 5
LATENCY_TIMEOUT_FACTOR = 10
MIN_LIVE_CACHING_MS = 2000
VOD_CACHING_FACTOR = 1.3

# (min speed Mbps, network, live, file, min buffer %) from fastest to slowest
SPEED_BANDS = [
    (50, 2000, 1500, 1500, 15),
    (20, 3000, 2500, 2000, 20),
    (10, 5000, 4000, 3000, 30),
    (5, 8000, 6000, 5000, 40),
    (0, 12000, 10000, 8000, 50),
]
ADAPTIVE_BELOW_MBPS = 10
LOW_QUALITY_BELOW_MBPS = 5

VOD_TYPES = {ContentType.MOVIE, ContentType.SERIES, ContentType.EPISODE, ContentType.CATCHUP}
EPISODIC_TYPES = {ContentType.SERIES, ContentType.EPISODE}

QUICK_PRESETS: dict[ContentType, PlayerSettings] = {
    ContentType.LIVE: PlayerSettings(
        network_caching_ms=4000,
        live_caching_ms=4000,
        skip_frames_on_lag=True,
        reconnect_attempts=5,
        min_buffer_before_play_percent=25,
    ),
    ContentType.MOVIE: PlayerSettings(
        network_caching_ms=6000,
        live_caching_ms=3000,
        file_caching_ms=4000,
        skip_frames_on_lag=True,
        reconnect_attempts=3,
        min_buffer_before_play_percent=30,
        remember_position=True,
    ),
    ContentType.SERIES: PlayerSettings(
        network_caching_ms=5000,
        live_caching_ms=3000,
        file_caching_ms=3000,
        skip_frames_on_lag=True,
        reconnect_attempts=3,
        min_buffer_before_play_percent=25,
        remember_position=True,
        auto_play_next=True,
    ),
}


class SettingsResolver:
    """Turns a ConnectionInfo (or just a content type) into PlayerSettings."""

    def __init__(self, probe: ConnectionProbe | None = None) -> None:
        self.probe = probe or ConnectionProbe()

    def resolve(self, connection: ConnectionInfo, content_type: ContentType) -> PlayerSettings:
        """
        Choose settings for a measured connection.

        Buffers scale inversely with speed; high latency raises the network
        buffer and connection timeout; the content type then tunes live vs.
        on-demand behaviour.

        Args:
            connection: Probe result for the stream.
            content_type: Kind of content about to play.

        Returns:
            A new PlayerSettings instance.
        """
        settings = PlayerSettings()

        for min_speed, network, live, file, min_buffer in SPEED_BANDS:
            if connection.download_speed_mbps >= min_speed:
                settings = replace(
                    settings,
                    network_caching_ms=network,
                    live_caching_ms=live,
                    file_caching_ms=file,
                    min_buffer_before_play_percent=min_buffer,
                )
                break

        if connection.download_speed_mbps < ADAPTIVE_BELOW_MBPS:
            settings.adaptive_quality = True
        if connection.download_speed_mbps < LOW_QUALITY_BELOW_MBPS:
            settings.preferred_quality = QualityTier.LOW

        if connection.latency_ms > HIGH_LATENCY_MS:
            settings.network_caching_ms = max(
                settings.network_caching_ms, connection.latency_ms * LATENCY_CACHING_FACTOR
            )
            settings.connection_timeout_ms = max(
                settings.connection_timeout_ms, connection.latency_ms * LATENCY_TIMEOUT_FACTOR
            )

        if content_type is ContentType.LIVE:
            settings.live_caching_ms = max(MIN_LIVE_CACHING_MS, settings.network_caching_ms - 1000)
            settings.skip_frames_on_lag = True
        elif content_type in VOD_TYPES:
            settings.network_caching_ms = math.floor(
                settings.network_caching_ms * VOD_CACHING_FACTOR
            )
            settings.remember_position = True
            if content_type in EPISODIC_TYPES:
                settings.auto_play_next = True

        settings.auto_reconnect = True
        settings.reconnect_attempts = 3 if connection.is_stable else 5
        settings.reconnect_delay_ms = 2000 if connection.is_stable else 3000
        settings.hardware_acceleration = True
        settings.hardware_acceleration_type = "auto"

        logger.debug(
            "Resolved %s settings: network %dms, live %dms, %d reconnect attempts",
            content_type.value,
            settings.network_caching_ms,
            settings.live_caching_ms,
            settings.reconnect_attempts,
        )
        return settings

    def quick_resolve(self, content_type: ContentType, is_iptv: bool = True) -> PlayerSettings:
        """
        Return a static preset for fast startup, without probing.

        Args:
            content_type: Kind of content about to play.
            is_iptv: IPTV sources get larger buffers than plain files (default: True).

        Returns:
            A new PlayerSettings instance.
        """
        if not is_iptv:
            return PlayerSettings.preset("default")

        preset = QUICK_PRESETS.get(content_type)
        if preset is None:
            return PlayerSettings.preset("stable")
        return replace(preset)

    async def optimize(
        self,
        url: StreamURL,
        content_type: ContentType,
    ) -> tuple[PlayerSettings, StreamQualityInfo]:
        """
        Probe a stream and resolve settings for it.

        Args:
            url: Stream URL to probe.
            content_type: Kind of content about to play.

        Returns:
            Tuple of (settings, quality summary for the UI).
        """
        connection = await self.probe.probe_async(url)
        settings = self.resolve(connection, content_type)
        info = StreamQualityInfo(
            latency_ms=connection.latency_ms,
            download_speed_mbps=connection.download_speed_mbps,
            recommended_buffer_ms=settings.network_caching_ms,
            quality_level=connection.speed_category,
            content_type=content_type,
        )
        return settings, info
