"""Player configuration and named presets."""

from dataclasses import dataclass, replace

from .types import QualityTier

# Caching bounds used by adaptation and presets, in milliseconds
MAX_NETWORK_CACHING_MS = 15000
MAX_LIVE_CACHING_MS = 12000


@dataclass
class PlayerSettings:
    """Buffering, reconnect and decoding configuration for one playback session.

    Instances are replaced wholesale (see ``dataclasses.replace``) whenever the
    adaptation controller changes them; callers should treat a received
    instance as a snapshot.

    Attributes:
        network_caching_ms: Network buffer target (higher is steadier, slower to start).
        live_caching_ms: Buffer target for live streams.
        file_caching_ms: Buffer target for on-demand files.
        min_buffer_before_play_percent: Fill level required before playback starts.
        reconnect_attempts: Attempts made by one reconnect sequence.
        reconnect_delay_ms: Delay before each reconnect attempt.
        connection_timeout_ms: Timeout for opening the stream.
        auto_reconnect: Whether a failed stream is reopened automatically.
        hardware_acceleration: Decode on the GPU when available.
        hardware_acceleration_type: Decoder API hint (``auto`` or ``none``).
        skip_frames_on_lag: Drop frames to keep up when decoding runs late.
        adaptive_quality: Allow automatic quality downgrades.
        preferred_quality: Quality tier to request from the source.
        remember_position: Resume on-demand content where it stopped.
        auto_play_next: Chain to the next episode when one ends.
    """

    network_caching_ms: int = 3000
    live_caching_ms: int = 3000
    file_caching_ms: int = 1500
    min_buffer_before_play_percent: int = 20
    reconnect_attempts: int = 3
    reconnect_delay_ms: int = 2000
    connection_timeout_ms: int = 10000
    auto_reconnect: bool = True
    hardware_acceleration: bool = True
    hardware_acceleration_type: str = "auto"
    skip_frames_on_lag: bool = True
    adaptive_quality: bool = True
    preferred_quality: QualityTier = QualityTier.AUTO
    remember_position: bool = True
    auto_play_next: bool = True

    @classmethod
    def preset(cls, name: str) -> "PlayerSettings":
        """Return a fresh copy of a named preset, or the defaults for unknown names."""
        return replace(PRESETS.get(name, PRESETS["default"]))

    def most_stable(self) -> "PlayerSettings":
        """Settings used as a last resort before reconnecting."""
        return replace(
            self,
            network_caching_ms=MAX_NETWORK_CACHING_MS,
            live_caching_ms=MAX_LIVE_CACHING_MS,
            skip_frames_on_lag=True,
            reconnect_attempts=5,
        )

    def to_mpv_options(self) -> dict[str, str]:
        """
        Render the settings as mpv options.

        Returns:
            Mapping of mpv option names to values, as passed to ``mpv.MPV``.
        """
        cache_secs = max(self.network_caching_ms, self.live_caching_ms) / 1000
        options = {
            "cache": "yes",
            "cache-secs": f"{cache_secs:g}",
            "demuxer-readahead-secs": f"{self.file_caching_ms / 1000:g}",
            "network-timeout": str(max(1, self.connection_timeout_ms // 1000)),
            "cache-pause-wait": f"{cache_secs * self.min_buffer_before_play_percent / 100:g}",
            "hwdec": self.hardware_acceleration_type if self.hardware_acceleration else "no",
            "framedrop": "decoder+vo" if self.skip_frames_on_lag else "no",
        }
        if self.auto_reconnect:
            options["stream-lavf-o"] = (
                "reconnect=1,reconnect_streamed=1,"
                f"reconnect_delay_max={max(1, self.reconnect_delay_ms // 1000)}"
            )
        return options


PRESETS: dict[str, PlayerSettings] = {
    "default": PlayerSettings(),
    "stable": PlayerSettings(
        network_caching_ms=5000,
        live_caching_ms=5000,
        file_caching_ms=3000,
        skip_frames_on_lag=True,
        reconnect_attempts=5,
        min_buffer_before_play_percent=30,
        adaptive_quality=True,
    ),
    "lowlatency": PlayerSettings(
        network_caching_ms=1000,
        live_caching_ms=1000,
        file_caching_ms=500,
        skip_frames_on_lag=True,
        min_buffer_before_play_percent=10,
    ),
    "quality": PlayerSettings(
        network_caching_ms=8000,
        live_caching_ms=8000,
        file_caching_ms=5000,
        skip_frames_on_lag=False,
        min_buffer_before_play_percent=40,
    ),
    "slowconnection": PlayerSettings(
        network_caching_ms=10000,
        live_caching_ms=10000,
        file_caching_ms=5000,
        skip_frames_on_lag=True,
        reconnect_attempts=5,
        reconnect_delay_ms=3000,
        connection_timeout_ms=30000,
        adaptive_quality=True,
        min_buffer_before_play_percent=50,
        preferred_quality=QualityTier.MEDIUM,
    ),
    "compatibility": PlayerSettings(
        network_caching_ms=5000,
        live_caching_ms=5000,
        hardware_acceleration=False,
        hardware_acceleration_type="none",
    ),
}
