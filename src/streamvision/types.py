"""Type definitions for streamvision."""

from dataclasses import dataclass
from enum import Enum
from typing import TypeAlias

# Common type aliases
URL: TypeAlias = str
StreamURL: TypeAlias = str

# Download speed bands in Mbps
SPEED_EXCELLENT_MBPS = 50
SPEED_VERY_GOOD_MBPS = 20
SPEED_GOOD_MBPS = 10
SPEED_AVERAGE_MBPS = 5
SPEED_LOW_MBPS = 2

# A connection is stable below this latency and above SPEED_AVERAGE_MBPS
STABLE_LATENCY_MS = 500


class ContentType(Enum):
    """Kind of content being played, as tagged by the playlist source."""

    LIVE = "live"
    MOVIE = "movie"
    SERIES = "series"
    EPISODE = "episode"
    CATCHUP = "catchup"

    @property
    def is_live(self) -> bool:
        return self is ContentType.LIVE


class SpeedCategory(Enum):
    """Coarse classification of a measured download speed."""

    EXCELLENT = "Excellent"
    VERY_GOOD = "Very good"
    GOOD = "Good"
    AVERAGE = "Average"
    LOW = "Low"
    VERY_LOW = "Very low"
    UNKNOWN = "Unknown"

    @classmethod
    def from_speed(cls, mbps: float) -> "SpeedCategory":
        """Map a download speed in Mbps to its category."""
        if mbps >= SPEED_EXCELLENT_MBPS:
            return cls.EXCELLENT
        if mbps >= SPEED_VERY_GOOD_MBPS:
            return cls.VERY_GOOD
        if mbps >= SPEED_GOOD_MBPS:
            return cls.GOOD
        if mbps >= SPEED_AVERAGE_MBPS:
            return cls.AVERAGE
        if mbps >= SPEED_LOW_MBPS:
            return cls.LOW
        return cls.VERY_LOW


class QualityTier(Enum):
    """Discrete stream quality classes, from automatic to lowest bitrate."""

    AUTO = "auto"
    ULTRA = "ultra"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def label(self) -> str:
        return _TIER_LABELS[self]

    @property
    def next_lower(self) -> "QualityTier | None":
        """The tier a downgrade moves to, or None if already at the bottom."""
        return _DOWNGRADE_SUCCESSORS.get(self)


_TIER_LABELS = {
    QualityTier.AUTO: "Auto",
    QualityTier.ULTRA: "4K",
    QualityTier.HIGH: "1080p",
    QualityTier.MEDIUM: "720p",
    QualityTier.LOW: "SD",
}

# From AUTO the first step goes straight to MEDIUM
_DOWNGRADE_SUCCESSORS = {
    QualityTier.AUTO: QualityTier.MEDIUM,
    QualityTier.ULTRA: QualityTier.HIGH,
    QualityTier.HIGH: QualityTier.MEDIUM,
    QualityTier.MEDIUM: QualityTier.LOW,
}


class HealthStatus(Enum):
    """Derived playback health, ordered from unknown to critical."""

    UNKNOWN = 0
    EXCELLENT = 1
    GOOD = 2
    FAIR = 3
    POOR = 4
    CRITICAL = 5

    @property
    def icon(self) -> str:
        return _HEALTH_DISPLAY[self][0]

    @property
    def display_text(self) -> str:
        return _HEALTH_DISPLAY[self][1]

    @property
    def color_code(self) -> str:
        return _HEALTH_DISPLAY[self][2]


_HEALTH_DISPLAY = {
    HealthStatus.UNKNOWN: ("⚪", "Unknown", "#9E9E9E"),
    HealthStatus.EXCELLENT: ("🟢", "Excellent", "#00C853"),
    HealthStatus.GOOD: ("🟢", "Good", "#64DD17"),
    HealthStatus.FAIR: ("🟡", "Fair", "#FFD600"),
    HealthStatus.POOR: ("🟠", "Poor", "#FF6D00"),
    HealthStatus.CRITICAL: ("🔴", "Critical", "#D50000"),
}


class Adaptation(Enum):
    """Remediation actions the controller can take in a single tick."""

    QUALITY_DOWNGRADE = "quality_downgrade"
    BUFFER_NUDGE = "buffer_nudge"
    STALL_RECOVERY = "stall_recovery"
    RECONNECT = "reconnect"
    STABILIZE = "stabilize"


@dataclass(frozen=True)
class ConnectionInfo:
    """Result of a one-off network probe.

    Attributes:
        latency_ms: Time until response headers arrived, in milliseconds.
        download_speed_mbps: Throughput estimated from a body sample.
        speed_category: Classification of the download speed.
        is_stable: Whether latency and speed are both comfortable.
    """

    latency_ms: int
    download_speed_mbps: float
    speed_category: SpeedCategory
    is_stable: bool

    @classmethod
    def measured(cls, latency_ms: int, download_speed_mbps: float) -> "ConnectionInfo":
        return cls(
            latency_ms=latency_ms,
            download_speed_mbps=download_speed_mbps,
            speed_category=SpeedCategory.from_speed(download_speed_mbps),
            is_stable=latency_ms < STABLE_LATENCY_MS and download_speed_mbps > SPEED_AVERAGE_MBPS,
        )

    @classmethod
    def conservative(cls) -> "ConnectionInfo":
        """Assumed connection when a probe fails."""
        return cls(
            latency_ms=500,
            download_speed_mbps=5.0,
            speed_category=SpeedCategory.UNKNOWN,
            is_stable=False,
        )


@dataclass(frozen=True)
class StreamQualityInfo:
    """Summary of a stream analysis, published to the UI after probing."""

    latency_ms: int
    download_speed_mbps: float
    recommended_buffer_ms: int
    quality_level: SpeedCategory
    content_type: ContentType
    health_status: HealthStatus = HealthStatus.UNKNOWN

    def summary(self) -> str:
        return (
            f"Latency: {self.latency_ms}ms | Speed: {self.download_speed_mbps:.1f} Mbps | "
            f"Recommended buffer: {self.recommended_buffer_ms}ms"
        )


@dataclass
class AdaptationThresholds:
    """Tunable constants for health classification and adaptation timing.

    Attributes:
        tick_interval_seconds: Seconds between controller ticks.
        quality_cooldown_seconds: Pause after a quality downgrade.
        recovery_cooldown_seconds: How long stall recovery blocks levels 1-2.
        event_window_seconds: Age after which buffering events are pruned.
        stabilize_after_seconds: Session age before buffers may be reduced.
        buffer_history_size: Capacity of the buffer sample ring.
        stall_percent: Cache level below which a sample counts as a stall.
        low_buffer_percent: Cache level below which a sample counts as low.
        low_buffer_run: Consecutive low samples that make one buffering event.
        quality_downgrade_limit: Downgrade bound for quality-first adaptation.
        recovery_downgrade_limit: Downgrade bound during stall recovery.
    """

    tick_interval_seconds: float = 2.0
    quality_cooldown_seconds: float = 3.0
    recovery_cooldown_seconds: float = 5.0
    event_window_seconds: float = 60.0
    stabilize_after_seconds: float = 120.0
    buffer_history_size: int = 30
    stall_percent: float = 10.0
    low_buffer_percent: float = 50.0
    low_buffer_run: int = 3
    quality_downgrade_limit: int = 3
    recovery_downgrade_limit: int = 5
