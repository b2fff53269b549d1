"""
Streamvision - Adaptive playback quality control for IPTV streams.

This package probes a stream before playback, picks initial buffering
settings, and keeps playback healthy by downgrading quality, growing
buffers, restarting or reconnecting as buffering telemetry demands.
"""

from .controller import AdaptationController
from .events import AdaptationEvents
from .health_monitor import HealthMonitor, HealthReport
from .player import MpvPlayer, Player, PlayerListener
from .probe import ConnectionProbe
from .quality_ladder import QualityLadder, select_variant
from .reconnect import ReconnectManager
from .resolver import SettingsResolver
from .session import PlaybackSession
from .settings import PlayerSettings
from .types import (
    Adaptation,
    AdaptationThresholds,
    ConnectionInfo,
    ContentType,
    HealthStatus,
    QualityTier,
    SpeedCategory,
    StreamQualityInfo,
)

__version__ = "0.1.0"
__all__ = [
    "Adaptation",
    "AdaptationController",
    "AdaptationEvents",
    "AdaptationThresholds",
    "ConnectionInfo",
    "ConnectionProbe",
    "ContentType",
    "HealthMonitor",
    "HealthReport",
    "HealthStatus",
    "MpvPlayer",
    "PlaybackSession",
    "Player",
    "PlayerListener",
    "PlayerSettings",
    "QualityLadder",
    "QualityTier",
    "ReconnectManager",
    "SettingsResolver",
    "SpeedCategory",
    "StreamQualityInfo",
    "select_variant",
]
