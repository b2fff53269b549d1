"""Callbacks the adaptation controller publishes to its caller."""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from .settings import PlayerSettings
from .types import HealthStatus, QualityTier, StreamQualityInfo

logger = logging.getLogger(__name__)


@dataclass
class AdaptationEvents:
    """
    Optional subscriber callbacks.

    Callbacks run on whichever thread raised them (the controller task or the
    player's callback thread); a UI must marshal them onto its own thread.
    Exceptions raised by a callback are logged and never reach the controller.

    Attributes:
        on_status_changed: Human-readable status text.
        on_quality_analyzed: Probe summary once initial settings are resolved.
        on_settings_changed: New PlayerSettings after any change.
        on_reconnecting: Progress text during a reconnect sequence.
        on_health_status_changed: New HealthStatus when the classification changes.
        on_restart_required: The stream must be reopened with the current settings.
        on_quality_downgrade_requested: The quality tier playback should switch to.
    """

    on_status_changed: Callable[[str], None] | None = None
    on_quality_analyzed: Callable[[StreamQualityInfo], None] | None = None
    on_settings_changed: Callable[[PlayerSettings], None] | None = None
    on_reconnecting: Callable[[str], None] | None = None
    on_health_status_changed: Callable[[HealthStatus], None] | None = None
    on_restart_required: Callable[[], None] | None = None
    on_quality_downgrade_requested: Callable[[QualityTier], None] | None = None

    def emit(self, name: str, *args: Any) -> None:
        """
        Invoke the named callback if one is registered.

        Args:
            name: Attribute name of the callback, e.g. ``"on_status_changed"``.
            *args: Arguments passed to the callback.
        """
        callback = getattr(self, name)
        if callback is None:
            return

        try:
            callback(*args)
        except Exception:
            logger.exception("Error in %s callback", name)
