"""Bounded, delayed reconnection of a failed stream."""

import asyncio
import logging

from .events import AdaptationEvents
from .player import Player
from .settings import PlayerSettings
from .types import StreamURL

logger = logging.getLogger(__name__)

# Pause between stopping the player and reopening the stream
GRACE_PERIOD_SECONDS = 0.5
# How long a reopened stream gets before we check that it plays
VERIFY_DELAY_SECONDS = 2.0


class ReconnectManager:
    """
    Restarts a stream with a fixed number of sequential, delayed attempts.

    The manager never escalates on its own: when every attempt fails it
    reports False and leaves the next step to the adaptation controller.

    Attributes:
        player: Player to stop and restart.
        events: Subscriber callbacks for progress and status text.
        grace_period: Seconds between stop and play.
        verify_delay: Seconds to wait before checking that playback resumed.
    """

    def __init__(
        self,
        player: Player,
        events: AdaptationEvents | None = None,
        grace_period: float = GRACE_PERIOD_SECONDS,
        verify_delay: float = VERIFY_DELAY_SECONDS,
    ) -> None:
        self.player = player
        self.events = events or AdaptationEvents()
        self.grace_period = grace_period
        self.verify_delay = verify_delay
        self.attempts_made = 0
        self._in_flight = False

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    async def try_reconnect(self, url: StreamURL, settings: PlayerSettings) -> bool:
        """
        Reopen a stream until it plays or the attempts run out.

        Each attempt waits ``settings.reconnect_delay_ms``, stops the player,
        waits the grace period, plays ``url`` and checks ``is_playing`` after
        the verify delay. Cancelling the calling task aborts the sequence.

        Args:
            url: Stream URL to reopen.
            settings: Settings to play with; also supplies attempt count and delay.

        Returns:
            True on the first attempt that plays, False once all attempts failed
            or if another reconnect is already running.
        """
        if self._in_flight:
            logger.warning("Reconnect already in progress, ignoring request for %s", url)
            return False

        self._in_flight = True
        self.attempts_made = 0
        loop = asyncio.get_running_loop()
        total = settings.reconnect_attempts

        try:
            for attempt in range(1, total + 1):
                self.attempts_made = attempt
                self.events.emit("on_reconnecting", f"Reconnecting... attempt {attempt}/{total}")

                try:
                    await asyncio.sleep(settings.reconnect_delay_ms / 1000)
                    await loop.run_in_executor(None, self.player.stop)
                    await asyncio.sleep(self.grace_period)
                    await loop.run_in_executor(None, self.player.play, url, settings)
                    await asyncio.sleep(self.verify_delay)

                    if self.player.is_playing():
                        logger.info("Reconnected to %s on attempt %d/%d", url, attempt, total)
                        self.events.emit("on_status_changed", "Reconnection succeeded")
                        return True
                except Exception as e:
                    logger.exception("Reconnect attempt %d/%d failed for %s", attempt, total, url)
                    self.events.emit("on_status_changed", f"Attempt {attempt} failed: {e}")
                else:
                    logger.warning("Stream not playing after attempt %d/%d", attempt, total)

            logger.error("Reconnection to %s failed after %d attempts", url, total)
            self.events.emit("on_status_changed", "Reconnection failed")
            return False
        finally:
            self._in_flight = False
