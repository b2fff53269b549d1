"""Playback session: one adaptation controller per active stream."""

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import replace

from .controller import AdaptationController
from .events import AdaptationEvents
from .player import Player
from .quality_ladder import select_variant
from .resolver import SettingsResolver
from .settings import PlayerSettings
from .types import AdaptationThresholds, ContentType, QualityTier, StreamURL

logger = logging.getLogger(__name__)

# Pause between stopping and reopening a stream during a restart
RESTART_GRACE_SECONDS = 0.5


class PlaybackSession:
    """
    Plays a stream and keeps it healthy with an AdaptationController.

    The session is the controller's caller: it starts playback with quick
    preset settings, refines them with a background probe, and carries out the
    restarts and quality switches the controller asks for. Starting a new
    stream (or changing channel) tears down the previous controller, which
    also cancels any reconnect it had in flight.

    Attributes:
        player: The player used for every stream in this session.
        resolver: Resolves initial settings.
        thresholds: Adaptation constants passed to each controller.
        events: Caller callbacks, shared with each controller.
        probe_on_start: Whether to probe the stream after playback starts.
        controller: The active controller, if a stream is playing.
    """

    def __init__(
        self,
        player: Player,
        resolver: SettingsResolver | None = None,
        thresholds: AdaptationThresholds | None = None,
        events: AdaptationEvents | None = None,
        probe_on_start: bool = True,
        restart_grace: float = RESTART_GRACE_SECONDS,
    ) -> None:
        self.player = player
        self.resolver = resolver or SettingsResolver()
        self.thresholds = thresholds or AdaptationThresholds()
        self.probe_on_start = probe_on_start
        self.restart_grace = restart_grace
        self.controller: AdaptationController | None = None
        self.url: StreamURL | None = None
        self.content_type = ContentType.LIVE
        self.variants: dict[QualityTier, StreamURL] = {}

        self._caller_events = events or AdaptationEvents()
        self.events = replace(
            self._caller_events,
            on_restart_required=self._on_restart_required,
            on_quality_downgrade_requested=self._on_quality_downgrade_requested,
        )
        self._background: set[asyncio.Task] = set()

    @property
    def settings(self) -> PlayerSettings | None:
        return self.controller.settings if self.controller else None

    async def play(
        self,
        url: StreamURL,
        content_type: ContentType = ContentType.LIVE,
        variants: Mapping[QualityTier, StreamURL] | None = None,
        settings: PlayerSettings | None = None,
    ) -> AdaptationController:
        """
        Start playing a stream with adaptive monitoring.

        Args:
            url: Stream URL to play.
            content_type: Kind of content (default: LIVE).
            variants: Optional per-tier URLs used for quality downgrades.
            settings: Initial settings; a quick content-type preset if None.

        Returns:
            The controller monitoring this stream.
        """
        await self.stop()

        self.url = url
        self.content_type = content_type
        self.variants = dict(variants or {})
        initial = settings or self.resolver.quick_resolve(content_type)
        logger.info(
            "Playing %s (%s) with buffer %dms", url, content_type.value, initial.network_caching_ms
        )

        self.events.emit("on_status_changed", "Starting playback...")
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self.player.play, url, initial)

        self.controller = AdaptationController(
            self.player,
            url,
            initial,
            content_type=content_type,
            thresholds=self.thresholds,
            events=self.events,
        )
        self.controller.start()
        self.events.emit("on_settings_changed", initial)

        if self.probe_on_start:
            self._spawn(self._probe_and_apply(self.controller))

        return self.controller

    async def change_channel(
        self,
        url: StreamURL,
        content_type: ContentType = ContentType.LIVE,
        variants: Mapping[QualityTier, StreamURL] | None = None,
    ) -> AdaptationController:
        """Switch to another stream, discarding all adaptation state."""
        return await self.play(url, content_type, variants)

    async def stop(self) -> None:
        """Stop monitoring and playback, cancelling background work."""
        controller, self.controller = self.controller, None
        if controller is not None:
            await controller.aclose()

        for task in list(self._background):
            task.cancel()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

        if controller is not None:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, self.player.stop)

    async def _probe_and_apply(self, controller: AdaptationController) -> None:
        try:
            settings, info = await self.resolver.optimize(controller.url, controller.content_type)
        except Exception:
            logger.exception("Stream analysis failed for %s", controller.url)
            return

        if controller is not self.controller or not controller.is_monitoring:
            return

        self.events.emit("on_status_changed", f"Connection: {info.quality_level.value}")
        self.events.emit("on_quality_analyzed", info)
        controller.apply_settings(settings)
        logger.info("Applied probed settings for %s: %s", controller.url, info.summary())

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    def _on_restart_required(self) -> None:
        """Controller callback: reopen the stream with the current settings."""
        self._caller_events.emit("on_restart_required")

        controller = self.controller
        if controller is None or self.url is None:
            return
        self._spawn(self.restart(controller, self.url))

    def _on_quality_downgrade_requested(self, tier: QualityTier) -> None:
        """Controller callback: switch to the variant for the new tier, if any."""
        self._caller_events.emit("on_quality_downgrade_requested", tier)

        controller = self.controller
        if controller is None or not self.variants:
            return

        url = select_variant(self.variants, tier)
        if url is None or url == controller.url:
            logger.debug("No distinct variant for %s, keeping %s", tier.label, controller.url)
            return

        logger.info("Switching to %s variant: %s", tier.label, url)
        controller.url = url
        self.url = url
        self._spawn(self.restart(controller, url))

    async def restart(self, controller: AdaptationController, url: StreamURL) -> None:
        """
        Reopen a stream with the controller's current settings.

        On-demand content resumes from its current position when the
        settings ask to remember it.

        Args:
            controller: Controller whose settings to apply.
            url: Stream URL to reopen.
        """
        async with controller.player_lock:
            if controller is not self.controller:
                return

            loop = asyncio.get_running_loop()
            settings = controller.settings
            position = None
            if not self.content_type.is_live and settings.remember_position:
                position = await loop.run_in_executor(None, self.player.position)

            logger.info("Restarting %s with buffer %dms", url, settings.network_caching_ms)
            with controller.player_cycle():
                await loop.run_in_executor(None, self.player.stop)
                await asyncio.sleep(self.restart_grace)
                await loop.run_in_executor(None, self.player.play, url, settings, position)
