"""Real-time adaptation of playback settings to buffering health."""

import asyncio
import logging
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import replace

from .events import AdaptationEvents
from .health_monitor import HealthMonitor
from .player import Player
from .quality_ladder import QualityLadder
from .reconnect import ReconnectManager
from .settings import MAX_LIVE_CACHING_MS, MAX_NETWORK_CACHING_MS, PlayerSettings
from .types import Adaptation, AdaptationThresholds, ContentType, HealthStatus, StreamURL

logger = logging.getLogger(__name__)

# Level 1: gentle buffer increase
NUDGE_NETWORK_STEP_MS = 1000
NUDGE_NETWORK_CAP_MS = 10000
NUDGE_LIVE_STEP_MS = 500
NUDGE_LIVE_CAP_MS = 8000

# Level 2: aggressive buffer increase and restart
RECOVERY_STALLS = 2
RECOVERY_EVENTS = 4
RECOVERY_NETWORK_STEP_MS = 3000
RECOVERY_LIVE_STEP_MS = 2000

# Level 3: reconnect
CRITICAL_ERRORS = 2

# Buffer reduction once playback has been stable for a while
STABILIZE_STEP_MS = 500
STABILIZE_FLOOR_MS = 3000


class AdaptationController:
    """
    Periodically evaluates playback health and applies one remediation per tick.

    Remediation levels, checked in order with the first match winning:

    0. quality downgrade on any low-buffer run, followed by a short cooldown
    1. small buffer increase on repeated low-buffer runs
    2. large buffer increase plus stream restart on repeated stalls
    3. reconnect on repeated errors or critical health
    4. a single buffer reduction once playback has been excellent for long enough

    While a stall recovery or reconnect is in progress (``is_recovering``),
    levels 1-3 are held back. Telemetry keeps flowing into the HealthMonitor
    throughout, from the player's own thread.

    Attributes:
        player: Player being monitored.
        url: Stream URL, used for reconnects.
        content_type: Kind of content playing.
        thresholds: Timing and classification constants.
        events: Subscriber callbacks.
        monitor: Health monitor fed by player telemetry.
        ladder: Quality tier ladder.
        reconnect_manager: Executes level-3 reconnects.
        player_lock: Held by anything that stops and reopens the player.
        health: Last classified HealthStatus.
        adaptation_count: Actions taken since the session started.
    """

    def __init__(
        self,
        player: Player,
        url: StreamURL,
        settings: PlayerSettings | None = None,
        *,
        content_type: ContentType = ContentType.LIVE,
        thresholds: AdaptationThresholds | None = None,
        events: AdaptationEvents | None = None,
        monitor: HealthMonitor | None = None,
        ladder: QualityLadder | None = None,
        reconnect_manager: ReconnectManager | None = None,
        clock: Callable[[], float] = time.monotonic,
        log: logging.Logger | None = None,
    ) -> None:
        """
        Initialize the controller.

        Args:
            player: Player to subscribe to and control.
            url: Stream URL being played.
            settings: Initial settings (defaults if None).
            content_type: Kind of content (default: LIVE).
            thresholds: Tunable constants (defaults if None).
            events: Subscriber callbacks (none if None).
            monitor: Health monitor to use (created if None).
            ladder: Quality ladder to use (created if None).
            reconnect_manager: Reconnect executor (created if None).
            clock: Monotonic time source, injectable for tests.
            log: Logger to report through (default: module logger).
        """
        self.player = player
        self.url = url
        self.content_type = content_type
        self.thresholds = thresholds or AdaptationThresholds()
        self.events = events or AdaptationEvents()
        self.clock = clock
        self._log = log or logger
        self.monitor = monitor or HealthMonitor(self.thresholds, clock=clock, log=self._log)
        self.ladder = ladder or QualityLadder()
        self.reconnect_manager = reconnect_manager or ReconnectManager(player, self.events)

        self._settings = settings or PlayerSettings()
        self.health = HealthStatus.UNKNOWN
        self.adaptation_count = 0
        self._stabilized = False
        self._paused_until: float | None = None
        self._monitoring = False
        self._cycle_lock = threading.Lock()
        self._cycle_depth = 0
        # Serializes stop/play sequences on the player (restarts and reconnects)
        self.player_lock = asyncio.Lock()
        self._task: asyncio.Task | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def settings(self) -> PlayerSettings:
        return self._settings

    @property
    def is_monitoring(self) -> bool:
        return self._monitoring

    @property
    def is_cycling(self) -> bool:
        with self._cycle_lock:
            return self._cycle_depth > 0

    @property
    def is_recovering(self) -> bool:
        with self.monitor.locked() as state:
            return state.is_recovering

    def start(self) -> asyncio.Task:
        """
        Subscribe to the player and start the tick loop on the running event loop.

        Returns:
            The monitoring task.
        """
        if self._monitoring and self._task is not None:
            self._log.warning("Monitoring already started for %s", self.url)
            return self._task

        self._loop = asyncio.get_running_loop()
        self.reset()
        self._monitoring = True
        self.player.add_listener(self)
        self._task = self._loop.create_task(
            self._monitor_loop(), name=f"AdaptationController-{self.url[:30]}"
        )
        self._log.info("Started playback monitoring for %s", self.url)
        return self._task

    def stop(self) -> None:
        """
        Unsubscribe from the player and cancel the tick loop.

        Safe to call from any thread, including the player's callback thread.
        An in-flight reconnect is cancelled with the task.
        """
        if not self._monitoring:
            return

        self._monitoring = False
        self.player.remove_listener(self)

        task, loop = self._task, self._loop
        if task is not None and not task.done() and loop is not None and not loop.is_closed():
            if _running_loop() is loop:
                task.cancel()
            else:
                loop.call_soon_threadsafe(task.cancel)

        self._log.info("Stopped playback monitoring for %s", self.url)

    async def aclose(self) -> None:
        """Stop monitoring and wait for the tick loop to finish."""
        self.stop()
        task = self._task
        if task is not None and task is not asyncio.current_task():
            await asyncio.gather(task, return_exceptions=True)

    def reset(self) -> None:
        """Discard all adaptation state, as at session start or on channel change."""
        self.monitor.reset()
        self.ladder.reset()
        self.health = HealthStatus.UNKNOWN
        self.adaptation_count = 0
        self._stabilized = False
        self._paused_until = None

    def apply_settings(self, settings: PlayerSettings) -> None:
        """Replace the current settings and notify subscribers."""
        self._settings = settings
        self.events.emit("on_settings_changed", settings)

    @contextmanager
    def player_cycle(self) -> Iterator[None]:
        """Ignore player stop/end events while the player is deliberately restarted.

        Cycles may nest or overlap; events are ignored until the last one exits.
        """
        with self._cycle_lock:
            self._cycle_depth += 1
        try:
            yield
        finally:
            with self._cycle_lock:
                self._cycle_depth -= 1

    # PlayerListener interface, called on the player's thread

    def on_buffer_sample(self, cache_percent: float) -> None:
        self.monitor.on_buffer_sample(cache_percent)

    def on_error(self) -> None:
        count = self.monitor.record_error()
        self._log.warning("Player error on %s (count: %d)", self.url, count)
        self.events.emit("on_status_changed", "Playback error detected")

    def on_stopped(self) -> None:
        self._on_playback_finished("stopped")

    def on_end_reached(self) -> None:
        self._on_playback_finished("end reached")

    def _on_playback_finished(self, reason: str) -> None:
        if self.is_cycling:
            self._log.debug("Ignoring player %s during restart", reason)
            return

        self._log.info("Playback %s for %s", reason, self.url)
        self.stop()

    # Tick loop

    async def _monitor_loop(self) -> None:
        """Tick until stopped; a failing tick is logged and the loop carries on."""
        while self._monitoring:
            await asyncio.sleep(self.thresholds.tick_interval_seconds)
            if not self._monitoring:
                break

            try:
                await self.tick()
            except Exception:
                self._log.exception("Error during adaptation tick for %s", self.url)

        self._log.debug("Adaptation loop finished for %s", self.url)

    async def tick(self) -> Adaptation | None:
        """
        Classify health and apply at most one remediation.

        Returns:
            The adaptation performed, or None if nothing was needed.
        """
        report = self.monitor.report()
        now = self.clock()

        if report.status is not self.health:
            previous, self.health = self.health, report.status
            self._log.info("Health changed: %s -> %s", previous.name, report.status.name)
            self.events.emit("on_health_status_changed", report.status)

        self._log.debug(
            "Health %s (avg buffer: %s, events: %d, buffering: %d, stalls: %d, errors: %d)",
            report.status.name,
            "n/a" if report.average_buffer is None else f"{report.average_buffer:.1f}%",
            report.recent_events,
            report.buffering_count,
            report.stall_count,
            report.error_count,
        )

        with self.monitor.locked() as state:
            if state.is_recovering and state.recovering_until is not None:
                if now > state.recovering_until:
                    state.is_recovering = False
                    state.recovering_until = None
            recovering = state.is_recovering
            buffering = state.buffering_count
            stalls = state.stall_count
            errors = state.error_count

        if self._paused_until is not None:
            if now < self._paused_until:
                return None
            self._paused_until = None

        # Level 0: trade quality for bandwidth first
        quality_limit = self.thresholds.quality_downgrade_limit
        can_downgrade = self._settings.adaptive_quality and self.ladder.can_downgrade(quality_limit)
        if buffering >= 1 and can_downgrade:
            return self._downgrade_quality(now)

        # Level 1: nudge buffers up
        if buffering >= 2 and not recovering:
            action = self._nudge_buffers()
            if action is not None:
                return action

        # Level 2: stalls, restart with aggressive buffering
        stalling = stalls >= RECOVERY_STALLS or report.recent_events >= RECOVERY_EVENTS
        if stalling and not recovering:
            action = self._recover_from_stalls(now)
            if action is not None:
                return action

        # Level 3: errors or critical health, reconnect
        if (errors >= CRITICAL_ERRORS or report.status is HealthStatus.CRITICAL) and not recovering:
            return await self._reconnect()

        if (
            report.status is HealthStatus.EXCELLENT
            and report.recent_events == 0
            and report.session_age_seconds > self.thresholds.stabilize_after_seconds
            and self.adaptation_count == 0
            and not self._stabilized
        ):
            return self._reduce_buffers()

        return None

    def _downgrade_quality(self, now: float) -> Adaptation:
        tier = self.ladder.downgrade(self.thresholds.quality_downgrade_limit)
        with self.monitor.locked() as state:
            state.buffering_count = 0

        self.adaptation_count += 1
        self._paused_until = now + self.thresholds.quality_cooldown_seconds
        self._log.info("Level 0 adaptation: quality lowered to %s", tier.label)
        self.events.emit("on_status_changed", f"Lowering quality to {tier.label} to save bandwidth")
        self.events.emit("on_quality_downgrade_requested", tier)
        return Adaptation.QUALITY_DOWNGRADE

    def _nudge_buffers(self) -> Adaptation | None:
        with self.monitor.locked() as state:
            state.buffering_count = 0

        current = self._settings
        network = min(current.network_caching_ms + NUDGE_NETWORK_STEP_MS, NUDGE_NETWORK_CAP_MS)
        if network == current.network_caching_ms:
            return None

        self.apply_settings(
            replace(
                current,
                network_caching_ms=network,
                live_caching_ms=min(
                    current.live_caching_ms + NUDGE_LIVE_STEP_MS, NUDGE_LIVE_CAP_MS
                ),
            )
        )
        self.adaptation_count += 1
        self._log.info("Level 1 adaptation: buffer increased to %dms", network)
        self.events.emit("on_status_changed", f"Buffering detected - buffer raised to {network}ms")
        return Adaptation.BUFFER_NUDGE

    def _recover_from_stalls(self, now: float) -> Adaptation | None:
        tier = None
        if self._settings.adaptive_quality:
            tier = self.ladder.downgrade(self.thresholds.recovery_downgrade_limit)
        if tier is not None:
            self.events.emit("on_status_changed", f"Stall detected - switching to {tier.label}")
            self.events.emit("on_quality_downgrade_requested", tier)

        current = self._settings
        network = min(current.network_caching_ms + RECOVERY_NETWORK_STEP_MS, MAX_NETWORK_CACHING_MS)
        if network == current.network_caching_ms:
            # Buffers are maxed out; a restart would not change anything
            if tier is None:
                return None
            self.adaptation_count += 1
            return Adaptation.QUALITY_DOWNGRADE

        with self.monitor.locked() as state:
            state.is_recovering = True
            state.recovering_until = now + self.thresholds.recovery_cooldown_seconds

        self.apply_settings(
            replace(
                current,
                network_caching_ms=network,
                live_caching_ms=min(
                    current.live_caching_ms + RECOVERY_LIVE_STEP_MS, MAX_LIVE_CACHING_MS
                ),
                skip_frames_on_lag=True,
            )
        )
        self.monitor.clear_stalls()
        self.adaptation_count += 1
        self._log.info("Level 2 adaptation: aggressive buffer %dms, skip frames enabled", network)
        self.events.emit(
            "on_status_changed", f"Stream problem - aggressive buffering ({network}ms)"
        )
        self.events.emit("on_restart_required")
        return Adaptation.STALL_RECOVERY

    async def _reconnect(self) -> Adaptation:
        self._log.warning("Level 3: critical state on %s, reconnecting", self.url)

        with self.monitor.locked() as state:
            state.is_recovering = True
            state.recovering_until = None

        self.apply_settings(self._settings.most_stable())
        self.events.emit("on_status_changed", "Reconnecting automatically...")
        self.adaptation_count += 1

        try:
            async with self.player_lock:
                with self.player_cycle():
                    reconnected = await self.reconnect_manager.try_reconnect(
                        self.url, self._settings
                    )
        finally:
            with self.monitor.locked() as state:
                state.is_recovering = False

        if reconnected:
            self.monitor.clear_errors()
            self.monitor.reset()
            self.ladder.reset()
            self._paused_until = None
            # Fresh session: the next tick reports health from scratch
            self.health = HealthStatus.UNKNOWN
            self.events.emit("on_status_changed", "Reconnected - playback stabilized")
        else:
            self._log.error("Could not reconnect to %s", self.url)

        return Adaptation.RECONNECT

    def _reduce_buffers(self) -> Adaptation | None:
        self._stabilized = True
        current = self._settings
        network = max(current.network_caching_ms - STABILIZE_STEP_MS, STABILIZE_FLOOR_MS)
        if network == current.network_caching_ms:
            return None

        self.apply_settings(replace(current, network_caching_ms=network))
        self._log.info("Stable playback: buffer reduced to %dms", network)
        self.events.emit("on_status_changed", f"Stable stream - buffer reduced to {network}ms")
        return Adaptation.STABILIZE


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None
