"""Playback health tracking from player buffering telemetry."""

import logging
import threading
import time
from collections import deque
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field

import numpy as np

from .types import AdaptationThresholds, HealthStatus

logger = logging.getLogger(__name__)

# Classification thresholds on the average buffer level (percent)
CRITICAL_AVG_BUFFER = 20
POOR_AVG_BUFFER = 30
FAIR_AVG_BUFFER = 50
GOOD_AVG_BUFFER = 80

# Classification thresholds on recent buffering events
CRITICAL_EVENTS = 5
POOR_EVENTS = 3
FAIR_EVENTS = 2
GOOD_EVENTS = 1


@dataclass
class BufferingEvent:
    """A stall or a debounced run of low-buffer samples."""

    timestamp: float
    kind: str


@dataclass
class AdaptationState:
    """Mutable per-session counters shared by the player thread and the tick task.

    Only touch an instance while holding the owning HealthMonitor's lock
    (see ``HealthMonitor.locked``).
    """

    session_start: float
    buffering_count: int = 0
    stall_count: int = 0
    error_count: int = 0
    consecutive_low_buffer_run: int = 0
    is_recovering: bool = False
    recovering_until: float | None = None


@dataclass(frozen=True)
class HealthReport:
    """Point-in-time snapshot of the monitor, for logging and the UI."""

    status: HealthStatus
    average_buffer: float | None
    min_buffer: float | None
    sample_count: int
    recent_events: int
    buffering_count: int
    stall_count: int
    error_count: int
    session_age_seconds: float
    timestamp: float = field(default_factory=time.time)


def classify(
    average_buffer: float | None,
    recent_events: int,
    stall_count: int,
    error_count: int,
) -> HealthStatus:
    """
    Classify playback health from current counters.

    Args:
        average_buffer: Mean of the buffer ring, or None when no samples exist.
        recent_events: Buffering events inside the event window.
        stall_count: Stalls since the last recovery.
        error_count: Player errors since the last successful reconnect.

    Returns:
        The health status; UNKNOWN if nothing has been observed yet.
    """
    if average_buffer is None:
        if not (recent_events or stall_count or error_count):
            return HealthStatus.UNKNOWN
        average_buffer = 100.0

    if error_count > 0 or average_buffer < CRITICAL_AVG_BUFFER or recent_events >= CRITICAL_EVENTS:
        return HealthStatus.CRITICAL
    if average_buffer < POOR_AVG_BUFFER or recent_events >= POOR_EVENTS or stall_count > 0:
        return HealthStatus.POOR
    if average_buffer < FAIR_AVG_BUFFER or recent_events >= FAIR_EVENTS:
        return HealthStatus.FAIR
    if average_buffer < GOOD_AVG_BUFFER or recent_events >= GOOD_EVENTS:
        return HealthStatus.GOOD
    return HealthStatus.EXCELLENT


class HealthMonitor:
    """
    Collects buffering telemetry and classifies playback health.

    ``on_buffer_sample`` and ``record_error`` are called from the player's
    callback thread while the adaptation controller reads and resets counters
    from its own task, so every piece of mutable state sits behind one lock.

    Attributes:
        thresholds: Classification and windowing constants.
        clock: Monotonic time source in seconds.
    """

    def __init__(
        self,
        thresholds: AdaptationThresholds | None = None,
        clock: Callable[[], float] = time.monotonic,
        log: logging.Logger | None = None,
    ) -> None:
        """
        Initialize the monitor.

        Args:
            thresholds: Tunable constants (uses defaults if None).
            clock: Time source, injectable for tests (default: time.monotonic).
            log: Logger to report through (default: module logger).
        """
        self.thresholds = thresholds or AdaptationThresholds()
        self.clock = clock
        self._log = log or logger
        self._lock = threading.Lock()
        self._buffer_history: deque[float] = deque(maxlen=self.thresholds.buffer_history_size)
        self._events: deque[BufferingEvent] = deque()
        self._state = AdaptationState(session_start=self.clock())

    def on_buffer_sample(self, cache_percent: float) -> None:
        """
        Record one buffering sample reported by the player.

        Args:
            cache_percent: Buffer fill level between 0 and 100.
        """
        now = self.clock()

        with self._lock:
            self._buffer_history.append(cache_percent)
            state = self._state

            if cache_percent < self.thresholds.stall_percent:
                state.stall_count += 1
                state.consecutive_low_buffer_run = 0
                self._events.append(BufferingEvent(now, "stall"))
                self._log.warning("Stall detected: buffer at %.1f%%", cache_percent)
            elif cache_percent < self.thresholds.low_buffer_percent:
                state.buffering_count += 1
                state.consecutive_low_buffer_run += 1
                if state.consecutive_low_buffer_run >= self.thresholds.low_buffer_run:
                    self._events.append(BufferingEvent(now, "low_buffer"))
                    state.consecutive_low_buffer_run = 0
                    self._log.info("Sustained low buffer: %.1f%%", cache_percent)
            else:
                state.consecutive_low_buffer_run = 0

    def record_error(self) -> int:
        """Count a player error. Returns the new error count."""
        with self._lock:
            self._state.error_count += 1
            return self._state.error_count

    def clear_errors(self) -> None:
        with self._lock:
            self._state.error_count = 0

    def prune_events(self) -> int:
        """
        Drop buffering events older than the event window.

        Returns:
            Number of events still inside the window.
        """
        cutoff = self.clock() - self.thresholds.event_window_seconds

        with self._lock:
            while self._events and self._events[0].timestamp < cutoff:
                self._events.popleft()
            return len(self._events)

    def clear_stalls(self) -> None:
        """Forget stalls and buffering events after a recovery restart."""
        with self._lock:
            self._state.stall_count = 0
            self._events.clear()

    @property
    def average_buffer(self) -> float | None:
        """Arithmetic mean of the retained samples, or None if there are none."""
        with self._lock:
            return self._average_locked()

    @property
    def buffer_history(self) -> list[float]:
        with self._lock:
            return list(self._buffer_history)

    @property
    def recent_events(self) -> list[BufferingEvent]:
        with self._lock:
            return list(self._events)

    def _average_locked(self) -> float | None:
        if not self._buffer_history:
            return None
        return float(np.mean(self._buffer_history))

    def classify_health(self) -> HealthStatus:
        """
        Prune expired events and classify current health.

        Returns:
            Current HealthStatus, recomputed from scratch.
        """
        return self.report().status

    def report(self) -> HealthReport:
        """
        Prune expired events and take a full snapshot.

        Returns:
            HealthReport with the classification and the counters behind it.
        """
        recent = self.prune_events()
        now = self.clock()

        with self._lock:
            state = self._state
            average = self._average_locked()
            minimum = float(np.min(self._buffer_history)) if self._buffer_history else None
            status = classify(average, recent, state.stall_count, state.error_count)
            return HealthReport(
                status=status,
                average_buffer=average,
                min_buffer=minimum,
                sample_count=len(self._buffer_history),
                recent_events=recent,
                buffering_count=state.buffering_count,
                stall_count=state.stall_count,
                error_count=state.error_count,
                session_age_seconds=now - state.session_start,
            )

    @contextmanager
    def locked(self) -> Iterator[AdaptationState]:
        """Hold the monitor lock and yield the live AdaptationState."""
        with self._lock:
            yield self._state

    def reset(self) -> None:
        """Discard all telemetry and start a fresh session."""
        with self._lock:
            self._buffer_history.clear()
            self._events.clear()
            self._state = AdaptationState(session_start=self.clock())
        self._log.debug("Health monitor state reset")
