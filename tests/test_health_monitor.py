"""Tests for buffering telemetry and health classification."""

import threading

from streamvision.health_monitor import HealthMonitor, classify
from streamvision.types import AdaptationThresholds, HealthStatus


class TestBufferRing:
    """Test the bounded buffer sample ring."""

    def test_ring_never_exceeds_capacity(self, clock):
        """Test that only the newest 30 samples are retained."""
        monitor = HealthMonitor(clock=clock)

        for value in range(100):
            monitor.on_buffer_sample(float(value))

        history = monitor.buffer_history
        assert len(history) == 30
        assert history == [float(v) for v in range(70, 100)]

    def test_average_is_mean_of_retained_samples(self, clock):
        """Test that the average covers exactly the retained entries."""
        monitor = HealthMonitor(clock=clock)

        for value in range(100):
            monitor.on_buffer_sample(float(value))

        assert monitor.average_buffer == sum(range(70, 100)) / 30

    def test_average_without_samples(self, clock):
        """Test that an empty ring has no average."""
        monitor = HealthMonitor(clock=clock)
        assert monitor.average_buffer is None

    def test_custom_capacity(self, clock):
        """Test that the ring capacity follows the thresholds."""
        monitor = HealthMonitor(AdaptationThresholds(buffer_history_size=5), clock=clock)

        for value in (10, 20, 30, 40, 50, 60, 70):
            monitor.on_buffer_sample(value)

        assert monitor.buffer_history == [30, 40, 50, 60, 70]


class TestSampleClassification:
    """Test how individual samples update the counters."""

    def test_single_stall(self, clock):
        """Test that one sample below 10% is a stall and forces Poor or worse."""
        monitor = HealthMonitor(clock=clock)
        monitor.on_buffer_sample(5)

        report = monitor.report()
        assert report.stall_count == 1
        assert report.recent_events == 1
        assert report.status.value >= HealthStatus.POOR.value

    def test_full_buffer_is_excellent(self, clock):
        """Test that 30 full samples classify as Excellent with no events."""
        monitor = HealthMonitor(clock=clock)
        for _ in range(30):
            monitor.on_buffer_sample(100)

        report = monitor.report()
        assert report.average_buffer == 100
        assert report.recent_events == 0
        assert report.status is HealthStatus.EXCELLENT

    def test_low_buffer_run_is_debounced(self, clock):
        """Test that three consecutive low samples record exactly one event."""
        monitor = HealthMonitor(clock=clock)
        for value in (30, 35, 40):
            monitor.on_buffer_sample(value)

        report = monitor.report()
        assert report.recent_events == 1
        assert report.buffering_count == 3
        with monitor.locked() as state:
            assert state.consecutive_low_buffer_run == 0

    def test_short_low_buffer_run_records_nothing(self, clock):
        """Test that two low samples are counted but not recorded as an event."""
        monitor = HealthMonitor(clock=clock)
        monitor.on_buffer_sample(30)
        monitor.on_buffer_sample(35)

        report = monitor.report()
        assert report.buffering_count == 2
        assert report.recent_events == 0

    def test_healthy_sample_resets_low_run(self, clock):
        """Test that a sample at or above 50% breaks a low-buffer run."""
        monitor = HealthMonitor(clock=clock)
        for value in (30, 30, 60, 30, 30):
            monitor.on_buffer_sample(value)

        assert monitor.report().recent_events == 0

        monitor.on_buffer_sample(30)
        assert monitor.report().recent_events == 1

    def test_stall_resets_low_run(self, clock):
        """Test that a stall restarts the low-buffer run."""
        monitor = HealthMonitor(clock=clock)
        for value in (30, 30, 5, 30, 30):
            monitor.on_buffer_sample(value)

        # Only the stall has been recorded
        events = monitor.recent_events
        assert [e.kind for e in events] == ["stall"]

    def test_concurrent_samples_are_counted_exactly(self, clock):
        """Test that samples from several threads are never lost."""
        monitor = HealthMonitor(clock=clock)

        def feed():
            for _ in range(250):
                monitor.on_buffer_sample(30)

        threads = [threading.Thread(target=feed) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        report = monitor.report()
        assert report.buffering_count == 1000
        assert report.recent_events == 333
        assert report.sample_count == 30


class TestEventWindow:
    """Test pruning of old buffering events."""

    def test_prune_drops_events_older_than_window(self, clock):
        """Test that no event older than 60s survives a prune."""
        monitor = HealthMonitor(clock=clock)
        monitor.on_buffer_sample(5)
        clock.advance(30)
        monitor.on_buffer_sample(5)
        clock.advance(31)

        assert monitor.prune_events() == 1
        cutoff = clock() - 60
        assert all(event.timestamp >= cutoff for event in monitor.recent_events)

    def test_classification_prunes_first(self, clock):
        """Test that expired events no longer affect health."""
        monitor = HealthMonitor(clock=clock)
        for value in (30, 30, 30):
            monitor.on_buffer_sample(value)
        for _ in range(30):
            monitor.on_buffer_sample(100)

        assert monitor.classify_health() is HealthStatus.GOOD

        clock.advance(61)
        assert monitor.classify_health() is HealthStatus.EXCELLENT

    def test_clear_stalls(self, clock):
        """Test that clearing stalls also forgets events."""
        monitor = HealthMonitor(clock=clock)
        monitor.on_buffer_sample(5)
        monitor.on_buffer_sample(5)

        monitor.clear_stalls()

        report = monitor.report()
        assert report.stall_count == 0
        assert report.recent_events == 0


class TestErrorsAndReset:
    """Test error counting and state reset."""

    def test_error_makes_health_critical(self, clock):
        """Test that any player error classifies as Critical."""
        monitor = HealthMonitor(clock=clock)
        for _ in range(30):
            monitor.on_buffer_sample(100)

        assert monitor.record_error() == 1
        assert monitor.classify_health() is HealthStatus.CRITICAL

        monitor.clear_errors()
        assert monitor.classify_health() is HealthStatus.EXCELLENT

    def test_reset_discards_everything(self, clock):
        """Test that reset starts a fresh session."""
        monitor = HealthMonitor(clock=clock)
        monitor.on_buffer_sample(5)
        monitor.record_error()
        clock.advance(10)

        monitor.reset()

        report = monitor.report()
        assert report.status is HealthStatus.UNKNOWN
        assert report.sample_count == 0
        assert report.error_count == 0
        assert report.session_age_seconds == 0


class TestClassify:
    """Test the classification ladder directly."""

    def test_unknown_without_observations(self):
        assert classify(None, 0, 0, 0) is HealthStatus.UNKNOWN

    def test_errors_without_samples_are_critical(self):
        assert classify(None, 0, 0, 1) is HealthStatus.CRITICAL

    def test_thresholds(self):
        """Test each rung of the ladder."""
        assert classify(19, 0, 0, 0) is HealthStatus.CRITICAL
        assert classify(100, 5, 0, 0) is HealthStatus.CRITICAL
        assert classify(29, 0, 0, 0) is HealthStatus.POOR
        assert classify(100, 3, 0, 0) is HealthStatus.POOR
        assert classify(100, 0, 1, 0) is HealthStatus.POOR
        assert classify(49, 0, 0, 0) is HealthStatus.FAIR
        assert classify(100, 2, 0, 0) is HealthStatus.FAIR
        assert classify(79, 0, 0, 0) is HealthStatus.GOOD
        assert classify(100, 1, 0, 0) is HealthStatus.GOOD
        assert classify(80, 0, 0, 0) is HealthStatus.EXCELLENT
