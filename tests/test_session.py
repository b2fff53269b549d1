"""Tests for playback sessions: probing, restarts and variant switching."""

import asyncio
import dataclasses
from unittest.mock import AsyncMock, Mock, call

import pytest

from streamvision.events import AdaptationEvents
from streamvision.probe import ConnectionProbe
from streamvision.resolver import QUICK_PRESETS, SettingsResolver
from streamvision.session import PlaybackSession
from streamvision.settings import PlayerSettings
from streamvision.types import (
    Adaptation,
    AdaptationThresholds,
    ConnectionInfo,
    ContentType,
    QualityTier,
)

URL = "https://example.com/live/channel1.m3u8"
OTHER_URL = "https://example.com/live/channel2.m3u8"
MOVIE_URL = "https://example.com/movie/42.mp4"
VARIANTS = {
    QualityTier.AUTO: "https://example.com/live/channel1.m3u8",
    QualityTier.HIGH: "https://example.com/live/channel1_1080.m3u8",
    QualityTier.MEDIUM: "https://example.com/live/channel1_720.m3u8",
}


@pytest.fixture
def probe() -> Mock:
    mock_probe = Mock(spec=ConnectionProbe)
    mock_probe.probe_async = AsyncMock(return_value=ConnectionInfo.measured(50, 60.0))
    return mock_probe


@pytest.fixture
def events() -> AdaptationEvents:
    return AdaptationEvents(**{f.name: Mock() for f in dataclasses.fields(AdaptationEvents)})


@pytest.fixture
def make_session(player, probe, events):
    def factory(probe_on_start: bool = False) -> PlaybackSession:
        return PlaybackSession(
            player,
            resolver=SettingsResolver(probe=probe),
            thresholds=AdaptationThresholds(tick_interval_seconds=100),
            events=events,
            probe_on_start=probe_on_start,
            restart_grace=0,
        )

    return factory


async def _settle(session: PlaybackSession) -> None:
    while session._background:
        await asyncio.gather(*list(session._background), return_exceptions=True)


class TestPlay:
    """Test starting playback."""

    @pytest.mark.asyncio
    async def test_play_with_quick_preset(self, make_session, player):
        """Test that playback starts immediately with the content-type preset."""
        session = make_session()

        controller = await session.play(URL)
        try:
            player.play.assert_called_once_with(URL, QUICK_PRESETS[ContentType.LIVE])
            player.add_listener.assert_called_once_with(controller)
            assert controller.is_monitoring is True
            assert session.settings == QUICK_PRESETS[ContentType.LIVE]
        finally:
            await session.stop()

    @pytest.mark.asyncio
    async def test_play_with_explicit_settings(self, make_session, player):
        session = make_session()
        settings = PlayerSettings.preset("quality")

        await session.play(MOVIE_URL, ContentType.MOVIE, settings=settings)
        try:
            player.play.assert_called_once_with(MOVIE_URL, settings)
        finally:
            await session.stop()

    @pytest.mark.asyncio
    async def test_probe_refines_settings(self, make_session, probe, events):
        """Test that the background probe replaces the startup preset."""
        session = make_session(probe_on_start=True)

        controller = await session.play(URL)
        try:
            await _settle(session)

            probe.probe_async.assert_awaited_once_with(URL)
            assert controller.settings.network_caching_ms == 2000
            events.on_quality_analyzed.assert_called_once()
            assert events.on_settings_changed.call_count == 2
            events.on_status_changed.assert_any_call("Connection: Excellent")
        finally:
            await session.stop()

    @pytest.mark.asyncio
    async def test_probe_failure_keeps_preset(self, make_session, probe):
        probe.probe_async.side_effect = RuntimeError("boom")
        session = make_session(probe_on_start=True)

        controller = await session.play(URL)
        try:
            await _settle(session)

            assert controller.settings == QUICK_PRESETS[ContentType.LIVE]
        finally:
            await session.stop()


class TestChannelChange:
    """Test switching streams."""

    @pytest.mark.asyncio
    async def test_change_channel_replaces_controller(self, make_session, player):
        """Test that a channel change discards the previous controller."""
        session = make_session()

        first = await session.play(URL)
        second = await session.change_channel(OTHER_URL)
        try:
            assert first is not second
            assert first.is_monitoring is False
            assert second.is_monitoring is True
            player.remove_listener.assert_called_once_with(first)
            player.stop.assert_called_once_with()
            assert player.play.call_args == call(OTHER_URL, QUICK_PRESETS[ContentType.LIVE])
        finally:
            await session.stop()

    @pytest.mark.asyncio
    async def test_stale_probe_is_discarded(self, make_session, probe):
        """Test that a probe for the previous channel never applies."""

        async def slow_probe(url):
            await asyncio.sleep(0.05)
            return ConnectionInfo.measured(50, 60.0)

        probe.probe_async.side_effect = slow_probe
        session = make_session(probe_on_start=True)

        first = await session.play(URL)
        second = await session.change_channel(OTHER_URL)
        try:
            await _settle(session)

            assert first.settings.network_caching_ms == 4000
            assert second.settings.network_caching_ms == 2000
        finally:
            await session.stop()

    @pytest.mark.asyncio
    async def test_stop(self, make_session, player):
        session = make_session()
        await session.play(URL)

        await session.stop()

        assert session.controller is None
        assert session.settings is None
        player.stop.assert_called_once_with()

    @pytest.mark.asyncio
    async def test_stop_without_playback(self, make_session, player):
        session = make_session()

        await session.stop()

        player.stop.assert_not_called()


class TestRestart:
    """Test restarts requested by the controller."""

    @pytest.mark.asyncio
    async def test_stall_recovery_restarts_live_stream(self, make_session, player, events):
        """Test that level 2 reopens the stream with the raised buffers."""
        session = make_session()
        controller = await session.play(URL)
        try:
            controller.on_buffer_sample(5)
            controller.on_buffer_sample(5)

            assert await controller.tick() is Adaptation.STALL_RECOVERY
            await _settle(session)

            events.on_restart_required.assert_called_once_with()
            player.stop.assert_called_once_with()
            player.position.assert_not_called()
            url, settings, position = player.play.call_args.args
            assert url == URL
            assert settings.network_caching_ms == 7000
            assert position is None
        finally:
            await session.stop()

    @pytest.mark.asyncio
    async def test_restart_resumes_movie(self, make_session, player):
        """Test that on-demand content restarts at the current position."""
        player.position.return_value = 42.0
        session = make_session()
        controller = await session.play(MOVIE_URL, ContentType.MOVIE)
        try:
            session.events.emit("on_restart_required")
            await _settle(session)

            assert player.play.call_args == call(MOVIE_URL, controller.settings, 42.0)
        finally:
            await session.stop()

    @pytest.mark.asyncio
    async def test_restart_for_old_controller_is_ignored(self, make_session, player):
        session = make_session()
        first = await session.play(URL)
        await session.change_channel(OTHER_URL)
        try:
            await session.restart(first, URL)

            assert player.play.call_count == 2
        finally:
            await session.stop()

    @pytest.mark.asyncio
    async def test_restart_waits_for_reconnect(self, make_session, player):
        """Test that a restart does not touch the player while a reconnect is running."""
        order = []
        session = make_session()
        controller = await session.play(URL)

        async def slow_reconnect(url, settings):
            order.append("reconnect-start")
            await asyncio.sleep(0.05)
            order.append("reconnect-end")
            return True

        controller.reconnect_manager = Mock(try_reconnect=slow_reconnect)
        player.stop.side_effect = lambda: order.append("stop")
        try:
            controller.on_error()
            controller.on_error()
            await asyncio.gather(controller.tick(), session.restart(controller, URL))

            assert order == ["reconnect-start", "reconnect-end", "stop"]
        finally:
            await session.stop()


class TestVariantSwitch:
    """Test quality downgrades that switch stream variants."""

    @pytest.mark.asyncio
    async def test_downgrade_switches_variant(self, make_session, player, events):
        """Test that a level 0 downgrade reopens the 720p variant."""
        session = make_session()
        controller = await session.play(URL, variants=VARIANTS)
        try:
            controller.on_buffer_sample(30)

            assert await controller.tick() is Adaptation.QUALITY_DOWNGRADE
            await _settle(session)

            events.on_quality_downgrade_requested.assert_called_once_with(QualityTier.MEDIUM)
            assert controller.url == VARIANTS[QualityTier.MEDIUM]
            assert session.url == VARIANTS[QualityTier.MEDIUM]
            assert player.play.call_args.args[0] == VARIANTS[QualityTier.MEDIUM]
        finally:
            await session.stop()

    @pytest.mark.asyncio
    async def test_no_distinct_variant_keeps_stream(self, make_session, player, events):
        """Test that a downgrade without a matching variant keeps the current URL."""
        session = make_session()
        controller = await session.play(URL, variants={QualityTier.AUTO: URL})
        try:
            controller.on_buffer_sample(30)
            await controller.tick()
            await _settle(session)

            events.on_quality_downgrade_requested.assert_called_once_with(QualityTier.MEDIUM)
            assert controller.url == URL
            assert player.play.call_count == 1
        finally:
            await session.stop()
