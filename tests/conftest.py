"""Shared fixtures for streamvision tests."""

from unittest.mock import MagicMock

import pytest

from streamvision.player import Player


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def player() -> MagicMock:
    """A player double that reports playing unless told otherwise."""
    mock_player = MagicMock(spec=Player)
    mock_player.is_playing.return_value = True
    mock_player.position.return_value = None
    return mock_player
