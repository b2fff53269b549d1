"""Custom exceptions for streamvision."""


class StreamVisionError(Exception):
    """Base exception for all streamvision errors."""


class PlayerError(StreamVisionError):
    """Error starting or controlling the external player."""


class PlayerNotFoundError(PlayerError):
    """No supported player binary is installed."""


class ConfigError(StreamVisionError, ValueError):
    """Invalid channel or adaptation configuration."""
