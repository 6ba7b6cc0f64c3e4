from __future__ import annotations

__all__ = [
    "ConfigurationError",
    "UnsupportedFormatError",
    "NotLoadedError",
    "DocumentDecodeError",
]


class ConfigurationError(RuntimeError):
    """Raised when a configuration file cannot be persisted or resolved."""


class UnsupportedFormatError(ConfigurationError, ValueError):
    """No backend is registered for a file extension."""

    def __init__(self, extension: str):
        self.extension = extension
        super().__init__(f"Unsupported file extension: '{extension}'")


class NotLoadedError(ConfigurationError):
    """``save``/``reload`` called on an object that was never loaded."""


class DocumentDecodeError(ConfigurationError, ValueError):
    """A backend could not parse the file contents."""
