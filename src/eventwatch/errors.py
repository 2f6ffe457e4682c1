"""Error taxonomy shared by the pipeline and its provider adapters."""

from __future__ import annotations


class EventwatchError(Exception):
    """Base class for every error raised by eventwatch."""


class ExternalServiceError(EventwatchError):
    """A provider call failed (network, HTTP status, malformed payload)."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ParseError(EventwatchError):
    """The language model returned something that is not the structured output we asked for."""


class ConfigurationError(EventwatchError):
    """Raised when there is no usable monitor configuration."""


class DataIntegrityError(EventwatchError):
    """A record the pipeline expected to find in the store is missing or stale."""
