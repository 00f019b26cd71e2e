# src/hoursync/errors.py

from __future__ import annotations


class HoursyncError(Exception):
    """Base class for all errors raised by hoursync."""


class ConfigError(HoursyncError):
    """Required configuration is missing or malformed."""


class ProviderError(HoursyncError):
    """
    A remote provider answered with an error.

    status is the HTTP status (None for transport-level failures),
    code is the provider's machine-readable error code when it sends one.
    """

    def __init__(self, message: str, *, status: int | None = None, code: str | None = None) -> None:
        super().__init__(message)
        self.status = status
        self.code = code


class ProviderTimeout(ProviderError):
    """The provider (or our own deadline) timed the request out. Transient."""


class RecordNotFound(ProviderError):
    """The requested record does not exist (deleted or never shared with us)."""
