"""Tracewire error hierarchy and exceptions."""

from __future__ import annotations


class TracewireError(Exception):
    """Base exception for all Tracewire errors."""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


class ConfigError(TracewireError):
    """Raised when configuration is invalid or conflicting."""
    pass


class DecodeError(TracewireError):
    """Raised when a trace identity cannot be read from a header map."""
    pass


class TraceContextAbsent(DecodeError):
    """
    The primary trace header is missing.

    Not a failure: the caller starts a new trace.
    """
    pass


class TraceContextMalformed(DecodeError):
    """The primary trace header is present but unparsable."""
    pass


class InitializationError(TracewireError):
    """Raised when the tracer lifecycle is used out of order."""
    pass


class AlreadyInitializedError(InitializationError):
    """Raised by initialize() when a tracer is already Ready and reuse is off."""
    pass


class NotInitializedError(InitializationError):
    """Raised when the process-wide tracer is requested before initialize()."""
    pass


class SinkUnavailableError(TracewireError):
    """Raised by exporters when the span backend cannot be reached."""
    pass
