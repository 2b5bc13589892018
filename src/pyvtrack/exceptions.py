"""Custom exception hierarchy for pyvtrack."""

from __future__ import annotations


class TrackerError(Exception):
    """Base exception for all pyvtrack errors."""


class TrackerConfigError(TrackerError):
    """Invalid or missing configuration."""


class TrackerTransportError(TrackerError):
    """WebSocket-level failure (connect, write on a non-open socket)."""

    def __init__(
        self,
        message: str,
        *,
        url: str = "",
    ) -> None:
        self.url = url
        super().__init__(message)


class TrackerSessionError(TrackerError):
    """Tracking session used out of order (e.g. started twice)."""


class PositionUnavailableError(TrackerError):
    """The positioning source could not produce a usable fix.

    Providers may raise this instead of returning ``None``; the session
    treats both the same way and skips the report cycle.
    """


class TrackerStorageError(TrackerError):
    """Persisting or clearing the stored identity pair failed."""
