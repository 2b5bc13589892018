"""Connection state reported to observers."""

from __future__ import annotations

from pyvtrack.models._base import TrackerEnum


class ConnectionState(TrackerEnum):
    """Health of the reporting connection as seen by the UI layer."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSING = "closing"
    CLOSED = "closed"
    UNKNOWN = "unknown"
