"""Session statistics read model."""

from __future__ import annotations

from pydantic import Field

from pyvtrack.models._base import TrackerBaseModel, UtcTimestamp
from pyvtrack.models.connection import ConnectionState
from pyvtrack.models.position import Coordinates


class SessionStats(TrackerBaseModel):
    """Snapshot of a tracking session's progress.

    Instances are immutable; the session publishes a new snapshot on
    every change.

    Parameters
    ----------
    is_tracking : bool
        Whether the report loop is running.
    last_api_call : datetime or None
        Timestamp of the last report the connection accepted.
    last_location : Coordinates or None
        Position from the last cycle that obtained one, sent or not.
    api_call_count : int
        Number of reports the connection accepted this session.
    connection_status : ConnectionState
        Last polled connection state.
    """

    is_tracking: bool = False
    last_api_call: UtcTimestamp | None = None
    last_location: Coordinates | None = None
    api_call_count: int = Field(default=0, ge=0)
    connection_status: ConnectionState = ConnectionState.DISCONNECTED
