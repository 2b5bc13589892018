"""Data models for location reports and session state."""

from pyvtrack.models._base import TrackerBaseModel, TrackerEnum, UtcTimestamp, format_timestamp
from pyvtrack.models.connection import ConnectionState
from pyvtrack.models.position import Coordinates, PermissionStatus, Position
from pyvtrack.models.report import IdentityPair, LocationReport
from pyvtrack.models.stats import SessionStats

__all__ = [
    "ConnectionState",
    "Coordinates",
    "IdentityPair",
    "LocationReport",
    "PermissionStatus",
    "Position",
    "SessionStats",
    "TrackerBaseModel",
    "TrackerEnum",
    "UtcTimestamp",
    "format_timestamp",
]
