"""pyvtrack - Async Python client for periodic vehicle location reporting."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pyvtrack")
except PackageNotFoundError:
    __version__ = "0+local"

from pyvtrack._backoff import ReconnectPolicy
from pyvtrack.config import TrackerConfig
from pyvtrack.connection import ConnectionManager
from pyvtrack.exceptions import (
    PositionUnavailableError,
    TrackerConfigError,
    TrackerError,
    TrackerSessionError,
    TrackerStorageError,
    TrackerTransportError,
)
from pyvtrack.identity import IdentityStore
from pyvtrack.models import (
    ConnectionState,
    Coordinates,
    IdentityPair,
    LocationReport,
    PermissionStatus,
    Position,
    SessionStats,
)
from pyvtrack.positioning import NmeaPositionProvider, PositionProvider, StaticPositionProvider
from pyvtrack.session import TrackingSession

__all__ = [
    "__version__",
    "ConnectionManager",
    "ConnectionState",
    "Coordinates",
    "IdentityPair",
    "IdentityStore",
    "LocationReport",
    "NmeaPositionProvider",
    "PermissionStatus",
    "Position",
    "PositionProvider",
    "PositionUnavailableError",
    "ReconnectPolicy",
    "SessionStats",
    "StaticPositionProvider",
    "TrackerConfig",
    "TrackerConfigError",
    "TrackerError",
    "TrackerSessionError",
    "TrackerStorageError",
    "TrackerTransportError",
    "TrackingSession",
]
