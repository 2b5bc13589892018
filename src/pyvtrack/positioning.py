"""Positioning capability: protocol, permission helpers and providers.

The session never talks to a GPS receiver directly. It consumes any object
implementing :class:`PositionProvider`; two implementations ship here:

* :class:`StaticPositionProvider`: fixed coordinates (demos and
  stationary devices).
* :class:`NmeaPositionProvider`: NMEA 0183 receiver on a serial port,
  parsed with ``pynmea2``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from datetime import UTC, datetime, timedelta
from typing import Any, Protocol

import pynmea2
import serial
from pydantic import ValidationError

from pyvtrack.exceptions import PositionUnavailableError
from pyvtrack.models.position import Coordinates, PermissionStatus, Position

_logger = logging.getLogger(__name__)

_KNOTS_TO_KMH = 1.852


class PositionProvider(Protocol):
    """Structural interface for a positioning source."""

    async def request_permission(self) -> PermissionStatus: ...

    async def get_current_position(self) -> Position | Coordinates | Mapping[str, Any] | None: ...


async def acquire_permission(provider: PositionProvider) -> bool:
    """Run the two-step permission request.

    Foreground access is required; background access is optional and a
    denial is only logged. Any error counts as a denial.
    """
    try:
        status = await provider.request_permission()
    except Exception:
        _logger.warning("Error requesting location permissions", exc_info=True)
        return False

    if not status.foreground_granted:
        _logger.warning("Foreground location permission denied")
        return False
    if not status.background_granted:
        _logger.info("Background location permission denied, continuing with foreground only")
    return True


async def read_position(provider: PositionProvider) -> Position | None:
    """Best-effort position read; every failure becomes ``None``."""
    try:
        raw = await provider.get_current_position()
    except PositionUnavailableError as exc:
        _logger.info("Position unavailable: %s", exc)
        return None
    except Exception:
        _logger.warning("Error getting current location", exc_info=True)
        return None

    if raw is None:
        return None
    if isinstance(raw, Position):
        return raw
    try:
        if isinstance(raw, Coordinates):
            return Position(latitude=raw.latitude, longitude=raw.longitude)
        if isinstance(raw, Mapping):
            return Position.model_validate(dict(raw))
    except ValidationError as exc:
        _logger.warning("Discarding invalid position %r: %s", raw, exc)
        return None
    _logger.warning("Discarding position of unexpected type %s", type(raw).__name__)
    return None


# ------------------------------------------------------------------
# Static provider
# ------------------------------------------------------------------


class StaticPositionProvider:
    """Always reports the same coordinates.

    ``update(None)`` makes the provider report no fix until a new
    position is set.
    """

    def __init__(
        self,
        latitude: float,
        longitude: float,
        *,
        foreground_granted: bool = True,
        background_granted: bool = True,
    ) -> None:
        self._position: Position | None = Position(latitude=latitude, longitude=longitude)
        self._permission = PermissionStatus(
            foreground_granted=foreground_granted,
            background_granted=background_granted,
        )

    def update(self, position: Position | None) -> None:
        self._position = position

    async def request_permission(self) -> PermissionStatus:
        return self._permission

    async def get_current_position(self) -> Position | None:
        return self._position


# ------------------------------------------------------------------
# NMEA serial provider
# ------------------------------------------------------------------


def parse_nmea_sentence(line: str) -> Position | None:
    """Extract a position from one GGA or RMC sentence.

    Returns ``None`` for other sentence types, sentences without a valid
    fix, and anything ``pynmea2`` cannot parse.
    """
    text = line.strip()
    if not text.startswith("$"):
        return None
    try:
        msg = pynmea2.parse(text)
    except pynmea2.ParseError:
        _logger.debug("Unparseable NMEA sentence: %s", text)
        return None

    fields: dict[str, Any] = {}
    if isinstance(msg, pynmea2.GGA):
        # gps_qual 0 means "no fix"
        if not msg.gps_qual:
            return None
        fields["altitude"] = msg.altitude
    elif isinstance(msg, pynmea2.RMC):
        if msg.status != "A":
            return None
        if msg.spd_over_grnd is not None:
            fields["speed"] = float(msg.spd_over_grnd) * _KNOTS_TO_KMH
        fields["heading"] = msg.true_course
        try:
            fields["fix_time"] = msg.datetime
        except (TypeError, ValueError):
            pass
    else:
        return None

    try:
        return Position(latitude=msg.latitude, longitude=msg.longitude, **fields)
    except (ValidationError, ValueError, TypeError):
        _logger.debug("Discarding NMEA fix with invalid coordinates: %s", text)
        return None


class NmeaPositionProvider:
    """Reads fixes from an NMEA 0183 GPS receiver on a serial port.

    Each :meth:`get_current_position` call opens the port, reads up to
    *max_sentences* lines and returns the first usable GGA/RMC fix. Blocking
    serial I/O runs in a worker thread.

    Parameters
    ----------
    port : str
        Serial device, e.g. ``/dev/ttyUSB0``.
    baudrate : int
        Serial speed.
    read_timeout : float
        Per-line read timeout in seconds.
    max_sentences : int
        Lines to read before giving up on a fix.
    max_fix_age : float or None
        Reject RMC fixes whose own timestamp is older than this many
        seconds. ``None`` disables the check.
    serial_factory : callable or None
        Replaces ``serial.Serial`` (used by tests).
    """

    def __init__(
        self,
        port: str,
        *,
        baudrate: int = 9600,
        read_timeout: float = 1.0,
        max_sentences: int = 50,
        max_fix_age: float | None = None,
        serial_factory: Callable[..., Any] | None = None,
    ) -> None:
        self._port = port
        self._baudrate = baudrate
        self._read_timeout = read_timeout
        self._max_sentences = max_sentences
        self._max_fix_age = max_fix_age
        self._serial_factory = serial_factory or serial.Serial

    def _open(self) -> Any:
        return self._serial_factory(self._port, self._baudrate, timeout=self._read_timeout)

    def _probe(self) -> bool:
        try:
            with self._open():
                return True
        except (serial.SerialException, OSError) as exc:
            _logger.warning("Cannot open GPS receiver on %s: %s", self._port, exc)
            return False

    def _is_stale(self, position: Position) -> bool:
        if self._max_fix_age is None or position.fix_time is None:
            return False
        return datetime.now(UTC) - position.fix_time > timedelta(seconds=self._max_fix_age)

    def _read_fix(self) -> Position | None:
        try:
            with self._open() as port:
                for _ in range(self._max_sentences):
                    raw = port.readline()
                    if not raw:
                        break
                    position = parse_nmea_sentence(raw.decode("ascii", errors="ignore"))
                    if position is None:
                        continue
                    if self._is_stale(position):
                        _logger.debug("Skipping stale fix from %s", position.fix_time)
                        continue
                    return position
        except (serial.SerialException, OSError) as exc:
            _logger.warning("GPS read from %s failed: %s", self._port, exc)
            return None
        _logger.debug("No usable NMEA fix on %s", self._port)
        return None

    async def request_permission(self) -> PermissionStatus:
        # Serial devices have no foreground/background distinction.
        granted = await asyncio.to_thread(self._probe)
        return PermissionStatus(foreground_granted=granted, background_granted=granted)

    async def get_current_position(self) -> Position | None:
        return await asyncio.to_thread(self._read_fix)
