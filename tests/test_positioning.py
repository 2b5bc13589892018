from __future__ import annotations

from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

import pytest
import serial

from pyvtrack.exceptions import PositionUnavailableError
from pyvtrack.models import Coordinates, PermissionStatus, Position
from pyvtrack.positioning import (
    NmeaPositionProvider,
    StaticPositionProvider,
    acquire_permission,
    parse_nmea_sentence,
    read_position,
)


def _nmea(body: str) -> str:
    checksum = 0
    for char in body:
        checksum ^= ord(char)
    return f"${body}*{checksum:02X}"


GGA_FIX = _nmea("GPGGA,123519,4807.038,N,01131.000,E,1,08,0.9,545.4,M,46.9,M,,")
GGA_NO_FIX = _nmea("GPGGA,123519,,,,,0,00,,,M,,M,,")
RMC_FIX = _nmea("GPRMC,123519,A,4807.038,N,01131.000,E,022.4,084.4,230394,003.1,W")
RMC_VOID = _nmea("GPRMC,123519,V,4807.038,N,01131.000,E,022.4,084.4,230394,003.1,W")
GSV = _nmea("GPGSV,2,1,08,01,40,083,46,02,17,308,41,12,07,344,39,14,22,228,45")


class _FakeProvider:
    def __init__(
        self,
        *,
        permission: PermissionStatus | Exception | None = None,
        position: Any = None,
    ) -> None:
        self._permission = permission or PermissionStatus(foreground_granted=True, background_granted=True)
        self._position = position

    async def request_permission(self) -> PermissionStatus:
        if isinstance(self._permission, Exception):
            raise self._permission
        return self._permission

    async def get_current_position(self) -> Position | Coordinates | Mapping[str, Any] | None:
        if isinstance(self._position, Exception):
            raise self._position
        return self._position


class _FakeSerial:
    def __init__(self, lines: list[str], *, fail: bool = False) -> None:
        self._lines = [(line + "\r\n").encode("ascii") for line in lines]
        self._fail = fail
        self.opened = 0

    def __call__(self, port: str, baudrate: int, timeout: float) -> _FakeSerial:
        if self._fail:
            raise serial.SerialException(f"could not open port {port}")
        self.opened += 1
        return self

    def __enter__(self) -> _FakeSerial:
        return self

    def __exit__(self, *exc: Any) -> None:
        return None

    def readline(self) -> bytes:
        return self._lines.pop(0) if self._lines else b""


# ------------------------------------------------------------------
# NMEA parsing
# ------------------------------------------------------------------


def test_parse_gga_fix() -> None:
    position = parse_nmea_sentence(GGA_FIX)

    assert position is not None
    assert position.latitude == pytest.approx(48.1173)
    assert position.longitude == pytest.approx(11.516667, abs=1e-6)
    assert position.altitude == pytest.approx(545.4)


def test_parse_rmc_fix_includes_speed_heading_and_time() -> None:
    position = parse_nmea_sentence(RMC_FIX)

    assert position is not None
    assert position.speed == pytest.approx(22.4 * 1.852)
    assert position.heading == pytest.approx(84.4)
    assert position.fix_time == datetime(1994, 3, 23, 12, 35, 19, tzinfo=UTC)


@pytest.mark.parametrize("line", [GGA_NO_FIX, RMC_VOID, GSV, "", "garbage", "$GPGGA,broken*00"])
def test_parse_rejects_unusable_sentences(line: str) -> None:
    assert parse_nmea_sentence(line) is None


@pytest.mark.asyncio
async def test_nmea_provider_returns_first_usable_fix() -> None:
    port = _FakeSerial([GSV, GGA_NO_FIX, RMC_FIX, GGA_FIX])
    provider = NmeaPositionProvider("/dev/ttyFAKE", serial_factory=port)

    position = await provider.get_current_position()

    assert position is not None
    assert position.heading == pytest.approx(84.4)


@pytest.mark.asyncio
async def test_nmea_provider_without_fix_returns_none() -> None:
    provider = NmeaPositionProvider("/dev/ttyFAKE", serial_factory=_FakeSerial([GSV, GGA_NO_FIX]))

    assert await provider.get_current_position() is None


@pytest.mark.asyncio
async def test_nmea_provider_skips_stale_fixes() -> None:
    provider = NmeaPositionProvider("/dev/ttyFAKE", max_fix_age=60, serial_factory=_FakeSerial([RMC_FIX]))

    assert await provider.get_current_position() is None


@pytest.mark.asyncio
async def test_nmea_provider_permission_follows_port_availability() -> None:
    available = NmeaPositionProvider("/dev/ttyFAKE", serial_factory=_FakeSerial([]))
    missing = NmeaPositionProvider("/dev/ttyFAKE", serial_factory=_FakeSerial([], fail=True))

    granted = await available.request_permission()
    denied = await missing.request_permission()

    assert granted.foreground_granted is True
    assert denied.foreground_granted is False
    assert await missing.get_current_position() is None


# ------------------------------------------------------------------
# Permission and position helpers
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_acquire_permission_requires_foreground_only() -> None:
    foreground_only = PermissionStatus(foreground_granted=True, background_granted=False)
    denied = PermissionStatus(foreground_granted=False, background_granted=True)

    assert await acquire_permission(_FakeProvider(permission=foreground_only)) is True
    assert await acquire_permission(_FakeProvider(permission=denied)) is False


@pytest.mark.asyncio
async def test_acquire_permission_treats_errors_as_denial() -> None:
    assert await acquire_permission(_FakeProvider(permission=RuntimeError("no service"))) is False


@pytest.mark.asyncio
async def test_read_position_normalises_supported_shapes() -> None:
    from_mapping = await read_position(_FakeProvider(position={"latitude": 12.34, "longitude": 56.78}))
    from_coords = await read_position(_FakeProvider(position=Coordinates(latitude=1.0, longitude=2.0)))

    assert isinstance(from_mapping, Position)
    assert (from_mapping.latitude, from_mapping.longitude) == (12.34, 56.78)
    assert isinstance(from_coords, Position)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "raw",
    [
        None,
        PositionUnavailableError("no fix"),
        RuntimeError("GPS crashed"),
        {"latitude": 123.0, "longitude": 0.0},
        (12.34, 56.78),
    ],
)
async def test_read_position_failures_become_none(raw: Any) -> None:
    assert await read_position(_FakeProvider(position=raw)) is None


@pytest.mark.asyncio
async def test_static_provider_update() -> None:
    provider = StaticPositionProvider(12.34, 56.78)

    first = await provider.get_current_position()
    provider.update(None)

    assert first == Position(latitude=12.34, longitude=56.78)
    assert await provider.get_current_position() is None
