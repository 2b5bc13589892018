"""Identity pair and the location report sent on every cycle."""

from __future__ import annotations

from datetime import datetime

from pydantic import ConfigDict, Field

from pyvtrack._constants import LATITUDE_MAX, LATITUDE_MIN, LONGITUDE_MAX, LONGITUDE_MIN
from pyvtrack.models._base import TrackerBaseModel, UtcTimestamp, utcnow
from pyvtrack.models.position import Coordinates


class IdentityPair(TrackerBaseModel):
    """The ``(vehicle_id, driver_id)`` pair a session reports under.

    Both values are opaque; surrounding whitespace is stripped and empty
    values are rejected.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    vehicle_id: str = Field(min_length=1)
    driver_id: str = Field(min_length=1)


class LocationReport(TrackerBaseModel):
    """One position report, serialized verbatim to the wire.

    Wire form::

        {"vehicleId": "V1", "driverId": "D1", "latitude": 12.34,
         "longitude": 56.78, "timestamp": "2024-01-01T12:00:00.000Z"}
    """

    vehicle_id: str = Field(min_length=1)
    driver_id: str = Field(min_length=1)
    latitude: float = Field(ge=LATITUDE_MIN, le=LATITUDE_MAX, allow_inf_nan=False)
    longitude: float = Field(ge=LONGITUDE_MIN, le=LONGITUDE_MAX, allow_inf_nan=False)
    timestamp: UtcTimestamp

    @classmethod
    def build(
        cls,
        identity: IdentityPair,
        position: Coordinates,
        at: datetime | None = None,
    ) -> LocationReport:
        """Assemble a report from the identity pair and a position fix."""
        return cls(
            vehicle_id=identity.vehicle_id,
            driver_id=identity.driver_id,
            latitude=position.latitude,
            longitude=position.longitude,
            timestamp=at if at is not None else utcnow(),
        )

    @property
    def coordinates(self) -> Coordinates:
        return Coordinates(latitude=self.latitude, longitude=self.longitude)

    def to_wire(self) -> str:
        """Compact JSON text frame with camelCase keys."""
        return self.model_dump_json(by_alias=True)
