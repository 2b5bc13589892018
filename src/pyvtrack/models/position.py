"""Position and permission models for the positioning capability."""

from __future__ import annotations

import math
from datetime import datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from pyvtrack._constants import LATITUDE_MAX, LATITUDE_MIN, LONGITUDE_MAX, LONGITUDE_MIN
from pyvtrack.models._base import TrackerBaseModel, ensure_utc


class Coordinates(TrackerBaseModel):
    """A latitude/longitude pair in decimal degrees.

    Bounds are checked on construction: latitude in [-90, 90],
    longitude in [-180, 180]. NaN and infinities are rejected.
    """

    latitude: float = Field(
        ge=LATITUDE_MIN,
        le=LATITUDE_MAX,
        allow_inf_nan=False,
        validation_alias=AliasChoices("latitude", "lat"),
    )
    longitude: float = Field(
        ge=LONGITUDE_MIN,
        le=LONGITUDE_MAX,
        allow_inf_nan=False,
        validation_alias=AliasChoices("longitude", "lng", "lon"),
    )

    @model_validator(mode="before")
    @classmethod
    def _unwrap_coords(cls, values: Any) -> Any:
        # Geolocation APIs commonly nest the pair under "coords".
        if isinstance(values, dict):
            nested = values.get("coords")
            if isinstance(nested, dict):
                merged = dict(values)
                merged.update(nested)
                return merged
        return values

    def as_coordinates(self) -> Coordinates:
        """Plain coordinate pair without any extra fix metadata."""
        return Coordinates(latitude=self.latitude, longitude=self.longitude)


class Position(Coordinates):
    """A position fix as returned by a positioning source.

    Parameters
    ----------
    latitude : float
        Latitude in degrees.
    longitude : float
        Longitude in degrees.
    accuracy : float or None
        Horizontal accuracy in metres.
    altitude : float or None
        Altitude in metres.
    speed : float or None
        Ground speed in km/h.
    heading : float or None
        Course over ground in degrees.
    fix_time : datetime or None
        When the receiver produced the fix (UTC).
    """

    accuracy: float | None = None
    altitude: float | None = None
    speed: float | None = Field(default=None, validation_alias=AliasChoices("speed", "gpsSpeed"))
    heading: float | None = Field(default=None, validation_alias=AliasChoices("heading", "direction", "course"))
    fix_time: datetime | None = None

    @field_validator("accuracy", "altitude", "speed", "heading", mode="before")
    @classmethod
    def _drop_nan(cls, value: Any) -> Any:
        if isinstance(value, float) and math.isnan(value):
            return None
        return value

    @field_validator("fix_time")
    @classmethod
    def _fix_time_utc(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value) if value is not None else None


class PermissionStatus(BaseModel):
    """Outcome of a positioning permission request."""

    model_config = ConfigDict(frozen=True)

    foreground_granted: bool
    background_granted: bool = False
