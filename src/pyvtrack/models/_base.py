"""Base model, enum and timestamp helpers shared by pyvtrack models.

Every wire-facing model inherits from :class:`TrackerBaseModel` which
provides ``alias_generator=to_camel`` so snake_case fields serialize to
the camelCase keys the tracking backend expects.

State enums inherit from :class:`TrackerEnum` which resolves any value
without a mapped member to ``UNKNOWN`` instead of raising ``ValueError``.
"""

from __future__ import annotations

import enum
from datetime import UTC, datetime
from typing import Annotated, Any

from pydantic import AfterValidator, BaseModel, ConfigDict, PlainSerializer
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def format_timestamp(value: datetime) -> str:
    """Render *value* as ISO-8601 UTC with milliseconds and a ``Z`` suffix.

    For example ``2024-01-01T12:00:00.000Z``, the shape the backend parses.
    """
    text = ensure_utc(value).isoformat(timespec="milliseconds")
    return text.replace("+00:00", "Z")


UtcTimestamp = Annotated[
    datetime,
    AfterValidator(ensure_utc),
    PlainSerializer(format_timestamp, return_type=str),
]
"""Annotated datetime that is always UTC and serializes with a ``Z`` suffix."""


class TrackerEnum(enum.StrEnum):
    """Base for string state enums.

    Every subclass **must** define ``UNKNOWN``.
    """

    @classmethod
    def _missing_(cls, value: object) -> TrackerEnum:
        if isinstance(value, str):
            lowered = value.strip().lower()
            for member in cls:
                if member.value == lowered:
                    return member
        if hasattr(cls, "UNKNOWN"):
            unknown: TrackerEnum = cls.UNKNOWN  # type: ignore[attr-defined]
            return unknown
        # Fallback: return first member
        return next(iter(cls))


class TrackerBaseModel(BaseModel):
    """Base for wire-facing models (camelCase aliases, immutable)."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    def to_dict(self) -> dict[str, Any]:
        """JSON-compatible dict using the camelCase wire keys."""
        return self.model_dump(mode="json", by_alias=True)
