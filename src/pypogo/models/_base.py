"""Base model and enum for pypogo data types.

Every model inherits from :class:`PogoBaseModel` which provides
``alias_generator=to_camel`` so wire/persisted camelCase keys map to
snake_case fields, and frozen instances so a value handed to one
coroutine can never change under another.

Wire enums inherit from :class:`PogoEnum` which adds an ``UNKNOWN``
member at ``-1`` and a ``_missing_`` hook that returns ``UNKNOWN``
for any value without a mapped member.
"""

from __future__ import annotations

import enum
from datetime import UTC, datetime
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict
from pydantic.alias_generators import to_camel

# Threshold to distinguish seconds from milliseconds.
_MS_THRESHOLD = 1_000_000_000_000


def parse_utc_timestamp(value: Any) -> datetime:
    """Coerce an epoch number (seconds **or** milliseconds), ISO string or datetime to an aware UTC datetime."""
    if isinstance(value, datetime):
        return value if value.tzinfo is not None else value.replace(tzinfo=UTC)
    if isinstance(value, str):
        text = value.strip()
        try:
            return parse_utc_timestamp(float(text))
        except ValueError:
            parsed = datetime.fromisoformat(text)
            return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=UTC)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        ts = float(value)
        if ts >= _MS_THRESHOLD:
            ts /= 1000.0
        return datetime.fromtimestamp(ts, tz=UTC)
    raise ValueError(f"cannot interpret {value!r} as a timestamp")


UtcTimestamp = Annotated[datetime, BeforeValidator(parse_utc_timestamp)]
"""Annotated type that coerces epoch numbers and ISO strings to UTC datetimes."""


class PogoEnum(enum.IntEnum):
    """Base for wire enums.

    Every subclass **must** define ``UNKNOWN = -1``.
    """

    @classmethod
    def _missing_(cls, value: object) -> PogoEnum:
        if hasattr(cls, "UNKNOWN"):
            unknown: PogoEnum = cls.UNKNOWN  # type: ignore[attr-defined]
            return unknown
        return next(iter(cls))


class PogoBaseModel(BaseModel):
    """Base for pypogo models."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )
