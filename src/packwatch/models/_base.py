"""Shared model helpers.

Registry response models inherit from :class:`RegistryBaseModel`, which
maps the registry's camelCase keys onto snake_case fields and ignores
anything unknown so new registry fields never break a poll.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict
from pydantic.alias_generators import to_camel


def ensure_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes, convert aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def parse_optional_timestamp(value: Any) -> Any:
    """Map empty strings and the zero time (``0001-01-01T00:00:00Z``) to ``None``.

    Older state files and some registry responses encode "never" as the
    zero instant instead of omitting the field.
    """
    if value is None or value == "":
        return None
    if isinstance(value, str) and value.startswith("0001-01-01"):
        return None
    if isinstance(value, datetime) and value.year == 1:
        return None
    return value


OptionalTimestamp = Annotated[datetime | None, BeforeValidator(parse_optional_timestamp)]
"""Annotated type for nullable timestamps that also accepts the zero time."""


class RegistryBaseModel(BaseModel):
    """Base for registry API response models."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )
