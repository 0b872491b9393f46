"""Base schema configuration."""

from datetime import datetime, timezone
from typing import Annotated
from uuid import UUID

from pydantic import AfterValidator, BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


def _to_utc(value: datetime) -> datetime:
    """Naive datetimes are taken as UTC; aware ones are converted to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


UTCDateTime = Annotated[datetime, AfterValidator(_to_utc)]


class BaseSchema(BaseModel):
    """
    Base schema with common configuration.

    JSON uses camelCase keys (the SPA's convention); snake_case field names
    are accepted on input as well.
    """

    model_config = ConfigDict(
        from_attributes=True,  # Enable ORM mode
        str_strip_whitespace=True,
        validate_assignment=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class TimestampMixin(BaseModel):
    """Mixin for created_at/updated_at timestamps."""

    created_at: UTCDateTime
    updated_at: UTCDateTime


class IDMixin(BaseModel):
    """Mixin for UUID primary key."""

    id: UUID


class MessageResponse(BaseSchema):
    """Plain acknowledgement."""

    message: str
