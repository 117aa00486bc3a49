"""
Base model for everything sent to, or received from, the browser client.

The client speaks camelCase (`startAt`, `senderName`); python code uses
snake_case attributes and both are accepted on input.
"""

from datetime import datetime, timezone
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

T = TypeVar("T")


def as_utc(value: datetime) -> datetime:
    """
    Attach UTC to naive datetimes (SQLite drops the offset on the way in) and
    convert aware ones to UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


class DataResponse(WireModel, Generic[T]):
    """
    Successful HTTP responses are wrapped as `{"data": ...}`.
    """

    data: T
