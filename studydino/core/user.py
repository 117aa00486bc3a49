"""
A shared user object that is serialized.
"""

from datetime import datetime

from pydantic import Field

from studydino.core.uuid import UUID

from .wire import WireModel


class UserData(WireModel):
    user_id: UUID = Field(alias="id")
    first_name: str
    last_name: str
    university: str
    course: str
    year: int | None
    current_group_id: UUID | None
    created_at: datetime | None = None


class ProfileUpdate(WireModel):
    """
    Partial profile update; only fields that are set are applied.
    """

    first_name: str | None = None
    last_name: str | None = None
    university: str | None = None
    course: str | None = None
    year: int | None = Field(default=None, ge=1)
