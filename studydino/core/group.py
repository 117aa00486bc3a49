"""
Core group data models.
"""

from datetime import datetime

from pydantic import Field, model_validator

from studydino.core.uuid import UUID

from .wire import WireModel, as_utc


class LocationData(WireModel):
    lat: float = Field(ge=-90.0, le=90.0)
    lng: float = Field(ge=-180.0, le=180.0)


class GroupModuleData(WireModel):
    """
    A reference to a module in the university catalog.
    """

    module_id: str
    name: str
    course: str
    university: str | None = None


class GroupSpec(WireModel):
    """
    Everything a user provides when creating a group. Structural checks
    (date order, exactly one of interest/module) live in the service layer so
    they are enforced regardless of the caller.
    """

    name: str | None = None
    start_at: datetime
    end_at: datetime
    location: LocationData
    interest: str | None = None
    module: GroupModuleData | None = None

    @model_validator(mode="after")
    def normalize_times(self) -> "GroupSpec":
        self.start_at = as_utc(self.start_at)
        self.end_at = as_utc(self.end_at)
        return self


class GroupData(WireModel):
    group_id: UUID = Field(alias="id")
    name: str | None
    creator_id: UUID
    member_ids: list[UUID]
    start_at: datetime
    end_at: datetime
    location: LocationData
    interest: str | None
    module: GroupModuleData | None
    created_at: datetime
