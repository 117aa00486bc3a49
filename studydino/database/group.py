"""
Group ORM
"""

from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import CheckConstraint, Column, DateTime
from sqlmodel import Field, Relationship, SQLModel

from studydino.core.group import GroupData, GroupModuleData, LocationData
from studydino.core.uuid import UUID, uuid7
from studydino.core.wire import as_utc

if TYPE_CHECKING:
    from .user import User


class GroupMembership(SQLModel, table=True):
    """
    A record of a user's group membership. The composite primary key makes
    `members` a set.
    """

    __tablename__ = "group_membership"

    group_id: Optional[UUID] = Field(
        primary_key=True, foreign_key="group.group_id", ondelete="CASCADE"
    )
    user_id: Optional[UUID] = Field(
        primary_key=True, foreign_key="user.user_id", ondelete="CASCADE"
    )


class Group(SQLModel, table=True):
    __table_args__ = (
        CheckConstraint("end_at > start_at", name="group_ends_after_start"),
        CheckConstraint(
            "(interest IS NULL) <> (module_id IS NULL)",
            name="group_interest_xor_module",
        ),
    )

    group_id: UUID = Field(primary_key=True, default_factory=uuid7)

    name: str | None = None
    creator_user_id: UUID = Field(foreign_key="user.user_id")

    start_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    end_at: datetime = Field(
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True)
    )
    created_at: datetime = Field(
        sa_column=Column(DateTime(timezone=True), nullable=False)
    )

    latitude: float
    longitude: float

    interest: str | None = None

    module_id: str | None = None
    module_name: str | None = None
    module_course: str | None = None
    module_university: str | None = None

    members: list["User"] = Relationship(
        link_model=GroupMembership,
        sa_relationship_kwargs=dict(lazy="joined", viewonly=True),
    )

    @property
    def member_ids(self) -> set[UUID]:
        return {member.user_id for member in self.members}

    def has_member(self, user_id: UUID) -> bool:
        return user_id in self.member_ids

    def to_core(self) -> GroupData:
        """
        Convert this Group ORM object to a GroupData core object.
        """
        if self.module_id is not None:
            module = GroupModuleData(
                module_id=self.module_id,
                name=self.module_name,
                course=self.module_course,
                university=self.module_university,
            )
        else:
            module = None

        return GroupData(
            group_id=self.group_id,
            name=self.name,
            creator_id=self.creator_user_id,
            member_ids=sorted(self.member_ids),
            start_at=as_utc(self.start_at),
            end_at=as_utc(self.end_at),
            location=LocationData(lat=self.latitude, lng=self.longitude),
            interest=self.interest,
            module=module,
            created_at=as_utc(self.created_at),
        )
