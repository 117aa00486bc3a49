"""
ORM for user information.
"""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime
from sqlmodel import Field, SQLModel

from studydino.core.user import UserData
from studydino.core.uuid import UUID, uuid7
from studydino.core.wire import as_utc


class User(SQLModel, table=True):
    user_id: UUID = Field(primary_key=True, default_factory=uuid7)

    # Verified subject from the identity provider.
    subject: str = Field(unique=True, index=True)

    first_name: str = ""
    last_name: str = ""
    university: str = ""
    course: str = ""
    year: int | None = None

    # Weak reference: the group may already have been deleted. Only ever
    # changed through conditional updates in the group service.
    current_group_id: UUID | None = Field(default=None, index=True)

    created_at: datetime = Field(
        sa_column=Column(DateTime(timezone=True), nullable=False),
        default_factory=lambda: datetime.now(timezone.utc),
    )
    updated_at: datetime | None = Field(
        sa_column=Column(DateTime(timezone=True)), default=None
    )

    @property
    def display_name(self) -> str:
        """
        Name shown next to chat messages: "First Last", or a generic label
        when neither is set.
        """
        name = " ".join(x.strip() for x in (self.first_name, self.last_name) if x)
        return name.strip() or "Member"

    def to_core(self) -> UserData:
        return UserData(
            user_id=self.user_id,
            first_name=self.first_name,
            last_name=self.last_name,
            university=self.university,
            course=self.course,
            year=self.year,
            current_group_id=self.current_group_id,
            created_at=as_utc(self.created_at) if self.created_at else None,
        )
