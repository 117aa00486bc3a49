"""
ORM for group chat messages.
"""

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Column, DateTime, Index
from sqlmodel import Field, Relationship, SQLModel

from studydino.core.chat import ChatMessageData
from studydino.core.uuid import UUID, uuid7
from studydino.core.wire import as_utc

if TYPE_CHECKING:
    from .user import User

MAX_MESSAGE_LENGTH = 1000


class GroupMessage(SQLModel, table=True):
    __tablename__ = "group_message"
    __table_args__ = (
        Index("ix_group_message_group_id_created_at", "group_id", "created_at"),
    )

    # uuid7 is time ordered, so it breaks ties between equal timestamps.
    message_id: UUID = Field(primary_key=True, default_factory=uuid7)

    # No foreign key to the group: the reaper purges messages explicitly,
    # and messages are an append-only log keyed by the group identifier.
    group_id: UUID = Field(index=True)
    sender_id: UUID = Field(foreign_key="user.user_id")
    sender: "User" = Relationship(sa_relationship_kwargs=dict(lazy="joined"))

    text: str = Field(max_length=MAX_MESSAGE_LENGTH)
    created_at: datetime = Field(
        sa_column=Column(DateTime(timezone=True), nullable=False)
    )

    def to_core(self, sender_name: str | None = None) -> ChatMessageData:
        if sender_name is None:
            sender_name = self.sender.display_name if self.sender else "Member"

        return ChatMessageData(
            message_id=self.message_id,
            text=self.text,
            created_at=as_utc(self.created_at),
            sender_id=self.sender_id,
            sender_name=sender_name,
        )
