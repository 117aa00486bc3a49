"""
Chat frames exchanged over the group WebSocket.
"""

from datetime import datetime
from typing import Literal

from pydantic import Field

from studydino.core.uuid import UUID

from .wire import WireModel


class ChatMessageData(WireModel):
    message_id: UUID = Field(alias="id")
    text: str
    created_at: datetime
    sender_id: UUID | None
    sender_name: str


class HistoryEvent(WireModel):
    type: Literal["history"] = "history"
    messages: list[ChatMessageData]


class MessageEvent(WireModel):
    type: Literal["message"] = "message"
    message: ChatMessageData


class SendMessageRequest(WireModel):
    """
    The only frame a client may send.
    """

    type: Literal["message"]
    text: str
