"""
Service layer for group chat history: an append-only log per group.
"""

from datetime import datetime, timezone

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from structlog.typing import FilteringBoundLogger

from studydino.core.errors import Validation
from studydino.core.uuid import UUID
from studydino.database.message import MAX_MESSAGE_LENGTH, GroupMessage

DEFAULT_HISTORY_LIMIT = 20


class EmptyMessage(Validation):
    """Message text is empty"""


class MessageTooLong(Validation):
    """Message text is too long"""


async def append(
    group_id: UUID,
    sender_id: UUID,
    text: str,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> GroupMessage:
    """
    Store a chat message with a server-assigned timestamp.

    Parameters
    ----------
    group_id: UUID
        The group the message was sent to.
    sender_id: UUID
        The user who sent it.
    text: str
        The message text; surrounding whitespace is removed.

    Raises
    ------
    EmptyMessage
        If nothing is left after trimming.
    MessageTooLong
        If the trimmed text exceeds `MAX_MESSAGE_LENGTH` characters.
    """
    text = text.strip()

    if not text:
        raise EmptyMessage

    if len(text) > MAX_MESSAGE_LENGTH:
        raise MessageTooLong(
            f"Message text must be at most {MAX_MESSAGE_LENGTH} characters"
        )

    message = GroupMessage(
        group_id=group_id,
        sender_id=sender_id,
        text=text,
        created_at=datetime.now(timezone.utc),
    )
    conn.add(message)
    await conn.flush()

    await log.adebug(
        "chat.appended",
        group_id=group_id,
        sender_id=sender_id,
        message_id=message.message_id,
        length=len(text),
    )

    return message


async def recent(
    group_id: UUID,
    conn: AsyncSession,
    log: FilteringBoundLogger,
    limit: int = DEFAULT_HISTORY_LIMIT,
) -> list[GroupMessage]:
    """
    The `limit` most recent messages of a group, oldest first.
    """
    result = await conn.execute(
        select(GroupMessage)
        .where(GroupMessage.group_id == group_id)
        .order_by(GroupMessage.created_at.desc(), GroupMessage.message_id.desc())
        .limit(limit)
    )

    messages = list(reversed(result.unique().scalars().all()))

    await log.adebug("chat.history_read", group_id=group_id, count=len(messages))

    return messages


async def purge(
    group_ids: list[UUID],
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> int:
    """
    Delete every message of the given groups. Returns the number deleted.
    """
    if not group_ids:
        return 0

    result = await conn.execute(
        delete(GroupMessage)
        .where(GroupMessage.group_id.in_(group_ids))
        .execution_options(synchronize_session=False)
    )

    await log.ainfo(
        "chat.purged", number_of_groups=len(group_ids), number_of_messages=result.rowcount
    )

    return result.rowcount
