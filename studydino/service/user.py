"""
Service layer for users
"""

from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog.typing import FilteringBoundLogger

from studydino.core.errors import NotFound, Validation
from studydino.core.user import ProfileUpdate
from studydino.core.uuid import UUID
from studydino.database.user import User


class UserNotFound(NotFound):
    """User not found"""


class EmptyProfileUpdate(Validation):
    """No valid fields provided"""


async def create(subject: str, conn: AsyncSession, log: FilteringBoundLogger) -> User:
    """
    Create a user for a verified subject, with an empty profile.
    """
    log = log.bind(subject=subject)

    user = User(subject=subject)
    conn.add(user)
    await conn.flush()

    await log.ainfo("user.created", user_id=user.user_id)

    return user


async def read_by_id(user_id: UUID, conn: AsyncSession) -> User:
    res = await conn.get(User, user_id, populate_existing=True)

    if res is None:
        raise UserNotFound(f"User with ID {user_id} not found in the database")

    return res


async def read_by_subject(subject: str, conn: AsyncSession) -> User:
    query = (
        select(User)
        .filter(User.subject == subject)
        .execution_options(populate_existing=True)
    )
    res = (await conn.execute(query)).scalar_one_or_none()

    if res is None:
        raise UserNotFound(f"User with subject {subject} not found in the database")

    return res


async def get_or_create(
    subject: str, conn: AsyncSession, log: FilteringBoundLogger
) -> User:
    """
    Users are created on their first authenticated contact. Two first
    contacts racing each other both end up with the same row: the loser of
    the unique constraint reads the winner's user back.
    """
    try:
        return await read_by_subject(subject=subject, conn=conn)
    except UserNotFound:
        pass

    try:
        async with conn.begin_nested():
            return await create(subject=subject, conn=conn, log=log)
    except IntegrityError:
        await log.ainfo("user.create.exists", subject=subject)
        return await read_by_subject(subject=subject, conn=conn)


async def update_profile(
    subject: str,
    content: ProfileUpdate,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> User:
    """
    Apply the set fields of `content` to the user's profile, creating the
    user if needed.

    Raises
    ------
    EmptyProfileUpdate
        If no field was provided.
    """
    update = content.model_dump(exclude_none=True, by_alias=False)

    if not update:
        raise EmptyProfileUpdate

    user = await get_or_create(subject=subject, conn=conn, log=log)
    log = log.bind(user_id=user.user_id, fields=sorted(update))

    for key, value in update.items():
        setattr(user, key, value.strip() if isinstance(value, str) else value)

    user.updated_at = datetime.now(timezone.utc)
    conn.add(user)
    await conn.flush()

    await log.ainfo("user.profile_updated")

    return user
