"""
Service layer for groups and their membership.

A user belongs to at most one group at a time, recorded twice: as a row in
`group_membership` and as the user's `current_group_id`. Every change to the
pointer is a compare-and-set on its previous value (`_swap_current_group`), so
two requests racing on the same user cannot both commit on stale state, even
from different processes. Database-level race losses are retried once inside
a savepoint before surfacing as `StoreUnavailable`.
"""

from datetime import datetime, timezone
from typing import Awaitable, Callable, TypeVar

from sqlalchemy import delete, select, update
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog.typing import FilteringBoundLogger

from studydino.core.errors import Conflict, NotFound, Transient, Validation
from studydino.core.group import GroupSpec
from studydino.core.uuid import UUID
from studydino.database.group import Group, GroupMembership
from studydino.database.user import User

from . import catalog as catalog_service
from . import user as user_service

T = TypeVar("T")


class GroupNotFound(NotFound):
    """Group not found"""


class StaleGroupPointer(GroupNotFound):
    """Group not found"""

    persist_changes = True


class ModuleNotFound(NotFound):
    """Module not found in user's university"""


class UserAlreadyInGroup(Conflict):
    """User already in a group"""


class AlreadyMember(Conflict):
    """User already in group"""


class UserNotInGroup(Conflict):
    """User is not in a group"""


class NotMemberOfGroup(Conflict):
    """User is not in this group"""


class StaleMembership(NotMemberOfGroup):
    """User is not in this group"""

    persist_changes = True


class CreatorCannotLeave(Conflict):
    """Creator cannot leave their group"""


class InvalidGroupSpec(Validation):
    """Invalid group"""


class StoreUnavailable(Transient):
    """Could not update the group, try again"""


async def _swap_current_group(
    user_id: UUID,
    expected: UUID | None,
    new: UUID | None,
    conn: AsyncSession,
) -> bool:
    """
    Set the user's current group to `new` only if it is still `expected`.
    Returns whether the swap happened.
    """
    statement = update(User).where(User.user_id == user_id)

    if expected is None:
        statement = statement.where(User.current_group_id.is_(None))
    else:
        statement = statement.where(User.current_group_id == expected)

    result = await conn.execute(
        statement.values(current_group_id=new).execution_options(
            synchronize_session=False
        )
    )

    return result.rowcount == 1


async def _retry_once(
    operation: Callable[[], Awaitable[T]],
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> T:
    try:
        async with conn.begin_nested():
            return await operation()
    except DBAPIError as e:
        await log.awarning("group.store_race_retrying", error=str(e.orig))

    try:
        async with conn.begin_nested():
            return await operation()
    except DBAPIError as e:
        await log.aerror("group.store_unavailable", error=str(e.orig))
        raise StoreUnavailable from e


async def _validate_spec(
    user: User,
    spec: GroupSpec,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> dict:
    """
    Check a group specification and return the column values for it.

    Raises
    ------
    InvalidGroupSpec
        Bad dates, both or neither of interest/module, incomplete module.
    ModuleNotFound
        The module is not taught on that course at the user's university.
    """
    if spec.end_at <= spec.start_at:
        raise InvalidGroupSpec("endAt must be after startAt")

    interest = spec.interest.strip() if spec.interest is not None else ""
    has_interest = len(interest) > 0
    has_module = spec.module is not None

    if has_interest == has_module:
        raise InvalidGroupSpec("Provide either interest or module")

    values = dict(
        name=(spec.name or "").strip() or None,
        start_at=spec.start_at,
        end_at=spec.end_at,
        latitude=spec.location.lat,
        longitude=spec.location.lng,
        interest=interest if has_interest else None,
    )

    if has_module:
        module_id = spec.module.module_id.strip()
        module_name = spec.module.name.strip()
        course = spec.module.course.strip()

        if not (module_id and module_name and course):
            raise InvalidGroupSpec("moduleId, name, and course are required")

        university = user.university.strip()

        if not university:
            raise InvalidGroupSpec("User university is required for module groups")

        if not await catalog_service.module_exists(
            university_name=university,
            course_name=course,
            module_code=module_id,
            module_name=module_name,
            conn=conn,
            log=log,
        ):
            raise ModuleNotFound

        values.update(
            module_id=module_id,
            module_name=module_name,
            module_course=course,
            module_university=university,
        )

    return values


async def create_group(
    owner_user_id: UUID,
    spec: GroupSpec,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> Group:
    """
    Create a new group, with its owner as creator and only member.

    Parameters
    ----------
    owner_user_id: UUID
        The user creating the group. They must not be in a group already.
    spec: GroupSpec
        Name, time window, location and exactly one of interest or module.

    Raises
    ------
    UserAlreadyInGroup
        If the owner already has a current group.
    InvalidGroupSpec
        If the specification is malformed.
    ModuleNotFound
        If the module is not in the owner's university catalog.
    StoreUnavailable
        If the database kept failing.
    """
    log = log.bind(user_id=owner_user_id)

    owner = await user_service.read_by_id(user_id=owner_user_id, conn=conn)

    if owner.current_group_id is not None:
        await log.ainfo("group.create.already_in_group", group_id=owner.current_group_id)
        raise UserAlreadyInGroup

    values = await _validate_spec(user=owner, spec=spec, conn=conn, log=log)

    async def operation() -> UUID:
        group = Group(
            creator_user_id=owner_user_id,
            created_at=datetime.now(timezone.utc),
            **values,
        )
        conn.add(group)
        await conn.flush()

        conn.add(GroupMembership(group_id=group.group_id, user_id=owner_user_id))
        await conn.flush()

        if not await _swap_current_group(
            user_id=owner_user_id, expected=None, new=group.group_id, conn=conn
        ):
            raise UserAlreadyInGroup

        return group.group_id

    group_id = await _retry_once(operation, conn=conn, log=log)
    group = await read_by_id(group_id=group_id, conn=conn, log=log)

    await log.ainfo(
        "group.created",
        group_id=group_id,
        kind="module" if group.module_id is not None else "interest",
    )

    return group


async def join_group(
    user_id: UUID,
    group_id: UUID,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> Group:
    """
    Add a user to a group and make it their current group.

    Raises
    ------
    UserAlreadyInGroup
        If the user already has a current group (including one set by a
        concurrent request).
    GroupNotFound
        If the group does not exist.
    AlreadyMember
        If the user is already in the group's members.
    StoreUnavailable
        If the database kept failing.
    """
    log = log.bind(user_id=user_id, group_id=group_id)

    async def operation() -> None:
        user = await user_service.read_by_id(user_id=user_id, conn=conn)

        if user.current_group_id is not None:
            await log.ainfo("group.join.already_in_group")
            raise UserAlreadyInGroup

        group = await read_by_id(group_id=group_id, conn=conn, log=log)

        if group.has_member(user_id):
            await log.ainfo("group.join.already_member")
            raise AlreadyMember

        if not await _swap_current_group(
            user_id=user_id, expected=None, new=group_id, conn=conn
        ):
            await log.ainfo("group.join.lost_race")
            raise UserAlreadyInGroup

        conn.add(GroupMembership(group_id=group_id, user_id=user_id))
        await conn.flush()

    await _retry_once(operation, conn=conn, log=log)
    group = await read_by_id(group_id=group_id, conn=conn, log=log)

    await log.ainfo("group.user_joined", number_of_members=len(group.members))

    return group


async def leave_group(
    user_id: UUID,
    group_id: UUID,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> Group:
    """
    Remove a user from their current group.

    If the user's pointer names a group that no longer exists, the pointer is
    cleared and `StaleGroupPointer` (a `GroupNotFound`) is still raised; the
    clear is kept because the error is flagged `persist_changes`.

    Raises
    ------
    UserNotInGroup
        If the user has no current group.
    GroupNotFound
        If the group does not exist.
    NotMemberOfGroup
        If the user's current group is a different one, or they are missing
        from its members.
    CreatorCannotLeave
        If the user created the group.
    StoreUnavailable
        If the database kept failing.
    """
    log = log.bind(user_id=user_id, group_id=group_id)

    # Errors that repair state are returned, not raised, so that the savepoint
    # holding the repair is released rather than rolled back.
    async def operation() -> Exception | None:
        user = await user_service.read_by_id(user_id=user_id, conn=conn)
        current_group_id = user.current_group_id

        if current_group_id is None:
            await log.ainfo("group.leave.not_in_group")
            raise UserNotInGroup

        try:
            group = await read_by_id(group_id=group_id, conn=conn, log=log)
        except GroupNotFound:
            if current_group_id != group_id:
                raise

            await _swap_current_group(
                user_id=user_id, expected=current_group_id, new=None, conn=conn
            )
            await log.ainfo("group.leave.stale_pointer_cleared")
            return StaleGroupPointer()

        if current_group_id != group.group_id:
            await log.ainfo("group.leave.other_group", current_group_id=current_group_id)
            raise NotMemberOfGroup

        if not group.has_member(user_id):
            await _swap_current_group(
                user_id=user_id, expected=current_group_id, new=None, conn=conn
            )
            await log.ainfo("group.leave.stale_membership_cleared")
            return StaleMembership()

        if group.creator_user_id == user_id:
            await log.ainfo("group.leave.creator")
            raise CreatorCannotLeave

        await conn.execute(
            delete(GroupMembership)
            .where(GroupMembership.group_id == group_id)
            .where(GroupMembership.user_id == user_id)
            .execution_options(synchronize_session=False)
        )

        if not await _swap_current_group(
            user_id=user_id, expected=group_id, new=None, conn=conn
        ):
            await log.ainfo("group.leave.lost_race")
            raise NotMemberOfGroup

        return None

    error = await _retry_once(operation, conn=conn, log=log)

    if error is not None:
        raise error

    group = await read_by_id(group_id=group_id, conn=conn, log=log)

    await log.ainfo("group.user_left", number_of_members=len(group.members))

    return group


async def get_current_group(
    user_id: UUID,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> Group | None:
    """
    The group the user currently belongs to, or None. A pointer to a group
    that has since been deleted also yields None.
    """
    user = await user_service.read_by_id(user_id=user_id, conn=conn)

    if user.current_group_id is None:
        return None

    try:
        return await read_by_id(group_id=user.current_group_id, conn=conn, log=log)
    except GroupNotFound:
        return None


async def get_group_list(
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> list[Group]:
    """
    Get a list of all groups, newest first.
    """
    result = await conn.execute(select(Group).order_by(Group.created_at.desc()))

    groups = result.unique().scalars().all()
    await log.adebug("group.listed", number_of_groups=len(groups))
    return groups


async def read_by_id(
    group_id: UUID,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> Group:
    """
    Read a group, with its members, by its ID.

    Raises
    ------
    GroupNotFound
        If the group does not exist.
    """
    result = await conn.execute(
        select(Group)
        .where(Group.group_id == group_id)
        .execution_options(populate_existing=True)
    )
    group = result.unique().scalar_one_or_none()

    if not group:
        await log.ainfo("group.not_found", group_id=group_id)
        raise GroupNotFound(f"Group with id {group_id} not found")

    return group


async def delete_groups(
    group_ids: list[UUID],
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> None:
    """
    Delete groups and their membership rows. Does not touch user pointers or
    chat history; see the reaper for the full sequence.
    """
    if not group_ids:
        return

    await conn.execute(
        delete(GroupMembership)
        .where(GroupMembership.group_id.in_(group_ids))
        .execution_options(synchronize_session=False)
    )
    await conn.execute(
        delete(Group)
        .where(Group.group_id.in_(group_ids))
        .execution_options(synchronize_session=False)
    )

    await log.ainfo("group.deleted", number_of_groups=len(group_ids))
