"""
Periodic removal of expired and empty groups.

Each cycle re-derives its work from the database, so a failed or interrupted
cycle leaves nothing behind that the next one cannot pick up.
"""

import asyncio
from datetime import datetime, timedelta, timezone

from sqlalchemy import exists, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger
from structlog.typing import FilteringBoundLogger

from studydino.config.managers import AsyncSessionManager
from studydino.core.uuid import UUID
from studydino.database.group import Group, GroupMembership
from studydino.database.user import User

from . import chat as chat_service
from . import groups as groups_service


async def find_reapable(
    now: datetime, conn: AsyncSession, log: FilteringBoundLogger
) -> list[UUID]:
    """
    Groups that ended before `now`, or that have no members left.
    """
    has_members = exists().where(GroupMembership.group_id == Group.group_id)

    result = await conn.execute(
        select(Group.group_id).where((Group.end_at < now) | ~has_members)
    )

    group_ids = list(result.scalars().all())

    await log.adebug("reaper.scanned", number_of_groups=len(group_ids))

    return group_ids


async def reap(
    conn: AsyncSession,
    log: FilteringBoundLogger,
    now: datetime | None = None,
) -> list[UUID]:
    """
    Run one reaping cycle:

    1. find groups past their end time or without members;
    2. detach their members (clear `current_group_id` where it still names
       one of them);
    3. purge their chat history;
    4. delete the groups.

    Pointers left dangling by a group deleted concurrently with a join are
    cleared as well. Returns the IDs of the reaped groups.
    """
    now = now or datetime.now(timezone.utc)
    log = log.bind(now=now)

    group_ids = await find_reapable(now=now, conn=conn, log=log)

    if group_ids:
        log = log.bind(group_ids=[str(x) for x in group_ids])

        members = await conn.execute(
            select(User.user_id).where(User.current_group_id.in_(group_ids))
        )
        member_ids = list(members.scalars().all())

        if member_ids:
            await conn.execute(
                update(User)
                .where(User.user_id.in_(member_ids))
                .where(User.current_group_id.in_(group_ids))
                .values(current_group_id=None)
                .execution_options(synchronize_session=False)
            )

        await chat_service.purge(group_ids=group_ids, conn=conn, log=log)
        await groups_service.delete_groups(group_ids=group_ids, conn=conn, log=log)

        await log.ainfo("reaper.groups_reaped", number_of_members=len(member_ids))

    cleared = await clear_dangling_pointers(conn=conn, log=log)

    if cleared:
        await log.awarning("reaper.dangling_pointers_cleared", count=cleared)

    return group_ids


async def clear_dangling_pointers(conn: AsyncSession, log: FilteringBoundLogger) -> int:
    """
    Clear `current_group_id` for users whose group no longer exists. Each
    clear is conditional on the pointer still holding the dangling value, so
    a user who joined a new group in the meantime keeps it.
    """
    result = await conn.execute(
        select(User.user_id, User.current_group_id)
        .where(User.current_group_id.is_not(None))
        .where(User.current_group_id.not_in(select(Group.group_id)))
    )

    cleared = 0

    for user_id, stale_group_id in result.all():
        swap = await conn.execute(
            update(User)
            .where(User.user_id == user_id)
            .where(User.current_group_id == stale_group_id)
            .values(current_group_id=None)
            .execution_options(synchronize_session=False)
        )
        cleared += swap.rowcount

    return cleared


class GroupReaper:
    """
    Runs `reap` immediately and then every `interval`, each cycle in its own
    transaction. A failed cycle is logged and the schedule continues.

    Expected usage:

    reaper = GroupReaper(session_manager=manager, interval=timedelta(minutes=5))
    reaper.start()
    ...
    await reaper.stop()
    """

    session_manager: AsyncSessionManager
    interval: timedelta
    log: FilteringBoundLogger

    def __init__(
        self,
        session_manager: AsyncSessionManager,
        interval: timedelta = timedelta(minutes=5),
        log: FilteringBoundLogger | None = None,
    ):
        self.session_manager = session_manager
        self.interval = interval
        self.log = log or get_logger()
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_cycle(self) -> list[UUID]:
        """
        One cycle in a fresh transaction. Never raises (except cancellation).
        """
        try:
            async with self.session_manager.transaction() as conn:
                reaped = await reap(conn=conn, log=self.log)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            await self.log.aexception("reaper.cycle_failed", error=str(e))
            return []

        await self.log.adebug("reaper.cycle_complete", number_of_groups=len(reaped))

        return reaped

    async def _run(self):
        while True:
            await self.run_cycle()
            await asyncio.sleep(self.interval.total_seconds())

    def start(self) -> None:
        if self.running:
            return

        self._task = asyncio.create_task(self._run(), name="group-reaper")
        self.log.info("reaper.started", interval=self.interval.total_seconds())

    async def stop(self) -> None:
        if self._task is None:
            return

        self._task.cancel()

        try:
            await self._task
        except asyncio.CancelledError:
            pass

        self._task = None
        await self.log.ainfo("reaper.stopped")
