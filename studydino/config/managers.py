"""
Database engine and session management.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy import URL, event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlmodel import SQLModel

from studydino.core.errors import StudyDinoError


def _configure_sqlite_connection(dbapi_connection, connection_record):
    # SQLAlchemy, not the driver, emits BEGIN (see `_begin_sqlite_transaction`).
    dbapi_connection.isolation_level = None

    # Foreign keys (and their ON DELETE actions) are off unless asked for.
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _begin_sqlite_transaction(conn):
    # IMMEDIATE takes the write lock up front: concurrent read-modify-write
    # transactions queue on the busy timeout instead of failing to upgrade a
    # read lock, and SAVEPOINT works as on other backends.
    conn.exec_driver_sql("BEGIN IMMEDIATE")


class AsyncSessionManager:
    """
    A manager for asynchronous sessions. Expected usage of this class to interact:

    manager = AsyncSessionManager(conn_url)

    async with manager.session() as conn:
        async with conn.begin():
            group = await groups_service.read_by_id(group_id=..., conn=conn, log=log)

    or, for a one-off unit of work outside of a request (the reaper, the chat
    relay):

    async with manager.transaction() as conn:
        ...
    """

    connection_url: URL | str
    engine: AsyncEngine
    session: async_sessionmaker

    def __init__(self, connection_url: URL | str, echo: bool = False):
        self.connection_url = connection_url
        self.engine = create_async_engine(self.connection_url, echo=echo)
        self.session = async_sessionmaker(self.engine, expire_on_commit=False)

        if self.engine.dialect.name == "sqlite":
            event.listen(
                self.engine.sync_engine, "connect", _configure_sqlite_connection
            )
            event.listen(self.engine.sync_engine, "begin", _begin_sqlite_transaction)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """
        Open a session and a transaction that commits on exit, or rolls back
        if the block raises. Errors flagged with `persist_changes` (see
        `studydino.core.errors`) still commit before propagating.
        """
        async with self.session() as conn:
            transaction = await conn.begin()
            try:
                yield conn
            except StudyDinoError as e:
                if e.persist_changes:
                    await transaction.commit()
                else:
                    await transaction.rollback()
                raise
            except BaseException:
                await transaction.rollback()
                raise
            else:
                await transaction.commit()

    async def create_all(self):
        """
        Run the `SQLModel.metadata.create_all` migration tool. Required
        to set up the table schema.
        """
        # Make sure every table is registered on the metadata.
        from studydino.database import meta  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)

    async def drop_all(self):
        """
        Run the `SQLModel.metadata.drop_all` deletion method. WARNING: this
        will delete all data in your database; you probably don't want to do this
        unless you are writing a test.
        """
        async with self.engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.drop_all)

    async def dispose(self):
        await self.engine.dispose()
