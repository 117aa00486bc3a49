"""
Dependencies used by the API.

Shared objects (database manager, identity verifier) live on the
application instance, set up by `studydino.api.app.create_app`.
"""

from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger
from structlog.typing import FilteringBoundLogger

from studydino.database.user import User
from studydino.service import user as user_service
from studydino.service.identity import IdentityVerifier, InvalidCredential


def get_identity(request: Request) -> IdentityVerifier:
    return request.app.identity


async def get_async_session(request: Request):
    async with request.app.database.transaction() as session:
        yield session


def logger(request: Request):
    return get_logger().bind(client=request.client)


IdentityDependency = Annotated[IdentityVerifier, Depends(get_identity)]
DatabaseDependency = Annotated[AsyncSession, Depends(get_async_session)]
LoggerDependency = Annotated[FilteringBoundLogger, Depends(logger)]


async def get_subject(
    request: Request, identity: IdentityDependency, log: LoggerDependency
) -> str:
    """
    The verified subject of the request's bearer token.
    """
    header = request.headers.get("Authorization")

    if header is None:
        await log.adebug("api.auth.no_token")
        raise InvalidCredential("Missing bearer token")

    contents = header.split(" ", 1)

    if len(contents) != 2 or contents[0].lower() != "bearer" or not contents[1]:
        await log.adebug("api.auth.bad_header")
        raise InvalidCredential("Malformed authorization header")

    return await identity.verify(contents[1].strip(), log=log)


SubjectDependency = Annotated[str, Depends(get_subject)]


async def get_current_user(
    subject: SubjectDependency, conn: DatabaseDependency, log: LoggerDependency
) -> User:
    return await user_service.get_or_create(subject=subject, conn=conn, log=log)


CurrentUserDependency = Annotated[User, Depends(get_current_user)]
