"""
The signed-in user's own profile.
"""

from fastapi import APIRouter

from studydino.core.user import ProfileUpdate, UserData
from studydino.core.wire import DataResponse
from studydino.service import user as user_service

from .dependencies import (
    CurrentUserDependency,
    DatabaseDependency,
    LoggerDependency,
    SubjectDependency,
)

me_app = APIRouter(tags=["Profile"])


@me_app.get(
    "",
    summary="Get your profile",
    description=(
        "Retrieve the profile of the signed-in user. The user is created with "
        "an empty profile on their first authenticated request."
    ),
    responses={
        200: {"description": "The user's profile."},
        401: {"description": "Missing or invalid bearer token."},
    },
)
async def read_me(
    user: CurrentUserDependency,
    log: LoggerDependency,
) -> DataResponse[UserData]:
    await log.adebug("api.me.read", user_id=user.user_id)
    return DataResponse(data=user.to_core())


@me_app.patch(
    "",
    summary="Update your profile",
    description=(
        "Update any of first name, last name, university, course and year. "
        "Fields that are omitted are left unchanged."
    ),
    responses={
        200: {"description": "The updated profile."},
        400: {"description": "No valid field given, or a field is invalid."},
        401: {"description": "Missing or invalid bearer token."},
    },
)
async def update_me(
    content: ProfileUpdate,
    subject: SubjectDependency,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> DataResponse[UserData]:
    user = await user_service.update_profile(
        subject=subject, content=content, conn=conn, log=log
    )
    return DataResponse(data=user.to_core())
