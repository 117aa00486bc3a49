"""
Study group lifecycle: listing, creation, joining and leaving.
"""

from fastapi import APIRouter, status

from studydino.core.group import GroupData, GroupSpec
from studydino.core.uuid import UUID
from studydino.core.wire import DataResponse
from studydino.service import groups as groups_service

from .dependencies import CurrentUserDependency, DatabaseDependency, LoggerDependency

group_app = APIRouter(tags=["Groups"])


@group_app.get(
    "",
    summary="List all groups",
    description="Retrieve every open group, newest first.",
    responses={
        200: {"description": "List of groups."},
        401: {"description": "Missing or invalid bearer token."},
    },
)
async def list_groups(
    user: CurrentUserDependency,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> DataResponse[list[GroupData]]:
    log = log.bind(user_id=user.user_id)
    groups = await groups_service.get_group_list(conn=conn, log=log)
    return DataResponse(data=[g.to_core() for g in groups])


@group_app.get(
    "/me",
    summary="Get your current group",
    description=(
        "The group the signed-in user currently belongs to, or null when they "
        "are not in one."
    ),
    responses={
        200: {"description": "The current group, or null."},
        401: {"description": "Missing or invalid bearer token."},
    },
)
async def read_current_group(
    user: CurrentUserDependency,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> DataResponse[GroupData | None]:
    log = log.bind(user_id=user.user_id)
    group = await groups_service.get_current_group(
        user_id=user.user_id, conn=conn, log=log
    )
    return DataResponse(data=group.to_core() if group is not None else None)


@group_app.get(
    "/{group_id}",
    summary="Get group by ID",
    description="Retrieve a group by its ID, with the IDs of its members.",
    responses={
        200: {"description": "Group details with members."},
        404: {"description": "Group not found."},
    },
)
async def read_group(
    group_id: UUID,
    user: CurrentUserDependency,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> DataResponse[GroupData]:
    log = log.bind(user_id=user.user_id)
    group = await groups_service.read_by_id(group_id=group_id, conn=conn, log=log)
    return DataResponse(data=group.to_core())


@group_app.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="Create a new group",
    description=(
        "Create a group with the signed-in user as its creator and only "
        "member. Give exactly one of `interest` or `module`; a module must be "
        "in the catalog of the user's university."
    ),
    responses={
        201: {"description": "Group created successfully."},
        400: {"description": "Invalid group."},
        404: {"description": "Module not found in the user's university."},
        409: {"description": "User already in a group."},
    },
)
async def create_group(
    content: GroupSpec,
    user: CurrentUserDependency,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> DataResponse[GroupData]:
    group = await groups_service.create_group(
        owner_user_id=user.user_id, spec=content, conn=conn, log=log
    )
    return DataResponse(data=group.to_core())


@group_app.post(
    "/{group_id}/join",
    summary="Join a group",
    description="Join a group. A user can only be in one group at a time.",
    responses={
        200: {"description": "The joined group."},
        404: {"description": "Group not found."},
        409: {"description": "User already in a group."},
    },
)
async def join_group(
    group_id: UUID,
    user: CurrentUserDependency,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> DataResponse[GroupData]:
    group = await groups_service.join_group(
        user_id=user.user_id, group_id=group_id, conn=conn, log=log
    )
    return DataResponse(data=group.to_core())


@group_app.post(
    "/{group_id}/leave",
    summary="Leave a group",
    description=(
        "Leave your current group. The creator of a group cannot leave it; "
        "the group closes when it ends."
    ),
    responses={
        200: {"description": "The group after leaving."},
        404: {"description": "Group not found."},
        409: {"description": "Not in this group, or the creator."},
    },
)
async def leave_group(
    group_id: UUID,
    user: CurrentUserDependency,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> DataResponse[GroupData]:
    group = await groups_service.leave_group(
        user_id=user.user_id, group_id=group_id, conn=conn, log=log
    )
    return DataResponse(data=group.to_core())
