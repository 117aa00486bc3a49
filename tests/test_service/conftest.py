"""
Configuration variables and fixtures for the service layer tests.
"""

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from studydino.core.group import GroupModuleData, GroupSpec, LocationData
from studydino.core.university import CourseData, ModuleData
from studydino.core.user import ProfileUpdate
from studydino.core.uuid import uuid7
from studydino.service import catalog as catalog_service
from studydino.service import user as user_service

UNIVERSITY = "University of Testing"
COURSE = "Computer Science"
MODULE_ID = "COMP1001"
MODULE_NAME = "Introduction to Programming"


@pytest_asyncio.fixture(scope="session")
async def university(session_manager, logger):
    async with session_manager.session() as conn:
        async with conn.begin():
            university = await catalog_service.create_university(
                name=UNIVERSITY,
                courses=[
                    CourseData(
                        name=COURSE,
                        modules=[
                            ModuleData(module_id=MODULE_ID, name=MODULE_NAME, year=1),
                            ModuleData(module_id="COMP2002", name="Algorithms", year=2),
                        ],
                    ),
                    CourseData(name="History", modules=[]),
                ],
                conn=conn,
                log=logger,
            )

            UNIVERSITY_ID = university.university_id

    yield UNIVERSITY_ID


@pytest.fixture(scope="session")
def create_user(session_manager, logger, university):
    """
    Create a user with a complete profile and return their ID.
    """

    async def create(first_name: str = "Test", last_name: str = "User"):
        async with session_manager.session() as conn:
            async with conn.begin():
                user = await user_service.update_profile(
                    subject=f"auth0|{uuid7().hex}",
                    content=ProfileUpdate(
                        first_name=first_name,
                        last_name=last_name,
                        university=UNIVERSITY,
                        course=COURSE,
                        year=1,
                    ),
                    conn=conn,
                    log=logger,
                )

                USER_ID = user.user_id

        return USER_ID

    return create


@pytest.fixture(scope="session")
def group_spec():
    """
    Build a group specification. By default an interest group running for
    the next two hours.
    """

    def make(
        interest: str | None = "Revision",
        module: GroupModuleData | None = None,
        start_at: datetime | None = None,
        end_at: datetime | None = None,
        name: str | None = "Study session",
    ) -> GroupSpec:
        start_at = start_at or datetime.now(timezone.utc)
        end_at = end_at or start_at + timedelta(hours=2)

        return GroupSpec(
            name=name,
            start_at=start_at,
            end_at=end_at,
            location=LocationData(lat=51.5246, lng=-0.1340),
            interest=interest,
            module=module,
        )

    return make


@pytest.fixture(scope="session")
def module_reference():
    return GroupModuleData(module_id=MODULE_ID, name=MODULE_NAME, course=COURSE)
