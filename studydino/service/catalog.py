"""
Service layer for the university catalog. Read-only for the group
lifecycle; `seed_universities` fills it from `studydino seed`.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from structlog.typing import FilteringBoundLogger

from studydino.core.university import CourseData, UniversitySpec
from studydino.database.university import Course, Module, University


async def find_university(
    name: str, conn: AsyncSession, log: FilteringBoundLogger
) -> University | None:
    """
    Look up a university (with its courses and modules) by exact name.
    """
    result = await conn.execute(select(University).where(University.name == name))
    university = result.scalar_one_or_none()

    await log.adebug("catalog.university_lookup", name=name, found=university is not None)

    return university


async def module_exists(
    university_name: str,
    course_name: str,
    module_code: str,
    module_name: str,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> bool:
    """
    Check that a module with this code and name is taught on the given course
    at the given university.
    """
    university = await find_university(name=university_name, conn=conn, log=log)
    if university is None:
        return False

    course = university.find_course(course_name)
    if course is None:
        return False

    return course.has_module(module_code=module_code, module_name=module_name)


async def get_university_list(
    conn: AsyncSession, log: FilteringBoundLogger
) -> list[University]:
    result = await conn.execute(select(University).order_by(University.name))
    universities = result.scalars().all()

    await log.adebug("catalog.listed", number_of_universities=len(universities))

    return universities


async def create_university(
    name: str,
    courses: list[CourseData],
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> University:
    university = University(
        name=name.strip(),
        courses=[
            Course(
                name=course.name.strip(),
                modules=[
                    Module(
                        module_code=module.module_id,
                        name=module.name.strip(),
                        year=module.year,
                    )
                    for module in course.modules
                ],
            )
            for course in courses
        ],
    )

    conn.add(university)
    await conn.flush()

    await log.ainfo(
        "catalog.university_created",
        university_id=university.university_id,
        number_of_courses=len(courses),
    )

    return university


async def seed_universities(
    universities: list[UniversitySpec],
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> list[str]:
    """
    Add each university that is not already in the catalog. Existing
    universities are left untouched, so seeding can be repeated.

    Returns
    -------
    created: list[str]
        Names of the universities that were added.
    """
    created = []

    for university in universities:
        existing = await find_university(name=university.name.strip(), conn=conn, log=log)

        if existing is not None:
            await log.ainfo("catalog.seed.exists", name=existing.name)
            continue

        await create_university(
            name=university.name, courses=university.courses, conn=conn, log=log
        )
        created.append(university.name.strip())

    await log.ainfo(
        "catalog.seeded",
        number_of_universities=len(universities),
        number_created=len(created),
    )

    return created
