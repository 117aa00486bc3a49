"""
Core university catalog models.
"""

from studydino.core.uuid import UUID

from .wire import WireModel


class ModuleData(WireModel):
    module_id: str
    name: str
    year: int


class CourseData(WireModel):
    name: str
    modules: list[ModuleData]


class UniversityData(WireModel):
    university_id: UUID
    name: str
    courses: list[CourseData]


class UniversitySpec(WireModel):
    """
    A university as it appears in a catalog seed file.
    """

    name: str
    courses: list[CourseData] = []
