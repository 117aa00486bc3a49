"""
University catalog ORM: universities own courses, courses own modules.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, DateTime, UniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

from studydino.core.university import CourseData, ModuleData, UniversityData
from studydino.core.uuid import UUID, uuid7


class University(SQLModel, table=True):
    university_id: UUID = Field(primary_key=True, default_factory=uuid7)
    name: str = Field(unique=True, index=True)
    created_at: datetime = Field(
        sa_column=Column(DateTime(timezone=True), nullable=False),
        default_factory=lambda: datetime.now(timezone.utc),
    )

    courses: list["Course"] = Relationship(
        back_populates="university",
        sa_relationship_kwargs=dict(lazy="selectin", cascade="all, delete-orphan"),
    )

    def find_course(self, name: str) -> Optional["Course"]:
        for course in self.courses:
            if course.name == name:
                return course
        return None

    def to_core(self) -> UniversityData:
        return UniversityData(
            university_id=self.university_id,
            name=self.name,
            courses=[course.to_core() for course in self.courses],
        )


class Course(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("university_id", "name"),)

    course_id: UUID = Field(primary_key=True, default_factory=uuid7)
    university_id: Optional[UUID] = Field(
        foreign_key="university.university_id", ondelete="CASCADE"
    )
    name: str

    university: University = Relationship(back_populates="courses")
    modules: list["Module"] = Relationship(
        back_populates="course",
        sa_relationship_kwargs=dict(lazy="selectin", cascade="all, delete-orphan"),
    )

    def has_module(self, module_code: str, module_name: str) -> bool:
        return any(
            module.module_code == module_code and module.name == module_name
            for module in self.modules
        )

    def to_core(self) -> CourseData:
        return CourseData(
            name=self.name, modules=[module.to_core() for module in self.modules]
        )


class Module(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("course_id", "module_code"),)

    module_pk: UUID = Field(primary_key=True, default_factory=uuid7)
    course_id: Optional[UUID] = Field(
        foreign_key="course.course_id", ondelete="CASCADE"
    )
    module_code: str
    name: str
    year: int = Field(ge=1)

    course: Course = Relationship(back_populates="modules")

    def to_core(self) -> ModuleData:
        return ModuleData(module_id=self.module_code, name=self.name, year=self.year)
