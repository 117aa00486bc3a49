"""
Fills the university catalog. Module groups can only be created against
modules that are in the catalog, so a fresh deployment needs this once:

    studydino seed                 # the built-in catalog below
    studydino seed catalog.json    # a list of universities in the wire format

Universities already present are skipped.
"""

from pathlib import Path

import structlog
from pydantic import TypeAdapter
from structlog.typing import FilteringBoundLogger

from studydino.config.settings import Settings
from studydino.core.university import CourseData, ModuleData, UniversitySpec
from studydino.service import catalog as catalog_service


def _modules(year: int, *modules: tuple[str, str]) -> list[ModuleData]:
    return [ModuleData(module_id=code, name=name, year=year) for code, name in modules]


DURHAM_UNIVERSITY = UniversitySpec(
    name="Durham University",
    courses=[
        CourseData(
            name="BSc Computer Science",
            modules=_modules(
                1,
                ("COMP1081", "Algorithms and Data Structures"),
                ("COMP1051", "Computational Thinking"),
                ("COMP1071", "Computer Systems"),
                ("COMP1021", "Mathematics for Computer Science"),
                ("COMP1101", "Programming (Black)"),
                ("COMP1111", "Programming (Gold)"),
            )
            + _modules(
                2,
                ("COMP2211", "Networks and Systems"),
                ("COMP2221", "Programming Paradigms"),
                ("COMP2181", "Theory of Computation"),
                ("COMP2261", "Artificial Intelligence"),
                ("COMP2271", "Data Science"),
                ("COMP2281", "Software Engineering"),
            )
            + _modules(
                3,
                ("COMP3012", "Individual Project"),
                ("COMP3477", "Algorithmic Game Theory"),
                ("COMP3487", "Bioinformatics"),
                ("COMP3637", "Compiler Design"),
                ("COMP3507", "Computational Complexity"),
                (
                    "COMP3517",
                    "Computational Modelling in the Humanities and Social Sciences",
                ),
                ("COMP3421", "Computer Science into Schools"),
                ("COMP3527", "Computer Vision"),
                ("COMP3731", "Cryptography"),
                ("COMP3547", "Deep Learning"),
                ("COMP3557", "Design of Algorithms and Data Structures"),
                ("COMP3647", "Human-AI Interaction Design"),
                ("COMP3751", "Interactive Media, Gaming and VR/AR Technologies"),
                ("COMP3721", "Introduction to Music Computing"),
                ("COMP3677", "Natural Computing Algorithms"),
                ("COMP3741", "Parallel Scientific Computing"),
                ("COMP3587", "Project Management"),
                ("COMP3607", "Recommender Systems"),
                ("COMP3667", "Reinforcement Learning"),
            ),
        )
    ],
)

DEFAULT_CATALOG = [DURHAM_UNIVERSITY]


def load_catalog(path: Path) -> list[UniversitySpec]:
    """
    Read a JSON list of universities, e.g.
    `[{"name": ..., "courses": [{"name": ..., "modules": [{"moduleId": ..., "name": ..., "year": 1}]}]}]`.
    """
    with open(path, "rb") as handle:
        return TypeAdapter(list[UniversitySpec]).validate_json(handle.read())


async def seed(
    settings: Settings,
    universities: list[UniversitySpec] = DEFAULT_CATALOG,
    log: FilteringBoundLogger | None = None,
) -> list[str]:
    """
    Create the tables if needed and add the missing universities. Returns the
    names of those that were added.
    """
    log = log or structlog.get_logger()
    manager = settings.async_manager()

    try:
        await manager.create_all()

        async with manager.transaction() as conn:
            return await catalog_service.seed_universities(
                universities=universities, conn=conn, log=log
            )
    finally:
        await manager.dispose()
