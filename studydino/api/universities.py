"""
University catalog, used by clients to pick a course and module.
"""

from fastapi import APIRouter

from studydino.core.university import UniversityData
from studydino.core.wire import DataResponse
from studydino.service import catalog as catalog_service

from .dependencies import DatabaseDependency, LoggerDependency

university_app = APIRouter(tags=["Catalog"])


@university_app.get(
    "",
    summary="List universities",
    description="All universities with their courses and modules, sorted by name.",
    responses={200: {"description": "The catalog."}},
)
async def list_universities(
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> DataResponse[list[UniversityData]]:
    universities = await catalog_service.get_university_list(conn=conn, log=log)
    return DataResponse(data=[x.to_core() for x in universities])
