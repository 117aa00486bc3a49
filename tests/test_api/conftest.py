"""
Fixtures for the HTTP and WebSocket API tests. The app runs in the test
client's own event loop, against the same database as the service tests.
"""

from datetime import datetime, timedelta, timezone

import pytest
import structlog
from fastapi.testclient import TestClient

from studydino.api.app import create_app
from studydino.core.university import CourseData, ModuleData, UniversitySpec
from studydino.core.uuid import uuid7
from studydino.service import catalog as catalog_service
from studydino.service.identity import IdentityVerifier

UNIVERSITY = "Dino State University"
COURSE = "Palaeontology"
MODULE_ID = "PAL101"
MODULE_NAME = "Fossils"


async def seed_catalog(app):
    async with app.database.transaction() as conn:
        await catalog_service.seed_universities(
            universities=[
                UniversitySpec(
                    name=UNIVERSITY,
                    courses=[
                        CourseData(
                            name=COURSE,
                            modules=[
                                ModuleData(module_id=MODULE_ID, name=MODULE_NAME, year=1)
                            ],
                        )
                    ],
                )
            ],
            conn=conn,
            log=structlog.get_logger(),
        )


@pytest.fixture(scope="session")
def client(server_settings, shared_key_server):
    identity = IdentityVerifier.from_settings(
        server_settings, transport=shared_key_server.transport
    )
    app = create_app(settings=server_settings, identity=identity)

    with TestClient(app) as client:
        client.portal.call(seed_catalog, app)
        yield client


@pytest.fixture(scope="session")
def sign_in(client, make_token):
    """
    Create a user with the given name through the API. Returns their token,
    authorization headers and user ID.
    """

    def create(first_name: str, last_name: str = "") -> tuple[str, dict, str]:
        token = make_token(f"auth0|{uuid7().hex}")
        headers = {"Authorization": f"Bearer {token}"}

        response = client.patch(
            "/me",
            json={
                "firstName": first_name,
                "lastName": last_name,
                "university": UNIVERSITY,
                "course": COURSE,
                "year": 1,
            },
            headers=headers,
        )
        assert response.status_code == 200

        return token, headers, response.json()["data"]["id"]

    return create


@pytest.fixture(scope="session")
def group_body():
    def make(**overrides) -> dict:
        start_at = datetime.now(timezone.utc)
        body = {
            "name": "Dig site",
            "startAt": start_at.isoformat(),
            "endAt": (start_at + timedelta(hours=2)).isoformat(),
            "location": {"lat": 55.9445, "lng": -3.1892},
            "interest": "Bones",
        }
        body.update(overrides)
        return {k: v for k, v in body.items() if v is not None}

    return make
