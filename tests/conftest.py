"""
Core configuration

Tests run against SQLite in a temporary directory unless
`STUDYDINO_TEST_POSTGRES=1`, in which case a PostgreSQL container is used.
Bearer tokens are signed with a throwaway RSA key whose key set is served to
the identity verifier through an `httpx.MockTransport`.
"""

import json
import os
from datetime import datetime, timedelta, timezone

import httpx
import jwt
import pytest
import pytest_asyncio
import structlog
from cryptography.hazmat.primitives.asymmetric import rsa
from jwt.algorithms import RSAAlgorithm

from studydino.config.settings import Settings
from studydino.service.identity import IdentityVerifier

AUTH_DOMAIN = "studydino.test"
AUTH_AUDIENCE = "https://api.studydino.test"
KEY_ID = "test-key"


def public_jwk(private_key, key_id: str) -> dict:
    jwk = json.loads(RSAAlgorithm.to_jwk(private_key.public_key()))
    jwk.update(kid=key_id, use="sig", alg="RS256")
    return jwk


class KeySetServer:
    """
    Stands in for the identity provider's JWKS endpoint.
    """

    def __init__(self, keys: list[dict]):
        self.keys = keys
        self.available = True
        self.requests = 0

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests += 1

        if not self.available:
            return httpx.Response(503)

        return httpx.Response(200, json={"keys": self.keys})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest_asyncio.fixture(scope="session")
def database_settings(tmp_path_factory):
    if os.environ.get("STUDYDINO_TEST_POSTGRES") == "1":
        from testcontainers.postgres import PostgresContainer

        with PostgresContainer() as container:
            yield {
                "database_type": "postgres",
                "database_user": container.username,
                "database_password": container.password,
                "database_port": container.get_exposed_port(container.port),
                "database_host": "localhost",
                "database_db": container.dbname,
            }
    else:
        yield {
            "database_type": "sqlite",
            "database_db": str(tmp_path_factory.mktemp("database") / "studydino.db"),
        }


@pytest_asyncio.fixture(scope="session")
def server_settings(database_settings):
    yield Settings(
        **database_settings,
        database_echo=False,
        auth_domain=AUTH_DOMAIN,
        auth_audience=AUTH_AUDIENCE,
        run_reaper=False,
    )


@pytest_asyncio.fixture(scope="session")
async def session_manager(server_settings: Settings):
    manager = server_settings.async_manager()
    await manager.create_all()

    yield manager

    await manager.dispose()


@pytest_asyncio.fixture(scope="session")
def logger():
    yield structlog.get_logger()


@pytest.fixture(scope="session")
def signing_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture
def key_server(signing_key):
    return KeySetServer(keys=[public_jwk(signing_key, KEY_ID)])


@pytest.fixture
def identity(server_settings, key_server):
    return IdentityVerifier.from_settings(server_settings, transport=key_server.transport)


@pytest.fixture(scope="session")
def make_token(signing_key, server_settings):
    def make(
        subject: str,
        issuer: str | None = None,
        audience: str | None = None,
        key=None,
        key_id: str = KEY_ID,
        expires_in: timedelta = timedelta(hours=1),
    ) -> str:
        now = datetime.now(timezone.utc)

        return jwt.encode(
            {
                "sub": subject,
                "iss": issuer or server_settings.issuer,
                "aud": audience or server_settings.auth_audience,
                "iat": now,
                "exp": now + expires_in,
            },
            key or signing_key,
            algorithm="RS256",
            headers={"kid": key_id},
        )

    return make


@pytest.fixture(scope="session")
def jwk_for():
    return public_jwk


@pytest.fixture(scope="session")
def shared_key_server(signing_key):
    return KeySetServer(keys=[public_jwk(signing_key, KEY_ID)])
