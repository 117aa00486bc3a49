"""
Tests bearer token verification against the provider's key set.
"""

import asyncio
from datetime import timedelta

import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import rsa

from studydino.service.identity import (
    IdentityProviderUnavailable,
    IdentityVerifier,
    InvalidCredential,
)


@pytest.mark.asyncio(loop_scope="session")
async def test_verify(identity, make_token, key_server):
    assert await identity.verify(make_token("auth0|alice")) == "auth0|alice"
    assert await identity.verify(make_token("auth0|bob")) == "auth0|bob"

    # The key set is cached between verifications
    assert key_server.requests == 1


@pytest.mark.asyncio(loop_scope="session")
@pytest.mark.parametrize(
    "claims",
    [
        dict(issuer="https://someone-else.test/"),
        dict(audience="https://another-api.test"),
        dict(expires_in=-timedelta(minutes=5)),
    ],
)
async def test_reject_claims(identity, make_token, claims):
    with pytest.raises(InvalidCredential):
        await identity.verify(make_token("auth0|alice", **claims))


@pytest.mark.asyncio(loop_scope="session")
async def test_reject_signature(identity, make_token):
    forger = rsa.generate_private_key(public_exponent=65537, key_size=2048)

    with pytest.raises(InvalidCredential):
        await identity.verify(make_token("auth0|alice", key=forger))


@pytest.mark.asyncio(loop_scope="session")
async def test_reject_garbage(identity):
    for token in ["", "not-a-token", "a.b.c"]:
        with pytest.raises(InvalidCredential):
            await identity.verify(token)


@pytest.mark.asyncio(loop_scope="session")
async def test_key_rotation(server_settings, make_token, key_server, jwk_for):
    identity = IdentityVerifier(
        key_set_url=server_settings.key_set_url,
        issuer=server_settings.issuer,
        audience=server_settings.auth_audience,
        refetch_cooldown=timedelta(milliseconds=200),
        transport=key_server.transport,
    )

    await identity.verify(make_token("auth0|alice"))
    assert key_server.requests == 1

    rotated = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    key_server.keys = key_server.keys + [jwk_for(rotated, "rotated-key")]

    token = make_token("auth0|alice", key=rotated, key_id="rotated-key")

    # Too soon after the last fetch to look again
    with pytest.raises(InvalidCredential):
        await identity.verify(token)

    assert key_server.requests == 1

    await asyncio.sleep(0.3)

    assert await identity.verify(token) == "auth0|alice"
    assert key_server.requests == 2

    await asyncio.sleep(0.3)

    # Unknown everywhere: one refetch, then rejected
    for _ in range(2):
        with pytest.raises(InvalidCredential):
            await identity.verify(make_token("auth0|alice", key=rotated, key_id="missing"))

    assert key_server.requests == 3


@pytest.mark.asyncio(loop_scope="session")
async def test_unknown_key_ids_are_throttled(identity, make_token, key_server):
    await identity.verify(make_token("auth0|alice"))
    assert key_server.requests == 1

    forged = [
        jwt.encode(
            {"sub": "auth0|mallory"},
            "not-the-provider-secret-but-long-enough",
            algorithm="HS256",
            headers={"kid": f"bogus-{i}"},
        )
        for i in range(50)
    ]

    results = await asyncio.gather(
        *[identity.verify(token) for token in forged], return_exceptions=True
    )

    assert all(isinstance(r, InvalidCredential) for r in results)
    assert key_server.requests == 1

    # Genuine tokens are still served from the cached key set
    assert await identity.verify(make_token("auth0|bob")) == "auth0|bob"
    assert key_server.requests == 1


@pytest.mark.asyncio(loop_scope="session")
async def test_provider_unavailable(identity, make_token, key_server):
    key_server.available = False

    with pytest.raises(IdentityProviderUnavailable):
        await identity.verify(make_token("auth0|alice"))

    key_server.available = True

    assert await identity.verify(make_token("auth0|alice")) == "auth0|alice"


@pytest.mark.asyncio(loop_scope="session")
async def test_not_configured(make_token):
    identity = IdentityVerifier(key_set_url=None, issuer=None, audience=None)

    assert not identity.configured

    with pytest.raises(InvalidCredential):
        await identity.verify(make_token("auth0|alice"))
