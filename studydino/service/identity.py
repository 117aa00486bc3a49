"""
Verification of bearer tokens issued by the external identity provider.

The provider publishes its signing keys as a JSON Web Key Set. The set is
fetched asynchronously and cached; a token signed with a key we have not seen
(the provider rotated its keys) forces one refetch, at most once per cooldown
so that forged key IDs cannot hammer the provider.
"""

import asyncio
import time
from datetime import timedelta

import httpx
import jwt
from cachetools import TTLCache
from structlog import get_logger
from structlog.typing import FilteringBoundLogger

from studydino.config.settings import Settings
from studydino.core.errors import Transient, Unauthorized


class InvalidCredential(Unauthorized):
    """Unauthorized"""


class IdentityProviderUnavailable(Transient):
    """Identity provider unavailable"""


class IdentityVerifier:
    """
    Verifies signature, issuer, audience and expiry of a bearer token and
    returns its subject.

    Expected usage:

    verifier = IdentityVerifier.from_settings(settings)
    subject = await verifier.verify(token)
    """

    key_set_url: str | None
    issuer: str | None
    audience: str | None
    algorithms: list[str]

    def __init__(
        self,
        key_set_url: str | None,
        issuer: str | None,
        audience: str | None,
        algorithms: list[str] = ["RS256"],
        cache_ttl: timedelta = timedelta(minutes=10),
        refetch_cooldown: timedelta = timedelta(seconds=30),
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.key_set_url = key_set_url
        self.issuer = issuer
        self.audience = audience
        self.algorithms = list(algorithms)
        self.transport = transport
        self.refetch_cooldown = refetch_cooldown

        self._cache: TTLCache = TTLCache(maxsize=1, ttl=cache_ttl.total_seconds())
        self._lock = asyncio.Lock()
        self._fetched_at: float | None = None

    @classmethod
    def from_settings(
        cls, settings: Settings, transport: httpx.AsyncBaseTransport | None = None
    ) -> "IdentityVerifier":
        return cls(
            key_set_url=settings.key_set_url,
            issuer=settings.issuer,
            audience=settings.auth_audience,
            algorithms=settings.jwt_algorithms,
            cache_ttl=settings.jwks_cache_ttl,
            refetch_cooldown=settings.jwks_refetch_cooldown,
            transport=transport,
        )

    @property
    def configured(self) -> bool:
        return None not in (self.key_set_url, self.issuer, self.audience)

    @property
    def can_refetch(self) -> bool:
        if self._fetched_at is None:
            return True
        return time.monotonic() - self._fetched_at >= self.refetch_cooldown.total_seconds()

    async def key_set(
        self, log: FilteringBoundLogger, force_refresh: bool = False
    ) -> jwt.PyJWKSet:
        """
        The provider's key set, from cache unless expired or `force_refresh`.
        A forced refresh within `refetch_cooldown` of the last fetch returns the
        cached set.

        Raises
        ------
        IdentityProviderUnavailable
            If the key set could not be fetched or parsed.
        """
        async with self._lock:
            if "keys" in self._cache and not (force_refresh and self.can_refetch):
                return self._cache["keys"]

            log = log.bind(key_set_url=self.key_set_url)
            self._fetched_at = time.monotonic()

            try:
                async with httpx.AsyncClient(transport=self.transport) as client:
                    response = await client.get(self.key_set_url, timeout=10.0)
                    response.raise_for_status()
                    keys = jwt.PyJWKSet.from_dict(response.json())
            except (httpx.HTTPError, ValueError, jwt.PyJWKSetError) as e:
                await log.awarning("identity.key_set_unavailable", error=str(e))
                raise IdentityProviderUnavailable from e

            self._cache["keys"] = keys
            await log.adebug("identity.key_set_fetched", number_of_keys=len(keys.keys))

            return keys

    async def signing_key(
        self, key_id: str | None, log: FilteringBoundLogger
    ) -> jwt.PyJWK:
        keys = await self.key_set(log=log)

        if key_id is None:
            if len(keys.keys) == 1:
                return keys.keys[0]
            raise InvalidCredential("Token does not name its signing key")

        try:
            return keys[key_id]
        except KeyError:
            pass

        if not self.can_refetch:
            await log.ainfo("identity.unknown_key", key_id=key_id, refetched=False)
            raise InvalidCredential("Unknown signing key")

        keys = await self.key_set(log=log, force_refresh=True)

        try:
            return keys[key_id]
        except KeyError:
            await log.ainfo("identity.unknown_key", key_id=key_id, refetched=True)
            raise InvalidCredential("Unknown signing key")

    async def verify(self, token: str, log: FilteringBoundLogger | None = None) -> str:
        """
        Verify a bearer token and return its subject.

        Raises
        ------
        InvalidCredential
            Bad signature, issuer, audience, expiry, or no subject; also when
            no identity provider is configured.
        IdentityProviderUnavailable
            If the key set could not be fetched.
        """
        log = log or get_logger()

        if not self.configured:
            await log.awarning("identity.not_configured")
            raise InvalidCredential("Identity provider is not configured")

        try:
            header = jwt.get_unverified_header(token)
        except jwt.InvalidTokenError:
            await log.adebug("identity.malformed_token")
            raise InvalidCredential

        key = await self.signing_key(key_id=header.get("kid"), log=log)

        try:
            payload = jwt.decode(
                token,
                key=key.key,
                algorithms=self.algorithms,
                audience=self.audience,
                issuer=self.issuer,
                options={"require": ["exp", "iss", "aud", "sub"]},
            )
        except jwt.InvalidTokenError as e:
            await log.adebug("identity.rejected", reason=type(e).__name__)
            raise InvalidCredential

        subject = payload.get("sub")

        if not isinstance(subject, str) or not subject:
            raise InvalidCredential

        return subject
