"""
Main settings object.
"""

from datetime import timedelta
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy import URL

from .managers import AsyncSessionManager


class Settings(BaseSettings):
    database_type: Literal["sqlite", "postgres"] = "sqlite"
    database_user: str | None = None
    database_password: str | None = None
    database_port: int | None = None
    database_host: str | None = None
    database_db: str = "studydino.db"

    database_echo: bool = False

    # External identity provider (an OpenID issuer such as Auth0). Tokens are
    # verified against the key set published at `jwks_url`.
    auth_domain: str | None = None
    auth_audience: str | None = None
    jwks_url: str | None = None
    jwks_cache_ttl: timedelta = timedelta(minutes=10)
    # Minimum time between key set fetches triggered by an unknown key ID
    jwks_refetch_cooldown: timedelta = timedelta(seconds=30)
    jwt_algorithms: list[str] = ["RS256"]

    # Group reaping
    run_reaper: bool = True
    reaper_interval: timedelta = timedelta(minutes=5)

    chat_history_limit: int = 20

    host: str = "0.0.0.0"
    port: int = 5000
    cors_origins: list[str] = ["*"]

    model_config = SettingsConfigDict(env_prefix="STUDYDINO_", env_file=".env")

    @property
    def issuer(self) -> str | None:
        if self.auth_domain is None:
            return None
        return f"https://{self.auth_domain}/"

    @property
    def key_set_url(self) -> str | None:
        if self.jwks_url is not None:
            return self.jwks_url
        if self.auth_domain is None:
            return None
        return f"https://{self.auth_domain}/.well-known/jwks.json"

    @property
    def async_driver(self) -> str:
        match self.database_type:
            case "sqlite":
                return "sqlite+aiosqlite"
            case "postgres":
                return "postgresql+asyncpg"
            case _:
                raise ValueError

    @property
    def async_uri(self) -> URL:
        return URL.create(
            drivername=self.async_driver,
            username=self.database_user,
            password=self.database_password,
            host=self.database_host,
            port=self.database_port,
            database=self.database_db,
        )

    def async_manager(self) -> AsyncSessionManager:
        return AsyncSessionManager(
            connection_url=self.async_uri, echo=self.database_echo
        )
