"""
FastAPI app
"""

from contextlib import asynccontextmanager
from importlib.metadata import version

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from structlog import get_logger

from studydino.config.settings import Settings
from studydino.realtime.registry import SocketRegistry
from studydino.service.identity import IdentityVerifier
from studydino.service.reaper import GroupReaper

from .chat import chat_app
from .errors import add_exception_handlers
from .groups import group_app
from .me import me_app
from .universities import university_app


def create_app(
    settings: Settings | None = None, identity: IdentityVerifier | None = None
) -> FastAPI:
    """
    Build the application. The settings, database manager, identity verifier,
    socket registry and group reaper are attached to the app so that both
    HTTP dependencies and the chat socket can reach them.
    """
    settings = settings or Settings()
    database = settings.async_manager()
    identity = identity or IdentityVerifier.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        log = get_logger()

        await database.create_all()

        if not identity.configured:
            await log.awarning("api.identity_not_configured")

        if settings.run_reaper:
            app.reaper.start()

        yield

        await app.reaper.stop()
        await database.dispose()

    app = FastAPI(
        lifespan=lifespan,
        title="StudyDino API",
        summary=(
            "API endpoints for StudyDino: profiles, the university catalog, "
            "study groups and their chat."
        ),
        version=version("studydino"),
    )

    app.settings = settings
    app.database = database
    app.identity = identity
    app.sockets = SocketRegistry()
    app.reaper = GroupReaper(session_manager=database, interval=settings.reaper_interval)

    app = add_exception_handlers(app)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/", tags=["Status"], summary="Service status")
    async def home() -> dict:
        return {"data": {"status": "ok", "version": app.version}}

    app.include_router(me_app, prefix="/me")
    app.include_router(university_app, prefix="/universities")
    app.include_router(group_app, prefix="/groups")
    app.include_router(chat_app)

    return app


app = create_app()
