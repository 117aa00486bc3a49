"""
A simple CLI for running the server.

    studydino run dev    # throwaway PostgreSQL in a container
    studydino run prod   # database and identity provider from the environment
    studydino reap       # run one reaping cycle and exit
    studydino seed [catalog.json]  # fill the university catalog
"""

import asyncio
import os
import sys
from pathlib import Path

import uvicorn


def run_server(**kwargs):
    for k, v in kwargs.items():
        os.environ[k] = v

    from studydino.config.settings import Settings

    settings = Settings()

    uvicorn.run("studydino.api.app:app", host=settings.host, port=settings.port)


async def reap_once():
    import structlog

    from studydino.config.settings import Settings
    from studydino.service.reaper import GroupReaper

    settings = Settings()
    manager = settings.async_manager()

    await manager.create_all()

    reaper = GroupReaper(session_manager=manager, log=structlog.get_logger())
    reaped = await reaper.run_cycle()

    await manager.dispose()

    return reaped


def seed_catalog(path: Path | None = None):
    from studydino.config.settings import Settings
    from studydino.scripts.seed import DEFAULT_CATALOG, load_catalog, seed

    universities = DEFAULT_CATALOG if path is None else load_catalog(path)
    created = asyncio.run(seed(settings=Settings(), universities=universities))

    print(f"Seeded {len(created)} of {len(universities)} universities")


def main():
    try:
        run = sys.argv[1] == "run"
        reap = sys.argv[1] == "reap"
        seed = sys.argv[1] == "seed"
        dev = run and sys.argv[2] == "dev"
        prod = run and sys.argv[2] == "prod"
    except IndexError:
        print("Only supported commands are studydino run dev, studydino run prod, studydino reap, or studydino seed [catalog.json]")
        exit(1)

    if dev:
        from testcontainers.postgres import PostgresContainer

        with PostgresContainer() as container:
            print(
                f"Container details: username={container.username}, password={container.password}, port={container.get_exposed_port(container.port)}"
            )

            environment = {
                "STUDYDINO_DATABASE_TYPE": "postgres",
                "STUDYDINO_DATABASE_USER": container.username,
                "STUDYDINO_DATABASE_PASSWORD": container.password,
                "STUDYDINO_DATABASE_PORT": str(container.get_exposed_port(container.port)),
                "STUDYDINO_DATABASE_HOST": "localhost",
                "STUDYDINO_DATABASE_DB": container.dbname,
                "STUDYDINO_DATABASE_ECHO": "False",
            }

            run_server(**environment)
    elif prod:
        run_server()
    elif reap:
        reaped = asyncio.run(reap_once())
        print(f"Reaped {len(reaped)} group(s)")
    elif seed:
        seed_catalog(path=Path(sys.argv[2]) if len(sys.argv) > 2 else None)
    else:
        print("Only supported commands are studydino run dev, studydino run prod, studydino reap, or studydino seed [catalog.json]")
        exit(1)
