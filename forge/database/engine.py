"""
forge.database.engine — Engine Setup, Schema Bootstrap & Thread Bridge
======================================================================

The services are plain synchronous SQLAlchemy code that take an
:class:`~sqlalchemy.Engine` and open their own sessions.  Route handlers
declared with ``def`` already run on Starlette's thread pool; anything
``async`` (the API lifespan) hands blocking calls to :func:`run_db`.

Usage::

    from forge.database.engine import create_db_engine, init_db, run_db

    engine = create_db_engine()          # DATABASE_URL from the environment
    init_db(engine)                      # create tables, seed badges/titles

    await run_db(init_db, engine)        # same, from async code
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable
from typing import ParamSpec, TypeVar

from sqlalchemy import Engine, create_engine, make_url

from forge.database.models import Base

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

# Pool sizing for PostgreSQL.  SQLite (local runs, cron smoke tests) keeps
# SQLAlchemy's default pool.
_POOL_OPTIONS = {
    "pool_size": 5,
    "max_overflow": 10,
    "pool_timeout": 10,
    "pool_recycle": 1800,
}


def create_db_engine(url: str | None = None) -> Engine:
    """Build the engine for *url*, or for ``DATABASE_URL`` when omitted.

    Raises
    ------
    RuntimeError
        If no URL is given and ``DATABASE_URL`` is unset.
    """
    url = url or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set.  "
            "Copy .env.example → .env and point it at the Game Forge database."
        )

    options: dict = {"pool_pre_ping": True}
    if make_url(url).get_backend_name() != "sqlite":
        options.update(_POOL_OPTIONS)

    engine = create_engine(url, **options)
    logger.info("Database engine created (%s)", engine.url.get_backend_name())
    return engine


def init_db(engine: Engine) -> None:
    """Create any missing tables, then seed the default catalogue.

    Idempotent; the API lifespan and every cron job call it on start.
    """
    Base.metadata.create_all(engine)
    logger.info("Schema ready (%d tables)", len(Base.metadata.tables))

    from forge.database.seed import seed_default_achievements

    seed_default_achievements(engine)


async def run_db(func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
    """Await a synchronous database call on a worker thread."""
    return await asyncio.to_thread(func, *args, **kwargs)
