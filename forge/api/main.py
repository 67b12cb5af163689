"""
forge.api.main — FastAPI application entry point
=================================================

Run with::

    uvicorn forge.api.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

load_dotenv()

from forge.api.deps import get_engine, get_optional_config  # noqa: E402
from forge.api.errors import install_error_handlers, ok  # noqa: E402
from forge.api.routes.academy import router as academy_router  # noqa: E402
from forge.api.routes.admin import router as admin_router  # noqa: E402
from forge.api.routes.events import router as events_router  # noqa: E402
from forge.api.routes.gamification import router as gamification_router  # noqa: E402
from forge.api.routes.leaderboards import router as leaderboards_router  # noqa: E402
from forge.api.routes.notifications import router as notifications_router  # noqa: E402
from forge.database.engine import init_db, run_db  # noqa: E402
from forge.services import leaderboard_service  # noqa: E402

logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    """Resolve allowed CORS origins from env with safe defaults.

    Priority:
      1) CORS_ALLOW_ORIGINS (comma-separated)
      2) FRONTEND_URL (single origin)
    """
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if raw:
        return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]

    frontend_url = os.getenv("FRONTEND_URL", "").strip()
    if frontend_url:
        return [frontend_url.rstrip("/")]

    return []


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle — create tables, seed, apply cache TTLs."""
    engine = get_engine()
    await run_db(init_db, engine)

    cfg = get_optional_config()
    if cfg is None:
        logger.warning("config.yaml not found; using default leaderboard cache TTLs")
    else:
        leaderboard_service.configure_cache(cfg.leaderboard)

    logger.info("Game Forge API started — engine ready (%s)", engine.url.database)
    yield
    logger.info("Game Forge API shutting down")


app = FastAPI(
    title="The Game Forge API",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

install_error_handlers(app)

# Mount routers
app.include_router(gamification_router, prefix="/api")
app.include_router(leaderboards_router, prefix="/api")
app.include_router(events_router, prefix="/api")
app.include_router(academy_router, prefix="/api")
app.include_router(notifications_router, prefix="/api")
app.include_router(admin_router, prefix="/api")


@app.get("/api/health")
def health():
    return ok({"status": "ok"})
