"""
forge.api.routes.leaderboards — Leaderboard endpoints
======================================================
"""

from __future__ import annotations

from datetime import date
from typing import Literal

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy import Engine

from forge.api.deps import get_current_admin, get_engine, get_optional_config, get_optional_user
from forge.api.errors import ok
from forge.config import ForgeConfig
from forge.constants import ARCHIVE_RETENTION_WEEKS, LEADERBOARD_DEFAULT_LIMIT
from forge.exceptions import InvalidInput
from forge.services import leaderboard_archive, leaderboard_service
from forge.services.event_service import Actor

router = APIRouter(prefix="/leaderboards", tags=["leaderboards"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class WeeklyAction(BaseModel):
    action: Literal["archive", "cleanup"]
    weeks: int | None = None


class LeaderboardUpdate(BaseModel):
    type: str | None = None
    domain: str | None = None


# ---------------------------------------------------------------------------
# Boards
# ---------------------------------------------------------------------------
@router.get("")
def get_leaderboard(
    type: str = Query(leaderboard_service.ALL_TIME),
    domain: str | None = Query(None),
    limit: int = Query(LEADERBOARD_DEFAULT_LIMIT),
    offset: int = Query(0),
    user: Actor | None = Depends(get_optional_user),
    engine: Engine = Depends(get_engine),
):
    """Paginated all-time or weekly leaderboard, optionally per domain."""
    board = leaderboard_service.get_leaderboard(
        engine, type, domain,
        limit=limit, offset=offset,
        user_id=user.id if user else None,
    )
    return ok(board)


@router.get("/user/{user_id}")
def get_user_position(
    user_id: str,
    type: str = Query(leaderboard_service.ALL_TIME),
    domain: str | None = Query(None),
    context: int = Query(5),
    engine: Engine = Depends(get_engine),
):
    """The user's rank with *context* neighbours and the top three."""
    return ok(leaderboard_service.get_user_position(
        engine, user_id, type, domain, context=context,
    ))


@router.get("/widget")
def get_widget(
    limit: int = Query(5),
    user: Actor | None = Depends(get_optional_user),
    engine: Engine = Depends(get_engine),
):
    return ok(leaderboard_service.get_widget(
        engine, user.id if user else None, limit=limit,
    ))


# ---------------------------------------------------------------------------
# Weekly archive
# ---------------------------------------------------------------------------
@router.get("/weekly")
def get_weekly(
    action: Literal["current", "history", "weeks", "user"] = Query("current"),
    week_ending: date | None = Query(None),
    domain: str | None = Query(None),
    user_id: str | None = Query(None),
    limit: int = Query(LEADERBOARD_DEFAULT_LIMIT, ge=1, le=100),
    weeks: int = Query(12, ge=1, le=52),
    user: Actor | None = Depends(get_optional_user),
    engine: Engine = Depends(get_engine),
):
    if action == "current":
        return ok(leaderboard_service.get_leaderboard(
            engine, leaderboard_service.WEEKLY, domain,
            limit=limit, user_id=user.id if user else None,
        ))
    if action == "history":
        return ok({"entries": leaderboard_archive.get_weekly_leaderboard_history(
            engine, week_ending, domain, limit,
        )})
    if action == "weeks":
        weeks_available = leaderboard_archive.get_available_weeks(engine)
        return ok({"weeks": [w.isoformat() for w in weeks_available]})

    target = user_id or (user.id if user else None)
    if target is None:
        raise InvalidInput("user_id is required for action=user")
    return ok({
        "user_id": target,
        "history": leaderboard_archive.get_user_weekly_history(engine, target, weeks),
    })


@router.post("/weekly")
def post_weekly(
    body: WeeklyAction,
    admin: Actor = Depends(get_current_admin),
    engine: Engine = Depends(get_engine),
    cfg: ForgeConfig | None = Depends(get_optional_config),
):
    if body.action == "archive":
        return ok(leaderboard_archive.archive_weekly_leaderboard(engine).as_dict())

    weeks = body.weeks or (cfg.archive_retention_weeks if cfg else ARCHIVE_RETENTION_WEEKS)
    deleted = leaderboard_archive.cleanup_weekly_archive(engine, weeks)
    return ok({"deleted": deleted, "weeks_kept": weeks})


# ---------------------------------------------------------------------------
# Cache administration
# ---------------------------------------------------------------------------
@router.post("/update")
def update_leaderboards(
    body: LeaderboardUpdate,
    admin: Actor = Depends(get_current_admin),
    engine: Engine = Depends(get_engine),
):
    """Invalidate and rebuild cached boards."""
    return ok(leaderboard_service.refresh_leaderboard(engine, body.type, body.domain))


@router.get("/update")
def cache_status(admin: Actor = Depends(get_current_admin)):
    return ok(leaderboard_service.cache_stats())
