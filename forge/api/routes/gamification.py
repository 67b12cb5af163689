"""
forge.api.routes.gamification — Quests, badges, titles & XP
============================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy import Engine
from sqlalchemy.orm import Session

from forge.api.deps import get_current_user, get_engine, get_optional_user
from forge.api.errors import ok
from forge.database.models import User
from forge.engine.xp import get_xp_calculation
from forge.exceptions import UserNotFound
from forge.services import badge_service, quest_service, title_service, xp_service
from forge.services.event_service import Actor

router = APIRouter(prefix="/gamification", tags=["gamification"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class EarnBadge(BaseModel):
    user_id: str | None = None
    auto_award: bool = False


# ---------------------------------------------------------------------------
# Quests
# ---------------------------------------------------------------------------
@router.get("/quests")
def list_quests(
    type: str | None = Query(None, pattern="^(daily|weekly)$"),
    domain: str | None = Query(None),
    user: Actor | None = Depends(get_optional_user),
    engine: Engine = Depends(get_engine),
):
    quests = quest_service.list_quests(
        engine, user.id if user else None, quest_type=type, domain=domain,
    )
    return ok({"quests": quests})


@router.post("/quests/{quest_id}/complete")
def complete_quest(
    quest_id: int,
    user: Actor = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    """Complete a quest for the caller and award its XP."""
    return ok(quest_service.complete_quest(engine, user.id, quest_id))


@router.get("/progress")
def quest_progress(
    type: str | None = Query(None, pattern="^(daily|weekly)$"),
    completed: bool | None = Query(None),
    user: Actor = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    progress = quest_service.get_quest_progress(
        engine, user.id, quest_type=type, completed=completed,
    )
    return ok({"progress": progress})


# ---------------------------------------------------------------------------
# Badges
# ---------------------------------------------------------------------------
@router.get("/badges")
def list_badges(
    domain: str | None = Query(None),
    earned: bool | None = Query(None),
    user: Actor | None = Depends(get_optional_user),
    engine: Engine = Depends(get_engine),
):
    badges = badge_service.list_badges(
        engine, user.id if user else None, domain=domain, earned=earned,
    )
    return ok({"badges": badges})


@router.post("/badges/{badge_id}/earn")
def earn_badge(
    badge_id: str,
    body: EarnBadge | None = None,
    user: Actor = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    body = body or EarnBadge()
    result = badge_service.earn_badge(
        engine,
        badge_id,
        actor_id=user.id,
        is_admin=user.is_admin,
        target_user_id=body.user_id,
        auto_award=body.auto_award,
    )
    return ok(result)


# ---------------------------------------------------------------------------
# Titles
# ---------------------------------------------------------------------------
@router.get("/titles")
def list_titles(
    earned: bool | None = Query(None),
    user: Actor = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    return ok({"titles": title_service.list_titles(engine, user.id, earned=earned)})


@router.post("/titles/{title_id}/activate")
def activate_title(
    title_id: str,
    user: Actor = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    return ok(title_service.activate_title(engine, user.id, title_id))


@router.delete("/titles/{title_id}/activate")
def deactivate_title(
    title_id: str,
    user: Actor = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    return ok(title_service.deactivate_title(engine, user.id, title_id))


# ---------------------------------------------------------------------------
# XP
# ---------------------------------------------------------------------------
@router.get("/xp")
def xp_summary(
    days: int = Query(30, ge=1, le=365),
    user: Actor = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    """Level breakdown, weekly XP and XP-by-source for the caller."""
    with Session(engine) as session:
        row = session.get(User, user.id)
        if row is None or not row.is_active:
            raise UserNotFound(user.id)
        total_xp = row.xp

    return ok({
        **get_xp_calculation(total_xp).as_dict(),
        "weekly_xp": xp_service.get_weekly_xp(engine, user.id),
        "breakdown": xp_service.get_user_xp_breakdown(engine, user.id, days),
    })
