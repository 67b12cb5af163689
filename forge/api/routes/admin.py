"""
forge.api.routes.admin — Admin endpoints (JWT-protected)
=========================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy import Engine

from forge.api.deps import get_current_admin, get_engine
from forge.api.errors import ok
from forge.services import admin_service
from forge.services.event_service import Actor

router = APIRouter(prefix="/admin", tags=["admin"])


class ManualAward(BaseModel):
    user_id: str
    amount: int
    reason: str | None = None


@router.post("/xp")
def award_xp(
    body: ManualAward,
    admin: Actor = Depends(get_current_admin),
    engine: Engine = Depends(get_engine),
):
    """Grant XP by hand; audited in admin_log."""
    award = admin_service.award_manual_xp(
        engine,
        actor_id=admin.id,
        user_id=body.user_id,
        amount=body.amount,
        reason=body.reason,
    )
    return ok(award.as_dict())


@router.get("/audit")
def audit_log(
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    admin: Actor = Depends(get_current_admin),
    engine: Engine = Depends(get_engine),
):
    return ok({"entries": admin_service.get_audit_log(engine, limit=limit, offset=offset)})
