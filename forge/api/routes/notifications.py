"""
forge.api.routes.notifications — In-app notifications
======================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy import Engine

from forge.api.deps import get_current_user, get_engine
from forge.api.errors import ok
from forge.services import notification_service
from forge.services.event_service import Actor

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("")
def list_notifications(
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    user: Actor = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    return ok(notification_service.list_notifications(
        engine, user.id, unread_only=unread_only, limit=limit,
    ))


@router.post("/mark-all-read")
def mark_all_read(
    user: Actor = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    return ok({"updated": notification_service.mark_all_read(engine, user.id)})
