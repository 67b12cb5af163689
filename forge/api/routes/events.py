"""
forge.api.routes.events — Event registration & attendance
==========================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy import Engine

from forge.api.deps import get_current_user, get_engine
from forge.api.errors import ok
from forge.services import event_service
from forge.services.event_service import Actor

router = APIRouter(prefix="/events", tags=["events"])


class AttendanceMark(BaseModel):
    user_ids: list[str] = Field(default_factory=list)


@router.post("/{event_id}/register")
def register(
    event_id: int,
    user: Actor = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    return ok(event_service.register_for_event(engine, event_id, user.id))


@router.delete("/{event_id}/register")
def cancel(
    event_id: int,
    user: Actor = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    return ok(event_service.cancel_registration(engine, event_id, user.id))


@router.post("/{event_id}/attendance")
def mark_attendance(
    event_id: int,
    body: AttendanceMark,
    user: Actor = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    """Mark registered users as attended and award the event's XP."""
    return ok(event_service.mark_attendance(engine, event_id, user, body.user_ids))


@router.get("/{event_id}/attendance")
def get_attendance(
    event_id: int,
    user: Actor = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    return ok(event_service.get_attendance(engine, event_id, user))
