"""
forge.api.routes.academy — Learning module progress
====================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import Engine

from forge.api.deps import get_current_user, get_engine
from forge.api.errors import ok
from forge.services import module_service
from forge.services.event_service import Actor

router = APIRouter(prefix="/academy", tags=["academy"])


class ProgressUpdate(BaseModel):
    progress: int | None = None
    completed: bool | None = None


@router.get("/modules/{module_id}/progress")
def get_progress(
    module_id: int,
    user: Actor = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    return ok(module_service.get_module_progress(engine, user.id, module_id))


@router.put("/modules/{module_id}/progress")
def update_progress(
    module_id: int,
    body: ProgressUpdate,
    user: Actor = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    return ok(module_service.update_module_progress(
        engine, user.id, module_id,
        progress=body.progress, completed=body.completed,
    ))
