"""
forge.services.module_service — Learning Module Progress
=========================================================

Progress is a 0-100 percentage.  Reaching 100 (or passing
``completed=True``) completes the module; the module's XP is awarded
exactly once, the first time it completes.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from forge.database.models import (
    Activity,
    ActivityType,
    LearningModule,
    TriggerEvent,
    UserModuleProgress,
)
from forge.engine.periods import utcnow
from forge.exceptions import InvalidProgress, ModuleNotFound, ModuleNotPublished
from forge.services.achievement_service import check_and_award_achievements
from forge.services.notification_service import create_notification
from forge.services.xp_service import award_xp_in_session, lock_user, refresh_leaderboards

logger = logging.getLogger(__name__)


def _progress_dict(module: LearningModule, p: UserModuleProgress | None) -> dict:
    return {
        "module_id": module.id,
        "module_title": module.title,
        "xp_reward": module.xp_reward,
        "progress": p.progress if p else 0,
        "completed": bool(p and p.completed),
        "started_at": p.started_at.isoformat() if p and p.started_at else None,
        "completed_at": p.completed_at.isoformat() if p and p.completed_at else None,
    }


def get_module_progress(engine: Engine, user_id: str, module_id: int) -> dict:
    with Session(engine) as session:
        module = session.get(LearningModule, module_id)
        if module is None:
            raise ModuleNotFound(module_id)
        progress = session.scalar(
            select(UserModuleProgress).where(
                UserModuleProgress.user_id == user_id,
                UserModuleProgress.module_id == module_id,
            )
        )
        return _progress_dict(module, progress)


def update_module_progress(
    engine: Engine,
    user_id: str,
    module_id: int,
    *,
    progress: int | None = None,
    completed: bool | None = None,
    now: datetime | None = None,
) -> dict:
    """Record progress; award XP the first time the module completes.

    Raises
    ------
    InvalidProgress
        If *progress* is outside 0..100.
    ModuleNotFound / ModuleNotPublished
        Missing or unpublished module.
    """
    if progress is not None and not 0 <= progress <= 100:
        raise InvalidProgress(progress)
    now = now or utcnow()

    with Session(engine, expire_on_commit=False) as session:
        module = session.get(LearningModule, module_id)
        if module is None:
            raise ModuleNotFound(module_id)
        if not module.is_published:
            raise ModuleNotPublished(module_id)

        user = lock_user(session, user_id)
        row = session.scalar(
            select(UserModuleProgress)
            .where(
                UserModuleProgress.user_id == user.id,
                UserModuleProgress.module_id == module_id,
            )
            .with_for_update()
        )
        if row is None:
            row = UserModuleProgress(user_id=user.id, module_id=module_id, started_at=now)
            session.add(row)

        was_completed = bool(row.completed)
        if progress is not None:
            row.progress = max(row.progress or 0, progress) if was_completed else progress
        if completed or row.progress == 100:
            row.completed = True
            row.progress = 100

        old_xp = user.xp
        xp_awarded = 0
        badges: list[str] = []
        if row.completed and not was_completed:
            row.completed_at = now
            if module.xp_reward > 0:
                award = award_xp_in_session(
                    session, user, module.xp_reward, "module_completion",
                    now=now,
                    description=f"Completed module: {module.title}",
                    data={"module_id": module.id},
                )
                xp_awarded = module.xp_reward
                badges.extend(award.badges_earned)

            session.add(Activity(
                user_id=user.id,
                activity_type=ActivityType.MODULE_COMPLETED.value,
                description=f"Completed learning module: {module.title}",
                data={"module_id": module.id, "module_title": module.title, "xp_earned": xp_awarded},
                created_at=now,
            ))
            create_notification(
                session, user.id, "module_completed", "Module completed!",
                f"You completed {module.title} and earned {xp_awarded} XP.",
                {"module_id": module.id, "xp": xp_awarded},
                now=now,
            )
            badges.extend(
                check_and_award_achievements(session, user, [TriggerEvent.MODULE_COMPLETED], now=now)
            )
            logger.info("User %s completed module %d", user.id, module.id)

        new_xp = user.xp
        session.commit()
        result = _progress_dict(module, row)

    if new_xp != old_xp:
        refresh_leaderboards(user_id, old_xp, new_xp)

    return {**result, "xp_awarded": xp_awarded, "badges_earned": badges}
