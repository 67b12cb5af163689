"""
forge.services.quest_service — Quest Listing & Completion
==========================================================

A user may complete at most one daily quest per UTC day and one weekly
quest per Sunday-start week.  The limit is checked up front for a clean
error, and enforced by the ``quest_completions`` unique key
(user_id, quest_type, period_start) so two racing requests cannot both
succeed.

Completion is one transaction: progress row, completion row, XP award,
``quest_completed`` activity and achievement checks commit together.
Leaderboards are refreshed after the commit.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import Engine, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from forge.database.models import (
    Activity,
    ActivityType,
    Quest,
    QuestCompletion,
    QuestType,
    TriggerEvent,
    UserQuestProgress,
)
from forge.engine.periods import ensure_utc, period_bounds, period_start, utcnow
from forge.exceptions import (
    DailyQuestLimitReached,
    InvalidInput,
    QuestAlreadyCompleted,
    QuestNotFound,
    WeeklyQuestLimitReached,
)
from forge.services.achievement_service import check_and_award_achievements
from forge.services.xp_service import award_xp_in_session, lock_user, refresh_leaderboards

logger = logging.getLogger(__name__)


def _limit_error(quest_type: str):
    if quest_type == QuestType.DAILY:
        return DailyQuestLimitReached()
    return WeeklyQuestLimitReached()


def quest_dict(q: Quest) -> dict:
    return {
        "id": q.id,
        "title": q.title,
        "description": q.description,
        "type": q.quest_type,
        "xp_reward": q.xp_reward,
        "domain": q.domain,
        "requirements": q.requirements,
        "is_active": q.is_active,
    }


def _progress_dict(p: UserQuestProgress | None) -> dict | None:
    if p is None:
        return None
    return {
        "progress": p.progress,
        "completed": p.completed,
        "completed_at": p.completed_at.isoformat() if p.completed_at else None,
    }


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------
def list_quests(
    engine: Engine,
    user_id: str | None = None,
    *,
    quest_type: str | None = None,
    domain: str | None = None,
    active: bool | None = True,
) -> list[dict]:
    """Quests with the caller's progress attached when *user_id* is given."""
    if quest_type is not None and quest_type not in (QuestType.DAILY, QuestType.WEEKLY):
        raise InvalidInput(f"Invalid quest type: {quest_type!r}")

    with Session(engine) as session:
        query = select(Quest)
        if quest_type is not None:
            query = query.where(Quest.quest_type == quest_type)
        if domain is not None:
            query = query.where(Quest.domain == domain)
        if active is not None:
            query = query.where(Quest.is_active.is_(active))
        quests = session.scalars(query.order_by(Quest.quest_type, Quest.id)).all()

        progress: dict[int, UserQuestProgress] = {}
        if user_id is not None:
            progress = {
                p.quest_id: p
                for p in session.scalars(
                    select(UserQuestProgress).where(UserQuestProgress.user_id == user_id)
                )
            }

        return [
            {**quest_dict(q), "user_progress": _progress_dict(progress.get(q.id))}
            for q in quests
        ]


def get_quest_progress(
    engine: Engine,
    user_id: str,
    *,
    quest_type: str | None = None,
    completed: bool | None = None,
) -> list[dict]:
    with Session(engine) as session:
        query = (
            select(UserQuestProgress, Quest)
            .join(Quest, Quest.id == UserQuestProgress.quest_id)
            .where(UserQuestProgress.user_id == user_id)
        )
        if quest_type is not None:
            query = query.where(Quest.quest_type == quest_type)
        if completed is not None:
            query = query.where(UserQuestProgress.completed.is_(completed))
        rows = session.execute(
            query.order_by(UserQuestProgress.completed_at.desc(), UserQuestProgress.id.desc())
        ).all()
        return [
            {"quest": quest_dict(q), **_progress_dict(p)}
            for p, q in rows
        ]


# ---------------------------------------------------------------------------
# Completion
# ---------------------------------------------------------------------------
def complete_quest(
    engine: Engine,
    user_id: str,
    quest_id: int,
    *,
    now: datetime | None = None,
) -> dict:
    """Complete *quest_id* for *user_id* and award its XP.

    Raises
    ------
    QuestNotFound
        If the quest doesn't exist or is inactive.
    QuestAlreadyCompleted
        If the user completed this quest in the current period.
    DailyQuestLimitReached / WeeklyQuestLimitReached
        If another quest of the same type was completed this period.
    UserNotFound
        If the user doesn't exist or is inactive.
    """
    now = now or utcnow()

    with Session(engine, expire_on_commit=False) as session:
        quest = session.scalar(
            select(Quest).where(Quest.id == quest_id, Quest.is_active.is_(True))
        )
        if quest is None:
            raise QuestNotFound(quest_id)

        user = lock_user(session, user_id)
        start, end = period_bounds(quest.quest_type, now)

        progress = session.scalar(
            select(UserQuestProgress).where(
                UserQuestProgress.user_id == user.id,
                UserQuestProgress.quest_id == quest.id,
            )
        )
        if (
            progress is not None
            and progress.completed
            and progress.completed_at is not None
            and ensure_utc(progress.completed_at) >= start
        ):
            raise QuestAlreadyCompleted(quest_id)

        period = period_start(quest.quest_type, now)
        already = session.scalar(
            select(QuestCompletion.id).where(
                QuestCompletion.user_id == user.id,
                QuestCompletion.quest_type == quest.quest_type,
                QuestCompletion.period_start == period,
            )
        )
        if already is not None:
            raise _limit_error(quest.quest_type)

        try:
            with session.begin_nested():   # SAVEPOINT
                session.add(QuestCompletion(
                    user_id=user.id,
                    quest_id=quest.id,
                    quest_type=quest.quest_type,
                    domain=quest.domain,
                    period_start=period,
                    xp_awarded=quest.xp_reward,
                    completed_at=now,
                ))
                session.flush()
        except IntegrityError:
            # A concurrent request completed a quest for this period first.
            raise _limit_error(quest.quest_type) from None

        if progress is None:
            progress = UserQuestProgress(user_id=user.id, quest_id=quest.id)
            session.add(progress)
        progress.progress = 100
        progress.completed = True
        progress.completed_at = now

        award = award_xp_in_session(
            session, user, quest.xp_reward, "quest_completion",
            now=now,
            description=f"Completed quest: {quest.title}",
            data={"quest_id": quest.id, "quest_type": quest.quest_type},
        )

        session.add(Activity(
            user_id=user.id,
            activity_type=ActivityType.QUEST_COMPLETED.value,
            description=f"Completed {quest.quest_type} quest: {quest.title}",
            xp_delta=0,
            data={
                "quest_id": quest.id,
                "quest_title": quest.title,
                "quest_type": quest.quest_type,
                "xp_earned": quest.xp_reward,
                "domain": quest.domain,
            },
            created_at=now,
        ))

        events = [TriggerEvent.QUEST_COMPLETED, TriggerEvent.STREAK]
        if quest.domain:
            events.append(TriggerEvent.DOMAIN_QUEST)
        badges = award.badges_earned + check_and_award_achievements(
            session, user, events, now=now,
        )

        new_xp, new_level = user.xp, user.level
        session.commit()

    logger.info(
        "User %s completed %s quest %d (+%d XP)",
        user_id, quest.quest_type, quest.id, quest.xp_reward,
    )
    refresh_leaderboards(user_id, award.old_xp, new_xp)

    return {
        "quest": quest_dict(quest),
        "xp_earned": quest.xp_reward,
        "new_xp": new_xp,
        "leveled_up": new_level > award.old_level,
        "new_level": new_level,
        "completed_at": now.isoformat(),
        "badges_earned": badges,
        "period_end": end.isoformat(),
    }
