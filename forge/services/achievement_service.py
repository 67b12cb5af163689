"""
forge.services.achievement_service — Badge & Title Auto-Awarding
=================================================================

Builds an :class:`AchievementContext` from the database, runs the pure
trigger handlers from :mod:`forge.engine.achievements`, and grants
whatever newly fired, all inside the caller's transaction.

Idempotent: a badge already held is skipped, and the ``user_badges``
primary key (user_id, badge_id) rejects a concurrent second grant.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime

from sqlalchemy import Engine, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from forge.database.models import (
    Activity,
    ActivityType,
    Badge,
    EventRegistration,
    QuestCompletion,
    QuestType,
    RegistrationStatus,
    Title,
    User,
    UserBadge,
    UserModuleProgress,
    UserTitle,
)
from forge.engine.achievements import AchievementContext, check_achievements
from forge.engine.periods import daily_streak, day_start, utcnow, week_start, weekly_streak
from forge.services.notification_service import create_notification

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Context
# ---------------------------------------------------------------------------
def _count(session: Session, query) -> int:
    return session.scalar(select(func.count()).select_from(query.subquery())) or 0


def get_earned_badge_ids(session: Session, user_id: str) -> set[str]:
    return set(session.scalars(
        select(UserBadge.badge_id).where(UserBadge.user_id == user_id)
    ))


def _completion_periods(session: Session, user_id: str, quest_type: str) -> set:
    return set(session.scalars(
        select(QuestCompletion.period_start).where(
            QuestCompletion.user_id == user_id,
            QuestCompletion.quest_type == quest_type,
        ).distinct()
    ))


def build_context(session: Session, user: User, *, now: datetime | None = None) -> AchievementContext:
    """Snapshot the counters every trigger handler may look at."""
    now = now or utcnow()
    quests_completed = _count(
        session, select(QuestCompletion.id).where(QuestCompletion.user_id == user.id)
    )
    modules_completed = _count(
        session,
        select(UserModuleProgress.id).where(
            UserModuleProgress.user_id == user.id,
            UserModuleProgress.completed.is_(True),
        ),
    )
    events_attended = _count(
        session,
        select(EventRegistration.id).where(
            EventRegistration.user_id == user.id,
            EventRegistration.status == RegistrationStatus.ATTENDED.value,
        ),
    )
    badges_earned = _count(
        session, select(UserBadge.badge_id).where(UserBadge.user_id == user.id)
    )

    domain_rows = session.execute(
        select(QuestCompletion.domain, func.count())
        .where(QuestCompletion.user_id == user.id, QuestCompletion.domain.is_not(None))
        .group_by(QuestCompletion.domain)
    ).all()

    return AchievementContext(
        user_xp=user.xp,
        user_level=user.level,
        counts={
            "quests_completed": quests_completed,
            "modules_completed": modules_completed,
            "events_attended": events_attended,
            "badges_earned": badges_earned,
        },
        daily_streak=daily_streak(
            _completion_periods(session, user.id, QuestType.DAILY), day_start(now)
        ),
        weekly_streak=weekly_streak(
            _completion_periods(session, user.id, QuestType.WEEKLY), week_start(now)
        ),
        domain_quests={domain: count for domain, count in domain_rows},
    )


# ---------------------------------------------------------------------------
# Granting
# ---------------------------------------------------------------------------
def grant_title(session: Session, user_id: str, title_id: str, *, now: datetime | None = None) -> bool:
    """Grant a title (inactive) if the user doesn't hold it yet.

    Returns True if a new title was granted.
    """
    if session.get(UserTitle, (user_id, title_id)) is not None:
        return False
    title = session.get(Title, title_id)
    if title is None:
        logger.warning("Badge references missing title %r", title_id)
        return False

    now = now or utcnow()
    try:
        with session.begin_nested():   # SAVEPOINT
            session.add(UserTitle(user_id=user_id, title_id=title_id, earned_at=now))
            session.flush()
    except IntegrityError:
        return False

    session.add(Activity(
        user_id=user_id,
        activity_type=ActivityType.TITLE_EARNED.value,
        description=f"Earned the title {title.name}",
        data={"title_id": title_id, "title_name": title.name},
        created_at=now,
    ))
    return True


def grant_badge(
    session: Session,
    user: User,
    badge: Badge,
    *,
    auto_awarded: bool = True,
    awarded_by: str | None = None,
    now: datetime | None = None,
) -> list[str]:
    """Grant *badge* to a locked *user* inside the caller's transaction.

    Writes the ``badge_earned`` activity and notification, grants the
    linked title, and awards the badge's XP bonus.  Returns the ids of
    every badge granted, including any that the bonus XP cascaded into;
    an empty list means the user already held *badge*.
    """
    if session.get(UserBadge, (user.id, badge.id)) is not None:
        return []

    now = now or utcnow()
    try:
        with session.begin_nested():   # SAVEPOINT
            session.add(UserBadge(
                user_id=user.id,
                badge_id=badge.id,
                earned_at=now,
                auto_awarded=auto_awarded,
                awarded_by=awarded_by,
            ))
            session.flush()
    except IntegrityError:
        # Granted by a concurrent transaction; the outer txn is still alive.
        return []

    session.add(Activity(
        user_id=user.id,
        activity_type=ActivityType.BADGE_EARNED.value,
        description=f"Earned the {badge.name} badge",
        data={
            "badge_id": badge.id,
            "badge_name": badge.name,
            "auto_awarded": auto_awarded,
            "awarded_by": awarded_by,
        },
        created_at=now,
    ))
    create_notification(
        session,
        user.id,
        "badge_earned",
        "Badge earned!",
        f"You earned the {badge.name} badge.",
        {"badge_id": badge.id},
        now=now,
    )
    logger.info("Badge %s granted to user %s", badge.id, user.id)

    if badge.title_id:
        grant_title(session, user.id, badge.title_id, now=now)

    granted = [badge.id]
    if badge.xp_bonus > 0:
        from forge.services.xp_service import award_xp_in_session

        bonus = award_xp_in_session(
            session, user, badge.xp_bonus, "achievement_bonus",
            now=now,
            description=f"Bonus for the {badge.name} badge",
            data={"badge_id": badge.id},
        )
        granted.extend(bonus.badges_earned)
    return granted


def check_and_award_achievements(
    session: Session,
    user: User,
    trigger_events: Iterable[str] | None = None,
    *,
    now: datetime | None = None,
) -> list[str]:
    """Evaluate active badges for *user* and grant the ones that fired.

    Parameters
    ----------
    trigger_events : Restrict evaluation to badges listening to these
        events.  ``None`` evaluates every active badge.

    Returns the ids of newly granted badges.
    """
    now = now or utcnow()
    session.flush()

    badges = session.scalars(select(Badge).where(Badge.is_active.is_(True))).all()
    earned = get_earned_badge_ids(session, user.id)
    ctx = build_context(session, user, now=now)

    granted: list[str] = []
    for badge in check_achievements(badges, ctx, earned, trigger_events):
        granted.extend(grant_badge(session, user, badge, auto_awarded=True, now=now))
    return granted


def initialize_default_achievements(engine: Engine) -> int:
    from forge.database.seed import seed_default_achievements

    return seed_default_achievements(engine)
