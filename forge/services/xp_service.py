"""
forge.services.xp_service — Transactional XP Award
===================================================

Every XP grant in the platform (quests, badges, events, modules, manual
awards) goes through :func:`award_xp_in_session`, inside the caller's
transaction:

  1. Lock the user row
  2. Add XP, recompute level
  3. Write an ``xp_earned`` activity (source, amount, old/new XP and level)
  4. On level-up: write a ``level_up`` activity, notify, check level badges
  5. Caller commits
  6. Leaderboards for the user are refreshed after commit

A failed leaderboard refresh is logged and never undoes a committed award.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy import Engine, func, select, update
from sqlalchemy.orm import Session

from forge.constants import XP_LIMITS, calculate_level
from forge.database.models import (
    Activity,
    ActivityType,
    Quest,
    TriggerEvent,
    User,
    UserQuestProgress,
)
from forge.engine.periods import ensure_utc, period_bounds, utcnow
from forge.engine.xp import validate_xp_amount, xp_limits
from forge.exceptions import InvalidXPAmount, UserNotFound
from forge.services.notification_service import create_notification

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class XPAward:
    """Outcome of a single XP grant."""

    user_id: str
    source: str
    amount: int
    old_xp: int
    new_xp: int
    old_level: int
    new_level: int
    badges_earned: list[str] = field(default_factory=list)

    @property
    def leveled_up(self) -> bool:
        return self.new_level > self.old_level

    def as_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "source": self.source,
            "amount": self.amount,
            "old_xp": self.old_xp,
            "new_xp": self.new_xp,
            "old_level": self.old_level,
            "new_level": self.new_level,
            "leveled_up": self.leveled_up,
            "badges_earned": list(self.badges_earned),
        }


# ---------------------------------------------------------------------------
# Core award path
# ---------------------------------------------------------------------------
def lock_user(session: Session, user_id: str) -> User:
    """SELECT … FOR UPDATE the active user row.

    Raises
    ------
    UserNotFound
        If the user doesn't exist or is inactive.
    """
    user = session.scalar(
        select(User)
        .where(User.id == user_id, User.is_active.is_(True))
        .with_for_update()
    )
    if user is None:
        raise UserNotFound(user_id)
    return user


def award_xp_in_session(
    session: Session,
    user: User,
    amount: int,
    source: str,
    *,
    now: datetime | None = None,
    description: str | None = None,
    data: dict | None = None,
    check_achievements: bool = True,
) -> XPAward:
    """Add *amount* XP to a locked *user* within the caller's transaction.

    The caller owns the commit.  When the level rises, ``level_up``
    badges are checked in the same transaction; their bonus XP comes back
    through this function, so a cascade is bounded by the badge catalogue.
    """
    if amount <= 0:
        raise InvalidXPAmount(source, amount)
    if source in XP_LIMITS and not validate_xp_amount(source, amount):
        low, high = xp_limits(source)
        logger.warning(
            "XP award of %d for %s is outside the %d-%d range (user %s)",
            amount, source, low, high, user.id,
        )
    now = now or utcnow()

    old_xp, old_level = user.xp, user.level
    user.xp = old_xp + amount
    user.level = calculate_level(user.xp)

    award = XPAward(
        user_id=user.id,
        source=source,
        amount=amount,
        old_xp=old_xp,
        new_xp=user.xp,
        old_level=old_level,
        new_level=user.level,
    )

    session.add(Activity(
        user_id=user.id,
        activity_type=ActivityType.XP_EARNED.value,
        description=description or f"Earned {amount} XP from {source}",
        xp_delta=amount,
        data={
            "source": source,
            "amount": amount,
            "old_xp": old_xp,
            "new_xp": user.xp,
            "old_level": old_level,
            "new_level": user.level,
            **(data or {}),
        },
        created_at=now,
    ))

    if award.leveled_up:
        session.add(Activity(
            user_id=user.id,
            activity_type=ActivityType.LEVEL_UP.value,
            description=f"Reached level {user.level}",
            xp_delta=0,
            data={"old_level": old_level, "new_level": user.level},
            created_at=now,
        ))
        create_notification(
            session,
            user.id,
            "level_up",
            "Level up!",
            f"You reached level {user.level}.",
            {"old_level": old_level, "new_level": user.level},
            now=now,
        )
        logger.info("User %s leveled up %d → %d", user.id, old_level, user.level)

        if check_achievements:
            from forge.services.achievement_service import check_and_award_achievements

            award.badges_earned.extend(
                check_and_award_achievements(session, user, [TriggerEvent.LEVEL_UP], now=now)
            )

    session.flush()
    return award


def refresh_leaderboards(user_id: str, old_xp: int, new_xp: int) -> None:
    """Post-commit leaderboard refresh.  Failures are logged, never raised."""
    from forge.services import leaderboard_service

    try:
        leaderboard_service.update_leaderboards_for_user(user_id, old_xp, new_xp)
    except Exception:
        logger.exception("Leaderboard refresh failed for user %s", user_id)


def award_xp(
    engine: Engine,
    user_id: str,
    amount: int,
    source: str,
    *,
    now: datetime | None = None,
    description: str | None = None,
    data: dict | None = None,
) -> XPAward:
    """Award XP in a transaction of its own, then refresh leaderboards.

    Raises
    ------
    InvalidXPAmount
        If *amount* is not positive.
    UserNotFound
        If the user doesn't exist or is inactive.
    """
    if amount <= 0:
        raise InvalidXPAmount(source, amount)

    with Session(engine, expire_on_commit=False) as session:
        user = lock_user(session, user_id)
        award = award_xp_in_session(
            session, user, amount, source,
            now=now, description=description, data=data,
        )
        session.commit()

    refresh_leaderboards(award.user_id, award.old_xp, award.new_xp)
    return award


# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------
def _xp_rows_since(session: Session, user_id: str, since: datetime):
    return session.scalars(
        select(Activity).where(
            Activity.user_id == user_id,
            Activity.activity_type == ActivityType.XP_EARNED.value,
            Activity.created_at >= since,
        ).order_by(Activity.created_at)
    ).all()


def get_user_xp_breakdown(
    engine: Engine,
    user_id: str,
    days: int = 30,
    *,
    now: datetime | None = None,
) -> dict:
    """XP earned over the last *days*, grouped by source and by day."""
    now = now or utcnow()
    since = now - timedelta(days=days)

    by_source: dict[str, dict[str, int]] = defaultdict(lambda: {"xp": 0, "count": 0})
    by_day: dict[str, int] = defaultdict(int)
    total = 0

    with Session(engine) as session:
        for row in _xp_rows_since(session, user_id, since):
            source = (row.data or {}).get("source", "unknown")
            by_source[source]["xp"] += row.xp_delta
            by_source[source]["count"] += 1
            by_day[ensure_utc(row.created_at).date().isoformat()] += row.xp_delta
            total += row.xp_delta

    return {
        "days": days,
        "total_xp": total,
        "by_source": dict(by_source),
        "by_day": [{"date": d, "xp": xp} for d, xp in sorted(by_day.items())],
    }


def get_weekly_xp(engine: Engine, user_id: str, *, now: datetime | None = None) -> int:
    """XP earned in the rolling last seven days."""
    now = now or utcnow()
    with Session(engine) as session:
        total = session.scalar(
            select(func.coalesce(func.sum(Activity.xp_delta), 0)).where(
                Activity.user_id == user_id,
                Activity.activity_type == ActivityType.XP_EARNED.value,
                Activity.created_at >= now - timedelta(days=7),
            )
        )
    return int(total or 0)


# ---------------------------------------------------------------------------
# Cron: quest eligibility reset
# ---------------------------------------------------------------------------
def reset_quest_eligibility(
    engine: Engine,
    quest_type: str,
    *,
    now: datetime | None = None,
) -> int:
    """Clear the ``completed`` flag on *quest_type* progress from earlier periods.

    Returns the number of progress rows reset.
    """
    now = now or utcnow()
    start, _ = period_bounds(quest_type, now)

    with Session(engine) as session:
        result = session.execute(
            update(UserQuestProgress)
            .where(
                UserQuestProgress.completed.is_(True),
                UserQuestProgress.completed_at < start,
                UserQuestProgress.quest_id.in_(
                    select(Quest.id).where(Quest.quest_type == quest_type)
                ),
            )
            .values(completed=False, progress=0)
            .execution_options(synchronize_session=False)
        )
        session.commit()
        count = result.rowcount or 0

    logger.info("Reset %d %s quest progress rows", count, quest_type)
    return count
