"""
forge.services.leaderboard_archive — Weekly Leaderboard Archive
================================================================

At the end of each Sunday-start week the weekly board is frozen into
``weekly_leaderboard_archive``: one row per user who earned XP that week,
keyed by (week_ending, user_id).  Re-running the archive for the same
week overwrites that week's rows rather than duplicating them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

from sqlalchemy import Engine, delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from forge.database.models import Activity, ActivityType, User, WeeklyLeaderboardArchive
from forge.engine.periods import day_start, utcnow, week_bounds, week_ending
from forge.services import leaderboard_service

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class WeeklyResetResult:
    success: bool
    week_ending: date
    total_users: int = 0
    top_performers: list[dict] = field(default_factory=list)
    error: str | None = None

    def as_dict(self) -> dict:
        return {
            "success": self.success,
            "week_ending": self.week_ending.isoformat(),
            "total_users": self.total_users,
            "top_performers": self.top_performers,
            "error": self.error,
        }


def _archive_dict(row: WeeklyLeaderboardArchive) -> dict:
    return {
        "week_ending": row.week_ending.isoformat(),
        "user_id": row.user_id,
        "username": row.username,
        "domain": row.domain,
        "rank": row.rank,
        "weekly_xp": row.weekly_xp,
        "total_xp": row.total_xp,
        "level": row.level,
    }


# ---------------------------------------------------------------------------
# Archive
# ---------------------------------------------------------------------------
def _week_standings(session: Session, start: datetime, end: datetime):
    weekly_xp = func.sum(Activity.xp_delta).label("weekly_xp")
    return session.execute(
        select(User, weekly_xp)
        .join(Activity, Activity.user_id == User.id)
        .where(
            User.is_active.is_(True),
            Activity.activity_type == ActivityType.XP_EARNED.value,
            Activity.created_at >= start,
            Activity.created_at < end,
        )
        .group_by(User.id)
        .having(func.sum(Activity.xp_delta) > 0)
        .order_by(weekly_xp.desc(), User.xp.desc(), User.username)
    ).all()


def archive_weekly_leaderboard(engine: Engine, *, now: datetime | None = None) -> WeeklyResetResult:
    """Freeze the weekly standings for the week containing *now*.

    Database failures are logged and reported in the result rather than
    raised, so the cron job can report them.
    """
    now = now or utcnow()
    start, end = week_bounds(now)
    ending = week_ending(now)

    try:
        with Session(engine) as session:
            standings = _week_standings(session, start, end)
            existing = {
                row.user_id: row
                for row in session.scalars(
                    select(WeeklyLeaderboardArchive).where(
                        WeeklyLeaderboardArchive.week_ending == ending
                    )
                )
            }

            archived: list[dict] = []
            for rank, (user, wxp) in enumerate(standings, start=1):
                row = existing.get(user.id)
                if row is None:
                    row = WeeklyLeaderboardArchive(week_ending=ending, user_id=user.id)
                    session.add(row)
                row.username = user.username
                row.domain = user.domain
                row.rank = rank
                row.weekly_xp = int(wxp)
                row.total_xp = user.xp
                row.level = user.level
                row.archived_at = now
                archived.append(_archive_dict(row))
            session.commit()
    except SQLAlchemyError as exc:
        logger.exception("Weekly leaderboard archive failed for week ending %s", ending)
        return WeeklyResetResult(success=False, week_ending=ending, error=str(exc))

    leaderboard_service.invalidate_cache(leaderboard_service.WEEKLY)
    logger.info("Archived weekly leaderboard for %s (%d users)", ending, len(archived))
    return WeeklyResetResult(
        success=True,
        week_ending=ending,
        total_users=len(archived),
        top_performers=archived[:10],
    )


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------
def get_weekly_leaderboard_history(
    engine: Engine,
    week_ending: date | None = None,
    domain: str | None = None,
    limit: int = 50,
) -> list[dict]:
    with Session(engine) as session:
        query = select(WeeklyLeaderboardArchive)
        if week_ending is not None:
            query = query.where(WeeklyLeaderboardArchive.week_ending == week_ending)
        if domain is not None:
            query = query.where(WeeklyLeaderboardArchive.domain == domain)
        rows = session.scalars(
            query.order_by(
                WeeklyLeaderboardArchive.week_ending.desc(),
                WeeklyLeaderboardArchive.rank,
            ).limit(limit)
        ).all()
        return [_archive_dict(r) for r in rows]


def get_available_weeks(engine: Engine) -> list[date]:
    with Session(engine) as session:
        return list(session.scalars(
            select(WeeklyLeaderboardArchive.week_ending)
            .distinct()
            .order_by(WeeklyLeaderboardArchive.week_ending.desc())
        ))


def cleanup_weekly_archive(
    engine: Engine,
    weeks: int = 52,
    *,
    now: datetime | None = None,
) -> int:
    """Delete archived weeks older than *weeks*.  Returns rows deleted."""
    cutoff = day_start(now or utcnow()) - timedelta(weeks=weeks)
    with Session(engine) as session:
        result = session.execute(
            delete(WeeklyLeaderboardArchive).where(
                WeeklyLeaderboardArchive.week_ending < cutoff
            )
        )
        session.commit()
        deleted = result.rowcount or 0
    logger.info("Removed %d archived weekly rows older than %s", deleted, cutoff)
    return deleted


def get_user_weekly_history(engine: Engine, user_id: str, weeks: int = 12) -> list[dict]:
    """The user's last *weeks* archived weeks, oldest first, with field sizes."""
    with Session(engine) as session:
        field_size = (
            select(
                WeeklyLeaderboardArchive.week_ending.label("week_ending"),
                func.count().label("total_users"),
            )
            .group_by(WeeklyLeaderboardArchive.week_ending)
            .subquery()
        )
        rows = session.execute(
            select(WeeklyLeaderboardArchive, field_size.c.total_users)
            .join(field_size, field_size.c.week_ending == WeeklyLeaderboardArchive.week_ending)
            .where(WeeklyLeaderboardArchive.user_id == user_id)
            .order_by(WeeklyLeaderboardArchive.week_ending.desc())
            .limit(weeks)
        ).all()
        history = [
            {**_archive_dict(row), "total_users": total}
            for row, total in rows
        ]
    history.reverse()
    return history
