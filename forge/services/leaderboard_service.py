"""
forge.services.leaderboard_service — Rankings & Leaderboard Cache
==================================================================

Two boards:

* ``all-time`` — active users by total XP desc, level desc, username.
* ``weekly``   — active users by XP earned in the rolling last seven days
  (sum of ``xp_earned`` activities) desc, total XP desc, username.

Both accept an optional domain filter.  A full ranking is computed once
per (board, domain) and cached with a TTL; pages, user ranks and the
widget are sliced from it.  Any XP change invalidates every cached board
through :func:`update_leaderboards_for_user`.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy import Engine, func, select
from sqlalchemy.orm import Session

from forge.config import LeaderboardCacheConfig
from forge.constants import (
    DOMAINS,
    LEADERBOARD_DEFAULT_LIMIT,
    LEADERBOARD_MAX_LIMIT,
    POSITION_MAX_CONTEXT,
)
from forge.database.models import Activity, ActivityType, Title, User, UserTitle
from forge.engine.cache import LeaderboardCache
from forge.engine.periods import utcnow
from forge.exceptions import InvalidInput, UserNotFound

logger = logging.getLogger(__name__)

ALL_TIME = "all-time"
WEEKLY = "weekly"
BOARD_TYPES: tuple[str, ...] = (ALL_TIME, WEEKLY)

# Process-wide cache shared by every request.
leaderboard_cache = LeaderboardCache()
_ttls = LeaderboardCacheConfig()


def configure_cache(cfg: LeaderboardCacheConfig) -> None:
    """Apply TTLs from ``config.yaml``."""
    global _ttls
    _ttls = cfg
    logger.info(
        "Leaderboard cache TTLs: all-time=%ds weekly=%ds widget=%ds",
        cfg.all_time_ttl, cfg.weekly_ttl, cfg.widget_ttl,
    )


def _ttl(board_type: str) -> int:
    return _ttls.weekly_ttl if board_type == WEEKLY else _ttls.all_time_ttl


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------
def _validate(board_type: str, domain: str | None) -> None:
    if board_type not in BOARD_TYPES:
        raise InvalidInput(f"Invalid leaderboard type: {board_type!r}")
    if domain is not None and domain not in DOMAINS:
        raise InvalidInput(f"Invalid domain: {domain!r}")


def _validate_page(limit: int, offset: int) -> None:
    if not 1 <= limit <= LEADERBOARD_MAX_LIMIT:
        raise InvalidInput(f"limit must be between 1 and {LEADERBOARD_MAX_LIMIT}")
    if offset < 0:
        raise InvalidInput("offset must be zero or positive")


# ---------------------------------------------------------------------------
# Ranking queries
# ---------------------------------------------------------------------------
def _query_ranking(
    session: Session,
    board_type: str,
    domain: str | None,
    now: datetime,
) -> list[dict]:
    weekly = (
        select(
            Activity.user_id.label("user_id"),
            func.sum(Activity.xp_delta).label("weekly_xp"),
        )
        .where(
            Activity.activity_type == ActivityType.XP_EARNED.value,
            Activity.created_at >= now - timedelta(days=7),
        )
        .group_by(Activity.user_id)
        .subquery()
    )
    weekly_xp = func.coalesce(weekly.c.weekly_xp, 0)

    query = (
        select(User, weekly_xp.label("weekly_xp"))
        .outerjoin(weekly, weekly.c.user_id == User.id)
        .where(User.is_active.is_(True))
    )
    if domain is not None:
        query = query.where(User.domain == domain)

    if board_type == WEEKLY:
        query = query.order_by(weekly_xp.desc(), User.xp.desc(), User.username)
    else:
        query = query.order_by(User.xp.desc(), User.level.desc(), User.username)

    rows = session.execute(query).all()

    titles = dict(session.execute(
        select(UserTitle.user_id, Title.name)
        .join(Title, Title.id == UserTitle.title_id)
        .where(UserTitle.is_active.is_(True))
    ).all())

    return [
        {
            "rank": position,
            "user_id": user.id,
            "username": user.username,
            "display_name": user.display_name,
            "avatar_url": user.avatar_url,
            "domain": user.domain,
            "xp": user.xp,
            "level": user.level,
            "weekly_xp": int(wxp or 0),
            "title": titles.get(user.id),
        }
        for position, (user, wxp) in enumerate(rows, start=1)
    ]


def get_ranking(
    engine: Engine,
    board_type: str = ALL_TIME,
    domain: str | None = None,
    *,
    now: datetime | None = None,
) -> list[dict]:
    """Full ordered ranking for a board, served from the cache when warm."""
    _validate(board_type, domain)
    key = f"ranking:{board_type}:{domain or 'all'}"

    def _load() -> list[dict]:
        with Session(engine) as session:
            return _query_ranking(session, board_type, domain, now or utcnow())

    return leaderboard_cache.get_or_load(
        key,
        _load,
        ttl=_ttl(board_type),
        tags={"leaderboard", f"type:{board_type}", f"domain:{domain or 'all'}"},
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def get_leaderboard(
    engine: Engine,
    board_type: str = ALL_TIME,
    domain: str | None = None,
    *,
    limit: int = LEADERBOARD_DEFAULT_LIMIT,
    offset: int = 0,
    user_id: str | None = None,
    now: datetime | None = None,
) -> dict:
    """One page of a board.

    When *user_id* is given and that user is not on the page, the
    response also carries ``user_rank`` and ``user_entry``.
    """
    _validate_page(limit, offset)
    ranking = get_ranking(engine, board_type, domain, now=now)
    page = ranking[offset:offset + limit]
    total = len(ranking)

    result = {
        "type": board_type,
        "domain": domain,
        "entries": page,
        "pagination": {
            "limit": limit,
            "offset": offset,
            "total": total,
            "has_next": offset + limit < total,
            "has_prev": offset > 0,
        },
    }

    if user_id is not None and not any(e["user_id"] == user_id for e in page):
        entry = next((e for e in ranking if e["user_id"] == user_id), None)
        if entry is not None:
            result["user_rank"] = entry["rank"]
            result["user_entry"] = entry
    return result


def get_user_rank(
    engine: Engine,
    user_id: str,
    board_type: str = ALL_TIME,
    domain: str | None = None,
    *,
    now: datetime | None = None,
) -> dict | None:
    """Rank, total and percentile for *user_id*, or None if unranked."""
    _validate(board_type, domain)
    key = f"user-rank:{user_id}:{board_type}:{domain or 'all'}"

    def _load() -> dict | None:
        ranking = get_ranking(engine, board_type, domain, now=now)
        entry = next((e for e in ranking if e["user_id"] == user_id), None)
        if entry is None:
            return None
        total = len(ranking)
        return {
            "rank": entry["rank"],
            "total": total,
            "percentile": round((total - entry["rank"]) / total * 100, 1) if total else 0.0,
            "entry": entry,
        }

    return leaderboard_cache.get_or_load(
        key, _load, ttl=_ttl(board_type),
        tags={"leaderboard", f"user:{user_id}", f"type:{board_type}"},
    )


def get_user_position(
    engine: Engine,
    user_id: str,
    board_type: str = ALL_TIME,
    domain: str | None = None,
    *,
    context: int = 5,
    now: datetime | None = None,
) -> dict:
    """The user's entry, *context* neighbours either side, and the top three.

    Raises
    ------
    InvalidInput
        If *context* is outside 0..20.
    UserNotFound
        If the user isn't on the board.
    """
    if not 0 <= context <= POSITION_MAX_CONTEXT:
        raise InvalidInput(f"context must be between 0 and {POSITION_MAX_CONTEXT}")
    ranking = get_ranking(engine, board_type, domain, now=now)

    index = next((i for i, e in enumerate(ranking) if e["user_id"] == user_id), None)
    if index is None:
        raise UserNotFound(user_id)

    start = max(index - context, 0)
    return {
        "type": board_type,
        "domain": domain,
        "user_entry": ranking[index],
        "rank": index + 1,
        "total": len(ranking),
        "entries": ranking[start:index + context + 1],
        "top_three": ranking[:3],
    }


def get_top_performers(
    engine: Engine,
    limit: int = 10,
    board_type: str = ALL_TIME,
    domain: str | None = None,
    *,
    now: datetime | None = None,
) -> list[dict]:
    _validate_page(limit, 0)
    return get_ranking(engine, board_type, domain, now=now)[:limit]


def get_weekly_top_performers(
    engine: Engine,
    limit: int = 10,
    *,
    now: datetime | None = None,
) -> list[dict]:
    """Top of the weekly board, excluding users with no XP this week."""
    return [
        e for e in get_top_performers(engine, limit, WEEKLY, now=now)
        if e["weekly_xp"] > 0
    ]


def get_domain_top_performers(
    engine: Engine,
    limit: int = 5,
    *,
    now: datetime | None = None,
) -> dict[str, list[dict]]:
    return {
        domain: get_top_performers(engine, limit, ALL_TIME, domain, now=now)
        for domain in DOMAINS
    }


def get_widget(
    engine: Engine,
    user_id: str | None = None,
    *,
    limit: int = 5,
    now: datetime | None = None,
) -> dict:
    """Compact all-time + weekly summary for the dashboard sidebar."""
    _validate_page(limit, 0)
    key = f"widget:{user_id or 'anon'}:{limit}"

    def _load() -> dict:
        data = {
            "all_time": get_top_performers(engine, limit, ALL_TIME, now=now),
            "weekly": get_weekly_top_performers(engine, limit, now=now),
            "user": None,
        }
        if user_id is not None:
            data["user"] = {
                "all_time": get_user_rank(engine, user_id, ALL_TIME, now=now),
                "weekly": get_user_rank(engine, user_id, WEEKLY, now=now),
            }
        return data

    return leaderboard_cache.get_or_load(
        key, _load, ttl=_ttls.widget_ttl, tags={"leaderboard", "widget"},
    )


# ---------------------------------------------------------------------------
# Cache maintenance
# ---------------------------------------------------------------------------
def update_leaderboards_for_user(user_id: str, old_xp: int, new_xp: int) -> int:
    """Invalidate cached boards after *user_id*'s XP changed.

    One user's XP moves everyone's rank, so every board, widget and
    user-rank entry goes.  Returns the number of cache entries dropped.
    """
    dropped = leaderboard_cache.invalidate_tags({"leaderboard", f"user:{user_id}"})
    logger.debug(
        "Leaderboards invalidated for user %s (%d → %d XP, %d entries)",
        user_id, old_xp, new_xp, dropped,
    )
    return dropped


def invalidate_cache(board_type: str | None = None, domain: str | None = None) -> int:
    if board_type is not None and domain is not None:
        dropped = leaderboard_cache.invalidate_prefix(f"ranking:{board_type}:{domain}")
    elif board_type is not None:
        dropped = leaderboard_cache.invalidate_tags({f"type:{board_type}"})
    elif domain is not None:
        dropped = leaderboard_cache.invalidate_tags({f"domain:{domain}"})
    else:
        dropped = leaderboard_cache.invalidate_tags({"leaderboard"})
    # Widgets are built from several boards.
    dropped += leaderboard_cache.invalidate_tags({"widget"})
    return dropped


def refresh_leaderboard(
    engine: Engine,
    board_type: str | None = None,
    domain: str | None = None,
    *,
    now: datetime | None = None,
) -> dict:
    """Drop and rebuild the cached ranking(s) for *board_type* / *domain*."""
    if board_type is not None:
        _validate(board_type, domain)
    elif domain is not None:
        _validate(ALL_TIME, domain)

    dropped = invalidate_cache(board_type, domain)
    types = [board_type] if board_type else list(BOARD_TYPES)
    rebuilt = {t: len(get_ranking(engine, t, domain, now=now)) for t in types}
    logger.info("Leaderboards refreshed: %s (domain=%s)", rebuilt, domain)
    return {"invalidated": dropped, "rebuilt": rebuilt, "domain": domain}


def warmup_cache(engine: Engine, *, now: datetime | None = None) -> int:
    """Pre-load every board for every domain.  Returns boards loaded."""
    loaded = 0
    for board_type in BOARD_TYPES:
        for domain in (None, *DOMAINS):
            get_ranking(engine, board_type, domain, now=now)
            loaded += 1
    logger.info("Leaderboard cache warmed (%d boards)", loaded)
    return loaded


def cleanup_cache() -> int:
    return leaderboard_cache.cleanup_expired()


def cache_stats() -> dict:
    return leaderboard_cache.stats()
