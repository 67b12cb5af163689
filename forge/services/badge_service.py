"""
forge.services.badge_service — Badge Listing & Earning
=======================================================

Badges are granted automatically by :mod:`forge.services.achievement_service`
or explicitly through :func:`earn_badge`: by an admin for anyone, or by a
member claiming an auto-award badge for themselves.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from forge.database.models import AdminActionType, Badge, User, UserBadge
from forge.engine.achievements import TRIGGER_HANDLERS
from forge.engine.periods import utcnow
from forge.exceptions import (
    BadgeAlreadyEarned,
    BadgeNotFound,
    DomainMismatch,
    Forbidden,
    InsufficientXP,
    UserNotFound,
)
from forge.services.achievement_service import build_context, grant_badge
from forge.services.admin_service import log_admin_action
from forge.services.xp_service import refresh_leaderboards

logger = logging.getLogger(__name__)


def badge_dict(b: Badge) -> dict:
    return {
        "id": b.id,
        "name": b.name,
        "description": b.description,
        "icon": b.icon,
        "domain": b.domain,
        "xp_requirement": b.xp_requirement,
        "xp_bonus": b.xp_bonus,
        "trigger_event": b.trigger_event,
        "trigger_type": b.trigger_type,
        "title_id": b.title_id,
    }


def list_badges(
    engine: Engine,
    user_id: str | None = None,
    *,
    domain: str | None = None,
    earned: bool | None = None,
) -> list[dict]:
    """Active badges, each flagged with whether *user_id* holds it."""
    with Session(engine) as session:
        query = select(Badge).where(Badge.is_active.is_(True))
        if domain is not None:
            query = query.where((Badge.domain == domain) | Badge.domain.is_(None))
        badges = session.scalars(query.order_by(Badge.xp_requirement, Badge.id)).all()

        held: dict[str, UserBadge] = {}
        if user_id is not None:
            held = {
                ub.badge_id: ub
                for ub in session.scalars(select(UserBadge).where(UserBadge.user_id == user_id))
            }

        result = []
        for b in badges:
            ub = held.get(b.id)
            if earned is not None and (ub is not None) != earned:
                continue
            result.append({
                **badge_dict(b),
                "earned": ub is not None,
                "earned_at": ub.earned_at.isoformat() if ub else None,
            })
        return result


def earn_badge(
    engine: Engine,
    badge_id: str,
    *,
    actor_id: str,
    is_admin: bool,
    target_user_id: str | None = None,
    auto_award: bool = False,
    now: datetime | None = None,
) -> dict:
    """Grant *badge_id* to *target_user_id* (default: the actor).

    Raises
    ------
    Forbidden
        Non-admins may only claim auto-award badges that have a trigger
        condition (never ``manual`` ones), only for themselves,
        and only when the badge's trigger condition holds.
    BadgeNotFound / UserNotFound
        Missing or inactive badge / user.
    BadgeAlreadyEarned
        The user already holds the badge.
    InsufficientXP
        The user is below the badge's ``xp_requirement``.
    DomainMismatch
        The badge is scoped to another domain.
    """
    now = now or utcnow()
    if not is_admin and not auto_award:
        raise Forbidden("Only admins can award badges manually")
    user_id = target_user_id or actor_id
    if not is_admin and user_id != actor_id:
        raise Forbidden("You can only claim badges for yourself")

    with Session(engine, expire_on_commit=False) as session:
        badge = session.scalar(
            select(Badge).where(Badge.id == badge_id, Badge.is_active.is_(True))
        )
        if badge is None:
            raise BadgeNotFound(badge_id)

        user = session.scalar(
            select(User).where(User.id == user_id, User.is_active.is_(True)).with_for_update()
        )
        if user is None:
            raise UserNotFound(user_id)

        if session.get(UserBadge, (user.id, badge.id)) is not None:
            raise BadgeAlreadyEarned(badge_id)
        if user.xp < badge.xp_requirement:
            raise InsufficientXP(badge.xp_requirement, user.xp)
        if badge.domain and badge.domain != user.domain:
            raise DomainMismatch(badge.domain)

        if not is_admin:
            handler = TRIGGER_HANDLERS.get(badge.trigger_type)
            if handler is None:
                raise Forbidden("Manual badges can only be awarded by an admin")
            if not handler(
                badge.trigger_config or {}, build_context(session, user, now=now)
            ):
                raise Forbidden("Badge requirements have not been met")

        old_xp = user.xp
        granted = grant_badge(
            session, user, badge,
            auto_awarded=auto_award,
            awarded_by=None if auto_award else actor_id,
            now=now,
        )
        if not granted:
            raise BadgeAlreadyEarned(badge_id)

        if is_admin and not auto_award:
            log_admin_action(
                session,
                actor_id=actor_id,
                action_type=AdminActionType.BADGE_AWARD.value,
                target_table="user_badges",
                target_id=f"{user.id}:{badge.id}",
                before=None,
                after={"user_id": user.id, "badge_id": badge.id},
            )

        new_xp, new_level = user.xp, user.level
        session.commit()

    if new_xp != old_xp:
        refresh_leaderboards(user_id, old_xp, new_xp)

    return {
        "badge": badge_dict(badge),
        "user_id": user_id,
        "earned_at": now.isoformat(),
        "auto_awarded": auto_award,
        "xp_bonus": badge.xp_bonus,
        "new_xp": new_xp,
        "new_level": new_level,
        "badges_earned": granted,
    }
