"""
forge.services.admin_service — Audit-Logged Admin Mutations
============================================================

Every admin write follows the pattern:
  1. Begin transaction
  2. Read "before" snapshot
  3. Apply change
  4. Write admin_log with before/after JSONB
  5. Commit
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from forge.database.models import AdminActionType, AdminLog
from forge.engine.xp import validate_xp_amount, xp_limits
from forge.exceptions import InvalidXPAmount
from forge.services.xp_service import XPAward, award_xp_in_session, lock_user, refresh_leaderboards

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Generic audit helpers
# ---------------------------------------------------------------------------

def row_to_dict(obj: Any) -> dict | None:
    """Convert a SQLAlchemy model instance to a JSON-serializable dict."""
    if obj is None:
        return None
    result = {}
    for col in obj.__table__.columns:
        val = getattr(obj, col.key, None)
        if isinstance(val, (datetime, date)):
            val = val.isoformat()
        result[col.name] = val
    return result


def log_admin_action(
    session: Session,
    *,
    actor_id: str,
    action_type: str,
    target_table: str,
    target_id: str | None,
    before: dict | None,
    after: dict | None,
    reason: str | None = None,
) -> None:
    """Insert a row into admin_log within the current transaction."""
    session.add(AdminLog(
        actor_id=actor_id,
        action_type=action_type,
        target_table=target_table,
        target_id=target_id,
        before_snapshot=before,
        after_snapshot=after,
        reason=reason,
    ))


# ---------------------------------------------------------------------------
# Manual XP award
# ---------------------------------------------------------------------------
def award_manual_xp(
    engine: Engine,
    *,
    actor_id: str,
    user_id: str,
    amount: int,
    reason: str | None = None,
    now: datetime | None = None,
) -> XPAward:
    """Grant XP by hand, within the ``manual_award`` limits, and audit it.

    Raises
    ------
    InvalidXPAmount
        If *amount* is outside the manual-award limits.
    UserNotFound
        If the target user doesn't exist or is inactive.
    """
    if not validate_xp_amount("manual_award", amount):
        low, high = xp_limits("manual_award")
        raise InvalidXPAmount("manual_award", amount, low=low, high=high)

    with Session(engine, expire_on_commit=False) as session:
        user = lock_user(session, user_id)
        before = row_to_dict(user)
        award = award_xp_in_session(
            session, user, amount, "manual_award",
            now=now,
            description=reason or f"Manual award of {amount} XP",
            data={"awarded_by": actor_id, "reason": reason},
        )
        log_admin_action(
            session,
            actor_id=actor_id,
            action_type=AdminActionType.MANUAL_AWARD.value,
            target_table="users",
            target_id=user.id,
            before=before,
            after=row_to_dict(user),
            reason=reason,
        )
        session.commit()

    logger.info("Admin %s awarded %d XP to %s", actor_id, amount, user_id)
    refresh_leaderboards(award.user_id, award.old_xp, award.new_xp)
    return award


def get_audit_log(engine: Engine, *, limit: int = 50, offset: int = 0) -> list[dict]:
    with Session(engine) as session:
        rows = session.scalars(
            select(AdminLog)
            .order_by(AdminLog.timestamp.desc(), AdminLog.id.desc())
            .offset(offset)
            .limit(limit)
        ).all()
        return [row_to_dict(r) for r in rows]
