"""
forge.services.notification_service — In-App Notifications
===========================================================
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import Engine, func, select, update
from sqlalchemy.orm import Session

from forge.database.models import Notification
from forge.engine.periods import utcnow

logger = logging.getLogger(__name__)


def create_notification(
    session: Session,
    user_id: str,
    type: str,
    title: str,
    message: str,
    data: dict | None = None,
    *,
    now: datetime | None = None,
) -> Notification:
    """Queue a notification inside the caller's transaction."""
    note = Notification(
        user_id=user_id,
        type=type,
        title=title,
        message=message,
        data=data,
        created_at=now or utcnow(),
    )
    session.add(note)
    return note


def _notification_dict(n: Notification) -> dict:
    return {
        "id": n.id,
        "type": n.type,
        "title": n.title,
        "message": n.message,
        "data": n.data,
        "is_read": n.is_read,
        "created_at": n.created_at.isoformat() if n.created_at else None,
    }


def list_notifications(
    engine: Engine,
    user_id: str,
    *,
    unread_only: bool = False,
    limit: int = 50,
) -> dict:
    with Session(engine) as session:
        query = select(Notification).where(Notification.user_id == user_id)
        if unread_only:
            query = query.where(Notification.is_read.is_(False))
        rows = session.scalars(
            query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit)
        ).all()
        unread = session.scalar(
            select(func.count()).select_from(Notification).where(
                Notification.user_id == user_id, Notification.is_read.is_(False),
            )
        ) or 0
        return {
            "notifications": [_notification_dict(n) for n in rows],
            "unread_count": unread,
        }


def mark_all_read(engine: Engine, user_id: str) -> int:
    """Mark every unread notification as read.  Returns the count updated."""
    with Session(engine) as session:
        result = session.execute(
            update(Notification)
            .where(Notification.user_id == user_id, Notification.is_read.is_(False))
            .values(is_read=True)
        )
        session.commit()
        return result.rowcount or 0
