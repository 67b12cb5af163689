"""
forge.services.title_service — Title Listing & Activation
==========================================================

A user can hold many titles but display at most one.  Activation clears
every other active title in the same transaction.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import Engine, select, update
from sqlalchemy.orm import Session

from forge.database.models import Activity, ActivityType, Title, UserTitle
from forge.engine.periods import utcnow
from forge.exceptions import TitleNotActive, TitleNotEarned

logger = logging.getLogger(__name__)


def list_titles(
    engine: Engine,
    user_id: str,
    *,
    earned: bool | None = None,
) -> list[dict]:
    with Session(engine) as session:
        titles = session.scalars(
            select(Title).where(Title.is_active.is_(True)).order_by(Title.name)
        ).all()
        held = {
            ut.title_id: ut
            for ut in session.scalars(select(UserTitle).where(UserTitle.user_id == user_id))
        }

        result = []
        for t in titles:
            ut = held.get(t.id)
            if earned is not None and (ut is not None) != earned:
                continue
            result.append({
                "id": t.id,
                "name": t.name,
                "description": t.description,
                "domain": t.domain,
                "earned": ut is not None,
                "earned_at": ut.earned_at.isoformat() if ut else None,
                "is_active": bool(ut and ut.is_active),
            })
        return result


def get_active_title(engine: Engine, user_id: str) -> dict | None:
    with Session(engine) as session:
        row = session.execute(
            select(Title)
            .join(UserTitle, UserTitle.title_id == Title.id)
            .where(UserTitle.user_id == user_id, UserTitle.is_active.is_(True))
        ).scalar_one_or_none()
        if row is None:
            return None
        return {"id": row.id, "name": row.name}


def activate_title(
    engine: Engine,
    user_id: str,
    title_id: str,
    *,
    now: datetime | None = None,
) -> dict:
    """Make *title_id* the user's displayed title.

    Raises
    ------
    TitleNotEarned
        If the user doesn't hold the title.
    """
    now = now or utcnow()
    with Session(engine) as session:
        held = session.scalar(
            select(UserTitle)
            .where(UserTitle.user_id == user_id, UserTitle.title_id == title_id)
            .with_for_update()
        )
        if held is None:
            raise TitleNotEarned(title_id)
        title = session.get(Title, title_id)
        name = title.name

        session.execute(
            update(UserTitle)
            .where(UserTitle.user_id == user_id, UserTitle.title_id != title_id)
            .values(is_active=False)
            .execution_options(synchronize_session=False)
        )
        held.is_active = True

        session.add(Activity(
            user_id=user_id,
            activity_type=ActivityType.TITLE_ACTIVATED.value,
            description=f"Activated the title {name}",
            data={"title_id": title_id, "title_name": name},
            created_at=now,
        ))
        session.commit()

    logger.info("User %s activated title %s", user_id, title_id)
    return {"title_id": title_id, "name": name, "is_active": True}


def deactivate_title(
    engine: Engine,
    user_id: str,
    title_id: str,
    *,
    now: datetime | None = None,
) -> dict:
    """Stop displaying *title_id*.

    Raises
    ------
    TitleNotActive
        If the title isn't the user's active one (or isn't held at all).
    """
    now = now or utcnow()
    with Session(engine) as session:
        held = session.scalar(
            select(UserTitle).where(
                UserTitle.user_id == user_id,
                UserTitle.title_id == title_id,
                UserTitle.is_active.is_(True),
            )
        )
        if held is None:
            raise TitleNotActive(title_id)
        title = session.get(Title, title_id)
        name = title.name
        held.is_active = False

        session.add(Activity(
            user_id=user_id,
            activity_type=ActivityType.TITLE_DEACTIVATED.value,
            description=f"Deactivated the title {name}",
            data={"title_id": title_id, "title_name": name},
            created_at=now,
        ))
        session.commit()

    return {"title_id": title_id, "name": name, "is_active": False}
