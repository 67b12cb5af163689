"""
forge.services.event_service — Event Registration & Attendance
===============================================================

Members register for upcoming events; organizers, domain leads of the
event's domain, and admins mark attendance afterwards.  Marking a batch
of attendees is a single transaction: every attendee's status, XP award,
``event_attended`` activity, notification and badge check commit
together or not at all.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import Engine, func, select
from sqlalchemy.orm import Session

from forge.constants import ROLE_ADMIN, ROLE_DOMAIN_LEAD
from forge.database.models import (
    Activity,
    ActivityType,
    AdminActionType,
    Event,
    EventRegistration,
    RegistrationStatus,
    TriggerEvent,
    User,
)
from forge.engine.periods import ensure_utc, utcnow
from forge.exceptions import (
    AlreadyAttended,
    AlreadyRegistered,
    EventFull,
    EventNotFound,
    EventStarted,
    Forbidden,
    InvalidInput,
    NotRegistered,
    UsersNotRegistered,
)
from forge.services.achievement_service import check_and_award_achievements
from forge.services.admin_service import log_admin_action
from forge.services.notification_service import create_notification
from forge.services.xp_service import award_xp_in_session, lock_user, refresh_leaderboards

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Actor:
    """Who is asking: id, role and home domain from the bearer token."""

    id: str
    username: str | None = None
    role: str = "member"
    domain: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


def can_manage_event(event: Event, actor: Actor) -> bool:
    if actor.is_admin or event.organizer_id == actor.id:
        return True
    return actor.role == ROLE_DOMAIN_LEAD and event.domain is not None and event.domain == actor.domain


def _get_event(
    session: Session,
    event_id: int,
    *,
    active_only: bool = True,
    for_update: bool = False,
) -> Event:
    query = select(Event).where(Event.id == event_id)
    if active_only:
        query = query.where(Event.is_active.is_(True))
    if for_update:
        # Serializes capacity checks for the same event.
        query = query.with_for_update()
    event = session.scalar(query)
    if event is None:
        raise EventNotFound(event_id)
    return event


def _registration_dict(reg: EventRegistration) -> dict:
    return {
        "event_id": reg.event_id,
        "user_id": reg.user_id,
        "status": reg.status,
        "registered_at": reg.registered_at.isoformat() if reg.registered_at else None,
        "attended_at": reg.attended_at.isoformat() if reg.attended_at else None,
    }


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------
def register_for_event(
    engine: Engine,
    event_id: int,
    user_id: str,
    *,
    now: datetime | None = None,
) -> dict:
    """Register *user_id*; a previously cancelled registration is reactivated."""
    now = now or utcnow()
    with Session(engine) as session:
        event = _get_event(session, event_id, for_update=True)
        if ensure_utc(event.starts_at) <= now:
            raise EventStarted()

        reg = session.scalar(
            select(EventRegistration).where(
                EventRegistration.event_id == event_id,
                EventRegistration.user_id == user_id,
            )
        )
        if reg is not None and reg.status != RegistrationStatus.CANCELLED:
            raise AlreadyRegistered()

        if event.max_attendees is not None:
            taken = session.scalar(
                select(func.count()).select_from(EventRegistration).where(
                    EventRegistration.event_id == event_id,
                    EventRegistration.status != RegistrationStatus.CANCELLED.value,
                )
            ) or 0
            if taken >= event.max_attendees:
                raise EventFull()

        if reg is None:
            reg = EventRegistration(event_id=event_id, user_id=user_id)
            session.add(reg)
        reg.status = RegistrationStatus.REGISTERED.value
        reg.registered_at = now
        session.commit()
        session.refresh(reg)
        return _registration_dict(reg)


def cancel_registration(
    engine: Engine,
    event_id: int,
    user_id: str,
    *,
    now: datetime | None = None,
) -> dict:
    now = now or utcnow()
    with Session(engine) as session:
        event = _get_event(session, event_id)
        reg = session.scalar(
            select(EventRegistration).where(
                EventRegistration.event_id == event_id,
                EventRegistration.user_id == user_id,
                EventRegistration.status == RegistrationStatus.REGISTERED.value,
            )
        )
        if reg is None:
            raise NotRegistered()
        if ensure_utc(event.starts_at) <= now:
            raise EventStarted()

        reg.status = RegistrationStatus.CANCELLED.value
        session.commit()
        session.refresh(reg)
        return _registration_dict(reg)


# ---------------------------------------------------------------------------
# Attendance
# ---------------------------------------------------------------------------
def mark_attendance(
    engine: Engine,
    event_id: int,
    actor: Actor,
    user_ids: list[str],
    *,
    now: datetime | None = None,
) -> dict:
    """Mark registered users as attended and award the event's XP.

    Raises
    ------
    InvalidInput
        If *user_ids* is empty.
    EventNotFound
        If the event doesn't exist.
    Forbidden
        If *actor* may not manage the event.
    UsersNotRegistered
        If any listed user has no live registration.
    AlreadyAttended
        If every listed user was already marked.
    """
    if not user_ids:
        raise InvalidInput("user_ids must contain at least one user")
    now = now or utcnow()
    wanted = list(dict.fromkeys(user_ids))

    with Session(engine, expire_on_commit=False) as session:
        event = _get_event(session, event_id, active_only=False)
        if not can_manage_event(event, actor):
            raise Forbidden("Only the organizer, a domain lead or an admin can mark attendance")

        regs = {
            r.user_id: r
            for r in session.scalars(
                select(EventRegistration).where(
                    EventRegistration.event_id == event_id,
                    EventRegistration.user_id.in_(wanted),
                    EventRegistration.status != RegistrationStatus.CANCELLED.value,
                )
            )
        }
        missing = [uid for uid in wanted if uid not in regs]
        if missing:
            raise UsersNotRegistered(missing)

        already = [uid for uid in wanted if regs[uid].status == RegistrationStatus.ATTENDED]
        fresh = [uid for uid in wanted if uid not in already]
        if not fresh:
            raise AlreadyAttended()

        results: list[dict] = []
        refreshes: list[tuple[str, int, int]] = []
        for uid in fresh:
            user = lock_user(session, uid)
            reg = regs[uid]
            reg.status = RegistrationStatus.ATTENDED.value
            reg.attended_at = now
            old_xp, old_level = user.xp, user.level

            badges: list[str] = []
            if event.xp_reward > 0:
                award = award_xp_in_session(
                    session, user, event.xp_reward, "event_participation",
                    now=now,
                    description=f"Attended event: {event.title}",
                    data={"event_id": event.id},
                )
                badges.extend(award.badges_earned)
                create_notification(
                    session, uid, "xp_earned", "XP earned",
                    f"You earned {event.xp_reward} XP for attending {event.title}.",
                    {"event_id": event.id, "xp": event.xp_reward},
                    now=now,
                )

            session.add(Activity(
                user_id=uid,
                activity_type=ActivityType.EVENT_ATTENDED.value,
                description=f"Attended {event.title}",
                data={"event_id": event.id, "event_title": event.title, "xp_earned": event.xp_reward},
                created_at=now,
            ))
            badges.extend(
                check_and_award_achievements(session, user, [TriggerEvent.EVENT_ATTENDED], now=now)
            )

            results.append({
                "user_id": uid,
                "xp_awarded": event.xp_reward,
                "new_xp": user.xp,
                "new_level": user.level,
                "leveled_up": user.level > old_level,
                "badges_earned": badges,
            })
            refreshes.append((uid, old_xp, user.xp))

        log_admin_action(
            session,
            actor_id=actor.id,
            action_type=AdminActionType.ATTENDANCE.value,
            target_table="event_registrations",
            target_id=str(event.id),
            before=None,
            after={"attended": fresh},
        )
        session.commit()

    logger.info("Marked %d attendees for event %d", len(fresh), event_id)
    for uid, old_xp, new_xp in refreshes:
        refresh_leaderboards(uid, old_xp, new_xp)

    return {"event_id": event_id, "results": results, "already_attended": already}


def get_attendance(engine: Engine, event_id: int, actor: Actor) -> dict:
    with Session(engine) as session:
        event = _get_event(session, event_id, active_only=False)
        if not can_manage_event(event, actor):
            raise Forbidden("Only the organizer, a domain lead or an admin can view attendance")

        rows = session.execute(
            select(EventRegistration, User.username)
            .join(User, User.id == EventRegistration.user_id)
            .where(EventRegistration.event_id == event_id)
            .order_by(EventRegistration.registered_at, User.username)
        ).all()

        registrations = [
            {**_registration_dict(reg), "username": username}
            for reg, username in rows
        ]

    counts = {status.value: 0 for status in RegistrationStatus}
    for r in registrations:
        counts[r["status"]] = counts.get(r["status"], 0) + 1
    return {"event_id": event_id, "registrations": registrations, "counts": counts}
