"""
forge.database.models — SQLAlchemy 2.0 Data Models
===================================================

Tables:
- users                      — Community member profiles (UUID PK from the identity provider)
- quests                     — Daily / weekly tasks with an XP reward
- user_quest_progress        — Per-user quest progress
- quest_completions          — One row per (user, quest type, period); DB-enforced limit
- badges                     — Unlockable markers with typed triggers
- user_badges                — Earned badges
- titles                     — Unlockable display titles
- user_titles                — Earned titles (at most one active per user)
- activities                 — Append-only activity journal (XP source of truth)
- notifications              — In-app notifications
- events                     — Community events
- event_registrations        — Registration / attendance per event
- learning_modules           — Academy modules
- user_module_progress       — Per-user module progress
- weekly_leaderboard_archive — Frozen weekly rankings
- admin_log                  — Append-only audit trail
"""

from __future__ import annotations

import enum
import uuid
from datetime import UTC, date, datetime

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _uuid() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Game Forge ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class QuestType(enum.StrEnum):
    DAILY = "daily"
    WEEKLY = "weekly"


class ActivityType(enum.StrEnum):
    """Every kind of row written to the activity journal."""
    XP_EARNED = "xp_earned"
    LEVEL_UP = "level_up"
    QUEST_COMPLETED = "quest_completed"
    BADGE_EARNED = "badge_earned"
    TITLE_EARNED = "title_earned"
    TITLE_ACTIVATED = "title_activated"
    TITLE_DEACTIVATED = "title_deactivated"
    EVENT_ATTENDED = "event_attended"
    MODULE_COMPLETED = "module_completed"


class TriggerEvent(enum.StrEnum):
    """What just happened — selects which badges are re-evaluated."""
    QUEST_COMPLETED = "quest_completed"
    LEVEL_UP = "level_up"
    MODULE_COMPLETED = "module_completed"
    EVENT_ATTENDED = "event_attended"
    STREAK = "streak"
    DOMAIN_QUEST = "domain_quest"


class TriggerType(enum.StrEnum):
    """Defines what condition causes a badge to be granted."""
    COUNT_THRESHOLD = "count_threshold"
    LEVEL_REACHED = "level_reached"
    STREAK = "streak"
    DOMAIN_QUESTS = "domain_quests"
    MANUAL = "manual"


class RegistrationStatus(enum.StrEnum):
    REGISTERED = "registered"
    CANCELLED = "cancelled"
    ATTENDED = "attended"


class AdminActionType(enum.StrEnum):
    """Categories of admin mutations recorded in admin_log."""
    MANUAL_AWARD = "MANUAL_AWARD"
    BADGE_AWARD = "BADGE_AWARD"
    ATTENDANCE = "ATTENDANCE"


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------
class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    username: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    display_name: Mapped[str | None] = mapped_column(String(100), default=None)
    avatar_url: Mapped[str | None] = mapped_column(String(500), default=None)
    domain: Mapped[str | None] = mapped_column(String(50), default=None)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="member")
    xp: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    activities: Mapped[list[Activity]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_users_xp_desc", "xp"),
        Index("ix_users_domain", "domain"),
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} name={self.username!r} lvl={self.level}>"


# ---------------------------------------------------------------------------
# Quests
# ---------------------------------------------------------------------------
class Quest(Base):
    __tablename__ = "quests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    quest_type: Mapped[str] = mapped_column(String(10), nullable=False)
    xp_reward: Mapped[int] = mapped_column(Integer, nullable=False, default=50)
    domain: Mapped[str | None] = mapped_column(String(50), default=None)
    requirements: Mapped[dict | None] = mapped_column(JSONB, default=None)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        Index("ix_quests_type_active", "quest_type", "is_active"),
    )

    def __repr__(self) -> str:
        return f"<Quest id={self.id} title={self.title!r} type={self.quest_type}>"


class UserQuestProgress(Base):
    __tablename__ = "user_quest_progress"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    quest_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("quests.id", ondelete="CASCADE"), nullable=False
    )
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    quest: Mapped[Quest] = relationship()

    __table_args__ = (
        UniqueConstraint("user_id", "quest_id", name="uq_quest_progress_user_quest"),
    )


class QuestCompletion(Base):
    """One row per quest completion.

    The unique key on (user_id, quest_type, period_start) is what makes
    "one daily quest per day, one weekly quest per week" hold even under
    concurrent requests.
    """
    __tablename__ = "quest_completions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    quest_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("quests.id", ondelete="CASCADE"), nullable=False
    )
    quest_type: Mapped[str] = mapped_column(String(10), nullable=False)
    domain: Mapped[str | None] = mapped_column(String(50), default=None)
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    xp_awarded: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        UniqueConstraint(
            "user_id", "quest_type", "period_start",
            name="uq_quest_completions_user_type_period",
        ),
        Index("ix_quest_completions_user_time", "user_id", "completed_at"),
    )


# ---------------------------------------------------------------------------
# Badges & titles
# ---------------------------------------------------------------------------
class Title(Base):
    __tablename__ = "titles"

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    domain: Mapped[str | None] = mapped_column(String(50), default=None)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    def __repr__(self) -> str:
        return f"<Title id={self.id!r} name={self.name!r}>"


class Badge(Base):
    __tablename__ = "badges"

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    icon: Mapped[str | None] = mapped_column(String(100), default=None)
    domain: Mapped[str | None] = mapped_column(String(50), default=None)
    xp_requirement: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Trigger system
    trigger_event: Mapped[str | None] = mapped_column(String(30), default=None)
    trigger_type: Mapped[str] = mapped_column(
        String(30), nullable=False, default=TriggerType.MANUAL.value,
    )
    trigger_config: Mapped[dict | None] = mapped_column(JSONB, default=dict)

    # Rewards
    xp_bonus: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    title_id: Mapped[str | None] = mapped_column(
        String(100), ForeignKey("titles.id", ondelete="SET NULL"), default=None
    )

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    title: Mapped[Title | None] = relationship()

    __table_args__ = (
        Index("ix_badges_trigger_event", "trigger_event"),
    )

    def __repr__(self) -> str:
        return f"<Badge id={self.id!r} trigger={self.trigger_type}>"


class UserBadge(Base):
    __tablename__ = "user_badges"

    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    badge_id: Mapped[str] = mapped_column(
        String(100), ForeignKey("badges.id", ondelete="CASCADE"), primary_key=True
    )
    earned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    auto_awarded: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    awarded_by: Mapped[str | None] = mapped_column(String(36), default=None)

    badge: Mapped[Badge] = relationship()


class UserTitle(Base):
    __tablename__ = "user_titles"

    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    title_id: Mapped[str] = mapped_column(
        String(100), ForeignKey("titles.id", ondelete="CASCADE"), primary_key=True
    )
    earned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    title: Mapped[Title] = relationship()


# ---------------------------------------------------------------------------
# Activity journal
# ---------------------------------------------------------------------------
class Activity(Base):
    __tablename__ = "activities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    activity_type: Mapped[str] = mapped_column(String(40), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    xp_delta: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    data: Mapped[dict | None] = mapped_column(JSONB, default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    user: Mapped[User] = relationship(back_populates="activities")

    __table_args__ = (
        Index("ix_activities_user_time", "user_id", "created_at"),
        Index("ix_activities_type_time", "activity_type", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Activity id={self.id} user={self.user_id} type={self.activity_type}>"


class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(String(40), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    data: Mapped[dict | None] = mapped_column(JSONB, default=None)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        Index("ix_notifications_user_read", "user_id", "is_read"),
    )


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------
class Event(Base):
    __tablename__ = "events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    domain: Mapped[str | None] = mapped_column(String(50), default=None)
    organizer_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="SET NULL"), default=None
    )
    starts_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    ends_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    max_attendees: Mapped[int | None] = mapped_column(Integer, default=None)
    xp_reward: Mapped[int] = mapped_column(Integer, nullable=False, default=50)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    def __repr__(self) -> str:
        return f"<Event id={self.id} title={self.title!r}>"


class EventRegistration(Base):
    __tablename__ = "event_registrations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=RegistrationStatus.REGISTERED.value
    )
    registered_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    attended_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)

    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="uq_event_registrations_event_user"),
    )


# ---------------------------------------------------------------------------
# Academy
# ---------------------------------------------------------------------------
class LearningModule(Base):
    __tablename__ = "learning_modules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    domain: Mapped[str | None] = mapped_column(String(50), default=None)
    xp_reward: Mapped[int] = mapped_column(Integer, nullable=False, default=100)
    is_published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class UserModuleProgress(Base):
    __tablename__ = "user_module_progress"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    module_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("learning_modules.id", ondelete="CASCADE"), nullable=False
    )
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        UniqueConstraint("user_id", "module_id", name="uq_module_progress_user_module"),
    )


# ---------------------------------------------------------------------------
# Weekly leaderboard archive
# ---------------------------------------------------------------------------
class WeeklyLeaderboardArchive(Base):
    __tablename__ = "weekly_leaderboard_archive"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    week_ending: Mapped[date] = mapped_column(Date, nullable=False)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    username: Mapped[str] = mapped_column(String(50), nullable=False)
    domain: Mapped[str | None] = mapped_column(String(50), default=None)
    rank: Mapped[int] = mapped_column(Integer, nullable=False)
    weekly_xp: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_xp: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    archived_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        UniqueConstraint("week_ending", "user_id", name="uq_weekly_archive_week_user"),
        Index("ix_weekly_archive_week_rank", "week_ending", "rank"),
    )


# ---------------------------------------------------------------------------
# AdminLog — append-only audit trail
# ---------------------------------------------------------------------------
class AdminLog(Base):
    __tablename__ = "admin_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    actor_id: Mapped[str] = mapped_column(String(36), nullable=False)
    action_type: Mapped[str] = mapped_column(String(30), nullable=False)
    target_table: Mapped[str] = mapped_column(String(50), nullable=False)
    target_id: Mapped[str | None] = mapped_column(String(100), default=None)
    before_snapshot: Mapped[dict | None] = mapped_column(JSONB, default=None)
    after_snapshot: Mapped[dict | None] = mapped_column(JSONB, default=None)
    reason: Mapped[str | None] = mapped_column(Text, default=None)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        Index("ix_admin_log_timestamp", "timestamp"),
    )

    def __repr__(self) -> str:
        return f"<AdminLog id={self.id} action={self.action_type} table={self.target_table}>"
