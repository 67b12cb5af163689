"""
forge.exceptions — Domain errors raised by the service layer
=============================================================

Every error carries a stable machine-readable ``code`` (rendered into the
API failure envelope), a human message, and the HTTP status the API layer
should answer with.  Services raise these; routes never catch them, the
handler installed in :mod:`forge.api.errors` renders them.
"""

from __future__ import annotations


class ForgeError(Exception):
    """Base exception for Game Forge domain errors."""

    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str, *, code: str | None = None, status_code: int | None = None):
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)


# ---------------------------------------------------------------------------
# Generic
# ---------------------------------------------------------------------------
class InvalidInput(ForgeError):
    code = "INVALID_INPUT"
    status_code = 400


class Forbidden(ForgeError):
    code = "FORBIDDEN"
    status_code = 403


class UserNotFound(ForgeError):
    code = "USER_NOT_FOUND"
    status_code = 404

    def __init__(self, user_id: str):
        super().__init__(f"User '{user_id}' not found or inactive")
        self.user_id = user_id


# ---------------------------------------------------------------------------
# XP
# ---------------------------------------------------------------------------
class InvalidXPAmount(ForgeError):
    code = "INVALID_XP_AMOUNT"
    status_code = 400

    def __init__(self, source: str, amount: int, *, low: int | None = None, high: int | None = None):
        message = f"Invalid XP amount {amount} for source '{source}'"
        if low is not None and high is not None:
            message += f" (allowed {low}-{high})"
        super().__init__(message)
        self.source = source
        self.amount = amount


# ---------------------------------------------------------------------------
# Quests
# ---------------------------------------------------------------------------
class QuestNotFound(ForgeError):
    code = "QUEST_NOT_FOUND"
    status_code = 404

    def __init__(self, quest_id: int):
        super().__init__(f"Quest {quest_id} not found or inactive")
        self.quest_id = quest_id


class QuestAlreadyCompleted(ForgeError):
    code = "QUEST_ALREADY_COMPLETED"
    status_code = 409

    def __init__(self, quest_id: int):
        super().__init__(f"Quest {quest_id} has already been completed")
        self.quest_id = quest_id


class DailyQuestLimitReached(ForgeError):
    code = "DAILY_QUEST_LIMIT_REACHED"
    status_code = 409

    def __init__(self):
        super().__init__("You have already completed a daily quest today")


class WeeklyQuestLimitReached(ForgeError):
    code = "WEEKLY_QUEST_LIMIT_REACHED"
    status_code = 409

    def __init__(self):
        super().__init__("You have already completed a weekly quest this week")


# ---------------------------------------------------------------------------
# Badges & titles
# ---------------------------------------------------------------------------
class BadgeNotFound(ForgeError):
    code = "BADGE_NOT_FOUND"
    status_code = 404

    def __init__(self, badge_id: str):
        super().__init__(f"Badge '{badge_id}' not found or inactive")
        self.badge_id = badge_id


class BadgeAlreadyEarned(ForgeError):
    code = "BADGE_ALREADY_EARNED"
    status_code = 409

    def __init__(self, badge_id: str):
        super().__init__(f"Badge '{badge_id}' has already been earned")
        self.badge_id = badge_id


class InsufficientXP(ForgeError):
    code = "INSUFFICIENT_XP"
    status_code = 400

    def __init__(self, required: int, actual: int):
        super().__init__(f"Insufficient XP: required {required}, have {actual}")
        self.required = required
        self.actual = actual


class DomainMismatch(ForgeError):
    code = "DOMAIN_MISMATCH"
    status_code = 400

    def __init__(self, required: str):
        super().__init__(f"This badge is only available to the '{required}' domain")
        self.required = required


class TitleNotEarned(ForgeError):
    code = "TITLE_NOT_EARNED"
    status_code = 403

    def __init__(self, title_id: str):
        super().__init__(f"Title '{title_id}' has not been earned")
        self.title_id = title_id


class TitleNotActive(ForgeError):
    code = "TITLE_NOT_ACTIVE"
    status_code = 400

    def __init__(self, title_id: str):
        super().__init__(f"Title '{title_id}' is not currently active")
        self.title_id = title_id


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------
class EventNotFound(ForgeError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, event_id: int):
        super().__init__(f"Event {event_id} not found")
        self.event_id = event_id


class EventStarted(ForgeError):
    code = "EVENT_STARTED"
    status_code = 400

    def __init__(self):
        super().__init__("The event has already started")


class EventFull(ForgeError):
    code = "EVENT_FULL"
    status_code = 400

    def __init__(self):
        super().__init__("The event has reached its maximum number of attendees")


class AlreadyRegistered(ForgeError):
    code = "ALREADY_REGISTERED"
    status_code = 409

    def __init__(self):
        super().__init__("You are already registered for this event")


class NotRegistered(ForgeError):
    code = "NOT_REGISTERED"
    status_code = 404

    def __init__(self):
        super().__init__("You are not registered for this event")


class UsersNotRegistered(ForgeError):
    code = "USERS_NOT_REGISTERED"
    status_code = 400

    def __init__(self, user_ids: list[str]):
        super().__init__(f"Users not registered for this event: {', '.join(user_ids)}")
        self.user_ids = user_ids


class AlreadyAttended(ForgeError):
    code = "ALREADY_ATTENDED"
    status_code = 400

    def __init__(self):
        super().__init__("All listed users are already marked as attended")


# ---------------------------------------------------------------------------
# Learning modules
# ---------------------------------------------------------------------------
class ModuleNotFound(ForgeError):
    code = "MODULE_NOT_FOUND"
    status_code = 404

    def __init__(self, module_id: int):
        super().__init__(f"Learning module {module_id} not found")
        self.module_id = module_id


class ModuleNotPublished(ForgeError):
    code = "MODULE_NOT_PUBLISHED"
    status_code = 400

    def __init__(self, module_id: int):
        super().__init__(f"Learning module {module_id} is not published")
        self.module_id = module_id


class InvalidProgress(ForgeError):
    code = "INVALID_PROGRESS"
    status_code = 400

    def __init__(self, progress: int):
        super().__init__(f"Progress must be between 0 and 100, got {progress}")
        self.progress = progress
