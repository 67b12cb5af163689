"""
forge.database.seed — Default Badges & Titles
==============================================

Baseline achievements seeded on first startup so quests, modules and
events award recognition out of the box.

Idempotent: only inserts rows whose id doesn't already exist.  Badges
edited by admins are never overwritten.
"""

from __future__ import annotations

import logging

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from forge.constants import DOMAINS, domain_slug
from forge.database.models import Badge, Title, TriggerEvent, TriggerType

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Default catalogue
# ---------------------------------------------------------------------------
DEFAULT_TITLES: list[dict] = [
    {"id": "quest-master-title", "name": "Quest Master",
     "description": "Completed 100 quests"},
    {"id": "veteran-title", "name": "Veteran Forger",
     "description": "Reached level 50"},
    {"id": "scholar-title", "name": "Scholar",
     "description": "Completed 25 learning modules"},
]


def _count(metric: str, value: int) -> dict:
    return {"metric": metric, "value": value}


DEFAULT_BADGES: list[dict] = [
    # Quests
    {"id": "first-quest-badge", "name": "First Steps",
     "description": "Complete your first quest",
     "trigger_event": TriggerEvent.QUEST_COMPLETED, "trigger_type": TriggerType.COUNT_THRESHOLD,
     "trigger_config": _count("quests_completed", 1), "xp_bonus": 50},
    {"id": "quest-master-badge", "name": "Quest Master",
     "description": "Complete 100 quests",
     "trigger_event": TriggerEvent.QUEST_COMPLETED, "trigger_type": TriggerType.COUNT_THRESHOLD,
     "trigger_config": _count("quests_completed", 100), "xp_bonus": 500,
     "title_id": "quest-master-title"},
    # Levels
    {"id": "level-10-badge", "name": "Rising Star",
     "description": "Reach level 10",
     "trigger_event": TriggerEvent.LEVEL_UP, "trigger_type": TriggerType.LEVEL_REACHED,
     "trigger_config": {"value": 10}, "xp_bonus": 100},
    {"id": "level-50-badge", "name": "Veteran Forger",
     "description": "Reach level 50",
     "trigger_event": TriggerEvent.LEVEL_UP, "trigger_type": TriggerType.LEVEL_REACHED,
     "trigger_config": {"value": 50}, "xp_bonus": 1000,
     "title_id": "veteran-title"},
    # Academy
    {"id": "first-module-badge", "name": "Knowledge Seeker",
     "description": "Complete your first learning module",
     "trigger_event": TriggerEvent.MODULE_COMPLETED, "trigger_type": TriggerType.COUNT_THRESHOLD,
     "trigger_config": _count("modules_completed", 1), "xp_bonus": 75},
    {"id": "learning-enthusiast-badge", "name": "Scholar",
     "description": "Complete 25 learning modules",
     "trigger_event": TriggerEvent.MODULE_COMPLETED, "trigger_type": TriggerType.COUNT_THRESHOLD,
     "trigger_config": _count("modules_completed", 25), "xp_bonus": 500,
     "title_id": "scholar-title"},
    # Events
    {"id": "event-participant-badge", "name": "Team Player",
     "description": "Attend your first community event",
     "trigger_event": TriggerEvent.EVENT_ATTENDED, "trigger_type": TriggerType.COUNT_THRESHOLD,
     "trigger_config": _count("events_attended", 1), "xp_bonus": 50},
    {"id": "event-enthusiast-badge", "name": "Event Enthusiast",
     "description": "Attend 10 community events",
     "trigger_event": TriggerEvent.EVENT_ATTENDED, "trigger_type": TriggerType.COUNT_THRESHOLD,
     "trigger_config": _count("events_attended", 10), "xp_bonus": 300},
    # Streaks
    {"id": "daily-streak-7-badge", "name": "Daily Devotion",
     "description": "Complete a daily quest 7 days in a row",
     "trigger_event": TriggerEvent.STREAK, "trigger_type": TriggerType.STREAK,
     "trigger_config": {"period": "daily", "value": 7}, "xp_bonus": 100},
    {"id": "daily-streak-30-badge", "name": "Unbreakable",
     "description": "Complete a daily quest 30 days in a row",
     "trigger_event": TriggerEvent.STREAK, "trigger_type": TriggerType.STREAK,
     "trigger_config": {"period": "daily", "value": 30}, "xp_bonus": 500},
    {"id": "weekly-streak-4-badge", "name": "Weekly Regular",
     "description": "Complete a weekly quest 4 weeks in a row",
     "trigger_event": TriggerEvent.STREAK, "trigger_type": TriggerType.STREAK,
     "trigger_config": {"period": "weekly", "value": 4}, "xp_bonus": 150},
]


def _domain_expert_badges() -> list[dict]:
    """One ``{slug}-expert-badge`` per community domain."""
    return [
        {"id": f"{domain_slug(domain)}-expert-badge", "name": f"{domain} Expert",
         "description": f"Complete 10 {domain} quests",
         "domain": domain,
         "trigger_event": TriggerEvent.DOMAIN_QUEST, "trigger_type": TriggerType.DOMAIN_QUESTS,
         "trigger_config": {"domain": domain, "value": 10}, "xp_bonus": 200}
        for domain in DOMAINS
    ]


# ---------------------------------------------------------------------------
# Seeder
# ---------------------------------------------------------------------------
def seed_default_achievements(engine: Engine) -> int:
    """Insert any missing default titles and badges.

    Returns the number of rows inserted.
    """
    inserted = 0
    with Session(engine) as session:
        existing_titles = set(session.scalars(select(Title.id)))
        for entry in DEFAULT_TITLES:
            if entry["id"] in existing_titles:
                continue
            session.add(Title(**entry))
            inserted += 1
        session.flush()

        existing_badges = set(session.scalars(select(Badge.id)))
        for entry in DEFAULT_BADGES + _domain_expert_badges():
            if entry["id"] in existing_badges:
                continue
            row = dict(entry)
            row["trigger_event"] = str(row["trigger_event"])
            row["trigger_type"] = str(row["trigger_type"])
            session.add(Badge(**row))
            inserted += 1
        session.commit()

    if inserted:
        logger.info("Seeded %d default badges/titles", inserted)
    return inserted
