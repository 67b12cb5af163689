"""
forge.engine.achievements — Achievement Check Pipeline
=======================================================

Handler-registry implementation for badge trigger evaluation.
Each TriggerType maps to a pure handler function that receives an
AchievementContext and the badge's trigger_config JSONB.

This module is pure calculation — no database I/O.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

from forge.database.models import TriggerType

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Metrics accepted by count_threshold triggers
# ---------------------------------------------------------------------------
VALID_METRICS: set[str] = {
    "quests_completed",
    "modules_completed",
    "events_attended",
    "badges_earned",
}


# ---------------------------------------------------------------------------
# Achievement Context — passed to every trigger handler
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class AchievementContext:
    """Snapshot of user state passed to trigger handlers.

    Parameters
    ----------
    user_xp : Total accumulated XP.
    user_level : Current level.
    counts : Metric name → running total (see ``VALID_METRICS``).
    daily_streak : Consecutive days with a completed daily quest.
    weekly_streak : Consecutive weeks with a completed weekly quest.
    domain_quests : Domain name → quests completed in that domain.
    """

    user_xp: int = 0
    user_level: int = 1
    counts: dict[str, int] = field(default_factory=dict)
    daily_streak: int = 0
    weekly_streak: int = 0
    domain_quests: dict[str, int] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Trigger handlers — pure functions (config, ctx) → bool
# ---------------------------------------------------------------------------

def _check_count_threshold(config: dict, ctx: AchievementContext) -> bool:
    """Fires when a running total reaches a threshold.

    Config: {"metric": "quests_completed", "value": 100}
    """
    metric = config.get("metric", "")
    if metric not in VALID_METRICS:
        return False
    value = config.get("value")
    if value is None:
        return False
    return ctx.counts.get(metric, 0) >= value


def _check_level_reached(config: dict, ctx: AchievementContext) -> bool:
    """Fires when the user reaches (or surpasses) a specific level.

    Config: {"value": 10}
    """
    value = config.get("value")
    if value is None:
        return False
    return ctx.user_level >= value


def _check_streak(config: dict, ctx: AchievementContext) -> bool:
    """Config: {"period": "daily"|"weekly", "value": 7}"""
    value = config.get("value")
    if value is None:
        return False
    period = config.get("period", "daily")
    if period == "daily":
        return ctx.daily_streak >= value
    if period == "weekly":
        return ctx.weekly_streak >= value
    return False


def _check_domain_quests(config: dict, ctx: AchievementContext) -> bool:
    """Fires when enough quests were completed inside one domain.

    Config: {"domain": "Game Art", "value": 10}
    """
    domain = config.get("domain")
    value = config.get("value")
    if not domain or value is None:
        return False
    return ctx.domain_quests.get(domain, 0) >= value


# ---------------------------------------------------------------------------
# Handler registry
# ---------------------------------------------------------------------------
TRIGGER_HANDLERS: dict[str, Callable[[dict, AchievementContext], bool]] = {
    TriggerType.COUNT_THRESHOLD: _check_count_threshold,
    TriggerType.LEVEL_REACHED: _check_level_reached,
    TriggerType.STREAK: _check_streak,
    TriggerType.DOMAIN_QUESTS: _check_domain_quests,
    # TriggerType.MANUAL intentionally omitted — never auto-triggered
}


# ---------------------------------------------------------------------------
# Main check function
# ---------------------------------------------------------------------------
def check_achievements(
    badges: Iterable[Any],
    ctx: AchievementContext,
    already_earned: set[str],
    trigger_events: Iterable[str] | None = None,
) -> list[Any]:
    """Return the badges the user has newly earned.

    Parameters
    ----------
    badges : Badge rows (or anything with ``id``, ``is_active``,
        ``trigger_event``, ``trigger_type`` and ``trigger_config``).
    ctx : AchievementContext with current user state.
    already_earned : Badge ids the user already holds.
    trigger_events : Only badges listening to one of these events are
        evaluated.  ``None`` evaluates every badge.
    """
    events = set(trigger_events) if trigger_events is not None else None
    newly_earned: list[Any] = []

    for badge in badges:
        if badge.id in already_earned or not badge.is_active:
            continue
        if events is not None and badge.trigger_event not in events:
            continue

        handler = TRIGGER_HANDLERS.get(badge.trigger_type)
        if handler is None:
            # Unknown or MANUAL type — skip
            continue

        config = badge.trigger_config or {}
        if handler(config, ctx):
            newly_earned.append(badge)
            logger.info("Achievement triggered: %s", badge.id)

    return newly_earned
