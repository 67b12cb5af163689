"""
forge.constants — Shared Constants & Helpers
=============================================

Single source of truth for the leveling formula, community domains, roles
and XP award limits.  Import from here instead of duplicating in services
and routes.
"""

from __future__ import annotations

import math

# ---------------------------------------------------------------------------
# Community taxonomy
# ---------------------------------------------------------------------------
DOMAINS: tuple[str, ...] = (
    "Game Development",
    "Game Design",
    "Game Art",
    "AI for Game Development",
    "Creative",
    "Corporate",
)

ROLE_MEMBER = "member"
ROLE_DOMAIN_LEAD = "domain_lead"
ROLE_ADMIN = "admin"
ROLES: tuple[str, ...] = (ROLE_MEMBER, ROLE_DOMAIN_LEAD, ROLE_ADMIN)


def domain_slug(domain: str) -> str:
    """``"Game Art"`` → ``"game-art"``."""
    return "-".join(domain.lower().split())


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives."""
    return math.floor(value + 0.5)


# ---------------------------------------------------------------------------
# Leveling formula — THE single canonical implementation
# ---------------------------------------------------------------------------
XP_PER_LEVEL = 1000


def calculate_level(xp: int) -> int:
    """Level for a total of *xp*: ``floor(xp / 1000) + 1``.

    Negative XP is treated as zero so the minimum level is always 1.
    """
    return max(xp, 0) // XP_PER_LEVEL + 1


def xp_for_level(level: int) -> int:
    """Minimum total XP needed to be at *level*."""
    return (max(level, 1) - 1) * XP_PER_LEVEL


def xp_for_next_level(xp: int) -> int:
    """Total XP at which the next level starts."""
    return xp_for_level(calculate_level(xp) + 1)


def progress_to_next_level(xp: int) -> int:
    """Percentage (0-100, rounded) of the way through the current level."""
    level = calculate_level(xp)
    floor_xp = xp_for_level(level)
    ceiling_xp = xp_for_level(level + 1)
    return round_half_up((max(xp, 0) - floor_xp) / (ceiling_xp - floor_xp) * 100)


# ---------------------------------------------------------------------------
# XP award limits per source (inclusive)
# ---------------------------------------------------------------------------
XP_LIMITS: dict[str, tuple[int, int]] = {
    "quest_completion": (10, 1000),
    "module_completion": (50, 2000),
    "event_participation": (25, 500),
    "post_creation": (5, 50),
    "comment_creation": (2, 20),
    "badge_earned": (100, 5000),
    "manual_award": (1, 10000),
}
DEFAULT_XP_LIMITS: tuple[int, int] = (1, 100)

BONUS_MULTIPLIERS: dict[str, float] = {
    "daily_streak": 1.2,
    "weekly_streak": 1.5,
    "domain_expert": 1.3,
    "first_completion": 2.0,
    "perfect_score": 1.5,
}

# Leaderboard paging
LEADERBOARD_MAX_LIMIT = 100
LEADERBOARD_DEFAULT_LIMIT = 50
POSITION_MAX_CONTEXT = 20

# Weekly archive
ARCHIVE_RETENTION_WEEKS = 52
