"""
forge.engine.xp — XP Arithmetic
================================

Pure functions over XP totals: level breakdowns, per-source award limits
and bonus multipliers.  No database I/O.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from forge.constants import (
    BONUS_MULTIPLIERS,
    DEFAULT_XP_LIMITS,
    XP_LIMITS,
    calculate_level,
    progress_to_next_level,
    round_half_up,
    xp_for_level,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class XPCalculation:
    """Where a user's XP total sits on the level ladder."""

    total_xp: int
    level: int
    xp_for_current_level: int
    xp_for_next_level: int
    progress_to_next_level: int

    @property
    def xp_to_next_level(self) -> int:
        return self.xp_for_next_level - self.total_xp

    def as_dict(self) -> dict:
        return {
            "total_xp": self.total_xp,
            "level": self.level,
            "xp_for_current_level": self.xp_for_current_level,
            "xp_for_next_level": self.xp_for_next_level,
            "xp_to_next_level": self.xp_to_next_level,
            "progress_to_next_level": self.progress_to_next_level,
        }


def get_xp_calculation(xp: int) -> XPCalculation:
    level = calculate_level(xp)
    return XPCalculation(
        total_xp=xp,
        level=level,
        xp_for_current_level=xp_for_level(level),
        xp_for_next_level=xp_for_level(level + 1),
        progress_to_next_level=progress_to_next_level(xp),
    )


def xp_limits(source: str) -> tuple[int, int]:
    return XP_LIMITS.get(source, DEFAULT_XP_LIMITS)


def validate_xp_amount(source: str, amount: int) -> bool:
    """True when *amount* is inside the inclusive limits for *source*.

    Unknown sources fall back to 1..100.
    """
    low, high = xp_limits(source)
    return low <= amount <= high


def calculate_bonus_xp(base_xp: int, bonus_type: str, multiplier: float = 1.0) -> int:
    """Apply the named bonus (and an extra *multiplier*) to *base_xp*.

    Unknown bonus types use a factor of 1.0.  The result is rounded to the
    nearest integer.
    """
    factor = BONUS_MULTIPLIERS.get(bonus_type, 1.0)
    if bonus_type not in BONUS_MULTIPLIERS:
        logger.debug("Unknown bonus type %r; applying no bonus", bonus_type)
    return round_half_up(base_xp * factor * multiplier)
