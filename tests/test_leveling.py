"""
tests/test_leveling.py — Level Formula & XP Arithmetic
=======================================================
Pure functions from forge.constants and forge.engine.xp; no database.
"""

from __future__ import annotations

import pytest

from forge.constants import (
    calculate_level,
    domain_slug,
    progress_to_next_level,
    round_half_up,
    xp_for_level,
    xp_for_next_level,
)
from forge.engine.xp import (
    calculate_bonus_xp,
    get_xp_calculation,
    validate_xp_amount,
    xp_limits,
)


class TestCalculateLevel:
    @pytest.mark.parametrize(
        "xp, expected",
        [
            (0, 1),
            (1, 1),
            (999, 1),
            (1000, 2),
            (1001, 2),
            (2500, 3),
            (9999, 10),
            (49_000, 50),
        ],
    )
    def test_level_boundaries(self, xp, expected):
        assert calculate_level(xp) == expected

    def test_negative_xp_is_level_one(self):
        assert calculate_level(-500) == 1

    def test_level_never_decreases_as_xp_grows(self):
        levels = [calculate_level(xp) for xp in range(0, 20_000, 37)]
        assert levels == sorted(levels)


class TestLevelThresholds:
    def test_xp_for_level(self):
        assert xp_for_level(1) == 0
        assert xp_for_level(2) == 1000
        assert xp_for_level(10) == 9000

    def test_xp_for_level_clamps_below_one(self):
        assert xp_for_level(0) == 0

    def test_xp_for_next_level(self):
        assert xp_for_next_level(0) == 1000
        assert xp_for_next_level(1500) == 2000
        assert xp_for_next_level(2000) == 3000

    @pytest.mark.parametrize(
        "xp, expected",
        [(0, 0), (250, 25), (1500, 50), (1999, 100), (1994, 99), (1005, 1)],
    )
    def test_progress_to_next_level(self, xp, expected):
        assert progress_to_next_level(xp) == expected


class TestRoundHalfUp:
    def test_halves_round_up(self):
        assert round_half_up(0.5) == 1
        assert round_half_up(2.5) == 3
        assert round_half_up(2.4) == 2


class TestXPCalculation:
    def test_breakdown(self):
        calc = get_xp_calculation(2500)
        assert calc.total_xp == 2500
        assert calc.level == 3
        assert calc.xp_for_current_level == 2000
        assert calc.xp_for_next_level == 3000
        assert calc.xp_to_next_level == 500
        assert calc.progress_to_next_level == 50

    def test_as_dict_includes_derived_fields(self):
        data = get_xp_calculation(0).as_dict()
        assert data["level"] == 1
        assert data["xp_to_next_level"] == 1000
        assert data["progress_to_next_level"] == 0


class TestXPLimits:
    @pytest.mark.parametrize(
        "source, amount, valid",
        [
            ("quest_completion", 10, True),
            ("quest_completion", 1000, True),
            ("quest_completion", 9, False),
            ("quest_completion", 1001, False),
            ("module_completion", 49, False),
            ("module_completion", 2000, True),
            ("event_participation", 25, True),
            ("event_participation", 501, False),
            ("post_creation", 5, True),
            ("comment_creation", 21, False),
            ("badge_earned", 100, True),
            ("manual_award", 10_000, True),
            ("manual_award", 0, False),
        ],
    )
    def test_known_sources(self, source, amount, valid):
        assert validate_xp_amount(source, amount) is valid

    def test_unknown_source_defaults_to_1_100(self):
        assert xp_limits("mystery") == (1, 100)
        assert validate_xp_amount("mystery", 1)
        assert validate_xp_amount("mystery", 100)
        assert not validate_xp_amount("mystery", 101)
        assert not validate_xp_amount("mystery", 0)


class TestBonusXP:
    @pytest.mark.parametrize(
        "bonus_type, expected",
        [
            ("daily_streak", 120),
            ("weekly_streak", 150),
            ("domain_expert", 130),
            ("first_completion", 200),
            ("perfect_score", 150),
            ("nonsense", 100),
        ],
    )
    def test_multipliers(self, bonus_type, expected):
        assert calculate_bonus_xp(100, bonus_type) == expected

    def test_extra_multiplier_and_rounding(self):
        # 15 * 1.5 * 1.0 = 22.5 → 23
        assert calculate_bonus_xp(15, "weekly_streak") == 23
        assert calculate_bonus_xp(100, "daily_streak", 2.0) == 240


class TestDomainSlug:
    def test_slug(self):
        assert domain_slug("AI for Game Development") == "ai-for-game-development"
        assert domain_slug("Game Art") == "game-art"
