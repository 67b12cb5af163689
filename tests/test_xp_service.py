"""
tests/test_xp_service.py — Transactional XP Award Tests
========================================================
Service-level tests for xp_service.award_xp(): activity journal rows,
level-ups, level badge cascades, post-commit leaderboard refresh, and
the reporting helpers.

Uses an in-memory SQLite database via the shared conftest fixtures.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from unittest.mock import patch

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from conftest import NOW, make_quest, make_user
from forge.database.models import (
    Activity,
    ActivityType,
    Notification,
    User,
    UserBadge,
    UserQuestProgress,
)
from forge.exceptions import InvalidXPAmount, UserNotFound
from forge.services import leaderboard_service, xp_service


def _activities(engine, user_id, activity_type):
    with Session(engine) as session:
        return session.scalars(
            select(Activity)
            .where(Activity.user_id == user_id, Activity.activity_type == activity_type)
            .order_by(Activity.id)
        ).all()


class TestAwardXP:
    def test_adds_xp_and_journals_it(self, db_engine):
        uid = make_user(db_engine, "ada", xp=100)

        award = xp_service.award_xp(db_engine, uid, 50, "quest_completion", now=NOW)

        assert award.old_xp == 100
        assert award.new_xp == 150
        assert not award.leveled_up
        with Session(db_engine) as session:
            assert session.get(User, uid).xp == 150

        rows = _activities(db_engine, uid, ActivityType.XP_EARNED)
        assert len(rows) == 1
        assert rows[0].xp_delta == 50
        assert rows[0].data["source"] == "quest_completion"
        assert rows[0].data["old_xp"] == 100
        assert rows[0].data["new_xp"] == 150

    def test_level_up_writes_activity_and_notification(self, db_engine):
        uid = make_user(db_engine, "ada", xp=950)

        award = xp_service.award_xp(db_engine, uid, 100, "quest_completion", now=NOW)

        assert award.leveled_up
        assert (award.old_level, award.new_level) == (1, 2)
        level_rows = _activities(db_engine, uid, ActivityType.LEVEL_UP)
        assert len(level_rows) == 1
        assert level_rows[0].data == {"old_level": 1, "new_level": 2}
        with Session(db_engine) as session:
            notes = session.scalars(select(Notification).where(Notification.user_id == uid)).all()
        assert [n.type for n in notes] == ["level_up"]

    def test_level_stays_consistent_with_xp(self, db_engine):
        uid = make_user(db_engine, "ada", xp=0)
        for _ in range(5):
            xp_service.award_xp(db_engine, uid, 700, "manual_award", now=NOW)
        with Session(db_engine) as session:
            user = session.get(User, uid)
            assert user.xp == 3500
            assert user.level == 4

    def test_level_badge_cascades_bonus(self, seeded_engine):
        uid = make_user(seeded_engine, "ada", xp=8950)

        award = xp_service.award_xp(seeded_engine, uid, 100, "quest_completion", now=NOW)

        assert award.new_level == 10
        assert award.badges_earned == ["level-10-badge"]
        with Session(seeded_engine) as session:
            user = session.get(User, uid)
            assert user.xp == 8950 + 100 + 100   # + Rising Star bonus
            assert session.get(UserBadge, (uid, "level-10-badge")) is not None

        sources = [r.data["source"] for r in _activities(seeded_engine, uid, ActivityType.XP_EARNED)]
        assert sources == ["quest_completion", "achievement_bonus"]

    @pytest.mark.parametrize("amount", [0, -10])
    def test_rejects_non_positive_amount(self, db_engine, amount):
        uid = make_user(db_engine, "ada")
        with pytest.raises(InvalidXPAmount):
            xp_service.award_xp(db_engine, uid, amount, "quest_completion")

    def test_unknown_user(self, db_engine):
        with pytest.raises(UserNotFound):
            xp_service.award_xp(db_engine, "nobody", 10, "quest_completion")

    def test_inactive_user(self, db_engine):
        uid = make_user(db_engine, "ghost", is_active=False)
        with pytest.raises(UserNotFound):
            xp_service.award_xp(db_engine, uid, 10, "quest_completion")

    def test_out_of_range_reward_is_logged(self, db_engine, caplog):
        uid = make_user(db_engine, "ada")
        with caplog.at_level(logging.WARNING, logger="forge.services.xp_service"):
            award = xp_service.award_xp(db_engine, uid, 900, "event_participation", now=NOW)

        assert award.new_xp == 900
        assert "outside the 25-500 range" in caplog.text

    def test_in_range_and_unlisted_sources_are_quiet(self, db_engine, caplog):
        uid = make_user(db_engine, "ada")
        with caplog.at_level(logging.WARNING, logger="forge.services.xp_service"):
            xp_service.award_xp(db_engine, uid, 200, "module_completion", now=NOW)
            xp_service.award_xp(db_engine, uid, 500, "achievement_bonus", now=NOW)

        assert "outside the" not in caplog.text


class TestLeaderboardRefresh:
    def test_award_invalidates_cached_boards(self, db_engine):
        uid = make_user(db_engine, "ada")
        leaderboard_service.leaderboard_cache.set(
            "ranking:all-time:all", [], tags={"leaderboard"},
        )

        xp_service.award_xp(db_engine, uid, 10, "quest_completion", now=NOW)

        assert not leaderboard_service.leaderboard_cache.has("ranking:all-time:all")

    def test_refresh_failure_does_not_undo_award(self, db_engine, caplog):
        uid = make_user(db_engine, "ada")
        with (
            patch.object(
                leaderboard_service,
                "update_leaderboards_for_user",
                side_effect=RuntimeError("cache down"),
            ),
            caplog.at_level(logging.ERROR),
        ):
            award = xp_service.award_xp(db_engine, uid, 10, "quest_completion", now=NOW)

        assert award.new_xp == 10
        with Session(db_engine) as session:
            assert session.get(User, uid).xp == 10
        assert "Leaderboard refresh failed" in caplog.text


class TestReporting:
    def test_breakdown_by_source_and_day(self, db_engine):
        uid = make_user(db_engine, "ada")
        xp_service.award_xp(db_engine, uid, 50, "quest_completion", now=NOW - timedelta(days=1))
        xp_service.award_xp(db_engine, uid, 30, "quest_completion", now=NOW)
        xp_service.award_xp(db_engine, uid, 100, "module_completion", now=NOW)
        xp_service.award_xp(db_engine, uid, 5, "manual_award", now=NOW - timedelta(days=40))

        report = xp_service.get_user_xp_breakdown(db_engine, uid, 30, now=NOW)

        assert report["total_xp"] == 180
        assert report["by_source"]["quest_completion"] == {"xp": 80, "count": 2}
        assert report["by_source"]["module_completion"] == {"xp": 100, "count": 1}
        assert "manual_award" not in report["by_source"]
        assert report["by_day"] == [
            {"date": "2025-03-11", "xp": 50},
            {"date": "2025-03-12", "xp": 130},
        ]

    def test_weekly_xp_is_rolling_seven_days(self, db_engine):
        uid = make_user(db_engine, "ada")
        xp_service.award_xp(db_engine, uid, 40, "quest_completion", now=NOW - timedelta(days=6))
        xp_service.award_xp(db_engine, uid, 60, "quest_completion", now=NOW - timedelta(days=8))

        assert xp_service.get_weekly_xp(db_engine, uid, now=NOW) == 40


class TestResetQuestEligibility:
    def test_clears_only_previous_period(self, db_engine):
        uid = make_user(db_engine, "ada")
        old_daily = make_quest(db_engine, "Yesterday's sketch", quest_type="daily")
        today_daily = make_quest(db_engine, "Today's sketch", quest_type="daily")
        weekly = make_quest(db_engine, "Ship a jam game", quest_type="weekly")

        with Session(db_engine) as session:
            session.add_all([
                UserQuestProgress(user_id=uid, quest_id=old_daily, progress=100,
                                  completed=True, completed_at=NOW - timedelta(days=1)),
                UserQuestProgress(user_id=uid, quest_id=today_daily, progress=100,
                                  completed=True, completed_at=NOW - timedelta(hours=1)),
                UserQuestProgress(user_id=uid, quest_id=weekly, progress=100,
                                  completed=True, completed_at=NOW - timedelta(days=1)),
            ])
            session.commit()

        assert xp_service.reset_quest_eligibility(db_engine, "daily", now=NOW) == 1

        with Session(db_engine) as session:
            rows = {
                p.quest_id: p
                for p in session.scalars(select(UserQuestProgress))
            }
        assert rows[old_daily].completed is False
        assert rows[old_daily].progress == 0
        assert rows[today_daily].completed is True
        assert rows[weekly].completed is True
