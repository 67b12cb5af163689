"""
tests/test_quest_service.py — Quest Completion Tests
=====================================================
Per-period completion limits, the already-completed guard, XP + badge
side effects, and quest listing.
"""

from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from conftest import NOW, make_quest, make_user
from forge.database.models import (
    Activity,
    ActivityType,
    QuestCompletion,
    User,
    UserBadge,
)
from forge.exceptions import (
    DailyQuestLimitReached,
    InvalidInput,
    QuestAlreadyCompleted,
    QuestNotFound,
    UserNotFound,
    WeeklyQuestLimitReached,
)
from forge.services import quest_service


def _user(engine, uid):
    with Session(engine) as session:
        return session.get(User, uid)


def _completions(engine, uid) -> int:
    with Session(engine) as session:
        return session.scalar(
            select(func.count()).select_from(QuestCompletion).where(QuestCompletion.user_id == uid)
        )


# ===========================================================================
# Completion
# ===========================================================================
class TestCompleteQuest:
    def test_awards_quest_xp(self, db_engine):
        uid = make_user(db_engine, "ada")
        qid = make_quest(db_engine, xp_reward=75)

        result = quest_service.complete_quest(db_engine, uid, qid, now=NOW)

        assert result["xp_earned"] == 75
        assert result["new_xp"] == 75
        assert result["leveled_up"] is False
        assert result["quest"]["id"] == qid
        assert result["period_end"].startswith("2025-03-13")
        assert _user(db_engine, uid).xp == 75

    def test_writes_completion_and_activity(self, db_engine):
        uid = make_user(db_engine, "ada")
        qid = make_quest(db_engine, domain="Game Art")

        quest_service.complete_quest(db_engine, uid, qid, now=NOW)

        with Session(db_engine) as session:
            completion = session.scalar(select(QuestCompletion))
            assert completion.quest_type == "daily"
            assert completion.domain == "Game Art"
            assert completion.period_start.isoformat() == "2025-03-12"
            activity = session.scalar(
                select(Activity).where(Activity.activity_type == ActivityType.QUEST_COMPLETED)
            )
            assert activity.data["quest_id"] == qid
            assert activity.data["xp_earned"] == 50

    def test_same_quest_twice_in_a_day(self, db_engine):
        uid = make_user(db_engine, "ada")
        qid = make_quest(db_engine)
        quest_service.complete_quest(db_engine, uid, qid, now=NOW)

        with pytest.raises(QuestAlreadyCompleted):
            quest_service.complete_quest(db_engine, uid, qid, now=NOW + timedelta(hours=2))

        assert _user(db_engine, uid).xp == 50
        assert _completions(db_engine, uid) == 1

    def test_second_daily_quest_same_day(self, db_engine):
        uid = make_user(db_engine, "ada")
        first = make_quest(db_engine, "Sketch a character")
        second = make_quest(db_engine, "Post a devlog")
        quest_service.complete_quest(db_engine, uid, first, now=NOW)

        with pytest.raises(DailyQuestLimitReached) as exc_info:
            quest_service.complete_quest(db_engine, uid, second, now=NOW + timedelta(hours=1))

        assert exc_info.value.status_code == 409
        assert _user(db_engine, uid).xp == 50

    def test_daily_quest_again_next_day(self, db_engine):
        uid = make_user(db_engine, "ada")
        qid = make_quest(db_engine)
        quest_service.complete_quest(db_engine, uid, qid, now=NOW)

        result = quest_service.complete_quest(db_engine, uid, qid, now=NOW + timedelta(days=1))

        assert result["new_xp"] == 100
        assert _completions(db_engine, uid) == 2

    def test_daily_and_weekly_are_independent(self, db_engine):
        uid = make_user(db_engine, "ada")
        daily = make_quest(db_engine, "Daily", quest_type="daily", xp_reward=50)
        weekly = make_quest(db_engine, "Weekly", quest_type="weekly", xp_reward=200)

        quest_service.complete_quest(db_engine, uid, daily, now=NOW)
        quest_service.complete_quest(db_engine, uid, weekly, now=NOW)

        assert _user(db_engine, uid).xp == 250

    def test_weekly_limit_spans_sunday_week(self, db_engine):
        uid = make_user(db_engine, "ada")
        first = make_quest(db_engine, "Jam entry", quest_type="weekly")
        second = make_quest(db_engine, "Playtest", quest_type="weekly")
        quest_service.complete_quest(db_engine, uid, first, now=NOW)

        # Saturday of the same week
        with pytest.raises(WeeklyQuestLimitReached):
            quest_service.complete_quest(db_engine, uid, second, now=NOW + timedelta(days=3))

        # Sunday opens a new week
        result = quest_service.complete_quest(db_engine, uid, second, now=NOW + timedelta(days=4))
        assert result["xp_earned"] == 50

    def test_unknown_quest(self, db_engine):
        uid = make_user(db_engine, "ada")
        with pytest.raises(QuestNotFound):
            quest_service.complete_quest(db_engine, uid, 999, now=NOW)

    def test_inactive_quest(self, db_engine):
        uid = make_user(db_engine, "ada")
        qid = make_quest(db_engine, is_active=False)
        with pytest.raises(QuestNotFound):
            quest_service.complete_quest(db_engine, uid, qid, now=NOW)

    def test_unknown_user(self, db_engine):
        qid = make_quest(db_engine)
        with pytest.raises(UserNotFound):
            quest_service.complete_quest(db_engine, "nobody", qid, now=NOW)

    def test_level_up_reported(self, db_engine):
        uid = make_user(db_engine, "ada", xp=980)
        qid = make_quest(db_engine, xp_reward=50)

        result = quest_service.complete_quest(db_engine, uid, qid, now=NOW)

        assert result["leveled_up"] is True
        assert result["new_level"] == 2


# ===========================================================================
# Achievements triggered by quests
# ===========================================================================
class TestQuestAchievements:
    def test_first_quest_badge_and_bonus(self, seeded_engine):
        uid = make_user(seeded_engine, "ada")
        qid = make_quest(seeded_engine, xp_reward=50)

        result = quest_service.complete_quest(seeded_engine, uid, qid, now=NOW)

        assert "first-quest-badge" in result["badges_earned"]
        assert result["new_xp"] == 100   # 50 quest + 50 First Steps bonus
        assert _user(seeded_engine, uid).xp == 100

    def test_first_quest_badge_granted_once(self, seeded_engine):
        uid = make_user(seeded_engine, "ada")
        qid = make_quest(seeded_engine, xp_reward=50)
        quest_service.complete_quest(seeded_engine, uid, qid, now=NOW)

        result = quest_service.complete_quest(seeded_engine, uid, qid, now=NOW + timedelta(days=1))

        assert result["badges_earned"] == []
        with Session(seeded_engine) as session:
            held = session.scalar(
                select(func.count()).select_from(UserBadge).where(UserBadge.user_id == uid)
            )
        assert held == 1

    def test_seven_day_streak(self, seeded_engine):
        uid = make_user(seeded_engine, "ada")
        qid = make_quest(seeded_engine, xp_reward=10)

        badges: list[str] = []
        for day in range(7):
            result = quest_service.complete_quest(
                seeded_engine, uid, qid, now=NOW + timedelta(days=day),
            )
            badges.extend(result["badges_earned"])

        assert "daily-streak-7-badge" in badges
        assert badges.count("daily-streak-7-badge") == 1

    def test_domain_expert_after_ten_domain_quests(self, seeded_engine):
        uid = make_user(seeded_engine, "ada", domain="Game Art")
        qid = make_quest(seeded_engine, "Paint a sprite", xp_reward=10, domain="Game Art")

        earned_on = None
        for day in range(10):
            result = quest_service.complete_quest(
                seeded_engine, uid, qid, now=NOW + timedelta(days=day),
            )
            if "game-art-expert-badge" in result["badges_earned"]:
                earned_on = day

        assert earned_on == 9


# ===========================================================================
# Listing
# ===========================================================================
class TestListQuests:
    def test_filters_and_progress(self, db_engine):
        uid = make_user(db_engine, "ada")
        daily = make_quest(db_engine, "Daily", quest_type="daily")
        make_quest(db_engine, "Weekly", quest_type="weekly", domain="Creative")
        make_quest(db_engine, "Retired", is_active=False)
        quest_service.complete_quest(db_engine, uid, daily, now=NOW)

        everything = quest_service.list_quests(db_engine, uid)
        assert {q["title"] for q in everything} == {"Daily", "Weekly"}

        dailies = quest_service.list_quests(db_engine, uid, quest_type="daily")
        assert [q["id"] for q in dailies] == [daily]
        assert dailies[0]["user_progress"]["completed"] is True
        assert dailies[0]["user_progress"]["progress"] == 100

        creative = quest_service.list_quests(db_engine, domain="Creative")
        assert [q["title"] for q in creative] == ["Weekly"]
        assert creative[0]["user_progress"] is None

    def test_invalid_type(self, db_engine):
        with pytest.raises(InvalidInput):
            quest_service.list_quests(db_engine, quest_type="monthly")

    def test_progress_listing(self, db_engine):
        uid = make_user(db_engine, "ada")
        qid = make_quest(db_engine, "Daily")
        quest_service.complete_quest(db_engine, uid, qid, now=NOW)

        rows = quest_service.get_quest_progress(db_engine, uid, completed=True)
        assert len(rows) == 1
        assert rows[0]["quest"]["id"] == qid
        assert quest_service.get_quest_progress(db_engine, uid, quest_type="weekly") == []
