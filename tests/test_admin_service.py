"""
tests/test_admin_service.py — Audited Admin Actions & Notifications
====================================================================
"""

from __future__ import annotations

import pytest
from sqlalchemy.orm import Session

from conftest import NOW, make_user
from forge.database.models import User
from forge.exceptions import InvalidXPAmount, UserNotFound
from forge.services import admin_service, notification_service, xp_service


class TestManualAward:
    def test_award_is_audited(self, db_engine):
        admin = make_user(db_engine, "root", role="admin")
        uid = make_user(db_engine, "ada", xp=900)

        award = admin_service.award_manual_xp(
            db_engine, actor_id=admin, user_id=uid, amount=250, reason="Jam winner", now=NOW,
        )

        assert award.new_xp == 1150
        assert award.leveled_up
        entries = admin_service.get_audit_log(db_engine)
        assert len(entries) == 1
        entry = entries[0]
        assert entry["action_type"] == "MANUAL_AWARD"
        assert entry["target_id"] == uid
        assert entry["reason"] == "Jam winner"
        assert entry["before_snapshot"]["xp"] == 900
        assert entry["after_snapshot"]["xp"] == 1150
        assert entry["after_snapshot"]["level"] == 2

    @pytest.mark.parametrize("amount", [0, 10_001])
    def test_amount_outside_manual_limits(self, db_engine, amount):
        uid = make_user(db_engine, "ada")
        with pytest.raises(InvalidXPAmount, match="allowed 1-10000"):
            admin_service.award_manual_xp(db_engine, actor_id="root", user_id=uid, amount=amount)
        with Session(db_engine) as session:
            assert session.get(User, uid).xp == 0
        assert admin_service.get_audit_log(db_engine) == []

    def test_unknown_user(self, db_engine):
        with pytest.raises(UserNotFound):
            admin_service.award_manual_xp(db_engine, actor_id="root", user_id="ghost", amount=10)

    def test_audit_log_paging_newest_first(self, db_engine):
        uid = make_user(db_engine, "ada")
        for amount in (10, 20, 30):
            admin_service.award_manual_xp(db_engine, actor_id="root", user_id=uid, amount=amount)

        newest = admin_service.get_audit_log(db_engine, limit=1)
        assert newest[0]["after_snapshot"]["xp"] == 60
        older = admin_service.get_audit_log(db_engine, limit=5, offset=1)
        assert [e["after_snapshot"]["xp"] for e in older] == [30, 10]


class TestRowToDict:
    def test_none(self):
        assert admin_service.row_to_dict(None) is None

    def test_datetimes_serialized(self, db_engine):
        uid = make_user(db_engine, "ada")
        with Session(db_engine) as session:
            data = admin_service.row_to_dict(session.get(User, uid))
        assert data["username"] == "ada"
        assert isinstance(data["created_at"], str)


class TestNotifications:
    def test_list_and_mark_read(self, db_engine):
        uid = make_user(db_engine, "ada", xp=990)
        xp_service.award_xp(db_engine, uid, 20, "quest_completion", now=NOW)

        inbox = notification_service.list_notifications(db_engine, uid)
        assert inbox["unread_count"] == 1
        assert inbox["notifications"][0]["type"] == "level_up"

        assert notification_service.mark_all_read(db_engine, uid) == 1
        assert notification_service.list_notifications(db_engine, uid, unread_only=True) == {
            "notifications": [],
            "unread_count": 0,
        }
