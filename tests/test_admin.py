"""
tests/test_admin.py — Audited Admin Operations
===============================================
Bonus awards, reconciliation and the audit log, at service level and via
the ``/api/admin`` endpoints.
"""

from __future__ import annotations

from decimal import Decimal

import pytest
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from bantah.database.models import AdminLog, Notification, User
from bantah.errors import InvalidAmount, NotFound, ValidationFailed
from bantah.services import admin_service
from bantah.services.wallet_service import get_balance

ADMIN = "did:privy:admin"
A = "did:privy:alice"


@pytest.fixture
def seeded(db_engine):
    from conftest import make_user

    make_user(db_engine, ADMIN, is_admin=True)
    make_user(db_engine, A, money=10)
    return db_engine


# ===========================================================================
# Service level
# ===========================================================================
class TestAwardBonus:
    def test_money_bonus(self, seeded):
        result = admin_service.award_bonus(
            seeded, actor_id=ADMIN, user_id=A, amount=15, reason="streak",
        )

        assert result["balance"] == Decimal("25")
        assert result["transaction"]["type"] == "bonus"
        assert result["transaction"]["description"] == "streak"

    def test_coin_bonus_notifies_and_audits(self, seeded):
        admin_service.award_bonus(
            seeded, actor_id=ADMIN, user_id=A, amount=50, currency="coins",
        )

        assert get_balance(seeded, A).coins == Decimal("50")
        with Session(seeded) as session:
            [log] = session.scalars(
                select(AdminLog).where(AdminLog.action_type == "MANUAL_AWARD")
            ).all()
            [note] = session.scalars(
                select(Notification).where(Notification.user_id == A)
            ).all()
        assert log.target_id == A
        assert log.before_snapshot == {"balance": "10.00", "coins": "0.00"}
        assert log.after_snapshot["coins"] == "50.00"
        assert note.type == "bonus_received"

    def test_unknown_user(self, seeded):
        with pytest.raises(NotFound):
            admin_service.award_bonus(seeded, actor_id=ADMIN, user_id="nobody", amount=1)

    def test_unknown_currency(self, seeded):
        with pytest.raises(ValidationFailed):
            admin_service.award_bonus(
                seeded, actor_id=ADMIN, user_id=A, amount=1, currency="gold",
            )

    def test_non_positive_amount(self, seeded):
        with pytest.raises(InvalidAmount):
            admin_service.award_bonus(seeded, actor_id=ADMIN, user_id=A, amount=0)


class TestAdminChallengeCreate:
    def test_open_without_escrow(self, seeded):
        challenge = admin_service.create_admin_challenge(
            seeded, actor_id=ADMIN, title="Derby winner", category="sports", amount=20,
            bonus_side="YES", bonus_multiplier=Decimal("1.5"),
        )

        assert challenge["status"] == "open"
        assert challenge["adminCreated"] is True
        assert challenge["challenged"] is None
        assert challenge["bonusSide"] == "yes"
        assert get_balance(seeded, ADMIN).balance == Decimal("0")

    @pytest.mark.parametrize(
        "kwargs",
        [{"bonus_side": "maybe"}, {"bonus_multiplier": Decimal("0")}, {"bonus_amount": -1}],
    )
    def test_bonus_validation(self, seeded, kwargs):
        with pytest.raises((ValidationFailed, InvalidAmount)):
            admin_service.create_admin_challenge(
                seeded, actor_id=ADMIN, title="t", category="c", amount=1, **kwargs,
            )

    def test_create_is_audited(self, seeded):
        challenge = admin_service.create_admin_challenge(
            seeded, actor_id=ADMIN, title="t", category="c", amount=1,
        )

        [entry] = admin_service.list_admin_log(seeded)
        assert entry["actionType"] == "CREATE"
        assert entry["targetId"] == str(challenge["id"])
        assert entry["before"] is None
        assert entry["after"]["amount"] == "1.00"


# ===========================================================================
# HTTP endpoints
# ===========================================================================
class TestAdminRoutes:
    def test_bonus_endpoint(self, client, login):
        admin = login(ADMIN, is_admin=True)
        login(A)

        resp = client.post(
            "/api/admin/bonus",
            json={"userId": A, "amount": 5, "currency": "money", "reason": "promo"},
            headers=admin,
        )

        assert resp.status_code == 200
        assert resp.json()["balance"] == 5

    def test_status_endpoint(self, client, login):
        admin = login(ADMIN, is_admin=True)
        challenge = client.post(
            "/api/admin/challenges",
            json={"title": "t", "category": "c", "amount": 1},
            headers=admin,
        ).json()

        resp = client.patch(
            f"/api/admin/challenges/{challenge['id']}/status",
            json={"status": "cancelled", "reason": "duplicate"},
            headers=admin,
        )

        assert resp.status_code == 200
        assert resp.json()["status"] == "cancelled"
        assert resp.json()["refunds"] == {}

    def test_reconcile_endpoint_reports_drift(self, client, login, db_engine):
        admin = login(ADMIN, is_admin=True)
        login(A, money=10)
        with Session(db_engine) as session:
            session.execute(update(User).where(User.id == A).values(coins=Decimal(3)))
            session.commit()

        resp = client.post("/api/admin/reconcile", json={"userIds": [A]}, headers=admin)

        assert resp.status_code == 200
        body = resp.json()
        assert body["checked"] == 2
        assert body["drifted"] == 1
        assert body["drift"][0]["currency"] == "coins"

    def test_reconcile_without_body(self, client, login):
        admin = login(ADMIN, is_admin=True)

        resp = client.post("/api/admin/reconcile", headers=admin)

        assert resp.status_code == 200
        assert resp.json()["drifted"] == 0

    def test_audit_log_lists_newest_first(self, client, login):
        admin = login(ADMIN, is_admin=True)
        login(A)
        client.post("/api/admin/bonus", json={"userId": A, "amount": 1}, headers=admin)
        client.post("/api/admin/bonus", json={"userId": A, "amount": 2}, headers=admin)

        entries = client.get("/api/admin/audit-log", headers=admin).json()

        assert [e["actionType"] for e in entries] == ["MANUAL_AWARD", "MANUAL_AWARD"]
        assert entries[0]["after"]["balance"] == "3.00"
