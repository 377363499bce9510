"""
tests/test_notifications.py — Notification Store
=================================================
Service-level delivery rules (self-suppression, mutes, in-app toggle),
inbox ownership, preferences, and the HTTP endpoints.
"""

from __future__ import annotations

import pytest

from bantah.database.engine import get_session
from bantah.database.models import NotificationType
from bantah.errors import NotFound, ValidationFailed
from bantah.services import notification_service as ns

A = "did:privy:alice"
B = "did:privy:bob"


def _send(engine, user_id=A, *, actor_id=B, challenge_id=None, title="Hello"):
    with get_session(engine) as session:
        row = ns.notify(
            session,
            user_id=user_id,
            kind=NotificationType.CHALLENGE_RECEIVED,
            title=title,
            message="body",
            challenge_id=challenge_id,
            actor_id=actor_id,
            data={"k": "v"},
        )
        session.flush()
        return row.id if row is not None else None


@pytest.fixture
def users(db_engine):
    from conftest import make_user

    make_user(db_engine, A)
    make_user(db_engine, B)
    return db_engine


# ===========================================================================
# Delivery
# ===========================================================================
class TestNotify:
    def test_stored_and_listed(self, users):
        _send(users)

        page = ns.list_notifications(users, A)

        assert page["total"] == 1
        [item] = page["data"]
        assert item["type"] == "challenge_received"
        assert item["read"] is False
        assert item["data"] == {"k": "v"}
        assert item["actorId"] == B

    def test_self_notification_skipped(self, users):
        assert _send(users, actor_id=A) is None
        assert ns.list_notifications(users, A)["total"] == 0

    def test_in_app_disabled(self, users):
        ns.update_preferences(users, A, {"enableInApp": False})

        assert _send(users) is None

    def test_muted_actor(self, users):
        ns.mute_user(users, A, B)

        assert _send(users) is None
        assert _send(users, actor_id=None) is not None

    def test_muted_challenge(self, users):
        from conftest import make_user
        from bantah.services.challenge_service import create_challenge

        make_user(users, "did:privy:carol", money=50)
        challenge = create_challenge(
            users, "did:privy:carol", challenged_id=A, title="t", category="c", amount=1,
        )
        ns.mute_challenge(users, A, challenge["id"])

        assert _send(users, challenge_id=challenge["id"]) is None
        assert _send(users) is not None


# ===========================================================================
# Inbox
# ===========================================================================
class TestInbox:
    def test_newest_first_and_paging(self, users):
        for i in range(5):
            _send(users, title=f"n{i}")

        page = ns.list_notifications(users, A, limit=2, offset=1)

        assert [n["title"] for n in page["data"]] == ["n3", "n2"]
        assert page["total"] == 5
        assert page["limit"] == 2

    def test_limit_capped(self, users):
        assert ns.list_notifications(users, A, limit=1000)["limit"] == ns.MAX_PAGE_SIZE

    def test_unread_count_and_mark_read(self, users):
        first = _send(users)
        _send(users)

        ns.mark_read(users, A, first)

        assert ns.unread_count(users, A) == 1
        assert ns.mark_all_read(users, A) == 1
        assert ns.unread_count(users, A) == 0

    def test_foreign_notification_is_not_found(self, users):
        theirs = _send(users, user_id=B, actor_id=A)

        with pytest.raises(NotFound, match="Notification not found"):
            ns.mark_read(users, A, theirs)
        with pytest.raises(NotFound):
            ns.delete_notification(users, A, theirs)
        assert ns.unread_count(users, B) == 1

    def test_delete_and_clear(self, users):
        first = _send(users)
        _send(users)
        _send(users, user_id=B, actor_id=A)

        ns.delete_notification(users, A, first)
        assert ns.list_notifications(users, A)["total"] == 1

        assert ns.clear_all(users, A) == 1
        assert ns.list_notifications(users, B)["total"] == 1


# ===========================================================================
# Preferences
# ===========================================================================
class TestPreferences:
    def test_defaults_without_row(self, users):
        assert ns.get_preferences(users, A) == ns.DEFAULT_PREFERENCES

    def test_partial_update_keeps_other_fields(self, users):
        ns.update_preferences(users, A, {"enablePush": False})
        prefs = ns.update_preferences(users, A, {"notificationFrequency": "daily"})

        assert prefs["enablePush"] is False
        assert prefs["notificationFrequency"] == "daily"
        assert prefs["enableInApp"] is True

    def test_frequency_validated(self, users):
        with pytest.raises(ValidationFailed):
            ns.update_preferences(users, A, {"notificationFrequency": "x" * 21})
        with pytest.raises(ValidationFailed):
            ns.update_preferences(users, A, {"notificationFrequency": "  "})

    def test_id_lists_deduplicated_as_strings(self, users):
        prefs = ns.update_preferences(users, A, {"mutedChallenges": [3, "3", 7]})

        assert prefs["mutedChallenges"] == ["3", "7"]

    def test_mute_unmute_idempotent(self, users):
        ns.mute_challenge(users, A, 5)
        ns.mute_challenge(users, A, 5)
        assert ns.get_preferences(users, A)["mutedChallenges"] == ["5"]

        ns.unmute_challenge(users, A, 5)
        ns.unmute_challenge(users, A, 5)
        assert ns.get_preferences(users, A)["mutedChallenges"] == []

    def test_cannot_mute_self(self, users):
        with pytest.raises(ValidationFailed):
            ns.mute_user(users, A, A)


# ===========================================================================
# HTTP endpoints
# ===========================================================================
class TestNotificationRoutes:
    def test_list_and_unread_count(self, client, login, db_engine):
        headers = login(A)
        login(B)
        _send(db_engine)

        listing = client.get("/api/notifications", headers=headers).json()
        count = client.get("/api/notifications/unread-count", headers=headers).json()

        assert listing["total"] == 1
        assert listing["limit"] == 20
        assert count == {"unreadCount": 1}

    def test_mark_read_put_and_patch(self, client, login, db_engine):
        headers = login(A)
        login(B)
        first = _send(db_engine)
        second = _send(db_engine)

        put = client.put(f"/api/notifications/{first}/read", headers=headers)
        patch = client.patch(f"/api/notifications/{second}/read", headers=headers)

        assert put.json() == {"success": True, "message": "Notification marked as read"}
        assert patch.status_code == 200
        assert ns.unread_count(db_engine, A) == 0

    def test_read_all_and_clear_all(self, client, login, db_engine):
        headers = login(A)
        login(B)
        _send(db_engine)
        _send(db_engine)

        assert client.put("/api/notifications/read-all", headers=headers).json()["updated"] == 2
        assert client.delete("/api/notifications/clear-all", headers=headers).json()["deleted"] == 2

    def test_foreign_notification_404(self, client, login, db_engine):
        headers = login(A)
        login(B)
        theirs = _send(db_engine, user_id=B, actor_id=A)

        resp = client.delete(f"/api/notifications/{theirs}", headers=headers)

        assert resp.status_code == 404
        assert resp.json()["message"] == "Notification not found"

    def test_preferences_roundtrip(self, client, login):
        headers = login(A)

        assert client.get("/api/notifications/preferences", headers=headers).json()[
            "enableInApp"
        ] is True
        resp = client.put(
            "/api/notifications/preferences",
            json={"enableTelegram": True, "mutedChallenges": [1, 2]},
            headers=headers,
        )

        assert resp.json()["success"] is True
        assert resp.json()["preferences"]["enableTelegram"] is True
        assert resp.json()["preferences"]["mutedChallenges"] == ["1", "2"]

    def test_mute_endpoints(self, client, login):
        headers = login(A)

        resp = client.post(f"/api/notifications/mute-user/{B}", headers=headers)
        assert resp.json()["preferences"]["mutedUsers"] == [B]

        resp = client.post(f"/api/notifications/unmute-user/{B}", headers=headers)
        assert resp.json()["preferences"]["mutedUsers"] == []

        resp = client.post("/api/notifications/mute-challenge/9", headers=headers)
        assert resp.json()["message"] == "Challenge muted"

    def test_mute_self_rejected(self, client, login):
        headers = login(A)

        resp = client.post(f"/api/notifications/mute-user/{A}", headers=headers)

        assert resp.status_code == 400
