"""
tests/test_user_service.py — Find-or-Create Local Users
========================================================
Upsert by subject, email reconciliation, derived names, and Telegram
account linking.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from bantah.constants import THIRD_PARTY_PASSWORD
from bantah.database.models import User
from bantah.engine.claims import VerifiedClaims
from bantah.services.user_service import (
    apply_telegram_link,
    derive_first_name,
    derive_username,
    get_user,
    synthetic_email,
    upsert_privy_user,
)


def _count_users(engine) -> int:
    with Session(engine) as session:
        return session.scalar(select(func.count()).select_from(User))


class TestDerivation:
    def test_synthetic_email(self):
        assert synthetic_email("did:privy:abc") == "did:privy:abc@privy.user"

    def test_username_from_email(self):
        assert derive_username("alice@example.com", "did:privy:abc") == "alice"

    def test_username_fallback_uses_id_suffix(self):
        assert derive_username(None, "did:privy:cm1234567890") == "user_34567890"
        assert derive_username("@example.com", "did:privy:xy") == "user_privy:xy"

    def test_first_name_precedence(self):
        assert derive_first_name(VerifiedClaims("s", given_name="Ada", name="A L"), None) == "Ada"
        assert derive_first_name(VerifiedClaims("s", name="Ada L"), None) == "Ada L"
        assert derive_first_name(VerifiedClaims("s"), "jo.doe@x.com") == "JD"
        assert derive_first_name(VerifiedClaims("s"), "@x.com") == "User"


class TestUpsertPrivyUser:
    def test_creates_new_user(self, db_engine):
        from conftest import claims_for

        user = upsert_privy_user(db_engine, claims_for(
            "did:privy:alice", email="jo.doe@example.com", family_name="Doe",
        ))

        assert user.id == "did:privy:alice"
        assert user.email == "jo.doe@example.com"
        assert user.username == "jo.doe"
        assert user.first_name == "JD"
        assert user.last_name == "Doe"
        assert user.password == THIRD_PARTY_PASSWORD
        assert user.balance == Decimal("0")
        assert user.is_admin is False

    def test_idempotent(self, db_engine):
        from conftest import claims_for

        claims = claims_for("did:privy:alice", email="alice@example.com")
        first = upsert_privy_user(db_engine, claims)
        second = upsert_privy_user(db_engine, claims)

        assert first.id == second.id
        assert _count_users(db_engine) == 1

    def test_missing_email_gets_synthetic_address(self, db_engine):
        from conftest import claims_for

        user = upsert_privy_user(db_engine, claims_for("did:privy:cm0000abcd1234"))

        assert user.email == "did:privy:cm0000abcd1234@privy.user"
        assert user.username == "user_abcd1234"
        assert user.first_name == "User"
        assert user.last_name == "User"

    def test_existing_email_account_is_reused(self, db_engine):
        from conftest import claims_for, make_user

        make_user(db_engine, "legacy-42", email="bob@example.com", money=25)

        user = upsert_privy_user(db_engine, claims_for("did:privy:bob", email="bob@example.com"))

        assert user.id == "legacy-42"
        assert user.balance == Decimal("25")
        assert _count_users(db_engine) == 1

    def test_subject_match_wins_over_email(self, db_engine):
        from conftest import claims_for, make_user

        make_user(db_engine, "did:privy:carol", email="carol@example.com")

        user = upsert_privy_user(
            db_engine, claims_for("did:privy:carol", email="carol-new@example.com"),
        )

        assert user.email == "carol@example.com"

    def test_existing_names_not_overwritten(self, db_engine):
        from conftest import claims_for, make_user

        make_user(db_engine, "did:privy:dave")

        user = upsert_privy_user(db_engine, claims_for("did:privy:dave", given_name="Changed"))

        assert user.first_name == "Test"

    def test_returned_user_is_detached_and_loaded(self, db_engine):
        from conftest import claims_for

        user = upsert_privy_user(db_engine, claims_for("did:privy:erin", email="e@x.com"))

        # Attributes readable after the session closed
        assert user.created_at is not None
        assert get_user(db_engine, "did:privy:erin").email == "e@x.com"


class TestTelegramLinking:
    def test_new_user_linked(self, db_engine):
        from conftest import claims_for

        user = upsert_privy_user(db_engine, claims_for(
            "did:privy:tg", telegram_id="555", telegram_username="tguser",
        ))

        assert user.telegram_id == "555"
        assert user.telegram_username == "tguser"
        assert user.is_telegram_user is True

    def test_username_fallback(self, db_engine):
        from conftest import claims_for

        user = upsert_privy_user(db_engine, claims_for("did:privy:tg", telegram_id="555"))

        assert user.telegram_username == "tg_555"

    def test_existing_user_gets_linked(self, db_engine):
        from conftest import claims_for, make_user

        make_user(db_engine, "did:privy:frank")

        user = upsert_privy_user(db_engine, claims_for("did:privy:frank", telegram_id="777"))

        assert user.telegram_id == "777"
        assert get_user(db_engine, "did:privy:frank").is_telegram_user is True

    def test_email_matched_user_gets_linked(self, db_engine):
        from conftest import claims_for, make_user

        make_user(db_engine, "legacy-9", email="gina@example.com")

        user = upsert_privy_user(db_engine, claims_for(
            "did:privy:gina", email="gina@example.com", telegram_id="888",
        ))

        assert user.id == "legacy-9"
        assert user.telegram_id == "888"

    def test_existing_linkage_never_replaced(self, db_engine):
        from conftest import claims_for

        upsert_privy_user(db_engine, claims_for(
            "did:privy:tg", telegram_id="111", telegram_username="a",
        ))
        user = upsert_privy_user(db_engine, claims_for(
            "did:privy:tg", telegram_id="222", telegram_username="b",
        ))

        assert user.telegram_id == "111"
        assert user.telegram_username == "a"

    def test_different_account_on_linked_user_is_noop(self):
        from conftest import claims_for

        user = User(id="did:privy:j", email="j@x.com", telegram_id="1", is_telegram_user=True)

        assert apply_telegram_link(user, claims_for("did:privy:j", telegram_id="2")) is False
        assert user.telegram_id == "1"

    def test_relinking_same_account_is_noop(self):
        from conftest import claims_for

        claims = claims_for("did:privy:h", telegram_id="1", telegram_username="h")
        user = User(id="did:privy:h", email="h@x.com")

        assert apply_telegram_link(user, claims) is True
        assert apply_telegram_link(user, claims) is False

    def test_no_telegram_account(self):
        from conftest import claims_for

        user = User(id="did:privy:i", email="i@x.com", is_telegram_user=False)

        assert apply_telegram_link(user, claims_for("did:privy:i")) is False
        assert user.telegram_id is None
