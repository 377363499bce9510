"""
tests/test_claims.py — Claims Normalization & Name Heuristics
==============================================================
Covers parsing of the loosely-typed Privy payloads (token body, user API
profile, client SDK shape) and the initials fallback.
"""

from __future__ import annotations

import pytest

from bantah.engine.claims import (
    LinkedAccount,
    VerifiedClaims,
    initials_from_email,
    merge_profile,
    parse_claims,
)


class TestInitialsFromEmail:
    @pytest.mark.parametrize(
        ("email", "expected"),
        [
            ("jo.doe@x.com", "JD"),
            ("doe@x.com", "DO"),
            ("@x.com", ""),
            ("", ""),
            (None, ""),
            ("mary-jane_watson@x.com", "MJ"),
            ("a@x.com", "A"),
            ("..__@x.com", ""),
        ],
    )
    def test_initials(self, email, expected):
        assert initials_from_email(email) == expected


class TestParseClaims:
    def test_sub_is_subject(self):
        claims = parse_claims({"sub": "did:privy:abc", "email": "a@b.co"})
        assert claims == VerifiedClaims(subject="did:privy:abc", email="a@b.co")

    def test_user_id_alias_accepted(self):
        claims = parse_claims({"userId": "did:privy:xyz"})
        assert claims is not None
        assert claims.subject == "did:privy:xyz"

    def test_sub_wins_over_alias(self):
        claims = parse_claims({"sub": "did:privy:a", "userId": "did:privy:b"})
        assert claims.subject == "did:privy:a"

    @pytest.mark.parametrize("payload", [{}, {"sub": ""}, {"sub": "   "}, {"email": "a@b.co"}])
    def test_missing_subject_returns_none(self, payload):
        assert parse_claims(payload) is None

    def test_blank_and_non_string_fields_become_none(self):
        claims = parse_claims({
            "sub": "did:privy:a",
            "email": "  ",
            "given_name": {"nested": True},
            "family_name": None,
        })
        assert claims.email is None
        assert claims.given_name is None
        assert claims.family_name is None

    def test_names_and_picture(self):
        claims = parse_claims({
            "sub": "did:privy:a",
            "given_name": "Ada",
            "family_name": "Lovelace",
            "name": "Ada L.",
            "picture": "https://img/1.png",
        })
        assert claims.given_name == "Ada"
        assert claims.family_name == "Lovelace"
        assert claims.name == "Ada L."
        assert claims.picture == "https://img/1.png"

    def test_camel_case_linked_telegram_account(self):
        claims = parse_claims({
            "sub": "did:privy:a",
            "linkedAccounts": [
                {"type": "telegram", "telegramUserId": 12345, "telegramUsername": "ada"},
            ],
        })
        assert claims.telegram == LinkedAccount(
            type="telegram", external_id="12345", username="ada",
        )

    def test_snake_case_linked_accounts_from_user_api(self):
        claims = parse_claims({
            "sub": "did:privy:a",
            "linked_accounts": [
                {"type": "email", "address": "ada@example.com"},
                {"type": "telegram", "telegram_user_id": "999", "username": "ada_tg"},
            ],
        })
        assert claims.email == "ada@example.com"
        assert claims.telegram.external_id == "999"
        assert claims.telegram.username == "ada_tg"

    def test_telegram_without_id_is_ignored(self):
        claims = parse_claims({
            "sub": "did:privy:a",
            "linkedAccounts": [{"type": "telegram", "telegramUsername": "ghost"}],
        })
        assert claims.telegram is None

    def test_malformed_linked_accounts_are_skipped(self):
        claims = parse_claims({
            "sub": "did:privy:a",
            "linkedAccounts": ["nope", {"no_type": 1}, None],
        })
        assert claims.linked_accounts == ()

    def test_linked_accounts_not_a_list(self):
        claims = parse_claims({"sub": "did:privy:a", "linkedAccounts": "telegram"})
        assert claims.linked_accounts == ()


class TestMergeProfile:
    def test_profile_fills_gaps_only(self):
        claims = VerifiedClaims(subject="did:privy:a", given_name="Token")
        merged = merge_profile(claims, {
            "id": "did:privy:a",
            "given_name": "Profile",
            "linked_accounts": [
                {"type": "email", "address": "p@example.com"},
                {"type": "telegram", "telegram_user_id": "77"},
            ],
        })
        assert merged.given_name == "Token"
        assert merged.email == "p@example.com"
        assert merged.telegram.external_id == "77"

    def test_profile_for_other_user_ignored(self):
        claims = VerifiedClaims(subject="did:privy:a")
        merged = merge_profile(claims, {"id": "did:privy:b", "email": "b@example.com"})
        assert merged is claims
