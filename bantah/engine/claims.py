"""
bantah.engine.claims — Verified Identity Claims
================================================

Privy hands back a loosely-typed payload: the JWT body carries ``sub`` (the
user's DID) and little else, while the user API returns ``linked_accounts``
in snake_case and the client SDK reports ``linkedAccounts`` in camelCase.
Everything is normalized here into a frozen :class:`VerifiedClaims` whose
optional fields are checked one by one.  No I/O.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from typing import Any

from bantah.constants import TELEGRAM_ACCOUNT_TYPE

__all__ = [
    "LinkedAccount",
    "VerifiedClaims",
    "initials_from_email",
    "merge_profile",
    "parse_claims",
]

_NON_ALNUM = re.compile(r"[^0-9A-Za-z]+")


# ---------------------------------------------------------------------------
# Data types
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class LinkedAccount:
    """An external account attached to the Privy identity."""

    type: str
    external_id: str | None = None
    username: str | None = None
    address: str | None = None  # email / wallet accounts


@dataclass(frozen=True, slots=True)
class VerifiedClaims:
    """Attributes about an authenticated identity.

    Only ``subject`` is guaranteed; callers must check every other field.
    """

    subject: str
    email: str | None = None
    given_name: str | None = None
    family_name: str | None = None
    name: str | None = None
    picture: str | None = None
    linked_accounts: tuple[LinkedAccount, ...] = field(default_factory=tuple)

    def linked(self, account_type: str) -> LinkedAccount | None:
        """First linked account of *account_type*, or ``None``."""
        for account in self.linked_accounts:
            if account.type == account_type:
                return account
        return None

    @property
    def telegram(self) -> LinkedAccount | None:
        account = self.linked(TELEGRAM_ACCOUNT_TYPE)
        if account is None or not account.external_id:
            return None
        return account


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------
def _text(value: Any) -> str | None:
    """Coerce a claim value to a stripped string; blanks become ``None``."""
    if value is None or isinstance(value, (dict, list, tuple, bool)):
        return None
    text = str(value).strip()
    return text or None


def _first(data: Mapping[str, Any], *keys: str) -> str | None:
    for key in keys:
        value = _text(data.get(key))
        if value is not None:
            return value
    return None


def _parse_linked_account(raw: Any) -> LinkedAccount | None:
    if not isinstance(raw, Mapping):
        return None
    account_type = _text(raw.get("type"))
    if account_type is None:
        return None
    # Provider-specific id/username keys: telegramUserId, telegram_user_id, ...
    prefix = account_type.lower()
    return LinkedAccount(
        type=prefix,
        external_id=_first(
            raw, f"{prefix}UserId", f"{prefix}_user_id", "subject", "id",
        ),
        username=_first(raw, f"{prefix}Username", f"{prefix}_username", "username"),
        address=_first(raw, "address", "email"),
    )


def _parse_linked_accounts(raw: Any) -> tuple[LinkedAccount, ...]:
    if not isinstance(raw, Iterable) or isinstance(raw, (str, bytes, Mapping)):
        return ()
    accounts = (_parse_linked_account(item) for item in raw)
    return tuple(a for a in accounts if a is not None)


def parse_claims(payload: Mapping[str, Any]) -> VerifiedClaims | None:
    """Normalize a raw claims mapping.

    Returns ``None`` when no usable subject identifier is present (neither
    ``sub`` nor the ``userId`` alias).
    """
    subject = _first(payload, "sub", "userId", "user_id")
    if subject is None:
        return None

    linked = _parse_linked_accounts(
        payload.get("linkedAccounts", payload.get("linked_accounts"))
    )
    email = _text(payload.get("email"))
    if email is None:
        email_account = next((a for a in linked if a.type == "email"), None)
        if email_account is not None:
            email = email_account.address

    return VerifiedClaims(
        subject=subject,
        email=email,
        given_name=_first(payload, "given_name", "givenName", "first_name"),
        family_name=_first(payload, "family_name", "familyName", "last_name"),
        name=_text(payload.get("name")),
        picture=_first(payload, "picture", "profile_image_url"),
        linked_accounts=linked,
    )


def merge_profile(claims: VerifiedClaims, profile: Mapping[str, Any]) -> VerifiedClaims:
    """Fill gaps in *claims* from a Privy user-API profile.

    Token claims win; the profile only supplies fields the token lacked.
    A profile for a different user is ignored.
    """
    profile_id = _first(profile, "id", "sub")
    if profile_id is not None and profile_id != claims.subject:
        return claims

    parsed = parse_claims({**profile, "sub": claims.subject})
    if parsed is None:
        return claims

    return replace(
        claims,
        email=claims.email or parsed.email,
        given_name=claims.given_name or parsed.given_name,
        family_name=claims.family_name or parsed.family_name,
        name=claims.name or parsed.name,
        picture=claims.picture or parsed.picture,
        linked_accounts=claims.linked_accounts or parsed.linked_accounts,
    )


# ---------------------------------------------------------------------------
# Name heuristics
# ---------------------------------------------------------------------------
def initials_from_email(email: str | None) -> str:
    """Two-letter initials from an email's local part.

    ``jo.doe@x.com`` → ``JD``; ``doe@x.com`` → ``DO``; ``@x.com`` → ``""``.
    """
    if not email:
        return ""
    local_part = email.split("@", 1)[0]
    tokens = [t for t in _NON_ALNUM.split(local_part) if t]
    if not tokens:
        return ""
    if len(tokens) >= 2:
        return (tokens[0][0] + tokens[1][0]).upper()
    return tokens[0][:2].upper()
