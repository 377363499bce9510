"""
bantah.services.user_service — Find-or-Create Local Users
==========================================================

Turns :class:`VerifiedClaims` into a local :class:`User` row:

1. look the user up by the Privy subject id;
2. otherwise look up by email (synthesizing ``<id>@privy.user`` when the
   claims carry none) and reuse that account;
3. otherwise create a new user, deriving username and names from the
   real email claim only;
4. in every case, record a Telegram linked account if one is present and
   not yet stored.

Persistence errors propagate to the caller; nothing is retried.
"""

from __future__ import annotations

import logging

from sqlalchemy import Engine, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bantah.constants import FALLBACK_NAME, SYNTHETIC_EMAIL_DOMAIN, THIRD_PARTY_PASSWORD
from bantah.database.models import User
from bantah.engine.claims import VerifiedClaims, initials_from_email

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Derivation helpers
# ---------------------------------------------------------------------------
def synthetic_email(user_id: str) -> str:
    return f"{user_id}@{SYNTHETIC_EMAIL_DOMAIN}"


def derive_username(email: str | None, user_id: str) -> str:
    local_part = email.split("@", 1)[0] if email else ""
    return local_part or f"user_{user_id[-8:]}"


def derive_first_name(claims: VerifiedClaims, email: str | None) -> str:
    return (
        claims.given_name
        or claims.name
        or initials_from_email(email)
        or FALLBACK_NAME
    )


def derive_last_name(claims: VerifiedClaims) -> str:
    return claims.family_name or FALLBACK_NAME


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------
def get_user(engine: Engine, user_id: str) -> User | None:
    with Session(engine, expire_on_commit=False) as session:
        user = session.get(User, user_id)
        if user is not None:
            session.expunge(user)
        return user


def get_user_by_email(session: Session, email: str) -> User | None:
    return session.scalar(select(User).where(User.email == email))


def _find_existing(session: Session, user_id: str, email: str) -> User | None:
    user = session.get(User, user_id)
    if user is not None:
        return user
    return get_user_by_email(session, email)


# ---------------------------------------------------------------------------
# Telegram linkage
# ---------------------------------------------------------------------------
def apply_telegram_link(user: User, claims: VerifiedClaims) -> bool:
    """Record the Telegram account from *claims* on *user*.

    Returns ``True`` when the user row was changed.  A linkage that is
    already recorded is never replaced.
    """
    account = claims.telegram
    if account is None or user.telegram_id:
        return False

    user.telegram_id = account.external_id
    user.telegram_username = account.username or f"tg_{account.external_id}"
    user.is_telegram_user = True
    logger.info(
        "Linked Telegram account %s (@%s) to user %s",
        user.telegram_id, user.telegram_username, user.id,
    )
    return True


# ---------------------------------------------------------------------------
# Upsert
# ---------------------------------------------------------------------------
def upsert_privy_user(engine: Engine, claims: VerifiedClaims) -> User | None:
    """Find or create the local user for *claims*.

    Returns a detached :class:`User`, or ``None`` if the row could not be
    resolved (a concurrent insert won and then disappeared).
    """
    user_id = claims.subject
    email = claims.email or synthetic_email(user_id)

    with Session(engine, expire_on_commit=False) as session:
        user = _find_existing(session, user_id, email)

        if user is None:
            user = User(
                id=user_id,
                email=email,
                password=THIRD_PARTY_PASSWORD,
                username=derive_username(claims.email, user_id),
                first_name=derive_first_name(claims, claims.email),
                last_name=derive_last_name(claims),
                profile_image_url=claims.picture,
            )
            try:
                with session.begin_nested():   # SAVEPOINT
                    session.add(user)
                    session.flush()
                logger.info("Created user %s (%s)", user_id, email)
            except IntegrityError:
                # A concurrent request created the same id or email first.
                logger.info("User %s created concurrently; re-reading", user_id)
                user = _find_existing(session, user_id, email)
                if user is None:
                    return None

        apply_telegram_link(user, claims)
        session.commit()
        session.refresh(user)
        session.expunge(user)
        return user
