"""
bantah.services.session_service — Cookie Sessions
==================================================

Opaque, DB-backed login sessions.  A verified bearer token can be exchanged
for a session token (set as an HttpOnly cookie); later requests without an
``Authorization`` header are resolved through it.  Expired rows are pruned
whenever sessions are created or resolved.
"""

from __future__ import annotations

import logging
import secrets
from datetime import UTC, datetime, timedelta

from sqlalchemy import Engine, delete, select

from bantah.database.engine import get_session
from bantah.database.models import AuthSession, User

logger = logging.getLogger(__name__)


def _normalize_dt(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _prune_expired(session, now: datetime) -> None:
    session.execute(delete(AuthSession).where(AuthSession.expires_at < now))


def create_session(engine: Engine, user_id: str, *, ttl_hours: int) -> tuple[str, datetime]:
    """Persist a new session for *user_id*; returns ``(token, expires_at)``."""
    now = datetime.now(UTC)
    token = secrets.token_urlsafe(48)
    expires_at = now + timedelta(hours=ttl_hours)
    with get_session(engine) as session:
        _prune_expired(session, now)
        session.add(AuthSession(token=token, user_id=user_id, expires_at=expires_at))
    logger.info("Session opened for user %s (expires %s)", user_id, expires_at.isoformat())
    return token, expires_at


def resolve_session(engine: Engine, token: str) -> User | None:
    """Return the detached user behind *token*, or ``None`` if the session is
    unknown or expired."""
    if not token:
        return None
    now = datetime.now(UTC)
    with get_session(engine) as session:
        row = session.get(AuthSession, token)
        if row is None:
            return None
        if _normalize_dt(row.expires_at) <= now:
            session.delete(row)
            return None
        user = session.scalar(select(User).where(User.id == row.user_id))
        if user is not None:
            session.expunge(user)
        return user


def revoke_session(engine: Engine, token: str) -> bool:
    """Delete the session row.  Returns ``True`` if one existed."""
    with get_session(engine) as session:
        result = session.execute(delete(AuthSession).where(AuthSession.token == token))
        removed = result.rowcount > 0
    if removed:
        logger.info("Session revoked")
    return removed


def revoke_user_sessions(engine: Engine, user_id: str) -> int:
    with get_session(engine) as session:
        result = session.execute(delete(AuthSession).where(AuthSession.user_id == user_id))
        return result.rowcount
