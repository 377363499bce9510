"""
bantah.services.notification_service — Notification Store
===========================================================

Per-user inbox plus delivery preferences.

* :func:`notify` is session-scoped so challenge mutations and their
  notifications commit together.  It honours the recipient's preferences:
  nothing is stored when in-app delivery is off, the challenge is muted, or
  the acting user is muted.
* Every other function takes the engine and checks ownership; a
  notification id that belongs to someone else is reported as not found.
* Preferences are upserted on first write and read with defaults when the
  row is absent.  Muted ids are stored as strings.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import Engine, delete, func, select, update
from sqlalchemy.orm import Session

from bantah.database.engine import get_session
from bantah.database.models import Notification, NotificationPreference, NotificationType
from bantah.errors import NotFound, ValidationFailed

logger = logging.getLogger(__name__)

DEFAULT_PREFERENCES: dict[str, Any] = {
    "enablePush": True,
    "enableTelegram": False,
    "enableInApp": True,
    "notificationFrequency": "immediate",
    "mutedChallenges": [],
    "mutedUsers": [],
}

# camelCase API field → model attribute
_PREFERENCE_FIELDS = {
    "enablePush": "enable_push",
    "enableTelegram": "enable_telegram",
    "enableInApp": "enable_in_app",
    "notificationFrequency": "notification_frequency",
    "mutedChallenges": "muted_challenges",
    "mutedUsers": "muted_users",
}

MAX_PAGE_SIZE = 100


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------
def notification_to_dict(n: Notification) -> dict:
    return {
        "id": n.id,
        "userId": n.user_id,
        "type": n.type,
        "title": n.title,
        "message": n.message,
        "data": n.data,
        "challengeId": n.challenge_id,
        "actorId": n.actor_id,
        "read": n.read,
        "createdAt": n.created_at.isoformat() if n.created_at else None,
    }


def _preferences_to_dict(prefs: NotificationPreference | None) -> dict:
    if prefs is None:
        return {**DEFAULT_PREFERENCES, "mutedChallenges": [], "mutedUsers": []}
    return {
        "enablePush": prefs.enable_push,
        "enableTelegram": prefs.enable_telegram,
        "enableInApp": prefs.enable_in_app,
        "notificationFrequency": prefs.notification_frequency,
        "mutedChallenges": list(prefs.muted_challenges or []),
        "mutedUsers": list(prefs.muted_users or []),
    }


def _id_list(value: Any, field: str) -> list[str]:
    if not isinstance(value, (list, tuple)):
        raise ValidationFailed(f"{field} must be a list")
    ids: list[str] = []
    for item in value:
        text = str(item).strip()
        if text and text not in ids:
            ids.append(text)
    return ids


# ---------------------------------------------------------------------------
# Delivery (session-scoped)
# ---------------------------------------------------------------------------
def is_muted(
    prefs: NotificationPreference | None,
    *,
    challenge_id: int | None = None,
    actor_id: str | None = None,
) -> bool:
    if prefs is None:
        return False
    if not prefs.enable_in_app:
        return True
    if challenge_id is not None and str(challenge_id) in (prefs.muted_challenges or []):
        return True
    if actor_id is not None and actor_id in (prefs.muted_users or []):
        return True
    return False


def notify(
    session: Session,
    *,
    user_id: str,
    kind: NotificationType,
    title: str,
    message: str | None = None,
    challenge_id: int | None = None,
    actor_id: str | None = None,
    data: dict | None = None,
) -> Notification | None:
    """Queue a notification for *user_id* in the caller's transaction.

    Returns ``None`` when the recipient's preferences suppress it.
    """
    if actor_id is not None and actor_id == user_id:
        return None
    prefs = session.get(NotificationPreference, user_id)
    if is_muted(prefs, challenge_id=challenge_id, actor_id=actor_id):
        logger.debug("Notification %s for %s suppressed by preferences", kind, user_id)
        return None

    row = Notification(
        user_id=user_id,
        type=kind.value,
        title=title,
        message=message,
        data=data,
        challenge_id=challenge_id,
        actor_id=actor_id,
    )
    session.add(row)
    return row


# ---------------------------------------------------------------------------
# Inbox
# ---------------------------------------------------------------------------
def list_notifications(
    engine: Engine, user_id: str, *, limit: int = 20, offset: int = 0
) -> dict:
    limit = max(1, min(limit, MAX_PAGE_SIZE))
    offset = max(0, offset)
    with get_session(engine) as session:
        rows = session.scalars(
            select(Notification)
            .where(Notification.user_id == user_id)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .limit(limit)
            .offset(offset)
        ).all()
        total = session.scalar(
            select(func.count(Notification.id)).where(Notification.user_id == user_id)
        ) or 0
        return {
            "data": [notification_to_dict(n) for n in rows],
            "total": total,
            "limit": limit,
            "offset": offset,
        }


def unread_count(engine: Engine, user_id: str) -> int:
    with get_session(engine) as session:
        return session.scalar(
            select(func.count(Notification.id)).where(
                Notification.user_id == user_id,
                Notification.read.is_(False),
            )
        ) or 0


def _owned(session: Session, user_id: str, notification_id: int) -> Notification:
    row = session.scalar(
        select(Notification).where(
            Notification.id == notification_id,
            Notification.user_id == user_id,
        )
    )
    if row is None:
        raise NotFound("Notification not found")
    return row


def mark_read(engine: Engine, user_id: str, notification_id: int) -> None:
    with get_session(engine) as session:
        _owned(session, user_id, notification_id).read = True


def mark_all_read(engine: Engine, user_id: str) -> int:
    with get_session(engine) as session:
        result = session.execute(
            update(Notification)
            .where(Notification.user_id == user_id, Notification.read.is_(False))
            .values(read=True)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount


def delete_notification(engine: Engine, user_id: str, notification_id: int) -> None:
    with get_session(engine) as session:
        session.delete(_owned(session, user_id, notification_id))


def clear_all(engine: Engine, user_id: str) -> int:
    with get_session(engine) as session:
        result = session.execute(
            delete(Notification)
            .where(Notification.user_id == user_id)
            .execution_options(synchronize_session=False)
        )
    logger.info("Cleared %d notifications for user %s", result.rowcount, user_id)
    return result.rowcount


# ---------------------------------------------------------------------------
# Preferences
# ---------------------------------------------------------------------------
def get_preferences(engine: Engine, user_id: str) -> dict:
    with get_session(engine) as session:
        return _preferences_to_dict(session.get(NotificationPreference, user_id))


def update_preferences(engine: Engine, user_id: str, changes: dict[str, Any]) -> dict:
    """Apply the given camelCase fields; absent (or ``None``) fields keep their
    current value."""
    values: dict[str, Any] = {}
    for field, attr in _PREFERENCE_FIELDS.items():
        value = changes.get(field)
        if value is None:
            continue
        if field in ("mutedChallenges", "mutedUsers"):
            value = _id_list(value, field)
        elif field == "notificationFrequency":
            value = str(value).strip()
            if not value or len(value) > 20:
                raise ValidationFailed("notificationFrequency must be 1-20 characters")
        else:
            value = bool(value)
        values[attr] = value

    with get_session(engine) as session:
        prefs = session.get(NotificationPreference, user_id)
        if prefs is None:
            prefs = NotificationPreference(user_id=user_id, muted_challenges=[], muted_users=[])
            session.add(prefs)
        for attr, value in values.items():
            setattr(prefs, attr, value)
        session.flush()
        return _preferences_to_dict(prefs)


def _toggle_mute(engine: Engine, user_id: str, field: str, target: str, *, muted: bool) -> dict:
    current = get_preferences(engine, user_id)[field]
    if muted and target not in current:
        current.append(target)
    elif not muted:
        current = [item for item in current if item != target]
    return update_preferences(engine, user_id, {field: current})


def mute_challenge(engine: Engine, user_id: str, challenge_id: int) -> dict:
    return _toggle_mute(engine, user_id, "mutedChallenges", str(challenge_id), muted=True)


def unmute_challenge(engine: Engine, user_id: str, challenge_id: int) -> dict:
    return _toggle_mute(engine, user_id, "mutedChallenges", str(challenge_id), muted=False)


def mute_user(engine: Engine, user_id: str, target_user_id: str) -> dict:
    if target_user_id == user_id:
        raise ValidationFailed("You cannot mute yourself")
    return _toggle_mute(engine, user_id, "mutedUsers", target_user_id, muted=True)


def unmute_user(engine: Engine, user_id: str, target_user_id: str) -> dict:
    return _toggle_mute(engine, user_id, "mutedUsers", target_user_id, muted=False)
