"""
bantah.api.routes.notifications — Notification inbox & preferences
===================================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from bantah.api.deps import AuthUser, get_config, get_current_user, get_engine
from bantah.config import BantahConfig
from bantah.services import notification_service

router = APIRouter(prefix="/notifications", tags=["notifications"])


class PreferencesUpdate(BaseModel):
    enablePush: bool | None = None
    enableTelegram: bool | None = None
    enableInApp: bool | None = None
    notificationFrequency: str | None = None
    mutedChallenges: list[str | int] | None = None
    mutedUsers: list[str] | None = None


def _ok(message: str, **extra) -> dict:
    return {"success": True, "message": message, **extra}


# ---------------------------------------------------------------------------
# Inbox (static paths are declared before /{notification_id})
# ---------------------------------------------------------------------------
@router.get("")
def list_notifications(
    limit: int | None = Query(None, ge=1),
    offset: int = Query(0, ge=0),
    user: AuthUser = Depends(get_current_user),
    cfg: BantahConfig = Depends(get_config),
    engine=Depends(get_engine),
):
    return notification_service.list_notifications(
        engine, user.id, limit=limit or cfg.notifications_page_size, offset=offset,
    )


@router.get("/unread-count")
def unread_count(
    user: AuthUser = Depends(get_current_user),
    engine=Depends(get_engine),
):
    return {"unreadCount": notification_service.unread_count(engine, user.id)}


@router.put("/read-all")
def read_all(
    user: AuthUser = Depends(get_current_user),
    engine=Depends(get_engine),
):
    updated = notification_service.mark_all_read(engine, user.id)
    return _ok("All notifications marked as read", updated=updated)


@router.delete("/clear-all")
def clear_all(
    user: AuthUser = Depends(get_current_user),
    engine=Depends(get_engine),
):
    deleted = notification_service.clear_all(engine, user.id)
    return _ok("All notifications cleared", deleted=deleted)


# ---------------------------------------------------------------------------
# Preferences
# ---------------------------------------------------------------------------
@router.get("/preferences")
def get_preferences(
    user: AuthUser = Depends(get_current_user),
    engine=Depends(get_engine),
):
    return notification_service.get_preferences(engine, user.id)


@router.put("/preferences")
def update_preferences(
    body: PreferencesUpdate,
    user: AuthUser = Depends(get_current_user),
    engine=Depends(get_engine),
):
    prefs = notification_service.update_preferences(
        engine, user.id, body.model_dump(exclude_none=True),
    )
    return _ok("Preferences updated", preferences=prefs)


@router.post("/mute-challenge/{challenge_id}")
def mute_challenge(
    challenge_id: int,
    user: AuthUser = Depends(get_current_user),
    engine=Depends(get_engine),
):
    prefs = notification_service.mute_challenge(engine, user.id, challenge_id)
    return _ok("Challenge muted", preferences=prefs)


@router.post("/unmute-challenge/{challenge_id}")
def unmute_challenge(
    challenge_id: int,
    user: AuthUser = Depends(get_current_user),
    engine=Depends(get_engine),
):
    prefs = notification_service.unmute_challenge(engine, user.id, challenge_id)
    return _ok("Challenge unmuted", preferences=prefs)


@router.post("/mute-user/{target_user_id}")
def mute_user(
    target_user_id: str,
    user: AuthUser = Depends(get_current_user),
    engine=Depends(get_engine),
):
    prefs = notification_service.mute_user(engine, user.id, target_user_id)
    return _ok("User muted", preferences=prefs)


@router.post("/unmute-user/{target_user_id}")
def unmute_user(
    target_user_id: str,
    user: AuthUser = Depends(get_current_user),
    engine=Depends(get_engine),
):
    prefs = notification_service.unmute_user(engine, user.id, target_user_id)
    return _ok("User unmuted", preferences=prefs)


# ---------------------------------------------------------------------------
# Single notification
# ---------------------------------------------------------------------------
@router.put("/{notification_id}/read")
@router.patch("/{notification_id}/read")
def mark_read(
    notification_id: int,
    user: AuthUser = Depends(get_current_user),
    engine=Depends(get_engine),
):
    notification_service.mark_read(engine, user.id, notification_id)
    return _ok("Notification marked as read")


@router.delete("/{notification_id}")
def delete_notification(
    notification_id: int,
    user: AuthUser = Depends(get_current_user),
    engine=Depends(get_engine),
):
    notification_service.delete_notification(engine, user.id, notification_id)
    return _ok("Notification deleted")
