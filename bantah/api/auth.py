"""
bantah.api.auth — Current user + cookie session login/logout
=============================================================

``POST /api/auth/session`` exchanges a verified Privy bearer token for an
HttpOnly session cookie; ``DELETE`` clears it.  Requests without an
``Authorization`` header then authenticate through that cookie.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Header, Request, Response

from bantah.api.deps import AuthUser, get_config, get_current_user, get_engine
from bantah.config import BantahConfig
from bantah.errors import MissingCredential, NotFound
from bantah.services import session_service
from bantah.services.user_service import get_user

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth", tags=["auth"])


def user_profile(user) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "firstName": user.first_name,
        "lastName": user.last_name,
        "username": user.username,
        "profileImageUrl": user.profile_image_url,
        "isAdmin": user.is_admin,
        "telegramId": user.telegram_id,
        "telegramUsername": user.telegram_username,
        "isTelegramUser": user.is_telegram_user,
        "balance": user.balance,
        "coins": user.coins,
        "createdAt": user.created_at.isoformat() if user.created_at else None,
    }


@router.get("/user")
def current_user(
    auth: AuthUser = Depends(get_current_user),
    engine=Depends(get_engine),
):
    """Return the authenticated user's profile and wallet."""
    user = get_user(engine, auth.id)
    if user is None:
        raise NotFound("User not found")
    return user_profile(user)


@router.post("/session")
def login(
    response: Response,
    authorization: str | None = Header(default=None),
    auth: AuthUser = Depends(get_current_user),
    cfg: BantahConfig = Depends(get_config),
    engine=Depends(get_engine),
):
    """Open a cookie session.  Requires a bearer token, not an existing
    session."""
    if not authorization:
        raise MissingCredential()

    token, expires_at = session_service.create_session(
        engine, auth.id, ttl_hours=cfg.session_ttl_hours,
    )
    response.set_cookie(
        key=cfg.session_cookie_name,
        value=token,
        max_age=cfg.session_ttl_hours * 3600,
        httponly=True,
        secure=cfg.session_cookie_secure,
        samesite="lax",
        path="/",
    )
    return {"user": auth.to_dict(), "expiresAt": expires_at.isoformat()}


@router.delete("/session")
def logout(
    request: Request,
    response: Response,
    everywhere: bool = False,
    cfg: BantahConfig = Depends(get_config),
    engine=Depends(get_engine),
):
    """Close the cookie session (``?everywhere=true`` closes all of the
    user's sessions)."""
    token = request.cookies.get(cfg.session_cookie_name)
    revoked = 0
    if token:
        if everywhere:
            user = session_service.resolve_session(engine, token)
            if user is not None:
                revoked = session_service.revoke_user_sessions(engine, user.id)
        if not revoked:
            revoked = int(session_service.revoke_session(engine, token))
    response.delete_cookie(cfg.session_cookie_name, path="/")
    return {"success": True, "revoked": revoked}
