"""
bantah.api.deps — FastAPI dependency injection
================================================

Providers for the engine, config and Privy bridge, plus the per-request
authentication gate.

``get_current_user`` resolves one request to one :class:`AuthUser`:

* no ``Authorization`` header → try the session cookie; a valid session is
  accepted as is.  Errors while reading the session are logged and treated
  as "no session".  No session at all → 401 *Authorization header missing*.
* ``Authorization`` header → strip ``Bearer ``, verify with Privy.  A token
  that fails verification or carries no subject → 401 *Invalid token or
  user ID not found*.
* verified → find-or-create the local user.  Nothing resolved → 500
  *Failed to create or retrieve user*.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Header, Request
from sqlalchemy import Engine
from sqlalchemy.exc import SQLAlchemyError

from bantah.config import BantahConfig, load_config
from bantah.database.engine import create_db_engine, run_db
from bantah.database.models import User
from bantah.errors import InvalidToken, MissingCredential, PermissionDenied, UserResolutionFailure
from bantah.services.identity_bridge import PrivyBridge, build_bridge
from bantah.services.session_service import resolve_session
from bantah.services.user_service import upsert_privy_user

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> BantahConfig:
    return load_config()


@lru_cache(maxsize=1)
def get_identity_bridge() -> PrivyBridge:
    """Build the Privy bridge once; raises RuntimeError if credentials are
    missing."""
    return build_bridge(get_config())


# ---------------------------------------------------------------------------
# Normalized request identity
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class AuthUser:
    id: str
    email: str
    first_name: str | None
    last_name: str | None
    username: str | None
    is_admin: bool = False

    @classmethod
    def from_user(cls, user: User) -> AuthUser:
        return cls(
            id=user.id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            username=user.username,
            is_admin=bool(user.is_admin),
        )

    @property
    def claims(self) -> dict:
        """Claims-compatible view for handlers that expect ``sub``."""
        return {
            "sub": self.id,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "username": self.username,
            "isAdmin": self.is_admin,
            "claims": self.claims,
        }


def _strip_bearer(authorization: str) -> str:
    if authorization.startswith(BEARER_PREFIX):
        return authorization[len(BEARER_PREFIX):].strip()
    return authorization.strip()


async def _session_user(request: Request, engine: Engine, cfg: BantahConfig) -> User | None:
    token = request.cookies.get(cfg.session_cookie_name)
    if not token:
        return None
    try:
        return await run_db(resolve_session, engine, token)
    except SQLAlchemyError:
        logger.warning("Session lookup failed; continuing without a session", exc_info=True)
        return None


async def get_current_user(
    request: Request,
    authorization: Annotated[str | None, Header()] = None,
    engine: Engine = Depends(get_engine),
    cfg: BantahConfig = Depends(get_config),
    bridge: PrivyBridge = Depends(get_identity_bridge),
) -> AuthUser:
    """Authenticate the request.  See module docstring for the states."""
    if not authorization:
        user = await _session_user(request, engine, cfg)
        if user is None:
            raise MissingCredential()
        auth_user = AuthUser.from_user(user)
        request.state.user = auth_user
        return auth_user

    token = _strip_bearer(authorization)
    claims = await bridge.verify(token) if token else None
    if claims is None or not claims.subject:
        raise InvalidToken()

    user = await run_db(upsert_privy_user, engine, claims)
    if user is None:
        logger.error("Could not create or retrieve user for %s", claims.subject)
        raise UserResolutionFailure()

    auth_user = AuthUser.from_user(user)
    request.state.user = auth_user
    return auth_user


def get_current_admin(user: AuthUser = Depends(get_current_user)) -> AuthUser:
    """Authenticated user with the admin flag; 403 otherwise."""
    if not user.is_admin:
        raise PermissionDenied("Admin access required")
    return user
