"""
bantah.api.rate_limit — Per-User Wallet Mutation Throttle
==========================================================

Deposits, withdrawals and swaps are limited per user with a sliding window
(``wallet_rate_limit`` mutations per ``wallet_rate_window_seconds``).
State lives in ``wallet_rate_limit_events`` so it survives restarts and is
shared between workers.  Exceeding the limit returns HTTP 429 with a
``Retry-After`` header.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from typing import Any

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy import Engine, delete, func, select
from sqlalchemy.orm import Session

from bantah.api.deps import AuthUser, get_current_user
from bantah.config import BantahConfig
from bantah.database.engine import run_db
from bantah.database.models import WalletRateLimitEvent

logger = logging.getLogger(__name__)

DEFAULT_RATE_LIMIT = 10
DEFAULT_WINDOW_SECONDS = 60

_MUTATION_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


class WalletRateLimiter:
    """Sliding-window rate limiter keyed by user ID (DB-backed)."""

    def __init__(
        self,
        max_requests: int = DEFAULT_RATE_LIMIT,
        window_seconds: int = DEFAULT_WINDOW_SECONDS,
        *,
        engine: Engine,
    ) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.engine = engine

    def _normalize_dt(self, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    def _prune(self, session: Session, user_id: str, cutoff: datetime) -> None:
        session.execute(
            delete(WalletRateLimitEvent).where(
                WalletRateLimitEvent.user_id == user_id,
                WalletRateLimitEvent.timestamp < cutoff,
            )
        )

    def check(self, user_id: str) -> tuple[bool, dict[str, Any]]:
        """Return ``(allowed, info)``; info has ``remaining``, ``reset``
        (seconds until a slot frees up) and ``limit``."""
        now = datetime.now(UTC)
        cutoff = now - timedelta(seconds=self.window_seconds)

        with Session(self.engine) as session:
            self._prune(session, user_id, cutoff)
            timestamps = session.scalars(
                select(WalletRateLimitEvent.timestamp)
                .where(WalletRateLimitEvent.user_id == user_id)
                .order_by(WalletRateLimitEvent.timestamp.asc())
            ).all()
            session.commit()

        count = len(timestamps)
        if count >= self.max_requests:
            oldest = self._normalize_dt(timestamps[0])
            reset = (oldest + timedelta(seconds=self.window_seconds) - now).total_seconds()
            return False, {
                "remaining": 0,
                "reset": max(1, int(reset) + 1),
                "limit": self.max_requests,
            }

        return True, {
            "remaining": max(0, self.max_requests - count),
            "reset": self.window_seconds,
            "limit": self.max_requests,
        }

    def record(self, user_id: str) -> dict[str, Any]:
        """Record one mutation and return the updated info dict."""
        now = datetime.now(UTC)
        cutoff = now - timedelta(seconds=self.window_seconds)

        with Session(self.engine) as session:
            self._prune(session, user_id, cutoff)
            session.add(WalletRateLimitEvent(user_id=user_id, timestamp=now))
            session.flush()
            count = session.scalar(
                select(func.count(WalletRateLimitEvent.id))
                .where(WalletRateLimitEvent.user_id == user_id)
            ) or 0
            session.commit()

        return {
            "remaining": max(0, self.max_requests - count),
            "reset": self.window_seconds,
            "limit": self.max_requests,
        }

    def reset(self, user_id: str | None = None) -> None:
        """Clear limiter state for one user, or for everyone."""
        with Session(self.engine) as session:
            stmt = delete(WalletRateLimitEvent)
            if user_id is not None:
                stmt = stmt.where(WalletRateLimitEvent.user_id == user_id)
            session.execute(stmt)
            session.commit()


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------
_limiter: WalletRateLimiter | None = None


def get_rate_limiter() -> WalletRateLimiter:
    if _limiter is None:
        raise RuntimeError("Rate limiter not configured — call configure_rate_limiter() first")
    return _limiter


def configure_rate_limiter(*, engine: Engine, cfg: BantahConfig | None = None) -> WalletRateLimiter:
    """Install the global limiter, sized from *cfg* when given."""
    global _limiter
    _limiter = WalletRateLimiter(
        max_requests=cfg.wallet_rate_limit if cfg else DEFAULT_RATE_LIMIT,
        window_seconds=cfg.wallet_rate_window_seconds if cfg else DEFAULT_WINDOW_SECONDS,
        engine=engine,
    )
    return _limiter


# ---------------------------------------------------------------------------
# FastAPI dependency — chains after get_current_user
# ---------------------------------------------------------------------------
async def rate_limited_user(
    request: Request,
    user: AuthUser = Depends(get_current_user),
) -> AuthUser:
    """Authenticate *and* count the request against the wallet throttle.

    Use ``Depends(rate_limited_user)`` on wallet mutation routes.
    """
    if request.method not in _MUTATION_METHODS:
        return user

    limiter = get_rate_limiter()
    allowed, info = await run_db(limiter.check, user.id)

    if not allowed:
        logger.warning(
            "Wallet rate limit exceeded for user %s: %d requests per %ds",
            user.id, limiter.max_requests, limiter.window_seconds,
        )
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={
                "error": "rate_limit_exceeded",
                "message": (
                    f"Too many wallet operations: limit is {limiter.max_requests}"
                    f" per {limiter.window_seconds} seconds."
                ),
                "retry_after": info["reset"],
            },
            headers={"Retry-After": str(info["reset"])},
        )

    await run_db(limiter.record, user.id)
    return user
