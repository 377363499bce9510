"""
bantah.services.admin_service — Audited Admin Mutations
========================================================

Every admin write follows the same pattern inside one transaction:

  1. Read "before" snapshot
  2. Apply change (status move, escrow refunds, bonus credit, ...)
  3. Write admin_log with before/after JSONB
  4. Commit
"""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from bantah.constants import CHALLENGE_SIDES, CURRENCY_MONEY, challenge_reference
from bantah.database.engine import get_session
from bantah.database.models import (
    AdminActionType,
    AdminLog,
    Challenge,
    ChallengeParticipant,
    ChallengeStatus,
    NotificationType,
    User,
)
from bantah.engine.exchange import to_amount
from bantah.errors import NotFound, ValidationFailed
from bantah.services.challenge_service import (
    as_utc,
    challenge_to_dict,
    change_status,
    load_challenge,
    validate_details,
    validate_due_date,
)
from bantah.services.notification_service import notify
from bantah.services.wallet_service import credit_bonus, refund_escrow, transaction_to_dict

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Generic audit helpers
# ---------------------------------------------------------------------------
def _row_to_dict(obj: Any) -> dict | None:
    """Convert a SQLAlchemy model instance to a JSON-serializable dict."""
    if obj is None:
        return None
    result = {}
    for col in obj.__table__.columns:
        val = getattr(obj, col.key, None)
        if isinstance(val, datetime):
            val = val.isoformat()
        elif isinstance(val, Decimal):
            val = str(val)
        result[col.name] = val
    return result


def _log_admin_action(
    session: Session,
    *,
    actor_id: str,
    action_type: AdminActionType,
    target_table: str,
    target_id: str | None,
    before: dict | None,
    after: dict | None,
    reason: str | None = None,
) -> None:
    """Insert a row into admin_log within the current transaction."""
    session.add(AdminLog(
        actor_id=actor_id,
        action_type=action_type.value,
        target_table=target_table,
        target_id=target_id,
        before_snapshot=before,
        after_snapshot=after,
        reason=reason,
    ))


def admin_log_to_dict(row: AdminLog) -> dict:
    return {
        "id": row.id,
        "actorId": row.actor_id,
        "actionType": row.action_type,
        "targetTable": row.target_table,
        "targetId": row.target_id,
        "before": row.before_snapshot,
        "after": row.after_snapshot,
        "reason": row.reason,
        "timestamp": row.timestamp.isoformat() if row.timestamp else None,
    }


# ---------------------------------------------------------------------------
# Admin-hosted challenges
# ---------------------------------------------------------------------------
def create_admin_challenge(
    engine: Engine,
    *,
    actor_id: str,
    title: str,
    category: str,
    amount: Decimal | int | float | str,
    description: str | None = None,
    due_date: datetime | None = None,
    cover_image_url: str | None = None,
    bonus_side: str | None = None,
    bonus_multiplier: Decimal | None = None,
    bonus_amount: Decimal | None = None,
    bonus_ends_at: datetime | None = None,
) -> dict:
    """Create an ``open`` challenge with no fixed counterpart.

    No stake is escrowed from the admin.
    """
    title, category = validate_details(title, category)
    stake = to_amount(amount)
    due_date = validate_due_date(due_date)
    if bonus_side is not None:
        bonus_side = bonus_side.strip().lower()
        if bonus_side not in CHALLENGE_SIDES:
            raise ValidationFailed("Bonus side must be 'yes' or 'no'")
    if bonus_multiplier is not None and bonus_multiplier <= 0:
        raise ValidationFailed("Bonus multiplier must be greater than zero")
    if bonus_amount is not None:
        bonus_amount = to_amount(bonus_amount)

    challenge = Challenge(
        challenger_id=actor_id,
        challenged_id=None,
        title=title,
        description=description,
        category=category,
        amount=stake,
        status=ChallengeStatus.OPEN.value,
        admin_created=True,
        due_date=due_date,
        cover_image_url=cover_image_url,
        bonus_side=bonus_side,
        bonus_multiplier=bonus_multiplier,
        bonus_amount=bonus_amount,
        bonus_ends_at=as_utc(bonus_ends_at),
    )
    with get_session(engine) as session:
        session.add(challenge)
        session.flush()
        session.refresh(challenge)
        _log_admin_action(
            session,
            actor_id=actor_id,
            action_type=AdminActionType.CREATE,
            target_table="challenges",
            target_id=str(challenge.id),
            before=None,
            after=_row_to_dict(challenge),
        )
        result = challenge_to_dict(challenge)

    logger.info("Admin %s created challenge %d: %s", actor_id, result["id"], title)
    return result


def set_challenge_pinned(
    engine: Engine, *, actor_id: str, challenge_id: int, pinned: bool
) -> dict:
    """Pin or unpin a challenge.  Status is untouched."""
    with get_session(engine) as session:
        challenge = load_challenge(session, challenge_id)
        before = _row_to_dict(challenge)
        challenge.is_pinned = bool(pinned)
        session.flush()
        session.refresh(challenge)
        _log_admin_action(
            session,
            actor_id=actor_id,
            action_type=AdminActionType.UPDATE,
            target_table="challenges",
            target_id=str(challenge.id),
            before=before,
            after=_row_to_dict(challenge),
        )
        return challenge_to_dict(challenge)


def _stakeholders(session: Session, challenge: Challenge) -> set[str]:
    users = {challenge.challenger_id}
    if challenge.challenged_id:
        users.add(challenge.challenged_id)
    users.update(session.scalars(
        select(ChallengeParticipant.user_id)
        .where(ChallengeParticipant.challenge_id == challenge.id)
    ).all())
    return users


def update_challenge_status(
    engine: Engine,
    *,
    actor_id: str,
    challenge_id: int,
    status: str,
    reason: str | None = None,
) -> dict:
    """Move a challenge along the transition table.

    Cancelling refunds every stake still held under the challenge.  Payout
    on completion is settled outside this service.
    """
    try:
        target = ChallengeStatus(status)
    except ValueError:
        raise ValidationFailed(f"Unknown challenge status: {status!r}") from None

    with get_session(engine) as session:
        challenge = load_challenge(session, challenge_id)
        before = _row_to_dict(challenge)
        change_status(session, challenge, target)

        refunds: dict[str, Decimal] = {}
        if target is ChallengeStatus.CANCELLED:
            refunds = refund_escrow(
                session,
                reference=challenge_reference(challenge.id),
                description=f"Refund for cancelled challenge: {challenge.title}",
            )
            for user_id in _stakeholders(session, challenge):
                notify(
                    session,
                    user_id=user_id,
                    kind=NotificationType.CHALLENGE_CANCELLED,
                    title="Challenge cancelled",
                    message=f"{challenge.title} was cancelled",
                    challenge_id=challenge.id,
                    actor_id=actor_id,
                    data={"refunded": str(refunds.get(user_id, Decimal("0.00")))},
                )

        _log_admin_action(
            session,
            actor_id=actor_id,
            action_type=AdminActionType.STATUS_CHANGE,
            target_table="challenges",
            target_id=str(challenge.id),
            before=before,
            after=_row_to_dict(challenge),
            reason=reason,
        )
        result = challenge_to_dict(challenge)
        result["refunds"] = {uid: amt for uid, amt in refunds.items()}
        return result


# ---------------------------------------------------------------------------
# Bonuses
# ---------------------------------------------------------------------------
def award_bonus(
    engine: Engine,
    *,
    actor_id: str,
    user_id: str,
    amount: Decimal | int | float | str,
    currency: str = CURRENCY_MONEY,
    reason: str = "",
    challenge_id: int | None = None,
) -> dict:
    """Credit money or coins to a user as a ``bonus`` ledger row."""
    value = to_amount(amount)
    with get_session(engine) as session:
        user = session.get(User, user_id)
        if user is None:
            raise NotFound("User not found")
        if challenge_id is not None:
            load_challenge(session, challenge_id)
        before = {"balance": str(user.balance), "coins": str(user.coins)}

        tx = credit_bonus(
            session, user_id, value,
            currency=currency,
            description=reason or "Bonus",
            reference=challenge_reference(challenge_id) if challenge_id is not None else None,
        )
        session.refresh(user)
        after = {"balance": str(user.balance), "coins": str(user.coins)}
        _log_admin_action(
            session,
            actor_id=actor_id,
            action_type=AdminActionType.MANUAL_AWARD,
            target_table="users",
            target_id=user_id,
            before=before,
            after=after,
            reason=reason or None,
        )
        notify(
            session,
            user_id=user_id,
            kind=NotificationType.BONUS_RECEIVED,
            title="Bonus received",
            message=f"You received {value} {currency}",
            challenge_id=challenge_id,
            actor_id=actor_id,
            data={"amount": str(value), "currency": currency},
        )
        result = {
            "balance": user.balance,
            "coins": user.coins,
            "transaction": transaction_to_dict(tx),
        }

    logger.info("Admin %s awarded %s %s to %s (%s)", actor_id, value, currency, user_id, reason)
    return result


# ---------------------------------------------------------------------------
# Audit log
# ---------------------------------------------------------------------------
def list_admin_log(engine: Engine, *, limit: int = 50, offset: int = 0) -> list[dict]:
    with get_session(engine) as session:
        rows = session.scalars(
            select(AdminLog)
            .order_by(AdminLog.timestamp.desc(), AdminLog.id.desc())
            .limit(max(1, min(limit, 200)))
            .offset(max(0, offset))
        ).all()
        return [admin_log_to_dict(r) for r in rows]
