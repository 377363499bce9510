"""
bantah.services.challenge_service — Challenge Lifecycle
========================================================

User-facing challenge operations.  Each one runs in a single transaction
that covers the status change, the stake movement on the wallet ledger and
the notification for the other party.

Peer challenges::

    create  → pending   (challenger's stake escrowed)
    accept  → active    (challenged user's stake escrowed)
    decline → cancelled (every held stake refunded)
    dispute → disputed  (either party, from active)

Admin-hosted challenges start ``open`` and are joined by any number of
users picking a ``yes`` or ``no`` side; each stake is escrowed on join.

Status writes go through :func:`change_status`, a conditional UPDATE on the
expected current status, so two racing requests cannot both move the same
challenge.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import Engine, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bantah.constants import CHALLENGE_SIDES, challenge_reference
from bantah.database.engine import get_session
from bantah.database.models import (
    Challenge,
    ChallengeParticipant,
    ChallengeStatus,
    NotificationType,
    User,
)
from bantah.engine.exchange import to_amount
from bantah.engine.lifecycle import ensure_transition
from bantah.errors import (
    AlreadyJoined,
    InvalidTransition,
    NotFound,
    PermissionDenied,
    ValidationFailed,
)
from bantah.services.notification_service import notify
from bantah.services.wallet_service import escrow_stake, refund_escrow

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 200
MAX_CATEGORY_LENGTH = 50


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def as_utc(value: datetime | None) -> datetime | None:
    """Treat naive datetimes (as SQLite returns them) as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _iso(value: datetime | None) -> str | None:
    value = as_utc(value)
    return value.isoformat() if value else None


def challenge_to_dict(c: Challenge) -> dict:
    return {
        "id": c.id,
        "challenger": c.challenger_id,
        "challenged": c.challenged_id,
        "title": c.title,
        "description": c.description,
        "category": c.category,
        "amount": c.amount,
        "status": c.status,
        "adminCreated": c.admin_created,
        "dueDate": _iso(c.due_date),
        "isPinned": c.is_pinned,
        "coverImageUrl": c.cover_image_url,
        "bonusSide": c.bonus_side,
        "bonusMultiplier": c.bonus_multiplier,
        "bonusAmount": c.bonus_amount,
        "bonusEndsAt": _iso(c.bonus_ends_at),
        "participantCount": c.participant_count,
        "yesStakeTotal": c.yes_stake_total,
        "noStakeTotal": c.no_stake_total,
        "createdAt": _iso(c.created_at),
        "updatedAt": _iso(c.updated_at),
    }


def validate_details(title: str | None, category: str | None) -> tuple[str, str]:
    title = (title or "").strip()
    category = (category or "").strip()
    if not title:
        raise ValidationFailed("Title is required")
    if len(title) > MAX_TITLE_LENGTH:
        raise ValidationFailed(f"Title must be at most {MAX_TITLE_LENGTH} characters")
    if not category:
        raise ValidationFailed("Category is required")
    if len(category) > MAX_CATEGORY_LENGTH:
        raise ValidationFailed(f"Category must be at most {MAX_CATEGORY_LENGTH} characters")
    return title, category


def validate_due_date(due_date: datetime | None) -> datetime | None:
    due_date = as_utc(due_date)
    if due_date is not None and due_date <= datetime.now(UTC):
        raise ValidationFailed("Due date must be in the future")
    return due_date


def load_challenge(session: Session, challenge_id: int) -> Challenge:
    challenge = session.get(Challenge, challenge_id)
    if challenge is None:
        raise NotFound("Challenge not found")
    return challenge


def change_status(
    session: Session, challenge: Challenge, target: ChallengeStatus
) -> ChallengeStatus:
    """Move *challenge* to *target* if the transition table allows it.

    The UPDATE is conditional on the status the caller observed; losing a
    race raises :class:`InvalidTransition`.
    """
    current = challenge.status
    ensure_transition(current, target)
    result = session.execute(
        update(Challenge)
        .where(Challenge.id == challenge.id, Challenge.status == current)
        .values(status=target.value)
    )
    if result.rowcount != 1:
        raise InvalidTransition("Challenge was modified by another request")
    session.refresh(challenge)
    logger.info("Challenge %d: %s → %s", challenge.id, current, target)
    return target


def _display_name(session: Session, user_id: str) -> str:
    user = session.get(User, user_id)
    if user is None:
        return "Someone"
    return user.username or user.first_name or "Someone"


# ---------------------------------------------------------------------------
# Peer challenges
# ---------------------------------------------------------------------------
def create_challenge(
    engine: Engine,
    challenger_id: str,
    *,
    challenged_id: str | None,
    title: str,
    category: str,
    amount: Decimal | int | float | str,
    description: str | None = None,
    due_date: datetime | None = None,
) -> dict:
    """Create a ``pending`` peer challenge and escrow the challenger's stake."""
    if not challenged_id:
        raise ValidationFailed("Challenged user is required")
    if challenged_id == challenger_id:
        raise ValidationFailed("You cannot challenge yourself")
    title, category = validate_details(title, category)
    stake = to_amount(amount)
    due_date = validate_due_date(due_date)

    with get_session(engine) as session:
        if session.get(User, challenged_id) is None:
            raise NotFound("Challenged user not found")

        challenge = Challenge(
            challenger_id=challenger_id,
            challenged_id=challenged_id,
            title=title,
            description=description,
            category=category,
            amount=stake,
            status=ChallengeStatus.PENDING.value,
            admin_created=False,
            due_date=due_date,
        )
        session.add(challenge)
        session.flush()

        escrow_stake(
            session, challenger_id, stake,
            reference=challenge_reference(challenge.id),
            description=f"Stake for challenge: {title}",
        )
        notify(
            session,
            user_id=challenged_id,
            kind=NotificationType.CHALLENGE_RECEIVED,
            title="New challenge",
            message=f"{_display_name(session, challenger_id)} challenged you: {title}",
            challenge_id=challenge.id,
            actor_id=challenger_id,
            data={"amount": str(stake)},
        )
        session.flush()
        session.refresh(challenge)
        result = challenge_to_dict(challenge)

    logger.info(
        "Challenge %d created by %s against %s for %s",
        result["id"], challenger_id, challenged_id, stake,
    )
    return result


def _peer_challenge(session: Session, challenge_id: int) -> Challenge:
    challenge = load_challenge(session, challenge_id)
    if challenge.admin_created:
        raise ValidationFailed("Admin challenges are joined, not accepted or declined")
    return challenge


def accept_challenge(engine: Engine, user_id: str, challenge_id: int) -> dict:
    """The challenged user accepts: their matching stake is escrowed."""
    with get_session(engine) as session:
        challenge = _peer_challenge(session, challenge_id)
        if challenge.challenged_id != user_id:
            raise PermissionDenied("Only the challenged user can accept this challenge")

        change_status(session, challenge, ChallengeStatus.ACTIVE)
        escrow_stake(
            session, user_id, challenge.amount,
            reference=challenge_reference(challenge.id),
            description=f"Stake for challenge: {challenge.title}",
        )
        notify(
            session,
            user_id=challenge.challenger_id,
            kind=NotificationType.CHALLENGE_ACCEPTED,
            title="Challenge accepted",
            message=f"{_display_name(session, user_id)} accepted: {challenge.title}",
            challenge_id=challenge.id,
            actor_id=user_id,
        )
        session.flush()
        session.refresh(challenge)
        return challenge_to_dict(challenge)


def decline_challenge(engine: Engine, user_id: str, challenge_id: int) -> dict:
    """Decline (challenged user) or withdraw (challenger) a pending challenge.

    Every stake held under the challenge goes back to its owner.
    """
    with get_session(engine) as session:
        challenge = _peer_challenge(session, challenge_id)
        if user_id not in (challenge.challenger_id, challenge.challenged_id):
            raise PermissionDenied("You are not a party to this challenge")

        change_status(session, challenge, ChallengeStatus.CANCELLED)
        refunds = refund_escrow(
            session,
            reference=challenge_reference(challenge.id),
            description=f"Refund for challenge: {challenge.title}",
        )

        declined = user_id == challenge.challenged_id
        other = challenge.challenger_id if declined else challenge.challenged_id
        if other:
            notify(
                session,
                user_id=other,
                kind=(
                    NotificationType.CHALLENGE_DECLINED if declined
                    else NotificationType.CHALLENGE_CANCELLED
                ),
                title="Challenge declined" if declined else "Challenge cancelled",
                message=f"{_display_name(session, user_id)} "
                        f"{'declined' if declined else 'cancelled'}: {challenge.title}",
                challenge_id=challenge.id,
                actor_id=user_id,
                data={"refunded": {uid: str(amt) for uid, amt in refunds.items()}},
            )
        session.flush()
        session.refresh(challenge)
        return challenge_to_dict(challenge)


def dispute_challenge(engine: Engine, user_id: str, challenge_id: int) -> dict:
    """Either party flags an active peer challenge for admin review."""
    with get_session(engine) as session:
        challenge = _peer_challenge(session, challenge_id)
        if user_id not in (challenge.challenger_id, challenge.challenged_id):
            raise PermissionDenied("You are not a party to this challenge")

        change_status(session, challenge, ChallengeStatus.DISPUTED)
        other = (
            challenge.challenged_id if user_id == challenge.challenger_id
            else challenge.challenger_id
        )
        notify(
            session,
            user_id=other,
            kind=NotificationType.CHALLENGE_DISPUTED,
            title="Challenge disputed",
            message=f"{_display_name(session, user_id)} disputed: {challenge.title}",
            challenge_id=challenge.id,
            actor_id=user_id,
        )
        session.flush()
        session.refresh(challenge)
        return challenge_to_dict(challenge)


# ---------------------------------------------------------------------------
# Admin-hosted challenges — joining
# ---------------------------------------------------------------------------
def join_challenge(
    engine: Engine,
    user_id: str,
    challenge_id: int,
    *,
    side: str,
    amount: Decimal | int | float | str | None = None,
) -> dict:
    """Stake on one side of an open admin challenge.

    The stake defaults to the challenge amount.  Joining twice raises
    :class:`AlreadyJoined`.
    """
    side = (side or "").strip().lower()
    if side not in CHALLENGE_SIDES:
        raise ValidationFailed("Side must be 'yes' or 'no'")

    with get_session(engine) as session:
        challenge = load_challenge(session, challenge_id)
        if not challenge.admin_created:
            raise ValidationFailed("Only admin challenges can be joined")
        if challenge.status != ChallengeStatus.OPEN:
            raise InvalidTransition("This challenge is no longer accepting participants")
        due_date = as_utc(challenge.due_date)
        if due_date is not None and due_date <= datetime.now(UTC):
            raise InvalidTransition("This challenge has ended")

        stake = to_amount(amount if amount is not None else challenge.amount)

        participant = ChallengeParticipant(
            challenge_id=challenge.id, user_id=user_id, side=side, amount=stake,
        )
        try:
            with session.begin_nested():   # SAVEPOINT
                session.add(participant)
                session.flush()
        except IntegrityError:
            raise AlreadyJoined() from None

        escrow_stake(
            session, user_id, stake,
            reference=challenge_reference(challenge.id),
            description=f"Stake ({side}) for challenge: {challenge.title}",
        )

        stake_col = Challenge.yes_stake_total if side == "yes" else Challenge.no_stake_total
        result = session.execute(
            update(Challenge)
            .where(Challenge.id == challenge.id, Challenge.status == ChallengeStatus.OPEN.value)
            .values({
                Challenge.participant_count: Challenge.participant_count + 1,
                stake_col: stake_col + stake,
            })
        )
        if result.rowcount != 1:
            raise InvalidTransition("This challenge is no longer accepting participants")

        notify(
            session,
            user_id=challenge.challenger_id,
            kind=NotificationType.CHALLENGE_JOINED,
            title="New participant",
            message=f"{_display_name(session, user_id)} joined {side.upper()}: {challenge.title}",
            challenge_id=challenge.id,
            actor_id=user_id,
            data={"side": side, "amount": str(stake)},
        )
        session.flush()
        session.refresh(challenge)
        payload = challenge_to_dict(challenge)

    logger.info("User %s joined challenge %d on %s with %s", user_id, challenge_id, side, stake)
    return payload


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def get_challenge(
    engine: Engine, challenge_id: int, *, viewer_id: str, viewer_is_admin: bool = False
) -> dict:
    """Admin challenges are public; peer challenges are visible to their
    parties and admins only."""
    with get_session(engine) as session:
        challenge = load_challenge(session, challenge_id)
        visible = (
            challenge.admin_created
            or viewer_is_admin
            or viewer_id in (challenge.challenger_id, challenge.challenged_id)
        )
        if not visible:
            raise NotFound("Challenge not found")
        return challenge_to_dict(challenge)


def list_user_challenges(engine: Engine, user_id: str) -> list[dict]:
    """Challenges the user created, was challenged to, or joined."""
    joined = select(ChallengeParticipant.challenge_id).where(
        ChallengeParticipant.user_id == user_id
    )
    with get_session(engine) as session:
        rows = session.scalars(
            select(Challenge)
            .where(or_(
                Challenge.challenger_id == user_id,
                Challenge.challenged_id == user_id,
                Challenge.id.in_(joined),
            ))
            .order_by(Challenge.created_at.desc(), Challenge.id.desc())
        ).all()
        return [challenge_to_dict(c) for c in rows]


def list_public_challenges(engine: Engine, *, limit: int = 50) -> list[dict]:
    """Admin-hosted challenges, pinned first, then newest."""
    with get_session(engine) as session:
        rows = session.scalars(
            select(Challenge)
            .where(
                Challenge.admin_created.is_(True),
                Challenge.status != ChallengeStatus.CANCELLED.value,
            )
            .order_by(
                Challenge.is_pinned.desc(),
                Challenge.created_at.desc(),
                Challenge.id.desc(),
            )
            .limit(limit)
        ).all()
        return [challenge_to_dict(c) for c in rows]


def list_participants(engine: Engine, challenge_id: int) -> list[dict]:
    with get_session(engine) as session:
        load_challenge(session, challenge_id)
        rows = session.scalars(
            select(ChallengeParticipant)
            .where(ChallengeParticipant.challenge_id == challenge_id)
            .order_by(ChallengeParticipant.joined_at.asc(), ChallengeParticipant.id.asc())
        ).all()
        return [
            {
                "userId": p.user_id,
                "side": p.side,
                "amount": p.amount,
                "joinedAt": _iso(p.joined_at),
            }
            for p in rows
        ]
