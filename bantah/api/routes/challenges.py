"""
bantah.api.routes.challenges — Challenge endpoints
===================================================
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field

from bantah.api.deps import AuthUser, get_current_admin, get_current_user, get_engine
from bantah.database.models import ChallengeStatus
from bantah.errors import ValidationFailed
from bantah.services import admin_service, challenge_service

router = APIRouter(prefix="/challenges", tags=["challenges"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class ChallengeCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    challenged: str | None = None
    title: str
    description: str | None = None
    category: str
    amount: Decimal
    due_date: datetime | None = Field(default=None, alias="dueDate")


class ChallengeStatusUpdate(BaseModel):
    status: str


class JoinBody(BaseModel):
    side: str
    amount: Decimal | None = None


class PinBody(BaseModel):
    pin: bool


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
@router.get("")
def my_challenges(
    user: AuthUser = Depends(get_current_user),
    engine=Depends(get_engine),
):
    return challenge_service.list_user_challenges(engine, user.id)


@router.get("/public")
def public_challenges(
    limit: int = Query(50, ge=1, le=200),
    engine=Depends(get_engine),
):
    return challenge_service.list_public_challenges(engine, limit=limit)


@router.get("/{challenge_id}")
def get_challenge(
    challenge_id: int,
    user: AuthUser = Depends(get_current_user),
    engine=Depends(get_engine),
):
    return challenge_service.get_challenge(
        engine, challenge_id, viewer_id=user.id, viewer_is_admin=user.is_admin,
    )


@router.get("/{challenge_id}/participants")
def participants(
    challenge_id: int,
    user: AuthUser = Depends(get_current_user),
    engine=Depends(get_engine),
):
    return challenge_service.list_participants(engine, challenge_id)


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------
@router.post("", status_code=201)
def create_challenge(
    body: ChallengeCreate,
    user: AuthUser = Depends(get_current_user),
    engine=Depends(get_engine),
):
    return challenge_service.create_challenge(
        engine,
        user.id,
        challenged_id=body.challenged,
        title=body.title,
        description=body.description,
        category=body.category,
        amount=body.amount,
        due_date=body.due_date,
    )


@router.post("/{challenge_id}/accept")
def accept(
    challenge_id: int,
    user: AuthUser = Depends(get_current_user),
    engine=Depends(get_engine),
):
    return challenge_service.accept_challenge(engine, user.id, challenge_id)


@router.post("/{challenge_id}/decline")
def decline(
    challenge_id: int,
    user: AuthUser = Depends(get_current_user),
    engine=Depends(get_engine),
):
    return challenge_service.decline_challenge(engine, user.id, challenge_id)


@router.patch("/{challenge_id}")
def update_status(
    challenge_id: int,
    body: ChallengeStatusUpdate,
    user: AuthUser = Depends(get_current_user),
    engine=Depends(get_engine),
):
    """Status changes a party may make: ``active`` accepts, ``cancelled``
    declines.  Everything else is an admin action."""
    if body.status == ChallengeStatus.ACTIVE:
        return challenge_service.accept_challenge(engine, user.id, challenge_id)
    if body.status == ChallengeStatus.CANCELLED:
        return challenge_service.decline_challenge(engine, user.id, challenge_id)
    raise ValidationFailed("Status must be 'active' or 'cancelled'")


@router.post("/{challenge_id}/join")
def join(
    challenge_id: int,
    body: JoinBody,
    user: AuthUser = Depends(get_current_user),
    engine=Depends(get_engine),
):
    return challenge_service.join_challenge(
        engine, user.id, challenge_id, side=body.side, amount=body.amount,
    )


@router.post("/{challenge_id}/dispute")
def dispute(
    challenge_id: int,
    user: AuthUser = Depends(get_current_user),
    engine=Depends(get_engine),
):
    return challenge_service.dispute_challenge(engine, user.id, challenge_id)


@router.post("/{challenge_id}/pin")
def pin(
    challenge_id: int,
    body: PinBody,
    admin: AuthUser = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    return admin_service.set_challenge_pinned(
        engine, actor_id=admin.id, challenge_id=challenge_id, pinned=body.pin,
    )
