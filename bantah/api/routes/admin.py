"""
bantah.api.routes.admin — Admin endpoints (admin flag required)
================================================================
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field

from bantah.api.deps import AuthUser, get_current_admin, get_engine
from bantah.constants import CURRENCY_MONEY
from bantah.services import admin_service, wallet_service

router = APIRouter(prefix="/admin", tags=["admin"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class AdminChallengeCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str
    description: str | None = None
    category: str
    amount: Decimal
    due_date: datetime | None = Field(default=None, alias="dueDate")
    cover_image_url: str | None = Field(default=None, alias="coverImageUrl")
    bonus_side: str | None = Field(default=None, alias="bonusSide")
    bonus_multiplier: Decimal | None = Field(default=None, alias="bonusMultiplier")
    bonus_amount: Decimal | None = Field(default=None, alias="bonusAmount")
    bonus_ends_at: datetime | None = Field(default=None, alias="bonusEndsAt")


class StatusChange(BaseModel):
    status: str
    reason: str | None = None


class BonusAward(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId")
    amount: Decimal
    currency: str = CURRENCY_MONEY
    reason: str = ""
    challenge_id: int | None = Field(default=None, alias="challengeId")


class ReconcileRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_ids: list[str] | None = Field(default=None, alias="userIds")


# ---------------------------------------------------------------------------
# Challenges
# ---------------------------------------------------------------------------
@router.post("/challenges", status_code=201)
def create_challenge(
    body: AdminChallengeCreate,
    admin: AuthUser = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    return admin_service.create_admin_challenge(
        engine,
        actor_id=admin.id,
        title=body.title,
        description=body.description,
        category=body.category,
        amount=body.amount,
        due_date=body.due_date,
        cover_image_url=body.cover_image_url,
        bonus_side=body.bonus_side,
        bonus_multiplier=body.bonus_multiplier,
        bonus_amount=body.bonus_amount,
        bonus_ends_at=body.bonus_ends_at,
    )


@router.patch("/challenges/{challenge_id}/status")
def change_status(
    challenge_id: int,
    body: StatusChange,
    admin: AuthUser = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    return admin_service.update_challenge_status(
        engine,
        actor_id=admin.id,
        challenge_id=challenge_id,
        status=body.status,
        reason=body.reason,
    )


# ---------------------------------------------------------------------------
# Wallet
# ---------------------------------------------------------------------------
@router.post("/bonus")
def award_bonus(
    body: BonusAward,
    admin: AuthUser = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    return admin_service.award_bonus(
        engine,
        actor_id=admin.id,
        user_id=body.user_id,
        amount=body.amount,
        currency=body.currency,
        reason=body.reason,
        challenge_id=body.challenge_id,
    )


@router.post("/reconcile")
def reconcile(
    body: ReconcileRequest | None = None,
    admin: AuthUser = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    """Compare balances with ledger sums.  Reports drift, never fixes it."""
    user_ids = body.user_ids if body else None
    return wallet_service.reconcile_wallets(engine, user_ids)


# ---------------------------------------------------------------------------
# Audit log
# ---------------------------------------------------------------------------
@router.get("/audit-log")
def audit_log(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    admin: AuthUser = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    return admin_service.list_admin_log(engine, limit=limit, offset=offset)
