"""
bantah.api.routes.wallet — Wallet endpoints
============================================
"""

from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from bantah.api.deps import AuthUser, get_current_user, get_engine
from bantah.api.rate_limit import rate_limited_user
from bantah.engine.exchange import SwapDirection
from bantah.errors import ValidationFailed
from bantah.services import wallet_service

router = APIRouter(tags=["wallet"])


class AmountBody(BaseModel):
    amount: Decimal
    description: str | None = None


class SwapBody(BaseModel):
    amount: Decimal
    fromCurrency: str | None = None
    toCurrency: str | None = None
    direction: SwapDirection | None = None


@router.get("/wallet/balance")
def balance(
    user: AuthUser = Depends(get_current_user),
    engine=Depends(get_engine),
):
    return wallet_service.get_balance(engine, user.id).to_dict()


@router.get("/transactions")
def transactions(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user: AuthUser = Depends(get_current_user),
    engine=Depends(get_engine),
):
    return wallet_service.list_transactions(engine, user.id, limit=limit, offset=offset)


@router.post("/wallet/deposit")
def deposit(
    body: AmountBody,
    user: AuthUser = Depends(rate_limited_user),
    engine=Depends(get_engine),
):
    return wallet_service.deposit(engine, user.id, body.amount, description=body.description)


@router.post("/wallet/withdraw")
def withdraw(
    body: AmountBody,
    user: AuthUser = Depends(rate_limited_user),
    engine=Depends(get_engine),
):
    return wallet_service.withdraw(engine, user.id, body.amount, description=body.description)


@router.post("/wallet/swap")
def swap(
    body: SwapBody,
    user: AuthUser = Depends(rate_limited_user),
    engine=Depends(get_engine),
):
    """Swap between money and coins.

    Accepts either ``{fromCurrency, toCurrency}`` (as the web client sends)
    or ``{direction: "to-coin" | "to-money"}``.
    """
    if body.direction is not None:
        direction = body.direction
    elif body.fromCurrency and body.toCurrency:
        direction = SwapDirection.from_currencies(body.fromCurrency, body.toCurrency)
    else:
        raise ValidationFailed("fromCurrency and toCurrency are required")
    return wallet_service.swap(engine, user.id, body.amount, direction)
