"""
bantah.services.wallet_service — Wallet Ledger
===============================================

Balances live on the ``users`` row (``balance`` for money, ``coins`` for the
in-app coin); every change is mirrored by a signed ``transactions`` row in
the **same database transaction**.

Overdraft protection is a single conditional UPDATE::

    UPDATE users SET balance = balance - :amt
    WHERE id = :uid AND balance >= :amt

If no row matches, the caller lacks funds and nothing is written.  Two
concurrent withdrawals therefore cannot both pass a stale balance check.

Escrow helpers take an open :class:`Session` so the challenge service can
move stakes and change challenge rows atomically.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import Engine, func, select, update
from sqlalchemy.orm import Session

from bantah.constants import CURRENCIES, CURRENCY_COINS, CURRENCY_MONEY, MONEY_QUANTUM
from bantah.database.engine import get_session
from bantah.database.models import Transaction, TransactionType, User
from bantah.engine.exchange import SwapDirection, quote, to_amount
from bantah.errors import InsufficientFunds, NotFound, ValidationFailed

logger = logging.getLogger(__name__)

_ESCROW_TYPES = (
    TransactionType.CHALLENGE_ESCROW.value,
    TransactionType.CHALLENGE_REFUND.value,
)


@dataclass(frozen=True, slots=True)
class WalletBalance:
    balance: Decimal
    coins: Decimal

    def to_dict(self) -> dict:
        return {"balance": self.balance, "coins": self.coins}


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------
def transaction_to_dict(tx: Transaction) -> dict:
    return {
        "id": tx.id,
        "userId": tx.user_id,
        "type": tx.type,
        "currency": tx.currency,
        "amount": tx.amount,
        "description": tx.description,
        "reference": tx.reference,
        "status": tx.status,
        "createdAt": tx.created_at.isoformat() if tx.created_at else None,
    }


# ---------------------------------------------------------------------------
# Core primitive — balance delta + ledger row
# ---------------------------------------------------------------------------
def _column(currency: str):
    if currency == CURRENCY_MONEY:
        return User.balance
    if currency == CURRENCY_COINS:
        return User.coins
    raise ValidationFailed(f"Unknown currency: {currency!r}")


def apply_delta(
    session: Session,
    user_id: str,
    *,
    currency: str,
    delta: Decimal,
    tx_type: TransactionType,
    description: str | None = None,
    reference: str | None = None,
) -> Transaction:
    """Change one balance by *delta* and append the matching ledger row.

    Debits are guarded by the conditional UPDATE.  Raises
    :class:`InsufficientFunds` (or :class:`NotFound` for an unknown user);
    the caller's transaction must then be rolled back.
    """
    col = _column(currency)
    stmt = update(User).where(User.id == user_id)
    if delta < 0:
        stmt = stmt.where(col >= -delta)
    result = session.execute(
        stmt.values({col: col + delta}).execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        if session.scalar(select(User.id).where(User.id == user_id)) is None:
            raise NotFound("User not found")
        noun = "balance" if currency == CURRENCY_MONEY else "coins"
        raise InsufficientFunds(f"Insufficient {noun}")

    tx = Transaction(
        user_id=user_id,
        type=tx_type.value,
        currency=currency,
        amount=delta,
        description=description,
        reference=reference,
    )
    session.add(tx)
    session.flush()
    return tx


def _read_balance(session: Session, user_id: str) -> WalletBalance:
    row = session.execute(
        select(User.balance, User.coins).where(User.id == user_id)
    ).one_or_none()
    if row is None:
        raise NotFound("User not found")
    return WalletBalance(balance=Decimal(row.balance), coins=Decimal(row.coins))


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def get_balance(engine: Engine, user_id: str) -> WalletBalance:
    with get_session(engine) as session:
        return _read_balance(session, user_id)


def list_transactions(
    engine: Engine, user_id: str, *, limit: int = 50, offset: int = 0
) -> list[dict]:
    """Newest-first ledger rows for *user_id*."""
    with get_session(engine) as session:
        rows = session.scalars(
            select(Transaction)
            .where(Transaction.user_id == user_id)
            .order_by(Transaction.created_at.desc(), Transaction.id.desc())
            .limit(limit)
            .offset(offset)
        ).all()
        return [transaction_to_dict(tx) for tx in rows]


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------
def deposit(
    engine: Engine,
    user_id: str,
    amount: Decimal | int | float | str,
    *,
    description: str | None = None,
    reference: str | None = None,
) -> dict:
    """Credit money.  Payment confirmation happens upstream of this call."""
    value = to_amount(amount)
    with get_session(engine) as session:
        tx = apply_delta(
            session, user_id,
            currency=CURRENCY_MONEY,
            delta=value,
            tx_type=TransactionType.DEPOSIT,
            description=description or "Wallet deposit",
            reference=reference,
        )
        wallet = _read_balance(session, user_id)
        result = {**wallet.to_dict(), "transaction": transaction_to_dict(tx)}
    logger.info("Deposit %s for user %s", value, user_id)
    return result


def withdraw(
    engine: Engine,
    user_id: str,
    amount: Decimal | int | float | str,
    *,
    description: str | None = None,
) -> dict:
    value = to_amount(amount)
    try:
        with get_session(engine) as session:
            tx = apply_delta(
                session, user_id,
                currency=CURRENCY_MONEY,
                delta=-value,
                tx_type=TransactionType.WITHDRAWAL,
                description=description or "Wallet withdrawal",
            )
            wallet = _read_balance(session, user_id)
            result = {**wallet.to_dict(), "transaction": transaction_to_dict(tx)}
    except InsufficientFunds:
        logger.info("Withdrawal of %s rejected for user %s: insufficient funds", value, user_id)
        raise
    logger.info("Withdrawal %s for user %s", value, user_id)
    return result


def swap(
    engine: Engine,
    user_id: str,
    amount: Decimal | int | float | str,
    direction: SwapDirection | str,
) -> dict:
    """Convert between money and coins at the fixed rate.

    Writes two ledger rows (``swap_out`` on the source currency, ``swap_in``
    on the target) sharing one ``swap:<uuid>`` reference.
    """
    direction = SwapDirection(direction)
    q = quote(amount, direction)
    reference = f"swap:{uuid.uuid4().hex}"
    description = f"Swap {q.from_amount} {direction.source} → {q.to_amount} {direction.target}"

    try:
        with get_session(engine) as session:
            out_tx = apply_delta(
                session, user_id,
                currency=direction.source,
                delta=-q.from_amount,
                tx_type=TransactionType.SWAP_OUT,
                description=description,
                reference=reference,
            )
            in_tx = apply_delta(
                session, user_id,
                currency=direction.target,
                delta=q.to_amount,
                tx_type=TransactionType.SWAP_IN,
                description=description,
                reference=reference,
            )
            wallet = _read_balance(session, user_id)
            result = {
                "fromAmount": q.from_amount,
                "fromCurrency": direction.source,
                "toAmount": q.to_amount,
                "toCurrency": direction.target,
                **wallet.to_dict(),
                "transactions": [transaction_to_dict(out_tx), transaction_to_dict(in_tx)],
            }
    except InsufficientFunds:
        logger.info("Swap %s rejected for user %s: insufficient funds", direction, user_id)
        raise
    logger.info("Swap for user %s: %s", user_id, description)
    return result


# ---------------------------------------------------------------------------
# Escrow (session-scoped, used by the challenge service)
# ---------------------------------------------------------------------------
def escrow_stake(
    session: Session,
    user_id: str,
    amount: Decimal,
    *,
    reference: str,
    description: str,
) -> Transaction:
    """Hold *amount* of the user's money against a challenge."""
    return apply_delta(
        session, user_id,
        currency=CURRENCY_MONEY,
        delta=-amount,
        tx_type=TransactionType.CHALLENGE_ESCROW,
        description=description,
        reference=reference,
    )


def held_escrow(session: Session, reference: str) -> dict[str, Decimal]:
    """Net money still held per user under *reference*."""
    rows = session.execute(
        select(Transaction.user_id, func.sum(Transaction.amount).label("net"))
        .where(
            Transaction.reference == reference,
            Transaction.type.in_(_ESCROW_TYPES),
            Transaction.currency == CURRENCY_MONEY,
        )
        .group_by(Transaction.user_id)
    ).all()
    held: dict[str, Decimal] = {}
    for row in rows:
        net = -Decimal(row.net or 0).quantize(MONEY_QUANTUM)
        if net > 0:
            held[row.user_id] = net
    return held


def refund_escrow(
    session: Session,
    *,
    reference: str,
    description: str,
    user_id: str | None = None,
) -> dict[str, Decimal]:
    """Return held stakes under *reference* (optionally for one user only).

    Returns ``{user_id: refunded_amount}``.  Calling it twice refunds
    nothing the second time.
    """
    held = held_escrow(session, reference)
    if user_id is not None:
        held = {uid: amt for uid, amt in held.items() if uid == user_id}
    for uid, amount in held.items():
        apply_delta(
            session, uid,
            currency=CURRENCY_MONEY,
            delta=amount,
            tx_type=TransactionType.CHALLENGE_REFUND,
            description=description,
            reference=reference,
        )
    if held:
        logger.info("Refunded escrow %s: %s", reference, held)
    return held


def credit_bonus(
    session: Session,
    user_id: str,
    amount: Decimal,
    *,
    currency: str,
    description: str,
    reference: str | None = None,
) -> Transaction:
    if currency not in CURRENCIES:
        raise ValidationFailed(f"Unknown currency: {currency!r}")
    return apply_delta(
        session, user_id,
        currency=currency,
        delta=amount,
        tx_type=TransactionType.BONUS,
        description=description,
        reference=reference,
    )


# ---------------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------------
def reconcile_wallets(engine: Engine, user_ids: list[str] | None = None) -> dict:
    """Compare stored balances with ledger sums.

    Drift is reported and logged, never corrected: the ledger and the
    balance cannot both be trusted once they disagree.

    Returns ``{"checked": N, "drifted": M, "drift": [...], "timestamp": ...}``.
    """
    drift: list[dict] = []

    with get_session(engine) as session:
        sums_q = (
            select(
                Transaction.user_id,
                Transaction.currency,
                func.sum(Transaction.amount).label("total"),
            )
            .group_by(Transaction.user_id, Transaction.currency)
        )
        users_q = select(User.id, User.balance, User.coins)
        if user_ids is not None:
            sums_q = sums_q.where(Transaction.user_id.in_(user_ids))
            users_q = users_q.where(User.id.in_(user_ids))

        ledger: dict[tuple[str, str], Decimal] = {
            (row.user_id, row.currency): Decimal(row.total or 0).quantize(MONEY_QUANTUM)
            for row in session.execute(sums_q).all()
        }
        users = session.execute(users_q).all()

    checked = 0
    for row in users:
        stored = {CURRENCY_MONEY: row.balance, CURRENCY_COINS: row.coins}
        for currency, value in stored.items():
            checked += 1
            stored_value = Decimal(value or 0).quantize(MONEY_QUANTUM)
            ledger_value = ledger.get((row.id, currency), Decimal("0.00"))
            if stored_value != ledger_value:
                drift.append({
                    "user_id": row.id,
                    "currency": currency,
                    "stored": stored_value,
                    "ledger": ledger_value,
                    "diff": stored_value - ledger_value,
                })

    if drift:
        logger.warning(
            "Wallet reconciliation: %d/%d balances drifted from the ledger: %s",
            len(drift), checked, drift,
        )
    else:
        logger.info("Wallet reconciliation: all %d balances match the ledger", checked)

    return {
        "checked": checked,
        "drifted": len(drift),
        "drift": drift,
        "timestamp": datetime.now(UTC).isoformat(),
    }
