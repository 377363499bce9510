"""
bantah.engine.exchange — Money ⇄ Coin Conversion
=================================================

Fixed-rate conversion between the two wallet denominations.  Pure
arithmetic on :class:`~decimal.Decimal`; the wallet service applies the
result to balances.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from decimal import ROUND_DOWN, Decimal, InvalidOperation

from bantah.constants import COIN_EXCHANGE_RATE, CURRENCY_COINS, CURRENCY_MONEY, MONEY_QUANTUM
from bantah.errors import InvalidAmount, ValidationFailed


class SwapDirection(enum.StrEnum):
    TO_COIN = "to-coin"
    TO_MONEY = "to-money"

    @property
    def source(self) -> str:
        return CURRENCY_MONEY if self is SwapDirection.TO_COIN else CURRENCY_COINS

    @property
    def target(self) -> str:
        return CURRENCY_COINS if self is SwapDirection.TO_COIN else CURRENCY_MONEY

    @classmethod
    def from_currencies(cls, from_currency: str, to_currency: str) -> SwapDirection:
        """Map the client's ``fromCurrency``/``toCurrency`` pair to a direction."""
        pair = (from_currency.lower(), to_currency.lower())
        if pair == (CURRENCY_MONEY, CURRENCY_COINS):
            return cls.TO_COIN
        if pair == (CURRENCY_COINS, CURRENCY_MONEY):
            return cls.TO_MONEY
        raise ValidationFailed(
            f"Cannot swap {from_currency} to {to_currency}; "
            f"use '{CURRENCY_MONEY}' and '{CURRENCY_COINS}'"
        )


@dataclass(frozen=True, slots=True)
class SwapQuote:
    direction: SwapDirection
    from_amount: Decimal
    to_amount: Decimal


def to_amount(value: Decimal | int | float | str) -> Decimal:
    """Parse *value* into a positive amount in whole cents.

    Raises :class:`InvalidAmount` for anything non-numeric, non-finite,
    finer than a cent, or not greater than zero.
    """
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise InvalidAmount() from None
    if not amount.is_finite():
        raise InvalidAmount()
    try:
        cents = amount.quantize(MONEY_QUANTUM, rounding=ROUND_DOWN)
    except InvalidOperation:
        raise InvalidAmount() from None
    if cents != amount:
        raise InvalidAmount("Amount cannot have more than two decimal places")
    if cents <= 0:
        raise InvalidAmount()
    return cents


def quote(amount: Decimal | int | float | str, direction: SwapDirection) -> SwapQuote:
    """Price a swap of *amount* units of the source denomination.

    Money → coins multiplies by the rate; coins → money divides and rounds
    down to the cent, so a swap never mints value.
    """
    source_amount = to_amount(amount)
    if direction is SwapDirection.TO_COIN:
        target = source_amount * COIN_EXCHANGE_RATE
    else:
        target = source_amount / COIN_EXCHANGE_RATE
    target = target.quantize(MONEY_QUANTUM, rounding=ROUND_DOWN)
    if target <= 0:
        raise InvalidAmount(
            f"Swap amount too small; minimum is {COIN_EXCHANGE_RATE * MONEY_QUANTUM} coins"
        )
    return SwapQuote(direction=direction, from_amount=source_amount, to_amount=target)
