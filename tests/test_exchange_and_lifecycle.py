"""
tests/test_exchange_and_lifecycle.py — Pure Engine Tests
=========================================================
Amount parsing, fixed-rate swap quotes, and the challenge status
transition table.  No database.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from bantah.database.models import ChallengeStatus
from bantah.engine.exchange import SwapDirection, quote, to_amount
from bantah.engine.lifecycle import (
    ALLOWED_TRANSITIONS,
    TERMINAL_STATUSES,
    can_transition,
    ensure_transition,
    is_terminal,
)
from bantah.errors import InvalidAmount, InvalidTransition, ValidationFailed


class TestToAmount:
    @pytest.mark.parametrize("value", [0, -1, "0", "-5.00", "0.001", "abc", "NaN", "Infinity"])
    def test_rejects_non_positive_and_garbage(self, value):
        with pytest.raises(InvalidAmount):
            to_amount(value)

    def test_normalizes_to_cents(self):
        assert to_amount(5) == Decimal("5.00")
        assert to_amount("10.1") == Decimal("10.10")
        assert to_amount("10.120") == Decimal("10.12")

    @pytest.mark.parametrize("value", ["10.999", "10.129", 0.005])
    def test_sub_cent_amounts_rejected(self, value):
        with pytest.raises(InvalidAmount, match="two decimal places"):
            to_amount(value)

    def test_error_message(self):
        with pytest.raises(InvalidAmount, match="greater than zero"):
            to_amount(0)


class TestSwapQuote:
    def test_money_to_coins(self):
        q = quote(10, SwapDirection.TO_COIN)
        assert q.from_amount == Decimal("10.00")
        assert q.to_amount == Decimal("100.00")

    def test_coins_to_money(self):
        q = quote(50, SwapDirection.TO_MONEY)
        assert q.to_amount == Decimal("5.00")

    def test_coins_to_money_rounds_down(self):
        q = quote("0.15", SwapDirection.TO_MONEY)
        assert q.to_amount == Decimal("0.01")

    def test_too_few_coins(self):
        with pytest.raises(InvalidAmount):
            quote("0.05", SwapDirection.TO_MONEY)

    def test_direction_from_client_currencies(self):
        assert SwapDirection.from_currencies("money", "coins") is SwapDirection.TO_COIN
        assert SwapDirection.from_currencies("COINS", "money") is SwapDirection.TO_MONEY

    def test_same_currency_rejected(self):
        with pytest.raises(ValidationFailed):
            SwapDirection.from_currencies("money", "money")

    def test_direction_source_and_target(self):
        assert SwapDirection.TO_COIN.source == "money"
        assert SwapDirection.TO_COIN.target == "coins"
        assert SwapDirection.TO_MONEY.source == "coins"


S = ChallengeStatus


class TestTransitionTable:
    @pytest.mark.parametrize(
        ("current", "target"),
        [
            (S.PENDING, S.ACTIVE),
            (S.PENDING, S.CANCELLED),
            (S.OPEN, S.ACTIVE),
            (S.OPEN, S.CANCELLED),
            (S.OPEN, S.COMPLETED),
            (S.OPEN, S.PENDING_ADMIN),
            (S.ACTIVE, S.COMPLETED),
            (S.ACTIVE, S.DISPUTED),
            (S.PENDING_ADMIN, S.COMPLETED),
            (S.DISPUTED, S.COMPLETED),
        ],
    )
    def test_allowed(self, current, target):
        assert can_transition(current, target)
        assert ensure_transition(current.value, target.value) is target

    @pytest.mark.parametrize(
        ("current", "target"),
        [
            (S.PENDING, S.COMPLETED),
            (S.ACTIVE, S.CANCELLED),
            (S.ACTIVE, S.PENDING),
            (S.COMPLETED, S.ACTIVE),
            (S.CANCELLED, S.PENDING),
            (S.PENDING_ADMIN, S.CANCELLED),
        ],
    )
    def test_rejected(self, current, target):
        assert not can_transition(current, target)
        with pytest.raises(InvalidTransition):
            ensure_transition(current, target)

    def test_terminal_statuses(self):
        assert TERMINAL_STATUSES == {S.COMPLETED, S.CANCELLED}
        assert is_terminal("completed")
        assert not is_terminal("open")

    def test_every_status_has_an_entry(self):
        assert set(ALLOWED_TRANSITIONS) == set(ChallengeStatus)

    def test_unknown_status(self):
        with pytest.raises(InvalidTransition):
            ensure_transition("ended", "completed")
