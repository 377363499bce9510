"""
bantah.constants — Shared Constants
====================================

Single source of truth for wallet arithmetic and identity defaults.
Import from here instead of duplicating in services and routes.
"""

from __future__ import annotations

from decimal import Decimal

# ---------------------------------------------------------------------------
# Wallet
# ---------------------------------------------------------------------------
COIN_EXCHANGE_RATE = Decimal(10)  # 1 unit of money buys 10 coins
MONEY_QUANTUM = Decimal("0.01")

CURRENCY_MONEY = "money"
CURRENCY_COINS = "coins"
CURRENCIES: frozenset[str] = frozenset({CURRENCY_MONEY, CURRENCY_COINS})


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------
IDENTITY_PROVIDER = "privy"
SYNTHETIC_EMAIL_DOMAIN = f"{IDENTITY_PROVIDER}.user"
THIRD_PARTY_PASSWORD = "PRIVY_AUTH_USER"
FALLBACK_NAME = "User"
TELEGRAM_ACCOUNT_TYPE = "telegram"


# ---------------------------------------------------------------------------
# Challenges
# ---------------------------------------------------------------------------
CHALLENGE_SIDES: frozenset[str] = frozenset({"yes", "no"})


def challenge_reference(challenge_id: int) -> str:
    """Ledger reference tying escrow rows to a challenge."""
    return f"challenge:{challenge_id}"
