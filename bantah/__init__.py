"""
Bantah — Social Challenges & Wallet API
========================================
Users sign in through Privy, stake money on peer-to-peer or admin-hosted
challenges, move funds between a cash balance and in-app coins, and get
notified when something happens to their challenges.

Package layout::

    bantah/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Exchange rate, money quantum, email domain
    ├── errors.py          # BantahError taxonomy
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   └── models.py      # All ORM models
    ├── engine/
    │   ├── claims.py      # Privy claims → VerifiedClaims
    │   ├── exchange.py    # Money ⇄ coin conversion
    │   └── lifecycle.py   # Challenge status transition table
    ├── services/
    │   ├── identity_bridge.py     # Privy token verification
    │   ├── user_service.py        # Find-or-create users, Telegram linkage
    │   ├── session_service.py     # Cookie sessions
    │   ├── wallet_service.py      # Ledger, escrow, reconciliation
    │   ├── challenge_service.py   # Challenge lifecycle
    │   ├── notification_service.py
    │   └── admin_service.py       # Audit-logged admin mutations
    └── api/
        ├── main.py        # FastAPI app
        ├── deps.py        # Auth middleware + providers
        ├── auth.py        # Session login/logout, current user
        ├── rate_limit.py  # Wallet mutation throttle
        └── routes/        # Wallet, challenges, notifications, admin
"""

__version__ = "0.1.0"
