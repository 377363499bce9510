"""
bantah.database.models — SQLAlchemy 2.0 Data Models
====================================================

Tables:
- users                     — Local accounts bridged from Privy identities,
                              carrying the money and coin balances
- transactions              — Append-only wallet ledger
- challenges                — Peer and admin-hosted wagers
- challenge_participants    — Yes/no stakes on admin-hosted challenges
- notifications             — Per-user inbox
- notification_preferences  — Per-user delivery flags and mutes
- auth_sessions             — Opaque cookie sessions
- admin_log                 — Append-only audit trail
- wallet_rate_limit_events  — Sliding-window state for the wallet throttle
"""

from __future__ import annotations

import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from bantah.constants import THIRD_PARTY_PASSWORD

MONEY = Numeric(14, 2)


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Bantah ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class TransactionType(enum.StrEnum):
    """Ledger row categories.  Amounts are signed; debits are negative."""
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    SWAP_OUT = "swap_out"
    SWAP_IN = "swap_in"
    CHALLENGE_ESCROW = "challenge_escrow"
    CHALLENGE_REFUND = "challenge_refund"
    BONUS = "bonus"


class ChallengeStatus(enum.StrEnum):
    PENDING = "pending"
    OPEN = "open"
    ACTIVE = "active"
    PENDING_ADMIN = "pending_admin"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    DISPUTED = "disputed"


class NotificationType(enum.StrEnum):
    CHALLENGE_RECEIVED = "challenge_received"
    CHALLENGE_ACCEPTED = "challenge_accepted"
    CHALLENGE_DECLINED = "challenge_declined"
    CHALLENGE_JOINED = "challenge_joined"
    CHALLENGE_CANCELLED = "challenge_cancelled"
    CHALLENGE_DISPUTED = "challenge_disputed"
    BONUS_RECEIVED = "bonus_received"


class AdminActionType(enum.StrEnum):
    """Categories of admin mutations recorded in admin_log."""
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    STATUS_CHANGE = "STATUS_CHANGE"
    MANUAL_AWARD = "MANUAL_AWARD"


# ---------------------------------------------------------------------------
# Users — one row per Privy identity
# ---------------------------------------------------------------------------
class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)  # Privy DID
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    password: Mapped[str] = mapped_column(
        String(255), nullable=False, default=THIRD_PARTY_PASSWORD
    )
    first_name: Mapped[str | None] = mapped_column(String(100), default=None)
    last_name: Mapped[str | None] = mapped_column(String(100), default=None)
    username: Mapped[str | None] = mapped_column(String(100), default=None)
    profile_image_url: Mapped[str | None] = mapped_column(String(500), default=None)
    is_admin: Mapped[bool] = mapped_column(Boolean, default=False)

    # Telegram linkage discovered in Privy linked accounts
    telegram_id: Mapped[str | None] = mapped_column(String(64), default=None)
    telegram_username: Mapped[str | None] = mapped_column(String(100), default=None)
    is_telegram_user: Mapped[bool] = mapped_column(Boolean, default=False)

    # Wallet — only ever changed together with a Transaction row
    balance: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal(0))
    coins: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal(0))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    transactions: Mapped[list[Transaction]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )
    notification_preferences: Mapped[NotificationPreference | None] = relationship(
        back_populates="user", uselist=False, cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_users_balance_non_negative"),
        CheckConstraint("coins >= 0", name="ck_users_coins_non_negative"),
        Index("ix_users_telegram_id", "telegram_id"),
    )

    def __repr__(self) -> str:
        return f"<User id={self.id!r} email={self.email!r}>"


# ---------------------------------------------------------------------------
# Transaction — append-only wallet ledger
# ---------------------------------------------------------------------------
class Transaction(Base):
    """One signed movement on one currency of one user's wallet.

    For every user and currency, ``SUM(amount)`` equals the stored balance.
    """
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(String(30), nullable=False)
    currency: Mapped[str] = mapped_column(String(10), nullable=False)
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    reference: Mapped[str | None] = mapped_column(String(100), default=None)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="completed")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    user: Mapped[User] = relationship(back_populates="transactions")

    __table_args__ = (
        Index("ix_transactions_user_time", "user_id", "created_at"),
        Index("ix_transactions_reference", "reference"),
    )

    def __repr__(self) -> str:
        return (
            f"<Transaction id={self.id} user={self.user_id!r} "
            f"type={self.type} {self.amount} {self.currency}>"
        )


# ---------------------------------------------------------------------------
# Challenge — peer or admin-hosted wager
# ---------------------------------------------------------------------------
class Challenge(Base):
    __tablename__ = "challenges"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    challenger_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("users.id"), nullable=False
    )
    challenged_id: Mapped[str | None] = mapped_column(
        String(128), ForeignKey("users.id"), nullable=True
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    category: Mapped[str] = mapped_column(String(50), nullable=False)
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ChallengeStatus.PENDING.value
    )
    admin_created: Mapped[bool] = mapped_column(Boolean, default=False)
    due_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    is_pinned: Mapped[bool] = mapped_column(Boolean, default=False)
    cover_image_url: Mapped[str | None] = mapped_column(String(500), default=None)

    # Bonus metadata (admin-hosted only)
    bonus_side: Mapped[str | None] = mapped_column(String(3), default=None)
    bonus_multiplier: Mapped[Decimal | None] = mapped_column(Numeric(6, 2), default=None)
    bonus_amount: Mapped[Decimal | None] = mapped_column(MONEY, default=None)
    bonus_ends_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )

    # Pool counters (admin-hosted only)
    participant_count: Mapped[int] = mapped_column(Integer, default=0)
    yes_stake_total: Mapped[Decimal] = mapped_column(MONEY, default=Decimal(0))
    no_stake_total: Mapped[Decimal] = mapped_column(MONEY, default=Decimal(0))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    challenger: Mapped[User] = relationship(foreign_keys=[challenger_id])
    challenged: Mapped[User | None] = relationship(foreign_keys=[challenged_id])
    participants: Mapped[list[ChallengeParticipant]] = relationship(
        back_populates="challenge", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_challenges_challenger", "challenger_id"),
        Index("ix_challenges_challenged", "challenged_id"),
        Index("ix_challenges_status", "status"),
        Index("ix_challenges_admin_pinned", "admin_created", "is_pinned"),
    )

    def __repr__(self) -> str:
        return f"<Challenge id={self.id} title={self.title!r} status={self.status}>"


# ---------------------------------------------------------------------------
# ChallengeParticipant — one stake on one side of an admin-hosted challenge
# ---------------------------------------------------------------------------
class ChallengeParticipant(Base):
    __tablename__ = "challenge_participants"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    challenge_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    side: Mapped[str] = mapped_column(String(3), nullable=False)  # yes / no
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    challenge: Mapped[Challenge] = relationship(back_populates="participants")

    __table_args__ = (
        UniqueConstraint("challenge_id", "user_id", name="uq_participants_challenge_user"),
    )

    def __repr__(self) -> str:
        return (
            f"<ChallengeParticipant challenge={self.challenge_id} "
            f"user={self.user_id!r} side={self.side}>"
        )


# ---------------------------------------------------------------------------
# Notification — per-user inbox
# ---------------------------------------------------------------------------
class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str | None] = mapped_column(Text, default=None)
    data: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    challenge_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("challenges.id", ondelete="SET NULL"), nullable=True
    )
    actor_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    read: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_notifications_user_time", "user_id", "created_at"),
        Index("ix_notifications_user_read", "user_id", "read"),
    )

    def __repr__(self) -> str:
        return f"<Notification id={self.id} user={self.user_id!r} type={self.type}>"


# ---------------------------------------------------------------------------
# NotificationPreference — per-user delivery flags and mutes
# ---------------------------------------------------------------------------
class NotificationPreference(Base):
    __tablename__ = "notification_preferences"

    user_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    enable_push: Mapped[bool] = mapped_column(Boolean, default=True)
    enable_telegram: Mapped[bool] = mapped_column(Boolean, default=False)
    enable_in_app: Mapped[bool] = mapped_column(Boolean, default=True)
    notification_frequency: Mapped[str] = mapped_column(String(20), default="immediate")
    muted_challenges: Mapped[list | None] = mapped_column(JSONB, default=list)
    muted_users: Mapped[list | None] = mapped_column(JSONB, default=list)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    user: Mapped[User] = relationship(back_populates="notification_preferences")

    def __repr__(self) -> str:
        return f"<NotificationPreference user={self.user_id!r}>"


# ---------------------------------------------------------------------------
# AuthSession — opaque cookie session bound to a user
# ---------------------------------------------------------------------------
class AuthSession(Base):
    __tablename__ = "auth_sessions"

    token: Mapped[str] = mapped_column(String(128), primary_key=True)
    user_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_auth_sessions_user", "user_id"),
        Index("ix_auth_sessions_expires_at", "expires_at"),
    )

    def __repr__(self) -> str:
        return f"<AuthSession token={self.token[:8]!r}... user={self.user_id!r}>"


# ---------------------------------------------------------------------------
# AdminLog — append-only audit trail
# ---------------------------------------------------------------------------
class AdminLog(Base):
    __tablename__ = "admin_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    actor_id: Mapped[str] = mapped_column(String(128), nullable=False)
    action_type: Mapped[str] = mapped_column(String(50), nullable=False)
    target_table: Mapped[str] = mapped_column(String(50), nullable=False)
    target_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    before_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    after_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_admin_log_actor_time", "actor_id", "timestamp"),
        Index("ix_admin_log_target", "target_table", "target_id", "timestamp"),
    )

    def __repr__(self) -> str:
        return f"<AdminLog id={self.id} actor={self.actor_id!r} action={self.action_type}>"


# ---------------------------------------------------------------------------
# WalletRateLimitEvent — durable mutation events for the wallet throttle
# ---------------------------------------------------------------------------
class WalletRateLimitEvent(Base):
    __tablename__ = "wallet_rate_limit_events"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("ix_wallet_rate_limit_user_ts", "user_id", timestamp.desc()),
        Index("ix_wallet_rate_limit_ts", "timestamp"),
    )

    def __repr__(self) -> str:
        return f"<WalletRateLimitEvent user={self.user_id!r} ts={self.timestamp}>"
