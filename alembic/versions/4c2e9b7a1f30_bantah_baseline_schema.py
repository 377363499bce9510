"""Bantah baseline schema

Revision ID: 4c2e9b7a1f30
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "4c2e9b7a1f30"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

MONEY = sa.Numeric(14, 2)


def _timestamp(name: str) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=True,
        server_default=sa.func.now(),
    )


def upgrade() -> None:
    """Create users, wallet ledger, challenges, notifications and auth tables."""
    op.create_table(
        "users",
        sa.Column("id", sa.String(128), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("password", sa.String(255), nullable=False),
        sa.Column("first_name", sa.String(100)),
        sa.Column("last_name", sa.String(100)),
        sa.Column("username", sa.String(100)),
        sa.Column("profile_image_url", sa.String(500)),
        sa.Column("is_admin", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("telegram_id", sa.String(64)),
        sa.Column("telegram_username", sa.String(100)),
        sa.Column("is_telegram_user", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("balance", MONEY, nullable=False, server_default="0"),
        sa.Column("coins", MONEY, nullable=False, server_default="0"),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.CheckConstraint("balance >= 0", name="ck_users_balance_non_negative"),
        sa.CheckConstraint("coins >= 0", name="ck_users_coins_non_negative"),
    )
    op.create_index("ix_users_telegram_id", "users", ["telegram_id"])

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "user_id", sa.String(128),
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("type", sa.String(30), nullable=False),
        sa.Column("currency", sa.String(10), nullable=False),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("reference", sa.String(100)),
        sa.Column("status", sa.String(20), nullable=False, server_default="completed"),
        _timestamp("created_at"),
    )
    op.create_index("ix_transactions_user_time", "transactions", ["user_id", "created_at"])
    op.create_index("ix_transactions_reference", "transactions", ["reference"])

    op.create_table(
        "challenges",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("challenger_id", sa.String(128), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("challenged_id", sa.String(128), sa.ForeignKey("users.id")),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("category", sa.String(50), nullable=False),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("admin_created", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("due_date", sa.DateTime(timezone=True)),
        sa.Column("is_pinned", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("cover_image_url", sa.String(500)),
        sa.Column("bonus_side", sa.String(3)),
        sa.Column("bonus_multiplier", sa.Numeric(6, 2)),
        sa.Column("bonus_amount", MONEY),
        sa.Column("bonus_ends_at", sa.DateTime(timezone=True)),
        sa.Column("participant_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("yes_stake_total", MONEY, nullable=False, server_default="0"),
        sa.Column("no_stake_total", MONEY, nullable=False, server_default="0"),
        _timestamp("created_at"),
        _timestamp("updated_at"),
    )
    op.create_index("ix_challenges_challenger", "challenges", ["challenger_id"])
    op.create_index("ix_challenges_challenged", "challenges", ["challenged_id"])
    op.create_index("ix_challenges_status", "challenges", ["status"])
    op.create_index("ix_challenges_admin_pinned", "challenges", ["admin_created", "is_pinned"])

    op.create_table(
        "challenge_participants",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "challenge_id", sa.Integer(),
            sa.ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "user_id", sa.String(128),
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("side", sa.String(3), nullable=False),
        sa.Column("amount", MONEY, nullable=False),
        _timestamp("joined_at"),
        sa.UniqueConstraint("challenge_id", "user_id", name="uq_participants_challenge_user"),
    )

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "user_id", sa.String(128),
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("type", sa.String(50), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("message", sa.Text()),
        sa.Column("data", postgresql.JSONB()),
        sa.Column(
            "challenge_id", sa.Integer(),
            sa.ForeignKey("challenges.id", ondelete="SET NULL"),
        ),
        sa.Column("actor_id", sa.String(128)),
        sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.false()),
        _timestamp("created_at"),
    )
    op.create_index("ix_notifications_user_time", "notifications", ["user_id", "created_at"])
    op.create_index("ix_notifications_user_read", "notifications", ["user_id", "read"])

    op.create_table(
        "notification_preferences",
        sa.Column(
            "user_id", sa.String(128),
            sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column("enable_push", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("enable_telegram", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("enable_in_app", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "notification_frequency", sa.String(20), nullable=False,
            server_default="immediate",
        ),
        sa.Column("muted_challenges", postgresql.JSONB(), server_default="[]"),
        sa.Column("muted_users", postgresql.JSONB(), server_default="[]"),
        _timestamp("updated_at"),
    )

    op.create_table(
        "auth_sessions",
        sa.Column("token", sa.String(128), primary_key=True),
        sa.Column(
            "user_id", sa.String(128),
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "created_at", sa.DateTime(timezone=True),
            nullable=False, server_default=sa.func.now(),
        ),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_auth_sessions_user", "auth_sessions", ["user_id"])
    op.create_index("ix_auth_sessions_expires_at", "auth_sessions", ["expires_at"])

    op.create_table(
        "admin_log",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("actor_id", sa.String(128), nullable=False),
        sa.Column("action_type", sa.String(50), nullable=False),
        sa.Column("target_table", sa.String(50), nullable=False),
        sa.Column("target_id", sa.String(128)),
        sa.Column("before_snapshot", postgresql.JSONB()),
        sa.Column("after_snapshot", postgresql.JSONB()),
        sa.Column("reason", sa.Text()),
        _timestamp("timestamp"),
    )
    op.create_index("ix_admin_log_actor_time", "admin_log", ["actor_id", "timestamp"])
    op.create_index(
        "ix_admin_log_target", "admin_log", ["target_table", "target_id", "timestamp"],
    )

    op.create_table(
        "wallet_rate_limit_events",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(128), nullable=False),
        sa.Column(
            "timestamp", sa.DateTime(timezone=True),
            nullable=False, server_default=sa.func.now(),
        ),
    )
    op.create_index(
        "ix_wallet_rate_limit_user_ts",
        "wallet_rate_limit_events",
        ["user_id", sa.text("timestamp DESC")],
    )
    op.create_index("ix_wallet_rate_limit_ts", "wallet_rate_limit_events", ["timestamp"])


def downgrade() -> None:
    """Drop every Bantah table."""
    op.drop_table("wallet_rate_limit_events")
    op.drop_table("admin_log")
    op.drop_table("auth_sessions")
    op.drop_table("notification_preferences")
    op.drop_table("notifications")
    op.drop_table("challenge_participants")
    op.drop_table("challenges")
    op.drop_table("transactions")
    op.drop_table("users")
