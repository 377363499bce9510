"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import os

# Placeholder Privy credentials so nothing tries to read a real .env value.
os.environ.setdefault("PRIVY_APP_ID", "test-app-id")
os.environ.setdefault("PRIVY_APP_SECRET", "test-app-secret")

from decimal import Decimal  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine  # noqa: E402

# ---------------------------------------------------------------------------
# Make JSONB columns work in SQLite for testing.
# SQLite doesn't support JSONB natively, but SQLAlchemy's JSON type works.
# We register a custom type compiler so SQLite renders JSONB as TEXT.
# ---------------------------------------------------------------------------
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from bantah.config import BantahConfig  # noqa: E402
from bantah.database.engine import get_session  # noqa: E402
from bantah.database.models import Base, TransactionType, User  # noqa: E402
from bantah.engine.claims import LinkedAccount, VerifiedClaims  # noqa: E402

_jsonb_sqlite_registered = False


def _register_jsonb_sqlite_compat():
    """Register SQLite compilation for PG JSONB type (idempotent).

    Also maps BigInteger → INTEGER so autoincrement works on SQLite.
    """
    global _jsonb_sqlite_registered
    if _jsonb_sqlite_registered:
        return
    from sqlalchemy import BigInteger
    from sqlalchemy.ext.compiler import compiles

    @compiles(PG_JSONB, "sqlite")
    def _compile_jsonb_as_text(type_, compiler, **kw):
        return "TEXT"

    @compiles(BigInteger, "sqlite")
    def _compile_bigint_as_integer(type_, compiler, **kw):
        return "INTEGER"

    _jsonb_sqlite_registered = True


_register_jsonb_sqlite_compat()


@pytest.fixture
def db_engine() -> Engine:
    """In-memory SQLite engine with all Bantah tables.

    Uses StaticPool so all threads share the same in-memory database
    (required by ``asyncio.to_thread`` used by ``run_db``).
    """
    from sqlalchemy import event
    from sqlalchemy.pool import StaticPool

    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite's implicit BEGIN breaks SAVEPOINT (begin_nested); emit BEGIN
    # ourselves so nested transactions roll back like they do on PostgreSQL.
    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a session that rolls back after each test."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


@pytest.fixture
def test_config() -> BantahConfig:
    return BantahConfig(
        app_name="Bantah",
        currency_code="NGN",
        privy_fetch_profile=False,
        session_cookie_secure=False,  # TestClient talks plain http
        wallet_rate_limit=100,
    )


# ---------------------------------------------------------------------------
# Data helpers
# ---------------------------------------------------------------------------
def make_user(
    engine: Engine,
    user_id: str,
    *,
    email: str | None = None,
    is_admin: bool = False,
    money: Decimal | int = 0,
    coins: Decimal | int = 0,
) -> str:
    """Insert a user and fund it through the ledger so balances reconcile."""
    from bantah.constants import CURRENCY_COINS, CURRENCY_MONEY
    from bantah.services.wallet_service import apply_delta

    with get_session(engine) as session:
        session.add(User(
            id=user_id,
            email=email or f"{user_id.split(':')[-1]}@example.com",
            username=user_id.split(":")[-1],
            first_name="Test",
            last_name="User",
            is_admin=is_admin,
        ))
        session.flush()
        if money:
            apply_delta(
                session, user_id,
                currency=CURRENCY_MONEY, delta=Decimal(money),
                tx_type=TransactionType.DEPOSIT, description="seed",
            )
        if coins:
            apply_delta(
                session, user_id,
                currency=CURRENCY_COINS, delta=Decimal(coins),
                tx_type=TransactionType.BONUS, description="seed",
            )
    return user_id


def claims_for(
    subject: str,
    *,
    email: str | None = None,
    telegram_id: str | None = None,
    telegram_username: str | None = None,
    **names,
) -> VerifiedClaims:
    linked = ()
    if telegram_id:
        linked = (LinkedAccount(
            type="telegram", external_id=telegram_id, username=telegram_username,
        ),)
    return VerifiedClaims(subject=subject, email=email, linked_accounts=linked, **names)


# ---------------------------------------------------------------------------
# Identity bridge stand-in
# ---------------------------------------------------------------------------
class FakeBridge:
    """Maps opaque test tokens to claims; unknown tokens fail verification."""

    def __init__(self) -> None:
        self.tokens: dict[str, VerifiedClaims] = {}
        self.calls: list[str] = []

    def register(self, token: str, claims: VerifiedClaims) -> str:
        self.tokens[token] = claims
        return token

    async def verify(self, token: str) -> VerifiedClaims | None:
        self.calls.append(token)
        return self.tokens.get(token)


@pytest.fixture
def fake_bridge() -> FakeBridge:
    return FakeBridge()


@pytest.fixture
def client(db_engine, test_config, fake_bridge):
    """FastAPI TestClient wired to the SQLite engine and the fake bridge."""
    from fastapi.testclient import TestClient

    from bantah.api.deps import get_config, get_engine, get_identity_bridge
    from bantah.api.main import app
    from bantah.api.rate_limit import configure_rate_limiter

    configure_rate_limiter(engine=db_engine, cfg=test_config)
    app.dependency_overrides[get_engine] = lambda: db_engine
    app.dependency_overrides[get_config] = lambda: test_config
    app.dependency_overrides[get_identity_bridge] = lambda: fake_bridge

    yield TestClient(app, raise_server_exceptions=False)

    app.dependency_overrides.clear()


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def login(db_engine, fake_bridge):
    """Factory: create (optionally funded) user, return auth headers."""

    def _login(
        user_id: str,
        *,
        is_admin: bool = False,
        money: Decimal | int = 0,
        coins: Decimal | int = 0,
    ) -> dict[str, str]:
        make_user(db_engine, user_id, is_admin=is_admin, money=money, coins=coins)
        token = fake_bridge.register(f"token-{user_id}", claims_for(user_id))
        return bearer(token)

    return _login
