"""
bantah.config — YAML Configuration Loader
==========================================

Reads ``config.yaml`` for **infrastructure-only** settings (identity provider
endpoint, session cookie, throttling, paging).  Secrets such as the database
URL and the Privy app credentials stay in the environment (``.env``).

Usage::

    from bantah.config import load_config

    cfg = load_config()            # $BANTAH_CONFIG or ./config.yaml
    print(cfg.app_name)            # "Bantah"
    print(cfg.session_ttl_hours)   # 168
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

import yaml


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class BantahConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    app_name: str
    currency_code: str

    # Privy
    privy_api_base: str = "https://auth.privy.io"
    privy_fetch_profile: bool = True  # pull linked accounts from the user API

    # Sessions
    session_cookie_name: str = "bantah_session"
    session_cookie_secure: bool = True
    session_ttl_hours: int = 168

    # Wallet throttle
    wallet_rate_limit: int = 10
    wallet_rate_window_seconds: int = 60

    # Notifications
    notifications_page_size: int = 20


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path | None = None) -> BantahConfig:
    """Read *path* and return a :class:`BantahConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.  Defaults to the
        ``BANTAH_CONFIG`` env var, then ``config.yaml`` in the working
        directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    """
    config_path = Path(path or os.getenv("BANTAH_CONFIG", "config.yaml"))
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    defaults = BantahConfig(app_name="", currency_code="")
    return BantahConfig(
        app_name=raw["app_name"],
        currency_code=raw["currency_code"],
        privy_api_base=str(raw.get("privy_api_base", defaults.privy_api_base)).rstrip("/"),
        privy_fetch_profile=bool(raw.get("privy_fetch_profile", defaults.privy_fetch_profile)),
        session_cookie_name=raw.get("session_cookie_name", defaults.session_cookie_name),
        session_cookie_secure=bool(
            raw.get("session_cookie_secure", defaults.session_cookie_secure)
        ),
        session_ttl_hours=int(raw.get("session_ttl_hours", defaults.session_ttl_hours)),
        wallet_rate_limit=int(raw.get("wallet_rate_limit", defaults.wallet_rate_limit)),
        wallet_rate_window_seconds=int(
            raw.get("wallet_rate_window_seconds", defaults.wallet_rate_window_seconds)
        ),
        notifications_page_size=int(
            raw.get("notifications_page_size", defaults.notifications_page_size)
        ),
    )
