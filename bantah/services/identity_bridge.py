"""
bantah.services.identity_bridge — Privy Token Verification
===========================================================

Exchanges a Privy access token for :class:`VerifiedClaims`.

Privy access tokens are ES256 JWTs issued by ``privy.io`` with the app id
as audience.  The verification key is either supplied up front
(``PRIVY_VERIFICATION_KEY``, the PEM shown in the Privy dashboard) or
fetched once from the app's JWKS endpoint and cached.  When profile
enrichment is on, the user API is queried for linked accounts (Telegram,
email) that the token itself does not carry.

Contract: :meth:`PrivyBridge.verify` returns ``None`` for any invalid or
expired token.  Transport failures while fetching keys are logged and also
yield ``None``; nothing is retried.
"""

from __future__ import annotations

import logging
import os
from typing import Any

import httpx
import jwt
from jwt.exceptions import InvalidTokenError, PyJWKError, PyJWKSetError

from bantah.config import BantahConfig
from bantah.engine.claims import VerifiedClaims, merge_profile, parse_claims

logger = logging.getLogger(__name__)

PRIVY_ISSUER = "privy.io"
PRIVY_ALGORITHM = "ES256"

_PLACEHOLDERS = frozenset({
    "",
    "your-privy-app-id",
    "your-privy-app-secret",
    "change-me",
    "changeme",
})


class PrivyBridge:
    """Verifies Privy access tokens and resolves them to claims."""

    def __init__(
        self,
        app_id: str,
        app_secret: str,
        *,
        verification_key: str | None = None,
        api_base: str = "https://auth.privy.io",
        fetch_profile: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 10.0,
    ) -> None:
        self.app_id = app_id
        self._app_secret = app_secret
        self._verification_key = verification_key
        self.api_base = api_base.rstrip("/")
        self.fetch_profile = fetch_profile
        self._transport = transport
        self._timeout = timeout
        self._jwks: dict[str, Any] = {}

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------
    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    @property
    def jwks_url(self) -> str:
        return f"{self.api_base}/api/v1/apps/{self.app_id}/jwks.json"

    async def _load_jwks(self) -> None:
        async with self._client() as client:
            resp = await client.get(self.jwks_url)
            resp.raise_for_status()
            payload = resp.json()
        key_set = jwt.PyJWKSet.from_dict(payload)
        self._jwks = {k.key_id: k.key for k in key_set.keys if k.key_id}
        logger.info("Loaded %d Privy signing key(s)", len(self._jwks))

    async def _signing_key(self, token: str) -> Any | None:
        """Return the key that should have signed *token*.

        Raises :class:`httpx.HTTPError` when the JWKS fetch fails.
        """
        if self._verification_key:
            return self._verification_key

        kid = jwt.get_unverified_header(token).get("kid")
        if not self._jwks or (kid is not None and kid not in self._jwks):
            # Unknown kid → keys may have rotated; refresh once.
            await self._load_jwks()
        if kid is None and len(self._jwks) == 1:
            return next(iter(self._jwks.values()))
        return self._jwks.get(kid)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    async def verify(self, token: str) -> VerifiedClaims | None:
        """Return verified claims for *token*, or ``None``."""
        if not token:
            return None

        try:
            key = await self._signing_key(token)
            if key is None:
                logger.info("Privy token signed with an unknown key")
                return None
            payload = jwt.decode(
                token,
                key,
                algorithms=[PRIVY_ALGORITHM],
                audience=self.app_id,
                issuer=PRIVY_ISSUER,
                options={"require": ["sub", "exp", "iat"]},
            )
        except InvalidTokenError as exc:
            logger.info("Privy token rejected: %s", exc)
            return None
        except (PyJWKError, PyJWKSetError) as exc:
            logger.error("Privy JWKS could not be parsed: %s", exc)
            return None
        except (httpx.HTTPError, ValueError):
            logger.error("Privy key fetch failed", exc_info=True)
            return None

        claims = parse_claims(payload)
        if claims is None:
            return None

        if self.fetch_profile:
            profile = await self.get_profile(claims.subject)
            if profile is not None:
                claims = merge_profile(claims, profile)
        return claims

    async def get_profile(self, subject: str) -> dict | None:
        """Fetch the Privy user record for *subject*.

        Failures are logged and return ``None``; the token alone is still
        enough to authenticate.
        """
        try:
            async with self._client() as client:
                resp = await client.get(
                    f"{self.api_base}/api/v1/users/{subject}",
                    auth=(self.app_id, self._app_secret),
                    headers={"privy-app-id": self.app_id},
                )
        except httpx.HTTPError:
            logger.warning("Privy profile fetch failed for %s", subject, exc_info=True)
            return None

        if resp.status_code != 200:
            logger.warning(
                "Privy profile fetch for %s returned HTTP %d", subject, resp.status_code
            )
            return None
        try:
            data = resp.json()
        except ValueError:
            logger.warning("Privy profile for %s was not JSON", subject)
            return None
        return data if isinstance(data, dict) else None


# ---------------------------------------------------------------------------
# Construction from the environment
# ---------------------------------------------------------------------------
def _require_env(name: str) -> str:
    value = os.getenv(name, "").strip()
    if value.lower() in _PLACEHOLDERS:
        raise RuntimeError(
            f"{name} is not set (or is still a placeholder).  "
            "Copy .env.example → .env and fill in the Privy app credentials."
        )
    return value


def build_bridge(cfg: BantahConfig) -> PrivyBridge:
    """Create a :class:`PrivyBridge` from env secrets and *cfg*.

    Raises
    ------
    RuntimeError
        If ``PRIVY_APP_ID`` or ``PRIVY_APP_SECRET`` is missing or a
        placeholder value.
    """
    app_id = _require_env("PRIVY_APP_ID")
    app_secret = _require_env("PRIVY_APP_SECRET")
    verification_key = os.getenv("PRIVY_VERIFICATION_KEY", "").strip() or None
    if verification_key:
        # .env files often store the PEM on one line with literal \n
        verification_key = verification_key.replace("\\n", "\n")

    logger.info(
        "Privy bridge configured for app %s (%s key)",
        app_id, "static" if verification_key else "JWKS",
    )
    return PrivyBridge(
        app_id,
        app_secret,
        verification_key=verification_key,
        api_base=cfg.privy_api_base,
        fetch_profile=cfg.privy_fetch_profile,
    )
