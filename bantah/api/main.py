"""
bantah.api.main — FastAPI application entry point
===================================================

Run with::

    uvicorn bantah.api.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

load_dotenv()

from bantah import __version__  # noqa: E402
from bantah.api.auth import router as auth_router  # noqa: E402
from bantah.api.deps import get_config, get_engine, get_identity_bridge  # noqa: E402
from bantah.api.rate_limit import configure_rate_limiter  # noqa: E402
from bantah.api.routes.admin import router as admin_router  # noqa: E402
from bantah.api.routes.challenges import router as challenges_router  # noqa: E402
from bantah.api.routes.notifications import router as notifications_router  # noqa: E402
from bantah.api.routes.wallet import router as wallet_router  # noqa: E402
from bantah.errors import BantahError  # noqa: E402

logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    """Resolve allowed CORS origins from env.

    Priority:
      1) CORS_ALLOW_ORIGINS (comma-separated)
      2) FRONTEND_URL (single origin)
    """
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if raw:
        return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]

    frontend_url = os.getenv("FRONTEND_URL", "").strip()
    if frontend_url:
        return [frontend_url.rstrip("/")]

    return []


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle — warm the engine, check Privy credentials."""
    cfg = get_config()
    engine = get_engine()
    get_identity_bridge()  # fail fast on missing Privy credentials
    configure_rate_limiter(engine=engine, cfg=cfg)
    logger.info("%s API started — engine ready (%s)", cfg.app_name, engine.url.database)
    yield
    logger.info("%s API shutting down", cfg.app_name)


app = FastAPI(
    title="Bantah API",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Error handlers
# ---------------------------------------------------------------------------
@app.exception_handler(BantahError)
async def bantah_error_handler(request: Request, exc: BantahError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(SQLAlchemyError)
async def persistence_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception(
        "Database error on %s %s", request.method, request.url.path, exc_info=exc,
    )
    return JSONResponse(
        status_code=500,
        content={"message": "Internal server error", "error": "internal_error"},
    )


# Mount routers
app.include_router(auth_router, prefix="/api")
app.include_router(wallet_router, prefix="/api")
app.include_router(challenges_router, prefix="/api")
app.include_router(notifications_router, prefix="/api")
app.include_router(admin_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}
