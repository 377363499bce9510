"""
bantah.__main__ — Entry point for ``python -m bantah``
======================================================

Wiring:
1. Load .env (secrets).
2. Load config.yaml (soft settings).
3. Create the SQLAlchemy engine and ensure tables exist.
4. Serve the FastAPI app with uvicorn (blocking).

Run with::

    python -m bantah [--host 0.0.0.0] [--port 8000]
"""

from __future__ import annotations

import argparse
import logging

import uvicorn
from dotenv import load_dotenv

from bantah.config import load_config
from bantah.database.engine import create_db_engine, init_db

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("bantah")


def main() -> None:
    """Bootstrap and serve the Bantah API."""
    parser = argparse.ArgumentParser(prog="bantah")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    args = parser.parse_args()

    # 1. Environment variables (secrets).
    load_dotenv()

    # 2. Soft configuration.
    cfg = load_config()
    logger.info("Config loaded — %s (%s)", cfg.app_name, cfg.currency_code)

    # 3. Database.
    engine = create_db_engine()
    init_db(engine)
    engine.dispose()

    # 4. API.
    logger.info("Starting %s API on %s:%d…", cfg.app_name, args.host, args.port)
    uvicorn.run("bantah.api.main:app", host=args.host, port=args.port, log_config=None)


if __name__ == "__main__":
    main()
