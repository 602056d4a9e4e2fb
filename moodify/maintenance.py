"""
moodify.maintenance — Entry point for ``python -m moodify.maintenance``
=======================================================================

Wiring:
1. Load .env (secrets).
2. Load config.yaml (retention window).
3. Create the SQLAlchemy engine and ensure tables exist.
4. Prune claim records past the retention window.

Run daily from cron::

    python -m moodify.maintenance
"""

from __future__ import annotations

import logging
import os
import sys

from dotenv import load_dotenv

from moodify.config import load_config
from moodify.database.engine import create_db_engine, init_db
from moodify.exceptions import StorageError
from moodify.services.retention_service import prune_claims

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("moodify")


def main() -> int:
    """Run one maintenance pass.  Returns the process exit code."""
    load_dotenv()

    cfg = load_config(os.getenv("MOODIFY_CONFIG", "config.yaml"))
    logger.info("Config loaded — retention %d days", cfg.claim_retention_days)

    try:
        engine = create_db_engine()
        init_db(engine)
        removed = prune_claims(engine, cfg.claim_retention_days)
    except (RuntimeError, StorageError):
        logger.exception("Maintenance failed")
        return 1

    logger.info("Maintenance done — %d claim records pruned", removed)
    return 0


if __name__ == "__main__":
    sys.exit(main())
