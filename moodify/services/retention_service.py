"""
moodify.services.retention_service — Claim Pruning & Account Erasure
=====================================================================

A claim record only matters on its own day; after that it is history.
:func:`prune_claims` removes records older than the retention window, in
batches of ``BATCH_SIZE`` so the table is never locked for long.

:func:`erase_account` is the only path that deletes a ledger.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import TYPE_CHECKING

from sqlalchemy import delete, select

from moodify.database.engine import get_session
from moodify.database.models import ClaimRecord, User, XpLedger

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from moodify.engine.cache import LedgerCache

logger = logging.getLogger(__name__)

# How many rows to delete in each batch (avoids long-held row locks)
BATCH_SIZE = 5_000


def prune_claims(
    engine: Engine,
    retention_days: int = 90,
    *,
    today: date | None = None,
    batch_size: int = BATCH_SIZE,
) -> int:
    """Delete claim records whose day is more than *retention_days* ago.

    Today's (and any recent) records are never touched, so pruning cannot
    re-open a claim.  Returns the number of rows deleted.
    """
    if retention_days < 1:
        raise ValueError("retention_days must be at least 1")

    cutoff = (today or date.today()) - timedelta(days=retention_days)
    deleted = 0

    while True:
        with get_session(engine) as session:
            ids = session.scalars(
                select(ClaimRecord.id)
                .where(ClaimRecord.day < cutoff)
                .limit(batch_size)
            ).all()
            if not ids:
                break

            result = session.execute(
                delete(ClaimRecord).where(ClaimRecord.id.in_(ids))
            )
            deleted += result.rowcount
            logger.info(
                "Retention: deleted %d claim rows (total so far: %d)",
                result.rowcount, deleted,
            )

    logger.info(
        "Retention cleanup complete — %d claims removed (retention_days=%d, cutoff=%s)",
        deleted, retention_days, cutoff.isoformat(),
    )
    return deleted


def erase_account(
    engine: Engine,
    user_id: str,
    cache: LedgerCache | None = None,
) -> bool:
    """Delete the user, their ledger and all their claims.

    Returns False if the user did not exist.
    """
    with get_session(engine) as session:
        session.execute(delete(ClaimRecord).where(ClaimRecord.user_id == user_id))
        session.execute(delete(XpLedger).where(XpLedger.user_id == user_id))
        result = session.execute(delete(User).where(User.id == user_id))
        existed = bool(result.rowcount)

    if cache is not None:
        cache.invalidate(user_id)
    logger.info("Erased account %s (existed=%s)", user_id, existed)
    return existed
