"""
moodify.services.ledger_service — Cumulative XP & Streak Store
===============================================================

The only code that writes a user's XP total.  Reads are public; the
mutation (:func:`add_xp`) takes a caller-owned :class:`Session` so it can
only run inside the claim gate's transaction, never on its own.

Row creation is a single ``INSERT … ON CONFLICT DO NOTHING`` (``INSERT
IGNORE`` on MySQL) rather than "check, then insert", so two first-time
awards for the same user cannot both try to create the row.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from moodify.database.engine import insert_if_absent
from moodify.database.models import XpLedger
from moodify.engine.cache import LedgerSnapshot
from moodify.exceptions import InvalidDeltaError, StorageError

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from moodify.engine.cache import LedgerCache

logger = logging.getLogger(__name__)

ZERO_LEDGER = LedgerSnapshot()


def _snapshot(row: XpLedger | None) -> LedgerSnapshot:
    if row is None:
        return ZERO_LEDGER
    return LedgerSnapshot(
        current_xp=row.current_xp or 0,
        streak=row.streak or 0,
        last_updated=row.last_updated,
    )


def read_ledger(session: Session, user_id: str) -> LedgerSnapshot:
    """Ledger for *user_id* within an open session (zero if absent)."""
    row = session.scalar(select(XpLedger).where(XpLedger.user_id == user_id))
    return _snapshot(row)


def get_ledger(
    engine: Engine,
    user_id: str,
    cache: LedgerCache | None = None,
) -> LedgerSnapshot:
    """Return ``{current_xp, streak}`` for *user_id*.

    A user with no ledger yet reads as a zero ledger; this never raises
    "not found".  With a *cache*, hits skip the database and misses fill it;
    a fill is dropped if an award invalidated the cache during the read.

    Raises
    ------
    StorageError
        If the database read fails.
    """
    generation = None
    if cache is not None:
        cached = cache.get(user_id)
        if cached is not None:
            return cached
        generation = cache.generation

    try:
        with Session(engine) as session:
            snapshot = read_ledger(session, user_id)
    except SQLAlchemyError as exc:
        raise StorageError(f"Could not read ledger: {exc}", user_id=user_id) from exc

    if cache is not None and snapshot is not ZERO_LEDGER:
        cache.put(user_id, snapshot, generation=generation)
    return snapshot


def ensure_ledger(session: Session, user_id: str) -> None:
    """Create a zero ledger for *user_id* unless one already exists.

    One atomic statement; running it twice (or concurrently) is harmless.
    """
    created = insert_if_absent(
        session, XpLedger,
        {"user_id": user_id, "current_xp": 0, "streak": 0},
        [XpLedger.user_id],
    )
    if created:
        logger.debug("Created ledger row for %s", user_id)


def add_xp(
    session: Session,
    user_id: str,
    delta: int,
    *,
    increment_streak: bool = False,
) -> LedgerSnapshot:
    """Add *delta* XP (and optionally one streak day) and return the result.

    Both counters move in SQL (``current_xp = current_xp + :delta``,
    ``streak = streak + 1``) so concurrent writers never lose an increment.
    Call only from the claim gate.

    Raises
    ------
    InvalidDeltaError
        If *delta* is not a positive integer.
    """
    if isinstance(delta, bool) or not isinstance(delta, int) or delta <= 0:
        raise InvalidDeltaError(
            f"XP delta must be a positive integer, got {delta!r}", user_id=user_id
        )

    ensure_ledger(session, user_id)

    changes: dict = {"current_xp": XpLedger.current_xp + delta}
    if increment_streak:
        changes["streak"] = XpLedger.streak + 1
    session.execute(
        update(XpLedger)
        .where(XpLedger.user_id == user_id)
        .values(**changes)
        .execution_options(synchronize_session=False)
    )

    # Re-read the row so callers see what the database now holds
    session.expire_all()
    snapshot = read_ledger(session, user_id)
    logger.info(
        "XP +%d for %s → %d (streak %d)",
        delta, user_id, snapshot.current_xp, snapshot.streak,
    )
    return snapshot
