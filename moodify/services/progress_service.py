"""
moodify.services.progress_service — Claim History & Daily XP Totals
====================================================================

Read-only views over ``claim_records`` for the stats screens: the recent
list of rewards and the XP gained per calendar day.
"""

from __future__ import annotations

from datetime import date
from typing import TYPE_CHECKING

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from moodify.database.models import ClaimRecord
from moodify.exceptions import StorageError

if TYPE_CHECKING:
    from sqlalchemy import Engine


def claim_history(engine: Engine, user_id: str, limit: int = 30) -> list[dict]:
    """Most recent claims first."""
    try:
        with Session(engine) as session:
            rows = session.scalars(
                select(ClaimRecord)
                .where(ClaimRecord.user_id == user_id)
                .order_by(ClaimRecord.day.desc(), ClaimRecord.id.desc())
                .limit(limit)
            ).all()
            return [
                {
                    "source": r.source,
                    "day": r.day.isoformat(),
                    "xp_awarded": r.xp_awarded,
                    "action_id": r.action_id,
                }
                for r in rows
            ]
    except SQLAlchemyError as exc:
        raise StorageError(f"Could not read claim history: {exc}", user_id=user_id) from exc


def daily_xp_totals(
    engine: Engine,
    user_id: str,
    start: date,
    end: date,
) -> dict[date, int]:
    """XP gained per day between *start* and *end* (inclusive).

    Days without any claim are reported as 0, so the result always has one
    entry per day in the range.
    """
    if end < start:
        raise ValueError("end must not be before start")

    try:
        with Session(engine) as session:
            rows = session.execute(
                select(ClaimRecord.day, func.sum(ClaimRecord.xp_awarded).label("xp"))
                .where(
                    ClaimRecord.user_id == user_id,
                    ClaimRecord.day >= start,
                    ClaimRecord.day <= end,
                )
                .group_by(ClaimRecord.day)
            ).all()
    except SQLAlchemyError as exc:
        raise StorageError(f"Could not read daily XP: {exc}", user_id=user_id) from exc

    gained = {row.day: int(row.xp or 0) for row in rows}
    totals: dict[date, int] = {}
    for offset in range((end - start).days + 1):
        day = date.fromordinal(start.toordinal() + offset)
        totals[day] = gained.get(day, 0)
    return totals
