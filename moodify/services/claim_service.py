"""
moodify.services.claim_service — Once-Per-Day Claim Gate
=========================================================

Enforces the one rule the ledger exists for: **at most one XP award per
(user, reward source, calendar day)**.

:func:`try_claim` is the gate.  :func:`award` is its accept path: the claim
record, the user row and the XP increment are written in **one
transaction**, so a failed XP write also un-does the claim and the user can
simply try again.  A retry always goes back through the gate; it never
calls :func:`~moodify.services.ledger_service.add_xp` directly.

Races are settled twice over:
    * inside a process, a per-key lock serialises awards for the same key;
    * across processes, the ``uq_claims_user_source_day`` constraint turns
      the loser's insert into a no-op, which reads as ``accepted=False``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, tzinfo
from typing import TYPE_CHECKING

from sqlalchemy import select

from moodify.database.engine import get_session, insert_if_absent
from moodify.database.models import ClaimRecord, RewardSource
from moodify.engine.days import claim_day
from moodify.engine.locks import claim_locks
from moodify.services.ledger_service import add_xp, read_ledger
from moodify.services.user_service import Identity, ensure_user

if TYPE_CHECKING:
    from sqlalchemy import Engine
    from sqlalchemy.orm import Session

    from moodify.config import MoodifyConfig
    from moodify.engine.cache import LedgerCache

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class ClaimResult:
    """Outcome of one pass through the gate."""

    accepted: bool
    day: date


@dataclass(frozen=True, slots=True)
class AwardResult:
    """Outcome of an award attempt, with the ledger as it now stands."""

    accepted: bool
    source: RewardSource
    day: date
    xp_awarded: int
    current_xp: int
    streak: int

    def to_dict(self) -> dict:
        return {
            "accepted": self.accepted,
            "source": self.source.value,
            "day": self.day.isoformat(),
            "xp_awarded": self.xp_awarded,
            "current_xp": self.current_xp,
            "streak": self.streak,
        }


# ---------------------------------------------------------------------------
# The gate
# ---------------------------------------------------------------------------
def claim_exists(session: Session, user_id: str, source: RewardSource, day: date) -> bool:
    return session.scalar(
        select(ClaimRecord.id).where(
            ClaimRecord.user_id == user_id,
            ClaimRecord.source == source.value,
            ClaimRecord.day == day,
        )
    ) is not None


def try_claim(
    session: Session,
    user_id: str,
    source: RewardSource | str,
    today: date | datetime,
    *,
    tz: str | tzinfo | None = None,
    action_id: str | None = None,
    xp_awarded: int = 0,
) -> ClaimResult:
    """Register *source* as claimed by *user_id* for the day of *today*.

    Returns ``accepted=False`` when that day's claim already exists (or a
    concurrent caller just wrote it).  The record becomes durable when the
    caller's transaction commits.
    """
    source = RewardSource(source)
    day = claim_day(today, tz)

    if claim_exists(session, user_id, source, day):
        logger.debug("%s already claimed %s on %s", user_id, source, day)
        return ClaimResult(accepted=False, day=day)

    inserted = insert_if_absent(session, ClaimRecord, {
        "user_id": user_id,
        "source": source.value,
        "day": day,
        "xp_awarded": xp_awarded,
        "action_id": action_id,
    }, [ClaimRecord.user_id, ClaimRecord.source, ClaimRecord.day])
    if not inserted:
        logger.info("Lost claim race for %s/%s on %s", user_id, source, day)
    return ClaimResult(accepted=inserted, day=day)


# ---------------------------------------------------------------------------
# Accept path
# ---------------------------------------------------------------------------
def _award_once(
    engine: Engine,
    identity: Identity,
    source: RewardSource,
    day: date,
    *,
    config: MoodifyConfig,
    action_id: str | None,
) -> AwardResult:
    rule = config.rule_for(source)

    with get_session(engine) as session:
        ensure_user(session, identity)

        claim = try_claim(
            session, identity.user_id, source, day,
            action_id=action_id, xp_awarded=rule.xp,
        )
        if not claim.accepted:
            ledger = read_ledger(session, identity.user_id)
            return AwardResult(
                accepted=False, source=source, day=day, xp_awarded=0,
                current_xp=ledger.current_xp, streak=ledger.streak,
            )

        ledger = add_xp(
            session, identity.user_id, rule.xp,
            increment_streak=rule.increments_streak,
        )

    return AwardResult(
        accepted=True, source=source, day=day, xp_awarded=rule.xp,
        current_xp=ledger.current_xp, streak=ledger.streak,
    )


def award(
    engine: Engine,
    identity: Identity,
    source: RewardSource | str,
    when: date | datetime,
    *,
    config: MoodifyConfig,
    cache: LedgerCache | None = None,
    tz: str | tzinfo | None = None,
    action_id: str | None = None,
) -> AwardResult:
    """Claim *source* for *identity* on the day of *when* and pay out XP.

    Mood entries pay ``config.mood_entry_xp`` and advance the streak by one;
    chatbot ratings pay ``config.chatbot_rating_xp`` and leave it alone.
    A duplicate returns ``accepted=False`` with the unchanged ledger.

    Raises
    ------
    InvalidUserError
        If *identity* has no usable user id.
    StorageError
        If the database fails; nothing was written, so retrying is safe.
    """
    identity.validate()
    source = RewardSource(source)
    day = claim_day(when, tz if tz is not None else config.timezone)

    with claim_locks.hold((identity.user_id, source.value, day)):
        result = _award_once(
            engine, identity, source, day, config=config, action_id=action_id,
        )

    if cache is not None and result.accepted:
        # Only reached once the transaction above has committed
        cache.invalidate(identity.user_id)

    if result.accepted:
        logger.info(
            "Awarded %d XP to %s for %s on %s",
            result.xp_awarded, identity.user_id, source, day,
        )
    return result
