"""
moodify.services.reward_service — Reward Entrypoints for App Actions
=====================================================================

What the rest of the app calls once an action has been saved:

* a new daily mood entry     → :func:`record_mood_entry`
* a rated chatbot session    → :func:`submit_chatbot_rating`

Both go through :func:`moodify.services.claim_service.award`, so each pays
out at most once per day.  The ``*_async`` variants run the blocking work
on a worker thread and are shielded from cancellation: if the screen that
started a claim goes away, the claim still finishes instead of stopping
halfway.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime, tzinfo
from typing import TYPE_CHECKING

from moodify.constants import MAX_RATING, MIN_RATING
from moodify.database.engine import run_db
from moodify.database.models import RewardSource
from moodify.services.claim_service import AwardResult, award

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from moodify.config import MoodifyConfig
    from moodify.engine.cache import LedgerCache
    from moodify.services.user_service import Identity

logger = logging.getLogger(__name__)


def record_mood_entry(
    engine: Engine,
    identity: Identity,
    when: date | datetime,
    *,
    config: MoodifyConfig,
    cache: LedgerCache | None = None,
    tz: str | tzinfo | None = None,
    entry_id: str | None = None,
) -> AwardResult:
    """Award the daily mood-entry XP (and streak) for a saved entry."""
    return award(
        engine, identity, RewardSource.MOOD_ENTRY, when,
        config=config, cache=cache, tz=tz, action_id=entry_id,
    )


def validate_rating(rating: int) -> int:
    """Return *rating* if it is a whole number of stars in range."""
    if isinstance(rating, bool) or not isinstance(rating, int):
        raise ValueError(f"Rating must be an integer, got {rating!r}")
    if not MIN_RATING <= rating <= MAX_RATING:
        raise ValueError(f"Rating must be between {MIN_RATING} and {MAX_RATING}")
    return rating


def submit_chatbot_rating(
    engine: Engine,
    identity: Identity,
    rating: int,
    when: date | datetime,
    *,
    config: MoodifyConfig,
    feedback: str | None = None,
    cache: LedgerCache | None = None,
    tz: str | tzinfo | None = None,
    chat_session_id: str | None = None,
) -> AwardResult:
    """Award the daily chatbot-rating XP once a 1–5 star rating is given.

    The feedback text itself is stored by the chat collaborator; here it is
    only logged.
    """
    validate_rating(rating)
    result = award(
        engine, identity, RewardSource.CHATBOT_RATING, when,
        config=config, cache=cache, tz=tz, action_id=chat_session_id,
    )
    logger.debug(
        "Chat rating %d from %s (feedback: %s)",
        rating, identity.user_id, "yes" if feedback else "no",
    )
    return result


# ---------------------------------------------------------------------------
# Async variants
# ---------------------------------------------------------------------------
async def record_mood_entry_async(*args, **kwargs) -> AwardResult:
    return await asyncio.shield(run_db(record_mood_entry, *args, **kwargs))


async def submit_chatbot_rating_async(*args, **kwargs) -> AwardResult:
    return await asyncio.shield(run_db(submit_chatbot_rating, *args, **kwargs))
