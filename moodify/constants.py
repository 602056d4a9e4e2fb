"""
moodify.constants — Reward Rules & Default Tiers
=================================================

Single source of truth for how much XP each reward source is worth and
whether it advances the streak.  Import from here instead of duplicating
the numbers in services and routes.
"""

from __future__ import annotations

from dataclasses import dataclass

from moodify.database.models import RewardSource


# ---------------------------------------------------------------------------
# Reward rules
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class RewardRule:
    """XP granted for one accepted claim of a source."""

    xp: int
    increments_streak: bool


DEFAULT_MOOD_ENTRY_XP = 5
DEFAULT_CHATBOT_RATING_XP = 20

# Only mood entries move the streak; rating a chat never does.
STREAK_SOURCES: frozenset[RewardSource] = frozenset({RewardSource.MOOD_ENTRY})


# ---------------------------------------------------------------------------
# Theme tiers (name, xp_threshold), ascending
# ---------------------------------------------------------------------------
DEFAULT_TIER_THRESHOLDS: tuple[tuple[str, int], ...] = (
    ("Autumn", 0),
    ("Spring", 25),
    ("Summer", 50),
    ("Winter", 75),
)

# ---------------------------------------------------------------------------
# Chatbot ratings
# ---------------------------------------------------------------------------
MIN_RATING = 1
MAX_RATING = 5

DEFAULT_TIMEZONE = "UTC"
DEFAULT_CLAIM_RETENTION_DAYS = 90

# Cached ledger snapshots are re-read from the database after this long
LEDGER_CACHE_TTL_SECONDS = 30.0
