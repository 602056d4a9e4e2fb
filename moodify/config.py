"""
moodify.config — YAML Configuration Loader
===========================================

Reads ``config.yaml`` for reward tuning and the day-boundary default.
Secrets and infrastructure (``DATABASE_URL``, ``JWT_SECRET``) stay in the
environment / ``.env``.

Usage::

    from moodify.config import load_config

    cfg = load_config()                  # reads ./config.yaml by default
    print(cfg.mood_entry_xp)             # 5
    print(cfg.rule_for("chatbot_rating"))
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import yaml

from moodify.constants import (
    DEFAULT_CHATBOT_RATING_XP,
    DEFAULT_CLAIM_RETENTION_DAYS,
    DEFAULT_MOOD_ENTRY_XP,
    DEFAULT_TIMEZONE,
    STREAK_SOURCES,
    RewardRule,
)
from moodify.database.models import RewardSource
from moodify.engine.days import resolve_timezone
from moodify.engine.unlocks import DEFAULT_TIERS, RewardTier


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class MoodifyConfig:
    """Immutable configuration loaded from ``config.yaml``.

    Every field has the production default, so ``MoodifyConfig()`` is a
    valid configuration on its own.
    """

    # Day boundary used when a request carries no timezone
    timezone: str = DEFAULT_TIMEZONE

    # XP per accepted claim.  Which sources move the streak is not tunable.
    mood_entry_xp: int = DEFAULT_MOOD_ENTRY_XP
    chatbot_rating_xp: int = DEFAULT_CHATBOT_RATING_XP

    # Claim records older than this are pruned by maintenance
    claim_retention_days: int = DEFAULT_CLAIM_RETENTION_DAYS

    reward_tiers: tuple[RewardTier, ...] = field(default=DEFAULT_TIERS)

    def rule_for(self, source: RewardSource | str) -> RewardRule:
        """Return the :class:`RewardRule` for *source*."""
        source = RewardSource(source)
        xp = {
            RewardSource.MOOD_ENTRY: self.mood_entry_xp,
            RewardSource.CHATBOT_RATING: self.chatbot_rating_xp,
        }[source]
        return RewardRule(xp=xp, increments_streak=source in STREAK_SOURCES)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def _parse_tiers(raw_tiers: list[dict] | None) -> tuple[RewardTier, ...]:
    if not raw_tiers:
        return DEFAULT_TIERS
    tiers = tuple(
        RewardTier(name=str(t["name"]), xp_threshold=int(t["xp_threshold"]))
        for t in raw_tiers
    )
    return tuple(sorted(tiers, key=lambda t: t.xp_threshold))


def load_config(path: str | Path = "config.yaml") -> MoodifyConfig:
    """Read *path* and return a :class:`MoodifyConfig` instance.

    Keys missing from the file keep their defaults.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    ValueError
        If an XP amount is not positive or the timezone is unknown.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    rewards = raw.get("rewards") or {}
    cfg = MoodifyConfig(
        timezone=str(raw.get("timezone", DEFAULT_TIMEZONE)),
        mood_entry_xp=int(rewards.get("mood_entry_xp", DEFAULT_MOOD_ENTRY_XP)),
        chatbot_rating_xp=int(
            rewards.get("chatbot_rating_xp", DEFAULT_CHATBOT_RATING_XP)
        ),
        claim_retention_days=int(
            raw.get("claim_retention_days", DEFAULT_CLAIM_RETENTION_DAYS)
        ),
        reward_tiers=_parse_tiers(raw.get("reward_tiers")),
    )

    if cfg.mood_entry_xp <= 0 or cfg.chatbot_rating_xp <= 0:
        raise ValueError("Reward XP amounts must be positive integers.")
    resolve_timezone(cfg.timezone)
    return cfg
