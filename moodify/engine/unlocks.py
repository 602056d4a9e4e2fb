"""
moodify.engine.unlocks — Reward Tier Unlock Evaluation
=======================================================

Pure functions, no DB I/O.  A tier is unlocked iff the user's cumulative XP
has reached its threshold, so the unlocked set only ever grows as XP grows.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from moodify.constants import DEFAULT_TIER_THRESHOLDS

__all__ = ["DEFAULT_TIERS", "RewardTier", "TierProgress", "next_tier", "unlocked_tiers"]


@dataclass(frozen=True, slots=True)
class RewardTier:
    """A cosmetic unlock gated behind an XP threshold."""

    name: str
    xp_threshold: int


@dataclass(frozen=True, slots=True)
class TierProgress:
    """The next locked tier and how far away it is."""

    tier: RewardTier
    xp_remaining: int


DEFAULT_TIERS: tuple[RewardTier, ...] = tuple(
    RewardTier(name, threshold) for name, threshold in DEFAULT_TIER_THRESHOLDS
)


def _check_xp(current_xp: int) -> None:
    if current_xp < 0:
        raise ValueError(f"XP cannot be negative: {current_xp}")


def unlocked_tiers(
    current_xp: int, tiers: Iterable[RewardTier] = DEFAULT_TIERS
) -> frozenset[str]:
    """Return the names of every tier whose threshold *current_xp* meets."""
    _check_xp(current_xp)
    return frozenset(t.name for t in tiers if current_xp >= t.xp_threshold)


def next_tier(
    current_xp: int, tiers: Sequence[RewardTier] = DEFAULT_TIERS
) -> TierProgress | None:
    """Lowest-threshold tier still locked at *current_xp*, or ``None``."""
    _check_xp(current_xp)
    locked = [t for t in tiers if current_xp < t.xp_threshold]
    if not locked:
        return None
    tier = min(locked, key=lambda t: t.xp_threshold)
    return TierProgress(tier=tier, xp_remaining=tier.xp_threshold - current_xp)
