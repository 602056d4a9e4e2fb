"""
Moodify — XP & Streak Ledger for a Mood-Journaling App
========================================================
Records the XP and daily streak users earn by journaling their mood and
rating chatbot sessions, guarantees each reward is claimed at most once per
day, and decides which cosmetic themes a user has unlocked.

Package layout::

    moodify/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Reward rules and default tiers
    ├── exceptions.py      # Ledger error taxonomy
    ├── maintenance.py     # ``python -m moodify.maintenance`` (pruning)
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   └── models.py      # users, xp_ledgers, claim_records
    ├── engine/
    │   ├── days.py        # The one day-boundary policy
    │   ├── unlocks.py     # Reward tier unlock evaluation
    │   ├── locks.py       # Per-claim-key lock registry
    │   └── cache.py       # In-memory ledger snapshot cache
    ├── services/
    │   ├── ledger_service.py    # XP totals (the single write path)
    │   ├── claim_service.py     # Once-per-day claim gate + award
    │   ├── reward_service.py    # Mood entry / chatbot rating entrypoints
    │   ├── user_service.py      # Identity (nickname → user id)
    │   ├── progress_service.py  # Claim history & daily XP totals
    │   └── retention_service.py # Claim pruning & account erasure
    └── api/
        ├── main.py        # FastAPI app
        ├── deps.py        # Engine/config/identity dependencies
        └── routes/        # users + xp endpoints
"""

__version__ = "0.1.0"
