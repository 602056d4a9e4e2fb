"""
moodify.api.routes.xp — XP claim & ledger endpoints
=====================================================
"""

from __future__ import annotations

from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy import Engine

from moodify.api.deps import CurrentIdentity, get_config, get_engine, get_ledger_cache
from moodify.config import MoodifyConfig
from moodify.database.engine import run_db
from moodify.database.models import RewardSource
from moodify.engine.cache import LedgerCache
from moodify.engine.days import local_now, resolve_timezone
from moodify.engine.unlocks import next_tier, unlocked_tiers
from moodify.services import ledger_service, progress_service
from moodify.services.claim_service import award
from moodify.services.user_service import Identity

router = APIRouter(prefix="/xp", tags=["xp"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class ClaimRequest(BaseModel):
    user_id: str
    source: RewardSource
    timezone: str | None = None
    action_id: str | None = Field(default=None, max_length=100)


def _require_self(user_id: str, identity: Identity) -> None:
    if user_id != identity.user_id:
        raise HTTPException(403, "Cannot access another user's XP")


def _zone(name: str | None, cfg: MoodifyConfig):
    try:
        return resolve_timezone(name or cfg.timezone)
    except ValueError as exc:
        raise HTTPException(400, str(exc))


# ---------------------------------------------------------------------------
# POST /xp/claim
# ---------------------------------------------------------------------------
@router.post("/claim")
async def claim_xp(
    body: ClaimRequest,
    identity: CurrentIdentity,
    engine: Engine = Depends(get_engine),
    cfg: MoodifyConfig = Depends(get_config),
    cache: LedgerCache = Depends(get_ledger_cache),
):
    """Claim today's XP for *source*.  A repeat claim returns ``accepted: false``."""
    _require_self(body.user_id, identity)

    zone = _zone(body.timezone, cfg)
    result = await run_db(
        award, engine, identity, body.source, local_now(zone),
        config=cfg, cache=cache, tz=zone, action_id=body.action_id,
    )
    return result.to_dict()


# ---------------------------------------------------------------------------
# GET /xp/{user_id}
# ---------------------------------------------------------------------------
@router.get("/{user_id}")
async def get_xp(
    user_id: str,
    identity: CurrentIdentity,
    engine: Engine = Depends(get_engine),
    cache: LedgerCache = Depends(get_ledger_cache),
):
    _require_self(user_id, identity)
    ledger = await run_db(ledger_service.get_ledger, engine, user_id, cache)
    return ledger.to_dict()


# ---------------------------------------------------------------------------
# GET /xp/{user_id}/unlocks
# ---------------------------------------------------------------------------
@router.get("/{user_id}/unlocks")
async def get_unlocks(
    user_id: str,
    identity: CurrentIdentity,
    engine: Engine = Depends(get_engine),
    cfg: MoodifyConfig = Depends(get_config),
    cache: LedgerCache = Depends(get_ledger_cache),
):
    """Which theme tiers the user can select, plus the next one to earn."""
    _require_self(user_id, identity)
    ledger = await run_db(ledger_service.get_ledger, engine, user_id, cache)
    unlocked = unlocked_tiers(ledger.current_xp, cfg.reward_tiers)
    upcoming = next_tier(ledger.current_xp, cfg.reward_tiers)
    return {
        "current_xp": ledger.current_xp,
        "tiers": [
            {
                "name": t.name,
                "xp_threshold": t.xp_threshold,
                "unlocked": t.name in unlocked,
            }
            for t in cfg.reward_tiers
        ],
        "next": (
            {"name": upcoming.tier.name, "xp_remaining": upcoming.xp_remaining}
            if upcoming else None
        ),
    }


# ---------------------------------------------------------------------------
# GET /xp/{user_id}/history
# ---------------------------------------------------------------------------
@router.get("/{user_id}/history")
async def get_history(
    user_id: str,
    identity: CurrentIdentity,
    days: int = Query(7, ge=1, le=90),
    timezone: str | None = None,
    engine: Engine = Depends(get_engine),
    cfg: MoodifyConfig = Depends(get_config),
):
    """Recent claims and XP gained per day over the last *days* days."""
    _require_self(user_id, identity)
    today = local_now(_zone(timezone, cfg)).date()
    start = today - timedelta(days=days - 1)

    claims = await run_db(progress_service.claim_history, engine, user_id, days * 2)
    totals = await run_db(progress_service.daily_xp_totals, engine, user_id, start, today)
    return {
        "claims": claims,
        "daily_xp": [{"day": d.isoformat(), "xp": xp} for d, xp in totals.items()],
    }
