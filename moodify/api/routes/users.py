"""
moodify.api.routes.users — Nickname registration & account management
=======================================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy import Engine

from moodify.api.deps import CurrentIdentity, get_engine, get_ledger_cache, issue_token
from moodify.database.engine import run_db
from moodify.engine.cache import LedgerCache
from moodify.services import retention_service, user_service

router = APIRouter(prefix="/users", tags=["users"])


class NicknameBody(BaseModel):
    nickname: str


@router.post("", status_code=201)
async def register(body: NicknameBody, engine: Engine = Depends(get_engine)):
    """Create a user from a nickname and return their session token."""
    try:
        user = await run_db(user_service.register_user, engine, body.nickname)
    except ValueError as exc:
        raise HTTPException(400, str(exc))
    return {
        "user_id": user.id,
        "nickname": user.nickname,
        "token": issue_token(user.id, user.nickname),
    }


@router.get("/me")
async def me(identity: CurrentIdentity, engine: Engine = Depends(get_engine)):
    user = await run_db(user_service.get_user, engine, identity.user_id)
    if user is None:
        raise HTTPException(404, "User not found")
    await run_db(user_service.touch_login, engine, user.id)
    return {"user_id": user.id, "nickname": user.nickname}


@router.patch("/me")
async def rename(
    body: NicknameBody,
    identity: CurrentIdentity,
    engine: Engine = Depends(get_engine),
):
    """Change the nickname.  XP and claim history stay with the user id."""
    try:
        user = await run_db(user_service.rename_user, engine, identity.user_id, body.nickname)
    except ValueError as exc:
        raise HTTPException(400, str(exc))
    return {
        "user_id": user.id,
        "nickname": user.nickname,
        "token": issue_token(user.id, user.nickname),
    }


@router.delete("/me", status_code=204)
async def erase(
    identity: CurrentIdentity,
    engine: Engine = Depends(get_engine),
    cache: LedgerCache = Depends(get_ledger_cache),
):
    """Erase the account, its ledger and its claims."""
    if not await run_db(retention_service.erase_account, engine, identity.user_id, cache):
        raise HTTPException(404, "User not found")
