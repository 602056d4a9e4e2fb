"""
tests/test_claim_service.py — Claim Gate Integration Tests
===========================================================
Once-per-day claims, the source-specific XP/streak rules, the single
transaction around claim + XP, and concurrent claims for the same key.
"""

from __future__ import annotations

import asyncio
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, date, datetime
from unittest.mock import patch

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session

from moodify.database.engine import run_db
from moodify.database.models import ClaimRecord, RewardSource, User
from moodify.engine.cache import LedgerCache, LedgerSnapshot
from moodify.engine.locks import claim_locks
from moodify.exceptions import InvalidUserError, StorageError
from moodify.services import claim_service, ledger_service
from moodify.services.claim_service import award, try_claim
from moodify.services.user_service import Identity, ensure_user


def run_async(coro):
    """Run an async coroutine in a new event loop."""
    return asyncio.new_event_loop().run_until_complete(coro)


MAY_1 = date(2024, 5, 1)
MAY_2 = date(2024, 5, 2)


class TestTryClaim:
    def test_first_claim_accepted_second_rejected(self, db_session):
        first = try_claim(db_session, "u1", "mood_entry", MAY_1)
        second = try_claim(db_session, "u1", "mood_entry", MAY_1)
        assert first.accepted
        assert not second.accepted
        assert first.day == second.day == MAY_1

    def test_sources_are_independent(self, db_session):
        assert try_claim(db_session, "u1", RewardSource.MOOD_ENTRY, MAY_1).accepted
        assert try_claim(db_session, "u1", RewardSource.CHATBOT_RATING, MAY_1).accepted

    def test_users_are_independent(self, db_session):
        assert try_claim(db_session, "u1", "mood_entry", MAY_1).accepted
        assert try_claim(db_session, "u2", "mood_entry", MAY_1).accepted

    def test_next_day_is_a_new_claim(self, db_session):
        assert try_claim(db_session, "u1", "mood_entry", MAY_1).accepted
        assert try_claim(db_session, "u1", "mood_entry", MAY_2).accepted

    def test_unknown_source_rejected(self, db_session):
        with pytest.raises(ValueError):
            try_claim(db_session, "u1", "daily_login", MAY_1)

    def test_record_keeps_action_and_xp(self, db_session):
        try_claim(db_session, "u1", "chatbot_rating", MAY_1, action_id="chat-9", xp_awarded=20)
        record = db_session.scalar(select(ClaimRecord))
        assert record.action_id == "chat-9"
        assert record.xp_awarded == 20
        assert record.source == "chatbot_rating"


class TestConstraintGuard:
    """Another process wrote the claim between the lookup and the insert."""

    def test_conflicting_insert_is_rejected(self, db_session):
        assert try_claim(db_session, "u1", "mood_entry", MAY_1).accepted

        with patch.object(claim_service, "claim_exists", return_value=False):
            again = try_claim(db_session, "u1", "mood_entry", MAY_1)

        assert not again.accepted
        count = db_session.scalar(select(func.count()).select_from(ClaimRecord))
        assert count == 1

    def test_award_losing_the_insert_pays_nothing(self, db_engine, config, alice):
        award(db_engine, alice, "mood_entry", MAY_1, config=config)

        with patch.object(claim_service, "claim_exists", return_value=False):
            lost = award(db_engine, alice, "mood_entry", MAY_1, config=config)

        assert not lost.accepted
        assert lost.xp_awarded == 0
        assert (lost.current_xp, lost.streak) == (5, 1)
        ledger = ledger_service.get_ledger(db_engine, alice.user_id)
        assert (ledger.current_xp, ledger.streak) == (5, 1)


class TestAwardScenarios:
    """The worked example: two days of mood entries plus a chat rating."""

    def test_full_sequence(self, db_engine, config, alice):
        # 1. New user, first mood entry
        r1 = award(db_engine, alice, "mood_entry", MAY_1, config=config)
        assert r1.accepted
        assert (r1.current_xp, r1.streak) == (5, 1)

        # 2. Second mood entry the same day is a no-op
        r2 = award(db_engine, alice, "mood_entry", MAY_1, config=config)
        assert not r2.accepted
        assert r2.xp_awarded == 0
        assert (r2.current_xp, r2.streak) == (5, 1)

        # 3. Next day
        r3 = award(db_engine, alice, "mood_entry", MAY_2, config=config)
        assert r3.accepted
        assert (r3.current_xp, r3.streak) == (10, 2)

        # 4. Chat rating leaves the streak alone
        r4 = award(db_engine, alice, "chatbot_rating", MAY_2, config=config)
        assert r4.accepted
        assert r4.xp_awarded == 20
        assert (r4.current_xp, r4.streak) == (30, 2)

        ledger = ledger_service.get_ledger(db_engine, alice.user_id)
        assert (ledger.current_xp, ledger.streak) == (30, 2)

    def test_chat_rating_first_keeps_zero_streak(self, db_engine, config, alice):
        result = award(db_engine, alice, "chatbot_rating", MAY_1, config=config)
        assert (result.current_xp, result.streak) == (20, 0)

    def test_configured_amounts_are_used(self, db_engine, alice):
        from moodify.config import MoodifyConfig

        cfg = MoodifyConfig(mood_entry_xp=7, chatbot_rating_xp=11)
        award(db_engine, alice, "mood_entry", MAY_1, config=cfg)
        result = award(db_engine, alice, "chatbot_rating", MAY_1, config=cfg)
        assert (result.current_xp, result.streak) == (18, 1)

    def test_creates_user_row_on_first_award(self, db_engine, config, alice):
        award(db_engine, alice, "mood_entry", MAY_1, config=config)
        with Session(db_engine) as session:
            user = session.get(User, alice.user_id)
            assert user.nickname == "Alice"

    def test_result_serialises(self, db_engine, config, alice):
        data = award(db_engine, alice, "mood_entry", MAY_1, config=config).to_dict()
        assert data == {
            "accepted": True,
            "source": "mood_entry",
            "day": "2024-05-01",
            "xp_awarded": 5,
            "current_xp": 5,
            "streak": 1,
        }


class TestIdentity:
    @pytest.mark.parametrize("user_id", [None, "", "   "])
    def test_missing_identity_raises(self, db_engine, config, user_id):
        with pytest.raises(InvalidUserError):
            award(db_engine, Identity(user_id=user_id), "mood_entry", MAY_1, config=config)

    def test_nickname_change_keeps_claim_history(self, db_engine, config):
        award(db_engine, Identity("u7", "Old"), "mood_entry", MAY_1, config=config)
        again = award(db_engine, Identity("u7", "New"), "mood_entry", MAY_1, config=config)

        assert not again.accepted
        with Session(db_engine) as session:
            assert session.get(User, "u7").nickname == "Old"

    def test_ensure_user_never_overwrites_nickname(self, db_session):
        assert ensure_user(db_session, Identity("u8", "First"))
        assert not ensure_user(db_session, Identity("u8", "Second"))
        assert db_session.get(User, "u8").nickname == "First"

    def test_ensure_user_without_nickname_uses_id(self, db_session):
        ensure_user(db_session, Identity("u9"))
        assert db_session.get(User, "u9").nickname == "u9"


class TestTransaction:
    def test_failed_xp_write_rolls_back_claim(self, db_engine, config, alice):
        with patch.object(
            claim_service, "add_xp", side_effect=StorageError("disk full")
        ):
            with pytest.raises(StorageError):
                award(db_engine, alice, "mood_entry", MAY_1, config=config)

        with Session(db_engine) as session:
            assert session.scalar(select(ClaimRecord)) is None

        # The retry goes back through the gate and succeeds
        retry = award(db_engine, alice, "mood_entry", MAY_1, config=config)
        assert retry.accepted
        assert retry.current_xp == 5

    def test_database_failure_surfaces_as_storage_error(self, config, alice):
        broken = create_engine("sqlite://")
        with pytest.raises(StorageError):
            award(broken, alice, "mood_entry", MAY_1, config=config)

    def test_lock_released_after_failure(self, config, alice):
        broken = create_engine("sqlite://")
        with pytest.raises(StorageError):
            award(broken, alice, "mood_entry", MAY_1, config=config)
        assert len(claim_locks) == 0


class TestCache:
    def test_award_invalidates_cached_total(self, db_engine, config, alice, ledger_cache):
        ledger_cache.put(alice.user_id, LedgerSnapshot(current_xp=0, streak=0))
        award(db_engine, alice, "mood_entry", MAY_1, config=config, cache=ledger_cache)
        assert ledger_cache.get(alice.user_id) is None

        ledger = ledger_service.get_ledger(db_engine, alice.user_id, ledger_cache)
        assert (ledger.current_xp, ledger.streak) == (5, 1)

    def test_duplicate_keeps_cached_total(self, db_engine, config, alice, ledger_cache):
        award(db_engine, alice, "mood_entry", MAY_1, config=config)
        ledger_service.get_ledger(db_engine, alice.user_id, ledger_cache)
        award(db_engine, alice, "mood_entry", MAY_1, config=config, cache=ledger_cache)
        assert ledger_cache.get(alice.user_id).current_xp == 5

    def test_read_overlapping_an_award_is_not_cached(
        self, db_engine, config, alice, ledger_cache
    ):
        award(db_engine, alice, "mood_entry", MAY_1, config=config, cache=ledger_cache)
        real_read = ledger_service.read_ledger
        raced = []

        def read_then_award(session, user_id):
            snapshot = real_read(session, user_id)
            if not raced:
                # A chat rating commits while this read is in flight
                raced.append(user_id)
                award(
                    db_engine, alice, "chatbot_rating", MAY_1,
                    config=config, cache=ledger_cache,
                )
            return snapshot

        with patch.object(ledger_service, "read_ledger", side_effect=read_then_award):
            in_flight = ledger_service.get_ledger(db_engine, alice.user_id, ledger_cache)

        assert in_flight.current_xp == 5
        assert ledger_cache.get(alice.user_id) is None
        assert ledger_service.get_ledger(db_engine, alice.user_id, ledger_cache).current_xp == 25

    def test_other_process_awards_visible_after_ttl(self, db_engine, config, alice):
        now = [0.0]
        worker1 = LedgerCache(ttl_seconds=30, clock=lambda: now[0])
        worker2 = LedgerCache(ttl_seconds=30, clock=lambda: now[0])

        award(db_engine, alice, "mood_entry", MAY_1, config=config, cache=worker2)
        assert ledger_service.get_ledger(db_engine, alice.user_id, worker1).current_xp == 5

        award(db_engine, alice, "chatbot_rating", MAY_1, config=config, cache=worker2)
        now[0] = 31.0
        assert ledger_service.get_ledger(db_engine, alice.user_id, worker1).current_xp == 25

    def test_failed_award_leaves_cache_alone(self, config, alice, ledger_cache):
        broken = create_engine("sqlite://")
        with pytest.raises(StorageError):
            award(broken, alice, "mood_entry", MAY_1, config=config, cache=ledger_cache)
        assert ledger_cache.get(alice.user_id) is None


class TestDayBoundary:
    def test_aware_times_use_the_users_local_day(self, db_engine, config, alice):
        # 23:30 on May 1 in New York is already May 2 in UTC
        late_evening = datetime(2024, 5, 2, 3, 30, tzinfo=UTC)
        r1 = award(
            db_engine, alice, "mood_entry", late_evening,
            config=config, tz="America/New_York",
        )
        assert r1.day == MAY_1

        # 01:00 on May 2 in New York
        next_morning = datetime(2024, 5, 2, 5, 0, tzinfo=UTC)
        r2 = award(
            db_engine, alice, "mood_entry", next_morning,
            config=config, tz="America/New_York",
        )
        assert r2.accepted
        assert r2.day == MAY_2

    def test_configured_timezone_is_the_default(self, db_engine, alice):
        from moodify.config import MoodifyConfig

        cfg = MoodifyConfig(timezone="Asia/Tokyo")
        # 20:00 UTC on May 1 is 05:00 May 2 in Tokyo
        result = award(
            db_engine, alice, "mood_entry", datetime(2024, 5, 1, 20, 0, tzinfo=UTC),
            config=cfg,
        )
        assert result.day == MAY_2


class TestConcurrency:
    def test_threads_racing_on_one_key_award_once(self, db_engine, config, alice):
        def attempt(_):
            return award(db_engine, alice, "mood_entry", MAY_1, config=config)

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(attempt, range(16)))

        assert sum(r.accepted for r in results) == 1
        ledger = ledger_service.get_ledger(db_engine, alice.user_id)
        assert (ledger.current_xp, ledger.streak) == (5, 1)
        assert len(claim_locks) == 0

    def test_async_callers_award_once(self, db_engine, config, alice):
        async def burst():
            return await asyncio.gather(*[
                run_db(award, db_engine, alice, "chatbot_rating", MAY_1, config=config)
                for _ in range(10)
            ])

        results = run_async(burst())
        assert [r.accepted for r in results].count(True) == 1
        assert ledger_service.get_ledger(db_engine, alice.user_id).current_xp == 20
