"""Ledger store: uniqueness, conditional transitions and the payout queue."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError

from paxrewards.db.models import RewardTransaction, UserChallenge
from paxrewards.errors import DuplicateCheckin, DuplicateLessonProgress
from paxrewards.ledger.store import LedgerStore

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
TODAY = date(2026, 3, 1)


class TestUserStats:
    @pytest.mark.asyncio
    async def test_get_or_create_is_idempotent(self, db_session, user):
        store = LedgerStore(db_session)
        first = await store.get_or_create_user_stats(user, NOW)
        second = await store.get_or_create_user_stats(user, NOW)
        assert first is second
        assert first.level == 1
        assert first.xp == 0
        assert first.total_earned == Decimal("0")

    @pytest.mark.asyncio
    async def test_missing_user_has_no_stats(self, db_session, user):
        assert await LedgerStore(db_session).get_user_stats(user) is None

    @pytest.mark.asyncio
    async def test_increment_recomputes_level(self, db_session, user):
        store = LedgerStore(db_session)
        stats = await store.increment_user_stats(user, xp=450, lessons_completed=2, now=NOW)
        assert stats.xp == 450
        assert stats.level == 3
        assert stats.lessons_completed == 2

    @pytest.mark.asyncio
    async def test_total_earned_stays_exact(self, db_session, user):
        store = LedgerStore(db_session)
        for _ in range(3):
            await store.increment_user_stats(user, total_earned=Decimal("0.1"), now=NOW)
        await db_session.commit()
        stats = await store.get_user_stats(user)
        assert stats.total_earned == Decimal("0.3")

    @pytest.mark.asyncio
    async def test_update_with_xp_sets_level(self, db_session, user):
        store = LedgerStore(db_session)
        await store.get_or_create_user_stats(user, NOW)
        stats = await store.update_user_stats(user, xp=1600)
        assert stats.level == 5


class TestUniqueRows:
    @pytest.mark.asyncio
    async def test_duplicate_lesson_progress_raises(self, seeded_db, user):
        store = LedgerStore(seeded_db)
        await store.create_lesson_progress(user, "intro-crypto", 50, NOW)
        with pytest.raises(DuplicateLessonProgress):
            await store.create_lesson_progress(user, "intro-crypto", 50, NOW)

    @pytest.mark.asyncio
    async def test_duplicate_checkin_raises(self, db_session, user):
        store = LedgerStore(db_session)
        await store.create_checkin(user, TODAY, now=NOW)
        with pytest.raises(DuplicateCheckin):
            await store.create_checkin(user, TODAY, now=NOW)

    @pytest.mark.asyncio
    async def test_checkins_are_per_user(self, db_session, user, other_user):
        store = LedgerStore(db_session)
        await store.create_checkin(user, TODAY, now=NOW)
        await store.create_checkin(other_user, TODAY, now=NOW)
        assert await store.list_checkin_dates(user) == [TODAY]

    @pytest.mark.asyncio
    async def test_unlock_achievement_only_once(self, seeded_db, user):
        store = LedgerStore(seeded_db)
        assert await store.unlock_achievement(user, "first_lesson", 50, NOW) is True
        assert await store.unlock_achievement(user, "first_lesson", 50, NOW) is False
        unlocked = await store.get_unlocked_achievements(user)
        assert [ua.achievement_id for ua in unlocked] == ["first_lesson"]

    @pytest.mark.asyncio
    async def test_user_challenge_row_is_shared_per_day(self, seeded_db, user):
        store = LedgerStore(seeded_db)
        a = await store.get_or_create_user_challenge(user, "swap_tokens", TODAY)
        b = await store.get_or_create_user_challenge(user, "swap_tokens", TODAY)
        c = await store.get_or_create_user_challenge(user, "swap_tokens", TODAY + timedelta(days=1))
        assert a.id == b.id
        assert c.id != a.id
        count = await seeded_db.scalar(select(func.count()).select_from(UserChallenge))
        assert count == 2


class TestChallengeTransitions:
    @pytest.mark.asyncio
    async def test_completion_reported_exactly_once(self, seeded_db, user):
        store = LedgerStore(seeded_db)
        row = await store.get_or_create_user_challenge(user, "swap_tokens", TODAY)

        outcomes = []
        for _ in range(3):
            row, completed = await store.advance_user_challenge(row.id, 1, 3, NOW)
            outcomes.append(completed)
        assert outcomes == [False, False, True]

        row, completed = await store.advance_user_challenge(row.id, 1, 3, NOW)
        assert completed is False
        assert row.completed is True
        assert row.progress == 4

    @pytest.mark.asyncio
    async def test_daily_task_completion_reported_once(self, seeded_db, user):
        store = LedgerStore(seeded_db)
        row = await store.get_or_create_user_daily_task(user, "daily_swap", TODAY)
        row, completed = await store.advance_user_daily_task(row.id, 1, 1, NOW)
        assert completed is True
        _, completed = await store.advance_user_daily_task(row.id, 1, 1, NOW)
        assert completed is False


class TestRewardTransactions:
    @pytest.mark.asyncio
    async def test_created_pending(self, db_session, user):
        store = LedgerStore(db_session)
        tx = await store.create_reward_transaction(user, "checkin", None, Decimal("0.011"), NOW)
        assert tx.status == "pending"
        assert tx.transaction_hash is None
        assert tx.amount == Decimal("0.011")

    @pytest.mark.asyncio
    async def test_unknown_reward_type_rejected(self, db_session, user):
        with pytest.raises(ValueError):
            await LedgerStore(db_session).create_reward_transaction(user, "airdrop", None, Decimal("1"), NOW)

    @pytest.mark.asyncio
    async def test_queue_is_oldest_first(self, db_session, user):
        store = LedgerStore(db_session)
        late = await store.create_reward_transaction(user, "checkin", None, Decimal("1"), NOW)
        early = await store.create_reward_transaction(
            user, "checkin", None, Decimal("2"), NOW - timedelta(minutes=5)
        )
        queue = await store.list_pending_reward_transactions(NOW)
        assert [tx.id for tx in queue] == [early.id, late.id]

    @pytest.mark.asyncio
    async def test_sent_requires_hash(self, db_session, user):
        store = LedgerStore(db_session)
        tx = await store.create_reward_transaction(user, "checkin", None, Decimal("1"), NOW)
        with pytest.raises(ValueError):
            await store.update_reward_transaction(tx.id, "sent", sent_at=NOW)

    @pytest.mark.asyncio
    async def test_sent_rows_are_final(self, db_session, user):
        store = LedgerStore(db_session)
        tx = await store.create_reward_transaction(user, "checkin", None, Decimal("1"), NOW)
        assert await store.update_reward_transaction(tx.id, "sent", transaction_hash="0xabc", sent_at=NOW)
        assert not await store.update_reward_transaction(tx.id, "failed", error="late failure")

        row = await store.get_reward_transaction(tx.id)
        assert row.status == "sent"
        assert row.transaction_hash == "0xabc"
        assert row.attempts == 1

    @pytest.mark.asyncio
    async def test_failed_clears_hash(self, db_session, user):
        store = LedgerStore(db_session)
        tx = await store.create_reward_transaction(user, "checkin", None, Decimal("1"), NOW)
        await store.update_reward_transaction(tx.id, "failed", error="boom")
        row = await store.get_reward_transaction(tx.id)
        assert row.status == "failed"
        assert row.transaction_hash is None
        assert row.sent_at is None
        assert row.last_error == "boom"

    @pytest.mark.asyncio
    async def test_retry_due_failed_rows_rejoin_queue(self, db_session, user):
        store = LedgerStore(db_session)
        scheduled = await store.create_reward_transaction(user, "checkin", None, Decimal("1"), NOW)
        terminal = await store.create_reward_transaction(user, "checkin", None, Decimal("1"), NOW)
        await store.update_reward_transaction(
            scheduled.id, "failed", error="x", next_attempt_at=NOW + timedelta(minutes=1)
        )
        await store.update_reward_transaction(terminal.id, "failed", error="x")

        assert await store.list_pending_reward_transactions(NOW, include_failed=True) == []
        later = await store.list_pending_reward_transactions(
            NOW + timedelta(minutes=2), include_failed=True
        )
        assert [tx.id for tx in later] == [scheduled.id]
        assert await store.list_pending_reward_transactions(NOW + timedelta(minutes=2)) == []

    @pytest.mark.asyncio
    async def test_retry_respects_max_attempts(self, db_session, user):
        store = LedgerStore(db_session)
        tx = await store.create_reward_transaction(user, "checkin", None, Decimal("1"), NOW)
        await store.update_reward_transaction(tx.id, "failed", error="x", next_attempt_at=NOW)
        due = await store.list_pending_reward_transactions(NOW, include_failed=True, max_attempts=1)
        assert due == []

    @pytest.mark.asyncio
    async def test_mark_claimed_is_idempotent(self, db_session, user):
        store = LedgerStore(db_session)
        checkin = await store.create_checkin(user, TODAY, reward_amount=Decimal("0.011"), now=NOW)
        tx = await store.create_reward_transaction(user, "checkin", checkin.id, Decimal("0.011"), NOW)

        assert await store.mark_reward_claimed(tx, NOW) is True
        assert await store.mark_reward_claimed(tx, NOW) is False
        assert (await store.get_checkin(user, TODAY)).reward_claimed is True

    @pytest.mark.asyncio
    async def test_list_for_user_newest_first(self, db_session, user, other_user):
        store = LedgerStore(db_session)
        old = await store.create_reward_transaction(user, "checkin", None, Decimal("1"), NOW - timedelta(days=1))
        new = await store.create_reward_transaction(user, "lesson", None, Decimal("10"), NOW)
        await store.create_reward_transaction(other_user, "lesson", None, Decimal("10"), NOW)
        txs = await store.list_reward_transactions(user)
        assert [tx.id for tx in txs] == [new.id, old.id]
        assert all(isinstance(tx, RewardTransaction) for tx in txs)


class TestInFlightAndClaims:
    @pytest.mark.asyncio
    async def test_begin_send_takes_row_out_of_queue(self, db_session, user):
        store = LedgerStore(db_session)
        tx = await store.create_reward_transaction(user, "checkin", None, Decimal("1"), NOW)
        assert await store.begin_send(tx.id, NOW) is True
        assert await store.begin_send(tx.id, NOW) is False
        assert await store.list_pending_reward_transactions(NOW) == []
        assert [t.id for t in await store.list_in_flight_reward_transactions()] == [tx.id]

        await store.update_reward_transaction(tx.id, "failed", error="x", next_attempt_at=NOW)
        assert await store.list_in_flight_reward_transactions() == []
        due = await store.list_pending_reward_transactions(NOW, include_failed=True)
        assert [t.id for t in due] == [tx.id]

    @pytest.mark.asyncio
    async def test_uncounted_failure_keeps_attempts(self, db_session, user):
        store = LedgerStore(db_session)
        tx = await store.create_reward_transaction(user, "checkin", None, Decimal("1"), NOW)
        await store.update_reward_transaction(tx.id, "failed", error="low balance", count_attempt=False)
        assert (await store.get_reward_transaction(tx.id)).attempts == 0

    @pytest.mark.asyncio
    async def test_propagate_claims_repairs_sent_rows(self, db_session, user):
        store = LedgerStore(db_session)
        paid = await store.create_checkin(user, TODAY, reward_amount=Decimal("0.011"), now=NOW)
        unpaid = await store.create_checkin(user, TODAY - timedelta(days=1), now=NOW)
        tx = await store.create_reward_transaction(user, "checkin", paid.id, Decimal("0.011"), NOW)
        await store.create_reward_transaction(user, "checkin", unpaid.id, Decimal("0.01"), NOW)
        await store.update_reward_transaction(tx.id, "sent", transaction_hash="0xabc", sent_at=NOW)

        assert await store.propagate_claims(NOW) == 1
        assert await store.propagate_claims(NOW) == 0
        assert (await store.get_checkin(user, TODAY)).reward_claimed is True
        assert (await store.get_checkin(user, TODAY - timedelta(days=1))).reward_claimed is False

    @pytest.mark.asyncio
    async def test_schema_rejects_sent_without_hash(self, db_session, user):
        store = LedgerStore(db_session)
        tx = await store.create_reward_transaction(user, "checkin", None, Decimal("1"), NOW)
        with pytest.raises(IntegrityError):
            await db_session.execute(
                update(RewardTransaction).where(RewardTransaction.id == tx.id).values(status="sent")
            )

    @pytest.mark.asyncio
    async def test_schema_rejects_unknown_status(self, db_session, user):
        store = LedgerStore(db_session)
        tx = await store.create_reward_transaction(user, "checkin", None, Decimal("1"), NOW)
        with pytest.raises(IntegrityError):
            await db_session.execute(
                update(RewardTransaction).where(RewardTransaction.id == tx.id).values(status="refunded")
            )


class TestUserListings:
    @pytest.mark.asyncio
    async def test_lesson_progress_for_user(self, seeded_db, user, other_user):
        store = LedgerStore(seeded_db)
        await store.create_lesson_progress(user, "intro-crypto", 50, NOW)
        await store.create_lesson_progress(user, "defi-basics", 75, NOW + timedelta(minutes=1))
        await store.create_lesson_progress(other_user, "intro-crypto", 50, NOW)
        rows = await store.list_lesson_progress(user)
        assert [r.lesson_id for r in rows] == ["intro-crypto", "defi-basics"]

    @pytest.mark.asyncio
    async def test_daily_tasks_for_user_and_day(self, seeded_db, user):
        store = LedgerStore(seeded_db)
        assert [t.id for t in await store.list_daily_tasks()] == ["daily_send", "daily_swap"]
        await store.get_or_create_user_daily_task(user, "daily_swap", TODAY)
        await store.get_or_create_user_daily_task(user, "daily_swap", TODAY + timedelta(days=1))
        rows = await store.list_user_daily_tasks(user, TODAY)
        assert [(r.task_id, r.date) for r in rows] == [("daily_swap", TODAY)]


class TestServerWallet:
    @pytest.mark.asyncio
    async def test_balance_snapshot_upserts(self, db_session):
        store = LedgerStore(db_session)
        address = "0xdbF03B407c01E7cD3CBea99509d93f8DDDC8C6FB"
        await store.record_server_wallet_balance(address, Decimal("5"), NOW)
        await store.record_server_wallet_balance(address, Decimal("4.5"), NOW + timedelta(seconds=30))
        wallet = await store.get_server_wallet()
        assert wallet.address == address
        assert wallet.balance == Decimal("4.5")
