"""Payout processor: drains pending reward transactions through the server wallet.

One cycle reads the queue and the wallet balance once, then walks the rows
oldest first, keeping a running balance so a short wallet fails the tail of
the queue instead of overdrawing. Every status change commits on its own so
a crash mid-cycle never rolls back a payout that already went out.

A row is marked in flight and committed before its transfer is submitted.
If the outcome cannot be written afterwards the row stays in flight and out
of the queue, and is reported at the start of each cycle for reconciliation.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from paxrewards.config import Settings
from paxrewards.errors import GatewaySendFailure, InsufficientBalance, PayoutError
from paxrewards.gamification.events import REWARD_FAILED_CHANNEL, REWARD_SENT_CHANNEL, publish_event
from paxrewards.ledger.store import LedgerStore
from paxrewards.payouts.gateway import CustodialWalletGateway

logger = structlog.get_logger()


@dataclass(frozen=True)
class QueuedPayout:
    """Detached snapshot of a queued reward transaction."""

    id: str
    user_address: str
    reward_type: str
    reward_id: str | None
    amount: Decimal
    attempts: int


@dataclass
class CycleReport:
    sent: int = 0
    failed: int = 0
    skipped: int = 0
    starting_balance: Decimal | None = None
    ending_balance: Decimal | None = None
    sent_ids: list[str] = field(default_factory=list)
    failed_ids: list[str] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return self.sent + self.failed


class PayoutProcessor:
    """Sends queued rewards from the custodial wallet on a fixed interval."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        gateway: CustodialWalletGateway,
        settings: Settings,
        redis: object | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.gateway = gateway
        self.settings = settings
        self.redis = redis
        self._task: asyncio.Task[None] | None = None
        self._stopping = asyncio.Event()

    def retry_delay(self, attempts: int) -> timedelta:
        """Backoff before retry number ``attempts`` (1-based), capped."""
        seconds = self.settings.payout_backoff_base_seconds * 2 ** max(attempts - 1, 0)
        return timedelta(seconds=min(seconds, self.settings.payout_backoff_max_seconds))

    async def run_cycle(self, now: datetime | None = None) -> CycleReport:
        """Process every due reward transaction once.

        Failures are contained per transaction: a gateway or database error on
        one row is logged and the cycle moves on to the next.
        """
        now = now or datetime.now(timezone.utc)
        report = CycleReport()

        async with self.session_factory() as session:
            store = LedgerStore(session)
            await self._sweep(store, now)

            rows = await store.list_pending_reward_transactions(
                now,
                include_failed=self.settings.payout_retry_failed,
                max_attempts=self.settings.payout_max_attempts,
            )
            queue = [
                QueuedPayout(r.id, r.user_address, r.reward_type, r.reward_id, r.amount, r.attempts)
                for r in rows
            ]
            if not queue:
                return report

            try:
                balance = await self.gateway.get_balance()
            except Exception:
                logger.exception("payout_balance_read_failed", queued=len(queue))
                return report

            report.starting_balance = balance
            await self._snapshot(store, balance, now)
            logger.info("payout_cycle_started", queued=len(queue), balance=str(balance))

            for item in queue:
                required = item.amount + self.settings.payout_gas_reserve
                if balance < required:
                    error: PayoutError = InsufficientBalance(
                        f"Balance {balance} below required {required} for {item.id}"
                    )
                    await self._mark_failed(store, item, error, now, report, count_attempt=False)
                    continue

                if not await self._begin_send(store, item, now, report):
                    continue

                try:
                    tx_hash = await asyncio.wait_for(
                        self.gateway.send_native(item.user_address, item.amount),
                        timeout=self.settings.payout_send_timeout_seconds,
                    )
                except asyncio.TimeoutError:
                    error = GatewaySendFailure(
                        f"Send timed out after {self.settings.payout_send_timeout_seconds}s"
                    )
                    await self._mark_failed(store, item, error, now, report, retryable=False)
                    continue
                except Exception as exc:
                    error = exc if isinstance(exc, GatewaySendFailure) else GatewaySendFailure(str(exc))
                    await self._mark_failed(store, item, error, now, report)
                    continue

                balance -= required
                await self._mark_sent(store, item, tx_hash, now, report)

            try:
                report.ending_balance = await self.gateway.get_balance()
            except Exception:
                logger.warning("payout_final_balance_read_failed", exc_info=True)
            else:
                await self._snapshot(store, report.ending_balance, now)

        logger.info(
            "payout_cycle_finished",
            sent=report.sent,
            failed=report.failed,
            skipped=report.skipped,
        )
        return report

    async def _rollback(self, store: LedgerStore) -> None:
        try:
            await store.session.rollback()
        except Exception:
            logger.exception("payout_rollback_failed")

    async def _sweep(self, store: LedgerStore, now: datetime) -> None:
        """Re-apply lost claim flags and report sends with no recorded outcome."""
        try:
            claimed = await store.propagate_claims(now)
            await store.session.commit()
            stalled = await store.list_in_flight_reward_transactions()
        except Exception:
            logger.exception("payout_sweep_failed")
            await self._rollback(store)
            return
        if claimed:
            logger.info("payout_claims_repaired", count=claimed)
        if stalled:
            logger.error(
                "payout_in_flight_unresolved",
                count=len(stalled),
                tx_ids=[tx.id for tx in stalled],
            )

    async def _snapshot(self, store: LedgerStore, balance: Decimal, now: datetime) -> None:
        try:
            await store.record_server_wallet_balance(self.gateway.address, balance, now)
            await store.session.commit()
        except Exception:
            logger.exception("payout_wallet_snapshot_failed", balance=str(balance))
            await self._rollback(store)

    async def _begin_send(
        self,
        store: LedgerStore,
        item: QueuedPayout,
        now: datetime,
        report: CycleReport,
    ) -> bool:
        """Commit the in-flight marker. False means the row must not be sent."""
        try:
            claimed = await store.begin_send(item.id, now)
            if claimed:
                await store.session.commit()
        except Exception:
            logger.exception("payout_begin_send_failed", tx_id=item.id)
            await self._rollback(store)
            report.skipped += 1
            return False
        if not claimed:
            await self._rollback(store)
            report.skipped += 1
        return claimed

    async def _mark_sent(
        self,
        store: LedgerStore,
        item: QueuedPayout,
        tx_hash: str,
        now: datetime,
        report: CycleReport,
    ) -> None:
        """Record a completed send and its claim flag in one commit.

        If that commit fails the status alone is written and the claim flag is
        left for the next cycle's sweep. If even that fails the row stays in
        flight, so it is never sent again.
        """
        sent_at = datetime.now(timezone.utc)
        try:
            updated = await store.update_reward_transaction(
                item.id, "sent", transaction_hash=tx_hash, sent_at=sent_at
            )
            if updated:
                await store.mark_reward_claimed(item, now)  # type: ignore[arg-type]
                await store.session.commit()
        except Exception:
            logger.warning("payout_claim_write_failed", tx_id=item.id, tx_hash=tx_hash, exc_info=True)
            await self._rollback(store)
            try:
                updated = await store.update_reward_transaction(
                    item.id, "sent", transaction_hash=tx_hash, sent_at=sent_at
                )
                await store.session.commit()
            except Exception:
                logger.exception("payout_sent_not_recorded", tx_id=item.id, tx_hash=tx_hash)
                await self._rollback(store)
                report.skipped += 1
                return

        if not updated:
            # Sent on chain but the row moved under us; keep the hash in the log.
            logger.error("payout_sent_row_not_updated", tx_id=item.id, tx_hash=tx_hash)
            await self._rollback(store)
            report.skipped += 1
            return

        report.sent += 1
        report.sent_ids.append(item.id)
        logger.info(
            "payout_sent",
            tx_id=item.id,
            user=item.user_address,
            amount=str(item.amount),
            tx_hash=tx_hash,
        )
        await publish_event(self.redis, REWARD_SENT_CHANNEL, {
            "id": item.id,
            "user_address": item.user_address,
            "reward_type": item.reward_type,
            "amount": str(item.amount),
            "transaction_hash": tx_hash,
        })

    async def _mark_failed(
        self,
        store: LedgerStore,
        item: QueuedPayout,
        error: PayoutError,
        now: datetime,
        report: CycleReport,
        *,
        retryable: bool = True,
        count_attempt: bool = True,
    ) -> None:
        """Record a failed attempt.

        Uncounted failures (an underfunded wallet) never use up the attempt
        budget, so they stay retryable until the wallet is refilled.
        """
        attempts = item.attempts + 1 if count_attempt else item.attempts
        next_attempt_at = None
        if retryable and self.settings.payout_retry_failed and (
            not count_attempt or attempts < self.settings.payout_max_attempts
        ):
            next_attempt_at = now + self.retry_delay(max(attempts, 1))

        try:
            updated = await store.update_reward_transaction(
                item.id,
                "failed",
                error=str(error),
                next_attempt_at=next_attempt_at,
                count_attempt=count_attempt,
            )
            if updated:
                await store.session.commit()
        except Exception:
            logger.exception("payout_failure_not_recorded", tx_id=item.id, error=str(error))
            await self._rollback(store)
            report.skipped += 1
            return
        if not updated:
            await self._rollback(store)
            report.skipped += 1
            return

        report.failed += 1
        report.failed_ids.append(item.id)
        logger.warning(
            "payout_failed",
            tx_id=item.id,
            user=item.user_address,
            amount=str(item.amount),
            error_type=type(error).__name__,
            error=str(error),
            attempts=attempts,
            next_attempt_at=next_attempt_at.isoformat() if next_attempt_at else None,
        )
        await publish_event(self.redis, REWARD_FAILED_CHANNEL, {
            "id": item.id,
            "user_address": item.user_address,
            "amount": str(item.amount),
            "error": str(error),
        })

    # ------------------------------------------------------------------
    # Background loop
    # ------------------------------------------------------------------

    async def _loop(self) -> None:
        interval = self.settings.payout_interval_seconds
        logger.info("payout_processor_started", interval_seconds=interval)
        while not self._stopping.is_set():
            try:
                await self.run_cycle()
            except Exception:
                logger.exception("payout_cycle_crashed")
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
        logger.info("payout_processor_stopped")

    def start(self) -> None:
        """Run cycles every ``payout_interval_seconds`` in a background task."""
        if self._task is not None and not self._task.done():
            return
        self._stopping.clear()
        self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        """Stop the loop after the current cycle finishes."""
        if self._task is None:
            return
        self._stopping.set()
        await self._task
        self._task = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()
