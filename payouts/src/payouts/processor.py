"""
One payout pass.

Stages run strictly in order, each on the full output of the previous one:
1. Read balances and payout levels from the ledger
2. Select eligible accounts
3. Resolve privacy settings and build transfer batches
4. Submit all batches concurrently, reconciling each as it settles
5. Notify paid miners
"""

from __future__ import annotations

import time
from collections.abc import Callable
from pathlib import Path

import httpx
from loguru import logger

from payouts.batching import BatchBuilder
from payouts.config import Settings
from payouts.eligibility import resolve_payout_levels, select_candidates
from payouts.executor import TransferExecutor, TxKeyLog, get_adapter
from payouts.ledger import LedgerError, LedgerStore, RedisLedgerStore
from payouts.models import (
    BatchOutcome,
    BatchStatus,
    PassReport,
    PayoutCandidate,
    TransferBatch,
    TransferResult,
)
from payouts.notifications import LoggingNotifier, Notifier, WebhookNotifier
from payouts.privacy import PrivacyResolver
from payouts.reconciler import DoublePaymentRiskError, LedgerReconciler, PaymentClock
from payouts.rpc import DaemonClient, JsonRpcClient, RPCError
from payouts.utils import get_readable_coins, shorten_address


class PaymentProcessor:
    def __init__(
        self,
        settings: Settings,
        store: LedgerStore,
        daemon: DaemonClient,
        executor: TransferExecutor,
        notifier: Notifier | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings
        self.store = store
        self.daemon = daemon
        self.executor = executor
        self.notifier = notifier or LoggingNotifier()
        self.clock = clock

        self.builder = BatchBuilder(settings.payments, settings.pool, store.keys)
        self.privacy = PrivacyResolver(daemon, store, settings.payments)
        self.reconciler = LedgerReconciler(
            store, store.keys, settings.pool.payment_id.address_separator
        )
        if not settings.pool.integrated_address_prefixes:
            logger.warning(
                "pool.integrated_address_prefixes is empty, integrated addresses will be "
                "batched with other destinations"
            )

    @classmethod
    def from_settings(cls, settings: Settings) -> PaymentProcessor:
        store = RedisLedgerStore(settings.redis_url, settings.coin)
        daemon = DaemonClient(JsonRpcClient.from_endpoint(settings.daemon))
        tx_key_log = TxKeyLog(Path(settings.payments.tx_details_log))
        executor = TransferExecutor(
            JsonRpcClient.from_endpoint(settings.wallet),
            get_adapter(settings.daemon_type),
            tx_key_log if settings.payments.get_tx_keys else None,
        )
        notifier: Notifier = LoggingNotifier()
        if settings.notifications.webhook_url:
            notifier = WebhookNotifier(
                settings.notifications.webhook_url, timeout=settings.notifications.timeout
            )
        return cls(settings, store, daemon, executor, notifier)

    def readable(self, amount: int) -> str:
        return get_readable_coins(
            amount,
            self.settings.coin_units,
            self.settings.coin_decimal_places,
            self.settings.symbol,
        )

    async def find_candidates(self) -> list[PayoutCandidate]:
        """
        Read the ledger and select the accounts due a payout.

        Raises:
            LedgerError: If balances or payout levels cannot be read
        """
        balances = await self.store.get_balances()
        stored_levels = await self.store.get_payout_levels(list(balances))
        levels = resolve_payout_levels(stored_levels, self.settings.payments, self.readable)
        return select_candidates(balances, levels, self.settings.payments)

    async def plan(self, candidates: list[PayoutCandidate]) -> list[TransferBatch]:
        addresses = [self.builder.normalize(c.account_id).address for c in candidates]
        privacy = await self.privacy.resolve_many(addresses)
        return self.builder.build(candidates, privacy)

    async def _settle(
        self,
        batch: TransferBatch,
        result: TransferResult | None,
        error: str | None,
        clock: PaymentClock,
    ) -> BatchOutcome:
        if result is None:
            return BatchOutcome(batch=batch, status=BatchStatus.FAILED, error=error)
        try:
            records = await self.reconciler.reconcile(batch, result, clock)
        except DoublePaymentRiskError as e:
            return BatchOutcome(
                batch=batch, status=BatchStatus.CRITICAL, result=result, error=str(e)
            )
        return BatchOutcome(batch=batch, status=BatchStatus.SENT, result=result, records=records)

    async def notify(self, outcomes: list[BatchOutcome]) -> int:
        sent = 0
        for outcome in outcomes:
            if outcome.status is not BatchStatus.SENT:
                continue
            for destination in outcome.batch.destinations:
                address = self.reconciler.history_address(outcome.batch, destination.address)
                logger.info(f"Payment of {self.readable(destination.amount)} to {address}")
                if not self.settings.notifications.enabled:
                    continue
                try:
                    await self.notifier.notify(
                        address,
                        "payment",
                        {
                            "ADDRESS": shorten_address(address),
                            "AMOUNT": self.readable(destination.amount),
                        },
                    )
                    sent += 1
                except httpx.HTTPError as e:
                    logger.warning(f"Failed to notify {address} about payment: {e}")
        return sent

    async def run_pass(self) -> PassReport:
        report = PassReport()

        try:
            candidates = await self.find_candidates()
        except LedgerError as e:
            logger.error(f"Payout pass aborted, ledger unavailable: {e}")
            report.error = str(e)
            return report

        report.candidates = len(candidates)
        if not candidates:
            logger.info("No workers' balances reached the minimum payment threshold")
            return report

        try:
            batches = await self.plan(candidates)
        except (LedgerError, RPCError, httpx.HTTPError) as e:
            logger.error(f"Payout pass aborted while preparing transfers: {e}")
            report.error = str(e)
            return report

        clock = PaymentClock(self.clock)

        async def settle(
            batch: TransferBatch, result: TransferResult | None, error: str | None
        ) -> BatchOutcome:
            return await self._settle(batch, result, error, clock)

        settled = await self.executor.submit_all(batches, settle)
        for batch, outcome in zip(batches, settled):
            if isinstance(outcome, Exception):
                # Unknown whether the wallet sent it, so never treat it as failed
                logger.critical(
                    f"Batch {batch.index} to {[d.address for d in batch.destinations]} ended "
                    f"in an unexpected error, check the wallet before the next pass: {outcome!r}"
                )
                outcome = BatchOutcome(
                    batch=batch, status=BatchStatus.CRITICAL, error=repr(outcome)
                )
            report.outcomes.append(outcome)
        report.notified = await self.notify(report.outcomes)

        logger.info(
            f"Payments splintered and {report.succeeded} successfully sent, "
            f"{report.failed} failed"
        )
        if report.unverified:
            logger.critical(
                f"{report.unverified} batch(es) sent with an unreadable wallet reply, "
                f"payment records may not match the chain"
            )
        if report.critical:
            logger.critical(
                f"{report.critical} batch(es) sent without ledger update, manual action required"
            )
        return report

    async def close(self) -> None:
        await self.store.close()
        await self.daemon.close()
        await self.executor.wallet.close()
        await self.notifier.close()
