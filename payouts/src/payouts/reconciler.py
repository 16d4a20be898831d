"""
Ledger reconciliation after a transfer was accepted by the wallet.

Submission and ledger update are two independent systems. Once the wallet
has sent funds the ledger write must not be retried blindly: a failure here
leaves the ledger ambiguous and is reported as a double payment risk.
"""

from __future__ import annotations

import time
from collections.abc import Callable

from loguru import logger

from payouts.addresses import join_payment_id
from payouts.ledger import LedgerError, LedgerKeys, LedgerStore
from payouts.models import LedgerMutation, PaymentRecord, TransferBatch, TransferResult


class DoublePaymentRiskError(Exception):
    """Funds were sent but the ledger could not be updated."""

    def __init__(self, batch: TransferBatch, result: TransferResult, cause: Exception):
        self.batch = batch
        self.result = result
        self.cause = cause
        super().__init__(
            f"Payments sent in {result.tx_hashes} but ledger update failed: {cause}"
        )


class PaymentClock:
    """
    Timestamps for payment records.

    Records written in the same pass share a second, so each one gets an
    increasing offset to keep the history sets ordered.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self.clock = clock
        self._offset = 0

    def next(self) -> int:
        timestamp = int(self.clock()) + self._offset
        self._offset += 1
        return timestamp


class LedgerReconciler:
    def __init__(self, store: LedgerStore, keys: LedgerKeys, payment_id_separator: str):
        self.store = store
        self.keys = keys
        self.payment_id_separator = payment_id_separator

    def history_address(self, batch: TransferBatch, address: str) -> str:
        return join_payment_id(address, batch.payment_id, self.payment_id_separator)

    def build_mutation(
        self,
        batch: TransferBatch,
        result: TransferResult,
        clock: PaymentClock,
    ) -> tuple[LedgerMutation, list[PaymentRecord]]:
        """Batch mutation extended with the payment history writes."""
        mutation = batch.mutation.copy()
        records: list[PaymentRecord] = []
        for tx_hash, amount in zip(result.tx_hashes, result.amounts):
            record = PaymentRecord(
                tx_hash=tx_hash,
                amount=amount,
                fee=batch.fee,
                mixin=batch.mixin,
                destination_count=batch.destination_count,
                timestamp=clock.next(),
            )
            records.append(record)
            mutation.zadd(self.keys.payments_all(), record.timestamp, record.global_entry())
            for destination in batch.destinations:
                mutation.zadd(
                    self.keys.payments(self.history_address(batch, destination.address)),
                    record.timestamp,
                    record.destination_entry(),
                )
        return mutation, records

    async def reconcile(
        self,
        batch: TransferBatch,
        result: TransferResult,
        clock: PaymentClock,
    ) -> list[PaymentRecord]:
        """
        Record the payments of a sent batch and apply its ledger mutation.

        Raises:
            DoublePaymentRiskError: If the atomic ledger write failed
        """
        mutation, records = self.build_mutation(batch, result, clock)
        try:
            await self.store.apply(mutation)
        except LedgerError as e:
            logger.critical(
                "Super critical error! Payments sent yet failing to update balance in "
                f"ledger, double payouts likely to happen: {e}"
            )
            logger.critical(
                "Double payments likely to be sent to "
                f"{[(d.address, d.amount) for d in batch.destinations]}"
            )
            raise DoublePaymentRiskError(batch, result, e) from e

        logger.debug(
            f"Ledger updated for batch {batch.index}: {len(mutation)} operations, "
            f"{len(records)} payment record(s)"
        )
        return records
