"""
Transfer batch construction.

Packs payout candidates into wallet transfer requests while respecting:
- the maximum number of destinations per transfer
- the maximum amount per transfer
- payment id isolation: a destination with a payment id (or an integrated
  address) always travels alone, since a transfer carries one payment id

The packing is a fold over the candidates. The accumulator holds the closed
batches and the batch currently being filled.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from loguru import logger

from payouts.addresses import normalize_destination, strip_fixed_diff
from payouts.config import PaymentsConfig, PoolConfig
from payouts.ledger import LedgerKeys
from payouts.models import Destination, NormalizedDestination, PayoutCandidate, TransferBatch


@dataclass
class BatchAccumulator:
    batches: list[TransferBatch] = field(default_factory=list)
    current: TransferBatch | None = None

    @property
    def current_count(self) -> int:
        return self.current.destination_count if self.current else 0

    @property
    def current_amount(self) -> int:
        return self.current.amount if self.current else 0

    def close(self) -> None:
        if self.current is not None and self.current.destinations:
            self.batches.append(self.current)
        self.current = None

    def finish(self) -> list[TransferBatch]:
        self.close()
        return self.batches


class BatchBuilder:
    """Turns payout candidates into an ordered list of transfer batches."""

    def __init__(self, payments: PaymentsConfig, pool: PoolConfig, keys: LedgerKeys):
        self.payments = payments
        self.pool = pool
        self.keys = keys

    def normalize(self, account_id: str) -> NormalizedDestination:
        """Resolve a worker login into the destination the wallet pays."""
        raw = account_id
        if self.pool.fixed_diff.enabled:
            raw = strip_fixed_diff(raw, self.pool.fixed_diff.address_separator)
        return normalize_destination(
            raw,
            separator=self.pool.payment_id.address_separator,
            integrated_prefixes=self.pool.integrated_address_prefixes,
        )

    def clamp_amount(self, amount: int, amount_in_batch: int) -> int:
        limit = self.payments.max_transaction_amount
        if limit and amount + amount_in_batch > limit:
            return limit - amount_in_batch
        return amount

    def _new_batch(self, index: int, privacy_setting: str | None) -> TransferBatch:
        return TransferBatch(
            index=index,
            fee=self.payments.transfer_fee,
            mixin=self.payments.mixin,
            priority=self.payments.priority,
            unlock_time=0,
            get_tx_keys=self.payments.get_tx_keys,
            privacy_setting=privacy_setting,
        )

    def _should_close(self, acc: BatchAccumulator, isolated: bool) -> bool:
        limit = self.payments.max_transaction_amount
        return (
            isolated
            or acc.current_count >= self.payments.max_addresses
            or bool(limit and acc.current_amount >= limit)
        )

    def add(
        self,
        acc: BatchAccumulator,
        candidate: PayoutCandidate,
        privacy_setting: str | None = None,
    ) -> BatchAccumulator:
        """Fold one candidate into the accumulator."""
        dest = self.normalize(candidate.account_id)

        # Isolated destinations start a fresh transfer
        if dest.isolated and acc.current_count > 0:
            acc.close()

        amount = self.clamp_amount(candidate.amount, acc.current_amount)
        if amount <= 0:
            logger.warning(f"Skipping {candidate.account_id}: no room left in transfer")
            return acc

        if acc.current is None:
            acc.current = self._new_batch(len(acc.batches), privacy_setting)
        batch = acc.current

        batch.destinations.append(
            Destination(address=dest.address, amount=amount, payment_id=dest.payment_id)
        )
        batch.account_ids.append(candidate.account_id)
        if dest.payment_id:
            batch.payment_id = dest.payment_id

        worker_key = self.keys.worker(candidate.account_id)
        batch.mutation.hincrby(worker_key, "balance", -amount)
        if self.payments.miner_pay_fee:
            batch.mutation.hincrby(worker_key, "balance", -self.payments.transfer_fee)
        batch.mutation.hincrby(worker_key, "paid", amount)

        if self.payments.dynamic_transfer_fee:
            batch.fee = self.payments.transfer_fee * batch.destination_count

        if self._should_close(acc, dest.isolated):
            acc.close()
        return acc

    def build(
        self,
        candidates: Iterable[PayoutCandidate],
        privacy: Mapping[str, str | None] | None = None,
    ) -> list[TransferBatch]:
        """
        Pack candidates into transfer batches.

        Args:
            candidates: Payout candidates in processing order
            privacy: Privacy setting per bare destination address, as resolved
                by PrivacyResolver. Missing addresses get no privacy field.

        Returns:
            Ordered list of batches, each with its pending ledger mutation
        """
        privacy = privacy or {}
        acc = BatchAccumulator()
        for candidate in candidates:
            address = self.normalize(candidate.account_id).address
            acc = self.add(acc, candidate, privacy.get(address))
        batches = acc.finish()
        logger.debug(f"Built {len(batches)} transfer batch(es)")
        return batches
