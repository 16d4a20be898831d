"""
Payout data models.

Everything here except PaymentRecord lives for a single payout pass.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


@dataclass(frozen=True)
class PayoutCandidate:
    """An account whose balance cleared its payout threshold."""

    account_id: str
    amount: int


@dataclass(frozen=True)
class NormalizedDestination:
    """Worker login resolved into a bare address and optional payment id."""

    address: str
    payment_id: str | None = None
    # True for destinations that must be alone in a transfer
    # (valid payment id or integrated address)
    isolated: bool = False


@dataclass(frozen=True)
class Destination:
    address: str
    amount: int
    payment_id: str | None = None


class LedgerOpType(str, Enum):
    HINCRBY = "hincrby"
    ZADD = "zadd"


@dataclass(frozen=True)
class LedgerOp:
    """A single store write, e.g. ``hincrby <key> balance -amount``."""

    op: LedgerOpType
    key: str
    field: str = ""
    value: int = 0
    member: str = ""
    score: int = 0


@dataclass
class LedgerMutation:
    """
    Pending writes scoped to one transfer batch.

    Applied as one atomic unit once the batch was accepted by the wallet.
    """

    ops: list[LedgerOp] = field(default_factory=list)

    def hincrby(self, key: str, field_name: str, value: int) -> None:
        self.ops.append(LedgerOp(LedgerOpType.HINCRBY, key, field=field_name, value=value))

    def zadd(self, key: str, score: int, member: str) -> None:
        self.ops.append(LedgerOp(LedgerOpType.ZADD, key, member=member, score=score))

    def copy(self) -> LedgerMutation:
        return LedgerMutation(ops=list(self.ops))

    def total(self, field_name: str) -> int:
        """Sum of hincrby values on ``field_name`` across all keys."""
        return sum(
            op.value
            for op in self.ops
            if op.op is LedgerOpType.HINCRBY and op.field == field_name
        )

    def __len__(self) -> int:
        return len(self.ops)


@dataclass
class TransferBatch:
    """One wallet transfer request plus the ledger writes it implies."""

    index: int
    fee: int
    mixin: int
    priority: int = 0
    unlock_time: int = 0
    get_tx_keys: bool = False
    privacy_setting: str | None = None
    payment_id: str | None = None
    destinations: list[Destination] = field(default_factory=list)
    account_ids: list[str] = field(default_factory=list)
    mutation: LedgerMutation = field(default_factory=LedgerMutation)

    @property
    def amount(self) -> int:
        return sum(d.amount for d in self.destinations)

    @property
    def destination_count(self) -> int:
        return len(self.destinations)


@dataclass(frozen=True)
class TransferResult:
    """
    Wallet reply for one batch.

    The lists are parallel: one entry per on-chain transaction the wallet
    created for the batch.
    """

    tx_hashes: list[str]
    amounts: list[int]
    tx_keys: list[str | None]
    # Set when the reply was unreadable and the result was reconstructed
    salvaged: bool = False

    def __post_init__(self) -> None:
        if not (len(self.tx_hashes) == len(self.amounts) == len(self.tx_keys)):
            raise ValueError(
                f"Mismatched transfer result lengths: {len(self.tx_hashes)} hashes, "
                f"{len(self.amounts)} amounts, {len(self.tx_keys)} keys"
            )


@dataclass(frozen=True)
class PaymentRecord:
    tx_hash: str
    amount: int
    fee: int
    mixin: int
    destination_count: int
    timestamp: int

    def global_entry(self) -> str:
        return f"{self.tx_hash}:{self.amount}:{self.fee}:{self.mixin}:{self.destination_count}"

    def destination_entry(self) -> str:
        return f"{self.tx_hash}:{self.amount}:{self.fee}:{self.mixin}"


class BatchStatus(str, Enum):
    SENT = "sent"
    FAILED = "failed"
    # Sent by the wallet but the ledger could not be updated
    CRITICAL = "critical"


@dataclass
class BatchOutcome:
    batch: TransferBatch
    status: BatchStatus
    result: TransferResult | None = None
    records: list[PaymentRecord] = field(default_factory=list)
    error: str | None = None


@dataclass
class PassReport:
    """Summary of a single payout pass."""

    candidates: int = 0
    outcomes: list[BatchOutcome] = field(default_factory=list)
    notified: int = 0
    error: str | None = None

    @property
    def batches(self) -> int:
        return len(self.outcomes)

    def count(self, status: BatchStatus) -> int:
        return sum(1 for o in self.outcomes if o.status is status)

    @property
    def succeeded(self) -> int:
        return self.count(BatchStatus.SENT)

    @property
    def failed(self) -> int:
        return self.count(BatchStatus.FAILED)

    @property
    def critical(self) -> int:
        return self.count(BatchStatus.CRITICAL)

    @property
    def unverified(self) -> int:
        """Sent batches whose wallet reply had to be reconstructed."""
        return sum(
            1
            for o in self.outcomes
            if o.status is BatchStatus.SENT and o.result is not None and o.result.salvaged
        )

    @property
    def ok(self) -> bool:
        return (
            self.error is None and self.failed == 0 and self.critical == 0 and self.unverified == 0
        )
