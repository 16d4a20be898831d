"""
payouts - Mining pool payout processor

Turns worker balances into batched wallet transfers and keeps the ledger in
step with what was actually sent.
"""

__version__ = "0.1.0"

from payouts.addresses import normalize_destination
from payouts.batching import BatchAccumulator, BatchBuilder
from payouts.config import PaymentsConfig, PoolConfig, Settings, get_settings
from payouts.eligibility import effective_payout_level, payable_amount, select_candidates
from payouts.executor import (
    BytecoinAdapter,
    SplitTransferAdapter,
    TransferError,
    TransferExecutor,
    get_adapter,
)
from payouts.ledger import LedgerError, LedgerStore, RedisLedgerStore
from payouts.models import (
    BatchOutcome,
    BatchStatus,
    Destination,
    LedgerMutation,
    PassReport,
    PaymentRecord,
    PayoutCandidate,
    TransferBatch,
    TransferResult,
)
from payouts.processor import PaymentProcessor
from payouts.reconciler import DoublePaymentRiskError, LedgerReconciler, PaymentClock
from payouts.rpc import DaemonClient, JsonRpcClient, RPCError
from payouts.scheduler import Scheduler, SchedulerState

__all__ = [
    "BatchAccumulator",
    "BatchBuilder",
    "BatchOutcome",
    "BatchStatus",
    "BytecoinAdapter",
    "DaemonClient",
    "Destination",
    "DoublePaymentRiskError",
    "JsonRpcClient",
    "LedgerError",
    "LedgerMutation",
    "LedgerReconciler",
    "LedgerStore",
    "PassReport",
    "PaymentClock",
    "PaymentProcessor",
    "PaymentRecord",
    "PaymentsConfig",
    "PayoutCandidate",
    "PoolConfig",
    "RPCError",
    "RedisLedgerStore",
    "Scheduler",
    "SchedulerState",
    "Settings",
    "SplitTransferAdapter",
    "TransferBatch",
    "TransferError",
    "TransferExecutor",
    "TransferResult",
    "effective_payout_level",
    "get_adapter",
    "get_settings",
    "normalize_destination",
    "payable_amount",
    "select_candidates",
]
