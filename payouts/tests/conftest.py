"""
Pytest configuration and fixtures for payout tests.
"""

from __future__ import annotations

from typing import Any

import pytest

from payouts.config import PaymentsConfig, PoolConfig, Settings
from payouts.ledger import LedgerError, LedgerKeys, LedgerStore
from payouts.models import LedgerMutation, LedgerOpType
from payouts.rpc import RPCError


class InMemoryLedgerStore(LedgerStore):
    """Ledger store keeping hashes and sorted sets in dicts."""

    def __init__(self, coin: str = "test"):
        super().__init__(coin)
        self.hashes: dict[str, dict[str, int]] = {}
        self.zsets: dict[str, dict[str, int]] = {}
        self.strings: dict[str, str] = {}
        self.fail_reads = False
        self.fail_apply = False
        self.applied: list[LedgerMutation] = []
        self.closed = False

    def set_worker(self, account_id: str, balance: int, min_payout_level: int | None = None):
        fields = {"balance": balance, "paid": 0}
        if min_payout_level is not None:
            fields["minPayoutLevel"] = min_payout_level
        self.hashes[self.keys.worker(account_id)] = fields

    def worker(self, account_id: str) -> dict[str, int]:
        return self.hashes[self.keys.worker(account_id)]

    async def get_balances(self) -> dict[str, int]:
        if self.fail_reads:
            raise LedgerError("connection refused")
        prefix = f"{self.keys.coin}:workers:"
        return {
            key[len(prefix) :]: fields.get("balance", 0)
            for key, fields in sorted(self.hashes.items())
            if key.startswith(prefix)
        }

    async def get_payout_levels(self, account_ids: list[str]) -> dict[str, int | None]:
        if self.fail_reads:
            raise LedgerError("connection refused")
        return {
            account_id: self.hashes.get(self.keys.worker(account_id), {}).get("minPayoutLevel")
            for account_id in account_ids
        }

    async def get_public_transaction_setting(self, address: str) -> str | None:
        return self.strings.get(self.keys.privacy_settings(address))

    async def apply(self, mutation: LedgerMutation) -> None:
        if self.fail_apply:
            raise LedgerError("EXECABORT")
        for op in mutation.ops:
            if op.op is LedgerOpType.HINCRBY:
                fields = self.hashes.setdefault(op.key, {})
                fields[op.field] = fields.get(op.field, 0) + op.value
            else:
                self.zsets.setdefault(op.key, {})[op.member] = op.score
        self.applied.append(mutation)

    async def close(self) -> None:
        self.closed = True


class FakeDaemon:
    def __init__(self, version: int = 9):
        self.version = version
        self.calls = 0

    async def get_hard_fork_version(self) -> int:
        self.calls += 1
        return self.version

    async def close(self) -> None:
        pass


class FakeWalletRPC:
    """
    Stands in for JsonRpcClient on the wallet side.

    Replies with one transaction per request unless a canned reply or an
    error is queued for the request index.
    """

    def __init__(self):
        self.requests: list[tuple[str, dict[str, Any]]] = []
        self.fail_indexes: set[int] = set()
        self.replies: dict[int, Any] = {}

    async def call(self, method: str, params: dict[str, Any] | None = None) -> Any:
        index = len(self.requests)
        self.requests.append((method, params or {}))
        if index in self.fail_indexes:
            raise RPCError(method, -4, "not enough money")
        if index in self.replies:
            return self.replies[index]
        destinations = (params or {}).get("destinations") or (params or {}).get("transfers")
        total = sum(d["amount"] for d in destinations)
        return {
            "tx_hash_list": [f"hash{index}"],
            "amount_list": [total],
            "tx_key_list": [f"key{index}"],
        }

    async def close(self) -> None:
        pass


@pytest.fixture
def payments_config() -> PaymentsConfig:
    return PaymentsConfig(
        min_payment=100,
        denomination=10,
        transfer_fee=1,
        max_addresses=2,
        mixin=3,
    )


@pytest.fixture
def pool_config() -> PoolConfig:
    return PoolConfig()


@pytest.fixture
def keys() -> LedgerKeys:
    return LedgerKeys("test")


@pytest.fixture
def store() -> InMemoryLedgerStore:
    return InMemoryLedgerStore("test")


@pytest.fixture
def daemon() -> FakeDaemon:
    return FakeDaemon()


@pytest.fixture
def wallet_rpc() -> FakeWalletRPC:
    return FakeWalletRPC()


@pytest.fixture
def settings(payments_config: PaymentsConfig, pool_config: PoolConfig) -> Settings:
    return Settings(
        coin="test",
        coin_units=100,
        coin_decimal_places=2,
        symbol="TST",
        payments=payments_config,
        pool=pool_config,
    )
