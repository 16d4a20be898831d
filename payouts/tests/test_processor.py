"""
Tests for a complete payout pass.
"""

from __future__ import annotations

from typing import Any

import httpx
import pytest
from loguru import logger

from payouts.config import Settings
from payouts.executor import BytecoinAdapter, SplitTransferAdapter, TransferExecutor
from payouts.models import BatchStatus
from payouts.notifications import Notifier
from payouts.processor import PaymentProcessor

PID16 = "0123456789abcdef"


class RecordingNotifier(Notifier):
    def __init__(self, fail: bool = False):
        self.events: list[tuple[str, str, dict[str, Any]]] = []
        self.fail = fail

    async def notify(self, address: str, event: str, variables: dict[str, Any]) -> None:
        if self.fail:
            raise httpx.ConnectError("unreachable")
        self.events.append((address, event, variables))


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def processor(settings: Settings, store, daemon, wallet_rpc, notifier) -> PaymentProcessor:
    executor = TransferExecutor(wallet_rpc, SplitTransferAdapter())
    return PaymentProcessor(
        settings, store, daemon, executor, notifier, clock=lambda: 1_700_000_000.0
    )


class TestRunPass:
    @pytest.mark.asyncio
    async def test_full_pass(self, processor, store, wallet_rpc, notifier) -> None:
        """Eligible workers are paid in batches, the ledger and history follow."""
        store.set_worker("w1", 155)
        store.set_worker("w2", 120)
        store.set_worker("w3", 200)
        store.set_worker("poor", 90)

        report = await processor.run_pass()

        assert report.ok
        assert report.candidates == 3
        assert report.batches == 2
        assert report.succeeded == 2
        assert len(wallet_rpc.requests) == 2

        assert store.worker("w1") == {"balance": 5, "paid": 150}
        assert store.worker("w2") == {"balance": 0, "paid": 120}
        assert store.worker("w3") == {"balance": 0, "paid": 200}
        assert store.worker("poor") == {"balance": 90, "paid": 0}

        assert len(store.zsets["test:payments:all"]) == 2
        assert [e[0] for e in notifier.events] == ["w1", "w2", "w3"]
        assert notifier.events[0][2] == {"ADDRESS": "w1", "AMOUNT": "1.50 TST"}
        assert report.notified == 3

    @pytest.mark.asyncio
    async def test_no_candidates(self, processor, store, wallet_rpc) -> None:
        store.set_worker("poor", 10)

        report = await processor.run_pass()

        assert report.ok
        assert report.candidates == 0
        assert report.batches == 0
        assert wallet_rpc.requests == []

    @pytest.mark.asyncio
    async def test_ledger_read_failure_aborts_pass(self, processor, store, wallet_rpc) -> None:
        store.set_worker("w1", 500)
        store.fail_reads = True

        report = await processor.run_pass()

        assert not report.ok
        assert report.error is not None
        assert wallet_rpc.requests == []

    @pytest.mark.asyncio
    async def test_failed_batch_leaves_balances(self, processor, store, wallet_rpc) -> None:
        """A rejected batch writes nothing; its workers stay eligible."""
        for worker in ("w1", "w2", "w3"):
            store.set_worker(worker, 100)
        wallet_rpc.fail_indexes.add(0)

        report = await processor.run_pass()

        assert report.failed == 1
        assert report.succeeded == 1
        assert store.worker("w1") == {"balance": 100, "paid": 0}
        assert store.worker("w2") == {"balance": 100, "paid": 0}
        assert store.worker("w3") == {"balance": 0, "paid": 100}

        # Next pass pays the workers of the failed batch
        report = await processor.run_pass()
        assert report.ok
        assert store.worker("w1") == {"balance": 0, "paid": 100}

    @pytest.mark.asyncio
    async def test_ledger_write_failure_is_critical(
        self, processor, store, notifier
    ) -> None:
        store.set_worker("w1", 100)
        store.fail_apply = True

        report = await processor.run_pass()

        assert report.critical == 1
        assert [o.status for o in report.outcomes] == [BatchStatus.CRITICAL]
        assert not report.ok
        assert notifier.events == []

    @pytest.mark.asyncio
    async def test_payment_id_worker(self, processor, store, wallet_rpc) -> None:
        login = f"addr+{PID16}"
        store.set_worker("w1", 100)
        store.set_worker(login, 100)

        report = await processor.run_pass()

        assert report.batches == 2
        requests = {tuple(d["address"] for d in p["destinations"]): p for _, p in wallet_rpc.requests}
        assert requests[("addr",)]["payment_id"] == PID16
        assert "payment_id" not in requests[("w1",)]
        assert f"test:payments:addr+{PID16}" in store.zsets

    @pytest.mark.asyncio
    async def test_privacy_gated_by_fork_version(self, processor, store, daemon, wallet_rpc):
        store.set_worker("w1", 100)
        daemon.version = 9
        await processor.run_pass()
        assert "tx_privacy_settings" not in wallet_rpc.requests[-1][1]

        store.set_worker("w2", 100)
        daemon.version = 10
        await processor.run_pass()
        assert wallet_rpc.requests[-1][1]["tx_privacy_settings"] == "private"

    @pytest.mark.asyncio
    async def test_privacy_per_address(self, settings, store, daemon, wallet_rpc, notifier):
        settings.payments.tx_privacy_settings = "settings"
        daemon.version = 12
        store.set_worker("pub", 100)
        store.set_worker("priv", 100)
        store.strings[store.keys.privacy_settings("pub")] = "1"
        settings.payments.max_addresses = 1
        processor = PaymentProcessor(
            settings, store, daemon, TransferExecutor(wallet_rpc, SplitTransferAdapter()), notifier
        )

        await processor.run_pass()

        privacy = {
            p["destinations"][0]["address"]: p["tx_privacy_settings"]
            for _, p in wallet_rpc.requests
        }
        assert privacy == {"pub": "public", "priv": "private"}
        assert daemon.calls == 2

    @pytest.mark.asyncio
    async def test_bytecoin_wallet(self, settings, store, daemon, wallet_rpc, notifier):
        wallet_rpc.replies[0] = {"transactionHash": "bcn1"}
        store.set_worker("w1", 100)
        processor = PaymentProcessor(
            settings, store, daemon, TransferExecutor(wallet_rpc, BytecoinAdapter()), notifier
        )

        report = await processor.run_pass()

        assert report.ok
        assert wallet_rpc.requests[0][0] == "sendTransaction"
        assert "bcn1:100:1:3:1" in store.zsets["test:payments:all"]

    @pytest.mark.asyncio
    async def test_notification_failure_not_fatal(self, settings, store, daemon, wallet_rpc):
        store.set_worker("w1", 100)
        processor = PaymentProcessor(
            settings,
            store,
            daemon,
            TransferExecutor(wallet_rpc, SplitTransferAdapter()),
            RecordingNotifier(fail=True),
        )

        report = await processor.run_pass()

        assert report.ok
        assert report.notified == 0
        assert store.worker("w1") == {"balance": 0, "paid": 100}

    @pytest.mark.asyncio
    async def test_unreadable_wallet_reply_is_reconciled(
        self, processor, store, wallet_rpc
    ) -> None:
        """An accepted batch with a broken reply is debited and never paid twice."""
        store.set_worker("w1", 100)
        wallet_rpc.replies[0] = {"tx_hash_list": ["h1", "h2"], "tx_key_list": ["k1", "k2"]}

        report = await processor.run_pass()

        assert [o.status for o in report.outcomes] == [BatchStatus.SENT]
        assert report.unverified == 1
        assert not report.ok
        assert store.worker("w1") == {"balance": 0, "paid": 100}
        assert set(store.zsets["test:payments:all"]) == {"h1:50:1:3:1", "h2:50:1:3:1"}

        report = await processor.run_pass()
        assert report.candidates == 0
        assert len(wallet_rpc.requests) == 1

    @pytest.mark.asyncio
    async def test_invalid_reply_values_do_not_abort_pass(
        self, processor, store, wallet_rpc, notifier
    ) -> None:
        store.set_worker("w1", 100)
        store.set_worker("w2", 100)
        store.set_worker("w3", 100)
        wallet_rpc.replies[0] = {"tx_hash_list": ["h1"], "amount_list": [None]}

        report = await processor.run_pass()

        assert report.succeeded == 2
        assert report.unverified == 1
        assert store.worker("w1") == {"balance": 0, "paid": 100}
        assert store.worker("w3") == {"balance": 0, "paid": 100}
        assert [e[0] for e in notifier.events] == ["w1", "w2", "w3"]

    @pytest.mark.asyncio
    async def test_unexpected_settle_error_isolated(
        self, processor, store, wallet_rpc, notifier, monkeypatch
    ) -> None:
        """One batch raising is reported critical, the others still complete."""
        for worker in ("w1", "w2", "w3"):
            store.set_worker(worker, 100)
        apply = store.apply

        async def apply_or_raise(mutation):
            if any(op.key == store.keys.worker("w1") for op in mutation.ops):
                raise RuntimeError("unexpected reply from redis")
            await apply(mutation)

        monkeypatch.setattr(store, "apply", apply_or_raise)

        report = await processor.run_pass()

        assert [o.status for o in report.outcomes] == [BatchStatus.CRITICAL, BatchStatus.SENT]
        assert "unexpected reply from redis" in report.outcomes[0].error
        assert store.worker("w3") == {"balance": 0, "paid": 100}
        assert [e[0] for e in notifier.events] == ["w3"]
        assert not report.ok

    @pytest.mark.asyncio
    async def test_close(self, processor, store) -> None:
        await processor.close()
        assert store.closed


class TestIntegratedAddressPrefixes:
    def _warnings(self, settings, store, daemon, wallet_rpc) -> list[str]:
        messages: list[str] = []
        sink_id = logger.add(lambda m: messages.append(str(m)), level="WARNING")
        try:
            PaymentProcessor(
                settings, store, daemon, TransferExecutor(wallet_rpc, SplitTransferAdapter())
            )
        finally:
            logger.remove(sink_id)
        return messages

    def test_warns_when_unset(self, settings, store, daemon, wallet_rpc) -> None:
        messages = self._warnings(settings, store, daemon, wallet_rpc)
        assert any("integrated_address_prefixes" in m for m in messages)

    def test_silent_when_configured(self, settings, store, daemon, wallet_rpc) -> None:
        settings.pool.integrated_address_prefixes = ["iz"]
        messages = self._warnings(settings, store, daemon, wallet_rpc)
        assert not any("integrated_address_prefixes" in m for m in messages)
