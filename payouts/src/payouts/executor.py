"""
Submission of transfer batches to the wallet RPC.

Wallet families disagree on the transfer call:
- "default" (Monero style): ``transfer_split`` with destinations/fee/mixin
- "bytecoin": ``sendTransaction`` with transfers/fee/anonymity

An adapter translates a TransferBatch into the wire request and the wire
reply back into a TransferResult. Everything else is shared.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

import httpx
from loguru import logger

from payouts.models import TransferBatch, TransferResult
from payouts.rpc import JsonRpcClient, RPCError


class TransferError(Exception):
    """Raised when the wallet did not accept a transfer batch."""

    def __init__(self, batch: TransferBatch, message: str):
        self.batch = batch
        super().__init__(message)


class WalletAdapter(ABC):
    method: str

    @abstractmethod
    def build_request(self, batch: TransferBatch) -> dict[str, Any]:
        """Translate a batch into RPC params"""

    @abstractmethod
    def parse_result(self, batch: TransferBatch, result: Any) -> TransferResult:
        """Translate the RPC result into a TransferResult"""

    def salvage_result(self, batch: TransferBatch, result: Any) -> TransferResult:
        """
        Best-effort TransferResult for a reply that parse_result rejected.

        The wallet did not return an error, so the batch counts as sent. Any
        transaction hashes found in the reply are kept and the batch amount is
        spread over them.
        """
        tx_hashes: list[str] = []
        if isinstance(result, dict):
            listed = result.get("tx_hash_list")
            if isinstance(listed, list):
                tx_hashes = [str(h) for h in listed if h]
            elif result.get("transactionHash"):
                tx_hashes = [str(result["transactionHash"])]
        if not tx_hashes:
            return TransferResult(tx_hashes=[], amounts=[], tx_keys=[], salvaged=True)

        share, remainder = divmod(batch.amount, len(tx_hashes))
        amounts = [share] * len(tx_hashes)
        amounts[0] += remainder
        return TransferResult(
            tx_hashes=tx_hashes,
            amounts=amounts,
            tx_keys=[None] * len(tx_hashes),
            salvaged=True,
        )


class SplitTransferAdapter(WalletAdapter):
    """``transfer_split`` wallets (Monero and forks)."""

    method = "transfer_split"

    def build_request(self, batch: TransferBatch) -> dict[str, Any]:
        request: dict[str, Any] = {
            "destinations": [{"amount": d.amount, "address": d.address} for d in batch.destinations],
            "fee": batch.fee,
            "mixin": batch.mixin,
            "priority": batch.priority,
            "get_tx_keys": batch.get_tx_keys,
            "unlock_time": batch.unlock_time,
        }
        if batch.privacy_setting is not None:
            request["tx_privacy_settings"] = batch.privacy_setting
        if batch.payment_id:
            request["payment_id"] = batch.payment_id
        return request

    def parse_result(self, batch: TransferBatch, result: Any) -> TransferResult:
        if not isinstance(result, dict) or "tx_hash_list" not in result:
            raise ValueError(f"Unexpected {self.method} reply: {result!r}")
        tx_hashes = list(result["tx_hash_list"])
        amounts = [int(a) for a in result.get("amount_list") or []]
        if not amounts and len(tx_hashes) == 1:
            amounts = [batch.amount]
        tx_keys = list(result.get("tx_key_list") or [None] * len(tx_hashes))
        return TransferResult(tx_hashes=tx_hashes, amounts=amounts, tx_keys=tx_keys)


class BytecoinAdapter(WalletAdapter):
    """``sendTransaction`` wallets (Bytecoin walletd and forks)."""

    method = "sendTransaction"

    def build_request(self, batch: TransferBatch) -> dict[str, Any]:
        request: dict[str, Any] = {
            "transfers": [{"amount": d.amount, "address": d.address} for d in batch.destinations],
            "fee": batch.fee,
            "anonymity": batch.mixin,
            "unlockTime": batch.unlock_time,
        }
        if batch.payment_id:
            request["paymentId"] = batch.payment_id
        return request

    def parse_result(self, batch: TransferBatch, result: Any) -> TransferResult:
        if not isinstance(result, dict):
            raise ValueError(f"Unexpected {self.method} reply: {result!r}")
        if "tx_hash_list" in result:
            return SplitTransferAdapter().parse_result(batch, result)
        if "transactionHash" not in result:
            raise ValueError(f"Unexpected {self.method} reply: {result!r}")
        # walletd creates a single transaction per request
        return TransferResult(
            tx_hashes=[result["transactionHash"]],
            amounts=[batch.amount],
            tx_keys=[result.get("transactionSecretKey")],
        )


ADAPTERS: dict[str, type[WalletAdapter]] = {
    "default": SplitTransferAdapter,
    "bytecoin": BytecoinAdapter,
}


def get_adapter(daemon_type: str) -> WalletAdapter:
    adapter_cls = ADAPTERS.get(daemon_type.lower())
    if adapter_cls is None:
        raise ValueError(f"Unsupported daemon type: {daemon_type}")
    return adapter_cls()


class TxKeyLog:
    """Append-only audit file of transaction keys."""

    def __init__(self, path: Path):
        self.path = path

    def append(self, tx_hash: str, tx_key: str | None) -> None:
        try:
            with self.path.open("a", encoding="utf-8") as f:
                f.write(f"tx_hash:{tx_hash}, tx_key:{tx_key}\n")
        except OSError as e:
            logger.error(f"Error writing tx key for {tx_hash} to {self.path}: {e}")


class TransferExecutor:
    def __init__(
        self,
        wallet: JsonRpcClient,
        adapter: WalletAdapter,
        tx_key_log: TxKeyLog | None = None,
    ):
        self.wallet = wallet
        self.adapter = adapter
        self.tx_key_log = tx_key_log

    async def submit(self, batch: TransferBatch) -> TransferResult:
        """
        Submit one batch to the wallet.

        Raises:
            TransferError: If the wallet rejected the request or was unreachable
        """
        request = self.adapter.build_request(batch)
        try:
            raw = await self.wallet.call(self.adapter.method, request)
        except (RPCError, httpx.HTTPError) as e:
            logger.error(f"Error with {self.adapter.method} RPC request to wallet daemon: {e}")
            logger.error(
                f"Payments failed to send to {[(d.address, d.amount) for d in batch.destinations]}"
            )
            raise TransferError(batch, str(e)) from e

        # From here on the wallet has accepted the batch
        try:
            result = self.adapter.parse_result(batch, raw)
        except (ValueError, TypeError, KeyError) as e:
            logger.critical(
                f"Wallet accepted batch {batch.index} but its {self.adapter.method} reply "
                f"could not be read ({e}): {raw!r}"
            )
            result = self.adapter.salvage_result(batch, raw)

        if self.tx_key_log is not None and batch.get_tx_keys:
            for tx_hash, tx_key in zip(result.tx_hashes, result.tx_keys):
                self.tx_key_log.append(tx_hash, tx_key)

        logger.info(
            f"Payments sent via wallet daemon: batch {batch.index}, "
            f"{len(result.tx_hashes)} transaction(s) {result.tx_hashes}"
        )
        return result

    async def submit_all(
        self,
        batches: list[TransferBatch],
        on_result: Callable[[TransferBatch, TransferResult | None, str | None], Awaitable[Any]],
    ) -> list[Any]:
        """
        Submit all batches concurrently.

        ``on_result`` runs for every batch as soon as its own submission settles,
        with either the result or the error message.

        Returns one entry per batch, in order: the value ``on_result``
        returned, or the exception that escaped that batch. One batch raising
        never hides the others.
        """

        async def run(batch: TransferBatch) -> Any:
            try:
                result = await self.submit(batch)
            except TransferError as e:
                return await on_result(batch, None, str(e))
            return await on_result(batch, result, None)

        settled = await asyncio.gather(*(run(batch) for batch in batches), return_exceptions=True)
        for batch, value in zip(batches, settled):
            if isinstance(value, BaseException) and not isinstance(value, Exception):
                raise value
            if isinstance(value, Exception):
                logger.error(f"Unexpected error settling batch {batch.index}: {value!r}")
        return list(settled)
