"""
Ledger store: worker balances and payment history.

Key layout (``<coin>`` is the configured namespace):
- ``<coin>:workers:<account>``: hash with ``balance``, ``minPayoutLevel``, ``paid``
- ``<coin>:payments:all``: sorted set of ``txHash:amount:fee:mixin:count``
- ``<coin>:payments:<address>``: sorted set of ``txHash:amount:fee:mixin``
- ``<coin>:publictransactionsettings:<address>``: ``1`` for public transfers
"""

from __future__ import annotations

from abc import ABC, abstractmethod

import redis.asyncio as redis
from loguru import logger
from redis.exceptions import RedisError

from payouts.models import LedgerMutation, LedgerOpType


class LedgerError(Exception):
    """Raised when the ledger store cannot be read or written."""


class LedgerKeys:
    """Builds store keys under a coin namespace."""

    def __init__(self, coin: str):
        self.coin = coin

    def worker(self, account_id: str) -> str:
        return f"{self.coin}:workers:{account_id}"

    def workers_pattern(self) -> str:
        return f"{self.coin}:workers:*"

    def account_from_key(self, key: str) -> str:
        return key.split(":")[-1]

    def payments_all(self) -> str:
        return f"{self.coin}:payments:all"

    def payments(self, address: str) -> str:
        return f"{self.coin}:payments:{address}"

    def privacy_settings(self, address: str) -> str:
        return f"{self.coin}:publictransactionsettings:{address}"


def parse_int(value: str | bytes | None) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class LedgerStore(ABC):
    """
    Abstract ledger store.

    Reads are per pass snapshots; ``apply`` must write a whole batch mutation
    atomically or not at all.
    """

    def __init__(self, coin: str):
        self.keys = LedgerKeys(coin)

    @abstractmethod
    async def get_balances(self) -> dict[str, int]:
        """Get the balance of every tracked account"""

    @abstractmethod
    async def get_payout_levels(self, account_ids: list[str]) -> dict[str, int | None]:
        """Get the stored minPayoutLevel per account (None when unset or invalid)"""

    @abstractmethod
    async def get_public_transaction_setting(self, address: str) -> str | None:
        """Get the raw per-address privacy flag"""

    @abstractmethod
    async def apply(self, mutation: LedgerMutation) -> None:
        """Apply all writes of a mutation as one atomic unit"""

    async def close(self) -> None:
        """Close store connection"""
        pass


class RedisLedgerStore(LedgerStore):
    """Ledger store backed by Redis, mutations applied with MULTI/EXEC."""

    def __init__(self, redis_url: str, coin: str, client: redis.Redis | None = None):
        super().__init__(coin)
        self.redis_url = redis_url
        self.client = client or redis.Redis.from_url(redis_url, decode_responses=True)

    async def _worker_keys(self) -> list[str]:
        keys = [key async for key in self.client.scan_iter(match=self.keys.workers_pattern())]
        keys.sort()
        return keys

    async def _hget_all(self, keys: list[str], field: str) -> list[str | None]:
        async with self.client.pipeline(transaction=False) as pipe:
            for key in keys:
                pipe.hget(key, field)
            return await pipe.execute()

    async def get_balances(self) -> dict[str, int]:
        try:
            keys = await self._worker_keys()
            replies = await self._hget_all(keys, "balance")
        except RedisError as e:
            logger.error(f"Error trying to get worker balances from redis: {e}")
            raise LedgerError(f"Failed to read balances: {e}") from e

        balances: dict[str, int] = {}
        for key, reply in zip(keys, replies):
            balances[self.keys.account_from_key(key)] = parse_int(reply) or 0
        logger.debug(f"Read balances for {len(balances)} workers")
        return balances

    async def get_payout_levels(self, account_ids: list[str]) -> dict[str, int | None]:
        keys = [self.keys.worker(account_id) for account_id in account_ids]
        try:
            replies = await self._hget_all(keys, "minPayoutLevel")
        except RedisError as e:
            logger.error(f"Error with getting minimum payout from redis: {e}")
            raise LedgerError(f"Failed to read payout levels: {e}") from e
        return {
            account_id: parse_int(reply) for account_id, reply in zip(account_ids, replies)
        }

    async def get_public_transaction_setting(self, address: str) -> str | None:
        try:
            return await self.client.get(self.keys.privacy_settings(address))
        except RedisError as e:
            raise LedgerError(f"Failed to read privacy setting for {address}: {e}") from e

    async def apply(self, mutation: LedgerMutation) -> None:
        try:
            async with self.client.pipeline(transaction=True) as pipe:
                for op in mutation.ops:
                    if op.op is LedgerOpType.HINCRBY:
                        pipe.hincrby(op.key, op.field, op.value)
                    else:
                        pipe.zadd(op.key, {op.member: op.score})
                await pipe.execute()
        except RedisError as e:
            raise LedgerError(f"Failed to apply {len(mutation)} ledger operations: {e}") from e

    async def close(self) -> None:
        await self.client.aclose()
