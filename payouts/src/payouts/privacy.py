"""
Per-transfer privacy setting resolution.

Chains that went through the privacy hard fork accept a
``tx_privacy_settings`` field on transfers. Older chains reject it, so the
field is only resolved once the daemon reports a new enough fork version.
"""

from __future__ import annotations

from loguru import logger

from payouts.config import PaymentsConfig
from payouts.constants import PRIVACY_PRIVATE, PRIVACY_PUBLIC
from payouts.ledger import LedgerStore
from payouts.rpc import DaemonClient


class PrivacyResolver:
    def __init__(self, daemon: DaemonClient, store: LedgerStore, config: PaymentsConfig):
        self.daemon = daemon
        self.store = store
        self.config = config

    async def resolve(self, address: str) -> str | None:
        """
        Resolve the privacy setting for a destination address.

        Returns:
            "public" or "private", or None when the chain predates the fork
        """
        version = await self.daemon.get_hard_fork_version()
        if version < self.config.privacy_fork_version:
            return None

        if not self.config.privacy_per_address:
            return self.config.tx_privacy_settings

        flag = await self.store.get_public_transaction_setting(address)
        setting = PRIVACY_PUBLIC if str(flag) == "1" else PRIVACY_PRIVATE
        logger.debug(f"Privacy setting for {address}: {setting}")
        return setting

    async def resolve_many(self, addresses: list[str]) -> dict[str, str | None]:
        """Resolve every address in order, one daemon query per address."""
        settings: dict[str, str | None] = {}
        for address in addresses:
            settings[address] = await self.resolve(address)
        return settings
