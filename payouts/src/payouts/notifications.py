"""
Out-of-band notifications to paid miners.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

import httpx
from loguru import logger


class Notifier(ABC):
    @abstractmethod
    async def notify(self, address: str, event: str, variables: dict[str, Any]) -> None:
        """Deliver an event to the owner of ``address``"""

    async def close(self) -> None:
        pass


class LoggingNotifier(Notifier):
    """Only logs; used when no delivery channel is configured."""

    async def notify(self, address: str, event: str, variables: dict[str, Any]) -> None:
        logger.info(f"Notification {event} for {address}: {variables}")


class WebhookNotifier(Notifier):
    """POSTs events as JSON to a webhook (mail/telegram relays and the like)."""

    def __init__(self, url: str, timeout: float = 10.0, client: httpx.AsyncClient | None = None):
        self.url = url
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def notify(self, address: str, event: str, variables: dict[str, Any]) -> None:
        payload = {"address": address, "event": event, "variables": variables}
        response = await self.client.post(self.url, json=payload)
        response.raise_for_status()

    async def close(self) -> None:
        await self.client.aclose()
