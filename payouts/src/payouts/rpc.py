"""
JSON-RPC clients for the coin daemon and the wallet.
"""

from __future__ import annotations

from typing import Any

import httpx
from loguru import logger

from payouts.config import RPCEndpoint

# Timeout for RPC calls (seconds)
DEFAULT_RPC_TIMEOUT = 30.0


class RPCError(Exception):
    """Raised when the remote side answers with a JSON-RPC error."""

    def __init__(self, method: str, code: Any, message: str):
        self.method = method
        self.code = code
        self.message = message
        super().__init__(f"RPC error {code} in {method}: {message}")


class JsonRpcClient:
    """Minimal JSON-RPC 2.0 client over HTTP."""

    def __init__(
        self,
        url: str,
        user: str | None = None,
        password: str | None = None,
        timeout: float = DEFAULT_RPC_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ):
        self.url = url
        auth = httpx.DigestAuth(user, password) if user else None
        self.client = client or httpx.AsyncClient(timeout=timeout, auth=auth)
        self._request_id = 0

    @classmethod
    def from_endpoint(cls, endpoint: RPCEndpoint) -> JsonRpcClient:
        return cls(
            url=endpoint.url,
            user=endpoint.user,
            password=endpoint.password,
            timeout=endpoint.timeout,
        )

    async def call(self, method: str, params: dict[str, Any] | list | None = None) -> Any:
        """
        Make an RPC call.

        Args:
            method: RPC method name
            params: Method parameters

        Returns:
            RPC result

        Raises:
            RPCError: On RPC errors
            httpx.HTTPError: On connection/timeout errors
        """
        self._request_id += 1
        payload: dict[str, Any] = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
        }
        if params:
            payload["params"] = params

        try:
            response = await self.client.post(self.url, json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException as e:
            logger.error(f"RPC call timed out: {method} - {e}")
            raise
        except httpx.HTTPError as e:
            logger.error(f"RPC call failed: {method} - {e}")
            raise

        if "error" in data and data["error"]:
            error_info = data["error"]
            if isinstance(error_info, dict):
                raise RPCError(
                    method,
                    error_info.get("code", "unknown"),
                    error_info.get("message", str(error_info)),
                )
            raise RPCError(method, "unknown", str(error_info))

        return data.get("result")

    async def close(self) -> None:
        await self.client.aclose()


class DaemonClient:
    """Coin daemon RPC (chain state queries only)."""

    def __init__(self, rpc: JsonRpcClient):
        self.rpc = rpc

    async def get_hard_fork_version(self) -> int:
        result = await self.rpc.call("hard_fork_info")
        if not isinstance(result, dict) or "version" not in result:
            raise RPCError("hard_fork_info", "invalid", f"Unexpected reply: {result!r}")
        version = int(result["version"])
        logger.debug(f"Daemon hard fork version: {version}")
        return version

    async def close(self) -> None:
        await self.rpc.close()
