"""
Configuration management using pydantic-settings.

Settings come from (highest priority first) explicit overrides and an optional
JSON config file, environment variables prefixed with ``PAYOUTS_`` (nested
fields use ``__``), and a ``.env`` file.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from payouts.constants import (
    DEFAULT_FIXED_DIFF_SEPARATOR,
    DEFAULT_PAYMENT_ID_SEPARATOR,
    DEFAULT_PAYMENT_INTERVAL,
    PRIVACY_FORK_VERSION,
    PRIVACY_PER_ADDRESS,
    PRIVACY_PRIVATE,
)


class RPCEndpoint(BaseModel):
    """JSON-RPC endpoint of the daemon or the wallet."""

    url: str = "http://127.0.0.1:18081/json_rpc"
    user: str | None = None
    password: str | None = None
    timeout: float = Field(default=30.0, gt=0)


class PaymentIdConfig(BaseModel):
    address_separator: str = Field(default=DEFAULT_PAYMENT_ID_SEPARATOR, min_length=1)


class FixedDiffConfig(BaseModel):
    """Legacy fixed difficulty suffix in worker logins (``address.diff``)."""

    enabled: bool = False
    address_separator: str = Field(default=DEFAULT_FIXED_DIFF_SEPARATOR, min_length=1)


class PoolConfig(BaseModel):
    payment_id: PaymentIdConfig = Field(default_factory=PaymentIdConfig)
    fixed_diff: FixedDiffConfig = Field(default_factory=FixedDiffConfig)
    # Address prefixes that identify integrated addresses (payment id embedded).
    # Empty means no address is treated as integrated, so coins that have
    # integrated addresses must list their prefixes here.
    integrated_address_prefixes: list[str] = Field(default_factory=list)


class PaymentsConfig(BaseModel):
    """Payout policy. All amounts are in atomic units."""

    enabled: bool = True
    interval: int = Field(default=DEFAULT_PAYMENT_INTERVAL, ge=1, description="Seconds")

    min_payment: int = Field(default=100_000_000, ge=0)
    max_payment: int | None = Field(default=None, ge=0)
    denomination: int = Field(default=1, ge=1)

    transfer_fee: int = Field(default=0, ge=0)
    dynamic_transfer_fee: bool = False
    miner_pay_fee: bool = False

    max_addresses: int = Field(default=50, ge=1)
    max_transaction_amount: int | None = Field(default=None, ge=1)

    mixin: int = Field(default=5, ge=0)
    priority: int = Field(default=0, ge=0)

    # "public", "private", or "settings" for a per-address lookup
    tx_privacy_settings: Literal["public", "private", "settings"] = PRIVACY_PRIVATE
    privacy_fork_version: int = Field(default=PRIVACY_FORK_VERSION, ge=0)

    get_tx_keys: bool = False
    tx_details_log: Path = Path("payments_txkey.log")

    @model_validator(mode="after")
    def validate_payment_range(self) -> PaymentsConfig:
        if self.max_payment is not None and self.max_payment < self.min_payment:
            raise ValueError(
                f"max_payment ({self.max_payment}) must be >= min_payment ({self.min_payment})"
            )
        return self

    @property
    def privacy_per_address(self) -> bool:
        return self.tx_privacy_settings == PRIVACY_PER_ADDRESS


class NotificationConfig(BaseModel):
    enabled: bool = True
    # When set, payments are POSTed to this URL instead of only being logged
    webhook_url: str | None = None
    timeout: float = Field(default=10.0, gt=0)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="PAYOUTS_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    coin: str = "coin"
    symbol: str = "XMR"
    coin_units: int = Field(default=1_000_000_000_000, ge=1)
    coin_decimal_places: int = Field(default=4, ge=0)

    log_level: str = "INFO"

    redis_url: str = "redis://127.0.0.1:6379/0"
    daemon: RPCEndpoint = Field(
        default_factory=lambda: RPCEndpoint(url="http://127.0.0.1:18081/json_rpc")
    )
    wallet: RPCEndpoint = Field(
        default_factory=lambda: RPCEndpoint(url="http://127.0.0.1:18082/json_rpc")
    )
    # "default" (transfer_split) or "bytecoin" (sendTransaction)
    daemon_type: Literal["default", "bytecoin"] = "default"

    payments: PaymentsConfig = Field(default_factory=PaymentsConfig)
    pool: PoolConfig = Field(default_factory=PoolConfig)
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)


def load_config_file(path: Path) -> dict[str, Any]:
    """
    Read a JSON config file.

    Raises:
        ValueError: If the file is missing or not a JSON object
    """
    if not path.exists():
        raise ValueError(f"Config file not found: {path}")
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in config file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a JSON object")
    return data


def get_settings(config_file: Path | None = None, **overrides: Any) -> Settings:
    values: dict[str, Any] = {}
    if config_file is not None:
        values.update(load_config_file(config_file))
    values.update(overrides)
    return Settings(**values)
