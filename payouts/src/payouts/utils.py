"""
Formatting helpers for amounts and addresses.
"""

from __future__ import annotations

from decimal import ROUND_DOWN, Decimal

from payouts.constants import DISPLAY_ADDRESS_CHARS


def get_readable_coins(
    amount: int,
    coin_units: int,
    decimal_places: int = 4,
    symbol: str | None = None,
) -> str:
    """
    Format an atomic amount as coins, e.g. ``1.5000 XMR``.

    Truncates (never rounds up) to ``decimal_places``.
    """
    coins = Decimal(amount) / Decimal(coin_units)
    quantum = Decimal(1).scaleb(-decimal_places)
    text = f"{coins.quantize(quantum, rounding=ROUND_DOWN):f}"
    if symbol:
        return f"{text} {symbol}"
    return text


def shorten_address(address: str, chars: int = DISPLAY_ADDRESS_CHARS) -> str:
    """Shorten an address for display: first and last ``chars`` characters."""
    if len(address) <= chars * 2 + 3:
        return address
    return f"{address[:chars]}...{address[-chars:]}"
