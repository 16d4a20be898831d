"""
Worker login parsing.

A worker login is the address miners authenticate with. Besides the bare
address it may carry:
- a fixed difficulty suffix: ``<address>.<difficulty>``
- a payment id: ``<address>+<payment_id>``
or be an integrated address that embeds the payment id itself.
"""

from __future__ import annotations

import re
from collections.abc import Sequence

from payouts.constants import (
    DEFAULT_FIXED_DIFF_SEPARATOR,
    DEFAULT_PAYMENT_ID_SEPARATOR,
    PAYMENT_ID_LENGTHS,
)
from payouts.models import NormalizedDestination

_NON_ALNUM = re.compile(r"[^A-Za-z0-9]")


def is_integrated_address(address: str, prefixes: Sequence[str]) -> bool:
    """Check whether ``address`` starts with one of the integrated address prefixes."""
    return any(prefix and address.startswith(prefix) for prefix in prefixes)


def strip_fixed_diff(address: str, separator: str = DEFAULT_FIXED_DIFF_SEPARATOR) -> str:
    """Drop a legacy ``<separator><difficulty>`` suffix from a worker login."""
    if separator in address:
        return address.rsplit(separator, 1)[0]
    return address


def sanitize_payment_id(payment_id: str) -> str | None:
    """
    Strip non-alphanumeric characters from a payment id.

    Returns:
        The sanitized payment id, or None when its length is not 16 or 64
    """
    cleaned = _NON_ALNUM.sub("", payment_id)
    if len(cleaned) not in PAYMENT_ID_LENGTHS:
        return None
    return cleaned


def normalize_destination(
    raw: str,
    separator: str = DEFAULT_PAYMENT_ID_SEPARATOR,
    integrated_prefixes: Sequence[str] = (),
) -> NormalizedDestination:
    """
    Resolve a worker login into a bare address and an optional payment id.

    Rules:
    - ``addr+pid`` with a 16 or 64 character (sanitized) payment id gives
      ``(addr, pid)`` and must be sent in its own transfer
    - ``addr+pid`` with any other payment id length gives ``(addr, None)``
      and is batched like a normal address
    - an integrated address (no separator) keeps its address, has no explicit
      payment id and must be sent in its own transfer

    Args:
        raw: Worker login (already stripped of any fixed difficulty suffix)
        separator: Address / payment id separator
        integrated_prefixes: Prefixes identifying integrated addresses

    Returns:
        NormalizedDestination
    """
    parts = raw.split(separator)
    if len(parts) >= 2:
        payment_id = sanitize_payment_id(parts[1])
        return NormalizedDestination(
            address=parts[0],
            payment_id=payment_id,
            isolated=payment_id is not None,
        )

    if is_integrated_address(raw, integrated_prefixes):
        return NormalizedDestination(address=raw, isolated=True)

    return NormalizedDestination(address=raw)


def join_payment_id(address: str, payment_id: str | None, separator: str) -> str:
    """Inverse of normalize_destination, used for per-destination history keys."""
    if payment_id:
        return f"{address}{separator}{payment_id}"
    return address
