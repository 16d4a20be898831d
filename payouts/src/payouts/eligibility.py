"""
Selection of accounts that are due a payout.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping

from loguru import logger

from payouts.config import PaymentsConfig
from payouts.models import PayoutCandidate


def effective_payout_level(stored: int | None, config: PaymentsConfig) -> int:
    """
    Clamp an account's stored minimum payout level into the configured range.

    Unset or invalid values fall back to ``min_payment``.
    """
    level = stored or config.min_payment
    if level < config.min_payment:
        level = config.min_payment
    if config.max_payment and level > config.max_payment:
        level = config.max_payment
    return level


def payable_amount(balance: int, config: PaymentsConfig) -> int:
    """Balance rounded down to the denomination, minus the fee when miners pay it."""
    payout = balance - (balance % config.denomination)
    if config.miner_pay_fee:
        payout -= config.transfer_fee
    return payout


def resolve_payout_levels(
    stored_levels: Mapping[str, int | None],
    config: PaymentsConfig,
    readable: Callable[[int], str] = str,
) -> dict[str, int]:
    """
    Effective payout level per account.

    Levels that differ from the default are logged; coercion is not an error.
    """
    levels: dict[str, int] = {}
    for account_id, stored in stored_levels.items():
        level = effective_payout_level(stored, config)
        levels[account_id] = level
        if stored is not None and stored != level:
            logger.info(
                f"Coerced payout level of {readable(stored)} for {account_id} "
                f"to {readable(level)}"
            )
        if level != config.min_payment:
            logger.info(
                f"Using payout level of {readable(level)} for {account_id} "
                f"(default: {readable(config.min_payment)})"
            )
    return levels


def select_candidates(
    balances: Mapping[str, int],
    levels: Mapping[str, int],
    config: PaymentsConfig,
) -> list[PayoutCandidate]:
    """
    Pick accounts whose balance reaches their payout level.

    Returns:
        Candidates sorted by account id so batching is reproducible
    """
    candidates: list[PayoutCandidate] = []
    for account_id in sorted(balances):
        balance = balances[account_id]
        level = levels.get(account_id, effective_payout_level(None, config))
        if balance < level:
            continue
        amount = payable_amount(balance, config)
        if amount <= 0:
            logger.debug(f"Skipping {account_id}: payable amount {amount} after fees")
            continue
        candidates.append(PayoutCandidate(account_id=account_id, amount=amount))
    return candidates
