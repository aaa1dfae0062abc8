"""
health.py - Fixed-Point Valuation and Health Factor

Pure integer functions with explicit inputs. Nothing here reads engine state
or calls an oracle; PositionEngine loads balances and prices once and passes
them in, which keeps every formula trivially testable.

Prices are USD per whole unit of an asset at 18 decimals, i.e. the feed
answer already padded by PriceOracleAdapter.usd_price.

Key Formulas:
    usd_value        = usd_price * amount / PRECISION
    token_amount     = usd_amount * PRECISION / usd_price
    health_factor    = (collateral_value * LIQUIDATION_THRESHOLD / LIQUIDATION_PRECISION) / debt
    liquidation_bonus = collateral_to_seize * LIQUIDATION_BONUS / LIQUIDATION_PRECISION

All divisions truncate toward zero.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Iterable, Tuple

from .core import (
    PRECISION,
    LIQUIDATION_THRESHOLD, LIQUIDATION_PRECISION, LIQUIDATION_BONUS,
    MIN_HEALTH_FACTOR, MAX_HEALTH_FACTOR,
)


@dataclass(frozen=True, slots=True)
class LiquidationQuote:
    """
    Collateral split for a liquidation of debt_to_cover.

    Attributes:
        collateral_to_seize: debt_to_cover converted to the asset's native units
        bonus: 10% of collateral_to_seize
        total_to_redeem: amount actually moved to the liquidator
        bonus_paid: False when the target could not cover seize + bonus
    """
    collateral_to_seize: int
    bonus: int
    total_to_redeem: int
    bonus_paid: bool


def calculate_usd_value(amount: int, usd_price: int) -> int:
    """
    USD value (18 decimals) of amount of an asset quoted at usd_price (18 decimals).

    PURE FUNCTION.

    Example:
        >>> calculate_usd_value(15 * 10**18, 2000 * 10**18)
        30000000000000000000000
    """
    return (usd_price * amount) // PRECISION


def calculate_token_amount_from_usd(usd_amount: int, usd_price: int) -> int:
    """
    Inverse of calculate_usd_value: native units of an asset worth usd_amount.

    PURE FUNCTION.
    """
    return (usd_amount * PRECISION) // usd_price


def calculate_collateral_value(holdings: Iterable[Tuple[int, int]]) -> int:
    """
    Sum calculate_usd_value over (amount, usd_price) pairs.

    PURE FUNCTION.
    """
    return sum(calculate_usd_value(amount, usd_price) for amount, usd_price in holdings)


def calculate_health_factor(total_debt: int, collateral_value_usd: int) -> int:
    """
    Solvency ratio of an account.

    PURE FUNCTION.

    The threshold-adjusted collateral value is divided by the debt without
    rescaling by PRECISION, and the result is compared against
    MIN_HEALTH_FACTOR = 1. The effective rule is therefore
    "half the collateral value >= debt". Keep the two in step: rescaling one
    without the other changes who can be liquidated.

    Args:
        total_debt: Outstanding debt (18 decimals)
        collateral_value_usd: Collateral value in USD (18 decimals)

    Returns:
        MAX_HEALTH_FACTOR when there is no debt, otherwise the truncated ratio.
    """
    if total_debt == 0:
        return MAX_HEALTH_FACTOR
    collateral_adjusted_for_threshold = (
        collateral_value_usd * LIQUIDATION_THRESHOLD
    ) // LIQUIDATION_PRECISION
    return collateral_adjusted_for_threshold // total_debt


def is_healthy(health_factor: int) -> bool:
    return health_factor >= MIN_HEALTH_FACTOR


def calculate_liquidation_bonus(collateral_to_seize: int) -> int:
    """PURE FUNCTION. 10% of the seized collateral, truncated."""
    return (collateral_to_seize * LIQUIDATION_BONUS) // LIQUIDATION_PRECISION


def quote_liquidation(debt_to_cover: int, usd_price: int, deposited: int) -> LiquidationQuote:
    """
    Split a liquidation into seized collateral and bonus.

    PURE FUNCTION.

    When the target holds less than seize + bonus, only the seize amount is
    redeemed and the liquidator absorbs the shortfall. The quote does not
    check that deposited covers the seize amount itself; the ledger debit
    does.

    Args:
        debt_to_cover: Debt repaid by the liquidator (18 decimals)
        usd_price: Padded price of the collateral asset (18 decimals)
        deposited: Target's current deposit of the collateral asset

    Returns:
        LiquidationQuote
    """
    collateral_to_seize = calculate_token_amount_from_usd(debt_to_cover, usd_price)
    bonus = calculate_liquidation_bonus(collateral_to_seize)
    if deposited < collateral_to_seize + bonus:
        return LiquidationQuote(
            collateral_to_seize=collateral_to_seize,
            bonus=bonus,
            total_to_redeem=collateral_to_seize,
            bonus_paid=False,
        )
    return LiquidationQuote(
        collateral_to_seize=collateral_to_seize,
        bonus=bonus,
        total_to_redeem=collateral_to_seize + bonus,
        bonus_paid=True,
    )
