"""
liquidation.py - Forced closure of under-collateralized positions

A liquidator repays part or all of another account's debt with their own
synthetic dollars and receives the equivalent collateral plus a 10% bonus.

State machine (single transition, atomic):
1. Preconditions: valid target, positive amount, allowed asset, target
   below MIN_HEALTH_FACTOR, debt_to_cover within the target's debt
2. Convert debt_to_cover to collateral units at the oracle price
3. Add the bonus if the target can cover it
4. Burn the liquidator's dollars against the target's debt
5. Move the collateral from the target to the liquidator
6. Postconditions: target's health factor strictly improved, liquidator
   still healthy
"""

from __future__ import annotations
from dataclasses import dataclass
import logging

from .core import (
    MIN_HEALTH_FACTOR, ZERO_ADDRESS,
    InvalidTarget, InsufficientDebt, HealthFactorOk, HealthFactorNotImproved,
)
from .health import is_healthy, quote_liquidation
from .position import PositionEngine, _require_positive

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class LiquidationResult:
    """
    Outcome of a successful liquidation.

    Attributes:
        user: Liquidated account
        liquidator: Account that repaid the debt
        asset: Collateral asset seized
        debt_covered: Debt repaid (18 decimals)
        collateral_seized: Collateral moved to the liquidator, bonus included
        bonus_paid: Whether the 10% bonus was included
        starting_health_factor: Target's health factor before
        ending_health_factor: Target's health factor after
    """
    user: str
    liquidator: str
    asset: str
    debt_covered: int
    collateral_seized: int
    bonus_paid: bool
    starting_health_factor: int
    ending_health_factor: int


class LiquidationEngine(PositionEngine):
    """
    PositionEngine with liquidation.

    Example:
        engine = LiquidationEngine([weth], [eth_usd_feed], dsc)
        ...
        result = engine.liquidate("keeper", weth.address, "alice", 1_000 * 10**18)
        result.collateral_seized
    """

    def liquidate(
        self,
        liquidator: str,
        asset: str,
        user: str,
        debt_to_cover: int,
    ) -> LiquidationResult:
        """
        Repay debt_to_cover of user's debt and seize user's collateral in asset.

        Partial fills are allowed; debt_to_cover == user's debt closes the
        position completely.

        Args:
            liquidator: Account paying with its own synthetic dollars
            asset: Collateral asset to seize
            user: Account being liquidated
            debt_to_cover: Debt to repay (18 decimals)

        Returns:
            LiquidationResult

        Raises:
            InvalidTarget: user is the null identity
            InvalidAmount: debt_to_cover is not positive
            AssetNotAllowed: asset is not allow-listed
            HealthFactorOk: user is not below MIN_HEALTH_FACTOR
            InsufficientDebt: debt_to_cover exceeds user's debt
            HealthFactorNotImproved: the liquidation would not help user
            HealthFactorBroken: the liquidator would end up below the minimum
            InsufficientCollateral, TransferFailed, RedeemFailed, StalePrice
        """
        with self._unit_of_work("liquidate"):
            if not user or user == ZERO_ADDRESS:
                raise InvalidTarget(f"Cannot liquidate {user!r}")
            _require_positive(debt_to_cover)
            descriptor = self._require_allowed(asset)

            starting_health_factor = self.health_factor(user)
            if is_healthy(starting_health_factor):
                raise HealthFactorOk(
                    f"{user} health factor {starting_health_factor} is not below {MIN_HEALTH_FACTOR}"
                )
            outstanding = self.debt.get_debt(user)
            if debt_to_cover > outstanding:
                raise InsufficientDebt(
                    f"{user}: cannot cover {debt_to_cover}, debt {outstanding}"
                )

            quote = quote_liquidation(
                debt_to_cover,
                self.oracle.usd_price(descriptor),
                self.collateral.get_balance(user, asset),
            )

            self._burn_debt(debt_to_cover, user, liquidator)
            self._redeem_collateral(asset, quote.total_to_redeem, user, liquidator)

            ending_health_factor = self.health_factor(user)
            if ending_health_factor <= starting_health_factor:
                raise HealthFactorNotImproved(
                    f"{user} health factor {starting_health_factor} -> {ending_health_factor}"
                )
            self._revert_if_health_factor_is_broken(liquidator)

        logger.info(
            "Liquidated %s: %s covered %d debt, seized %d %s (bonus %s), health %d -> %d",
            user, liquidator, debt_to_cover, quote.total_to_redeem, asset,
            "paid" if quote.bonus_paid else "skipped",
            starting_health_factor, ending_health_factor,
        )
        return LiquidationResult(
            user=user,
            liquidator=liquidator,
            asset=asset,
            debt_covered=debt_to_cover,
            collateral_seized=quote.total_to_redeem,
            bonus_paid=quote.bonus_paid,
            starting_health_factor=starting_health_factor,
            ending_health_factor=ending_health_factor,
        )
