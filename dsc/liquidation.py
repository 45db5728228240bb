"""
liquidation.py - Forced repayment of under-collateralized positions

Protocol for liquidate(liquidator, asset, user, debt_to_cover):
1. Validate the amount and the asset
2. The user's health factor must be below MIN_HEALTH_FACTOR
3. seized = debt_to_cover converted to the asset at the oracle price
4. bonus = 10% of seized; the liquidator receives seized + bonus
5. Take the collateral from the user's position
6. Burn debt_to_cover of the user's debt with tokens pulled from the liquidator
7. The user's health factor must have strictly improved
8. The liquidator must still be healthy

If the user holds less than seized + bonus of the asset the liquidation
fails with InsufficientCollateral; no partial seizure is attempted.
"""

from __future__ import annotations
import logging
from typing import Any, Tuple

from .core import (
    AssetId, UserId,
    MIN_HEALTH_FACTOR,
    HealthFactorFine, HealthFactorNotImproved, Liquidated,
    liquidation_bonus, require_positive_amount,
)
from .health import HealthFactorEngine
from .ledgers import CollateralLedger
from .operation import OperationGuard
from .oracle import PriceOracle
from .position import PositionEngine

logger = logging.getLogger(__name__)


class LiquidationEngine:
    """
    Lets any third party repay an unhealthy user's debt for discounted collateral.

    Reuses PositionEngine's redeem and burn primitives inside its own
    operation, so the whole liquidation commits or rolls back as one.
    """

    def __init__(
        self,
        collateral: CollateralLedger,
        oracle: PriceOracle,
        health: HealthFactorEngine,
        positions: PositionEngine,
        guard: OperationGuard,
    ):
        self._collateral = collateral
        self._oracle = oracle
        self._health = health
        self._positions = positions
        self._guard = guard

    def liquidate(
        self,
        liquidator: UserId,
        asset: AssetId,
        user: UserId,
        debt_to_cover: int,
    ) -> Tuple[Any, ...]:
        """
        Cover ``debt_to_cover`` of ``user``'s debt and seize ``asset`` in return.

        Returns:
            The operation's events, ending with a Liquidated summary

        Raises:
            InvalidAmount: If debt_to_cover is not a positive integer
            AssetNotAccepted: If asset is not registered
            HealthFactorFine: If the user is not below the minimum health factor
            InsufficientCollateral: If the user cannot cover seized + bonus
            InsufficientDebt: If the user owes less than debt_to_cover
            TransferFailed: If the liquidator's tokens cannot be pulled or
                the collateral cannot be delivered
            HealthFactorNotImproved: If the user's health factor did not rise
            HealthFactorBroken: If the liquidator ends up under-collateralized
            StalePrice: If a needed price is stale
        """
        require_positive_amount(debt_to_cover)
        self._collateral.get_asset(asset)

        with self._guard.operation("liquidate") as op:
            starting = self._health.health_factor(user)
            if starting >= MIN_HEALTH_FACTOR:
                logger.warning("Refused to liquidate healthy user %s (health factor %s)", user, starting)
                raise HealthFactorFine(starting)

            seized = self._oracle.get_asset_amount_from_usd(asset, debt_to_cover, op.timestamp)
            bonus = liquidation_bonus(seized)
            total_seized = seized + bonus
            logger.debug(
                "Liquidating %s: cover %s, seize %s + bonus %s %s",
                user, debt_to_cover, seized, bonus, asset,
            )

            if total_seized > 0:
                self._positions.apply_redeem(op, asset, total_seized, user, liquidator)
            self._positions.apply_burn(op, debt_to_cover, user, liquidator)

            ending = self._health.health_factor(user)
            if ending <= starting:
                raise HealthFactorNotImproved(starting, ending)
            self._health.assert_healthy(liquidator)

            if total_seized > 0:
                self._positions.push_collateral(op, asset, liquidator, total_seized)
            op.emit(Liquidated(
                liquidator=liquidator,
                user=user,
                asset=asset,
                debt_covered=debt_to_cover,
                collateral_seized=total_seized,
                bonus=bonus,
                starting_health_factor=starting,
                ending_health_factor=ending,
                timestamp=op.timestamp,
            ))

        logger.info(
            "%s liquidated %s: covered %s, seized %s %s (health factor %s -> %s)",
            liquidator, user, debt_to_cover, total_seized, asset, starting, ending,
        )
        return tuple(op.events)
