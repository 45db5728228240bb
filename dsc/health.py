"""
health.py - Solvency ratio computation

HealthFactorEngine reads both ledgers and prices collateral through the
oracle. It never mutates anything; it is the single gate the mutating
engines use to accept or reject a state transition.
"""

from __future__ import annotations
import logging
from datetime import datetime
from typing import Callable, Tuple

from .core import (
    UserId,
    MAX_HEALTH_FACTOR, MIN_HEALTH_FACTOR,
    HealthFactorBroken,
    calculate_health_factor,
)
from .ledgers import CollateralLedger, DebtLedger
from .oracle import PriceOracle

logger = logging.getLogger(__name__)


class HealthFactorEngine:
    """
    Computes collateral value and health factor for any user.

    Args:
        collateral: Collateral ledger (read only)
        debt: Debt ledger (read only)
        oracle: Staleness-checked price oracle
        clock: Returns the time used for staleness checks
    """

    def __init__(
        self,
        collateral: CollateralLedger,
        debt: DebtLedger,
        oracle: PriceOracle,
        clock: Callable[[], datetime],
    ):
        self._collateral = collateral
        self._debt = debt
        self._oracle = oracle
        self._clock = clock

    def collateral_value_usd(self, user: UserId) -> int:
        return self._collateral.total_value_usd(user, self._oracle, self._clock())

    def account_info(self, user: UserId) -> Tuple[int, int]:
        """Return (debt, collateral value in USD)."""
        return self._debt.debt_of(user), self.collateral_value_usd(user)

    def health_factor(self, user: UserId) -> int:
        """
        Threshold-adjusted collateral value over debt, 18 decimals.

        Users without debt get MAX_HEALTH_FACTOR and their collateral is not
        priced at all, so stale feeds never block them.
        """
        debt = self._debt.debt_of(user)
        if debt == 0:
            return MAX_HEALTH_FACTOR
        return calculate_health_factor(debt, self.collateral_value_usd(user))

    def is_healthy(self, user: UserId) -> bool:
        return self.health_factor(user) >= MIN_HEALTH_FACTOR

    def assert_healthy(self, user: UserId) -> int:
        """
        Return the user's health factor, or raise if it is below the minimum.

        Raises:
            HealthFactorBroken: If the health factor is below MIN_HEALTH_FACTOR
            StalePrice: If a held asset's price is stale
        """
        health_factor = self.health_factor(user)
        if health_factor < MIN_HEALTH_FACTOR:
            logger.debug("Health factor broken for %s: %s", user, health_factor)
            raise HealthFactorBroken(health_factor, user)
        return health_factor
