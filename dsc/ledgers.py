"""
ledgers.py - Collateral and debt bookkeeping

The two ledgers are the engine's only mutable state:
    - CollateralLedger: deposited amount per (user, asset), plus the
      ordered registry of accepted assets
    - DebtLedger: minted debt per user

Both reject any change that would take a position below zero, and both can
take a snapshot and restore it so that a failed operation leaves no trace.
Only PositionEngine and LiquidationEngine call the mutating methods.
"""

from __future__ import annotations
import logging
from collections import defaultdict
from datetime import datetime
from typing import Dict, Iterable, List, Tuple

from .core import (
    Asset, AssetId, UserId,
    AssetNotAccepted, ConfigurationError, InsufficientCollateral, InsufficientDebt,
    require_positive_amount,
)
from .oracle import PriceOracle

logger = logging.getLogger(__name__)

# Snapshot types returned by snapshot() and accepted by restore().
CollateralSnapshot = Dict[UserId, Dict[AssetId, int]]
DebtSnapshot = Dict[UserId, int]


class CollateralLedger:
    """
    Per-user, per-asset deposited amounts.

    The asset registry is fixed at construction and kept in registration
    order, so valuations always walk the assets in the same sequence.
    Positions are created on first deposit and never deleted; a fully
    withdrawn position rests at zero.
    """

    def __init__(self, assets: Iterable[Asset]):
        """
        Args:
            assets: Accepted collateral, in registration order

        Raises:
            ConfigurationError: If no asset is given or an id is repeated
        """
        self.assets: Tuple[Asset, ...] = tuple(assets)
        if not self.assets:
            raise ConfigurationError("At least one collateral asset must be registered")
        self._by_id: Dict[AssetId, Asset] = {}
        for asset in self.assets:
            if asset.asset_id in self._by_id:
                raise ConfigurationError(f"Asset {asset.asset_id} registered twice")
            self._by_id[asset.asset_id] = asset
        self._deposits: Dict[UserId, Dict[AssetId, int]] = defaultdict(dict)

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def list_assets(self) -> Tuple[AssetId, ...]:
        return tuple(a.asset_id for a in self.assets)

    def is_accepted(self, asset: AssetId) -> bool:
        return asset in self._by_id

    def get_asset(self, asset: AssetId) -> Asset:
        if asset not in self._by_id:
            raise AssetNotAccepted(asset)
        return self._by_id[asset]

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def balance_of(self, user: UserId, asset: AssetId) -> int:
        """Deposited amount (0 when the user never deposited the asset)."""
        if asset not in self._by_id:
            raise AssetNotAccepted(asset)
        positions = self._deposits.get(user)
        if positions is None:
            return 0
        return positions.get(asset, 0)

    def positions_of(self, user: UserId) -> Dict[AssetId, int]:
        """All of a user's positions, in registration order."""
        return {a.asset_id: self.balance_of(user, a.asset_id) for a in self.assets}

    def total_deposited(self, asset: AssetId) -> int:
        """Sum of every user's position in ``asset``."""
        if asset not in self._by_id:
            raise AssetNotAccepted(asset)
        return sum(p.get(asset, 0) for _, p in sorted(self._deposits.items()))

    def users(self) -> List[UserId]:
        return sorted(self._deposits.keys())

    def total_value_usd(self, user: UserId, oracle: PriceOracle, now: datetime) -> int:
        """
        USD value (18 decimals) of everything ``user`` has deposited.

        Assets are visited in registration order. Empty positions are
        skipped without reading their feed, so a stale feed only blocks
        users that actually hold that asset.
        """
        total = 0
        for asset in self.assets:
            amount = self.balance_of(user, asset.asset_id)
            if amount == 0:
                continue
            total += oracle.get_usd_value(asset.asset_id, amount, now)
        return total

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def deposit(self, user: UserId, asset: AssetId, amount: int) -> int:
        """
        Add ``amount`` to the user's position.

        Returns:
            The new position

        Raises:
            InvalidAmount: If amount is not a positive integer
            AssetNotAccepted: If the asset is not registered
        """
        require_positive_amount(amount)
        current = self.balance_of(user, asset)
        new_balance = current + amount
        self._deposits[user][asset] = new_balance
        return new_balance

    def withdraw(self, user: UserId, asset: AssetId, amount: int) -> int:
        """
        Subtract ``amount`` from the user's position.

        Returns:
            The new position

        Raises:
            InvalidAmount: If amount is not a positive integer
            AssetNotAccepted: If the asset is not registered
            InsufficientCollateral: If the position is smaller than amount
        """
        require_positive_amount(amount)
        current = self.balance_of(user, asset)
        if current < amount:
            raise InsufficientCollateral(user, asset, amount, current)
        new_balance = current - amount
        self._deposits[user][asset] = new_balance
        return new_balance

    # ------------------------------------------------------------------
    # Snapshot / restore
    # ------------------------------------------------------------------

    def snapshot(self) -> CollateralSnapshot:
        return {user: dict(positions) for user, positions in self._deposits.items()}

    def restore(self, snapshot: CollateralSnapshot) -> None:
        self._deposits = defaultdict(dict, {u: dict(p) for u, p in snapshot.items()})

    def __repr__(self):
        return f"CollateralLedger({len(self.assets)} assets, {len(self._deposits)} users)"


class DebtLedger:
    """Minted debt per user (18 decimals)."""

    def __init__(self):
        self._debts: Dict[UserId, int] = {}

    def debt_of(self, user: UserId) -> int:
        return self._debts.get(user, 0)

    def total_debt(self) -> int:
        return sum(self._debts[u] for u in sorted(self._debts))

    def users(self) -> List[UserId]:
        return sorted(self._debts.keys())

    def mint(self, user: UserId, amount: int) -> int:
        """Add ``amount`` to the user's debt and return the new debt."""
        require_positive_amount(amount)
        new_debt = self.debt_of(user) + amount
        self._debts[user] = new_debt
        return new_debt

    def burn(self, user: UserId, amount: int) -> int:
        """
        Subtract ``amount`` from the user's debt and return the new debt.

        Raises:
            InvalidAmount: If amount is not a positive integer
            InsufficientDebt: If the user owes less than amount
        """
        require_positive_amount(amount)
        current = self.debt_of(user)
        if current < amount:
            raise InsufficientDebt(user, amount, current)
        new_debt = current - amount
        self._debts[user] = new_debt
        return new_debt

    def snapshot(self) -> DebtSnapshot:
        return dict(self._debts)

    def restore(self, snapshot: DebtSnapshot) -> None:
        self._debts = dict(snapshot)

    def __repr__(self):
        return f"DebtLedger({len(self._debts)} users, total={self.total_debt()})"
