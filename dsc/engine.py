"""
engine.py - The collateralized debt engine

DSCEngine wires the components together and is the only object callers need:

    CollateralLedger, DebtLedger   owned state
    PriceOracle                    staleness-checked pricing
    HealthFactorEngine             solvency gate
    PositionEngine                 deposit / mint / burn / redeem
    LiquidationEngine              forced repayment

Key responsibilities:
    - Owns the logical clock used for every staleness check
    - Serializes all mutating calls through one OperationGuard
    - Publishes committed domain events to subscribed listeners
    - Exposes the read-only query surface (implements EngineView)
"""

from __future__ import annotations
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from .core import (
    Asset, AssetId, CollateralCustody, DebtToken, EventListener, PriceFeed, UserId,
    ADDITIONAL_FEED_PRECISION, LIQUIDATION_BONUS, LIQUIDATION_PRECISION,
    LIQUIDATION_THRESHOLD, MIN_HEALTH_FACTOR, PRECISION, STALENESS_TIMEOUT,
    ConfigurationError, InvalidPrice, StalePrice,
    calculate_health_factor,
)
from .health import HealthFactorEngine
from .ledgers import CollateralLedger, DebtLedger
from .liquidation import LiquidationEngine
from .operation import OperationGuard
from .oracle import PriceOracle
from .position import PositionEngine

logger = logging.getLogger(__name__)

Events = Tuple[Any, ...]


class DSCEngine:
    """
    Over-collateralized minting of a synthetic USD unit.

    Thread Safety:
        Mutating calls are serialized on an engine-wide lock, and ledger
        queries wait on the same lock. A mutating call made from inside an
        in-progress operation raises ReentrantCall.

    Example:
        engine = DSCEngine.from_pairs(["WETH"], [eth_feed], custody, dsc)
        engine.deposit_collateral("alice", "WETH", 10 * 10**18)
        engine.mint_dsc("alice", 5_000 * 10**18)
        engine.health_factor("alice")
    """

    def __init__(
        self,
        assets: Iterable[Asset],
        custody: CollateralCustody,
        debt_token: DebtToken,
        name: str = "main",
        holder: str = "dsc_engine",
        initial_time: Optional[datetime] = None,
        clock: Optional[Callable[[], datetime]] = None,
        staleness_timeout: timedelta = STALENESS_TIMEOUT,
    ):
        """
        Create an engine.

        Args:
            assets: Accepted collateral, in registration order (fixed for life)
            custody: Holds the collateral tokens
            debt_token: The synthetic debt unit
            name: Engine identifier (for logs)
            holder: Account under which custody holds the engine's collateral
            initial_time: Starting logical time (default: 1970-01-01)
            clock: Optional wall clock; overrides the logical clock when given
            staleness_timeout: Maximum usable age of a price quote

        Raises:
            ConfigurationError: If no asset is given, an asset id repeats, or
                custody or the debt token act for an account other than holder
        """
        assets = tuple(assets)
        if staleness_timeout <= timedelta(0):
            raise ConfigurationError(f"Staleness timeout must be positive, got {staleness_timeout}")
        for collaborator, declared in (
            (custody, getattr(custody, "engine_holder", holder)),
            (debt_token, getattr(debt_token, "owner", holder)),
        ):
            if declared != holder:
                raise ConfigurationError(
                    f"{collaborator!r} holds for '{declared}', but the engine holder is '{holder}'"
                )
        self.name = name
        self.holder = holder
        self._current_time: datetime = initial_time or datetime(1970, 1, 1)
        self._clock = clock
        self._custody = custody
        self._debt_token = debt_token
        self._listeners: List[EventListener] = []

        self._collateral = CollateralLedger(assets)
        self._debt = DebtLedger()
        self.oracle = PriceOracle({a.asset_id: a.feed for a in assets}, staleness_timeout)
        self.health = HealthFactorEngine(self._collateral, self._debt, self.oracle, self._now)
        self._guard = OperationGuard(self._collateral, self._debt, self._now, self._publish)
        self.positions = PositionEngine(
            self._collateral, self._debt, self.health, custody, debt_token, self._guard,
        )
        self.liquidations = LiquidationEngine(
            self._collateral, self.oracle, self.health, self.positions, self._guard,
        )
        logger.info(
            "Engine %s ready with collateral %s",
            name, ", ".join(repr(a) for a in assets),
        )

    @classmethod
    def from_pairs(
        cls,
        asset_ids: Sequence[AssetId],
        feeds: Sequence[PriceFeed],
        custody: CollateralCustody,
        debt_token: DebtToken,
        feed_ids: Optional[Sequence[str]] = None,
        **kwargs: Any,
    ) -> DSCEngine:
        """
        Build an engine from parallel lists of asset ids and their feeds.

        Raises:
            ConfigurationError: If the lists are empty or differ in length
                (feed_ids included, when given)
        """
        if len(asset_ids) != len(feeds):
            raise ConfigurationError(
                f"Assets and price feeds must be the same length: {len(asset_ids)} != {len(feeds)}"
            )
        if not asset_ids:
            raise ConfigurationError("At least one collateral asset must be registered")
        if feed_ids is not None and len(feed_ids) != len(asset_ids):
            raise ConfigurationError(
                f"Assets and feed ids must be the same length: {len(asset_ids)} != {len(feed_ids)}"
            )
        feed_ids = feed_ids or [None] * len(asset_ids)
        assets = [
            Asset(asset_id=a, feed=f, feed_id=fid)
            for a, f, fid in zip(asset_ids, feeds, feed_ids)
        ]
        return cls(assets, custody, debt_token, **kwargs)

    # ========================================================================
    # TIME
    # ========================================================================

    def _now(self) -> datetime:
        if self._clock is not None:
            return self._clock()
        return self._current_time

    @property
    def current_time(self) -> datetime:
        """Time used for staleness checks and event timestamps."""
        return self._now()

    def advance_time(self, new_time: datetime) -> None:
        """
        Move the logical clock forward.

        Raises:
            ValueError: If new_time is before the current time
        """
        if new_time < self._current_time:
            raise ValueError(
                f"Cannot move time backwards: {new_time} < {self._current_time}"
            )
        self._current_time = new_time

    # ========================================================================
    # EVENTS
    # ========================================================================

    def subscribe(self, listener: EventListener) -> None:
        """Call ``listener(event)`` for every event of every committed operation."""
        self._listeners.append(listener)

    def unsubscribe(self, listener: EventListener) -> None:
        self._listeners.remove(listener)

    def _publish(self, events: Events) -> None:
        for event in events:
            for listener in list(self._listeners):
                listener(event)

    # ========================================================================
    # MUTATING ENTRY POINTS
    # ========================================================================

    def deposit_collateral(self, user: UserId, asset: AssetId, amount: int) -> Events:
        return self.positions.deposit_collateral(user, asset, amount)

    def redeem_collateral(self, user: UserId, asset: AssetId, amount: int) -> Events:
        return self.positions.redeem_collateral(user, asset, amount)

    def mint_dsc(self, user: UserId, amount: int) -> Events:
        return self.positions.mint_dsc(user, amount)

    def burn_dsc(self, user: UserId, amount: int) -> Events:
        return self.positions.burn_dsc(user, amount)

    def deposit_collateral_and_mint_dsc(
        self, user: UserId, asset: AssetId, collateral_amount: int, dsc_amount: int,
    ) -> Events:
        return self.positions.deposit_collateral_and_mint_dsc(user, asset, collateral_amount, dsc_amount)

    def redeem_collateral_for_dsc(
        self, user: UserId, asset: AssetId, collateral_amount: int, dsc_amount: int,
    ) -> Events:
        return self.positions.redeem_collateral_for_dsc(user, asset, collateral_amount, dsc_amount)

    def liquidate(self, liquidator: UserId, asset: AssetId, user: UserId, debt_to_cover: int) -> Events:
        return self.liquidations.liquidate(liquidator, asset, user, debt_to_cover)

    # ========================================================================
    # QUERIES (read-only, EngineView)
    # ========================================================================

    def health_factor(self, user: UserId) -> int:
        with self._guard.reading():
            return self.health.health_factor(user)

    def collateral_value_usd(self, user: UserId) -> int:
        with self._guard.reading():
            return self.health.collateral_value_usd(user)

    def usd_value(self, asset: AssetId, amount: int) -> int:
        return self.oracle.get_usd_value(asset, amount, self._now())

    def asset_amount_from_usd(self, asset: AssetId, usd_amount: int) -> int:
        return self.oracle.get_asset_amount_from_usd(asset, usd_amount, self._now())

    def account_info(self, user: UserId) -> Tuple[int, int]:
        """Return (debt, collateral value in USD)."""
        with self._guard.reading():
            return self.health.account_info(user)

    def collateral_balance(self, user: UserId, asset: AssetId) -> int:
        with self._guard.reading():
            return self._collateral.balance_of(user, asset)

    def debt_of(self, user: UserId) -> int:
        with self._guard.reading():
            return self._debt.debt_of(user)

    def list_assets(self) -> Tuple[AssetId, ...]:
        return self._collateral.list_assets()

    def list_users(self) -> List[UserId]:
        """Every user that ever deposited or minted."""
        with self._guard.reading():
            return sorted(set(self._collateral.users()) | set(self._debt.users()))

    def total_debt(self) -> int:
        with self._guard.reading():
            return self._debt.total_debt()

    def total_collateral(self, asset: AssetId) -> int:
        with self._guard.reading():
            return self._collateral.total_deposited(asset)

    def get_price_feed(self, asset: AssetId) -> PriceFeed:
        return self._collateral.get_asset(asset).feed

    def get_debt_token(self) -> DebtToken:
        return self._debt_token

    @staticmethod
    def calculate_health_factor(total_debt: int, collateral_usd: int) -> int:
        return calculate_health_factor(total_debt, collateral_usd)

    @staticmethod
    def get_precision() -> int:
        return PRECISION

    @staticmethod
    def get_additional_feed_precision() -> int:
        return ADDITIONAL_FEED_PRECISION

    @staticmethod
    def get_liquidation_threshold() -> int:
        return LIQUIDATION_THRESHOLD

    @staticmethod
    def get_liquidation_bonus() -> int:
        return LIQUIDATION_BONUS

    @staticmethod
    def get_liquidation_precision() -> int:
        return LIQUIDATION_PRECISION

    @staticmethod
    def get_min_health_factor() -> int:
        return MIN_HEALTH_FACTOR

    # ========================================================================
    # SOLVENCY REPORT
    # ========================================================================

    def verify_solvency(self, expected_debt_supply: Optional[int] = None) -> Dict[str, Any]:
        """
        Check the invariants the engine's accounting relies on.

        1. For every asset, the sum of deposits never exceeds what custody
           actually holds for the engine.
        2. Every user with debt is at or above MIN_HEALTH_FACTOR (users whose
           collateral cannot be priced are listed separately).
        3. Optionally, the recorded total debt equals the debt token supply.

        Returns:
            Dict with keys:
            - 'valid': bool - True if no custody shortfall, no unhealthy user
              and no supply mismatch
            - 'custody': Dict[asset, {'deposited', 'custodied'}]
            - 'discrepancies': List of custody shortfalls and supply mismatches
            - 'unhealthy': Dict[user, health factor]
            - 'unpriced': Dict[user, error message]
            - 'total_debt': int

        Example:
            report = engine.verify_solvency(expected_debt_supply=dsc.total_supply())
            assert report['valid'], report['discrepancies']
        """
        with self._guard.reading():
            return self._solvency_report(expected_debt_supply)

    def _solvency_report(self, expected_debt_supply: Optional[int]) -> Dict[str, Any]:
        custody_report: Dict[AssetId, Dict[str, int]] = {}
        discrepancies: List[Dict[str, Any]] = []
        for asset in self.list_assets():
            deposited = self._collateral.total_deposited(asset)
            custodied = self._custody.balance_of(asset, self.holder)
            custody_report[asset] = {'deposited': deposited, 'custodied': custodied}
            if deposited > custodied:
                discrepancies.append({
                    'asset': asset,
                    'deposited': deposited,
                    'custodied': custodied,
                    'shortfall': deposited - custodied,
                })

        unhealthy: Dict[UserId, int] = {}
        unpriced: Dict[UserId, str] = {}
        for user in self._debt.users():
            if self._debt.debt_of(user) == 0:
                continue
            try:
                hf = self.health.health_factor(user)
            except (StalePrice, InvalidPrice) as e:
                unpriced[user] = str(e)
                continue
            if hf < MIN_HEALTH_FACTOR:
                unhealthy[user] = hf

        total_debt = self._debt.total_debt()
        if expected_debt_supply is not None and expected_debt_supply != total_debt:
            discrepancies.append({
                'unit': 'debt',
                'expected': expected_debt_supply,
                'actual': total_debt,
                'difference': abs(expected_debt_supply - total_debt),
            })

        return {
            'valid': not discrepancies and not unhealthy,
            'custody': custody_report,
            'discrepancies': discrepancies,
            'unhealthy': unhealthy,
            'unpriced': unpriced,
            'total_debt': total_debt,
        }

    def __repr__(self):
        return (
            f"DSCEngine({self.name}, assets={list(self.list_assets())}, "
            f"users={len(self.list_users())}, debt={self.total_debt()})"
        )
