"""
Core types and pure functions for the collateralized debt engine.

This module provides the foundational pieces every other module builds on:
1. Constants: fixed-point precisions and protocol risk parameters
2. Exceptions: DSCError and the domain-specific rejection types
3. Immutable data structures: Asset, PriceQuote and the domain events
4. Protocols: EngineView for read-only access, and the external
   collaborators (PriceFeed, CollateralCustody, DebtToken)
5. Pure functions: health factor and price conversion math

All functions in this module are pure. None of them can mutate ledger state.

Fixed-point conventions:
    - Collateral and debt amounts are 18-decimal integers (1 token == 10**18)
    - Feed prices are 8-decimal integers ($2,000.00 == 200_000_000_000)
    - USD values and health factors are 18-decimal integers (1.0 == 10**18)
    - Every division truncates toward zero (operands are never negative)
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import (
    Any, Callable, Optional, Protocol, Tuple, runtime_checkable
)


# ============================================================================
# CONSTANTS
# ============================================================================

# Scale of collateral amounts, debt amounts, USD values and health factors.
PRECISION = 10**18

# Feeds quote USD prices with 8 decimals; this lifts them to 18.
FEED_DECIMALS = 8
ADDITIONAL_FEED_PRECISION = 10**10

# Debt may be at most 50% of collateral value (200% over-collateralization).
LIQUIDATION_THRESHOLD = 50
LIQUIDATION_PRECISION = 100

# Liquidators receive 10% extra collateral on top of the debt they cover.
LIQUIDATION_BONUS = 10

# Health factor 1.0; positions strictly below it can be liquidated.
MIN_HEALTH_FACTOR = 10**18

# Sentinel health factor for users without debt (largest uint256).
MAX_HEALTH_FACTOR = 2**256 - 1

# Maximum age of a price quote before it is unusable.
STALENESS_TIMEOUT = timedelta(hours=1)


# ============================================================================
# TYPE ALIASES
# ============================================================================

# Identifier of a user (or any account: liquidator, engine escrow, ...).
UserId = str

# Identifier of an accepted collateral asset (e.g. "WETH").
AssetId = str


# ============================================================================
# EXCEPTIONS
# ============================================================================

class DSCError(Exception):
    """Base exception for every rejection raised by the engine."""
    pass


class InvalidAmount(DSCError):
    """Raised when a zero, negative or non-integer quantity is supplied."""

    def __init__(self, amount: Any):
        self.amount = amount
        super().__init__(f"Amount must be a positive integer, got {amount!r}")


class AssetNotAccepted(DSCError):
    """Raised when an operation references an asset outside the registry."""

    def __init__(self, asset: AssetId):
        self.asset = asset
        super().__init__(f"Asset {asset!r} is not accepted as collateral")


class InsufficientCollateral(DSCError):
    """Raised when a withdrawal would take a collateral position below zero."""

    def __init__(self, user: UserId, asset: AssetId, requested: int, available: int):
        self.user = user
        self.asset = asset
        self.requested = requested
        self.available = available
        super().__init__(
            f"{user} holds {available} {asset}, cannot withdraw {requested}"
        )


class InsufficientDebt(DSCError):
    """Raised when a burn would take a debt position below zero."""

    def __init__(self, user: UserId, requested: int, outstanding: int):
        self.user = user
        self.requested = requested
        self.outstanding = outstanding
        super().__init__(
            f"{user} owes {outstanding}, cannot burn {requested}"
        )


class TransferFailed(DSCError):
    """Raised when a custody or debt-token transfer reports failure."""
    pass


class MintFailed(DSCError):
    """Raised when the debt token refuses to mint."""
    pass


class HealthFactorBroken(DSCError):
    """Raised when an operation would leave a user under-collateralized."""

    def __init__(self, health_factor: int, user: Optional[UserId] = None):
        self.health_factor = health_factor
        self.user = user
        who = f" for {user}" if user else ""
        super().__init__(f"Health factor broken{who}: {health_factor}")


class HealthFactorFine(DSCError):
    """Raised when liquidating a position that is not under-collateralized."""

    def __init__(self, health_factor: int):
        self.health_factor = health_factor
        super().__init__(f"Health factor is fine: {health_factor}")


class HealthFactorNotImproved(DSCError):
    """Raised when a liquidation fails to raise the target's health factor."""

    def __init__(self, starting: int, ending: int):
        self.starting = starting
        self.ending = ending
        super().__init__(f"Health factor not improved: {starting} -> {ending}")


class StalePrice(DSCError):
    """Raised when the latest quote for an asset is older than the timeout."""

    def __init__(self, asset: AssetId, age: Optional[timedelta]):
        self.asset = asset
        self.age = age
        detail = "never updated" if age is None else f"age {age}"
        super().__init__(f"Stale price for {asset}: {detail}")


class InvalidPrice(DSCError):
    """Raised when a feed reports a non-positive price."""

    def __init__(self, asset: AssetId, price: int):
        self.asset = asset
        self.price = price
        super().__init__(f"Invalid price for {asset}: {price}")


class ReentrantCall(DSCError):
    """Raised when an entry point is invoked from inside an in-progress operation."""

    def __init__(self, operation: str, active: str):
        self.operation = operation
        self.active = active
        super().__init__(f"{operation} called while {active} is in progress")


class ConfigurationError(DSCError, ValueError):
    """Raised when the asset registry or engine configuration is invalid."""
    pass


# ============================================================================
# CORE DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class PriceQuote:
    """
    A raw price observation from a feed.

    Attributes:
        price: USD price with FEED_DECIMALS decimals.
        updated_at: When the feed last updated, or None if it never did.
    """
    price: int
    updated_at: Optional[datetime]

    def age(self, now: datetime) -> Optional[timedelta]:
        """Return how old the quote is at ``now`` (None if never updated)."""
        if self.updated_at is None:
            return None
        return now - self.updated_at


@dataclass(frozen=True, slots=True)
class Asset:
    """
    An accepted collateral type and the feed that prices it.

    Attributes:
        asset_id: Identifier of the collateral token.
        feed: PriceFeed quoting the token in USD.
        feed_id: Optional name of the feed (for observers and logs).
    """
    asset_id: AssetId
    feed: 'PriceFeed'
    feed_id: Optional[str] = None

    def __post_init__(self):
        if not self.asset_id or not self.asset_id.strip():
            raise ConfigurationError("Asset id cannot be empty")
        if self.feed is None:
            raise ConfigurationError(f"Asset {self.asset_id} has no price feed")

    def __repr__(self) -> str:
        return f"Asset({self.asset_id}, feed={self.feed_id or type(self.feed).__name__})"


# ============================================================================
# DOMAIN EVENTS
# ============================================================================

@dataclass(frozen=True, slots=True)
class CollateralDeposited:
    user: UserId
    asset: AssetId
    amount: int
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class CollateralRedeemed:
    redeemed_from: UserId
    redeemed_to: UserId
    asset: AssetId
    amount: int
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class DscMinted:
    user: UserId
    amount: int
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class DscBurned:
    on_behalf_of: UserId
    dsc_from: UserId
    amount: int
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class Liquidated:
    """Summary of a completed liquidation."""
    liquidator: UserId
    user: UserId
    asset: AssetId
    debt_covered: int
    collateral_seized: int
    bonus: int
    starting_health_factor: int
    ending_health_factor: int
    timestamp: datetime


# Listener signature for engine.subscribe().
EventListener = Callable[[Any], None]


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class PriceFeed(Protocol):
    """Per-asset price source returning the latest USD quote."""

    def latest_quote(self) -> PriceQuote:
        ...


@runtime_checkable
class CollateralCustody(Protocol):
    """
    Holds the collateral tokens on behalf of the engine.

    Transfers return False on failure; the engine turns that into
    TransferFailed and rolls the operation back.
    """

    def transfer_in(self, asset: AssetId, sender: UserId, amount: int) -> bool:
        ...

    def transfer_out(self, asset: AssetId, recipient: UserId, amount: int) -> bool:
        ...

    def balance_of(self, asset: AssetId, holder: UserId) -> int:
        ...


@runtime_checkable
class DebtToken(Protocol):
    """The synthetic debt unit the engine mints and burns."""

    def mint(self, recipient: UserId, amount: int) -> bool:
        ...

    def transfer_in(self, sender: UserId, amount: int) -> bool:
        ...

    def transfer_out(self, recipient: UserId, amount: int) -> bool:
        ...

    def burn(self, amount: int) -> None:
        ...


@runtime_checkable
class EngineView(Protocol):
    """
    Read-only interface to engine state.

    Functions accepting an EngineView declare that they only query
    positions and never mutate them.
    """

    @property
    def current_time(self) -> datetime:
        ...

    def list_assets(self) -> Tuple[AssetId, ...]:
        ...

    def collateral_balance(self, user: UserId, asset: AssetId) -> int:
        ...

    def debt_of(self, user: UserId) -> int:
        ...


# ============================================================================
# PURE FUNCTIONS
# ============================================================================

def require_positive_amount(amount: Any) -> int:
    """Return ``amount`` if it is a positive int, else raise InvalidAmount."""
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise InvalidAmount(amount)
    return amount


def usd_value_from_price(price: int, amount: int) -> int:
    """
    Value ``amount`` (18 decimals) of an asset priced at ``price`` (8 decimals).

    Returns an 18-decimal USD value, truncated.
    """
    return (price * ADDITIONAL_FEED_PRECISION * amount) // PRECISION


def asset_amount_from_price(price: int, usd_amount: int) -> int:
    """
    Convert an 18-decimal USD amount into an 18-decimal asset amount.

    Inverse of usd_value_from_price, truncated the same way, so
    amount_from(value_of(x)) <= x and both directions are monotonic.
    """
    return (usd_amount * PRECISION) // (price * ADDITIONAL_FEED_PRECISION)


def calculate_health_factor(total_debt: int, collateral_usd: int) -> int:
    """
    Ratio of threshold-adjusted collateral value to debt (18 decimals).

    A user without debt gets MAX_HEALTH_FACTOR.

    Example:
        $20,000 collateral against $10,000 debt:
        20_000e18 * 50 / 100 * 1e18 / 10_000e18 == 1e18  (exactly at the limit)
    """
    if total_debt == 0:
        return MAX_HEALTH_FACTOR
    adjusted = (collateral_usd * LIQUIDATION_THRESHOLD) // LIQUIDATION_PRECISION
    return (adjusted * PRECISION) // total_debt


def liquidation_bonus(seized_amount: int) -> int:
    """Bonus collateral awarded on top of ``seized_amount``."""
    return (seized_amount * LIQUIDATION_BONUS) // LIQUIDATION_PRECISION
