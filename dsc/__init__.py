"""
dsc - Collateralized Debt Engine

Lock collateral, mint a synthetic USD unit against it, and keep every
position at least 200% collateralized. Positions that fall below that can be
liquidated by anyone for a 10% collateral bonus.

Usage:
    from datetime import datetime
    from dsc import DSCEngine, ManualPriceFeed, TokenBook, InMemoryCustody, StableCoin

    t0 = datetime(2025, 1, 1)
    book = TokenBook()
    engine = DSCEngine.from_pairs(
        ["WETH"], [ManualPriceFeed(2_000 * 10**8, t0)],
        InMemoryCustody(book), StableCoin(book), initial_time=t0,
    )

    book.issue("WETH", "alice", 10 * 10**18)
    book.approve("alice", engine.holder, "WETH", 10 * 10**18)
    engine.deposit_collateral_and_mint_dsc("alice", "WETH", 10 * 10**18, 10_000 * 10**18)
    engine.health_factor("alice")  # 10**18
"""

# Core types
from .core import (
    Asset,
    PriceQuote,
    EngineView,
    PriceFeed,
    CollateralCustody,
    DebtToken,
    CollateralDeposited,
    CollateralRedeemed,
    DscMinted,
    DscBurned,
    Liquidated,
    DSCError,
    InvalidAmount,
    AssetNotAccepted,
    InsufficientCollateral,
    InsufficientDebt,
    TransferFailed,
    MintFailed,
    HealthFactorBroken,
    HealthFactorFine,
    HealthFactorNotImproved,
    StalePrice,
    InvalidPrice,
    ReentrantCall,
    ConfigurationError,
    calculate_health_factor,
    usd_value_from_price,
    asset_amount_from_price,
    liquidation_bonus,
    PRECISION,
    FEED_DECIMALS,
    ADDITIONAL_FEED_PRECISION,
    LIQUIDATION_THRESHOLD,
    LIQUIDATION_BONUS,
    LIQUIDATION_PRECISION,
    MIN_HEALTH_FACTOR,
    MAX_HEALTH_FACTOR,
    STALENESS_TIMEOUT,
)

# Pricing
from .oracle import (
    PriceOracle,
    ManualPriceFeed,
    HistoricalPriceFeed,
)

# State and components
from .ledgers import CollateralLedger, DebtLedger
from .health import HealthFactorEngine
from .operation import Operation, OperationGuard
from .position import PositionEngine
from .liquidation import LiquidationEngine
from .engine import DSCEngine

# Reference collaborators
from .tokens import (
    TokenBook,
    TokenTransfer,
    InMemoryCustody,
    StableCoin,
    SYSTEM_WALLET,
)

# Configuration
from .config import (
    AppConfig,
    EngineConfig,
    CollateralConfig,
    load_config,
    parse_config,
    build_engine,
)

__all__ = [
    "Asset", "PriceQuote", "EngineView", "PriceFeed", "CollateralCustody", "DebtToken",
    "CollateralDeposited", "CollateralRedeemed", "DscMinted", "DscBurned", "Liquidated",
    "DSCError", "InvalidAmount", "AssetNotAccepted", "InsufficientCollateral",
    "InsufficientDebt", "TransferFailed", "MintFailed", "HealthFactorBroken",
    "HealthFactorFine", "HealthFactorNotImproved", "StalePrice", "InvalidPrice",
    "ReentrantCall", "ConfigurationError",
    "calculate_health_factor", "usd_value_from_price", "asset_amount_from_price",
    "liquidation_bonus",
    "PRECISION", "FEED_DECIMALS", "ADDITIONAL_FEED_PRECISION", "LIQUIDATION_THRESHOLD",
    "LIQUIDATION_BONUS", "LIQUIDATION_PRECISION", "MIN_HEALTH_FACTOR", "MAX_HEALTH_FACTOR",
    "STALENESS_TIMEOUT",
    "PriceOracle", "ManualPriceFeed", "HistoricalPriceFeed",
    "CollateralLedger", "DebtLedger", "HealthFactorEngine", "Operation", "OperationGuard",
    "PositionEngine", "LiquidationEngine", "DSCEngine",
    "TokenBook", "TokenTransfer", "InMemoryCustody", "StableCoin", "SYSTEM_WALLET",
    "AppConfig", "EngineConfig", "CollateralConfig", "load_config", "parse_config", "build_engine",
]
