"""
conftest.py - Shared pytest fixtures for engine tests

Provides common fixtures used across unit, conformance and functional tests:
- Price feeds for WETH ($2,000) and WBTC ($1,000), fresh at T0
- A token book with custody and debt-token collaborators
- An engine accepting WETH and WBTC
- A funding helper that gives a user collateral and approves the engine
"""

import pytest

from dsc import DSCEngine, InMemoryCustody, ManualPriceFeed, StableCoin, TokenBook

from tests.helpers import T0, ether, fund, usd_price


# =============================================================================
# COLLABORATORS
# =============================================================================

@pytest.fixture
def eth_feed():
    """WETH/USD at $2,000, updated at T0."""
    return ManualPriceFeed(usd_price(2_000), T0)


@pytest.fixture
def btc_feed():
    """WBTC/USD at $1,000, updated at T0."""
    return ManualPriceFeed(usd_price(1_000), T0)


@pytest.fixture
def book():
    return TokenBook()


@pytest.fixture
def custody(book):
    return InMemoryCustody(book)


@pytest.fixture
def dsc(book):
    return StableCoin(book)


# =============================================================================
# ENGINES
# =============================================================================

@pytest.fixture
def engine(eth_feed, btc_feed, custody, dsc):
    """Engine accepting WETH then WBTC, clock at T0."""
    return DSCEngine.from_pairs(
        ["WETH", "WBTC"],
        [eth_feed, btc_feed],
        custody,
        dsc,
        feed_ids=["ETH_USD", "BTC_USD"],
        initial_time=T0,
    )


@pytest.fixture
def funder(book, engine):
    """Callable funding a user's wallet with collateral the engine may pull."""
    def _fund(user, asset="WETH", amount=ether(10)):
        fund(book, engine.holder, user, asset, amount)
    return _fund


@pytest.fixture
def alice_at_limit(engine, funder):
    """alice: 10 WETH deposited, $10,000 minted (health factor exactly 1.0)."""
    funder("alice", "WETH", ether(10))
    engine.deposit_collateral_and_mint_dsc("alice", "WETH", ether(10), ether(10_000))
    return engine


@pytest.fixture
def events(engine):
    """List receiving every event the engine publishes."""
    received = []
    engine.subscribe(received.append)
    return received
