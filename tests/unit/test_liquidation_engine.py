"""
Tests for liquidation.py - forced repayment of unhealthy positions.

Setup shared by most tests: alice holds 10 WETH against 10,000 DSC of debt
(health factor exactly 1.0 at $2,000). bob, the liquidator, holds 20 WETH
against 10,000 DSC so he has tokens to repay with.
"""

import pytest
from datetime import timedelta

from dsc import (
    CollateralRedeemed, DscBurned, Liquidated,
    AssetNotAccepted, HealthFactorBroken, HealthFactorFine, HealthFactorNotImproved,
    InsufficientCollateral, InvalidAmount, StalePrice, TransferFailed,
    MAX_HEALTH_FACTOR, MIN_HEALTH_FACTOR,
)

from tests.helpers import T0, ether, snapshot_state, usd_price

USERS = ("alice", "bob")


def seized_for(debt_to_cover, dollars):
    """Collateral a liquidator receives for ``debt_to_cover`` at a whole-dollar price."""
    seized = debt_to_cover * 10**18 // (usd_price(dollars) * 10**10)
    return seized, seized * 10 // 100


@pytest.fixture
def market(alice_at_limit, funder, dsc):
    engine = alice_at_limit
    funder("bob", "WETH", ether(20))
    engine.deposit_collateral_and_mint_dsc("bob", "WETH", ether(20), ether(10_000))
    dsc.approve("bob", engine.holder, ether(10_000))
    return engine


class TestLiquidate:

    def test_partial_liquidation(self, market, eth_feed, book, dsc):
        eth_feed.update_answer(usd_price(1_800), T0)
        assert market.health_factor("alice") == 9 * 10**17

        events = market.liquidate("bob", "WETH", "alice", ether(5_000))

        seized, bonus = seized_for(ether(5_000), 1_800)
        remaining = ether(10) - seized - bonus
        assert market.collateral_balance("alice", "WETH") == remaining
        assert market.debt_of("alice") == ether(5_000)
        assert market.health_factor("alice") > 9 * 10**17
        assert market.health_factor("alice") // 10**16 == 125

        assert book.balance_of("bob", "WETH") == seized + bonus
        assert dsc.balance_of("bob") == ether(5_000)
        assert dsc.total_supply() == ether(15_000)
        assert market.total_debt() == ether(15_000)

        assert [type(e) for e in events] == [CollateralRedeemed, DscBurned, Liquidated]
        summary = events[-1]
        assert summary.collateral_seized == seized + bonus
        assert summary.bonus == bonus
        assert summary.starting_health_factor == 9 * 10**17
        assert summary.ending_health_factor == market.health_factor("alice")

    def test_full_liquidation(self, market, eth_feed, book):
        eth_feed.update_answer(usd_price(1_800), T0)

        market.liquidate("bob", "WETH", "alice", ether(10_000))

        seized, bonus = seized_for(ether(10_000), 1_800)
        assert market.debt_of("alice") == 0
        assert market.health_factor("alice") == MAX_HEALTH_FACTOR
        assert market.collateral_balance("alice", "WETH") == ether(10) - seized - bonus
        assert book.balance_of("bob", "WETH") == seized + bonus

    def test_healthy_user(self, market, book):
        before = snapshot_state(market, book, USERS)

        with pytest.raises(HealthFactorFine) as exc_info:
            market.liquidate("bob", "WETH", "alice", ether(1_000))

        assert exc_info.value.health_factor == MIN_HEALTH_FACTOR
        assert snapshot_state(market, book, USERS) == before

    def test_user_without_debt(self, market, funder):
        funder("carol")
        market.deposit_collateral("carol", "WETH", ether(10))
        with pytest.raises(HealthFactorFine):
            market.liquidate("bob", "WETH", "carol", ether(1))

    def test_not_enough_collateral_for_bonus(self, market, eth_feed, book):
        """At $1,000 covering the full debt needs 11 WETH; alice has 10."""
        eth_feed.update_answer(usd_price(1_000), T0)
        before = snapshot_state(market, book, USERS)

        with pytest.raises(InsufficientCollateral):
            market.liquidate("bob", "WETH", "alice", ether(10_000))

        assert snapshot_state(market, book, USERS) == before

    def test_health_factor_not_improved(self, market, eth_feed, book):
        """Under 110% collateralization, seizing the bonus makes things worse."""
        eth_feed.update_answer(usd_price(1_000), T0)
        before = snapshot_state(market, book, USERS)

        with pytest.raises(HealthFactorNotImproved) as exc_info:
            market.liquidate("bob", "WETH", "alice", ether(1_000))

        assert exc_info.value.starting == 5 * 10**17
        assert exc_info.value.ending < exc_info.value.starting
        assert snapshot_state(market, book, USERS) == before

    def test_liquidator_must_stay_healthy(self, alice_at_limit, funder, dsc, eth_feed, book):
        engine = alice_at_limit
        funder("bob", "WETH", ether(11))
        engine.deposit_collateral_and_mint_dsc("bob", "WETH", ether(11), ether(10_000))
        dsc.approve("bob", engine.holder, ether(5_000))
        eth_feed.update_answer(usd_price(1_800), T0)
        before = snapshot_state(engine, book, USERS)

        with pytest.raises(HealthFactorBroken) as exc_info:
            engine.liquidate("bob", "WETH", "alice", ether(5_000))

        assert exc_info.value.user == "bob"
        assert snapshot_state(engine, book, USERS) == before

    def test_liquidator_without_tokens(self, market, eth_feed, book):
        eth_feed.update_answer(usd_price(1_800), T0)
        before = snapshot_state(market, book, USERS + ("carol",))

        with pytest.raises(TransferFailed):
            market.liquidate("carol", "WETH", "alice", ether(1_000))

        assert snapshot_state(market, book, USERS + ("carol",)) == before

    def test_stale_price(self, market, book):
        market.advance_time(T0 + timedelta(hours=2))
        before = snapshot_state(market, book, USERS)

        with pytest.raises(StalePrice):
            market.liquidate("bob", "WETH", "alice", ether(1_000))

        assert snapshot_state(market, book, USERS) == before

    def test_invalid_amount(self, market):
        with pytest.raises(InvalidAmount):
            market.liquidate("bob", "WETH", "alice", 0)

    def test_unknown_asset(self, market):
        with pytest.raises(AssetNotAccepted):
            market.liquidate("bob", "DOGE", "alice", ether(1))

    def test_seizes_from_the_named_asset_only(self, market, funder, eth_feed, book):
        """alice also holds WBTC; liquidating against WETH leaves it alone."""
        funder("alice", "WBTC", ether(1))
        market.deposit_collateral("alice", "WBTC", ether(1))
        eth_feed.update_answer(usd_price(1_700), T0)
        assert market.health_factor("alice") < MIN_HEALTH_FACTOR

        market.liquidate("bob", "WETH", "alice", ether(5_000))

        assert market.collateral_balance("alice", "WBTC") == ether(1)
        assert book.balance_of("bob", "WBTC") == 0
