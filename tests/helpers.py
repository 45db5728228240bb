"""
helpers.py - Test doubles and unit helpers

Provides:
- ether / usd_price: fixed-point literals for amounts and feed prices
- fund: issue collateral to a wallet and approve the engine to pull it
- FlakyCustody / FlakyDebtToken: collaborators whose calls can be made to fail
- ReentrantCustody: custody that calls back into the engine mid-operation
"""

from __future__ import annotations
from datetime import datetime
from typing import Callable, Optional

from dsc import InMemoryCustody, StableCoin, TokenBook

# Time every fixture feed was last updated, and the engines' starting time.
T0 = datetime(2025, 1, 1)


def ether(amount) -> int:
    """18-decimal fixed point for a whole number of tokens or dollars."""
    return amount * 10**18


def usd_price(dollars: int) -> int:
    """8-decimal feed price for a whole-dollar amount."""
    return dollars * 10**8


def fund(book: TokenBook, holder: str, user: str, asset: str, amount: int) -> None:
    """Give ``user`` ``amount`` of ``asset`` and let ``holder`` pull all of it."""
    book.issue(asset, user, amount)
    book.approve(user, holder, asset, book.allowance(user, holder, asset) + amount)


def snapshot_state(engine, book: TokenBook, users, assets=("WETH", "WBTC")) -> dict:
    """Everything a failed operation must leave untouched."""
    return {
        "collateral": {(u, a): engine.collateral_balance(u, a) for u in users for a in assets},
        "debt": {u: engine.debt_of(u) for u in users},
        "wallets": {
            (h, t): book.balance_of(h, t)
            for h in list(users) + [engine.holder]
            for t in list(assets) + ["DSC"]
        },
    }


class FlakyCustody(InMemoryCustody):
    """InMemoryCustody whose transfers can be switched to report failure."""

    def __init__(self, book: TokenBook, engine_holder: str = "dsc_engine"):
        super().__init__(book, engine_holder)
        self.fail_transfer_in = False
        self.fail_transfer_out = False

    def transfer_in(self, asset, sender, amount):
        if self.fail_transfer_in:
            return False
        return super().transfer_in(asset, sender, amount)

    def transfer_out(self, asset, recipient, amount):
        if self.fail_transfer_out:
            return False
        return super().transfer_out(asset, recipient, amount)


class FlakyDebtToken(StableCoin):
    """StableCoin whose mint can be switched to report failure."""

    def __init__(self, book: TokenBook, owner: str = "dsc_engine"):
        super().__init__(book, owner)
        self.fail_mint = False

    def mint(self, recipient, amount):
        if self.fail_mint:
            return False
        return super().mint(recipient, amount)


class ReentrantCustody(InMemoryCustody):
    """Custody that invokes ``callback`` from inside transfer_in."""

    def __init__(self, book: TokenBook, engine_holder: str = "dsc_engine"):
        super().__init__(book, engine_holder)
        self.callback: Optional[Callable[[], None]] = None

    def transfer_in(self, asset, sender, amount):
        if self.callback is not None:
            self.callback()
        return super().transfer_in(asset, sender, amount)
