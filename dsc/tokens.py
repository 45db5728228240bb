"""
tokens.py - In-memory token balances for the custody and debt-token collaborators

The engine never moves tokens itself. These reference collaborators let it
run end to end without a chain:

    - TokenBook: double-entry balances per (holder, token) with allowances
      and an append-only transfer log
    - InMemoryCustody: collateral custody over a TokenBook
    - StableCoin: the debt token over a TokenBook, mintable only by its owner

Issuance and destruction go through SYSTEM_WALLET, which is exempt from the
non-negative balance rule; the supply of a token is therefore exactly what
the system wallet has paid out. Failed transfers return False and change
nothing.
"""

from __future__ import annotations
import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, List, Tuple

from .core import AssetId, UserId

logger = logging.getLogger(__name__)

# Reserved wallet for issuance and destruction of tokens.
SYSTEM_WALLET = "system"


@dataclass(frozen=True, slots=True)
class TokenTransfer:
    """A single applied movement of tokens between two holders."""
    token: str
    source: str
    dest: str
    amount: int
    memo: str = ""

    def __post_init__(self):
        if not self.source or not self.dest:
            raise ValueError("Transfer source and dest cannot be empty")
        if self.source == self.dest:
            raise ValueError("Source and dest must be different")

    def __repr__(self) -> str:
        return f"TokenTransfer({self.amount} {self.token}: {self.source}→{self.dest})"


class TokenBook:
    """
    Token balances with allowances.

    Example:
        book = TokenBook()
        book.issue("WETH", "alice", 10 * 10**18)
        book.approve("alice", "dsc_engine", "WETH", 10 * 10**18)
        book.transfer_from("dsc_engine", "WETH", "alice", "dsc_engine", 10**18)
    """

    def __init__(self):
        self.balances: Dict[str, Dict[str, int]] = defaultdict(lambda: defaultdict(int))
        self.allowances: Dict[Tuple[str, str, str], int] = {}
        self.transfer_log: List[TokenTransfer] = []

    def balance_of(self, holder: str, token: str) -> int:
        holder_balances = self.balances.get(holder)
        if holder_balances is None:
            return 0
        return holder_balances.get(token, 0)

    def total_supply(self, token: str) -> int:
        """Sum of all non-system balances of ``token``."""
        return sum(
            bals.get(token, 0)
            for holder, bals in sorted(self.balances.items())
            if holder != SYSTEM_WALLET
        )

    def allowance(self, owner: str, spender: str, token: str) -> int:
        return self.allowances.get((owner, spender, token), 0)

    def approve(self, owner: str, spender: str, token: str, amount: int) -> None:
        """Set how much of ``token`` ``spender`` may move out of ``owner``'s balance."""
        if amount < 0:
            raise ValueError(f"Allowance cannot be negative, got {amount}")
        self.allowances[(owner, spender, token)] = amount

    def transfer(self, token: str, source: str, dest: str, amount: int, memo: str = "") -> bool:
        """
        Move ``amount`` of ``token`` from ``source`` to ``dest``.

        Returns False (and changes nothing) if the amount is not positive,
        the endpoints are invalid, or a non-system source would go negative.
        """
        if amount <= 0 or not source or not dest or source == dest:
            return False
        if source != SYSTEM_WALLET and self.balance_of(source, token) < amount:
            logger.debug("Refused %s %s transfer from %s: insufficient balance", amount, token, source)
            return False
        self.balances[source][token] -= amount
        self.balances[dest][token] += amount
        self.transfer_log.append(TokenTransfer(token, source, dest, amount, memo))
        return True

    def transfer_from(self, spender: str, token: str, source: str, dest: str, amount: int) -> bool:
        """Move tokens out of ``source`` on its behalf, consuming allowance."""
        allowed = self.allowance(source, spender, token)
        if allowed < amount:
            logger.debug("Refused %s %s pull by %s from %s: allowance %s", amount, token, spender, source, allowed)
            return False
        if not self.transfer(token, source, dest, amount, memo=f"by {spender}"):
            return False
        self.allowances[(source, spender, token)] = allowed - amount
        return True

    def issue(self, token: str, recipient: str, amount: int) -> bool:
        """Create new tokens (e.g. to fund test wallets with collateral)."""
        return self.transfer(token, SYSTEM_WALLET, recipient, amount, memo="issue")

    def destroy(self, token: str, holder: str, amount: int) -> bool:
        return self.transfer(token, holder, SYSTEM_WALLET, amount, memo="destroy")

    def __repr__(self):
        return f"TokenBook({len(self.balances)} holders, {len(self.transfer_log)} transfers)"


class InMemoryCustody:
    """
    Collateral custody: the engine's holdings live under ``engine_holder``.

    transfer_in pulls from a user who approved engine_holder beforehand;
    transfer_out pays from engine_holder's balance.
    """

    def __init__(self, book: TokenBook, engine_holder: str = "dsc_engine"):
        self.book = book
        self.engine_holder = engine_holder

    def transfer_in(self, asset: AssetId, sender: UserId, amount: int) -> bool:
        return self.book.transfer_from(self.engine_holder, asset, sender, self.engine_holder, amount)

    def transfer_out(self, asset: AssetId, recipient: UserId, amount: int) -> bool:
        return self.book.transfer(asset, self.engine_holder, recipient, amount)

    def balance_of(self, asset: AssetId, holder: UserId) -> int:
        return self.book.balance_of(holder, asset)

    def __repr__(self):
        return f"InMemoryCustody(holder={self.engine_holder})"


class StableCoin:
    """
    The synthetic debt unit.

    Only the owner (the engine's holder address) mints, pulls and burns;
    burning destroys tokens already escrowed with the owner.
    """

    def __init__(self, book: TokenBook, owner: str = "dsc_engine", symbol: str = "DSC"):
        self.book = book
        self.owner = owner
        self.symbol = symbol

    def mint(self, recipient: UserId, amount: int) -> bool:
        if not recipient or amount <= 0:
            return False
        return self.book.issue(self.symbol, recipient, amount)

    def transfer_in(self, sender: UserId, amount: int) -> bool:
        return self.book.transfer_from(self.owner, self.symbol, sender, self.owner, amount)

    def transfer_out(self, recipient: UserId, amount: int) -> bool:
        return self.book.transfer(self.symbol, self.owner, recipient, amount)

    def burn(self, amount: int) -> None:
        """
        Destroy ``amount`` of the owner's escrowed tokens.

        Raises:
            ValueError: If amount is not positive or exceeds the escrow
        """
        if amount <= 0:
            raise ValueError(f"Burn amount must be positive, got {amount}")
        escrow = self.book.balance_of(self.owner, self.symbol)
        if escrow < amount:
            raise ValueError(f"Burn amount {amount} exceeds escrow {escrow}")
        self.book.destroy(self.symbol, self.owner, amount)

    def balance_of(self, holder: UserId) -> int:
        return self.book.balance_of(holder, self.symbol)

    def approve(self, owner: UserId, spender: str, amount: int) -> None:
        self.book.approve(owner, spender, self.symbol, amount)

    def total_supply(self) -> int:
        return self.book.total_supply(self.symbol)

    def __repr__(self):
        return f"StableCoin({self.symbol}, owner={self.owner}, supply={self.total_supply()})"
