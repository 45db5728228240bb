"""
position.py - Deposit, mint, burn and redeem state transitions

PositionEngine is one of the two components allowed to mutate the ledgers
(the other is LiquidationEngine, which reuses the primitives below).

Each public method is one atomic operation. Inside it the steps run in a
fixed order:
    1. Effects on the ledgers
    2. Health-factor checks
    3. External interactions, with the single interaction that cannot be
       undone (pushing collateral out, minting debt tokens) always last

Every interaction that can be undone registers a compensation, so a failure
anywhere leaves ledgers and collaborators exactly as they were.
"""

from __future__ import annotations
import logging
from typing import Any, Tuple

from .core import (
    AssetId, CollateralCustody, DebtToken, UserId,
    CollateralDeposited, CollateralRedeemed, DscBurned, DscMinted,
    InsufficientDebt, MintFailed, TransferFailed,
    require_positive_amount,
)
from .health import HealthFactorEngine
from .ledgers import CollateralLedger, DebtLedger
from .operation import Operation, OperationGuard

logger = logging.getLogger(__name__)

Events = Tuple[Any, ...]


class PositionEngine:
    """
    User-facing position management.

    Args:
        collateral: Collateral ledger (mutated)
        debt: Debt ledger (mutated)
        health: Health-factor gate
        custody: Collateral custody collaborator
        debt_token: Debt-token collaborator
        guard: Operation guard shared with LiquidationEngine
    """

    def __init__(
        self,
        collateral: CollateralLedger,
        debt: DebtLedger,
        health: HealthFactorEngine,
        custody: CollateralCustody,
        debt_token: DebtToken,
        guard: OperationGuard,
    ):
        self._collateral = collateral
        self._debt = debt
        self._health = health
        self._custody = custody
        self._debt_token = debt_token
        self._guard = guard

    # ========================================================================
    # PRIMITIVES (run inside an Operation)
    # ========================================================================

    def apply_deposit(self, op: Operation, user: UserId, asset: AssetId, amount: int) -> None:
        """Credit the ledger, then pull the collateral from the user."""
        require_positive_amount(amount)
        self._collateral.get_asset(asset)
        self._collateral.deposit(user, asset, amount)
        op.emit(CollateralDeposited(user, asset, amount, op.timestamp))

        if not self._custody.transfer_in(asset, user, amount):
            raise TransferFailed(f"Could not pull {amount} {asset} from {user}")
        op.compensate_with(
            f"return {amount} {asset} to {user}",
            lambda: self._custody.transfer_out(asset, user, amount),
        )

    def apply_redeem(
        self,
        op: Operation,
        asset: AssetId,
        amount: int,
        redeemed_from: UserId,
        redeemed_to: UserId,
    ) -> None:
        """Debit the ledger. The collateral leaves custody in push_collateral()."""
        self._collateral.withdraw(redeemed_from, asset, amount)
        op.emit(CollateralRedeemed(redeemed_from, redeemed_to, asset, amount, op.timestamp))

    def push_collateral(self, op: Operation, asset: AssetId, recipient: UserId, amount: int) -> None:
        """Send collateral out of custody. Must be the operation's last interaction."""
        if not self._custody.transfer_out(asset, recipient, amount):
            raise TransferFailed(f"Could not send {amount} {asset} to {recipient}")

    def apply_mint(self, op: Operation, user: UserId, amount: int) -> None:
        """Record new debt. The tokens are minted in deliver_minted()."""
        self._debt.mint(user, amount)
        op.emit(DscMinted(user, amount, op.timestamp))

    def deliver_minted(self, op: Operation, user: UserId, amount: int) -> None:
        """Mint the debt tokens. Must be the operation's last interaction."""
        if not self._debt_token.mint(user, amount):
            raise MintFailed(f"Debt token refused to mint {amount} to {user}")

    def apply_burn(self, op: Operation, amount: int, on_behalf_of: UserId, dsc_from: UserId) -> None:
        """
        Pull ``amount`` debt tokens from ``dsc_from`` and cancel that much of
        ``on_behalf_of``'s debt. The escrowed tokens are burned at commit.

        Raises:
            InsufficientDebt: Before any token moves, if the debt is too small
            TransferFailed: If the tokens cannot be pulled
        """
        require_positive_amount(amount)
        outstanding = self._debt.debt_of(on_behalf_of)
        if outstanding < amount:
            raise InsufficientDebt(on_behalf_of, amount, outstanding)

        if not self._debt_token.transfer_in(dsc_from, amount):
            raise TransferFailed(f"Could not pull {amount} debt tokens from {dsc_from}")
        op.compensate_with(
            f"return {amount} debt tokens to {dsc_from}",
            lambda: self._debt_token.transfer_out(dsc_from, amount),
        )

        self._debt.burn(on_behalf_of, amount)
        op.on_commit(lambda: self._debt_token.burn(amount))
        op.emit(DscBurned(on_behalf_of, dsc_from, amount, op.timestamp))

    # ========================================================================
    # ENTRY POINTS
    # ========================================================================

    def deposit_collateral(self, user: UserId, asset: AssetId, amount: int) -> Events:
        """
        Lock ``amount`` of ``asset`` as the user's collateral.

        Deposits can only raise the health factor, so they are not gated on
        it. That lets an under-collateralized user rescue their position
        and keeps deposits open while a feed is stale.
        """
        with self._guard.operation("deposit_collateral") as op:
            self.apply_deposit(op, user, asset, amount)
        logger.info("%s deposited %s %s", user, amount, asset)
        return tuple(op.events)

    def redeem_collateral(self, user: UserId, asset: AssetId, amount: int) -> Events:
        """
        Withdraw collateral back to the user.

        Raises:
            InsufficientCollateral: If the user holds less than amount
            HealthFactorBroken: If the remaining collateral no longer covers the debt
        """
        require_positive_amount(amount)
        with self._guard.operation("redeem_collateral") as op:
            self.apply_redeem(op, asset, amount, user, user)
            self._health.assert_healthy(user)
            self.push_collateral(op, asset, user, amount)
        logger.info("%s redeemed %s %s", user, amount, asset)
        return tuple(op.events)

    def mint_dsc(self, user: UserId, amount: int) -> Events:
        """
        Borrow ``amount`` of the debt token against the user's collateral.

        Raises:
            HealthFactorBroken: If the new debt is not covered
            MintFailed: If the debt token refuses to mint
        """
        require_positive_amount(amount)
        with self._guard.operation("mint_dsc") as op:
            self.apply_mint(op, user, amount)
            self._health.assert_healthy(user)
            self.deliver_minted(op, user, amount)
        logger.info("%s minted %s", user, amount)
        return tuple(op.events)

    def burn_dsc(self, user: UserId, amount: int) -> Events:
        """
        Repay ``amount`` of the user's debt with tokens the user holds.

        Raises:
            InsufficientDebt: If the user owes less than amount
            TransferFailed: If the tokens cannot be pulled from the user
        """
        with self._guard.operation("burn_dsc") as op:
            self.apply_burn(op, amount, user, user)
        logger.info("%s burned %s", user, amount)
        return tuple(op.events)

    def deposit_collateral_and_mint_dsc(
        self,
        user: UserId,
        asset: AssetId,
        collateral_amount: int,
        dsc_amount: int,
    ) -> Events:
        """Deposit then mint in one operation; a failed mint returns the collateral."""
        require_positive_amount(collateral_amount)
        require_positive_amount(dsc_amount)
        with self._guard.operation("deposit_collateral_and_mint_dsc") as op:
            self.apply_deposit(op, user, asset, collateral_amount)
            self.apply_mint(op, user, dsc_amount)
            self._health.assert_healthy(user)
            self.deliver_minted(op, user, dsc_amount)
        logger.info("%s deposited %s %s and minted %s", user, collateral_amount, asset, dsc_amount)
        return tuple(op.events)

    def redeem_collateral_for_dsc(
        self,
        user: UserId,
        asset: AssetId,
        collateral_amount: int,
        dsc_amount: int,
    ) -> Events:
        """Burn then redeem in one operation; a failed redeem returns the tokens."""
        require_positive_amount(collateral_amount)
        require_positive_amount(dsc_amount)
        with self._guard.operation("redeem_collateral_for_dsc") as op:
            self.apply_burn(op, dsc_amount, user, user)
            self.apply_redeem(op, asset, collateral_amount, user, user)
            self._health.assert_healthy(user)
            self.push_collateral(op, asset, user, collateral_amount)
        logger.info("%s burned %s and redeemed %s %s", user, dsc_amount, collateral_amount, asset)
        return tuple(op.events)
