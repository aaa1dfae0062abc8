"""
unit_of_work.py - All-or-nothing execution of engine operations

An operation mutates the ledgers directly but only *stages* its external
effects (token pulls, pushes, mints and burns). Once every check has passed
the staged effects run in order. If one reports failure or raises, the
effects already executed are reversed and the caller rolls the ledgers back.

Execution order:
1. Open undo journals on the collateral and debt ledgers
2. Operation body: ledger mutations, staged effects, health checks
3. commit(): execute effects in staging order, close the journals
4. On any failure: compensate executed effects in reverse, rollback()

The journals record only the (user, asset) and debtor keys the operation
writes, so rollback cost does not grow with the number of accounts.

Pulls and burns are the only reversible effects. A reversed pull also hands
back the allowance it consumed. Every operation stages its mint or push last,
so a later effect never fails after one of those ran.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import List, Type, Union
import logging

from .core import (
    CollateralToken, DebtToken,
    DepositEvent, RedemptionEvent,
    EngineError, TransferFailed, RedeemFailed, MintFailed, CompensationFailed,
)
from .ledger import CollateralLedger, DebtLedger

logger = logging.getLogger(__name__)

# Effect kinds
EFFECT_PULL = "PULL"    # counterparty -> custody
EFFECT_PUSH = "PUSH"    # custody -> counterparty
EFFECT_MINT = "MINT"    # new debt token -> counterparty
EFFECT_BURN = "BURN"    # destroy debt token held in custody

Event = Union[DepositEvent, RedemptionEvent]


@dataclass(frozen=True, slots=True)
class Effect:
    """
    A staged call to an external token collaborator.

    Attributes:
        kind: One of EFFECT_PULL, EFFECT_PUSH, EFFECT_MINT, EFFECT_BURN
        token: Collaborator to call
        counterparty: The other side of the transfer (ignored for burns)
        amount: Amount in the token's native units
        failure: Exception raised when the collaborator returns False
    """
    kind: str
    token: CollateralToken
    counterparty: str
    amount: int
    failure: Type[EngineError]

    def __repr__(self) -> str:
        return f"Effect({self.kind} {self.amount} {self.token.address} {self.counterparty})"


class UnitOfWork:
    """
    Staging area for a single engine operation.

    Not reusable: create one per operation, commit it at most once.
    """

    def __init__(self, operation: str, custody: str, collateral: CollateralLedger, debt: DebtLedger):
        """
        Args:
            operation: Name of the operation, for logs and errors
            custody: Address holding collateral and debt tokens for the engine
            collateral: Ledger to journal
            debt: Ledger to journal

        Raises:
            EngineError: If either ledger already has an open journal
        """
        self.operation = operation
        self.custody = custody
        self.collateral = collateral
        self.debt = debt
        collateral.begin_journal()
        try:
            debt.begin_journal()
        except EngineError:
            collateral.close_journal()
            raise
        self.effects: List[Effect] = []
        self.events: List[Event] = []
        self.committed = False

    # ========================================================================
    # STAGING
    # ========================================================================

    def pull(self, token: CollateralToken, sender: str, amount: int) -> None:
        self._stage(Effect(EFFECT_PULL, token, sender, amount, TransferFailed))

    def push(self, token: CollateralToken, recipient: str, amount: int) -> None:
        self._stage(Effect(EFFECT_PUSH, token, recipient, amount, RedeemFailed))

    def mint(self, token: DebtToken, recipient: str, amount: int) -> None:
        self._stage(Effect(EFFECT_MINT, token, recipient, amount, MintFailed))

    def burn(self, token: DebtToken, amount: int) -> None:
        self._stage(Effect(EFFECT_BURN, token, self.custody, amount, TransferFailed))

    def emit(self, event: Event) -> None:
        """Queue an event; it is published only if the operation commits."""
        self.events.append(event)

    def _stage(self, effect: Effect) -> None:
        logger.debug("%s: staged %r", self.operation, effect)
        self.effects.append(effect)

    # ========================================================================
    # COMMIT
    # ========================================================================

    def commit(self) -> None:
        """
        Execute staged effects in order.

        Raises:
            TransferFailed, RedeemFailed, MintFailed: If a collaborator returns False
            CompensationFailed: If an executed effect could not be reversed
            Any exception raised by a collaborator, after compensation
        """
        if self.committed:
            raise EngineError(f"{self.operation}: unit of work already committed")
        executed: List[Effect] = []
        for effect in self.effects:
            try:
                ok = self._apply(effect)
            except Exception:
                self._compensate(executed)
                raise
            if not ok:
                self._compensate(executed)
                raise effect.failure(
                    f"{self.operation}: {effect.kind.lower()} of {effect.amount} "
                    f"{effect.token.address} ({effect.counterparty}) reported failure"
                )
            executed.append(effect)
        self.committed = True
        self.collateral.close_journal()
        self.debt.close_journal()

    def rollback(self) -> None:
        """Restore every ledger key written since the unit of work opened."""
        self.collateral.rollback_journal()
        self.debt.rollback_journal()

    def _apply(self, effect: Effect) -> bool:
        token = effect.token
        if effect.kind == EFFECT_PULL:
            return bool(token.transfer_from(effect.counterparty, self.custody, effect.amount))
        if effect.kind == EFFECT_PUSH:
            return bool(token.transfer(self.custody, effect.counterparty, effect.amount))
        if effect.kind == EFFECT_MINT:
            return bool(token.mint(effect.counterparty, effect.amount))
        if effect.kind == EFFECT_BURN:
            token.burn(self.custody, effect.amount)
            return True
        raise ValueError(f"Unknown effect kind {effect.kind}")

    def _compensate(self, executed: List[Effect]) -> None:
        """Reverse executed effects, newest first."""
        for effect in reversed(executed):
            token = effect.token
            if effect.kind == EFFECT_PULL:
                ok = (token.transfer(self.custody, effect.counterparty, effect.amount)
                      and token.increase_allowance(effect.counterparty, self.custody, effect.amount))
            elif effect.kind == EFFECT_BURN:
                ok = token.mint(self.custody, effect.amount)
            else:
                ok = False
            if not ok:
                logger.critical("%s: could not reverse %r", self.operation, effect)
                raise CompensationFailed(f"{self.operation}: could not reverse {effect!r}")
            logger.debug("%s: reversed %r", self.operation, effect)
