"""
ledger.py - Collateral and Debt Ledgers

Plain bookkeeping for the engine. Neither ledger knows about prices, tokens
or health factors; PositionEngine composes them into checked state
transitions.

Key responsibilities:
    - CollateralLedger: user x asset -> amount, with an inverted per-asset index
    - DebtLedger: user -> outstanding debt
    - Hard failure on underflow (never clamped)
    - Undo journals recording only the keys an operation touches
"""

from __future__ import annotations
from collections import defaultdict
from typing import Dict, List, Optional, Set, Tuple

from .core import (
    BalanceMap, Positions,
    EngineError, InsufficientCollateral, InsufficientDebt,
)


class CollateralLedger:
    """
    Per-user, per-asset deposited balances.

    Balances are non-negative integers in each asset's native scale. Zero
    balances are pruned, so a user who withdrew everything looks exactly like
    one who never deposited.

    Not thread-safe; owned by a single engine.
    """

    def __init__(self):
        self.balances: Dict[str, Dict[str, int]] = {}
        # Inverted index asset -> {user -> amount} for custody totals
        self._positions_by_asset: Dict[str, Dict[str, int]] = defaultdict(dict)
        # (user, asset) -> balance before the first write of the open operation
        self._journal: Optional[Dict[Tuple[str, str], int]] = None

    def get_balance(self, user: str, asset: str) -> int:
        """Return user's deposited amount of asset (0 if none)."""
        return self.balances.get(user, {}).get(asset, 0)

    def get_balances(self, user: str) -> BalanceMap:
        """Return a copy of all non-zero balances for user."""
        return dict(self.balances.get(user, {}))

    def get_positions(self, asset: str) -> Positions:
        """Return all non-zero deposits of asset, keyed by user."""
        return dict(self._positions_by_asset.get(asset, {}))

    def total_held(self, asset: str) -> int:
        """
        Total amount of asset deposited across all users.

        Users are sorted before summation for deterministic ordering.
        """
        positions = self._positions_by_asset.get(asset, {})
        return sum(positions[u] for u in sorted(positions))

    def list_users(self) -> Set[str]:
        """Users with at least one non-zero deposit."""
        return {u for u, bals in self.balances.items() if bals}

    def credit(self, user: str, asset: str, amount: int) -> int:
        """
        Add amount to user's balance of asset.

        Returns:
            The new balance
        """
        new_balance = self.get_balance(user, asset) + amount
        self._set(user, asset, new_balance)
        return new_balance

    def debit(self, user: str, asset: str, amount: int) -> int:
        """
        Subtract amount from user's balance of asset.

        Returns:
            The new balance

        Raises:
            InsufficientCollateral: If the balance is smaller than amount
        """
        current = self.get_balance(user, asset)
        if amount > current:
            raise InsufficientCollateral(
                f"{user} {asset}: cannot withdraw {amount}, balance {current}"
            )
        new_balance = current - amount
        self._set(user, asset, new_balance)
        return new_balance

    # ========================================================================
    # UNDO JOURNAL
    # ========================================================================

    def begin_journal(self) -> None:
        """
        Start recording the prior value of every (user, asset) written.

        Raises:
            EngineError: If a journal is already open
        """
        if self._journal is not None:
            raise EngineError("CollateralLedger journal already open")
        self._journal = {}

    def rollback_journal(self) -> None:
        """Restore every key written since begin_journal() and close it."""
        journal, self._journal = self._journal, None
        for (user, asset), amount in (journal or {}).items():
            self._set(user, asset, amount)

    def close_journal(self) -> None:
        """Keep the writes made since begin_journal()."""
        self._journal = None

    def _set(self, user: str, asset: str, amount: int) -> None:
        if self._journal is not None:
            self._journal.setdefault((user, asset), self.get_balance(user, asset))
        bals = self.balances.setdefault(user, {})
        if amount:
            bals[asset] = amount
            self._positions_by_asset[asset][user] = amount
        else:
            bals.pop(asset, None)
            self._positions_by_asset[asset].pop(user, None)
            if not bals:
                del self.balances[user]

    def __repr__(self) -> str:
        return f"CollateralLedger({len(self.list_users())} users)"


class DebtLedger:
    """
    Per-user outstanding debt, 18-decimal fixed point (1 unit == 1 USD).
    """

    def __init__(self):
        self.debts: Dict[str, int] = {}
        self._journal: Optional[Dict[str, int]] = None

    def get_debt(self, user: str) -> int:
        return self.debts.get(user, 0)

    def increase(self, user: str, amount: int) -> int:
        new_debt = self.get_debt(user) + amount
        self._set(user, new_debt)
        return new_debt

    def decrease(self, user: str, amount: int) -> int:
        """
        Reduce user's debt by amount.

        Raises:
            InsufficientDebt: If amount exceeds the outstanding debt
        """
        current = self.get_debt(user)
        if amount > current:
            raise InsufficientDebt(f"{user}: cannot repay {amount}, debt {current}")
        new_debt = current - amount
        self._set(user, new_debt)
        return new_debt

    def total_debt(self) -> int:
        return sum(self.debts[u] for u in sorted(self.debts))

    def list_debtors(self) -> List[str]:
        return sorted(self.debts)

    def begin_journal(self) -> None:
        if self._journal is not None:
            raise EngineError("DebtLedger journal already open")
        self._journal = {}

    def rollback_journal(self) -> None:
        journal, self._journal = self._journal, None
        for user, amount in (journal or {}).items():
            self._set(user, amount)

    def close_journal(self) -> None:
        self._journal = None

    def _set(self, user: str, amount: int) -> None:
        if self._journal is not None:
            self._journal.setdefault(user, self.get_debt(user))
        if amount:
            self.debts[user] = amount
        else:
            self.debts.pop(user, None)

    def __repr__(self) -> str:
        return f"DebtLedger({len(self.debts)} debtors, total={self.total_debt()})"
