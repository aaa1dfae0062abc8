"""
position.py - Position Engine

Owns the collateral and debt ledgers and exposes the only operations that
change them: deposit, mint, redeem and burn, plus their compound forms.

Key responsibilities:
    - Every public mutating operation is one atomic unit of work
    - Reentrant calls are rejected for the whole duration of an operation
    - Health factor is re-checked after anything that can raise debt or
      lower collateral
    - Deposit and redemption events are published only after commit
"""

from __future__ import annotations
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Tuple, Any
import logging

from .core import (
    # Types
    Asset, CollateralToken, DebtToken, PriceFeed,
    DepositEvent, RedemptionEvent,
    # Constants
    ORACLE_TIMEOUT,
    # Exceptions
    EngineError, InvalidAmount, AssetNotAllowed, HealthFactorBroken,
    Reentrancy, ConfigMismatch,
)
from .health import (
    calculate_usd_value, calculate_token_amount_from_usd, calculate_collateral_value,
    calculate_health_factor, is_healthy,
)
from .ledger import CollateralLedger, DebtLedger
from .price_oracle import PriceOracleAdapter
from .unit_of_work import UnitOfWork, Event

logger = logging.getLogger(__name__)

EventListener = Callable[[Event], None]


class PositionEngine:
    """
    Collateral/debt engine for a single synthetic dollar.

    Thread Safety:
        Not thread-safe. Operations are strictly sequential; a collaborator
        that calls back into a mutating operation gets Reentrancy.

    Example:
        engine = PositionEngine([weth], [eth_usd_feed], dsc)
        engine.deposit_collateral_and_mint_debt(
            "alice", weth.address, 10 * 10**18, 5_000 * 10**18
        )
        engine.health_factor("alice")
    """

    def __init__(
        self,
        collateral_tokens: Sequence[CollateralToken],
        price_feeds: Sequence[PriceFeed],
        debt_token: DebtToken,
        *,
        address: str = "engine",
        initial_time: Optional[datetime] = None,
        oracle_timeout=ORACLE_TIMEOUT,
    ):
        """
        Create an engine.

        Args:
            collateral_tokens: Allow-listed collateral, in a fixed order
            price_feeds: One feed per collateral token, same order
            debt_token: The synthetic dollar; the engine must be its mint authority
            address: Custody address used in token transfers
            initial_time: Starting logical time (default: 1970-01-01)
            oracle_timeout: Maximum accepted price age (timedelta)

        Raises:
            ConfigMismatch: If the two sequences differ in length or a token
                            address is listed twice
        """
        if len(collateral_tokens) != len(price_feeds):
            raise ConfigMismatch(
                f"{len(collateral_tokens)} collateral tokens but {len(price_feeds)} price feeds"
            )
        assets: List[Asset] = []
        index: Dict[str, int] = {}
        for i, (token, feed) in enumerate(zip(collateral_tokens, price_feeds)):
            if token.address in index:
                raise ConfigMismatch(f"Collateral {token.address} listed twice")
            index[token.address] = i
            assets.append(Asset(index=i, address=token.address, token=token, price_feed=feed))

        self.address = address
        self.debt_token = debt_token
        self._assets: Tuple[Asset, ...] = tuple(assets)
        self._asset_index = index
        self.collateral = CollateralLedger()
        self.debt = DebtLedger()
        self._current_time: datetime = initial_time or datetime(1970, 1, 1)
        self.oracle = PriceOracleAdapter(clock=lambda: self._current_time, timeout=oracle_timeout)
        self.event_log: List[Event] = []
        self._listeners: List[EventListener] = []
        # Set for the whole duration of a mutating operation
        self._uow: Optional[UnitOfWork] = None

    # ========================================================================
    # TIME MANAGEMENT
    # ========================================================================

    @property
    def current_time(self) -> datetime:
        """Current logical time, used to age oracle answers."""
        return self._current_time

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
        """Call listener with every committed DepositEvent and RedemptionEvent."""
        self._listeners.append(listener)

    def _publish(self, events: List[Event]) -> None:
        """
        Deliver committed events to every listener.

        The operation has already committed, so a failing listener is logged
        and skipped; it neither reaches the caller nor starves later listeners.
        """
        self.event_log.extend(events)
        for event in events:
            for listener in self._listeners:
                try:
                    listener(event)
                except Exception:
                    logger.exception("Event listener %r failed on %r", listener, event)

    # ========================================================================
    # UNIT OF WORK
    # ========================================================================

    @property
    def locked(self) -> bool:
        """True while a mutating operation is in progress."""
        return self._uow is not None

    @contextmanager
    def _unit_of_work(self, operation: str) -> Iterator[UnitOfWork]:
        """
        Run the body as a single atomic, non-reentrant operation.

        On any exception executed effects are reversed and every ledger key
        the body wrote is rolled back before the exception propagates.
        """
        if self._uow is not None:
            logger.warning(
                "REJECTED %s: reentrant call during %s", operation, self._uow.operation
            )
            raise Reentrancy(f"{operation} called while {self._uow.operation} is in progress")

        uow = UnitOfWork(operation, self.address, self.collateral, self.debt)
        self._uow = uow
        try:
            yield uow
            uow.commit()
        except Exception as e:
            uow.rollback()
            logger.warning("REJECTED %s: %s: %s", operation, type(e).__name__, e)
            raise
        finally:
            self._uow = None

        logger.info("APPLIED %s (%d effects, %d events)", operation, len(uow.effects), len(uow.events))
        self._publish(uow.events)

    @property
    def _staging(self) -> UnitOfWork:
        if self._uow is None:
            raise EngineError("Ledger mutation outside of a unit of work")
        return self._uow

    # ========================================================================
    # PUBLIC OPERATIONS (Mutating)
    # ========================================================================

    def deposit_collateral(self, user: str, asset: str, amount: int) -> None:
        """
        Lock amount of asset as collateral for user.

        Never checks the health factor: adding collateral cannot lower it.

        Raises:
            InvalidAmount, AssetNotAllowed, TransferFailed
        """
        with self._unit_of_work("deposit_collateral"):
            self._deposit_collateral(user, asset, amount)

    def mint_debt(self, user: str, amount: int) -> None:
        """
        Mint amount of the synthetic dollar to user against their collateral.

        Raises:
            InvalidAmount, HealthFactorBroken, MintFailed, StalePrice
        """
        with self._unit_of_work("mint_debt"):
            self._mint_debt(user, amount)

    def deposit_collateral_and_mint_debt(
        self,
        user: str,
        asset: str,
        amount_collateral: int,
        amount_debt: int,
    ) -> None:
        """Deposit then mint, as one operation."""
        with self._unit_of_work("deposit_collateral_and_mint_debt"):
            self._deposit_collateral(user, asset, amount_collateral)
            self._mint_debt(user, amount_debt)

    def redeem_collateral(self, user: str, asset: str, amount: int) -> None:
        """
        Withdraw amount of asset from user's collateral back to user.

        Raises:
            InvalidAmount, AssetNotAllowed, InsufficientCollateral,
            HealthFactorBroken, RedeemFailed, StalePrice
        """
        with self._unit_of_work("redeem_collateral"):
            _require_positive(amount)
            self._require_allowed(asset)
            self._redeem_collateral(asset, amount, user, user)
            self._revert_if_health_factor_is_broken(user)

    def burn_debt(self, user: str, amount: int) -> None:
        """
        Repay amount of user's debt with the synthetic dollars user holds.

        Raises:
            InvalidAmount, InsufficientDebt, TransferFailed
        """
        with self._unit_of_work("burn_debt"):
            _require_positive(amount)
            self._burn_debt(amount, user, user)
            # Burning never lowers the health factor
            self._revert_if_health_factor_is_broken(user)

    def redeem_collateral_for_debt(
        self,
        user: str,
        asset: str,
        amount_collateral: int,
        amount_debt: int,
    ) -> None:
        """
        Burn amount_debt, then redeem amount_collateral, as one operation.

        The burn runs first so the health check after redemption sees the
        reduced debt.
        """
        with self._unit_of_work("redeem_collateral_for_debt"):
            _require_positive(amount_collateral)
            self._require_allowed(asset)
            self._burn_debt(amount_debt, user, user)
            self._redeem_collateral(asset, amount_collateral, user, user)
            self._revert_if_health_factor_is_broken(user)

    # ========================================================================
    # PRIMITIVES (must run inside a unit of work)
    # ========================================================================

    def _deposit_collateral(self, user: str, asset: str, amount: int) -> None:
        uow = self._staging
        _require_positive(amount)
        descriptor = self._require_allowed(asset)
        self.collateral.credit(user, asset, amount)
        uow.emit(DepositEvent(user=user, asset=asset, amount=amount))
        uow.pull(descriptor.token, user, amount)

    def _mint_debt(self, user: str, amount: int) -> None:
        uow = self._staging
        _require_positive(amount)
        self.debt.increase(user, amount)
        self._revert_if_health_factor_is_broken(user)
        uow.mint(self.debt_token, user, amount)

    def _redeem_collateral(self, asset: str, amount: int, from_: str, to: str) -> None:
        """
        Move amount of asset out of from_'s collateral to to.

        The health check is left to the caller; it runs after the debit and
        after the push has been staged.
        """
        uow = self._staging
        descriptor = self._require_allowed(asset)
        self.collateral.debit(from_, asset, amount)
        uow.emit(RedemptionEvent(redeemed_from=from_, redeemed_to=to, asset=asset, amount=amount))
        uow.push(descriptor.token, to, amount)

    def _burn_debt(self, amount: int, on_behalf_of: str, payer: str) -> None:
        """
        Repay amount of on_behalf_of's debt with synthetic dollars held by payer.

        The dollars are pulled into custody and destroyed there.
        """
        uow = self._staging
        _require_positive(amount)
        self.debt.decrease(on_behalf_of, amount)
        uow.pull(self.debt_token, payer, amount)
        uow.burn(self.debt_token, amount)

    def _revert_if_health_factor_is_broken(self, user: str) -> None:
        health_factor = self.health_factor(user)
        if not is_healthy(health_factor):
            raise HealthFactorBroken(health_factor)

    def _require_allowed(self, asset: str) -> Asset:
        if asset not in self._asset_index:
            raise AssetNotAllowed(f"Asset {asset} is not allowed as collateral")
        return self._assets[self._asset_index[asset]]

    # ========================================================================
    # VIEWS (read-only)
    # ========================================================================

    def collateral_value_usd(self, user: str) -> int:
        """
        USD value (18 decimals) of everything user has deposited.

        Queries the oracle for every allow-listed asset, including those the
        user holds none of, so any stale feed blocks valuation.
        """
        return calculate_collateral_value(
            (self.collateral.get_balance(user, asset.address), self.oracle.usd_price(asset))
            for asset in self._assets
        )

    def get_account_information(self, user: str) -> Tuple[int, int]:
        """Return (total_debt, collateral_value_usd) for user."""
        return self.debt.get_debt(user), self.collateral_value_usd(user)

    def health_factor(self, user: str) -> int:
        total_debt, collateral_value = self.get_account_information(user)
        return calculate_health_factor(total_debt, collateral_value)

    def calculate_health_factor(self, total_debt: int, collateral_value_usd: int) -> int:
        """Health factor for hypothetical inputs (no state read)."""
        return calculate_health_factor(total_debt, collateral_value_usd)

    def get_usd_value(self, asset: str, amount: int) -> int:
        descriptor = self._require_allowed(asset)
        return calculate_usd_value(amount, self.oracle.usd_price(descriptor))

    def get_token_amount_from_usd(self, asset: str, usd_amount: int) -> int:
        descriptor = self._require_allowed(asset)
        return calculate_token_amount_from_usd(usd_amount, self.oracle.usd_price(descriptor))

    def get_collateral_balance(self, user: str, asset: str) -> int:
        return self.collateral.get_balance(user, asset)

    def get_debt(self, user: str) -> int:
        return self.debt.get_debt(user)

    def get_collateral_tokens(self) -> List[str]:
        """Allow-listed asset addresses in configuration order."""
        return [asset.address for asset in self._assets]

    def get_assets(self) -> Tuple[Asset, ...]:
        return self._assets

    def get_collateral_token_price_feed(self, asset: str) -> PriceFeed:
        return self._require_allowed(asset).price_feed

    def get_debt_token(self) -> DebtToken:
        return self.debt_token

    def verify_backing(self) -> Dict[str, Any]:
        """
        Check that outstanding debt is covered by the USD value of all
        collateral in custody.

        Individual accounts may be under water until liquidated; they are
        reported but do not make the result invalid.

        Returns:
            Dict with keys:
            - 'valid': bool - total debt <= total collateral value
            - 'total_debt': int
            - 'collateral_value_usd': int
            - 'undercollateralized': List[str] - debtors below MIN_HEALTH_FACTOR

        Example:
            result = engine.verify_backing()
            assert result['valid'], f"Debt exceeds collateral: {result}"
        """
        total_debt = self.debt.total_debt()
        collateral_value = calculate_collateral_value(
            (self.collateral.total_held(asset.address), self.oracle.usd_price(asset))
            for asset in self._assets
        )
        undercollateralized = [
            user for user in self.debt.list_debtors()
            if not is_healthy(self.health_factor(user))
        ]
        return {
            'valid': total_debt <= collateral_value,
            'total_debt': total_debt,
            'collateral_value_usd': collateral_value,
            'undercollateralized': undercollateralized,
        }

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}({self.address}, {len(self._assets)} assets, "
            f"debt={self.debt.total_debt()})"
        )


def _require_positive(amount: int) -> None:
    # bool is an int subclass but never a token amount
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidAmount(f"Amount must be an integer, got {amount!r}")
    if amount <= 0:
        raise InvalidAmount(f"Amount must be more than zero, got {amount}")
