"""
Core types and constants for the synthetic-dollar engine.

This module provides the foundational data structures and protocols:
1. Constants: fixed-point scales, liquidation parameters, sentinel identities
2. Protocols: collaborator interfaces for tokens and price feeds
3. Exceptions: EngineError and the domain-specific failure taxonomy
4. Immutable data structures: Asset, DepositEvent, RedemptionEvent
5. Type aliases: BalanceMap, Positions

Nothing in this module mutates engine state.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Tuple, Protocol, runtime_checkable


# ============================================================================
# CONSTANTS
# ============================================================================

# Fixed-point scale for USD values and debt (1 debt unit == 10**18).
PRECISION = 10**18

# Feeds quote with 8 decimals; padding brings them to the 18-decimal scale.
FEED_DECIMALS = 8
ADDITIONAL_FEED_PRECISION = 10**10

# Collateral counts at 50% of its USD value (200% overcollateralization).
LIQUIDATION_THRESHOLD = 50
LIQUIDATION_PRECISION = 100

# Percentage of seized collateral paid to the liquidator on top.
LIQUIDATION_BONUS = 10

# Compared directly against the unscaled ratio, see health.calculate_health_factor.
MIN_HEALTH_FACTOR = 1

# Health factor reported for accounts without debt (uint256 max).
MAX_HEALTH_FACTOR = 2**256 - 1

# Oracle answers older than this are rejected.
ORACLE_TIMEOUT = timedelta(hours=3)

# Null identity. Never a valid liquidation target.
ZERO_ADDRESS = "0x" + "0" * 40


# ============================================================================
# TYPE ALIASES
# ============================================================================

# Mapping from asset address to amount held by a single user.
BalanceMap = Dict[str, int]

# Mapping from user to amount held, for a single asset.
Positions = Dict[str, int]

# Raw oracle answer: (price with FEED_DECIMALS, time of last update).
PriceAnswer = Tuple[int, datetime]


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class CollateralToken(Protocol):
    """
    Transfer interface of an allow-listed collateral asset.

    A False return is a reported failure, not a fault; the engine treats it
    as TransferFailed. Implementations may also raise, which aborts the
    enclosing operation the same way.
    """

    address: str

    def transfer_from(self, sender: str, recipient: str, amount: int) -> bool:
        """Move amount from sender to recipient using the recipient's allowance."""
        ...

    def transfer(self, sender: str, recipient: str, amount: int) -> bool:
        """Move amount out of sender's own balance."""
        ...

    def increase_allowance(self, owner: str, spender: str, amount: int) -> bool:
        """Raise spender's allowance over owner's balance; used to undo a pull."""
        ...


@runtime_checkable
class DebtToken(CollateralToken, Protocol):
    """
    The synthetic dollar. The engine is its only mint/burn authority.
    """

    def mint(self, to: str, amount: int) -> bool:
        ...

    def burn(self, holder: str, amount: int) -> None:
        """Destroy amount held by holder. Assumed infallible given the balance."""
        ...

    def total_supply(self) -> int:
        ...


@runtime_checkable
class PriceFeed(Protocol):
    """
    External price source.

    latest_price returns the most recent round for an asset as
    (price, updated_at), with price carrying FEED_DECIMALS decimals.
    """

    def latest_price(self, asset: str) -> PriceAnswer:
        ...


# ============================================================================
# EXCEPTIONS
# ============================================================================

class EngineError(Exception):
    """Base exception for all engine errors."""
    pass


class InvalidAmount(EngineError):
    """Raised when an amount that must be strictly positive is not."""
    pass


class AssetNotAllowed(EngineError):
    """Raised when an operation references an asset outside the allow-list."""
    pass


class TransferFailed(EngineError):
    """Raised when a token collaborator reports a failed transfer."""
    pass


class RedeemFailed(TransferFailed):
    """Raised when pushing collateral out of custody fails during redemption."""
    pass


class MintFailed(EngineError):
    """Raised when the debt token reports a failed mint."""
    pass


class HealthFactorBroken(EngineError):
    """Raised when an operation would leave the acting account below MIN_HEALTH_FACTOR."""

    def __init__(self, health_factor: int):
        super().__init__(f"health factor {health_factor} below minimum {MIN_HEALTH_FACTOR}")
        self.health_factor = health_factor


class InvalidTarget(EngineError):
    """Raised when a liquidation targets the null identity."""
    pass


class InsufficientDebt(EngineError):
    """Raised when more debt would be repaid than the account owes."""
    pass


class InsufficientCollateral(EngineError):
    """Raised when more collateral would be withdrawn than the account holds."""
    pass


class HealthFactorOk(EngineError):
    """Raised when a liquidation targets an account that is not under-collateralized."""
    pass


class HealthFactorNotImproved(EngineError):
    """Raised when a liquidation fails to raise the target's health factor."""
    pass


class StalePrice(EngineError):
    """Raised when oracle data is missing, invalid or older than the freshness window."""
    pass


class Reentrancy(EngineError):
    """Raised when a mutating operation starts while another one is in progress."""
    pass


class ConfigMismatch(EngineError):
    """Raised when the asset and price feed lists do not pair up 1:1."""
    pass


class CompensationFailed(EngineError):
    """Raised when an executed effect could not be reversed after a later failure."""
    pass


# ============================================================================
# ASSETS
# ============================================================================

@dataclass(frozen=True, slots=True)
class Asset:
    """
    Allow-listed collateral descriptor.

    Built once at engine construction and never mutated. Assets are kept in
    an ordered tuple; index is the asset's position in that tuple.

    Attributes:
        index: Position in the engine's asset table.
        address: Asset identifier (the token's address).
        token: Transfer collaborator for this asset.
        price_feed: Feed reference used for USD valuation.
    """
    index: int
    address: str
    token: CollateralToken
    price_feed: PriceFeed

    def __repr__(self) -> str:
        return f"Asset({self.index}: {self.address})"


# ============================================================================
# EVENTS
# ============================================================================

@dataclass(frozen=True, slots=True)
class DepositEvent:
    """Collateral credited to a user and pulled into custody."""
    user: str
    asset: str
    amount: int


@dataclass(frozen=True, slots=True)
class RedemptionEvent:
    """Collateral debited from one account and pushed to a recipient."""
    redeemed_from: str
    redeemed_to: str
    asset: str
    amount: int

    def __repr__(self) -> str:
        return f"Redemption({self.amount} {self.asset}: {self.redeemed_from}→{self.redeemed_to})"
