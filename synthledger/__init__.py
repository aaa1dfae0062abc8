"""
synthledger - Overcollateralized Synthetic Dollar Engine

Users lock allow-listed collateral and mint a USD-pegged debt token against
it. Every operation is atomic and re-checks the account's health factor;
under-collateralized accounts can be liquidated by third parties for a 10%
collateral bonus.

Usage:
    from synthledger import LiquidationEngine, StaticPriceFeed

    feed = StaticPriceFeed({"WETH": 2000 * 10**8}, updated_at=now)
    engine = LiquidationEngine([weth], [feed], dsc, initial_time=now)

    # alice has approved the engine for her WETH
    engine.deposit_collateral_and_mint_debt(
        "alice", "WETH", 10 * 10**18, 5_000 * 10**18
    )
    engine.health_factor("alice")

    # later, after a price drop
    engine.liquidate("keeper", "WETH", "alice", 5_000 * 10**18)
"""

# Core types
from .core import (
    Asset,
    CollateralToken,
    DebtToken,
    PriceFeed,
    DepositEvent,
    RedemptionEvent,
    EngineError,
    InvalidAmount,
    AssetNotAllowed,
    TransferFailed,
    RedeemFailed,
    MintFailed,
    HealthFactorBroken,
    InvalidTarget,
    InsufficientDebt,
    InsufficientCollateral,
    HealthFactorOk,
    HealthFactorNotImproved,
    StalePrice,
    Reentrancy,
    ConfigMismatch,
    CompensationFailed,
    PRECISION,
    FEED_DECIMALS,
    ADDITIONAL_FEED_PRECISION,
    LIQUIDATION_THRESHOLD,
    LIQUIDATION_PRECISION,
    LIQUIDATION_BONUS,
    MIN_HEALTH_FACTOR,
    MAX_HEALTH_FACTOR,
    ORACLE_TIMEOUT,
    ZERO_ADDRESS,
)

# Ledgers
from .ledger import CollateralLedger, DebtLedger

# Pure calculations
from .health import (
    LiquidationQuote,
    calculate_usd_value,
    calculate_token_amount_from_usd,
    calculate_collateral_value,
    calculate_health_factor,
    calculate_liquidation_bonus,
    quote_liquidation,
    is_healthy,
)

# Prices
from .price_oracle import (
    PriceOracleAdapter,
    StaticPriceFeed,
    TimeSeriesPriceFeed,
)

# Engines
from .unit_of_work import UnitOfWork, Effect
from .position import PositionEngine
from .liquidation import LiquidationEngine, LiquidationResult

# Configuration
from .config import (
    AssetConfig,
    OracleConfig,
    EngineConfig,
    load_config,
    build_engine,
)
from .logging_setup import configure_logging

__all__ = [
    # Core
    'Asset', 'CollateralToken', 'DebtToken', 'PriceFeed',
    'DepositEvent', 'RedemptionEvent',
    'EngineError', 'InvalidAmount', 'AssetNotAllowed', 'TransferFailed',
    'RedeemFailed', 'MintFailed', 'HealthFactorBroken', 'InvalidTarget',
    'InsufficientDebt', 'InsufficientCollateral', 'HealthFactorOk',
    'HealthFactorNotImproved', 'StalePrice', 'Reentrancy', 'ConfigMismatch',
    'CompensationFailed',
    'PRECISION', 'FEED_DECIMALS', 'ADDITIONAL_FEED_PRECISION',
    'LIQUIDATION_THRESHOLD', 'LIQUIDATION_PRECISION', 'LIQUIDATION_BONUS',
    'MIN_HEALTH_FACTOR', 'MAX_HEALTH_FACTOR', 'ORACLE_TIMEOUT', 'ZERO_ADDRESS',
    # Ledgers
    'CollateralLedger', 'DebtLedger',
    # Calculations
    'LiquidationQuote', 'calculate_usd_value', 'calculate_token_amount_from_usd',
    'calculate_collateral_value', 'calculate_health_factor',
    'calculate_liquidation_bonus', 'quote_liquidation', 'is_healthy',
    # Prices
    'PriceOracleAdapter', 'StaticPriceFeed', 'TimeSeriesPriceFeed',
    # Engines
    'UnitOfWork', 'Effect', 'PositionEngine', 'LiquidationEngine', 'LiquidationResult',
    # Configuration
    'AssetConfig', 'OracleConfig', 'EngineConfig', 'load_config', 'build_engine',
    'configure_logging',
]
