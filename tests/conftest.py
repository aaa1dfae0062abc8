"""
conftest.py - Shared pytest fixtures for synthledger tests

Provides common fixtures used across unit, conformance and functional tests:
- Fake collateral tokens (WETH, WBTC) and the fake synthetic dollar
- A shared static price feed stamped at T0
- Engines at T0, empty and with funded users
"""

import pytest
from datetime import datetime

from synthledger import LiquidationEngine, StaticPriceFeed

from tests.fakes import FakeToken, FakeDebtToken, fund


# =============================================================================
# CONSTANTS
# =============================================================================

T0 = datetime(2024, 1, 1, 12, 0, 0)
ENGINE = "engine"

ETH_PRICE = 2000 * 10**8
BTC_PRICE = 1000 * 10**8

ONE = 10**18


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def open_position(engine, token, user: str, collateral: int, debt: int) -> None:
    """Fund user with collateral, deposit it and mint debt in one operation."""
    fund(token, user, collateral, engine.address)
    engine.deposit_collateral_and_mint_debt(user, token.address, collateral, debt)


def approve_debt_spend(engine, user: str, amount: int) -> None:
    """Let the engine pull amount of the synthetic dollar from user."""
    dsc = engine.debt_token
    dsc.approve(user, engine.address, dsc.allowance(user, engine.address) + amount)


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def weth():
    return FakeToken("WETH")


@pytest.fixture
def wbtc():
    return FakeToken("WBTC")


@pytest.fixture
def dsc():
    return FakeDebtToken("DSC")


@pytest.fixture
def feed():
    return StaticPriceFeed({"WETH": ETH_PRICE, "WBTC": BTC_PRICE}, updated_at=T0)


@pytest.fixture
def engine(weth, wbtc, dsc, feed):
    """Engine allow-listing WETH and WBTC, clock at T0, no positions."""
    return LiquidationEngine(
        [weth, wbtc], [feed, feed], dsc,
        address=ENGINE, initial_time=T0,
    )


@pytest.fixture
def funded_engine(engine, weth):
    """Engine where alice holds 10 WETH approved for deposit."""
    fund(weth, "alice", 10 * ONE, ENGINE)
    return engine
