"""
price_oracle.py - Price feeds and the staleness-checked oracle adapter

Classes:
- PriceOracleAdapter: validates raw feed answers and pads them to 18 decimals
- StaticPriceFeed: in-memory feed with explicitly set prices and update times
- TimeSeriesPriceFeed: in-memory feed replaying historical observations

Feeds quote prices as integers with FEED_DECIMALS decimals, denominated in USD.
"""

from __future__ import annotations
from bisect import bisect_right
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple
import logging

from .core import (
    Asset, PriceAnswer,
    ADDITIONAL_FEED_PRECISION, ORACLE_TIMEOUT,
    StalePrice,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class PriceOracleAdapter:
    """
    Wraps asset price feeds with a freshness check.

    Every read goes to the feed; there is no cache, no retry and no fallback.
    A stale or invalid round raises StalePrice, which aborts whatever
    operation asked for the price.
    """

    def __init__(self, clock: Clock, timeout=ORACLE_TIMEOUT):
        """
        Args:
            clock: Returns the current time used to age feed answers
            timeout: Maximum accepted age of an answer (timedelta)
        """
        self._clock = clock
        self.timeout = timeout

    def latest_price(self, asset: Asset) -> int:
        """
        Raw feed price of asset (FEED_DECIMALS decimals) after validation.

        Raises:
            StalePrice: If the round has no timestamp, a non-positive price,
                        or is older than the timeout
        """
        price, updated_at = asset.price_feed.latest_price(asset.address)
        if updated_at is None:
            raise StalePrice(f"{asset.address}: round has no update time")
        if price is None or price <= 0:
            raise StalePrice(f"{asset.address}: invalid price {price}")
        age = self._clock() - updated_at
        if age > self.timeout:
            logger.warning("Stale price for %s: age %s exceeds %s", asset.address, age, self.timeout)
            raise StalePrice(f"{asset.address}: price is {age} old (timeout {self.timeout})")
        return price

    def usd_price(self, asset: Asset) -> int:
        """USD price of one whole unit of asset, 18 decimals."""
        return self.latest_price(asset) * ADDITIONAL_FEED_PRECISION


class StaticPriceFeed:
    """
    Feed with prices set explicitly.

    Each price carries the time it was set, so staleness can be exercised by
    moving the engine clock past the oracle timeout.
    """

    def __init__(self, prices: Optional[Dict[str, int]] = None, updated_at: Optional[datetime] = None):
        """
        Args:
            prices: Asset address -> price (FEED_DECIMALS decimals)
            updated_at: Update time recorded for the initial prices
        """
        self.answers: Dict[str, PriceAnswer] = {}
        for asset, price in (prices or {}).items():
            self.answers[asset] = (price, updated_at)

    def latest_price(self, asset: str) -> PriceAnswer:
        if asset not in self.answers:
            return (0, None)
        return self.answers[asset]

    def update_price(self, asset: str, price: int, updated_at: datetime) -> None:
        self.answers[asset] = (price, updated_at)

    def update_prices(self, prices: Dict[str, int], updated_at: datetime) -> None:
        for asset, price in prices.items():
            self.update_price(asset, price, updated_at)

    def __repr__(self):
        return f"StaticPriceFeed({len(self.answers)} prices)"


class TimeSeriesPriceFeed:
    """
    Feed replaying historical price observations.

    latest_price answers with the most recent observation at or before the
    feed's clock; the observation's own timestamp is reported as the update
    time. Without a clock the last observation is always returned.
    """

    def __init__(
        self,
        price_paths: Optional[Dict[str, List[Tuple[datetime, int]]]] = None,
        clock: Optional[Clock] = None,
    ):
        """
        Args:
            price_paths: Asset address -> list of (timestamp, price) tuples
            clock: Current time for point-in-time answers

        Example:
            feed = TimeSeriesPriceFeed({
                'WETH': [(t0, 2000_00000000), (t1, 1800_00000000)],
            }, clock=lambda: engine.current_time)
        """
        self.clock = clock
        self.price_history: Dict[str, List[Tuple[datetime, int]]] = {}
        if price_paths:
            for asset, path in price_paths.items():
                if not path:
                    continue
                self.price_history[asset] = sorted(path, key=lambda x: x[0])

    def add_price(self, asset: str, timestamp: datetime, price: int) -> None:
        history = self.price_history.setdefault(asset, [])
        history.append((timestamp, price))
        history.sort(key=lambda x: x[0])

    def latest_price(self, asset: str) -> PriceAnswer:
        history = self.price_history.get(asset)
        if not history:
            return (0, None)
        if self.clock is None:
            timestamp, price = history[-1]
            return (price, timestamp)

        # Rightmost observation with ts <= now
        timestamps = [ts for ts, _ in history]
        idx = bisect_right(timestamps, self.clock())
        if idx == 0:
            return (0, None)
        timestamp, price = history[idx - 1]
        return (price, timestamp)

    def __repr__(self):
        total_observations = sum(len(history) for history in self.price_history.values())
        return f"TimeSeriesPriceFeed({len(self.price_history)} assets, {total_observations} observations)"
