"""
oracle.py - Price feeds and the staleness-checked oracle adapter

Provides the pricing mechanisms used to value collateral.

Classes:
- ManualPriceFeed: Settable feed (one quote, updated by hand or by a script)
- HistoricalPriceFeed: Time-varying quotes replayed against a clock
- PriceOracle: Per-asset adapter that rejects stale quotes and converts
  between asset amounts and USD

All prices are USD with FEED_DECIMALS decimals. All values returned by the
oracle are 18-decimal integers.
"""

from __future__ import annotations
import logging
from bisect import bisect_right
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Mapping, Optional, Tuple

from .core import (
    AssetId, PriceFeed, PriceQuote,
    STALENESS_TIMEOUT,
    AssetNotAccepted, InvalidPrice, StalePrice,
    asset_amount_from_price, usd_value_from_price,
)

logger = logging.getLogger(__name__)


class ManualPriceFeed:
    """
    Feed holding a single quote that is replaced on every update.

    Stands in for an on-chain aggregator in tests and local deployments.
    """

    def __init__(self, price: int, updated_at: Optional[datetime] = None):
        """
        Initialize with an initial answer.

        Args:
            price: USD price with 8 decimals (e.g. 200_000_000_000 for $2,000)
            updated_at: Time of the answer (None means the feed never reported)
        """
        self._quote = PriceQuote(price=price, updated_at=updated_at)

    def latest_quote(self) -> PriceQuote:
        return self._quote

    def update_answer(self, price: int, updated_at: datetime) -> None:
        """Replace the current answer."""
        self._quote = PriceQuote(price=price, updated_at=updated_at)

    def __repr__(self):
        return f"ManualPriceFeed(price={self._quote.price}, updated_at={self._quote.updated_at})"


class HistoricalPriceFeed:
    """
    Feed backed by a price history, read at the time given by a clock.

    Returns the most recent observation at or before clock(). The quote's
    updated_at is the observation's own timestamp, so gaps in the history
    surface as stale prices.

    Supports two initialization patterns:
    - Empty initialization for incremental addition via add_price()
    - Batch initialization with a complete price path
    """

    def __init__(
        self,
        clock: Callable[[], datetime],
        price_path: Optional[List[Tuple[datetime, int]]] = None,
    ):
        """
        Initialize the feed.

        Args:
            clock: Returns the time at which the feed is read
            price_path: Optional list of (timestamp, price) tuples

        Example:
            feed = HistoricalPriceFeed(lambda: engine.current_time, [
                (t0, 200_000_000_000),
                (t1, 180_000_000_000),
            ])
        """
        self.clock = clock
        self.history: List[Tuple[datetime, int]] = sorted(price_path or [], key=lambda x: x[0])

    def add_price(self, timestamp: datetime, price: int) -> None:
        """Add an observation, keeping the history in timestamp order."""
        self.history.append((timestamp, price))
        self.history.sort(key=lambda x: x[0])

    def latest_quote(self) -> PriceQuote:
        """
        Quote at the clock's current time.

        Uses binary search over the observation timestamps. Before the first
        observation the quote has updated_at=None (never reported).
        """
        timestamps = [ts for ts, _ in self.history]
        idx = bisect_right(timestamps, self.clock())
        if idx == 0:
            return PriceQuote(price=0, updated_at=None)
        ts, price = self.history[idx - 1]
        return PriceQuote(price=price, updated_at=ts)

    def __repr__(self):
        return f"HistoricalPriceFeed({len(self.history)} observations)"


class PriceOracle:
    """
    Staleness-checked USD pricing for the registered collateral assets.

    Every read goes through quote(), which fails with StalePrice when the
    feed's last update is older than the timeout. Callers never see a price
    they are not allowed to act on.
    """

    def __init__(
        self,
        feeds: Mapping[AssetId, PriceFeed],
        staleness_timeout: timedelta = STALENESS_TIMEOUT,
    ):
        """
        Args:
            feeds: Asset id -> price feed
            staleness_timeout: Maximum allowed quote age
        """
        self.feeds: Dict[AssetId, PriceFeed] = dict(feeds)
        self.staleness_timeout = staleness_timeout

    def feed_for(self, asset: AssetId) -> PriceFeed:
        if asset not in self.feeds:
            raise AssetNotAccepted(asset)
        return self.feeds[asset]

    def quote(self, asset: AssetId, now: datetime) -> PriceQuote:
        """
        Return the feed's latest quote if it is usable at ``now``.

        Raises:
            AssetNotAccepted: If no feed is registered for the asset
            StalePrice: If the quote never updated or is older than the timeout
            InvalidPrice: If the quoted price is not positive
        """
        quote = self.feed_for(asset).latest_quote()
        age = quote.age(now)
        if age is None or age > self.staleness_timeout:
            logger.warning("Stale price for %s (age %s, timeout %s)", asset, age, self.staleness_timeout)
            raise StalePrice(asset, age)
        if quote.price <= 0:
            logger.warning("Invalid price for %s: %s", asset, quote.price)
            raise InvalidPrice(asset, quote.price)
        return quote

    def get_usd_value(self, asset: AssetId, amount: int, now: datetime) -> int:
        """USD value (18 decimals) of ``amount`` of ``asset``."""
        quote = self.quote(asset, now)
        return usd_value_from_price(quote.price, amount)

    def get_asset_amount_from_usd(self, asset: AssetId, usd_amount: int, now: datetime) -> int:
        """Amount of ``asset`` (18 decimals) worth ``usd_amount``."""
        quote = self.quote(asset, now)
        return asset_amount_from_price(quote.price, usd_amount)

    def __repr__(self):
        return f"PriceOracle({len(self.feeds)} feeds, timeout={self.staleness_timeout})"
