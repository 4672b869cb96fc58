from __future__ import annotations

import csv
import io
import logging
import random
import threading
import time
from typing import Callable, Dict, List, Optional, Sequence

import requests

from models import Quote, StockSuggestion

logger = logging.getLogger(__name__)

SUGGESTION_LIMIT = 10


class SheetPriceSource:
    """Quotes from a published spreadsheet CSV export.

    Expected columns: ``name``, ``symbol`` and ``Current_Price``.
    """

    def __init__(self, url: str, timeout: float = 10.0) -> None:
        self.url = url
        self.timeout = timeout

    def fetch(self) -> List[Quote]:
        if not self.url:
            logger.warning("No price sheet URL configured, prices unavailable")
            return []
        try:
            response = requests.get(self.url, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException:
            logger.error("Failed to fetch price sheet from %s", self.url, exc_info=True)
            return []
        return parse_sheet_csv(response.text)


def parse_sheet_csv(text: str) -> List[Quote]:
    reader = csv.DictReader(io.StringIO(text.strip()))
    quotes: List[Quote] = []
    for row in reader:
        row = {(k or "").strip(): (v or "").strip() for k, v in row.items()}
        name = row.get("name", "")
        if not name:
            continue
        price_str = row.get("Current_Price", "")
        if not price_str:
            logger.warning("Current_Price not found for %s, using 0", name)
            price = 0.0
        else:
            try:
                price = float(price_str)
            except ValueError:
                logger.warning("Could not parse price for %s: %r, using 0", name, price_str)
                price = 0.0
        quotes.append(Quote(name=name, symbol=row.get("symbol", ""), price=price))
    return quotes


class YFinancePriceSource:
    def __init__(self, symbols: Sequence[str]) -> None:
        self.symbols = [s.upper() for s in symbols]

    def fetch(self) -> List[Quote]:
        if not self.symbols:
            logger.warning("WATCHLIST is empty, nothing to price")
            return []

        import yfinance as yf

        quotes: List[Quote] = []
        batch = yf.Tickers(" ".join(self.symbols))
        for symbol in self.symbols:
            try:
                current = batch.tickers[symbol].fast_info.last_price
                if current is None:
                    logger.warning("Missing price data for %s, skipping", symbol)
                    continue
                quotes.append(Quote(name=symbol, symbol=symbol, price=round(current, 2)))
            except Exception:
                logger.warning("Failed to fetch price for %s, skipping", symbol, exc_info=True)
        return quotes


class MockPriceSource:
    """Seeded random walk, one step per fetch."""

    def __init__(
        self,
        symbols: Sequence[str],
        seed: int = 42,
        base_price: float = 100.0,
        volatility: float = 0.02,
    ) -> None:
        self._rng = random.Random(seed)
        self._volatility = volatility
        self._prices: Dict[str, float] = {s: base_price for s in symbols}
        self._lock = threading.Lock()

    def fetch(self) -> List[Quote]:
        with self._lock:
            for symbol, price in self._prices.items():
                step = self._rng.gauss(0.0, self._volatility)
                self._prices[symbol] = max(0.01, round(price * (1 + step), 2))
            return [Quote(name=s, symbol=s, price=p) for s, p in self._prices.items()]


class PriceLookup:
    """Caches a source's quotes for ``ttl_seconds``.

    A failed fetch caches the empty result too, so a broken source is not
    retried until the window passes.
    """

    def __init__(self, source, ttl_seconds: float = 300, clock: Callable[[], float] = time.monotonic) -> None:
        self.source = source
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._quotes: Optional[List[Quote]] = None
        self._fetched_at = 0.0
        self._lock = threading.Lock()

    def quotes(self) -> List[Quote]:
        with self._lock:
            now = self._clock()
            if self._quotes is None or now - self._fetched_at >= self.ttl_seconds:
                self._quotes = self.source.fetch()
                self._fetched_at = now
                logger.debug("Refreshed %d quotes", len(self._quotes))
            return list(self._quotes)

    def invalidate(self) -> None:
        with self._lock:
            self._quotes = None

    def prices(self) -> Dict[str, float]:
        return {q.name: q.price for q in self.quotes()}

    def known_names(self) -> List[str]:
        return [q.name for q in self.quotes()]

    def suggest(self, query: str, limit: int = SUGGESTION_LIMIT) -> List[StockSuggestion]:
        if not query:
            return []
        needle = query.lower()
        matches = [
            StockSuggestion(name=q.name, symbol=q.symbol)
            for q in self.quotes()
            if q.name and q.symbol and needle in q.name.lower()
        ]
        return matches[:limit]


def build_price_lookup() -> PriceLookup:
    from config import (
        MOCK_BASE_PRICE,
        MOCK_PRICE_SEED,
        MOCK_VOLATILITY,
        PRICE_CACHE_SECONDS,
        PRICE_FETCH_TIMEOUT,
        PRICE_SHEET_URL,
        PRICE_SOURCE,
        WATCHLIST,
    )

    if PRICE_SOURCE == "yfinance":
        source = YFinancePriceSource(WATCHLIST)
    elif PRICE_SOURCE == "mock":
        source = MockPriceSource(WATCHLIST, MOCK_PRICE_SEED, MOCK_BASE_PRICE, MOCK_VOLATILITY)
    else:
        if PRICE_SOURCE != "sheet":
            logger.warning("Unknown PRICE_SOURCE %r, falling back to sheet", PRICE_SOURCE)
        source = SheetPriceSource(PRICE_SHEET_URL, PRICE_FETCH_TIMEOUT)
    return PriceLookup(source, ttl_seconds=PRICE_CACHE_SECONDS)
