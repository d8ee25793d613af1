"""
Price oracle: Finnhub quotes behind a short-lived cache.

The oracle validates tickers before any network call, serves fresh cached
quotes, and translates provider quirks (zero/zero payload for unknown
symbols, HTTP 429) into the service error taxonomy.
"""

import logging
import re
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Iterable, Optional

import requests
from cachetools import TTLCache

from tradesim.errors import (
    InvalidInputError,
    NotFoundError,
    RateLimitedError,
    TradeSimError,
    UpstreamUnavailableError,
)

logger = logging.getLogger(__name__)

TICKER_PATTERN = re.compile(r"^[A-Z]{1,5}$")
SEARCH_RESULT_LIMIT = 10
SEARCH_STOCK_TYPE = "Common Stock"


@dataclass(frozen=True)
class Quote:
    ticker: str
    current_price: Decimal
    change: Decimal
    change_percent: Decimal
    high_price: Decimal
    low_price: Decimal
    open_price: Decimal
    previous_close: Decimal
    timestamp: Optional[datetime]
    fetched_at: datetime


@dataclass(frozen=True)
class SymbolMatch:
    symbol: str
    description: str
    type: str


def normalize_ticker(ticker: str) -> str:
    """Trim and uppercase a ticker, rejecting anything not 1-5 letters."""
    normalized = (ticker or "").strip().upper()
    if not TICKER_PATTERN.match(normalized):
        raise InvalidInputError("Invalid ticker symbol")
    return normalized


def _decimal(value) -> Decimal:
    # Finnhub sends JSON floats (or null for some fields)
    return Decimal(str(value)) if value is not None else Decimal("0")


class FinnhubClient:
    """Thin HTTP client for the Finnhub REST API."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://finnhub.io/api/v1",
        timeout: float = 8.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._session = session or requests.Session()

    def _get(self, path: str, params: dict) -> dict:
        if not self._api_key:
            raise UpstreamUnavailableError("Quote provider API key is not configured")

        try:
            r = self._session.get(
                f"{self._base_url}{path}",
                params={**params, "token": self._api_key},
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            raise UpstreamUnavailableError(f"Quote provider error: {type(e).__name__}") from e

        if r.status_code == 429:
            raise RateLimitedError("Quote provider rate limit exceeded. Please try again later.")
        try:
            r.raise_for_status()
            return r.json()
        except requests.HTTPError as e:
            raise UpstreamUnavailableError(f"Quote provider error: HTTP {r.status_code}") from e
        except ValueError as e:
            raise UpstreamUnavailableError("Quote provider returned an unreadable response") from e

    def quote(self, symbol: str) -> dict:
        """Return the raw quote payload (c, d, dp, h, l, o, pc, t)."""
        return self._get("/quote", {"symbol": symbol})

    def search(self, query: str) -> list[dict]:
        """Return the raw ``result`` entries of a symbol search."""
        data = self._get("/search", {"q": query})
        return data.get("result") or []


class QuoteCache:
    """Bounded TTL cache of quotes keyed by normalized ticker."""

    def __init__(
        self,
        ttl: float = 60.0,
        maxsize: int = 512,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self._entries = TTLCache(maxsize=maxsize, ttl=ttl, timer=timer)
        # TTLCache is not thread-safe
        self._lock = threading.Lock()

    def get(self, ticker: str) -> Optional[Quote]:
        with self._lock:
            return self._entries.get(ticker)

    def put(self, quote: Quote) -> None:
        with self._lock:
            self._entries[quote.ticker] = quote

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            self._entries.expire()
            return len(self._entries)


class PriceOracle:
    """Current prices and symbol search, cached per instance."""

    def __init__(self, provider: FinnhubClient, cache: Optional[QuoteCache] = None) -> None:
        self._provider = provider
        self._cache = cache if cache is not None else QuoteCache()

    def get_quote(self, ticker: str) -> Quote:
        """Return a quote for ``ticker``, from cache when fresh.

        Raises:
            InvalidInputError: Malformed ticker; no network call is made.
            NotFoundError: The provider does not know the symbol.
            RateLimitedError: The provider throttled the request.
            UpstreamUnavailableError: Any other provider failure.
        """
        symbol = normalize_ticker(ticker)

        cached = self._cache.get(symbol)
        if cached is not None:
            return cached

        data = self._provider.quote(symbol)

        # Finnhub answers unknown symbols with an all-zero payload
        if not data.get("c") and not data.get("pc"):
            raise NotFoundError(f"Stock symbol '{symbol}' not found")

        t = data.get("t")
        quote = Quote(
            ticker=symbol,
            current_price=_decimal(data.get("c")),
            change=_decimal(data.get("d")),
            change_percent=_decimal(data.get("dp")),
            high_price=_decimal(data.get("h")),
            low_price=_decimal(data.get("l")),
            open_price=_decimal(data.get("o")),
            previous_close=_decimal(data.get("pc")),
            timestamp=datetime.fromtimestamp(t, tz=timezone.utc) if t else None,
            fetched_at=datetime.now(timezone.utc),
        )
        if quote.current_price <= 0:
            raise NotFoundError(f"No current price for '{symbol}'")

        self._cache.put(quote)
        return quote

    def get_quotes(self, tickers: Iterable[str]) -> dict[str, Quote]:
        """Fetch quotes one by one, omitting tickers whose lookup fails.

        Requests are sequential to stay under the provider's rate limit.
        """
        results: dict[str, Quote] = {}
        for ticker in tickers:
            try:
                quote = self.get_quote(ticker)
            except TradeSimError as e:
                logger.warning("Skipping quote for %s: %s", ticker, e.message)
                continue
            results[quote.ticker] = quote
        return results

    def get_cached_quote(self, ticker: str) -> Optional[Quote]:
        return self._cache.get(ticker.strip().upper())

    def clear_cache(self) -> None:
        self._cache.clear()

    def search_symbols(self, query: str) -> list[SymbolMatch]:
        q = (query or "").strip()
        if not q:
            raise InvalidInputError("Search query is required")

        matches = [
            SymbolMatch(
                symbol=item.get("symbol", ""),
                description=item.get("description", ""),
                type=item.get("type", ""),
            )
            for item in self._provider.search(q)
            if item.get("type") == SEARCH_STOCK_TYPE
        ]
        return matches[:SEARCH_RESULT_LIMIT]
