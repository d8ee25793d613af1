"""
Shared fixtures.

Storage tests run against a throwaway SQLite file per test. Prices come from
StubOracle, which mirrors PriceOracle's interface without any network.
"""

import os

# Point the module-level engine at SQLite before tradesim is imported.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("FINNHUB_API_KEY", "")

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from tradesim.db import build_engine, build_session_factory, init_db
from tradesim.errors import NotFoundError, TradeSimError
from tradesim.portfolios import PortfolioManager
from tradesim.quotes import Quote, SymbolMatch, normalize_ticker
from tradesim.trades import TradeExecutor

USER = "user-alice"
OTHER_USER = "user-bob"


def make_quote(ticker: str, price) -> Quote:
    price = Decimal(str(price))
    return Quote(
        ticker=ticker,
        current_price=price,
        change=Decimal("1.5"),
        change_percent=Decimal("0.75"),
        high_price=price + 2,
        low_price=price - 2,
        open_price=price - 1,
        previous_close=price - Decimal("1.5"),
        timestamp=datetime(2024, 1, 2, 15, 30, tzinfo=timezone.utc),
        fetched_at=datetime.now(timezone.utc),
    )


class StubOracle:
    """In-memory stand-in for PriceOracle."""

    def __init__(self, prices=None) -> None:
        self.prices = {t: Decimal(str(p)) for t, p in (prices or {}).items()}
        self.errors: dict[str, TradeSimError] = {}
        self.calls: list[str] = []
        self.matches: list[SymbolMatch] = []

    def set_price(self, ticker: str, price) -> None:
        self.prices[ticker] = Decimal(str(price))
        self.errors.pop(ticker, None)

    def fail(self, ticker: str, error: TradeSimError) -> None:
        self.errors[ticker] = error

    def get_quote(self, ticker: str) -> Quote:
        symbol = normalize_ticker(ticker)
        self.calls.append(symbol)
        if symbol in self.errors:
            raise self.errors[symbol]
        if symbol not in self.prices:
            raise NotFoundError(f"Stock symbol '{symbol}' not found")
        return make_quote(symbol, self.prices[symbol])

    def get_quotes(self, tickers) -> dict[str, Quote]:
        results = {}
        for ticker in tickers:
            try:
                quote = self.get_quote(ticker)
            except TradeSimError:
                continue
            results[quote.ticker] = quote
        return results

    def search_symbols(self, query: str) -> list[SymbolMatch]:
        return list(self.matches)


@pytest.fixture
def engine(tmp_path):
    eng = build_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def oracle() -> StubOracle:
    return StubOracle({"AAPL": "150", "MSFT": "300", "GOOG": "120"})


@pytest.fixture
def manager(oracle, session_factory) -> PortfolioManager:
    return PortfolioManager(oracle, session_factory)


@pytest.fixture
def executor(oracle, session_factory) -> TradeExecutor:
    return TradeExecutor(oracle, session_factory)


@pytest.fixture
def portfolio(manager):
    """A $10,000 portfolio owned by USER."""
    return manager.create(USER, "Growth", Decimal("10000"))
