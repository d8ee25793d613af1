"""
Portfolio management and read-side views.

Ownership is checked on every call. A portfolio that is missing,
soft-deleted or owned by another user raises the same NotFoundError.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from sqlalchemy.orm import sessionmaker

from tradesim.db import SessionLocal, unit_of_work
from tradesim.entities import HoldingRecord, PortfolioRecord, TransactionRecord
from tradesim.errors import InvalidInputError
from tradesim.ledger import LedgerStore
from tradesim.models import to_money
from tradesim.quotes import PriceOracle
from tradesim.valuation import (
    HoldingValue,
    PortfolioSummary,
    PortfolioTotals,
    portfolio_totals,
    summarize,
    value_holding,
)

logger = logging.getLogger(__name__)

MAX_STARTING_CAPITAL = Decimal("10000000")
MAX_NAME_LENGTH = 100
MAX_TRANSACTION_LIMIT = 500


@dataclass(frozen=True)
class ValuedHoldings:
    holdings: list[HoldingValue]
    summary: PortfolioSummary


@dataclass(frozen=True)
class PortfolioOverview:
    portfolio: PortfolioRecord
    holdings: list[HoldingValue]
    summary: PortfolioSummary
    totals: PortfolioTotals


def _clean_name(name) -> str:
    cleaned = name.strip() if isinstance(name, str) else ""
    if not cleaned:
        raise InvalidInputError("Portfolio name is required")
    if len(cleaned) > MAX_NAME_LENGTH:
        raise InvalidInputError(f"Portfolio name cannot exceed {MAX_NAME_LENGTH} characters")
    return cleaned


def _parse_capital(value) -> Decimal:
    if isinstance(value, bool):
        raise InvalidInputError("Starting capital must be a positive number")
    try:
        capital = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise InvalidInputError("Starting capital must be a positive number") from None
    if not capital.is_finite() or capital <= 0:
        raise InvalidInputError("Starting capital must be a positive number")
    if capital > MAX_STARTING_CAPITAL:
        raise InvalidInputError("Starting capital cannot exceed $10,000,000")
    return to_money(capital)


class PortfolioManager:
    def __init__(self, oracle: PriceOracle, session_factory: sessionmaker = SessionLocal) -> None:
        self._oracle = oracle
        self._session_factory = session_factory

    def create(self, user_id: str, name: str, starting_capital) -> PortfolioRecord:
        """Open a portfolio whose cash balance starts at ``starting_capital``."""
        cleaned = _clean_name(name)
        capital = _parse_capital(starting_capital)
        with unit_of_work(self._session_factory) as session:
            portfolio = LedgerStore(session).add_portfolio(user_id, cleaned, capital)
            record = PortfolioRecord.from_row(portfolio)
        logger.info("Created portfolio %s for user %s with %s", record.id, user_id, capital)
        return record

    def list_by_user(self, user_id: str) -> list[PortfolioRecord]:
        with unit_of_work(self._session_factory) as session:
            rows = LedgerStore(session).list_portfolios(user_id)
            return [PortfolioRecord.from_row(p) for p in rows]

    def get_by_id(self, portfolio_id: str, user_id: str) -> PortfolioRecord:
        with unit_of_work(self._session_factory) as session:
            return PortfolioRecord.from_row(LedgerStore(session).get_portfolio(portfolio_id, user_id))

    def rename(self, portfolio_id: str, user_id: str, new_name: str) -> PortfolioRecord:
        cleaned = _clean_name(new_name)
        with unit_of_work(self._session_factory) as session:
            portfolio = LedgerStore(session).get_portfolio(portfolio_id, user_id, for_update=True)
            portfolio.name = cleaned
            session.flush()
            return PortfolioRecord.from_row(portfolio)

    def soft_delete(self, portfolio_id: str, user_id: str) -> None:
        """Hide the portfolio. Its holdings and transactions stay on record."""
        with unit_of_work(self._session_factory) as session:
            ledger = LedgerStore(session)
            ledger.soft_delete_portfolio(ledger.get_portfolio(portfolio_id, user_id, for_update=True))
        logger.info("Soft-deleted portfolio %s", portfolio_id)

    def _load(self, portfolio_id: str, user_id: str):
        with unit_of_work(self._session_factory) as session:
            ledger = LedgerStore(session)
            portfolio = PortfolioRecord.from_row(ledger.get_portfolio(portfolio_id, user_id))
            holdings = [HoldingRecord.from_row(h) for h in ledger.list_holdings(portfolio_id)]
        return portfolio, holdings

    def _value(self, holdings: list[HoldingRecord]) -> ValuedHoldings:
        # Quotes are fetched after the session closes; a missing quote
        # values the holding at its average cost.
        quotes = self._oracle.get_quotes(h.ticker for h in holdings) if holdings else {}
        values = []
        for h in holdings:
            quote = quotes.get(h.ticker)
            values.append(value_holding(h, quote.current_price if quote else None))
        return ValuedHoldings(holdings=values, summary=summarize(values))

    def valued_holdings(self, portfolio_id: str, user_id: str) -> ValuedHoldings:
        _, holdings = self._load(portfolio_id, user_id)
        return self._value(holdings)

    def overview(self, portfolio_id: str, user_id: str) -> PortfolioOverview:
        portfolio, holdings = self._load(portfolio_id, user_id)
        valued = self._value(holdings)
        return PortfolioOverview(
            portfolio=portfolio,
            holdings=valued.holdings,
            summary=valued.summary,
            totals=portfolio_totals(
                portfolio.cash_balance, portfolio.starting_capital, valued.summary
            ),
        )

    def transactions(
        self, portfolio_id: str, user_id: str, limit: int = 50
    ) -> list[TransactionRecord]:
        """Return the newest ``limit`` ledger entries of the portfolio."""
        if not 1 <= limit <= MAX_TRANSACTION_LIMIT:
            raise InvalidInputError(f"Limit must be between 1 and {MAX_TRANSACTION_LIMIT}")
        with unit_of_work(self._session_factory) as session:
            ledger = LedgerStore(session)
            ledger.get_portfolio(portfolio_id, user_id)
            return [TransactionRecord.from_row(t) for t in ledger.list_transactions(portfolio_id, limit)]

    def get_transaction(
        self, portfolio_id: str, user_id: str, transaction_id: str
    ) -> TransactionRecord:
        with unit_of_work(self._session_factory) as session:
            ledger = LedgerStore(session)
            ledger.get_portfolio(portfolio_id, user_id)
            return TransactionRecord.from_row(ledger.get_transaction(transaction_id, portfolio_id))
