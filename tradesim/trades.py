"""
Trade execution.

Buys and sells run as one unit of work each. The live quote is fetched
first, outside any lock; everything after it (ownership check, funds or
shares check, holding update, cash update, ledger append) happens while the
portfolio is held exclusively, both through an in-process lock keyed by
portfolio id and through ``SELECT ... FOR UPDATE`` on the portfolio and
holding rows. A failure at any step after the quote rolls the whole unit of
work back.
"""

import logging
import threading
import weakref
from contextlib import contextmanager
from decimal import Decimal, InvalidOperation
from typing import Iterator, Optional

from sqlalchemy.orm import sessionmaker

from tradesim.db import SessionLocal, unit_of_work
from tradesim.entities import HoldingRecord, TradeResult, TransactionRecord
from tradesim.errors import (
    InsufficientFundsError,
    InsufficientSharesError,
    InvalidInputError,
    NotFoundError,
)
from tradesim.ledger import LedgerStore
from tradesim.models import TransactionType, to_money, to_quantity
from tradesim.quotes import PriceOracle, Quote

logger = logging.getLogger(__name__)

# Remaining share counts at or below this are treated as fully sold.
LIQUIDATION_EPSILON = Decimal("0.0001")
# Numeric(20, 6) leaves 14 integer digits for share counts.
MAX_SHARES = Decimal("1e14")


class PortfolioLocks:
    """Exclusive in-process locks, one per portfolio id.

    A lock lives only while some caller holds a reference to it.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: "weakref.WeakValueDictionary[str, threading.Lock]" = (
            weakref.WeakValueDictionary()
        )

    @contextmanager
    def hold(self, portfolio_id: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(portfolio_id, threading.Lock())
        with lock:
            yield


_process_locks = PortfolioLocks()


def parse_shares(shares) -> Decimal:
    """Return ``shares`` as a positive Decimal at share precision.

    Raises:
        InvalidInputError: Not a finite number, not greater than 0, or not
            below ``MAX_SHARES``.
    """
    if isinstance(shares, bool):
        raise InvalidInputError("Shares must be a positive number")
    try:
        amount = shares if isinstance(shares, Decimal) else Decimal(str(shares))
    except (InvalidOperation, ValueError):
        raise InvalidInputError("Shares must be a positive number") from None
    if not amount.is_finite():
        raise InvalidInputError("Shares must be a positive number")
    if amount >= MAX_SHARES:
        raise InvalidInputError(f"Shares must be less than {MAX_SHARES:,f}")
    if amount <= 0 or to_quantity(amount) <= 0:
        raise InvalidInputError("Shares must be greater than 0")
    return to_quantity(amount)


def _trade_price(quote: Quote) -> Decimal:
    # sub-cent quotes can round to zero at money precision
    price = to_money(quote.current_price)
    if price <= 0:
        raise NotFoundError(f"No tradable price for '{quote.ticker}'")
    return price


class TradeExecutor:
    def __init__(
        self,
        oracle: PriceOracle,
        session_factory: sessionmaker = SessionLocal,
        locks: Optional[PortfolioLocks] = None,
    ) -> None:
        self._oracle = oracle
        self._session_factory = session_factory
        self._locks = locks if locks is not None else _process_locks

    def buy(self, portfolio_id: str, user_id: str, ticker: str, shares) -> TradeResult:
        """Buy ``shares`` of ``ticker`` at the live price.

        Raises:
            InvalidInputError: Shares out of range or malformed ticker.
            NotFoundError: Unknown or untradable symbol, or portfolio missing/not owned.
            InsufficientFundsError: Cash balance below the total cost.
            RateLimitedError, UpstreamUnavailableError: Quote lookup failed.
        """
        amount = parse_shares(shares)
        quote = self._oracle.get_quote(ticker)
        symbol = quote.ticker
        price = _trade_price(quote)
        total_cost = to_money(amount * price)

        with self._locks.hold(portfolio_id), unit_of_work(self._session_factory) as session:
            ledger = LedgerStore(session)
            portfolio = ledger.get_portfolio(portfolio_id, user_id, for_update=True)

            if portfolio.cash_balance < total_cost:
                raise InsufficientFundsError(total_cost, portfolio.cash_balance)

            holding = ledger.get_holding(portfolio_id, symbol, for_update=True)
            if holding is None:
                holding = ledger.add_holding(portfolio_id, symbol, amount, to_quantity(price))
            else:
                new_shares = holding.shares + amount
                holding.average_cost = to_quantity(
                    (holding.shares * holding.average_cost + amount * price) / new_shares
                )
                holding.shares = new_shares

            portfolio.cash_balance = portfolio.cash_balance - total_cost
            txn = ledger.append_transaction(
                portfolio_id, symbol, TransactionType.BUY, amount, price, total_cost
            )

            result = TradeResult(
                transaction=TransactionRecord.from_row(txn),
                new_cash_balance=portfolio.cash_balance,
                holding=HoldingRecord.from_row(holding),
            )

        logger.info(
            "BUY %s x%s @ %s in portfolio %s (cash now %s)",
            symbol, amount, price, portfolio_id, result.new_cash_balance,
        )
        return result

    def sell(self, portfolio_id: str, user_id: str, ticker: str, shares) -> TradeResult:
        """Sell ``shares`` of ``ticker`` at the live price.

        Average cost is left untouched; only buys move it. Selling down to
        the liquidation epsilon soft-deletes the holding.

        Raises:
            InvalidInputError: Shares out of range or malformed ticker.
            NotFoundError: Unknown or untradable symbol, portfolio missing/not owned, or no
                active holding of the ticker.
            InsufficientSharesError: More shares requested than held.
            RateLimitedError, UpstreamUnavailableError: Quote lookup failed.
        """
        amount = parse_shares(shares)
        quote = self._oracle.get_quote(ticker)
        symbol = quote.ticker
        price = _trade_price(quote)
        total_value = to_money(amount * price)

        with self._locks.hold(portfolio_id), unit_of_work(self._session_factory) as session:
            ledger = LedgerStore(session)
            portfolio = ledger.get_portfolio(portfolio_id, user_id, for_update=True)

            holding = ledger.get_holding(portfolio_id, symbol, for_update=True)
            if holding is None:
                raise NotFoundError(f"You don't own any shares of {symbol}")
            if amount > holding.shares:
                raise InsufficientSharesError(symbol, amount, holding.shares)

            new_shares = holding.shares - amount
            if new_shares > LIQUIDATION_EPSILON:
                holding.shares = new_shares
                session.flush()
                remaining = HoldingRecord.from_row(holding)
            else:
                ledger.soft_delete_holding(holding)
                remaining = None

            portfolio.cash_balance = portfolio.cash_balance + total_value
            txn = ledger.append_transaction(
                portfolio_id, symbol, TransactionType.SELL, amount, price, total_value
            )

            result = TradeResult(
                transaction=TransactionRecord.from_row(txn),
                new_cash_balance=portfolio.cash_balance,
                holding=remaining,
            )

        logger.info(
            "SELL %s x%s @ %s in portfolio %s (cash now %s)",
            symbol, amount, price, portfolio_id, result.new_cash_balance,
        )
        return result
