"""
Ledger store: row access for portfolios, holdings and transactions.

Every read goes through this class so the soft-delete filter
(``deleted_at IS NULL``) is applied in one place. The store works inside a
session owned by the caller's unit of work and never commits itself.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from tradesim.errors import NotFoundError
from tradesim.models import Holding, Portfolio, Transaction, TransactionType


class LedgerStore:
    def __init__(self, session: Session) -> None:
        self.session = session

    # -- portfolios -------------------------------------------------------

    def get_portfolio(
        self, portfolio_id: str, user_id: str, for_update: bool = False
    ) -> Portfolio:
        """Return an active portfolio owned by ``user_id``.

        Args:
            portfolio_id: Portfolio identity.
            user_id: Caller identity; a foreign portfolio is reported as missing.
            for_update: Take an exclusive row lock until the unit of work ends.

        Raises:
            NotFoundError: The portfolio is missing, soft-deleted or foreign.
        """
        stmt = select(Portfolio).where(
            Portfolio.id == portfolio_id,
            Portfolio.user_id == user_id,
            Portfolio.deleted_at.is_(None),
        )
        if for_update:
            stmt = stmt.with_for_update()
        portfolio = self.session.execute(stmt).scalar_one_or_none()
        if portfolio is None:
            raise NotFoundError("Portfolio not found")
        return portfolio

    def list_portfolios(self, user_id: str) -> list[Portfolio]:
        stmt = (
            select(Portfolio)
            .where(Portfolio.user_id == user_id, Portfolio.deleted_at.is_(None))
            .order_by(Portfolio.created_at.desc())
        )
        return list(self.session.execute(stmt).scalars())

    def add_portfolio(self, user_id: str, name: str, starting_capital: Decimal) -> Portfolio:
        portfolio = Portfolio(
            user_id=user_id,
            name=name,
            starting_capital=starting_capital,
            cash_balance=starting_capital,
        )
        self.session.add(portfolio)
        self.session.flush()
        return portfolio

    def soft_delete_portfolio(self, portfolio: Portfolio) -> None:
        portfolio.deleted_at = datetime.now(timezone.utc)
        self.session.flush()

    # -- holdings ---------------------------------------------------------

    def get_holding(
        self, portfolio_id: str, ticker: str, for_update: bool = False
    ) -> Optional[Holding]:
        stmt = select(Holding).where(
            Holding.portfolio_id == portfolio_id,
            Holding.ticker == ticker,
            Holding.deleted_at.is_(None),
        )
        if for_update:
            stmt = stmt.with_for_update()
        return self.session.execute(stmt).scalar_one_or_none()

    def list_holdings(self, portfolio_id: str) -> list[Holding]:
        stmt = (
            select(Holding)
            .where(Holding.portfolio_id == portfolio_id, Holding.deleted_at.is_(None))
            .order_by(Holding.ticker.asc())
        )
        return list(self.session.execute(stmt).scalars())

    def add_holding(
        self, portfolio_id: str, ticker: str, shares: Decimal, average_cost: Decimal
    ) -> Holding:
        holding = Holding(
            portfolio_id=portfolio_id,
            ticker=ticker,
            shares=shares,
            average_cost=average_cost,
        )
        self.session.add(holding)
        self.session.flush()
        return holding

    def soft_delete_holding(self, holding: Holding) -> None:
        holding.deleted_at = datetime.now(timezone.utc)
        self.session.flush()

    # -- transactions -----------------------------------------------------

    def append_transaction(
        self,
        portfolio_id: str,
        ticker: str,
        type: TransactionType,
        shares: Decimal,
        price_per_share: Decimal,
        total_amount: Decimal,
    ) -> Transaction:
        txn = Transaction(
            portfolio_id=portfolio_id,
            ticker=ticker,
            type=type,
            shares=shares,
            price_per_share=price_per_share,
            total_amount=total_amount,
        )
        self.session.add(txn)
        self.session.flush()
        return txn

    def list_transactions(self, portfolio_id: str, limit: int = 50) -> list[Transaction]:
        stmt = (
            select(Transaction)
            .where(Transaction.portfolio_id == portfolio_id)
            .order_by(Transaction.executed_at.desc())
            .limit(limit)
        )
        return list(self.session.execute(stmt).scalars())

    def get_transaction(self, transaction_id: str, portfolio_id: str) -> Transaction:
        stmt = select(Transaction).where(
            Transaction.id == transaction_id,
            Transaction.portfolio_id == portfolio_id,
        )
        txn = self.session.execute(stmt).scalar_one_or_none()
        if txn is None:
            raise NotFoundError("Transaction not found")
        return txn
